"""Command line interface (``po-tracker`` / ``python -m po_tracker.cli``)."""


def main(argv: list[str] | None = None) -> int:
    from .__main__ import main as _main

    return _main(argv)
