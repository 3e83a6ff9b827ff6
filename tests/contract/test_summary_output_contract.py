from __future__ import annotations

import re
from pathlib import Path

from po_tracker.cli import main as cli_main

"""SUMMARY output line contract (single line, fixed key order)."""

SUMMARY_RE = re.compile(
    r"^SUMMARY files=\d+ success=\d+ failed=\d+ rows=\d+ dropped=\d+ saved=\d+ elapsed_sec=\d+(\.\d+)?$"
)


def test_single_summary_line(write_config, po_register: Path, monkeypatch, capsys):
    monkeypatch.setenv("DISABLE_DB_CONNECT", "1")
    cli_main(["import", str(po_register)])
    lines = [ln for ln in capsys.readouterr().out.splitlines() if ln.startswith("SUMMARY")]
    assert len(lines) == 1
    assert SUMMARY_RE.match(lines[0]), lines[0]
