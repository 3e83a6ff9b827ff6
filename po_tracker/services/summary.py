from __future__ import annotations

from ..models.processing_result import ImportResult

"""SUMMARY line rendering for batch imports."""


def _format_seconds(value: float) -> str:
    if value == 0:
        return "0"
    if value == int(value):
        return str(int(value))
    if value < 0.01:
        # 指数表記を避ける
        return f"{value:.6f}".rstrip("0").rstrip(".")
    return f"{value:.2f}".rstrip("0").rstrip(".")


def render_summary_line(result: ImportResult) -> str:
    """Render the SUMMARY line for an ImportResult.

    Format:
    SUMMARY files={total} success={success} failed={failed} rows={parsed}
    dropped={dropped} saved={saved} elapsed_sec={elapsed}

    Examples:
        >>> from datetime import datetime, timezone
        >>> start = datetime(2024, 1, 1, 10, 0, 0, tzinfo=timezone.utc)
        >>> end = datetime(2024, 1, 1, 10, 0, 2, tzinfo=timezone.utc)
        >>> result = ImportResult(
        ...     success_files=1, failed_files=0, parsed_rows=12, dropped_rows=2,
        ...     saved_rows=10, start_time=start, end_time=end, elapsed_seconds=2.0,
        ... )
        >>> render_summary_line(result)
        'SUMMARY files=1 success=1 failed=0 rows=12 dropped=2 saved=10 elapsed_sec=2'
    """
    return (
        f"SUMMARY files={result.total_files} "
        f"success={result.success_files} "
        f"failed={result.failed_files} "
        f"rows={result.parsed_rows} "
        f"dropped={result.dropped_rows} "
        f"saved={result.saved_rows} "
        f"elapsed_sec={_format_seconds(result.elapsed_seconds)}"
    )
