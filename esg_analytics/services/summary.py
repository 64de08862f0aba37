from __future__ import annotations

from ..models.processing_result import ProcessingResult

"""SUMMARY line rendering for a batch run."""

__all__ = [
    "render_summary_line",
]


def _format_number(value: float) -> str:
    # 整数値は小数点なし, 極小値は指数表記を避ける
    if value == 0:
        return "0"
    if value == int(value):
        return str(int(value))
    if value < 0.01:
        return f"{value:.6f}".rstrip("0").rstrip(".")
    return str(value)


def render_summary_line(total_files: int, result: ProcessingResult) -> str:
    """Render the SUMMARY line.

    Format:
    SUMMARY files={n}/{n} success={s} failed={f} records={r}
    skipped_files={k} elapsed_sec={e} throughput_rps={t}

    ``total_files`` counts routed files (success + failed); skipped files
    (no upload route matched) are reported separately.

    Examples:
        >>> from datetime import UTC, datetime
        >>> start = datetime(2024, 4, 1, 10, 0, 0, tzinfo=UTC)
        >>> end = datetime(2024, 4, 1, 10, 0, 2, tzinfo=UTC)
        >>> result = ProcessingResult(
        ...     success_files=1, failed_files=0, skipped_files=0, total_records=1000,
        ...     start_time=start, end_time=end, elapsed_seconds=2.0,
        ...     throughput_records_per_sec=500.0,
        ... )
        >>> render_summary_line(1, result)
        'SUMMARY files=1/1 success=1 failed=0 records=1000 skipped_files=0 elapsed_sec=2 throughput_rps=500'
    """
    return (
        f"SUMMARY files={total_files}/{total_files} "
        f"success={result.success_files} "
        f"failed={result.failed_files} "
        f"records={result.total_records} "
        f"skipped_files={result.skipped_files} "
        f"elapsed_sec={_format_number(result.elapsed_seconds)} "
        f"throughput_rps={_format_number(result.throughput_records_per_sec)}"
    )
