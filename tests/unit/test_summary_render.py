from __future__ import annotations

import re
from datetime import UTC, datetime

from esg_analytics.models.processing_result import ProcessingResult
from esg_analytics.services.summary import render_summary_line

SUMMARY_PATTERN = re.compile(
    r"^SUMMARY\s+files=([0-9]+)/(\1)\s+success=([0-9]+)\s+failed=([0-9]+)\s+"
    r"records=([0-9]+)\s+skipped_files=([0-9]+)\s+elapsed_sec=([0-9]+\.?[0-9]*)\s+"
    r"throughput_rps=([0-9]+\.?[0-9]*)$"
)


def _result(**kwargs) -> ProcessingResult:
    start = datetime(2024, 4, 1, 10, 0, 0, tzinfo=UTC)
    defaults = dict(
        success_files=0,
        failed_files=0,
        skipped_files=0,
        total_records=0,
        start_time=start,
        end_time=start,
        elapsed_seconds=0.0,
        throughput_records_per_sec=0.0,
    )
    defaults.update(kwargs)
    return ProcessingResult(**defaults)


def test_render_summary_line_all_success():
    line = render_summary_line(
        2,
        _result(success_files=2, total_records=1000, skipped_files=1, elapsed_seconds=2.0, throughput_records_per_sec=500.0),
    )
    match = SUMMARY_PATTERN.match(line)
    assert match, line
    assert match.group(1) == "2"
    assert match.group(3) == "2"
    assert match.group(5) == "1000"
    assert match.group(6) == "1"
    assert line.endswith("elapsed_sec=2 throughput_rps=500")


def test_render_summary_line_partial_failure():
    line = render_summary_line(3, _result(success_files=2, failed_files=1, total_records=42, elapsed_seconds=1.5, throughput_records_per_sec=28.0))
    assert SUMMARY_PATTERN.match(line)
    assert "success=2 failed=1 records=42" in line
    assert "elapsed_sec=1.5" in line


def test_render_summary_line_no_files():
    line = render_summary_line(0, _result())
    assert line == "SUMMARY files=0/0 success=0 failed=0 records=0 skipped_files=0 elapsed_sec=0 throughput_rps=0"


def test_tiny_elapsed_avoids_exponent():
    line = render_summary_line(1, _result(success_files=1, elapsed_seconds=0.000123))
    assert "elapsed_sec=0.000123" in line
    assert "e-" not in line
