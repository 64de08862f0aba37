from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

"""Processing result models for a batch run over uploaded workbooks."""

__all__ = [
    "FileStat",
    "ProcessingResult",
]


@dataclass(frozen=True)
class FileStat:
    """Per-file outcome of a batch run."""
    file_name: str  # ファイル名
    module: str | None  # routed module (None when skipped)
    status: str  # success / error / skipped
    records: int  # canonical records produced
    elapsed_seconds: float  # ファイル処理時間
    output_path: str | None = None  # payload JSON written for this file
    message: str | None = None  # failure reason


@dataclass(frozen=True)
class ProcessingResult:
    """Aggregated results for the SUMMARY line."""
    success_files: int
    failed_files: int
    skipped_files: int  # no upload route matched
    total_records: int
    start_time: datetime
    end_time: datetime
    elapsed_seconds: float
    throughput_records_per_sec: float  # total_records / elapsed
    file_stats: list[FileStat] | None = None
