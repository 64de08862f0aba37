from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from pathlib import Path

from ..logging.error_log import ErrorLogBuffer, ErrorRecord
from ..models.analytics import ModuleAnalytics
from ..models.config_models import DashboardConfig, ModuleConfig
from ..models.processing_result import FileStat, ProcessingResult
from .analytics import compute_module_analytics
from .progress import ProgressTracker
from .record_loader import load_from_workbook

"""Batch orchestration over uploaded workbooks.

Scans ``source_directory`` for ``.xlsx`` files, routes each one to a module
through the ``uploads`` patterns, loads and aggregates it, and writes the
chart payload as JSON next to the other reports. Failures are recorded per
file (JSON Lines error log, row -1) and never stop the batch.
"""

__all__ = [
    "ProcessingError",
    "process_file",
    "process_uploads",
    "scan_excel_files",
    "write_payload",
]

logger = logging.getLogger(__name__)

STATUS_SUCCESS = "success"
STATUS_ERROR = "error"
STATUS_SKIPPED = "skipped"


class ProcessingError(Exception):
    """Fatal batch error (source directory missing or unreadable)."""


def scan_excel_files(directory: Path) -> list[Path]:
    """``.xlsx`` files directly under ``directory`` (sorted by name, Excel lock files excluded).

    Raises:
        ProcessingError: directory missing, not a directory, or unreadable
    """
    if not directory.exists():
        raise ProcessingError(f"Directory not found: {directory}")
    if not directory.is_dir():
        raise ProcessingError(f"Path is not a directory: {directory}")
    try:
        return sorted(
            (p for p in directory.iterdir() if p.is_file() and p.suffix == ".xlsx" and not p.name.startswith("~$")),
            key=lambda p: p.name,
        )
    except OSError as e:
        raise ProcessingError(f"Error reading directory {directory}: {e}") from e


def write_payload(analytics: ModuleAnalytics, path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(analytics.to_dict(), ensure_ascii=False, indent=2), encoding="utf-8")
    return path


def process_file(file_path: Path, module: ModuleConfig) -> ModuleAnalytics:
    """Load one uploaded workbook for ``module`` and build its payload (never raises on bad input)."""
    result = load_from_workbook(file_path, module)
    return compute_module_analytics(module, result)


def process_uploads(config: DashboardConfig, error_log: ErrorLogBuffer | None = None) -> ProcessingResult:
    """Process every routed workbook in ``config.source_directory``.

    Raises:
        ProcessingError: the source directory cannot be scanned
    """
    start_time = datetime.now(UTC)
    error_log = error_log if error_log is not None else ErrorLogBuffer()
    file_paths = scan_excel_files(Path(config.source_directory))
    output_dir = Path(config.output_directory)

    file_stats: list[FileStat] = []
    success_count = 0
    failed_count = 0
    skipped_count = 0
    total_records = 0

    with ProgressTracker(len(file_paths)) as progress:
        for file_path in file_paths:
            progress.start_file(file_path)
            file_start = datetime.now(UTC)
            module_name = config.module_for(file_path.name)

            if module_name is None:
                logger.info(f"skip (no upload route): {file_path.name}")
                skipped_count += 1
                stat = FileStat(
                    file_name=file_path.name,
                    module=None,
                    status=STATUS_SKIPPED,
                    records=0,
                    elapsed_seconds=(datetime.now(UTC) - file_start).total_seconds(),
                )
            else:
                stat = _process_routed_file(file_path, config.modules[module_name], output_dir, error_log, file_start)
                if stat.status == STATUS_SUCCESS:
                    success_count += 1
                    total_records += stat.records
                else:
                    failed_count += 1

            file_stats.append(stat)
            progress.set_postfix(success=success_count, failed=failed_count, records=total_records)
            progress.finish_file()

    # エラーログは最後に一度だけ書き出す
    try:
        log_path = error_log.flush()
        if log_path is not None:
            logger.info(f"error log: {log_path}")
    except OSError as e:
        logger.warning(f"failed to write error log: {e}")

    end_time = datetime.now(UTC)
    elapsed_seconds = (end_time - start_time).total_seconds()
    throughput = total_records / elapsed_seconds if elapsed_seconds > 0 else 0.0

    return ProcessingResult(
        success_files=success_count,
        failed_files=failed_count,
        skipped_files=skipped_count,
        total_records=total_records,
        start_time=start_time,
        end_time=end_time,
        elapsed_seconds=elapsed_seconds,
        throughput_records_per_sec=throughput,
        file_stats=file_stats,
    )


def _process_routed_file(
    file_path: Path,
    module: ModuleConfig,
    output_dir: Path,
    error_log: ErrorLogBuffer,
    file_start: datetime,
) -> FileStat:
    analytics = process_file(file_path, module)

    def _elapsed() -> float:
        return (datetime.now(UTC) - file_start).total_seconds()

    if analytics.error_type is not None:
        message = analytics.message or ""
        logger.warning(f"file={file_path.name} module={module.name} {analytics.error_type.value}: {message}")
        error_log.append(
            ErrorRecord.create(
                file=file_path.name,
                module=module.name,
                row=-1,
                error_type=analytics.error_type.value,
                message=message,
            )
        )
        return FileStat(
            file_name=file_path.name,
            module=module.name,
            status=STATUS_ERROR,
            records=0,
            elapsed_seconds=_elapsed(),
            message=message,
        )

    out_path = output_dir / f"{file_path.stem}.{module.name}.json"
    try:
        write_payload(analytics, out_path)
    except OSError as e:
        message = f"failed to write payload {out_path}: {e}"
        logger.error(f"file={file_path.name} module={module.name} {message}")
        error_log.append(
            ErrorRecord.create(
                file=file_path.name,
                module=module.name,
                row=-1,
                error_type="OUTPUT_WRITE_FAILED",
                message=message,
            )
        )
        return FileStat(
            file_name=file_path.name,
            module=module.name,
            status=STATUS_ERROR,
            records=0,
            elapsed_seconds=_elapsed(),
            message=message,
        )

    logger.info(f"file={file_path.name} module={module.name} records={analytics.record_count} -> {out_path}")
    return FileStat(
        file_name=file_path.name,
        module=module.name,
        status=STATUS_SUCCESS,
        records=analytics.record_count,
        elapsed_seconds=_elapsed(),
        output_path=str(out_path),
    )
