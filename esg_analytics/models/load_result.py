from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from .record import CanonicalRecord

"""Load status and result models.

A load moves idle -> loading -> (success | error). Every entry point of the
record loader returns a ``LoadResult`` instead of raising, so the module view
always ends in one of its terminal states.
"""

__all__ = [
    "LoadDiagnostics",
    "LoadErrorType",
    "LoadResult",
    "LoadStatus",
]


class LoadStatus(Enum):
    IDLE = "idle"
    LOADING = "loading"
    SUCCESS = "success"
    ERROR = "error"


class LoadErrorType(Enum):
    """Error classification in UPPER_SNAKE_CASE (also used in the error log)."""
    INPUT_ABSENT = "INPUT_ABSENT"
    DECODE_FAILED = "DECODE_FAILED"
    HEADER_NOT_FOUND = "HEADER_NOT_FOUND"
    NO_VALID_DATA = "NO_VALID_DATA"
    FETCH_FAILED = "FETCH_FAILED"


@dataclass(frozen=True)
class LoadDiagnostics:
    """Data quality counters for one load (operator facing, never fatal)."""
    data_rows: int = 0  # rows turned into records
    blank_rows: int = 0  # rows skipped because every cell was blank
    coercion_fallback_rows: int = 0  # rows with at least one unparseable numeric cell
    header_row: int | None = None  # 0-based header row index (file mode)
    missing_labels: tuple[str, ...] = ()  # mapped labels absent from the header row
    unmapped_labels: tuple[str, ...] = ()  # header labels with no mapping entry


@dataclass(frozen=True)
class LoadResult:
    status: LoadStatus
    records: tuple[CanonicalRecord, ...] = ()
    error_type: LoadErrorType | None = None
    message: str | None = None
    diagnostics: LoadDiagnostics = field(default_factory=LoadDiagnostics)

    @property
    def ok(self) -> bool:
        return self.status is LoadStatus.SUCCESS

    @staticmethod
    def success(records: list[CanonicalRecord], diagnostics: LoadDiagnostics) -> LoadResult:
        return LoadResult(status=LoadStatus.SUCCESS, records=tuple(records), diagnostics=diagnostics)

    @staticmethod
    def failure(
        error_type: LoadErrorType, message: str, diagnostics: LoadDiagnostics | None = None
    ) -> LoadResult:
        return LoadResult(
            status=LoadStatus.ERROR,
            error_type=error_type,
            message=message,
            diagnostics=diagnostics or LoadDiagnostics(),
        )
