"""Domain models for the ESG analytics pipeline.

Configuration records describe each dashboard module as data; the remaining
models carry records, load outcomes and chart payloads between the services.
"""

from .analytics import ModuleAnalytics
from .config_models import (
    DashboardConfig,
    DatabaseConfig,
    DerivedField,
    GroupView,
    HeaderPolicy,
    MatchRule,
    MeasureSpec,
    ModuleConfig,
    ModuleQuery,
    RatioRule,
    RecordFilters,
    UploadRoute,
)
from .error_record import ErrorRecord
from .load_result import LoadDiagnostics, LoadErrorType, LoadResult, LoadStatus
from .processing_result import FileStat, ProcessingResult
from .record import CanonicalRecord

__all__ = [
    # Configuration models
    "DashboardConfig",
    "DatabaseConfig",
    "DerivedField",
    "GroupView",
    "HeaderPolicy",
    "MatchRule",
    "MeasureSpec",
    "ModuleConfig",
    "ModuleQuery",
    "RatioRule",
    "RecordFilters",
    "UploadRoute",
    # Pipeline models
    "CanonicalRecord",
    "LoadDiagnostics",
    "LoadErrorType",
    "LoadResult",
    "LoadStatus",
    "ModuleAnalytics",
    # Batch run models
    "ErrorRecord",
    "FileStat",
    "ProcessingResult",
]
