from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any

from .load_result import LoadDiagnostics, LoadErrorType, LoadStatus

"""ModuleAnalytics: the chart-ready payload handed to the presentation layer."""

__all__ = [
    "ModuleAnalytics",
]


@dataclass(frozen=True)
class ModuleAnalytics:
    module: str
    title: str
    status: LoadStatus
    record_count: int = 0
    overview: dict[str, float] = field(default_factory=dict)
    series: dict[str, list[dict[str, Any]]] = field(default_factory=dict)
    message: str | None = None
    error_type: LoadErrorType | None = None
    diagnostics: LoadDiagnostics | None = None

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready form (enums as their values)."""
        return {
            "module": self.module,
            "title": self.title,
            "status": self.status.value,
            "message": self.message,
            "error_type": self.error_type.value if self.error_type else None,
            "record_count": self.record_count,
            "overview": dict(self.overview),
            "series": {name: [dict(r) for r in rows] for name, rows in self.series.items()},
            "diagnostics": asdict(self.diagnostics) if self.diagnostics else None,
        }
