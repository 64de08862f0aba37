from __future__ import annotations

import logging
from typing import Any

from ..models.analytics import ModuleAnalytics
from ..models.config_models import GroupView, ModuleConfig
from ..models.load_result import LoadResult, LoadStatus
from .aggregator import GroupSummary, summarize, top_n

"""Chart payload construction for one dashboard module.

Turns a ``LoadResult`` into ``ModuleAnalytics``: overview metrics plus one
list of chart rows per configured view, all from a single aggregation pass.
"""

__all__ = [
    "compute_module_analytics",
    "empty_analytics",
]

logger = logging.getLogger(__name__)


def _growth(groups: list[GroupSummary], view: GroupView) -> dict[str, dict[str, float]]:
    """Period-over-period % per group key, in first-seen order."""
    out: dict[str, dict[str, float]] = {}
    previous: GroupSummary | None = None
    for group in groups:
        row: dict[str, float] = {}
        for name, source in view.growth.items():
            prev = previous.measures.get(source, 0) if previous is not None else 0
            row[name] = (group.measures.get(source, 0) - prev) / prev * 100 if prev else 0
        out[group.key] = row
        previous = group
    return out


def _chart_rows(groups: list[GroupSummary], view: GroupView) -> list[dict[str, Any]]:
    growth = _growth(groups, view) if view.growth else {}
    if view.sort_by is not None:
        groups = top_n(groups, view.sort_by, view.top_n)
    elif view.top_n is not None:
        groups = groups[:view.top_n]
    rows: list[dict[str, Any]] = []
    for g in groups:
        row: dict[str, Any] = {view.label: g.key}
        row.update(g.components)
        row.update(g.measures)
        row.update(growth.get(g.key, {}))
        rows.append(row)
    return rows


def empty_analytics(module: ModuleConfig, result: LoadResult | None = None) -> ModuleAnalytics:
    """Payload with every metric at 0 and no series rows (idle or error state)."""
    return ModuleAnalytics(
        module=module.name,
        title=module.title,
        status=result.status if result is not None else LoadStatus.IDLE,
        overview={name: 0 for name in module.overview.output_names},
        series={view.name: [] for view in module.views},
        message=result.message if result is not None else None,
        error_type=result.error_type if result is not None else None,
        diagnostics=result.diagnostics if result is not None else None,
    )


def compute_module_analytics(module: ModuleConfig, result: LoadResult) -> ModuleAnalytics:
    if not result.ok:
        logger.debug("module=%s status=%s message=%s", module.name, result.status.value, result.message)
        return empty_analytics(module, result)

    overview, grouped = summarize(result.records, module.overview, module.views)
    series = {view.name: _chart_rows(grouped[view.name], view) for view in module.views}
    logger.debug(
        "module=%s records=%d series=%s",
        module.name,
        len(result.records),
        {name: len(rows) for name, rows in series.items()},
    )
    return ModuleAnalytics(
        module=module.name,
        title=module.title,
        status=LoadStatus.SUCCESS,
        record_count=len(result.records),
        overview=overview.measures,
        series=series,
        diagnostics=result.diagnostics,
    )
