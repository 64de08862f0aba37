from __future__ import annotations

import re
from pathlib import Path

import pandas as pd

from ..models.analytics import ModuleAnalytics

"""Report workbook export.

Writes the module payload as an ``.xlsx`` report: an ``Overview`` sheet with
one row per metric followed by one sheet per series.
"""

__all__ = [
    "export_report",
    "sheet_title",
]

# Excel のシート名制約: 31 文字, []:*?/\ 不可
_MAX_SHEET_TITLE = 31
_INVALID_SHEET_CHARS = re.compile(r"[\[\]:*?/\\]")


def sheet_title(name: str, used: set[str]) -> str:
    """Excel-safe, unique sheet title for ``name``."""
    base = _INVALID_SHEET_CHARS.sub("_", name)[:_MAX_SHEET_TITLE] or "Sheet"
    title = base
    n = 2
    while title.lower() in used:
        suffix = f"_{n}"
        title = base[:_MAX_SHEET_TITLE - len(suffix)] + suffix
        n += 1
    used.add(title.lower())
    return title


def export_report(analytics: ModuleAnalytics, path: Path) -> Path:
    """Write ``analytics`` to ``path`` and return the path written."""
    path.parent.mkdir(parents=True, exist_ok=True)
    overview = pd.DataFrame(
        [{"metric": k, "value": v} for k, v in analytics.overview.items()],
        columns=["metric", "value"],
    )
    used: set[str] = set()
    with pd.ExcelWriter(path, engine="openpyxl") as writer:
        overview.to_excel(writer, sheet_name=sheet_title("Overview", used), index=False)
        for name, rows in analytics.series.items():
            # 空シリーズでもシートは作る (列なし)
            pd.DataFrame(rows).to_excel(writer, sheet_name=sheet_title(name, used), index=False)
    return path
