from __future__ import annotations

import logging
import re
from typing import Any

from ..models.config_models import ModuleConfig, RecordFilters

"""Record source over the attribute-detail table (PostgreSQL via psycopg2).

One SELECT per module load. Source columns are aliased to canonical field
names; the module selection and the filter values are always bound as
parameters, never spliced into the SQL text.
"""

__all__ = [
    "COLUMN_ALIASES",
    "RecordFetchError",
    "build_select",
    "fetch_module_rows",
]

logger = logging.getLogger(__name__)

# source column -> canonical key
COLUMN_ALIASES: dict[str, str] = {
    "FinancialYear": "financialYear",
    "Month1": "month",
    "Dim1": "businessCode",
    "Dim2": "plant",
    "Dim3": "department",
    "Attribute": "attribute",
    "Parameter": "parameter",
    "SubCategory": "subCategory",
    "Type": "type",
    "Quantity": "quantity",
    "ConvFactor": "convFactor",
    "Value": "value",
    "ConvStandards": "cfStd",
}

# RecordFilters attribute -> source column
FILTER_COLUMNS: dict[str, str] = {
    "year": "FinancialYear",
    "month": "Month1",
    "business_code": "Dim1",
    "plant": "Dim2",
    "department": "Dim3",
}

ORDER_COLUMN = "AttributeId"

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)?$")


class RecordFetchError(Exception):
    """Raised when the record-source query fails."""


def _quote(identifier: str) -> str:
    return ".".join(f'"{part}"' for part in identifier.split("."))


def build_select(
    module: ModuleConfig,
    filters: RecordFilters | None = None,
    table: str = "AttributeDetail",
) -> tuple[str, list[Any]]:
    """Return ``(sql, params)`` for the module's record query."""
    if not _IDENTIFIER_RE.match(table):
        raise RecordFetchError(f"invalid table name: {table!r}")
    filters = filters or RecordFilters()

    columns = [f'ROW_NUMBER() OVER (ORDER BY {_quote(ORDER_COLUMN)}) AS "srNo"']
    columns += [f'{_quote(src)} AS "{alias}"' for src, alias in COLUMN_ALIASES.items()]

    clauses: list[str] = []
    params: list[Any] = []
    if module.query.attribute is not None:
        clauses.append(f"{_quote('Attribute')} = %s")
        params.append(module.query.attribute)
    if module.query.sub_category is not None:
        clauses.append(f"{_quote('SubCategory')} LIKE %s")
        params.append(f"%{module.query.sub_category}%")
    for attr, column in FILTER_COLUMNS.items():
        value = getattr(filters, attr)
        if value is not None:
            clauses.append(f"{_quote(column)} = %s")
            params.append(value)

    sql = f"SELECT {', '.join(columns)} FROM {_quote(table)}"
    if clauses:
        sql += " WHERE " + " AND ".join(clauses)
    sql += f" ORDER BY {_quote(ORDER_COLUMN)}"
    return sql, params


def fetch_module_rows(
    cursor: Any,
    module: ModuleConfig,
    filters: RecordFilters | None = None,
    table: str = "AttributeDetail",
) -> list[dict[str, Any]]:
    """Run the module query and return one dict per row keyed by column alias.

    Raises:
        RecordFetchError: invalid table name or any database error
    """
    sql, params = build_select(module, filters, table)
    logger.debug("module=%s sql=%s params=%s", module.name, sql, params)
    try:
        cursor.execute(sql, params)
        rows = cursor.fetchall()
    except Exception as e:  # psycopg2.Error 以外 (接続断など) も含めて包む
        raise RecordFetchError(f"record query failed for module '{module.name}': {e}") from e
    names = [d[0] for d in (cursor.description or [])]
    return [dict(zip(names, row)) for row in rows]
