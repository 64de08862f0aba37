from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import IO, Any

from ..db.record_source import RecordFetchError, fetch_module_rows
from ..excel.reader import (
    HeaderRowNotFoundError,
    SheetHeaderError,
    WorkbookReadError,
    find_header_row,
    is_blank_row,
    read_workbook_grid,
)
from ..models.config_models import DerivedField, ModuleConfig, RecordFilters
from ..models.load_result import LoadDiagnostics, LoadErrorType, LoadResult
from ..models.record import CanonicalRecord
from .field_mapper import FieldMapper

"""Tabular record loader.

Two entry modes produce the same ``LoadResult``:

- API mode: flat objects already keyed by canonical names (the record source
  aliases its columns); numeric fields are coerced, missing fields defaulted.
- File mode: a raw worksheet grid; the header row is located per the module's
  ``HeaderPolicy``, blank rows are skipped, and each cell is aligned to its
  header label by column index.

Neither mode raises: every failure becomes an error result with a static
user-facing message.
"""

__all__ = [
    "MSG_DECODE_FAILED",
    "MSG_EMPTY_FILE",
    "MSG_FETCH_FAILED",
    "MSG_HEADER_NOT_FOUND",
    "MSG_NO_API_DATA",
    "MSG_NO_VALID_DATA",
    "load_from_api",
    "load_from_grid",
    "load_from_source",
    "load_from_workbook",
]

logger = logging.getLogger(__name__)

MSG_NO_API_DATA = "No data found from API."
MSG_FETCH_FAILED = "Unable to fetch records from the data source."
MSG_EMPTY_FILE = "Empty file content"
MSG_DECODE_FAILED = "Unable to read the uploaded workbook."
MSG_HEADER_NOT_FOUND = "Header row not found with required fields"
MSG_HEADER_MISSING = "File does not contain expected header and data rows"
MSG_NO_VALID_DATA = "No valid data found"


def _apply_derived(values: dict[str, Any], derived: Sequence[DerivedField]) -> None:
    for d in derived:
        if d.op == "product":
            if d.when_zero and values.get(d.name):
                continue
            result: float = 1
            for f in d.fields:
                v = values.get(f, 0)
                result *= v if isinstance(v, (int, float)) else 0
            values[d.name] = result
        elif d.op == "sum":
            total: float = 0
            for f in d.fields:
                v = values.get(f, 0)
                total += v if isinstance(v, (int, float)) else 0
            values[d.name] = total
        elif d.op == "concat":
            values[d.name] = d.separator.join(str(values.get(f, "")) for f in d.fields)
        else:  # pragma: no cover - rejected by the config schema
            raise ValueError(f"unknown derived op: {d.op}")


def load_from_api(rows: Sequence[Mapping[str, Any]] | None, module: ModuleConfig) -> LoadResult:
    """Build canonical records from record-source objects."""
    if not rows:
        logger.warning("module=%s no records returned by source", module.name)
        return LoadResult.failure(LoadErrorType.INPUT_ABSENT, MSG_NO_API_DATA)

    mapper = FieldMapper({}, module.numeric_fields, module.strip_chars)
    fields = module.canonical_fields
    records: list[CanonicalRecord] = []
    fallback_rows = 0
    for position, raw in enumerate(rows, start=1):
        source = raw if isinstance(raw, Mapping) else {}
        values: dict[str, Any] = {}
        fallbacks = 0
        for key in fields:
            if key not in source:
                values[key] = mapper.default(key)
                continue
            value, fell_back = mapper.coerce(key, source[key])
            values[key] = value
            fallbacks += fell_back
        _apply_derived(values, module.derived)
        if fallbacks:
            fallback_rows += 1
        records.append(CanonicalRecord(row_number=position, values=values, coercion_fallbacks=fallbacks))

    diagnostics = LoadDiagnostics(data_rows=len(records), coercion_fallback_rows=fallback_rows)
    _log_diagnostics(module, diagnostics)
    return LoadResult.success(records, diagnostics)


def load_from_grid(grid: Sequence[Sequence[Any]] | None, module: ModuleConfig) -> LoadResult:
    """Build canonical records from a raw worksheet grid."""
    if not grid:
        return LoadResult.failure(LoadErrorType.INPUT_ABSENT, MSG_EMPTY_FILE)

    try:
        header_index = find_header_row(grid, module.header, module.required_labels)
    except HeaderRowNotFoundError as e:
        logger.warning("module=%s %s", module.name, e)
        return LoadResult.failure(LoadErrorType.HEADER_NOT_FOUND, MSG_HEADER_NOT_FOUND)
    except SheetHeaderError as e:
        logger.warning("module=%s %s", module.name, e)
        return LoadResult.failure(LoadErrorType.HEADER_NOT_FOUND, MSG_HEADER_MISSING)

    header = list(grid[header_index])
    mapper = FieldMapper.for_module(module)
    columns = mapper.column_keys(header)
    fields = module.canonical_fields

    records: list[CanonicalRecord] = []
    blank_rows = 0
    fallback_rows = 0
    for offset, row in enumerate(grid[header_index + 1:]):
        if is_blank_row(row):
            blank_rows += 1
            continue
        values = {key: mapper.default(key) for key in fields}
        fallbacks = 0
        for idx, key in columns:
            cell = row[idx] if idx < len(row) else None
            value, fell_back = mapper.coerce(key, cell)
            values[key] = value
            fallbacks += fell_back
        _apply_derived(values, module.derived)
        if fallbacks:
            fallback_rows += 1
        # Excel 行番号 (1-based): ヘッダ行の次から
        records.append(
            CanonicalRecord(row_number=header_index + 2 + offset, values=values, coercion_fallbacks=fallbacks)
        )

    diagnostics = LoadDiagnostics(
        data_rows=len(records),
        blank_rows=blank_rows,
        coercion_fallback_rows=fallback_rows,
        header_row=header_index,
        missing_labels=tuple(mapper.missing_labels(header)),
        unmapped_labels=tuple(mapper.unmapped_labels(header)),
    )
    if not records:
        logger.warning("module=%s no data rows after header row %d", module.name, header_index + 1)
        return LoadResult.failure(LoadErrorType.NO_VALID_DATA, MSG_NO_VALID_DATA, diagnostics)
    _log_diagnostics(module, diagnostics)
    return LoadResult.success(records, diagnostics)


def load_from_workbook(source: Path | str | bytes | IO[bytes] | None, module: ModuleConfig) -> LoadResult:
    """Decode an uploaded workbook (first sheet) and load it in file mode."""
    if source is None or (isinstance(source, bytes) and not source):
        return LoadResult.failure(LoadErrorType.INPUT_ABSENT, MSG_EMPTY_FILE)
    try:
        grid = read_workbook_grid(source)
    except WorkbookReadError as e:
        logger.warning("module=%s %s", module.name, e)
        return LoadResult.failure(LoadErrorType.DECODE_FAILED, MSG_DECODE_FAILED)
    return load_from_grid(grid, module)


def _log_diagnostics(module: ModuleConfig, diagnostics: LoadDiagnostics) -> None:
    logger.debug(
        "module=%s records=%d blank_rows=%d header_row=%s",
        module.name,
        diagnostics.data_rows,
        diagnostics.blank_rows,
        diagnostics.header_row,
    )
    if diagnostics.coercion_fallback_rows:
        logger.warning(
            "module=%s %d row(s) had unparseable numeric cells (counted as 0)",
            module.name,
            diagnostics.coercion_fallback_rows,
        )
    if diagnostics.missing_labels:
        logger.warning(
            "module=%s header labels not found, fields defaulted: %s",
            module.name,
            ", ".join(diagnostics.missing_labels),
        )


def load_from_source(
    cursor: Any,
    module: ModuleConfig,
    filters: RecordFilters | None = None,
    table: str = "AttributeDetail",
) -> LoadResult:
    """Query the record source and load the rows in API mode.

    A failed query is reported as FETCH_FAILED so an outage is not mistaken
    for an empty filter result (INPUT_ABSENT).
    """
    try:
        rows = fetch_module_rows(cursor, module, filters, table)
    except RecordFetchError as e:
        logger.error("module=%s %s", module.name, e)
        return LoadResult.failure(LoadErrorType.FETCH_FAILED, MSG_FETCH_FAILED)
    return load_from_api(rows, module)
