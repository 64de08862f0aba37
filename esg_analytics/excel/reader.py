from __future__ import annotations

import io
from collections.abc import Sequence
from pathlib import Path
from typing import IO, Any

import pandas as pd

from ..models.config_models import HEADER_MODE_FIXED, HEADER_MODE_SCAN, HeaderPolicy
from ..services.coercion import is_blank

"""Workbook reader and header-row discovery.

Uploaded exports carry a title/metadata block above the table, so the header
row is located either at a fixed offset or by scanning the first rows for the
module's required labels. Cells are returned exactly as the workbook stores
them (no NA-string conversion); only truly empty cells become None.
"""

__all__ = [
    "HeaderRowNotFoundError",
    "SheetHeaderError",
    "WorkbookReadError",
    "find_header_row",
    "is_blank_row",
    "read_workbook_grid",
]


class WorkbookReadError(Exception):
    """Raised when the uploaded payload cannot be decoded as a workbook."""


class SheetHeaderError(Exception):
    """Raised when the header row cannot be located."""


class HeaderRowNotFoundError(SheetHeaderError):
    """Raised when no scanned row carries every required header label."""


def read_workbook_grid(source: Path | str | bytes | IO[bytes]) -> list[list[Any]]:
    """Read the first worksheet of a workbook as a rectangular grid of raw cells.

    Parameters
    ----------
    source: ファイルパス / bytes / バイナリストリーム
    """
    if isinstance(source, bytes):
        source = io.BytesIO(source)
    try:
        xls = pd.ExcelFile(source)
        if not xls.sheet_names:
            raise WorkbookReadError("workbook has no worksheets")
        # ヘッダなしで生読み, "NA" 等の文字列は NaN に変換しない
        df = xls.parse(xls.sheet_names[0], header=None, dtype=object, keep_default_na=False, na_values=[])
    except WorkbookReadError:
        raise
    except Exception as e:
        raise WorkbookReadError(f"unable to read workbook: {e}") from e
    grid: list[list[Any]] = []
    for row in df.itertuples(index=False, name=None):
        grid.append([None if is_blank(v) else v for v in row])
    return grid


def is_blank_row(row: Sequence[Any] | None) -> bool:
    """True when every cell is None/NaN/''."""
    if not row:
        return True
    return all(is_blank(cell) for cell in row)


def find_header_row(
    grid: Sequence[Sequence[Any]],
    policy: HeaderPolicy,
    required_labels: Sequence[str] = (),
) -> int:
    """Return the 0-based index of the header row.

    fixed: ``policy.row_index`` must exist in the grid.
    scan: first row among ``grid[0:min(scan_rows, len(grid))]`` containing every
    required label as a cell value (exact string match, any order).
    """
    if policy.mode == HEADER_MODE_FIXED:
        if policy.row_index >= len(grid):
            raise SheetHeaderError(
                f"header row {policy.row_index + 1} not present (sheet has {len(grid)} rows)"
            )
        return policy.row_index
    if policy.mode == HEADER_MODE_SCAN:
        required = set(required_labels)
        for idx in range(min(policy.scan_rows, len(grid))):
            cells = {c for c in grid[idx] if isinstance(c, str)}
            if required <= cells:
                return idx
        raise HeaderRowNotFoundError(
            f"header row not found within first {policy.scan_rows} rows "
            f"(required: {sorted(required)})"
        )
    raise SheetHeaderError(f"unknown header mode: {policy.mode}")
