#!/usr/bin/env python3
"""Sample upload generator for file-sourced dashboard modules.

Writes one workbook per module shaped like the source-system export:
- Title/metadata block above the table (so the header lands at the configured
  fixed row, or a few rows down for scan-mode modules)
- Header row spelled exactly as the module's mapping expects
- Data rows with random numeric measures and a small pool of text values

Useful for demoing the CLI and for load testing the batch run.
"""
from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Any

import numpy as np
import pandas as pd

from esg_analytics.config.loader import ConfigError, load_module_catalog
from esg_analytics.models.config_models import HEADER_MODE_FIXED, SOURCE_FILE, ModuleConfig

MONTHS = ["April", "May", "June", "July", "August", "September"]
YEARS = ["2023-24", "2024-25"]
TEXT_POOLS: dict[str, list[str]] = {
    "month": MONTHS,
    "financialYear": YEARS,
    "plant": ["Plant A", "Plant B", "Plant C"],
    "department": ["Operations", "Utilities", "Logistics"],
    "dim1": ["North", "South", "East", "West"],
    "dim2": ["Unit 1", "Unit 2", "Unit 3"],
    "dim3": ["Retail", "Wholesale"],
    "type": ["Diesel", "Petrol", "LPG", "R-22"],
    "subCategory": ["Purchased Goods", "Business Travel", "Employee Commute"],
    "complianceInd": ["Y", "N"],
    "actualCompliance": ["Y", "N"],
}


def generate_rows(module: ModuleConfig, rows: int, rng: np.random.Generator) -> list[list[Any]]:
    """Data rows in header order for ``module``."""
    out: list[list[Any]] = []
    for i in range(rows):
        row: list[Any] = []
        for label, key in module.field_mapping.items():
            if key in module.numeric_fields:
                row.append(float(np.round(rng.uniform(0, 5000), 2)))
            elif key in TEXT_POOLS:
                row.append(str(rng.choice(TEXT_POOLS[key])))
            elif key.startswith("sr"):
                row.append(i + 1)
            else:
                row.append(f"{label} {i % 7}")
        out.append(row)
    return out


def create_workbook(output_path: Path, module: ModuleConfig, rows: int, seed: int = 42) -> None:
    rng = np.random.default_rng(seed)
    header = list(module.field_mapping.keys())
    if module.header.mode == HEADER_MODE_FIXED:
        filler_rows = module.header.row_index
    else:
        filler_rows = 3
    title_block = [[f"{module.title} Report"], ["Generated sample"]] + [["-"]] * max(filler_rows - 2, 0)
    sheet = title_block[:filler_rows] + [header] + generate_rows(module, rows, rng)

    output_path.parent.mkdir(parents=True, exist_ok=True)
    with pd.ExcelWriter(output_path, engine="openpyxl") as writer:
        pd.DataFrame(sheet).to_excel(writer, sheet_name="Sheet1", header=False, index=False)
    print(f"Created: {output_path} (module={module.name}, header_row={filler_rows + 1}, rows={rows})")


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Generate sample upload workbooks for file-sourced modules",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # every file-sourced module, 200 rows each
  %(prog)s data/

  # one module, larger file
  %(prog)s data/ --module fugitive --rows 50000
        """,
    )
    parser.add_argument("output_dir", type=Path, help="Directory to write workbooks into")
    parser.add_argument("--module", action="append", help="Module name (repeatable; default: all file modules)")
    parser.add_argument("--rows", type=int, default=200, help="Data rows per workbook (default: 200)")
    parser.add_argument("--seed", type=int, default=42, help="Random seed (default: 42)")
    args = parser.parse_args()

    if args.rows <= 0:
        print("Error: --rows must be positive", file=sys.stderr)
        return 1
    try:
        catalog = load_module_catalog()
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    names = args.module or [n for n, m in catalog.items() if m.source == SOURCE_FILE]
    for name in names:
        module = catalog.get(name)
        if module is None or module.source != SOURCE_FILE:
            print(f"Error: not a file-sourced module: {name}", file=sys.stderr)
            return 1
        create_workbook(args.output_dir / f"{name}.xlsx", module, args.rows, args.seed)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
