# Shared pytest fixtures
from __future__ import annotations

import tempfile
from collections.abc import Callable
from pathlib import Path

import pandas as pd
import pytest

from esg_analytics.logging.init import reset_logging
from esg_analytics.models.config_models import (
    GroupView,
    HeaderPolicy,
    MeasureSpec,
    ModuleConfig,
)

FILLER_ROWS: list[list[object]] = [
    ["ESG Data Export"],
    ["Company", "Acme Ltd"],
    ["Generated", "2024-05-01"],
    ["-"],
]


@pytest.fixture()
def temp_workdir(monkeypatch) -> Path:
    with tempfile.TemporaryDirectory() as d:
        p = Path(d)
        (p / "config").mkdir()
        (p / "data").mkdir()
        (p / "logs").mkdir()
        monkeypatch.chdir(p)
        yield p


@pytest.fixture(autouse=True)
def _fresh_logging():
    # capsys は stdout を差し替えるので, テスト毎にハンドラを作り直す
    reset_logging()
    yield
    reset_logging()


@pytest.fixture()
def sample_config_yaml() -> str:
    return """source_directory: ./data
output_directory: ./reports
uploads:
  - {pattern: "*fugitive*.xlsx", module: fugitive}
  - {pattern: "*water*.xlsx", module: water-upload}
filters:
  year: All
  plant: Plant A
database:
  host: localhost
  port: 5432
  user: esg
  password: secret
  database: esg
modules:
  water-upload:
    title: Water (upload)
    source: file
    header: {mode: fixed, row: 4}
    mapping:
      Sr.No.: srNo
      Financial Year: financialYear
      Month: month
      Attribute: attribute
      Quantity: quantity
    numeric: [quantity]
    overview:
      sum: {totalQuantity: quantity}
    views:
      - name: byAttribute
        key: attribute
        label: category
        measures: {sum: {totalQuantity: quantity}}
"""


@pytest.fixture()
def write_config(temp_workdir: Path, sample_config_yaml: str) -> Path:
    cfg = temp_workdir / "config" / "dashboard.yml"
    cfg.write_text(sample_config_yaml, encoding="utf-8")
    return cfg


def write_workbook(path: Path, rows: list[list[object]], sheet_name: str = "Sheet1") -> Path:
    """Write ``rows`` verbatim (no header inference) to the first sheet of ``path``."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with pd.ExcelWriter(path, engine="openpyxl") as writer:
        pd.DataFrame(rows).to_excel(writer, sheet_name=sheet_name, header=False, index=False)
    return path


@pytest.fixture()
def make_workbook(temp_workdir: Path) -> Callable[..., Path]:
    def _make(name: str, rows: list[list[object]], directory: Path | None = None) -> Path:
        return write_workbook((directory or temp_workdir / "data") / name, rows)

    return _make


@pytest.fixture()
def water_module() -> ModuleConfig:
    """Five-label upload module with the header at row index 4."""
    return ModuleConfig(
        name="water-upload",
        title="Water (upload)",
        source="file",
        field_mapping={
            "Sr.No.": "srNo",
            "Financial Year": "financialYear",
            "Month": "month",
            "Attribute": "attribute",
            "Quantity": "quantity",
        },
        numeric_fields=frozenset({"quantity"}),
        header=HeaderPolicy(mode="fixed", row_index=4),
        overview=MeasureSpec(sums={"totalQuantity": "quantity"}),
        views=(
            GroupView(
                name="byAttribute",
                key=("attribute",),
                label="category",
                measures=MeasureSpec(sums={"totalQuantity": "quantity"}),
            ),
        ),
    )


@pytest.fixture()
def water_rows() -> list[list[object]]:
    return FILLER_ROWS + [
        ["Sr.No.", "Financial Year", "Month", "Attribute", "Quantity"],
        [1, "2024", "January", "Water", 100],
        [2, "2024", "January", "Water", 200],
    ]
