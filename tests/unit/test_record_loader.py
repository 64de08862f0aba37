from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock

import pytest

from esg_analytics.models.config_models import DerivedField, HeaderPolicy, ModuleConfig
from esg_analytics.models.load_result import LoadErrorType, LoadStatus
from esg_analytics.services.record_loader import (
    MSG_DECODE_FAILED,
    MSG_EMPTY_FILE,
    MSG_FETCH_FAILED,
    MSG_HEADER_NOT_FOUND,
    MSG_NO_API_DATA,
    MSG_NO_VALID_DATA,
    load_from_api,
    load_from_grid,
    load_from_source,
    load_from_workbook,
)

API_FIELDS = ("financialYear", "plant", "department", "quantity", "convFactor", "value")


def _api_module(**kwargs) -> ModuleConfig:
    defaults = dict(
        name="energy",
        title="Energy",
        source="api",
        fields=API_FIELDS,
        numeric_fields=frozenset({"quantity", "convFactor", "value"}),
    )
    defaults.update(kwargs)
    return ModuleConfig(**defaults)


# ---------------------------------------------------------------- API mode

def test_api_mode_coerces_and_defaults():
    rows = [
        {"financialYear": "2024", "plant": " Plant A ", "quantity": "1,000", "convFactor": 2, "value": None},
        {"financialYear": "2024", "quantity": 5, "unexpected": "dropped"},
    ]
    result = load_from_api(rows, _api_module())
    assert result.status is LoadStatus.SUCCESS
    first, second = result.records
    assert first["plant"] == "Plant A"
    assert first["quantity"] == 1000.0
    assert first["value"] == 0
    assert second["department"] == ""
    assert second["convFactor"] == 0
    assert "unexpected" not in second
    assert [r.row_number for r in result.records] == [1, 2]


@pytest.mark.parametrize("rows", [None, []])
def test_api_mode_empty_input_is_error(rows):
    result = load_from_api(rows, _api_module())
    assert result.status is LoadStatus.ERROR
    assert result.error_type is LoadErrorType.INPUT_ABSENT
    assert result.message == MSG_NO_API_DATA
    assert result.records == ()


def test_api_mode_derives_value_only_when_zero():
    module = _api_module(
        derived=(DerivedField(name="value", op="product", fields=("quantity", "convFactor"), when_zero=True),)
    )
    rows = [
        {"quantity": 10, "convFactor": 2.5, "value": 0},
        {"quantity": 10, "convFactor": 2.5, "value": 99},
    ]
    result = load_from_api(rows, module)
    assert [r["value"] for r in result.records] == [25.0, 99]


def test_api_mode_counts_coercion_fallback_rows(caplog):
    rows = [{"quantity": "n/a"}, {"quantity": "12"}, {"quantity": "??", "value": "x"}]
    with caplog.at_level("WARNING"):
        result = load_from_api(rows, _api_module())
    assert result.ok
    assert result.diagnostics.coercion_fallback_rows == 2
    assert result.records[2].coercion_fallbacks == 2
    assert "unparseable" in caplog.text


def test_records_are_independent_and_immutable():
    rows = [{"quantity": 1}]
    a = load_from_api(rows, _api_module()).records[0]
    b = load_from_api(rows, _api_module()).records[0]
    assert a is not b
    with pytest.raises(TypeError):
        a.values["quantity"] = 2  # type: ignore[index]


# --------------------------------------------------------------- file mode

def test_grid_fixed_header(water_module: ModuleConfig, water_rows):
    result = load_from_grid(water_rows, water_module)
    assert result.ok
    assert [r["quantity"] for r in result.records] == [100, 200]
    assert result.records[0]["attribute"] == "Water"
    # ヘッダは 5 行目 -> データは Excel 6 行目から
    assert [r.row_number for r in result.records] == [6, 7]
    assert result.diagnostics.header_row == 4
    assert result.diagnostics.missing_labels == ()


def test_grid_blank_rows_skipped_and_degenerate_rows_kept(water_module: ModuleConfig, water_rows):
    grid = water_rows[:5] + [[None, None, None], [1, "2024", "May", "Water", 5], ["", ""], ["x", None, None, None, None, "unmapped"]]
    result = load_from_grid(grid, water_module)
    assert result.ok
    assert result.diagnostics.blank_rows == 2
    assert len(result.records) == 2
    degenerate = result.records[1]
    assert degenerate["srNo"] == "x"
    assert degenerate["quantity"] == 0
    assert degenerate["attribute"] == ""


def test_grid_short_rows_align_by_index(water_module: ModuleConfig, water_rows):
    grid = water_rows[:5] + [[3, "2024"]]
    record = load_from_grid(grid, water_module).records[0]
    assert record["financialYear"] == "2024"
    assert record["month"] == ""
    assert record["quantity"] == 0


def test_grid_missing_header_label_defaults_field(water_module: ModuleConfig, caplog):
    grid = [["t"]] * 4 + [["Sr.No.", "Month", "Quantity"], [1, "June", "₹1,234.50"]]
    with caplog.at_level("WARNING"):
        result = load_from_grid(grid, water_module)
    assert result.ok
    record = result.records[0]
    assert record["quantity"] == 1234.5
    assert record["attribute"] == ""
    assert set(result.diagnostics.missing_labels) == {"Financial Year", "Attribute"}
    assert "header labels not found" in caplog.text


def test_grid_header_beyond_rows(water_module: ModuleConfig):
    result = load_from_grid([["title"], ["x"]], water_module)
    assert result.error_type is LoadErrorType.HEADER_NOT_FOUND


def test_grid_no_data_rows(water_module: ModuleConfig, water_rows):
    result = load_from_grid(water_rows[:5] + [[None, None]], water_module)
    assert result.status is LoadStatus.ERROR
    assert result.error_type is LoadErrorType.NO_VALID_DATA
    assert result.message == MSG_NO_VALID_DATA
    assert result.diagnostics.blank_rows == 1


def test_grid_scan_header(water_module: ModuleConfig):
    module = ModuleConfig(
        name=water_module.name,
        title=water_module.title,
        source="file",
        field_mapping=water_module.field_mapping,
        numeric_fields=water_module.numeric_fields,
        header=HeaderPolicy(mode="scan", scan_rows=10),
    )
    header = list(water_module.field_mapping)
    grid = [["Report"], [None], ["Sr.No.", "Month"], header, [1, "2024", "May", "Water", 7]]
    result = load_from_grid(grid, module)
    assert result.ok
    assert result.diagnostics.header_row == 3
    assert result.records[0]["quantity"] == 7

    missing = load_from_grid([["Report"], ["Sr.No.", "Month"], [1, 2]], module)
    assert missing.error_type is LoadErrorType.HEADER_NOT_FOUND
    assert missing.message == MSG_HEADER_NOT_FOUND


def test_grid_empty(water_module: ModuleConfig):
    result = load_from_grid([], water_module)
    assert result.error_type is LoadErrorType.INPUT_ABSENT
    assert result.message == MSG_EMPTY_FILE


def test_grid_concat_and_sum_derived():
    module = ModuleConfig(
        name="inclusion",
        title="Inclusion",
        source="file",
        field_mapping={"Month": "month", "Financial Year": "financialYear", "Rural": "rural", "Urban": "urban"},
        numeric_fields=frozenset({"rural", "urban"}),
        header=HeaderPolicy(mode="fixed", row_index=0),
        derived=(
            DerivedField(name="monthYear", op="concat", fields=("month", "financialYear")),
            DerivedField(name="rowTotal", op="sum", fields=("rural", "urban")),
        ),
    )
    grid = [["Month", "Financial Year", "Rural", "Urban"], ["April", "2024-25", "1,000", 250]]
    record = load_from_grid(grid, module).records[0]
    assert record["monthYear"] == "April 2024-25"
    assert record["rowTotal"] == 1250.0


# ------------------------------------------------------- workbook / source

def test_workbook_round_trip(make_workbook, water_module: ModuleConfig, water_rows):
    path = make_workbook("water.xlsx", water_rows)
    from_path = load_from_workbook(path, water_module)
    from_bytes = load_from_workbook(path.read_bytes(), water_module)
    assert from_path.ok and from_bytes.ok
    assert [r.to_dict() for r in from_path.records] == [r.to_dict() for r in from_bytes.records]


def test_workbook_empty_and_undecodable(temp_workdir: Path, water_module: ModuleConfig):
    assert load_from_workbook(b"", water_module).message == MSG_EMPTY_FILE
    assert load_from_workbook(None, water_module).error_type is LoadErrorType.INPUT_ABSENT
    bad = load_from_workbook(b"not a workbook", water_module)
    assert bad.error_type is LoadErrorType.DECODE_FAILED
    assert bad.message == MSG_DECODE_FAILED


def test_source_failure_is_distinct_from_empty_result():
    module = _api_module()
    failing = MagicMock()
    failing.execute.side_effect = RuntimeError("connection reset")
    result = load_from_source(failing, module)
    assert result.error_type is LoadErrorType.FETCH_FAILED
    assert result.message == MSG_FETCH_FAILED

    empty = MagicMock()
    empty.fetchall.return_value = []
    empty.description = [("quantity",)]
    assert load_from_source(empty, module).error_type is LoadErrorType.INPUT_ABSENT


def test_source_rows_are_loaded():
    cursor = MagicMock()
    cursor.fetchall.return_value = [("2024", "Plant A", 10), ("2024", "", 5)]
    cursor.description = [("financialYear",), ("plant",), ("quantity",)]
    result = load_from_source(cursor, _api_module())
    assert result.ok
    assert [r["plant"] for r in result.records] == ["Plant A", ""]
    assert sum(r["quantity"] for r in result.records) == 15
