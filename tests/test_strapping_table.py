"""Tests for calibration table validation, import/export and volume lookup."""

from __future__ import annotations

import json
import logging

import pytest
from openpyxl import Workbook

from conftest import make_entry
from strapping_models import (
    CalibrationTable,
    FactorCode,
    FractionAddOnPolicy,
    OutcomeStatus,
)
from strapping_table import (
    EXPORT_HEADER,
    add_entry,
    export_fractions_to_csv,
    export_to_csv,
    import_fractions_from_csv,
    import_from_csv,
    import_from_excel,
    lookup_volume,
    remove_entry,
    sort_entries,
    table_from_json,
    table_to_json,
    to_dataframe,
    update_entry,
    validate,
    volume_for_factor,
)


# ---------- Import ----------
def test_import_minimal_csv() -> None:
    """Header + two rows gives two entries and the header's factor code."""
    outcome = import_from_csv("PIES,PULG,260X1\n0,0,0\n1,0,100", "tank-1", "TK-01")
    assert outcome.ok
    table = outcome.value
    assert len(table.entries) == 2
    assert table.default_factor_code == "260X1"
    assert table.entries[1].volume(FactorCode.F260X1) == 100
    assert table.entries[1].sequence_number == 1
    assert table.created_by == "imported"
    assert table.calibration_agency == "Unknown"
    assert table.certificate_number == "N/A"
    assert table.notes == "Imported from CSV with factor 260X1"
    assert len(table.fractions) == 16


def test_import_quoted_thousands_and_bad_rows() -> None:
    """Grouped numbers are read, unparsable rows are skipped."""
    text = 'PIES,PULG.,135X1\n0,0,0\n1,0,"1,169"\nbad,row,x\n2,0,"2,340"\n'
    outcome = import_from_csv(text, "tank-2", "TK-02")
    assert outcome.ok
    table = outcome.value
    assert [(e.feet, e.inches) for e in table.entries] == [(0, 0), (1, 0), (2, 0)]
    assert table.entries[1].volume(FactorCode.F165X1) == 1169
    assert table.entries[2].volume(FactorCode.F165X1) == 2340
    assert table.entries[1].volume(FactorCode.F260X1) == 0


def test_import_spaced_quoted_rows() -> None:
    """Spaces after the delimiter do not hide quoted, grouped volumes."""
    text = 'PIES, PULG., 260X1\n0, 0, 0\n1, 0, "1,169"\n2, 0, "2,340"\n'
    table = import_from_csv(text, "tank-3", "TK-03").unwrap()
    assert [(e.feet, e.inches) for e in table.entries] == [(0, 0), (1, 0), (2, 0)]
    assert table.default_factor_code == "260X1"
    assert table.entries[1].volume(FactorCode.F260X1) == 1169
    assert table.entries[2].volume(FactorCode.F260X1) == 2340


def test_import_english_headers() -> None:
    outcome = import_from_csv("FEET,INCHES,470X1\n0,0,0\n0,6,55", "t", "T")
    assert outcome.ok
    assert outcome.value.entries[1].volume(FactorCode.F470X1) == 55


def test_import_unmatched_factor_header_keeps_rows() -> None:
    """An unknown volume header still imports, with every column at zero."""
    outcome = import_from_csv("PIES,PULG,999X9\n0,0,5\n1,0,10", "t", "T")
    assert outcome.ok
    assert outcome.value.default_factor_code == "999X9"
    assert all(e.volume(code) == 0 for e in outcome.value.entries for code in FactorCode)


@pytest.mark.parametrize(
    "text",
    [
        "",
        "A,B,C\n1,2,3",
        "PIES,PULG\n0,0\n1,0",
        "PIES,PULG,260X1\na,b,c",
    ],
)
def test_import_failures_are_parse_errors(text: str) -> None:
    outcome = import_from_csv(text, "t", "T")
    assert outcome.status is OutcomeStatus.PARSE_ERROR
    assert outcome.errors


def test_import_from_excel(tmp_path) -> None:
    """XLSX certificates follow the CSV rules."""
    workbook = Workbook()
    sheet = workbook.active
    sheet.append(["PIES", "PULG", "260X1"])
    sheet.append([0, 0, 0])
    sheet.append([1, 0, 100])
    path = tmp_path / "certificate.xlsx"
    workbook.save(path)

    outcome = import_from_excel(path, "tank-1", "TK-01")
    assert outcome.ok
    assert len(outcome.value.entries) == 2
    assert outcome.value.entries[1].volume(FactorCode.F260X1) == 100
    assert outcome.value.notes == "Imported from XLSX with factor 260X1"


def test_import_fractions() -> None:
    fractions = import_fractions_from_csv("fraction,barrels\n0,0\n1/8,20\n1/4,40")
    assert [f.label for f in fractions] == ["0", "1/8", "1/4"]
    assert [f.decimal for f in fractions] == [0.0, 0.125, 0.25]
    assert fractions[2].volume_add_on == 40


def test_import_fractions_falls_back_to_defaults() -> None:
    assert len(import_fractions_from_csv("")) == 16
    assert len(import_fractions_from_csv("fraction,barrels\n")) == 16


# ---------- Validation ----------
def test_validate_accepts_good_table(two_point_table: CalibrationTable) -> None:
    result = validate(two_point_table)
    assert result.valid
    assert result.errors == []


def test_validate_reports_ordering(two_point_table: CalibrationTable) -> None:
    """Out-of-order entries are reported, not raised."""
    two_point_table.entries = [make_entry(1, 0, 0, 100.0), make_entry(0, 6, 1, 50.0)]
    result = validate(two_point_table)
    assert not result.valid
    assert any("not in ascending order" in e for e in result.errors)


def test_validate_collects_every_problem(two_point_table: CalibrationTable) -> None:
    two_point_table.tank_id = ""
    two_point_table.entries.append(make_entry(2, 14, 2, -5.0))
    two_point_table.calibration_date = None
    result = validate(two_point_table)
    assert not result.valid
    assert "Tank ID is required" in result.errors
    assert "Entry 2 has inches outside 0-11" in result.errors
    assert "Entry 2 has negative volume for vol260X1" in result.errors
    assert "Calibration date is required" in result.errors


def test_validate_empty_table() -> None:
    result = validate(CalibrationTable(tank_id="t", tank_tag="T", fractions=[]))
    assert "Calibration table must have at least one entry" in result.errors
    assert "Fraction table is required" in result.errors


# ---------- Lookup ----------
def test_exact_match_lookup(two_point_table: CalibrationTable) -> None:
    """One foot lands exactly on the 1' 0" row."""
    outcome = lookup_volume(two_point_table, 0.3048)
    assert outcome.ok
    result = outcome.value
    assert not result.interpolated
    assert result.volume_barrels == pytest.approx(100)
    assert result.volume_m3 == pytest.approx(100 * 0.158987)
    assert result.fraction_add_on == 0
    assert (result.level_feet, result.level_inches) == (1, 0)


def test_interpolation_is_monotonic(two_point_table: CalibrationTable) -> None:
    """Without fraction add-ons, volume rises steadily from 0 to 100."""
    levels = [i * 0.3048 / 20 for i in range(21)]
    volumes = [
        lookup_volume(two_point_table, level, fraction_policy=FractionAddOnPolicy.NEVER).unwrap().volume_barrels
        for level in levels
    ]
    assert volumes == sorted(volumes)
    assert volumes[0] == pytest.approx(0)
    assert volumes[-1] == pytest.approx(100)
    assert all(0 <= v <= 100 + 1e-9 for v in volumes)


def test_interpolated_lookup_with_fraction_policies(two_point_table: CalibrationTable) -> None:
    """0.1 m = 3.937008": interpolate, then add the 15/16 row on ALWAYS."""
    always = lookup_volume(two_point_table, 0.1).unwrap()
    assert always.interpolated
    assert always.lower_entry.feet == 0 and always.upper_entry.feet == 1
    assert always.interpolation_factor == pytest.approx(0.328084)
    assert always.fraction_add_on == 157
    assert always.volume_barrels == pytest.approx(32.8084 + 157)

    exact_only = lookup_volume(two_point_table, 0.1, fraction_policy=FractionAddOnPolicy.EXACT_MATCH_ONLY).unwrap()
    assert exact_only.fraction_add_on == 0
    assert exact_only.volume_barrels == pytest.approx(32.8084)


def test_lookup_above_table_is_out_of_range(two_point_table: CalibrationTable) -> None:
    outcome = lookup_volume(two_point_table, 0.5)
    assert outcome.status is OutcomeStatus.OUT_OF_RANGE
    with pytest.raises(ValueError):
        outcome.unwrap()


@pytest.mark.parametrize("level", [1e307, -1e307, 1e12, -5.0])
def test_lookup_far_outside_table_is_out_of_range(two_point_table: CalibrationTable, level: float) -> None:
    """Huge finite levels are rejected before being split into feet and inches."""
    assert lookup_volume(two_point_table, level).status is OutcomeStatus.OUT_OF_RANGE


def test_lookup_malformed_inputs(two_point_table: CalibrationTable) -> None:
    empty = CalibrationTable(tank_id="t", tank_tag="T")
    assert lookup_volume(empty, 0.1).status is OutcomeStatus.MALFORMED
    assert lookup_volume(two_point_table, float("nan")).status is OutcomeStatus.MALFORMED
    assert lookup_volume(two_point_table, "high").status is OutcomeStatus.MALFORMED


def test_factor_code_selection(two_point_table: CalibrationTable) -> None:
    """Known codes read their own column; unknown codes use the fallback chain."""
    assert lookup_volume(two_point_table, 0.3048, "470X1").unwrap().volume_barrels == 0
    assert lookup_volume(two_point_table, 0.3048, "XYZ").unwrap().volume_barrels == pytest.approx(100)
    assert lookup_volume(two_point_table, 0.3048, FactorCode.F260X1).unwrap().factor_code is FactorCode.F260X1


def test_fallback_chain_order() -> None:
    """260X1 first, then 470X1, then 260X4; the first non-zero wins."""
    entry = make_entry(1, 0, 0, 50.0, FactorCode.F470X1)
    entry.volume_by_factor[FactorCode.F260X4] = 70.0
    assert volume_for_factor(entry, None) == 50.0
    entry.volume_by_factor[FactorCode.F260X1] = 30.0
    assert volume_for_factor(entry, None) == 30.0
    assert volume_for_factor(make_entry(1, 0, 0, 0.0), None) == 0.0


# ---------- Export / JSON ----------
def test_export_to_csv(two_point_table: CalibrationTable) -> None:
    two_point_table.entries[1].volume_by_factor[FactorCode.F165X1] = 12.5
    lines = export_to_csv(two_point_table).split("\n")
    assert lines[0] == EXPORT_HEADER
    assert EXPORT_HEADER == "feet,inches,sequenceNumber,vol470X1,vol260X4,vol260X3,vol260X2,vol260X1,vol165X1"
    assert lines[1] == "0,0,0,0,0,0,0,0,0"
    assert lines[2] == "1,0,1,0,0,0,0,100,12.5"


def test_export_fractions_round_trip(two_point_table: CalibrationTable) -> None:
    fractions = import_fractions_from_csv(export_fractions_to_csv(two_point_table))
    assert fractions == two_point_table.fractions


def test_json_layout(two_point_table: CalibrationTable) -> None:
    """Stored blob keeps the camelCase layout."""
    data = json.loads(table_to_json(two_point_table))
    assert data["tankTag"] == "TK-01"
    assert data["defaultFactorCode"] == "260X1"
    assert data["entries"][1]["medEq"] == 1
    assert data["entries"][1]["vol260X1"] == 100
    assert data["fractionTable"][1] == {"fraction": "1/16", "fractionDecimal": 0.0625, "barrels": 10.0}

    restored = table_from_json(table_to_json(two_point_table))
    assert restored.tank_id == two_point_table.tank_id
    assert restored.calibration_date == two_point_table.calibration_date
    assert restored.entries[1].volume(FactorCode.F260X1) == 100
    assert validate(restored).valid


@pytest.mark.parametrize("text", ["not json", "[]", '{"entries": [{"feet": 1}]}'])
def test_json_rejects_malformed(text: str) -> None:
    with pytest.raises(ValueError):
        table_from_json(text)


def test_to_dataframe(two_point_table: CalibrationTable) -> None:
    frame = to_dataframe(two_point_table)
    assert len(frame) == 2
    assert list(frame["heightInches"]) == [0, 12]
    assert frame["vol260X1"].iloc[1] == 100


# ---------- Editing ----------
def test_editing_keeps_order_and_sequence(two_point_table: CalibrationTable) -> None:
    before = two_point_table.modified_at
    entry = add_entry(two_point_table, 0, 6, 50.0)
    assert two_point_table.entries[1] is entry
    assert [e.sequence_number for e in two_point_table.entries] == [0, 1, 2]
    assert entry.volume(FactorCode.F260X1) == 50
    assert two_point_table.modified_at >= before

    removed = remove_entry(two_point_table, 0)
    assert (removed.feet, removed.inches) == (0, 0)
    assert [e.sequence_number for e in two_point_table.entries] == [0, 1]


def test_sort_entries(two_point_table: CalibrationTable) -> None:
    two_point_table.entries.reverse()
    assert not validate(two_point_table).valid
    sort_entries(two_point_table)
    assert [(e.feet, e.sequence_number) for e in two_point_table.entries] == [(0, 0), (1, 1)]
    assert validate(two_point_table).valid


def test_update_entry(two_point_table: CalibrationTable) -> None:
    """Volumes land in the requested column, or the table's default one."""
    update_entry(two_point_table, 1, volume=120.0)
    assert two_point_table.entries[1].volume(FactorCode.F260X1) == 120
    update_entry(two_point_table, 1, inches=3, volume=80.0, factor_code="470X1")
    assert two_point_table.entries[1].inches == 3
    assert two_point_table.entries[1].volume(FactorCode.F470X1) == 80
    assert two_point_table.entries[1].volume(FactorCode.F260X1) == 120


def test_out_of_range_is_logged(two_point_table: CalibrationTable, caplog) -> None:
    with caplog.at_level(logging.WARNING, logger="TankGauging"):
        lookup_volume(two_point_table, 0.5)
    assert any("OUT_OF_RANGE" in r.getMessage() for r in caplog.records)
