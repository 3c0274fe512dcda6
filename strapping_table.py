# strapping_table.py
"""
Calibration (strapping) table operations.

- validate a table's structural invariants (all problems reported together)
- import from the gauging company's CSV/XLSX certificates, export to CSV
- JSON codec for the persisted ``strappingTable`` attribute
- volume lookup with linear interpolation between tabulated heights
- small editing helpers used by the tank configuration editor

Lookups return an ``Outcome`` rather than raising: a level outside the
table is an ordinary condition for the telemetry loop.
"""

from __future__ import annotations

import bisect
import io
import json
import math
import re
from typing import Iterable, List, Optional, Sequence, Union

import pandas as pd

from logger import get_logger, log_outcome
from strapping_models import (
    FACTOR_CODES,
    FACTOR_FALLBACK_CHAIN,
    CalibrationEntry,
    CalibrationTable,
    FactorCode,
    FractionAddOnPolicy,
    FractionEntry,
    LookupResult,
    Outcome,
    ValidationResult,
    default_fractions,
)
from timezone_utils import utc_now
from unit_conversion import BBL_TO_M3, FT_TO_IN, M_TO_FT, decompose_feet

log = get_logger("strapping_table")

# English and Spanish certificate headers ("PIES,PULG.,135X1")
FEET_HEADER = re.compile(r"PIES|FEET|FT", re.IGNORECASE)
INCH_HEADER = re.compile(r"PULG|INCH|IN", re.IGNORECASE)
FRACTION_TEXT = re.compile(r"(\d+)/(\d+)")

EXPORT_HEADER = "feet,inches,sequenceNumber," + ",".join(code.column for code in FACTOR_CODES)
FRACTION_EXPORT_HEADER = "fraction,barrels"

FactorCodeLike = Union[FactorCode, str, None]


# ---------- Validation ----------
def validate(table: CalibrationTable) -> ValidationResult:
    """Check every table invariant and return all violations found."""
    errors: List[str] = []

    if not table.tank_id:
        errors.append("Tank ID is required")
    if not table.tank_tag:
        errors.append("Tank Tag is required")
    if not table.version:
        errors.append("Version is required")

    entries = table.entries or []
    if not entries:
        errors.append("Calibration table must have at least one entry")
    else:
        for i, entry in enumerate(entries):
            if entry.feet < 0:
                errors.append(f"Entry {i} has negative feet")
            if not 0 <= entry.inches < 12:
                errors.append(f"Entry {i} has inches outside 0-11")
            if i > 0 and entry.height_inches <= entries[i - 1].height_inches:
                errors.append(f"Entry {i} is not in ascending order")

        # Zero means "no data for this column"; decreasing volumes are tolerated
        for code in FACTOR_CODES:
            for i, entry in enumerate(entries):
                volume = entry.volume(code)
                if volume == 0:
                    continue
                if not math.isfinite(volume):
                    errors.append(f"Entry {i} has invalid volume for {code.column}")
                elif volume < 0:
                    errors.append(f"Entry {i} has negative volume for {code.column}")

    fractions = table.fractions or []
    if not fractions:
        errors.append("Fraction table is required")
    else:
        for i, fraction in enumerate(fractions):
            if not 0 <= fraction.decimal < 1:
                errors.append(f"Fraction entry {i} is outside [0, 1)")
            if fraction.volume_add_on < 0:
                errors.append(f"Fraction entry {i} has negative volume")
            if i > 0 and fraction.decimal <= fractions[i - 1].decimal:
                errors.append(f"Fraction entry {i} is not in ascending order")

    if not table.calibration_standard:
        errors.append("Calibration standard is required")
    if table.calibration_date is None:
        errors.append("Calibration date is required")

    return ValidationResult(valid=not errors, errors=errors)


# ---------- Import ----------
def _cell(value) -> str:
    if value is None or (not isinstance(value, str) and pd.isna(value)):
        return ""
    return str(value).strip()


def _numeric(series: pd.Series) -> pd.Series:
    """Coerce certificate numbers ("1,169", quoted) to floats; bad cells -> NaN."""
    cleaned = (
        series.astype(str)
        .str.replace(",", "", regex=False)
        .str.replace('"', "", regex=False)
        .str.strip()
    )
    return pd.to_numeric(cleaned, errors="coerce")


def _find_column(header: Sequence[str], pattern: re.Pattern) -> Optional[int]:
    for idx, name in enumerate(header):
        if pattern.search(name):
            return idx
    return None


def _read_text_frame(text: str) -> pd.DataFrame:
    return pd.read_csv(
        io.StringIO(text or ""),
        header=None,
        dtype=str,
        keep_default_na=False,
        skipinitialspace=True,
        skip_blank_lines=True,
        on_bad_lines="skip",
    )


def _table_from_frame(frame: pd.DataFrame, tank_id: str, tank_tag: str, source: str) -> Outcome:
    frame = frame.dropna(how="all")
    if len(frame.index) < 2:
        return Outcome.parse_error(f"{source} file is empty or has no data rows")

    header = [_cell(v).upper() for v in frame.iloc[0].tolist()]
    feet_col = _find_column(header, FEET_HEADER)
    inch_col = _find_column(header, INCH_HEADER)
    if feet_col is None or inch_col is None:
        return Outcome.parse_error(f"{source} must have PIES/FEET and PULG/INCHES columns")

    # Single volume column right after the inches; its header is the factor code
    volume_col = next((i for i, name in enumerate(header) if i > inch_col and name), None)
    if volume_col is None:
        return Outcome.parse_error(f"{source} must have a volume column (e.g., 135X1, 260X1)")

    factor_code = header[volume_col]
    slot = FactorCode.from_header(factor_code)
    if slot is None:
        log.warning(f"Factor code '{factor_code}' matches no volume column; volumes will read as 0")

    data = frame.iloc[1:]
    columns = frame.columns
    feet = _numeric(data[columns[feet_col]])
    inches = _numeric(data[columns[inch_col]])
    volumes = _numeric(data[columns[volume_col]])

    entries: List[CalibrationEntry] = []
    skipped = 0
    for ft, inch, vol in zip(feet, inches, volumes):
        if not all(math.isfinite(x) for x in (ft, inch, vol)):
            skipped += 1
            continue
        if not (float(ft).is_integer() and float(inch).is_integer()):
            skipped += 1
            continue
        by_factor = {code: 0.0 for code in FACTOR_CODES}
        if slot is not None:
            by_factor[slot] = float(vol)
        entries.append(CalibrationEntry(int(ft), int(inch), len(entries), by_factor))

    if skipped:
        log.debug(f"Skipped {skipped} unparsable row(s) while importing {source} for {tank_tag}")
    if not entries:
        return Outcome.parse_error(f"No valid entries found in {source}")

    now = utc_now()
    table = CalibrationTable(
        tank_id=tank_id,
        tank_tag=tank_tag,
        entries=entries,
        fractions=default_fractions(),
        version="1.0",
        created_at=now,
        modified_at=now,
        created_by="imported",
        default_factor_code=factor_code,
        calibration_standard="API MPMS Chapter 2.2A",
        calibration_date=now,
        calibration_agency="Unknown",
        certificate_number="N/A",
        notes=f"Imported from {source} with factor {factor_code}",
    )
    log.info(f"Imported {len(entries)} calibration rows for tank {tank_tag} (factor {factor_code})")
    return Outcome.success(table)


def import_from_csv(text: str, tank_id: str, tank_tag: str) -> Outcome:
    """
    Parse a certificate CSV such as::

        PIES,PULG.,260X1
        0,0,0
        1,0,"1,169"

    Rows with any unparsable field are skipped; the import only fails when
    no row survives. The table still needs ``validate`` afterwards.
    """
    try:
        frame = _read_text_frame(text)
    except (pd.errors.EmptyDataError, pd.errors.ParserError) as ex:
        return Outcome.parse_error(f"Error parsing CSV: {ex}")
    return _table_from_frame(frame, tank_id, tank_tag, "CSV")


def import_from_excel(source, tank_id: str, tank_tag: str, sheet_name=0) -> Outcome:
    """Same rules as import_from_csv, reading one sheet of an XLSX file."""
    try:
        frame = pd.read_excel(source, sheet_name=sheet_name, header=None, dtype=str)
    except (ValueError, OSError, ImportError) as ex:
        return Outcome.parse_error(f"Error reading XLSX: {ex}")
    return _table_from_frame(frame, tank_id, tank_tag, "XLSX")


def import_fractions_from_csv(text: str) -> List[FractionEntry]:
    """Parse ``label,value`` fraction rows; falls back to the default table."""
    try:
        frame = _read_text_frame(text)
    except (pd.errors.EmptyDataError, pd.errors.ParserError):
        log.warning("Fraction CSV could not be parsed; using default fraction table")
        return default_fractions()

    if len(frame.index) < 2 or len(frame.columns) < 2:
        return default_fractions()

    fractions: List[FractionEntry] = []
    for _, row in frame.iloc[1:].iterrows():
        label = _cell(row.iloc[0])
        raw_value = _cell(row.iloc[1])
        if not label or not raw_value:
            continue
        try:
            barrels = float(raw_value.replace(",", "").replace('"', ""))
        except ValueError:
            continue
        match = FRACTION_TEXT.search(label)
        decimal = 0.0
        if match:
            if int(match.group(2)) == 0:
                continue
            decimal = int(match.group(1)) / int(match.group(2))
        fractions.append(FractionEntry(label, decimal, barrels))

    return fractions or default_fractions()


# ---------- Export ----------
def _fmt(value: float) -> str:
    number = float(value)
    if number.is_integer():
        return str(int(number))
    return repr(number)


def export_to_csv(table: CalibrationTable) -> str:
    rows = [EXPORT_HEADER]
    for entry in table.entries:
        cells = [str(entry.feet), str(entry.inches), str(entry.sequence_number)]
        cells.extend(_fmt(entry.volume(code)) for code in FACTOR_CODES)
        rows.append(",".join(cells))
    return "\n".join(rows)


def export_fractions_to_csv(table: CalibrationTable) -> str:
    rows = [FRACTION_EXPORT_HEADER]
    rows.extend(f"{f.label},{_fmt(f.volume_add_on)}" for f in table.fractions)
    return "\n".join(rows)


def to_dataframe(table: CalibrationTable) -> pd.DataFrame:
    """Entries as a DataFrame for previews; one column per factor code."""
    records = []
    for entry in table.entries:
        record = {
            "feet": entry.feet,
            "inches": entry.inches,
            "sequenceNumber": entry.sequence_number,
            "heightInches": entry.height_inches,
        }
        for code in FACTOR_CODES:
            record[code.column] = entry.volume(code)
        records.append(record)
    columns = ["feet", "inches", "sequenceNumber", "heightInches"] + [c.column for c in FACTOR_CODES]
    return pd.DataFrame(records, columns=columns)


# ---------- JSON (persisted attribute) ----------
def table_to_json(table: CalibrationTable) -> str:
    return json.dumps(table.to_dict(), ensure_ascii=False)


def table_from_json(text: str) -> CalibrationTable:
    """Decode a stored blob; raises ValueError when it is not a usable table."""
    data = json.loads(text)
    if not isinstance(data, dict):
        raise ValueError("Calibration table JSON must be an object")
    try:
        return CalibrationTable.from_dict(data)
    except (KeyError, TypeError) as ex:
        raise ValueError(f"Malformed calibration table: {ex}") from ex


# ---------- Factor codes ----------
def resolve_factor_code(factor_code: FactorCodeLike) -> Optional[FactorCode]:
    """Requested code -> column; None means "use the fallback chain"."""
    if factor_code is None or factor_code == "":
        return None
    code = FactorCode.parse(factor_code)
    if code is None:
        log.warning(f"Unknown factor code '{factor_code}', falling back to 260X1 -> 470X1 -> 260X4")
    return code


def table_factor_code(table: CalibrationTable) -> Optional[FactorCode]:
    """Column named by the table's default factor code, if any."""
    raw = table.default_factor_code
    return FactorCode.parse(raw) or FactorCode.from_header(raw)


def volume_for_factor(entry: CalibrationEntry, factor_code: Optional[FactorCode]) -> float:
    if factor_code is not None:
        return entry.volume(factor_code)
    for code in FACTOR_FALLBACK_CHAIN:
        volume = entry.volume(code)
        if volume:
            return volume
    return 0.0


# ---------- Lookup ----------
def find_entry(entries: Iterable[CalibrationEntry], feet: int, inches: int) -> Optional[CalibrationEntry]:
    for entry in entries:
        if entry.feet == feet and entry.inches == inches:
            return entry
    return None


def find_lower_entry(entries: Sequence[CalibrationEntry], target_height: int) -> Optional[CalibrationEntry]:
    for entry in reversed(entries):
        if entry.height_inches <= target_height:
            return entry
    return None


def find_upper_entry(entries: Sequence[CalibrationEntry], target_height: int) -> Optional[CalibrationEntry]:
    for entry in entries:
        if entry.height_inches >= target_height:
            return entry
    return None


def nearest_fraction_entry(fractions: Sequence[FractionEntry], remainder: float) -> Optional[FractionEntry]:
    """Closest fraction row; on a tie the first (lowest) row wins."""
    if not fractions:
        return None
    closest = fractions[0]
    min_diff = abs(remainder - closest.decimal)
    for fraction in fractions:
        diff = abs(remainder - fraction.decimal)
        if diff < min_diff:
            min_diff = diff
            closest = fraction
    return closest


def _fraction_add_on(
    table: CalibrationTable,
    remainder: float,
    policy: FractionAddOnPolicy,
    interpolated: bool,
) -> float:
    if policy is FractionAddOnPolicy.NEVER:
        return 0.0
    if policy is FractionAddOnPolicy.EXACT_MATCH_ONLY and interpolated:
        return 0.0
    closest = nearest_fraction_entry(table.fractions, remainder)
    return closest.volume_add_on if closest is not None else 0.0


def lookup_volume(
    table: CalibrationTable,
    level_meters: float,
    factor_code: FactorCodeLike = None,
    fraction_policy: FractionAddOnPolicy = FractionAddOnPolicy.ALWAYS,
) -> Outcome:
    """
    Volume in the tank at ``level_meters``.

    An exact (feet, inches) row is read directly; otherwise the volume is
    interpolated between the nearest rows below and above. The fraction
    table add-on is applied according to ``fraction_policy``.

    Returns:
        Outcome with a LookupResult, OUT_OF_RANGE when the level is not
        bracketed by the table, MALFORMED for an empty table or bad level.
    """
    if table is None or not table.entries:
        outcome = Outcome.malformed("Calibration table has no entries")
        log_outcome(outcome, "Volume lookup", log)
        return outcome
    try:
        level = float(level_meters)
    except (TypeError, ValueError):
        level = math.nan
    if not math.isfinite(level):
        outcome = Outcome.malformed(f"Level {level_meters!r} is not a finite number")
        log_outcome(outcome, f"Volume lookup for {table.tank_tag}", log)
        return outcome

    # Reject levels more than a foot outside the table before decomposing them
    total_inches = level * M_TO_FT * FT_TO_IN
    heights = [e.height_inches for e in table.entries]
    if not math.isfinite(total_inches) or not (
        min(heights) - FT_TO_IN <= total_inches <= max(heights) + FT_TO_IN
    ):
        outcome = Outcome.out_of_range(
            f"Level {level:.4g} m is outside the calibration table range"
        )
        log_outcome(outcome, f"Volume lookup for {table.tank_tag}", log)
        return outcome

    feet, inches, fraction = decompose_feet(level * M_TO_FT)
    code = resolve_factor_code(factor_code)
    target_height = feet * 12 + inches

    entry = find_entry(table.entries, feet, inches)
    if entry is not None:
        add_on = _fraction_add_on(table, fraction, fraction_policy, interpolated=False)
        total = volume_for_factor(entry, code) + add_on
        return Outcome.success(LookupResult(
            entry=entry,
            interpolated=False,
            volume_barrels=total,
            volume_m3=total * BBL_TO_M3,
            level_feet=feet,
            level_inches=inches,
            level_fraction=fraction,
            factor_code=code,
            fraction_add_on=add_on,
        ))

    lower = find_lower_entry(table.entries, target_height)
    upper = find_upper_entry(table.entries, target_height)
    if lower is None or upper is None:
        outcome = Outcome.out_of_range(
            f"Level {level:.4f} m ({feet}' {inches}\") is outside the calibration table range"
        )
        log_outcome(outcome, f"Volume lookup for {table.tank_tag}", log)
        return outcome

    lower_height = lower.height_inches
    upper_height = upper.height_inches
    interpolation_factor = (target_height + fraction - lower_height) / (upper_height - lower_height)

    lower_volume = volume_for_factor(lower, code)
    upper_volume = volume_for_factor(upper, code)
    interpolated_volume = lower_volume + (upper_volume - lower_volume) * interpolation_factor

    add_on = _fraction_add_on(table, fraction, fraction_policy, interpolated=True)
    total = interpolated_volume + add_on
    return Outcome.success(LookupResult(
        entry=lower,
        interpolated=True,
        volume_barrels=total,
        volume_m3=total * BBL_TO_M3,
        level_feet=feet,
        level_inches=inches,
        level_fraction=fraction,
        factor_code=code,
        fraction_add_on=add_on,
        lower_entry=lower,
        upper_entry=upper,
        interpolation_factor=interpolation_factor,
    ))


# ---------- Editing ----------
def _renumber(table: CalibrationTable) -> None:
    for idx, entry in enumerate(table.entries):
        entry.sequence_number = idx


def _touch(table: CalibrationTable) -> None:
    table.modified_at = utc_now()


def _editing_code(table: CalibrationTable, factor_code: FactorCodeLike) -> FactorCode:
    return FactorCode.parse(factor_code) or table_factor_code(table) or FactorCode.F260X1


def add_entry(
    table: CalibrationTable,
    feet: int,
    inches: int,
    volume: float = 0.0,
    factor_code: FactorCodeLike = None,
) -> CalibrationEntry:
    """Insert a row at its height position and renumber the table."""
    entry = CalibrationEntry(int(feet), int(inches), 0, {code: 0.0 for code in FACTOR_CODES})
    entry.volume_by_factor[_editing_code(table, factor_code)] = float(volume)

    heights = [e.height_inches for e in table.entries]
    table.entries.insert(bisect.bisect_right(heights, entry.height_inches), entry)
    _renumber(table)
    _touch(table)
    return entry


def update_entry(
    table: CalibrationTable,
    index: int,
    feet: Optional[int] = None,
    inches: Optional[int] = None,
    volume: Optional[float] = None,
    factor_code: FactorCodeLike = None,
) -> CalibrationEntry:
    entry = table.entries[index]
    if feet is not None:
        entry.feet = int(feet)
    if inches is not None:
        entry.inches = int(inches)
    if volume is not None:
        entry.volume_by_factor[_editing_code(table, factor_code)] = float(volume)
    _touch(table)
    return entry


def remove_entry(table: CalibrationTable, index: int) -> CalibrationEntry:
    entry = table.entries.pop(index)
    _renumber(table)
    _touch(table)
    return entry


def sort_entries(table: CalibrationTable) -> CalibrationTable:
    """Stable sort by height, then renumber; duplicates are left for validate()."""
    table.entries.sort(key=lambda e: e.height_inches)
    _renumber(table)
    _touch(table)
    return table
