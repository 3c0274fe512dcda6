# unit_conversion.py
"""
Unit conversion for tank gauging.

Levels are handled internally in millimeters, volumes in barrels and
temperatures in Celsius. Everything here is stateless; the only "error"
is a None result for text that cannot be parsed.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Dict, NamedTuple, Optional, Tuple

# ---------- Conversion constants ----------
MM_TO_M = 0.001
MM_TO_CM = 0.1
MM_TO_IN = 0.0393701
MM_TO_FT = 0.00328084
IN_TO_MM = 25.4
FT_TO_MM = 304.8
FT_TO_IN = 12
M_TO_FT = 3.28084

BBL_TO_M3 = 0.158987
BBL_TO_LITERS = 158.987
BBL_TO_GAL = 42.0
M3_TO_LITERS = 1000.0
GAL_TO_LITERS = 3.78541

LEVEL_UNITS = ("mm", "m", "cm", "in", "ft", "ft_in", "ft_in_frac")
VOLUME_UNITS = ("bbl", "m3", "liters", "gal")
TEMPERATURE_UNITS = ("C", "F")
FRACTION_PRECISIONS = ("1/8", "1/16", "1/32", "1/64")

VOLUME_UNIT_LABELS = {"bbl": "bbl", "m3": "m³", "liters": "L", "gal": "gal"}

# Totals this close to a whole inch are float noise (e.g. 11.999999999999998 -> 12)
_WHOLE_INCH_TOLERANCE = 1e-11


class NearestFraction(NamedTuple):
    label: str
    decimal: float


def _build_fraction_values(denominator: int) -> Tuple[NearestFraction, ...]:
    values = [NearestFraction("0", 0.0)]
    for numerator in range(1, denominator):
        common = math.gcd(numerator, denominator)
        label = f"{numerator // common}/{denominator // common}"
        values.append(NearestFraction(label, numerator / denominator))
    return tuple(values)


FRACTION_VALUES: Dict[str, Tuple[NearestFraction, ...]] = {
    "1/8": _build_fraction_values(8),
    "1/16": _build_fraction_values(16),
    "1/32": _build_fraction_values(32),
    "1/64": _build_fraction_values(64),
}


@dataclass(frozen=True)
class LevelConversion:
    """All representations of one level reading."""
    original_mm: float
    meters: float
    centimeters: float
    inches: float
    feet: float
    whole_feet: int
    whole_inches: int
    fraction_inches: float
    nearest_fraction: str
    display_value: str
    display_unit: str


@dataclass(frozen=True)
class FeetInchFraction:
    feet: int
    inches: int
    fraction: float
    fraction_label: str
    total_inches: float


# ---------- Fractions ----------
def find_nearest_fraction(decimal: float, precision: str = "1/16") -> NearestFraction:
    """Snap a sub-inch remainder to the closest fraction of the given precision.

    Candidates are scanned in ascending order and only a strictly smaller
    difference replaces the current pick, so on a tie the lower fraction wins.
    """
    fractions = FRACTION_VALUES.get(precision, FRACTION_VALUES["1/16"])
    nearest = fractions[0]
    min_diff = abs(decimal - nearest.decimal)
    for frac in fractions:
        diff = abs(decimal - frac.decimal)
        if diff < min_diff:
            min_diff = diff
            nearest = frac
    return nearest


def _snap_whole_inch(value: float) -> float:
    nearest = round(value)
    return float(nearest) if abs(value - nearest) < _WHOLE_INCH_TOLERANCE else value


def split_total_inches(total_inches: float) -> Tuple[int, int, float]:
    """Return (whole feet, whole inches, fractional inch) for a total in inches."""
    total = _snap_whole_inch(float(total_inches))
    feet = math.floor(total / FT_TO_IN)
    remaining = _snap_whole_inch(total - feet * FT_TO_IN)
    inches = math.floor(remaining)
    if inches >= FT_TO_IN:
        feet, inches, remaining = feet + 1, 0, 0.0
    fraction = remaining - inches
    return int(feet), int(inches), fraction


def decompose_feet(level_feet: float) -> Tuple[int, int, float]:
    return split_total_inches(float(level_feet) * FT_TO_IN)


# ---------- Level conversions (from mm) ----------
def level_from_millimeters(
    mm: float,
    target_unit: str = "mm",
    fraction_precision: str = "1/16",
) -> LevelConversion:
    level_mm = float(mm)
    meters = level_mm * MM_TO_M
    centimeters = level_mm * MM_TO_CM
    inches = level_mm * MM_TO_IN
    feet = level_mm * MM_TO_FT

    whole_feet, whole_inches, fraction_inches = split_total_inches(inches)
    nearest = find_nearest_fraction(fraction_inches, fraction_precision)

    if target_unit == "m":
        display_value, display_unit = format_number(meters, 3), "m"
    elif target_unit == "cm":
        display_value, display_unit = format_number(centimeters, 1), "cm"
    elif target_unit == "in":
        display_value, display_unit = format_number(inches, 2), "in"
    elif target_unit == "ft":
        display_value, display_unit = format_number(feet, 2), "ft"
    elif target_unit == "ft_in":
        display_value, display_unit = f"{whole_feet}' {whole_inches}\"", ""
    elif target_unit == "ft_in_frac":
        if nearest.label != "0":
            display_value = f"{whole_feet}' {whole_inches}\" {nearest.label}"
        else:
            display_value = f"{whole_feet}' {whole_inches}\""
        display_unit = ""
    else:
        display_value, display_unit = format_number(level_mm, 0), "mm"

    return LevelConversion(
        original_mm=level_mm,
        meters=meters,
        centimeters=centimeters,
        inches=inches,
        feet=feet,
        whole_feet=whole_feet,
        whole_inches=whole_inches,
        fraction_inches=fraction_inches,
        nearest_fraction=nearest.label,
        display_value=display_value,
        display_unit=display_unit,
    )


def millimeters_from_level(value: float, unit: str) -> float:
    """Convert a level in `unit` back to mm.

    For ``ft_in`` and ``ft_in_frac`` the numeric value is taken as total
    inches; use ``parse_feet_inch_fraction_text`` for textual input.
    """
    value = float(value)
    if unit == "mm":
        return value
    if unit == "m":
        return value / MM_TO_M
    if unit == "cm":
        return value / MM_TO_CM
    if unit in ("in", "ft_in", "ft_in_frac"):
        return value * IN_TO_MM
    if unit == "ft":
        return value * FT_TO_MM
    return value


def millimeters_from_feet_inch_fraction(feet: int, inches: int, fraction_decimal: float = 0.0) -> float:
    total_inches = (int(feet) * FT_TO_IN) + int(inches) + float(fraction_decimal)
    return total_inches * IN_TO_MM


def feet_inch_fraction_from_millimeters(mm: float, precision: str = "1/16") -> FeetInchFraction:
    # Exact inverse of millimeters_from_feet_inch_fraction so the pair round-trips
    total_inches = float(mm) / IN_TO_MM
    feet, inches, fraction = split_total_inches(total_inches)
    nearest = find_nearest_fraction(fraction, precision)
    return FeetInchFraction(
        feet=feet,
        inches=inches,
        fraction=nearest.decimal,
        fraction_label=nearest.label,
        total_inches=total_inches,
    )


# 5' 3" 1/8 | 5' 3" | 5-3-1/8 | 5-3
_FEET_INCH_PATTERNS = (
    re.compile(r"(\d+)['′]\s*(\d+)[\"″]\s*(\d+)/(\d+)"),
    re.compile(r"(\d+)['′]\s*(\d+)[\"″]"),
    re.compile(r"(\d+)-(\d+)-(\d+)/(\d+)"),
    re.compile(r"(\d+)-(\d+)"),
)


def parse_feet_inch_fraction_text(text: Optional[str]) -> Optional[float]:
    """Parse feet/inch/fraction text to mm, or None when nothing matches."""
    if not text:
        return None
    for pattern in _FEET_INCH_PATTERNS:
        match = pattern.search(text)
        if not match:
            continue
        feet = int(match.group(1))
        inches = int(match.group(2))
        fraction_decimal = 0.0
        if pattern.groups == 4:
            denominator = int(match.group(4))
            if denominator == 0:
                return None
            fraction_decimal = int(match.group(3)) / denominator
        return millimeters_from_feet_inch_fraction(feet, inches, fraction_decimal)
    return None


# ---------- Volume ----------
def volume_from_barrels(value: float, target_unit: str) -> float:
    value = float(value)
    if target_unit == "m3":
        return value * BBL_TO_M3
    if target_unit == "liters":
        return value * BBL_TO_LITERS
    if target_unit == "gal":
        return value * BBL_TO_GAL
    return value


def barrels_from_volume(value: float, source_unit: str) -> float:
    value = float(value)
    if source_unit == "m3":
        return value / BBL_TO_M3
    if source_unit == "liters":
        return value / BBL_TO_LITERS
    if source_unit == "gal":
        return value / BBL_TO_GAL
    return value


def format_volume(volume_bbl: float, target_unit: str, decimals: int = 0) -> str:
    return format_number(volume_from_barrels(volume_bbl, target_unit), decimals)


# ---------- Temperature ----------
def temperature_from_celsius(value: float, target_unit: str) -> float:
    if target_unit == "F":
        return (float(value) * 9.0 / 5.0) + 32.0
    return float(value)


def celsius_from_temperature(value: float, source_unit: str) -> float:
    if source_unit == "F":
        return (float(value) - 32.0) * 5.0 / 9.0
    return float(value)


def format_temperature(temp_c: float, target_unit: str, decimals: int = 1) -> str:
    return f"{format_number(temperature_from_celsius(temp_c, target_unit), decimals)}°{target_unit}"


# ---------- Formatting ----------
def format_number(
    value: float,
    decimals: int = 2,
    thousands_separator: str = ",",
    decimal_separator: str = ".",
) -> str:
    """Fixed-decimal rendering with configurable separators (display only)."""
    decimals = max(int(decimals), 0)
    text = f"{float(value):,.{decimals}f}"
    whole, _, frac = text.partition(".")
    whole = whole.replace(",", thousands_separator)
    if decimals > 0:
        return f"{whole}{decimal_separator}{frac}"
    return whole


def format_level_with_config(level_mm: float, config) -> str:
    """Render a level using a TankDisplayConfig-like object."""
    result = level_from_millimeters(level_mm, config.level_unit, config.fraction_precision)
    if config.level_unit in ("ft_in", "ft_in_frac"):
        return result.display_value

    raw = {
        "m": result.meters,
        "cm": result.centimeters,
        "in": result.inches,
        "ft": result.feet,
    }.get(config.level_unit, result.original_mm)
    number = format_number(raw, config.level_decimals, config.thousands_separator, config.decimal_separator)
    return f"{number} {result.display_unit}"


def format_volume_with_config(volume_bbl: float, config) -> str:
    converted = volume_from_barrels(volume_bbl, config.volume_unit)
    number = format_number(converted, config.volume_decimals, config.thousands_separator, config.decimal_separator)
    return f"{number} {VOLUME_UNIT_LABELS.get(config.volume_unit, config.volume_unit)}"


def format_temperature_with_config(temp_c: float, config) -> str:
    converted = temperature_from_celsius(temp_c, config.temperature_unit)
    number = format_number(
        converted, config.temperature_decimals, config.thousands_separator, config.decimal_separator
    )
    return f"{number}°{config.temperature_unit}"


# ---------- Fraction text helpers ----------
_FRACTION_TEXT = re.compile(r"^(\d+)/(\d+)$")
VALID_DENOMINATORS = (2, 4, 8, 16, 32, 64)


def is_valid_fraction(text: str) -> bool:
    match = _FRACTION_TEXT.match(text or "")
    if not match:
        return False
    numerator, denominator = int(match.group(1)), int(match.group(2))
    return denominator in VALID_DENOMINATORS and numerator < denominator


def parse_fraction(text: Optional[str]) -> float:
    if not text or text == "0":
        return 0.0
    match = _FRACTION_TEXT.match(text)
    if not match or int(match.group(2)) == 0:
        return 0.0
    return int(match.group(1)) / int(match.group(2))
