# strapping_models.py
"""
Data model for tank calibration (strapping) tables and volume results.

A strapping table maps a gauged height in whole feet + inches to the
volume contained, with one column per correction-factor code. Sub-inch
heights are resolved through a fraction table.

The dict layout produced by ``to_dict``/``from_dict`` is the one stored
under the tank's ``strappingTable`` attribute, so field names there stay
camelCase.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from timezone_utils import parse_timestamp, to_iso


# ============================================================================
# ENUMS
# ============================================================================

class FactorCode(enum.Enum):
    """Pre-computed temperature/expansion column of a calibration certificate.

    These are NOT tank identifiers; each tank has its own table and the
    code picks which certified column to read.
    """
    F470X1 = "470X1"
    F260X4 = "260X4"
    F260X3 = "260X3"
    F260X2 = "260X2"
    F260X1 = "260X1"
    F165X1 = "165X1"

    @property
    def column(self) -> str:
        return f"vol{self.value}"

    @classmethod
    def parse(cls, text: Optional[str]) -> Optional["FactorCode"]:
        """Exact lookup by code ("260X1") or column name ("vol260X1")."""
        if text is None:
            return None
        if isinstance(text, cls):
            return text
        code = str(text).strip().upper()
        if code.startswith("VOL"):
            code = code[3:]
        for member in cls:
            if member.value == code:
                return member
        return None

    @classmethod
    def from_header(cls, text: Optional[str]) -> Optional["FactorCode"]:
        """Map a CSV volume header to a column by substring, first rule wins."""
        if not text:
            return None
        header = str(text).strip().upper()
        for needles, member in _HEADER_RULES:
            if any(needle in header for needle in needles):
                return member
        return None


_HEADER_RULES: Tuple[Tuple[Tuple[str, ...], FactorCode], ...] = (
    (("470",), FactorCode.F470X1),
    (("260X4",), FactorCode.F260X4),
    (("260X3",), FactorCode.F260X3),
    (("260X2",), FactorCode.F260X2),
    (("260",), FactorCode.F260X1),
    (("165", "135"), FactorCode.F165X1),
)

# Column order used by CSV export and the persisted layout
FACTOR_CODES: Tuple[FactorCode, ...] = (
    FactorCode.F470X1,
    FactorCode.F260X4,
    FactorCode.F260X3,
    FactorCode.F260X2,
    FactorCode.F260X1,
    FactorCode.F165X1,
)

# Used when no factor code is requested or the requested one is unknown
FACTOR_FALLBACK_CHAIN: Tuple[FactorCode, ...] = (
    FactorCode.F260X1,
    FactorCode.F470X1,
    FactorCode.F260X4,
)


class TankShape(enum.Enum):
    VERTICAL = "vertical"
    HORIZONTAL = "horizontal"
    SPHERICAL = "spherical"

    @classmethod
    def parse(cls, text: Optional[str]) -> "TankShape":
        value = (text or "").strip().lower()
        if value.startswith("horizontal"):
            return cls.HORIZONTAL
        if value.startswith("spherical"):
            return cls.SPHERICAL
        return cls.VERTICAL


class FractionAddOnPolicy(enum.Enum):
    """When the fraction-table add-on is applied to a looked-up volume."""
    ALWAYS = "always"
    EXACT_MATCH_ONLY = "exact_match_only"
    NEVER = "never"


class OutcomeStatus(enum.Enum):
    OK = "OK"
    OUT_OF_RANGE = "OUT_OF_RANGE"
    MALFORMED = "MALFORMED"
    PARSE_ERROR = "PARSE_ERROR"


# ============================================================================
# CALIBRATION TABLE
# ============================================================================

@dataclass
class CalibrationEntry:
    feet: int
    inches: int
    sequence_number: int = 0
    volume_by_factor: Dict[FactorCode, float] = field(default_factory=dict)

    @property
    def height_inches(self) -> int:
        return self.feet * 12 + self.inches

    def volume(self, code: FactorCode) -> float:
        return float(self.volume_by_factor.get(code, 0.0) or 0.0)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "feet": self.feet,
            "inches": self.inches,
            "medEq": self.sequence_number,
        }
        for code in FACTOR_CODES:
            data[code.column] = self.volume(code)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CalibrationEntry":
        volumes = {code: float(data.get(code.column) or 0.0) for code in FACTOR_CODES}
        return cls(
            feet=int(data["feet"]),
            inches=int(data["inches"]),
            sequence_number=int(data.get("medEq", data.get("sequenceNumber", 0)) or 0),
            volume_by_factor=volumes,
        )

    def __repr__(self):
        return f"<CalibrationEntry({self.feet}' {self.inches}\", seq={self.sequence_number})>"


@dataclass(frozen=True)
class FractionEntry:
    label: str
    decimal: float
    volume_add_on: float

    def to_dict(self) -> Dict[str, Any]:
        return {"fraction": self.label, "fractionDecimal": self.decimal, "barrels": self.volume_add_on}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FractionEntry":
        return cls(
            label=str(data.get("fraction", "")),
            decimal=float(data.get("fractionDecimal") or 0.0),
            volume_add_on=float(data.get("barrels") or 0.0),
        )


# Standard 1/16" add-on table (barrels), shared read-only by every table
# that has no fraction data of its own.
DEFAULT_FRACTION_TABLE: Tuple[FractionEntry, ...] = tuple(
    FractionEntry(label, decimal, barrels)
    for label, decimal, barrels in (
        ("0", 0.0, 0.0),
        ("1/16", 0.0625, 10.0),
        ("1/8", 0.125, 21.0),
        ("3/16", 0.1875, 31.0),
        ("1/4", 0.25, 42.0),
        ("5/16", 0.3125, 52.0),
        ("3/8", 0.375, 63.0),
        ("7/16", 0.4375, 73.0),
        ("1/2", 0.5, 84.0),
        ("9/16", 0.5625, 94.0),
        ("5/8", 0.625, 105.0),
        ("11/16", 0.6875, 115.0),
        ("3/4", 0.75, 126.0),
        ("13/16", 0.8125, 136.0),
        ("7/8", 0.875, 147.0),
        ("15/16", 0.9375, 157.0),
    )
)


def default_fractions() -> List[FractionEntry]:
    return list(DEFAULT_FRACTION_TABLE)


@dataclass
class CalibrationTable:
    """Calibration table of one tank, plus certificate and geometry metadata."""
    tank_id: str
    tank_tag: str
    entries: List[CalibrationEntry] = field(default_factory=list)
    fractions: List[FractionEntry] = field(default_factory=default_fractions)
    version: str = "1.0"
    created_at: Optional[datetime] = None
    modified_at: Optional[datetime] = None
    created_by: str = ""
    default_factor_code: Optional[str] = None
    calibration_standard: str = "API MPMS Chapter 2.2A"
    calibration_date: Optional[datetime] = None
    calibration_agency: str = ""
    certificate_number: str = ""
    notes: str = ""
    # Geometry snapshot, display only
    tank_height: float = 0.0
    tank_diameter: float = 0.0
    tank_shape: TankShape = TankShape.VERTICAL
    reference_height: float = 0.0
    height_unit: str = "ft"
    volume_unit: str = "bbl"

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "tankId": self.tank_id,
            "tankTag": self.tank_tag,
            "createdDate": to_iso(self.created_at),
            "lastModified": to_iso(self.modified_at),
            "createdBy": self.created_by,
            "version": self.version,
            "tankHeight": self.tank_height,
            "tankDiameter": self.tank_diameter,
            "tankShape": self.tank_shape.value,
            "referenceHeight": self.reference_height,
            "heightUnit": self.height_unit,
            "volumeUnit": self.volume_unit,
            "entries": [e.to_dict() for e in self.entries],
            "fractionTable": [f.to_dict() for f in self.fractions],
            "calibrationStandard": self.calibration_standard,
            "calibrationDate": to_iso(self.calibration_date),
            "calibrationAgency": self.calibration_agency,
            "certificateNumber": self.certificate_number,
            "notes": self.notes,
        }
        if self.default_factor_code:
            data["defaultFactorCode"] = self.default_factor_code
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CalibrationTable":
        fractions = [FractionEntry.from_dict(f) for f in (data.get("fractionTable") or [])]
        return cls(
            tank_id=str(data.get("tankId") or ""),
            tank_tag=str(data.get("tankTag") or ""),
            entries=[CalibrationEntry.from_dict(e) for e in (data.get("entries") or [])],
            fractions=fractions or default_fractions(),
            version=str(data.get("version") or ""),
            created_at=parse_timestamp(data.get("createdDate")),
            modified_at=parse_timestamp(data.get("lastModified")),
            created_by=str(data.get("createdBy") or ""),
            default_factor_code=data.get("defaultFactorCode") or None,
            calibration_standard=str(data.get("calibrationStandard") or ""),
            calibration_date=parse_timestamp(data.get("calibrationDate")),
            calibration_agency=str(data.get("calibrationAgency") or ""),
            certificate_number=str(data.get("certificateNumber") or ""),
            notes=str(data.get("notes") or ""),
            tank_height=float(data.get("tankHeight") or 0.0),
            tank_diameter=float(data.get("tankDiameter") or 0.0),
            tank_shape=TankShape.parse(data.get("tankShape")),
            reference_height=float(data.get("referenceHeight") or 0.0),
            height_unit=str(data.get("heightUnit") or "ft"),
            volume_unit=str(data.get("volumeUnit") or "bbl"),
        )

    def __repr__(self):
        return f"<CalibrationTable(tank='{self.tank_tag}', entries={len(self.entries)}, version='{self.version}')>"


# ============================================================================
# RESULTS
# ============================================================================

@dataclass
class ValidationResult:
    valid: bool
    errors: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class Outcome:
    """Tagged result shared by import, lookup and volume calculation.

    Data problems are reported here instead of being raised, so a caller can
    show every message at once and the telemetry loop can skip one reading.
    """
    status: OutcomeStatus
    value: Any = None
    errors: Tuple[str, ...] = ()

    @property
    def ok(self) -> bool:
        return self.status is OutcomeStatus.OK

    @property
    def message(self) -> str:
        return "; ".join(self.errors)

    def unwrap(self) -> Any:
        if not self.ok:
            raise ValueError(f"{self.status.value}: {self.message}")
        return self.value

    @classmethod
    def success(cls, value: Any) -> "Outcome":
        return cls(OutcomeStatus.OK, value)

    @classmethod
    def out_of_range(cls, message: str) -> "Outcome":
        return cls(OutcomeStatus.OUT_OF_RANGE, None, (message,))

    @classmethod
    def malformed(cls, message: str) -> "Outcome":
        return cls(OutcomeStatus.MALFORMED, None, (message,))

    @classmethod
    def parse_error(cls, *messages: str) -> "Outcome":
        return cls(OutcomeStatus.PARSE_ERROR, None, tuple(messages))


@dataclass(frozen=True)
class LookupResult:
    entry: CalibrationEntry
    interpolated: bool
    volume_barrels: float
    volume_m3: float
    level_feet: int
    level_inches: int
    level_fraction: float
    factor_code: Optional[FactorCode] = None
    fraction_add_on: float = 0.0
    lower_entry: Optional[CalibrationEntry] = None
    upper_entry: Optional[CalibrationEntry] = None
    interpolation_factor: Optional[float] = None


@dataclass(frozen=True)
class CorrectionFactor:
    temperature_f: float
    pressure_psi: float
    factor_code: str
    ctl: float   # Correction for Temperature on Liquid
    cpl: float   # Correction for Pressure on Liquid
    ctsh: float  # Correction for Temperature on Steel Shell


@dataclass(frozen=True)
class VolumeCalculationResult:
    """GOV/GSV/NSV for one reading. Volumes in m³, *_bbl mirrors in barrels."""
    gross_observed_volume: float
    gross_standard_volume: float
    net_standard_volume: float
    gross_observed_volume_bbl: float
    gross_standard_volume_bbl: float
    net_standard_volume_bbl: float
    observed_temperature: float
    observed_density: float
    standard_density: float
    ctl: float
    cpl: float
    ctsh: float
    correction_factor: CorrectionFactor
    lookup: LookupResult
    standard_reference: str
    calculated_at: Optional[datetime] = None
