# volume_calculator.py
"""
Standard volume from a level reading (API MPMS Chapter 11.1 simplified).

level (mm) -> strapping lookup (GOV) -> CTL/CPL/CTSH -> GSV -> NSV

NSV equals GSV: no BS&W deduction is applied here.
"""

import math
from typing import Optional

from gauging_config import DEFAULT_CALCULATION_OPTIONS, CalculationOptions
from logger import get_logger, log_outcome
from strapping_models import (
    CalibrationTable,
    CorrectionFactor,
    FactorCode,
    Outcome,
    VolumeCalculationResult,
)
from strapping_table import lookup_volume, resolve_factor_code, table_factor_code
from timezone_utils import utc_now
from unit_conversion import BBL_TO_M3, MM_TO_M

log = get_logger("volume_calculator")

STANDARD_REFERENCE = "API MPMS Chapter 11.1 (2004)"

REFERENCE_TEMPERATURE_F = 60.0
WATER_DENSITY_60F = 999.016  # kg/m³
STEEL_EXPANSION_PER_F = 0.0000065

API_GRAVITY_RANGE = (4.0, 99.9)
TEMPERATURE_RANGE_F = (20.0, 174.9)


# ---------- Correction factors ----------
def thermal_expansion_coefficient(api_gravity: float) -> float:
    """Approximate liquid expansion per °F; heavier product (lower API) expands more."""
    return 0.0004 + 0.00002 * (100.0 - float(api_gravity))


def calculate_correction_factors(
    api_gravity: float,
    temperature_f: float,
    pressure_psi: float = 0.0,
    factor_code: Optional[str] = None,
) -> CorrectionFactor:
    delta_t = float(temperature_f) - REFERENCE_TEMPERATURE_F
    alpha = thermal_expansion_coefficient(api_gravity)

    ctl = 1.0 / (1.0 + alpha * delta_t)
    cpl = 1.0 + float(pressure_psi) * 0.000001
    ctsh = 1.0 + STEEL_EXPANSION_PER_F * delta_t

    return CorrectionFactor(
        temperature_f=float(temperature_f),
        pressure_psi=float(pressure_psi),
        factor_code=factor_code or "",
        ctl=ctl,
        cpl=cpl,
        ctsh=ctsh,
    )


# ---------- Density ----------
def api_gravity_to_density(api_gravity: float, temperature_f: float = REFERENCE_TEMPERATURE_F) -> float:
    """Density in kg/m³ at ``temperature_f`` for a product of the given API gravity."""
    sg60 = 141.5 / (float(api_gravity) + 131.5)
    density60 = sg60 * WATER_DENSITY_60F
    delta_t = float(temperature_f) - REFERENCE_TEMPERATURE_F
    return density60 / (1.0 + thermal_expansion_coefficient(api_gravity) * delta_t)


def api_gravity_from_density(density_kg_m3: float) -> float:
    """API gravity from a density at 60°F (kg/m³)."""
    sg = float(density_kg_m3) / WATER_DENSITY_60F
    return (141.5 / sg) - 131.5


# ---------- Range guards ----------
def is_api_gravity_valid(api_gravity: float) -> bool:
    return API_GRAVITY_RANGE[0] <= api_gravity <= API_GRAVITY_RANGE[1]


def is_temperature_valid(temperature_f: float) -> bool:
    return TEMPERATURE_RANGE_F[0] <= temperature_f <= TEMPERATURE_RANGE_F[1]


# ---------- Driver ----------
def _requested_factor_code(table: CalibrationTable, options: CalculationOptions) -> Optional[FactorCode]:
    if options.factor_code:
        return resolve_factor_code(options.factor_code)
    return table_factor_code(table)


def calculate_volume(
    level_mm: float,
    api_gravity: float,
    temperature_f: float,
    table: CalibrationTable,
    options: Optional[CalculationOptions] = None,
) -> Outcome:
    """
    Gross observed, gross standard and net standard volume for one reading.

    Args:
        level_mm: raw gauge level in millimetres
        api_gravity: product API gravity
        temperature_f: observed product temperature (°F)
        table: the tank's calibration table
        options: CalculationOptions (factor code, bottom offset, ...)

    Returns:
        Outcome with a VolumeCalculationResult, or the lookup's failure
        (OUT_OF_RANGE / MALFORMED) unchanged.
    """
    options = options or DEFAULT_CALCULATION_OPTIONS
    tag = table.tank_tag if table is not None else "?"

    inputs = (level_mm, api_gravity, temperature_f, options.bottom_offset_mm, options.pressure_psi)
    try:
        if not all(math.isfinite(float(v)) for v in inputs):
            raise ValueError
    except (TypeError, ValueError):
        outcome = Outcome.malformed(
            f"Non-numeric input (level={level_mm!r}, api={api_gravity!r}, temp={temperature_f!r})"
        )
        log_outcome(outcome, f"Volume calculation for {tag}", log)
        return outcome

    if 0 < options.reference_height_mm < float(level_mm):
        outcome = Outcome.out_of_range(
            f"Level {float(level_mm):.1f} mm exceeds reference height {options.reference_height_mm:.1f} mm"
        )
        log_outcome(outcome, f"Volume calculation for {tag}", log)
        return outcome

    if table is None:
        outcome = Outcome.malformed("No calibration table")
        log_outcome(outcome, "Volume calculation", log)
        return outcome

    level_m = (float(level_mm) - float(options.bottom_offset_mm)) * MM_TO_M
    code = _requested_factor_code(table, options)

    looked_up = lookup_volume(table, level_m, code, options.fraction_policy)
    if not looked_up.ok:
        return looked_up
    lookup = looked_up.value

    factors = calculate_correction_factors(
        api_gravity,
        temperature_f,
        options.pressure_psi,
        lookup.factor_code.value if lookup.factor_code else None,
    )

    gov_bbl = lookup.volume_barrels
    gsv_bbl = gov_bbl * factors.ctl
    nsv_bbl = gsv_bbl

    result = VolumeCalculationResult(
        gross_observed_volume=lookup.volume_m3,
        gross_standard_volume=gsv_bbl * BBL_TO_M3,
        net_standard_volume=nsv_bbl * BBL_TO_M3,
        gross_observed_volume_bbl=gov_bbl,
        gross_standard_volume_bbl=gsv_bbl,
        net_standard_volume_bbl=nsv_bbl,
        observed_temperature=float(temperature_f),
        observed_density=api_gravity_to_density(api_gravity, temperature_f),
        standard_density=api_gravity_to_density(api_gravity),
        ctl=factors.ctl,
        cpl=factors.cpl,
        ctsh=factors.ctsh,
        correction_factor=factors,
        lookup=lookup,
        standard_reference=STANDARD_REFERENCE,
        calculated_at=utc_now(),
    )
    log.debug(
        f"{tag}: level={level_m:.4f} m GOV={gov_bbl:.2f} bbl CTL={factors.ctl:.5f} GSV={gsv_bbl:.2f} bbl"
    )
    return Outcome.success(result)
