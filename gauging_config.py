# gauging_config.py
"""
Gauging configuration.

Typed option structures for volume calculation and display, with defaults
that can be overridden per site through environment variables (.env).

Environment:
- GAUGING_FACTOR_CODE          default factor code when a tank sets none
- GAUGING_BOTTOM_OFFSET_MM     gauge zero above tank bottom
- GAUGING_REFERENCE_HEIGHT_MM  readings above this are rejected (0 = off)
- GAUGING_FRACTION_POLICY      always | exact_match_only | never
- GAUGING_FRACTION_PRECISION   1/8 | 1/16 | 1/32 | 1/64
"""

import os
from dataclasses import dataclass, replace
from typing import Optional

from dotenv import load_dotenv

from strapping_models import FractionAddOnPolicy
from unit_conversion import FRACTION_PRECISIONS

load_dotenv()


@dataclass(frozen=True)
class CalculationOptions:
    """Per-call options for calculate_volume.

    factor_code: None -> the table's default factor code, then the
        fallback chain (260X1 -> 470X1 -> 260X4).
    bottom_offset_mm: subtracted from the raw level before lookup.
    reference_height_mm: raw levels above it are out of range (0 disables).
    pressure_psi: feeds CPL; no live pressure sensor, so normally 0.
    fraction_policy: when the sub-inch add-on is applied.
    """
    factor_code: Optional[str] = None
    bottom_offset_mm: float = 0.0
    reference_height_mm: float = 0.0
    pressure_psi: float = 0.0
    fraction_policy: FractionAddOnPolicy = FractionAddOnPolicy.ALWAYS


@dataclass(frozen=True)
class TankDisplayConfig:
    level_unit: str = "ft_in_frac"        # mm, m, cm, in, ft, ft_in, ft_in_frac
    fraction_precision: str = "1/16"
    volume_unit: str = "bbl"              # bbl, m3, liters, gal
    temperature_unit: str = "F"           # C, F
    level_decimals: int = 2
    volume_decimals: int = 0
    temperature_decimals: int = 1
    thousands_separator: str = ","
    decimal_separator: str = "."
    locale: str = "es-ES"


DEFAULT_CALCULATION_OPTIONS = CalculationOptions()
DEFAULT_DISPLAY_CONFIG = TankDisplayConfig()


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_policy(name: str, default: FractionAddOnPolicy) -> FractionAddOnPolicy:
    raw = (os.getenv(name) or "").strip().lower()
    for policy in FractionAddOnPolicy:
        if policy.value == raw:
            return policy
    return default


class GaugingConfig:
    """Site-level defaults read from the environment"""

    @staticmethod
    def calculation_options(**overrides) -> CalculationOptions:
        """
        Build CalculationOptions from environment defaults.

        Args:
            **overrides: any CalculationOptions field, applied last

        Returns:
            CalculationOptions
        """
        options = CalculationOptions(
            factor_code=os.getenv("GAUGING_FACTOR_CODE") or None,
            bottom_offset_mm=_env_float("GAUGING_BOTTOM_OFFSET_MM", 0.0),
            reference_height_mm=_env_float("GAUGING_REFERENCE_HEIGHT_MM", 0.0),
            pressure_psi=0.0,
            fraction_policy=_env_policy("GAUGING_FRACTION_POLICY", FractionAddOnPolicy.ALWAYS),
        )
        return replace(options, **overrides) if overrides else options

    @staticmethod
    def display_config(**overrides) -> TankDisplayConfig:
        precision = os.getenv("GAUGING_FRACTION_PRECISION", DEFAULT_DISPLAY_CONFIG.fraction_precision)
        if precision not in FRACTION_PRECISIONS:
            precision = DEFAULT_DISPLAY_CONFIG.fraction_precision
        config = replace(DEFAULT_DISPLAY_CONFIG, fraction_precision=precision)
        return replace(config, **overrides) if overrides else config
