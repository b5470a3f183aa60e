from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from pydantic import BaseModel

from sync_sentinel.errors import SyncSetupError
from sync_sentinel.tolerance.defaults import DEFAULTS
from sync_sentinel.utils.logging import warn


class MetricMode(str, Enum):
    MAG_DIFF = "MAG_DIFF"  # magnitude of the complex phasor difference
    SEP_DIFF = "SEP_DIFF"  # magnitude and angle differences judged separately


class ToleranceConfig(BaseModel):
    """
    User-facing configuration of one synchronization monitor.
    Tolerances left as None (or set non-positive) are defaulted at setup.
    """
    armed: bool = False
    mode: MetricMode = MetricMode.MAG_DIFF

    frequency_tolerance_hz: Optional[float] = None
    voltage_tolerance_pu: Optional[float] = None

    # SEP_DIFF only
    voltage_magnitude_tolerance_pu: Optional[float] = None
    voltage_angle_tolerance_deg: Optional[float] = None

    dwell_period_sec: Optional[float] = None
    trigger_multiplier: Optional[float] = None

    # Object-level opt-in to fine stepping
    fine_step_capable: bool = True


@dataclass(frozen=True)
class Tolerances:
    frequency_hz: float
    voltage_pu: float
    voltage_magnitude_pu: float
    voltage_angle_deg: float

    def scaled(self, factor: float) -> "Tolerances":
        return Tolerances(
            frequency_hz=self.frequency_hz * factor,
            voltage_pu=self.voltage_pu * factor,
            voltage_magnitude_pu=self.voltage_magnitude_pu * factor,
            voltage_angle_deg=self.voltage_angle_deg * factor,
        )


def _is_valid(value: Optional[float]) -> bool:
    return value is not None and math.isfinite(value) and value > 0


def resolve_config(
    config: ToleranceConfig,
    nominal_frequency_hz: float,
    label: str = "sync_check:Unnamed",
) -> ToleranceConfig:
    """
    Returns a copy of config with every invalid tolerance replaced by its default.
    Both voltage tolerance sets are checked whatever the mode, since the mode
    may be switched after setup.
    """
    updates: dict[str, float] = {}

    # Unset fields take their default quietly; only bad explicit values are reported
    if not _is_valid(config.frequency_tolerance_hz):
        if not _is_valid(nominal_frequency_hz):
            raise SyncSetupError(
                f"{label} nominal frequency {nominal_frequency_hz!r} is not usable to default frequency_tolerance."
            )
        value = DEFAULTS["FREQUENCY_TOL_FRACTION"] * float(nominal_frequency_hz)
        updates["frequency_tolerance_hz"] = value
        if config.frequency_tolerance_hz is not None:
            warn(f"{label} - frequency_tolerance was not set as a positive value, it is reset to {value:f} (Hz).")

    simple_fields = [
        ("voltage_tolerance_pu", "VOLTAGE_TOL_PU", "pu"),
        ("voltage_magnitude_tolerance_pu", "VOLTAGE_MAGNITUDE_TOL_PU", "pu"),
        ("voltage_angle_tolerance_deg", "VOLTAGE_ANGLE_TOL_DEG", "deg"),
        ("dwell_period_sec", "DWELL_PERIOD_SEC", "secs"),
    ]
    for field, key, unit in simple_fields:
        current = getattr(config, field)
        if not _is_valid(current):
            value = DEFAULTS[key]
            updates[field] = value
            if current is not None:
                warn(f"{label} - {field} was not set as a positive value, it is reset to {value:f} ({unit}).")

    mult = config.trigger_multiplier
    if mult is None or not math.isfinite(mult) or mult <= 1.0:
        updates["trigger_multiplier"] = DEFAULTS["TRIGGER_MULT"]
        if mult is not None:
            warn(f"{label} - trigger_multiplier was not a finite value above 1.0 - defaulted to {DEFAULTS['TRIGGER_MULT']:.1f}")

    return config.model_copy(update=updates)


def strict_tolerances(config: ToleranceConfig) -> Tolerances:
    return Tolerances(
        frequency_hz=float(config.frequency_tolerance_hz),
        voltage_pu=float(config.voltage_tolerance_pu),
        voltage_magnitude_pu=float(config.voltage_magnitude_tolerance_pu),
        voltage_angle_deg=float(config.voltage_angle_tolerance_deg),
    )


def relaxed_tolerances(config: ToleranceConfig) -> Tolerances:
    return strict_tolerances(config).scaled(float(config.trigger_multiplier))
