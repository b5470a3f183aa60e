from __future__ import annotations

import math
from dataclasses import dataclass, field
from numbers import Number
from typing import Any

import numpy as np

from sync_sentinel.devices import Bus, Phase, Switch, phase_names
from sync_sentinel.errors import SyncSetupError


@dataclass(frozen=True)
class MeasurementSnapshot:
    """
    Both sides of the switch at one instant.
    Phases not present on the switch are left at 0j and never read.
    """
    freq_from_hz: float
    freq_to_hz: float
    nominal_voltage: float
    volt_from: dict[str, complex] = field(default_factory=dict)
    volt_to: dict[str, complex] = field(default_factory=dict)


def phasor(magnitude: float, angle_deg: float) -> complex:
    return complex(float(magnitude) * np.exp(1j * np.deg2rad(float(angle_deg))))


def balanced_phasors(magnitude: float, angle_deg: float = 0.0) -> dict[str, complex]:
    """Positive-sequence set: B lags A by 120 deg, C leads A by 120 deg."""
    return {
        "A": phasor(magnitude, angle_deg),
        "B": phasor(magnitude, angle_deg - 120.0),
        "C": phasor(magnitude, angle_deg + 120.0),
    }


def _read_property(bus: Any, prop: str, kind: type, side: str, label: str):
    if bus is None:
        raise SyncSetupError(f"{label} failed to map the '{side}' node of its parent switch.")
    if not hasattr(bus, prop):
        raise SyncSetupError(f"{label} failed to map the {prop} property of the '{side}' node of its parent switch.")
    value = getattr(bus, prop)
    if kind is complex:
        ok = isinstance(value, Number) and not isinstance(value, bool)
    else:
        ok = isinstance(value, Number) and not isinstance(value, (bool, complex))
    if not ok:
        raise SyncSetupError(
            f"{label} the {prop} property of the '{side}' node is {type(value).__name__}, expected {kind.__name__}."
        )
    return value


class BusPair:
    """
    The 'from' and 'to' buses of a switch, resolved and validated once.
    The average of the two nominal voltages is the per-unit base.
    """

    def __init__(self, from_bus: Bus, to_bus: Bus, nominal_voltage: float):
        self.from_bus = from_bus
        self.to_bus = to_bus
        self.nominal_voltage = nominal_voltage

    @classmethod
    def resolve(
        cls,
        switch: Switch,
        phases: Phase,
        voltage_tolerance_pu: float,
        label: str = "sync_check:Unnamed",
    ) -> "BusPair":
        from_bus = getattr(switch, "from_bus", None)
        to_bus = getattr(switch, "to_bus", None)

        for bus, side in ((from_bus, "from"), (to_bus, "to")):
            _read_property(bus, "frequency_hz", float, side, label)
            for ph in phase_names(phases):
                _read_property(bus, f"voltage_{ph}", complex, side, label)

        norm_from = float(_read_property(from_bus, "nominal_voltage", float, "from", label))
        norm_to = float(_read_property(to_bus, "nominal_voltage", float, "to", label))

        volt_norm = (norm_from + norm_to) / 2.0
        if not math.isfinite(volt_norm) or volt_norm <= 0:
            raise SyncSetupError(f"{label} nominal_voltage of the switch nodes must be positive (got {volt_norm}).")
        if abs(norm_from - norm_to) > voltage_tolerance_pu * volt_norm:
            raise SyncSetupError(
                f"{label} nominal_voltage on the from ({norm_from:g} V) and to ({norm_to:g} V) "
                "nodes of the switch should be close enough!"
            )
        return cls(from_bus, to_bus, volt_norm)

    def capture(self, phases: Phase) -> MeasurementSnapshot:
        volt_from: dict[str, complex] = {"A": 0j, "B": 0j, "C": 0j}
        volt_to: dict[str, complex] = {"A": 0j, "B": 0j, "C": 0j}

        for ph in phase_names(phases):
            volt_from[ph] = complex(getattr(self.from_bus, f"voltage_{ph}"))
            volt_to[ph] = complex(getattr(self.to_bus, f"voltage_{ph}"))

        return MeasurementSnapshot(
            freq_from_hz=float(self.from_bus.frequency_hz),
            freq_to_hz=float(self.to_bus.frequency_hz),
            nominal_voltage=self.nominal_voltage,
            volt_from=volt_from,
            volt_to=volt_to,
        )
