from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from sync_sentinel.devices import Phase, phase_names
from sync_sentinel.measure.snapshot import MeasurementSnapshot
from sync_sentinel.tolerance.config import MetricMode, Tolerances


@dataclass(frozen=True)
class PhaseDeviation:
    phase: str
    voltage_diff_pu: float     # |V_from - V_to| / V_nom
    magnitude_diff_pu: float   # ||V_from| - |V_to|| / V_nom
    angle_diff_deg: float      # wrapped into [0, 180]


@dataclass(frozen=True)
class MetricReport:
    freq_diff_hz: float
    phases: tuple[PhaseDeviation, ...]


def wrapped_angle_diff_deg(v_from: complex, v_to: complex) -> float:
    """
    Absolute angle separation of two phasors in degrees.
    Angles come from np.angle in (-180, 180], so the raw difference can reach
    360; anything past 180 is measured the short way round (360 - raw).
    179 deg vs -179 deg -> 2 deg.
    """
    raw = abs(float(np.rad2deg(np.angle(v_from) - np.angle(v_to))))
    if raw > 180.0:
        return 360.0 - raw
    return raw


def phase_deviation(phase: str, v_from: complex, v_to: complex, volt_norm: float) -> PhaseDeviation:
    return PhaseDeviation(
        phase=phase,
        voltage_diff_pu=float(np.abs(v_from - v_to)) / volt_norm,
        magnitude_diff_pu=abs(float(np.abs(v_from)) - float(np.abs(v_to))) / volt_norm,
        angle_diff_deg=wrapped_angle_diff_deg(v_from, v_to),
    )


def measure(snapshot: MeasurementSnapshot, active_phases: Phase) -> MetricReport:
    """Deviations for every active phase; inactive phases are left out."""
    devs = tuple(
        phase_deviation(
            ph,
            snapshot.volt_from.get(ph, 0j),
            snapshot.volt_to.get(ph, 0j),
            snapshot.nominal_voltage,
        )
        for ph in phase_names(active_phases)
    )
    return MetricReport(
        freq_diff_hz=abs(snapshot.freq_from_hz - snapshot.freq_to_hz),
        phases=devs,
    )


def phase_passes(dev: PhaseDeviation, tolerances: Tolerances, mode: MetricMode) -> bool:
    if mode == MetricMode.MAG_DIFF:
        return dev.voltage_diff_pu <= tolerances.voltage_pu
    return (
        dev.magnitude_diff_pu <= tolerances.voltage_magnitude_pu
        and dev.angle_diff_deg <= tolerances.voltage_angle_deg
    )


def report_passes(report: MetricReport, tolerances: Tolerances, mode: MetricMode) -> bool:
    if not report.freq_diff_hz <= tolerances.frequency_hz:
        return False
    return all(phase_passes(dev, tolerances, mode) for dev in report.phases)


def evaluate(
    snapshot: MeasurementSnapshot,
    tolerances: Tolerances,
    mode: MetricMode,
    active_phases: Phase,
) -> bool:
    """
    True when frequency and every active phase are within tolerances.
    Callers pick strict or relaxed tolerances; this function holds no state.
    """
    return report_passes(measure(snapshot, active_phases), tolerances, mode)
