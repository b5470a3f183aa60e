from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

import numpy as np
import pandas as pd

from sync_sentinel.config import settings
from sync_sentinel.devices import Phase, SimBus, SimSwitch, phase_names
from sync_sentinel.measure.snapshot import phasor
from sync_sentinel.metrics.evaluator import measure
from sync_sentinel.monitor.sync_check import SyncCheck
from sync_sentinel.monitor.trigger import StepMode
from sync_sentinel.tolerance.config import ToleranceConfig, Tolerances
from sync_sentinel.utils.logging import info


@dataclass
class ReplayResult:
    frame: pd.DataFrame
    closed_at: Optional[float]
    strict: Optional[Tolerances] = None
    fine_step_spans: list[tuple[float, float]] = field(default_factory=list)


def build_switch(nominal_voltage: float, phases: Phase, name: str = "tie") -> SimSwitch:
    return SimSwitch(
        name=name,
        from_bus=SimBus(name=f"{name}_from", nominal_voltage=nominal_voltage),
        to_bus=SimBus(name=f"{name}_to", nominal_voltage=nominal_voltage),
        phases=phases,
    )


def apply_sample(row, switch: SimSwitch, phases: Phase) -> None:
    """Writes one trace row into the switch's buses, as the solver would."""
    switch.from_bus.frequency_hz = float(row.freq_from)
    switch.to_bus.frequency_hz = float(row.freq_to)
    for ph in phase_names(phases):
        setattr(switch.from_bus, f"voltage_{ph}", phasor(getattr(row, f"vmag_from_{ph}"), getattr(row, f"vang_from_{ph}")))
        setattr(switch.to_bus, f"voltage_{ph}", phasor(getattr(row, f"vmag_to_{ph}"), getattr(row, f"vang_to_{ph}")))


def _spans(times: np.ndarray, fine: np.ndarray) -> list[tuple[float, float]]:
    spans: list[tuple[float, float]] = []
    start = None
    for t, f in zip(times, fine):
        if f and start is None:
            start = float(t)
        elif not f and start is not None:
            spans.append((start, float(t)))
            start = None
    if start is not None:
        spans.append((start, float(times[-1])))
    return spans


def replay_trace(
    trace: pd.DataFrame,
    config: ToleranceConfig,
    phases: Phase,
    nominal_voltage: float,
    name: str = "replay",
) -> ReplayResult:
    """
    Drives a SyncCheck over a standardized trace the way a dual-rate scheduler
    would: rows are coarse steps (postsync) until the monitor asks for fine
    stepping, then fine sub-steps (interupdate) until it lets go.
    """
    if trace.empty:
        raise ValueError("Cannot replay an empty trace.")

    switch = build_switch(nominal_voltage, phases, name=name)
    rows = list(trace.itertuples(index=False))
    apply_sample(rows[0], switch, phases)

    monitor = SyncCheck(switch, config, name=name, start_time=float(rows[0].time_s))

    records: list[dict] = []
    fine = False
    prev_t: Optional[float] = None

    for row in rows:
        t = float(row.time_s)
        apply_sample(row, switch, phases)

        if fine and prev_t is not None:
            mode = monitor.interupdate(t - prev_t, settings.fine_step_iteration)
            stepping = "fine"
        else:
            mode = monitor.postsync(t)
            stepping = "coarse"

        wants_fine = mode == StepMode.REQUEST_FINE_STEP
        if wants_fine != fine:
            info(f"t={t:.3f}s {name}: {'coarse -> fine' if wants_fine else 'fine -> coarse'} stepping")
        fine = wants_fine
        prev_t = t

        report = measure(monitor.bus_pair.capture(phases), phases)
        records.append(
            {
                "time_s": t,
                "stepping": stepping,
                "step_mode": mode.value,
                "armed": monitor.armed,
                "status": monitor.status.value,
                "dwell_sec": monitor.dwell_accumulator_sec,
                "freq_diff_hz": report.freq_diff_hz,
                "voltage_diff_pu": max((d.voltage_diff_pu for d in report.phases), default=0.0),
                "magnitude_diff_pu": max((d.magnitude_diff_pu for d in report.phases), default=0.0),
                "angle_diff_deg": max((d.angle_diff_deg for d in report.phases), default=0.0),
                "switch_status": switch.status.value,
            }
        )

    frame = pd.DataFrame.from_records(records)
    spans = _spans(frame["time_s"].to_numpy(), (frame["step_mode"] == StepMode.REQUEST_FINE_STEP.value).to_numpy())
    return ReplayResult(frame=frame, closed_at=monitor.closed_at, strict=monitor.strict, fine_step_spans=spans)
