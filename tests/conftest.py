from __future__ import annotations

import numpy as np
import pandas as pd
import pytest

from sync_sentinel.devices import Phase, SimBus, SimSwitch
from sync_sentinel.measure.snapshot import MeasurementSnapshot, balanced_phasors

V_NOM = 7200.0


@pytest.fixture
def make_switch():
    """Factory for an open three-phase tie switch between two matched buses."""

    def _make(
        f_from: float = 60.0,
        f_to: float = 60.0,
        v_from: float = V_NOM,
        v_to: float = V_NOM,
        angle_to: float = 0.0,
        nominal_from: float = V_NOM,
        nominal_to: float = V_NOM,
        phases: Phase = Phase.A | Phase.B | Phase.C,
    ) -> SimSwitch:
        from_bus = SimBus(name="bus_from", nominal_voltage=nominal_from, frequency_hz=f_from)
        to_bus = SimBus(name="bus_to", nominal_voltage=nominal_to, frequency_hz=f_to)
        from_bus.set_voltages(*balanced_phasors(v_from).values())
        to_bus.set_voltages(*balanced_phasors(v_to, angle_to).values())
        return SimSwitch(name="tie", from_bus=from_bus, to_bus=to_bus, phases=phases)

    return _make


@pytest.fixture
def make_snapshot():
    def _make(
        f_from: float = 60.0,
        f_to: float = 60.0,
        v_from: float = V_NOM,
        v_to: float = V_NOM,
        angle_from: float = 0.0,
        angle_to: float = 0.0,
    ) -> MeasurementSnapshot:
        return MeasurementSnapshot(
            freq_from_hz=f_from,
            freq_to_hz=f_to,
            nominal_voltage=V_NOM,
            volt_from=balanced_phasors(v_from, angle_from),
            volt_to=balanced_phasors(v_to, angle_to),
        )

    return _make


@pytest.fixture
def converging_trace() -> pd.DataFrame:
    """
    Samples every 0.25 s over 6 s. The 'to' side frequency steps in:
      t < 2      0.03 Hz off  (outside both bands)
      2 <= t < 3 0.015 Hz off (inside the 2x relaxed band only)
      t >= 3     0.005 Hz off (inside the strict band)
    Voltages match exactly on all phases.
    """
    times = np.arange(0.0, 6.0 + 1e-9, 0.25)
    freq_to = np.where(times < 2.0, 60.03, np.where(times < 3.0, 60.015, 60.005))
    data = {"time_s": times, "freq_from": 60.0, "freq_to": freq_to}
    for ph, ang in (("A", 0.0), ("B", -120.0), ("C", 120.0)):
        data[f"vmag_from_{ph}"] = V_NOM
        data[f"vang_from_{ph}"] = ang
        data[f"vmag_to_{ph}"] = V_NOM
        data[f"vang_to_{ph}"] = ang
    return pd.DataFrame(data)
