from __future__ import annotations

from types import SimpleNamespace

import pytest

from sync_sentinel.config import settings
from sync_sentinel.devices import Phase, SwitchStatus
from sync_sentinel.errors import SwitchCommandError, SyncSetupError
from sync_sentinel.monitor.sync_check import MonitorStatus, SyncCheck
from sync_sentinel.monitor.trigger import StepMode
from sync_sentinel.tolerance.config import MetricMode, ToleranceConfig


def armed_config(**kw) -> ToleranceConfig:
    base = dict(armed=True, frequency_tolerance_hz=0.01, dwell_period_sec=1.2)
    base.update(kw)
    return ToleranceConfig(**base)


# -------------------------
# Setup
# -------------------------
def test_default_config_starts_disarmed(make_switch):
    mon = SyncCheck(make_switch())
    assert mon.armed is False
    assert mon.status == MonitorStatus.DISARMED
    assert mon.bus_pair.nominal_voltage == 7200.0


def test_armed_on_closed_switch_is_force_disarmed(make_switch):
    sw = make_switch()
    sw.status = SwitchStatus.CLOSED
    mon = SyncCheck(sw, armed_config())
    assert mon.armed is False
    assert mon.postsync(0.0) == StepMode.STAY_EVENT_DRIVEN
    assert sw.close_count == 0


def test_missing_switch_is_fatal():
    with pytest.raises(SyncSetupError):
        SyncCheck(None, armed_config())


def test_missing_bus_is_fatal(make_switch):
    sw = make_switch()
    sw.to_bus = None
    with pytest.raises(SyncSetupError):
        SyncCheck(sw, armed_config())


def test_inconsistent_nominal_voltages_are_fatal(make_switch):
    with pytest.raises(SyncSetupError):
        SyncCheck(make_switch(nominal_from=7200.0, nominal_to=7500.0), armed_config())


def test_nominal_voltages_within_tolerance_are_averaged(make_switch):
    mon = SyncCheck(make_switch(nominal_from=7200.0, nominal_to=7250.0), armed_config())
    assert mon.bus_pair.nominal_voltage == pytest.approx(7225.0)


def test_missing_phase_voltage_only_matters_for_present_phases():
    def bus():
        return SimpleNamespace(name="b", nominal_voltage=240.0, frequency_hz=60.0, voltage_A=240 + 0j, voltage_C=0j)

    sw = SimpleNamespace(name="s", phases="AC", status=SwitchStatus.OPEN, from_bus=bus(), to_bus=bus())
    mon = SyncCheck(sw, armed_config())
    assert mon.active_phases == Phase.A | Phase.C

    sw_abc = SimpleNamespace(name="s", phases="ABC", status=SwitchStatus.OPEN, from_bus=bus(), to_bus=bus())
    with pytest.raises(SyncSetupError):
        SyncCheck(sw_abc, armed_config())


def test_non_numeric_frequency_is_fatal(make_switch):
    sw = make_switch()
    sw.from_bus.frequency_hz = "sixty"
    with pytest.raises(SyncSetupError):
        SyncCheck(sw, armed_config())


def test_unknown_switch_status_is_fatal(make_switch):
    sw = make_switch()
    sw.status = "HALF_OPEN"
    with pytest.raises(SyncSetupError):
        SyncCheck(sw, armed_config())


def test_switch_without_phases_is_fatal(make_switch):
    with pytest.raises(SyncSetupError):
        SyncCheck(make_switch(phases=Phase(0)), armed_config())


# -------------------------
# Dwell and closing
# -------------------------
def test_closes_after_two_compliant_one_second_intervals(make_switch):
    sw = make_switch(f_to=60.005)
    mon = SyncCheck(sw, armed_config(fine_step_capable=False))

    # Check at the arming instant observes no time yet
    mon.postsync(0.0)
    assert mon.last_verdict is True
    assert mon.dwell_accumulator_sec == 0.0
    assert mon.status == MonitorStatus.ARMED_IDLE

    mon.postsync(1.0)
    assert mon.dwell_accumulator_sec == 1.0
    assert mon.status == MonitorStatus.ARMED_ACCUMULATING
    assert sw.status == SwitchStatus.OPEN

    mon.postsync(2.0)
    assert sw.status == SwitchStatus.CLOSED
    assert sw.close_count == 1
    assert mon.closed_at == 2.0


def test_self_disarms_after_close(make_switch):
    sw = make_switch()
    mon = SyncCheck(sw, armed_config(fine_step_capable=False))
    for t in (0.0, 1.0, 2.0):
        mon.postsync(t)

    assert mon.armed is False
    assert mon.status == MonitorStatus.CLOSED
    assert mon.dwell_accumulator_sec == 0.0

    # Still compliant, but no further close command
    for t in (3.0, 4.0, 5.0):
        assert mon.postsync(t) == StepMode.STAY_EVENT_DRIVEN
    assert mon.interupdate(0.01, 0) == StepMode.STAY_EVENT_DRIVEN
    assert sw.close_count == 1


def test_failing_tick_resets_accumulator(make_switch):
    sw = make_switch()
    mon = SyncCheck(sw, armed_config(dwell_period_sec=2.5, fine_step_capable=False))

    for t in (0.0, 1.0, 2.0):
        mon.postsync(t)
    assert mon.dwell_accumulator_sec == 2.0

    sw.to_bus.frequency_hz = 60.5
    mon.postsync(3.0)
    assert mon.dwell_accumulator_sec == 0.0
    assert mon.status == MonitorStatus.ARMED_IDLE

    sw.to_bus.frequency_hz = 60.0
    mon.postsync(4.0)
    assert mon.dwell_accumulator_sec == 1.0
    assert sw.status == SwitchStatus.OPEN


def test_coarse_checks_run_once_per_second(make_switch):
    sw = make_switch()
    mon = SyncCheck(sw, armed_config(dwell_period_sec=10.0, fine_step_capable=False))
    mon.postsync(0.0)
    mon.postsync(0.25)
    mon.postsync(0.5)
    assert mon.dwell_accumulator_sec == 0.0
    mon.postsync(1.0)
    assert mon.dwell_accumulator_sec == 1.0
    mon.postsync(1.5)
    mon.postsync(2.0)
    assert mon.dwell_accumulator_sec == 2.0


def test_rejected_close_command_propagates(make_switch):
    sw = make_switch()
    sw.accepts_commands = False
    mon = SyncCheck(sw, armed_config(fine_step_capable=False))
    mon.postsync(0.0)
    mon.postsync(1.0)
    with pytest.raises(SwitchCommandError):
        mon.postsync(2.0)
    assert mon.armed is True
    assert sw.status == SwitchStatus.OPEN


def test_never_closes_before_dwell_period_observed(make_switch):
    sw = make_switch()
    mon = SyncCheck(sw, armed_config(dwell_period_sec=1.2))

    assert mon.postsync(0.0) == StepMode.REQUEST_FINE_STEP
    assert mon.dwell_accumulator_sec == 0.0

    for _ in range(200):
        mon.interupdate(0.01, 0)
        if sw.status == SwitchStatus.CLOSED:
            break
        assert mon.clock < 1.2

    assert sw.status == SwitchStatus.CLOSED
    assert mon.closed_at >= 1.2
    assert mon.closed_at == pytest.approx(1.2, abs=0.011)


def test_arming_mid_run_credits_no_time_before_arming(make_switch):
    sw = make_switch()
    mon = SyncCheck(sw, armed_config(armed=False, fine_step_capable=False))
    mon.postsync(5.0)

    assert mon.arm() is True
    mon.postsync(5.0)
    assert mon.last_verdict is True
    assert mon.dwell_accumulator_sec == 0.0

    mon.postsync(6.0)
    assert mon.dwell_accumulator_sec == 1.0
    assert sw.status == SwitchStatus.OPEN


# -------------------------
# Fine stepping
# -------------------------
def test_fine_substeps_accumulate_sub_second_dwell(make_switch):
    sw = make_switch()
    mon = SyncCheck(sw, armed_config(dwell_period_sec=0.3))

    assert mon.postsync(0.0) == StepMode.REQUEST_FINE_STEP
    assert mon.dwell_accumulator_sec == 0.0

    assert mon.interupdate(0.125, 0) == StepMode.REQUEST_FINE_STEP
    assert mon.dwell_accumulator_sec == 0.125

    # Only iteration 0 of the pre-update pass does work
    mon.interupdate(0.125, 1)
    mon.interupdate(0.125, 0, post_pass=True)
    assert mon.dwell_accumulator_sec == 0.125

    assert mon.interupdate(0.125, 0) == StepMode.REQUEST_FINE_STEP
    assert mon.dwell_accumulator_sec == 0.25
    assert sw.status == SwitchStatus.OPEN

    assert mon.interupdate(0.125, 0) == StepMode.STAY_EVENT_DRIVEN
    assert sw.status == SwitchStatus.CLOSED
    assert mon.closed_at == 0.375


def test_relaxed_band_requests_fine_step_without_accumulating(make_switch):
    sw = make_switch(f_to=60.015)
    mon = SyncCheck(sw, armed_config())
    assert mon.postsync(0.0) == StepMode.REQUEST_FINE_STEP
    assert mon.fine_step_requested is True
    assert mon.last_verdict is False
    assert mon.dwell_accumulator_sec == 0.0

    sw.to_bus.frequency_hz = 60.025
    assert mon.interupdate(0.05, 0) == StepMode.STAY_EVENT_DRIVEN
    assert mon.fine_step_requested is False


def test_outside_relaxed_band_stays_event_driven(make_switch):
    mon = SyncCheck(make_switch(f_to=60.03), armed_config())
    assert mon.postsync(0.0) == StepMode.STAY_EVENT_DRIVEN


def test_object_not_capable_never_requests_fine_step(make_switch):
    mon = SyncCheck(make_switch(f_to=60.015), armed_config(fine_step_capable=False))
    assert mon.is_registered is False
    assert mon.postsync(0.0) == StepMode.STAY_EVENT_DRIVEN


def test_module_without_fine_stepping_never_requests(make_switch, monkeypatch):
    monkeypatch.setattr(settings, "fine_step_enabled", False)
    mon = SyncCheck(make_switch(f_to=60.015), armed_config())
    assert mon.is_registered is False
    assert mon.postsync(0.0) == StepMode.STAY_EVENT_DRIVEN


def test_strict_pass_always_comes_with_fine_step_request(make_switch):
    sw = make_switch()
    mon = SyncCheck(sw, armed_config(dwell_period_sec=1000.0))
    t = 0.0
    for df in [0.0, 0.005, 0.0099, 0.01, 0.012, 0.019, 0.02, 0.021, 0.04, 0.0]:
        sw.to_bus.frequency_hz = 60.0 + df
        mode = mon.postsync(t)
        if mon.last_verdict:
            assert mode == StepMode.REQUEST_FINE_STEP
        t += 1.0


# -------------------------
# External arming
# -------------------------
def test_disarm_halts_and_resets(make_switch):
    sw = make_switch()
    mon = SyncCheck(sw, armed_config(dwell_period_sec=5.0))
    mon.postsync(0.0)
    mon.postsync(1.0)
    assert mon.dwell_accumulator_sec == 1.0

    mon.disarm()
    assert mon.dwell_accumulator_sec == 0.0
    assert mon.status == MonitorStatus.DISARMED
    assert mon.interupdate(0.1, 0) == StepMode.STAY_EVENT_DRIVEN
    assert mon.postsync(2.0) == StepMode.STAY_EVENT_DRIVEN
    assert mon.dwell_accumulator_sec == 0.0


def test_rearm_requires_open_switch(make_switch):
    sw = make_switch()
    mon = SyncCheck(sw, armed_config(fine_step_capable=False))
    for t in (0.0, 1.0, 2.0):
        mon.postsync(t)
    assert sw.status == SwitchStatus.CLOSED

    assert mon.arm() is False
    assert mon.armed is False

    sw.open()
    assert mon.arm() is True
    assert mon.status == MonitorStatus.ARMED_IDLE

    # Evaluates on the next coarse pass, crediting only time since arming at t=2
    mon.postsync(2.5)
    assert mon.dwell_accumulator_sec == 0.5
    mon.postsync(3.5)
    assert sw.close_count == 2
    assert mon.closed_at == 3.5


# -------------------------
# Runtime configuration
# -------------------------
def test_set_trigger_multiplier_recomputes_relaxed_band(make_switch):
    mon = SyncCheck(make_switch(), armed_config())
    mon.set_trigger_multiplier(3.0)
    assert mon.relaxed.frequency_hz == pytest.approx(0.03)

    mon.set_trigger_multiplier(0.5)
    assert mon.relaxed.frequency_hz == pytest.approx(0.02)


def test_set_mode_changes_voltage_metric(make_switch):
    sw = make_switch(angle_to=4.0)
    mon = SyncCheck(sw, armed_config(dwell_period_sec=100.0, fine_step_capable=False))
    mon.postsync(0.0)
    assert mon.last_verdict is False

    mon.set_mode(MetricMode.SEP_DIFF)
    mon.postsync(1.0)
    assert mon.last_verdict is True


def test_set_trigger_multiplier_rejects_non_finite(make_switch):
    mon = SyncCheck(make_switch(), armed_config())
    mon.set_trigger_multiplier(float("inf"))
    assert mon.config.trigger_multiplier == 2.0
    assert mon.relaxed.frequency_hz == pytest.approx(0.02)

    mon.set_trigger_multiplier(float("nan"))
    assert mon.relaxed.frequency_hz == pytest.approx(0.02)
