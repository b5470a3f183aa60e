from __future__ import annotations

import math
from enum import Enum
from typing import Optional

from sync_sentinel.config import settings
from sync_sentinel.devices import Phase, Switch, SwitchStatus, phase_names
from sync_sentinel.errors import SyncSetupError
from sync_sentinel.measure.snapshot import BusPair, MeasurementSnapshot
from sync_sentinel.metrics.evaluator import evaluate
from sync_sentinel.monitor.dwell import DwellTimer
from sync_sentinel.monitor.trigger import StepMode, StepModeTrigger
from sync_sentinel.tolerance.config import (
    MetricMode,
    ToleranceConfig,
    Tolerances,
    relaxed_tolerances,
    resolve_config,
    strict_tolerances,
)
from sync_sentinel.tolerance.defaults import DEFAULTS
from sync_sentinel.utils.logging import event, info, warn


class MonitorStatus(str, Enum):
    DISARMED = "DISARMED"
    ARMED_IDLE = "ARMED_IDLE"
    ARMED_ACCUMULATING = "ARMED_ACCUMULATING"
    CLOSED = "CLOSED"


class SyncCheck:
    """
    Synchronization check attached to one open tie switch.

    Every evaluation tick while armed:
      - refresh the snapshot of both buses
      - relaxed-band check -> fine-step recommendation for the scheduler
      - strict check -> dwell timer; close the switch once the dwell period is met

    After closing the switch the monitor disarms itself; it must be re-armed
    explicitly (and only while the switch is open) to act again.

    Scheduler entry points:
      postsync(t)                      late pass of a coarse step
      interupdate(dt, iteration, ...)  one fine sub-step
    Both return a StepMode.
    """

    def __init__(
        self,
        switch: Switch,
        config: Optional[ToleranceConfig] = None,
        name: str = "Unnamed",
        start_time: float = 0.0,
    ):
        self.name = name
        self.label = f"sync_check:{name}"

        if switch is None:
            raise SyncSetupError(f"{self.label} the parent switch must be specified!")
        self.switch = switch

        self.config = resolve_config(
            config if config is not None else ToleranceConfig(),
            settings.nominal_frequency_hz,
            self.label,
        )

        initial_status = self._switch_status()
        self._armed = bool(self.config.armed)
        if self._armed and initial_status != SwitchStatus.OPEN:
            self._armed = False
            self.config = self.config.model_copy(update={"armed": False})
            warn(f"{self.label} the parent switch is starting CLOSED, so the sync_check object is disarmed!")

        self.active_phases = self._read_phases()
        self.bus_pair = BusPair.resolve(switch, self.active_phases, self.config.voltage_tolerance_pu, self.label)
        self.is_registered = self._check_fine_step_registration()

        self.strict = strict_tolerances(self.config)
        self.trigger = StepModeTrigger(relaxed_tolerances(self.config), self.active_phases, self.is_registered)
        self.dwell = DwellTimer(self.config.dwell_period_sec)

        self.clock = float(start_time)
        self.next_trigger_time = float(start_time)
        # Dwell only counts time observed since arming
        self.last_evaluation_time: Optional[float] = self.clock if self._armed else None
        self.last_snapshot: Optional[MeasurementSnapshot] = None
        self.last_verdict: Optional[bool] = None
        self.closed_at: Optional[float] = None
        self._closed = False

        info(
            f"{self.label} ready: armed={self._armed} mode={self.mode.value} "
            f"phases={''.join(phase_names(self.active_phases))} "
            f"V_nom={self.bus_pair.nominal_voltage:g} V fine_step={'on' if self.is_registered else 'off'}"
        )

    # -------------------------
    # Setup helpers
    # -------------------------
    def _switch_status(self) -> SwitchStatus:
        raw = getattr(self.switch, "status", None)
        try:
            return SwitchStatus(raw)
        except ValueError:
            raise SyncSetupError(f"{self.label} failed to map the switch status property (got {raw!r})") from None

    def _read_phases(self) -> Phase:
        raw = getattr(self.switch, "phases", None)
        if isinstance(raw, Phase):
            phases = raw
        elif isinstance(raw, str):
            phases = Phase.parse(raw)
        elif isinstance(raw, int) and not isinstance(raw, bool):
            phases = Phase(raw & (Phase.A | Phase.B | Phase.C))
        else:
            raise SyncSetupError(f"{self.label} unable to map phases property - ensure the parent is a switch")

        if not phases:
            raise SyncSetupError(f"{self.label} the parent switch has no A/B/C phases to compare")
        return phases

    def _check_fine_step_registration(self) -> bool:
        capable = bool(self.config.fine_step_capable)
        if settings.fine_step_enabled:
            if not capable:
                warn(f"{self.label} - fine stepping is enabled for the module, but not this sync_check object!")
            return capable
        if capable:
            warn(f"{self.label} - fine stepping is enabled for the sync_check object, but not the module!")
        return False

    # -------------------------
    # State
    # -------------------------
    @property
    def armed(self) -> bool:
        return self._armed

    @property
    def mode(self) -> MetricMode:
        return self.config.mode

    @property
    def relaxed(self) -> Tolerances:
        return self.trigger.relaxed

    @property
    def dwell_accumulator_sec(self) -> float:
        return self.dwell.elapsed_sec

    @property
    def fine_step_requested(self) -> bool:
        return self._armed and self.trigger.requested

    @property
    def step_mode(self) -> StepMode:
        if not self._armed:
            return StepMode.STAY_EVENT_DRIVEN
        return self.trigger.step_mode

    @property
    def status(self) -> MonitorStatus:
        if self._armed:
            if self.dwell.elapsed_sec > 0:
                return MonitorStatus.ARMED_ACCUMULATING
            return MonitorStatus.ARMED_IDLE
        if self._closed:
            return MonitorStatus.CLOSED
        return MonitorStatus.DISARMED

    # -------------------------
    # Configuration changes
    # -------------------------
    def arm(self) -> bool:
        if self._switch_status() != SwitchStatus.OPEN:
            warn(f"{self.label} cannot arm: the parent switch is not OPEN.")
            return False
        self._armed = True
        self._closed = False
        self._idle()
        # Evaluate on the very next coarse pass
        self.next_trigger_time = self.clock
        self.last_evaluation_time = self.clock
        info(f"{self.label} armed.")
        return True

    def disarm(self) -> None:
        self._armed = False
        self._idle()
        info(f"{self.label} disarmed.")

    def set_mode(self, mode: MetricMode) -> None:
        self.config = self.config.model_copy(update={"mode": MetricMode(mode)})

    def set_trigger_multiplier(self, multiplier: float) -> None:
        if not (math.isfinite(multiplier) and multiplier > 1.0):
            warn(f"{self.label} - trigger_multiplier was not a finite value above 1.0 - defaulted to {DEFAULTS['TRIGGER_MULT']:.1f}")
            multiplier = DEFAULTS["TRIGGER_MULT"]
        self.config = self.config.model_copy(update={"trigger_multiplier": float(multiplier)})
        self.trigger.relaxed = relaxed_tolerances(self.config)

    # -------------------------
    # Evaluation
    # -------------------------
    def refresh(self) -> MeasurementSnapshot:
        self.last_snapshot = self.bus_pair.capture(self.active_phases)
        return self.last_snapshot

    def _idle(self) -> None:
        self.trigger.release()
        self.dwell.reset()
        self.last_evaluation_time = None

    def _elapsed_since_last(self) -> float:
        if self.last_evaluation_time is None:
            return 0.0
        return max(0.0, self.clock - self.last_evaluation_time)

    def _tick(self, dt_sec: float) -> StepMode:
        snapshot = self.refresh()
        self.trigger.check(snapshot, self.mode)

        self.last_verdict = evaluate(snapshot, self.strict, self.mode, self.active_phases)
        self.last_evaluation_time = self.clock
        if self.dwell.update(self.last_verdict, dt_sec):
            self._close()
        return self.step_mode

    def _close(self) -> None:
        # A refused command propagates; the monitor stays armed in that case
        self.switch.close()

        self.closed_at = self.clock
        self._armed = False
        self._closed = True
        event(
            f"{self.label} closed switch at t={self.clock:.3f}s "
            f"after {self.dwell.elapsed_sec:.3f}s within tolerance; monitor disarmed."
        )
        self._idle()

    def postsync(self, t: float) -> StepMode:
        """Late pass of a coarse step at simulation time t (seconds)."""
        self.clock = float(t)
        if self.clock < self.next_trigger_time:
            return self.step_mode
        self.next_trigger_time = self.clock + settings.trigger_interval_sec

        if not self._armed:
            self._idle()
            return StepMode.STAY_EVENT_DRIVEN

        return self._tick(self._elapsed_since_last())

    def interupdate(self, dt: float, iteration: int, post_pass: bool = False) -> StepMode:
        """
        One fine sub-step of length dt seconds. Work is only done on the
        designated iteration of the pre-update pass; other calls report the
        current recommendation unchanged.
        """
        if post_pass or iteration != settings.fine_step_iteration:
            return self.step_mode

        self.clock += float(dt)
        if not self._armed:
            self._idle()
            return StepMode.STAY_EVENT_DRIVEN

        return self._tick(float(dt))
