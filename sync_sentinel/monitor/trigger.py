from __future__ import annotations

from enum import Enum

from sync_sentinel.devices import Phase
from sync_sentinel.measure.snapshot import MeasurementSnapshot
from sync_sentinel.metrics.evaluator import evaluate
from sync_sentinel.tolerance.config import MetricMode, Tolerances


class StepMode(str, Enum):
    STAY_EVENT_DRIVEN = "STAY_EVENT_DRIVEN"
    REQUEST_FINE_STEP = "REQUEST_FINE_STEP"


class StepModeTrigger:
    """
    Recommends fine stepping while the buses sit inside the relaxed band.
    It only ever asserts a need; the scheduler decides when to go coarse again.
    An unregistered trigger still evaluates but never asks for fine steps.
    """

    def __init__(self, relaxed: Tolerances, active_phases: Phase, registered: bool = True):
        self.relaxed = relaxed
        self.active_phases = active_phases
        self.registered = registered
        self.in_band = False

    @property
    def requested(self) -> bool:
        return self.registered and self.in_band

    @property
    def step_mode(self) -> StepMode:
        return StepMode.REQUEST_FINE_STEP if self.requested else StepMode.STAY_EVENT_DRIVEN

    def check(self, snapshot: MeasurementSnapshot, mode: MetricMode) -> StepMode:
        self.in_band = evaluate(snapshot, self.relaxed, mode, self.active_phases)
        return self.step_mode

    def release(self) -> None:
        self.in_band = False
