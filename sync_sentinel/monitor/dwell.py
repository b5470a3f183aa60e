from __future__ import annotations


class DwellTimer:
    """
    Accumulates continuous compliant time.
    Any non-compliant update drops the accumulator back to exactly zero.
    """

    def __init__(self, period_sec: float):
        self.period_sec = float(period_sec)
        self.elapsed_sec = 0.0

    def reset(self) -> None:
        self.elapsed_sec = 0.0

    def update(self, compliant: bool, dt_sec: float) -> bool:
        """Returns True once the accumulated time reaches the dwell period."""
        if dt_sec < 0:
            raise ValueError(f"dt_sec must be non-negative, got {dt_sec}")
        if compliant:
            self.elapsed_sec += float(dt_sec)
        else:
            self.elapsed_sec = 0.0
        return self.elapsed_sec >= self.period_sec

    @property
    def remaining_sec(self) -> float:
        return max(0.0, self.period_sec - self.elapsed_sec)
