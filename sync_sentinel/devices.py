from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, IntFlag
from typing import Optional, Protocol

from sync_sentinel.errors import SwitchCommandError


class Phase(IntFlag):
    A = 1
    B = 2
    C = 4

    @classmethod
    def parse(cls, text: str) -> "Phase":
        """'ABC' -> A|B|C, 'AC' -> A|C. Case-insensitive, ignores spaces/commas."""
        out = cls(0)
        for ch in str(text).upper():
            if ch in (" ", ",", "N"):
                continue
            if ch not in cls.__members__:
                raise ValueError(f"Unknown phase '{ch}' in '{text}'. Use a subset of 'ABC'.")
            out |= cls[ch]
        return out


PHASE_ORDER = (Phase.A, Phase.B, Phase.C)


def phase_names(phases: Phase) -> list[str]:
    return [p.name for p in PHASE_ORDER if p in phases]


class SwitchStatus(str, Enum):
    OPEN = "OPEN"
    CLOSED = "CLOSED"


class Bus(Protocol):
    name: str
    nominal_voltage: float
    frequency_hz: float
    voltage_A: complex
    voltage_B: complex
    voltage_C: complex


class Switch(Protocol):
    name: str
    phases: Phase
    status: SwitchStatus
    from_bus: Optional[Bus]
    to_bus: Optional[Bus]

    def close(self) -> None: ...


@dataclass
class SimBus:
    """In-memory bus whose values are written by a solver, a trace or a test."""
    name: str
    nominal_voltage: float
    frequency_hz: float = 60.0
    voltage_A: complex = 0j
    voltage_B: complex = 0j
    voltage_C: complex = 0j

    def set_voltages(self, a: complex, b: complex, c: complex) -> None:
        self.voltage_A = complex(a)
        self.voltage_B = complex(b)
        self.voltage_C = complex(c)


@dataclass
class SimSwitch:
    name: str
    from_bus: Optional[SimBus]
    to_bus: Optional[SimBus]
    phases: Phase = Phase.A | Phase.B | Phase.C
    status: SwitchStatus = SwitchStatus.OPEN

    # When False, status commands are refused (e.g. a locked-out breaker)
    accepts_commands: bool = True
    close_count: int = 0

    def close(self) -> None:
        if not self.accepts_commands:
            raise SwitchCommandError(f"switch {self.name} refused the CLOSE command")
        self.status = SwitchStatus.CLOSED
        self.close_count += 1

    def open(self) -> None:
        if not self.accepts_commands:
            raise SwitchCommandError(f"switch {self.name} refused the OPEN command")
        self.status = SwitchStatus.OPEN
