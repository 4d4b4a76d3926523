"""
Protocol Records

Typed records exchanged between a device runner and the supervisor, plus the
device and disposition values they carry.  Each record type maps to exactly
one line type of the status protocol (see :mod:`drivewipe.protocol.codec`).
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional, Tuple, Union


class WipeState(Enum):
    """Whether the device's data was destroyed before the run ended."""
    WIPED = 'Wiped'
    UNWIPED = 'Unwiped'


class Destination(Enum):
    """
    Physical handling of a device after its run.

    Each member carries the label color and the action text shown to the
    operator.
    """
    KEEP = ('Green', 'Mark with green dot for reuse')
    DESTROY = ('Red', 'Mark with large X for destruction')
    HARVEST = ('Yellow', 'Mark with small H for controller harvest')

    def __init__(self, color: str, action: str):
        self.color = color
        self.action = action

    @classmethod
    def from_color(cls, color: str) -> 'Destination':
        for member in cls:
            if member.color == color:
                return member
        raise ValueError(f"Unknown destination color: {color!r}")


@dataclass(frozen=True)
class Disposition:
    """Terminal verdict of a runner."""
    wipe_state: WipeState
    destination: Destination
    reason: str

    def __str__(self) -> str:
        return f"{self.wipe_state.value}/{self.destination.name.title()}: {self.reason}"


@dataclass(frozen=True)
class DeviceInfo:
    """
    Identity of a device under test.

    Attributes:
        name:   Kernel name, e.g. ``sda``.
        model:  Product string reported by the device.
        serial: Serial number reported by the device.
        size:   Capacity in bytes.
    """
    name: str
    model: str = 'Unknown'
    serial: str = 'Unknown'
    size: int = 0

    @property
    def path(self) -> str:
        return f"/dev/{self.name}"


# ---------------------------------------------------------------------------
# Line records
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class DeviceLine:
    model: str
    serial: str
    size: int


@dataclass(frozen=True)
class PlanLine:
    codes: Tuple[str, ...]


@dataclass(frozen=True)
class TestLine:
    """A test is starting.  ``total`` is None while the plan is unknown."""
    __test__ = False

    description: str
    code: str
    sequence: int
    total: Optional[int] = None

    @property
    def count(self) -> str:
        return f"{self.sequence}/{'?' if self.total is None else self.total}"


@dataclass(frozen=True)
class ProgressLine:
    """Progress of the current test as a percentage with two decimals."""
    percent: float

    @classmethod
    def from_fraction(cls, fraction: float) -> 'ProgressLine':
        fraction = min(max(fraction, 0.0), 1.0)
        return cls(round(fraction * 100, 2))


@dataclass(frozen=True)
class ResultLine:
    passed: bool
    exit_status: int
    started_at: datetime
    finished_at: datetime


@dataclass(frozen=True)
class CompleteLine:
    disposition: Disposition


Record = Union[DeviceLine, PlanLine, TestLine, ProgressLine, ResultLine, CompleteLine]
