"""
Test Results

Result of one diagnostic test and the interpretation of smartctl's exit
status bits.
"""

import enum
from dataclasses import dataclass, field
from datetime import datetime

from drivewipe.logger import get_module_logger

logger = get_module_logger(__name__)


def now() -> datetime:
    """Current local time, timezone-aware."""
    return datetime.now().astimezone()


class SmartFlag(enum.IntFlag):
    """
    smartctl exit status bits (see smartctl(8), RETURN VALUES).

    Bit 6 (ERROR_LOG) belongs to none of the named groups: entries in the
    device error log alone never fail a device.
    """
    NONE = 0
    COMMAND_LINE = 1 << 0   # Command line did not parse
    IDENTIFY = 1 << 1       # Device open failed or no IDENTIFY DEVICE structure
    CHECKSUM = 1 << 2       # SMART command failed or checksum error in SMART data
    DISK_FAILING = 1 << 3   # SMART status check returned "DISK FAILING"
    PREFAIL = 1 << 4        # Prefail attributes <= threshold
    PAST_PREFAIL = 1 << 5   # Attributes <= threshold at some time in the past
    ERROR_LOG = 1 << 6      # Device error log contains records of errors
    SELF_TEST_LOG = 1 << 7  # Self-test log contains records of errors

    @classmethod
    def from_exit_status(cls, exit_status: int) -> 'SmartFlag':
        """
        Decode an exit status.  A process killed by a signal has no exit
        bits; that unknown outcome is reported as DISK_FAILING so the device
        is never passed on it.
        """
        if exit_status < 0:
            logger.warning(f"smartctl killed by signal {-exit_status}; treating as DISK FAILING")
            return cls.DISK_FAILING
        return cls(exit_status & 0xFF)


# Device does not support or does not return SMART data
SMART_NOT_SUPPORTED = SmartFlag.IDENTIFY | SmartFlag.CHECKSUM

# Device reports a health problem
SMART_HEALTH_FAILURE = (
    SmartFlag.DISK_FAILING | SmartFlag.PREFAIL
    | SmartFlag.PAST_PREFAIL | SmartFlag.SELF_TEST_LOG
)

# Any bit that makes a SMART diagnostic fail
SMART_FAILED = SMART_NOT_SUPPORTED | SMART_HEALTH_FAILURE


@dataclass(frozen=True)
class TestResult:
    """
    Outcome of one test.

    Attributes:
        exit_status: Raw exit status of the process (negative if killed).
        passed:      Derived verdict; see the producing test for its rule.
        out:         Captured stdout text.
        err:         Captured stderr text.
        started_at:  When the test was started.
        finished_at: When the process was reaped.
    """
    __test__ = False

    exit_status: int
    passed: bool
    out: str = ''
    err: str = ''
    started_at: datetime = field(default_factory=now)
    finished_at: datetime = field(default_factory=now)

    @property
    def flags(self) -> SmartFlag:
        return SmartFlag.from_exit_status(self.exit_status)

    # smartctl interpretation helpers, named after the exit bits

    @property
    def command_line_error(self) -> bool:
        return bool(self.flags & SmartFlag.COMMAND_LINE)

    @property
    def smart_unsupported(self) -> bool:
        return bool(self.flags & SMART_NOT_SUPPORTED)

    @property
    def smart_health_failure(self) -> bool:
        return bool(self.flags & SMART_HEALTH_FAILURE)


def smart_passed(exit_status: int) -> bool:
    """True iff none of the SMART_FAILED bits is set."""
    return not SmartFlag.from_exit_status(exit_status) & SMART_FAILED


def exit_passed(exit_status: int) -> bool:
    return exit_status == 0
