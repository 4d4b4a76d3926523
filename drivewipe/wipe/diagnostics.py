"""
Diagnostic Tests

One class per operation run against a device.  Every test follows the same
contract:

    fraction = test.start()        # spawn, initial progress
    while fraction < 1:
        fraction = test.poll()     # non-blocking
    result = test.finish()         # reap, derive ``passed``

Code and description of each variant come from :data:`TEST_METADATA`.
"""

import codecs
import enum
import re
import time
from dataclasses import replace
from typing import Any, Callable, Dict, List, NamedTuple, Optional

from drivewipe.protocol.records import DeviceInfo
from drivewipe.logger import get_module_logger
from .process_manager import ExternalProcess, ProcessOutput, run_command
from .results import TestResult, exit_passed, now, smart_passed

logger = get_module_logger(__name__)


class TestKind(enum.Enum):
    __test__ = False

    SMART = 'SM'
    SELF_TEST = 'ST'
    SURFACE_SCAN = 'BB'
    PARTITION = 'PT'
    FORMAT = 'FM'


class TestMetadata(NamedTuple):
    __test__ = False

    code: str
    description: str


TEST_METADATA: Dict[TestKind, TestMetadata] = {
    TestKind.SMART: TestMetadata('SM', 'SMART'),
    TestKind.SELF_TEST: TestMetadata('ST', 'SMART short self-test'),
    TestKind.SURFACE_SCAN: TestMetadata('BB', 'Destructive badblocks'),
    TestKind.PARTITION: TestMetadata('PT', 'Partition'),
    TestKind.FORMAT: TestMetadata('FM', 'Format'),
}


class Diagnostic:
    """Base for all tests: device binding and static metadata."""

    kind: TestKind

    def __init__(self, device: DeviceInfo, config: Dict[str, Any]):
        self.device = device
        self.config = config

    @property
    def code(self) -> str:
        return TEST_METADATA[self.kind].code

    @property
    def description(self) -> str:
        return TEST_METADATA[self.kind].description

    def start(self) -> float:
        raise NotImplementedError

    def poll(self) -> float:
        raise NotImplementedError

    def finish(self) -> TestResult:
        raise NotImplementedError


class ProcessDiagnostic(Diagnostic):
    """
    A test backed by one external process.

    Progress is 1.0 once both output streams have closed; subclasses may
    report intermediate progress by setting ``self._progress``.  ``passed``
    is true for exit status 0 unless a subclass overrides :meth:`_passed`.
    """

    def __init__(self, device: DeviceInfo, config: Dict[str, Any]):
        super().__init__(device, config)
        self._process: Optional[ExternalProcess] = None
        self._progress = 0.0
        self._out: List[str] = []
        self._err: List[str] = []
        self._out_decoder = codecs.getincrementaldecoder('utf-8')(errors='replace')
        self._err_decoder = codecs.getincrementaldecoder('utf-8')(errors='replace')
        self._started_at = None

    def command(self) -> List[str]:
        raise NotImplementedError

    def start(self) -> float:
        """
        Spawn the process and return the initial progress.

        Raises:
            SpawnError: If the program cannot be started.
        """
        self._started_at = now()
        self._process = ExternalProcess(self.command()).spawn()
        self._after_spawn()
        return self.poll()

    def poll(self) -> float:
        output = self._process.poll_output()
        self._consume(output)
        if output.closed:
            return 1.0
        return min(max(self._progress, 0.0), 1.0)

    def finish(self) -> TestResult:
        """Wait for the process to exit, reap it and build the result."""
        self._process.close_stdin()
        self._consume(self._process.read_to_eof(), final=True)
        exit_status = self._process.wait()
        return TestResult(
            exit_status=exit_status,
            passed=self._passed(exit_status),
            out=''.join(self._out),
            err=''.join(self._err),
            started_at=self._started_at,
            finished_at=now(),
        )

    # ------------------------------------------------------------------
    # Hooks
    # ------------------------------------------------------------------

    def _after_spawn(self) -> None:
        pass

    def _passed(self, exit_status: int) -> bool:
        return exit_passed(exit_status)

    def _consume_out(self, text: str) -> None:
        self._out.append(text)

    def _consume_err(self, text: str) -> None:
        self._err.append(text)

    def _flush(self) -> None:
        pass

    def _consume(self, output: ProcessOutput, final: bool = False) -> None:
        out = self._out_decoder.decode(output.out, final=final)
        err = self._err_decoder.decode(output.err, final=final)
        if out:
            self._consume_out(out)
        if err:
            self._consume_err(err)
        if final:
            self._flush()


class SurfaceScan(ProcessDiagnostic):
    """
    Destructive read/write scan with badblocks.

    badblocks reports progress per pass, and every write pattern takes a
    write pass followed by a read pass.  The per-pass percentage is rescaled
    to the whole run; a drop below the previous value means a new pass has
    begun.

    Args:
        last_block: Stop after this block (bounded scan), or None for the
                    whole device.
    """

    kind = TestKind.SURFACE_SCAN

    PROGRESS_PATTERN = re.compile(r'(\d+\.\d+)% done,')
    # One full report: "12.34% done, 0:05 elapsed. (0/0/0 errors)" + backspaces
    PROGRESS_REPORT = re.compile(r'\d+\.\d+% done,[^\x08\n]*\x08*')

    def __init__(self, device: DeviceInfo, config: Dict[str, Any],
                 last_block: Optional[int] = None):
        super().__init__(device, config)
        self.last_block = last_block
        self.write_patterns = list(config['write_patterns'])
        self._stage = 1
        self._stage_progress = 0.0
        self._pending_err = ''

    def command(self) -> List[str]:
        args = [self.config['badblocks_path']]
        for pattern in self.write_patterns:
            args += ['-t', pattern]
        args += ['-ws', self.device.path]
        if self.last_block is not None:
            args.append(str(self.last_block))
        return args

    @property
    def stage(self) -> int:
        return self._stage

    def record_progress(self, raw_percent: float) -> float:
        """
        Fold one per-pass percentage into overall progress.

        Returns:
            Overall progress (not clamped).
        """
        passes = len(self.write_patterns) * 2
        stage_portion = raw_percent / (len(self.write_patterns) * 200)
        if stage_portion < self._stage_progress:
            self._stage += 1
            logger.debug(f"{self.device.name}: badblocks pass {self._stage} of {passes}")
        self._stage_progress = stage_portion
        self._progress = stage_portion + (self._stage - 1.0) * (1.0 / passes)
        return self._progress

    def _consume_err(self, text: str) -> None:
        # Only text up to the last backspace or newline is complete
        self._pending_err += text
        cut = max(self._pending_err.rfind('\x08'), self._pending_err.rfind('\n'))
        if cut < 0:
            return
        ready, self._pending_err = self._pending_err[:cut + 1], self._pending_err[cut + 1:]
        self._parse_err(ready)

    def _flush(self) -> None:
        if self._pending_err:
            self._parse_err(self._pending_err)
            self._pending_err = ''

    def _parse_err(self, text: str) -> None:
        for match in self.PROGRESS_PATTERN.finditer(text):
            self.record_progress(float(match.group(1)))
        remainder = self.PROGRESS_REPORT.sub('', text).replace('\x08', '')
        if remainder:
            self._err.append(remainder)


class PartitionTest(ProcessDiagnostic):
    """Create a single bootable FAT partition spanning the disk with sfdisk."""

    kind = TestKind.PARTITION
    SCRIPT = b"0,,b\n"

    def command(self) -> List[str]:
        return [self.config['sfdisk_path'], '-q', self.device.path]

    def _after_spawn(self) -> None:
        self._process.write_stdin(self.SCRIPT)
        self._process.close_stdin()


class FormatTest(ProcessDiagnostic):
    """Create a FAT filesystem on the first partition."""

    kind = TestKind.FORMAT

    def command(self) -> List[str]:
        return [self.config['mkfs_vfat_path'], self.device.path + '1']


class SmartDiagnostic(ProcessDiagnostic):
    """
    Query SMART attributes and health with ``smartctl -a``.

    The exit status is a bit mask (:class:`SmartFlag`); the test passes
    when none of the identify, checksum, failing, prefail, past-prefail or
    self-test-log bits is set.
    """

    kind = TestKind.SMART

    def command(self) -> List[str]:
        return [self.config['smartctl_path'], '-a', self.device.path]

    def _passed(self, exit_status: int) -> bool:
        return smart_passed(exit_status)


class SmartSelfTest(Diagnostic):
    """
    SMART short self-test.

    Starting the self-test is a one-shot command; the drive runs it in the
    background.  Until the drive's own time estimate has passed, progress is
    the elapsed share of that estimate.  Afterwards an embedded
    :class:`SmartDiagnostic` fetches the actual outcome.
    """

    kind = TestKind.SELF_TEST

    WAIT_PATTERN = re.compile(r'Please wait (\d+) minutes for (?:the )?test to complete')
    PENDING_PROGRESS = 0.99

    def __init__(self, device: DeviceInfo, config: Dict[str, Any],
                 clock: Callable[[], float] = time.monotonic):
        super().__init__(device, config)
        self._clock = clock
        self._diagnostic = SmartDiagnostic(device, config)
        self._diagnostic_started = False
        self._trigger_output = ''
        self._started_at = None
        self._start_clock = 0.0
        self.length = float(config['self_test_default_seconds'] + config['self_test_grace_seconds'])

    def estimate_length(self, output: str) -> float:
        """Seconds to wait for the self-test, grace period included."""
        seconds = self.config['self_test_default_seconds']
        m = self.WAIT_PATTERN.search(output)
        if m:
            seconds = int(m.group(1)) * 60
        else:
            logger.warning(
                f"{self.device.name}: no self-test duration in smartctl output, "
                f"assuming {seconds}s"
            )
        return float(seconds + self.config['self_test_grace_seconds'])

    def start(self) -> float:
        self._started_at = now()
        self._start_clock = self._clock()
        result = run_command(
            [self.config['smartctl_path'], '-t', 'short', self.device.path],
            timeout=self.config['command_timeout'],
        )
        if result.exit_status != 0:
            logger.warning(
                f"{self.device.name}: smartctl -t short exited with {result.exit_status}"
            )
        self._trigger_output = result.out
        self.length = self.estimate_length(result.out)
        logger.info(f"{self.device.name}: waiting {self.length:.0f}s for SMART self-test")
        return 0.0

    def poll(self) -> float:
        elapsed = self._clock() - self._start_clock
        if elapsed < self.length:
            return min(elapsed / self.length, self.PENDING_PROGRESS)

        if not self._diagnostic_started:
            self._diagnostic.start()
            self._diagnostic_started = True

        if self._diagnostic.poll() >= 1.0:
            return 1.0
        return self.PENDING_PROGRESS

    def finish(self) -> TestResult:
        if not self._diagnostic_started:
            self._diagnostic.start()
            self._diagnostic_started = True
        result = self._diagnostic.finish()
        return replace(
            result,
            out=self._trigger_output + result.out,
            started_at=self._started_at or result.started_at,
        )


def create_test(kind: TestKind, device: DeviceInfo, config: Dict[str, Any]) -> Diagnostic:
    """
    Build the test for *kind*.  In dummy mode the surface scan is bounded
    to ``dummy_last_block`` blocks.
    """
    if kind is TestKind.SURFACE_SCAN:
        last_block = config['dummy_last_block'] if config['dummy'] else None
        return SurfaceScan(device, config, last_block=last_block)
    if kind is TestKind.SMART:
        return SmartDiagnostic(device, config)
    if kind is TestKind.SELF_TEST:
        return SmartSelfTest(device, config)
    if kind is TestKind.PARTITION:
        return PartitionTest(device, config)
    if kind is TestKind.FORMAT:
        return FormatTest(device, config)
    raise ValueError(f"Unknown test kind: {kind}")
