"""
Wipe Runner Controller

Runs the test sequence against one device, streams status records to the
supervisor and decides what happens to the device physically.

Decision tree:

    SM (1/?) -- command line error ------------> CommandLineError
             -- no SMART support --> SM, BB, PT, FM
             -- health failure ----------------> Unwiped / Harvest
             -- ok -----------------> SM, ST, BB, SM, PT, FM

A failure on the non-SMART path sends the device to destruction; on the
SMART path it goes to harvest, since the controller board is still good.
"""

import enum
import time
from typing import Any, Callable, Dict, Optional, Sequence

from drivewipe.exceptions import CommandLineError, PublishError
from drivewipe.logger import get_module_logger, log_result, log_section
from drivewipe.protocol.records import (
    CompleteLine,
    Destination,
    DeviceInfo,
    DeviceLine,
    Disposition,
    PlanLine,
    ProgressLine,
    ResultLine,
    TestLine,
    WipeState,
)
from .diagnostics import TEST_METADATA, Diagnostic, TestKind, create_test
from .publisher import NullResultPublisher, ResultPublisher, TestReport
from .results import TestResult

logger = get_module_logger(__name__)


class RunnerState(enum.Enum):
    PROBING_SMART = 'probing_smart'
    NON_SMART_PATH = 'non_smart_path'
    SMART_PATH = 'smart_path'
    COMPLETE = 'complete'


NON_SMART_PLAN = (
    TestKind.SMART,
    TestKind.SURFACE_SCAN,
    TestKind.PARTITION,
    TestKind.FORMAT,
)

SMART_PLAN = (
    TestKind.SMART,
    TestKind.SELF_TEST,
    TestKind.SURFACE_SCAN,
    TestKind.SMART,
    TestKind.PARTITION,
    TestKind.FORMAT,
)


class TestRunner:
    """
    Per-device test sequencer.

    Args:
        device:       Device under test.
        config:       Runner configuration (see :class:`WipeConfig`).
        output:       Record sink, normally a :class:`ProtocolWriter` on stdout.
        publisher:    Where each finished test is reported.
        test_factory: Builds a test for a :class:`TestKind`.
        sleep:        Called with the poll interval between polls.

    Example:
        >>> runner = TestRunner(device, WipeConfig.build(dummy=True),
        ...                     ProtocolWriter(sys.stdout))
        >>> disposition = runner.run()
        >>> disposition.destination
        <Destination.KEEP: ('Green', 'Mark with green dot for reuse')>
    """

    __test__ = False

    def __init__(
        self,
        device: DeviceInfo,
        config: Dict[str, Any],
        output,
        publisher: Optional[ResultPublisher] = None,
        test_factory: Callable[[TestKind, DeviceInfo, Dict[str, Any]], Diagnostic] = create_test,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.device = device
        self.config = config
        self._output = output
        self._publisher = publisher or NullResultPublisher()
        self._test_factory = test_factory
        self._sleep = sleep
        self._state = RunnerState.PROBING_SMART
        self._disposition: Optional[Disposition] = None

    @property
    def state(self) -> RunnerState:
        return self._state

    @property
    def disposition(self) -> Optional[Disposition]:
        return self._disposition

    # ------------------------------------------------------------------
    # Public interface
    # ------------------------------------------------------------------

    def run(self) -> Disposition:
        """
        Run the whole sequence and emit the Complete record.

        Returns:
            The device's disposition (the same one sent on the Complete line).

        Raises:
            CommandLineError: If smartctl rejects its arguments.
            SpawnError: If a test program cannot be started.
        """
        if self._state is not RunnerState.PROBING_SMART:
            raise RuntimeError("TestRunner.run() may only be called once")

        log_section(f"Wipe {self.device.path} (run {self.config['run_id']})")
        self._output.write(DeviceLine(self.device.model, self.device.serial, self.device.size))

        probe = self.run_test(TestKind.SMART, 1)
        if probe.command_line_error:
            raise CommandLineError(
                f"smartctl rejected its command line for {self.device.path} "
                f"(exit status {probe.exit_status})"
            )

        if probe.smart_unsupported:
            logger.info(f"{self.device.name}: SMART not supported, using plain test plan")
            disposition = self._run_non_smart()
        elif probe.smart_health_failure:
            disposition = Disposition(WipeState.UNWIPED, Destination.HARVEST, 'SMART Failure')
        else:
            disposition = self._run_smart()
        return self._complete(disposition)

    def run_test(self, kind: TestKind, sequence: int, total: Optional[int] = None) -> TestResult:
        """
        Run one test to completion, streaming its progress, and publish
        the result.
        """
        test = self._test_factory(kind, self.device, self.config)
        line = TestLine(test.description, test.code, sequence, total)
        logger.info(f"{self.device.name}: starting {test.description} ({line.count})")
        self._output.write(line)

        fraction = test.start()
        self._output.write(ProgressLine(0.0))
        while fraction < 1:
            fraction = test.poll()
            self._output.write(ProgressLine.from_fraction(fraction))
            self._sleep(self.config['poll_interval_seconds'])

        result = test.finish()
        self._output.write(ResultLine(
            passed=result.passed,
            exit_status=result.exit_status,
            started_at=result.started_at,
            finished_at=result.finished_at,
        ))
        log_result(result.passed, f"{self.device.name}: {test.description} ({line.count}) "
                                  f"exit status {result.exit_status}")
        self._publish(TestReport(
            device=self.device,
            name=test.description,
            code=test.code,
            count=line.count,
            run_id=self.config['run_id'],
            result=result,
        ))
        return result

    # ------------------------------------------------------------------
    # Decision paths
    # ------------------------------------------------------------------

    def _run_non_smart(self) -> Disposition:
        self._state = RunnerState.NON_SMART_PATH
        self._write_plan(NON_SMART_PLAN)
        total = len(NON_SMART_PLAN)

        if not self.run_test(TestKind.SURFACE_SCAN, 2, total).passed:
            return Disposition(WipeState.UNWIPED, Destination.DESTROY, 'Badblocks failure')
        if not self.run_test(TestKind.PARTITION, 3, total).passed:
            return Disposition(WipeState.WIPED, Destination.DESTROY, 'Partitioning failure')
        if not self.run_test(TestKind.FORMAT, 4, total).passed:
            return Disposition(WipeState.WIPED, Destination.DESTROY, 'Formatting failure')
        return Disposition(WipeState.WIPED, Destination.KEEP, 'No errors')

    def _run_smart(self) -> Disposition:
        self._state = RunnerState.SMART_PATH
        self._write_plan(SMART_PLAN)
        total = len(SMART_PLAN)

        if self.config['dummy']:
            logger.info(f"{self.device.name}: dummy run, skipping SMART self-test")
        elif self.run_test(TestKind.SELF_TEST, 2, total).smart_health_failure:
            return Disposition(WipeState.UNWIPED, Destination.HARVEST, 'SMART Self-test Failure')

        if not self.run_test(TestKind.SURFACE_SCAN, 3, total).passed:
            return Disposition(WipeState.UNWIPED, Destination.HARVEST, 'Badblock failure')
        if self.run_test(TestKind.SMART, 4, total).smart_health_failure:
            return Disposition(WipeState.WIPED, Destination.HARVEST, 'SMART Failure')
        if not self.run_test(TestKind.PARTITION, 5, total).passed:
            return Disposition(WipeState.WIPED, Destination.HARVEST, 'Partitioning failure')
        if not self.run_test(TestKind.FORMAT, 6, total).passed:
            return Disposition(WipeState.WIPED, Destination.HARVEST, 'Formatting failure')
        return Disposition(WipeState.WIPED, Destination.KEEP, 'No errors')

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _write_plan(self, plan: Sequence[TestKind]) -> None:
        self._output.write(PlanLine(tuple(TEST_METADATA[kind].code for kind in plan)))

    def _complete(self, disposition: Disposition) -> Disposition:
        self._output.write(CompleteLine(disposition))
        self._state = RunnerState.COMPLETE
        self._disposition = disposition
        logger.info(f"{self.device.name}: {disposition} - {disposition.destination.action}")
        return disposition

    def _publish(self, report: TestReport) -> None:
        try:
            self._publisher.publish(report)
        except PublishError as e:
            logger.error(f"{self.device.name}: {e}")
