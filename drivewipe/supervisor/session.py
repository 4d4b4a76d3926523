"""
Device Session

Supervisor-side state of one runner: decodes the runner's status stream and
keeps what the operator view needs (device identity, test records, plan,
final disposition).
"""

import enum
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Tuple

from drivewipe.exceptions import ProtocolError
from drivewipe.logger import get_module_logger
from drivewipe.protocol.codec import LineBuffer, decode_line
from drivewipe.protocol.records import (
    CompleteLine,
    DeviceLine,
    Disposition,
    PlanLine,
    ProgressLine,
    Record,
    ResultLine,
    TestLine,
)
from drivewipe.wipe.process_manager import ExternalProcess

logger = get_module_logger(__name__)

BAR_WIDTH = 20


class SessionState(enum.Enum):
    INITIALIZING = 'initializing'
    RUNNING = 'running'
    DONE = 'done'


@dataclass
class TestRecord:
    """One test as seen by the supervisor."""
    __test__ = False

    name: str
    code: str
    sequence: int
    total: Optional[int] = None
    percent: float = 0.0
    passed: Optional[bool] = None
    exit_status: Optional[int] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    @property
    def count(self) -> str:
        return f"{self.sequence}/{'?' if self.total is None else self.total}"

    @property
    def finished(self) -> bool:
        return self.passed is not None


class DeviceSession:
    """
    Decoded state of one device runner.

    Feed it the runner's stdout with :meth:`feed` (or let :meth:`poll` read
    the runner's pipes).  Lines are only decoded once complete, so the
    state does not depend on how the stream was chunked.

    A malformed line, or a record that makes no sense in the current state,
    raises :class:`ProtocolError`; the device's state is then unknown and
    the session stops decoding.

    Args:
        name:              Kernel device name.
        process:           The runner process, if this session owns one.
        stderr_tail_bytes: How much of the runner's stderr to keep.
    """

    def __init__(
        self,
        name: str,
        process: Optional[ExternalProcess] = None,
        stderr_tail_bytes: int = 8192,
    ):
        self.name = name
        self.process = process
        self.stderr_tail_bytes = stderr_tail_bytes

        self.device: Optional[DeviceLine] = None
        self.tests: List[TestRecord] = []
        self.plan: Tuple[str, ...] = ()
        self.disposition: Optional[Disposition] = None
        self.state = SessionState.INITIALIZING
        self.error: Optional[ProtocolError] = None
        self.exit_status: Optional[int] = None

        self._buffer = LineBuffer()
        self._stderr_tail = b''

    # ------------------------------------------------------------------
    # Stream input
    # ------------------------------------------------------------------

    def feed(self, data: bytes) -> List[Record]:
        """
        Buffer *data* and apply every complete line.

        Returns:
            The records decoded from this chunk.

        Raises:
            ProtocolError: On a malformed line or an out-of-order record.
        """
        records = []
        for line in self._buffer.feed(data):
            record = decode_line(line)
            self.apply(record)
            records.append(record)
        return records

    def feed_err(self, data: bytes) -> None:
        """Keep the last ``stderr_tail_bytes`` of the runner's stderr."""
        self._stderr_tail = (self._stderr_tail + data)[-self.stderr_tail_bytes:]

    def close(self) -> None:
        """
        The runner's stdout has ended.

        Raises:
            ProtocolError: If an unterminated line is left in the buffer.
        """
        if self._buffer.pending:
            raise ProtocolError(
                f"{self.name}: stream ended inside a line: {self._buffer.pending!r}"
            )

    def apply(self, record: Record) -> None:
        if self.state is SessionState.DONE:
            raise ProtocolError(f"{self.name}: record after Complete: {record!r}")

        if isinstance(record, DeviceLine):
            self.device = record
        elif isinstance(record, PlanLine):
            if self.plan:
                raise ProtocolError(f"{self.name}: second Plan record: {record!r}")
            self.plan = record.codes
        elif isinstance(record, TestLine):
            self.tests.append(TestRecord(
                name=record.description,
                code=record.code,
                sequence=record.sequence,
                total=record.total,
            ))
            self.state = SessionState.RUNNING
        elif isinstance(record, ProgressLine):
            self._require_current(record).percent = record.percent
        elif isinstance(record, ResultLine):
            test = self._require_current(record)
            test.passed = record.passed
            test.exit_status = record.exit_status
            test.started_at = record.started_at
            test.finished_at = record.finished_at
        elif isinstance(record, CompleteLine):
            self.disposition = record.disposition
            self.state = SessionState.DONE
            logger.info(f"{self.name}: {record.disposition}")
        else:
            raise ProtocolError(f"{self.name}: unexpected record {record!r}")

    # ------------------------------------------------------------------
    # Process handling
    # ------------------------------------------------------------------

    def poll(self) -> List[Record]:
        """
        Drain both of the runner's pipes and decode what arrived.  Reaps the
        runner once both pipes have closed.

        After a protocol error the pipes are still drained, so the runner
        never blocks on a full pipe, but stdout is no longer decoded.

        Raises:
            ProtocolError: The first time the stream turns out to be invalid.
        """
        if self.process is None or self.exit_status is not None:
            return []

        output = self.process.poll_output()
        if output.err:
            self.feed_err(output.err)
        if output.closed:
            self.exit_status = self.process.wait()
            if self.exit_status != 0:
                logger.warning(f"{self.name}: runner exited with status {self.exit_status}")

        if self.error is not None:
            return []
        try:
            records = self.feed(output.out) if output.out else []
            if output.closed:
                self.close()
        except ProtocolError as e:
            self.error = e
            raise
        return records

    def terminate(self, timeout: float = 10) -> None:
        """Terminate the runner's process tree and reap it."""
        if self.process is None or self.exit_status is not None:
            return
        self.process.terminate(timeout=timeout)
        self.exit_status = self.process.exit_status

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def current_test(self) -> Optional[TestRecord]:
        """The most recently started test, if it has no result yet."""
        if self.tests and not self.tests[-1].finished:
            return self.tests[-1]
        return None

    @property
    def finished(self) -> bool:
        """True once there is nothing left to read from this session."""
        if self.process is None:
            return self.state is SessionState.DONE or self.error is not None
        return self.exit_status is not None

    @property
    def stderr_tail(self) -> str:
        return self._stderr_tail.decode('utf-8', errors='replace')

    def plan_layout(self) -> List[Tuple[str, str]]:
        """
        ``(code, status)`` for each planned test, status being one of
        ``passed``, ``failed``, ``running`` or ``pending``.  Plan positions
        are matched to tests by sequence number.
        """
        by_sequence = {test.sequence: test for test in self.tests}
        layout = []
        for index, code in enumerate(self.plan):
            test = by_sequence.get(index + 1)
            if test is None:
                layout.append((code, 'pending'))
            elif test.passed is None:
                layout.append((test.code, 'running'))
            else:
                layout.append((test.code, 'passed' if test.passed else 'failed'))
        return layout

    def status_line(self) -> str:
        if self.error is not None:
            return f"Protocol error: {self.error}"
        if self.disposition is not None:
            return f"Finished: {self.disposition.wipe_state.value} because {self.disposition.reason}"
        if self.exit_status is not None:
            return f"Runner exited with status {self.exit_status} before completing"
        if not self.tests:
            return 'Initializing...'
        test = self.tests[-1]
        filled = int(BAR_WIDTH * (test.percent / 100))
        bar = '=' * filled + ' ' * (BAR_WIDTH - filled)
        return "[%s]%6.2f%% %s" % (bar, test.percent, test.name)

    def _require_current(self, record: Record) -> TestRecord:
        test = self.current_test
        if test is None:
            raise ProtocolError(f"{self.name}: {type(record).__name__} with no test running")
        return test
