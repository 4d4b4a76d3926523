"""
External Process Manager

Spawns the external diagnostic utilities with separate stdin/stdout/stderr
pipes, reads their output without blocking, and reaps their exit status.
"""

import os
import select
import subprocess
from dataclasses import dataclass
from typing import List, Optional, Sequence

import psutil

from drivewipe.exceptions import SpawnError, ProcessTimeoutError
from drivewipe.logger import get_module_logger

logger = get_module_logger(__name__)

READ_SIZE = 16384


@dataclass
class ProcessOutput:
    """Bytes read by one :meth:`ExternalProcess.poll_output` call."""
    out: bytes = b''
    err: bytes = b''
    out_closed: bool = False
    err_closed: bool = False

    @property
    def closed(self) -> bool:
        return self.out_closed and self.err_closed


@dataclass
class CommandResult:
    """Outcome of a one-shot command run by :func:`run_command`."""
    args: List[str]
    exit_status: int
    out: str
    err: str


def run_command(args: Sequence[str], timeout: Optional[float] = None) -> CommandResult:
    """
    Run a short command to completion and capture its output.

    Args:
        args: Program and arguments.
        timeout: Seconds to wait before giving up.

    Returns:
        :class:`CommandResult`; a non-zero exit status is not an error.

    Raises:
        SpawnError: If the program cannot be started.
        ProcessTimeoutError: If the command runs longer than *timeout*.

    Example:
        >>> result = run_command(['/usr/sbin/smartctl', '-t', 'short', '/dev/sda'])
        >>> result.exit_status
        0
    """
    args = [str(a) for a in args]
    logger.debug(f"Running: {' '.join(args)}")
    try:
        completed = subprocess.run(
            args,
            stdin=subprocess.DEVNULL,
            capture_output=True,
            text=True,
            errors='replace',
            timeout=timeout,
        )
    except OSError as e:
        raise SpawnError(f"Cannot start {args[0]}: {e}") from e
    except subprocess.TimeoutExpired:
        raise ProcessTimeoutError(f"{args[0]} timed out after {timeout} seconds")
    return CommandResult(args, completed.returncode, completed.stdout, completed.stderr)


def terminate_tree(pid: int, timeout: float = 10) -> None:
    """
    Terminate a process and all of its descendants.

    Sends SIGTERM to every process in the tree, waits up to *timeout*
    seconds, then kills the survivors.

    Args:
        pid: Root process ID.
        timeout: Seconds to wait before escalating to kill.
    """
    try:
        root = psutil.Process(pid)
        procs = root.children(recursive=True) + [root]
    except psutil.NoSuchProcess:
        return

    for proc in procs:
        try:
            proc.terminate()
        except psutil.NoSuchProcess:
            pass

    _, alive = psutil.wait_procs(procs, timeout=timeout)
    for proc in alive:
        logger.warning(f"PID {proc.pid} did not terminate gracefully - killing")
        try:
            proc.kill()
        except psutil.NoSuchProcess:
            pass
    if alive:
        psutil.wait_procs(alive, timeout=5)


class ExternalProcess:
    """
    A child program with three independent pipes.

    This class handles:
    - Process startup (:meth:`spawn`)
    - Non-blocking draining of stdout and stderr (:meth:`poll_output`)
    - Scripted input (:meth:`write_stdin`, :meth:`close_stdin`)
    - Reaping the exit status exactly once (:meth:`wait`)
    - Terminating the whole process tree (:meth:`terminate`)

    Every spawned process must eventually be reaped with :meth:`wait`,
    otherwise it lingers as a zombie.

    Example:
        >>> proc = ExternalProcess(['/sbin/sfdisk', '-q', '/dev/sdb']).spawn()
        >>> proc.write_stdin(b"0,,b\\n")
        >>> proc.close_stdin()
        >>> while not proc.poll_output().closed:
        ...     time.sleep(1)
        >>> proc.wait()
        0
    """

    def __init__(self, args: Sequence[str], read_size: int = READ_SIZE):
        self.args = [str(a) for a in args]
        self.read_size = read_size

        self._process: Optional[subprocess.Popen] = None
        self._out_closed = False
        self._err_closed = False
        self._exit_status: Optional[int] = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def spawn(self) -> 'ExternalProcess':
        """
        Start the child process.

        Returns:
            self, for chaining.

        Raises:
            SpawnError: If the program cannot be started.
        """
        logger.info(f"Spawning: {' '.join(self.args)}")
        try:
            self._process = subprocess.Popen(
                self.args,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
            )
        except OSError as e:
            raise SpawnError(f"Cannot start {self.args[0]}: {e}") from e
        logger.debug(f"{self.args[0]} started with PID {self._process.pid}")
        return self

    def poll_output(self) -> ProcessOutput:
        """
        Read whatever is currently available on stdout and stderr.

        Each stream is drained until no more data is ready.  A stream is
        reported closed once end-of-file has been seen on it.

        Returns:
            :class:`ProcessOutput` with the bytes read and closed flags.
        """
        proc = self._require_process()
        output = ProcessOutput()
        if not self._out_closed:
            output.out, self._out_closed = self._drain(proc.stdout)
        if not self._err_closed:
            output.err, self._err_closed = self._drain(proc.stderr)
        output.out_closed = self._out_closed
        output.err_closed = self._err_closed
        return output

    def read_to_eof(self) -> ProcessOutput:
        """
        Block until both stdout and stderr reach end-of-file.

        Used just before reaping, so a child that is still writing is never
        cut off by its pipes being closed under it.

        Returns:
            :class:`ProcessOutput` with everything read, both streams closed.
        """
        proc = self._require_process()
        chunks = {'out': [], 'err': []}
        streams = {}
        if not self._out_closed:
            streams[proc.stdout.fileno()] = 'out'
        if not self._err_closed:
            streams[proc.stderr.fileno()] = 'err'

        while streams:
            ready, _, _ = select.select(list(streams), [], [])
            for fd in ready:
                chunk = os.read(fd, self.read_size)
                if chunk:
                    chunks[streams[fd]].append(chunk)
                else:
                    del streams[fd]

        self._out_closed = self._err_closed = True
        return ProcessOutput(
            out=b''.join(chunks['out']),
            err=b''.join(chunks['err']),
            out_closed=True,
            err_closed=True,
        )

    def write_stdin(self, data: bytes) -> None:
        """
        Send *data* to the child's stdin.

        A child that has already exited leaves a broken pipe; that is logged
        and its exit status reports the failure.
        """
        proc = self._require_process()
        try:
            proc.stdin.write(data)
            proc.stdin.flush()
        except BrokenPipeError:
            logger.warning(f"{self.args[0]} closed its stdin before input was written")

    def close_stdin(self) -> None:
        proc = self._require_process()
        if not proc.stdin.closed:
            proc.stdin.close()

    def wait(self) -> int:
        """
        Close any remaining pipes and reap the child.

        Safe to call after the pipes are already closed, and more than once
        (the first exit status is returned again).

        Returns:
            Exit status; ``-N`` if the child was killed by signal N.
        """
        if self._exit_status is not None:
            return self._exit_status
        proc = self._require_process()
        for stream in (proc.stdin, proc.stdout, proc.stderr):
            if stream is not None and not stream.closed:
                stream.close()
        self._out_closed = self._err_closed = True
        self._exit_status = proc.wait()
        logger.info(f"{self.args[0]} (PID {proc.pid}) exited with status {self._exit_status}")
        return self._exit_status

    def terminate(self, timeout: float = 10) -> None:
        """
        Terminate the child and its descendants, then reap it.

        Args:
            timeout: Seconds to wait before escalating to kill.
        """
        if self._process is None or self._exit_status is not None:
            return
        if self.is_running():
            logger.info(f"Terminating {self.args[0]} (PID {self._process.pid})")
            terminate_tree(self._process.pid, timeout=timeout)
        self.wait()

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def is_running(self) -> bool:
        if self._process is None or self._exit_status is not None:
            return False
        return self._process.poll() is None

    @property
    def pid(self) -> Optional[int]:
        return self._process.pid if self._process else None

    @property
    def exit_status(self) -> Optional[int]:
        """Exit status once reaped, otherwise None."""
        return self._exit_status

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _require_process(self) -> subprocess.Popen:
        if self._process is None:
            raise SpawnError(f"{self.args[0]} has not been spawned")
        return self._process

    def _drain(self, stream):
        """Read *stream* until nothing is ready; return (data, eof)."""
        chunks = []
        fd = stream.fileno()
        while True:
            ready, _, _ = select.select([fd], [], [], 0)
            if not ready:
                return b''.join(chunks), False
            chunk = os.read(fd, self.read_size)
            if not chunk:
                return b''.join(chunks), True
            chunks.append(chunk)
