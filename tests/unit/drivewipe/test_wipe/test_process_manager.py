"""
Unit tests for ExternalProcess and the one-shot command helper.
Pipe behaviour is tested against short-lived Python children.
"""

import subprocess
import sys
import time
from unittest.mock import Mock, patch

import psutil
import pytest

from drivewipe.exceptions import ProcessTimeoutError, SpawnError
from drivewipe.wipe.process_manager import (
    ExternalProcess,
    ProcessOutput,
    run_command,
    terminate_tree,
)


def python_child(code):
    return [sys.executable, '-c', code]


def drain(proc, timeout=10):
    """Poll until both streams close; return everything read."""
    out, err = b'', b''
    deadline = time.monotonic() + timeout
    while True:
        output = proc.poll_output()
        out += output.out
        err += output.err
        if output.closed:
            return out, err
        assert time.monotonic() < deadline, "child output did not close"
        time.sleep(0.01)


class TestExternalProcess:

    def test_separate_streams_and_exit_status(self):
        proc = ExternalProcess(python_child(
            "import sys; sys.stdout.write('to out'); sys.stderr.write('to err'); sys.exit(3)"
        )).spawn()
        out, err = drain(proc)
        assert out == b'to out'
        assert err == b'to err'
        assert proc.wait() == 3
        assert proc.exit_status == 3

    def test_poll_does_not_block(self):
        proc = ExternalProcess(python_child("import time; time.sleep(5)")).spawn()
        try:
            started = time.monotonic()
            output = proc.poll_output()
            assert time.monotonic() - started < 1
            assert output == ProcessOutput()
            assert proc.is_running()
        finally:
            proc.terminate(timeout=5)

    def test_stdin_script(self):
        proc = ExternalProcess(python_child(
            "import sys; data = sys.stdin.read(); sys.stdout.write(data.upper())"
        )).spawn()
        proc.write_stdin(b"0,,b\n")
        proc.close_stdin()
        out, _ = drain(proc)
        assert out == b"0,,B\n"
        assert proc.wait() == 0

    def test_output_larger_than_pipe_buffer(self):
        proc = ExternalProcess(python_child(
            "import sys; sys.stderr.write('x' * 300000); sys.stdout.write('y' * 300000)"
        )).spawn()
        out, err = drain(proc)
        assert len(out) == 300000
        assert len(err) == 300000
        assert proc.wait() == 0

    def test_read_to_eof(self):
        proc = ExternalProcess(python_child(
            "import sys, time; time.sleep(0.2); print('late'); sys.stderr.write('e')"
        )).spawn()
        output = proc.read_to_eof()
        assert output.closed
        assert output.out.strip() == b'late'
        assert output.err == b'e'
        assert proc.wait() == 0

    def test_wait_is_idempotent(self):
        proc = ExternalProcess(python_child("pass")).spawn()
        drain(proc)
        assert proc.wait() == 0
        assert proc.wait() == 0
        assert not proc.is_running()

    def test_wait_with_open_pipes(self):
        proc = ExternalProcess(python_child("pass")).spawn()
        assert proc.wait() == 0
        assert proc.poll_output().closed

    def test_killed_child_reports_negative_status(self):
        proc = ExternalProcess(python_child(
            "import os, signal; os.kill(os.getpid(), signal.SIGKILL)"
        )).spawn()
        drain(proc)
        assert proc.wait() == -9

    def test_terminate(self):
        proc = ExternalProcess(python_child("import time; time.sleep(30)")).spawn()
        proc.terminate(timeout=5)
        assert proc.exit_status is not None
        assert not proc.is_running()

    def test_terminate_after_exit_is_noop(self):
        proc = ExternalProcess(python_child("pass")).spawn()
        proc.wait()
        proc.terminate()
        assert proc.exit_status == 0

    def test_spawn_failure(self):
        with pytest.raises(SpawnError, match="Cannot start"):
            ExternalProcess(['/nonexistent/badblocks', '-ws', '/dev/sdz']).spawn()

    def test_use_before_spawn(self):
        proc = ExternalProcess(['/sbin/sfdisk'])
        assert proc.pid is None
        assert not proc.is_running()
        with pytest.raises(SpawnError, match="not been spawned"):
            proc.poll_output()

    def test_args_are_strings(self):
        proc = ExternalProcess(['/sbin/badblocks', 200000])
        assert proc.args == ['/sbin/badblocks', '200000']


class TestRunCommand:

    def test_captures_output(self):
        result = run_command(python_child("print('Please wait 2 minutes'); raise SystemExit(4)"))
        assert result.exit_status == 4
        assert 'Please wait 2 minutes' in result.out

    @patch('subprocess.run', side_effect=FileNotFoundError(2, 'No such file'))
    def test_spawn_failure(self, mock_run):
        with pytest.raises(SpawnError):
            run_command(['/usr/sbin/smartctl', '-t', 'short', '/dev/sdb'])

    @patch('subprocess.run', side_effect=subprocess.TimeoutExpired(cmd='smartctl', timeout=5))
    def test_timeout(self, mock_run):
        with pytest.raises(ProcessTimeoutError, match="timed out"):
            run_command(['/usr/sbin/smartctl', '-a', '/dev/sdb'], timeout=5)


class TestTerminateTree:

    @patch('drivewipe.wipe.process_manager.psutil')
    def test_kills_survivors(self, mock_psutil):
        child, root = Mock(pid=2), Mock(pid=1)
        root.children.return_value = [child]
        mock_psutil.Process.return_value = root
        mock_psutil.NoSuchProcess = psutil.NoSuchProcess
        mock_psutil.wait_procs.side_effect = [([root], [child]), ([child], [])]

        terminate_tree(1, timeout=1)

        root.terminate.assert_called_once()
        child.terminate.assert_called_once()
        child.kill.assert_called_once()
        root.kill.assert_not_called()

    @patch('drivewipe.wipe.process_manager.psutil')
    def test_missing_process(self, mock_psutil):
        mock_psutil.NoSuchProcess = psutil.NoSuchProcess
        mock_psutil.Process.side_effect = psutil.NoSuchProcess(1)
        terminate_tree(1)
        mock_psutil.wait_procs.assert_not_called()
