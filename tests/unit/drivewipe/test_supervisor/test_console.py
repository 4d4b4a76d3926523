"""
Unit tests for the operator console (key input and text view).
"""

import io
import os

import pytest

from drivewipe.supervisor.console import ConsoleView, StdinKeySource
from drivewipe.supervisor.session import DeviceSession


@pytest.fixture
def pipe():
    read_fd, write_fd = os.pipe()
    reader = os.fdopen(read_fd, 'r')
    yield reader, write_fd
    reader.close()
    try:
        os.close(write_fd)
    except OSError:
        pass


class TestStdinKeySource:

    def test_timeout_without_input(self, pipe):
        reader, _ = pipe
        assert StdinKeySource(reader).read_key(0.01) is None

    def test_reads_first_character(self, pipe):
        reader, write_fd = pipe
        os.write(write_fd, b"quit\n")
        assert StdinKeySource(reader).read_key(1) == 'q'

    def test_blank_line(self, pipe):
        reader, write_fd = pipe
        os.write(write_fd, b"\n")
        assert StdinKeySource(reader).read_key(1) is None

    def test_end_of_file(self, pipe):
        reader, write_fd = pipe
        os.close(write_fd)
        keys = StdinKeySource(reader)
        assert keys.read_key(1) is None
        assert keys.closed
        assert keys.read_key(0.01) is None


class TestConsoleView:

    def _session(self):
        session = DeviceSession('sdb')
        session.feed(
            b"Device: m'ST3500418AS' s'9VM1ABCD' z'500107862016'\n"
            b"Test: n'SMART' s'SM' c'1/?'\n"
            b"Result: p'true' s'0' start'2026-03-02T10:00:00' finish'2026-03-02T10:00:01'\n"
            b"Plan: SM, BB, PT, FM\n"
            b"Test: n'Destructive badblocks' s'BB' c'2/4'\n"
            b"Progress: 50.00%\n"
        )
        return session

    def test_format(self):
        text = ConsoleView.format_session(self._session())
        header, status, _ = text.split('\n')
        assert header.startswith('sdb  M:ST3500418AS S:9VM1ABCD Z:500107862016')
        assert header.endswith('+SM >BB  PT  FM')
        assert status.strip() == '[==========          ] 50.00% Destructive badblocks'

    def test_redraws_only_on_change(self):
        stream = io.StringIO()
        view = ConsoleView(stream)
        session = self._session()

        view.render([session])
        first = stream.getvalue()
        view.render([session])
        assert stream.getvalue() == first

        session.feed(b"Progress: 75.00%\n")
        view.render([session])
        assert stream.getvalue() != first
        assert '75.00%' in stream.getvalue()
