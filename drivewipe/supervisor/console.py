"""
Operator Console

Keyboard input and a plain-text progress view for the supervisor.

The view prints a block per device whenever that device's display changes:

    sdb  M:ST3500418AS S:9VM1ABCD Z:500107862016   +SM +ST >BB  SM  PT  FM
         [=========           ] 45.00% Destructive badblocks
"""

import os
import select
import sys
from typing import Dict, Optional, Sequence, TextIO

from drivewipe.logger import get_module_logger
from .session import DeviceSession

logger = get_module_logger(__name__)

PLAN_MARKERS = {
    'passed': '+',
    'failed': '!',
    'running': '>',
    'pending': ' ',
}


class KeySource:
    """Interface: wait up to *timeout* seconds for an operator key."""

    def read_key(self, timeout: float) -> Optional[str]:
        raise NotImplementedError


class StdinKeySource(KeySource):
    """
    Reads operator commands from a line-buffered stream (a key followed by
    Enter).  Once the stream hits end-of-file it is ignored and
    :meth:`read_key` only waits out the timeout.
    """

    def __init__(self, stream: TextIO = sys.stdin):
        self.stream = stream
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def read_key(self, timeout: float) -> Optional[str]:
        if self._closed:
            select.select([], [], [], timeout)
            return None

        fd = self.stream.fileno()
        ready, _, _ = select.select([fd], [], [], timeout)
        if not ready:
            return None

        data = os.read(fd, 1024)
        if not data:
            logger.info("Console input closed; press Ctrl-C to stop")
            self._closed = True
            return None
        text = data.decode('utf-8', errors='replace').strip()
        return text[:1] if text else None


class SessionView:
    """Interface: show the current state of all sessions."""

    def render(self, sessions: Sequence[DeviceSession]) -> None:
        raise NotImplementedError


class ConsoleView(SessionView):
    """Line-oriented view; a device is only redrawn when its text changes."""

    def __init__(self, stream: TextIO = sys.stdout):
        self.stream = stream
        self._shown: Dict[str, str] = {}

    @staticmethod
    def format_session(session: DeviceSession) -> str:
        header = f"{session.name:<4}"
        if session.device is not None:
            device = session.device
            header += f" M:{device.model} S:{device.serial} Z:{device.size}"
        layout = ' '.join(PLAN_MARKERS[status] + code for code, status in session.plan_layout())
        if layout:
            header += '   ' + layout
        return f"{header}\n     {session.status_line()}\n"

    def render(self, sessions: Sequence[DeviceSession]) -> None:
        changed = False
        for session in sessions:
            text = self.format_session(session)
            if self._shown.get(session.name) != text:
                self.stream.write(text)
                self._shown[session.name] = text
                changed = True
        if changed:
            self.stream.flush()
