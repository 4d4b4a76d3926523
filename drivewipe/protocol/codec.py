"""
Status Protocol Codec

Encodes runner status records as text lines and decodes them on the
supervisor side.  One record per line, ``TYPE: VALUE``:

    Device: m'<model>' s'<serial>' z'<size>'
    Plan: SM, ST, BB, SM, PT, FM
    Test: n'<description>' s'<code>' c'<sequence>/<total or ?>'
    Progress:  45.00%
    Result: p'true' s'0' start'<iso time>' finish'<iso time>'
    Complete: d'Wiped' r'No errors' c'Green' t'Mark with green dot for reuse'

Quoted values escape backslash, single quote, newline and carriage return
with a backslash, so any string survives a round trip.  Anything that does
not match one of these shapes raises :class:`ProtocolError`.
"""

import re
from datetime import datetime
from typing import Callable, Dict, List, TextIO

from drivewipe.exceptions import ProtocolError
from .records import (
    CompleteLine,
    DeviceLine,
    Destination,
    Disposition,
    PlanLine,
    ProgressLine,
    Record,
    ResultLine,
    TestLine,
    WipeState,
)

_QUOTED = r"'((?:[^'\\\n]|\\.)*)'"
_CODE = r'[A-Z]{2}'

_ESCAPES = {'\\': '\\\\', "'": "\\'", '\n': '\\n', '\r': '\\r'}
_UNESCAPES = {'\\': '\\', "'": "'", 'n': '\n', 'r': '\r'}
_ESCAPE_SEQUENCE = re.compile(r'\\(.)', re.DOTALL)

_PATTERNS = {
    'Device': re.compile(rf" m{_QUOTED} s{_QUOTED} z'(\d+)'"),
    'Plan': re.compile(rf" ({_CODE}(?:, {_CODE})*)"),
    'Test': re.compile(rf" n{_QUOTED} s'({_CODE})' c'(\d+)/(\d+|\?)'"),
    'Progress': re.compile(r" +(\d{1,3}\.\d{2})%"),
    'Result': re.compile(
        rf" p'(true|false)' s'(-?\d+)' start{_QUOTED} finish{_QUOTED}"
    ),
    'Complete': re.compile(
        rf" d'(Wiped|Unwiped)' r{_QUOTED} c'(Red|Yellow|Green)' t{_QUOTED}"
    ),
}


def quote(value: str) -> str:
    """Escape *value* and wrap it in single quotes."""
    return "'" + ''.join(_ESCAPES.get(ch, ch) for ch in value) + "'"


def unquote(value: str) -> str:
    """Reverse the escaping applied by :func:`quote` (without the quotes)."""
    def _replace(match):
        ch = match.group(1)
        if ch not in _UNESCAPES:
            raise ProtocolError(f"Unknown escape sequence: '\\{ch}'")
        return _UNESCAPES[ch]
    return _ESCAPE_SEQUENCE.sub(_replace, value)


def _check_code(code: str) -> str:
    if not re.fullmatch(_CODE, code):
        raise ProtocolError(f"Invalid test code: {code!r}")
    return code


def _check_count(name: str, value: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ProtocolError(f"{name} must be a non-negative integer, got {value!r}")
    return value


# ---------------------------------------------------------------------------
# Encoding
# ---------------------------------------------------------------------------

def encode_line(record: Record) -> str:
    """
    Encode one record as a newline-terminated protocol line.

    Raises:
        ProtocolError: If the record cannot be represented exactly (bad test
                       code, negative size or count, progress outside 0-100
                       or with more than two decimals).
    """
    if isinstance(record, DeviceLine):
        size = _check_count('size', record.size)
        body = f"Device: m{quote(record.model)} s{quote(record.serial)} z'{size}'"
    elif isinstance(record, PlanLine):
        if not record.codes:
            raise ProtocolError("Plan must contain at least one test code")
        body = "Plan: " + ', '.join(_check_code(c) for c in record.codes)
    elif isinstance(record, TestLine):
        _check_count('sequence', record.sequence)
        if record.total is not None:
            _check_count('total', record.total)
        body = (
            f"Test: n{quote(record.description)} s'{_check_code(record.code)}'"
            f" c'{record.count}'"
        )
    elif isinstance(record, ProgressLine):
        if not 0.0 <= record.percent <= 100.0:
            raise ProtocolError(f"Progress out of range: {record.percent}")
        if round(record.percent, 2) != record.percent:
            raise ProtocolError(f"Progress has more than two decimals: {record.percent}")
        body = "Progress: %5.2f%%" % record.percent
    elif isinstance(record, ResultLine):
        body = (
            f"Result: p'{'true' if record.passed else 'false'}' s'{record.exit_status}'"
            f" start{quote(record.started_at.isoformat())}"
            f" finish{quote(record.finished_at.isoformat())}"
        )
    elif isinstance(record, CompleteLine):
        disp = record.disposition
        body = (
            f"Complete: d'{disp.wipe_state.value}' r{quote(disp.reason)}"
            f" c'{disp.destination.color}' t{quote(disp.destination.action)}"
        )
    else:
        raise ProtocolError(f"Cannot encode {type(record).__name__}")
    return body + '\n'


# ---------------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------------

def _parse_time(value: str) -> datetime:
    try:
        return datetime.fromisoformat(unquote(value))
    except ValueError as exc:
        raise ProtocolError(f"Invalid timestamp: {value!r}") from exc


def _decode_device(m) -> DeviceLine:
    return DeviceLine(unquote(m.group(1)), unquote(m.group(2)), int(m.group(3)))


def _decode_plan(m) -> PlanLine:
    return PlanLine(tuple(m.group(1).split(', ')))


def _decode_test(m) -> TestLine:
    total = None if m.group(4) == '?' else int(m.group(4))
    return TestLine(unquote(m.group(1)), m.group(2), int(m.group(3)), total)


def _decode_progress(m) -> ProgressLine:
    percent = float(m.group(1))
    if percent > 100.0:
        raise ProtocolError(f"Progress out of range: {percent}")
    return ProgressLine(percent)


def _decode_result(m) -> ResultLine:
    return ResultLine(
        passed=m.group(1) == 'true',
        exit_status=int(m.group(2)),
        started_at=_parse_time(m.group(3)),
        finished_at=_parse_time(m.group(4)),
    )


def _decode_complete(m) -> CompleteLine:
    return CompleteLine(Disposition(
        wipe_state=WipeState(m.group(1)),
        destination=Destination.from_color(m.group(3)),
        reason=unquote(m.group(2)),
    ))


_DECODERS: Dict[str, Callable] = {
    'Device': _decode_device,
    'Plan': _decode_plan,
    'Test': _decode_test,
    'Progress': _decode_progress,
    'Result': _decode_result,
    'Complete': _decode_complete,
}


def decode_line(line: str) -> Record:
    """
    Decode one protocol line (with or without its trailing newline).

    Raises:
        ProtocolError: If the line has no ``TYPE:`` prefix, the type is
                       unknown, or the value does not match the type's shape.
    """
    if line.endswith('\n'):
        line = line[:-1]
    idx = line.find(':')
    if idx < 0:
        raise ProtocolError(f"Unknown input: {line!r}")

    record_type, value = line[:idx], line[idx + 1:]
    decoder = _DECODERS.get(record_type)
    if decoder is None:
        raise ProtocolError(f"Unknown record type: {record_type!r} in {line!r}")

    m = _PATTERNS[record_type].fullmatch(value)
    if m is None:
        raise ProtocolError(f"Malformed {record_type} record: {line!r}")
    return decoder(m)


class LineBuffer:
    """
    Accumulates raw bytes and yields complete lines.

    Output read without blocking arrives in arbitrary chunks; a line is only
    released once its terminating newline has been seen, so decoding does
    not depend on where the chunks were split.
    """

    def __init__(self):
        self._buffer = b''

    def feed(self, data: bytes) -> List[str]:
        self._buffer += data
        lines = []
        while True:
            idx = self._buffer.find(b'\n')
            if idx < 0:
                break
            raw, self._buffer = self._buffer[:idx], self._buffer[idx + 1:]
            lines.append(raw.decode('utf-8', errors='replace'))
        return lines

    @property
    def pending(self) -> bytes:
        """Bytes received after the last complete line."""
        return self._buffer


class ProtocolWriter:
    """
    Writes records to a text stream, flushing after every line so the
    supervisor sees progress as it happens.

    Example:
        >>> writer = ProtocolWriter(sys.stdout)
        >>> writer.write(PlanLine(('SM', 'BB', 'PT', 'FM')))
    """

    def __init__(self, stream: TextIO):
        self._stream = stream

    def write(self, record: Record) -> None:
        self._stream.write(encode_line(record))
        self._stream.flush()
