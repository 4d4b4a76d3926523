"""
Status Protocol Package

Line protocol spoken by a device runner on its stdout and read by the
supervisor.

Usage:
    from drivewipe.protocol import ProtocolWriter, PlanLine, decode_line

    ProtocolWriter(sys.stdout).write(PlanLine(('SM', 'BB', 'PT', 'FM')))
    record = decode_line("Progress: 42.00%")
"""

from .records import (
    CompleteLine,
    DeviceInfo,
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
from .codec import (
    LineBuffer,
    ProtocolWriter,
    decode_line,
    encode_line,
    quote,
    unquote,
)

__all__ = [
    # Values
    'DeviceInfo',
    'Destination',
    'Disposition',
    'WipeState',
    # Records
    'CompleteLine',
    'DeviceLine',
    'PlanLine',
    'ProgressLine',
    'Record',
    'ResultLine',
    'TestLine',
    # Codec
    'LineBuffer',
    'ProtocolWriter',
    'decode_line',
    'encode_line',
    'quote',
    'unquote',
]
