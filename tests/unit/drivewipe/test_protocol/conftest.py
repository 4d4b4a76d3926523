"""
Pytest configuration and fixtures for status protocol unit tests.
"""

from datetime import datetime, timedelta, timezone

import pytest

from drivewipe.protocol.records import (
    CompleteLine,
    Destination,
    DeviceLine,
    Disposition,
    PlanLine,
    ProgressLine,
    ResultLine,
    TestLine,
    WipeState,
)


@pytest.fixture
def started_at():
    return datetime(2026, 3, 2, 10, 0, 0, tzinfo=timezone(timedelta(hours=-5)))


@pytest.fixture
def finished_at(started_at):
    return started_at + timedelta(minutes=42, seconds=7)


@pytest.fixture
def sample_records(started_at, finished_at):
    """One record of every type, in the order a runner sends them."""
    return [
        DeviceLine('ST3500418AS', '9VM1ABCD', 500107862016),
        TestLine('SMART', 'SM', 1),
        ProgressLine(0.0),
        ProgressLine(100.0),
        ResultLine(True, 0, started_at, finished_at),
        PlanLine(('SM', 'ST', 'BB', 'SM', 'PT', 'FM')),
        TestLine('Destructive badblocks', 'BB', 3, 6),
        ProgressLine(45.5),
        ResultLine(False, 1, started_at, finished_at),
        CompleteLine(Disposition(WipeState.UNWIPED, Destination.HARVEST, 'Badblock failure')),
    ]
