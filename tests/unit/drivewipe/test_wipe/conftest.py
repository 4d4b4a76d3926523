"""
Pytest configuration and fixtures for wipe runner unit tests.
"""

import os
import tempfile

import pytest

from drivewipe.protocol.records import DeviceInfo
from drivewipe.wipe.config import WipeConfig
from drivewipe.wipe.diagnostics import TEST_METADATA
from drivewipe.wipe.results import TestResult, smart_passed


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield tmpdir


@pytest.fixture
def runner_config():
    """Complete runner config with a fixed run id and no polling delay."""
    config = WipeConfig.get_default_config()
    config['run_id'] = 'test-run'
    config['poll_interval_seconds'] = 0
    return config


@pytest.fixture
def device():
    return DeviceInfo('sdb', 'ST3500418AS', '9VM1ABCD', 500107862016)


@pytest.fixture
def sys_block(temp_dir):
    """Fake /sys/block with sdb (976773168 sectors)."""
    os.makedirs(os.path.join(temp_dir, 'sdb'))
    with open(os.path.join(temp_dir, 'sdb', 'size'), 'w') as f:
        f.write('976773168\n')
    return temp_dir


class FakeTest:
    """
    Stand-in for a diagnostic: reports the given progress steps, then
    finishes with *exit_status*.
    """

    def __init__(self, kind, exit_status=0, passed=None, steps=(0.5, 1.0)):
        self.kind = kind
        self.code = TEST_METADATA[kind].code
        self.description = TEST_METADATA[kind].description
        self.exit_status = exit_status
        self.passed = (exit_status == 0) if passed is None else passed
        self.steps = list(steps)
        self.calls = []

    def start(self):
        self.calls.append('start')
        return 0.0

    def poll(self):
        self.calls.append('poll')
        return self.steps.pop(0) if self.steps else 1.0

    def finish(self):
        self.calls.append('finish')
        return TestResult(
            exit_status=self.exit_status,
            passed=self.passed,
            out=f'{self.code} output',
            err='',
        )


class FakeTestFactory:
    """
    Test factory handing out one prepared outcome per call, in order.

    ``outcomes`` is a list of ``(kind, exit_status)`` pairs; the runner must
    ask for exactly these kinds in exactly this order.
    """

    def __init__(self, outcomes):
        self.outcomes = list(outcomes)
        self.created = []

    def __call__(self, kind, device, config):
        assert self.outcomes, f"Unexpected test requested: {kind}"
        expected_kind, exit_status = self.outcomes.pop(0)
        assert kind is expected_kind, f"Expected {expected_kind}, got {kind}"
        if kind.value in ('SM', 'ST'):
            test = FakeTest(kind, exit_status, passed=smart_passed(exit_status))
        else:
            test = FakeTest(kind, exit_status)
        self.created.append(test)
        return test


@pytest.fixture
def fake_factory():
    return FakeTestFactory
