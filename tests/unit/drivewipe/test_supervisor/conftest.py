"""
Pytest configuration and fixtures for supervisor unit tests.
"""

import os
import tempfile

import pytest

from drivewipe.supervisor.config import SupervisorConfig


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield tmpdir


@pytest.fixture
def supervisor_config():
    config = SupervisorConfig.get_default_config()
    config['run_id'] = 'test-run'
    config['tick_seconds'] = 0.01
    config['terminate_timeout'] = 5
    return config


@pytest.fixture
def runner_stream():
    """Complete output of a runner on the SMART path (dummy run)."""
    return (
        "Device: m'ST3500418AS' s'9VM1ABCD' z'500107862016'\n"
        "Test: n'SMART' s'SM' c'1/?'\n"
        "Progress:  0.00%\n"
        "Progress: 100.00%\n"
        "Result: p'true' s'0' start'2026-03-02T10:00:00+00:00' finish'2026-03-02T10:00:02+00:00'\n"
        "Plan: SM, ST, BB, SM, PT, FM\n"
        "Test: n'Destructive badblocks' s'BB' c'3/6'\n"
        "Progress:  0.00%\n"
        "Progress: 45.00%\n"
        "Progress: 100.00%\n"
        "Result: p'true' s'0' start'2026-03-02T10:00:03+00:00' finish'2026-03-02T10:20:00+00:00'\n"
        "Test: n'SMART' s'SM' c'4/6'\n"
        "Progress:  0.00%\n"
        "Progress: 100.00%\n"
        "Result: p'true' s'64' start'2026-03-02T10:20:01+00:00' finish'2026-03-02T10:20:03+00:00'\n"
        "Test: n'Partition' s'PT' c'5/6'\n"
        "Progress:  0.00%\n"
        "Progress: 100.00%\n"
        "Result: p'true' s'0' start'2026-03-02T10:20:04+00:00' finish'2026-03-02T10:20:05+00:00'\n"
        "Test: n'Format' s'FM' c'6/6'\n"
        "Progress:  0.00%\n"
        "Progress: 100.00%\n"
        "Result: p'true' s'0' start'2026-03-02T10:20:06+00:00' finish'2026-03-02T10:20:08+00:00'\n"
        "Complete: d'Wiped' r'No errors' c'Green' t'Mark with green dot for reuse'\n"
    ).encode('utf-8')


@pytest.fixture
def sys_block(temp_dir):
    """Fake /sys/block with disks, partitions-free loop and ram devices."""
    for name in ('sdb', 'sda', 'hda', 'loop0', 'ram0', 'nvme0n1'):
        os.makedirs(os.path.join(temp_dir, name))
    return temp_dir
