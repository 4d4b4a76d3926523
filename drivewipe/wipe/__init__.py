"""
Wipe Runner Package

Per-device test runner: identifies one drive, runs the SMART, surface scan,
partition and format tests against it, and streams status records on
stdout for the supervisor.

Main Components:
- TestRunner:        Test sequencer and disposition decision
- WipeConfig:        Configuration management and validation
- ExternalProcess:   Spawn / poll / reap of the external utilities
- Diagnostic tests:  SurfaceScan, PartitionTest, FormatTest,
                     SmartDiagnostic, SmartSelfTest
- Result publishers: HTTP upload of every finished test

Usage:
    from drivewipe.wipe import TestRunner, WipeConfig, probe_device
    from drivewipe.protocol import ProtocolWriter

    config = WipeConfig.build(dummy=True)
    device = probe_device('sdb', config)
    disposition = TestRunner(device, config, ProtocolWriter(sys.stdout)).run()
    print(disposition.destination.action)
"""

from .config import WipeConfig, load_config_file
from .controller import RunnerState, TestRunner
from .device import probe_device
from .diagnostics import (
    TEST_METADATA,
    FormatTest,
    PartitionTest,
    SmartDiagnostic,
    SmartSelfTest,
    SurfaceScan,
    TestKind,
    create_test,
)
from .process_manager import ExternalProcess, ProcessOutput, run_command
from .publisher import (
    FileField,
    HttpResultPublisher,
    NullResultPublisher,
    ResultPublisher,
    TestReport,
    TextField,
)
from .results import SmartFlag, TestResult

__all__ = [
    'TestRunner',
    'RunnerState',
    'WipeConfig',
    'load_config_file',
    'probe_device',
    'TEST_METADATA',
    'TestKind',
    'create_test',
    'SurfaceScan',
    'PartitionTest',
    'FormatTest',
    'SmartDiagnostic',
    'SmartSelfTest',
    'ExternalProcess',
    'ProcessOutput',
    'run_command',
    'ResultPublisher',
    'HttpResultPublisher',
    'NullResultPublisher',
    'TestReport',
    'TextField',
    'FileField',
    'SmartFlag',
    'TestResult',
]
