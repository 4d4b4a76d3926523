"""
Supervisor Package

Runs one wipe runner per drive and follows their status streams.

Main Components:
- Supervisor:        Spawns runners and polls them in a single loop
- DeviceSession:     Decoded state of one runner
- SupervisorConfig:  Configuration management and validation
- ConsoleView / StdinKeySource: plain-text view and operator input

Usage:
    from drivewipe.supervisor import Supervisor, SupervisorConfig, select_drives

    config = SupervisorConfig.build(dummy=True, exit_when_complete=True)
    supervisor = Supervisor.launch(select_drives(None, config), config)
    sys.exit(supervisor.run())
"""

from .config import SupervisorConfig
from .console import ConsoleView, KeySource, SessionView, StdinKeySource
from .drives import list_drives, select_drives
from .session import DeviceSession, SessionState, TestRecord
from .supervisor import Supervisor, runner_args

__all__ = [
    'Supervisor',
    'runner_args',
    'DeviceSession',
    'SessionState',
    'TestRecord',
    'SupervisorConfig',
    'ConsoleView',
    'KeySource',
    'SessionView',
    'StdinKeySource',
    'list_drives',
    'select_drives',
]
