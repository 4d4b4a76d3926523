"""
Drive Wipe Package

Destructive and diagnostic testing of storage devices for decommissioning.

Main Components:
- drivewipe.wipe:       Per-device test runner (one process per device)
- drivewipe.protocol:   Line protocol between runner and supervisor
- drivewipe.supervisor: Spawns runners, decodes their status, tracks progress

Usage:
    # Test one device (writes protocol lines to stdout)
    $ drivewipe-device --dummy sdb

    # Test every detected drive
    $ drivewipe --exit-when-complete
"""

__version__ = '1.0.0'
