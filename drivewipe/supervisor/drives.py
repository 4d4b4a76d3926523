"""
Drive Enumeration

Lists candidate drives from ``/sys/block`` and checks the selection against
the supervisor's limits.
"""

import os
import re
from typing import Any, Dict, List, Optional, Sequence

from drivewipe.exceptions import ConfigError
from drivewipe.logger import get_module_logger

logger = get_module_logger(__name__)


def list_drives(sys_block_path: str = '/sys/block', pattern: str = r'^[sh]d') -> List[str]:
    """
    Block devices whose name matches *pattern*, sorted.

    Raises:
        ConfigError: If *sys_block_path* cannot be listed.
    """
    try:
        entries = os.listdir(sys_block_path)
    except OSError as e:
        raise ConfigError(f"Cannot list {sys_block_path}: {e}") from e
    regex = re.compile(pattern)
    return sorted(name for name in entries if regex.search(name))


def select_drives(names: Optional[Sequence[str]], config: Dict[str, Any]) -> List[str]:
    """
    Resolve the drives to wipe: *names* if given, otherwise every drive
    found by :func:`list_drives`.

    A count different from ``expected_devices`` is only logged; the
    operator may have miscounted.

    Raises:
        ConfigError: If no drive is found, or more than ``max_devices``.
    """
    if names:
        drives = [name[len('/dev/'):] if name.startswith('/dev/') else name for name in names]
    else:
        drives = list_drives(config['sys_block_path'], config['device_pattern'])

    if not drives:
        raise ConfigError("No drives found")

    expected = config['expected_devices']
    if expected and expected != len(drives):
        logger.warning(f"Expected {expected} drives, got {len(drives)}: {', '.join(drives)}")

    if len(drives) > config['max_devices']:
        raise ConfigError(
            f"Wiping more than {config['max_devices']} devices is not supported "
            f"(got {len(drives)})"
        )
    return drives
