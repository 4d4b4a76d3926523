"""
Device Identification

Builds a :class:`DeviceInfo` for a kernel device name from ``scsiinfo`` and
the block device's size in ``/sys/block``.
"""

import os
import re
from typing import Any, Dict, Tuple

from drivewipe.exceptions import UnsupportedDeviceError
from drivewipe.logger import get_module_logger
from drivewipe.protocol.records import DeviceInfo
from .process_manager import run_command

logger = get_module_logger(__name__)

SECTOR_SIZE = 512

_MODEL_PATTERN = re.compile(r'^Product:\s+(\S.*)$', re.MULTILINE)
_SERIAL_PATTERN = re.compile(r"^Serial Number '(.*)'$", re.MULTILINE)
_NAME_PATTERN = re.compile(r'^[a-z]+[0-9a-z]*$')


def check_device_name(name: str) -> str:
    """
    Validate a kernel device name.

    Raises:
        UnsupportedDeviceError: For IDE (``hd*``) devices and names that are
                                not a plain kernel block device name.
    """
    if name.startswith('/dev/'):
        name = name[len('/dev/'):]
    if not _NAME_PATTERN.match(name):
        raise UnsupportedDeviceError(f"Not a block device name: {name!r}")
    if name.startswith('hd'):
        raise UnsupportedDeviceError(f"IDE devices are not supported: {name}")
    return name


def parse_scsiinfo(output: str) -> Tuple[str, str]:
    """
    Extract (model, serial) from ``scsiinfo -is`` output.  Missing values
    come back as ``'Unknown'``.
    """
    model = serial = 'Unknown'
    m = _MODEL_PATTERN.search(output)
    if m:
        model = m.group(1).strip()
    m = _SERIAL_PATTERN.search(output)
    if m:
        serial = m.group(1).strip()
    return model, serial


def read_size(name: str, sys_block_path: str = '/sys/block') -> int:
    """Device capacity in bytes, 0 if the kernel does not report it."""
    path = os.path.join(sys_block_path, name, 'size')
    try:
        with open(path, 'r', encoding='ascii') as f:
            return int(f.read().strip()) * SECTOR_SIZE
    except (OSError, ValueError) as e:
        logger.warning(f"Cannot read size of {name} from {path}: {e}")
        return 0


def probe_device(name: str, config: Dict[str, Any]) -> DeviceInfo:
    """
    Identify *name*.

    Args:
        name: Kernel name (``sdb``) or device path (``/dev/sdb``).
        config: Runner configuration (``scsiinfo_path``, ``sys_block_path``,
                ``command_timeout``).

    Raises:
        UnsupportedDeviceError: If the name is rejected.
        SpawnError: If scsiinfo cannot be started.
    """
    name = check_device_name(name)
    result = run_command(
        [config['scsiinfo_path'], '-is', f'/dev/{name}'],
        timeout=config['command_timeout'],
    )
    if result.exit_status != 0:
        logger.warning(f"scsiinfo for {name} exited with {result.exit_status}")
    model, serial = parse_scsiinfo(result.out)
    device = DeviceInfo(
        name=name,
        model=model,
        serial=serial,
        size=read_size(name, config['sys_block_path']),
    )
    logger.info(f"Device {name}: model={device.model} serial={device.serial} size={device.size}")
    return device
