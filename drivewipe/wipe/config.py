"""
Wipe Runner Configuration Management

This module provides configuration management and validation for the
per-device test runner.
"""

import copy
import os
import time
from typing import Dict, Any, Optional

import yaml

from drivewipe.exceptions import ConfigError


def default_run_id() -> str:
    """Run identifier used when none is given: local time plus PID."""
    return f"{time.strftime('%Y-%m-%d %H:%M:%S %z')}-{os.getpid()}"


def load_config_file(path: str, section: str) -> Dict[str, Any]:
    """
    Read one section of a YAML configuration file.

    Expected format::

        wipe:
          poll_interval_seconds: 1
          upload_url: http://build.shop.lan/scripts/wipe.cgi
        supervisor:
          tick_seconds: 1

    Args:
        path: Path to the YAML file.
        section: Top-level key to return (``wipe`` or ``supervisor``).

    Returns:
        The section dict, or an empty dict when the section is absent.

    Raises:
        ConfigError: If the file cannot be read or is not a mapping.
    """
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError:
        raise ConfigError(f"Configuration file not found: {path}")
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}")

    if not isinstance(data, dict):
        raise ConfigError(f"Configuration file {path} must contain a mapping")
    values = data.get(section) or {}
    if not isinstance(values, dict):
        raise ConfigError(f"Section '{section}' in {path} must be a mapping")
    return values


class WipeConfig:
    """
    Configuration manager for runner parameters.

    This class provides:
    - Default configuration values
    - Configuration validation
    - Configuration merging

    Example:
        >>> config = WipeConfig.get_default_config()
        >>> config['dummy_last_block']
        200000
        >>> WipeConfig.validate_config({'dummy': True})
        True
    """

    DEFAULT_CONFIG: Dict[str, Any] = {
        # Run options
        'dummy': False,
        'run_id': '',

        # Surface scan
        'write_patterns': ['random', '0'],
        'dummy_last_block': 200000,     # badblocks blocks (~200 MB)

        # Polling
        'poll_interval_seconds': 1.0,

        # External programs
        'badblocks_path': '/sbin/badblocks',
        'sfdisk_path': '/sbin/sfdisk',
        'mkfs_vfat_path': '/sbin/mkfs.vfat',
        'smartctl_path': '/usr/sbin/smartctl',
        'scsiinfo_path': '/sbin/scsiinfo',
        'sys_block_path': '/sys/block',

        # SMART self-test timing
        'self_test_default_seconds': 300,
        'self_test_grace_seconds': 15,

        # One-shot commands (self-test trigger, identification)
        'command_timeout': 120,

        # Result upload ('' disables upload)
        'upload_url': '',
        'upload_timeout': 30,
    }

    VALID_PARAMS: set = set(DEFAULT_CONFIG.keys())

    PARAM_TYPES: Dict[str, type] = {
        'dummy': bool,
        'run_id': str,
        'write_patterns': list,
        'dummy_last_block': int,
        'poll_interval_seconds': (int, float),
        'badblocks_path': str,
        'sfdisk_path': str,
        'mkfs_vfat_path': str,
        'smartctl_path': str,
        'scsiinfo_path': str,
        'sys_block_path': str,
        'self_test_default_seconds': (int, float),
        'self_test_grace_seconds': (int, float),
        'command_timeout': (int, float),
        'upload_url': str,
        'upload_timeout': (int, float),
    }

    @classmethod
    def get_default_config(cls) -> Dict[str, Any]:
        """
        Return a deep copy of the default configuration.

        Returns:
            Dict[str, Any]: Mutable copy of DEFAULT_CONFIG.
        """
        return copy.deepcopy(cls.DEFAULT_CONFIG)

    @classmethod
    def validate_config(cls, config: Dict[str, Any]) -> bool:
        """
        Validate configuration parameters.

        Args:
            config: Configuration dict to validate.

        Returns:
            True if valid.

        Raises:
            ConfigError: If any parameter is unknown, has the wrong type,
                         or is out of range.
        """
        for key, value in config.items():
            if key not in cls.VALID_PARAMS:
                raise ConfigError(f"Unknown config parameter: '{key}'")
            expected_type = cls.PARAM_TYPES.get(key)
            # bool is an int subclass; only accept it where bool is expected
            if isinstance(value, bool) and expected_type is not bool:
                raise ConfigError(f"Parameter '{key}' must be {expected_type}, got bool")
            if expected_type and not isinstance(value, expected_type):
                raise ConfigError(
                    f"Parameter '{key}' must be {expected_type}, "
                    f"got {type(value).__name__}"
                )

        if 'write_patterns' in config:
            patterns = config['write_patterns']
            if not patterns or not all(isinstance(p, str) and p for p in patterns):
                raise ConfigError("write_patterns must be a non-empty list of strings")
        if config.get('dummy_last_block', 1) <= 0:
            raise ConfigError("dummy_last_block must be positive")
        if config.get('poll_interval_seconds', 1) < 0:
            raise ConfigError("poll_interval_seconds must not be negative")
        return True

    @classmethod
    def merge_config(cls, base: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
        """
        Merge override values into a base config.

        Args:
            base: Base configuration dict.
            overrides: Values to override (must pass validation).

        Returns:
            New merged configuration dict.

        Raises:
            ConfigError: If overrides contain invalid parameters.
        """
        cls.validate_config(overrides)
        merged = copy.deepcopy(base)
        merged.update(overrides)
        return merged

    @classmethod
    def build(cls, config_file: Optional[str] = None, **overrides) -> Dict[str, Any]:
        """
        Build a complete runner config: defaults, then the ``wipe`` section
        of *config_file*, then keyword overrides.  An empty ``run_id`` is
        replaced by :func:`default_run_id`.

        Example:
            >>> config = WipeConfig.build(dummy=True)
            >>> config['dummy']
            True
        """
        config = cls.get_default_config()
        if config_file:
            config = cls.merge_config(config, load_config_file(config_file, 'wipe'))
        config = cls.merge_config(config, overrides)
        if not config['run_id']:
            config['run_id'] = default_run_id()
        return config
