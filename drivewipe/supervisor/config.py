"""
Supervisor Configuration Management

This module provides configuration management and validation for the
multi-device supervisor.
"""

import copy
import re
import sys
from typing import Dict, Any, Optional

from drivewipe.exceptions import ConfigError
from drivewipe.wipe.config import default_run_id, load_config_file


class SupervisorConfig:
    """
    Configuration manager for supervisor parameters.

    Example:
        >>> config = SupervisorConfig.get_default_config()
        >>> config['max_devices']
        7
        >>> SupervisorConfig.validate_config({'tick_seconds': 0.5})
        True
    """

    DEFAULT_CONFIG: Dict[str, Any] = {
        # Run options
        'dummy': False,
        'run_id': '',

        # Main loop
        'tick_seconds': 1.0,
        'exit_when_complete': False,

        # Drive selection
        'max_devices': 7,
        'expected_devices': 0,          # 0 = no check
        'sys_block_path': '/sys/block',
        'device_pattern': r'^[sh]d',

        # Runner processes
        'runner_command': [sys.executable, '-m', 'drivewipe.wipe'],
        'runner_config_file': '',
        'stderr_tail_bytes': 8192,

        # Operator quit
        'terminate_on_quit': True,
        'terminate_timeout': 10,

        # Logging
        'log_dir': './log',
    }

    VALID_PARAMS: set = set(DEFAULT_CONFIG.keys())

    PARAM_TYPES: Dict[str, type] = {
        'dummy': bool,
        'run_id': str,
        'tick_seconds': (int, float),
        'exit_when_complete': bool,
        'max_devices': int,
        'expected_devices': int,
        'sys_block_path': str,
        'device_pattern': str,
        'runner_command': list,
        'runner_config_file': str,
        'stderr_tail_bytes': int,
        'terminate_on_quit': bool,
        'terminate_timeout': (int, float),
        'log_dir': str,
    }

    @classmethod
    def get_default_config(cls) -> Dict[str, Any]:
        return copy.deepcopy(cls.DEFAULT_CONFIG)

    @classmethod
    def validate_config(cls, config: Dict[str, Any]) -> bool:
        """
        Validate configuration parameters.

        Raises:
            ConfigError: If any parameter is unknown, has the wrong type,
                         or is out of range.
        """
        for key, value in config.items():
            if key not in cls.VALID_PARAMS:
                raise ConfigError(f"Unknown config parameter: '{key}'")
            expected_type = cls.PARAM_TYPES.get(key)
            if isinstance(value, bool) and expected_type is not bool:
                raise ConfigError(f"Parameter '{key}' must be {expected_type}, got bool")
            if expected_type and not isinstance(value, expected_type):
                raise ConfigError(
                    f"Parameter '{key}' must be {expected_type}, "
                    f"got {type(value).__name__}"
                )

        if config.get('tick_seconds', 1) <= 0:
            raise ConfigError("tick_seconds must be positive")
        if config.get('max_devices', 1) < 1:
            raise ConfigError("max_devices must be at least 1")
        if config.get('expected_devices', 0) < 0:
            raise ConfigError("expected_devices must not be negative")
        if config.get('stderr_tail_bytes', 1) < 1:
            raise ConfigError("stderr_tail_bytes must be positive")
        if 'runner_command' in config:
            command = config['runner_command']
            if not command or not all(isinstance(a, str) and a for a in command):
                raise ConfigError("runner_command must be a non-empty list of strings")
        if 'device_pattern' in config:
            try:
                re.compile(config['device_pattern'])
            except re.error as e:
                raise ConfigError(f"Invalid device_pattern: {e}")
        return True

    @classmethod
    def merge_config(cls, base: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
        cls.validate_config(overrides)
        merged = copy.deepcopy(base)
        merged.update(overrides)
        return merged

    @classmethod
    def build(cls, config_file: Optional[str] = None, **overrides) -> Dict[str, Any]:
        """
        Defaults, then the ``supervisor`` section of *config_file*, then
        keyword overrides.  The same file is handed to every runner unless
        ``runner_config_file`` says otherwise.
        """
        config = cls.get_default_config()
        if config_file:
            config = cls.merge_config(config, load_config_file(config_file, 'supervisor'))
            if not config['runner_config_file']:
                config['runner_config_file'] = config_file
        config = cls.merge_config(config, overrides)
        if not config['run_id']:
            config['run_id'] = default_run_id()
        return config
