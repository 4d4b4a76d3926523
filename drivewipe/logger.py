"""
Logger Module

Centralised logging configuration for the drive wipe runner and supervisor.

Usage:
    from drivewipe.logger import get_module_logger
    logger = get_module_logger(__name__)
    logger.info("Information message")

Entry points initialise handlers once:
    from drivewipe.logger import Logger
    Logger.init_logging(log_dir='./log', log_name='wipe_sda')

Console output goes to stderr.  The runner's stdout is the status protocol
read by the supervisor, so nothing but protocol lines may be written there.
"""

import logging
import sys
from typing import Optional, Dict
from pathlib import Path

DEFAULT_LOG_DIR = './log'
DEFAULT_LOG_NAME = 'log'
LOG_FORMAT = '[%(levelname)s %(asctime)s] [%(name)s] %(message)s'


def _get_log_dir(log_dir: Optional[str] = None) -> Path:
    """Resolve and create the log directory."""
    path = Path(log_dir or DEFAULT_LOG_DIR)
    path.mkdir(parents=True, exist_ok=True)
    return path


class Logger:
    """
    Logger wrapper with centralized configuration.

    This class provides:
    - Module-specific logger instances
    - File output (``<name>.txt`` for INFO, ``<name>.err`` for ERROR)
    - Console output on stderr

    Example:
        >>> Logger.init_logging(log_dir='./log', log_name='drivewipe')
        >>> logger = Logger.get_logger(__name__)
        >>> logger.info("Information message")
    """

    _initialized = False
    _loggers: Dict[str, logging.Logger] = {}

    @classmethod
    def get_logger(cls, name: str = 'drivewipe') -> logging.Logger:
        """
        Get or create a logger instance for the specified name.

        Handlers are attached to the root logger by :meth:`init_logging`;
        until that is called, records propagate to whatever the host
        (for example pytest) has configured.

        Args:
            name: Logger name (typically __name__)

        Returns:
            logging.Logger: Logger instance
        """
        if name not in cls._loggers:
            cls._loggers[name] = logging.getLogger(name)
        return cls._loggers[name]

    @classmethod
    def init_logging(
        cls,
        log_dir: Optional[str] = None,
        log_name: str = DEFAULT_LOG_NAME,
        level: int = logging.INFO,
    ) -> None:
        """
        Initialize logging configuration (idempotent - safe to call multiple times).

        Sets up:
        - Log directory creation
        - File handlers for INFO and ERROR levels
        - Console handler on stderr
        - Common formatter with timestamp

        File handlers pointing at a different directory or name are replaced,
        so a second call with new arguments moves the output.

        Args:
            log_dir: Directory for log files (default ``./log``).
            log_name: Base file name without extension.
            level: Level for the console handler.
        """
        directory = _get_log_dir(log_dir)
        log_file = (directory / f"{log_name}.txt").resolve()
        err_file = (directory / f"{log_name}.err").resolve()

        formatter = logging.Formatter(LOG_FORMAT)
        root_logger = logging.getLogger()

        wanted = {str(log_file), str(err_file)}
        for handler in root_logger.handlers[:]:
            if isinstance(handler, logging.FileHandler):
                if handler.baseFilename not in wanted:
                    handler.close()
                    root_logger.removeHandler(handler)

        existing = {
            h.baseFilename for h in root_logger.handlers
            if isinstance(h, logging.FileHandler)
        }

        if str(log_file) not in existing:
            # INFO log file (append mode to preserve earlier runs)
            file_handler = logging.FileHandler(str(log_file), mode='a', encoding='utf-8')
            file_handler.setLevel(logging.INFO)
            file_handler.setFormatter(formatter)
            root_logger.addHandler(file_handler)

        if str(err_file) not in existing:
            err_handler = logging.FileHandler(str(err_file), mode='a', encoding='utf-8')
            err_handler.setLevel(logging.ERROR)
            err_handler.setFormatter(formatter)
            root_logger.addHandler(err_handler)

        has_console_handler = any(
            isinstance(h, logging.StreamHandler) and not isinstance(h, logging.FileHandler)
            for h in root_logger.handlers
        )
        if not has_console_handler:
            console_handler = logging.StreamHandler(sys.stderr)
            console_handler.setLevel(level)
            console_handler.setFormatter(formatter)
            root_logger.addHandler(console_handler)

        root_logger.setLevel(logging.DEBUG)
        cls._initialized = True

    @classmethod
    def is_initialized(cls) -> bool:
        return cls._initialized


def get_module_logger(module_name: str = 'drivewipe') -> logging.Logger:
    """
    Get a logger instance for the specified module.

    Args:
        module_name: Module name (use __name__ for automatic module detection)

    Returns:
        logging.Logger: Logger instance

    Example:
        >>> from drivewipe.logger import get_module_logger
        >>> logger = get_module_logger(__name__)
        >>> logger.info("Starting process...")
    """
    return Logger.get_logger(module_name)


def log_section(title: str) -> None:
    """
    Log a section header surrounded by separator lines.

    Args:
        title: Section title
    """
    logger = Logger.get_logger('drivewipe')
    logger.info("=" * 60)
    logger.info(f"  {title}")
    logger.info("=" * 60)


def log_result(passed: bool, message: str) -> None:
    """
    Log a test result as pass or fail with a message.

    Args:
        passed: True if the test passed
        message: Result message
    """
    logger = Logger.get_logger('drivewipe')
    if passed:
        logger.info(f"[PASS] {message}")
    else:
        logger.error(f"[FAIL] {message}")
