"""
Supervisor Command Line

    drivewipe [--dummy] [--config FILE] [sdb sdc ...]

Without device names every ``sd*``/``hd*`` drive in /sys/block is wiped.
Type ``q`` and Enter to quit.
"""

import argparse
import logging
import sys
from typing import List, Optional

from drivewipe.exceptions import DriveWipeError
from drivewipe.logger import Logger, get_module_logger
from .config import SupervisorConfig
from .console import ConsoleView, StdinKeySource
from .drives import select_drives
from .supervisor import Supervisor

logger = get_module_logger(__name__)


def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog='drivewipe',
        description='Wipe and test several drives at once',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog='''
Examples:
  # Every drive found in /sys/block
  %(prog)s

  # Two drives, quick run, stop when both are done
  %(prog)s --dummy --exit-when-complete sdb sdc
        '''
    )

    parser.add_argument(
        'devices',
        nargs='*',
        help='Kernel device names (default: all sd*/hd* drives)'
    )

    parser.add_argument(
        '--dummy',
        action='store_true',
        help='Pass --dummy to every runner (no self test, 200 MiB wipe)'
    )

    parser.add_argument(
        '--run-id',
        type=str,
        help='Identifier shared by all results of this run (default: time and PID)'
    )

    parser.add_argument(
        '--config', '-c',
        type=str,
        help='YAML config file; the "supervisor" section is used, runners get the same file'
    )

    parser.add_argument(
        '--log-dir',
        type=str,
        help='Directory for log files (default: ./log)'
    )

    parser.add_argument(
        '--expected',
        type=int,
        help='Number of drives the operator expects; a mismatch is logged'
    )

    parser.add_argument(
        '--exit-when-complete',
        action='store_true',
        help='Exit once every runner has finished instead of waiting for q'
    )

    parser.add_argument(
        '--log-level', '-l',
        type=str,
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
        default='INFO',
        help='Console logging level (default: INFO)'
    )

    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point.

    Returns:
        Exit code (0 if every drive reached a disposition)
    """
    args = parse_arguments(argv)

    overrides = {}
    if args.dummy:
        overrides['dummy'] = True
    if args.run_id:
        overrides['run_id'] = args.run_id
    if args.log_dir:
        overrides['log_dir'] = args.log_dir
    if args.expected is not None:
        overrides['expected_devices'] = args.expected
    if args.exit_when_complete:
        overrides['exit_when_complete'] = True

    try:
        config = SupervisorConfig.build(args.config, **overrides)
        Logger.init_logging(
            log_dir=config['log_dir'],
            log_name='drivewipe',
            level=getattr(logging, args.log_level),
        )
        drives = select_drives(args.devices, config)
        supervisor = Supervisor.launch(
            drives,
            config,
            keys=StdinKeySource(sys.stdin),
            view=ConsoleView(sys.stdout),
        )
    except DriveWipeError as e:
        logger.error(f"{type(e).__name__}: {e}")
        return 1

    try:
        return supervisor.run()
    except KeyboardInterrupt:
        logger.warning("Interrupted")
        supervisor.quit()
        return 1


if __name__ == '__main__':
    sys.exit(main())
