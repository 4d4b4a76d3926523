"""
Wipe Runner Command Line

Runs the full test sequence against one device.  Status records go to
stdout, log output to stderr and the log directory.

    drivewipe-device [--dummy] [--run-id ID] [--config FILE] sdb
"""

import argparse
import logging
import sys
from typing import List, Optional

from drivewipe.exceptions import DriveWipeError
from drivewipe.logger import Logger, get_module_logger
from drivewipe.protocol.codec import ProtocolWriter
from .config import WipeConfig
from .controller import TestRunner
from .device import check_device_name, probe_device
from .publisher import create_publisher

logger = get_module_logger(__name__)


def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """
    Parse command-line arguments.

    Returns:
        Parsed arguments
    """
    parser = argparse.ArgumentParser(
        prog='drivewipe-device',
        description='Wipe and test one drive, streaming status lines on stdout',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog='''
Examples:
  # Full run against /dev/sdb
  %(prog)s sdb

  # Quick run: skip the SMART self-test, scan the first 200000 blocks only
  %(prog)s --dummy sdb
        '''
    )

    parser.add_argument(
        'device',
        type=str,
        help='Kernel device name, e.g. sdb (or /dev/sdb)'
    )

    parser.add_argument(
        '--dummy',
        action='store_true',
        help='Skip the self test and wipe 200 MiB only'
    )

    parser.add_argument(
        '--run-id',
        type=str,
        help='Identifier shared by all results of this run (default: time and PID)'
    )

    parser.add_argument(
        '--config', '-c',
        type=str,
        help='YAML config file; the "wipe" section is used'
    )

    parser.add_argument(
        '--log-dir',
        type=str,
        help='Directory for log files (default: ./log)'
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
        Exit code (0 once the Complete record is written, 1 on error)
    """
    args = parse_arguments(argv)

    try:
        name = check_device_name(args.device)
        Logger.init_logging(
            log_dir=args.log_dir,
            log_name=f'wipe_{name}',
            level=getattr(logging, args.log_level),
        )

        overrides = {}
        if args.dummy:
            overrides['dummy'] = True
        if args.run_id:
            overrides['run_id'] = args.run_id
        config = WipeConfig.build(args.config, **overrides)

        device = probe_device(name, config)
        runner = TestRunner(
            device,
            config,
            ProtocolWriter(sys.stdout),
            publisher=create_publisher(config),
        )
        runner.run()
    except DriveWipeError as e:
        logger.error(f"{type(e).__name__}: {e}")
        return 1
    return 0


if __name__ == '__main__':
    sys.exit(main())
