"""
Drive Wipe Custom Exceptions

This module defines the exception classes shared by the runner and the
supervisor.  All exceptions inherit from the DriveWipeError base class.

Diagnostic outcomes (a failed scan, SMART flags) are never exceptions;
they are data consumed by the runner's decision tree.
"""


class DriveWipeError(Exception):
    """
    Base exception class for all drive wipe errors.

    Catch this to handle any drive wipe error.

    Example:
        >>> try:
        ...     runner.run()
        ... except DriveWipeError as e:
        ...     print(f"Run aborted: {e}")
    """
    pass


class ConfigError(DriveWipeError):
    """
    Configuration error exception.

    Raised when:
    - Unknown configuration parameters are provided
    - Parameter values have the wrong type
    - A configuration file cannot be read or lacks its section
    - More devices are found than the supervisor supports

    Example:
        >>> raise ConfigError("Unknown config parameter: 'tick'")
    """
    pass


class SpawnError(DriveWipeError):
    """
    External program could not be started.

    Fatal to the current runner: it aborts before any disposition is
    published.

    Example:
        >>> raise SpawnError("Cannot start /sbin/badblocks: No such file or directory")
    """
    pass


class ProcessTimeoutError(DriveWipeError):
    """
    A short one-shot command did not finish within its timeout.

    Only raised for helper commands (self-test trigger, device
    identification); long-running tests have no timeout.

    Example:
        >>> raise ProcessTimeoutError("scsiinfo timed out after 60 seconds")
    """
    pass


class CommandLineError(DriveWipeError):
    """
    smartctl reported that its command line did not parse (exit bit 0).

    This means the tool was invoked incorrectly, not that the device is
    unhealthy, so no disposition can be derived from it.

    Example:
        >>> raise CommandLineError("SMART command line error")
    """
    pass


class UnsupportedDeviceError(DriveWipeError):
    """
    The device cannot be tested by this tool.

    Raised when:
    - A pure ATA device (``/dev/hd*``) is given
    - The device has no entry under ``/sys/block``

    Example:
        >>> raise UnsupportedDeviceError("Pure ATA devices (/dev/hd*) are not supported")
    """
    pass


class ProtocolError(DriveWipeError):
    """
    Malformed status line from a runner, or a line that is invalid in the
    session's current state.

    Fatal to that device session only.  The device's state is unknown once
    the protocol is garbled, so nothing is guessed.

    Example:
        >>> raise ProtocolError("Unknown record type: 'Bogus'")
    """
    pass


class PublishError(DriveWipeError):
    """
    A test result record could not be delivered to the reporting endpoint.

    Example:
        >>> raise PublishError("Upload failed with HTTP 500")
    """
    pass
