"""
Supervisor

Spawns one wipe runner per drive and polls them all from a single loop.
Every tick drains each runner's stdout and stderr, updates its session,
renders the view and waits up to one tick for an operator key.
"""

import time
from typing import Any, Callable, Dict, List, Optional, Sequence

from drivewipe.exceptions import ProtocolError
from drivewipe.logger import get_module_logger, log_section
from drivewipe.wipe.process_manager import ExternalProcess
from .console import KeySource, SessionView
from .session import DeviceSession, SessionState

logger = get_module_logger(__name__)

QUIT_KEY = 'q'


def runner_args(name: str, config: Dict[str, Any]) -> List[str]:
    """Command line for the runner of drive *name*."""
    args = list(config['runner_command'])
    if config['dummy']:
        args.append('--dummy')
    args += ['--run-id', config['run_id']]
    if config['runner_config_file']:
        args += ['--config', config['runner_config_file']]
    if config['log_dir']:
        args += ['--log-dir', config['log_dir']]
    args.append(name)
    return args


class Supervisor:
    """
    Round-robin poller over device sessions.

    Args:
        sessions: One session per drive (see :meth:`launch`).
        config:   Supervisor configuration (see :class:`SupervisorConfig`).
        keys:     Operator input; None means just sleep one tick.
        view:     Renders the sessions after every tick.
        sleep:    Used instead of key input when *keys* is None.

    Example:
        >>> supervisor = Supervisor.launch(['sdb', 'sdc'], config,
        ...                                keys=StdinKeySource(), view=ConsoleView())
        >>> supervisor.run()
    """

    def __init__(
        self,
        sessions: Sequence[DeviceSession],
        config: Dict[str, Any],
        keys: Optional[KeySource] = None,
        view: Optional[SessionView] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.sessions = list(sessions)
        self.config = config
        self.keys = keys
        self.view = view
        self._sleep = sleep
        self._quit = False

    @classmethod
    def launch(
        cls,
        names: Sequence[str],
        config: Dict[str, Any],
        keys: Optional[KeySource] = None,
        view: Optional[SessionView] = None,
    ) -> 'Supervisor':
        """
        Spawn a runner for each drive.

        Raises:
            SpawnError: If a runner cannot be started.  Runners already
                        started are terminated first.
        """
        log_section(f"Drive wipe run {config['run_id']}: {', '.join(names)}")
        sessions: List[DeviceSession] = []
        try:
            for name in names:
                process = ExternalProcess(runner_args(name, config)).spawn()
                sessions.append(DeviceSession(name, process, config['stderr_tail_bytes']))
        except Exception:
            for session in sessions:
                session.terminate(config['terminate_timeout'])
            raise
        return cls(sessions, config, keys=keys, view=view)

    # ------------------------------------------------------------------
    # Main loop
    # ------------------------------------------------------------------

    def tick(self) -> None:
        """Poll every session once and render."""
        for session in self.sessions:
            try:
                session.poll()
            except ProtocolError as e:
                logger.error(f"{session.name}: {e}; ignoring further output from this runner")
            except Exception as e:
                logger.exception(f"{session.name}: polling runner failed: {e}")
        if self.view is not None:
            self.view.render(self.sessions)

    def run(self) -> int:
        """
        Loop until the operator quits (or, with ``exit_when_complete``,
        until every runner has finished).

        Returns:
            0 if every drive reached a disposition, 1 otherwise.
        """
        tick_seconds = self.config['tick_seconds']
        while True:
            self.tick()
            if self.config['exit_when_complete'] and self.all_finished:
                logger.info("All runners finished")
                break

            if self.keys is None:
                self._sleep(tick_seconds)
            elif self.keys.read_key(tick_seconds) == QUIT_KEY:
                self.quit()
                break

        self.log_summary()
        return 0 if self.all_complete else 1

    def quit(self) -> None:
        """Stop polling; terminate unfinished runners if so configured."""
        self._quit = True
        running = [s for s in self.sessions if not s.finished]
        if not running:
            return
        if self.config['terminate_on_quit']:
            for session in running:
                logger.warning(f"{session.name}: terminating runner on operator quit")
                session.terminate(self.config['terminate_timeout'])
        else:
            logger.warning(
                f"Leaving {len(running)} runner(s) running: "
                f"{', '.join(s.name for s in running)}"
            )

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    @property
    def quit_requested(self) -> bool:
        return self._quit

    @property
    def all_finished(self) -> bool:
        return all(session.finished for session in self.sessions)

    @property
    def all_complete(self) -> bool:
        return all(
            session.state is SessionState.DONE and session.error is None
            for session in self.sessions
        )

    def log_summary(self) -> None:
        for session in self.sessions:
            if session.disposition is not None:
                logger.info(
                    f"{session.name}: {session.status_line()} - "
                    f"{session.disposition.destination.action}"
                )
            else:
                logger.error(f"{session.name}: {session.status_line()}")
                if session.stderr_tail:
                    logger.error(f"{session.name} runner stderr:\n{session.stderr_tail}")
