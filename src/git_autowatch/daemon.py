import datetime
import logging
import sys
import time
from dataclasses import dataclass, field
from enum import Enum
from logging.handlers import RotatingFileHandler
from pathlib import Path

from . import ops
from .config import RunConfig
from .constants import APP_NAME
from .git_wrapper import GitRepo
from .watcher import WatchStrategy, get_watcher

logger = logging.getLogger(APP_NAME)
logger.setLevel(logging.INFO)


class Clock:
    """Wall-clock time and sleeping, replaceable in tests."""

    def now(self) -> datetime.datetime:
        return datetime.datetime.now()

    def monotonic(self) -> float:
        return time.monotonic()

    def sleep(self, seconds: float) -> None:
        time.sleep(seconds)


class LoopPhase(Enum):
    WAITING = "waiting"
    SETTLING = "settling"
    CHECKING = "checking"
    COMMITTING = "committing"
    SYNCING = "syncing"


@dataclass
class LoopState:
    """Per-iteration bookkeeping. Created fresh for every iteration.

    Attributes:
        deadline (float | None): Monotonic time at which the debounce ended.
        message (str | None): The commit message computed for this iteration.
        changed (int): Number of changed paths seen by the status check.
        committed (bool): Whether a commit was created.
        side_files (list[Path]): Conflict side files written during sync.
    """

    deadline: float | None = None
    message: str | None = None
    changed: int = 0
    committed: bool = False
    side_files: list[Path] = field(default_factory=list)


def debounce(clock: Clock, seconds: float) -> float:
    """Sleeps for a fixed quiet period after the first event.

    The delay is not extended by events that arrive while sleeping; whatever
    happens during the window is picked up by the single status check after it.

    Args:
        clock (Clock): The clock to sleep on.
        seconds (float): The quiet period.

    Returns:
        float: The monotonic deadline the sleep ran until.
    """
    deadline = clock.monotonic() + seconds
    clock.sleep(seconds)
    return deadline


class WatchLoop:
    """Drives the wait, debounce, check, commit and sync cycle.

    Attributes:
        run (RunConfig): The immutable run configuration.
        repo (GitRepo): The version-control collaborator.
        watcher (WatchStrategy): The filesystem watch collaborator.
        clock (Clock): Source of time and sleeps.
        phase (LoopPhase): The phase the loop is currently in.
        iterations (int): Completed iterations.
        commits (int): Commits created so far.
    """

    def __init__(
        self,
        run: RunConfig,
        repo: GitRepo,
        watcher: WatchStrategy,
        clock: Clock | None = None,
    ):
        self.run = run
        self.repo = repo
        self.watcher = watcher
        self.clock = clock or Clock()
        self.phase = LoopPhase.WAITING
        self.iterations = 0
        self.commits = 0

    def _enter(self, phase: LoopPhase) -> None:
        logger.debug(f"Phase: {self.phase.value} -> {phase.value}")
        self.phase = phase

    def run_once(self) -> LoopState:
        """Runs a single iteration of the loop.

        Any CommitError, SyncError or WatchUnavailable raised by a collaborator
        propagates to the caller unchanged; nothing is rolled back or retried.

        Returns:
            LoopState: What happened during the iteration.
        """
        state = LoopState()
        run = self.run

        self._enter(LoopPhase.WAITING)
        if run.sync_active and run.pull:
            ops.pull_theirs(self.repo)
        self.watcher.wait_for_change()

        self._enter(LoopPhase.SETTLING)
        state.deadline = debounce(self.clock, run.sleep_time)
        state.message = ops.format_message(
            run.template, run.date_format, self.clock.now()
        )

        self._enter(LoopPhase.CHECKING)
        state.changed = ops.count_changes(self.repo)
        if state.changed:
            self._enter(LoopPhase.COMMITTING)
            ops.commit_changes(self.repo, run, state.message)
            state.committed = True
            self.commits += 1
        else:
            logger.debug("No changes after settling; skipping commit.")

        if run.sync_active:
            self._enter(LoopPhase.SYNCING)
            state.side_files = ops.sync(self.repo, run, self.clock.now())

        self._enter(LoopPhase.WAITING)
        self.iterations += 1
        return state

    def run_forever(self, max_iterations: int | None = None) -> None:
        """Runs iterations until interrupted, an error escapes, or the limit is hit.

        Args:
            max_iterations (int | None): Stop after this many iterations.
                                         None runs without bound.
        """
        while max_iterations is None or self.iterations < max_iterations:
            self.run_once()


def setup_logging(
    verbose: bool = False,
    log_file: Path | None = None,
    max_log_size: int = 5 * 1024 * 1024,
) -> None:
    """Configures the logging subsystem.

    Args:
        verbose (bool): If True, log at DEBUG level.
        log_file (Path | None): If given, also log to this file with rotation.
        max_log_size (int): Bytes before the log file is rotated.
    """
    formatter = logging.Formatter(
        "[%(asctime)s] %(levelname)s: %(message)s", "%Y-%m-%d %H:%M:%S"
    )
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)

    # Always log to stderr (captured by systemd/launchd or a terminal).
    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setFormatter(formatter)
    logger.addHandler(stream_handler)

    if log_file is not None:
        try:
            log_file.parent.mkdir(parents=True, exist_ok=True)
            file_handler = RotatingFileHandler(
                log_file,
                maxBytes=max_log_size,
                backupCount=5,
            )
        except OSError as e:
            logger.warning(f"Could not open log file {log_file}: {e}")
            return
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)


def main(run: RunConfig, max_iterations: int | None = None) -> None:
    """The main watch loop for one target.

    Args:
        run (RunConfig): The configuration resolved at startup.
        max_iterations (int | None): Stop after this many iterations (tests).
    """
    repo = GitRepo(run.work_tree, run.git_dir)
    watcher = get_watcher(run.target, run.kind, run.git_dir)

    logger.info(
        f"Watching {run.target} ({run.kind.value}); "
        f"debounce {run.sleep_time:g}s; "
        + (f"sync: git {run.push}" if run.push else "no remote")
    )
    WatchLoop(run, repo, watcher).run_forever(max_iterations)
