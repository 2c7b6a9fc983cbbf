import logging
import os
import re
import subprocess
import sys
from pathlib import Path

from .config import TargetKind
from .constants import (
    APP_NAME,
    FSWATCH_EVENTS,
    INOTIFY_EVENTS_DIR,
    INOTIFY_EVENTS_FILE,
    WATCH_BIN_ENV,
)
from .errors import WatchUnavailable

logger = logging.getLogger(APP_NAME)


def _regex_escape(path: Path) -> str:
    """Escapes a path for use in a POSIX extended regular expression."""
    return re.sub(r"([.^$*+?()\[\]{}|\\])", r"\\\1", str(path))


def watch_binary(platform: str | None = None) -> str:
    """Returns the watch executable, honouring the GW_INW_BIN override."""
    if override := os.environ.get(WATCH_BIN_ENV):
        return override
    if (platform or sys.platform) == "darwin":
        return FswatchWatcher.default_binary
    return InotifyWatcher.default_binary


class WatchStrategy:
    """Base class for blocking filesystem watches.

    Each call to `wait_for_change` arms a fresh one-shot watch and returns once at
    least one qualifying event has happened under the target. Events inside the
    repository metadata directory are excluded. Extra wakeups are harmless, the
    debounce and status check absorb them.

    Attributes:
        target (Path): The file or directory being watched.
        kind (TargetKind): Whether the target is a file or a directory.
        git_dir (Path): The metadata directory to exclude.
        binary (str): The watch executable.
    """

    default_binary = ""

    def __init__(
        self,
        target: Path,
        kind: TargetKind,
        git_dir: Path,
        binary: str | None = None,
    ):
        self.target = target
        self.kind = kind
        self.git_dir = git_dir
        self.binary = binary or os.environ.get(WATCH_BIN_ENV) or self.default_binary

    def command(self) -> list[str]:
        """Builds the argument vector for one blocking watch."""
        raise NotImplementedError

    def exclude_pattern(self) -> str:
        """Extended regex matching the metadata directory and everything in it.

        Siblings that merely share the prefix, like `.gitignore` or `.github/`,
        are not matched.
        """
        return f"^{_regex_escape(self.git_dir)}(/|$)"

    def wait_for_change(self) -> None:
        """Blocks until a qualifying filesystem event occurs.

        Raises:
            WatchUnavailable: If the watch binary cannot be started or exits
                              with an error (e.g. the target disappeared).
        """
        cmd = self.command()
        logger.debug(f"Watching: {' '.join(cmd)}")
        try:
            res = subprocess.run(
                cmd, stdout=subprocess.DEVNULL, stderr=subprocess.PIPE, text=True
            )
        except OSError as e:
            raise WatchUnavailable(f"Could not start {self.binary}: {e}") from e

        if res.returncode != 0:
            detail = (res.stderr or "").strip() or f"exit status {res.returncode}"
            raise WatchUnavailable(f"Watch on {self.target} failed: {detail}")


class InotifyWatcher(WatchStrategy):
    """Watch strategy for Linux using `inotifywait`."""

    default_binary = "inotifywait"

    def command(self) -> list[str]:
        if self.kind is TargetKind.DIRECTORY:
            return [
                self.binary,
                f"--exclude={self.exclude_pattern()}",
                "-qq",
                "-r",
                "-e",
                INOTIFY_EVENTS_DIR,
                str(self.target),
            ]
        return [self.binary, "-qq", "-e", INOTIFY_EVENTS_FILE, str(self.target)]


class FswatchWatcher(WatchStrategy):
    """Watch strategy for macOS using `fswatch` in single-event mode.

    fswatch has no persistent recursive watch that blocks like inotifywait, so
    `-1` makes it exit after the first batch and the loop re-arms it.
    """

    default_binary = "fswatch"

    def command(self) -> list[str]:
        cmd = [self.binary, "-1", "-x"]
        if self.kind is TargetKind.DIRECTORY:
            cmd.append("-r")
        cmd.extend(
            [
                "-E",
                "--exclude",
                r"\.DS_Store",
                "--exclude",
                self.exclude_pattern(),
            ]
        )
        for event in FSWATCH_EVENTS:
            cmd.extend(["--event", event])
        cmd.append(str(self.target))
        return cmd


def get_watcher(
    target: Path,
    kind: TargetKind,
    git_dir: Path,
    binary: str | None = None,
) -> WatchStrategy:
    """Factory function to retrieve the platform-specific watch strategy.

    Args:
        target (Path): The canonical watch target.
        kind (TargetKind): File or directory.
        git_dir (Path): The metadata directory to exclude.
        binary (str | None): Explicit watch executable. Defaults to the
                             GW_INW_BIN override or the platform default.

    Returns:
        WatchStrategy: FswatchWatcher on macOS, InotifyWatcher elsewhere.
    """
    if sys.platform == "darwin":
        return FswatchWatcher(target, kind, git_dir, binary)
    return InotifyWatcher(target, kind, git_dir, binary)
