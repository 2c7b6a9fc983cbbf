"""Tests for the platform-specific filesystem watch strategies."""

import re
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from git_autowatch import watcher
from git_autowatch.config import TargetKind
from git_autowatch.errors import WatchUnavailable


@pytest.fixture(autouse=True)
def clear_watch_override(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("GW_INW_BIN", raising=False)


def test_inotify_directory_command() -> None:
    """Verifies recursive watching with the metadata directory excluded."""
    w = watcher.InotifyWatcher(
        Path("/data/notes"), TargetKind.DIRECTORY, Path("/data/notes/.git")
    )

    assert w.command() == [
        "inotifywait",
        r"--exclude=^/data/notes/\.git(/|$)",
        "-qq",
        "-r",
        "-e",
        "close_write,move,delete,create",
        "/data/notes",
    ]


def test_inotify_file_command() -> None:
    """Verifies that a single file is watched without recursion or create events."""
    w = watcher.InotifyWatcher(
        Path("/data/notes.txt"), TargetKind.FILE, Path("/data/.git")
    )

    assert w.command() == [
        "inotifywait",
        "-qq",
        "-e",
        "close_write,move,delete",
        "/data/notes.txt",
    ]


@pytest.mark.parametrize(
    ("path", "excluded"),
    [
        ("/data/notes/.git", True),
        ("/data/notes/.git/index", True),
        ("/data/notes/.git/refs/heads/main", True),
        ("/data/notes/.gitignore", False),
        ("/data/notes/.gitattributes", False),
        ("/data/notes/.github/workflows/ci.yml", False),
        ("/data/notes/sub/.git/index", False),
    ],
)
def test_exclude_pattern_covers_only_the_metadata_directory(
    path: str, excluded: bool
) -> None:
    """Verifies that files next to the metadata directory still wake the watch."""
    w = watcher.InotifyWatcher(
        Path("/data/notes"), TargetKind.DIRECTORY, Path("/data/notes/.git")
    )

    assert bool(re.search(w.exclude_pattern(), path)) is excluded


def test_fswatch_directory_command() -> None:
    """Verifies that fswatch runs in one-shot recursive mode."""
    w = watcher.FswatchWatcher(
        Path("/data/notes"), TargetKind.DIRECTORY, Path("/data/notes/.git")
    )
    cmd = w.command()

    assert cmd[:4] == ["fswatch", "-1", "-x", "-r"]
    assert r"^/data/notes/\.git(/|$)" in cmd
    assert "-E" in cmd
    assert cmd.count("--event") == 6
    assert cmd[-1] == "/data/notes"


def test_fswatch_file_command_is_not_recursive() -> None:
    w = watcher.FswatchWatcher(Path("/data/a.txt"), TargetKind.FILE, Path("/data/.git"))
    assert "-r" not in w.command()


def test_binary_override(monkeypatch: pytest.MonkeyPatch) -> None:
    """Verifies that GW_INW_BIN replaces the watch executable."""
    monkeypatch.setenv("GW_INW_BIN", "/opt/bin/inotifywait")
    w = watcher.InotifyWatcher(Path("/d"), TargetKind.DIRECTORY, Path("/d/.git"))

    assert w.command()[0] == "/opt/bin/inotifywait"
    assert watcher.watch_binary() == "/opt/bin/inotifywait"


def test_watch_binary_per_platform() -> None:
    assert watcher.watch_binary("darwin") == "fswatch"
    assert watcher.watch_binary("linux") == "inotifywait"


def test_get_watcher_selects_platform(mocker: MagicMock) -> None:
    """Verifies that `get_watcher` returns the strategy for the running OS."""
    args = (Path("/d"), TargetKind.DIRECTORY, Path("/d/.git"))

    mocker.patch("sys.platform", "darwin")
    assert isinstance(watcher.get_watcher(*args), watcher.FswatchWatcher)

    mocker.patch("sys.platform", "linux")
    assert isinstance(watcher.get_watcher(*args), watcher.InotifyWatcher)


def test_wait_for_change_returns_on_event(mocker: MagicMock) -> None:
    mock_run = mocker.patch("subprocess.run")
    mock_run.return_value = MagicMock(returncode=0, stderr="")
    w = watcher.InotifyWatcher(Path("/d"), TargetKind.DIRECTORY, Path("/d/.git"))

    w.wait_for_change()

    mock_run.assert_called_once()
    assert mock_run.call_args.args[0] == w.command()


def test_wait_for_change_failure_is_fatal(mocker: MagicMock) -> None:
    """Verifies that a watch that cannot be established raises WatchUnavailable."""
    mocker.patch(
        "subprocess.run",
        return_value=MagicMock(
            returncode=1, stderr="Couldn't watch /d: No such file or directory"
        ),
    )
    w = watcher.InotifyWatcher(Path("/d"), TargetKind.DIRECTORY, Path("/d/.git"))

    with pytest.raises(WatchUnavailable, match="No such file or directory"):
        w.wait_for_change()


def test_wait_for_change_missing_binary(mocker: MagicMock) -> None:
    mocker.patch("subprocess.run", side_effect=FileNotFoundError("inotifywait"))
    w = watcher.InotifyWatcher(Path("/d"), TargetKind.DIRECTORY, Path("/d/.git"))

    with pytest.raises(WatchUnavailable, match="Could not start inotifywait"):
        w.wait_for_change()
