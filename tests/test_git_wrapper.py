import subprocess
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from git_autowatch.git_wrapper import GitError, GitRepo, git_binary


@pytest.fixture
def repo(tmp_path: Path) -> GitRepo:
    (tmp_path / ".git").mkdir()
    return GitRepo(tmp_path)


def test_init_rejects_missing_git_dir(tmp_path: Path) -> None:
    with pytest.raises(ValueError, match="is not a directory"):
        GitRepo(tmp_path)


def test_git_binary_override(monkeypatch: pytest.MonkeyPatch) -> None:
    """Verifies that GW_GIT_BIN replaces the git executable."""
    monkeypatch.delenv("GW_GIT_BIN", raising=False)
    assert git_binary() == "git"
    monkeypatch.setenv("GW_GIT_BIN", "/opt/git/bin/git")
    assert git_binary() == "/opt/git/bin/git"


def test_run_passes_git_dir_and_work_tree(
    mocker: MagicMock, tmp_path: Path
) -> None:
    """Verifies that every command is scoped to the work tree and metadata dir."""
    work = tmp_path / "work"
    meta = tmp_path / "meta"
    work.mkdir()
    meta.mkdir()
    repo = GitRepo(work, meta, binary="git")
    mock_run = mocker.patch("subprocess.run")
    mock_run.return_value = MagicMock(stdout=" M a.txt\n?? b.txt\n")

    assert repo.status_short() == ["M a.txt", "?? b.txt"]

    mock_run.assert_called_once_with(
        ["git", "--git-dir", str(meta), "--work-tree", str(work), "status", "--short"],
        cwd=work,
        capture_output=True,
        text=True,
        check=True,
    )


def test_run_raises_git_error_with_stderr(mocker: MagicMock, repo: GitRepo) -> None:
    """Verifies that non-zero exits surface git's stderr."""
    mocker.patch(
        "subprocess.run",
        side_effect=subprocess.CalledProcessError(
            1, ["git"], stderr="hook declined"
        ),
    )

    with pytest.raises(GitError, match="hook declined") as excinfo:
        repo.commit("msg")

    assert excinfo.value.args_list == ["commit", "-m", "msg"]


def test_status_short_empty(mocker: MagicMock, repo: GitRepo) -> None:
    mocker.patch.object(repo, "_run", return_value="")
    assert repo.status_short() == []


def test_commit_flags(mocker: MagicMock, repo: GitRepo) -> None:
    """Verifies that `-a` is only added when asked for."""
    mock_run = mocker.patch.object(repo, "_run")

    repo.commit("msg")
    mock_run.assert_called_with(["commit", "-m", "msg"])

    repo.commit("msg", all_tracked=True)
    mock_run.assert_called_with(["commit", "-a", "-m", "msg"])


def test_pull_push_fetch_arguments(mocker: MagicMock, repo: GitRepo) -> None:
    mock_run = mocker.patch.object(repo, "_run")

    repo.pull(strategy_option="theirs")
    mock_run.assert_called_with(["pull", "-X", "theirs"])

    repo.fetch("origin")
    mock_run.assert_called_with(["fetch", "origin"])

    repo.push("origin")
    mock_run.assert_called_with(["push", "origin"])

    repo.push("origin", "work:main")
    mock_run.assert_called_with(["push", "origin", "work:main"])

    repo.add(".")
    mock_run.assert_called_with(["add", "."], capture=False)


def test_symbolic_ref_head_detached(mocker: MagicMock, repo: GitRepo) -> None:
    """Verifies that a failing symbolic-ref means a detached HEAD."""
    error = GitError(["symbolic-ref", "HEAD"], "not a symbolic ref")
    mocker.patch.object(repo, "_run", side_effect=error)
    assert repo.symbolic_ref_head() is None


def test_symbolic_ref_head_attached(mocker: MagicMock, repo: GitRepo) -> None:
    mocker.patch.object(repo, "_run", return_value="refs/heads/work")
    assert repo.symbolic_ref_head() == "refs/heads/work"


def test_unmerged_paths(mocker: MagicMock, repo: GitRepo) -> None:
    """Verifies that paths are read NUL-separated and unquoted."""
    mock_run = mocker.patch.object(
        repo, "_run", return_value="a.txt\0sub/caf\u00e9.txt\0"
    )

    assert repo.unmerged_paths() == ["a.txt", "sub/caf\u00e9.txt"]
    mock_run.assert_called_once_with(
        [
            "-c",
            "core.quotePath=false",
            "diff",
            "--name-only",
            "-z",
            "--diff-filter=U",
        ]
    )


def test_show_blob_returns_bytes(mocker: MagicMock, repo: GitRepo) -> None:
    """Verifies that blob contents are not decoded."""
    mock_run = mocker.patch("subprocess.run")
    mock_run.return_value = MagicMock(stdout=b"\x00\xffbinary")

    assert repo.show_blob(":2:a.bin") == b"\x00\xffbinary"
    assert mock_run.call_args.args[0][-2:] == ["show", ":2:a.bin"]
    assert "text" not in mock_run.call_args.kwargs


def test_show_blob_missing_stage(mocker: MagicMock, repo: GitRepo) -> None:
    mocker.patch(
        "subprocess.run",
        side_effect=subprocess.CalledProcessError(
            128, ["git"], stderr=b"fatal: path 'a' is in the index, but not at stage 1"
        ),
    )
    with pytest.raises(GitError, match="not at stage 1"):
        repo.show_blob(":1:a")
