import logging
import os
import subprocess
from pathlib import Path

from .constants import APP_NAME, GIT_BIN_ENV

logger = logging.getLogger(APP_NAME)


class GitError(RuntimeError):
    """Raised when a git invocation exits with a non-zero status.

    Attributes:
        args_list (list[str]): The git arguments that failed.
        stderr (str): Whatever git wrote to stderr.
    """

    def __init__(self, args_list: list[str], stderr: str):
        self.args_list = args_list
        self.stderr = stderr
        super().__init__(f"Git error ({' '.join(args_list)}): {stderr.strip()}")


def git_binary() -> str:
    """Returns the git executable, honouring the GW_GIT_BIN override."""
    return os.environ.get(GIT_BIN_ENV) or "git"


class GitRepo:
    """A wrapper around the Git command-line interface for one watched repository.

    Every command is run from the working tree with explicit ``--git-dir`` and
    ``--work-tree`` arguments, so a metadata directory outside the working tree
    is handled the same way as the default ``<work-tree>/.git``.

    Attributes:
        work_tree (Path): The repository working tree.
        git_dir (Path): The repository metadata directory.
        binary (str): The git executable to invoke.
    """

    def __init__(
        self, work_tree: Path, git_dir: Path | None = None, binary: str | None = None
    ):
        """Initializes the GitRepo instance.

        Args:
            work_tree (Path): The working tree directory.
            git_dir (Path | None, optional): The metadata directory.
                                             Defaults to ``work_tree / ".git"``.
            binary (str | None, optional): The git executable. Defaults to the
                                           value of ``git_binary()``.

        Raises:
            ValueError: If the metadata directory does not exist or is not a directory.
        """
        self.work_tree = work_tree
        self.git_dir = git_dir if git_dir is not None else work_tree / ".git"
        self.binary = binary or git_binary()
        if not self.git_dir.is_dir():
            raise ValueError(f"{self.git_dir} is not a directory")

    def _command(self, args: list[str]) -> list[str]:
        return [
            self.binary,
            "--git-dir",
            str(self.git_dir),
            "--work-tree",
            str(self.work_tree),
            *args,
        ]

    def _run(self, args: list[str], capture: bool = True) -> str:
        """Executes a Git command within the repository context.

        Args:
            args (list[str]): A list of arguments to pass to the git command.
            capture (bool, optional):   Whether to capture and return stdout.
                                        Defaults to True.

        Returns:
            str:    The stripped stdout of the command if capture is True,
                    otherwise an empty string.

        Raises:
            GitError: If the git command returns a non-zero exit code.
        """
        cmd = self._command(args)
        logger.debug(f"Running: {' '.join(cmd)}")
        try:
            res = subprocess.run(
                cmd,
                cwd=self.work_tree,
                capture_output=capture,
                text=True,
                check=True,
            )
            return res.stdout.strip() if capture else ""
        except subprocess.CalledProcessError as e:
            raise GitError(args, e.stderr or str(e)) from e

    def status_short(self) -> list[str]:
        """Returns one line per changed (tracked or untracked) path.

        Returns:
            list[str]: The lines printed by `git status --short`.
        """
        output = self._run(["status", "--short"])
        return output.splitlines() if output else []

    def add(self, *paths: str) -> None:
        """Stages the given paths.

        Args:
            *paths (str): Paths (or pathspecs such as ".") to add to the index.
        """
        self._run(["add", *paths], capture=False)

    def commit(self, message: str, all_tracked: bool = False) -> None:
        """Creates a new commit with the provided message.

        Args:
            message (str): The commit message.
            all_tracked (bool, optional): Whether to pass `-a` so that tracked
                                          modifications missed by staging are
                                          included. Defaults to False.
        """
        cmd = ["commit"]
        if all_tracked:
            cmd.append("-a")
        cmd.extend(["-m", message])
        self._run(cmd)

    def pull(self, strategy_option: str | None = None) -> None:
        """Pulls from the configured upstream.

        Args:
            strategy_option (str | None, optional): Merge strategy option passed
                                                    via `-X` (e.g. 'theirs').
        """
        cmd = ["pull"]
        if strategy_option:
            cmd.extend(["-X", strategy_option])
        self._run(cmd)

    def fetch(self, remote: str) -> None:
        """Fetches from a remote without touching the working tree."""
        self._run(["fetch", remote])

    def push(self, remote: str, refspec: str | None = None) -> None:
        """Pushes to a remote.

        Args:
            remote (str): The remote name.
            refspec (str | None, optional): The refspec to push. When omitted git's
                                            default push behaviour applies.
        """
        cmd = ["push", remote]
        if refspec:
            cmd.append(refspec)
        self._run(cmd)

    def symbolic_ref_head(self) -> str | None:
        """Resolves the ref HEAD points at.

        Returns:
            str | None: The full ref name (e.g. 'refs/heads/main'), or None when
                        HEAD is detached.
        """
        try:
            return self._run(["symbolic-ref", "HEAD"])
        except GitError as e:
            logger.debug(f"symbolic-ref failed, treating HEAD as detached: {e}")
            return None

    def unmerged_paths(self) -> list[str]:
        """Lists paths with unresolved merge conflicts in the index.

        Paths are read NUL-separated with quoting off, so names with non-ASCII
        bytes come back unquoted.
        """
        args = ["-c", "core.quotePath=false", "diff", "--name-only", "-z"]
        output = self._run([*args, "--diff-filter=U"])
        return [path for path in output.split("\0") if path]

    def show_blob(self, rev: str) -> bytes:
        """Returns the raw contents of a blob (e.g. ':2:path').

        The output is kept as bytes so binary files survive unchanged.

        Args:
            rev (str): The object name understood by `git show`.

        Returns:
            bytes: The blob contents.

        Raises:
            GitError: If the object cannot be resolved.
        """
        args = ["show", rev]
        cmd = self._command(args)
        try:
            res = subprocess.run(
                cmd, cwd=self.work_tree, capture_output=True, check=True
            )
        except subprocess.CalledProcessError as e:
            raise GitError(args, e.stderr.decode(errors="replace")) from e
        return res.stdout
