import datetime
import logging
from pathlib import Path

from .config import PushCommand, RunConfig, TargetKind
from .constants import (
    APP_NAME,
    CONFLICT_STAGES,
    CONFLICT_TIMESTAMP_FMT,
    DATE_PLACEHOLDER,
)
from .errors import CommitError, SyncError
from .git_wrapper import GitError, GitRepo

logger = logging.getLogger(APP_NAME)


def format_message(template: str, date_format: str, now: datetime.datetime) -> str:
    """Builds the commit message for a single commit.

    The first `%d` in the template is replaced by `now` formatted with
    `date_format`. An empty date format returns the template untouched, even
    if it contains `%d`.

    Args:
        template (str): The commit message template.
        date_format (str): strftime format, optionally prefixed with '+'.
        now (datetime.datetime): The local time to splice in.

    Returns:
        str: The commit message.
    """
    if not date_format:
        return template
    stamp = now.strftime(date_format.removeprefix("+"))
    return template.replace(DATE_PLACEHOLDER, stamp, 1)


def count_changes(repo: GitRepo) -> int:
    """Counts the paths `git status --short` reports as changed or untracked."""
    return len(repo.status_short())


def has_changes(repo: GitRepo) -> bool:
    """Returns True if the repository differs from its last commit.

    A watch event alone is not enough: a file may have been touched without a
    content change, or the event may concern an ignored path.
    """
    return count_changes(repo) > 0


def commit_changes(repo: GitRepo, run: RunConfig, message: str) -> None:
    """Stages the watched paths and commits them.

    Directory targets stage the whole tree and also pass `-a`, so tracked
    modifications that land between `add` and `commit` are still included. File
    targets stage only that file.

    Args:
        repo (GitRepo): The repository.
        run (RunConfig): The run configuration.
        message (str): The commit message.

    Raises:
        CommitError: If staging or committing fails.
    """
    try:
        repo.add(*run.add_paths)
        repo.commit(message, all_tracked=run.kind is TargetKind.DIRECTORY)
    except GitError as e:
        raise CommitError(f"Commit failed in {run.work_tree}: {e}") from e
    logger.info(f"COMMITTED {run.work_tree.name}: {message}")


def pull_theirs(repo: GitRepo) -> None:
    """Pulls from upstream, resolving textual conflicts in favour of the remote.

    Raises:
        SyncError: If the pull fails.
    """
    try:
        repo.pull(strategy_option="theirs")
    except GitError as e:
        raise SyncError(f"Pull failed: {e}") from e
    logger.info("PULLED: merged upstream (preferring theirs).")


def conflict_timestamp(now: datetime.datetime) -> str:
    """Formats the timestamp shared by all side files of one sync step."""
    return now.astimezone().strftime(CONFLICT_TIMESTAMP_FMT)


def preserve_conflicts(repo: GitRepo, timestamp: str) -> list[Path]:
    """Writes the base, local and remote versions of every unmerged path.

    For each path reported by `git diff --diff-filter=U`, index stages 1, 2 and 3
    are written next to it as `<path>.<timestamp>.original`, `.yours` and
    `.theirs`. Nothing is merged or resolved.

    Args:
        repo (GitRepo): The repository.
        timestamp (str): The timestamp embedded in every side file name.

    Returns:
        list[Path]: The side files written, three per unmerged path.

    Raises:
        SyncError: If the unmerged paths or any stage cannot be read.
    """
    written: list[Path] = []
    try:
        for path in repo.unmerged_paths():
            for stage, suffix in CONFLICT_STAGES.items():
                side_file = repo.work_tree / f"{path}.{timestamp}.{suffix}"
                side_file.write_bytes(repo.show_blob(f":{stage}:{path}"))
                written.append(side_file)
            logger.warning(f"CONFLICT {path}: saved original/yours/theirs copies.")
    except GitError as e:
        raise SyncError(f"Could not preserve conflicted files: {e}") from e
    return written


def push(repo: GitRepo, command: PushCommand) -> None:
    """Runs the push resolved at startup.

    Raises:
        SyncError: If the push fails.
    """
    try:
        repo.push(command.remote, command.refspec)
    except GitError as e:
        raise SyncError(f"Push failed ({command}): {e}") from e
    logger.info(f"PUSHED: git {command}")


def sync(repo: GitRepo, run: RunConfig, now: datetime.datetime) -> list[Path]:
    """Synchronizes with the remote after a commit check.

    With pull enabled, fetches first and preserves any conflicted files left by
    the automatic pull. Then pushes.

    Args:
        repo (GitRepo): The repository.
        run (RunConfig): The run configuration. Must have a push command.
        now (datetime.datetime): The time used for side file names.

    Returns:
        list[Path]: Any conflict side files written.

    Raises:
        SyncError: If fetch, conflict extraction or push fails.
    """
    if run.push is None:
        return []

    written: list[Path] = []
    if run.pull:
        try:
            repo.fetch(run.push.remote)
        except GitError as e:
            raise SyncError(f"Fetch from {run.push.remote} failed: {e}") from e
        written = preserve_conflicts(repo, conflict_timestamp(now))

    push(repo, run.push)
    return written
