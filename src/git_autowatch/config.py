import logging
import re
import tomllib
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Any

from .constants import (
    APP_NAME,
    CONFIG_FILE,
    DATE_PLACEHOLDER,
    DEFAULT_COMMIT_MSG,
    DEFAULT_DATE_FMT,
    DEFAULT_SLEEP_TIME,
)
from .errors import StartupConfigError
from .git_wrapper import GitRepo

logger = logging.getLogger(APP_NAME)


def parse_size(value: int | str) -> int:
    """Converts human-readable size strings (e.g., '100MB') to bytes."""
    if isinstance(value, int):
        return value
    match = re.match(r"^(\d+(?:\.\d+)?)\s*([kmg]b?)$", str(value).strip().lower())
    if not match:
        raise ValueError(f"Invalid size format '{value}'")
    num, unit = float(match.group(1)), match.group(2)
    multiplier = {
        "k": 1024,
        "kb": 1024,
        "m": 1024**2,
        "mb": 1024**2,
        "g": 1024**3,
        "gb": 1024**3,
    }
    return int(num * multiplier[unit])


def parse_time(value: int | float | str) -> float:
    """Converts human-readable time strings (e.g., '8', '2s', '1min') to seconds."""
    if isinstance(value, (int, float)):
        if value < 0:
            raise ValueError(f"Negative duration '{value}'")
        return float(value)
    match = re.match(
        r"^(\d+(?:\.\d+)?)\s*(s|sec|m|min|h|hr)?s?$", str(value).strip().lower()
    )
    if not match:
        raise ValueError(f"Invalid time format '{value}'")
    num, unit = float(match.group(1)), match.group(2) or "s"
    multiplier = {"s": 1, "sec": 1, "m": 60, "min": 60, "h": 3600, "hr": 3600}
    return num * multiplier[unit]


@dataclass
class CommitConfig:
    """Commit message settings.

    Attributes:
        message (str): The commit message template; `%d` marks the timestamp.
        date_format (str): strftime format for the timestamp. A leading '+' (as
            accepted by date(1)) is ignored. Empty disables substitution.
    """

    message: str = DEFAULT_COMMIT_MSG
    date_format: str = DEFAULT_DATE_FMT


@dataclass
class WatchSettings:
    """Watch loop settings.

    Attributes:
        sleep_time (float): Seconds to wait after the first event before checking.
    """

    sleep_time: float = DEFAULT_SLEEP_TIME


@dataclass
class RemoteConfig:
    """Remote synchronization settings.

    Attributes:
        name (str | None): The remote to push to. None disables syncing.
        branch (str | None): The remote branch to push to.
        pull (bool): Whether to pull (preferring the remote side) before waiting.
    """

    name: str | None = None
    branch: str | None = None
    pull: bool = False


@dataclass
class LoggingConfig:
    """Log output settings.

    Attributes:
        file (bool): Whether to also write a rotating log file.
        max_log_size (int): Max bytes for the log file before rotation.
    """

    file: bool = True
    max_log_size: int = 5 * 1024 * 1024


@dataclass
class Config:
    """User defaults, merged from built-in values and the global config file.

    Command-line flags are applied on top of this by the CLI.

    Attributes:
        commit (CommitConfig): Commit message settings.
        watch (WatchSettings): Watch loop settings.
        remote (RemoteConfig): Remote synchronization settings.
        log (LoggingConfig): Log output settings.
    """

    commit: CommitConfig = field(default_factory=CommitConfig)
    watch: WatchSettings = field(default_factory=WatchSettings)
    remote: RemoteConfig = field(default_factory=RemoteConfig)
    log: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def load(cls, path: Path | None = None) -> "Config":
        """Loads the configuration, applying defaults where necessary.

        Args:
            path (Path | None): An explicit config file. Defaults to CONFIG_FILE.

        Returns:
            Config: The populated configuration object.
        """
        instance = cls()
        config_path = path or CONFIG_FILE
        if config_path.exists():
            instance._merge_from_file(config_path)
        return instance

    def _merge_from_file(self, path: Path) -> None:
        """Parses a TOML file and merges it into the current instance.

        Args:
            path (Path): Path to the TOML file.
        """
        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            logger.error(f"Config syntax error in {path}: {e}")
            return
        except OSError as e:
            logger.warning(f"Failed to load config from {path}: {e}")
            return

        for section in ("commit", "watch", "remote", "log"):
            if section not in data:
                continue
            if not isinstance(data[section], dict):
                logger.warning(f"Config section [{section}] in {path} is not a table.")
                continue
            updated = self._update_dataclass(
                section, getattr(self, section), data[section]
            )
            setattr(self, section, updated)

        unknown = set(data) - {"commit", "watch", "remote", "log"}
        if unknown:
            logger.warning(
                f"Unknown config sections in {path}: {', '.join(sorted(unknown))}."
            )

    @staticmethod
    def _update_dataclass(section_name: str, instance: Any, updates: dict) -> Any:
        """Updates a dataclass, warning on invalid keys and parsing human formats."""
        valid_keys = instance.__dataclass_fields__.keys()
        filtered_updates = {}

        invalid_keys = set(updates.keys()) - set(valid_keys)
        if invalid_keys:
            logger.warning(
                f"Unknown config keys in [{section_name}]: "
                f"{', '.join(sorted(invalid_keys))}. Ignoring."
            )

        for k, v in updates.items():
            if k not in valid_keys:
                continue

            try:
                if k == "max_log_size":
                    filtered_updates[k] = parse_size(v)
                elif k == "sleep_time":
                    filtered_updates[k] = parse_time(v)
                else:
                    filtered_updates[k] = v
            except ValueError as e:
                logger.warning(
                    f"Config error in [{section_name}].{k}: {e}. "
                    "Falling back to default."
                )

        return replace(instance, **filtered_updates)


class TargetKind(Enum):
    FILE = "file"
    DIRECTORY = "directory"


@dataclass(frozen=True)
class PushCommand:
    """The push invocation resolved once at startup.

    Attributes:
        remote (str): The remote to push to.
        refspec (str | None): The refspec, or None for git's default push.
    """

    remote: str
    refspec: str | None = None

    def __str__(self) -> str:
        parts = ["push", self.remote]
        if self.refspec:
            parts.append(self.refspec)
        return " ".join(parts)


def resolve_push_command(
    remote: str | None,
    branch: str | None,
    detached: bool,
    startup_branch: str | None,
) -> PushCommand | None:
    """Selects the push command for the whole run.

    The branch HEAD pointed at when the process started is baked into the refspec
    and never re-read, even if HEAD later moves to another branch.

    Args:
        remote (str | None): The remote name. No remote means no syncing.
        branch (str | None): The remote branch to push to.
        detached (bool): Whether HEAD was detached at startup.
        startup_branch (str | None): The short name of the branch HEAD pointed at.

    Returns:
        PushCommand | None: The push to run after each iteration, or None.
    """
    if not remote:
        return None
    if not branch:
        return PushCommand(remote)
    if detached or not startup_branch:
        return PushCommand(remote, branch)
    return PushCommand(remote, f"{startup_branch}:{branch}")


@dataclass(frozen=True)
class RunConfig:
    """Everything the watch loop needs, captured once before it starts.

    Attributes:
        target (Path): The canonical absolute path being watched.
        kind (TargetKind): Whether the target is a single file or a directory.
        work_tree (Path): The repository working tree.
        git_dir (Path): The repository metadata directory.
        sleep_time (float): The fixed debounce delay in seconds.
        template (str): The commit message template.
        date_format (str): The timestamp format; empty disables substitution.
        remote (str | None): The remote name, if syncing.
        branch (str | None): The remote branch, if configured.
        pull (bool): Whether pull-before-push is enabled.
        push (PushCommand | None): The push resolved at startup.
    """

    target: Path
    kind: TargetKind
    work_tree: Path
    git_dir: Path
    sleep_time: float = DEFAULT_SLEEP_TIME
    template: str = DEFAULT_COMMIT_MSG
    date_format: str = DEFAULT_DATE_FMT
    remote: str | None = None
    branch: str | None = None
    pull: bool = False
    push: PushCommand | None = None

    @property
    def sync_active(self) -> bool:
        return self.push is not None

    @property
    def add_paths(self) -> list[str]:
        """Pathspecs staged before each commit."""
        if self.kind is TargetKind.DIRECTORY:
            return ["."]
        return [str(self.target)]


def resolve_target(target: str) -> tuple[Path, TargetKind, Path]:
    """Canonicalizes the watch target and derives the working tree.

    Args:
        target (str): The path given on the command line.

    Returns:
        tuple[Path, TargetKind, Path]: The absolute target, its kind, and the
        directory git commands run from.

    Raises:
        StartupConfigError: If the path does not exist or is neither a regular
                            file nor a directory.
    """
    try:
        resolved = Path(target).expanduser().resolve(strict=True)
    except (OSError, RuntimeError) as e:
        raise StartupConfigError(f"Cannot resolve target '{target}': {e}") from e

    if resolved.is_dir():
        return resolved, TargetKind.DIRECTORY, resolved
    if resolved.is_file():
        return resolved, TargetKind.FILE, resolved.parent
    raise StartupConfigError(
        f"The target is neither a regular file nor a directory: {resolved}"
    )


def build_run_config(
    target: str, config: Config, git_dir: str | None = None
) -> RunConfig:
    """Resolves all startup state into an immutable RunConfig.

    Args:
        target (str): The watch target from the command line.
        config (Config): Merged user defaults and command-line overrides.
        git_dir (str | None): Metadata directory override.

    Returns:
        RunConfig: The configuration for the whole run.

    Raises:
        StartupConfigError: On a bad target or a missing metadata directory.
    """
    resolved, kind, work_tree = resolve_target(target)
    meta_dir = Path(git_dir).expanduser().absolute() if git_dir else work_tree / ".git"

    try:
        repo = GitRepo(work_tree, meta_dir)
    except ValueError as e:
        raise StartupConfigError(str(e)) from e

    template = config.commit.message
    date_format = config.commit.date_format
    if DATE_PLACEHOLDER not in template:
        date_format = ""

    remote = config.remote.name or None
    branch = config.remote.branch or None
    push = None
    if remote:
        startup_ref = repo.symbolic_ref_head() if branch else None
        startup_branch = (
            startup_ref.removeprefix("refs/heads/") if startup_ref else None
        )
        push = resolve_push_command(
            remote, branch, detached=startup_ref is None, startup_branch=startup_branch
        )

    return RunConfig(
        target=resolved,
        kind=kind,
        work_tree=work_tree,
        git_dir=meta_dir,
        sleep_time=config.watch.sleep_time,
        template=template,
        date_format=date_format,
        remote=remote,
        branch=branch,
        pull=config.remote.pull,
        push=push,
    )
