import argparse
import logging
import shutil
import sys
import textwrap
from logging.handlers import BufferingHandler

from rich.console import Console

from . import daemon
from .config import Config, build_run_config, parse_time
from .constants import (
    APP_NAME,
    CONFIG_FILE,
    DEFAULT_COMMIT_MSG,
    DEFAULT_DATE_FMT,
    DEFAULT_SLEEP_TIME,
    GIT_BIN_ENV,
    LOG_FILE,
    WATCH_BIN_ENV,
)
from .errors import AutowatchError, StartupConfigError
from .git_wrapper import git_binary
from .watcher import watch_binary

logger = logging.getLogger(APP_NAME)
console = Console()
err_console = Console(stderr=True)

EPILOG = textwrap.dedent(
    f"""\
    Push behaviour with -r <remote>:
      no -b given                    git push <remote>
      -b given, HEAD detached        git push <remote> <branch>
      -b given, HEAD on a branch     git push <remote> <current branch>:<branch>

    The branch HEAD points at and the detached state are read once at launch.
    Changing the repository's branch or configuration while {APP_NAME} is
    running can lead to unpredictable results; restart it afterwards.

    Defaults are read from {CONFIG_FILE} when present.
    The git and inotifywait/fswatch binaries can be overridden with the
    {GIT_BIN_ENV} and {WATCH_BIN_ENV} environment variables.
    """
)


def _escape(text: str) -> str:
    return text.replace("%", "%%")


def _duration(value: str) -> float:
    try:
        return parse_time(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e)) from e


def build_parser() -> argparse.ArgumentParser:
    """Creates the argument parser for the command line."""
    parser = argparse.ArgumentParser(
        prog=APP_NAME,
        description=(
            "Watch a file or directory and git commit all changes as they happen."
        ),
        epilog=EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "target",
        nargs="?",
        help="The file or directory to watch. It must be inside a git repository "
        "(or be the top folder of one).",
    )
    parser.add_argument(
        "-s",
        dest="sleep_time",
        type=_duration,
        metavar="<secs>",
        help="After a change is detected, wait <secs> before committing so that "
        f"related writes land in the same commit (default: {DEFAULT_SLEEP_TIME})",
    )
    parser.add_argument(
        "-d",
        dest="date_format",
        metavar="<fmt>",
        help="Format of the timestamp spliced into the commit message; strftime "
        "directives, a leading '+' is ignored "
        f"(default: '{_escape(DEFAULT_DATE_FMT)}')",
    )
    parser.add_argument(
        "-r",
        "-p",
        dest="remote",
        metavar="<remote>",
        help="Push to <remote> after every iteration",
    )
    parser.add_argument(
        "-b",
        dest="branch",
        metavar="<branch>",
        help="The remote branch to push to (only used together with -r)",
    )
    parser.add_argument(
        "-m",
        dest="message",
        metavar="<msg>",
        help="Commit message; the first %%d is replaced by the formatted date "
        f"unless the date format is empty (default: '{_escape(DEFAULT_COMMIT_MSG)}')",
    )
    parser.add_argument(
        "-g",
        dest="git_dir",
        metavar="<git-dir>",
        help="Git metadata directory (default: <target>/.git)",
    )
    parser.add_argument(
        "-P",
        dest="pull",
        action="store_true",
        default=None,
        help="Pull (preferring the remote side) before each wait",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Log every phase transition"
    )
    parser.add_argument(
        "--no-log-file",
        action="store_true",
        help=f"Do not write {LOG_FILE}",
    )
    return parser


def apply_overrides(config: Config, args: argparse.Namespace) -> Config:
    """Applies command-line flags on top of the loaded defaults.

    Args:
        config (Config): Defaults from the config file.
        args (argparse.Namespace): Parsed command-line arguments.

    Returns:
        Config: The same instance, updated in place.
    """
    if args.sleep_time is not None:
        config.watch.sleep_time = args.sleep_time
    if args.date_format is not None:
        config.commit.date_format = args.date_format
    if args.message is not None:
        config.commit.message = args.message
    if args.remote is not None:
        config.remote.name = args.remote
    if args.branch is not None:
        config.remote.branch = args.branch
    if args.pull is not None:
        config.remote.pull = args.pull
    if args.no_log_file:
        config.log.file = False
    return config


def load_config(args: argparse.Namespace) -> Config:
    """Loads defaults, applies flags and then configures logging from the result.

    Warnings raised while reading the config file are held back and replayed
    once the log handlers exist, so they are formatted and reach the log file.

    Args:
        args (argparse.Namespace): Parsed command-line arguments.

    Returns:
        Config: The effective configuration.
    """
    pending = BufferingHandler(capacity=1000)
    logger.addHandler(pending)
    try:
        config = apply_overrides(Config.load(), args)
    finally:
        logger.removeHandler(pending)

    daemon.setup_logging(
        verbose=args.verbose,
        log_file=LOG_FILE if config.log.file else None,
        max_log_size=config.log.max_log_size,
    )
    for record in pending.buffer:
        logger.handle(record)
    pending.close()
    return config


def check_binaries() -> None:
    """Ensures the git and watch executables can be found.

    Raises:
        StartupConfigError: If either executable is missing.
    """
    for cmd in (git_binary(), watch_binary()):
        if shutil.which(cmd) is None:
            raise StartupConfigError(f"Required command '{cmd}' not found.")


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the git-autowatch CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    config = load_config(args)

    try:
        if not args.target:
            raise StartupConfigError("No target argument present.")
        check_binaries()
        run = build_run_config(args.target, config, args.git_dir)
    except StartupConfigError as e:
        err_console.print(f"[bold red]ERROR:[/bold red] {e}", soft_wrap=True)
        parser.print_usage(sys.stderr)
        sys.exit(1)

    console.print(f"[bold green]Watching[/bold green] {run.target}")
    try:
        daemon.main(run)
    except KeyboardInterrupt:
        console.print("[yellow]Stopped.[/yellow]")
        sys.exit(130)
    except AutowatchError as e:
        logger.critical(f"FATAL: {e}")
        sys.exit(2)


if __name__ == "__main__":
    main()
