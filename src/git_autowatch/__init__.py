"""git-autowatch: commit every change to a watched file or directory.

This package provides the command-line interface and the watch loop that waits
for filesystem activity, lets it settle, commits whatever changed, and optionally
pulls from and pushes to a remote, saving copies of any conflicted files.
"""

from . import (
    cli,
    config,
    constants,
    daemon,
    errors,
    git_wrapper,
    ops,
    watcher,
)

__all__ = [
    "cli",
    "config",
    "constants",
    "daemon",
    "errors",
    "git_wrapper",
    "ops",
    "watcher",
]
