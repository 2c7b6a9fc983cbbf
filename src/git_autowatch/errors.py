"""Exception hierarchy for git-autowatch.

None of these are recovered inside the watch loop. Startup errors stop the
process before the loop begins; everything else propagates out of the current
iteration and terminates the process so a supervisor can restart it.
"""


class AutowatchError(Exception):
    """Base class for all git-autowatch failures."""


class StartupConfigError(AutowatchError):
    """Bad or missing target, missing metadata directory, or missing binary."""


class WatchUnavailable(AutowatchError):
    """The filesystem watch could not be established or failed permanently."""


class CommitError(AutowatchError):
    """Staging or committing failed (e.g. a rejecting hook)."""


class SyncError(AutowatchError):
    """A pull, fetch, conflict extraction or push against the remote failed."""
