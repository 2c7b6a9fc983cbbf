import datetime

from hypothesis import given
from hypothesis import strategies as st

from git_autowatch.config import PushCommand, resolve_push_command
from git_autowatch.ops import format_message

# Strategy: literal template text that cannot itself contain the placeholder.
literal_text = st.text().filter(lambda s: "%" not in s)
names = st.text(alphabet="abcdefghijklmnopqrstuvwxyz-_/0123456789", min_size=1)
datetimes = st.datetimes(
    min_value=datetime.datetime(1900, 1, 1), max_value=datetime.datetime(9999, 1, 1)
)


@given(prefix=literal_text, suffix=literal_text, a=datetimes, b=datetimes)
def test_message_only_varies_in_the_timestamp(
    prefix: str, suffix: str, a: datetime.datetime, b: datetime.datetime
) -> None:
    """
    Property: Two commits in the same year produce the same message, and a
    different year changes only the substituted token.
    """
    template = f"{prefix}%d{suffix}"
    msg_a = format_message(template, "+%Y", a)
    msg_b = format_message(template, "+%Y", b)

    assert msg_a.startswith(prefix) and msg_a.endswith(suffix)
    assert msg_a[len(prefix) : len(msg_a) - len(suffix)] == a.strftime("%Y")
    if a.year == b.year:
        assert msg_a == msg_b
    else:
        assert msg_a != msg_b


@given(template=st.text(), now=datetimes)
def test_empty_date_format_is_identity(template: str, now: datetime.datetime) -> None:
    """
    Property: With the date format disabled the template is returned unchanged,
    even when it contains a literal %d.
    """
    assert format_message(template, "", now) == template


@given(
    remote=names,
    branch=st.one_of(st.none(), st.just(""), names),
    detached=st.booleans(),
    startup_branch=names,
)
def test_push_command_is_pure(
    remote: str, branch: str | None, detached: bool, startup_branch: str
) -> None:
    """
    Property: Push selection depends only on its inputs and follows the three
    documented shapes.
    """
    first = resolve_push_command(remote, branch, detached, startup_branch)
    second = resolve_push_command(remote, branch, detached, startup_branch)

    assert first == second
    if not branch:
        assert first == PushCommand(remote)
    elif detached:
        assert first == PushCommand(remote, branch)
    else:
        assert first == PushCommand(remote, f"{startup_branch}:{branch}")


@given(branch=st.one_of(st.none(), names), detached=st.booleans())
def test_no_remote_never_syncs(branch: str | None, detached: bool) -> None:
    assert resolve_push_command(None, branch, detached, "work") is None
