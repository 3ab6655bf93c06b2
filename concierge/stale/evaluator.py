"""
Staleness verdicts for open pull requests.

A pull request is "touched" by whichever is more recent: its latest comment
or its latest commit. Ages are counted in whole calendar days (UTC), so a
commit made late yesterday is still one day old.
"""

from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Optional, Sequence

from concierge.errors import DataIntegrityError
from concierge.github.models import CommentRecord, CommitRecord, PullRequestRecord


REASON_STOPPED = "stop requested"
REASON_STALE = "inactive"
REASON_ACTIVE = "recently updated"


@dataclass(frozen=True)
class StaleVerdict:
    is_stale: bool
    reason: str
    days_since_update: int


def stop_phrase(bot_name: str) -> str:
    return f"@{bot_name} stop".lower()


def _utc_day(moment: datetime) -> date:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).date()


def days_between(today: date, moment: datetime) -> int:
    return (today - _utc_day(moment)).days


def found_stop_comment(comments: Sequence[CommentRecord], bot_name: str) -> bool:
    """
    True if someone other than the bot asked it to stop.
    """
    phrase = stop_phrase(bot_name)
    bot_login = bot_name.lower()

    for comment in comments:
        if comment.user.login.lower() == bot_login:
            continue
        if phrase in comment.body.lower():
            return True

    return False


def last_comment_date(pull_request: PullRequestRecord, comments: Sequence[CommentRecord]) -> datetime:
    if not comments:
        return pull_request.updated_at
    return max(comment.updated_at for comment in comments)


def last_commit_date(pull_request: PullRequestRecord, commits: Sequence[CommitRecord]) -> datetime:
    if not commits:
        raise DataIntegrityError(f"Pull request {pull_request.id} has no commits")
    return max(commit.authored_at for commit in commits)


def evaluate(
    pull_request: PullRequestRecord,
    comments: Sequence[CommentRecord],
    commits: Sequence[CommitRecord],
    threshold_days: int,
    bot_name: str,
    today: Optional[date] = None,
) -> StaleVerdict:
    if today is None:
        today = datetime.now(timezone.utc).date()

    days_since_comment = days_between(today, last_comment_date(pull_request, comments))
    days_since_commit = days_between(today, last_commit_date(pull_request, commits))
    days_since_update = min(days_since_comment, days_since_commit)

    if days_since_update < threshold_days:
        return StaleVerdict(False, REASON_ACTIVE, days_since_update)

    # A stop directive anywhere in the history overrides the threshold
    if found_stop_comment(comments, bot_name):
        return StaleVerdict(False, REASON_STOPPED, days_since_update)

    return StaleVerdict(True, REASON_STALE, days_since_update)
