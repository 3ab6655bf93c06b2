from dataclasses import dataclass
from typing import Any, Sequence, Union

import httpx

from concierge import templates
from concierge.config.repositories import RepositorySettings
from concierge.github.api import post_comment
from concierge.github.models import CommentRecord, PullRequestRecord
from concierge.logger import get_logger
from concierge.stale.evaluator import StaleVerdict


logger = get_logger("concierge.stale.notifier")


@dataclass(frozen=True)
class PostResult:
    comments_url: str
    body: str
    response: Any = None


@dataclass(frozen=True)
class Skipped:
    reason: str


def render_bump(pull_request: PullRequestRecord, settings: RepositorySettings) -> str:
    return settings.render(
        templates.STALE_PULL_REQUEST,
        {
            "threshold_days": settings.max_days_since_update,
            "user_name": pull_request.user.login,
        },
    )


def already_bumped(body: str, comments: Sequence[CommentRecord]) -> bool:
    expected = body.strip()
    return any(comment.body.strip() == expected for comment in comments)


async def maybe_notify(
    client: httpx.AsyncClient,
    pull_request: PullRequestRecord,
    verdict: StaleVerdict,
    settings: RepositorySettings,
    comments: Sequence[CommentRecord] = (),
) -> Union[PostResult, Skipped]:
    """
    Post the stale reminder if the verdict asks for it.

    Repeat bumps are normally prevented by the bump itself resetting the
    comment clock. With `skip_if_already_bumped` an identical earlier bump
    also blocks the post.
    """
    if not verdict.is_stale:
        return Skipped(verdict.reason)

    body = render_bump(pull_request, settings)

    if settings.skip_if_already_bumped and already_bumped(body, comments):
        logger.info("Pull request %s already bumped, skipping", pull_request.id)
        return Skipped("already bumped")

    response = await post_comment(client, pull_request.comments_url, settings.headers, body)
    logger.info(
        "Bumped pull request %s after %d days",
        pull_request.number or pull_request.id,
        verdict.days_since_update,
    )

    return PostResult(pull_request.comments_url, body, response)
