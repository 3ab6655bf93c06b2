from typing import Any, Dict, Optional

from concierge import templates
from concierge.config.repositories import RepositorySettings
from concierge.context import ConciergeContext
from concierge.errors import DataIntegrityError, UpstreamError
from concierge.github.api import github_get, post_comment
from concierge.github.models import EventPullRequest, parse_record
from concierge.logger import get_logger
from concierge.stale.notifier import PostResult


logger = get_logger("concierge.commands.closed_issue")


async def is_merged(ctx: ConciergeContext, pull_request_url: str, settings: RepositorySettings) -> bool:
    """
    GitHub reports "closed" for both merged and abandoned pull requests;
    the merge endpoint answers 204 only for merged ones and 404 otherwise.
    """
    try:
        await github_get(ctx.http, f"{pull_request_url}/merge", settings.headers)
    except UpstreamError as exc:
        if exc.status_code == 404:
            return False
        raise
    return True


async def comment_on_closed_issue(
    ctx: ConciergeContext,
    payload: Dict[str, Any],
    settings: RepositorySettings,
) -> Optional[PostResult]:
    """
    Thank the author of a pull request that was just merged.

    Closed issues and unmerged pull requests are left alone.
    """
    if payload.get("pull_request") is not None:
        pull_request = parse_record(EventPullRequest, payload["pull_request"])
    elif payload.get("issue") is not None:
        return None
    else:
        raise DataIntegrityError("Unknown body type")

    if not await is_merged(ctx, pull_request.url, settings):
        logger.info("Pull request %s closed without merge", pull_request.url)
        return None

    body = settings.render(
        templates.ISSUE_CLOSED,
        {"user_name": pull_request.user.login},
    )
    response = await post_comment(ctx.http, pull_request.comments_url, settings.headers, body)

    return PostResult(pull_request.comments_url, body, response)
