import asyncio
from typing import Any, Dict, List, Union
from urllib.parse import urlencode

from concierge.config.repositories import COMMENT_FETCH_LAST, RepositorySettings
from concierge.context import ConciergeContext, build_context
from concierge.errors import DataIntegrityError, TemplateRenderError, UpstreamError
from concierge.github.api import fetch_all_pages, fetch_last_page
from concierge.github.models import (
    CommentRecord,
    CommitRecord,
    PullRequestRecord,
    parse_record,
    parse_records,
)
from concierge.logger import get_logger
from concierge.settings import GITHUB_API
from concierge.stale.evaluator import evaluate
from concierge.stale.notifier import PostResult, Skipped, maybe_notify


logger = get_logger("concierge.workers.stale")


def pull_requests_url(settings: RepositorySettings) -> str:
    query = {"state": "open"}
    if settings.stale_base_branch:
        query["base"] = settings.stale_base_branch
    return f"{GITHUB_API}/repos/{settings.name}/pulls?{urlencode(query)}"


def comments_url(pull_request: PullRequestRecord) -> str:
    separator = "&" if "?" in pull_request.comments_url else "?"
    return f"{pull_request.comments_url}{separator}sort=updated"


# =========================================================
# Pull request processing
# =========================================================

async def _get_comments(
    ctx: ConciergeContext,
    pull_request: PullRequestRecord,
    settings: RepositorySettings,
    last_page_only: bool = False,
) -> List[CommentRecord]:
    fetch = fetch_last_page if last_page_only else fetch_all_pages
    items = await fetch(ctx.http, comments_url(pull_request), settings.headers)
    return parse_records(CommentRecord, items)


async def _get_commits(
    ctx: ConciergeContext,
    pull_request: PullRequestRecord,
    settings: RepositorySettings,
) -> List[CommitRecord]:
    items = await fetch_all_pages(ctx.http, pull_request.commits_url, settings.headers)
    return parse_records(CommitRecord, items)


async def process_pull_request(
    ctx: ConciergeContext,
    pull_request: PullRequestRecord,
    settings: RepositorySettings,
) -> Union[PostResult, Skipped]:
    """
    Evaluate one pull request and bump it if it is stale.

    With the last-page comment strategy only the newest page is read up
    front. That page carries the latest comment date, so a pull request
    it shows as recently updated is settled. One that looks stale gets
    its whole history read before posting, since a stop directive can sit
    on any earlier page.
    """
    last_page_only = settings.comment_fetch == COMMENT_FETCH_LAST

    # Independent reads; both must finish before a verdict
    comments, commits = await asyncio.gather(
        _get_comments(ctx, pull_request, settings, last_page_only),
        _get_commits(ctx, pull_request, settings),
    )

    verdict = evaluate(
        pull_request,
        comments,
        commits,
        settings.max_days_since_update,
        ctx.bot_name,
    )

    if verdict.is_stale and last_page_only:
        comments = await _get_comments(ctx, pull_request, settings)
        verdict = evaluate(
            pull_request,
            comments,
            commits,
            settings.max_days_since_update,
            ctx.bot_name,
        )

    return await maybe_notify(ctx.http, pull_request, verdict, settings, comments)


# =========================================================
# Repository processing
# =========================================================

async def process_repository(
    ctx: ConciergeContext,
    settings: RepositorySettings,
) -> List[Union[PostResult, Skipped]]:
    logger.info("Checking %s", settings.name)

    items = await fetch_all_pages(ctx.http, pull_requests_url(settings), settings.headers)

    results: List[Union[PostResult, Skipped]] = []

    for item in items:
        try:
            pull_request = parse_record(PullRequestRecord, item)
            results.append(await process_pull_request(ctx, pull_request, settings))
        except UpstreamError as exc:
            logger.warning(
                "Skipping pull request %s in %s: GitHub returned %s (%s)",
                _item_label(item), settings.name, exc.status_code, exc.message,
            )
            results.append(Skipped(f"upstream error {exc.status_code}"))
        except DataIntegrityError as exc:
            logger.warning(
                "Skipping pull request %s in %s: %s",
                _item_label(item), settings.name, exc,
            )
            results.append(Skipped("data integrity"))
        except TemplateRenderError as exc:
            logger.error("Skipping pull request %s in %s: %s", _item_label(item), settings.name, exc)
            results.append(Skipped("template error"))

    return results


def _item_label(item: Any) -> str:
    if isinstance(item, dict):
        return str(item.get("number") or item.get("id") or "?")
    return "?"


# =========================================================
# Job entry point
# =========================================================

async def stale_pull_requests(ctx: ConciergeContext) -> Dict[str, List[Union[PostResult, Skipped]]]:
    """
    Bump stale pull requests in every configured repository.

    Repositories are handled one at a time in configuration order; a
    repository that fails is logged and skipped.
    """
    logger.info("Initiating stale pull request job")

    summary: Dict[str, List[Union[PostResult, Skipped]]] = {}

    for name, settings in ctx.repositories.items():
        if not settings.bump_stale_pull_requests:
            logger.info("Repository %s does not have stale bumping turned on", name)
            continue

        try:
            summary[name] = await process_repository(ctx, settings)
        except UpstreamError as exc:
            logger.error(
                "Stale scan of %s failed: GitHub returned %s (%s) for %s",
                name, exc.status_code, exc.message, exc.url,
            )
        except Exception:
            logger.exception("Stale scan of %s failed", name)

    bumped = sum(
        isinstance(result, PostResult)
        for results in summary.values()
        for result in results
    )
    logger.info("Stale pull request job finished, %d bump(s) posted", bumped)

    return summary


async def run_once() -> None:
    ctx = await build_context()
    try:
        await stale_pull_requests(ctx)
    finally:
        await ctx.aclose()


if __name__ == "__main__":
    asyncio.run(run_once())
