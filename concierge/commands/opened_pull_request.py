import base64
import re
from typing import Any, Dict, Optional, Sequence

from concierge import templates
from concierge.config.remote import fetch_repository_settings
from concierge.config.repositories import RepositorySettings
from concierge.context import ConciergeContext
from concierge.errors import DataIntegrityError
from concierge.github.api import fetch_all_pages, github_get, post_comment
from concierge.github.models import (
    ContributorRecord,
    EventPullRequest,
    EventRepository,
    PullRequestFile,
    parse_record,
    parse_records,
)
from concierge.logger import get_logger
from concierge.stale.notifier import PostResult


logger = get_logger("concierge.commands.opened_pull_request")

CHANGES_FILE = re.compile(r"^CHANGES\.md$")


# ---------------------------------------------------------
# Checklist helpers
# ---------------------------------------------------------

def ask_about_changes(files: Sequence[str], base_branch: str) -> bool:
    if base_branch != "main":
        return False
    return not any(CHANGES_FILE.match(name) for name in files)


def ask_about_third_party(files: Sequence[str], third_party_folders: Optional[Sequence[str]]) -> bool:
    if not third_party_folders:
        return False
    return any(
        name.startswith(folder)
        for name in files
        for folder in third_party_folders
    )


def ask_about_tests(files: Sequence[str], unit_test_path: Optional[str]) -> bool:
    if not unit_test_path:
        return False
    prefix = unit_test_path.lower()
    return not any(name.lower().startswith(prefix) for name in files)


async def _in_github_contributors(
    ctx: ConciergeContext,
    user_name: str,
    contributors_url: str,
    settings: RepositorySettings,
) -> bool:
    # GitHub only names the top 500 contributors
    items = await fetch_all_pages(ctx.http, contributors_url, settings.headers)
    contributors = parse_records(ContributorRecord, items)
    return any(contributor.login == user_name for contributor in contributors)


async def _in_contributors_file(
    ctx: ConciergeContext,
    user_name: str,
    head_api_url: str,
    head_branch: str,
    settings: RepositorySettings,
) -> bool:
    url = f"{head_api_url}/contents/{settings.contributors_path}?ref={head_branch}"
    item = await github_get(ctx.http, url, settings.headers)

    try:
        content = base64.b64decode(item["content"]).decode("utf-8")
    except (KeyError, TypeError, ValueError) as exc:
        raise DataIntegrityError(f"Malformed contents response for {url}") from exc

    return user_name in content


async def ask_about_contributors(
    ctx: ConciergeContext,
    user_name: str,
    settings: RepositorySettings,
    head_api_url: Optional[str],
    head_branch: str,
    contributors_url: Optional[str],
) -> bool:
    if settings.contributors_from_github and contributors_url:
        return not await _in_github_contributors(ctx, user_name, contributors_url, settings)

    if settings.contributors_path and head_api_url:
        return not await _in_contributors_file(ctx, user_name, head_api_url, head_branch, settings)

    return False


# ---------------------------------------------------------
# Handler
# ---------------------------------------------------------

async def comment_on_opened_pull_request(
    ctx: ConciergeContext,
    payload: Dict[str, Any],
    settings: RepositorySettings,
) -> PostResult:
    """
    Post the contribution checklist on a newly opened pull request.
    """
    pull_request = parse_record(EventPullRequest, payload.get("pull_request"))
    repository = parse_record(EventRepository, payload.get("repository"))

    # Pick up `.concierge/` changes made since startup
    settings = await fetch_repository_settings(ctx.http, settings)

    user_name = pull_request.user.login
    base_branch = pull_request.base.ref
    head_branch = pull_request.head.ref
    head_repo = pull_request.head.repo
    head_api_url = head_repo.url if head_repo else None
    head_html_url = head_repo.html_url if head_repo else None

    needs_contributor = await ask_about_contributors(
        ctx,
        user_name,
        settings,
        head_api_url,
        head_branch,
        repository.contributors_url,
    )

    items = await fetch_all_pages(ctx.http, f"{pull_request.url}/files", settings.headers)
    files = [record.filename for record in parse_records(PullRequestFile, items)]

    contributors_url = None
    if settings.contributors_path and head_html_url:
        contributors_url = f"{head_html_url}/blob/{head_branch}/{settings.contributors_path}"

    body = settings.render(
        templates.PULL_REQUEST_OPENED,
        {
            "user_name": user_name,
            "repository_url": repository.html_url,
            "cla_enabled": False,
            "ask_for_cla": False,
            "ask_about_changes": ask_about_changes(files, base_branch),
            "ask_about_contributors": needs_contributor,
            "contributors_url": contributors_url,
            "ask_about_third_party": ask_about_third_party(files, settings.third_party_folders),
            "third_party_folders": ", ".join(settings.third_party_folders),
            "head_branch": head_branch,
            "ask_about_tests": ask_about_tests(files, settings.unit_test_path),
        },
    )

    response = await post_comment(ctx.http, pull_request.comments_url, settings.headers, body)
    logger.info("Welcomed pull request from %s in %s", user_name, settings.name)

    return PostResult(pull_request.comments_url, body, response)
