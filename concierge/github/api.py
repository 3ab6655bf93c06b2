import httpx
from typing import Any, Mapping, Optional

from concierge.errors import DataIntegrityError, UpstreamError
from concierge.logger import get_logger


logger = get_logger("concierge.github.api")


def create_client(timeout: float = 30.0, **kwargs) -> httpx.AsyncClient:
    """
    Build the HTTP client shared by every GitHub call of one process.
    """
    return httpx.AsyncClient(
        follow_redirects=True,
        timeout=timeout,
        **kwargs,
    )


async def _request(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    headers: Mapping[str, str],
    json: Optional[dict] = None,
) -> httpx.Response:
    try:
        response = await client.request(
            method,
            url,
            headers=dict(headers),
            json=json,
        )
    except httpx.HTTPError as exc:
        logger.warning("GitHub request failed (%s %s): %s", method, url, exc)
        raise UpstreamError(0, str(exc) or type(exc).__name__, url) from exc

    status = response.status_code

    if status in (403, 429):
        # Rate limiting is not retried; callers isolate the failure
        logger.warning("GitHub refused request (%s): %s", status, url)

    if not response.is_success:
        message = response.reason_phrase or "Unknown error"
        logger.warning("GitHub API error %s for %s %s", status, method, url)
        raise UpstreamError(status, message, url)

    return response


def _decode(response: httpx.Response) -> Any:
    if response.status_code == 204 or not response.content:
        return None

    try:
        return response.json()
    except ValueError as exc:
        logger.exception("Failed to decode JSON response from %s", response.url)
        raise DataIntegrityError(f"Response from {response.url} is not JSON") from exc


def _page_items(response: httpx.Response) -> list:
    items = _decode(response)
    if items is None:
        return []
    if not isinstance(items, list):
        raise DataIntegrityError(f"Expected a list from {response.url}")
    return items


# =========================================================
# Public helpers
# =========================================================

async def github_request(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    headers: Mapping[str, str],
    json: Optional[dict] = None,
) -> Any:
    response = await _request(client, method, url, headers, json)
    return _decode(response)


async def github_get(client: httpx.AsyncClient, url: str, headers: Mapping[str, str]):
    return await github_request(client, "GET", url, headers)


async def github_post(
    client: httpx.AsyncClient,
    url: str,
    headers: Mapping[str, str],
    json: dict,
):
    return await github_request(client, "POST", url, headers, json)


async def post_comment(
    client: httpx.AsyncClient,
    comments_url: str,
    headers: Mapping[str, str],
    body: str,
):
    return await github_post(client, comments_url, headers, {"body": body})


async def fetch_all_pages(
    client: httpx.AsyncClient,
    url: str,
    headers: Mapping[str, str],
) -> list:
    """
    GET `url` and every page reachable through `rel="next"` links.

    Items come back in page order. Any failing page raises and nothing
    collected so far is returned.
    """
    items: list = []
    next_url: Optional[str] = url
    seen = set()

    while next_url:
        if next_url in seen:
            raise DataIntegrityError(f"Pagination loops back to {next_url}")
        seen.add(next_url)

        response = await _request(client, "GET", next_url, headers)
        items.extend(_page_items(response))

        next_url = response.links.get("next", {}).get("url")

    return items


async def fetch_last_page(
    client: httpx.AsyncClient,
    url: str,
    headers: Mapping[str, str],
) -> list:
    """
    Return only the final page of a collection.

    Costs at most two requests regardless of how many pages exist.
    """
    response = await _request(client, "GET", url, headers)
    links = response.links

    if "next" not in links:
        return _page_items(response)

    last_url = links.get("last", {}).get("url")
    if not last_url:
        raise DataIntegrityError(f"Link header from {url} has no last page")

    last_response = await _request(client, "GET", last_url, headers)
    return _page_items(last_response)
