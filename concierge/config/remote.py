import base64
import json
from posixpath import splitext
from typing import Any, Dict

import httpx

from concierge import templates
from concierge.config.repositories import RepositorySettings, TEMPLATE_KEYS
from concierge.errors import DataIntegrityError, UpstreamError
from concierge.github.api import github_get
from concierge.logger import get_logger
from concierge.settings import GITHUB_API


logger = get_logger("concierge.config.remote")

CONFIG_DIRECTORY = ".concierge"
CONFIG_FILE = "config.json"
TEMPLATE_DIRECTORY = "templates"
TEMPLATE_SUFFIX = ".j2"

_TEMPLATE_OPTION = {name: key for key, name in TEMPLATE_KEYS.items()}


def config_url(repository_name: str) -> str:
    return f"{GITHUB_API}/repos/{repository_name}/contents/{CONFIG_DIRECTORY}"


def _decode_content(item: Dict[str, Any]) -> str:
    try:
        encoding = item.get("encoding", "base64")
        if encoding != "base64":
            return item["content"]
        return base64.b64decode(item["content"]).decode("utf-8")
    except (KeyError, TypeError, ValueError) as exc:
        raise DataIntegrityError("Malformed contents API response") from exc


async def _get_config(client: httpx.AsyncClient, settings: RepositorySettings) -> Dict[str, Any]:
    url = f"{config_url(settings.name)}/{CONFIG_FILE}"
    try:
        item = await github_get(client, url, settings.headers)
    except UpstreamError as exc:
        if exc.status_code == 404:
            return {}
        raise

    try:
        options = json.loads(_decode_content(item))
    except ValueError as exc:
        raise DataIntegrityError(f"{settings.name}: {CONFIG_FILE} is not valid JSON") from exc

    if not isinstance(options, dict):
        raise DataIntegrityError(f"{settings.name}: {CONFIG_FILE} must be an object")

    return options


async def _get_templates(client: httpx.AsyncClient, settings: RepositorySettings) -> Dict[str, str]:
    url = f"{config_url(settings.name)}/{TEMPLATE_DIRECTORY}"
    try:
        listing = await github_get(client, url, settings.headers)
    except UpstreamError as exc:
        if exc.status_code == 404:
            return {}
        raise

    options: Dict[str, str] = {}

    for entry in listing or []:
        stem, suffix = splitext(entry.get("name", ""))
        if suffix != TEMPLATE_SUFFIX or stem not in templates.TEMPLATE_NAMES:
            continue

        item = await github_get(client, entry["url"], settings.headers)
        options[_TEMPLATE_OPTION[stem]] = _decode_content(item)

    return options


async def fetch_repository_settings(
    client: httpx.AsyncClient,
    settings: RepositorySettings,
) -> RepositorySettings:
    """
    Apply the repository's own `.concierge/` overrides on top of `settings`.

    Missing files keep the current values.
    """
    options = await _get_config(client, settings)
    options.update(await _get_templates(client, settings))

    if not options:
        return settings

    logger.info("Loaded %d remote option(s) for %s", len(options), settings.name)
    return settings.merged_with(options)
