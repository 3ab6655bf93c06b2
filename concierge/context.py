from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping, Optional

import httpx

from concierge import settings as env
from concierge.config.remote import fetch_repository_settings
from concierge.config.repositories import (
    RepositorySettings,
    load_config_file,
    load_repositories,
)
from concierge.errors import ConciergeError, ConfigurationError
from concierge.github.api import create_client
from concierge.logger import get_logger


logger = get_logger("concierge.context")


@dataclass(frozen=True)
class ConciergeContext:
    """
    Everything a request handler or scan needs, built once at startup.

    Read-only afterwards; `rebuild_context` produces a fresh one.
    """

    secret: str
    repositories: Mapping[str, RepositorySettings]
    http: httpx.AsyncClient
    bot_name: str = env.BOT_NAME
    listen_path: str = env.DEFAULT_LISTEN_PATH
    config: Mapping[str, Any] = field(default_factory=dict, repr=False)

    def repository(self, name: str) -> Optional[RepositorySettings]:
        return self.repositories.get(name)

    async def aclose(self) -> None:
        await self.http.aclose()


def _resolve_secret(config: Mapping[str, Any]) -> str:
    secret = env.SECRET or config.get("secret")
    if not secret:
        raise ConfigurationError("`secret` key must be defined")
    return str(secret)


def resolve_port(config: Mapping[str, Any]) -> int:
    raw = env.PORT or config.get("port") or env.DEFAULT_PORT
    try:
        return int(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Invalid port: {raw!r}") from exc


def resolve_listen_path(config: Mapping[str, Any]) -> str:
    path = env.LISTEN_PATH or config.get("listenPath") or env.DEFAULT_LISTEN_PATH
    if not str(path).startswith("/"):
        raise ConfigurationError(f"listenPath must start with '/': {path}")
    return str(path)


async def _with_remote_settings(
    client: httpx.AsyncClient,
    repositories: Mapping[str, RepositorySettings],
) -> dict:
    resolved = {}
    for name, repository_settings in repositories.items():
        try:
            resolved[name] = await fetch_repository_settings(client, repository_settings)
        except ConciergeError:
            logger.exception("Could not load remote settings for %s, using local ones", name)
            resolved[name] = repository_settings
    return resolved


async def build_context(
    config: Optional[Mapping[str, Any]] = None,
    client: Optional[httpx.AsyncClient] = None,
    fetch_remote: bool = True,
) -> ConciergeContext:
    """
    Validate configuration and assemble the runtime context.

    Raises ConfigurationError on anything that must stop startup.
    """
    env.validate_settings()

    if config is None:
        config = load_config_file(env.CONFIG_PATH)

    secret = _resolve_secret(config)
    repositories = load_repositories(config)
    listen_path = resolve_listen_path(config)

    if client is None:
        client = create_client(timeout=env.HTTP_TIMEOUT_SECONDS)

    if fetch_remote:
        repositories = await _with_remote_settings(client, repositories)

    logger.info("Loaded settings for %d repositories", len(repositories))

    return ConciergeContext(
        secret=secret,
        repositories=MappingProxyType(dict(repositories)),
        http=client,
        bot_name=env.BOT_NAME,
        listen_path=listen_path,
        config=MappingProxyType(dict(config)),
    )


async def rebuild_context(ctx: ConciergeContext) -> ConciergeContext:
    """
    Re-read remote repository settings, keeping the HTTP client.
    """
    return await build_context(ctx.config, client=ctx.http)
