from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

from concierge.commands.closed_issue import comment_on_closed_issue
from concierge.commands.opened_pull_request import comment_on_opened_pull_request
from concierge.config.repositories import RepositorySettings
from concierge.context import ConciergeContext
from concierge.logger import get_logger


logger = get_logger("concierge.github.events")

Handler = Callable[[ConciergeContext, Dict[str, Any], RepositorySettings], Awaitable[Any]]

ROUTES: Dict[Tuple[str, str], Handler] = {
    ("issues", "closed"): comment_on_closed_issue,
    ("pull_request", "closed"): comment_on_closed_issue,
    ("pull_request", "opened"): comment_on_opened_pull_request,
}


def resolve_handler(event_type: str, action: Optional[str]) -> Optional[Handler]:
    return ROUTES.get((event_type, action or ""))


async def route(
    ctx: ConciergeContext,
    settings: RepositorySettings,
    event_type: str,
    action: Optional[str],
    payload: Dict[str, Any],
) -> Any:
    """
    Dispatch a verified delivery to its handler.

    Returns the handler result, or None when the combination is ignored.
    """
    handler = resolve_handler(event_type, action)

    if handler is None:
        logger.info("Ignoring %s/%s for %s", event_type, action, settings.name)
        return None

    logger.info("Handling %s/%s for %s", event_type, action, settings.name)
    return await handler(ctx, payload, settings)
