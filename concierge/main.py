from concierge import settings  # load .env
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from typing import Awaitable, Callable, Optional
import asyncio

from concierge.config.repositories import load_config_file
from concierge.context import ConciergeContext, build_context, resolve_port
from concierge.errors import (
    DataIntegrityError,
    TemplateRenderError,
    UpstreamError,
    VerificationError,
)
from concierge.github.events import route
from concierge.github.webhook import check_delivery
from concierge.logger import get_logger
from concierge.workers.scheduler import stale_loop


logger = get_logger()

ContextFactory = Callable[[], Awaitable[ConciergeContext]]


def _repository_name(payload: dict) -> Optional[str]:
    repository = payload.get("repository")
    if not isinstance(repository, dict):
        return None
    name = repository.get("full_name")
    return name if isinstance(name, str) and name else None


async def github_webhook(request: Request):
    ctx: ConciergeContext = request.app.state.ctx
    body = await request.body()

    try:
        payload = check_delivery(request.headers, body, ctx.secret)
    except VerificationError as exc:
        logger.warning("Rejected delivery: %s", exc.reason)
        return JSONResponse(status_code=400, content={"error": exc.reason})

    event_type = request.headers["x-github-event"]
    repository_name = _repository_name(payload)
    logger.info("Received GitHub event: %s", event_type)

    if not repository_name:
        return {"success": True}

    repository_settings = ctx.repository(repository_name)
    if repository_settings is None:
        reason = f"{repository_name} is not a configured repository."
        logger.warning(reason)
        return JSONResponse(status_code=400, content={"error": reason})

    try:
        await route(ctx, repository_settings, event_type, payload.get("action"), payload)
    except UpstreamError as exc:
        logger.error(
            "Handling %s for %s failed: GitHub returned %s (%s)",
            event_type, repository_name, exc.status_code, exc.message,
        )
    except DataIntegrityError as exc:
        logger.warning("Skipping %s for %s: %s", event_type, repository_name, exc)
    except TemplateRenderError as exc:
        logger.error("Handling %s for %s failed: %s", event_type, repository_name, exc)

    return {"success": True}


def create_app(
    context_factory: ContextFactory = build_context,
    listen_path: Optional[str] = None,
    start_scheduler: bool = settings.STALE_SCAN_ENABLED,
) -> FastAPI:
    """
    Build the webhook app.

    The webhook route is mounted at `listen_path` if given, otherwise at
    the listen path of the context built on startup.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Fails startup on ConfigurationError
        ctx = await context_factory()
        app.state.ctx = ctx

        path = listen_path or ctx.listen_path
        if not any(getattr(r, "path", None) == path for r in app.router.routes):
            app.add_api_route(path, github_webhook, methods=["POST"])
        logger.info("Listening for GitHub deliveries on %s", path)

        scheduler_task: Optional[asyncio.Task] = None
        if start_scheduler:
            scheduler_task = asyncio.create_task(stale_loop(ctx))
            logger.info("Stale pull request scheduler started")

        try:
            yield
        finally:
            # Shutdown: cancel background task cleanly
            if scheduler_task:
                scheduler_task.cancel()
                try:
                    await scheduler_task
                except asyncio.CancelledError:
                    pass
                logger.info("Stale pull request scheduler stopped")
            await ctx.aclose()

    return FastAPI(lifespan=lifespan)


app = create_app()


# 👇 This makes `python -m concierge.main` work
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        app,
        host="0.0.0.0",
        port=resolve_port(load_config_file(settings.CONFIG_PATH)),
        reload=False,
    )
