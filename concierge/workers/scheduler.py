import asyncio
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Optional

from concierge.context import ConciergeContext, rebuild_context
from concierge.logger import get_logger
from concierge.settings import STALE_SCAN_HOUR
from concierge.workers.stale_pull_requests import stale_pull_requests

logger = get_logger("concierge.workers.scheduler")

ContextRefresh = Callable[[ConciergeContext], Awaitable[ConciergeContext]]


def seconds_until(hour: int, now: Optional[datetime] = None) -> float:
    """
    Seconds from `now` until the next local `hour`:00.
    """
    now = now or datetime.now()
    target = now.replace(hour=hour, minute=0, second=0, microsecond=0)
    if target <= now:
        target += timedelta(days=1)
    return (target - now).total_seconds()


async def _refreshed(ctx: ConciergeContext, refresh: Optional[ContextRefresh]) -> ConciergeContext:
    if refresh is None:
        return ctx
    try:
        return await refresh(ctx)
    except asyncio.CancelledError:
        raise
    except Exception:
        logger.exception("Could not refresh settings, scanning with the previous ones")
        return ctx


# =========================================================
# Main worker loop
# =========================================================

async def stale_loop(
    ctx: ConciergeContext,
    hour: int = STALE_SCAN_HOUR,
    job: Callable[[ConciergeContext], Awaitable] = stale_pull_requests,
    refresh: Optional[ContextRefresh] = rebuild_context,
):
    """
    Run the stale pull request job every night at `hour`.

    Repository settings are rebuilt from their remote overrides before
    each run.
    """
    while True:
        delay = seconds_until(hour)
        logger.info("Next stale pull request scan in %.0f seconds", delay)
        await asyncio.sleep(delay)

        ctx = await _refreshed(ctx, refresh)

        try:
            await job(ctx)
        except asyncio.CancelledError:
            logger.info("Stale scheduler cancelled")
            raise
        except Exception:
            logger.exception("Stale scheduler error")
