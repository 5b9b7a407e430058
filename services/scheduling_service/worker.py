"""ARQ worker for scheduling service background tasks.

Schedules periodic tasks via ARQ cron jobs backed by Redis.
Run with: arq services.scheduling_service.worker.WorkerSettings
"""

from arq import cron
from arq.connections import RedisSettings
from libs.common.config import get_settings
from libs.common.logging import configure_logging, get_logger

logger = get_logger(__name__)


async def startup(ctx: dict):
    configure_logging()
    logger.info("Scheduling worker started")


# ── Wrapper functions (ARQ requires top-level async callables) ──


async def task_sync_event_types(ctx: dict):
    """Reconcile event types with Cal.com for every integration."""
    from services.scheduling_service.tasks import run_event_type_sync

    logger.info("Running: sync_event_types")
    await run_event_type_sync()


async def task_refresh_tokens(ctx: dict):
    """Refresh Cal.com tokens that are about to expire."""
    from services.scheduling_service.tasks import run_token_refresh

    logger.info("Running: refresh_tokens")
    await run_token_refresh()


# ── Worker configuration ──


class WorkerSettings:
    """ARQ worker settings with cron job schedules."""

    redis_settings = RedisSettings.from_dsn(get_settings().REDIS_URL)
    on_startup = startup

    functions = [task_sync_event_types, task_refresh_tokens]

    cron_jobs = [
        # Hourly
        cron(task_sync_event_types, minute=5, run_at_startup=False),
        # Every 10 minutes
        cron(
            task_refresh_tokens,
            minute={0, 10, 20, 30, 40, 50},
            run_at_startup=True,
        ),
    ]
