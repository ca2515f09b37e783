"""
ARQ worker configuration and job definitions.

Run worker with: arq jwt_auth.tasks.worker.WorkerSettings
"""

from typing import Any

from arq.connections import RedisSettings
from arq.cron import cron

from jwt_auth.config import settings
from jwt_auth.core.logging import configure_logging, get_logger
from jwt_auth.tasks.token_jobs import purge_expired_tokens_job

logger = get_logger(__name__)


async def startup(ctx: dict[str, Any]) -> None:
    """Worker startup - initialize any shared resources."""
    configure_logging()
    logger.info("arq_worker_starting", redis_url=settings.ARQ_REDIS_URL)


async def shutdown(ctx: dict[str, Any]) -> None:
    """Worker shutdown - cleanup resources."""
    logger.info("arq_worker_shutdown")


class WorkerSettings:
    """ARQ worker configuration."""

    # Redis connection from settings
    redis_settings = RedisSettings.from_dsn(settings.ARQ_REDIS_URL)

    # Worker behavior
    max_jobs = 1  # Maintenance only, never run two purges at once
    job_timeout = 600  # 10 minutes max per job
    keep_result = settings.ARQ_KEEP_RESULT  # Keep results for 1 hour

    # Lifecycle hooks
    on_startup = startup
    on_shutdown = shutdown

    # Daily purge of long-expired refresh tokens
    cron_jobs = [
        cron(
            purge_expired_tokens_job,
            hour={settings.PURGE_CRON_HOUR},
            minute={15},
            run_at_startup=False,
            unique=True,
        ),
    ]
