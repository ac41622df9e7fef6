"""ARQ worker entrypoint for the retention cron jobs.

Run with ``arq app.workers.main.WorkerSettings`` or ``python -m app.workers.main``.
"""

import logging

from arq import cron
from arq.connections import RedisSettings

from app.core.config import get_settings
from app.workers.cleanup import cleanup_old_queue_entries, cleanup_webchat_sessions

logger = logging.getLogger(__name__)


def _redis_settings() -> RedisSettings:
    """Build ARQ RedisSettings from REDIS_URL (``redis://host:port/db``)."""
    return RedisSettings.from_dsn(get_settings().redis_url)


async def startup(ctx: dict) -> None:
    """Ensure tables exist and hand the jobs their session factory."""
    from app.core.database import async_session_factory, init_db

    await init_db()
    ctx["session_factory"] = async_session_factory
    logger.info("Cleanup worker started")


async def shutdown(ctx: dict) -> None:
    """Dispose of the engine's pooled connections."""
    from app.core.database import engine

    await engine.dispose()


class WorkerSettings:
    """ARQ worker configuration."""
    functions = [cleanup_webchat_sessions, cleanup_old_queue_entries]
    cron_jobs = [
        # Hourly, matching the default session lifetime
        cron(cleanup_webchat_sessions, minute=0),
        cron(cleanup_old_queue_entries, hour=3, minute=30),
    ]
    on_startup = startup
    on_shutdown = shutdown
    redis_settings = _redis_settings()
    max_jobs = 10
    job_timeout = 300


if __name__ == "__main__":
    from arq import run_worker
    run_worker(WorkerSettings)  # type: ignore[arg-type]
