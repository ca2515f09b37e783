"""Tests for ARQ worker configuration and job registration."""

import pytest

from jwt_auth.config import settings
from jwt_auth.tasks.token_jobs import purge_expired_tokens_job
from jwt_auth.tasks.worker import WorkerSettings, shutdown, startup


@pytest.mark.unit
class TestWorkerConfiguration:
    """Test worker configuration and cron registration."""

    def test_purge_job_scheduled_daily(self):
        """The purge job runs once a day at the configured hour."""
        jobs = [job for job in WorkerSettings.cron_jobs if job.coroutine is purge_expired_tokens_job]

        assert len(jobs) == 1
        assert jobs[0].hour == {settings.PURGE_CRON_HOUR}
        assert jobs[0].minute == {15}
        assert jobs[0].unique is True

    def test_keep_result_from_settings(self):
        assert WorkerSettings.keep_result == settings.ARQ_KEEP_RESULT

    async def test_lifecycle_hooks(self):
        """Startup and shutdown hooks only log."""
        await startup({})
        await shutdown({})
