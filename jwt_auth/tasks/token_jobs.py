"""Refresh token maintenance jobs for arq worker."""

import time
from typing import Any

from jwt_auth.config import settings
from jwt_auth.core.database import get_async_session
from jwt_auth.core.errors import PurgeInterrupted
from jwt_auth.core.logging import bind_context, get_logger
from jwt_auth.services.token_store import SqlRefreshTokenStore

logger = get_logger(__name__)


async def purge_expired_tokens_job(ctx: dict[str, Any]) -> dict[str, Any]:
    """
    Delete refresh tokens that expired more than PURGE_RETENTION_SECONDS ago.

    Revoked tokens are kept until they expire so that a replayed token is
    still recognised as reused rather than unknown.

    Args:
        ctx: ARQ context dict

    Returns:
        dict with success status and the number of deleted rows
    """
    bind_context(task="purge_expired_tokens")
    cutoff = int(time.time()) - settings.PURGE_RETENTION_SECONDS

    try:
        async with get_async_session() as db:
            store = SqlRefreshTokenStore(db, purge_batch_size=settings.PURGE_BATCH_SIZE)
            deleted = await store.purge_expired(cutoff)
    except PurgeInterrupted as e:
        cause = e.__cause__ or e
        # The next scheduled run picks up where this one stopped
        logger.error(
            "purge_expired_tokens_failed",
            cutoff=cutoff,
            deleted=e.deleted,
            error=str(cause),
            error_type=type(cause).__name__,
        )
        return {"success": False, "deleted": e.deleted}

    logger.info("purge_expired_tokens_completed", cutoff=cutoff, deleted=deleted)
    return {"success": True, "deleted": deleted}
