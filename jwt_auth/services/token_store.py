"""
Refresh token persistence.

RefreshTokenStore is the narrow interface the session manager depends on;
SqlRefreshTokenStore implements it over the refresh_tokens table with an
async SQLAlchemy session. Lookups return RefreshTokenRecord snapshots, never
live ORM rows, so callers hold plain values across commits and rollbacks.

Every write is its own short transaction. rotate() is the one multi-statement
unit: the predecessor is revoked with a conditional UPDATE (guarded on
is_revoked = false) and the successor is inserted in the same transaction, so
concurrent rotations of one token serialize and exactly one of them wins.

Transient database failures are retried once, then surfaced as StoreError.
"""

import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Protocol, TypeVar

from sqlalchemy import delete, select, update
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from jwt_auth.config import RefreshTokenKind
from jwt_auth.core.errors import PurgeInterrupted, StoreError, TokenHashCollision
from jwt_auth.core.logging import get_logger
from jwt_auth.models.refresh_token import RefreshTokens

logger = get_logger(__name__)

T = TypeVar("T")

USER_AGENT_MAX_LENGTH = 500
IP_ADDRESS_MAX_LENGTH = 45


def _now() -> int:
    return int(time.time())


def _clip(value: str | None, length: int) -> str | None:
    return value[:length] if value else None


@dataclass(frozen=True)
class RefreshTokenRecord:
    """Point-in-time copy of one refresh_tokens row."""

    id: int
    user_id: int
    token_hash: str
    issued_at: int
    expires_at: int
    revoked_at: int | None
    is_revoked: bool
    user_agent: str | None
    ip_address: str | None
    token_type: str
    family_id: str
    parent_token_id: int | None

    def is_active(self, now: int) -> bool:
        return not self.is_revoked and self.expires_at > now

    @classmethod
    def from_row(cls, row: RefreshTokens) -> "RefreshTokenRecord":
        if row.id is None:
            raise StoreError("refresh token row has no id")
        return cls(
            id=row.id,
            user_id=row.user_id,
            token_hash=row.token_hash,
            issued_at=row.issued_at,
            expires_at=row.expires_at,
            revoked_at=row.revoked_at,
            is_revoked=bool(row.is_revoked),
            user_agent=row.user_agent,
            ip_address=row.ip_address,
            token_type=row.token_type,
            family_id=row.family_id,
            parent_token_id=row.parent_token_id,
        )


class RefreshTokenStore(Protocol):
    """Operations the session manager needs from a refresh token backend."""

    async def create(
        self,
        *,
        user_id: int,
        token_hash: str,
        issued_at: int,
        expires_at: int,
        family_id: str,
        user_agent: str | None = None,
        ip_address: str | None = None,
        parent_token_id: int | None = None,
        token_type: str = RefreshTokenKind.JWT,
    ) -> int: ...

    async def find_active_by_hash(self, token_hash: str, now: int | None = None) -> RefreshTokenRecord | None: ...

    async def find_by_hash(self, token_hash: str) -> RefreshTokenRecord | None: ...

    async def revoke(self, record_id: int, now: int | None = None) -> None: ...

    async def rotate(
        self,
        predecessor: RefreshTokenRecord,
        *,
        token_hash: str,
        issued_at: int,
        expires_at: int,
        user_agent: str | None = None,
        ip_address: str | None = None,
    ) -> int | None: ...

    async def revoke_lineage(self, family_id: str, now: int | None = None) -> int: ...

    async def revoke_all_for_user(self, user_id: int, now: int | None = None) -> int: ...

    async def list_active_for_user(self, user_id: int, now: int | None = None) -> list[RefreshTokenRecord]: ...

    async def purge_expired(self, older_than: int) -> int: ...


def _is_transient(error: DBAPIError) -> bool:
    return isinstance(error, OperationalError) or error.connection_invalidated


class SqlRefreshTokenStore:
    """SQLAlchemy implementation of RefreshTokenStore."""

    def __init__(self, db: AsyncSession, *, purge_batch_size: int = 1000) -> None:
        self.db = db
        self.purge_batch_size = purge_batch_size

    async def _run(self, operation: str, work: Callable[[], Awaitable[T]]) -> T:
        """
        Run one unit of work, retrying once on a transient database error.

        The session is rolled back before every retry and before raising, so
        a failed unit never leaves partial writes behind.
        """
        attempt = 0
        while True:
            attempt += 1
            try:
                return await work()
            except IntegrityError as e:
                await self.db.rollback()
                logger.warning("refresh_token_hash_collision", operation=operation)
                raise TokenHashCollision(f"{operation}: token hash already exists") from e
            except DBAPIError as e:
                await self.db.rollback()
                if attempt == 1 and _is_transient(e):
                    logger.warning(
                        "token_store_retry",
                        operation=operation,
                        error_type=type(e).__name__,
                    )
                    continue
                logger.error(
                    "token_store_failed",
                    operation=operation,
                    attempts=attempt,
                    error=str(e.orig) if e.orig is not None else str(e),
                    error_type=type(e).__name__,
                )
                raise StoreError(f"{operation} failed") from e
            except SQLAlchemyError as e:
                await self.db.rollback()
                logger.error("token_store_failed", operation=operation, error_type=type(e).__name__)
                raise StoreError(f"{operation} failed") from e

    async def _insert(self, row: RefreshTokens) -> int:
        self.db.add(row)
        await self.db.flush()
        if row.id is None:
            raise StoreError("database did not assign a refresh token id")
        return row.id

    async def create(
        self,
        *,
        user_id: int,
        token_hash: str,
        issued_at: int,
        expires_at: int,
        family_id: str,
        user_agent: str | None = None,
        ip_address: str | None = None,
        parent_token_id: int | None = None,
        token_type: str = RefreshTokenKind.JWT,
    ) -> int:
        """
        Persist a new refresh token record.

        Returns:
            The new record id

        Raises:
            TokenHashCollision: If token_hash is already stored
            StoreError: On database failure
        """
        if expires_at <= issued_at:
            raise ValueError("expires_at must be later than issued_at")

        async def work() -> int:
            record_id = await self._insert(
                RefreshTokens(
                    user_id=user_id,
                    token_hash=token_hash,
                    issued_at=issued_at,
                    expires_at=expires_at,
                    created_at=issued_at,
                    user_agent=_clip(user_agent, USER_AGENT_MAX_LENGTH),
                    ip_address=_clip(ip_address, IP_ADDRESS_MAX_LENGTH),
                    token_type=token_type,
                    family_id=family_id,
                    parent_token_id=parent_token_id,
                )
            )
            await self.db.commit()
            return record_id

        return await self._run("create", work)

    async def find_active_by_hash(self, token_hash: str, now: int | None = None) -> RefreshTokenRecord | None:
        """
        Look up a token that is neither revoked nor expired.

        Returns:
            The record, or None when no active record has this hash
        """
        now = _now() if now is None else now

        async def work() -> RefreshTokenRecord | None:
            result = await self.db.execute(
                select(RefreshTokens)
                .where(
                    RefreshTokens.token_hash == token_hash,  # type: ignore[arg-type]
                    RefreshTokens.is_revoked == False,  # type: ignore[arg-type]  # noqa: E712
                    RefreshTokens.expires_at > now,  # type: ignore[arg-type]
                )
                .execution_options(populate_existing=True)
            )
            row = result.scalar_one_or_none()
            return RefreshTokenRecord.from_row(row) if row else None

        return await self._run("find_active_by_hash", work)

    async def find_by_hash(self, token_hash: str) -> RefreshTokenRecord | None:
        """Look up a token in any state (active, revoked or expired)."""

        async def work() -> RefreshTokenRecord | None:
            result = await self.db.execute(
                select(RefreshTokens)
                .where(RefreshTokens.token_hash == token_hash)  # type: ignore[arg-type]
                .execution_options(populate_existing=True)
            )
            row = result.scalar_one_or_none()
            return RefreshTokenRecord.from_row(row) if row else None

        return await self._run("find_by_hash", work)

    async def revoke(self, record_id: int, now: int | None = None) -> None:
        """Revoke one record. Revoking an already-revoked record is a no-op."""
        now = _now() if now is None else now

        async def work() -> None:
            await self.db.execute(
                update(RefreshTokens)
                .where(
                    RefreshTokens.id == record_id,  # type: ignore[arg-type]
                    RefreshTokens.is_revoked == False,  # type: ignore[arg-type]  # noqa: E712
                )
                .values(is_revoked=True, revoked_at=now)
            )
            await self.db.commit()

        await self._run("revoke", work)

    async def rotate(
        self,
        predecessor: RefreshTokenRecord,
        *,
        token_hash: str,
        issued_at: int,
        expires_at: int,
        user_agent: str | None = None,
        ip_address: str | None = None,
    ) -> int | None:
        """
        Revoke `predecessor` and insert its successor as one transaction.

        The successor inherits user_id, family_id and token_type from the
        predecessor and records it as parent_token_id.

        Returns:
            The successor's id, or None when the predecessor was no longer
            active (another request rotated or revoked it first)

        Raises:
            TokenHashCollision: If the successor hash already exists
            StoreError: On database failure
        """
        if expires_at <= issued_at:
            raise ValueError("expires_at must be later than issued_at")

        async def work() -> int | None:
            result = await self.db.execute(
                update(RefreshTokens)
                .where(
                    RefreshTokens.id == predecessor.id,  # type: ignore[arg-type]
                    RefreshTokens.is_revoked == False,  # type: ignore[arg-type]  # noqa: E712
                )
                .values(is_revoked=True, revoked_at=issued_at)
            )
            if result.rowcount != 1:  # type: ignore[attr-defined]
                await self.db.rollback()
                return None

            successor_id = await self._insert(
                RefreshTokens(
                    user_id=predecessor.user_id,
                    token_hash=token_hash,
                    issued_at=issued_at,
                    expires_at=expires_at,
                    created_at=issued_at,
                    user_agent=_clip(user_agent, USER_AGENT_MAX_LENGTH),
                    ip_address=_clip(ip_address, IP_ADDRESS_MAX_LENGTH),
                    token_type=predecessor.token_type,
                    family_id=predecessor.family_id,
                    parent_token_id=predecessor.id,
                )
            )
            await self.db.commit()
            return successor_id

        return await self._run("rotate", work)

    async def _revoke_where(self, operation: str, criterion: object, now: int | None) -> int:
        now = _now() if now is None else now

        async def work() -> int:
            result = await self.db.execute(
                update(RefreshTokens)
                .where(
                    criterion,  # type: ignore[arg-type]
                    RefreshTokens.is_revoked == False,  # type: ignore[arg-type]  # noqa: E712
                )
                .values(is_revoked=True, revoked_at=now)
            )
            await self.db.commit()
            return int(result.rowcount)  # type: ignore[attr-defined]

        return await self._run(operation, work)

    async def revoke_lineage(self, family_id: str, now: int | None = None) -> int:
        """Revoke every still-active record of one lineage. Returns the count."""
        return await self._revoke_where(
            "revoke_lineage", RefreshTokens.family_id == family_id, now  # type: ignore[arg-type]
        )

    async def revoke_all_for_user(self, user_id: int, now: int | None = None) -> int:
        """Revoke every still-active record of a user. Returns the count."""
        return await self._revoke_where(
            "revoke_all_for_user", RefreshTokens.user_id == user_id, now  # type: ignore[arg-type]
        )

    async def list_active_for_user(self, user_id: int, now: int | None = None) -> list[RefreshTokenRecord]:
        """Active records of a user, newest first."""
        now = _now() if now is None else now

        async def work() -> list[RefreshTokenRecord]:
            result = await self.db.execute(
                select(RefreshTokens)
                .where(
                    RefreshTokens.user_id == user_id,  # type: ignore[arg-type]
                    RefreshTokens.is_revoked == False,  # type: ignore[arg-type]  # noqa: E712
                    RefreshTokens.expires_at > now,  # type: ignore[arg-type]
                )
                .order_by(RefreshTokens.issued_at.desc(), RefreshTokens.id.desc())  # type: ignore[attr-defined, union-attr]
                .execution_options(populate_existing=True)
            )
            return [RefreshTokenRecord.from_row(row) for row in result.scalars().all()]

        return await self._run("list_active_for_user", work)

    async def purge_expired(self, older_than: int) -> int:
        """
        Physically delete records whose expiry is before `older_than`.

        Deletes in batches of purge_batch_size, committing after each batch,
        so live traffic is never blocked behind one long transaction.

        Returns:
            Number of deleted records

        Raises:
            PurgeInterrupted: If a batch fails; carries the rows already deleted
        """

        async def work() -> int:
            ids_result = await self.db.execute(
                select(RefreshTokens.id)
                .where(RefreshTokens.expires_at < older_than)  # type: ignore[arg-type]
                .order_by(RefreshTokens.id)  # type: ignore[arg-type]
                .limit(self.purge_batch_size)
            )
            ids = list(ids_result.scalars().all())
            if not ids:
                return 0
            await self.db.execute(
                delete(RefreshTokens).where(RefreshTokens.id.in_(ids))  # type: ignore[union-attr]
            )
            await self.db.commit()
            return len(ids)

        total = 0
        while True:
            try:
                deleted = await self._run("purge_expired", work)
            except StoreError as e:
                raise PurgeInterrupted(total) from e
            total += deleted
            if deleted < self.purge_batch_size:
                return total
