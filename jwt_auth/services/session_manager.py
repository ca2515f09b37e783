"""
Refresh session orchestration: issuance, rotation and revocation.

A login starts a lineage (family_id). Each successful refresh revokes the
presented record and issues its successor in the same lineage. A lineage
ends when its current record is revoked (logout) or expires.

Presenting a record that is already revoked means either a client racing
itself (double submit) or a leaked token being replayed. Outside the short
reuse grace window the whole lineage is revoked, since the legitimate holder
and an attacker can no longer be told apart.
"""

import time
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from typing import Any, NoReturn

from jwt_auth.config import TokenType
from jwt_auth.core.errors import (
    RotationError,
    RotationFailure,
    SubjectUnavailable,
    TokenHashCollision,
)
from jwt_auth.core.logging import get_logger
from jwt_auth.core.security import (
    DEFAULT_ALGORITHM,
    Claims,
    create_lineage_id,
    create_refresh_token,
    hash_refresh_token,
    sign,
)
from jwt_auth.services.token_config import TokenConfigResolver
from jwt_auth.services.token_store import RefreshTokenRecord, RefreshTokenStore

logger = get_logger(__name__)

# Fresh tokens per issuance before a hash collision is treated as a failure
MAX_ISSUE_ATTEMPTS = 3

ClaimsLoader = Callable[[int], Awaitable[Mapping[str, Any]]]


@dataclass(frozen=True)
class RequestMetadata:
    """Provenance captured at issuance; audit only, never a trust input."""

    user_agent: str | None = None
    ip_address: str | None = None


@dataclass(frozen=True)
class TokenPair:
    """
    Result of issuance or rotation.

    refresh_token is the raw value. It is handed out exactly once and must
    only travel in a non-logged channel (HTTP-only cookie or a response field
    the transport treats as secret).
    """

    access_token: str
    refresh_token: str
    expires_in: int
    refresh_expires_in: int
    user_id: int
    record_id: int

    def __repr__(self) -> str:
        return (
            f"TokenPair(user_id={self.user_id}, record_id={self.record_id}, "
            f"expires_in={self.expires_in}, refresh_expires_in={self.refresh_expires_in})"
        )


class RefreshSessionManager:
    """Issues access/refresh pairs and rotates refresh tokens against a store."""

    def __init__(
        self,
        store: RefreshTokenStore,
        resolver: TokenConfigResolver,
        *,
        issuer: str,
        algorithm: str = DEFAULT_ALGORITHM,
        claims_loader: ClaimsLoader | None = None,
        revoke_lineage_on_reuse: bool = True,
        reuse_grace_seconds: int = 0,
        clock: Callable[[], int] | None = None,
    ) -> None:
        self.store = store
        self.resolver = resolver
        self.issuer = issuer
        self.algorithm = algorithm
        self.claims_loader = claims_loader
        self.revoke_lineage_on_reuse = revoke_lineage_on_reuse
        self.reuse_grace_seconds = reuse_grace_seconds
        self.clock = clock or (lambda: int(time.time()))

    async def _load_custom_claims(self, user_id: int) -> dict[str, Any]:
        if self.claims_loader is None:
            return {}
        return dict(await self.claims_loader(user_id))

    def _sign_access_token(
        self, user_id: int, custom: dict[str, Any], secret: str, now: int, ttl: int
    ) -> str:
        claims = Claims(
            sub=str(user_id),
            iat=now,
            exp=now + ttl,
            iss=self.issuer,
            type=TokenType.ACCESS,
            custom=custom,
        )
        return sign(claims, secret, self.algorithm)

    async def issue_session(self, user_id: int, metadata: RequestMetadata) -> TokenPair:
        """
        Start a new refresh lineage for an already-verified identity.

        Configuration is resolved before anything is written, so a missing
        secret never leaves an orphaned refresh token behind.

        Raises:
            ConfigError: If no usable signing secret is configured
            SubjectUnavailable: If the claims loader no longer knows the user
            StoreError: If the refresh token cannot be persisted
        """
        secret = self.resolver.resolve_secret()
        access_ttl = self.resolver.resolve_access_ttl()
        refresh_ttl = self.resolver.resolve_refresh_ttl()
        custom = await self._load_custom_claims(user_id)
        now = self.clock()
        family_id = create_lineage_id()

        for attempt in range(1, MAX_ISSUE_ATTEMPTS + 1):
            raw_token = create_refresh_token()
            try:
                record_id = await self.store.create(
                    user_id=user_id,
                    token_hash=hash_refresh_token(raw_token),
                    issued_at=now,
                    expires_at=now + refresh_ttl,
                    family_id=family_id,
                    user_agent=metadata.user_agent,
                    ip_address=metadata.ip_address,
                )
                break
            except TokenHashCollision:
                if attempt == MAX_ISSUE_ATTEMPTS:
                    raise
                logger.warning("refresh_token_issue_retry", user_id=user_id, attempt=attempt)

        access_token = self._sign_access_token(user_id, custom, secret, now, access_ttl)
        logger.info("refresh_session_issued", user_id=user_id, record_id=record_id, family_id=family_id)

        return TokenPair(
            access_token=access_token,
            refresh_token=raw_token,
            expires_in=access_ttl,
            refresh_expires_in=refresh_ttl,
            user_id=user_id,
            record_id=record_id,
        )

    async def rotate(self, raw_refresh_token: str, metadata: RequestMetadata) -> TokenPair:
        """
        Exchange a refresh token for a new access token and its successor.

        Raises:
            RotationError: INVALID_OR_REUSED when the token is unknown, already
                rotated or revoked (including losing a concurrent rotation), or
                its user was deleted or deactivated, which also ends the
                lineage; EXPIRED when the token is known but past its expiry
            ConfigError: If no usable signing secret is configured
            StoreError: On persistence failure
        """
        secret = self.resolver.resolve_secret()
        access_ttl = self.resolver.resolve_access_ttl()
        refresh_ttl = self.resolver.resolve_refresh_ttl()
        now = self.clock()
        token_hash = hash_refresh_token(raw_refresh_token)

        record = await self.store.find_active_by_hash(token_hash, now)
        if record is None:
            await self._reject_inactive(token_hash, now)

        try:
            custom = await self._load_custom_claims(record.user_id)
        except SubjectUnavailable as e:
            revoked = await self.store.revoke_lineage(record.family_id, now)
            logger.warning(
                "refresh_token_subject_unavailable",
                user_id=record.user_id,
                record_id=record.id,
                family_id=record.family_id,
                reason=e.reason,
                revoked_count=revoked,
            )
            raise RotationError(RotationFailure.INVALID_OR_REUSED) from e

        for attempt in range(1, MAX_ISSUE_ATTEMPTS + 1):
            new_raw_token = create_refresh_token()
            try:
                successor_id = await self.store.rotate(
                    record,
                    token_hash=hash_refresh_token(new_raw_token),
                    issued_at=now,
                    expires_at=now + refresh_ttl,
                    user_agent=metadata.user_agent,
                    ip_address=metadata.ip_address,
                )
                break
            except TokenHashCollision:
                if attempt == MAX_ISSUE_ATTEMPTS:
                    raise
                logger.warning("refresh_token_rotate_retry", user_id=record.user_id, attempt=attempt)

        if successor_id is None:
            # Another request rotated or revoked this record between lookup and update
            logger.info(
                "refresh_token_rotation_lost_race",
                user_id=record.user_id,
                record_id=record.id,
                family_id=record.family_id,
            )
            raise RotationError(RotationFailure.INVALID_OR_REUSED)

        access_token = self._sign_access_token(record.user_id, custom, secret, now, access_ttl)
        logger.info(
            "refresh_token_rotated",
            user_id=record.user_id,
            record_id=record.id,
            successor_id=successor_id,
            family_id=record.family_id,
        )

        return TokenPair(
            access_token=access_token,
            refresh_token=new_raw_token,
            expires_in=access_ttl,
            refresh_expires_in=refresh_ttl,
            user_id=record.user_id,
            record_id=successor_id,
        )

    async def _reject_inactive(self, token_hash: str, now: int) -> NoReturn:
        """Classify why a presented token is not active and raise accordingly."""
        prior = await self.store.find_by_hash(token_hash)

        if prior is None:
            logger.info("refresh_token_unknown")
            raise RotationError(RotationFailure.INVALID_OR_REUSED)

        if prior.is_revoked:
            await self._handle_reuse(prior, now)
            raise RotationError(RotationFailure.INVALID_OR_REUSED)

        logger.info("refresh_token_expired", user_id=prior.user_id, record_id=prior.id)
        raise RotationError(RotationFailure.EXPIRED)

    async def _handle_reuse(self, prior: RefreshTokenRecord, now: int) -> None:
        if not self.revoke_lineage_on_reuse:
            logger.warning(
                "refresh_token_reuse_detected",
                user_id=prior.user_id,
                record_id=prior.id,
                family_id=prior.family_id,
                lineage_revoked=False,
            )
            return

        if prior.revoked_at is not None and now - prior.revoked_at < self.reuse_grace_seconds:
            logger.info(
                "refresh_token_reuse_within_grace",
                user_id=prior.user_id,
                record_id=prior.id,
                family_id=prior.family_id,
            )
            return

        revoked = await self.store.revoke_lineage(prior.family_id, now)
        logger.warning(
            "refresh_token_reuse_detected",
            user_id=prior.user_id,
            record_id=prior.id,
            family_id=prior.family_id,
            lineage_revoked=True,
            revoked_count=revoked,
        )

    async def revoke_session(self, raw_refresh_token: str) -> None:
        """
        Log out: end the lineage the presented token belongs to.

        The whole lineage is revoked, not only the presented record, so a
        logout racing a refresh of the same token still wins: a successor
        committed a moment earlier is revoked too. Idempotent, and never
        reveals whether the token existed.

        Raises:
            StoreError: On persistence failure
        """
        now = self.clock()
        record = await self.store.find_by_hash(hash_refresh_token(raw_refresh_token))
        if record is None:
            return
        if record.is_active(now):
            await self.store.revoke(record.id, now)
        revoked = await self.store.revoke_lineage(record.family_id, now)
        logger.info(
            "refresh_session_revoked",
            user_id=record.user_id,
            record_id=record.id,
            family_id=record.family_id,
            successors_revoked=revoked,
        )

    async def revoke_all_sessions(self, user_id: int) -> int:
        """Log a user out everywhere. Returns the number of revoked records."""
        revoked = await self.store.revoke_all_for_user(user_id, self.clock())
        logger.info("refresh_sessions_revoked_all", user_id=user_id, revoked_count=revoked)
        return revoked

    async def list_sessions(self, user_id: int) -> list[RefreshTokenRecord]:
        return await self.store.list_active_for_user(user_id, self.clock())
