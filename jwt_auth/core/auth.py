"""
Authentication dependencies for FastAPI route protection.

This module provides dependency functions for:
- Resolving token configuration per request (never cached)
- Authenticating bearer access tokens
- Building the refresh session manager for the token endpoints
- Extracting refresh tokens and request provenance
"""

from typing import Annotated

from fastapi import Cookie, Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from jwt_auth.config import settings
from jwt_auth.core.bearer import BearerAuthenticator, Identity
from jwt_auth.core.database import get_db
from jwt_auth.core.errors import AuthError
from jwt_auth.core.logging import bind_context, get_logger
from jwt_auth.schemas.auth import RefreshRequest
from jwt_auth.services.identity import UsersIdentityProvider
from jwt_auth.services.session_manager import RefreshSessionManager, RequestMetadata
from jwt_auth.services.token_config import TokenConfigResolver, build_resolver
from jwt_auth.services.token_store import SqlRefreshTokenStore

logger = get_logger(__name__)

# Security scheme for OpenAPI documentation only; the header is parsed by
# BearerAuthenticator
bearer_scheme = HTTPBearer(auto_error=False)


async def get_resolver(db: Annotated[AsyncSession, Depends(get_db)]) -> TokenConfigResolver:
    """Token configuration as it stands for this request."""
    return await build_resolver(db, settings)


def get_authenticator(
    resolver: Annotated[TokenConfigResolver, Depends(get_resolver)],
) -> BearerAuthenticator:
    return BearerAuthenticator(resolver, algorithm=settings.JWT_ALGORITHM)


def get_identity_provider(db: Annotated[AsyncSession, Depends(get_db)]) -> UsersIdentityProvider:
    return UsersIdentityProvider(db)


def get_session_manager(
    db: Annotated[AsyncSession, Depends(get_db)],
    resolver: Annotated[TokenConfigResolver, Depends(get_resolver)],
    identity_provider: Annotated[UsersIdentityProvider, Depends(get_identity_provider)],
) -> RefreshSessionManager:
    return RefreshSessionManager(
        SqlRefreshTokenStore(db, purge_batch_size=settings.PURGE_BATCH_SIZE),
        resolver,
        issuer=settings.JWT_ISSUER,
        algorithm=settings.JWT_ALGORITHM,
        claims_loader=identity_provider.load_claims,
        revoke_lineage_on_reuse=settings.REVOKE_LINEAGE_ON_REUSE,
        reuse_grace_seconds=settings.REFRESH_REUSE_GRACE_SECONDS,
    )


async def get_optional_identity(
    request: Request,
    authenticator: Annotated[BearerAuthenticator, Depends(get_authenticator)],
    _credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)] = None,
) -> Identity | None:
    """
    Authenticate the bearer token if one was sent.

    No bearer credential means "no opinion" and yields None, so endpoints can
    fall back to other mechanisms or anonymous behaviour. A bearer credential
    that fails verification is a hard rejection and is never downgraded to
    anonymous.

    Note: The _credentials parameter is for OpenAPI documentation only.

    Raises:
        AuthError: For any hard rejection (mapped to 401/503 by the app)
    """
    try:
        identity = authenticator.authenticate(request.headers.get("Authorization"))
    except AuthError as e:
        if not e.is_hard_rejection:
            return None
        raise

    bind_context(user_id=identity.user_id)
    return identity


async def get_current_identity(
    identity: Annotated[Identity | None, Depends(get_optional_identity)],
) -> Identity:
    """
    Require an authenticated identity.

    Raises:
        HTTPException: 401 if no bearer credential was sent
    """
    if identity is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return identity


def get_client_ip(request: Request) -> str:
    """
    Extract client IP address from request.

    Checks X-Forwarded-For header first (for proxies/load balancers),
    falls back to direct client IP.
    """
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        # X-Forwarded-For can contain multiple IPs, take the first (client)
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def get_user_agent(request: Request) -> str:
    """Extract User-Agent header from request ("unknown" if not present)."""
    return request.headers.get("User-Agent", "unknown")


def get_request_metadata(request: Request) -> RequestMetadata:
    return RequestMetadata(user_agent=get_user_agent(request), ip_address=get_client_ip(request))


async def get_presented_refresh_token(
    body: RefreshRequest | None = None,
    refresh_token: Annotated[str | None, Cookie(alias=settings.REFRESH_COOKIE_NAME)] = None,
) -> str | None:
    """
    Refresh token from the JSON body or the HTTPOnly cookie.

    The body wins when both are present (mobile clients without cookies).
    """
    if body is not None and body.refresh_token:
        return body.refresh_token
    return refresh_token or None


# Type aliases for dependency injection
CurrentIdentity = Annotated[Identity, Depends(get_current_identity)]
SessionManager = Annotated[RefreshSessionManager, Depends(get_session_manager)]
