"""
Authentication API endpoints.

This module provides endpoints for:
- Login (access token + refresh token)
- Token refresh (with rotation)
- Logout (revoke the refresh lineage) and logout everywhere
- Token verification and active session listing

Errors raised by the token core (RotationError, AuthError, ConfigError,
StoreError) are mapped to HTTP responses by the handlers in jwt_auth.main.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Response, status

from jwt_auth.config import settings
from jwt_auth.core.auth import (
    CurrentIdentity,
    SessionManager,
    get_identity_provider,
    get_presented_refresh_token,
    get_request_metadata,
)
from jwt_auth.core.errors import RotationError, RotationFailure
from jwt_auth.core.logging import get_logger
from jwt_auth.schemas.auth import (
    IdentityResponse,
    LoginRequest,
    MessageResponse,
    SessionListResponse,
    SessionResponse,
    TokenResponse,
)
from jwt_auth.services.identity import UsersIdentityProvider
from jwt_auth.services.session_manager import RequestMetadata, TokenPair

logger = get_logger(__name__)

router = APIRouter(prefix="/auth", tags=["Authentication"])


def _set_refresh_cookie(response: Response, pair: TokenPair) -> None:
    """
    Deliver the refresh token as an HTTPOnly cookie scoped to the auth routes.
    """
    response.set_cookie(
        key=settings.REFRESH_COOKIE_NAME,
        value=pair.refresh_token,
        httponly=True,  # Prevent JavaScript access (XSS protection)
        secure=settings.ENVIRONMENT == "production",  # HTTPS only in production
        samesite="strict",  # CSRF protection
        max_age=pair.refresh_expires_in,
        path=settings.REFRESH_COOKIE_PATH,
    )


def _clear_refresh_cookie(response: Response) -> None:
    # Match set_cookie params
    response.delete_cookie(
        key=settings.REFRESH_COOKIE_NAME,
        path=settings.REFRESH_COOKIE_PATH,
        httponly=True,
        secure=settings.ENVIRONMENT == "production",
        samesite="strict",
    )


def _token_response(response: Response, pair: TokenPair) -> TokenResponse:
    _set_refresh_cookie(response, pair)
    response.headers["Cache-Control"] = "no-store"
    return TokenResponse(
        access_token=pair.access_token,
        token_type="bearer",
        expires_in=pair.expires_in,
        refresh_token=pair.refresh_token if settings.REFRESH_TOKEN_IN_BODY else None,
        refresh_expires_in=pair.refresh_expires_in,
    )


@router.post("/token", response_model=TokenResponse, response_model_exclude_none=True)
async def login(
    credentials: LoginRequest,
    response: Response,
    manager: SessionManager,
    identity_provider: Annotated[UsersIdentityProvider, Depends(get_identity_provider)],
    metadata: Annotated[RequestMetadata, Depends(get_request_metadata)],
) -> TokenResponse:
    """
    Authenticate with username/password and start a refresh session.

    The refresh token is set as an HTTPOnly cookie (and returned in the body
    only when REFRESH_TOKEN_IN_BODY is enabled). The access token is returned
    in the response body.
    """
    user = await identity_provider.verify_credentials(credentials.username, credentials.password)
    if user is None or user.user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect username or password",
        )

    pair = await manager.issue_session(user.user_id, metadata)
    return _token_response(response, pair)


@router.post("/refresh", response_model=TokenResponse, response_model_exclude_none=True)
async def refresh_token(
    response: Response,
    manager: SessionManager,
    metadata: Annotated[RequestMetadata, Depends(get_request_metadata)],
    presented: Annotated[str | None, Depends(get_presented_refresh_token)],
) -> TokenResponse:
    """
    Exchange a refresh token for a new access token and a rotated refresh token.

    The presented refresh token is revoked in the same transaction that
    creates its successor. Presenting it again fails, and outside a short
    grace window also revokes every token descended from the same login.
    """
    if not presented:
        logger.info("refresh_token_missing")
        raise RotationError(RotationFailure.INVALID_OR_REUSED)

    pair = await manager.rotate(presented, metadata)
    return _token_response(response, pair)


@router.post("/logout", response_model=MessageResponse)
async def logout(
    response: Response,
    manager: SessionManager,
    presented: Annotated[str | None, Depends(get_presented_refresh_token)],
) -> MessageResponse:
    """
    Logout by revoking the refresh token's session.

    Always answers the same way, whether or not the token existed. Access
    tokens already issued stay valid until they expire.
    """
    if presented:
        await manager.revoke_session(presented)

    _clear_refresh_cookie(response)
    return MessageResponse(message="Successfully logged out")


@router.post("/logout-all", response_model=MessageResponse)
async def logout_all_devices(
    identity: CurrentIdentity,
    response: Response,
    manager: SessionManager,
) -> MessageResponse:
    """
    Logout from all devices by revoking every refresh token of the user.
    """
    await manager.revoke_all_sessions(identity.user_id)

    _clear_refresh_cookie(response)
    return MessageResponse(message="Successfully logged out from all devices")


@router.get("/verify", response_model=IdentityResponse)
async def verify_token(identity: CurrentIdentity) -> IdentityResponse:
    """Validate the bearer access token and describe its subject."""
    return IdentityResponse(
        user_id=identity.user_id,
        issuer=identity.issuer,
        issued_at=identity.issued_at,
        expires_at=identity.expires_at,
        claims=identity.claims,
    )


@router.get("/sessions", response_model=SessionListResponse)
async def list_sessions(identity: CurrentIdentity, manager: SessionManager) -> SessionListResponse:
    """Active refresh sessions of the current user."""
    records = await manager.list_sessions(identity.user_id)
    return SessionListResponse(
        sessions=[
            SessionResponse(
                id=record.id,
                issued_at=record.issued_at,
                expires_at=record.expires_at,
                user_agent=record.user_agent,
                ip_address=record.ip_address,
            )
            for record in records
        ]
    )
