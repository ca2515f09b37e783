"""
Authentication schemas for request/response validation.

This module defines Pydantic models for the token endpoints:
- Login credentials
- Token responses
- Refresh and logout requests
- Identity and session listings
"""

from pydantic import BaseModel, Field


class LoginRequest(BaseModel):
    """Request schema for user login."""

    username: str = Field(..., min_length=1, max_length=60)
    password: str = Field(..., min_length=1, max_length=255)


class TokenResponse(BaseModel):
    """Response schema for successful login or refresh."""

    access_token: str
    token_type: str = "bearer"
    expires_in: int = Field(..., description="Access token expiration time in seconds from now")
    refresh_token: str | None = Field(
        default=None,
        repr=False,
        description="Only present when the server delivers refresh tokens in the body",
    )
    refresh_expires_in: int = Field(..., description="Refresh token lifetime in seconds")


class RefreshRequest(BaseModel):
    """
    Request schema for token refresh and logout (optional body for non-cookie flow).

    When using HTTPOnly cookies, the refresh token is sent automatically.
    """

    refresh_token: str | None = Field(
        default=None, repr=False, description="Refresh token (optional if using cookies)"
    )


class IdentityResponse(BaseModel):
    """Who a bearer token belongs to."""

    user_id: int
    issuer: str
    issued_at: int
    expires_at: int
    claims: dict[str, object] = Field(default_factory=dict)


class SessionResponse(BaseModel):
    """One active refresh session (never includes the token or its hash)."""

    id: int
    issued_at: int
    expires_at: int
    user_agent: str | None = None
    ip_address: str | None = None


class SessionListResponse(BaseModel):
    sessions: list[SessionResponse]


class MessageResponse(BaseModel):
    """Generic message response."""

    message: str
