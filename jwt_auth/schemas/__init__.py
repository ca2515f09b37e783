"""
Pydantic schemas for API requests and responses.
"""

from jwt_auth.schemas.auth import (
    IdentityResponse,
    LoginRequest,
    MessageResponse,
    RefreshRequest,
    SessionListResponse,
    SessionResponse,
    TokenResponse,
)

__all__ = [
    "IdentityResponse",
    "LoginRequest",
    "MessageResponse",
    "RefreshRequest",
    "SessionListResponse",
    "SessionResponse",
    "TokenResponse",
]
