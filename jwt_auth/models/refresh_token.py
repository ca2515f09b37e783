"""
SQLModel-based RefreshToken model for JWT authentication.

This module defines the refresh_tokens table, the single source of truth for
refresh token state.

Security features:
- Stores hashed tokens (never the raw value)
- Tracks token lineage (family) for reuse detection
- Supports token rotation on refresh
- Revocation is a one-way transition (revoked_at + is_revoked)
- User agent and IP tracking for audit only, never for trust decisions

Timestamps are integer epoch seconds.
"""

from sqlalchemy import BigInteger, Column, Index
from sqlmodel import Field, SQLModel

from jwt_auth.config import RefreshTokenKind


class RefreshTokens(SQLModel, table=True):
    """
    Database table for refresh tokens.

    A row is active while is_revoked is false and expires_at is in the
    future. "Active" is always evaluated at query time; nothing caches it.
    """

    __tablename__ = "refresh_tokens"

    __table_args__ = (
        Index("idx_refresh_tokens_user_id", "user_id"),
        Index("idx_refresh_tokens_token_hash", "token_hash", unique=True),
        Index("idx_refresh_tokens_expires_at", "expires_at"),
        Index("idx_refresh_tokens_token_type", "token_type"),
        Index("idx_refresh_tokens_family_id", "family_id"),
    )

    # Primary key
    id: int | None = Field(default=None, primary_key=True)

    # Owning identity (lives in the host's user store, not enforced here)
    user_id: int = Field(sa_column=Column(BigInteger, nullable=False))

    # Token (hashed - never store plaintext!)
    token_hash: str = Field(max_length=255)

    # Lifetime
    issued_at: int = Field(sa_column=Column(BigInteger, nullable=False))
    expires_at: int = Field(sa_column=Column(BigInteger, nullable=False))
    created_at: int | None = Field(default=None, sa_column=Column(BigInteger, nullable=True))

    # Revocation (is_revoked must always agree with revoked_at being set)
    revoked_at: int | None = Field(default=None, sa_column=Column(BigInteger, nullable=True))
    is_revoked: bool = Field(default=False)

    # Security tracking
    user_agent: str | None = Field(default=None, max_length=500)
    ip_address: str | None = Field(default=None, max_length=45)  # Supports IPv6

    # Discriminator for credential kinds sharing the table; free-form so new
    # kinds need no migration
    token_type: str = Field(default=RefreshTokenKind.JWT, max_length=50)

    # Lineage: every rotation of one login shares family_id
    family_id: str = Field(max_length=255)
    parent_token_id: int | None = Field(default=None)
