"""
Minimal view of the host's user store.

Only what the login endpoint needs: who the user is, whether they may log in,
and the password hash the host already maintains.
"""

from sqlalchemy import Index
from sqlmodel import Field, SQLModel


class Users(SQLModel, table=True):
    """Database table for users that may obtain tokens."""

    __tablename__ = "users"

    __table_args__ = (Index("idx_users_username", "username", unique=True),)

    user_id: int | None = Field(default=None, primary_key=True)
    username: str = Field(max_length=60)
    password: str = Field(max_length=255)  # bcrypt hash
    active: bool = Field(default=True)
    admin: bool = Field(default=False)
