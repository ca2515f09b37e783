"""
Persisted authentication settings.

Rows are written by the settings UI (outside this service) and read on every
token operation; see jwt_auth.services.token_config.
"""

from typing import Any

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel


class AuthOptions(SQLModel, table=True):
    """Name/value settings rows, values stored as JSON."""

    __tablename__ = "auth_options"

    option_name: str = Field(primary_key=True, max_length=191)
    option_value: dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))
