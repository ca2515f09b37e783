"""
SQLModel tables owned by the token service.

Importing this package registers every table with SQLModel.metadata.
"""

from jwt_auth.models.auth_option import AuthOptions
from jwt_auth.models.refresh_token import RefreshTokens
from jwt_auth.models.user import Users

__all__ = ["AuthOptions", "RefreshTokens", "Users"]
