"""
Host user store adapter.

The token service does not own passwords. This adapter checks credentials
against the host's users table (bcrypt hashes) and supplies the custom claims
placed in access tokens.
"""

import base64
import hashlib
from typing import Any

import bcrypt
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from jwt_auth.core.errors import SubjectUnavailable
from jwt_auth.core.logging import get_logger
from jwt_auth.models.user import Users

logger = get_logger(__name__)


def _prepare_password_for_bcrypt(password: str) -> bytes:
    """
    Bcrypt has a 72 byte limit. Longer passwords are SHA256 hashed first and
    base64 encoded (44 bytes).
    """
    password_bytes = password.encode("utf-8")
    if len(password_bytes) <= 72:
        return password_bytes
    return base64.b64encode(hashlib.sha256(password_bytes).digest())


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Check a plain password against a stored bcrypt hash."""
    try:
        return bcrypt.checkpw(
            _prepare_password_for_bcrypt(plain_password), hashed_password.encode("utf-8")
        )
    except ValueError:
        # Stored value is not a bcrypt hash
        return False


def get_password_hash(password: str, rounds: int = 12) -> str:
    """Hash a password with bcrypt (used to seed the host user store)."""
    salt = bcrypt.gensalt(rounds=rounds)
    return bcrypt.hashpw(_prepare_password_for_bcrypt(password), salt).decode("utf-8")


class UsersIdentityProvider:
    """Credential checks and claim loading backed by the users table."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def verify_credentials(self, username: str, password: str) -> Users | None:
        """
        Return the user when the password matches and the account is active.

        Unknown user, wrong password and inactive account all return None.
        """
        result = await self.db.execute(select(Users).where(Users.username == username))  # type: ignore[arg-type]
        user = result.scalar_one_or_none()

        if user is None or not verify_password(password, user.password):
            logger.info("login_rejected", reason="bad_credentials")
            return None

        if not user.active:
            logger.info("login_rejected", reason="inactive", user_id=user.user_id)
            return None

        return user

    async def load_claims(self, user_id: int) -> dict[str, Any]:
        """
        Custom claims for a user's access tokens.

        Raises:
            SubjectUnavailable: If the user was deleted or deactivated
        """
        result = await self.db.execute(
            select(Users.admin, Users.active).where(Users.user_id == user_id)  # type: ignore[arg-type]
        )
        row = result.one_or_none()

        if row is None:
            raise SubjectUnavailable(user_id, "not_found")
        is_admin, active = row
        if not active:
            raise SubjectUnavailable(user_id, "inactive")

        return {"roles": ["admin", "user"] if is_admin else ["user"]}
