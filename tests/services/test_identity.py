"""Tests for the users table identity adapter."""

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from jwt_auth.core.errors import SubjectUnavailable
from jwt_auth.models.user import Users
from jwt_auth.services.identity import UsersIdentityProvider, get_password_hash, verify_password
from tests.conftest import TEST_PASSWORD


@pytest.mark.unit
class TestPasswordHashing:
    """Tests for bcrypt helpers."""

    def test_hash_and_verify(self):
        hashed = get_password_hash("correct horse", rounds=4)

        assert hashed.startswith("$2b$04$")
        assert verify_password("correct horse", hashed) is True
        assert verify_password("wrong horse", hashed) is False

    def test_long_password(self):
        """Passwords beyond bcrypt's 72 byte limit are still fully compared."""
        base = "p" * 80
        hashed = get_password_hash(base, rounds=4)

        assert verify_password(base, hashed) is True
        assert verify_password(base[:72] + "q" * 8, hashed) is False

    def test_non_bcrypt_hash(self):
        assert verify_password("anything", "5f4dcc3b5aa765d61d8327deb882cf99") is False


class TestUsersIdentityProvider:
    """Tests for credential checks and claims."""

    async def test_verify_credentials(self, db_session: AsyncSession, test_user: Users):
        provider = UsersIdentityProvider(db_session)

        user = await provider.verify_credentials("tokenuser", TEST_PASSWORD)

        assert user is not None
        assert user.user_id == test_user.user_id

    async def test_wrong_password(self, db_session: AsyncSession, test_user: Users):
        provider = UsersIdentityProvider(db_session)

        assert await provider.verify_credentials("tokenuser", "nope") is None
        assert await provider.verify_credentials("someone-else", TEST_PASSWORD) is None

    async def test_inactive_user(self, db_session: AsyncSession, test_user: Users):
        test_user.active = False
        db_session.add(test_user)
        await db_session.commit()

        provider = UsersIdentityProvider(db_session)

        assert await provider.verify_credentials("tokenuser", TEST_PASSWORD) is None

    async def test_claims(self, db_session: AsyncSession, test_user: Users):
        admin = Users(username="root", password=get_password_hash(TEST_PASSWORD, rounds=4), admin=True)
        db_session.add(admin)
        await db_session.commit()
        await db_session.refresh(admin)

        provider = UsersIdentityProvider(db_session)

        assert await provider.load_claims(test_user.user_id) == {"roles": ["user"]}
        assert await provider.load_claims(admin.user_id) == {"roles": ["admin", "user"]}

    async def test_claims_for_deleted_user(self, db_session: AsyncSession):
        provider = UsersIdentityProvider(db_session)

        with pytest.raises(SubjectUnavailable) as exc_info:
            await provider.load_claims(999_999)

        assert exc_info.value.reason == "not_found"
        assert exc_info.value.user_id == 999_999

    async def test_claims_for_inactive_user(self, db_session: AsyncSession, test_user: Users):
        test_user.active = False
        db_session.add(test_user)
        await db_session.commit()

        provider = UsersIdentityProvider(db_session)

        with pytest.raises(SubjectUnavailable) as exc_info:
            await provider.load_claims(test_user.user_id)

        assert exc_info.value.reason == "inactive"
