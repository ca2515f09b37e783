"""Tests for settings and config constants."""

import pytest
from pydantic import ValidationError

from jwt_auth.config import MIN_SECRET_LENGTH, Settings, TTLDefaults


@pytest.mark.unit
class TestSettings:
    """Tests for environment-backed Settings."""

    def test_blank_secret_is_unset(self):
        assert Settings(JWT_SECRET="   ").JWT_SECRET is None
        assert Settings(JWT_SECRET="").JWT_SECRET is None

    def test_secret_hidden_from_repr(self):
        settings = Settings(JWT_SECRET="do-not-print-me-0123456789abcdef0123")

        assert "do-not-print-me" not in repr(settings)

    def test_secret_from_environment(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("JWT_SECRET", "e" * 40)
        monkeypatch.setenv("JWT_ACCESS_TTL", "120")

        settings = Settings()

        assert settings.JWT_SECRET == "e" * 40
        assert settings.JWT_ACCESS_TTL == 120

    def test_only_hmac_algorithms(self):
        assert Settings(JWT_ALGORITHM="HS512").JWT_ALGORITHM == "HS512"
        with pytest.raises(ValidationError):
            Settings(JWT_ALGORITHM="RS256")

    def test_environment_is_validated(self):
        with pytest.raises(ValidationError):
            Settings(ENVIRONMENT="prod")


@pytest.mark.unit
class TestTTLDefaults:
    """Tests for lifetime constants."""

    def test_defaults(self):
        assert TTLDefaults.ACCESS == 60 * 60
        assert TTLDefaults.REFRESH == 30 * 24 * 60 * 60

    def test_defaults_within_bounds(self):
        assert TTLDefaults.ACCESS_MIN <= TTLDefaults.ACCESS <= TTLDefaults.ACCESS_MAX
        assert TTLDefaults.REFRESH_MIN <= TTLDefaults.REFRESH <= TTLDefaults.REFRESH_MAX

    def test_min_secret_length(self):
        assert MIN_SECRET_LENGTH == 32
