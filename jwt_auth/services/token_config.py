"""
Signing secret and token lifetime resolution.

Three layers, highest precedence first:
1. Operator overrides (environment / .env, see jwt_auth.config.Settings)
2. Settings persisted by the settings UI (auth_options table)
3. Hard-coded defaults (access 1 hour, refresh 30 days)

The layers are gathered into an immutable ConfigSources value per use, and
the precedence rules are plain functions over it. Nothing here caches: build
a fresh resolver whenever configuration may have changed.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from jwt_auth.config import MIN_SECRET_LENGTH, OptionName, Settings, TTLDefaults
from jwt_auth.core.errors import ConfigError
from jwt_auth.core.logging import get_logger
from jwt_auth.models.auth_option import AuthOptions

logger = get_logger(__name__)

# Keys of the persisted settings mapping
STORED_SECRET_KEY = "secret_key"
STORED_ACCESS_TTL = "access_token_expiry"
STORED_REFRESH_TTL = "refresh_token_expiry"


@dataclass(frozen=True)
class ConfigSources:
    """Snapshot of every configuration layer for one token operation."""

    override_secret: str | None = None
    override_access_ttl: int | None = None
    override_refresh_ttl: int | None = None
    stored: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))

    @classmethod
    def from_settings(cls, settings: Settings, stored: Mapping[str, Any] | None = None) -> "ConfigSources":
        return cls(
            override_secret=settings.JWT_SECRET,
            override_access_ttl=settings.JWT_ACCESS_TTL,
            override_refresh_ttl=settings.JWT_REFRESH_TTL,
            stored=MappingProxyType(dict(stored or {})),
        )


def _positive_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    try:
        number = int(value)
    except (TypeError, ValueError):
        return None
    return number if number > 0 else None


def pick_secret(override: str | None, stored: Any) -> str | None:
    """Highest-precedence non-empty secret, or None when no layer has one."""
    for candidate in (override, stored):
        if isinstance(candidate, str) and candidate.strip():
            return candidate
    return None


def pick_ttl(override: Any, stored: Any, default: int, minimum: int, maximum: int) -> int:
    """
    Highest-precedence usable lifetime in seconds.

    Operator overrides are taken as-is. Stored values are clamped to the
    range the settings UI accepts. Unusable values fall through.
    """
    override_ttl = _positive_int(override)
    if override_ttl is not None:
        return override_ttl

    stored_ttl = _positive_int(stored)
    if stored_ttl is not None:
        return max(minimum, min(maximum, stored_ttl))

    return default


def check_secret_strength(secret: str) -> None:
    if len(secret.encode("utf-8")) < MIN_SECRET_LENGTH:
        raise ConfigError(
            "weak",
            f"signing secret must be at least {MIN_SECRET_LENGTH} bytes long",
        )


class TokenConfigResolver:
    """Resolves the active signing secret and token lifetimes."""

    def __init__(self, sources: ConfigSources) -> None:
        self.sources = sources

    def resolve_secret(self) -> str:
        """
        Active signing secret.

        Raises:
            ConfigError: reason "missing" when no layer defines a secret,
                reason "weak" when the winning secret is too short
        """
        secret = pick_secret(
            self.sources.override_secret, self.sources.stored.get(STORED_SECRET_KEY)
        )
        if secret is None:
            raise ConfigError("missing", "no JWT signing secret is configured")
        check_secret_strength(secret)
        return secret

    def resolve_access_ttl(self) -> int:
        return pick_ttl(
            self.sources.override_access_ttl,
            self.sources.stored.get(STORED_ACCESS_TTL),
            TTLDefaults.ACCESS,
            TTLDefaults.ACCESS_MIN,
            TTLDefaults.ACCESS_MAX,
        )

    def resolve_refresh_ttl(self) -> int:
        return pick_ttl(
            self.sources.override_refresh_ttl,
            self.sources.stored.get(STORED_REFRESH_TTL),
            TTLDefaults.REFRESH,
            TTLDefaults.REFRESH_MIN,
            TTLDefaults.REFRESH_MAX,
        )

    def is_configured(self) -> bool:
        """True when a usable secret resolves (used by the health check)."""
        try:
            self.resolve_secret()
        except ConfigError:
            return False
        return True


async def load_stored_settings(db: AsyncSession) -> dict[str, Any]:
    """
    Read the persisted JWT settings row.

    Returns an empty mapping when the row is missing or not a JSON object.
    """
    result = await db.execute(
        select(AuthOptions.option_value).where(AuthOptions.option_name == OptionName.JWT_SETTINGS)  # type: ignore[arg-type]
    )
    value = result.scalar_one_or_none()
    if value is None:
        return {}
    if not isinstance(value, dict):
        logger.warning("stored_jwt_settings_not_an_object", option=OptionName.JWT_SETTINGS)
        return {}
    return value


async def build_resolver(db: AsyncSession, settings: Settings) -> TokenConfigResolver:
    """Fresh resolver over the current overrides and persisted settings."""
    stored = await load_stored_settings(db)
    return TokenConfigResolver(ConfigSources.from_settings(settings, stored))
