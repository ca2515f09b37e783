"""
Bearer credential authentication.

Turns an Authorization header value into an Identity, or an AuthError whose
reason says exactly why not. Verification is stateless: no store access and
no side effects, only the signing secret resolved for this call.
"""

import time
from collections.abc import Callable
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from jwt_auth.config import TokenType
from jwt_auth.core.errors import AuthError, AuthFailure, ConfigError, VerificationError
from jwt_auth.core.security import DEFAULT_ALGORITHM, verify
from jwt_auth.services.token_config import TokenConfigResolver

BEARER_PREFIX = "bearer "


class Identity(BaseModel):
    """An authenticated subject and the custom claims its token carried."""

    model_config = ConfigDict(frozen=True)

    subject: str
    issued_at: int
    expires_at: int
    issuer: str
    claims: dict[str, Any] = Field(default_factory=dict)

    @property
    def user_id(self) -> int:
        return int(self.subject)


def extract_bearer_token(raw_header_value: str | None) -> str | None:
    """
    Token part of a "Bearer <token>" header value.

    The scheme is matched case-insensitively and must be followed by a
    space. Returns None when there is no usable bearer credential.
    """
    if not raw_header_value:
        return None
    if raw_header_value[: len(BEARER_PREFIX)].lower() != BEARER_PREFIX:
        return None
    token = raw_header_value[len(BEARER_PREFIX) :].strip()
    return token or None


class BearerAuthenticator:
    """Request-time entry point for access token authentication."""

    def __init__(
        self,
        resolver: TokenConfigResolver,
        *,
        algorithm: str = DEFAULT_ALGORITHM,
        clock: Callable[[], int] | None = None,
    ) -> None:
        self.resolver = resolver
        self.algorithm = algorithm
        self.clock = clock or (lambda: int(time.time()))

    def authenticate(self, raw_header_value: str | None) -> Identity:
        """
        Authenticate an Authorization header value.

        Raises:
            AuthError: NO_CREDENTIAL when there is no bearer credential (let
                other mechanisms decide); NOT_CONFIGURED when no usable
                secret is configured; otherwise the verification failure
                kind. Everything but NO_CREDENTIAL is a hard rejection.
        """
        token = extract_bearer_token(raw_header_value)
        if token is None:
            raise AuthError(AuthFailure.NO_CREDENTIAL)

        try:
            secret = self.resolver.resolve_secret()
        except ConfigError as e:
            raise AuthError(AuthFailure.NOT_CONFIGURED) from e

        try:
            claims = verify(
                token,
                secret,
                self.clock(),
                expected_type=TokenType.ACCESS,
                algorithm=self.algorithm,
            )
        except VerificationError as e:
            raise AuthError.from_verification(e) from e

        if not (claims.sub.isascii() and claims.sub.isdigit()):
            raise AuthError(AuthFailure.MALFORMED)

        return Identity(
            subject=claims.sub,
            issued_at=claims.iat,
            expires_at=claims.exp,
            issuer=claims.iss,
            claims=dict(claims.custom),
        )
