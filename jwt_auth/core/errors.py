"""
Error taxonomy for token operations.

Every failure the core can produce is a distinct, inspectable kind:

- ConfigError: no usable signing secret (operator must fix configuration)
- VerificationError: an access token failed verification (client-caused)
- RotationError: a refresh token could not be rotated (client-caused)
- SubjectUnavailable: the token's user was deleted or deactivated
- StoreError: the refresh token store failed (infrastructure)
- AuthError: outcome of bearer authentication on a request

The HTTP layer may map all of these to uniform client messages, but nothing
below it collapses one kind into another.
"""

from enum import Enum


class ConfigError(Exception):
    """No usable signing secret could be resolved."""

    def __init__(self, reason: str, message: str | None = None) -> None:
        self.reason = reason
        super().__init__(message or f"token configuration error: {reason}")


class VerificationFailure(str, Enum):
    MALFORMED = "malformed"
    BAD_SIGNATURE = "bad_signature"
    EXPIRED = "expired"
    WRONG_TYPE = "wrong_type"


class VerificationError(Exception):
    """Access token verification failed; `kind` is the first failing check."""

    def __init__(self, kind: VerificationFailure) -> None:
        self.kind = kind
        super().__init__(f"token verification failed: {kind.value}")


class RotationFailure(str, Enum):
    INVALID_OR_REUSED = "invalid_or_reused"
    EXPIRED = "expired"


class RotationError(Exception):
    """A presented refresh token cannot be exchanged."""

    def __init__(self, kind: RotationFailure) -> None:
        self.kind = kind
        super().__init__(f"refresh token rejected: {kind.value}")


class SubjectUnavailable(Exception):
    """The user a token was issued to no longer exists or is deactivated."""

    def __init__(self, user_id: int, reason: str) -> None:
        self.user_id = user_id
        self.reason = reason
        super().__init__(f"token subject unavailable: {reason}")


class StoreError(Exception):
    """The refresh token store could not complete an operation."""


class TokenHashCollision(StoreError):
    """A token hash already exists; issuance must retry with a new token."""


class PurgeInterrupted(StoreError):
    """A purge failed after `deleted` rows were already committed."""

    def __init__(self, deleted: int) -> None:
        self.deleted = deleted
        super().__init__(f"purge_expired failed after deleting {deleted} rows")


class AuthFailure(str, Enum):
    NO_CREDENTIAL = "no_credential"
    MALFORMED = "malformed"
    BAD_SIGNATURE = "bad_signature"
    EXPIRED = "expired"
    WRONG_TYPE = "wrong_type"
    NOT_CONFIGURED = "not_configured"


class AuthError(Exception):
    """
    Bearer authentication did not produce an identity.

    NO_CREDENTIAL means "no opinion": the request carried no bearer
    credential and other mechanisms may still authenticate it. Every other
    reason is a hard rejection.
    """

    def __init__(self, reason: AuthFailure) -> None:
        self.reason = reason
        super().__init__(f"bearer authentication failed: {reason.value}")

    @property
    def is_hard_rejection(self) -> bool:
        return self.reason != AuthFailure.NO_CREDENTIAL

    @classmethod
    def from_verification(cls, error: VerificationError) -> "AuthError":
        return cls(AuthFailure(error.kind.value))
