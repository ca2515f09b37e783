"""
Token signing and verification primitives.

This module provides:
- Access token signing (compact HS256/384/512 JWT via PyJWT)
- Access token verification with precise failure kinds
- Refresh token generation and hashing

Everything here is pure: no I/O, no shared mutable state.
"""

import hashlib
import hmac
import json
import secrets
from typing import Any

import jwt
from jwt.algorithms import get_default_algorithms
from jwt.utils import base64url_decode, base64url_encode
from pydantic import BaseModel, ConfigDict, Field

from jwt_auth.config import TokenType
from jwt_auth.core.errors import ConfigError, VerificationError, VerificationFailure

DEFAULT_ALGORITHM = "HS256"

# Registered claims owned by Claims; everything else in a payload is custom
_REGISTERED_CLAIMS = frozenset({"sub", "iat", "exp", "iss", "type"})


class Claims(BaseModel):
    """Claims set carried inside an access token."""

    model_config = ConfigDict(frozen=True)

    sub: str
    iat: int
    exp: int
    iss: str
    type: str = TokenType.ACCESS
    custom: dict[str, Any] = Field(default_factory=dict)

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = dict(self.custom)
        payload.update(sub=self.sub, iat=self.iat, exp=self.exp, iss=self.iss, type=self.type)
        return payload

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "Claims":
        custom = {k: v for k, v in payload.items() if k not in _REGISTERED_CLAIMS}
        return cls(
            sub=payload["sub"],
            iat=payload["iat"],
            exp=payload["exp"],
            iss=payload["iss"],
            type=payload["type"],
            custom=custom,
        )


def sign(claims: Claims, secret: str, algorithm: str = DEFAULT_ALGORITHM) -> str:
    """
    Encode a claims set into a signed compact token.

    Args:
        claims: Claims to sign
        secret: Symmetric signing key (strength is checked by the resolver)
        algorithm: HMAC algorithm name

    Returns:
        header.payload.signature token string

    Raises:
        ConfigError: If the secret is empty
    """
    if not secret:
        raise ConfigError("missing", "cannot sign a token with an empty secret")

    shadowed = _REGISTERED_CLAIMS & claims.custom.keys()
    if shadowed:
        raise ValueError(f"custom claims shadow registered claims: {sorted(shadowed)}")

    return jwt.encode(claims.to_payload(), secret, algorithm=algorithm)


def _expected_signature(signing_input: bytes, secret: str, algorithm: str) -> bytes:
    alg = get_default_algorithms()[algorithm]
    key = alg.prepare_key(secret)
    return base64url_encode(alg.sign(signing_input, key))


def _decode_segment(segment: str) -> dict[str, Any]:
    decoded = json.loads(base64url_decode(segment))
    if not isinstance(decoded, dict):
        raise ValueError("token segment is not a JSON object")
    return decoded


def verify(
    token: str,
    secret: str,
    now: int,
    expected_type: str = TokenType.ACCESS,
    algorithm: str = DEFAULT_ALGORITHM,
) -> Claims:
    """
    Decode and verify a signed token.

    Checks run in order and the first failure wins:
    1. Structure (three segments, base64url JSON header and payload)
    2. Signature (constant-time comparison of the encoded signature)
    3. Expiry (exp must be strictly greater than now)
    4. Token type marker

    Args:
        token: Compact token string
        secret: Symmetric signing key
        now: Current time in epoch seconds
        expected_type: Required value of the "type" claim
        algorithm: HMAC algorithm name

    Returns:
        The verified claims set

    Raises:
        VerificationError: With kind MALFORMED, BAD_SIGNATURE, EXPIRED or WRONG_TYPE
        ConfigError: If the secret is empty
    """
    if not secret:
        raise ConfigError("missing", "cannot verify a token with an empty secret")

    segments = token.split(".")
    if len(segments) != 3:
        raise VerificationError(VerificationFailure.MALFORMED)
    header_segment, payload_segment, signature_segment = segments

    try:
        header = _decode_segment(header_segment)
        payload = _decode_segment(payload_segment)
    except ValueError:  # binascii.Error, JSONDecodeError and UnicodeDecodeError included
        raise VerificationError(VerificationFailure.MALFORMED) from None

    if header.get("alg") != algorithm:
        raise VerificationError(VerificationFailure.BAD_SIGNATURE)

    signing_input = f"{header_segment}.{payload_segment}".encode("ascii")
    expected = _expected_signature(signing_input, secret, algorithm)
    if not hmac.compare_digest(expected, signature_segment.encode("ascii", "replace")):
        raise VerificationError(VerificationFailure.BAD_SIGNATURE)

    try:
        claims = Claims.from_payload(payload)
    except (KeyError, ValueError):
        # Signed by us but missing registered claims
        raise VerificationError(VerificationFailure.MALFORMED) from None

    if claims.exp <= now:
        raise VerificationError(VerificationFailure.EXPIRED)

    if claims.type != expected_type:
        raise VerificationError(VerificationFailure.WRONG_TYPE)

    return claims


def create_refresh_token() -> str:
    """
    Create a cryptographically secure refresh token.

    Returns:
        URL-safe random token string (32 random bytes, 43 characters)
    """
    return secrets.token_urlsafe(32)


def create_lineage_id() -> str:
    """Random identifier shared by every rotation of one login."""
    return secrets.token_urlsafe(16)


def hash_refresh_token(raw_token: str) -> str:
    """One-way hash under which a refresh token is stored."""
    return hashlib.sha256(raw_token.encode()).hexdigest()
