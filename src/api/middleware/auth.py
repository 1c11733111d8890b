"""Verification of Supabase-issued access tokens."""

import json
from enum import Enum
from functools import lru_cache
from typing import Any

import jwt
import pydantic
from jwt import PyJWK

from src.core.config import get_settings
from src.schemas.auth import TokenPayload

# Supabase asymmetric signing keys are P-256
TOKEN_ALGORITHMS = ["ES256"]

REQUIRED_CLAIMS = ["exp", "iat", "sub"]


class AuthErrorCode(str, Enum):
    """Authentication error codes."""

    UNAUTHORIZED = "UNAUTHORIZED"
    TOKEN_EXPIRED = "TOKEN_EXPIRED"
    INVALID_TOKEN = "INVALID_TOKEN"
    INVALID_SIGNATURE = "INVALID_SIGNATURE"


class AuthError(Exception):
    """Raised when an access token cannot be trusted.

    ``code`` tells the caller why, so an expired session can be told apart
    from a forged token.
    """

    def __init__(self, message: str, code: AuthErrorCode) -> None:
        self.message = message
        self.code = code
        super().__init__(message)


# Checked in order; subclasses before their bases
_JWT_ERRORS: tuple[tuple[type[jwt.PyJWTError], str, AuthErrorCode], ...] = (
    (jwt.ExpiredSignatureError, "Token has expired", AuthErrorCode.TOKEN_EXPIRED),
    (jwt.InvalidSignatureError, "Invalid token signature", AuthErrorCode.INVALID_SIGNATURE),
    (jwt.MissingRequiredClaimError, "Token missing required claim", AuthErrorCode.INVALID_TOKEN),
    (jwt.InvalidAudienceError, "Token issued for another audience", AuthErrorCode.INVALID_TOKEN),
    (jwt.DecodeError, "Invalid token format", AuthErrorCode.INVALID_TOKEN),
)


@lru_cache
def get_signing_key() -> Any:
    """Public key of the project's JWT signing key.

    Read once from ``SUPABASE_SIGNING_KEY_JWK``; only the public half of the
    JWK is used.

    Raises:
        AuthError: The JWK is missing, not JSON, or not an EC key.
    """
    jwk_json = get_settings().supabase_signing_key_jwk
    if not jwk_json:
        raise AuthError("Signing key not configured", AuthErrorCode.INVALID_TOKEN)

    try:
        jwk_data = json.loads(jwk_json)
    except json.JSONDecodeError as e:
        raise AuthError(f"Invalid signing key JWK format: {e}", AuthErrorCode.INVALID_TOKEN) from e

    if not isinstance(jwk_data, dict) or jwk_data.get("kty") != "EC":
        raise AuthError("Signing key JWK must be an EC key", AuthErrorCode.INVALID_TOKEN)

    return PyJWK.from_dict(jwk_data, algorithm=TOKEN_ALGORITHMS[0]).key


def decode_jwt(token: str) -> TokenPayload:
    """Verify a bearer token and return its claims.

    Checks the ES256 signature, expiry and the audience configured in
    ``jwt_audience``.

    Args:
        token: Raw JWT from the Authorization header.

    Returns:
        TokenPayload: Validated claims.

    Raises:
        AuthError: Token expired, forged, malformed or for another audience.
    """
    try:
        claims: dict[str, Any] = jwt.decode(
            token,
            get_signing_key(),
            algorithms=TOKEN_ALGORITHMS,
            audience=get_settings().jwt_audience,
            options={"require": REQUIRED_CLAIMS},
        )
    except jwt.PyJWTError as e:
        for error_cls, message, code in _JWT_ERRORS:
            if isinstance(e, error_cls):
                raise AuthError(message, code) from e
        raise AuthError(f"Token validation failed: {e}", AuthErrorCode.INVALID_TOKEN) from e

    claims["app_metadata"] = claims.get("app_metadata") or {}
    try:
        return TokenPayload.model_validate(claims)
    except pydantic.ValidationError as e:
        raise AuthError(f"Malformed token claims: {e}", AuthErrorCode.INVALID_TOKEN) from e
