"""JWT authentication utilities for resolving the acting identity."""

import json
from enum import Enum
from functools import lru_cache
from typing import Any

import jwt
from jwt import PyJWK

from src.core.config import get_settings
from src.schemas.auth import TokenPayload


class AuthErrorCode(str, Enum):
    """Authentication error codes."""

    UNAUTHORIZED = "UNAUTHORIZED"
    TOKEN_EXPIRED = "TOKEN_EXPIRED"
    INVALID_TOKEN = "INVALID_TOKEN"
    INVALID_SIGNATURE = "INVALID_SIGNATURE"


class AuthError(Exception):
    """Authentication error with specific error code."""

    def __init__(self, message: str, code: AuthErrorCode) -> None:
        self.message = message
        self.code = code
        super().__init__(message)


@lru_cache
def get_signing_key() -> Any:
    """Load the verification key from the signing key JWK setting.

    Returns:
        Public key for JWT verification.

    Raises:
        AuthError: If the JWK is missing or malformed.
    """
    jwk_json = get_settings().supabase_signing_key_jwk
    if not jwk_json:
        raise AuthError("Signing key not configured", AuthErrorCode.INVALID_TOKEN)

    try:
        jwk_data = json.loads(jwk_json)
    except json.JSONDecodeError as e:
        raise AuthError(f"Invalid signing key JWK format: {e}", AuthErrorCode.INVALID_TOKEN) from e

    return PyJWK.from_dict(jwk_data).key


_ERROR_CODES: list[tuple[type[Exception], str, AuthErrorCode]] = [
    (jwt.ExpiredSignatureError, "Token has expired", AuthErrorCode.TOKEN_EXPIRED),
    (jwt.InvalidSignatureError, "Invalid token signature", AuthErrorCode.INVALID_SIGNATURE),
    (jwt.MissingRequiredClaimError, "Token missing required claim", AuthErrorCode.INVALID_TOKEN),
    (jwt.DecodeError, "Invalid token format", AuthErrorCode.INVALID_TOKEN),
]


def decode_jwt(token: str) -> TokenPayload:
    """Decode and validate a Supabase access token.

    Validates signature (ES256), expiry and the required claims.

    Raises:
        AuthError: If the token is invalid, expired, or has a wrong signature.
    """
    try:
        payload: dict[str, Any] = jwt.decode(
            token,
            get_signing_key(),
            algorithms=["ES256"],
            options={
                "verify_signature": True,
                "verify_exp": True,
                "verify_iat": True,
                "verify_aud": False,
                "require": ["exp", "iat", "sub"],
            },
        )
    except AuthError:
        raise
    except jwt.PyJWTError as e:
        for error_type, message, code in _ERROR_CODES:
            if isinstance(e, error_type):
                raise AuthError(message, code) from e
        raise AuthError(f"Token validation failed: {e}", AuthErrorCode.INVALID_TOKEN) from e

    return TokenPayload(
        sub=payload["sub"],
        email=payload.get("email"),
        role=payload.get("role"),
        exp=payload["exp"],
        iat=payload["iat"],
        aud=payload.get("aud"),
        iss=payload.get("iss"),
    )
