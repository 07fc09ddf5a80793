"""
AuditPulse - Security Utilities

Bearer token verification. Tokens are minted by the identity platform;
create_access_token exists for service-to-service calls and tests.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt

from app.config import settings


def create_access_token(
    data: dict,
    expires_delta: Optional[timedelta] = None
) -> str:
    """
    Create a signed JWT access token.

    Args:
        data: Claims to embed; "sub" must carry the user id
        expires_delta: Optional custom lifetime

    Returns:
        Encoded JWT token string
    """
    to_encode = data.copy()
    lifetime = expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    to_encode.update({"exp": datetime.now(timezone.utc) + lifetime, "type": "access"})

    return jwt.encode(
        to_encode,
        settings.jwt_secret_key,
        algorithm=settings.jwt_algorithm
    )


def decode_token(token: str) -> Optional[dict]:
    """Decode and verify a JWT; None when the signature or expiry is invalid."""
    try:
        return jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
            options={"verify_aud": False},
        )
    except JWTError:
        return None


def verify_access_token(token: str) -> Optional[dict]:
    """
    Verify an access token and return its claims.

    Identity-platform tokens carry no "type" claim, so only an explicit
    non-access type (refresh, reset) is rejected.
    """
    payload = decode_token(token)
    if not payload:
        return None
    if payload.get("type", "access") != "access":
        return None
    return payload
