"""
Security Module

Handles password hashing and JWT token generation/validation.
Uses passlib with bcrypt and python-jose.

Two token types are issued:
- access: short lived, carries sub, organization_id, role and session_id
- refresh: long lived, carries sub, organization_id, session_id and
  type=refresh; only accepted by the refresh endpoint

Both carry organization_id so a token can never be replayed against a
different organization (checked in the request dependency).
"""
from datetime import datetime, timedelta
from typing import Optional, Dict, Any
from jose import JWTError, jwt
from passlib.context import CryptContext
from ethicsdesk.config import get_settings

settings = get_settings()

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    """
    Verify a password against its hash.

    SSO-only users have no hash and can never log in with a password.
    """
    if not hashed_password:
        return False
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    """
    Hash a password using bcrypt.

    NOTE: This is intentionally slow. Don't call it in hot paths.
    """
    return pwd_context.hash(password)


def _encode(data: Dict[str, Any], token_type: str, expires_delta: timedelta) -> str:
    now = datetime.utcnow()
    to_encode = data.copy()
    to_encode.update({
        "type": token_type,
        "exp": now + expires_delta,
        "iat": now,
    })
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    """
    Create a JWT access token.

    ``data`` should hold sub (user id), organization_id, role and session_id.
    """
    return _encode(
        data,
        ACCESS_TOKEN_TYPE,
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )


def create_refresh_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    """Create a JWT refresh token bound to a session."""
    return _encode(
        data,
        REFRESH_TOKEN_TYPE,
        expires_delta or timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS)
    )


def decode_token(token: str, expected_type: str = ACCESS_TOKEN_TYPE) -> Optional[Dict[str, Any]]:
    """
    Decode and verify a JWT token.

    Returns the payload if valid and of the expected type, None otherwise.
    Signature and expiration are verified by python-jose.
    """
    try:
        payload = jwt.decode(
            token,
            settings.SECRET_KEY,
            algorithms=[settings.ALGORITHM]
        )
    except JWTError:
        return None
    if payload.get("type") != expected_type:
        return None
    return payload


def decode_access_token(token: str) -> Optional[Dict[str, Any]]:
    return decode_token(token, ACCESS_TOKEN_TYPE)


def decode_refresh_token(token: str) -> Optional[Dict[str, Any]]:
    return decode_token(token, REFRESH_TOKEN_TYPE)


def verify_token_organization(token_payload: Dict[str, Any], expected_organization_id: str) -> bool:
    """
    Verify that the token's organization_id matches the request's organization.

    Even a valid token only works for the organization it was issued in.
    """
    return token_payload.get("organization_id") == expected_organization_id
