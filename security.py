"""
Password hashing, bearer tokens and the per-request caller context.

Route handlers resolve a ``CurrentUser`` through the dependencies below and
hand it to domain functions as an ordinary argument.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import bcrypt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import ExpiredSignatureError, JWTError, jwt

import config
from errors import AuthenticationError, ForbiddenError

ROLES = ("student", "society_head", "admin")

# auto_error=False so a missing header reaches our own 401 envelope
security = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class CurrentUser:
    id: str
    role: str
    email: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify password"""
    # bcrypt only looks at the first 72 bytes
    password_bytes = plain_password.encode("utf-8")[:72]
    return bcrypt.checkpw(password_bytes, hashed_password.encode("utf-8"))


def get_password_hash(password: str) -> str:
    """Hash password with BCRYPT_ROUNDS rounds"""
    password_bytes = password.encode("utf-8")[:72]
    hashed = bcrypt.hashpw(password_bytes, bcrypt.gensalt(rounds=config.BCRYPT_ROUNDS))
    return hashed.decode("utf-8")


def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    """Create JWT access token"""
    to_encode = data.copy()
    if expires_delta is None:
        expires_delta = timedelta(minutes=config.ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode.update({"exp": datetime.now(timezone.utc) + expires_delta, "type": "access"})
    return jwt.encode(to_encode, config.JWT_SECRET_KEY, algorithm=config.JWT_ALGORITHM)


def decode_token(token: str) -> Dict[str, Any]:
    """Decode JWT token"""
    try:
        return jwt.decode(token, config.JWT_SECRET_KEY, algorithms=[config.JWT_ALGORITHM])
    except ExpiredSignatureError:
        raise AuthenticationError("Access denied. Token has expired.")
    except JWTError:
        raise AuthenticationError("Access denied. Invalid token.")


def _user_from_token(token: str) -> CurrentUser:
    payload = decode_token(token)
    if payload.get("type") != "access" or not payload.get("sub"):
        raise AuthenticationError("Access denied. Invalid token.")
    return CurrentUser(id=payload["sub"], role=payload.get("role", "student"), email=payload.get("email"))


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> CurrentUser:
    """Caller identity from the Authorization header; 401 when absent."""
    if credentials is None or not credentials.credentials:
        raise AuthenticationError("Access denied. No token provided.")
    return _user_from_token(credentials.credentials)


async def get_optional_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Optional[CurrentUser]:
    """Like get_current_user, but anonymous requests yield None."""
    if credentials is None or not credentials.credentials:
        return None
    return _user_from_token(credentials.credentials)


def require_roles(*allowed_roles: str):
    """Dependency factory restricting a route to the given roles."""

    async def checker(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if user.role not in allowed_roles:
            raise ForbiddenError("Access denied. Insufficient permissions.")
        return user

    return checker
