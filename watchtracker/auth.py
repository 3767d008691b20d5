import os
import secrets
import uuid
from datetime import datetime, timedelta, timezone

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError
from fastapi import Depends, HTTPException, Request, Response
from jose import JWTError, jwt
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .database import get_db
from .models import User

JWT_SECRET = os.environ.get("JWT_SECRET", "change-me-in-production")
JWT_ALGORITHM = "HS256"
COOKIE_SECURE = os.environ.get("COOKIE_SECURE", "true").lower() == "true"
COOKIE_DOMAIN = os.environ.get("COOKIE_DOMAIN") or None

# Cookie name -> lifetime. The token type claim matches the cookie it travels in.
SESSION_TOKENS = {
    "access": timedelta(hours=1),
    "refresh": timedelta(days=7),
}
CSRF_COOKIE = "csrf_token"
CSRF_HEADER = "x-csrf-token"

_hasher = PasswordHasher()


def hash_password(password: str) -> str:
    return _hasher.hash(password)


def verify_password(password: str, hashed: str | None) -> bool:
    if not hashed:
        return False
    try:
        return _hasher.verify(hashed, password)
    except (VerifyMismatchError, VerificationError, InvalidHashError):
        return False


def _issue_token(user_id: uuid.UUID, token_type: str) -> str:
    expires = datetime.now(timezone.utc) + SESSION_TOKENS[token_type]
    claims = {"sub": str(user_id), "type": token_type, "exp": expires}
    return jwt.encode(claims, JWT_SECRET, algorithm=JWT_ALGORITHM)


def _read_token(token: str, token_type: str) -> uuid.UUID:
    try:
        claims = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid or expired token")
    if claims.get("type") != token_type:
        raise HTTPException(status_code=401, detail="Invalid token")
    try:
        return uuid.UUID(str(claims.get("sub")))
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid token")


def _cookie_options(max_age: timedelta, httponly: bool = True) -> dict:
    options = {
        "max_age": int(max_age.total_seconds()),
        "httponly": httponly,
        "secure": COOKIE_SECURE,
        "samesite": "lax",
        "path": "/",
    }
    if COOKIE_DOMAIN:
        options["domain"] = COOKIE_DOMAIN
    return options


def set_auth_cookies(response: Response, user_id: uuid.UUID) -> str:
    """Start a session: one cookie per token type plus a script-readable CSRF token."""
    for token_type, lifetime in SESSION_TOKENS.items():
        response.set_cookie(f"{token_type}_token", _issue_token(user_id, token_type), **_cookie_options(lifetime))
    csrf_token = secrets.token_hex(32)
    response.set_cookie(CSRF_COOKIE, csrf_token, **_cookie_options(SESSION_TOKENS["refresh"], httponly=False))
    return csrf_token


def clear_auth_cookies(response: Response):
    for name in [f"{token_type}_token" for token_type in SESSION_TOKENS] + [CSRF_COOKIE]:
        response.delete_cookie(name, path="/", domain=COOKIE_DOMAIN)


async def _session_user(request: Request, db: AsyncSession, token_type: str) -> User:
    token = request.cookies.get(f"{token_type}_token")
    if not token:
        raise HTTPException(status_code=401, detail="Not authenticated")
    user_id = _read_token(token, token_type)
    user = (await db.execute(select(User).where(User.id == user_id))).scalar_one_or_none()
    if not user:
        raise HTTPException(status_code=401, detail="User not found")
    if not user.is_active:
        raise HTTPException(status_code=403, detail="Account is disabled")
    return user


async def get_current_user(request: Request, db: AsyncSession = Depends(get_db)) -> User:
    return await _session_user(request, db, "access")


async def get_refresh_user(request: Request, db: AsyncSession = Depends(get_db)) -> User:
    return await _session_user(request, db, "refresh")


def verify_csrf(request: Request):
    cookie_value = request.cookies.get(CSRF_COOKIE)
    header_value = request.headers.get(CSRF_HEADER)
    if not cookie_value or not header_value or not secrets.compare_digest(cookie_value, header_value):
        raise HTTPException(status_code=403, detail="CSRF token mismatch")
