import logging
from datetime import datetime, timezone
from fastapi import APIRouter, Depends, HTTPException, Response
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .audit import add_audit_log
from .database import get_db
from .models import User
from .auth import (
    hash_password, verify_password, set_auth_cookies, clear_auth_cookies,
    get_current_user, get_refresh_user,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


class SignupRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=8, max_length=128)
    display_name: str | None = Field(default=None, max_length=120)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


def _serialize_user(user: User) -> dict:
    return {
        "id": str(user.id),
        "email": user.email,
        "display_name": user.display_name,
        "is_active": bool(user.is_active),
        "created_at": user.created_at.isoformat() if user.created_at else None,
        "last_login_at": user.last_login_at.isoformat() if user.last_login_at else None,
    }


@router.post("/signup", status_code=201)
async def signup(body: SignupRequest, response: Response, db: AsyncSession = Depends(get_db)):
    email = body.email.lower()
    existing = await db.execute(select(User).where(User.email == email))
    if existing.scalar_one_or_none():
        raise HTTPException(status_code=409, detail="Email already registered")

    user = User(
        email=email,
        password_hash=hash_password(body.password),
        display_name=(body.display_name or "").strip() or None,
        is_active=True,
        last_login_at=datetime.now(timezone.utc),
    )
    db.add(user)
    await db.flush()
    add_audit_log(db, action="user.signup", message="Account created.", actor_user=user)
    await db.commit()
    logger.info("New account %s", user.id)

    set_auth_cookies(response, user.id)
    return {"ok": True, "user": _serialize_user(user)}


@router.post("/login")
async def login(body: LoginRequest, response: Response, db: AsyncSession = Depends(get_db)):
    result = await db.execute(select(User).where(User.email == body.email.lower()))
    user = result.scalar_one_or_none()
    if not user or not verify_password(body.password, user.password_hash):
        raise HTTPException(status_code=401, detail="Invalid email or password")
    if not user.is_active:
        raise HTTPException(status_code=403, detail="Account is disabled")

    user.last_login_at = datetime.now(timezone.utc)
    await db.commit()

    set_auth_cookies(response, user.id)
    return {"ok": True, "user": _serialize_user(user)}


@router.post("/refresh")
async def refresh(response: Response, user: User = Depends(get_refresh_user)):
    set_auth_cookies(response, user.id)
    return {"ok": True}


@router.post("/logout")
async def logout(response: Response):
    clear_auth_cookies(response)
    return {"ok": True}


@router.get("/me")
async def me(user: User = Depends(get_current_user)):
    return _serialize_user(user)


class ProfileUpdate(BaseModel):
    email: EmailStr | None = None
    display_name: str | None = Field(default=None, max_length=120)


@router.patch("/profile")
async def update_profile(
    body: ProfileUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    updates = body.model_dump(exclude_unset=True)
    if updates.get("email"):
        email = updates["email"].lower()
        if email != user.email:
            taken = await db.execute(select(User.id).where(User.email == email, User.id != user.id))
            if taken.scalar_one_or_none():
                raise HTTPException(status_code=409, detail="Email already registered")
            user.email = email
    if "display_name" in updates:
        user.display_name = (updates["display_name"] or "").strip() or None
    if updates:
        add_audit_log(db, action="user.profile_update", message="Profile updated.", actor_user=user)
        await db.commit()
    return {"ok": True, "user": _serialize_user(user)}
