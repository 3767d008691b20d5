import pytest
from httpx import AsyncClient
from sqlalchemy import select

from watchtracker.auth import hash_password, verify_password
from watchtracker.models import AuditLog

from tests.helpers import signup

pytestmark = pytest.mark.anyio


def test_password_hash_roundtrip():
    hashed = hash_password("correct-horse-battery")
    assert hashed != "correct-horse-battery"
    assert verify_password("correct-horse-battery", hashed)
    assert not verify_password("wrong-password", hashed)
    assert not verify_password("anything", "")


async def test_signup_sets_cookies_and_audits(client: AsyncClient, session):
    user = await signup(client)
    assert user["email"] == "viewer@example.com"
    for name in ("access_token", "refresh_token", "csrf_token"):
        assert client.cookies.get(name)

    entry = (await session.execute(select(AuditLog).where(AuditLog.action == "user.signup"))).scalar_one()
    assert entry.actor_email == "viewer@example.com"


async def test_signup_rejects_duplicate_email(client: AsyncClient):
    await signup(client)
    resp = await client.post(
        "/api/auth/signup",
        json={"email": "Viewer@Example.com", "password": "another-password"},
    )
    assert resp.status_code == 409


async def test_signup_rejects_short_password(client: AsyncClient):
    resp = await client.post("/api/auth/signup", json={"email": "a@example.com", "password": "short"})
    assert resp.status_code == 422


async def test_login_and_me(client: AsyncClient, other_client: AsyncClient):
    await signup(client)

    bad = await other_client.post("/api/auth/login", json={"email": "viewer@example.com", "password": "nope-nope"})
    assert bad.status_code == 401

    resp = await other_client.post(
        "/api/auth/login",
        json={"email": "viewer@example.com", "password": "correct-horse-battery"},
    )
    assert resp.status_code == 200
    me = await other_client.get("/api/auth/me")
    assert me.status_code == 200
    assert me.json()["email"] == "viewer@example.com"
    assert me.json()["last_login_at"] is not None


async def test_me_requires_authentication(client: AsyncClient):
    resp = await client.get("/api/auth/me")
    assert resp.status_code == 401


async def test_logout_clears_session(client: AsyncClient):
    await signup(client)
    resp = await client.post("/api/auth/logout")
    assert resp.status_code == 200
    assert (await client.get("/api/auth/me")).status_code == 401


async def test_state_change_without_csrf_header_is_rejected(client: AsyncClient):
    await signup(client)
    del client.headers["X-CSRF-Token"]
    resp = await client.post("/api/titles", json={"type": "MOVIE", "name": "Heat"})
    assert resp.status_code == 403
    assert resp.json()["detail"] == "CSRF token mismatch"


async def test_health_and_security_headers(client: AsyncClient):
    resp = await client.get("/api/health")
    assert resp.status_code == 200
    assert resp.json() == {"ok": True}
    assert resp.headers["X-Content-Type-Options"] == "nosniff"
    assert resp.headers["X-Frame-Options"] == "DENY"


async def test_update_profile(client: AsyncClient, session):
    await signup(client)
    resp = await client.patch(
        "/api/auth/profile",
        json={"display_name": "  Night Owl ", "email": "Owl@Example.com"},
    )
    assert resp.status_code == 200
    user = resp.json()["user"]
    assert user["display_name"] == "Night Owl"
    assert user["email"] == "owl@example.com"
    assert (await client.get("/api/auth/me")).json()["email"] == "owl@example.com"

    actions = (await session.execute(select(AuditLog.action))).scalars().all()
    assert "user.profile_update" in actions


async def test_update_profile_rejects_taken_email(client: AsyncClient, other_client: AsyncClient):
    await signup(client)
    await signup(other_client, email="someone@example.com")
    resp = await other_client.patch("/api/auth/profile", json={"email": "viewer@example.com"})
    assert resp.status_code == 409
    assert (await other_client.get("/api/auth/me")).json()["email"] == "someone@example.com"


async def test_update_profile_requires_authentication(client: AsyncClient):
    resp = await client.patch("/api/auth/profile", json={"display_name": "Nobody"})
    assert resp.status_code == 401


async def test_refresh_reissues_session(client: AsyncClient):
    await signup(client)
    resp = await client.post("/api/auth/refresh")
    assert resp.status_code == 200
    client.headers["X-CSRF-Token"] = client.cookies["csrf_token"]
    assert (await client.get("/api/auth/me")).status_code == 200
