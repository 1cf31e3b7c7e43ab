from datetime import datetime, timedelta, timezone

import pytest

from agenda.models.user import User, UserRole
from agenda.utils.security import (
    TokenRejected,
    create_access_token,
    decode_access_token,
    get_password_hash,
)


@pytest.mark.asyncio
async def test_register_login_and_me(api):
    registered = await api.post(
        "/auth/register",
        json={
            "email": "new@example.com",
            "password": "password123",
            "full_name": "New Pro",
            "timezone": "Europe/Lisbon",
        },
    )
    assert registered.status_code == 201
    assert registered.json()["role"] == "professional"

    duplicate = await api.post(
        "/auth/register",
        json={"email": "new@example.com", "password": "password123", "full_name": "New Pro"},
    )
    assert duplicate.status_code == 400

    wrong = await api.post("/auth/login", json={"email": "new@example.com", "password": "nope123"})
    assert wrong.status_code == 401

    login = await api.post(
        "/auth/login", json={"email": "new@example.com", "password": "password123"}
    )
    token = login.json()["access_token"]
    headers = {"Authorization": f"Bearer {token}"}

    me = await api.get("/auth/me", headers=headers)
    assert me.json()["email"] == "new@example.com"

    settings = await api.get("/settings/", headers=headers)
    assert settings.json()["timezone"] == "Europe/Lisbon"


def test_token_round_trip():
    token = create_access_token(User(id=7, email="a@example.com", role="admin"))
    payload = decode_access_token(token)
    assert payload.sub == 7
    assert payload.role == "admin"
    assert payload.iat is not None

    with pytest.raises(TokenRejected) as exc_info:
        decode_access_token(token + "x")
    assert exc_info.value.reason == "Could not validate credentials"


def test_expired_token_is_rejected():
    token = create_access_token(
        User(id=7, email="a@example.com", role="admin"),
        issued_at=datetime.now(timezone.utc) - timedelta(hours=2),
        expires_delta=timedelta(hours=1),
    )
    with pytest.raises(TokenRejected) as exc_info:
        decode_access_token(token)
    assert exc_info.value.reason == "Token has expired"


@pytest.mark.asyncio
async def test_password_change_revokes_earlier_tokens(api, user):
    earlier = create_access_token(
        user, issued_at=datetime.now(timezone.utc) - timedelta(minutes=5)
    )
    headers = {"Authorization": f"Bearer {earlier}"}

    changed = await api.post(
        "/auth/change-password",
        json={"current_password": "secret123", "new_password": "newsecret456"},
        headers=headers,
    )
    assert changed.status_code == 200

    stale = await api.get("/auth/me", headers=headers)
    assert stale.status_code == 401
    assert stale.json()["detail"] == "Session has been revoked"

    login = await api.post(
        "/auth/login", json={"email": "pro@example.com", "password": "newsecret456"}
    )
    fresh = {"Authorization": f"Bearer {login.json()['access_token']}"}
    me = await api.get("/auth/me", headers=fresh)
    assert me.status_code == 200


@pytest.mark.asyncio
async def test_deactivated_account_cannot_sign_in(api, db, user):
    user.is_active = False
    await db.commit()
    response = await api.post(
        "/auth/login", json={"email": "pro@example.com", "password": "secret123"}
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_admin_manages_users(api, db, user, auth_headers, client_ana):
    admin = User(
        email="admin@example.com",
        hashed_password=get_password_hash("adminpass"),
        full_name="Admin",
        role=UserRole.ADMIN.value,
    )
    db.add(admin)
    await db.commit()
    admin_headers = {
        "Authorization": f"Bearer {create_access_token(admin)}"
    }

    forbidden = await api.get("/admin/users", headers=auth_headers)
    assert forbidden.status_code == 403

    listing = await api.get("/admin/users", headers=admin_headers)
    assert listing.status_code == 200
    rows = {u["email"]: u for u in listing.json()["users"]}
    assert rows["pro@example.com"]["client_count"] == 1
    assert rows["admin@example.com"]["client_count"] == 0

    self_change = await api.put(
        f"/admin/users/{admin.id}/status", json={"is_active": False}, headers=admin_headers
    )
    assert self_change.status_code == 400

    deactivated = await api.put(
        f"/admin/users/{user.id}/status", json={"is_active": False}, headers=admin_headers
    )
    assert deactivated.json()["is_active"] is False

    blocked = await api.get("/clients/", headers=auth_headers)
    assert blocked.status_code == 403

    promoted = await api.put(
        f"/admin/users/{user.id}/role", json={"role": "admin"}, headers=admin_headers
    )
    assert promoted.json()["role"] == "admin"


@pytest.mark.asyncio
async def test_clients_api(api, auth_headers):
    created = await api.post(
        "/clients/",
        json={"name": "Carla", "email": "carla@example.com", "phone": "+55 11 99999-0000"},
        headers=auth_headers,
    )
    assert created.status_code == 201
    client_id = created.json()["id"]

    found = await api.get("/clients/", params={"search": "carl"}, headers=auth_headers)
    assert [c["name"] for c in found.json()["clients"]] == ["Carla"]

    updated = await api.put(
        f"/clients/{client_id}", json={"notes": "Prefers mornings"}, headers=auth_headers
    )
    assert updated.json()["notes"] == "Prefers mornings"

    removed = await api.delete(f"/clients/{client_id}", headers=auth_headers)
    assert removed.json()["is_active"] is False
    active = await api.get("/clients/", params={"is_active": True}, headers=auth_headers)
    assert active.json()["total"] == 0

    await api.post(
        "/appointments/",
        json={
            "client_id": client_id,
            "start_time": "2024-04-01T09:00:00-03:00",
            "end_time": "2024-04-01T10:00:00-03:00",
        },
        headers=auth_headers,
    )
    history = await api.get(f"/clients/{client_id}/appointments", headers=auth_headers)
    assert history.json()["total"] == 1
    assert history.json()["appointments"][0]["title"] == "Carla"
