"""Tests for account profile endpoints (api/account.py) and profile completion."""

import json

from creatordeals.models.user import User
from creatordeals.services.account_service import profile_completion
from creatordeals.tests.conftest import DEFAULT_PASSWORD, _new_id

_BASE = "/api/v1/account"


def _auth(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


# ---------------------------------------------------------------------------
# Own profile
# ---------------------------------------------------------------------------

async def test_get_me_includes_completion(client, make_user):
    user, token = await make_user("Creator", name="Cleo")
    resp = await client.get(f"{_BASE}/me", headers=_auth(token))
    assert resp.status_code == 200
    body = resp.json()
    assert body["id"] == user.id
    assert body["name"] == "Cleo"
    assert "creator_data" in body
    assert 0 <= body["profile_completion"]["percentage"] <= 100


async def test_get_me_requires_token(client):
    resp = await client.get(f"{_BASE}/me")
    assert resp.status_code == 401


async def test_get_me_rejects_garbage_token(client):
    resp = await client.get(f"{_BASE}/me", headers=_auth("not.a.jwt"))
    assert resp.status_code == 401


async def test_update_me_strips_html_and_normalises(client, make_user):
    _, token = await make_user("Marketer")
    resp = await client.patch(
        f"{_BASE}/me",
        json={"name": "<script>x()</script>Mia", "email": "Mia@Example.COM", "bio": "<i>Brand</i> lead"},
        headers=_auth(token),
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["name"] == "Mia"
    assert body["email"] == "mia@example.com"
    assert body["bio"] == "Brand lead"


async def test_update_me_rejects_invalid_email(client, make_user):
    _, token = await make_user("Marketer")
    resp = await client.patch(f"{_BASE}/me", json={"email": "nope"}, headers=_auth(token))
    assert resp.status_code == 400


async def test_update_me_duplicate_user_name(client, make_user):
    await make_user("Creator", user_name="popular")
    _, token = await make_user("Marketer")
    resp = await client.patch(f"{_BASE}/me", json={"user_name": "popular"}, headers=_auth(token))
    assert resp.status_code == 409


async def test_role_and_status_are_not_updatable(client, make_user):
    _, token = await make_user("Marketer")
    resp = await client.patch(
        f"{_BASE}/me", json={"user_type": "Creator", "status": "banned"}, headers=_auth(token),
    )
    assert resp.status_code == 200
    assert resp.json()["user_type"] == "Marketer"
    assert resp.json()["status"] == "active"


# ---------------------------------------------------------------------------
# Role data
# ---------------------------------------------------------------------------

async def test_update_creator_data_derives_followers(client, make_user):
    _, token = await make_user("Creator")
    resp = await client.patch(
        f"{_BASE}/me/creator",
        json={
            "handle_name": "cleo.makes",
            "platforms": [
                {"platform": "instagram", "handle": "cleo", "followers": 1200},
                {"platform": "tiktok", "handle": "cleo", "followers": 800},
            ],
        },
        headers=_auth(token),
    )
    assert resp.status_code == 200
    data = resp.json()["creator_data"]
    assert data["handle_name"] == "cleo.makes"
    assert data["total_followers"] == 2000


async def test_marketer_cannot_update_creator_data(client, make_user):
    _, token = await make_user("Marketer")
    resp = await client.patch(f"{_BASE}/me/creator", json={"handle_name": "x"}, headers=_auth(token))
    assert resp.status_code == 403


async def test_update_marketer_data(client, make_user):
    _, token = await make_user("Marketer")
    resp = await client.patch(
        f"{_BASE}/me/marketer", json={"brand_name": "Acme", "budget": 5000}, headers=_auth(token),
    )
    assert resp.status_code == 200
    assert resp.json()["marketer_data"]["brand_name"] == "Acme"


# ---------------------------------------------------------------------------
# Password, device token, deletion
# ---------------------------------------------------------------------------

async def test_change_password_wrong_current(client, make_user):
    _, token = await make_user("Creator")
    resp = await client.post(
        f"{_BASE}/change-password",
        json={"current_password": "Wrong12345", "new_password": "Another1pass"},
        headers=_auth(token),
    )
    assert resp.status_code == 401


async def test_change_password_weak_new_password(client, make_user):
    _, token = await make_user("Creator")
    resp = await client.post(
        f"{_BASE}/change-password",
        json={"current_password": DEFAULT_PASSWORD, "new_password": "weak"},
        headers=_auth(token),
    )
    assert resp.status_code == 400


async def test_change_password_then_login(client, make_user):
    user, token = await make_user("Creator")
    resp = await client.post(
        f"{_BASE}/change-password",
        json={"current_password": DEFAULT_PASSWORD, "new_password": "Another1pass"},
        headers=_auth(token),
    )
    assert resp.status_code == 200
    resp = await client.post("/api/v1/auth/login", json={"phone": user.phone, "password": "Another1pass"})
    assert resp.status_code == 200


async def test_update_device_token(client, make_user):
    _, token = await make_user("Creator")
    resp = await client.put(f"{_BASE}/device-token", json={"device_token": "tok-1"}, headers=_auth(token))
    assert resp.status_code == 200


async def test_delete_account_soft_deletes(client, make_user):
    user, token = await make_user("Creator")
    resp = await client.request("DELETE", f"{_BASE}/me", json={"password": DEFAULT_PASSWORD}, headers=_auth(token))
    assert resp.status_code == 200

    # Token of a deleted user no longer authenticates
    resp = await client.get(f"{_BASE}/me", headers=_auth(token))
    assert resp.status_code == 401
    resp = await client.post("/api/v1/auth/login", json={"phone": user.phone, "password": DEFAULT_PASSWORD})
    assert resp.status_code == 401


async def test_delete_account_wrong_password(client, make_user):
    _, token = await make_user("Creator")
    resp = await client.request("DELETE", f"{_BASE}/me", json={"password": "Wrong12345"}, headers=_auth(token))
    assert resp.status_code == 401


# ---------------------------------------------------------------------------
# Public profile
# ---------------------------------------------------------------------------

async def test_public_profile_hides_private_fields(client, make_user):
    creator, _ = await make_user("Creator")
    _, token = await make_user("Marketer")
    resp = await client.get(f"{_BASE}/profile/{creator.id}", headers=_auth(token))
    assert resp.status_code == 200
    body = resp.json()
    assert body["id"] == creator.id
    assert "phone" not in body
    assert body["is_self"] is False


async def test_public_profile_malformed_id(client, make_user):
    _, token = await make_user("Marketer")
    resp = await client.get(f"{_BASE}/profile/not-a-uuid", headers=_auth(token))
    assert resp.status_code == 400


async def test_public_profile_unknown_id(client, make_user):
    _, token = await make_user("Marketer")
    resp = await client.get(f"{_BASE}/profile/{_new_id()}", headers=_auth(token))
    assert resp.status_code == 404


# ---------------------------------------------------------------------------
# Profile completion (unit)
# ---------------------------------------------------------------------------

def test_profile_completion_empty_creator():
    user = User(phone="+15550001111", user_type="Creator", creator_data="{}", marketer_data="{}", settings_json="{}")
    result = profile_completion(user)
    # Only the phone check passes: half of the verification section
    assert result["percentage"] == 10
    assert result["sections"]["verification"] == 10.0
    assert "basic.name" in result["missing"]
    assert "role_specific.handle_name" in result["missing"]


def test_profile_completion_full_marketer():
    user = User(
        phone="+15550001111",
        user_type="Marketer",
        name="Mia",
        user_name="mia",
        email="mia@example.com",
        email_verified=True,
        avatar_url="https://cdn.example.com/a.png",
        bio="Hi",
        payout_account_id="acct_1",
        settings_json='{"notifications": {"push": true}}',
        marketer_data='{"brand_name": "Acme", "industry": "Retail", "brand_description": "Shoes", "budget": 1000}',
        creator_data="{}",
    )
    result = profile_completion(user)
    assert result["percentage"] == 100
    assert result["missing"] == []


# ---------------------------------------------------------------------------
# Creator discovery
# ---------------------------------------------------------------------------

def _creator_data(handle: str, categories: list, platforms: list, followers: int) -> str:
    return json.dumps({
        "handle_name": handle,
        "categories": categories,
        "platforms": [{"platform": p, "followers": followers} for p in platforms],
        "total_followers": followers * len(platforms),
    })


async def _seed_creators(make_user):
    cleo, _ = await make_user(
        "Creator", name="Cleo Makes", creator_data=_creator_data("cleocooks", ["Food", "Travel"], ["instagram"], 5000)
    )
    finn, _ = await make_user(
        "Creator", name="Finn Fit", creator_data=_creator_data("finnlifts", ["Fitness"], ["youtube", "tiktok"], 8000)
    )
    return cleo, finn


async def test_search_creators_lists_active_creators_by_reach(client, make_user):
    cleo, finn = await _seed_creators(make_user)
    await make_user("Creator", name="Idle Ivy", is_active=False)
    await make_user("Creator", name="Gone Gus", status="deleted")
    _, token = await make_user("Marketer")

    resp = await client.get(f"{_BASE}/creators", headers=_auth(token))
    assert resp.status_code == 200
    body = resp.json()
    assert [c["id"] for c in body["creators"]] == [finn.id, cleo.id]
    assert body["count"] == 2
    assert "phone" not in body["creators"][0]
    assert body["creators"][0]["creator_data"]["handle_name"] == "finnlifts"


async def test_search_creators_matches_name_or_handle(client, make_user):
    cleo, finn = await _seed_creators(make_user)
    _, token = await make_user("Marketer")

    by_name = await client.get(f"{_BASE}/creators", params={"q": "cleo"}, headers=_auth(token))
    assert [c["id"] for c in by_name.json()["creators"]] == [cleo.id]

    by_handle = await client.get(f"{_BASE}/creators", params={"q": "LIFTS"}, headers=_auth(token))
    assert [c["id"] for c in by_handle.json()["creators"]] == [finn.id]


async def test_search_creators_filters_category_and_platform(client, make_user):
    cleo, finn = await _seed_creators(make_user)
    _, token = await make_user("Marketer")

    resp = await client.get(f"{_BASE}/creators", params={"category": "travel"}, headers=_auth(token))
    assert [c["id"] for c in resp.json()["creators"]] == [cleo.id]

    resp = await client.get(f"{_BASE}/creators", params={"platform": "TikTok"}, headers=_auth(token))
    assert [c["id"] for c in resp.json()["creators"]] == [finn.id]

    resp = await client.get(
        f"{_BASE}/creators", params={"category": "fitness", "platform": "instagram"}, headers=_auth(token)
    )
    assert resp.json()["creators"] == []


async def test_search_creators_limit_and_auth(client, make_user):
    await _seed_creators(make_user)
    _, token = await make_user("Marketer")

    resp = await client.get(f"{_BASE}/creators", params={"limit": 1}, headers=_auth(token))
    assert resp.json()["count"] == 1
    assert (await client.get(f"{_BASE}/creators", params={"limit": 0}, headers=_auth(token))).status_code == 422
    assert (await client.get(f"{_BASE}/creators")).status_code == 401
