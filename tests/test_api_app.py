from __future__ import annotations

import re
from dataclasses import replace
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

import pytest
from fastapi.testclient import TestClient

from moscowvitz_bff.adapters.sqlite_content_store import SQLiteContentStore
from moscowvitz_bff.adapters.sqlite_identity_provider import SQLiteIdentityProvider
from moscowvitz_bff.api.app import create_app
from moscowvitz_bff.api.dispatcher import RouteSpec
from moscowvitz_bff.api.routes import ROUTE_TABLE
from moscowvitz_bff.config import DEFAULT_JWT_SECRET, BffSettings, load_settings
from moscowvitz_bff.core.session_tokens import SessionTokenSigner
from moscowvitz_bff.domain.models import Identity

TEST_SECRET = "test-session-secret-with-at-least-32-bytes"


def _settings(tmp_path: Path) -> BffSettings:
    return replace(
        load_settings(db_path=tmp_path / "bff.db"),
        backend="sqlite",
        environment="test",
        jwt_secret=TEST_SECRET,
    )


def _client(tmp_path: Path) -> TestClient:
    return TestClient(create_app(settings=_settings(tmp_path)))


def _login(client: TestClient, email: str, password: str = "password123") -> dict[str, Any]:
    response = client.post("/api/auth/login", json={"email": email, "password": password})
    assert response.status_code == 200
    return response.json()["data"]


def _register(client: TestClient, email: str, full_name: str = "Ada") -> dict[str, str]:
    signup = client.post(
        "/api/auth/signup",
        json={"email": email, "password": "password123", "full_name": full_name},
    )
    assert signup.status_code == 201
    token = _login(client, email)["token"]
    return {"Authorization": f"Bearer {token}"}


def _promote(tmp_path: Path, email: str, role: str = "admin") -> None:
    db_path = tmp_path / "bff.db"
    provider = SQLiteIdentityProvider(db_path, profiles=SQLiteContentStore(db_path=db_path))
    assert provider.set_role(email=email, role=role) is not None


def _admin_headers(client: TestClient, tmp_path: Path, email: str = "root@example.com") -> dict[str, str]:
    _register(client, email, full_name="Root")
    _promote(tmp_path, email)
    return {"Authorization": f"Bearer {_login(client, email)['token']}"}


def _create(client: TestClient, headers: dict[str, str], path: str, body: dict[str, Any]) -> dict[str, Any]:
    response = client.post(path, json=body, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()["data"]


def test_health_reports_database_status(tmp_path: Path) -> None:
    client = _client(tmp_path)
    for path in ("/health", "/api/health"):
        response = client.get(path)
        assert response.status_code == 200
        payload = response.json()
        assert payload["success"] is True
        assert payload["data"]["status"] == "healthy"
        assert payload["data"]["services"] == {"database": "healthy"}
        assert payload["data"]["environment"] == "test"


def test_api_index_lists_routes_without_auth(tmp_path: Path) -> None:
    client = _client(tmp_path)
    response = client.get("/api")
    assert response.status_code == 200
    endpoints = response.json()["data"]["endpoints"]
    assert "GET /api/user/dashboard-data" in endpoints
    assert "DELETE /api/worlds/{id}" in endpoints


def test_openapi_lists_registered_routes(tmp_path: Path) -> None:
    client = _client(tmp_path)
    response = client.get("/openapi.json")
    assert response.status_code == 200
    payload = response.json()
    assert payload["info"]["title"] == "Moscowvitz BFF"
    assert "/api/user/worlds/{worldId}/complete" in payload["paths"]


def test_protected_routes_require_bearer_token(tmp_path: Path) -> None:
    client = _client(tmp_path)
    missing = client.get("/api/worlds")
    assert missing.status_code == 401
    body = missing.json()
    assert body["success"] is False
    assert body["code"] == "TOKEN_REQUIRED"
    assert body["error"] == "Access token required"
    assert body["path"] == "/api/worlds"
    assert "timestamp" in body

    malformed = client.get("/api/worlds", headers={"Authorization": "Token abc"})
    assert malformed.status_code == 401
    assert malformed.json()["code"] == "TOKEN_REQUIRED"

    unknown = client.get("/api/user/dashboard-data", headers={"Authorization": "Bearer nope"})
    assert unknown.status_code == 401
    assert unknown.json()["code"] == "TOKEN_INVALID"


def test_expired_session_token_is_rejected(tmp_path: Path) -> None:
    client = _client(tmp_path)
    signer = SessionTokenSigner(secret=TEST_SECRET, ttl_days=1)
    identity = Identity.from_claims(user_id="u-1", email="ghost@example.com", role="user")
    issued = signer.issue(identity, now=datetime.now(UTC) - timedelta(days=3))
    response = client.get("/api/auth/me", headers={"Authorization": f"Bearer {issued.token}"})
    assert response.status_code == 401
    assert response.json()["code"] == "TOKEN_EXPIRED"


def test_forged_session_token_is_rejected(tmp_path: Path) -> None:
    client = _client(tmp_path)
    signer = SessionTokenSigner(secret="some-other-secret-of-reasonable-length", ttl_days=1)
    identity = Identity.from_claims(user_id="u-1", email="ghost@example.com", role="admin")
    token = signer.issue(identity).token
    response = client.get("/api/admin/users", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 401
    assert response.json()["code"] == "TOKEN_INVALID"


def test_signup_login_me_and_refresh(tmp_path: Path) -> None:
    client = _client(tmp_path)
    signup = client.post(
        "/api/auth/signup",
        json={"email": "Alice@Example.com", "password": "password123", "full_name": "Alice"},
    )
    assert signup.status_code == 201
    signup_data = signup.json()["data"]
    assert signup_data["requiresConfirmation"] is False
    assert signup_data["user"]["email"] == "alice@example.com"

    login = _login(client, "alice@example.com")
    assert login["user"]["role"] == "user"
    assert login["user"]["is_admin"] is False
    assert login["expires_at"]
    headers = {"Authorization": f"Bearer {login['token']}"}

    me = client.get("/api/auth/me", headers=headers)
    assert me.status_code == 200
    assert me.json()["data"]["email"] == "alice@example.com"
    assert me.json()["data"]["full_name"] == "Alice"

    _promote(tmp_path, "alice@example.com")
    refreshed = client.post("/api/auth/refresh", json={"token": login["token"]})
    assert refreshed.status_code == 200
    refreshed_data = refreshed.json()["data"]
    assert refreshed_data["user"]["role"] == "admin"
    admin_me = client.get(
        "/api/auth/me", headers={"Authorization": f"Bearer {refreshed_data['token']}"}
    )
    assert admin_me.json()["data"]["is_admin"] is True


def test_auth_failures_use_expected_codes(tmp_path: Path) -> None:
    client = _client(tmp_path)
    _register(client, "alice@example.com")

    duplicate = client.post(
        "/api/auth/signup", json={"email": "alice@example.com", "password": "password123"}
    )
    assert duplicate.status_code == 400
    assert duplicate.json()["code"] == "SIGNUP_FAILED"

    wrong_password = client.post(
        "/api/auth/login", json={"email": "alice@example.com", "password": "wrong-password"}
    )
    assert wrong_password.status_code == 401
    assert wrong_password.json()["code"] == "LOGIN_FAILED"

    short_password = client.post(
        "/api/auth/signup", json={"email": "bob@example.com", "password": "abc"}
    )
    assert short_password.status_code == 400
    assert short_password.json()["code"] == "VALIDATION_ERROR"

    bad_refresh = client.post("/api/auth/refresh", json={"token": "not-a-token"})
    assert bad_refresh.status_code == 401
    assert bad_refresh.json()["code"] == "TOKEN_INVALID"


def test_provider_token_is_accepted_until_logout(tmp_path: Path) -> None:
    client = _client(tmp_path)
    _register(client, "alice@example.com")
    db_path = tmp_path / "bff.db"
    provider = SQLiteIdentityProvider(db_path)
    session = provider.sign_in(email="alice@example.com", password="password123")
    headers = {"Authorization": f"Bearer {session.access_token}"}

    assert client.get("/api/auth/me", headers=headers).status_code == 200
    logout = client.post("/api/auth/logout", headers=headers)
    assert logout.status_code == 200
    assert logout.json()["message"] == "Logged out successfully"
    revoked = client.get("/api/auth/me", headers=headers)
    assert revoked.status_code == 401
    assert revoked.json()["code"] == "TOKEN_INVALID"


def test_logout_with_session_token_succeeds(tmp_path: Path) -> None:
    client = _client(tmp_path)
    headers = _register(client, "alice@example.com")
    response = client.post("/api/auth/logout", headers=headers)
    assert response.status_code == 200
    assert response.json() == {"success": True, "data": None, "message": "Logged out successfully"}


def test_world_create_get_round_trip_is_idempotent(tmp_path: Path) -> None:
    client = _client(tmp_path)
    headers = _register(client, "alice@example.com")
    me = client.get("/api/auth/me", headers=headers).json()["data"]

    world = _create(
        client,
        headers,
        "/api/worlds",
        {"name": "Aster", "description": "Floating isles", "user_id": "someone-else"},
    )
    assert world["user_id"] == me["id"]
    assert world["created_at"]
    assert world["updated_at"]

    first = client.get(f"/api/worlds/{world['id']}", headers=headers)
    second = client.get(f"/api/worlds/{world['id']}", headers=headers)
    assert first.status_code == 200
    assert first.json() == second.json()
    assert first.json()["data"]["name"] == "Aster"

    listed = client.get("/api/user/worlds", headers=headers)
    assert [row["id"] for row in listed.json()["data"]] == [world["id"]]


def test_non_owner_cannot_read_update_or_delete(tmp_path: Path) -> None:
    client = _client(tmp_path)
    alice = _register(client, "alice@example.com")
    bob = _register(client, "bob@example.com", full_name="Bob")
    world = _create(client, alice, "/api/worlds", {"name": "Aster"})
    path = f"/api/worlds/{world['id']}"

    for response in (
        client.get(path, headers=bob),
        client.put(path, json={"name": "Stolen"}, headers=bob),
        client.delete(path, headers=bob),
    ):
        assert response.status_code == 404
        assert response.json()["code"] == "WORLD_NOT_FOUND"
        assert response.json()["error"] == "World not found or access denied"

    unchanged = client.get(path, headers=alice)
    assert unchanged.status_code == 200
    assert unchanged.json()["data"]["name"] == "Aster"
    assert client.get("/api/worlds", headers=bob).json()["data"] == []


def test_missing_and_foreign_rows_are_indistinguishable(tmp_path: Path) -> None:
    client = _client(tmp_path)
    alice = _register(client, "alice@example.com")
    bob = _register(client, "bob@example.com")
    world = _create(client, alice, "/api/worlds", {"name": "Aster"})

    foreign = client.get(f"/api/worlds/{world['id']}", headers=bob)
    missing = client.get("/api/worlds/does-not-exist", headers=bob)
    assert foreign.status_code == missing.status_code == 404
    keys = ("success", "error", "code")
    assert {key: foreign.json()[key] for key in keys} == {key: missing.json()[key] for key in keys}


def test_admin_bypasses_ownership_but_keeps_row_owner(tmp_path: Path) -> None:
    client = _client(tmp_path)
    alice = _register(client, "alice@example.com")
    admin = _admin_headers(client, tmp_path)
    alice_id = client.get("/api/auth/me", headers=alice).json()["data"]["id"]
    world = _create(client, alice, "/api/worlds", {"name": "Aster"})
    own_world = _create(client, admin, "/api/worlds", {"name": "Admin world"})

    assert client.get(f"/api/worlds/{own_world['id']}", headers=admin).status_code == 200
    read = client.get(f"/api/worlds/{world['id']}", headers=admin)
    assert read.status_code == 200

    updated = client.put(f"/api/worlds/{world['id']}", json={"name": "Renamed"}, headers=admin)
    assert updated.status_code == 200
    assert updated.json()["data"]["name"] == "Renamed"
    assert updated.json()["data"]["user_id"] == alice_id

    chapter = _create(
        client, admin, "/api/chapters", {"world_id": world["id"], "title": "Prologue"}
    )
    assert chapter["user_id"] == alice_id

    missing = client.get("/api/worlds/does-not-exist", headers=admin)
    assert missing.status_code == 404
    assert missing.json()["error"] == "World not found"


def test_admin_routes_require_admin_capability(tmp_path: Path) -> None:
    client = _client(tmp_path)
    alice = _register(client, "alice@example.com")
    denied = client.get("/api/admin/users", headers=alice)
    assert denied.status_code == 403
    assert denied.json()["code"] == "ADMIN_REQUIRED"

    admin = _admin_headers(client, tmp_path)
    _create(client, alice, "/api/worlds", {"name": "Aster"})
    users = client.get("/api/admin/users", headers=admin)
    assert users.status_code == 200
    emails = {row["email"] for row in users.json()["data"]}
    assert emails == {"alice@example.com", "root@example.com"}

    analytics = client.get("/api/admin/analytics", headers=admin)
    assert analytics.status_code == 200
    data = analytics.json()["data"]
    assert data["totals"] == {"users": 2, "worlds": 1, "characters": 0, "dialogues": 0}
    assert [world["name"] for world in data["recentActivity"]["worlds"]] == ["Aster"]


def test_dashboard_is_empty_for_new_user(tmp_path: Path) -> None:
    client = _client(tmp_path)
    headers = _register(client, "alice@example.com")
    response = client.get("/api/user/dashboard-data", headers=headers)
    assert response.status_code == 200
    assert response.json() == {
        "success": True,
        "data": {"worlds": [], "totalWorlds": 0, "totalChapters": 0, "totalCharacters": 0},
    }


def test_dashboard_counters_match_nested_worlds(tmp_path: Path) -> None:
    client = _client(tmp_path)
    alice = _register(client, "alice@example.com")
    bob = _register(client, "bob@example.com")
    busy = _create(client, alice, "/api/worlds", {"name": "Busy"})
    _create(client, alice, "/api/worlds", {"name": "Quiet"})
    _create(client, bob, "/api/worlds", {"name": "Bob's"})
    for number in (1, 2, 3):
        _create(
            client,
            alice,
            "/api/chapters",
            {"world_id": busy["id"], "title": f"Chapter {number}", "chapter_number": number},
        )
    _create(client, alice, "/api/characters", {"world_id": busy["id"], "name": "Mira"})

    data = client.get("/api/user/dashboard-data", headers=alice).json()["data"]
    assert data["totalWorlds"] == 2
    assert data["totalChapters"] == 3
    assert data["totalCharacters"] == 1
    assert data["totalChapters"] == sum(len(world["chapters"]) for world in data["worlds"])
    by_name = {world["name"]: world for world in data["worlds"]}
    assert by_name["Quiet"]["chapters"] == []
    assert by_name["Quiet"]["characters"] == []
    assert [chapter["chapter_number"] for chapter in by_name["Busy"]["chapters"]] == [1, 2, 3]


def test_complete_world_returns_full_tree(tmp_path: Path) -> None:
    client = _client(tmp_path)
    alice = _register(client, "alice@example.com")
    bob = _register(client, "bob@example.com")
    world = _create(client, alice, "/api/worlds", {"name": "Aster"})
    chapter = _create(client, alice, "/api/chapters", {"world_id": world["id"], "title": "One"})
    event = _create(
        client,
        alice,
        "/api/events",
        {"world_id": world["id"], "chapter_id": chapter["id"], "title": "Storm"},
    )
    scene = _create(
        client,
        alice,
        "/api/scenes",
        {"chapter_id": chapter["id"], "event_id": event["id"], "title": "Harbor"},
    )
    character = _create(client, alice, "/api/characters", {"world_id": world["id"], "name": "Mira"})
    dialogue = _create(
        client,
        alice,
        "/api/dialogues",
        {"scene_id": scene["id"], "character_id": character["id"], "title": "Greeting"},
    )
    assert dialogue["dialogue_type"] == "dialogue"

    response = client.get(f"/api/user/worlds/{world['id']}/complete", headers=alice)
    assert response.status_code == 200
    tree = response.json()["data"]
    assert tree["id"] == world["id"]
    assert [row["id"] for row in tree["characters"]] == [character["id"]]
    [tree_chapter] = tree["chapters"]
    [tree_event] = tree_chapter["events"]
    [tree_scene] = tree_event["scenes"]
    [tree_dialogue] = tree_scene["dialogues"]
    assert tree_dialogue["id"] == dialogue["id"]

    foreign = client.get(f"/api/user/worlds/{world['id']}/complete", headers=bob)
    assert foreign.status_code == 404
    assert foreign.json()["code"] == "WORLD_NOT_FOUND"


def test_create_under_foreign_parent_is_masked(tmp_path: Path) -> None:
    client = _client(tmp_path)
    alice = _register(client, "alice@example.com")
    bob = _register(client, "bob@example.com")
    world = _create(client, alice, "/api/worlds", {"name": "Aster"})

    response = client.post(
        "/api/chapters", json={"world_id": world["id"], "title": "Intrusion"}, headers=bob
    )
    assert response.status_code == 404
    assert response.json()["code"] == "WORLD_NOT_FOUND"
    chapters = client.get("/api/chapters", params={"world_id": world["id"]}, headers=alice)
    assert chapters.json()["data"] == []


def test_mismatched_parent_chain_is_rejected(tmp_path: Path) -> None:
    client = _client(tmp_path)
    alice = _register(client, "alice@example.com")
    first = _create(client, alice, "/api/worlds", {"name": "First"})
    second = _create(client, alice, "/api/worlds", {"name": "Second"})
    chapter = _create(client, alice, "/api/chapters", {"world_id": first["id"], "title": "One"})

    response = client.post(
        "/api/events",
        json={"world_id": second["id"], "chapter_id": chapter["id"], "title": "Drift"},
        headers=alice,
    )
    assert response.status_code == 400
    assert response.json()["code"] == "PARENT_MISMATCH"


def test_list_filters_and_ordering(tmp_path: Path) -> None:
    client = _client(tmp_path)
    alice = _register(client, "alice@example.com")
    first = _create(client, alice, "/api/worlds", {"name": "First"})
    second = _create(client, alice, "/api/worlds", {"name": "Second"})
    _create(client, alice, "/api/chapters", {"world_id": first["id"], "title": "B", "chapter_number": 2})
    _create(client, alice, "/api/chapters", {"world_id": first["id"], "title": "A", "chapter_number": 1})
    _create(client, alice, "/api/chapters", {"world_id": second["id"], "title": "Other"})

    response = client.get("/api/chapters", params={"world_id": first["id"]}, headers=alice)
    assert response.status_code == 200
    assert [row["title"] for row in response.json()["data"]] == ["A", "B"]
    assert len(client.get("/api/chapters", headers=alice).json()["data"]) == 3


def test_delete_world_cascades_to_children(tmp_path: Path) -> None:
    client = _client(tmp_path)
    alice = _register(client, "alice@example.com")
    world = _create(client, alice, "/api/worlds", {"name": "Aster"})
    _create(client, alice, "/api/chapters", {"world_id": world["id"], "title": "One"})

    deleted = client.delete(f"/api/worlds/{world['id']}", headers=alice)
    assert deleted.status_code == 200
    assert deleted.json() == {"success": True, "data": None, "message": "World deleted successfully"}
    assert client.get(f"/api/worlds/{world['id']}", headers=alice).status_code == 404
    assert client.get("/api/chapters", headers=alice).json()["data"] == []


def test_update_only_touches_sent_fields(tmp_path: Path) -> None:
    client = _client(tmp_path)
    alice = _register(client, "alice@example.com")
    world = _create(client, alice, "/api/worlds", {"name": "Aster"})
    chapter = _create(
        client,
        alice,
        "/api/chapters",
        {"world_id": world["id"], "title": "One", "description": "Opening", "chapter_number": 4},
    )

    response = client.put(
        f"/api/chapters/{chapter['id']}", json={"title": "Renamed"}, headers=alice
    )
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["title"] == "Renamed"
    assert data["description"] == "Opening"
    assert data["chapter_number"] == 4
    assert data["world_id"] == world["id"]


def test_request_validation_errors(tmp_path: Path) -> None:
    client = _client(tmp_path)
    alice = _register(client, "alice@example.com")

    missing_name = client.post("/api/worlds", json={"description": "x"}, headers=alice)
    assert missing_name.status_code == 400
    assert missing_name.json()["code"] == "VALIDATION_ERROR"
    assert "name" in missing_name.json()["error"]

    malformed = client.post(
        "/api/worlds",
        content=b"{not json",
        headers={**alice, "Content-Type": "application/json"},
    )
    assert malformed.status_code == 400
    assert malformed.json()["code"] == "INVALID_JSON"

    orphan_event = client.post("/api/events", json={"title": "Orphan"}, headers=alice)
    assert orphan_event.status_code == 400

    bad_type = client.post(
        "/api/dialogues",
        json={"scene_id": "s", "title": "x", "dialogue_type": "shout"},
        headers=alice,
    )
    assert bad_type.status_code == 400


def test_unknown_route_and_method(tmp_path: Path) -> None:
    client = _client(tmp_path)
    unknown = client.get("/api/does-not-exist")
    assert unknown.status_code == 404
    assert unknown.json()["code"] == "ROUTE_NOT_FOUND"
    assert unknown.json()["error"] == "Route not found"
    assert unknown.json()["path"] == "/api/does-not-exist"

    with_query = client.get("/api/does-not-exist?x=1")
    assert with_query.json()["path"] == "/api/does-not-exist?x=1"

    not_allowed = client.patch("/api/worlds", json={})
    assert not_allowed.status_code == 405
    assert not_allowed.json()["code"] == "METHOD_NOT_ALLOWED"


PROTECTED_ROUTES = [route for route in ROUTE_TABLE if route.auth]


@pytest.mark.parametrize("route", PROTECTED_ROUTES, ids=[route.name for route in PROTECTED_ROUTES])
@pytest.mark.parametrize("authorization", [None, "Basic abc", "Bearer"])
def test_every_protected_route_rejects_missing_credentials(
    tmp_path: Path, route: RouteSpec, authorization: str | None
) -> None:
    client = _client(tmp_path)
    path = re.sub(r"\{[^}]+\}", "row-1", route.path)
    headers = {"Authorization": authorization} if authorization else {}
    response = client.request(route.method, path, json={}, headers=headers)
    assert response.status_code == 401
    assert response.json()["code"] == "TOKEN_REQUIRED"


def test_default_secret_outside_development_refuses_to_start(tmp_path: Path) -> None:
    settings = replace(_settings(tmp_path), environment="production", jwt_secret=DEFAULT_JWT_SECRET)
    with pytest.raises(RuntimeError, match="MOSCOWVITZ_JWT_SECRET"):
        create_app(settings=settings)


def test_session_token_for_unknown_user_is_rejected(tmp_path: Path) -> None:
    client = _client(tmp_path)
    signer = SessionTokenSigner(secret=TEST_SECRET)
    identity = Identity.from_claims(user_id="nobody", email="nobody@example.com", role="admin")
    headers = {"Authorization": f"Bearer {signer.issue(identity).token}"}
    response = client.get("/api/admin/users", headers=headers)
    assert response.status_code == 401
    assert response.json()["code"] == "TOKEN_INVALID"


def test_role_claim_in_session_token_is_not_trusted(tmp_path: Path) -> None:
    client = _client(tmp_path)
    _register(client, "alice@example.com")
    login = _login(client, "alice@example.com")
    signer = SessionTokenSigner(secret=TEST_SECRET)
    escalated = Identity.from_claims(
        user_id=login["user"]["id"], email="alice@example.com", role="admin"
    )
    headers = {"Authorization": f"Bearer {signer.issue(escalated).token}"}
    response = client.get("/api/admin/users", headers=headers)
    assert response.status_code == 403
    assert response.json()["code"] == "ADMIN_REQUIRED"


def test_role_change_applies_to_existing_session_tokens(tmp_path: Path) -> None:
    client = _client(tmp_path)
    admin = _admin_headers(client, tmp_path)
    assert client.get("/api/admin/users", headers=admin).status_code == 200

    _promote(tmp_path, "root@example.com", role="user")
    denied = client.get("/api/admin/users", headers=admin)
    assert denied.status_code == 403
    assert denied.json()["code"] == "ADMIN_REQUIRED"
    me = client.get("/api/auth/me", headers=admin).json()["data"]
    assert me["role"] == "user"
    assert me["is_admin"] is False

    refreshed = client.post("/api/auth/refresh", json={"token": admin["Authorization"][7:]})
    assert refreshed.json()["data"]["user"]["is_admin"] is False


def test_admin_deletes_own_and_foreign_rows(tmp_path: Path) -> None:
    client = _client(tmp_path)
    alice = _register(client, "alice@example.com")
    admin = _admin_headers(client, tmp_path)
    foreign = _create(client, alice, "/api/worlds", {"name": "Aster"})
    _create(client, alice, "/api/chapters", {"world_id": foreign["id"], "title": "One"})
    own = _create(client, admin, "/api/worlds", {"name": "Admin world"})

    for world in (own, foreign):
        deleted = client.delete(f"/api/worlds/{world['id']}", headers=admin)
        assert deleted.status_code == 200
        assert deleted.json()["message"] == "World deleted successfully"
        gone = client.get(f"/api/worlds/{world['id']}", headers=admin)
        assert gone.status_code == 404
        assert gone.json()["error"] == "World not found"

    assert client.get("/api/worlds", headers=alice).json()["data"] == []
    assert client.get("/api/chapters", headers=alice).json()["data"] == []
    missing = client.delete(f"/api/worlds/{foreign['id']}", headers=admin)
    assert missing.status_code == 404


def _two_world_story(client: TestClient, headers: dict[str, str]) -> dict[str, dict[str, Any]]:
    first = _create(client, headers, "/api/worlds", {"name": "First"})
    second = _create(client, headers, "/api/worlds", {"name": "Second"})
    chapter = _create(client, headers, "/api/chapters", {"world_id": first["id"], "title": "One"})
    event = _create(
        client,
        headers,
        "/api/events",
        {"world_id": first["id"], "chapter_id": chapter["id"], "title": "Storm"},
    )
    scene = _create(
        client,
        headers,
        "/api/scenes",
        {"chapter_id": chapter["id"], "event_id": event["id"], "title": "Harbor"},
    )
    local = _create(client, headers, "/api/characters", {"world_id": first["id"], "name": "Mira"})
    stranger = _create(client, headers, "/api/characters", {"world_id": second["id"], "name": "Oren"})
    return {
        "first": first,
        "second": second,
        "chapter": chapter,
        "event": event,
        "scene": scene,
        "local": local,
        "stranger": stranger,
    }


def test_dialogue_character_must_share_the_scene_world(tmp_path: Path) -> None:
    client = _client(tmp_path)
    alice = _register(client, "alice@example.com")
    story = _two_world_story(client, alice)

    response = client.post(
        "/api/dialogues",
        json={"scene_id": story["scene"]["id"], "character_id": story["stranger"]["id"], "title": "Hi"},
        headers=alice,
    )
    assert response.status_code == 400
    assert response.json()["code"] == "PARENT_MISMATCH"

    dialogue = _create(
        client,
        alice,
        "/api/dialogues",
        {"scene_id": story["scene"]["id"], "character_id": story["local"]["id"], "title": "Hi"},
    )
    moved = client.put(
        f"/api/dialogues/{dialogue['id']}",
        json={"title": "Hello", "character_id": story["stranger"]["id"]},
        headers=alice,
    )
    assert moved.status_code == 400
    assert moved.json()["code"] == "PARENT_MISMATCH"
    stored = client.get(f"/api/dialogues/{dialogue['id']}", headers=alice).json()["data"]
    assert stored["character_id"] == story["local"]["id"]
    assert stored["title"] == "Hi"


def test_scene_rejects_event_without_chapter_link(tmp_path: Path) -> None:
    client = _client(tmp_path)
    alice = _register(client, "alice@example.com")
    story = _two_world_story(client, alice)
    loose = _create(client, alice, "/api/events", {"world_id": story["first"]["id"], "title": "Drift"})
    assert loose["chapter_id"] is None

    response = client.post(
        "/api/scenes",
        json={"chapter_id": story["chapter"]["id"], "event_id": loose["id"], "title": "Dock"},
        headers=alice,
    )
    assert response.status_code == 400
    assert response.json()["code"] == "PARENT_MISMATCH"

    scene = _create(client, alice, "/api/scenes", {"event_id": loose["id"], "title": "Dock"})
    assert scene["event_id"] == loose["id"]
