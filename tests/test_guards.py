"""
tests/test_guards.py -- Coarse path guard and the fine admin dependency.

Covers:
  - is_admin_path() matches on segment boundaries only
  - no session on a protected path -> 401 before any handler runs
  - non-admin session on an admin path -> 403 forbidden
  - public paths need no session
  - a stale ADMIN role claim passes the coarse tier but not require_admin
"""

from __future__ import annotations

from api.guards import PUBLIC_PATHS, is_admin_path
from auth.roles import Role
from auth.tokens import create_access_token


def _auth(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def test_is_admin_path_segment_boundary():
    prefixes = ["/api/v1/admin"]
    assert is_admin_path("/api/v1/admin", prefixes)
    assert is_admin_path("/api/v1/admin/users", prefixes)
    assert not is_admin_path("/api/v1/administrator", prefixes)
    assert not is_admin_path("/api/v1/projects", prefixes)


def test_health_and_auth_entry_points_are_public():
    assert "/api/v1/health" in PUBLIC_PATHS
    assert "/api/v1/auth/login" in PUBLIC_PATHS
    assert "/api/v1/auth/me" not in PUBLIC_PATHS


class TestCoarseTier:
    def test_admin_path_without_session_is_401(self, api_env) -> None:
        resp = api_env.client.get("/api/v1/admin/overview")
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "unauthorized"

    def test_admin_path_with_member_session_is_403(self, api_env) -> None:
        resp = api_env.client.get("/api/v1/admin/overview", headers=_auth(api_env.member_token))
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "forbidden"

    def test_admin_path_with_guest_session_is_403(self, api_env) -> None:
        resp = api_env.client.delete(f"/api/v1/admin/users/{api_env.member_id}", headers=_auth(api_env.guest_token))
        assert resp.status_code == 403
        # Nothing was deleted.
        assert api_env.user_store.get_by_id(api_env.member_id) is not None

    def test_admin_path_with_admin_session_passes(self, api_env) -> None:
        resp = api_env.client.get("/api/v1/admin/overview", headers=_auth(api_env.admin_token))
        assert resp.status_code == 200

    def test_protected_path_without_session_is_401(self, api_env) -> None:
        for path in ("/api/v1/projects", "/api/v1/tickets", "/api/v1/auth/me"):
            assert api_env.client.get(path).status_code == 401, path

    def test_garbage_token_is_401(self, api_env) -> None:
        resp = api_env.client.get("/api/v1/projects", headers=_auth("not-a-jwt"))
        assert resp.status_code == 401

    def test_session_cookie_is_accepted(self, api_env) -> None:
        api_env.client.cookies.set("access_token", api_env.member_token)
        try:
            assert api_env.client.get("/api/v1/auth/me").status_code == 200
        finally:
            api_env.client.cookies.clear()

    def test_public_path_without_session(self, api_env) -> None:
        assert api_env.client.get("/api/v1/health").status_code == 200
        resp = api_env.client.post("/api/v1/auth/forgot-password", json={"email": "nobody@example.com"})
        assert resp.status_code == 200


class TestFineTier:
    def test_stale_admin_claim_is_refused_by_handler(self, api_env) -> None:
        """Token says ADMIN, store says MEMBER: the router dependency wins."""
        forged_role_token = create_access_token(api_env.member_id, "member@example.com", Role.ADMIN)
        resp = api_env.client.get("/api/v1/admin/overview", headers=_auth(forged_role_token))
        assert resp.status_code == 403

    def test_token_for_deleted_user_is_401(self, api_env) -> None:
        token = create_access_token("no-such-user", "ghost@example.com", Role.MEMBER)
        resp = api_env.client.get("/api/v1/projects", headers=_auth(token))
        assert resp.status_code == 401
