from __future__ import annotations

import pytest
from flask_jwt_extended import create_access_token

from hubspace.domains.hubs.models import HUB_TYPE_PRIVATE

pytestmark = pytest.mark.integration


def _auth(identity: str = "u1") -> dict:
    return {"Authorization": f"Bearer {create_access_token(identity=identity)}"}


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.get_json() == {"ok": True}


def test_join_requires_token(client, make_hub):
    make_hub("h1")
    resp = client.post("/api/hubs/h1/members")
    assert resp.status_code == 401


def test_join_then_repeat_join(client, make_hub):
    make_hub("h1")

    resp = client.post("/api/hubs/h1/members", headers=_auth())
    assert resp.status_code == 201
    body = resp.get_json()
    assert body["ok"] is True
    assert body["membership"]["hub_id"] == "h1"
    assert body["membership"]["user_id"] == "u1"

    resp = client.post("/api/hubs/h1/members", headers=_auth())
    assert resp.status_code == 409
    assert resp.get_json() == {"ok": False, "error": "already_a_member", "message": "already a member"}


def test_join_unknown_hub_returns_404(client):
    resp = client.post("/api/hubs/nope/members", headers=_auth())
    assert resp.status_code == 404
    assert resp.get_json()["error"] == "hub_not_found"


def test_join_private_hub_returns_409(client, make_hub):
    make_hub("h1", hub_type=HUB_TYPE_PRIVATE)
    resp = client.post("/api/hubs/h1/members", headers=_auth())
    assert resp.status_code == 409
    assert resp.get_json()["message"] == "cannot join private hub without invitation"


def test_leave_roundtrip(client, make_hub):
    make_hub("h1")

    resp = client.delete("/api/hubs/h1/members/me", headers=_auth())
    assert resp.status_code == 404
    assert resp.get_json()["message"] == "not a member"

    client.post("/api/hubs/h1/members", headers=_auth())
    resp = client.delete("/api/hubs/h1/members/me", headers=_auth())
    assert resp.status_code == 200
    assert resp.get_json() == {"ok": True}
