"""
HTTP-level tests: authentication, isolation and error rendering
"""

import asyncio
import base64
import json
from datetime import timedelta

import jwt
import pytest
from fastapi import HTTPException
from fastapi.security import HTTPAuthorizationCredentials
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from app.api import ws
from app.core.config import settings
from app.core.db import get_db
from app.core.errors import AuthorizationError
from app.utils.security import issue_account_token, verify_admin_token
from main import app

ADMIN = {"Authorization": f"Bearer {settings.ADMIN_TOKEN}"}


@pytest.fixture
def client(session_factory):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


def provision(client, title="Wedding", categories=None):
    body = {"title": title}
    if categories is not None:
        body["guest_categories"] = categories
    response = client.post("/admin/accounts", json=body, headers=ADMIN)
    assert response.status_code == 201
    data = response.json()["data"]
    return data["account"], {"Authorization": f"Bearer {data['access_token']}"}


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_template_download(client):
    response = client.get("/template/guest_import_template.xlsx")
    assert response.status_code == 200
    assert response.content[:2] == b"PK"


def test_admin_endpoints_need_admin_token(client):
    response = client.post("/admin/accounts", json={"title": "W"}, headers={"Authorization": "Bearer nope"})
    assert response.status_code == 401


def test_guest_endpoints_need_token(client):
    assert client.get("/guests").status_code == 401


def test_tampered_token_is_rejected(client):
    _, headers = provision(client, "A")
    account_b, _ = provision(client, "B")
    header, _, signature = headers["Authorization"].split(" ", 1)[1].split(".")
    # swap in another account id but keep the original signature
    payload = json.dumps({"sub": "x", "account_id": account_b["id"], "role": "operator", "exp": 9999999999})
    forged_payload = base64.urlsafe_b64encode(payload.encode()).rstrip(b"=").decode()
    tampered = f"{header}.{forged_payload}.{signature}"

    response = client.get("/guests", headers={"Authorization": f"Bearer {tampered}"})

    assert response.status_code == 401
    assert response.json()["success"] is False


def test_token_signed_with_other_key_is_rejected(client):
    account, _ = provision(client)
    forged = jwt.encode({"sub": "x", "account_id": account["id"], "role": "operator", "exp": 9999999999}, "wrong-key")

    response = client.get("/guests", headers={"Authorization": f"Bearer {forged}"})

    assert response.status_code == 401


def test_expired_token_is_rejected(client):
    account, _ = provision(client)
    expired = issue_account_token(account["id"], expires_delta=timedelta(seconds=-5))

    assert client.get("/guests", headers={"Authorization": f"Bearer {expired}"}).status_code == 401


def test_token_for_deleted_account_is_rejected(client):
    account, headers = provision(client)
    assert client.delete(f"/admin/accounts/{account['id']}", headers=ADMIN).status_code == 200

    assert client.get("/guests", headers=headers).status_code == 401


def test_guest_flow_and_isolation(client):
    _, headers_a = provision(client, "A")
    _, headers_b = provision(client, "B")

    created = client.post("/guests", json={"name": "Alice", "phone": "081234567890", "category": "VIP"}, headers=headers_a)
    assert created.status_code == 201
    guest = created.json()["data"]
    assert guest["phone"] == "6281234567890"

    # another account sees nothing, not even by raw id
    assert client.get("/guests", headers=headers_b).json()["data"] == []
    foreign = client.get(f"/guests/{guest['id']}", headers=headers_b)
    missing = client.get(f"/guests/{'0' * 32}", headers=headers_b)
    assert foreign.status_code == 404
    assert foreign.json() == missing.json()
    assert client.post(f"/guests/{guest['id']}/checkin", json={}, headers=headers_b).status_code == 404

    checked = client.post(f"/guests/{guest['id']}/checkin", json={"guest_count": 2}, headers=headers_a)
    assert checked.status_code == 200
    assert checked.json()["data"]["guest_count"] == 2

    again = client.post(f"/guests/{guest['id']}/checkin", json={"guest_count": 3}, headers=headers_a)
    assert again.status_code == 409
    assert again.json()["error_code"] == "checkin_confirmation_required"
    assert again.json()["details"]["guest"]["guest_count"] == 2

    confirmed = client.post(
        f"/guests/{guest['id']}/checkin", json={"guest_count": 3, "confirm": True}, headers=headers_a
    )
    assert confirmed.json()["data"]["guest_count"] == 3

    stats = client.get("/guests/stats", headers=headers_a).json()["data"]
    assert stats["checked_in_guests"] == 1
    assert stats["total_attendees"] == 3


def test_patch_cannot_move_guest_to_other_account(client):
    account_a, headers_a = provision(client, "A")
    account_b, _ = provision(client, "B")
    guest = client.post("/guests", json={"name": "Alice", "category": "Regular"}, headers=headers_a).json()["data"]

    response = client.patch(f"/guests/{guest['id']}", json={"account_id": account_b["id"]}, headers=headers_a)

    assert response.status_code == 422
    assert client.get(f"/guests/{guest['id']}", headers=headers_a).json()["data"]["account_id"] == account_a["id"]


def test_gift_and_souvenir_endpoints(client):
    _, headers = provision(client)
    guest = client.post("/guests", json={"name": "Alice", "category": "Regular"}, headers=headers).json()["data"]

    gift = client.post(f"/guests/{guest['id']}/gifts", json={"kado_count": 1, "angpao_count": 1}, headers=headers)
    souvenir = client.post(f"/guests/{guest['id']}/souvenirs", json={"count": 2}, headers=headers)
    assert gift.status_code == 200
    assert souvenir.json()["data"]["kado_count"] == 1
    assert souvenir.json()["data"]["souvenir_count"] == 2

    cleared = client.delete(f"/guests/{guest['id']}/gifts", headers=headers).json()["data"]
    assert cleared["kado_count"] == 0
    assert cleared["souvenir_count"] == 2


def test_walk_in_flow(client):
    _, headers = provision(client)
    client.post("/guests", json={"name": "Siti", "phone": "6281234567890", "category": "Regular"}, headers=headers)

    matched = client.post("/walk-ins", json={
        "name": "siti", "phone": "081234567890", "action": {"kind": "gift", "kado_count": 1},
    }, headers=headers).json()["data"]
    assert matched["status"] == "updated_existing"

    staged = client.post("/walk-ins", json={
        "name": "Joko", "action": {"kind": "check_in", "guest_count": 2},
    }, headers=headers).json()["data"]
    assert staged["status"] == "needs_confirmation"

    created = client.post("/walk-ins/confirm", json=staged["candidate"], headers=headers)
    assert created.status_code == 201
    assert created.json()["data"]["guest"]["is_invited"] is False

    assert len(client.get("/guests", headers=headers).json()["data"]) == 2


def test_doorprize_flow(client):
    _, headers = provision(client)
    assert client.post("/doorprize/draw", json={}, headers=headers).status_code == 409

    guest = client.post("/guests", json={"name": "Alice", "category": "Regular"}, headers=headers).json()["data"]
    client.post(f"/guests/{guest['id']}/checkin", json={}, headers=headers)
    prize = client.post("/doorprize/prizes", json={"name": "Rice cooker"}, headers=headers).json()["data"]

    winner = client.post("/doorprize/draw", json={"prize_id": prize["id"]}, headers=headers).json()["data"]
    assert winner["id"] == guest["id"]

    recorded = client.put(f"/doorprize/prizes/{prize['id']}/winner", json={"guest_id": guest["id"]}, headers=headers)
    assert recorded.json()["data"]["status"] == "completed"

    again = client.put(f"/doorprize/prizes/{prize['id']}/winner", json={"guest_id": guest["id"]}, headers=headers)
    assert again.status_code == 409
    assert again.json()["error_code"] == "prize_completed"


def test_account_category_edit(client):
    _, headers = provision(client, categories=["Family", "Friends"])
    client.post("/guests", json={"name": "Alice", "category": "Family"}, headers=headers)

    rejected = client.put("/account", json={"guest_categories": ["Friends"]}, headers=headers)
    assert rejected.status_code == 422

    accepted = client.put("/account", json={"guest_categories": ["Family", "Colleagues"]}, headers=headers)
    assert accepted.json()["data"]["guest_categories"] == ["Family", "Colleagues"]


def test_delete_account_cascade(client):
    account_a, headers_a = provision(client, "A")
    _, headers_b = provision(client, "B")
    client.post("/guests", json={"name": "Alice", "category": "Regular"}, headers=headers_a)
    client.post("/guests", json={"name": "Bob", "category": "Regular"}, headers=headers_b)

    response = client.delete(f"/admin/accounts/{account_a['id']}", headers=ADMIN)

    assert response.json()["data"]["deleted_guests"] == 1
    assert [g["name"] for g in client.get("/guests", headers=headers_b).json()["data"]] == ["Bob"]


def test_admin_token_with_non_ascii_characters_is_rejected(client):
    response = client.post(
        "/admin/accounts",
        json={"title": "W"},
        headers={"Authorization": "Bearer sécret".encode("latin-1")},
    )
    assert response.status_code == 401


def test_verify_admin_token_compares_bytes():
    with pytest.raises(HTTPException) as exc:
        verify_admin_token(HTTPAuthorizationCredentials(scheme="Bearer", credentials="café"))
    assert exc.value.status_code == 401


def test_bulk_delete_only_clears_callers_guests(client):
    _, headers_a = provision(client, "A")
    _, headers_b = provision(client, "B")
    client.post("/guests", json={"name": "Alice", "category": "Regular"}, headers=headers_a)
    client.post("/guests", json={"name": "Budi", "category": "Regular"}, headers=headers_a)
    client.post("/guests", json={"name": "Bob", "category": "Regular"}, headers=headers_b)

    response = client.delete("/guests/bulk/all", headers=headers_a)

    assert response.status_code == 200
    assert response.json()["data"]["deleted_guests"] == 2
    assert client.get("/guests", headers=headers_a).json()["data"] == []
    assert [g["name"] for g in client.get("/guests", headers=headers_b).json()["data"]] == ["Bob"]


def test_recent_check_ins_endpoint(client):
    _, headers = provision(client)
    alice = client.post("/guests", json={"name": "Alice", "category": "Regular"}, headers=headers).json()["data"]
    client.post("/guests", json={"name": "Bob", "category": "Regular"}, headers=headers)
    client.post(f"/guests/{alice['id']}/checkin", json={}, headers=headers)

    response = client.get("/guests/recent-checkins?timeframe=5", headers=headers)

    assert response.status_code == 200
    assert [g["name"] for g in response.json()["data"]] == ["Alice"]
    assert client.get("/guests/recent-checkins?timeframe=-1", headers=headers).status_code == 422


def test_websocket_authenticates_off_the_event_loop(client, monkeypatch):
    seen = []

    def fake_authenticate(token):
        try:
            asyncio.get_running_loop()
            seen.append("event loop")
        except RuntimeError:
            seen.append("worker thread")
        raise AuthorizationError()

    monkeypatch.setattr(ws, "_authenticate", fake_authenticate)

    with pytest.raises(WebSocketDisconnect):
        with client.websocket_connect("/ws/guests?token=nope"):
            pass

    assert seen == ["worker thread"]
