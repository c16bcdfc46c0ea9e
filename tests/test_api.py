# tests/test_api.py

import pytest
from fastapi.testclient import TestClient

from conftest import NOW, expo_token, tickets_response
from goalpush.api.push import get_dispatcher, get_reconciler
from goalpush.core import config
from goalpush.core.db import get_db
from goalpush.main import app
from goalpush.services.dispatcher import Dispatcher
from goalpush.services.expo_gateway import ExpoGateway
from goalpush.services.token_registry import register_token, tokens_for_user

USER = {"X-User-Id": "u1"}


@pytest.fixture
def client(session_factory, dispatcher, reconciler):
    def _get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher
    app.dependency_overrides[get_reconciler] = lambda: reconciler
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_health(client):
    res = client.get("/health")
    assert res.status_code == 200
    assert res.json() == {"status": "ok"}


class TestRegistration:

    def test_register_and_unregister(self, client, session_factory):
        res = client.post("/v1/push/register", headers=USER, json={
            "token": expo_token(1), "platform": "android", "device_id": "pixel",
        })
        assert res.status_code == 200
        assert res.json() == {"ok": True}

        with session_factory() as s:
            [row] = tokens_for_user(s, "u1")
            assert (row.token, row.platform, row.device_id) == (expo_token(1), "android", "pixel")

        res = client.post("/v1/push/unregister", headers=USER, json={"token": expo_token(1)})
        assert res.json() == {"ok": True, "removed": 1}

    def test_unregister_without_token_clears_all(self, client, db):
        register_token(db, "u1", expo_token(1), "ios", now=NOW)
        register_token(db, "u1", expo_token(2), "ios", now=NOW)

        res = client.post("/v1/push/unregister", headers=USER, json={})

        assert res.json() == {"ok": True, "removed": 2}

    def test_bad_token_is_400(self, client):
        res = client.post("/v1/push/register", headers=USER, json={"token": "nope", "platform": "ios"})
        assert res.status_code == 400
        assert res.json()["detail"] == "Invalid token format"

    def test_unknown_platform_is_422(self, client):
        res = client.post("/v1/push/register", headers=USER, json={"token": expo_token(1), "platform": "web"})
        assert res.status_code == 422

    def test_user_header_is_required(self, client):
        res = client.post("/v1/push/register", json={"token": expo_token(1), "platform": "ios"})
        assert res.status_code == 422


class TestSend:

    def test_send_success(self, client, db, fake_expo):
        register_token(db, "u1", expo_token(1), "ios", now=NOW)
        fake_expo.responses.append(tickets_response([{"status": "ok", "id": "A"}]))

        res = client.post("/v1/push/send", headers=USER, json={"title": "T", "body": "B", "channelId": "goals"})

        assert res.status_code == 200
        assert res.json() == {"success": True, "sent": 1, "failed": 0}
        assert fake_expo.bodies()[0][0]["channelId"] == "goals"

    def test_send_without_devices(self, client):
        res = client.post("/v1/push/send", headers=USER, json={"title": "T", "body": "B"})

        assert res.status_code == 200
        assert res.json()["errors"] == ["No push tokens for user"]

    def test_oversized_title_is_400(self, client):
        res = client.post("/v1/push/send", headers=USER, json={"title": "x" * 101, "body": "B"})
        assert res.status_code == 400

    def test_rate_limited_is_429(self, client):
        for _ in range(10):
            assert client.post("/v1/push/send", headers=USER, json={"title": "T", "body": "B"}).status_code == 200

        res = client.post("/v1/push/send", headers=USER, json={"title": "T", "body": "B"})

        assert res.status_code == 429
        assert res.json()["detail"] == "Too many notifications. Please try again later."

    def test_missing_credential_is_503(self, client, session_factory):
        app.dependency_overrides[get_dispatcher] = lambda: Dispatcher(session_factory, ExpoGateway(None))

        res = client.post("/v1/push/send", headers=USER, json={"title": "T", "body": "B"})

        assert res.status_code == 503

    def test_test_notification(self, client, db, fake_expo):
        register_token(db, "u1", expo_token(1), "ios", now=NOW)
        fake_expo.responses.append(tickets_response([{"status": "ok", "id": "A"}]))

        res = client.post("/v1/push/test", headers=USER)

        assert res.status_code == 200
        assert res.json() == {"success": True}


class TestMaintenanceRoute:

    def test_requires_server_secret(self, client, monkeypatch):
        monkeypatch.setattr(config, "WEBHOOK_SECRET", None)
        res = client.post("/v1/push/maintenance/run", headers={"X-Webhook-Secret": "x"})
        assert res.status_code == 500

    def test_rejects_wrong_secret(self, client, monkeypatch):
        monkeypatch.setattr(config, "WEBHOOK_SECRET", "s3cret")
        assert client.post("/v1/push/maintenance/run").status_code == 401
        res = client.post("/v1/push/maintenance/run", headers={"X-Webhook-Secret": "wrong"})
        assert res.status_code == 401

    def test_runs_one_pass(self, client, monkeypatch):
        monkeypatch.setattr(config, "WEBHOOK_SECRET", "s3cret")

        res = client.post("/v1/push/maintenance/run", headers={"X-Webhook-Secret": "s3cret"})

        assert res.status_code == 200
        assert res.json() == {
            "receipts": {"checked": 0, "errors": 0},
            "receipts_deleted": 0,
            "tokens_deleted": 0,
        }
