import pytest

from thankumail.core.config import settings


def test_health_ok(client):
    res = client.get("/health")
    assert res.status_code == 200
    assert res.json().get("status") == "ok"

    res = client.get("/api/health")
    assert res.status_code == 200
    assert res.json() == {"status": "ok"}


def test_health_db(client):
    res = client.get("/health/db")
    assert res.status_code == 200
    assert res.json()["status"] == "ok"


def test_response_headers(client):
    res = client.get("/health", headers={"X-Request-Id": "req-42"})
    assert res.headers["X-Request-Id"] == "req-42"
    assert res.headers["X-Content-Type-Options"] == "nosniff"
    assert res.headers["X-Frame-Options"] == "DENY"

    generated = client.get("/health").headers["X-Request-Id"]
    assert generated and generated != "req-42"


def test_metrics_counts_requests(client):
    client.get("/health")
    client.get("/api/gifts/does-not-exist")

    data = client.get("/metrics").json()
    assert data["requests_total"] == 2
    assert data["errors_total"] == 0
    assert data["by_path"]["/health"]["count"] == 1
    assert data["by_path"]["/api/gifts/{public_id}"]["count"] == 1
    assert data["avg_latency_ms"] >= 0


def test_admin_status_reports_presence_only(client, monkeypatch):
    monkeypatch.setattr(settings, "brevo_api_key", "xkeysib-very-secret")
    monkeypatch.setattr(settings, "captcha_secret", "captcha-very-secret")

    res = client.get("/api/admin/status")

    assert res.status_code == 200
    data = res.json()
    assert data["ok"] is True
    assert data["config"]["BREVO_API_KEY"] is True
    assert data["email"]["provider"] == "brevo"
    assert data["config"]["STRIPE_SECRET_KEY"] is False
    assert "very-secret" not in res.text


class TestEmailTest:
    def test_open_outside_production(self, client, notifier, monkeypatch):
        monkeypatch.setattr(settings, "environment", "local")

        res = client.get("/api/admin/email-test", params={"to": "friend@example.com"})

        assert res.status_code == 200
        assert res.json() == {"ok": True, "messageId": "fake-message-1", "error": None}
        assert notifier.sent[0]["to"] == "friend@example.com"
        assert notifier.sent[0]["claim_link"] == "https://gifts.example.com/claim/demo-email-test"

    def test_hidden_in_production_without_token(self, client, notifier, monkeypatch):
        monkeypatch.setattr(settings, "environment", "production")
        monkeypatch.setattr(settings, "debug_routes_token", "letmein")

        res = client.get("/api/admin/email-test", params={"to": "friend@example.com"})
        assert res.status_code == 404

        res = client.get(
            "/api/admin/email-test",
            params={"to": "friend@example.com", "token": "wrong"},
        )
        assert res.status_code == 404
        assert notifier.sent == []

    def test_production_with_token(self, client, monkeypatch):
        monkeypatch.setattr(settings, "environment", "production")
        monkeypatch.setattr(settings, "debug_routes_token", "letmein")

        res = client.get(
            "/api/admin/email-test",
            params={"to": "friend@example.com", "token": "letmein"},
        )
        assert res.status_code == 200
        assert res.json()["ok"] is True

    def test_production_without_configured_token(self, client, monkeypatch):
        monkeypatch.setattr(settings, "environment", "production")
        monkeypatch.setattr(settings, "debug_routes_token", "")

        res = client.get("/api/admin/email-test", params={"to": "friend@example.com", "token": ""})
        assert res.status_code == 404

    @pytest.mark.parametrize("to", ["", "nobody"])
    def test_requires_address(self, client, to):
        res = client.get("/api/admin/email-test", params={"to": to})
        assert res.status_code == 400
        assert "error" in res.json()
