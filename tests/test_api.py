"""
End-to-end tests for the HTTP API.
"""

import pytest
from fastapi import status
from fastapi.testclient import TestClient

from signal_gate.api.app import create_app

ADMIN_EMAIL = "admin@example.com"
ADMIN_PASSWORD = "admin-password"

SIGNAL = {
    "pair": "BTC/USD",
    "direction": "BUY",
    "entry_price": 64250,
    "stop_loss": 63100,
    "take_profit": 66800,
}


@pytest.fixture
def app(settings, container):
    settings.bootstrap.admin_email = ADMIN_EMAIL
    settings.bootstrap.admin_username = "admin"
    settings.bootstrap.admin_password = ADMIN_PASSWORD
    return create_app(settings, container)


@pytest.fixture
def client(app):
    with TestClient(app) as client:
        yield client


def login(client, email, password):
    response = client.post("/api/v1/auth/login", json={"email": email, "password": password})
    assert response.status_code == 200, response.text
    return {"Authorization": f"Bearer {response.json()['token']}"}


@pytest.fixture
def admin_headers(client):
    return login(client, ADMIN_EMAIL, ADMIN_PASSWORD)


def register(client, email_sender, username, email, password="password123"):
    response = client.post(
        "/api/v1/auth/register",
        json={"username": username, "email": email, "password": password},
    )
    assert response.status_code == 200, response.text
    code = email_sender.last_code_for(email)
    response = client.post(
        "/api/v1/auth/verify-otp",
        json={"email": email, "otp": code, "username": username, "password": password},
    )
    assert response.status_code == 201, response.text
    return response.json()["user"]


class TestEndToEnd:
    """Register, get entitled, read approved signals."""

    def test_subscription_gated_feed(self, client, container, email_sender, admin_headers):
        user = register(client, email_sender, "newtrader", "newtrader@example.com")
        assert user["role"] == "user"
        assert user["subscription_status"] == "expired"
        headers = login(client, "newtrader@example.com", "password123")

        denied = client.get("/api/v1/signals", headers=headers)
        assert denied.status_code == status.HTTP_403_FORBIDDEN
        error = denied.json()["error"]
        assert error["reason"] == "subscription_required"
        assert error["details"]["status"] == "expired"

        granted = client.post(
            f"/api/v1/admin/users/{user['id']}/subscription/grant",
            json={"duration_days": 30},
            headers=admin_headers,
        )
        assert granted.status_code == 200
        assert granted.json()["subscription_status"] == "active"

        draft = client.post("/api/v1/signals", json=SIGNAL, headers=admin_headers).json()
        live = client.post("/api/v1/signals", json={**SIGNAL, "pair": "ETH/USD"}, headers=admin_headers).json()
        approval = client.patch(
            f"/api/v1/signals/{live['id']}/approval", json={"approved": True}, headers=admin_headers
        )
        assert approval.status_code == 200
        assert approval.json()["is_approved"] is True
        client.portal.call(container.notifier.drain)

        feed = client.get("/api/v1/signals", headers=headers)
        assert feed.status_code == 200
        assert [s["id"] for s in feed.json()] == [live["id"]]

        assert client.get(f"/api/v1/signals/{live['id']}", headers=headers).status_code == 200
        assert client.get(f"/api/v1/signals/{draft['id']}", headers=headers).status_code == 404
        assert "newtrader@example.com" in email_sender.recipients()

    def test_profile(self, client, email_sender):
        register(client, email_sender, "profiled", "profiled@example.com")
        headers = login(client, "profiled@example.com", "password123")

        response = client.get("/api/v1/users/me", headers=headers)

        assert response.status_code == 200
        body = response.json()
        assert body["username"] == "profiled"
        assert body["subscription_status"] == "expired"
        assert "credential_hash" not in body


class TestAuthentication:
    """Test token handling on protected routes."""

    def test_missing_token(self, client):
        response = client.get("/api/v1/signals")
        assert response.status_code == 401
        assert response.json()["error"]["code"] == "AUTH_ERROR"
        assert response.headers["WWW-Authenticate"] == "Bearer"

    def test_invalid_token(self, client):
        response = client.get("/api/v1/users/me", headers={"Authorization": "Bearer garbage"})
        assert response.status_code == 401
        assert response.json()["error"]["code"] == "INVALID_TOKEN"

    def test_expired_token(self, client, clock):
        headers = login(client, ADMIN_EMAIL, ADMIN_PASSWORD)
        clock.advance(hours=25)

        response = client.get("/api/v1/signals", headers=headers)
        assert response.status_code == 401
        assert response.json()["error"]["code"] == "TOKEN_EXPIRED"

    def test_bad_login(self, client):
        response = client.post("/api/v1/auth/login", json={"email": ADMIN_EMAIL, "password": "wrong"})
        assert response.status_code == 401

    def test_login_response_shape(self, client):
        response = client.post("/api/v1/auth/login", json={"email": ADMIN_EMAIL, "password": ADMIN_PASSWORD})
        body = response.json()
        assert body["token_type"] == "bearer"
        assert body["expires_in"] == 24 * 3600
        assert body["user"]["role"] == "admin"


class TestAdminGate:
    """Test that every mutation requires the admin role."""

    @pytest.fixture
    def user_headers(self, client, email_sender):
        register(client, email_sender, "plainuser", "plain@example.com")
        return login(client, "plain@example.com", "password123")

    @pytest.mark.parametrize("method,path,body", [
        ("post", "/api/v1/signals", SIGNAL),
        ("put", "/api/v1/signals/1", SIGNAL),
        ("delete", "/api/v1/signals/1", None),
        ("patch", "/api/v1/signals/1/approval", {"approved": True}),
        ("get", "/api/v1/admin/users", None),
        ("post", "/api/v1/admin/users/1/subscription/grant", {"duration_days": 30}),
        ("put", "/api/v1/admin/users/1/role", {"role": "admin"}),
    ])
    def test_user_denied(self, client, user_headers, method, path, body):
        kwargs = {"headers": user_headers}
        if body is not None:
            kwargs["json"] = body
        response = getattr(client, method)(path, **kwargs)

        assert response.status_code == 403
        error = response.json()["error"]
        assert error["reason"] == "role_required"
        assert error["message"] == "Access Denied: admin role required."

    def test_admin_sees_drafts(self, client, admin_headers):
        client.post("/api/v1/signals", json=SIGNAL, headers=admin_headers)
        response = client.get("/api/v1/signals", headers=admin_headers)
        assert len(response.json()) == 1
        assert response.json()[0]["is_approved"] is False


class TestSignalEndpoints:
    """Test signal CRUD over HTTP."""

    def test_validation_error_shape(self, client, admin_headers):
        response = client.post("/api/v1/signals", json={**SIGNAL, "pair": "BTCUSDTPERP"}, headers=admin_headers)

        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "VALIDATION_ERROR"
        assert error["details"]["errors"][0]["field"] == "pair"
        assert error["request_id"] == response.headers["X-Request-ID"]

    def test_legacy_field_names(self, client, admin_headers):
        response = client.post(
            "/api/v1/signals",
            json={"pair": "GBP/USD", "type": "sell", "entry": 1.27, "sl": 1.28, "tp": 1.25},
            headers=admin_headers,
        )
        assert response.status_code == 201
        assert response.json()["direction"] == "SELL"

    def test_update_and_delete(self, client, admin_headers):
        created = client.post("/api/v1/signals", json=SIGNAL, headers=admin_headers).json()

        updated = client.put(
            f"/api/v1/signals/{created['id']}", json={**SIGNAL, "notes": "Moved target."}, headers=admin_headers
        )
        assert updated.status_code == 200
        assert updated.json()["notes"] == "Moved target."

        assert client.delete(f"/api/v1/signals/{created['id']}", headers=admin_headers).status_code == 204
        assert client.delete(f"/api/v1/signals/{created['id']}", headers=admin_headers).status_code == 204
        assert client.put(f"/api/v1/signals/{created['id']}", json=SIGNAL, headers=admin_headers).status_code == 404

    def test_approval_body_must_be_boolean(self, client, admin_headers):
        created = client.post("/api/v1/signals", json=SIGNAL, headers=admin_headers).json()
        response = client.patch(
            f"/api/v1/signals/{created['id']}/approval", json={"approved": "yes"}, headers=admin_headers
        )
        assert response.status_code == 400


class TestAdminEndpoints:
    """Test user and subscription administration."""

    def test_legacy_subscription_shape(self, client, email_sender, admin_headers):
        user = register(client, email_sender, "legacy", "legacy@example.com")

        response = client.put(
            f"/api/v1/admin/users/{user['id']}/subscription",
            json={"status": "active", "expiryDays": 7},
            headers=admin_headers,
        )
        assert response.json()["subscription_status"] == "active"

        response = client.put(
            f"/api/v1/admin/users/{user['id']}/subscription",
            json={"status": "disabled"},
            headers=admin_headers,
        )
        assert response.json()["subscription_status"] == "expired"

    def test_revoke_and_list(self, client, email_sender, admin_headers):
        user = register(client, email_sender, "listed", "listed@example.com")
        client.post(f"/api/v1/admin/users/{user['id']}/subscription/grant", json={"duration_days": 5}, headers=admin_headers)
        client.post(f"/api/v1/admin/users/{user['id']}/subscription/revoke", headers=admin_headers)

        listing = client.get("/api/v1/admin/users", headers=admin_headers).json()

        assert listing["count"] == 2
        listed = next(u for u in listing["users"] if u["username"] == "listed")
        assert listed["subscription_status"] == "expired"

    def test_role_change(self, client, email_sender, admin_headers):
        user = register(client, email_sender, "rising", "rising@example.com")

        response = client.put(f"/api/v1/admin/users/{user['id']}/role", json={"newRole": "admin"}, headers=admin_headers)
        assert response.json()["role"] == "admin"

        headers = login(client, "rising@example.com", "password123")
        assert client.get("/api/v1/admin/users", headers=headers).status_code == 200

    def test_unknown_user(self, client, admin_headers):
        response = client.post("/api/v1/admin/users/999/subscription/grant", json={"duration_days": 30}, headers=admin_headers)
        assert response.status_code == 404

    def test_metrics(self, client, admin_headers):
        response = client.get("/api/v1/admin/metrics", headers=admin_headers)
        assert response.status_code == 200
        assert "counters" in response.json()


class TestAuthFlows:
    """Test OTP error surfaces and password reset over HTTP."""

    def test_wrong_otp(self, client, email_sender):
        client.post("/api/v1/auth/register", json={"username": "otpuser", "email": "otp@example.com", "password": "password123"})

        response = client.post(
            "/api/v1/auth/verify-otp",
            json={"email": "otp@example.com", "otp": "000000", "username": "otpuser", "password": "password123"},
        )
        if email_sender.last_code_for("otp@example.com") == "000000":
            pytest.skip("generated code happened to match")
        assert response.status_code == 400
        assert response.json()["error"]["reason"] == "invalid_code"
        assert response.json()["error"]["message"] == "Invalid OTP. 2 attempts remaining."

    def test_duplicate_registration(self, client):
        response = client.post(
            "/api/v1/auth/register",
            json={"username": "admin", "email": "someone@example.com", "password": "password123"},
        )
        assert response.status_code == 409

    def test_invalid_email(self, client):
        response = client.post(
            "/api/v1/auth/register", json={"username": "bademail", "email": "not-an-email", "password": "password123"}
        )
        assert response.status_code == 400

    def test_email_outage(self, client, email_sender):
        email_sender.fail_all = True
        response = client.post(
            "/api/v1/auth/register", json={"username": "unlucky", "email": "unlucky@example.com", "password": "password123"}
        )
        assert response.status_code == 503
        assert response.json()["error"]["code"] == "SERVICE_UNAVAILABLE"

    def test_password_reset(self, client, email_sender):
        register(client, email_sender, "resetter", "resetter@example.com")

        assert client.post("/api/v1/auth/forgot-password", json={"email": "resetter@example.com"}).status_code == 200
        code = email_sender.last_code_for("resetter@example.com")
        response = client.post(
            "/api/v1/auth/reset-password",
            json={"email": "resetter@example.com", "otp": code, "newPassword": "another-pass"},
        )
        assert response.status_code == 200

        login(client, "resetter@example.com", "another-pass")

    def test_resend(self, client, email_sender):
        response = client.post("/api/v1/auth/resend-otp", json={"email": "again@example.com"})
        assert response.status_code == 200
        assert email_sender.last_code_for("again@example.com")


class TestChatEndpoint:
    """Test the coach endpoint."""

    def test_requires_token_only(self, client, email_sender, chat_client):
        register(client, email_sender, "curious", "curious@example.com")
        headers = login(client, "curious@example.com", "password123")

        response = client.post("/api/v1/chat/ask", json={"prompt": "What is RSI?"}, headers=headers)

        assert response.status_code == 200
        assert response.json()["answer"].endswith("This is not financial advice. Trade at your own risk.")

    def test_unauthenticated(self, client):
        assert client.post("/api/v1/chat/ask", json={"prompt": "hi"}).status_code == 401


class TestErrorHandling:
    """Test the uniform error envelope."""

    def test_unknown_route(self, client):
        response = client.get("/api/v1/nowhere")
        assert response.status_code == 404
        assert response.json()["success"] is False

    def test_unhandled_error_is_sanitized(self, app, container):
        async def explode(*args, **kwargs):
            raise RuntimeError("secret connection string")

        with TestClient(app, raise_server_exceptions=False) as client:
            headers = login(client, ADMIN_EMAIL, ADMIN_PASSWORD)
            container.signals.list_for = explode
            response = client.get("/api/v1/signals", headers=headers)

        assert response.status_code == 500
        assert "secret" not in response.text
        assert response.json()["error"]["code"] == "INTERNAL_SERVER_ERROR"

    def test_health_and_root(self, client):
        assert client.get("/health").json()["status"] == "healthy"
        assert client.get("/").json()["name"] == "Signal Gate API"
        assert "X-Process-Time" in client.get("/health").headers
