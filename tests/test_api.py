"""HTTP tests for the passkey and verification-code endpoints."""

import pytest
from fastapi.testclient import TestClient
from webauthn.helpers import bytes_to_base64url

from passkey_server.main import create_app
from passkey_server.wiring import build_services

from fakes import FailingNotifier, credential_response, sent_code


@pytest.fixture
def client(app):
    return TestClient(app, headers={"User-Agent": "pytest-agent"})


def _register(client, email="alice@example.com", raw_id=b"cred-1", sign_count=1):
    start = client.post("/register/start", json={"email": email})
    assert start.status_code == 200
    finish = client.post(
        "/register/finish",
        json={"token": start.json()["token"], "credential": credential_response(raw_id, sign_count)},
    )
    assert finish.status_code == 200
    return finish


class TestRegistrationEndpoints:
    def test_start_returns_token_in_body_and_header(self, client):
        response = client.post("/register/start", json={"email": "alice@example.com", "name": "alice"})

        assert response.status_code == 200
        body = response.json()
        assert body["token"]
        assert response.headers["X-Ceremony-Token"] == body["token"]
        assert body["options"]["kind"] == "registration"
        assert "expires_at" in body

    def test_finish_accepts_header_token_and_sets_session(self, client, services):
        start = client.post("/register/start", json={"email": "alice@example.com"})

        response = client.post(
            "/register/finish",
            json={"credential": credential_response(b"cred-1")},
            headers={"X-Ceremony-Token": start.headers["X-Ceremony-Token"]},
        )

        assert response.status_code == 200
        token = response.json()["session_token"]
        assert response.headers["sid"] == token
        assert response.cookies[services.settings.cookie_name] == token

    def test_replayed_finish_is_gone(self, client):
        start = client.post("/register/start", json={"email": "alice@example.com"})
        body = {"token": start.json()["token"], "credential": credential_response(b"cred-1")}
        client.post("/register/finish", json=body)

        response = client.post("/register/finish", json=body)

        assert response.status_code == 410
        assert response.json()["error"] == "expired"

    def test_rejected_attestation(self, client):
        start = client.post("/register/start", json={"email": "alice@example.com"})

        response = client.post(
            "/register/finish",
            json={"token": start.json()["token"], "credential": credential_response(b"x", fail=True)},
        )

        assert response.status_code == 400
        assert response.json()["error"] == "verification_failed"

    def test_malformed_body_is_invalid_request(self, client):
        response = client.post("/register/start", json={"name": "no email"})

        assert response.status_code == 400
        assert response.json()["error"] == "invalid_request"

    def test_label_comes_from_user_agent(self, client):
        _register(client)

        response = client.get("/credentials", params={"email": "alice@example.com"})

        assert response.status_code == 200
        assert response.json()["labels"] == ["pytest-agent"]


class TestLoginEndpoints:
    def test_login_round_trip(self, client):
        _register(client, sign_count=1)
        start = client.post("/login/start", json={"email": "alice@example.com"})
        assert start.status_code == 200

        response = client.post(
            "/login/finish",
            json={"token": start.json()["token"], "credential": credential_response(b"cred-1", 2)},
        )

        assert response.status_code == 200
        assert response.json()["clone_warning"] is False

    def test_clone_warning_is_reported(self, client):
        _register(client, sign_count=5)
        start = client.post("/login/start", json={"email": "alice@example.com"})

        response = client.post(
            "/login/finish",
            json={"token": start.json()["token"], "credential": credential_response(b"cred-1", 1)},
        )

        assert response.status_code == 200
        assert response.json()["clone_warning"] is True

    def test_unknown_user_is_not_found(self, client):
        response = client.post("/login/start", json={"email": "nobody@example.com"})

        assert response.status_code == 404
        assert response.json()["error"] == "not_found"

    def test_login_label_comes_from_user_agent(self, app):
        _register(TestClient(app, headers={"User-Agent": "old-browser"}))
        client = TestClient(app, headers={"User-Agent": "new-browser"})
        start = client.post("/login/start", json={"email": "alice@example.com"})
        client.post(
            "/login/finish",
            json={"token": start.json()["token"], "credential": credential_response(b"cred-1", 2)},
        )

        response = client.get("/credentials", params={"email": "alice@example.com"})

        assert response.json()["labels"] == ["new-browser"]


class TestSessionEndpoints:
    def test_me_with_cookie(self, client):
        _register(client)

        response = client.get("/me")

        assert response.status_code == 200
        assert response.json()["email"] == "alice@example.com"
        assert response.json()["credential_count"] == 1

    def test_me_with_bearer_and_sid_header(self, app):
        registering = TestClient(app)
        token = _register(registering).json()["session_token"]

        fresh = TestClient(app)
        assert fresh.get("/me", headers={"Authorization": f"Bearer {token}"}).status_code == 200
        assert fresh.get("/me", headers={"sid": token}).status_code == 200

    def test_me_without_session(self, client):
        response = client.get("/me")

        assert response.status_code == 401
        assert response.json()["error"] == "unauthorized"

    def test_logout(self, client):
        token = _register(client).json()["session_token"]

        assert client.post("/logout").status_code == 200
        assert client.get("/me", headers={"sid": token}).status_code == 401

    def test_delete_credential(self, client):
        _register(client)
        credential_id = bytes_to_base64url(b"cred-1")

        assert client.delete(f"/credentials/{credential_id}").status_code == 200
        response = client.delete(f"/credentials/{credential_id}")
        assert response.status_code == 404
        assert client.get("/me").json()["credential_count"] == 0


class TestCodeEndpoints:
    def test_signup_then_login_with_code(self, client, notifier):
        response = client.post("/signup/start", json={"email": "new@example.com", "name": "newbie"})
        assert response.status_code == 200

        code = sent_code(notifier.sent[-1][2])
        response = client.post("/signup/finish", json={"email": "new@example.com", "code": code})
        assert response.status_code == 200
        assert response.json()["success"] is True

        client.post("/login-with-code/start", json={"email": "new@example.com"})
        code = sent_code(notifier.sent[-1][2])
        response = client.post("/login-with-code/finish", json={"email": "new@example.com", "code": code})

        assert response.status_code == 200
        assert response.headers["sid"] == response.json()["session_token"]
        assert client.get("/me").json()["email"] == "new@example.com"

    def test_duplicate_signup_conflicts(self, client, notifier):
        client.post("/signup/start", json={"email": "new@example.com"})
        code = sent_code(notifier.sent[-1][2])
        client.post("/signup/finish", json={"email": "new@example.com", "code": code})

        response = client.post("/signup/start", json={"email": "new@example.com"})

        assert response.status_code == 409

    def test_bad_code(self, client):
        response = client.post("/signup/finish", json={"email": "new@example.com", "code": "nope"})

        assert response.status_code == 400
        assert response.json()["error"] == "invalid_request"


class TestInternalErrors:
    def test_internal_message_is_masked(self, settings, webauthn):
        services = build_services(settings, webauthn=webauthn, notifier=FailingNotifier())
        try:
            client = TestClient(create_app(services=services))
            response = client.post("/signup/start", json={"email": "new@example.com"})
        finally:
            services.close()

        assert response.status_code == 500
        assert response.json() == {"error": "internal", "message": "Internal server error"}


class TestLifespan:
    def test_app_builds_and_releases_its_services(self, settings):
        app = create_app(settings)

        with TestClient(app) as client:
            assert app.state.services is not None
            assert client.post("/signup/start", json={"email": "new@example.com"}).status_code == 200

        assert app.state.services is None
