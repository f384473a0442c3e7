"""
HTTP surface tests against an in-memory identity provider
"""
import pytest
from fastapi.testclient import TestClient

from cognito_session.auth import AuthSessionManager
from cognito_session.main import create_app
from cognito_session.utils.config import ProviderConfig
from conftest import RESET_CODE, FakeIdentityProvider, device
from cognito_session.models.auth import DevicePage


def client_for(manager):
    return TestClient(create_app(manager))


@pytest.fixture
def client(manager):
    with client_for(manager) as client:
        yield client


@pytest.fixture
def signed_in_client(client):
    response = client.post("/auth/signin", json={"username": "u@example.com", "password": "correct-horse"})
    assert response.status_code == 200
    return client


def test_health_check(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


class TestSignIn:
    def test_status_before_sign_in(self, client):
        body = client.get("/auth/status").json()

        assert body["is_authenticated"] is False
        assert body["username"] is None

    def test_sign_in(self, signed_in_client):
        body = signed_in_client.get("/auth/status").json()

        assert body["is_authenticated"] is True
        assert body["username"] == "u@example.com"
        assert body["device_id"] == "ap-northeast-1_device-1"
        assert body["last_error"] is None

    def test_wrong_password(self, client):
        response = client.post("/auth/signin", json={"username": "u@example.com", "password": "wrong"})

        assert response.status_code == 400
        error = response.json()["error"]
        assert error["kind"] == "ProviderRejected"
        assert error["provider_kind"] == "NotAuthorizedException"
        assert error["message"] == "NotAuthorizedException: Incorrect username or password."
        assert client.get("/auth/status").json()["last_error"]["provider_kind"] == "NotAuthorizedException"

    def test_unconfirmed_user(self, client, fake_provider):
        fake_provider.add_user("new@example.com", "Passw0rd!", confirmed=False)

        response = client.post("/auth/signin", json={"username": "new@example.com", "password": "Passw0rd!"})

        assert response.status_code == 403
        assert response.json()["error"]["kind"] == "NotConfirmed"

    def test_empty_password_is_rejected_before_provider(self, client, fake_provider):
        response = client.post("/auth/signin", json={"username": "u@example.com", "password": ""})

        assert response.status_code == 422
        assert fake_provider.network_calls() == 0

    def test_sign_out(self, signed_in_client, fake_provider):
        response = signed_in_client.post("/auth/signout")

        assert response.json()["success"] is True
        assert signed_in_client.get("/auth/status").json()["is_authenticated"] is False
        assert fake_provider.persisted is None


class TestSignUp:
    def test_sign_up_then_confirm(self, client, fake_provider):
        response = client.post("/auth/signup", json={
            "username": "new@example.com",
            "password": "Passw0rd!",
            "attributes": {"email": "new@example.com"},
        })
        assert response.status_code == 200
        assert response.json()["user"]["confirmed"] == "Unconfirmed"

        response = client.post("/auth/confirm", json={"username": "new@example.com", "code": "123456"})
        assert response.status_code == 200
        assert fake_provider.users["new@example.com"]["confirmed"] is True

    def test_existing_user(self, client):
        response = client.post("/auth/signup", json={"username": "u@example.com", "password": "x"})

        assert response.status_code == 400
        assert response.json()["error"]["provider_kind"] == "UsernameExistsException"

    def test_resend_confirmation_code(self, client, fake_provider):
        response = client.post("/auth/confirm/resend", json={"username": "u@example.com"})

        assert response.status_code == 200
        assert fake_provider.calls["resend_confirmation_code"] == 1


class TestForgotPassword:
    def test_reset(self, client, fake_provider):
        assert client.post("/auth/forgot-password", json={"username": "u@example.com"}).status_code == 200

        response = client.post("/auth/forgot-password/confirm", json={
            "username": "u@example.com",
            "code": RESET_CODE,
            "new_password": "new-horse",
        })

        assert response.status_code == 200
        assert fake_provider.users["u@example.com"]["password"] == "new-horse"

    def test_new_password_required(self, client, fake_provider):
        response = client.post("/auth/forgot-password/confirm", json={"username": "u@example.com", "code": RESET_CODE})

        assert response.status_code == 422
        assert response.json()["message"] == "Code and new password is required"
        assert fake_provider.calls["confirm_forgot_password"] == 0

    def test_unknown_user(self, client):
        response = client.post("/auth/forgot-password", json={"username": "ghost@example.com"})

        assert response.status_code == 404
        assert response.json()["error"]["kind"] == "UserNotFound"


class TestSignedInRoutes:
    @pytest.mark.parametrize("method,path,body", [
        ("post", "/auth/change-password", {"old_password": "a", "new_password": "b"}),
        ("get", "/auth/tokens", None),
        ("get", "/auth/user", None),
    ])
    def test_requires_sign_in(self, client, fake_provider, method, path, body):
        response = client.request(method.upper(), path, json=body)

        assert response.status_code == 401
        assert response.json()["error"]["kind"] == "NotSignedIn"
        assert fake_provider.network_calls() == 0

    def test_change_password(self, signed_in_client, fake_provider):
        response = signed_in_client.post(
            "/auth/change-password",
            json={"old_password": "correct-horse", "new_password": "new-horse"}
        )

        assert response.status_code == 200
        assert response.json()["message"] == "Password changed."
        assert fake_provider.users["u@example.com"]["password"] == "new-horse"

    def test_tokens_with_claims(self, signed_in_client):
        body = signed_in_client.get("/auth/tokens").json()

        assert body["tokens"]["refresh_token"].startswith("refresh-u@example.com")
        assert body["claims"]["id_token"]["sub"] == "sub-u@example.com"
        assert body["claims"]["access_token"]["token_use"] == "access"
        assert body["claims"]["refresh_token"] is None

    def test_user_details(self, signed_in_client):
        body = signed_in_client.get("/auth/user").json()

        assert body["username"] == "u@example.com"
        assert body["attributes"]["email"] == "u@example.com"


class TestDevices:
    def test_requires_sign_in(self, client):
        response = client.get("/auth/devices")

        assert response.status_code == 401
        assert response.json()["devices"] == []
        assert response.json()["error"]["kind"] == "NotSignedIn"

    def test_pages(self, signed_in_client, fake_provider):
        fake_provider.device_pages = {
            None: DevicePage(devices=[device("a"), device("b")], pagination_token="page-2"),
            "page-2": DevicePage(devices=[device("c")]),
        }

        first = signed_in_client.get("/auth/devices", params={"limit": 2}).json()
        second = signed_in_client.get("/auth/devices", params={"pagination_token": first["pagination_token"]}).json()

        assert [d["device_key"] for d in first["devices"]] == ["a", "b"]
        assert [d["device_key"] for d in second["devices"]] == ["c"]
        assert second["pagination_token"] is None

    def test_limit_out_of_range(self, signed_in_client):
        assert signed_in_client.get("/auth/devices", params={"limit": 0}).status_code == 422

    def test_device_tracking_disabled(self, provider_config):
        provider = FakeIdentityProvider(device_tracking=False)
        provider.add_user("u@example.com", "correct-horse")

        with client_for(AuthSessionManager(provider_config, provider)) as client:
            client.post("/auth/signin", json={"username": "u@example.com", "password": "correct-horse"})
            response = client.get("/auth/devices")

        assert response.status_code == 409
        body = response.json()
        assert body["success"] is False
        assert body["devices"] == []
        assert body["error"]["kind"] == "FeatureUnavailable"


class TestFlowRoutes:
    def test_sign_in_ritual(self, client):
        assert client.post("/auth/flow/start", params={"stage": "sign_in"}).json()["stage"] == "sign_in"

        missing = client.post("/auth/flow/submit", json={"username": "u@example.com"}).json()
        assert missing["success"] is False
        assert missing["message"] == "Username and password are required"

        done = client.post("/auth/flow/submit", json={"username": "u@example.com", "password": "correct-horse"}).json()
        assert done["success"] is True
        assert done["stage"] == "signed_in"

    def test_cannot_start_mid_ritual(self, client):
        response = client.post("/auth/flow/start", params={"stage": "signed_in"})

        assert response.status_code == 400
        assert response.json()["stage"] == "idle"

    def test_nothing_to_submit(self, client):
        assert client.post("/auth/flow/submit", json={}).status_code == 400


def test_invalid_configuration_is_unavailable():
    manager = AuthSessionManager(ProviderConfig(region="ap-northeast-1"), FakeIdentityProvider())

    with client_for(manager) as client:
        response = client.post("/auth/signin", json={"username": "u@example.com", "password": "pw"})
        status = client.get("/auth/status").json()

    assert response.status_code == 503
    assert response.json()["error"]["kind"] == "InvalidConfiguration"
    assert status["last_error"]["kind"] == "InvalidConfiguration"
