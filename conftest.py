"""
Shared test configuration and fixtures.

Provides an in-memory identity provider that behaves like a Cognito user pool
(confirmation codes, password checks, device tracking, pagination) and counts
every call so tests can assert which operations reached the provider.
"""
import asyncio
import time
from collections import Counter
from typing import Optional, Dict, Tuple, List

import pytest
from jose import jwt

from cognito_session.auth import AuthSessionManager, IdentityProvider, ProviderError
from cognito_session.models.auth import (
    SessionTokens, UserIdentity, DevicePage, DeviceRecord, ConfirmationStatus
)
from cognito_session.utils.config import ProviderConfig

SIGN_UP_CODE = "123456"
RESET_CODE = "654321"
TOKEN_SIGNING_KEY = "test-signing-key"


def make_jwt(claims: Dict, expires_in: int = 3600) -> str:
    payload = dict(claims)
    payload.setdefault("exp", int(time.time()) + expires_in)
    return jwt.encode(payload, TOKEN_SIGNING_KEY, algorithm="HS256")


class FakeIdentityProvider(IdentityProvider):
    """In-memory user pool"""

    def __init__(self, auto_confirm: bool = False, device_tracking: bool = True, session_on_sign_up: bool = False):
        self.auto_confirm = auto_confirm
        self.session_on_sign_up = session_on_sign_up
        self.device_tracking = device_tracking
        self.delay = 0.0
        self.users: Dict[str, Dict] = {}
        self.persisted: Optional[Tuple[str, SessionTokens, Optional[str]]] = None
        self.device_pages: Dict[Optional[str], DevicePage] = {None: DevicePage()}
        self.received_pagination_tokens: List[Optional[str]] = []
        self.received_limits: List[int] = []
        self.calls: Counter = Counter()
        self.registered_key: Optional[str] = None
        self._issued = 0

    def network_calls(self) -> int:
        """Calls that would have left the process"""
        local = {"register", "current_persisted_user", "has_session", "sign_out"}
        return sum(count for name, count in self.calls.items() if name not in local)

    def add_user(self, username: str, password: str, confirmed: bool = True, **attributes):
        self.users[username] = {
            "password": password,
            "confirmed": confirmed,
            "reset_code": None,
            "attributes": {"sub": f"sub-{username}", "email": username, **attributes},
        }

    async def _round_trip(self, name: str):
        self.calls[name] += 1
        if self.delay:
            await asyncio.sleep(self.delay)

    def _user(self, username: str) -> Dict:
        user = self.users.get(username)
        if user is None:
            raise ProviderError("UserNotFoundException", "User does not exist.")
        return user

    def _issue_tokens(self, username: str) -> SessionTokens:
        self._issued += 1
        sub = self.users[username]["attributes"]["sub"]
        return SessionTokens(
            id_token=make_jwt({"sub": sub, "cognito:username": username, "token_use": "id"}),
            access_token=make_jwt({"sub": sub, "username": username, "token_use": "access"}),
            refresh_token=f"refresh-{username}-{self._issued}"
        )

    def register(self, config: ProviderConfig) -> None:
        self.calls["register"] += 1
        self.registered_key = config.key

    def current_persisted_user(self) -> Optional[UserIdentity]:
        self.calls["current_persisted_user"] += 1
        if self.persisted is None:
            return None
        username, tokens, device_key = self.persisted
        return UserIdentity(
            username=username,
            confirmed=ConfirmationStatus.CONFIRMED,
            signed_in=bool(tokens.refresh_token),
            device_id=device_key
        )

    def has_session(self, username: str) -> bool:
        self.calls["has_session"] += 1
        return self.persisted is not None and self.persisted[0] == username

    async def sign_up(self, username, password, attributes=None) -> UserIdentity:
        await self._round_trip("sign_up")
        if username in self.users:
            raise ProviderError("UsernameExistsException", "User already exists")
        self.add_user(username, password, confirmed=self.auto_confirm, **(attributes or {}))
        if self.auto_confirm and self.session_on_sign_up:
            # Provider that signs a confirmed new user straight in
            self.persisted = (username, self._issue_tokens(username), None)
        return UserIdentity(
            username=username,
            confirmed=ConfirmationStatus.CONFIRMED if self.auto_confirm else ConfirmationStatus.UNCONFIRMED,
            signed_in=self.has_session(username)
        )

    async def confirm_sign_up(self, username, code) -> None:
        await self._round_trip("confirm_sign_up")
        user = self._user(username)
        if code != SIGN_UP_CODE:
            raise ProviderError("CodeMismatchException", "Invalid verification code provided, please try again.")
        user["confirmed"] = True

    async def resend_confirmation_code(self, username) -> None:
        await self._round_trip("resend_confirmation_code")
        self._user(username)

    async def get_session(self, username, password) -> Tuple[SessionTokens, Optional[str]]:
        await self._round_trip("get_session")
        user = self._user(username)
        if user["password"] != password:
            raise ProviderError("NotAuthorizedException", "Incorrect username or password.")
        if not user["confirmed"]:
            raise ProviderError("UserNotConfirmedException", "User is not confirmed.")
        tokens = self._issue_tokens(username)
        device_key = "ap-northeast-1_device-1" if self.device_tracking else None
        self.persisted = (username, tokens, device_key)
        return tokens, device_key

    async def refresh_session(self, username) -> SessionTokens:
        await self._round_trip("refresh_session")
        if self.persisted is None or self.persisted[0] != username:
            raise ProviderError("NotAuthorizedException", "Refresh Token has been revoked")
        return self.persisted[1]

    async def forgot_password(self, username) -> None:
        await self._round_trip("forgot_password")
        self._user(username)["reset_code"] = RESET_CODE

    async def confirm_forgot_password(self, username, code, new_password) -> None:
        await self._round_trip("confirm_forgot_password")
        user = self._user(username)
        if user["reset_code"] is None or code != user["reset_code"]:
            raise ProviderError("CodeMismatchException", "Invalid verification code provided, please try again.")
        user["password"] = new_password
        user["reset_code"] = None

    async def change_password(self, username, old_password, new_password) -> None:
        await self._round_trip("change_password")
        user = self._user(username)
        if user["password"] != old_password:
            raise ProviderError("NotAuthorizedException", "Incorrect username or password.")
        user["password"] = new_password

    async def get_user_attributes(self, username) -> Dict[str, str]:
        await self._round_trip("get_user_attributes")
        return dict(self._user(username)["attributes"])

    async def list_devices(self, username, limit, pagination_token=None) -> DevicePage:
        await self._round_trip("list_devices")
        self.received_pagination_tokens.append(pagination_token)
        self.received_limits.append(limit)
        if not self.device_tracking:
            raise ProviderError(
                "InvalidUserPoolConfigurationException",
                "Device tracking not currently enabled for this pool."
            )
        if pagination_token not in self.device_pages:
            raise ProviderError("InvalidParameterException", "Invalid pagination token.")
        page = self.device_pages[pagination_token]
        return DevicePage(devices=page.devices[:limit], pagination_token=page.pagination_token)

    def sign_out(self, username) -> None:
        self.calls["sign_out"] += 1
        self.persisted = None


def device(key: str) -> DeviceRecord:
    return DeviceRecord(device_key=key, attributes={"device_name": f"iPhone {key}"})


@pytest.fixture
def provider_config():
    return ProviderConfig(
        region="ap-northeast-1",
        pool_id="ap-northeast-1_TestPool",
        client_id="test-client-id"
    )


@pytest.fixture
def fake_provider():
    provider = FakeIdentityProvider()
    provider.add_user("u@example.com", "correct-horse")
    return provider


@pytest.fixture
def manager(provider_config, fake_provider):
    return AuthSessionManager(provider_config, fake_provider)


@pytest.fixture
async def signed_in_manager(manager):
    await manager.sign_in("u@example.com", "correct-horse")
    return manager
