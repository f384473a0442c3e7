"""
Authentication session manager

Owns the current user and last error, exposes the identity operations and
guards each of them with local precondition checks before any provider
round-trip is issued. Callers serialize operations that change the current
user (sign up, confirm, sign in, sign out); the manager holds no lock.
"""
import asyncio
from typing import Optional, Dict, Any, Awaitable

from ..utils.config import ProviderConfig
from ..utils.logger import setup_logger
from ..models.auth import (
    SessionTokens, UserIdentity, DevicePage, ManagerState, ConfirmationStatus
)
from .errors import (
    AuthError, InvalidConfiguration, NotSignedIn, UserNotFound,
    ProviderRejected, ProviderError, from_provider_error, TIMEOUT_ERROR_KIND
)
from .provider import IdentityProvider

logger = setup_logger(__name__)


class AuthSessionManager:
    """Single-session facade over an IdentityProvider"""

    def __init__(
        self,
        config: ProviderConfig,
        provider: IdentityProvider,
        timeout: Optional[float] = None,
        device_list_limit: int = 10
    ):
        """
        Register the user pool with the provider

        Args:
            config: User pool registration settings
            provider: Identity provider implementation
            timeout: Seconds allowed per provider round-trip, None for no limit
            device_list_limit: Page size used when list_devices gets no limit
        """
        self.config = config
        self.provider = provider
        self.timeout = timeout
        self.device_list_limit = device_list_limit

        self.current_user: Optional[UserIdentity] = None
        self.last_error: Optional[AuthError] = None
        self._config_error: Optional[InvalidConfiguration] = None

        try:
            config.validate_config()
            provider.register(config)
        except InvalidConfiguration as e:
            self._config_error = e
            self._fail(e)

    @property
    def signed_in(self) -> bool:
        return self.current_user is not None and self.current_user.signed_in

    def state(self) -> ManagerState:
        """Snapshot of current user and last error"""
        return ManagerState(
            current_user=self.current_user.model_copy() if self.current_user else None,
            last_error=self.last_error.to_info() if self.last_error else None
        )

    def clear_error(self) -> None:
        self.last_error = None

    def _fail(self, error: AuthError) -> AuthError:
        """Record error as the outcome of the running operation"""
        self.last_error = error
        logger.error(f"{error.kind.value}: {error.message}")
        return error

    def _require_pool(self) -> None:
        if self._config_error is not None:
            raise self._fail(self._config_error)

    def _require_signed_in(self) -> UserIdentity:
        """
        Local guard for operations that need a signed-in user

        Returns:
            UserIdentity: The signed-in user

        Raises:
            InvalidConfiguration: If the user pool could not be registered
            NotSignedIn: If no user is signed in
            UserNotFound: If the provider no longer holds a session for the user
        """
        self._require_pool()

        user = self.current_user
        if user is None or not user.signed_in:
            raise self._fail(NotSignedIn("User not signed in"))

        if not self.provider.has_session(user.username):
            raise self._fail(UserNotFound(f"No session found for user {user.username}"))

        return user

    async def _provider_call(self, call: Awaitable[Any], device_operation: bool = False) -> Any:
        """
        Await one provider round-trip, translating its failure into an AuthError

        Cancellation of the calling task propagates unchanged.
        """
        try:
            if self.timeout:
                return await asyncio.wait_for(call, self.timeout)
            return await call
        except asyncio.TimeoutError:
            raise self._fail(ProviderRejected(
                f"Request timed out after {self.timeout} seconds",
                provider_kind=TIMEOUT_ERROR_KIND
            ))
        except ProviderError as e:
            raise self._fail(from_provider_error(e, device_operation=device_operation)) from e
        except AuthError as e:
            raise self._fail(e)

    async def initialize(self) -> None:
        """Restore a previously persisted session; never raises"""
        self.clear_error()
        if self._config_error is not None:
            self._fail(self._config_error)
            self.current_user = None
            return

        try:
            self.current_user = self.provider.current_persisted_user()
        except ProviderError as e:
            self._fail(from_provider_error(e))
            self.current_user = None
            return
        except AuthError as e:
            self._fail(e)
            self.current_user = None
            return

        if self.signed_in:
            logger.info(f"Restored session for user: {self.current_user.username}")
        else:
            logger.info("No persisted session found")

    async def sign_up(
        self,
        username: str,
        password: str,
        attributes: Optional[Dict[str, str]] = None
    ) -> UserIdentity:
        """
        Register a new account

        Args:
            username: Username (email)
            password: Password
            attributes: Extra user attributes, e.g. {"email": ...}

        Returns:
            UserIdentity: The new user; signed in only when the provider reports
            the account confirmed with an active session
        """
        self.clear_error()
        self._require_pool()

        identity = await self._provider_call(self.provider.sign_up(username, password, attributes))

        if identity.confirmed == ConfirmationStatus.CONFIRMED and identity.signed_in:
            self.current_user = identity
        return identity

    async def confirm_sign_up(self, username: str, code: str) -> bool:
        """Confirm a registration; does not sign the user in"""
        self.clear_error()
        self._require_pool()

        await self._provider_call(self.provider.confirm_sign_up(username, code))
        logger.info(f"Confirmed sign up for user: {username}")
        return True

    async def resend_confirmation_code(self, username: str) -> bool:
        self.clear_error()
        self._require_pool()

        await self._provider_call(self.provider.resend_confirmation_code(username))
        return True

    async def sign_in(self, username: str, password: str) -> SessionTokens:
        """
        Establish a session

        Returns:
            SessionTokens: Tokens issued by the provider

        Raises:
            NotConfirmed: If the account still awaits confirmation
            ProviderRejected: For wrong credentials and any other provider failure
        """
        self.clear_error()
        self._require_pool()

        tokens, device_key = await self._provider_call(self.provider.get_session(username, password))

        self.current_user = UserIdentity(
            username=username,
            confirmed=ConfirmationStatus.CONFIRMED,
            signed_in=True,
            device_id=device_key
        )
        logger.info(f"User signed in: {username}")
        return tokens

    async def send_forgot_password_code(self, username: str) -> bool:
        self.clear_error()
        self._require_pool()

        await self._provider_call(self.provider.forgot_password(username))
        return True

    async def confirm_forgot_password(self, username: str, code: str, new_password: str) -> bool:
        """Commit a new password; the user still has to sign in afterwards"""
        self.clear_error()
        self._require_pool()

        await self._provider_call(self.provider.confirm_forgot_password(username, code, new_password))
        logger.info(f"Password reset for user: {username}")
        return True

    async def change_password(self, old_password: str, new_password: str) -> bool:
        self.clear_error()
        user = self._require_signed_in()

        await self._provider_call(self.provider.change_password(user.username, old_password, new_password))
        logger.info(f"Password changed for user: {user.username}")
        return True

    async def get_tokens(self) -> SessionTokens:
        """Tokens of the live provider session, refreshed when expired"""
        self.clear_error()
        user = self._require_signed_in()

        return await self._provider_call(self.provider.refresh_session(user.username))

    def get_current_username(self) -> str:
        self.clear_error()
        return self._require_signed_in().username

    def get_current_device_id(self) -> Optional[str]:
        """Device key of the signed-in user; None unless device tracking is enabled"""
        self.clear_error()
        return self._require_signed_in().device_id

    async def get_current_user_details(self) -> Dict[str, str]:
        self.clear_error()
        user = self._require_signed_in()

        return await self._provider_call(self.provider.get_user_attributes(user.username))

    async def list_devices(self, limit: Optional[int] = None, pagination_token: Optional[str] = None) -> DevicePage:
        """
        List tracked devices of the signed-in user

        Args:
            limit: Maximum devices per page (defaults to device_list_limit)
            pagination_token: Token from a previous page, passed through untouched

        Returns:
            DevicePage: Devices and the provider's next pagination token

        Raises:
            FeatureUnavailable: If device tracking is disabled for the pool
            ProviderRejected: For stale tokens and any other provider failure
        """
        self.clear_error()
        user = self._require_signed_in()

        if limit is None:
            limit = self.device_list_limit
        return await self._provider_call(
            self.provider.list_devices(user.username, limit, pagination_token),
            device_operation=True
        )

    def sign_out(self) -> None:
        """Sign out and forget the last known user; idempotent"""
        username = self.current_user.username if self.current_user else None
        self.provider.sign_out(username)
        self.current_user = None
        self.last_error = None
