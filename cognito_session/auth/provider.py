"""
Identity provider contract consumed by the session manager
"""
from abc import ABC, abstractmethod
from typing import Optional, Dict, Tuple

from ..models.auth import SessionTokens, UserIdentity, DevicePage
from ..utils.config import ProviderConfig


class IdentityProvider(ABC):
    """
    Hosted identity service capability

    Network operations are coroutines and raise ProviderError on failure.
    register, current_persisted_user, has_session and sign_out only touch
    local state and never fail on the network.
    """

    @abstractmethod
    def register(self, config: ProviderConfig) -> None:
        """Register the user pool; idempotent for the same configuration key"""

    @abstractmethod
    def current_persisted_user(self) -> Optional[UserIdentity]:
        """Read the last known user from the local session store"""

    @abstractmethod
    def has_session(self, username: str) -> bool:
        """Whether a usable session for username is persisted locally"""

    @abstractmethod
    async def sign_up(
        self,
        username: str,
        password: str,
        attributes: Optional[Dict[str, str]] = None
    ) -> UserIdentity:
        """Register a new account"""

    @abstractmethod
    async def confirm_sign_up(self, username: str, code: str) -> None:
        """Confirm a registration with the code delivered out of band"""

    @abstractmethod
    async def resend_confirmation_code(self, username: str) -> None:
        """Deliver a fresh sign-up confirmation code"""

    @abstractmethod
    async def get_session(self, username: str, password: str) -> Tuple[SessionTokens, Optional[str]]:
        """Authenticate with a password; returns tokens and the device key, if any"""

    @abstractmethod
    async def refresh_session(self, username: str) -> SessionTokens:
        """Return live tokens for the persisted session, refreshing them when expired"""

    @abstractmethod
    async def forgot_password(self, username: str) -> None:
        """Send a password reset code"""

    @abstractmethod
    async def confirm_forgot_password(self, username: str, code: str, new_password: str) -> None:
        """Commit a new password using a reset code"""

    @abstractmethod
    async def change_password(self, username: str, old_password: str, new_password: str) -> None:
        """Change the password of the signed-in user"""

    @abstractmethod
    async def get_user_attributes(self, username: str) -> Dict[str, str]:
        """Fetch the provider-stored attributes of the signed-in user"""

    @abstractmethod
    async def list_devices(
        self,
        username: str,
        limit: int,
        pagination_token: Optional[str] = None
    ) -> DevicePage:
        """List tracked devices of the signed-in user"""

    @abstractmethod
    def sign_out(self, username: Optional[str]) -> None:
        """Drop the local session and forget the last known user"""
