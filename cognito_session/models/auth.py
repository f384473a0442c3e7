"""
Authentication related data models
"""
from pydantic import BaseModel, Field, computed_field
from typing import Optional, Dict, Any, List
from datetime import datetime, timezone
from enum import Enum

from jose import jwt, JWTError


class ErrorKind(str, Enum):
    """Authentication error taxonomy"""
    INVALID_CONFIGURATION = "InvalidConfiguration"
    USER_NOT_FOUND = "UserNotFound"
    NOT_SIGNED_IN = "NotSignedIn"
    NOT_CONFIRMED = "NotConfirmed"
    FEATURE_UNAVAILABLE = "FeatureUnavailable"
    PROVIDER_REJECTED = "ProviderRejected"


class ConfirmationStatus(str, Enum):
    """Account confirmation status reported by the provider"""
    CONFIRMED = "Confirmed"
    UNCONFIRMED = "Unconfirmed"
    UNKNOWN = "Unknown"


class Credentials(BaseModel):
    """Username/password pair, owned by the caller for one request"""
    username: str = Field(..., min_length=1, description="Username (email)")
    password: str = Field(..., min_length=1, description="Password")


class ConfirmationRequest(BaseModel):
    """Confirmation code submission for sign-up or forgot-password"""
    username: str = Field(..., min_length=1, description="Username (email)")
    code: str = Field(..., min_length=1, description="Confirmation code")
    new_password: Optional[str] = Field(None, description="New password (forgot-password only)")


class SessionTokens(BaseModel):
    """Immutable snapshot of a successful authentication"""
    id_token: Optional[str] = Field(None, description="ID token")
    access_token: Optional[str] = Field(None, description="Access token")
    refresh_token: Optional[str] = Field(None, description="Refresh token")

    class Config:
        frozen = True

    def is_empty(self) -> bool:
        """True when the provider returned no tokens at all"""
        return not (self.id_token or self.access_token or self.refresh_token)

    def claims(self, token_name: str) -> Optional[Dict[str, Any]]:
        """
        Decode the claims of one token without verifying its signature

        Args:
            token_name: "id_token", "access_token" or "refresh_token"

        Returns:
            Optional[Dict]: Claims, or None if the token is absent or not a JWT
        """
        token = getattr(self, token_name)
        if not token:
            return None
        try:
            return jwt.get_unverified_claims(token)
        except JWTError:
            # Refresh tokens are encrypted and never decode
            return None


class UserIdentity(BaseModel):
    """User known to the session manager"""
    username: str = Field(..., description="Username")
    confirmed: ConfirmationStatus = Field(ConfirmationStatus.UNKNOWN, description="Confirmation status")
    signed_in: bool = Field(False, description="Whether a provider session is active")
    device_id: Optional[str] = Field(None, description="Device key if device tracking is enabled")


class DeviceRecord(BaseModel):
    """Device remembered by the provider for the signed-in user"""
    device_key: str = Field(..., description="Device key")
    created_at: Optional[datetime] = Field(None, description="Device creation time")
    last_authenticated_at: Optional[datetime] = Field(None, description="Last authentication time")
    last_modified_at: Optional[datetime] = Field(None, description="Last modification time")
    attributes: Dict[str, str] = Field(default_factory=dict, description="Device attributes")


class DevicePage(BaseModel):
    """One page of devices plus the provider's continuation token"""
    devices: List[DeviceRecord] = Field(default_factory=list)
    pagination_token: Optional[str] = Field(None, description="Opaque token for the next page")


class AuthErrorInfo(BaseModel):
    """Serialisable view of an authentication error"""
    kind: ErrorKind = Field(..., description="Error kind")
    provider_kind: Optional[str] = Field(None, description="Provider's machine-readable error code")
    message: str = Field(..., description="Human readable message")


class ManagerState(BaseModel):
    """Snapshot of the session manager state"""
    current_user: Optional[UserIdentity] = None
    last_error: Optional[AuthErrorInfo] = None

    @computed_field
    @property
    def signed_in(self) -> bool:
        return self.current_user is not None and self.current_user.signed_in


class PersistedSession(BaseModel):
    """Last known user as stored on disk"""
    username: str
    tokens: SessionTokens
    device_key: Optional[str] = None
    saved_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def is_signed_in(self) -> bool:
        """A session stays usable while a refresh token is held"""
        return bool(self.tokens.refresh_token)


class SignUpRequest(Credentials):
    """Sign-up request data"""
    attributes: Optional[Dict[str, str]] = Field(None, description="Extra user attributes, e.g. email")


class UsernameRequest(BaseModel):
    """Request carrying only a username"""
    username: str = Field(..., min_length=1, description="Username (email)")


class ChangePasswordRequest(BaseModel):
    """Change password request data"""
    old_password: str = Field(..., min_length=1, description="Current password")
    new_password: str = Field(..., min_length=1, description="New password")


class OperationResponse(BaseModel):
    """Generic operation result"""
    success: bool = Field(..., description="Operation success status")
    message: Optional[str] = Field(None, description="Result message")
    user: Optional[UserIdentity] = Field(None, description="Affected user, if any")
    error: Optional[AuthErrorInfo] = Field(None, description="Error if the operation failed")


class AuthStatus(BaseModel):
    """Authentication status response"""
    is_authenticated: bool = Field(..., description="Authentication status")
    username: Optional[str] = Field(None, description="Username if authenticated")
    device_id: Optional[str] = Field(None, description="Device key if known")
    last_error: Optional[AuthErrorInfo] = Field(None, description="Last recorded error")


class TokenResponse(BaseModel):
    """Token inspection response"""
    success: bool = Field(..., description="Retrieval success status")
    tokens: Optional[SessionTokens] = Field(None, description="Current tokens")
    claims: Dict[str, Optional[Dict[str, Any]]] = Field(default_factory=dict, description="Decoded claims per token")


class UserDetailsResponse(BaseModel):
    """Provider-stored user attributes"""
    success: bool = Field(..., description="Retrieval success status")
    username: Optional[str] = Field(None, description="Username")
    attributes: Dict[str, str] = Field(default_factory=dict, description="User attributes")


class DeviceListResponse(BaseModel):
    """Device listing response"""
    success: bool = Field(..., description="Listing success status")
    devices: List[DeviceRecord] = Field(default_factory=list)
    pagination_token: Optional[str] = Field(None, description="Token for the next page")
    error: Optional[AuthErrorInfo] = Field(None, description="Error if listing failed")
