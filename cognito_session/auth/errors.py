"""
Authentication error taxonomy
"""
from typing import Optional

from ..models.auth import ErrorKind, AuthErrorInfo


UNKNOWN_SESSION_ERROR = "Unknown session error"


class ProviderError(Exception):
    """Failure reported by an identity provider round-trip"""

    def __init__(self, code: Optional[str], message: Optional[str] = None):
        self.code = code or ""
        self.message = message or ""
        super().__init__(self.describe())

    def describe(self) -> str:
        """Format as '<code>: <message>', falling back to whichever part is present"""
        if not self.code and not self.message:
            return UNKNOWN_SESSION_ERROR
        if not self.code:
            return self.message
        if not self.message:
            return self.code
        return f"{self.code}: {self.message}"


class AuthError(Exception):
    """Base class for session manager errors"""

    kind: ErrorKind = ErrorKind.PROVIDER_REJECTED

    def __init__(self, message: str, provider_kind: Optional[str] = None):
        self.message = message
        self.provider_kind = provider_kind
        super().__init__(message)

    def to_info(self) -> AuthErrorInfo:
        return AuthErrorInfo(
            kind=self.kind,
            provider_kind=self.provider_kind,
            message=self.message
        )


class InvalidConfiguration(AuthError):
    """User pool registration is missing or malformed"""
    kind = ErrorKind.INVALID_CONFIGURATION


class UserNotFound(AuthError):
    """No user is known locally, or the provider has no such user"""
    kind = ErrorKind.USER_NOT_FOUND


class NotSignedIn(AuthError):
    """The operation requires a signed-in user"""
    kind = ErrorKind.NOT_SIGNED_IN


class NotConfirmed(AuthError):
    """The account exists but has not been confirmed yet"""
    kind = ErrorKind.NOT_CONFIRMED


class FeatureUnavailable(AuthError):
    """The pool does not enable the requested feature (device tracking)"""
    kind = ErrorKind.FEATURE_UNAVAILABLE


class ProviderRejected(AuthError):
    """Any other provider failure; keeps the provider's error code"""
    kind = ErrorKind.PROVIDER_REJECTED


# Provider codes with a dedicated error kind
_CODE_MAP = {
    "UserNotConfirmedException": NotConfirmed,
    "UserNotFoundException": UserNotFound,
}

DEVICE_TRACKING_DISABLED_CODE = "InvalidUserPoolConfigurationException"

# provider_kind of a round-trip that exceeded the manager timeout
TIMEOUT_ERROR_KIND = "RequestTimeout"

# provider_kind of a local session file write failure
SESSION_PERSISTENCE_ERROR = "SessionPersistenceError"


def from_provider_error(error: ProviderError, device_operation: bool = False) -> AuthError:
    """
    Wrap a provider failure in the matching AuthError

    Args:
        error: Provider error carrying code and message
        device_operation: True when the failing call was a device API call

    Returns:
        AuthError: Typed error, provider code preserved in provider_kind
    """
    message = error.describe()

    if device_operation and error.code == DEVICE_TRACKING_DISABLED_CODE:
        return FeatureUnavailable(message, provider_kind=error.code)

    error_class = _CODE_MAP.get(error.code, ProviderRejected)
    return error_class(message, provider_kind=error.code or None)
