"""
Authentication module

This module provides:
- AuthSessionManager, the single-session state machine
- IdentityProvider contract and its Cognito user pool implementation
- Local persistence of the last known user
- Typed authentication errors
"""

from .errors import (
    AuthError, ProviderError, InvalidConfiguration, UserNotFound, NotSignedIn,
    NotConfirmed, FeatureUnavailable, ProviderRejected
)
from .provider import IdentityProvider
from .session import SessionStore
from .cognito import CognitoIdentityProvider
from .manager import AuthSessionManager

__all__ = [
    'AuthError',
    'ProviderError',
    'InvalidConfiguration',
    'UserNotFound',
    'NotSignedIn',
    'NotConfirmed',
    'FeatureUnavailable',
    'ProviderRejected',
    'IdentityProvider',
    'SessionStore',
    'CognitoIdentityProvider',
    'AuthSessionManager'
]
