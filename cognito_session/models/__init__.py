"""
Data models for the Cognito session service
"""

from .auth import (
    ErrorKind, ConfirmationStatus, Credentials, ConfirmationRequest,
    SessionTokens, UserIdentity, DeviceRecord, DevicePage, AuthErrorInfo,
    ManagerState, PersistedSession
)

__all__ = [
    'ErrorKind',
    'ConfirmationStatus',
    'Credentials',
    'ConfirmationRequest',
    'SessionTokens',
    'UserIdentity',
    'DeviceRecord',
    'DevicePage',
    'AuthErrorInfo',
    'ManagerState',
    'PersistedSession'
]
