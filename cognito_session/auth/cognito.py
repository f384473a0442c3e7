"""
Amazon Cognito user pool identity provider
"""
import asyncio
import base64
import hashlib
import hmac
import time
from typing import Optional, Dict, Any, Tuple

import boto3
from botocore import UNSIGNED
from botocore.config import Config as BotoConfig
from botocore.exceptions import ClientError, BotoCoreError
from jose import jwt, JWTError

from ..utils.config import ProviderConfig
from ..utils.logger import setup_logger
from ..models.auth import (
    SessionTokens, UserIdentity, DeviceRecord, DevicePage, ConfirmationStatus
)
from .errors import ProviderError, InvalidConfiguration, SESSION_PERSISTENCE_ERROR
from .provider import IdentityProvider
from .session import SessionStore

logger = setup_logger(__name__)


class CognitoIdentityProvider(IdentityProvider):
    """Cognito user pool client speaking the public cognito-idp API"""

    # Refresh tokens this many seconds before the access token expires
    REFRESH_LEEWAY_SECONDS = 60

    def __init__(self, session_store: SessionStore, cognito_client=None):
        """
        Args:
            session_store: Store for the last known user's tokens
            cognito_client: Pre-built boto3 cognito-idp client (tests inject a stubbed one)
        """
        self.session_store = session_store
        self.cognito_client = cognito_client
        self.config: Optional[ProviderConfig] = None

    def register(self, config: ProviderConfig) -> None:
        if self.config is not None:
            if self.config.key == config.key:
                return
            raise InvalidConfiguration(
                f"Provider already registered for {self.config.key}, refusing {config.key}"
            )

        self.config = config
        if self.cognito_client is None:
            # User pool client APIs are authorised by tokens, not IAM credentials
            self.cognito_client = boto3.client(
                'cognito-idp',
                region_name=config.region,
                config=BotoConfig(signature_version=UNSIGNED)
            )

        logger.info(f"Registered Cognito user pool {config.pool_id} ({config.region})")

    def _require_registered(self) -> ProviderConfig:
        if self.cognito_client is None or self.config is None:
            raise InvalidConfiguration("Cognito user pool is not registered")
        return self.config

    def _get_secret_hash(self, username: str) -> Optional[str]:
        """
        Generate SECRET_HASH for clients configured with a secret

        Returns:
            Optional[str]: Base64 HMAC-SHA256 of username + client ID, None without a secret
        """
        if not self._require_registered().client_secret:
            return None
        message = bytes(username + self.config.client_id, 'utf-8')
        secret = bytes(self.config.client_secret, 'utf-8')
        digest = hmac.new(secret, msg=message, digestmod=hashlib.sha256).digest()
        return base64.b64encode(digest).decode()

    def _user_params(self, username: str, **params) -> Dict[str, Any]:
        """Common ClientId/Username/SecretHash parameters for user-scoped calls"""
        secret_hash = self._get_secret_hash(username)
        params['ClientId'] = self.config.client_id
        params['Username'] = username
        if secret_hash:
            params['SecretHash'] = secret_hash
        return params

    async def _call(self, operation: str, **params) -> Dict[str, Any]:
        """
        Run one blocking cognito-idp call without blocking the event loop

        Args:
            operation: boto3 method name, e.g. "initiate_auth"
            **params: API parameters

        Returns:
            Dict: API response

        Raises:
            InvalidConfiguration: If register() has not been called
            ProviderError: If Cognito rejects the request or is unreachable
        """
        self._require_registered()
        method = getattr(self.cognito_client, operation)
        try:
            return await asyncio.to_thread(method, **params)
        except ClientError as e:
            error = e.response.get('Error', {})
            logger.debug(f"Cognito {operation} failed: {error.get('Code')}")
            raise ProviderError(error.get('Code'), error.get('Message')) from e
        except BotoCoreError as e:
            logger.debug(f"Cognito {operation} transport failure: {e}")
            raise ProviderError(type(e).__name__, str(e)) from e

    def _persist(self, username: str, tokens: SessionTokens, device_key: Optional[str]) -> None:
        """Store the session; a failed write fails the operation that produced the tokens"""
        try:
            self.session_store.save(username, tokens, device_key)
        except OSError as e:
            logger.error(f"Could not persist session for {username}: {e}")
            raise ProviderError(SESSION_PERSISTENCE_ERROR, str(e)) from e

    def current_persisted_user(self) -> Optional[UserIdentity]:
        session = self.session_store.load()
        if session is None:
            return None
        # Only confirmed accounts ever obtain tokens
        return UserIdentity(
            username=session.username,
            confirmed=ConfirmationStatus.CONFIRMED,
            signed_in=session.is_signed_in(),
            device_id=session.device_key
        )

    def has_session(self, username: str) -> bool:
        session = self.session_store.load_for(username)
        return session is not None and session.is_signed_in()

    async def sign_up(
        self,
        username: str,
        password: str,
        attributes: Optional[Dict[str, str]] = None
    ) -> UserIdentity:
        params = self._user_params(username, Password=password)
        if attributes:
            params['UserAttributes'] = [
                {'Name': name, 'Value': value} for name, value in attributes.items()
            ]

        response = await self._call('sign_up', **params)

        confirmed = ConfirmationStatus.CONFIRMED if response.get('UserConfirmed') else ConfirmationStatus.UNCONFIRMED
        logger.info(f"Signed up user {username} ({confirmed.value})")
        return UserIdentity(
            username=username,
            confirmed=confirmed,
            signed_in=self.has_session(username)
        )

    async def confirm_sign_up(self, username: str, code: str) -> None:
        await self._call('confirm_sign_up', **self._user_params(username, ConfirmationCode=code))

    async def resend_confirmation_code(self, username: str) -> None:
        await self._call('resend_confirmation_code', **self._user_params(username))

    async def get_session(self, username: str, password: str) -> Tuple[SessionTokens, Optional[str]]:
        auth_params = {
            'USERNAME': username,
            'PASSWORD': password
        }
        secret_hash = self._get_secret_hash(username)
        if secret_hash:
            auth_params['SECRET_HASH'] = secret_hash

        response = await self._call(
            'initiate_auth',
            ClientId=self.config.client_id,
            AuthFlow='USER_PASSWORD_AUTH',
            AuthParameters=auth_params
        )

        challenge = response.get('ChallengeName')
        if challenge:
            raise ProviderError("UnsupportedChallenge", f"Authentication challenge {challenge} is not supported")

        result = response.get('AuthenticationResult') or {}
        tokens = SessionTokens(
            id_token=result.get('IdToken'),
            access_token=result.get('AccessToken'),
            refresh_token=result.get('RefreshToken')
        )

        device_key = (result.get('NewDeviceMetadata') or {}).get('DeviceKey')
        if device_key is None:
            previous = self.session_store.load_for(username)
            device_key = previous.device_key if previous else None

        self._persist(username, tokens, device_key)
        return tokens, device_key

    def _access_token_expired(self, access_token: Optional[str]) -> bool:
        if not access_token:
            return True
        try:
            claims = jwt.get_unverified_claims(access_token)
        except JWTError:
            return True
        exp = claims.get('exp')
        if exp is None:
            return True
        return exp - self.REFRESH_LEEWAY_SECONDS <= time.time()

    async def refresh_session(self, username: str) -> SessionTokens:
        session = self.session_store.load_for(username)
        if session is None or not session.is_signed_in():
            raise ProviderError("NotAuthorizedException", f"No refresh token available for {username}")

        if not self._access_token_expired(session.tokens.access_token):
            return session.tokens

        auth_params = {'REFRESH_TOKEN': session.tokens.refresh_token}
        secret_hash = self._get_secret_hash(username)
        if secret_hash:
            auth_params['SECRET_HASH'] = secret_hash
        if session.device_key:
            auth_params['DEVICE_KEY'] = session.device_key

        response = await self._call(
            'initiate_auth',
            ClientId=self.config.client_id,
            AuthFlow='REFRESH_TOKEN_AUTH',
            AuthParameters=auth_params
        )

        result = response.get('AuthenticationResult') or {}
        tokens = SessionTokens(
            id_token=result.get('IdToken'),
            access_token=result.get('AccessToken'),
            # Cognito does not rotate the refresh token unless rotation is enabled
            refresh_token=result.get('RefreshToken') or session.tokens.refresh_token
        )
        self._persist(username, tokens, session.device_key)

        logger.info(f"Refreshed tokens for user: {username}")
        return tokens

    async def forgot_password(self, username: str) -> None:
        response = await self._call('forgot_password', **self._user_params(username))
        destination = (response.get('CodeDeliveryDetails') or {}).get('Destination')
        logger.info(f"Password reset code sent for {username} to {destination or 'unknown destination'}")

    async def confirm_forgot_password(self, username: str, code: str, new_password: str) -> None:
        await self._call(
            'confirm_forgot_password',
            **self._user_params(username, ConfirmationCode=code, Password=new_password)
        )

    async def change_password(self, username: str, old_password: str, new_password: str) -> None:
        tokens = await self.refresh_session(username)
        await self._call(
            'change_password',
            PreviousPassword=old_password,
            ProposedPassword=new_password,
            AccessToken=tokens.access_token
        )

    async def get_user_attributes(self, username: str) -> Dict[str, str]:
        tokens = await self.refresh_session(username)
        response = await self._call('get_user', AccessToken=tokens.access_token)
        return {
            attribute['Name']: attribute.get('Value', '')
            for attribute in response.get('UserAttributes', [])
        }

    async def list_devices(
        self,
        username: str,
        limit: int,
        pagination_token: Optional[str] = None
    ) -> DevicePage:
        tokens = await self.refresh_session(username)
        params = {'AccessToken': tokens.access_token, 'Limit': limit}
        if pagination_token is not None:
            params['PaginationToken'] = pagination_token

        response = await self._call('list_devices', **params)

        devices = [
            DeviceRecord(
                device_key=device.get('DeviceKey', ''),
                created_at=device.get('DeviceCreateDate'),
                last_authenticated_at=device.get('DeviceLastAuthenticatedDate'),
                last_modified_at=device.get('DeviceLastModifiedDate'),
                attributes={
                    attribute['Name']: attribute.get('Value', '')
                    for attribute in device.get('DeviceAttributes', [])
                }
            )
            for device in response.get('Devices', [])
        ]
        return DevicePage(devices=devices, pagination_token=response.get('PaginationToken'))

    def sign_out(self, username: Optional[str]) -> None:
        # Local sign-out: tokens stay valid at Cognito until they expire
        try:
            self.session_store.clear()
        except OSError as e:
            logger.warning(f"Could not remove session file for {username}: {e}")
        logger.info(f"Signed out user: {username}")
