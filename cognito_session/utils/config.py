"""
Configuration management for the Cognito session service
"""
import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field


class ProviderConfig(BaseModel):
    """Identity provider registration settings"""
    region: str = Field(..., description="AWS region hosting the user pool")
    pool_id: Optional[str] = Field(None, description="Cognito user pool ID")
    client_id: Optional[str] = Field(None, description="Cognito app client ID")
    client_secret: Optional[str] = Field(None, description="Cognito app client secret")

    @property
    def key(self) -> str:
        """Registration key, one per pool/client pair"""
        return f"{self.region}/{self.pool_id}/{self.client_id}"

    def validate_config(self) -> bool:
        """
        Validate that the pool can be registered

        Returns:
            bool: True if the configuration is usable

        Raises:
            InvalidConfiguration: If a required value is missing or malformed
        """
        # Import here to avoid circular imports
        from ..auth.errors import InvalidConfiguration

        missing = []
        if not self.region:
            missing.append("region")
        if not self.pool_id:
            missing.append("pool_id")
        if not self.client_id:
            missing.append("client_id")
        if missing:
            raise InvalidConfiguration(
                f"Missing user pool configuration: {', '.join(missing)}"
            )

        pool_region, _, pool_suffix = self.pool_id.partition("_")
        if not pool_suffix:
            raise InvalidConfiguration(
                f"Malformed user pool ID '{self.pool_id}', expected '<region>_<id>'"
            )
        if pool_region != self.region:
            raise InvalidConfiguration(
                f"User pool {self.pool_id} does not belong to region {self.region}"
            )

        return True


class Config:
    """Application configuration"""

    # AWS Configuration
    AWS_REGION = os.getenv("AWS_REGION", "ap-northeast-1")

    # Cognito Configuration
    COGNITO_USER_POOL_ID = os.getenv("COGNITO_USER_POOL_ID")  # Required - no default
    COGNITO_CLIENT_ID = os.getenv("COGNITO_CLIENT_ID")  # Required - no default
    COGNITO_CLIENT_SECRET = os.getenv("COGNITO_CLIENT_SECRET")  # Optional for public clients

    # Session behaviour
    COGNITO_SESSION_FILE = os.getenv(
        "COGNITO_SESSION_FILE",
        str(Path.home() / ".cognito_session" / "session.json")
    )
    COGNITO_REQUEST_TIMEOUT = float(os.getenv("COGNITO_REQUEST_TIMEOUT", "30"))
    COGNITO_DEVICE_LIST_LIMIT = int(os.getenv("COGNITO_DEVICE_LIST_LIMIT", "10"))

    # Application Configuration
    DEBUG = os.getenv("DEBUG", "True").lower() == "true"
    LOG_LEVEL = os.getenv("LOG_LEVEL", "")  # Overrides the DEBUG-derived level

    @property
    def request_timeout(self) -> Optional[float]:
        """Per-operation timeout in seconds, None when disabled"""
        return self.COGNITO_REQUEST_TIMEOUT if self.COGNITO_REQUEST_TIMEOUT > 0 else None

    def get_provider_config(self) -> ProviderConfig:
        """Get Cognito configuration for provider registration"""
        return ProviderConfig(
            region=self.AWS_REGION,
            pool_id=self.COGNITO_USER_POOL_ID,
            client_id=self.COGNITO_CLIENT_ID,
            client_secret=self.COGNITO_CLIENT_SECRET or None
        )


class DevelopmentConfig(Config):
    """Development environment configuration"""
    DEBUG = True


class ProductionConfig(Config):
    """Production environment configuration"""
    DEBUG = False


def get_config() -> Config:
    """Get configuration based on environment"""
    env = os.getenv("ENVIRONMENT", "development").lower()

    if env == "production":
        return ProductionConfig()
    return DevelopmentConfig()
