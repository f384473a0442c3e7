"""
Cognito session FastAPI application
JSON surface over one AuthSessionManager for the sign-in/sign-up screens
"""
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from . import __version__
from .utils.config import Config, get_config
from .utils.logger import setup_logger
from .auth import AuthError, AuthSessionManager, CognitoIdentityProvider, SessionStore
from .auth.routes import router as auth_router, auth_error_handler
from .flow import AuthFlow

config = get_config()
logger = setup_logger(__name__)


def build_auth_manager(app_config: Config) -> AuthSessionManager:
    """Wire the Cognito provider and session store from configuration"""
    provider = CognitoIdentityProvider(SessionStore(app_config.COGNITO_SESSION_FILE))
    return AuthSessionManager(
        app_config.get_provider_config(),
        provider,
        timeout=app_config.request_timeout,
        device_list_limit=app_config.COGNITO_DEVICE_LIST_LIMIT
    )


def create_app(manager: Optional[AuthSessionManager] = None) -> FastAPI:
    """
    Create the application

    Args:
        manager: Pre-built session manager; built from configuration when omitted

    Returns:
        FastAPI: Configured application
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Cognito session service starting up...")
        logger.info(f"Environment: {config.__class__.__name__}")
        logger.info(f"Cognito User Pool: {config.COGNITO_USER_POOL_ID}")

        auth_manager = manager or build_auth_manager(config)
        await auth_manager.initialize()
        app.state.auth_manager = auth_manager
        app.state.auth_flow = AuthFlow(auth_manager)

        yield

        logger.info("Cognito session service shutting down...")

    app = FastAPI(
        title="Cognito Session",
        description="Sign-in, sign-up and session inspection backed by Amazon Cognito",
        version=__version__,
        debug=config.DEBUG,
        lifespan=lifespan
    )

    if config.DEBUG:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["http://localhost:3000", "http://localhost:8000"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    app.add_exception_handler(AuthError, auth_error_handler)
    app.include_router(auth_router)

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {"status": "healthy", "service": "cognito-session", "version": __version__}

    return app


app = create_app()
