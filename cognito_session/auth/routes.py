"""
Authentication API routes
"""
from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse
from typing import Optional

from ..utils.logger import setup_logger
from ..models.auth import (
    ErrorKind, SignUpRequest, Credentials, UsernameRequest, ConfirmationRequest,
    ChangePasswordRequest, OperationResponse, AuthStatus, TokenResponse,
    UserDetailsResponse, DeviceListResponse
)
from ..flow import AuthFlow, FlowForm, FlowOutcome, FlowStage
from .errors import AuthError, TIMEOUT_ERROR_KIND
from .manager import AuthSessionManager

logger = setup_logger(__name__)

router = APIRouter(prefix="/auth", tags=["authentication"])

_STATUS_CODES = {
    ErrorKind.INVALID_CONFIGURATION: 503,
    ErrorKind.USER_NOT_FOUND: 404,
    ErrorKind.NOT_SIGNED_IN: 401,
    ErrorKind.NOT_CONFIRMED: 403,
    ErrorKind.FEATURE_UNAVAILABLE: 409,
    ErrorKind.PROVIDER_REJECTED: 400,
}


def status_code_for(error: AuthError) -> int:
    if error.provider_kind == TIMEOUT_ERROR_KIND:
        return 504
    return _STATUS_CODES[error.kind]


async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    """Render an AuthError raised by any route"""
    logger.warning(f"{request.method} {request.url.path} failed: {exc.kind.value}")
    body = OperationResponse(success=False, error=exc.to_info())
    return JSONResponse(
        content=body.model_dump(mode="json"),
        status_code=status_code_for(exc)
    )


def get_auth_manager(request: Request) -> AuthSessionManager:
    """Session manager owned by the running application"""
    return request.app.state.auth_manager


def get_auth_flow(request: Request) -> AuthFlow:
    return request.app.state.auth_flow


@router.post("/signup", response_model=OperationResponse)
async def sign_up(body: SignUpRequest, manager: AuthSessionManager = Depends(get_auth_manager)):
    """
    Register a new account
    """
    user = await manager.sign_up(body.username, body.password, body.attributes)
    return OperationResponse(success=True, message="Sign up successful", user=user)


@router.post("/confirm", response_model=OperationResponse)
async def confirm_sign_up(body: ConfirmationRequest, manager: AuthSessionManager = Depends(get_auth_manager)):
    """
    Confirm a registration; sign in afterwards
    """
    await manager.confirm_sign_up(body.username, body.code)
    return OperationResponse(success=True, message="Sign up confirmed")


@router.post("/confirm/resend", response_model=OperationResponse)
async def resend_confirmation_code(body: UsernameRequest, manager: AuthSessionManager = Depends(get_auth_manager)):
    await manager.resend_confirmation_code(body.username)
    return OperationResponse(success=True, message="Confirmation code sent")


@router.post("/signin", response_model=TokenResponse)
async def sign_in(body: Credentials, manager: AuthSessionManager = Depends(get_auth_manager)):
    """
    Sign in with username and password
    """
    tokens = await manager.sign_in(body.username, body.password)
    return TokenResponse(success=True, tokens=tokens)


@router.post("/forgot-password", response_model=OperationResponse)
async def send_forgot_password_code(body: UsernameRequest, manager: AuthSessionManager = Depends(get_auth_manager)):
    """
    Send a password reset code
    """
    await manager.send_forgot_password_code(body.username)
    return OperationResponse(success=True, message="Reset code sent")


@router.post("/forgot-password/confirm", response_model=OperationResponse)
async def confirm_forgot_password(body: ConfirmationRequest, manager: AuthSessionManager = Depends(get_auth_manager)):
    """
    Set a new password with the reset code; sign in afterwards
    """
    if not body.new_password:
        return JSONResponse(
            content=OperationResponse(success=False, message="Code and new password is required").model_dump(mode="json"),
            status_code=422
        )

    await manager.confirm_forgot_password(body.username, body.code, body.new_password)
    return OperationResponse(success=True, message="Password reset")


@router.post("/change-password", response_model=OperationResponse)
async def change_password(body: ChangePasswordRequest, manager: AuthSessionManager = Depends(get_auth_manager)):
    await manager.change_password(body.old_password, body.new_password)
    return OperationResponse(success=True, message="Password changed.")


@router.post("/signout", response_model=OperationResponse)
async def sign_out(flow: AuthFlow = Depends(get_auth_flow)):
    """
    Sign out and forget the last known user
    """
    flow.sign_out()
    return OperationResponse(success=True, message="Signed out")


@router.get("/status", response_model=AuthStatus)
async def auth_status(manager: AuthSessionManager = Depends(get_auth_manager)):
    """
    Get current authentication status
    """
    state = manager.state()
    user = state.current_user if state.signed_in else None
    return AuthStatus(
        is_authenticated=state.signed_in,
        username=user.username if user else None,
        device_id=user.device_id if user else None,
        last_error=state.last_error
    )


@router.get("/tokens", response_model=TokenResponse)
async def get_tokens(manager: AuthSessionManager = Depends(get_auth_manager)):
    """
    Current tokens with their decoded claims
    """
    tokens = await manager.get_tokens()
    return TokenResponse(
        success=True,
        tokens=tokens,
        claims={
            name: tokens.claims(name)
            for name in ("id_token", "access_token", "refresh_token")
        }
    )


@router.get("/user", response_model=UserDetailsResponse)
async def get_user_details(manager: AuthSessionManager = Depends(get_auth_manager)):
    """
    Provider-stored attributes of the signed-in user
    """
    attributes = await manager.get_current_user_details()
    return UserDetailsResponse(
        success=True,
        username=manager.get_current_username(),
        attributes=attributes
    )


@router.get("/devices", response_model=DeviceListResponse)
async def list_devices(
    limit: Optional[int] = Query(None, ge=1, le=60, description="Devices per page"),
    pagination_token: Optional[str] = Query(None, description="Token from the previous page"),
    manager: AuthSessionManager = Depends(get_auth_manager)
):
    """
    List devices remembered for the signed-in user
    """
    try:
        page = await manager.list_devices(limit=limit, pagination_token=pagination_token)
    except AuthError as e:
        return JSONResponse(
            content=DeviceListResponse(success=False, error=e.to_info()).model_dump(mode="json"),
            status_code=status_code_for(e)
        )

    return DeviceListResponse(success=True, devices=page.devices, pagination_token=page.pagination_token)


@router.post("/flow/start", response_model=FlowOutcome)
async def start_flow(stage: FlowStage, flow: AuthFlow = Depends(get_auth_flow)):
    """
    Enter the sign in, sign up or forgot password ritual
    """
    try:
        current = flow.start(stage)
    except ValueError as e:
        return JSONResponse(
            content=FlowOutcome(stage=flow.stage, success=False, message=str(e)).model_dump(mode="json"),
            status_code=400
        )
    return FlowOutcome(stage=current, success=True)


@router.post("/flow/submit", response_model=FlowOutcome)
async def submit_flow(form: FlowForm, flow: AuthFlow = Depends(get_auth_flow)):
    """
    Submit the inputs of the current ritual step
    """
    try:
        return await flow.submit(form)
    except ValueError as e:
        return JSONResponse(
            content=FlowOutcome(stage=flow.stage, success=False, message=str(e)).model_dump(mode="json"),
            status_code=400
        )
