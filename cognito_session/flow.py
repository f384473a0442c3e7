"""
Multi-step authentication flow

Tracks which step of a sign-in, sign-up or password-reset ritual the caller
is on, validates the inputs that step needs and routes the outcome of each
manager call to the next step.
"""
from enum import Enum
from typing import Optional, Tuple, Dict, NamedTuple

from pydantic import BaseModel, Field

from .auth.errors import AuthError, NotConfirmed
from .auth.manager import AuthSessionManager
from .models.auth import AuthErrorInfo, ConfirmationStatus
from .utils.logger import setup_logger

logger = setup_logger(__name__)


class FlowStage(str, Enum):
    """Caller-visible step of an authentication ritual"""
    IDLE = "idle"
    SIGN_IN = "sign_in"
    SIGN_UP = "sign_up"
    AWAITING_SIGN_UP_CONFIRMATION = "awaiting_sign_up_confirmation"
    AWAITING_FORGOT_PASSWORD_CODE = "awaiting_forgot_password_code"
    AWAITING_FORGOT_PASSWORD_CONFIRMATION = "awaiting_forgot_password_confirmation"
    SIGNED_IN = "signed_in"

    @property
    def heading(self) -> str:
        return _STAGE_INFO[self].heading

    @property
    def action(self) -> Optional[str]:
        return _STAGE_INFO[self].action

    @property
    def required_fields(self) -> Tuple[str, ...]:
        return _STAGE_INFO[self].required_fields


class StageInfo(NamedTuple):
    heading: str
    action: Optional[str]
    required_fields: Tuple[str, ...]
    missing_message: Optional[str]


_STAGE_INFO: Dict[FlowStage, StageInfo] = {
    FlowStage.IDLE: StageInfo("Cognito Authentication", None, (), None),
    FlowStage.SIGN_IN: StageInfo(
        "Sign In", "Sign In", ("username", "password"),
        "Username and password are required"
    ),
    FlowStage.SIGN_UP: StageInfo(
        "Sign Up", "Sign Up", ("username", "password"),
        "Username and password are required"
    ),
    FlowStage.AWAITING_SIGN_UP_CONFIRMATION: StageInfo(
        "Confirm Sign up", "Confirm", ("code",),
        "Code is required"
    ),
    FlowStage.AWAITING_FORGOT_PASSWORD_CODE: StageInfo(
        "Forgot Password", "Send Reset Code", ("username",),
        "Username is required"
    ),
    FlowStage.AWAITING_FORGOT_PASSWORD_CONFIRMATION: StageInfo(
        "Enter Confirmation Code and New Password", "Reset Password", ("code", "password"),
        "Code and new password is required"
    ),
    FlowStage.SIGNED_IN: StageInfo("Signed In", None, (), None),
}

ENTRY_STAGES = (FlowStage.SIGN_IN, FlowStage.SIGN_UP, FlowStage.AWAITING_FORGOT_PASSWORD_CODE)


class FlowForm(BaseModel):
    """Inputs collected across the steps of one ritual"""
    username: str = ""
    password: str = ""
    code: str = ""

    def missing(self, fields: Tuple[str, ...]) -> bool:
        return any(not getattr(self, name).strip() for name in fields)


class FlowOutcome(BaseModel):
    """Result of submitting one step"""
    stage: FlowStage = Field(..., description="Stage after the submission")
    success: bool = Field(..., description="Whether the step succeeded")
    message: Optional[str] = Field(None, description="Input validation message")
    error: Optional[AuthErrorInfo] = Field(None, description="Manager error, if any")


class AuthFlow:
    """Drives an AuthSessionManager through one authentication ritual"""

    def __init__(self, manager: AuthSessionManager):
        self.manager = manager
        self.stage = FlowStage.SIGNED_IN if manager.signed_in else FlowStage.IDLE

    def start(self, stage: FlowStage) -> FlowStage:
        """Enter a ritual at one of its entry stages"""
        if stage not in ENTRY_STAGES:
            raise ValueError(f"{stage.value} is not an entry stage")
        self.stage = stage
        return self.stage

    def sign_out(self) -> FlowStage:
        self.manager.sign_out()
        self.stage = FlowStage.IDLE
        return self.stage

    async def submit(self, form: FlowForm) -> FlowOutcome:
        """
        Validate the form for the current stage and run the matching operation

        Args:
            form: Collected inputs

        Returns:
            FlowOutcome: Next stage plus any validation message or error
        """
        info = _STAGE_INFO[self.stage]
        if info.action is None:
            raise ValueError(f"Nothing to submit in stage {self.stage.value}")

        if form.missing(info.required_fields):
            return FlowOutcome(stage=self.stage, success=False, message=info.missing_message)

        handler = getattr(self, _HANDLERS[self.stage])
        try:
            self.stage = await handler(form)
        except AuthError as e:
            return FlowOutcome(stage=self._stage_after_error(e), success=False, error=e.to_info())

        return FlowOutcome(stage=self.stage, success=True)

    def _stage_after_error(self, error: AuthError) -> FlowStage:
        # An unconfirmed account is sent to the confirmation step instead of failing
        if isinstance(error, NotConfirmed) and self.stage == FlowStage.SIGN_IN:
            self.stage = FlowStage.AWAITING_SIGN_UP_CONFIRMATION
        return self.stage

    async def _sign_in(self, form: FlowForm) -> FlowStage:
        await self.manager.sign_in(form.username, form.password)
        return FlowStage.SIGNED_IN

    async def _sign_up(self, form: FlowForm) -> FlowStage:
        identity = await self.manager.sign_up(form.username, form.password)

        if identity.confirmed == ConfirmationStatus.CONFIRMED:
            if not identity.signed_in:
                await self.manager.sign_in(form.username, form.password)
            return FlowStage.SIGNED_IN
        if identity.confirmed == ConfirmationStatus.UNCONFIRMED:
            return FlowStage.AWAITING_SIGN_UP_CONFIRMATION
        return self.stage

    async def _confirm_sign_up(self, form: FlowForm) -> FlowStage:
        await self.manager.confirm_sign_up(form.username, form.code)
        return await self._sign_in_after_confirmation(form)

    async def _send_forgot_password_code(self, form: FlowForm) -> FlowStage:
        await self.manager.send_forgot_password_code(form.username)
        return FlowStage.AWAITING_FORGOT_PASSWORD_CONFIRMATION

    async def _confirm_forgot_password(self, form: FlowForm) -> FlowStage:
        await self.manager.confirm_forgot_password(form.username, form.code, form.password)
        return await self._sign_in_after_confirmation(form)

    async def _sign_in_after_confirmation(self, form: FlowForm) -> FlowStage:
        # Confirming never establishes a session at the provider
        self.stage = FlowStage.SIGN_IN
        await self.manager.sign_in(form.username, form.password)
        return FlowStage.SIGNED_IN


_HANDLERS: Dict[FlowStage, str] = {
    FlowStage.SIGN_IN: "_sign_in",
    FlowStage.SIGN_UP: "_sign_up",
    FlowStage.AWAITING_SIGN_UP_CONFIRMATION: "_confirm_sign_up",
    FlowStage.AWAITING_FORGOT_PASSWORD_CODE: "_send_forgot_password_code",
    FlowStage.AWAITING_FORGOT_PASSWORD_CONFIRMATION: "_confirm_forgot_password",
}

# Every stage needs metadata, and every stage with an action needs exactly one handler
_unwired = (set(FlowStage) - set(_STAGE_INFO)) | (
    {stage for stage, info in _STAGE_INFO.items() if info.action} ^ set(_HANDLERS)
)
if _unwired:
    raise RuntimeError(f"Flow stages not wired: {sorted(stage.value for stage in _unwired)}")
