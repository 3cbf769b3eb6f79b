"""
Authentication endpoints: registration with email verification, login and
password reset.
"""
from fastapi import APIRouter, Depends, status

from signal_gate.api.dependencies import get_services
from signal_gate.api.schemas import (
    EmailRequest,
    LoginRequest,
    LoginResponse,
    MessageResponse,
    OtpSentResponse,
    RegisterRequest,
    RegistrationResponse,
    ResetPasswordRequest,
    VerifyOtpRequest,
)
from signal_gate.services.container import ServiceContainer
from signal_gate.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/api/v1/auth", tags=["authentication"])


@router.post("/register", response_model=OtpSentResponse)
async def register(body: RegisterRequest, services: ServiceContainer = Depends(get_services)) -> OtpSentResponse:
    """
    Start registration.

    Checks that the username and email are free and emails a one-time code.
    The account is created by ``/verify-otp``.
    """
    expires_at = await services.accounts.start_registration(body.username, body.email, body.password)
    return OtpSentResponse(email=body.email, expires_at=expires_at)


@router.post("/verify-otp", response_model=RegistrationResponse, status_code=status.HTTP_201_CREATED)
async def verify_otp(body: VerifyOtpRequest, services: ServiceContainer = Depends(get_services)) -> RegistrationResponse:
    """Verify the emailed code and create the account."""
    profile = await services.accounts.complete_registration(
        body.email, body.otp, body.username, body.password
    )
    logger.info(f"Registered account {profile.id}")
    return RegistrationResponse(message="Registered!", user=profile)


@router.post("/resend-otp", response_model=OtpSentResponse)
async def resend_otp(body: EmailRequest, services: ServiceContainer = Depends(get_services)) -> OtpSentResponse:
    expires_at = await services.accounts.resend_code(body.email)
    return OtpSentResponse(message="OTP resent successfully", email=body.email, expires_at=expires_at)


@router.post("/login", response_model=LoginResponse)
async def login(body: LoginRequest, services: ServiceContainer = Depends(get_services)) -> LoginResponse:
    result = await services.accounts.login(body.email, body.password)
    return LoginResponse(
        token=result["token"],
        expires_in=services.settings.api.jwt_expiry_hours * 3600,
        user=result["user"],
    )


@router.post("/forgot-password", response_model=OtpSentResponse)
async def forgot_password(body: EmailRequest, services: ServiceContainer = Depends(get_services)) -> OtpSentResponse:
    expires_at = await services.accounts.start_password_reset(body.email)
    return OtpSentResponse(email=body.email, expires_at=expires_at, requires_otp_verification=True)


@router.post("/reset-password", response_model=MessageResponse)
async def reset_password(body: ResetPasswordRequest, services: ServiceContainer = Depends(get_services)) -> MessageResponse:
    await services.accounts.complete_password_reset(body.email, body.otp, body.new_password)
    return MessageResponse(message="Password reset successful")
