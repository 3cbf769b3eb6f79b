"""
Request and response bodies for the HTTP API.

Signal create/edit bodies are not modelled here; they go through
``SignalDraft`` so the legacy field names keep working.
"""
from datetime import datetime
from typing import List, Optional

from pydantic import AliasChoices, BaseModel, EmailStr, Field

from signal_gate.models.account import AccountProfile, UserRole


class RegisterRequest(BaseModel):
    username: str = Field(..., min_length=3, max_length=50)
    email: EmailStr
    password: str = Field(..., min_length=8)


class VerifyOtpRequest(BaseModel):
    """Completes registration; the account fields are re-sent with the code."""
    email: EmailStr
    otp: str = Field(..., min_length=1, max_length=12)
    username: str = Field(..., min_length=3, max_length=50)
    password: str = Field(..., min_length=8)


class EmailRequest(BaseModel):
    email: EmailStr


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class ResetPasswordRequest(BaseModel):
    email: EmailStr
    otp: str = Field(..., min_length=1, max_length=12)
    new_password: str = Field(
        ..., min_length=8, validation_alias=AliasChoices("new_password", "newPassword")
    )


class OtpSentResponse(BaseModel):
    message: str = "OTP sent"
    requires_otp_verification: bool = True
    email: EmailStr
    expires_at: datetime


class LoginUser(BaseModel):
    id: int
    username: str
    role: UserRole
    subscription_status: str


class LoginResponse(BaseModel):
    token: str
    token_type: str = "bearer"
    expires_in: int
    user: LoginUser


class MessageResponse(BaseModel):
    success: bool = True
    message: str


class RegistrationResponse(MessageResponse):
    user: AccountProfile


class ApprovalRequest(BaseModel):
    approved: bool = Field(..., strict=True)


class GrantRequest(BaseModel):
    duration_days: int = Field(..., gt=0, le=3650, strict=True)


class LegacySubscriptionRequest(BaseModel):
    """Older admin payload: ``{"status": "active", "expiryDays": 30}``."""
    status: str
    expiry_days: Optional[int] = Field(
        None, gt=0, le=3650, validation_alias=AliasChoices("expiry_days", "expiryDays")
    )


class RoleRequest(BaseModel):
    role: UserRole = Field(..., validation_alias=AliasChoices("role", "newRole"))


class ChatRequest(BaseModel):
    prompt: str = Field(..., min_length=1)


class ChatResponse(BaseModel):
    success: bool = True
    answer: str


class UserListResponse(BaseModel):
    users: List[AccountProfile]
    count: int
