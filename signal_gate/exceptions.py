"""
Error taxonomy shared by services, repositories and the HTTP layer.

Every error carries an HTTP-equivalent ``status_code`` and a stable
``error_code`` so the API can render it without inspecting the type.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional


class SignalGateError(Exception):
    """Base exception for the platform."""

    status_code: int = 500
    error_code: str = "INTERNAL_SERVER_ERROR"
    default_message: str = "An unexpected error occurred"

    def __init__(self, message: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        self.message = message or self.default_message
        self.details = details
        self.timestamp = datetime.now(timezone.utc).isoformat()
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        error: Dict[str, Any] = {
            "code": self.error_code,
            "message": self.message,
            "status_code": self.status_code,
            "timestamp": self.timestamp,
        }
        if self.details:
            error["details"] = self.details
        return {"success": False, "error": error}


class ValidationError(SignalGateError):
    """Malformed input, rejected before any mutation."""

    status_code = 400
    error_code = "VALIDATION_ERROR"
    default_message = "Validation failed"


class AuthenticationError(SignalGateError):
    """Missing, invalid or expired credentials."""

    status_code = 401
    error_code = "AUTH_ERROR"
    default_message = "Authentication failed"


class InvalidTokenError(AuthenticationError):
    error_code = "INVALID_TOKEN"
    default_message = "Invalid token. Please log in again."


class ExpiredTokenError(AuthenticationError):
    error_code = "TOKEN_EXPIRED"
    default_message = "Your session has expired. Please log in again."


class AuthorizationError(SignalGateError):
    """Authenticated caller that is not allowed to perform the action."""

    status_code = 403
    error_code = "FORBIDDEN"
    default_message = "You do not have permission to access this resource"
    reason: str = "forbidden"

    def to_dict(self) -> Dict[str, Any]:
        payload = super().to_dict()
        payload["error"]["reason"] = self.reason
        return payload


class RoleRequiredError(AuthorizationError):
    """Caller lacks the role an endpoint requires."""

    reason = "role_required"

    def __init__(self, required_role: str):
        self.required_role = required_role
        super().__init__(
            f"Access Denied: {required_role} role required.",
            details={"required_role": required_role},
        )


class SubscriptionRequiredError(AuthorizationError):
    """Caller is authenticated but holds no active subscription."""

    error_code = "SUBSCRIPTION_REQUIRED"
    reason = "subscription_required"

    def __init__(self, status: str, instruction: str):
        self.status = status
        self.instruction = instruction
        super().__init__(
            "An active subscription is required to view signals.",
            details={"status": status, "instruction": instruction},
        )


class NotFoundError(SignalGateError):
    status_code = 404
    error_code = "NOT_FOUND"

    def __init__(self, resource: str = "Resource", message: Optional[str] = None):
        self.resource = resource
        super().__init__(message or f"{resource} not found")


class ConflictError(SignalGateError):
    status_code = 409
    error_code = "CONFLICT"
    default_message = "Resource already exists"


class ExternalServiceError(SignalGateError):
    """A collaborator (database, email provider, LLM) failed or was unreachable."""

    status_code = 503
    error_code = "SERVICE_UNAVAILABLE"

    def __init__(self, service: str = "External Service", message: Optional[str] = None):
        self.service = service
        super().__init__(
            message or f"{service} is temporarily unavailable. Please try again later."
        )


class InternalError(SignalGateError):
    """Unexpected failure; the message is safe to show, details stay in the logs."""


# One-time code failures. All are 400s; ``reason`` tells them apart.

class OtpError(ValidationError):
    reason: str = "otp_invalid"

    def to_dict(self) -> Dict[str, Any]:
        payload = super().to_dict()
        payload["error"]["reason"] = self.reason
        return payload


class OtpNotFoundError(OtpError):
    error_code = "OTP_NOT_FOUND"
    reason = "not_found"
    default_message = "No OTP found for this email"


class OtpExpiredError(OtpError):
    error_code = "OTP_EXPIRED"
    reason = "expired"
    default_message = "OTP has expired. Request a new one."


class OtpAttemptsExhaustedError(OtpError):
    error_code = "OTP_ATTEMPTS_EXHAUSTED"
    reason = "attempts_exhausted"
    default_message = "Maximum OTP attempts exceeded. Request a new one."


class InvalidOtpError(OtpError):
    error_code = "OTP_INVALID"
    reason = "invalid_code"

    def __init__(self, remaining_attempts: int):
        self.remaining_attempts = remaining_attempts
        super().__init__(
            f"Invalid OTP. {remaining_attempts} attempts remaining.",
            details={"remaining_attempts": remaining_attempts},
        )


# Failures after a one-time code was consumed. The code is gone, so the
# client has to start over from a fresh code.

class CodeConsumedError(SignalGateError):
    error_code = "INTERNAL_SERVER_ERROR"
    instruction = "Request a new OTP and try again."

    def __init__(self, message: Optional[str] = None, cause: Optional[SignalGateError] = None):
        if cause is not None:
            self.status_code = cause.status_code
        super().__init__(message, details={"instruction": self.instruction})


class RegistrationFailedError(CodeConsumedError):
    error_code = "REGISTRATION_FAILED"
    default_message = "Registration failed after verification. Please register again."


class PasswordResetFailedError(CodeConsumedError):
    error_code = "PASSWORD_RESET_FAILED"
    default_message = "Password reset failed after verification. Please request a new code."
