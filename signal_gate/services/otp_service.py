"""
One-time code issuing and verification.

A code proves control of an email address before an account is created or
its credential is reset. Lifecycle per email: issued, then exactly one of
verified, expired or attempts exhausted. Issuing again replaces the
previous code.
"""
import secrets
from datetime import datetime, timedelta
from typing import Optional

from signal_gate.config.settings import OTPConfig
from signal_gate.exceptions import (
    InvalidOtpError,
    OtpAttemptsExhaustedError,
    OtpExpiredError,
    OtpNotFoundError,
)
from signal_gate.models.otp import OneTimeCode
from signal_gate.repositories.code_store import CodeStore
from signal_gate.services.email_service import EmailSender, otp_email
from signal_gate.utils.clock import Clock, utc_now
from signal_gate.utils.logging import get_logger
from signal_gate.utils.monitoring import get_metrics_collector

logger = get_logger(__name__)


class OTPService:
    """Issues codes by email and checks submitted codes."""

    def __init__(
        self,
        config: OTPConfig,
        store: CodeStore,
        email_sender: EmailSender,
        clock: Clock = utc_now,
    ):
        self.config = config
        self.store = store
        self.email_sender = email_sender
        self._clock = clock

    def generate_code(self) -> str:
        """Uniform random numeric code with no leading-zero bias."""
        return "".join(str(secrets.randbelow(10)) for _ in range(self.config.code_length))

    async def issue(self, email: str) -> datetime:
        """
        Send a fresh code to ``email`` and remember it.

        The code is stored only after the email provider accepted it, so a
        failed dispatch leaves any earlier code untouched.

        Returns:
            The expiry time of the new code.

        Raises:
            ExternalServiceError: the email could not be sent.
        """
        email = email.lower()
        code = self.generate_code()
        expires_at = self._clock() + timedelta(seconds=self.config.ttl_seconds)

        message = otp_email(code, self.config.ttl_seconds // 60)
        await self.email_sender.send(email, message["subject"], message["html"])

        await self.store.put(email, OneTimeCode(code=code, expires_at=expires_at))
        get_metrics_collector().increment_counter("otp_issued_total")
        logger.info(f"Issued one-time code for {email}")
        return expires_at

    async def verify(self, email: str, submitted: str, now: Optional[datetime] = None) -> None:
        """
        Check ``submitted`` against the live code for ``email``.

        Checks run in a fixed order: missing code, expiry, exhausted attempts,
        then the comparison itself. A wrong code costs one attempt; once
        ``max_attempts`` wrong codes were submitted even the right code fails.
        Success consumes the code.
        """
        email = email.lower()
        now = now or self._clock()

        stored = await self.store.get(email)
        if stored is None:
            raise OtpNotFoundError()

        if stored.is_expired(now):
            await self.store.delete(email)
            raise OtpExpiredError()

        if stored.attempts >= self.config.max_attempts:
            await self.store.delete(email)
            raise OtpAttemptsExhaustedError()

        if not secrets.compare_digest(stored.code.encode(), str(submitted).strip().encode()):
            stored.attempts += 1
            await self.store.put(email, stored)
            get_metrics_collector().increment_counter("otp_failed_attempts_total")
            raise InvalidOtpError(self.config.max_attempts - stored.attempts)

        await self.store.delete(email)
        logger.info(f"One-time code verified for {email}")
