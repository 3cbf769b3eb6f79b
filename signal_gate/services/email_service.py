"""
Outbound email.

``ResendEmailSender`` posts to the Resend HTTP API. When no API key is
configured, ``LoggingEmailSender`` writes messages to the log instead so
development setups can read one-time codes from the console.
"""
import asyncio
import html
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import aiohttp

from signal_gate.config.settings import EmailConfig
from signal_gate.exceptions import ExternalServiceError
from signal_gate.models.signal import Direction, Signal
from signal_gate.utils.logging import get_logger

logger = get_logger(__name__)


class EmailSender(ABC):
    """Sends one HTML email. Raises ``ExternalServiceError`` on failure."""

    @abstractmethod
    async def send(self, to: str, subject: str, html_body: str) -> None:
        ...

    async def close(self) -> None:
        pass


class ResendEmailSender(EmailSender):
    """Email sender backed by the Resend API."""

    def __init__(self, config: EmailConfig):
        self.config = config
        self._session: Optional[aiohttp.ClientSession] = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.config.timeout)
            )
        return self._session

    async def send(self, to: str, subject: str, html_body: str) -> None:
        payload: Dict[str, Any] = {
            "from": self.config.from_address,
            "to": to,
            "subject": subject,
            "html": html_body,
        }
        headers = {"Authorization": f"Bearer {self.config.api_key}"}

        try:
            async with self._get_session().post(self.config.api_url, json=payload, headers=headers) as response:
                if response.status >= 400:
                    body = await response.text()
                    logger.error(f"Email provider rejected message to {to}: {response.status} {body[:200]}")
                    raise ExternalServiceError("Email service")
                logger.info(f"Email sent to {to}: {subject}")
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(f"Email dispatch to {to} failed: {e}")
            raise ExternalServiceError("Email service") from e

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()


class LoggingEmailSender(EmailSender):
    """Development sender that only logs."""

    async def send(self, to: str, subject: str, html_body: str) -> None:
        logger.warning(f"Email delivery not configured; would send to {to}: {subject}")
        logger.debug(html_body)


def build_email_sender(config: EmailConfig) -> EmailSender:
    if config.api_key:
        return ResendEmailSender(config)
    logger.warning("RESEND_API_KEY not set, emails will only be logged")
    return LoggingEmailSender()


# Message templates

def otp_email(code: str, ttl_minutes: int) -> Dict[str, str]:
    subject = "Shadow Howl - Email Verification OTP"
    body = f"""
        <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
          <h2 style="color: #0066ff;">Shadow Howl - Email Verification</h2>
          <p>Your one-time password (OTP) is:</p>
          <h1 style="color: #0066ff; letter-spacing: 5px; font-size: 36px;">{html.escape(code)}</h1>
          <p style="color: #666;">This OTP will expire in {ttl_minutes} minutes.</p>
          <p style="color: #999; font-size: 12px;">If you didn't request this, please ignore this email.</p>
          <p style="color: #999; font-size: 12px;">Never share your OTP with anyone.</p>
        </div>
    """
    return {"subject": subject, "html": body}


def signal_email(signal: Signal) -> Dict[str, str]:
    direction = signal.direction.value
    color = "#22c55e" if signal.direction == Direction.BUY else "#ef4444"
    subject = f"NEW SIGNAL: {signal.pair} ({direction})"
    body = f"""
        <div style="font-family: sans-serif; background: #111; color: white; padding: 20px; border-radius: 10px;">
          <h2 style="color: #3b82f6;">New Trading Signal Approved!</h2>
          <p><strong>Pair:</strong> {html.escape(signal.pair)}</p>
          <p><strong>Direction:</strong> <span style="color: {color}">{direction}</span></p>
          <p><strong>Entry Price:</strong> {signal.entry_price}</p>
          <p><strong>Stop Loss:</strong> {signal.stop_loss}</p>
          <p><strong>Take Profit:</strong> {signal.take_profit}</p>
          <br>
          <p style="font-size: 12px; color: #666;">Check the dashboard for more details.</p>
        </div>
    """
    return {"subject": subject, "html": body}
