"""
Shared pytest fixtures.
"""

import re
from datetime import datetime, timedelta, timezone
from typing import List, Set, Tuple

import pytest
import pytest_asyncio

from signal_gate.config.settings import MonitoringConfig, Settings
from signal_gate.exceptions import ExternalServiceError
from signal_gate.models.account import UserRole
from signal_gate.services.account_service import get_password_hash
from signal_gate.services.chat_service import ChatClient
from signal_gate.services.container import ServiceContainer
from signal_gate.services.email_service import EmailSender
from signal_gate.utils.monitoring import setup_monitoring

T0 = datetime(2025, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Settable clock shared by every service under test."""

    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class RecordingEmailSender(EmailSender):
    """Collects outgoing mail; addresses in ``fail_for`` raise."""

    def __init__(self):
        self.sent: List[Tuple[str, str, str]] = []
        self.fail_for: Set[str] = set()
        self.fail_all = False

    async def send(self, to: str, subject: str, html_body: str) -> None:
        if self.fail_all or to in self.fail_for:
            raise ExternalServiceError("Email service")
        self.sent.append((to, subject, html_body))

    def recipients(self) -> List[str]:
        return [to for to, _, _ in self.sent]

    def last_code_for(self, email: str) -> str:
        """Pull the six-digit code out of the most recent OTP mail to ``email``."""
        for to, subject, body in reversed(self.sent):
            if to == email and "OTP" in subject:
                return re.search(r">(\d{6})<", body).group(1)
        raise AssertionError(f"No OTP sent to {email}")


class FakeChatClient(ChatClient):
    def __init__(self, answer: str = "Manage your risk."):
        self.answer = answer
        self.prompts: List[str] = []

    async def ask(self, prompt: str) -> str:
        self.prompts.append(prompt)
        return self.answer


@pytest.fixture(autouse=True)
def fresh_metrics():
    """Each test starts with empty counters."""
    return setup_monitoring(MonitoringConfig(enabled=True))


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def email_sender():
    return RecordingEmailSender()


@pytest.fixture
def chat_client():
    return FakeChatClient()


@pytest.fixture
def settings(tmp_path):
    settings = Settings()
    settings.database.url = f"sqlite+aiosqlite:///{tmp_path / 'signal_gate_test.db'}"
    settings.api.jwt_secret = "test-secret-key"
    settings.redis.enabled = False
    return settings


@pytest.fixture
def container(settings, email_sender, chat_client, clock):
    """Service graph that has not been started."""
    return ServiceContainer.from_settings(
        settings,
        email_sender=email_sender,
        chat_client=chat_client,
        clock=clock,
    )


@pytest_asyncio.fixture
async def services(container):
    """Started service graph on a fresh SQLite database."""
    await container.startup()
    yield container
    await container.shutdown()


@pytest.fixture
def make_account(services, clock):
    """Create accounts directly through the repository, skipping the OTP round trip."""
    async def _make(username: str, role: UserRole = UserRole.USER, password: str = "password123"):
        return await services.accounts.accounts.create_with_subscription(
            username=username,
            email=f"{username}@example.com",
            credential_hash=get_password_hash(password),
            now=clock(),
            role=role,
        )

    return _make
