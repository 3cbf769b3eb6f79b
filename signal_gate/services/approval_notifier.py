"""
Approval fan-out.

When a signal goes live, every account whose subscription currently grants
access gets one email. Dispatch runs in a background task so the approval
response never waits on the email provider. Individual failures are logged
and counted, never retried and never surfaced to the approving admin.
"""
import asyncio
from dataclasses import dataclass, field
from typing import List, Optional, Set

from signal_gate.models.signal import Signal
from signal_gate.repositories.signal_repository import SignalRepository
from signal_gate.repositories.subscription_repository import SubscriptionRepository
from signal_gate.services.email_service import EmailSender, signal_email
from signal_gate.utils.clock import Clock, utc_now
from signal_gate.utils.logging import get_logger
from signal_gate.utils.monitoring import get_metrics_collector

logger = get_logger(__name__)


@dataclass
class NotificationReport:
    """Outcome of one fan-out."""
    signal_id: int
    attempted: int = 0
    sent: int = 0
    failed: List[str] = field(default_factory=list)


class ApprovalNotifier:
    """Emails entitled subscribers about newly approved signals."""

    def __init__(
        self,
        signals: SignalRepository,
        subscriptions: SubscriptionRepository,
        email_sender: EmailSender,
        clock: Clock = utc_now,
    ):
        self.signals = signals
        self.subscriptions = subscriptions
        self.email_sender = email_sender
        self._clock = clock
        self._tasks: Set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def schedule(self, signal: Signal) -> asyncio.Task:
        """Start the fan-out for ``signal`` in the background and return at once."""
        task = asyncio.create_task(self._run(signal.id), name=f"notify-signal-{signal.id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(self, signal_id: int) -> Optional[NotificationReport]:
        try:
            return await self.notify(signal_id)
        except Exception as e:
            # Lookup failures end the fan-out; the approval has already committed
            logger.error(f"Notification for signal {signal_id} aborted: {e}", exc_info=True)
            get_metrics_collector().increment_counter("signal_notifications_aborted_total")
            return None

    async def notify(self, signal_id: int) -> NotificationReport:
        """
        Send the approval email for ``signal_id`` to every entitled account.

        The signal and recipient list are loaded now, not when the approval
        was requested. A signal that was deleted or unapproved in the
        meantime is skipped.
        """
        report = NotificationReport(signal_id=signal_id)

        signal = await self.signals.get(signal_id)
        if signal is None or not signal.is_approved:
            logger.info(f"Signal {signal_id} is no longer live, skipping notification")
            return report

        recipients = await self.subscriptions.list_entitled_recipients(self._clock())
        if not recipients:
            logger.info(f"Signal {signal_id} approved with no active subscribers to notify")
            return report

        message = signal_email(signal)
        emails = [email for _, email, _ in recipients]
        report.attempted = len(emails)

        results = await asyncio.gather(
            *(self.email_sender.send(email, message["subject"], message["html"]) for email in emails),
            return_exceptions=True,
        )

        metrics = get_metrics_collector()
        for email, result in zip(emails, results):
            if isinstance(result, BaseException):
                report.failed.append(email)
                logger.error(f"Signal {signal_id} notification to {email} failed: {result}")
                metrics.increment_counter("signal_notifications_total", tags={"outcome": "failed"})
            else:
                report.sent += 1
                metrics.increment_counter("signal_notifications_total", tags={"outcome": "sent"})

        logger.info(
            f"Signal {signal_id} notifications: {report.sent}/{report.attempted} sent, "
            f"{len(report.failed)} failed"
        )
        return report

    async def drain(self) -> None:
        """Wait for every scheduled fan-out to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
