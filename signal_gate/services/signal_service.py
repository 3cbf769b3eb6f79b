"""
Signal lifecycle: create, edit, approve/unapprove, delete and filtered reads.

A signal is a draft until approved. The first transition to approved
schedules the subscriber notification; repeated approvals and unapprovals
never do.
"""
from typing import Any, List, Mapping, Union

from signal_gate.config.settings import SignalConfig
from signal_gate.exceptions import NotFoundError
from signal_gate.models.signal import Signal, SignalDraft, parse_signal_draft
from signal_gate.repositories.signal_repository import SignalRepository
from signal_gate.services.access_control import AccessControl
from signal_gate.services.approval_notifier import ApprovalNotifier
from signal_gate.utils.clock import Clock, utc_now
from signal_gate.utils.logging import get_logger
from signal_gate.utils.monitoring import get_metrics_collector

logger = get_logger(__name__)

SignalFields = Union[SignalDraft, Mapping[str, Any]]


class SignalService:
    """Admin signal management and subscriber reads."""

    def __init__(
        self,
        config: SignalConfig,
        repository: SignalRepository,
        access_control: AccessControl,
        notifier: ApprovalNotifier,
        clock: Clock = utc_now,
    ):
        self.config = config
        self.repository = repository
        self.access_control = access_control
        self.notifier = notifier
        self._clock = clock

    async def create(self, fields: SignalFields) -> Signal:
        """Validate ``fields`` and store a new unapproved signal."""
        draft = parse_signal_draft(fields)
        notes = draft.notes if draft.notes is not None and draft.notes.strip() else self.config.default_notes
        signal = await self.repository.create(draft, notes, self._clock())
        get_metrics_collector().increment_counter("signals_created_total")
        logger.info(f"Created signal {signal.id} {signal.pair} {signal.direction.value}")
        return signal

    async def get(self, signal_id: int) -> Signal:
        signal = await self.repository.get(signal_id)
        if signal is None:
            raise NotFoundError("Signal")
        return signal

    async def update(self, signal_id: int, fields: SignalFields) -> Signal:
        """Overwrite the editable fields; approval state and creation time are kept."""
        draft = parse_signal_draft(fields)
        affected = await self.repository.update(signal_id, draft)
        if affected == 0:
            raise NotFoundError("Signal")
        logger.info(f"Updated signal {signal_id}")
        return await self.get(signal_id)

    async def delete(self, signal_id: int) -> bool:
        """Remove a signal. Deleting a missing signal is not an error."""
        deleted = await self.repository.delete(signal_id) > 0
        if deleted:
            logger.info(f"Deleted signal {signal_id}")
        return deleted

    async def list_for(self, account_id: int, role: Any) -> List[Signal]:
        """
        Signals visible to the caller, newest first.

        Raises:
            SubscriptionRequiredError: the caller is not an admin and holds
                no subscription that currently grants access.
        """
        decision = await self.access_control.require_signal_access(account_id, role)
        return await self.repository.list(
            approved_only=decision.approved_only,
            limit=self.config.list_limit,
        )

    async def set_approval(self, signal_id: int, approved: bool) -> Signal:
        """
        Approve or unapprove a signal.

        Only the call that actually flips the flag to approved schedules the
        notification. The notification runs in the background; this returns
        as soon as the flag is committed.
        """
        changed = await self.repository.set_approval(signal_id, approved)
        signal = await self.repository.get(signal_id)
        if signal is None:
            raise NotFoundError("Signal")

        if changed:
            state = "approved" if approved else "unapproved"
            logger.info(f"Signal {signal_id} {state}")
            get_metrics_collector().increment_counter("signal_approvals_total", tags={"state": state})
            if approved:
                self.notifier.schedule(signal)
        return signal
