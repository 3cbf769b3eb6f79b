"""
Signal repository for database operations.
"""
from datetime import datetime
from typing import List, Optional

from sqlalchemy import delete, select, update

from signal_gate.models.signal import Direction, Signal, SignalDraft
from signal_gate.repositories.database import Database, SignalRecord
from signal_gate.utils.clock import as_utc
from signal_gate.utils.logging import get_logger

logger = get_logger(__name__)


def to_signal(record: SignalRecord) -> Signal:
    return Signal(
        id=record.id,
        pair=record.pair,
        direction=Direction(record.direction),
        entry_price=record.entry_price,
        stop_loss=record.stop_loss,
        take_profit=record.take_profit,
        notes=record.notes,
        is_approved=bool(record.is_approved),
        created_at=as_utc(record.created_at),
    )


class SignalRepository:
    """Repository for signal rows."""

    def __init__(self, database: Database):
        self.database = database

    async def create(self, draft: SignalDraft, notes: str, now: datetime) -> Signal:
        """Insert a new signal in the unapproved state."""
        async with self.database.session() as session:
            record = SignalRecord(
                pair=draft.pair,
                direction=draft.direction.value,
                entry_price=draft.entry_price,
                stop_loss=draft.stop_loss,
                take_profit=draft.take_profit,
                notes=notes,
                is_approved=False,
                created_at=now,
            )
            session.add(record)
            await session.commit()
            return to_signal(record)

    async def get(self, signal_id: int) -> Optional[Signal]:
        async with self.database.session() as session:
            record = await session.get(SignalRecord, signal_id)
            return to_signal(record) if record else None

    async def update(self, signal_id: int, draft: SignalDraft) -> int:
        """
        Overwrite the editable fields of a signal.

        ``is_approved`` and ``created_at`` are never touched. Omitted notes
        keep their stored value. Returns the number of rows affected.
        """
        values = {
            "pair": draft.pair,
            "direction": draft.direction.value,
            "entry_price": draft.entry_price,
            "stop_loss": draft.stop_loss,
            "take_profit": draft.take_profit,
        }
        if draft.notes is not None:
            values["notes"] = draft.notes

        async with self.database.session() as session:
            result = await session.execute(
                update(SignalRecord).where(SignalRecord.id == signal_id).values(**values)
            )
            await session.commit()
            return result.rowcount

    async def delete(self, signal_id: int) -> int:
        async with self.database.session() as session:
            result = await session.execute(delete(SignalRecord).where(SignalRecord.id == signal_id))
            await session.commit()
            return result.rowcount

    async def list(self, approved_only: bool, limit: int) -> List[Signal]:
        """Signals newest first, optionally only approved ones."""
        query = select(SignalRecord)
        if approved_only:
            query = query.where(SignalRecord.is_approved.is_(True))
        query = query.order_by(SignalRecord.created_at.desc(), SignalRecord.id.desc()).limit(limit)

        async with self.database.session() as session:
            result = await session.execute(query)
            return [to_signal(record) for record in result.scalars().all()]

    async def set_approval(self, signal_id: int, approved: bool) -> bool:
        """
        Flip the approval flag only if it differs from ``approved``.

        Returns True when this call changed the row. Concurrent callers
        racing on the same transition see True exactly once.
        """
        async with self.database.session() as session:
            result = await session.execute(
                update(SignalRecord)
                .where(SignalRecord.id == signal_id)
                .where(SignalRecord.is_approved != approved)
                .values(is_approved=approved)
            )
            await session.commit()
            return result.rowcount > 0
