"""
Subscription repository.

The ``subscriptions`` table is the only place subscription state lives.
Writes go through a single atomic insert-or-update keyed by account id, so
two concurrent grant/revoke calls for one account cannot both insert and
the later statement wins.
"""
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite

from signal_gate.exceptions import ValidationError
from signal_gate.models.subscription import Subscription, SubscriptionStatus
from signal_gate.repositories.database import AccountRecord, Database, SubscriptionRecord
from signal_gate.services.subscription_evaluator import normalize_status
from signal_gate.utils.clock import as_utc
from signal_gate.utils.logging import get_logger

logger = get_logger(__name__)


def stored_status(value: str) -> SubscriptionStatus:
    """Rows written by older versions may hold ``inactive``, ``disabled`` or mixed case."""
    try:
        return normalize_status(value)
    except ValidationError:
        logger.warning(f"Unrecognized stored subscription status {value!r}, treating as expired")
        return SubscriptionStatus.EXPIRED


def to_subscription(record: SubscriptionRecord) -> Subscription:
    return Subscription(
        account_id=record.account_id,
        status=stored_status(record.status),
        end_date=as_utc(record.end_date),
        updated_at=as_utc(record.updated_at),
    )


class SubscriptionRepository:
    """Repository for subscription rows."""

    def __init__(self, database: Database):
        self.database = database

    async def get(self, account_id: int) -> Optional[Subscription]:
        async with self.database.session() as session:
            record = await session.get(SubscriptionRecord, account_id)
            return to_subscription(record) if record else None

    async def upsert(
        self,
        account_id: int,
        status: SubscriptionStatus,
        end_date: datetime,
        now: datetime,
    ) -> Subscription:
        """Set or create the account's subscription in one statement."""
        dialect = self.database.dialect
        if dialect == "postgresql":
            insert = postgresql.insert
        elif dialect == "sqlite":
            insert = sqlite.insert
        else:
            raise NotImplementedError(f"Subscription upsert not supported on {dialect}")

        values = {
            "account_id": account_id,
            "status": status.value,
            "end_date": end_date,
            "updated_at": now,
        }
        stmt = insert(SubscriptionRecord).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[SubscriptionRecord.account_id],
            set_={
                "status": stmt.excluded.status,
                "end_date": stmt.excluded.end_date,
                "updated_at": stmt.excluded.updated_at,
            },
        )

        async with self.database.session() as session:
            await session.execute(stmt)
            await session.commit()

        logger.info(f"Subscription for account {account_id} set to {status.value} until {end_date.isoformat()}")
        return Subscription(
            account_id=account_id,
            status=status,
            end_date=as_utc(end_date),
            updated_at=as_utc(now),
        )

    async def list_entitled_recipients(self, now: datetime) -> List[Tuple[int, str, Subscription]]:
        """
        Accounts whose stored subscription is active and not yet past its end date.

        Returns ``(account_id, email, subscription)`` tuples.
        """
        async with self.database.session() as session:
            result = await session.execute(
                select(AccountRecord.id, AccountRecord.email, SubscriptionRecord)
                .join(SubscriptionRecord, SubscriptionRecord.account_id == AccountRecord.id)
                .where(SubscriptionRecord.status == SubscriptionStatus.ACTIVE.value)
                .where(SubscriptionRecord.end_date > now)
                .order_by(AccountRecord.id)
            )
            return [
                (account_id, email, to_subscription(record))
                for account_id, email, record in result.all()
            ]
