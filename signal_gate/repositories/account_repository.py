"""
Account repository for database operations.
"""
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import func, or_, select, update

from signal_gate.exceptions import ConflictError
from signal_gate.models.account import Account, UserRole
from signal_gate.models.subscription import Subscription, SubscriptionStatus
from signal_gate.repositories.database import (
    AccountRecord,
    Database,
    SubscriptionRecord,
)
from signal_gate.repositories.subscription_repository import to_subscription
from signal_gate.utils.clock import as_utc
from signal_gate.utils.logging import get_logger

logger = get_logger(__name__)


def to_account(record: AccountRecord) -> Account:
    return Account(
        id=record.id,
        username=record.username,
        email=record.email,
        credential_hash=record.credential_hash,
        role=UserRole(record.role),
        created_at=as_utc(record.created_at),
    )


class AccountRepository:
    """Repository for account rows."""

    def __init__(self, database: Database):
        self.database = database

    async def get_by_id(self, account_id: int) -> Optional[Account]:
        async with self.database.session() as session:
            record = await session.get(AccountRecord, account_id)
            return to_account(record) if record else None

    async def get_by_email(self, email: str) -> Optional[Account]:
        async with self.database.session() as session:
            result = await session.execute(
                select(AccountRecord).where(func.lower(AccountRecord.email) == email.lower())
            )
            record = result.scalar_one_or_none()
            return to_account(record) if record else None

    async def get_by_username(self, username: str) -> Optional[Account]:
        async with self.database.session() as session:
            result = await session.execute(
                select(AccountRecord).where(AccountRecord.username == username)
            )
            record = result.scalar_one_or_none()
            return to_account(record) if record else None

    async def exists(self, username: str, email: str) -> bool:
        """True if either the username or the email is already taken."""
        async with self.database.session() as session:
            result = await session.execute(
                select(AccountRecord.id)
                .where(or_(
                    func.lower(AccountRecord.email) == email.lower(),
                    AccountRecord.username == username,
                ))
                .limit(1)
            )
            return result.first() is not None

    async def create_with_subscription(
        self,
        username: str,
        email: str,
        credential_hash: str,
        now: datetime,
        role: UserRole = UserRole.USER,
    ) -> Account:
        """
        Insert an account together with its (expired) subscription row.

        Both rows commit in one transaction.
        """
        try:
            async with self.database.session() as session:
                record = AccountRecord(
                    username=username,
                    email=email.lower(),
                    credential_hash=credential_hash,
                    role=role.value,
                    created_at=now,
                )
                session.add(record)
                await session.flush()
                session.add(SubscriptionRecord(
                    account_id=record.id,
                    status=SubscriptionStatus.EXPIRED.value,
                    end_date=now,
                    updated_at=now,
                ))
                await session.commit()
                logger.info(f"Created account {record.id} ({role.value})")
                return to_account(record)
        except ConflictError as e:
            raise ConflictError("Username or email already exists") from e

    async def update_credential(self, account_id: int, credential_hash: str) -> bool:
        async with self.database.session() as session:
            result = await session.execute(
                update(AccountRecord)
                .where(AccountRecord.id == account_id)
                .values(credential_hash=credential_hash)
            )
            await session.commit()
            return result.rowcount > 0

    async def update_role(self, account_id: int, role: UserRole) -> bool:
        async with self.database.session() as session:
            result = await session.execute(
                update(AccountRecord)
                .where(AccountRecord.id == account_id)
                .values(role=role.value)
            )
            await session.commit()
            return result.rowcount > 0

    async def list_with_subscriptions(self) -> List[Tuple[Account, Optional[Subscription]]]:
        """Every account joined with its subscription row, oldest account first."""
        async with self.database.session() as session:
            result = await session.execute(
                select(AccountRecord, SubscriptionRecord)
                .outerjoin(SubscriptionRecord, SubscriptionRecord.account_id == AccountRecord.id)
                .order_by(AccountRecord.id)
            )
            return [
                (to_account(account), to_subscription(subscription) if subscription else None)
                for account, subscription in result.all()
            ]
