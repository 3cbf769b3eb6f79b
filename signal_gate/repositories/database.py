"""
Relational store: ORM tables, engine lifecycle and error translation.

SQLAlchemy 2.0 async. SQLite (aiosqlite) is the default; PostgreSQL
(asyncpg) is used when ``DATABASE_URL`` points at it.
"""
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    MetaData,
    String,
    Text,
)
from sqlalchemy.exc import (
    IntegrityError,
    InterfaceError,
    OperationalError,
    SQLAlchemyError,
)
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from signal_gate.config.settings import DatabaseConfig
from signal_gate.exceptions import ConflictError, ExternalServiceError, InternalError
from signal_gate.utils.clock import utc_now
from signal_gate.utils.logging import get_logger

logger = get_logger(__name__)

NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


class Base(DeclarativeBase):
    """Base class for all ORM models with naming convention."""
    metadata = MetaData(naming_convention=NAMING_CONVENTION)


class AccountRecord(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    credential_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(String(16), nullable=False, default="user")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)


class SubscriptionRecord(Base):
    """One row per account; ``account_id`` is the upsert key."""
    __tablename__ = "subscriptions"

    account_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="expired")
    end_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)

    __table_args__ = (
        Index("idx_subscriptions_status_end_date", "status", "end_date"),
    )


class SignalRecord(Base):
    __tablename__ = "signals"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    pair: Mapped[str] = mapped_column(String(10), nullable=False)
    direction: Mapped[str] = mapped_column(String(4), nullable=False)
    entry_price: Mapped[float] = mapped_column(Float, nullable=False)
    stop_loss: Mapped[float] = mapped_column(Float, nullable=False)
    take_profit: Mapped[float] = mapped_column(Float, nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text)
    is_approved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utc_now)

    __table_args__ = (
        Index("idx_signals_approved_created", "is_approved", "created_at"),
    )


class Database:
    """Owns the async engine and hands out sessions."""

    def __init__(self, config: DatabaseConfig):
        self.config = config
        engine_kwargs = {"echo": config.echo, "pool_pre_ping": True}
        if not config.url.startswith("sqlite"):
            engine_kwargs.update(pool_size=config.pool_size, max_overflow=config.max_overflow)

        self.engine: AsyncEngine = create_async_engine(config.url, **engine_kwargs)
        self._sessionmaker = async_sessionmaker(self.engine, expire_on_commit=False)

    @property
    def dialect(self) -> str:
        return self.engine.dialect.name

    async def create_tables(self) -> None:
        """Create missing tables."""
        try:
            async with self.engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        except (OperationalError, InterfaceError, OSError) as e:
            logger.error(f"Failed to create tables: {e}")
            raise ExternalServiceError("Database") from e
        logger.info(f"Database schema ready ({self.dialect})")

    async def dispose(self) -> None:
        await self.engine.dispose()

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """
        Session scope that translates driver errors into the platform taxonomy.

        Raw database errors never leave this context manager.
        """
        async with self._sessionmaker() as session:
            try:
                yield session
            except IntegrityError as e:
                logger.warning(f"Integrity violation: {e.orig}")
                raise ConflictError() from e
            except (OperationalError, InterfaceError, OSError) as e:
                logger.error(f"Database unavailable: {e}")
                raise ExternalServiceError("Database") from e
            except SQLAlchemyError as e:
                logger.error(f"Database operation failed: {e}", exc_info=True)
                raise InternalError("Database operation failed") from e
