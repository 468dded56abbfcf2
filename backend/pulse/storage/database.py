"""Database connection and table definitions."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    DateTime,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import declarative_base

from pulse.config import get_settings

Base = declarative_base()


class SignalTable(Base):
    """Generated trading signals."""

    __tablename__ = "signals"

    id = Column(String(36), primary_key=True)
    exchange = Column(String(32), nullable=False)
    pair = Column(String(32), nullable=False)
    direction = Column(String(4), nullable=False)  # BUY / SELL
    entry_price = Column(Numeric(28, 8), nullable=False)
    stop_loss = Column(Numeric(28, 8), nullable=False)
    take_profit = Column(Numeric(28, 8), nullable=False)
    confidence = Column(Integer, nullable=False)
    indicators = Column(JSONB, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    active = Column(Boolean, nullable=False, default=True)

    __table_args__ = (
        Index("idx_signals_pair_active", "exchange", "pair", "active"),
        Index("idx_signals_active_expires", "active", "expires_at"),
        Index("idx_signals_created", "created_at"),
    )


class TradeTable(Base):
    """Trades executed against signals."""

    __tablename__ = "trades"

    id = Column(String(36), primary_key=True)
    user_id = Column(String(64), nullable=False)
    exchange = Column(String(32), nullable=False)
    pair = Column(String(32), nullable=False)
    signal_id = Column(String(36), nullable=True)
    direction = Column(String(4), nullable=False)
    entry_price = Column(Numeric(28, 8), nullable=False)
    quantity = Column(Numeric(28, 8), nullable=False)
    stop_loss = Column(Numeric(28, 8), nullable=True)
    take_profit = Column(Numeric(28, 8), nullable=True)
    status = Column(String(10), nullable=False, default="open")
    pnl = Column(Numeric(28, 8), nullable=True)
    pnl_percent = Column(Numeric(12, 4), nullable=True)
    close_price = Column(Numeric(28, 8), nullable=True)
    exchange_order_id = Column(String(64), nullable=True)
    executed_at = Column(DateTime(timezone=True), nullable=False)
    closed_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("idx_trades_user_status", "user_id", "status"),
        Index("idx_trades_user_executed", "user_id", "executed_at"),
    )


class TrackedPairTable(Base):
    """Pairs users follow; the scanner's work list."""

    __tablename__ = "tracked_pairs"

    id = Column(BigInteger, primary_key=True, autoincrement=True)
    user_id = Column(String(64), nullable=False)
    exchange = Column(String(32), nullable=False)
    pair = Column(String(32), nullable=False)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=text("NOW()"))

    __table_args__ = (
        Index("idx_tracked_pairs_user_pair", "user_id", "exchange", "pair", unique=True),
        Index("idx_tracked_pairs_pair_active", "exchange", "pair", "active"),
    )


class ExchangeKeyTable(Base):
    """Per-user exchange API credentials."""

    __tablename__ = "exchange_keys"

    user_id = Column(String(64), primary_key=True)
    exchange = Column(String(32), primary_key=True)
    api_key = Column(Text, nullable=False)
    api_secret = Column(Text, nullable=False)
    passphrase = Column(Text, nullable=True)
    is_validated = Column(Boolean, nullable=False, default=False)
    updated_at = Column(DateTime(timezone=True), server_default=text("NOW()"))


class DeviceTokenTable(Base):
    """Push notification device tokens."""

    __tablename__ = "device_tokens"

    token = Column(String(512), primary_key=True)
    user_id = Column(String(64), nullable=False)
    platform = Column(String(16), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=text("NOW()"))

    __table_args__ = (
        Index("idx_device_tokens_user", "user_id"),
    )


class NotificationTable(Base):
    """Notification history per user."""

    __tablename__ = "notifications"

    id = Column(BigInteger, primary_key=True, autoincrement=True)
    user_id = Column(String(64), nullable=False)
    type = Column(String(32), nullable=False, default="signal")
    title = Column(String(255), nullable=False)
    body = Column(Text, nullable=False)
    data = Column(JSONB, nullable=False, default=dict)
    read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), server_default=text("NOW()"))

    __table_args__ = (
        Index("idx_notifications_user_created", "user_id", "created_at"),
    )


class Database:
    """Database connection manager."""

    def __init__(self, database_url: str | None = None):
        settings = get_settings()
        url = database_url or settings.database_url

        # Convert postgresql:// to postgresql+asyncpg://
        if url.startswith("postgresql://"):
            url = url.replace("postgresql://", "postgresql+asyncpg://", 1)

        statement_timeout_ms = int(settings.store_timeout * 1000)
        self.engine = create_async_engine(
            url,
            echo=settings.debug,
            pool_size=10,
            max_overflow=20,
            pool_pre_ping=True,
            pool_recycle=3600,
            pool_timeout=30,
            connect_args={
                "timeout": 10,
                "command_timeout": settings.store_timeout,
                "server_settings": {
                    "statement_timeout": str(statement_timeout_ms),
                },
            },
        )
        self.session_factory = async_sessionmaker(
            self.engine, class_=AsyncSession, expire_on_commit=False
        )

    async def create_tables(self) -> None:
        """Create all tables."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """Get a database session."""
        async with self.session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def close(self) -> None:
        """Close database connection."""
        await self.engine.dispose()


# Global database instance
_db: Database | None = None


def get_database() -> Database:
    """Get the global database instance."""
    global _db
    if _db is None:
        _db = Database()
    return _db


async def init_database() -> Database:
    """Initialize the database and create tables."""
    db = get_database()
    await db.create_tables()
    return db
