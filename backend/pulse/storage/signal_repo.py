"""Signal data repository."""

from datetime import datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert

from pulse.storage.database import SignalTable, get_database
from pulse_core.models import Direction, IndicatorSet, SignalRecord


class SignalRepository:
    """Repository for signal data operations."""

    async def save(self, signal: SignalRecord) -> None:
        """Save a new signal record."""
        async with get_database().session() as session:
            stmt = insert(SignalTable).values(
                id=signal.id,
                exchange=signal.exchange,
                pair=signal.pair,
                direction=signal.direction.value,
                entry_price=signal.entry_price,
                stop_loss=signal.stop_loss,
                take_profit=signal.take_profit,
                confidence=signal.confidence,
                indicators=signal.indicators.model_dump(mode="json"),
                created_at=signal.created_at,
                expires_at=signal.expires_at,
                active=signal.active,
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=["id"],
                set_={"active": stmt.excluded.active},
            )
            await session.execute(stmt)

    async def get_by_id(self, signal_id: str) -> SignalRecord | None:
        """Get a signal by ID."""
        async with get_database().session() as session:
            stmt = select(SignalTable).where(SignalTable.id == signal_id)
            result = await session.execute(stmt)
            row = result.scalar_one_or_none()

            if row is None:
                return None
            return self._row_to_signal(row)

    async def get_live_for_pair(
        self, exchange: str, pair: str, now: datetime | None = None
    ) -> SignalRecord | None:
        """Get the newest active, unexpired signal for a pair."""
        now = now or datetime.now(timezone.utc)
        async with get_database().session() as session:
            stmt = (
                select(SignalTable)
                .where(
                    SignalTable.exchange == exchange,
                    SignalTable.pair == pair,
                    SignalTable.active.is_(True),
                    SignalTable.expires_at > now,
                )
                .order_by(SignalTable.created_at.desc())
                .limit(1)
            )
            result = await session.execute(stmt)
            row = result.scalar_one_or_none()

            if row is None:
                return None
            return self._row_to_signal(row)

    async def get_active(
        self, exchange: str | None = None, pair: str | None = None
    ) -> list[SignalRecord]:
        """Get all active signals, optionally filtered by exchange/pair."""
        async with get_database().session() as session:
            stmt = select(SignalTable).where(SignalTable.active.is_(True))
            if exchange:
                stmt = stmt.where(SignalTable.exchange == exchange)
            if pair:
                stmt = stmt.where(SignalTable.pair == pair)
            stmt = stmt.order_by(SignalTable.created_at.desc())

            result = await session.execute(stmt)
            rows = result.scalars().all()

            return [self._row_to_signal(row) for row in rows]

    async def get_recent(
        self, limit: int = 100, exchange: str | None = None
    ) -> list[SignalRecord]:
        """Get recent signals."""
        async with get_database().session() as session:
            stmt = select(SignalTable)
            if exchange:
                stmt = stmt.where(SignalTable.exchange == exchange)
            stmt = stmt.order_by(SignalTable.created_at.desc()).limit(limit)

            result = await session.execute(stmt)
            rows = result.scalars().all()

            return [self._row_to_signal(row) for row in rows]

    async def deactivate(self, signal_id: str) -> bool:
        """Mark a signal inactive.

        Returns:
            True if an active signal was flipped
        """
        async with get_database().session() as session:
            stmt = (
                update(SignalTable)
                .where(SignalTable.id == signal_id, SignalTable.active.is_(True))
                .values(active=False)
            )
            result = await session.execute(stmt)
            return result.rowcount > 0

    async def expire_stale(self, now: datetime | None = None) -> list[SignalRecord]:
        """Deactivate every active signal whose window has passed.

        Returns:
            The signals that were expired by this call
        """
        now = now or datetime.now(timezone.utc)
        async with get_database().session() as session:
            stmt = (
                update(SignalTable)
                .where(SignalTable.active.is_(True), SignalTable.expires_at < now)
                .values(active=False)
                .returning(SignalTable)
                .execution_options(synchronize_session=False)
            )
            result = await session.execute(stmt)
            rows = result.scalars().all()

            return [self._row_to_signal(row) for row in rows]

    def _row_to_signal(self, row: SignalTable) -> SignalRecord:
        """Convert database row to SignalRecord."""
        return SignalRecord(
            id=row.id,
            exchange=row.exchange,
            pair=row.pair,
            direction=Direction(row.direction),
            entry_price=row.entry_price,
            stop_loss=row.stop_loss,
            take_profit=row.take_profit,
            confidence=row.confidence,
            indicators=IndicatorSet.model_validate(row.indicators or {}),
            created_at=row.created_at,
            expires_at=row.expires_at,
            active=row.active,
        )
