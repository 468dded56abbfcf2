"""Tracked pair repository."""

from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert

from pulse.storage.database import TrackedPairTable, get_database
from pulse_core.models import TrackedPair


class TrackedPairRepository:
    """Repository for user pair subscriptions."""

    async def upsert(self, tracked: TrackedPair) -> None:
        """Insert a subscription, or update its active flag if it exists."""
        async with get_database().session() as session:
            stmt = insert(TrackedPairTable).values(
                user_id=tracked.user_id,
                exchange=tracked.exchange,
                pair=tracked.pair,
                active=tracked.active,
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=["user_id", "exchange", "pair"],
                set_={"active": stmt.excluded.active},
            )
            await session.execute(stmt)

    async def deactivate(self, user_id: str, exchange: str, pair: str) -> bool:
        """Stop tracking a pair for a user.

        Returns:
            True if an active subscription was flipped
        """
        async with get_database().session() as session:
            stmt = (
                update(TrackedPairTable)
                .where(
                    TrackedPairTable.user_id == user_id,
                    TrackedPairTable.exchange == exchange,
                    TrackedPairTable.pair == pair,
                    TrackedPairTable.active.is_(True),
                )
                .values(active=False)
            )
            result = await session.execute(stmt)
            return result.rowcount > 0

    async def list_active_pairs(self, limit: int = 50) -> list[tuple[str, str]]:
        """Get distinct (exchange, pair) combinations with at least one subscriber."""
        async with get_database().session() as session:
            stmt = (
                select(TrackedPairTable.exchange, TrackedPairTable.pair)
                .where(TrackedPairTable.active.is_(True))
                .distinct()
                .order_by(TrackedPairTable.exchange, TrackedPairTable.pair)
                .limit(limit)
            )
            result = await session.execute(stmt)
            return [(row.exchange, row.pair) for row in result.all()]

    async def get_subscribers(self, exchange: str, pair: str) -> list[str]:
        """Get IDs of users actively tracking a pair."""
        async with get_database().session() as session:
            stmt = select(TrackedPairTable.user_id).where(
                TrackedPairTable.exchange == exchange,
                TrackedPairTable.pair == pair,
                TrackedPairTable.active.is_(True),
            )
            result = await session.execute(stmt)
            return list(result.scalars().all())
