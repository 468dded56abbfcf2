"""Trade data repository."""

from decimal import Decimal

from sqlalchemy import case, func, select, update

from pulse.storage.database import TradeTable, get_database
from pulse_core.models import Direction, TradeRecord, TradeStatus


class TradeRepository:
    """Repository for executed trades."""

    async def save(self, trade: TradeRecord) -> None:
        """Insert a new trade record."""
        async with get_database().session() as session:
            session.add(
                TradeTable(
                    id=trade.id,
                    user_id=trade.user_id,
                    exchange=trade.exchange,
                    pair=trade.pair,
                    signal_id=trade.signal_id,
                    direction=trade.direction.value,
                    entry_price=trade.entry_price,
                    quantity=trade.quantity,
                    stop_loss=trade.stop_loss,
                    take_profit=trade.take_profit,
                    status=trade.status.value,
                    pnl=trade.pnl,
                    pnl_percent=trade.pnl_percent,
                    close_price=trade.close_price,
                    exchange_order_id=trade.exchange_order_id,
                    executed_at=trade.executed_at,
                    closed_at=trade.closed_at,
                )
            )

    async def get_by_id(self, trade_id: str) -> TradeRecord | None:
        """Get a trade by ID."""
        async with get_database().session() as session:
            stmt = select(TradeTable).where(TradeTable.id == trade_id)
            result = await session.execute(stmt)
            row = result.scalar_one_or_none()

            if row is None:
                return None
            return self._row_to_trade(row)

    async def mark_closed(self, trade: TradeRecord) -> bool:
        """Persist a closed trade, only if the stored row is still open.

        Returns:
            True if this call closed the row, False if it was already closed
        """
        async with get_database().session() as session:
            stmt = (
                update(TradeTable)
                .where(
                    TradeTable.id == trade.id,
                    TradeTable.status == TradeStatus.OPEN.value,
                )
                .values(
                    status=TradeStatus.CLOSED.value,
                    pnl=trade.pnl,
                    pnl_percent=trade.pnl_percent,
                    close_price=trade.close_price,
                    closed_at=trade.closed_at,
                )
            )
            result = await session.execute(stmt)
            return result.rowcount > 0

    async def get_history(
        self,
        user_id: str,
        status: TradeStatus | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[TradeRecord]:
        """Get a user's trades, newest first."""
        async with get_database().session() as session:
            stmt = select(TradeTable).where(TradeTable.user_id == user_id)
            if status:
                stmt = stmt.where(TradeTable.status == status.value)
            stmt = (
                stmt.order_by(TradeTable.executed_at.desc())
                .limit(limit)
                .offset(offset)
            )

            result = await session.execute(stmt)
            rows = result.scalars().all()

            return [self._row_to_trade(row) for row in rows]

    async def get_stats(self, user_id: str) -> dict:
        """Get trade statistics for a user.

        Returns:
            Dict with total_trades, open_trades, closed_trades, winning_trades,
            losing_trades, total_pnl, avg_pnl_percent, win_rate
        """
        async with get_database().session() as session:
            closed = TradeTable.status == TradeStatus.CLOSED.value
            stmt = select(
                func.count().label("total"),
                func.count().filter(TradeTable.status == TradeStatus.OPEN.value).label("open"),
                func.count().filter(closed).label("closed"),
                func.count().filter(closed, TradeTable.pnl > 0).label("wins"),
                func.count().filter(closed, TradeTable.pnl < 0).label("losses"),
                func.coalesce(func.sum(case((closed, TradeTable.pnl))), 0).label("total_pnl"),
                func.coalesce(func.avg(case((closed, TradeTable.pnl_percent))), 0).label("avg_pnl_percent"),
            ).where(TradeTable.user_id == user_id)

            result = await session.execute(stmt)
            row = result.one()

            win_rate = row.wins / row.closed * 100 if row.closed > 0 else 0.0

            return {
                "total_trades": row.total,
                "open_trades": row.open,
                "closed_trades": row.closed,
                "winning_trades": row.wins,
                "losing_trades": row.losses,
                "total_pnl": Decimal(row.total_pnl),
                "avg_pnl_percent": Decimal(row.avg_pnl_percent),
                "win_rate": win_rate,
            }

    def _row_to_trade(self, row: TradeTable) -> TradeRecord:
        """Convert database row to TradeRecord."""
        return TradeRecord(
            id=row.id,
            user_id=row.user_id,
            exchange=row.exchange,
            pair=row.pair,
            signal_id=row.signal_id,
            direction=Direction(row.direction),
            entry_price=row.entry_price,
            quantity=row.quantity,
            stop_loss=row.stop_loss,
            take_profit=row.take_profit,
            status=TradeStatus(row.status),
            pnl=row.pnl,
            pnl_percent=row.pnl_percent,
            close_price=row.close_price,
            exchange_order_id=row.exchange_order_id,
            executed_at=row.executed_at,
            closed_at=row.closed_at,
        )
