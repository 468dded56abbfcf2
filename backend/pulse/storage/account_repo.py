"""Exchange credential and device token repositories."""

from sqlalchemy import select

from pulse.storage.database import DeviceTokenTable, ExchangeKeyTable, get_database
from pulse_core.models import ExchangeCredentials


class ExchangeCredentialRepository:
    """Read access to per-user exchange API keys."""

    async def get_validated(
        self, user_id: str, exchange: str
    ) -> ExchangeCredentials | None:
        """Get a user's credentials for an exchange, only if validated."""
        async with get_database().session() as session:
            stmt = select(ExchangeKeyTable).where(
                ExchangeKeyTable.user_id == user_id,
                ExchangeKeyTable.exchange == exchange,
                ExchangeKeyTable.is_validated.is_(True),
            )
            result = await session.execute(stmt)
            row = result.scalar_one_or_none()

            if row is None:
                return None
            return ExchangeCredentials(
                user_id=row.user_id,
                exchange=row.exchange,
                api_key=row.api_key,
                api_secret=row.api_secret,
                passphrase=row.passphrase,
                is_validated=row.is_validated,
            )


class DeviceTokenRepository:
    """Read access to push notification device tokens."""

    async def get_tokens(self, user_ids: list[str]) -> list[str]:
        """Get all device tokens registered by the given users."""
        if not user_ids:
            return []

        async with get_database().session() as session:
            stmt = select(DeviceTokenTable.token).where(
                DeviceTokenTable.user_id.in_(user_ids)
            )
            result = await session.execute(stmt)
            return list(result.scalars().all())
