"""Notification history repository."""

from sqlalchemy import insert

from pulse.storage.database import NotificationTable, get_database


class NotificationRepository:
    """Stores one notification row per recipient."""

    async def save_many(
        self,
        user_ids: list[str],
        title: str,
        body: str,
        data: dict | None = None,
        notification_type: str = "signal",
    ) -> int:
        """Insert a notification for each user.

        Returns:
            Number of rows inserted
        """
        if not user_ids:
            return 0

        rows = [
            {
                "user_id": user_id,
                "type": notification_type,
                "title": title,
                "body": body,
                "data": data or {},
            }
            for user_id in user_ids
        ]
        async with get_database().session() as session:
            await session.execute(insert(NotificationTable), rows)
        return len(rows)
