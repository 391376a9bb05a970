"""Durable store for user notifications"""
from domain.constants import NotificationType
from domain.models import Notification, utc_now
from .chat_database import ChatDatabase


class NotificationStore:
    """Creates and lists notification records"""

    def __init__(self, db: ChatDatabase) -> None:
        self.db = db

    async def create(self, author: str, recipient: str, message: str, message_type: NotificationType) -> Notification:
        conn = self.db.conn
        assert conn is not None
        notification = Notification(
            author=author,
            recipient=recipient,
            message=message,
            message_type=message_type,
            timestamp=utc_now(),
        )
        cursor = await conn.execute(
            "INSERT INTO notifications (author, recipient, message, message_type, seen, created_at) "
            "VALUES (?, ?, ?, ?, 0, ?)",
            (author, recipient, message, message_type, notification.timestamp)
        )
        await conn.commit()
        notification.id = cursor.lastrowid
        return notification

    async def list_for_recipient(self, recipient: str, limit: int = 100) -> list[Notification]:
        """Most recent notifications for a user, newest first"""
        conn = self.db.conn
        assert conn is not None
        cursor = await conn.execute(
            "SELECT id, author, recipient, message, message_type, seen, created_at "
            "FROM notifications WHERE recipient = ? "
            "ORDER BY created_at DESC, id DESC LIMIT ?",
            (recipient, limit)
        )
        return [
            Notification(
                id=row[0],
                author=row[1],
                recipient=row[2],
                message=row[3],
                message_type=row[4],
                seen=bool(row[5]),
                timestamp=row[6],
            )
            for row in await cursor.fetchall()
        ]
