"""Notification persistence and push delivery"""
import asyncio
import logging

from database.notification_store import NotificationStore
from domain.constants import EVENT_NEW_NOTIFICATION, EVENT_SEND_NOTIFICATION, NotificationType
from domain.models import Notification
from websocket.connection_manager import ConnectionManager

logger = logging.getLogger(__name__)


class NotificationDispatcher:
    """Creates notification records and pushes them to the recipient's channel

    The record is persisted whether or not the recipient is online; the push
    is best effort.
    """

    def __init__(self, store: NotificationStore, connection_manager: ConnectionManager) -> None:
        self.store = store
        self.connection_manager = connection_manager

    async def notify(self, author: str, recipient: str, text: str, notification_type: NotificationType,
                     event: str = EVENT_SEND_NOTIFICATION, payload: dict | None = None) -> Notification:
        """Persist one notification, then push event to the recipient

        When payload is None the pushed data is the notification itself.
        """
        notification = await self.store.create(author, recipient, text, notification_type)
        data = payload if payload is not None else notification.to_dict()
        await self.connection_manager.emit(event, data, recipient)
        return notification

    async def fan_out(self, author: str, participants: list[str], text: str,
                      notification_type: NotificationType, extra: dict | None = None) -> list[Notification]:
        """Notify every participant except the author

        Each participant gets an independent record and "newNotification" push;
        a failure for one participant is logged and does not stop the others.
        """
        recipients = [p for p in dict.fromkeys(participants) if p != author]

        async def notify_one(recipient: str) -> Notification:
            notification = await self.store.create(author, recipient, text, notification_type)
            payload = {"notification": notification.to_dict(), **(extra or {})}
            await self.connection_manager.emit(EVENT_NEW_NOTIFICATION, payload, recipient)
            return notification

        results = await asyncio.gather(*(notify_one(r) for r in recipients), return_exceptions=True)

        delivered: list[Notification] = []
        for recipient, result in zip(recipients, results):
            if isinstance(result, BaseException):
                logger.error("Error notifying %s: %s", recipient, result)
            else:
                delivered.append(result)
        return delivered
