"""Routing of inbound socket events to the chat components"""
import base64
import binascii
import logging
from pathlib import Path

from database.chat_database import ChatDatabase
from database.message_store import MessageStore
from database.notification_store import NotificationStore
from domain.constants import (
    EVENT_ALL_GROUP_MESSAGES,
    EVENT_ALL_MESSAGES,
    EVENT_FILE_CHUNK,
    EVENT_FILE_CHUNK_END,
    EVENT_GET_GROUP_MESSAGES,
    EVENT_GET_MESSAGES,
    EVENT_GROUP_MESSAGES_READ,
    EVENT_JOIN_GROUP,
    EVENT_MARK_AS_READ,
    EVENT_MARK_GROUP_AS_READ,
    EVENT_MESSAGES_READ,
    EVENT_RECEIVE_GROUP_MESSAGE,
    EVENT_RECEIVE_MESSAGE,
    EVENT_REGISTER,
    EVENT_SEND_GROUP_MESSAGE,
    EVENT_SEND_MESSAGE,
    EVENT_SEND_NOTIFICATION,
    EVENT_START_GROUP_UPLOAD,
    EVENT_START_UPLOAD,
    NOTIFICATION_TYPE_CHAT,
    NOTIFICATION_TYPE_CHAT_FILE,
    NOTIFICATION_TYPE_GROUP_FILE,
    NOTIFICATION_TYPE_GROUP_MESSAGE,
    NotificationType,
)
from domain.errors import InvalidEventError
from domain.models import Message, UploadMeta
from events.notifications import NotificationDispatcher
from uploads.session_manager import UploadSessionManager
from websocket.connection_manager import Connection, ConnectionManager
from websocket.groups import GroupRegistry
from websocket.presence import PresenceRegistry

logger = logging.getLogger(__name__)


def require(data: dict, field: str, event: str) -> str:
    """Return a non-empty string field from an event payload"""
    value = data.get(field)
    if value is None or (isinstance(value, str) and not value.strip()):
        raise InvalidEventError(event, field)
    return str(value)


def payload(args: tuple, event: str) -> dict:
    """First positional argument of an event, which must be an object"""
    if not args or not isinstance(args[0], dict):
        raise InvalidEventError(event, "payload")
    return args[0]


def decode_chunk(chunk) -> bytes:
    """Accept raw bytes, a base64 string, or a list of byte values"""
    if isinstance(chunk, (bytes, bytearray)):
        return bytes(chunk)
    if isinstance(chunk, str):
        try:
            return base64.b64decode(chunk, validate=True)
        except binascii.Error as e:
            raise InvalidEventError(EVENT_FILE_CHUNK, "chunk") from e
    if isinstance(chunk, list):
        return bytes(chunk)
    raise InvalidEventError(EVENT_FILE_CHUNK, "chunk")


class EventRouter:
    """Owns the process-wide chat state and binds socket events to it

    One instance is created when the server starts. It holds the presence
    registry, the group registry and the per-connection upload sessions, and
    flushes in-flight uploads on shutdown.

    Extra positional arguments on an event are ignored. Handlers are
    fire-and-forget: a failing handler is logged and the client
    simply never receives the outbound event. Persistence is always awaited
    before anything is delivered.
    """

    def __init__(self, db: ChatDatabase, connection_manager: ConnectionManager, upload_dir: Path) -> None:
        self.db = db
        self.connection_manager = connection_manager
        self.messages = MessageStore(db)
        self.presence = PresenceRegistry(connection_manager)
        self.groups = GroupRegistry(connection_manager)
        self.notifier = NotificationDispatcher(NotificationStore(db), connection_manager)
        self.uploads = UploadSessionManager(upload_dir, self.messages, on_complete=self.handle_upload_complete)
        self.handlers = {
            EVENT_REGISTER: self.handle_register,
            EVENT_START_UPLOAD: self.handle_start_upload,
            EVENT_START_GROUP_UPLOAD: self.handle_start_group_upload,
            EVENT_FILE_CHUNK: self.handle_file_chunk,
            EVENT_FILE_CHUNK_END: self.handle_file_chunk_end,
            EVENT_SEND_MESSAGE: self.handle_send_message,
            EVENT_GET_MESSAGES: self.handle_get_messages,
            EVENT_MARK_AS_READ: self.handle_mark_as_read,
            EVENT_MARK_GROUP_AS_READ: self.handle_mark_group_as_read,
            EVENT_JOIN_GROUP: self.handle_join_group,
            EVENT_SEND_GROUP_MESSAGE: self.handle_send_group_message,
            EVENT_GET_GROUP_MESSAGES: self.handle_get_group_messages,
        }

    def startup(self) -> None:
        """Create the uploads root directory"""
        self.uploads.ensure_upload_dir()

    async def shutdown(self) -> None:
        """Finish every in-flight upload"""
        await self.uploads.shutdown()

    async def dispatch(self, connection: Connection, event: str, args: list) -> None:
        """Route an event to its handler; errors are logged, never raised"""
        handler = self.handlers.get(event)
        if handler is None:
            logger.warning("Unknown event %r from %r", event, connection)
            return
        try:
            await handler(connection, *args)
        except InvalidEventError as e:
            logger.warning("Dropping event from %r: %s", connection, e)
        except Exception:
            logger.exception("Error handling %r from %r", event, connection)

    async def handle_disconnect(self, connection: Connection) -> None:
        """Remove presence; group membership and upload sessions are left as they are"""
        self.presence.unregister(connection)
        self.connection_manager.disconnect(connection)

    async def handle_register(self, connection: Connection, identity=None, *_args) -> None:
        if identity is None or not str(identity).strip():
            raise InvalidEventError(EVENT_REGISTER, "identity")
        self.presence.register(str(identity), connection)

    async def handle_start_upload(self, connection: Connection, *args) -> None:
        data = payload(args, EVENT_START_UPLOAD)
        self.uploads.start(
            connection.sid,
            file_name=require(data, "fileName", EVENT_START_UPLOAD),
            sender=require(data, "sender", EVENT_START_UPLOAD),
            recipient=require(data, "recipient", EVENT_START_UPLOAD),
            message=data.get("message") or "",
        )

    async def handle_start_group_upload(self, connection: Connection, *args) -> None:
        data = payload(args, EVENT_START_GROUP_UPLOAD)
        self.uploads.start(
            connection.sid,
            file_name=require(data, "fileName", EVENT_START_GROUP_UPLOAD),
            sender=require(data, "sender", EVENT_START_GROUP_UPLOAD),
            group_id=require(data, "groupId", EVENT_START_GROUP_UPLOAD),
            message=data.get("message") or "",
        )

    async def handle_file_chunk(self, connection: Connection, chunk=None, *_args) -> None:
        if chunk is None:
            raise InvalidEventError(EVENT_FILE_CHUNK, "chunk")
        if not self.uploads.append(connection.sid, decode_chunk(chunk)):
            logger.debug("Chunk from %r ignored: no upload receiving", connection)

    async def handle_file_chunk_end(self, connection: Connection, *_args) -> None:
        if self.uploads.end(connection.sid) is None:
            logger.debug("End of upload from %r ignored: no upload receiving", connection)

    async def handle_upload_complete(self, message: Message, meta: UploadMeta) -> None:
        """Deliver a stored upload like any other chat message"""
        if meta.is_group:
            await self._deliver_group(message, NOTIFICATION_TYPE_GROUP_FILE, {"fileName": meta.original_name})
            return

        await self.connection_manager.emit(EVENT_RECEIVE_MESSAGE, message.to_dict(), [message.sender, message.recipient])
        sender = await self.db.get_user(message.sender)
        sender_name = sender.name if sender else "Someone"
        await self.notifier.notify(
            message.sender,
            message.recipient,
            f"{sender_name} sent you a file: {meta.original_name}",
            NOTIFICATION_TYPE_CHAT_FILE,
            EVENT_SEND_NOTIFICATION,
            {"message": "new file received", "sender": message.sender, "recipient": message.recipient},
        )

    async def handle_send_message(self, connection: Connection, *args) -> None:
        data = payload(args, EVENT_SEND_MESSAGE)
        sender = require(data, "sender", EVENT_SEND_MESSAGE)
        recipient = require(data, "recipient", EVENT_SEND_MESSAGE)
        text = require(data, "message", EVENT_SEND_MESSAGE)
        sender_name = data.get("sendername") or sender

        saved = await self.messages.save_direct(sender, recipient, text)
        await self.connection_manager.emit(EVENT_RECEIVE_MESSAGE, saved.to_dict(), [sender, recipient])

        # Created even when the recipient is offline
        await self.notifier.notify(
            sender,
            recipient,
            f"You have a new message from {sender_name}",
            NOTIFICATION_TYPE_CHAT,
            EVENT_SEND_NOTIFICATION,
            {"message": "new chat notification", "sender": sender, "recipient": recipient},
        )

    async def handle_get_messages(self, connection: Connection, *args) -> None:
        data = payload(args, EVENT_GET_MESSAGES)
        messages = await self.messages.list_between(
            require(data, "user1", EVENT_GET_MESSAGES),
            require(data, "user2", EVENT_GET_MESSAGES),
        )
        await connection.emit(EVENT_ALL_MESSAGES, [m.to_dict() for m in messages])

    async def handle_mark_as_read(self, connection: Connection, *args) -> None:
        data = payload(args, EVENT_MARK_AS_READ)
        user_id = require(data, "userId", EVENT_MARK_AS_READ)
        other_user_id = require(data, "otherUserId", EVENT_MARK_AS_READ)
        await self.messages.mark_direct_read(recipient=user_id, sender=other_user_id)
        await self.connection_manager.emit(
            EVENT_MESSAGES_READ, {"userId": user_id, "otherUserId": other_user_id}, other_user_id
        )

    async def handle_mark_group_as_read(self, connection: Connection, *args) -> None:
        data = payload(args, EVENT_MARK_GROUP_AS_READ)
        user_id = require(data, "userId", EVENT_MARK_GROUP_AS_READ)
        group_id = require(data, "groupId", EVENT_MARK_GROUP_AS_READ)
        await self.messages.mark_group_read(user_id, group_id)
        await self.connection_manager.emit(EVENT_GROUP_MESSAGES_READ, {"userId": user_id, "groupId": group_id}, group_id)

    async def handle_join_group(self, connection: Connection, group_id=None, username=None, *_args) -> None:
        if isinstance(group_id, dict):
            group_id, username = group_id.get("groupId"), group_id.get("username")
        if not group_id:
            raise InvalidEventError(EVENT_JOIN_GROUP, "groupId")
        if not username:
            raise InvalidEventError(EVENT_JOIN_GROUP, "username")
        await self.groups.join(str(group_id), str(username), connection)

    async def handle_send_group_message(self, connection: Connection, *args) -> None:
        data = payload(args, EVENT_SEND_GROUP_MESSAGE)
        saved = await self.messages.save_group(
            require(data, "sender", EVENT_SEND_GROUP_MESSAGE),
            require(data, "groupId", EVENT_SEND_GROUP_MESSAGE),
            require(data, "message", EVENT_SEND_GROUP_MESSAGE),
        )
        await self._deliver_group(saved, NOTIFICATION_TYPE_GROUP_MESSAGE)

    async def handle_get_group_messages(self, connection: Connection, group_id=None, *_args) -> None:
        if isinstance(group_id, dict):
            group_id = group_id.get("groupId")
        if not group_id:
            raise InvalidEventError(EVENT_GET_GROUP_MESSAGES, "groupId")
        history = await self.messages.list_for_group(str(group_id))
        await connection.emit(EVENT_ALL_GROUP_MESSAGES, history)

    async def _deliver_group(self, message: Message, notification_type: NotificationType, extra: dict | None = None) -> None:
        """Broadcast a stored group message, then notify the persisted participants"""
        sender = await self.db.get_user(message.sender)
        group = await self.db.get_group(message.group_id)

        data = message.to_dict()
        data["sender"] = [sender.to_dict()] if sender else []
        await self.connection_manager.emit(EVENT_RECEIVE_GROUP_MESSAGE, data, message.group_id)

        if group is None:
            logger.warning("No chat room %s; skipping notifications", message.group_id)
            return

        sender_name = sender.name if sender else None
        if notification_type == NOTIFICATION_TYPE_GROUP_FILE:
            text = f"{sender_name or 'Someone'} sent a file in {group.group_name}"
        else:
            text = f"New message in {group.group_name} from {sender_name or 'Unknown'}"
        await self.notifier.fan_out(
            message.sender,
            group.participants,
            text,
            notification_type,
            {"groupName": group.group_name, "senderName": sender_name, **(extra or {})},
        )
