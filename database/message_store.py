"""Durable store for one-to-one and group chat messages"""
from typing import Iterable

from domain.models import Message, utc_now
from .chat_database import ChatDatabase

MESSAGE_COLUMNS = "id, sender, recipient, group_id, message, file, file_name, read, created_at"


def row_to_message(row: Iterable) -> Message:
    id_, sender, recipient, group_id, text, file, file_name, read, created_at = row
    return Message(
        id=id_,
        sender=sender,
        recipient=recipient,
        group_id=group_id,
        text=text,
        file=file,
        file_name=file_name,
        read=bool(read),
        timestamp=created_at,
    )


class MessageStore:
    """Persists chat messages and answers history / unread queries

    The store does not validate content: callers decide whether an empty text
    without a file is acceptable.
    """

    def __init__(self, db: ChatDatabase) -> None:
        self.db = db

    async def _insert(self, message: Message) -> Message:
        conn = self.db.conn
        assert conn is not None
        message.timestamp = utc_now()
        cursor = await conn.execute(
            "INSERT INTO messages (sender, recipient, group_id, message, file, file_name, read, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            (message.sender, message.recipient, message.group_id, message.text,
             message.file, message.file_name, int(message.read), message.timestamp)
        )
        await conn.commit()
        message.id = cursor.lastrowid
        return message

    async def save_direct(self, sender: str, recipient: str, text: str = "",
                          file: str | None = None, file_name: str | None = None) -> Message:
        """Save a one-to-one message"""
        return await self._insert(Message(
            sender=sender, recipient=recipient, text=text or "", file=file, file_name=file_name
        ))

    async def save_group(self, sender: str, group_id: str, text: str = "",
                         file: str | None = None, file_name: str | None = None) -> Message:
        """Save a message posted in a chat room"""
        return await self._insert(Message(
            sender=sender, group_id=group_id, text=text or "", file=file, file_name=file_name
        ))

    async def list_between(self, user_a: str, user_b: str) -> list[Message]:
        """All one-to-one messages exchanged by two users, oldest first"""
        conn = self.db.conn
        assert conn is not None
        cursor = await conn.execute(
            f"SELECT {MESSAGE_COLUMNS} FROM messages "
            "WHERE group_id IS NULL "
            "AND ((sender = ? AND recipient = ?) OR (sender = ? AND recipient = ?)) "
            "ORDER BY created_at ASC, id ASC",
            (user_a, user_b, user_b, user_a)
        )
        return [row_to_message(row) for row in await cursor.fetchall()]

    async def list_for_group(self, group_id: str) -> list[dict]:
        """Group history, oldest first, with the sender resolved against the user directory

        Each entry's "sender" is a list holding the sender's display record, or
        an empty list when the sender is not in the directory.
        """
        conn = self.db.conn
        assert conn is not None
        cursor = await conn.execute(
            "SELECT m.id, m.sender, m.recipient, m.group_id, m.message, m.file, m.file_name, "
            "m.read, m.created_at, u.user_id, u.name "
            "FROM messages m LEFT JOIN users u ON u.user_id = m.sender "
            "WHERE m.group_id = ? "
            "ORDER BY m.created_at ASC, m.id ASC",
            (group_id,)
        )
        history = []
        for row in await cursor.fetchall():
            entry = row_to_message(row[:9]).to_dict()
            user_id, name = row[9], row[10]
            entry["sender"] = [{"id": user_id, "name": name}] if user_id is not None else []
            history.append(entry)
        return history

    async def mark_direct_read(self, recipient: str, sender: str) -> int:
        """Mark everything sender sent to recipient as read, returns rows changed"""
        conn = self.db.conn
        assert conn is not None
        cursor = await conn.execute(
            "UPDATE messages SET read = 1 WHERE sender = ? AND recipient = ? AND read = 0",
            (sender, recipient)
        )
        await conn.commit()
        return cursor.rowcount

    async def mark_group_read(self, user_id: str, group_id: str) -> int:
        """Mark other members' unread messages in a group as read"""
        conn = self.db.conn
        assert conn is not None
        cursor = await conn.execute(
            "UPDATE messages SET read = 1 WHERE group_id = ? AND sender <> ? AND read = 0",
            (group_id, user_id)
        )
        await conn.commit()
        return cursor.rowcount

    async def unread_counts(self, user_id: str) -> dict[str, int]:
        """Unread one-to-one messages addressed to user_id, keyed by sender"""
        conn = self.db.conn
        assert conn is not None
        cursor = await conn.execute(
            "SELECT sender, COUNT(*) FROM messages "
            "WHERE recipient = ? AND read = 0 AND group_id IS NULL "
            "GROUP BY sender",
            (user_id,)
        )
        return {row[0]: row[1] for row in await cursor.fetchall()}

    async def group_unread_counts(self, user_id: str) -> dict[str, int]:
        """Unread group messages written by others, keyed by group id"""
        conn = self.db.conn
        assert conn is not None
        cursor = await conn.execute(
            "SELECT group_id, COUNT(*) FROM messages "
            "WHERE group_id IS NOT NULL AND read = 0 AND sender <> ? "
            "GROUP BY group_id",
            (user_id,)
        )
        return {row[0]: row[1] for row in await cursor.fetchall()}
