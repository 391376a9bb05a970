"""Database access layer for chat system"""
import logging
import uuid
import aiosqlite

from domain.models import GroupRecord, User, utc_now

logger = logging.getLogger(__name__)

# Database path
DB_PATH = "chat_history.db"


class ChatDatabase:
    """Owns the SQLite connection, the schema, and the user/chat-room directory

    Users and chat rooms are maintained by the CRM layer; the chat engine only
    reads them to resolve display names and group participants.
    """

    def __init__(self, db_path: str = DB_PATH) -> None:
        self.db_path = db_path
        self.conn: aiosqlite.Connection | None = None

    async def init(self) -> None:
        """Initialize database and create tables"""
        self.conn = await aiosqlite.connect(self.db_path)
        assert self.conn is not None

        await self.conn.execute("PRAGMA foreign_keys = ON")

        # Directory of chat participants (admin users)
        await self.conn.execute("""
            CREATE TABLE IF NOT EXISTS users (
                user_id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                created_at TEXT NOT NULL
            )
        """)

        # Chat rooms and their participants
        await self.conn.execute("""
            CREATE TABLE IF NOT EXISTS chatrooms (
                group_id TEXT PRIMARY KEY,
                group_name TEXT NOT NULL,
                created_at TEXT NOT NULL
            )
        """)
        await self.conn.execute("""
            CREATE TABLE IF NOT EXISTS chatroom_participants (
                group_id TEXT NOT NULL,
                user_id TEXT NOT NULL,
                PRIMARY KEY (group_id, user_id),
                FOREIGN KEY (group_id) REFERENCES chatrooms(group_id)
            )
        """)

        # One row per message; exactly one of recipient/group_id is set
        await self.conn.execute("""
            CREATE TABLE IF NOT EXISTS messages (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                sender TEXT NOT NULL,
                recipient TEXT,
                group_id TEXT,
                message TEXT NOT NULL DEFAULT '',
                file TEXT,
                file_name TEXT,
                read INTEGER NOT NULL DEFAULT 0,
                created_at TEXT NOT NULL,
                CHECK ((recipient IS NULL) <> (group_id IS NULL))
            )
        """)

        await self.conn.execute("""
            CREATE TABLE IF NOT EXISTS notifications (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                author TEXT NOT NULL,
                recipient TEXT NOT NULL,
                message TEXT NOT NULL,
                message_type TEXT NOT NULL,
                seen INTEGER NOT NULL DEFAULT 0,
                created_at TEXT NOT NULL
            )
        """)

        await self.conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_messages_direct
            ON messages(sender, recipient, created_at)
        """)
        await self.conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_messages_group
            ON messages(group_id, created_at)
        """)
        await self.conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_notifications_recipient
            ON notifications(recipient, created_at)
        """)

        await self.conn.commit()
        logger.info("Database initialized at %s", self.db_path)

    async def close(self) -> None:
        """Close database connection"""
        if self.conn:
            await self.conn.close()
            self.conn = None

    async def create_user(self, name: str, user_id: str | None = None) -> User:
        """Add a user to the directory, returns the stored record"""
        assert self.conn is not None
        user = User(user_id=user_id or str(uuid.uuid4()), name=name)
        await self.conn.execute(
            "INSERT INTO users (user_id, name, created_at) VALUES (?, ?, ?)",
            (user.user_id, user.name, utc_now())
        )
        await self.conn.commit()
        return user

    async def get_user(self, user_id: str) -> User | None:
        """Look up a user's display record by id"""
        assert self.conn is not None
        cursor = await self.conn.execute(
            "SELECT user_id, name FROM users WHERE user_id = ?",
            (user_id,)
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return User(user_id=row[0], name=row[1])

    async def create_group(self, group_name: str, participants: list[str], group_id: str | None = None) -> GroupRecord:
        """Create a chat room with its participant list"""
        assert self.conn is not None
        group = GroupRecord(
            group_id=group_id or str(uuid.uuid4()),
            group_name=group_name,
            participants=list(dict.fromkeys(participants)),
        )
        await self.conn.execute(
            "INSERT INTO chatrooms (group_id, group_name, created_at) VALUES (?, ?, ?)",
            (group.group_id, group.group_name, utc_now())
        )
        await self.conn.executemany(
            "INSERT INTO chatroom_participants (group_id, user_id) VALUES (?, ?)",
            [(group.group_id, participant) for participant in group.participants]
        )
        await self.conn.commit()
        return group

    async def get_group(self, group_id: str) -> GroupRecord | None:
        """Look up a chat room and its participants, None if it does not exist"""
        assert self.conn is not None
        cursor = await self.conn.execute(
            "SELECT group_id, group_name FROM chatrooms WHERE group_id = ?",
            (group_id,)
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        cursor = await self.conn.execute(
            "SELECT user_id FROM chatroom_participants WHERE group_id = ? ORDER BY rowid",
            (group_id,)
        )
        participants = [r[0] for r in await cursor.fetchall()]
        return GroupRecord(group_id=row[0], group_name=row[1], participants=participants)
