"""In-memory record of who joined which group channel in this process"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

from domain.constants import EVENT_USER_JOINED
from .connection_manager import Connection, ConnectionManager

logger = logging.getLogger(__name__)


@dataclass
class GroupRoom:
    """Members that ever joined a group channel since the process started"""
    members: set[str] = field(default_factory=set)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class GroupRegistry:
    """Lazily created group rooms

    Membership here is informational: notification fan-out uses the persisted
    chat-room participant list. Members are never removed, not even when their
    connection drops.
    """

    def __init__(self, connection_manager: ConnectionManager) -> None:
        self.connection_manager = connection_manager
        self.rooms: dict[str, GroupRoom] = {}

    async def join(self, group_id: str, identity: str, connection: Connection) -> bool:
        """Subscribe connection to the group channel and record identity as a member

        Returns True when identity was not a member yet. Only then are the other
        subscribers told via "user-joined".
        """
        self.connection_manager.join(connection, group_id)
        room = self.rooms.get(group_id)
        if room is None:
            room = self.rooms[group_id] = GroupRoom()
        if identity in room.members:
            return False
        room.members.add(identity)
        logger.info("%s joined group %s", identity, group_id)
        await self.connection_manager.emit(EVENT_USER_JOINED, {"username": identity}, group_id, exclude=connection)
        return True

    def get(self, group_id: str) -> GroupRoom | None:
        return self.rooms.get(group_id)

    def members(self, group_id: str) -> set[str]:
        room = self.rooms.get(group_id)
        return set(room.members) if room else set()
