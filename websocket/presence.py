"""Process-wide registry of which identity is using which connection"""
import logging

from .connection_manager import Connection, ConnectionManager

logger = logging.getLogger(__name__)


class PresenceRegistry:
    """Maps a user identity to its most recent connection

    Delivery is channel based, so this map is only consulted for presence;
    every connection that registered an identity stays subscribed to that
    identity's channel until it disconnects.
    """

    def __init__(self, connection_manager: ConnectionManager) -> None:
        self.connection_manager = connection_manager
        self.users: dict[str, Connection] = {}

    def register(self, identity: str, connection: Connection) -> None:
        """Point identity at connection, replacing any earlier handle"""
        self.users[identity] = connection
        self.connection_manager.join(connection, identity)
        logger.info("%s registered on %r", identity, connection)

    def unregister(self, connection: Connection) -> str | None:
        """Remove the identity held by connection, returns it if one was found"""
        for identity, handle in self.users.items():
            if handle is connection:
                del self.users[identity]
                logger.info("%s went offline", identity)
                return identity
        return None

    def get(self, identity: str) -> Connection | None:
        return self.users.get(identity)

    def online_users(self) -> list[str]:
        return list(self.users)
