"""Domain models for the chat system"""
from dataclasses import dataclass, field
from datetime import datetime, timezone

from .constants import NotificationType


def utc_now() -> str:
    """Current UTC time as an ISO-8601 string with microseconds (sortable as text)"""
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


@dataclass
class User:
    """Represents a chat participant (an admin user of the CRM)"""
    user_id: str
    name: str

    def to_dict(self) -> dict:
        return {"id": self.user_id, "name": self.name}


@dataclass
class GroupRecord:
    """Persisted chat room: the authoritative participant list for fan-out"""
    group_id: str
    group_name: str
    participants: list[str] = field(default_factory=list)


@dataclass
class Message:
    """Represents one chat utterance or file share

    Exactly one of recipient (one-to-one) and group_id (group chat) is set.

    Fields:
    - sender: Identity of the author
    - recipient: Identity of the other party in a one-to-one chat
    - group_id: Identity of the chat room for group messages
    - text: Message body, may be empty when a file is attached
    - file: Relative path of the stored upload ("uploads/<unique name>")
    - file_name: Original name of the uploaded file
    - read: Set by the bulk mark-as-read operations only
    - timestamp: Creation time
    """
    sender: str
    recipient: str | None = None
    group_id: str | None = None
    text: str = ""
    file: str | None = None
    file_name: str | None = None
    read: bool = False
    timestamp: str = ""
    id: int | None = None

    def __post_init__(self) -> None:
        if (self.recipient is None) == (self.group_id is None):
            raise ValueError("a message needs exactly one of recipient or group_id")

    @property
    def is_group(self) -> bool:
        return self.group_id is not None

    def to_dict(self) -> dict:
        """Wire representation; absent recipient/group/file fields are omitted"""
        data = {
            "id": self.id,
            "sender": self.sender,
            "message": self.text,
            "read": self.read,
            "timestamp": self.timestamp,
        }
        if self.recipient is not None:
            data["recipient"] = self.recipient
        if self.group_id is not None:
            data["groupId"] = self.group_id
        if self.file is not None:
            data["file"] = self.file
            data["fileName"] = self.file_name
        return data


@dataclass
class Notification:
    """A persisted record telling a recipient that something happened"""
    author: str
    recipient: str
    message: str
    message_type: NotificationType
    seen: bool = False
    timestamp: str = ""
    id: int | None = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "author": self.author,
            "recipient": self.recipient,
            "message": self.message,
            "messageType": self.message_type,
            "seen": self.seen,
            "timestamp": self.timestamp,
        }


@dataclass
class UploadMeta:
    """Snapshot of the metadata supplied when an upload starts"""
    sender: str
    file_name: str  # unique on-disk name
    original_name: str
    recipient: str | None = None
    group_id: str | None = None
    message: str = ""

    @property
    def is_group(self) -> bool:
        return self.group_id is not None
