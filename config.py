"""Runtime configuration read from the environment"""
import logging
import os
from dataclasses import dataclass
from pathlib import Path

from database.chat_database import DB_PATH

UPLOAD_DIR = os.path.join("tmp", "uploads")
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@dataclass
class Settings:
    """Server settings

    Every field can be overridden with a CHAT_* environment variable, e.g.
    CHAT_DB_PATH=/var/lib/chat/chat.db CHAT_PORT=9000.
    """
    db_path: str = DB_PATH
    upload_dir: Path = Path(UPLOAD_DIR)
    host: str = "localhost"
    port: int = 8765
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            db_path=os.environ.get("CHAT_DB_PATH", DB_PATH),
            upload_dir=Path(os.environ.get("CHAT_UPLOAD_DIR", UPLOAD_DIR)),
            host=os.environ.get("CHAT_HOST", "localhost"),
            port=int(os.environ.get("CHAT_PORT", "8765")),
            log_level=os.environ.get("CHAT_LOG_LEVEL", "INFO").upper(),
        )


def configure_logging(level: str = "INFO") -> None:
    """Configure the root logger once for the whole process"""
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)
