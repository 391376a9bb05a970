"""Reassembly of chunked file uploads streamed over a socket connection

Each connection owns at most one active upload session. A session moves
through these states:

    IDLE -> RECEIVING -> FINALIZING -> COMPLETE
                                    -> FAILED

Chunks are queued on an in-memory buffer and drained into the destination file
by a background pump task, so the socket handler never blocks on disk I/O.
Once the pump has closed the file, the session is persisted as a chat Message
pointing at the stored file and the completion callback is invoked.
"""
import asyncio
import enum
import logging
import time
from pathlib import Path
from typing import Awaitable, Callable

from database.message_store import MessageStore
from domain.constants import UPLOADS_PREFIX
from domain.models import Message, UploadMeta

logger = logging.getLogger(__name__)

# Marks the end of the chunk stream on the buffer
END_OF_STREAM = None

CompletionCallback = Callable[[Message, UploadMeta], Awaitable[None]]


class UploadState(str, enum.Enum):
    IDLE = "idle"
    RECEIVING = "receiving"
    FINALIZING = "finalizing"
    COMPLETE = "complete"
    FAILED = "failed"


def unique_file_name(file_name: str) -> str:
    """Prefix the base name with a nanosecond timestamp so uploads never collide"""
    base = Path(file_name).name or "upload"
    return f"{time.time_ns()}-{base}"


class UploadSession:
    """One in-flight file transfer"""

    def __init__(self, connection_id: str, meta: UploadMeta, file_path: Path) -> None:
        self.connection_id = connection_id
        self.meta = meta
        self.file_path = file_path
        self.state = UploadState.IDLE
        self.bytes_written = 0
        self.error: Exception | None = None
        self.buffer: asyncio.Queue[bytes | None] = asyncio.Queue()
        self.task: asyncio.Task | None = None

    def write(self, chunk: bytes) -> bool:
        """Queue a chunk, returns False once the stream has been ended"""
        if self.state is not UploadState.RECEIVING:
            return False
        self.buffer.put_nowait(bytes(chunk))
        return True

    def end(self) -> bool:
        if self.state is not UploadState.RECEIVING:
            return False
        self.state = UploadState.FINALIZING
        self.buffer.put_nowait(END_OF_STREAM)
        return True

    async def pump(self) -> None:
        """Drain the buffer into the destination file until end of stream

        The file handle is opened and closed here, so it is released on every
        exit path including cancellation.
        """
        handle = await asyncio.to_thread(open, self.file_path, "wb")
        try:
            while True:
                chunk = await self.buffer.get()
                if chunk is END_OF_STREAM:
                    break
                await asyncio.to_thread(handle.write, chunk)
                self.bytes_written += len(chunk)
        finally:
            await asyncio.to_thread(handle.close)

    def __repr__(self) -> str:
        return f"UploadSession({self.meta.original_name!r}, state={self.state.value})"


class UploadSessionManager:
    """Per-connection upload sessions and their completion pipeline"""

    def __init__(self, upload_dir: Path, message_store: MessageStore, on_complete: CompletionCallback | None = None) -> None:
        self.upload_dir = Path(upload_dir)
        self.message_store = message_store
        self.on_complete = on_complete
        self.sessions: dict[str, UploadSession] = {}
        self._tasks: set[asyncio.Task] = set()

    def ensure_upload_dir(self) -> None:
        self.upload_dir.mkdir(parents=True, exist_ok=True)

    def start(self, connection_id: str, file_name: str, sender: str, recipient: str | None = None,
              group_id: str | None = None, message: str = "") -> UploadSession:
        """Open a new session for the connection

        A session still receiving on the same connection is ended first: it
        finishes with the bytes it already has and completes with its own
        metadata.
        """
        previous = self.sessions.get(connection_id)
        if previous is not None and previous.end():
            logger.warning("New upload on %s before %r finished; closing the old one", connection_id, previous)

        meta = UploadMeta(
            sender=sender,
            recipient=recipient,
            group_id=group_id,
            message=message or "",
            file_name=unique_file_name(file_name),
            original_name=file_name,
        )
        session = UploadSession(connection_id, meta, self.upload_dir / meta.file_name)
        self.sessions[connection_id] = session
        session.state = UploadState.RECEIVING

        session.task = asyncio.create_task(self._run(session))
        self._tasks.add(session.task)
        session.task.add_done_callback(self._tasks.discard)
        return session

    def get(self, connection_id: str) -> UploadSession | None:
        return self.sessions.get(connection_id)

    def append(self, connection_id: str, chunk: bytes) -> bool:
        """Add a chunk to the connection's session; ignored if there is none"""
        session = self.sessions.get(connection_id)
        if session is None:
            return False
        return session.write(chunk)

    def end(self, connection_id: str) -> UploadSession | None:
        """Signal end of stream for the connection's session"""
        session = self.sessions.get(connection_id)
        if session is None or not session.end():
            return None
        return session

    async def shutdown(self) -> None:
        """End every in-flight upload and wait for the pumps to finish"""
        for session in list(self.sessions.values()):
            session.end()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    async def _run(self, session: UploadSession) -> None:
        try:
            await session.pump()
            message = await self._persist(session.meta)
        except Exception as e:
            session.state = UploadState.FAILED
            session.error = e
            logger.error("Upload of %s failed: %s", session.meta.original_name, e)
            session.file_path.unlink(missing_ok=True)
            return
        finally:
            # The table may already point at a newer session for this connection
            if self.sessions.get(session.connection_id) is session:
                del self.sessions[session.connection_id]

        session.state = UploadState.COMPLETE
        logger.info("File upload completed: %s (%d bytes)", session.meta.original_name, session.bytes_written)
        if self.on_complete is None:
            return
        try:
            await self.on_complete(message, session.meta)
        except Exception:
            logger.exception("Error delivering upload %s", session.meta.original_name)

    async def _persist(self, meta: UploadMeta) -> Message:
        file_ref = f"{UPLOADS_PREFIX}/{meta.file_name}"
        if meta.is_group:
            return await self.message_store.save_group(
                meta.sender, meta.group_id, meta.message, file=file_ref, file_name=meta.original_name
            )
        return await self.message_store.save_direct(
            meta.sender, meta.recipient, meta.message, file=file_ref, file_name=meta.original_name
        )
