"""Unit tests for chunked upload reassembly"""
import pytest
from unittest.mock import AsyncMock

from uploads.session_manager import UploadSessionManager, UploadState, unique_file_name


@pytest.fixture
def upload_dir(tmp_path):
    return tmp_path / "uploads"


@pytest.fixture
def on_complete():
    return AsyncMock()


@pytest.fixture
def manager(upload_dir, message_store, on_complete):
    manager = UploadSessionManager(upload_dir, message_store, on_complete=on_complete)
    manager.ensure_upload_dir()
    return manager


@pytest.mark.unit
class TestUniqueFileName:
    """Test on-disk upload names"""

    def test_prefixes_timestamp(self):
        """Test that unique names carry a nanosecond timestamp prefix"""
        name = unique_file_name("report.pdf")
        prefix, _, rest = name.partition("-")
        assert prefix.isdigit()
        assert rest == "report.pdf"

    def test_strips_directories(self):
        """Test that directory parts of the client name are dropped"""
        assert unique_file_name("../../etc/passwd").endswith("-passwd")

    def test_empty_name(self):
        """Test the fallback name for an empty file name"""
        assert unique_file_name("").endswith("-upload")


@pytest.mark.unit
@pytest.mark.asyncio
class TestUploadLifecycle:
    """Test the upload state machine from start to completion"""

    async def test_chunks_are_reassembled_in_order(self, manager, message_store, upload_dir, on_complete):
        """Test that chunks are written in order and the message is persisted"""
        session = manager.start("conn1", "x.txt", sender="alice", recipient="bob", message="see attached")
        assert session.state is UploadState.RECEIVING

        for chunk in (b"ab", b"cd", b"ef"):
            assert manager.append("conn1", chunk)
        assert manager.end("conn1") is session
        await session.task

        assert session.state is UploadState.COMPLETE
        assert session.file_path.read_bytes() == b"abcdef"
        assert session.file_path.parent == upload_dir
        assert session.file_path.name.endswith("-x.txt")

        [message] = await message_store.list_between("alice", "bob")
        assert message.file == f"uploads/{session.file_path.name}"
        assert message.file_name == "x.txt"
        assert message.text == "see attached"
        assert message.recipient == "bob"

        on_complete.assert_awaited_once()
        delivered, meta = on_complete.call_args.args
        assert delivered.id == message.id
        assert meta.original_name == "x.txt"
        assert manager.get("conn1") is None

    async def test_group_upload_persists_group_message(self, manager, message_store):
        """Test that a group upload stores a group message"""
        session = manager.start("conn1", "deck.pptx", sender="alice", group_id="g1")
        manager.append("conn1", b"slides")
        manager.end("conn1")
        await session.task

        [entry] = await message_store.list_for_group("g1")
        assert entry["fileName"] == "deck.pptx"
        assert entry["groupId"] == "g1"
        assert "recipient" not in entry

    async def test_end_without_chunks_creates_empty_file(self, manager, message_store):
        """Test that ending with no chunks writes an empty file and a message"""
        session = manager.start("conn1", "empty.txt", sender="alice", recipient="bob")
        manager.end("conn1")
        await session.task

        assert session.state is UploadState.COMPLETE
        assert session.file_path.exists()
        assert session.file_path.stat().st_size == 0
        [message] = await message_store.list_between("alice", "bob")
        assert message.file_name == "empty.txt"

    async def test_chunk_without_session_is_ignored(self, manager):
        """Test that a chunk with no open session is ignored"""
        assert manager.append("nobody", b"data") is False
        assert manager.end("nobody") is None

    async def test_chunk_after_end_is_ignored(self, manager):
        """Test that chunks after end of stream are ignored"""
        session = manager.start("conn1", "x.txt", sender="alice", recipient="bob")
        manager.append("conn1", b"abc")
        manager.end("conn1")

        assert manager.append("conn1", b"late") is False
        assert manager.end("conn1") is None
        await session.task

        assert session.file_path.read_bytes() == b"abc"

    async def test_uploads_on_different_connections_are_independent(self, manager, message_store):
        """Test that two connections upload independently"""
        first = manager.start("conn1", "a.txt", sender="alice", recipient="bob")
        second = manager.start("conn2", "b.txt", sender="carol", recipient="bob")
        manager.append("conn1", b"A1")
        manager.append("conn2", b"B1")
        manager.append("conn1", b"A2")
        manager.end("conn2")
        manager.end("conn1")
        await first.task
        await second.task

        assert first.file_path.read_bytes() == b"A1A2"
        assert second.file_path.read_bytes() == b"B1"


@pytest.mark.unit
@pytest.mark.asyncio
class TestUploadFailures:
    """Test failed uploads and contained delivery errors"""

    async def test_write_failure_persists_nothing(self, upload_dir, message_store, on_complete):
        """Test that a write failure stores no message"""
        # Upload root never created, so opening the destination fails
        manager = UploadSessionManager(upload_dir, message_store, on_complete=on_complete)
        session = manager.start("conn1", "x.txt", sender="alice", recipient="bob")
        manager.append("conn1", b"data")
        manager.end("conn1")
        await session.task

        assert session.state is UploadState.FAILED
        assert isinstance(session.error, OSError)
        assert manager.get("conn1") is None
        assert await message_store.list_between("alice", "bob") == []
        on_complete.assert_not_called()

    async def test_persistence_failure_discards_file(self, upload_dir, on_complete):
        """Test that a failed save removes the written file"""
        store = AsyncMock()
        store.save_direct.side_effect = RuntimeError("database unavailable")
        manager = UploadSessionManager(upload_dir, store, on_complete=on_complete)
        manager.ensure_upload_dir()

        session = manager.start("conn1", "x.txt", sender="alice", recipient="bob")
        manager.append("conn1", b"data")
        manager.end("conn1")
        await session.task

        assert session.state is UploadState.FAILED
        assert not session.file_path.exists()
        on_complete.assert_not_called()

    async def test_completion_callback_error_is_contained(self, manager, on_complete):
        """Test that an error in delivery does not fail the upload"""
        on_complete.side_effect = RuntimeError("emit failed")
        session = manager.start("conn1", "x.txt", sender="alice", recipient="bob")
        manager.end("conn1")

        await session.task  # does not raise

        assert session.state is UploadState.COMPLETE
        assert manager.get("conn1") is None


@pytest.mark.unit
@pytest.mark.asyncio
class TestUploadReplacementAndShutdown:
    """Test replacing an open upload and flushing on shutdown"""

    async def test_second_start_completes_first_with_its_own_metadata(self, manager, message_store):
        """Test that a second start finishes the first upload with its own metadata"""
        first = manager.start("conn1", "first.txt", sender="alice", recipient="bob")
        manager.append("conn1", b"partial")

        second = manager.start("conn1", "second.txt", sender="alice", recipient="carol")
        assert manager.get("conn1") is second
        await first.task

        # The old session finished with what it had and did not evict the new one
        assert first.state is UploadState.COMPLETE
        assert first.file_path.read_bytes() == b"partial"
        assert manager.get("conn1") is second
        [old_message] = await message_store.list_between("alice", "bob")
        assert old_message.file_name == "first.txt"

        manager.append("conn1", b"full")
        manager.end("conn1")
        await second.task
        [new_message] = await message_store.list_between("alice", "carol")
        assert new_message.file_name == "second.txt"
        assert second.file_path.read_bytes() == b"full"

    async def test_shutdown_flushes_in_flight_uploads(self, manager, message_store):
        """Test that shutdown ends and persists open uploads"""
        session = manager.start("conn1", "x.txt", sender="alice", recipient="bob")
        manager.append("conn1", b"unfinished")

        await manager.shutdown()

        assert session.state is UploadState.COMPLETE
        assert session.file_path.read_bytes() == b"unfinished"
        assert manager.sessions == {}
        assert len(await message_store.list_between("alice", "bob")) == 1
