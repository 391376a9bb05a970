"""Unit tests for MessageStore and the ChatDatabase directory"""
import pytest


@pytest.mark.unit
@pytest.mark.asyncio
class TestSaveMessages:
    """Test persisting direct and group messages"""

    async def test_save_direct_sets_recipient_only(self, message_store):
        """Test that a direct message is stored without a group"""
        msg = await message_store.save_direct("alice", "bob", "hi")
        assert msg.id is not None
        assert msg.recipient == "bob"
        assert msg.group_id is None
        assert msg.read is False
        assert msg.timestamp

    async def test_save_group_sets_group_only(self, message_store):
        """Test that a group message is stored without a recipient"""
        msg = await message_store.save_group("alice", "g1", "hello team")
        assert msg.group_id == "g1"
        assert msg.recipient is None

    async def test_save_with_file_and_no_text(self, message_store):
        """Test that the store itself accepts an empty body with a file"""
        msg = await message_store.save_direct("alice", "bob", "", file="uploads/1-a.pdf", file_name="a.pdf")
        assert msg.text == ""
        assert msg.file == "uploads/1-a.pdf"
        assert msg.file_name == "a.pdf"

    async def test_ids_increase(self, message_store):
        """Test that stored ids increase"""
        first = await message_store.save_direct("alice", "bob", "1")
        second = await message_store.save_direct("alice", "bob", "2")
        assert second.id > first.id


@pytest.mark.unit
@pytest.mark.asyncio
class TestListBetween:
    """Test one-to-one history"""

    async def test_returns_both_directions_in_order(self, message_store):
        """Test that history holds both directions, oldest first"""
        await message_store.save_direct("alice", "bob", "1")
        await message_store.save_direct("bob", "alice", "2")
        await message_store.save_direct("alice", "bob", "3")

        messages = await message_store.list_between("bob", "alice")

        assert [m.text for m in messages] == ["1", "2", "3"]
        timestamps = [m.timestamp for m in messages]
        assert timestamps == sorted(timestamps)

    async def test_excludes_group_and_other_conversations(self, message_store):
        """Test that history excludes group messages and other pairs"""
        await message_store.save_direct("alice", "bob", "mine")
        await message_store.save_direct("alice", "carol", "not mine")
        await message_store.save_group("alice", "bob", "group named like a user")

        messages = await message_store.list_between("alice", "bob")

        assert [m.text for m in messages] == ["mine"]
        assert all(m.group_id is None for m in messages)

    async def test_empty_conversation(self, message_store):
        """Test history of two users who never talked"""
        assert await message_store.list_between("x", "y") == []


@pytest.mark.unit
@pytest.mark.asyncio
class TestListForGroup:
    """Test group history with sender records"""

    async def test_resolves_sender_record(self, in_memory_db, message_store):
        """Test that group history resolves the sender record"""
        await in_memory_db.create_user("Alice", user_id="alice")
        await message_store.save_group("alice", "g1", "hello")
        await message_store.save_group("ghost", "g1", "boo")
        await message_store.save_group("alice", "g2", "elsewhere")

        history = await message_store.list_for_group("g1")

        assert [h["message"] for h in history] == ["hello", "boo"]
        assert history[0]["sender"] == [{"id": "alice", "name": "Alice"}]
        assert history[1]["sender"] == []
        assert history[0]["groupId"] == "g1"


@pytest.mark.unit
@pytest.mark.asyncio
class TestMarkRead:
    """Test bulk read marking"""

    async def test_mark_direct_read_only_touches_that_sender(self, message_store):
        """Test that mark-as-read only touches messages from that sender"""
        await message_store.save_direct("bob", "alice", "1")
        await message_store.save_direct("bob", "alice", "2")
        await message_store.save_direct("carol", "alice", "3")
        await message_store.save_direct("alice", "bob", "4")

        changed = await message_store.mark_direct_read(recipient="alice", sender="bob")

        assert changed == 2
        conversation = await message_store.list_between("alice", "bob")
        assert [(m.text, m.read) for m in conversation] == [("1", True), ("2", True), ("4", False)]
        assert await message_store.unread_counts("alice") == {"carol": 1}

    async def test_mark_direct_read_is_idempotent(self, message_store):
        """Test that marking twice changes nothing the second time"""
        await message_store.save_direct("bob", "alice", "1")

        await message_store.mark_direct_read("alice", "bob")
        first = [m.read for m in await message_store.list_between("alice", "bob")]
        assert await message_store.mark_direct_read("alice", "bob") == 0
        second = [m.read for m in await message_store.list_between("alice", "bob")]

        assert first == second == [True]

    async def test_mark_direct_read_without_matches(self, message_store):
        """Test mark-as-read with nothing to mark"""
        assert await message_store.mark_direct_read("nobody", "noone") == 0

    async def test_mark_group_read_skips_own_messages(self, message_store):
        """Test that group mark-as-read leaves the user's own messages alone"""
        await message_store.save_group("alice", "g1", "mine")
        await message_store.save_group("bob", "g1", "theirs")
        await message_store.save_group("bob", "g2", "other group")

        changed = await message_store.mark_group_read("alice", "g1")

        assert changed == 1
        history = await message_store.list_for_group("g1")
        assert [(h["message"], h["read"]) for h in history] == [("mine", False), ("theirs", True)]


@pytest.mark.unit
@pytest.mark.asyncio
class TestUnreadCounts:
    """Test unread count aggregation"""

    async def test_unread_counts_by_sender(self, message_store):
        """Test unread direct counts keyed by sender"""
        await message_store.save_direct("bob", "alice", "1")
        await message_store.save_direct("bob", "alice", "2")
        await message_store.save_direct("carol", "alice", "3")
        await message_store.save_group("bob", "g1", "group")

        assert await message_store.unread_counts("alice") == {"bob": 2, "carol": 1}

    async def test_group_unread_counts_exclude_own(self, message_store):
        """Test that group unread counts exclude the user's own messages"""
        await message_store.save_group("alice", "g1", "mine")
        await message_store.save_group("bob", "g1", "a")
        await message_store.save_group("bob", "g2", "b")
        await message_store.save_group("carol", "g2", "c")

        assert await message_store.group_unread_counts("alice") == {"g1": 1, "g2": 2}


@pytest.mark.unit
@pytest.mark.asyncio
class TestDirectory:
    """Test the user and chat room directory"""

    async def test_get_user(self, in_memory_db):
        """Test looking a user up by id"""
        created = await in_memory_db.create_user("Alice")
        assert await in_memory_db.get_user(created.user_id) == created
        assert await in_memory_db.get_user("missing") is None

    async def test_get_group_with_participants(self, in_memory_db):
        """Test that a group comes back with deduplicated participants"""
        created = await in_memory_db.create_group("Sales", ["a", "b", "a", "c"], group_id="g1")

        group = await in_memory_db.get_group("g1")

        assert group == created
        assert group.participants == ["a", "b", "c"]
        assert await in_memory_db.get_group("missing") is None
