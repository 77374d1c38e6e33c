"""
tests/test_message_store.py — Message persistence, history and read state
===========================================================================
Uses an in-memory SQLite database via the shared conftest fixtures.
"""

from __future__ import annotations

from datetime import timedelta

import pytest
from conftest import add_member, make_community, make_user, remove_member
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from gotripping.chat.conversation import CommunityConversation, PrivateConversation
from gotripping.database.models import Message
from gotripping.database.seed import DEFAULT_COMMUNITIES, seed_default_communities
from gotripping.errors import ForbiddenError, NotFoundError, ValidationError
from gotripping.services import message_store as store


def _count(engine) -> int:
    with Session(engine) as session:
        return session.scalar(select(func.count()).select_from(Message))


@pytest.fixture
def people(db_engine):
    alice = make_user(db_engine, "Alice")
    bob = make_user(db_engine, "Bob", avatar_url="https://cdn.example.com/bob.png")
    carol = make_user(db_engine, "Carol")
    return alice, bob, carol


# ===========================================================================
# Send
# ===========================================================================
class TestSendMessage:
    def test_private_send_persists_unread(self, db_engine, people):
        alice, bob, _ = people
        msg = store.send_message(db_engine, alice, receiver_id=bob, content="hi")
        assert msg.sender_id == alice
        assert msg.receiver_id == bob
        assert msg.community_id is None
        assert msg.is_read is False
        assert msg.content == "hi"
        assert msg.created_at.tzinfo is not None
        assert _count(db_engine) == 1

    def test_ids_are_unique(self, db_engine, people):
        alice, bob, _ = people
        ids = {
            store.send_message(db_engine, alice, receiver_id=bob, content=f"m{i}").id
            for i in range(5)
        }
        assert len(ids) == 5

    @pytest.mark.parametrize("content", [None, "", "   \n\t"])
    def test_empty_content_rejected(self, db_engine, people, content):
        alice, bob, _ = people
        with pytest.raises(ValidationError):
            store.send_message(db_engine, alice, receiver_id=bob, content=content)
        assert _count(db_engine) == 0

    def test_oversized_content_rejected(self, db_engine, people):
        alice, bob, _ = people
        with pytest.raises(ValidationError, match="exceeds"):
            store.send_message(db_engine, alice, receiver_id=bob, content="x" * 11, max_length=10)

    def test_needs_exactly_one_target(self, db_engine, people):
        alice, bob, _ = people
        cid = make_community(db_engine, "Hikers", alice)
        with pytest.raises(ValidationError):
            store.send_message(db_engine, alice, content="hi")
        with pytest.raises(ValidationError):
            store.send_message(
                db_engine, alice, receiver_id=bob, community_id=cid, content="hi"
            )
        assert _count(db_engine) == 0

    def test_unknown_receiver(self, db_engine, people):
        alice, _, _ = people
        with pytest.raises(NotFoundError) as exc:
            store.send_message(db_engine, alice, receiver_id=9999, content="hi")
        assert exc.value.code == "USER_NOT_FOUND"

    def test_community_send_by_member(self, db_engine, people):
        alice, bob, _ = people
        cid = make_community(db_engine, "Hikers", alice, bob)
        msg = store.send_message(db_engine, alice, community_id=cid, content="hello all")
        assert msg.community_id == cid
        assert msg.receiver_id is None
        assert msg.room_key == f"community_{cid}"

    def test_community_send_by_non_member(self, db_engine, people):
        alice, _, carol = people
        cid = make_community(db_engine, "Hikers", alice)
        with pytest.raises(ForbiddenError) as exc:
            store.send_message(db_engine, carol, community_id=cid, content="let me in")
        assert exc.value.code == "NOT_A_MEMBER"
        assert _count(db_engine) == 0

    def test_unknown_community(self, db_engine, people):
        alice, _, _ = people
        with pytest.raises(NotFoundError) as exc:
            store.send_message(db_engine, alice, community_id=424242, content="hi")
        assert exc.value.code == "COMMUNITY_NOT_FOUND"

    def test_membership_rechecked_on_every_send(self, db_engine, people):
        alice, bob, _ = people
        cid = make_community(db_engine, "Hikers", alice, bob)
        store.send_message(db_engine, bob, community_id=cid, content="first")
        remove_member(db_engine, cid, bob)
        with pytest.raises(ForbiddenError):
            store.send_message(db_engine, bob, community_id=cid, content="second")
        add_member(db_engine, cid, bob)
        store.send_message(db_engine, bob, community_id=cid, content="third")
        assert _count(db_engine) == 2


# ===========================================================================
# History
# ===========================================================================
class TestHistory:
    def test_order_is_oldest_first_and_symmetric(self, db_engine, people):
        alice, bob, carol = people
        store.send_message(db_engine, alice, receiver_id=bob, content="1")
        store.send_message(db_engine, bob, receiver_id=alice, content="2")
        store.send_message(db_engine, alice, receiver_id=carol, content="elsewhere")
        store.send_message(db_engine, alice, receiver_id=bob, content="3")

        forward = store.get_history(db_engine, PrivateConversation.between(alice, bob))
        backward = store.get_history(db_engine, PrivateConversation.between(bob, alice))
        assert [m.content for m in forward] == ["1", "2", "3"]
        assert [m.id for m in forward] == [m.id for m in backward]

    def test_limit_returns_most_recent(self, db_engine, people):
        alice, bob, _ = people
        for i in range(5):
            store.send_message(db_engine, alice, receiver_id=bob, content=str(i))
        page = store.get_history(db_engine, PrivateConversation.between(alice, bob), limit=2)
        assert [m.content for m in page] == ["3", "4"]

    def test_limit_is_clamped(self, db_engine, people):
        alice, bob, _ = people
        for i in range(4):
            store.send_message(db_engine, alice, receiver_id=bob, content=str(i))
        page = store.get_history(
            db_engine, PrivateConversation.between(alice, bob), limit=500, max_limit=3
        )
        assert len(page) == 3

    def test_non_positive_limit_rejected(self, db_engine, people):
        alice, bob, _ = people
        with pytest.raises(ValidationError):
            store.get_history(db_engine, PrivateConversation.between(alice, bob), limit=0)

    def test_before_cursor_pages_backwards(self, db_engine, people):
        alice, bob, _ = people
        for i in range(5):
            store.send_message(db_engine, alice, receiver_id=bob, content=str(i))
        conv = PrivateConversation.between(alice, bob)
        newest = store.get_history(db_engine, conv, limit=2)
        older = store.get_history(
            db_engine, conv, limit=2, before=newest[0].created_at, before_id=newest[0].id
        )
        assert [m.content for m in older] == ["1", "2"]

    def test_before_is_exclusive(self, db_engine, people):
        alice, bob, _ = people
        first = store.send_message(db_engine, alice, receiver_id=bob, content="a")
        store.send_message(db_engine, alice, receiver_id=bob, content="b")
        page = store.get_history(
            db_engine, PrivateConversation.between(alice, bob), before=first.created_at
        )
        assert page == []

    def test_before_far_future_returns_everything(self, db_engine, people):
        alice, bob, _ = people
        msg = store.send_message(db_engine, alice, receiver_id=bob, content="a")
        page = store.get_history(
            db_engine,
            PrivateConversation.between(alice, bob),
            before=msg.created_at + timedelta(days=1),
        )
        assert [m.id for m in page] == [msg.id]

    def test_empty_conversation(self, db_engine, people):
        alice, bob, _ = people
        assert store.get_history(db_engine, PrivateConversation.between(alice, bob)) == []

    def test_get_history_does_not_touch_read_state(self, db_engine, people):
        alice, bob, _ = people
        store.send_message(db_engine, alice, receiver_id=bob, content="a")
        store.get_history(db_engine, PrivateConversation.between(alice, bob))
        assert store.unread_count(db_engine, bob) == 1

    def test_community_history_includes_sender(self, db_engine, people):
        alice, bob, _ = people
        cid = make_community(db_engine, "Hikers", alice, bob)
        store.send_message(db_engine, bob, community_id=cid, content="hey")
        (msg,) = store.get_history(
            db_engine, CommunityConversation(cid), include_sender=True
        )
        assert msg.sender_name == "Bob"
        assert msg.sender_avatar_url == "https://cdn.example.com/bob.png"


class TestFetchAndMarkRead:
    def test_marks_only_messages_addressed_to_reader(self, db_engine, people):
        alice, bob, _ = people
        store.send_message(db_engine, alice, receiver_id=bob, content="to bob")
        store.send_message(db_engine, bob, receiver_id=alice, content="to alice")

        messages, updated = store.fetch_and_mark_read(
            db_engine, PrivateConversation.between(alice, bob), bob
        )
        assert updated == 1
        by_content = {m.content: m for m in messages}
        assert by_content["to bob"].is_read is True
        assert by_content["to alice"].is_read is False
        assert store.unread_count(db_engine, alice) == 1
        assert store.unread_count(db_engine, bob) == 0

    def test_second_fetch_updates_nothing(self, db_engine, people):
        alice, bob, _ = people
        store.send_message(db_engine, alice, receiver_id=bob, content="a")
        conv = PrivateConversation.between(alice, bob)
        store.fetch_and_mark_read(db_engine, conv, bob)
        _, updated = store.fetch_and_mark_read(db_engine, conv, bob)
        assert updated == 0

    def test_only_returned_page_is_marked(self, db_engine, people):
        alice, bob, _ = people
        for i in range(4):
            store.send_message(db_engine, alice, receiver_id=bob, content=str(i))
        store.fetch_and_mark_read(
            db_engine, PrivateConversation.between(alice, bob), bob, limit=2
        )
        assert store.unread_count(db_engine, bob) == 2

    def test_outsider_is_refused(self, db_engine, people):
        alice, bob, carol = people
        with pytest.raises(ForbiddenError):
            store.fetch_and_mark_read(
                db_engine, PrivateConversation.between(alice, bob), carol
            )


# ===========================================================================
# Read state
# ===========================================================================
class TestReadState:
    def test_mark_read_is_idempotent(self, db_engine, people):
        alice, bob, _ = people
        store.send_message(db_engine, alice, receiver_id=bob, content="1")
        store.send_message(db_engine, alice, receiver_id=bob, content="2")
        conv = PrivateConversation.between(alice, bob)
        assert store.mark_read(db_engine, bob, conv) == 2
        assert store.mark_read(db_engine, bob, conv) == 0

    def test_mark_read_never_touches_own_messages(self, db_engine, people):
        alice, bob, _ = people
        store.send_message(db_engine, alice, receiver_id=bob, content="1")
        assert store.mark_read(db_engine, alice, PrivateConversation.between(alice, bob)) == 0
        assert store.unread_count(db_engine, bob) == 1

    def test_mark_read_is_scoped_to_one_counterpart(self, db_engine, people):
        alice, bob, carol = people
        store.send_message(db_engine, alice, receiver_id=bob, content="from alice")
        store.send_message(db_engine, carol, receiver_id=bob, content="from carol")
        store.mark_read(db_engine, bob, PrivateConversation.between(bob, alice))
        assert store.unread_count(db_engine, bob) == 1
        assert store.unread_count(db_engine, bob, PrivateConversation.between(bob, carol)) == 1

    def test_mark_read_on_empty_conversation(self, db_engine, people):
        alice, bob, _ = people
        assert store.mark_read(db_engine, bob, PrivateConversation.between(alice, bob)) == 0

    def test_outsider_cannot_mark_private_read(self, db_engine, people):
        alice, bob, carol = people
        with pytest.raises(ForbiddenError):
            store.mark_read(db_engine, carol, PrivateConversation.between(alice, bob))

    def test_unread_count_excludes_own_messages(self, db_engine, people):
        alice, bob, _ = people
        store.send_message(db_engine, alice, receiver_id=bob, content="1")
        assert store.unread_count(db_engine, alice) == 0
        assert store.unread_count(db_engine, bob) == 1

    def test_self_message_never_counts(self, db_engine, people):
        alice, _, _ = people
        store.send_message(db_engine, alice, receiver_id=alice, content="note to self")
        assert store.unread_count(db_engine, alice) == 0

    def test_community_read_state(self, db_engine, people):
        alice, bob, carol = people
        cid = make_community(db_engine, "Hikers", alice, bob, carol)
        store.send_message(db_engine, alice, community_id=cid, content="1")
        store.send_message(db_engine, bob, community_id=cid, content="2")
        conv = CommunityConversation(cid)

        assert store.unread_count(db_engine, carol, conv) == 2
        assert store.unread_count(db_engine, alice, conv) == 1
        assert store.mark_read(db_engine, carol, conv) == 2
        assert store.mark_read(db_engine, carol, conv) == 0
        # Community rows share one is_read flag.
        assert store.unread_count(db_engine, alice, conv) == 0

    def test_private_total_ignores_community_messages(self, db_engine, people):
        alice, bob, _ = people
        cid = make_community(db_engine, "Hikers", alice, bob)
        store.send_message(db_engine, alice, community_id=cid, content="1")
        assert store.unread_count(db_engine, bob) == 0


# ===========================================================================
# Delete
# ===========================================================================
class TestDeleteMessage:
    def test_sender_can_delete(self, db_engine, people):
        alice, bob, _ = people
        msg = store.send_message(db_engine, alice, receiver_id=bob, content="oops")
        deleted = store.delete_message(db_engine, msg.id, alice)
        assert deleted.id == msg.id
        assert _count(db_engine) == 0

    def test_non_sender_is_refused(self, db_engine, people):
        alice, bob, _ = people
        msg = store.send_message(db_engine, alice, receiver_id=bob, content="mine")
        with pytest.raises(ForbiddenError) as exc:
            store.delete_message(db_engine, msg.id, bob)
        assert exc.value.code == "UNAUTHORIZED"
        assert _count(db_engine) == 1

    def test_unknown_message(self, db_engine, people):
        alice, _, _ = people
        with pytest.raises(NotFoundError) as exc:
            store.delete_message(db_engine, "does-not-exist", alice)
        assert exc.value.code == "MESSAGE_NOT_FOUND"


class TestSeed:
    def test_seed_is_idempotent(self, db_engine):
        assert seed_default_communities(db_engine) == len(DEFAULT_COMMUNITIES)
        assert seed_default_communities(db_engine) == 0
