"""
tests/test_read_state.py — ReadStateTracker (async facade)
============================================================
"""

from __future__ import annotations

import pytest
from conftest import make_community, make_user, run_async

from gotripping.chat.conversation import CommunityConversation, PrivateConversation
from gotripping.errors import ForbiddenError
from gotripping.services import message_store
from gotripping.services.read_state import ReadStateTracker


@pytest.fixture
def tracker(db_engine):
    return ReadStateTracker(db_engine)


class TestReadStateTracker:
    def test_private_mark_read_then_repeat(self, db_engine, tracker):
        alice = make_user(db_engine, "Alice")
        bob = make_user(db_engine, "Bob")
        for text in ("a", "b", "c"):
            message_store.send_message(db_engine, alice, receiver_id=bob, content=text)

        assert run_async(tracker.unread_count(bob)) == 3
        assert run_async(tracker.mark_private_read(bob, alice)) == 3
        assert run_async(tracker.mark_private_read(bob, alice)) == 0
        assert run_async(tracker.unread_count(bob)) == 0

    def test_unread_count_per_conversation(self, db_engine, tracker):
        alice = make_user(db_engine, "Alice")
        bob = make_user(db_engine, "Bob")
        carol = make_user(db_engine, "Carol")
        message_store.send_message(db_engine, alice, receiver_id=bob, content="a")
        message_store.send_message(db_engine, carol, receiver_id=bob, content="c")

        conv = PrivateConversation.between(bob, carol)
        assert run_async(tracker.unread_count(bob, conv)) == 1
        assert run_async(tracker.mark_read(bob, conv)) == 1
        assert run_async(tracker.unread_count(bob)) == 1

    def test_community_mark_read(self, db_engine, tracker):
        alice = make_user(db_engine, "Alice")
        bob = make_user(db_engine, "Bob")
        cid = make_community(db_engine, "Divers", alice, bob)
        message_store.send_message(db_engine, alice, community_id=cid, content="dive!")

        conv = CommunityConversation(cid)
        assert run_async(tracker.unread_count(bob, conv)) == 1
        assert run_async(tracker.unread_count(alice, conv)) == 0
        assert run_async(tracker.mark_community_read(bob, cid)) == 1
        assert run_async(tracker.mark_community_read(bob, cid)) == 0

    def test_outsider_refused(self, db_engine, tracker):
        alice = make_user(db_engine, "Alice")
        bob = make_user(db_engine, "Bob")
        carol = make_user(db_engine, "Carol")
        with pytest.raises(ForbiddenError):
            run_async(tracker.mark_read(carol, PrivateConversation.between(alice, bob)))
