from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from dmrelay.core.errors import InvalidInput
from dmrelay.core.history import HistoryStore
from dmrelay.core.model import Message, MessageKind
from dmrelay.core.router import Router, stamp


@pytest.fixture
def history():
    return HistoryStore()


@pytest.fixture
def router(history, transport):
    return Router(history, transport)


def test_route_stamps_persists_and_delivers_to_both(router, history, transport):
    routed = router.route(Message(content="hi", sender="alice", receiver="bob"))

    assert routed.id
    assert routed.kind is MessageKind.CHAT
    assert routed.timestamp is not None and routed.timestamp.tzinfo is not None
    assert history.history_for("alice") == (routed,)
    assert history.history_for("bob") == (routed,)
    assert transport.deliveries == [("bob", routed), ("alice", routed)]


def test_route_overwrites_caller_supplied_id_time_and_kind(router):
    old = datetime(2000, 1, 1, tzinfo=timezone.utc)
    routed = router.route(
        Message(id="client-id", timestamp=old, kind=MessageKind.LEAVE, content="x", sender="a", receiver="b")
    )
    assert routed.id != "client-id"
    assert routed.timestamp > old
    assert routed.kind is MessageKind.CHAT


def test_each_route_gets_a_fresh_id(router):
    ids = {router.route(Message(content=str(i), sender="a", receiver="b")).id for i in range(20)}
    assert len(ids) == 20


def test_route_without_receiver_only_touches_sender(router, history, transport):
    routed = router.route(Message(content="note to self", sender="alice"))
    assert history.history_for("alice") == (routed,)
    assert history.history_for("bob") == ()
    assert transport.deliveries == [("alice", routed)]


def test_self_addressed_message_delivered_twice(router, history, transport):
    routed = router.route(Message(content="echo", sender="alice", receiver="alice"))
    assert transport.delivered_to("alice") == [routed, routed]
    assert history.history_for("alice") == (routed, routed)


@pytest.mark.parametrize("sender", [None, ""])
def test_missing_sender_rejected_before_any_side_effect(router, history, transport, sender):
    with pytest.raises(InvalidInput) as exc:
        router.route(Message(content="hi", sender=sender, receiver="bob"))
    assert exc.value.code == "INVALID_INPUT"
    assert history.history_for("bob") == ()
    assert transport.deliveries == []


def test_delivery_failure_does_not_stop_the_echo(history):
    class Flaky:
        def __init__(self):
            self.seen = []

        def deliver_to_user(self, user_id, message):
            if user_id == "bob":
                raise ConnectionError("gone")
            self.seen.append(user_id)

        def broadcast_presence(self, online_users):
            pass

    flaky = Flaky()
    routed = Router(history, flaky).route(Message(content="hi", sender="alice", receiver="bob"))
    assert flaky.seen == ["alice"]
    assert history.history_for("bob") == (routed,)


def test_messages_are_immutable(router):
    routed = router.route(Message(content="hi", sender="alice", receiver="bob"))
    with pytest.raises(ValidationError):
        routed.content = "edited"


def test_stamp_does_not_persist(history):
    joined = stamp(Message(sender="alice"), MessageKind.JOIN)
    assert joined.kind is MessageKind.JOIN
    assert joined.id
    assert history.history_for("alice") == ()
