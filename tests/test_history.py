from dmrelay.core.history import HistoryStore
from dmrelay.core.model import Message


def msg(i, sender, receiver=None):
    return Message(id=f"m{i}", content=f"c{i}", sender=sender, receiver=receiver)


def test_directed_message_lands_in_both_logs():
    store = HistoryStore()
    m = msg(1, "alice", "bob")
    store.append(m)
    assert store.history_for("alice") == (m,)
    assert store.history_for("bob") == (m,)
    assert store.history_for("alice")[0] is store.history_for("bob")[0]


def test_message_without_receiver_stored_once():
    store = HistoryStore()
    m = msg(1, "alice")
    store.append(m)
    assert store.history_for("alice") == (m,)
    assert store.history_for("bob") == ()


def test_self_addressed_message_stored_under_both_keys():
    store = HistoryStore()
    m = msg(1, "alice", "alice")
    store.append(m)
    assert store.history_for("alice") == (m, m)
    assert store.history_between("alice", "alice") == (m, m)


def test_unknown_user_has_empty_history():
    assert HistoryStore().history_for("ghost") == ()
    assert HistoryStore().history_between("ghost", "alice") == ()


def test_history_keeps_insertion_order():
    store = HistoryStore()
    ms = [msg(i, "alice" if i % 2 else "bob", "bob" if i % 2 else "alice") for i in range(6)]
    for m in ms:
        store.append(m)
    assert store.history_for("alice") == tuple(ms)
    assert store.history_for("bob") == tuple(ms)


def test_history_between_filters_first_users_log():
    store = HistoryStore()
    a_b = msg(1, "alice", "bob")
    a_c = msg(2, "alice", "carol")
    b_a = msg(3, "bob", "alice")
    a_none = msg(4, "alice")
    for m in (a_b, a_c, b_a, a_none):
        store.append(m)

    assert store.history_between("alice", "bob") == (a_b, b_a)
    assert store.history_between("alice", "carol") == (a_c,)
    assert store.history_between("bob", "carol") == ()


def test_history_between_is_subsequence_of_first_users_log():
    store = HistoryStore()
    for i, (s, r) in enumerate([("a", "b"), ("c", "a"), ("b", "a"), ("a", None), ("a", "b"), ("b", "c")]):
        store.append(msg(i, s, r))

    expected = tuple(m for m in store.history_for("a") if {m.sender, m.receiver} == {"a", "b"})
    assert store.history_between("a", "b") == expected
    assert [m.id for m in expected] == ["m0", "m2", "m4"]


def test_snapshot_does_not_grow_with_later_appends():
    store = HistoryStore()
    store.append(msg(1, "alice", "bob"))
    snap = store.history_for("alice")
    store.append(msg(2, "alice", "bob"))
    assert len(snap) == 1
    assert len(store.history_for("alice")) == 2
