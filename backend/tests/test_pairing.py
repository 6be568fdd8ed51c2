from conftest import FakeChannel

from anonchat.blocks import BlockLedger
from anonchat.pairing import PairingEngine, WaitingQueue
from anonchat.registry import ConnectionRegistry


def make_engine():
    registry = ConnectionRegistry()
    queue = WaitingQueue()
    ledger = BlockLedger()
    return registry, queue, ledger, PairingEngine(registry, queue, ledger)


def register(registry, n):
    return [registry.register(FakeChannel())[0] for _ in range(n)]


def test_enqueue_rejects_duplicates_and_paired():
    registry, queue, _, engine = make_engine()
    a, b, c = register(registry, 3)
    assert queue.enqueue(a)
    assert not queue.enqueue(a)
    assert queue.ids() == [a.id]

    b.peer_id = c.id
    c.peer_id = b.id
    assert not queue.enqueue(b)
    assert b.id not in queue


def test_discard():
    registry, queue, _, _ = make_engine()
    a, b = register(registry, 2)
    queue.enqueue(a)
    queue.enqueue(b)
    assert queue.discard(a.id)
    assert not queue.discard(a.id)
    assert queue.ids() == [b.id]


def test_pairs_oldest_first_and_leaves_odd_one_waiting():
    registry, queue, _, engine = make_engine()
    a, b, c = register(registry, 3)
    for conn in (a, b, c):
        queue.enqueue(conn)

    pairs = engine.try_pair_all()

    assert [(x.id, y.id) for x, y in pairs] == [(a.id, b.id)]
    assert a.peer_id == b.id and b.peer_id == a.id
    assert queue.ids() == [c.id]
    assert c.peer_id is None


def test_dead_entries_are_dropped_not_paired():
    registry, queue, _, engine = make_engine()
    a, b, c = register(registry, 3)
    for conn in (a, b, c):
        queue.enqueue(conn)
    registry.remove(b.id)

    pairs = engine.try_pair_all()

    assert [(x.id, y.id) for x, y in pairs] == [(a.id, c.id)]
    assert len(queue) == 0
    assert b.peer_id is None


def test_blocked_combination_is_skipped_and_order_kept():
    registry, queue, ledger, engine = make_engine()
    a, b, c = register(registry, 3)
    ledger.block(a.token, b.token)
    for conn in (a, b, c):
        queue.enqueue(conn)

    pairs = engine.try_pair_all()

    assert [(x.id, y.id) for x, y in pairs] == [(a.id, c.id)]
    assert queue.ids() == [b.id]


def test_only_blocked_candidates_terminates_with_both_waiting():
    registry, queue, ledger, engine = make_engine()
    a, b = register(registry, 2)
    ledger.block(b.token, a.token)
    queue.enqueue(a)
    queue.enqueue(b)

    assert engine.try_pair_all() == []
    assert queue.ids() == [a.id, b.id]
    assert a.peer_id is None and b.peer_id is None


def test_every_pair_is_symmetric_and_unblocked():
    registry, queue, ledger, engine = make_engine()
    conns = register(registry, 8)
    ledger.block(conns[0].token, conns[1].token)
    ledger.block(conns[0].token, conns[2].token)
    ledger.block(conns[3].token, conns[4].token)
    for conn in conns:
        queue.enqueue(conn)

    pairs = engine.try_pair_all()

    assert len(pairs) == 4
    for x, y in pairs:
        assert x.peer_id == y.id and y.peer_id == x.id
        assert not ledger.is_blocked(x.token, y.token)
    assert len(queue) == 0
