import pytest

from anonchat.blocks import BlockLedger, PeerPair


def test_peer_pair_is_order_independent():
    assert PeerPair("a", "b") == PeerPair("b", "a")
    assert hash(PeerPair("a", "b")) == hash(PeerPair("b", "a"))
    p = PeerPair("zed", "amy")
    assert (p.low, p.high) == ("amy", "zed")


def test_peer_pair_membership_and_other():
    p = PeerPair("x", "y")
    assert "x" in p and "y" in p
    assert "z" not in p
    assert p.other("x") == "y"
    assert p.other("y") == "x"
    with pytest.raises(KeyError):
        p.other("z")


def test_block_is_symmetric_and_idempotent():
    ledger = BlockLedger()
    assert ledger.block("a", "b") is True
    assert ledger.block("b", "a") is False
    assert ledger.block("a", "b") is False
    assert len(ledger) == 1
    assert ledger.is_blocked("a", "b")
    assert ledger.is_blocked("b", "a")
    assert PeerPair("b", "a") in ledger
    assert not ledger.is_blocked("a", "c")


def test_self_block_is_ignored():
    ledger = BlockLedger()
    assert ledger.block("a", "a") is False
    assert len(ledger) == 0
