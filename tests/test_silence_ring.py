# tests/test_silence_ring.py
import pytest

from speechstream.engine.SilenceRing import SilenceRing


def test_rejects_non_positive_size():
    with pytest.raises(ValueError):
        SilenceRing(0)


def test_evicts_oldest_first():
    ring = SilenceRing(3)

    for chunk in (b'a1', b'b2', b'c3', b'd4', b'e5'):
        ring.push(chunk)
        assert len(ring) <= 3

    assert ring.chunks() == [b'c3', b'd4', b'e5']


def test_flush_with_concatenates_in_ring_order_and_clears():
    ring = SilenceRing(3)
    ring.push(b'11')
    ring.push(b'22')

    combined = ring.flush_with(b'VV')

    assert combined == b'1122VV'
    assert len(ring) == 0


def test_flush_with_empty_ring_returns_chunk():
    assert SilenceRing(3).flush_with(b'VV') == b'VV'


def test_reseed_leaves_single_chunk():
    ring = SilenceRing(3)
    for chunk in (b'11', b'22', b'33'):
        ring.push(chunk)

    ring.reseed(b'BB')

    assert ring.chunks() == [b'BB']


def test_clear():
    ring = SilenceRing(2)
    ring.push(b'11')
    ring.clear()
    assert len(ring) == 0
