import pytest

from playlist_queue import PlaylistQueue

A = [{"media_url": "a.mp3"}]
B = [{"media_url": "b.mp3"}]
C = [{"media_url": "c.mp3"}]


def test_fifo_by_default():
    q = PlaylistQueue()
    q.enqueue(A)
    q.enqueue(B)
    assert q.dequeue_next() == tuple(A)
    assert q.dequeue_next() == tuple(B)
    assert q.dequeue_next() is None


def test_start_and_index_positions():
    q = PlaylistQueue()
    q.enqueue(A)
    q.enqueue(B, "start")
    q.enqueue(C, 1)
    assert [item.entries for item in q] == [tuple(B), tuple(C), tuple(A)]
    assert [item.insertion for item in q] == ["prepend", "index", "append"]


def test_out_of_range_index_follows_list_insert():
    q = PlaylistQueue()
    q.enqueue(A)
    q.enqueue(B, 99)
    q.enqueue(C, -5)
    assert [item.entries for item in q] == [tuple(C), tuple(A), tuple(B)]


@pytest.mark.parametrize("position", ["middle", True, None])
def test_unknown_position_raises(position):
    q = PlaylistQueue()
    with pytest.raises(ValueError):
        q.enqueue(A, position)
    assert len(q) == 0


def test_remove_at_ignores_out_of_range():
    q = PlaylistQueue()
    q.enqueue(A)
    q.enqueue(B)
    assert q.remove_at(5) is None
    assert len(q) == 2
    removed = q.remove_at(0)
    assert removed.entries == tuple(A)
    assert [item.entries for item in q.snapshot()] == [tuple(B)]


def test_same_playlist_twice_is_two_items():
    q = PlaylistQueue()
    q.enqueue(A)
    q.enqueue(A)
    assert len(q) == 2
    q.remove_at(-1)
    assert len(q) == 1


def test_clear_and_bool():
    q = PlaylistQueue()
    assert not q
    q.enqueue(A)
    assert q
    q.clear()
    assert not q


def test_insertion_for_checks_without_enqueueing():
    assert PlaylistQueue.insertion_for("start") == "prepend"
    assert PlaylistQueue.insertion_for("end") == "append"
    assert PlaylistQueue.insertion_for(-1) == "index"
    with pytest.raises(ValueError):
        PlaylistQueue.insertion_for(False)
