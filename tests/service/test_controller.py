import asyncio
import logging

import pytest

from conftest import seg
from errors import InvalidSegment
from events import MediaEvent, MediaEventKind
from state import Phase


# ── loading and transport ───────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_load_without_autoplay_rests_paused_at_start(make_controller, backend, three_segments):
    ctl = make_controller()
    await ctl.load_playlist(three_segments)

    st = ctl.state
    assert st.phase is Phase.PAUSED
    assert st.active_segment_index == 0
    assert st.real_time == 10.0
    assert st.virtual_time == 0.0
    assert st.total_duration == 23.0
    assert st.loading is False
    assert backend.loads == ["a.mp3"]
    assert backend.seeks == [10.0]
    assert not backend.playing


@pytest.mark.asyncio
async def test_load_with_autoplay_plays(make_controller, backend, three_segments):
    ctl = make_controller()
    await ctl.load_playlist(three_segments, auto_play=True)
    assert ctl.state.phase is Phase.PLAYING
    assert backend.playing


@pytest.mark.asyncio
async def test_play_pause_toggle(make_controller, backend, three_segments):
    ctl = make_controller()
    await ctl.load_playlist(three_segments)

    await ctl.play()
    assert ctl.state.phase is Phase.PLAYING
    await ctl.pause()
    assert ctl.state.phase is Phase.PAUSED
    assert not backend.playing
    await ctl.toggle_play_pause()
    assert ctl.state.phase is Phase.PLAYING
    await ctl.toggle_play_pause()
    assert ctl.state.phase is Phase.PAUSED


@pytest.mark.asyncio
async def test_play_without_playlist_is_ignored(make_controller, backend):
    ctl = make_controller()
    await ctl.play()
    assert ctl.state.phase is Phase.IDLE
    assert backend.play_calls == 0


@pytest.mark.asyncio
async def test_stop_returns_to_start_idle(make_controller, backend, three_segments):
    ctl = make_controller()
    await ctl.load_playlist(three_segments, auto_play=True)
    await ctl.play_segment(2)
    assert backend.url == "b.mp3"

    await ctl.stop()

    st = ctl.state
    assert st.phase is Phase.IDLE
    assert st.active_segment_index == 0
    assert st.virtual_time == 0.0
    assert st.real_time == 10.0
    assert backend.url == "a.mp3"
    assert not backend.playing


@pytest.mark.asyncio
async def test_intent_expressed_while_loading_is_honoured(make_controller, backend, three_segments):
    backend.auto_ready = False
    ctl = make_controller()
    task = asyncio.create_task(ctl.load_playlist(three_segments))
    await asyncio.sleep(0)
    assert ctl.state.phase is Phase.LOADING
    assert ctl.transition_pending

    await ctl.play()
    assert backend.play_calls == 0

    backend.become_ready()
    await task
    assert ctl.state.phase is Phase.PLAYING
    assert backend.play_calls == 1


@pytest.mark.asyncio
async def test_empty_playlist_is_a_no_op(make_controller, backend, caplog):
    ctl = make_controller()
    with caplog.at_level(logging.WARNING):
        await ctl.load_playlist([])
        await ctl.load_playlist(None)

    assert "Empty playlist provided" in caplog.text
    assert ctl.state.phase is Phase.IDLE
    assert backend.loads == []


@pytest.mark.asyncio
async def test_invalid_playlist_leaves_current_one_untouched(make_controller, backend, three_segments):
    ctl = make_controller()
    await ctl.load_playlist(three_segments)

    with pytest.raises(InvalidSegment):
        await ctl.load_playlist([{"markers": [0, 1]}])
    with pytest.raises(ValueError):
        await ctl.load_playlist(three_segments, mode="shuffle")

    assert len(ctl.get_segment_map()) == 3
    assert backend.loads == ["a.mp3"]


# ── rate ────────────────────────────────────────────────────────────────────
@pytest.mark.asyncio
@pytest.mark.parametrize("rate", [0.1, 3.0, 0.0])
async def test_out_of_range_rate_is_ignored(make_controller, backend, rate):
    ctl = make_controller()
    ctl.set_rate(rate)
    assert ctl.state.rate == 1.0
    assert backend.rates == []


@pytest.mark.asyncio
async def test_rate_in_range_is_applied(make_controller, backend):
    ctl = make_controller()
    ctl.set_rate(1.5)
    assert ctl.state.rate == 1.5
    assert backend.rates == [1.5]


# ── segment navigation ──────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_next_and_previous(make_controller, backend, three_segments):
    ctl = make_controller()
    await ctl.load_playlist(three_segments)

    await ctl.previous()
    assert ctl.state.active_segment_index == 0
    await ctl.next()
    assert ctl.state.active_segment_index == 1
    assert ctl.state.phase is Phase.PAUSED
    await ctl.next()
    await ctl.next()
    assert ctl.state.active_segment_index == 2
    await ctl.previous()
    assert ctl.state.active_segment_index == 1
    assert ctl.state.virtual_time == 10.0


@pytest.mark.asyncio
async def test_play_segment_out_of_range_is_ignored(make_controller, backend, three_segments):
    ctl = make_controller()
    await ctl.load_playlist(three_segments)
    before = ctl.state
    await ctl.play_segment(7)
    await ctl.play_segment(-1)
    assert ctl.state == before


@pytest.mark.asyncio
async def test_segments_sharing_a_file_do_not_reload(make_controller, backend, three_segments):
    ctl = make_controller()
    await ctl.load_playlist(three_segments, auto_play=True)

    backend.tick(20.0)
    await ctl.settle()
    assert ctl.state.active_segment_index == 1
    assert ctl.state.phase is Phase.PLAYING
    assert backend.loads == ["a.mp3"]
    assert backend.seeks[-1] == 20.0

    backend.tick(25.0)
    await ctl.settle()
    assert ctl.state.active_segment_index == 2
    assert backend.loads == ["a.mp3", "b.mp3"]


@pytest.mark.asyncio
async def test_boundary_tick_and_end_event_advance_once(make_controller, backend, three_segments):
    ctl = make_controller()
    await ctl.load_playlist(three_segments, auto_play=True)

    backend.tick(20.0)
    backend.end()
    backend.tick(20.1)
    await ctl.settle()

    assert ctl.state.active_segment_index == 1


@pytest.mark.asyncio
async def test_time_update_moves_both_clocks(make_controller, backend, three_segments):
    ctl = make_controller()
    await ctl.load_playlist(three_segments, auto_play=True)
    seen = []
    ctl.subscribe(lambda st: seen.append(st.virtual_time))

    backend.tick(12.0)
    backend.tick(14.5)

    assert ctl.state.real_time == 14.5
    assert ctl.state.virtual_time == 4.5
    assert seen == [2.0, 4.5]


@pytest.mark.asyncio
async def test_paused_player_does_not_advance_at_boundary(make_controller, backend, three_segments):
    ctl = make_controller()
    await ctl.load_playlist(three_segments)
    backend.tick(20.0)
    await ctl.settle()
    assert ctl.state.active_segment_index == 0


@pytest.mark.asyncio
async def test_playlist_end_rests_idle_at_end(make_controller, backend):
    ctl = make_controller()
    await ctl.load_playlist([seg("c.mp3", 0, 3)], auto_play=True)

    backend.tick(3.0)
    await ctl.settle()

    st = ctl.state
    assert st.phase is Phase.IDLE
    assert st.virtual_time == st.total_duration == 3.0
    assert not backend.playing


# ── queue ───────────────────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_queued_playlist_starts_after_current(make_controller, backend, three_segments):
    ctl = make_controller()
    queued = [seg("c.mp3", 0, 3)]
    await ctl.load_playlist(queued, mode="queue")
    assert ctl.state.queue_length == 1
    assert backend.loads == []

    await ctl.load_playlist(three_segments, auto_play=True)
    for position in (20.0, 25.0, 8.0):
        backend.tick(position)
        await ctl.settle()

    st = ctl.state
    assert st.phase is Phase.PLAYING
    assert st.total_duration == 3.0
    assert st.active_segment_index == 0
    assert st.queue_length == 0
    assert ctl.playlist == tuple(queued)
    assert backend.loads == ["a.mp3", "b.mp3", "c.mp3"]


@pytest.mark.asyncio
async def test_queue_is_fifo(make_controller, backend):
    ctl = make_controller()
    first, second = [seg("x.mp3", 0, 1)], [seg("y.mp3", 0, 1)]
    await ctl.load_playlist(first, mode="queue")
    await ctl.load_playlist(second, mode="queue")
    await ctl.load_playlist([seg("a.mp3", 0, 1)], auto_play=True)

    backend.tick(1.0)
    await ctl.settle()
    assert backend.url == "x.mp3"
    backend.tick(1.0)
    await ctl.settle()
    assert backend.url == "y.mp3"


@pytest.mark.asyncio
async def test_queue_mode_with_clear_inserts_once(make_controller, backend):
    ctl = make_controller()
    a, b = [seg("x.mp3", 0, 1)], [seg("y.mp3", 0, 1)]
    await ctl.load_playlist(a, mode="queue")
    await ctl.load_playlist(b, mode="queue", clear_queue=True)

    assert ctl.queue == (tuple(b),)
    assert ctl.state.queue_length == 1


@pytest.mark.asyncio
async def test_bad_queue_position_keeps_pending_playlists(make_controller, backend):
    ctl = make_controller()
    a, b = [seg("x.mp3", 0, 1)], [seg("y.mp3", 0, 1)]
    await ctl.load_playlist(a, mode="queue")

    with pytest.raises(ValueError):
        await ctl.load_playlist(b, mode="queue", clear_queue=True, position="middle")

    assert ctl.queue == (tuple(a),)
    assert ctl.state.queue_length == 1


@pytest.mark.asyncio
async def test_queue_positions_and_removal(make_controller, backend):
    ctl = make_controller()
    a, b, c = [seg("x.mp3")], [seg("y.mp3")], [seg("z.mp3")]
    await ctl.load_playlist(a, mode="queue")
    await ctl.load_playlist(b, mode="queue", position="start")
    await ctl.load_playlist(c, mode="queue", position=1)
    assert ctl.queue == (tuple(b), tuple(c), tuple(a))

    ctl.remove_from_queue(1)
    ctl.remove_from_queue(10)
    assert ctl.queue == (tuple(b), tuple(a))
    assert ctl.state.queue_length == 2

    ctl.clear_queue()
    assert ctl.queue == ()
    assert ctl.state.queue_length == 0


@pytest.mark.asyncio
async def test_replace_with_clear_queue_drops_pending(make_controller, backend, three_segments):
    ctl = make_controller()
    await ctl.load_playlist([seg("x.mp3", 0, 1)], mode="queue")
    await ctl.load_playlist(three_segments, clear_queue=True)
    assert ctl.queue == ()


# ── failures ────────────────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_ready_timeout_enters_error(make_controller, backend, three_segments):
    backend.auto_ready = False
    ctl = make_controller(ready_timeout=0.05)
    await ctl.load_playlist(three_segments, auto_play=True)

    st = ctl.state
    assert st.phase is Phase.ERROR
    assert "Timed out" in st.error
    assert not ctl.transition_pending

    await ctl.play()
    await ctl.seek_to(5.0)
    assert ctl.state.phase is Phase.ERROR
    assert backend.play_calls == 0


@pytest.mark.asyncio
async def test_new_load_recovers_from_error(make_controller, backend, three_segments):
    backend.auto_ready = False
    ctl = make_controller(ready_timeout=0.05)
    await ctl.load_playlist(three_segments)
    assert ctl.state.phase is Phase.ERROR

    backend.auto_ready = True
    await ctl.load_playlist(three_segments)
    assert ctl.state.phase is Phase.PAUSED
    assert ctl.state.error is None


@pytest.mark.asyncio
async def test_resource_error_event(make_controller, backend, three_segments):
    ctl = make_controller()
    await ctl.load_playlist(three_segments, auto_play=True)

    backend.fail("decode error")

    assert ctl.state.phase is Phase.ERROR
    assert ctl.state.error == "decode error"
    assert not backend.playing


@pytest.mark.asyncio
async def test_rejected_play_stays_paused_until_retried(make_controller, backend, three_segments):
    backend.reject_play = True
    ctl = make_controller()
    await ctl.load_playlist(three_segments, auto_play=True)

    assert ctl.state.phase is Phase.PAUSED
    assert ctl.state.error == "autoplay blocked"

    backend.reject_play = False
    await ctl.play()
    assert ctl.state.phase is Phase.PLAYING
    assert ctl.state.error is None
    assert backend.loads == ["a.mp3"]


# ── stale completions ───────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_events_for_previous_source_are_dropped(make_controller, backend, three_segments):
    ctl = make_controller()
    await ctl.load_playlist(three_segments, auto_play=True)
    await ctl.play_segment(2)
    before = ctl.state

    ctl.handle_event(MediaEvent(MediaEventKind.TIME_UPDATE, url="a.mp3", position=20.0))
    ctl.handle_event(MediaEvent(MediaEventKind.ENDED, url="a.mp3"))
    ctl.handle_event(MediaEvent(MediaEventKind.ERROR, url="a.mp3", message="late"))
    await ctl.settle()

    assert ctl.state == before


@pytest.mark.asyncio
async def test_superseded_load_does_not_win(make_controller, backend, three_segments):
    backend.auto_ready = False
    ctl = make_controller()
    first = asyncio.create_task(ctl.load_playlist(three_segments, auto_play=True))
    await asyncio.sleep(0)

    backend.auto_ready = True
    await ctl.play_segment(2)
    await first
    backend.become_ready("a.mp3")

    st = ctl.state
    assert st.active_segment_index == 2
    assert st.phase is Phase.PLAYING
    assert backend.url == "b.mp3"
    assert backend.play_calls == 1


@pytest.mark.asyncio
async def test_duration_and_buffering_events(make_controller, backend, three_segments):
    ctl = make_controller()
    await ctl.load_playlist(three_segments, auto_play=True)

    backend._sink(MediaEvent(MediaEventKind.DURATION, url="a.mp3", duration=42.0))
    assert ctl.state.media_duration == 42.0
    backend._sink(MediaEvent(MediaEventKind.WAITING, url="a.mp3"))
    assert ctl.state.loading is True
    backend._sink(MediaEvent(MediaEventKind.CAN_PLAY, url="a.mp3"))
    assert ctl.state.loading is False


# ── views ───────────────────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_marker_label_follows_position(make_controller, backend, three_segments):
    ctl = make_controller()
    await ctl.load_playlist(three_segments)
    assert ctl.get_current_marker_label() == "JHN 3:16"

    backend.tick(16.0)
    assert ctl.get_current_marker_label() == "JHN 3:17"

    await ctl.play_segment(2)
    assert ctl.get_current_segment().label == "JHN 4:1-2"
    assert ctl.get_current_marker_label() == "JHN 4:1"


@pytest.mark.asyncio
async def test_marker_label_without_playlist(make_controller):
    ctl = make_controller()
    assert ctl.get_current_segment() is None
    assert ctl.get_current_marker_label() is None


@pytest.mark.asyncio
async def test_subscribers_see_commits_until_unsubscribed(make_controller, backend, three_segments):
    ctl = make_controller()
    phases = []
    unsubscribe = ctl.subscribe(lambda st: phases.append(st.phase))

    await ctl.load_playlist(three_segments)
    assert phases[0] is Phase.LOADING
    assert phases[-1] is Phase.PAUSED
    assert ctl.peek_state() == ctl.state

    unsubscribe()
    unsubscribe()
    await ctl.play()
    assert Phase.PLAYING not in phases
