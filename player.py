"""
player.py – playback controller

Plays an ordered list of segments as one continuous recording while owning a
single media resource.  Three clocks are in play: the real position inside
the active file, the virtual position on the playlist timeline, and the
marker position (which sub-unit is speaking).

Flow
----
  caller intent ─► controller op ─► segment map / clock ─► backend
  backend ─► MediaEvent ─► handle_event() ─► state commit
                               └─► segment-end ─► next segment | next queued playlist

Every operation that (re)positions the resource bumps a generation counter.
Anything that suspends (buffering waits, play requests) re-checks the
generation on resumption and walks away quietly if a newer operation took
over, so a late completion can never act on behalf of a superseded one.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from typing import (Any, Callable, Iterable, List, Mapping, Optional, Set,
                    Tuple)

import config
from backend import MediaBackend
from errors import LoadFailure, PlaybackRejected
from events import MediaEvent, MediaEventKind
from markers import resolve_marker_label
from playlist_queue import PlaylistQueue, Position
from seek_engine import SeekEngine
from segment_map import Segment, SegmentMap, build_segment_map
from state import Phase, PlayerState
from timing import format_hms, to_real, to_virtual

logger = logging.getLogger(__name__)

StateListener = Callable[[PlayerState], None]


class PlaybackController:
    def __init__(self, backend: MediaBackend, *,
                 queue: Optional[PlaylistQueue] = None,
                 seek_guard: float = config.SEEK_GUARD_SEC,
                 ready_timeout: float = config.READY_TIMEOUT_SEC) -> None:
        self._backend = backend
        self._queue = queue if queue is not None else PlaylistQueue()
        self._ready_timeout = ready_timeout

        self._playlist: Tuple[Mapping[str, Any], ...] = ()
        self._segment_map = SegmentMap()

        # committed snapshot + working draft (see peek_state)
        self._draft = PlayerState(queue_length=len(self._queue))
        self._state = self._draft
        self._listeners: List[StateListener] = []

        self._generation = 0
        self._intent_playing = False
        self._ended_key: Optional[Tuple[int, int]] = None
        self._ready_waiter: Optional[asyncio.Future] = None
        self._tasks: Set[asyncio.Task] = set()

        self.seeker = SeekEngine(self, guard=seek_guard)
        backend.bind(self.handle_event)

    # ── state views ────────────────────────────────────────────────────────
    @property
    def state(self) -> PlayerState:
        """Last committed snapshot."""
        return self._state

    def peek_state(self) -> PlayerState:
        """
        Working state, possibly ahead of the last commit.  Meant for guards
        and dedup checks that must see a transition before it is published.
        """
        return self._draft

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)
        return unsubscribe

    def _update(self, **changes: Any) -> None:
        self._draft = replace(self._draft, **changes)

    def _commit(self) -> None:
        if self._draft == self._state:
            return
        self._state = self._draft
        for listener in list(self._listeners):
            listener(self._state)

    # ── queries ────────────────────────────────────────────────────────────
    @property
    def queue(self) -> Tuple[Tuple[Mapping[str, Any], ...], ...]:
        return tuple(item.entries for item in self._queue)

    @property
    def playlist(self) -> Tuple[Mapping[str, Any], ...]:
        return self._playlist

    @property
    def transition_pending(self) -> bool:
        """A source load is waiting for the resource to become ready."""
        return self._ready_waiter is not None and not self._ready_waiter.done()

    def get_segment_map(self) -> SegmentMap:
        return self._segment_map

    def get_current_segment(self) -> Optional[Segment]:
        idx = self._draft.active_segment_index
        if not 0 <= idx < len(self._segment_map):
            return None
        return self._segment_map[idx]

    def get_current_marker_label(self) -> Optional[str]:
        segment = self.get_current_segment()
        if segment is None:
            return None
        if self._backend.url == segment.media_url and self._backend.ready:
            real_time = self._backend.position
        else:
            real_time = self._draft.real_time
        return resolve_marker_label(segment.markers, segment.label, real_time)

    # ── playlist / queue ───────────────────────────────────────────────────
    async def load_playlist(self, entries: Optional[Iterable[Mapping[str, Any]]], *,
                            mode: str = "replace",
                            auto_play: bool = False,
                            clear_queue: bool = False,
                            position: Position = config.DEFAULT_QUEUE_POSITION) -> None:
        entries = tuple(entries) if entries is not None else ()
        if not entries:
            logger.warning("Empty playlist provided; nothing loaded")
            return
        if mode not in ("replace", "queue"):
            raise ValueError(f"mode must be 'replace' or 'queue', not {mode!r}")

        # entries and queue position are validated before anything changes
        segment_map = build_segment_map(entries)

        if mode == "queue":
            PlaylistQueue.insertion_for(position)
            if clear_queue:
                self._queue.clear()
            self._queue.enqueue(entries, position)
            self._update(queue_length=len(self._queue))
            self._commit()
            logger.info("Queued playlist of %d segments (%d pending)",
                        len(entries), len(self._queue))
            return

        if clear_queue:
            self._queue.clear()
        await self._replace(entries, segment_map, auto_play=auto_play)

    def clear_queue(self) -> None:
        self._queue.clear()
        self._update(queue_length=0)
        self._commit()

    def remove_from_queue(self, index: int) -> None:
        self._queue.remove_at(index)
        self._update(queue_length=len(self._queue))
        self._commit()

    async def _replace(self, entries, segment_map: SegmentMap, *, auto_play: bool) -> None:
        self.invalidate()
        self.seeker.cancel()
        self._backend.pause()
        self._backend.close()
        self._playlist = entries
        self._segment_map = segment_map
        self._intent_playing = auto_play
        self._ended_key = None
        self._update(phase=Phase.LOADING, active_segment_index=0,
                     real_time=0.0, virtual_time=0.0,
                     total_duration=segment_map.total_duration,
                     loading=True, error=None, media_duration=None,
                     queue_length=len(self._queue))
        self._commit()
        logger.info("Loaded playlist: %d segments, %s total",
                    len(segment_map), format_hms(segment_map.total_duration))
        await self.move_to_segment(0)

    # ── transport ──────────────────────────────────────────────────────────
    async def play(self) -> None:
        if not self._segment_map:
            logger.warning("play() with no playlist loaded")
            return
        if self._draft.phase is Phase.ERROR:
            logger.warning("play() ignored after error (%s); load a playlist to recover",
                           self._draft.error)
            return
        self._intent_playing = True
        if self.transition_pending:
            return          # the in-flight load resumes once the resource is ready
        await self._start_playback(self._generation)

    async def pause(self) -> None:
        self._intent_playing = False
        if not self._segment_map:
            return
        self._backend.pause()
        if self._draft.phase is Phase.PLAYING:
            self._update(phase=Phase.PAUSED)
            self._commit()

    async def toggle_play_pause(self) -> None:
        if self._intent_playing:
            await self.pause()
        else:
            await self.play()

    async def stop(self) -> None:
        self._intent_playing = False
        if not self._segment_map or self._draft.phase is Phase.ERROR:
            return
        self._backend.pause()
        self.seeker.cancel()
        self._update(phase=Phase.IDLE, virtual_time=0.0,
                     real_time=self._segment_map[0].start_offset)
        self._commit()
        await self.move_to_segment(0, settle=Phase.IDLE)

    def set_rate(self, rate: float) -> None:
        if not config.MIN_RATE <= rate <= config.MAX_RATE:
            logger.debug("Ignoring playback rate %r (allowed %.2f–%.2f)",
                         rate, config.MIN_RATE, config.MAX_RATE)
            return
        self._backend.set_rate(rate)
        self._update(rate=rate)
        self._commit()

    async def seek_to(self, virtual_time: float) -> None:
        await self.seeker.seek_to(virtual_time)

    async def play_segment(self, index: int) -> None:
        if not 0 <= index < len(self._segment_map):
            return
        if self._draft.phase is Phase.ERROR:
            return
        await self.move_to_segment(index)

    async def next(self) -> None:
        await self.play_segment(self._draft.active_segment_index + 1)

    async def previous(self) -> None:
        idx = self._draft.active_segment_index - 1
        if idx >= 0:
            await self.play_segment(idx)

    async def settle(self) -> None:
        """Wait for background transitions (segment ends) to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))

    async def close(self) -> None:
        self.invalidate()
        self._intent_playing = False
        self.seeker.cancel()
        for task in list(self._tasks):
            task.cancel()
        self._backend.close()

    # ── transition functions (also used by the seek engine) ────────────────
    def invalidate(self) -> int:
        """Make every in-flight operation stale; returns the new generation."""
        self._generation += 1
        return self._generation

    def enter_seeking(self, index: int, virtual_time: float) -> None:
        self._backend.pause()
        self._update(phase=Phase.SEEKING, active_segment_index=index,
                     virtual_time=virtual_time)
        self._commit()

    def reposition(self, segment: Segment, offset: float) -> None:
        """Jump the resource to *offset* seconds into *segment* (same file)."""
        target = to_real(offset, segment)
        self.seeker.arm()
        self._backend.seek(target)
        self._update(real_time=target,
                     virtual_time=segment.virtual_start + max(0.0, offset))
        self._commit()

    async def move_to_segment(self, index: int, offset: float = 0.0, *,
                              settle: Optional[Phase] = None) -> bool:
        """
        Make segment *index* active, *offset* seconds in.  The source is
        reloaded only when the segment lives in a different file.  Playback
        resumes if playing is intended by the time the resource is ready.
        Returns False if the move was superseded or failed.
        """
        generation = self.invalidate()
        segment = self._segment_map[index]
        prior = self._draft.phase
        self._update(active_segment_index=index)

        if self._backend.url != segment.media_url:
            waiter = self._open_source(segment.media_url)
            if not await self._wait_ready(waiter, generation):
                return False
        elif self.transition_pending:
            if not await self._wait_ready(self._ready_waiter, generation):
                return False

        self.reposition(segment, offset)
        if self._intent_playing:
            return await self._start_playback(generation)

        if settle is None:
            settle = Phase.IDLE if prior is Phase.IDLE else Phase.PAUSED
        self._update(phase=settle, loading=False)
        self._commit()
        return True

    def _open_source(self, url: str) -> asyncio.Future:
        if self.transition_pending:
            self._ready_waiter.set_result(False)        # superseded
        waiter = asyncio.get_running_loop().create_future()
        self._ready_waiter = waiter

        self._backend.pause()
        phase = Phase.SEEKING if self._draft.phase is Phase.SEEKING else Phase.LOADING
        self._update(phase=phase, loading=True, media_duration=None)
        self._commit()
        logger.debug("Loading source %s", url)
        self._backend.load(url)
        if self._backend.ready and not waiter.done():
            waiter.set_result(True)
        return waiter

    async def _wait_ready(self, waiter: asyncio.Future, generation: int) -> bool:
        try:
            ok = await asyncio.wait_for(asyncio.shield(waiter), self._ready_timeout)
        except asyncio.TimeoutError:
            if generation == self._generation:
                self._fail(f"Timed out after {self._ready_timeout:g}s waiting for "
                           f"{self._backend.url} to buffer")
            return False
        if not ok or generation != self._generation:
            logger.debug("Dropping stale load completion (generation %d)", generation)
            return False
        return True

    async def _start_playback(self, generation: int) -> bool:
        try:
            await self._backend.play()
        except PlaybackRejected as exc:
            if generation != self._generation:
                return False
            logger.warning("Playback rejected: %s", exc)
            self._intent_playing = False
            self._update(phase=Phase.PAUSED, loading=False, error=str(exc))
            self._commit()
            return False
        except LoadFailure as exc:
            if generation == self._generation:
                self._fail(str(exc))
            return False

        if generation != self._generation:
            return False
        self._update(phase=Phase.PLAYING, loading=False, error=None)
        self._commit()
        return True

    def _fail(self, message: str) -> None:
        logger.error("Load failure: %s", message)
        self.invalidate()
        self._intent_playing = False
        if self.transition_pending:
            self._ready_waiter.set_result(False)
        self._backend.pause()
        self._update(phase=Phase.ERROR, loading=False, error=message)
        self._commit()

    # ── resource events ────────────────────────────────────────────────────
    def handle_event(self, event: MediaEvent) -> None:
        """Transition function for everything the resource reports."""
        if event.url is not None and event.url != self._backend.url:
            logger.debug("Dropping %s for stale source %s", event.kind.value, event.url)
            return

        kind = event.kind
        if kind is MediaEventKind.CAN_PLAY:
            if self.transition_pending:
                self._ready_waiter.set_result(True)
            self._update(loading=False)
        elif kind is MediaEventKind.WAITING:
            self._update(loading=True)
        elif kind is MediaEventKind.DURATION:
            self._update(media_duration=event.duration)
        elif kind is MediaEventKind.TIME_UPDATE:
            self._on_time_update(event.position)
        elif kind is MediaEventKind.ENDED:
            self._on_segment_end()
        elif kind is MediaEventKind.ERROR:
            self._fail(event.message or "Failed to load audio")
            return
        self._commit()

    def _on_time_update(self, position: Optional[float]) -> None:
        if position is None or self.seeker.in_flight:
            return
        segment = self.get_current_segment()
        if segment is None:
            return
        self._update(real_time=position, virtual_time=to_virtual(position, segment))
        if position >= segment.end_offset:
            self._on_segment_end()

    def _on_segment_end(self) -> None:
        # boundary ticks and natural-end events both land here; one
        # advance per (generation, segment) crossing
        segment = self.get_current_segment()
        if segment is None or self._draft.phase is not Phase.PLAYING:
            return
        key = (self._generation, segment.index)
        if key == self._ended_key:
            return
        self._ended_key = key
        self._spawn(self._advance(key))

    async def _advance(self, key: Tuple[int, int]) -> None:
        generation, index = key
        if generation != self._generation:
            return
        nxt = index + 1
        if nxt < len(self._segment_map):
            logger.info("Segment %d finished; advancing to %d", index, nxt)
            await self.move_to_segment(nxt)
        else:
            await self._finish_playlist()

    async def _finish_playlist(self) -> None:
        self.invalidate()
        self._backend.pause()
        self._intent_playing = False
        self._update(phase=Phase.IDLE, loading=False,
                     virtual_time=self._segment_map.total_duration)

        entries = self._queue.dequeue_next()
        self._update(queue_length=len(self._queue))
        self._commit()
        if entries is None:
            logger.info("Playlist finished; queue is empty")
            return

        logger.info("Playlist finished; starting next queued playlist (%d left)",
                    len(self._queue))
        await self._replace(entries, build_segment_map(entries), auto_play=True)

    def _spawn(self, coro) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Segment transition failed", exc_info=task.exception())
