"""
seek_engine.py

Turns a point on the playlist timeline into a (segment, offset) pair and
drives the controller there.

Same segment  → reposition the resource in place, no reload.
Other segment → pause, switch segment (reloading only if it lives in a
                different file), reposition, resume if we were playing.

While a seek is in flight, and for ``guard`` seconds after the resource was
last repositioned, position ticks are not allowed to move the reported
virtual time; they may still be describing the outgoing position.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Optional

import config
from state import Phase

if TYPE_CHECKING:                       # avoid circular import at runtime
    from player import PlaybackController

logger = logging.getLogger(__name__)


class SeekEngine:
    def __init__(self, controller: "PlaybackController",
                 guard: float = config.SEEK_GUARD_SEC) -> None:
        self._controller = controller
        self._guard = guard
        self._release: Optional[asyncio.TimerHandle] = None
        self.in_flight = False

    # ── guard window ──────────────────────────────────────────────────────
    def arm(self) -> None:
        """(Re)start the guard window; only the latest timer may clear it."""
        if self._guard <= 0:
            return
        if self._release is not None:
            self._release.cancel()
        self.in_flight = True
        self._release = asyncio.get_running_loop().call_later(self._guard, self._disarm)

    def _disarm(self) -> None:
        self._release = None
        self.in_flight = False

    def cancel(self) -> None:
        if self._release is not None:
            self._release.cancel()
        self._disarm()

    # ── seeking ───────────────────────────────────────────────────────────
    async def seek_to(self, virtual_time: float) -> None:
        ctl = self._controller
        segment_map = ctl.get_segment_map()
        current = ctl.peek_state()
        if not segment_map:
            return
        if current.phase is Phase.ERROR:
            logger.warning("Seek ignored while in error state")
            return

        index, offset = segment_map.locate(virtual_time)
        target = segment_map[index]
        self.arm()

        if index == current.active_segment_index and not ctl.transition_pending:
            ctl.invalidate()
            ctl.reposition(target, offset)
            return

        logger.debug("Seek %.3fs → segment %d +%.3fs", virtual_time, index, offset)
        settle = Phase.IDLE if current.phase is Phase.IDLE else Phase.PAUSED
        ctl.enter_seeking(index, target.virtual_start + offset)
        await ctl.move_to_segment(index, offset, settle=settle)
