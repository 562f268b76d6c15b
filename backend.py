"""
backend.py

Contract between the playback controller and the one physical media
resource it owns.  Implementations deliver lifecycle/timing as MediaEvents
to the sink given to ``bind``; the controller never reads resource state
from callbacks of its own.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable, Optional

from events import MediaEvent

EventSink = Callable[[MediaEvent], None]


class MediaBackend(ABC):
    url: Optional[str] = None      # current source; None when closed

    @abstractmethod
    def bind(self, sink: EventSink) -> None:
        """Route this resource's events to *sink* (on the controller's loop)."""

    @property
    @abstractmethod
    def ready(self) -> bool:
        """Enough data buffered to render from the current position."""

    @property
    @abstractmethod
    def position(self) -> float:
        """Real position in seconds."""

    @abstractmethod
    def load(self, url: str) -> None:
        """Start loading *url*.  Completion arrives later as CAN_PLAY or ERROR."""

    @abstractmethod
    async def play(self) -> None:
        """Start/resume playback.  Raises PlaybackRejected if refused."""

    @abstractmethod
    def pause(self) -> None: ...

    @abstractmethod
    def seek(self, seconds: float) -> None: ...

    @abstractmethod
    def set_rate(self, rate: float) -> None: ...

    @abstractmethod
    def close(self) -> None:
        """Release the current source; ``url`` becomes None."""
