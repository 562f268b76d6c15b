import asyncio

import pytest

from backend import MediaBackend
from errors import PlaybackRejected
from events import EventManager, MediaEvent, MediaEventKind
from player import PlaybackController


class FakeMediaBackend(MediaBackend):
    """In-memory media resource; tests drive it with synthetic events."""

    def __init__(self, auto_ready=True, reject_play=False):
        self.auto_ready = auto_ready
        self.reject_play = reject_play
        self.url = None
        self.loads = []
        self.seeks = []
        self.rates = []
        self.play_calls = 0
        self.pause_calls = 0
        self.playing = False
        self._ready = False
        self._position = 0.0
        self._sink = None

    # ── MediaBackend ──────────────────────────────────────────────────────
    def bind(self, sink):
        self._sink = sink

    @property
    def ready(self):
        return self._ready

    @property
    def position(self):
        return self._position

    def load(self, url):
        self.url = url
        self.loads.append(url)
        self._ready = False
        self.playing = False
        self._position = 0.0
        if self.auto_ready:
            asyncio.get_running_loop().call_soon(self.become_ready, url)

    async def play(self):
        self.play_calls += 1
        if self.reject_play:
            raise PlaybackRejected("autoplay blocked")
        self.playing = True

    def pause(self):
        self.pause_calls += 1
        self.playing = False

    def seek(self, seconds):
        self.seeks.append(seconds)
        self._position = seconds

    def set_rate(self, rate):
        self.rates.append(rate)

    def close(self):
        self.url = None
        self._ready = False
        self.playing = False

    # ── test helpers ──────────────────────────────────────────────────────
    def become_ready(self, url=None):
        url = url or self.url
        if url != self.url:
            return
        self._ready = True
        self._sink(MediaEvent(MediaEventKind.CAN_PLAY, url=url))

    def tick(self, position):
        self._position = position
        self._sink(MediaEvent(MediaEventKind.TIME_UPDATE, url=self.url, position=position))

    def end(self):
        self._sink(MediaEvent(MediaEventKind.ENDED, url=self.url))

    def fail(self, message="decode error"):
        self._sink(MediaEvent(MediaEventKind.ERROR, url=self.url, message=message))


def seg(url, *markers, **extra):
    entry = {"media_url": url, "markers": list(markers)}
    entry.update(extra)
    return entry


@pytest.fixture
def backend():
    return FakeMediaBackend()


@pytest.fixture
def make_controller(backend):
    def _make(**kwargs):
        kwargs.setdefault("seek_guard", 0)
        kwargs.setdefault("ready_timeout", 1.0)
        return PlaybackController(backend, **kwargs)
    return _make


@pytest.fixture
def three_segments():
    """
    Timeline layout:
        seg 0  a.mp3  10–20 s  →  virtual  0–10 s
        seg 1  a.mp3  20–25 s  →  virtual 10–15 s
        seg 2  b.mp3   0– 8 s  →  virtual 15–23 s
    """
    return [
        seg("a.mp3", 10, 15, 20, label="JHN 3:16-17"),
        seg("a.mp3", 20, 25, label="JHN 3:18"),
        seg("b.mp3", 0, 4, 8, label="JHN 4:1-2"),
    ]


@pytest.fixture(autouse=True)
def _empty_event_manager():
    EventManager.reset()
    yield
    EventManager.reset()
