"""
errors.py

Failures the player reports.  Resource-level errors never escape the
controller; they end up in ``PlayerState.error``.
"""


class PlaybackError(Exception):
    """Base class for player errors."""


class LoadFailure(PlaybackError):
    """The media resource could not load/decode a URL, or never became ready."""


class PlaybackRejected(PlaybackError):
    """The runtime refused to start playback.  Retry does not need a reload."""


class InvalidSegment(PlaybackError, ValueError):
    """A segment descriptor is missing its media URL or has bad markers."""


class PlaylistFileError(PlaybackError):
    """A playlist file could not be read or parsed."""
