# config.py
"""
Configuration settings for the segmented playlist player.
"""

# ── Playback rate ──────────────────────────────────────────────────────────

DEFAULT_RATE = 1.0
MIN_RATE     = 0.25      # inclusive
MAX_RATE     = 2.0       # inclusive

# ── Seeking / loading ──────────────────────────────────────────────────────

# Window (s) after a seek during which position ticks from the resource are
# not allowed to move the reported virtual time.
SEEK_GUARD_SEC = 0.2

# Upper bound (s) on waiting for "enough data buffered" after a source change.
# Expiry surfaces as a load failure.
READY_TIMEOUT_SEC = 10.0

# ── GStreamer backend ──────────────────────────────────────────────────────

POSITION_POLL_MS = 250   # how often the playbin position is reported
AUDIO_SINK       = "autoaudiosink"

# ── Queue ──────────────────────────────────────────────────────────────────

DEFAULT_QUEUE_POSITION = "end"      # "start" | "end" | <int>

# ── Runner ─────────────────────────────────────────────────────────────────

TICK_SEC = 0.05          # action-drain interval of the main loop

# ── Logging ────────────────────────────────────────────────────────────────

LOG_LEVEL  = "INFO"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# ── Playlist verification ──────────────────────────────────────────────────

# Slack (s) allowed between a segment's last marker and the probed file length
PROBE_TOLERANCE_SEC = 0.5
