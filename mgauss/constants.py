"""Detection and protocol constants: single source of truth.

The preprocessing values below were tuned together with the deployed
classifier.  Changing any of them silently breaks model compatibility, so
they are deliberately not exposed through the YAML configuration.
"""

from __future__ import annotations

from typing import Final

# ---------------------------------------------------------------------------
# Feature window
# ---------------------------------------------------------------------------
WINDOW_SIZE: Final[int] = 100
"""Number of resampled points per axis handed to the classifier."""

TARGET_INTERVAL_MS: Final[float] = 10.0
"""Spacing of the uniform resampling grid (100 points x 10 ms = 1 s)."""

TARGET_DURATION_NS: Final[int] = 1_000_000_000
"""Length of the analysis window that ends at the capture time."""

SAFETY_MARGIN_NS: Final[int] = 200_000_000
"""Extra look-back before the window start, absorbs sensor jitter."""

RETENTION_NS: Final[int] = 1_500_000_000
"""Samples older than ``newest - RETENTION_NS`` are evicted from the buffer."""

INFERENCE_INTERVAL_NS: Final[int] = 100_000_000
"""Minimum sensor-clock spacing between two classification cycles."""

NS_PER_MS: Final[float] = 1_000_000.0

# ---------------------------------------------------------------------------
# Zero-phase IIR filter (4th order), b = feed-forward, a = feedback
# ---------------------------------------------------------------------------
FILTER_B: Final[tuple[float, ...]] = (
    0.43284664499029174,
    -1.731386579961167,
    2.5970798699417506,
    -1.731386579961167,
    0.43284664499029174,
)
FILTER_A: Final[tuple[float, ...]] = (
    1.0,
    -2.3695130071820376,
    2.31398841441588,
    -1.0546654058785674,
    0.18737949236818488,
)

# ---------------------------------------------------------------------------
# Decision hysteresis
# ---------------------------------------------------------------------------
ACTIVATE_THRESHOLD: Final[float] = 0.75
"""Neutral -> Active when the device probability is strictly above this."""

RELEASE_THRESHOLD: Final[float] = 0.30
"""Active -> Neutral when the device probability is strictly below this."""

FEEDBACK_INTERVAL_S: Final[float] = 1.0
"""Period of the local vibrate/tone tick while Active."""

# ---------------------------------------------------------------------------
# Peer alert protocol
# ---------------------------------------------------------------------------
PEER_ALERT_PORT: Final[int] = 8888
PEER_ALERT_EVENT: Final[str] = "ALERT"
LIMITED_BROADCAST_ADDR: Final[str] = "255.255.255.255"
MAX_DATAGRAM_BYTES: Final[int] = 1024

ALERT_DATAGRAM_REDUNDANCY: Final[int] = 3
"""Identical datagrams sent back-to-back per ``send_alert`` call."""

ALERT_BURST_COUNT: Final[int] = 5
ALERT_BURST_INTERVAL_S: Final[float] = 0.2
"""A burst is ``ALERT_BURST_COUNT`` sends spaced by this delay (radio wake-up)."""

SHORT_ID_LENGTH: Final[int] = 4
"""Characters of a peer uuid shown in user-facing alert text."""

# ---------------------------------------------------------------------------
# User-facing text
# ---------------------------------------------------------------------------
ANOMALY_MESSAGE: Final[str] = "Magnetic Anomaly Detected!"
STATUS_READY: Final[str] = "Ready"
STATUS_DETECTING: Final[str] = "Detecting..."
STATUS_STOPPED: Final[str] = "Detection Stopped"
