"""
Pairing status enumeration.

Rules:
- Values are the lowercase names exposed to clients.
- Only the reducer decides transitions between them.
"""

from __future__ import annotations

from enum import Enum


class PairingStatus(str, Enum):
    """
    Lifecycle of one pairing attempt.

    IDLE -> CONNECTING -> {CONNECTED | ERROR}; ERROR -> CONNECTING via retry.
    """

    IDLE = "idle"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"
