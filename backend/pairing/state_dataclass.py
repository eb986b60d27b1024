"""
Authoritative pairing state container.

Rules:
- This dataclass is a pure data model.
- It contains ALL state the reducer may ever need.
- No behavior, no helpers, no derived logic.
"""
from __future__ import annotations

from dataclasses import dataclass

from pairing.enums.status import PairingStatus
from spec import PAIRING_TIMEOUT_S, RETRY_BEGIN_DELAY_S


@dataclass(frozen=True)
class PairingState:
    """Immutable snapshot of all pairing-owned state."""

    status: PairingStatus = PairingStatus.IDLE

    # Last QR code presented; only set while CONNECTING.
    qr_code: str | None = None

    # User-facing message; only set while ERROR.
    error: str | None = None

    # Bumped on every begin. Stream and timer events from older episodes
    # are stale.
    episode: int = 0

    # Bumped every time the pairing timeout is (re)armed.
    timeout_generation: int = 0
    timeout_armed: bool = False

    stream_enabled: bool = False
    retry_pending: bool = False

    instance_name: str | None = None

    # Configured durations (kept in state so the reducer stays pure)
    pairing_timeout_s: float = PAIRING_TIMEOUT_S
    retry_delay_s: float = RETRY_BEGIN_DELAY_S
