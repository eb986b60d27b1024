"""
Event definitions for the pairing reducer.

Rules:
- Events describe facts that have occurred.
- Events carry data only (no behavior).
- No clocks, no timers, no async, no side effects.

Stream-derived and timer-derived events carry the episode they were
produced under; the reducer drops them once that episode is over.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


# =============================================================================
# Event Type Enumeration
# =============================================================================

class EventType(str, Enum):
    """
    Canonical event types understood by the pairing reducer.

    Every (status, event_type) pair is either handled or explicitly ignored.
    """

    # ------------------------------------------------------------------
    # User intents
    # ------------------------------------------------------------------
    BEGIN_REQUESTED = "BEGIN_REQUESTED"
    RETRY_REQUESTED = "RETRY_REQUESTED"
    CANCEL_REQUESTED = "CANCEL_REQUESTED"

    # ------------------------------------------------------------------
    # Backend session
    # ------------------------------------------------------------------
    SESSION_ACCEPTED = "SESSION_ACCEPTED"
    SESSION_REJECTED = "SESSION_REJECTED"
    CONNECTION_CONFIRMED = "CONNECTION_CONFIRMED"

    # ------------------------------------------------------------------
    # Event stream
    # ------------------------------------------------------------------
    QRCODE_RECEIVED = "QRCODE_RECEIVED"
    STATUS_RECEIVED = "STATUS_RECEIVED"
    SERVER_ERROR = "SERVER_ERROR"
    STREAM_INTERRUPTED = "STREAM_INTERRUPTED"
    STREAM_LOST = "STREAM_LOST"

    # ------------------------------------------------------------------
    # Timers
    # ------------------------------------------------------------------
    PAIRING_TIMEOUT = "PAIRING_TIMEOUT"
    RETRY_READY = "RETRY_READY"


# =============================================================================
# Base Events
# =============================================================================

@dataclass(frozen=True)
class Event:
    """
    Base event type.

    - event_type: discriminant
    - ts_ms: timestamp provided by the source (or fake in tests)
    """

    event_type: EventType
    ts_ms: int


@dataclass(frozen=True)
class EpisodeEvent(Event):
    """
    Event scoped to one pairing episode.

    The reducer MUST ignore events whose episode is not the current one.
    """

    episode: int


# =============================================================================
# User Intents
# =============================================================================

@dataclass(frozen=True)
class BeginRequested(Event):
    """User asked to start pairing."""


@dataclass(frozen=True)
class RetryRequested(Event):
    """User asked to retry after an error."""


@dataclass(frozen=True)
class CancelRequested(Event):
    """Pairing cancelled or its surface dismissed."""
    reason: str = "cancel"


# =============================================================================
# Backend Session Events
# =============================================================================

@dataclass(frozen=True)
class SessionAccepted(EpisodeEvent):
    """Backend accepted the connect request."""
    already_connected: bool = False
    instance_name: str | None = None


@dataclass(frozen=True)
class SessionRejected(EpisodeEvent):
    """Backend connect request failed."""
    message: str


@dataclass(frozen=True)
class ConnectionConfirmed(EpisodeEvent):
    """A status check reported the session connected while pairing ran."""


# =============================================================================
# Stream Events
# =============================================================================

@dataclass(frozen=True)
class QRCodeReceived(EpisodeEvent):
    """A (new) QR code was pushed by the backend."""
    qrcode: str


@dataclass(frozen=True)
class StatusReceived(EpisodeEvent):
    """
    Status update pushed by the backend.

    connected=False with a non-terminal status is a heartbeat.
    """
    connected: bool
    status: str | None = None


@dataclass(frozen=True)
class ServerError(EpisodeEvent):
    """Explicit error event from the backend."""
    message: str
    code: str | None = None


@dataclass(frozen=True)
class StreamInterrupted(EpisodeEvent):
    """
    The stream dropped and will reconnect.

    A reconnect starts a new event sequence; the last QR code is dead.
    """
    reason: str = ""


@dataclass(frozen=True)
class StreamLost(EpisodeEvent):
    """The event stream gave up reconnecting."""
    attempts: int


# =============================================================================
# Timer Events
# =============================================================================

@dataclass(frozen=True)
class PairingTimedOut(EpisodeEvent):
    """
    Pairing deadline expired.

    generation identifies which arming of the timer fired; only the
    current generation is honored.
    """
    generation: int


@dataclass(frozen=True)
class RetryReady(EpisodeEvent):
    """Retry delay elapsed; pairing may begin again."""
