"""
Side-effect command definitions for the pairing runtime.

Rules:
- Commands are declarative requests for side effects.
- Commands are emitted by the reducer and executed by the runtime.
- No behavior, no async, no I/O, no clocks.

Invariant:
    All concrete Command subclasses are frozen dataclasses.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from pairing.events import EventType


# =============================================================================
# Command Type Enumeration
# =============================================================================

class CommandType(str, Enum):
    """Stable discriminants used for logging and runtime dispatch."""

    # Backend
    START_SESSION = "START_SESSION"

    # Event stream
    ENABLE_STREAM = "ENABLE_STREAM"
    DISABLE_STREAM = "DISABLE_STREAM"

    # Surface
    SCHEDULE_DISMISS = "SCHEDULE_DISMISS"

    # Timers
    START_TIMER = "START_TIMER"
    CANCEL_TIMER = "CANCEL_TIMER"

    # Observability
    LOG_EVENT = "LOG_EVENT"


# =============================================================================
# Base Command
# =============================================================================

class Command:
    """
    Base command type.

    command_type is an explicit discriminant and must never be inferred
    from Python type identity.
    """

    command_type: CommandType


# =============================================================================
# Backend Commands
# =============================================================================

@dataclass(frozen=True)
class StartSession(Command):
    """
    Call backend connect for the session token.

    The runtime reports the outcome as SessionAccepted/SessionRejected
    carrying the same episode.
    """
    episode: int
    command_type: CommandType = CommandType.START_SESSION


# =============================================================================
# Stream Commands
# =============================================================================

@dataclass(frozen=True)
class EnableStream(Command):
    """Open a fresh event-stream subscription for this episode."""
    episode: int
    command_type: CommandType = CommandType.ENABLE_STREAM


@dataclass(frozen=True)
class DisableStream(Command):
    """Tear down the event-stream subscription; idempotent."""
    reason: str
    command_type: CommandType = CommandType.DISABLE_STREAM


# =============================================================================
# Surface Commands
# =============================================================================

@dataclass(frozen=True)
class ScheduleDismiss(Command):
    """Pairing succeeded; post-connection effects may dismiss the surface."""
    episode: int
    command_type: CommandType = CommandType.SCHEDULE_DISMISS


# =============================================================================
# Timer Commands
# =============================================================================

@dataclass(frozen=True)
class StartTimer(Command):
    """
    Request to start (or replace) a named timer.

    On expiration the runtime injects timeout_event_type carrying
    episode and generation exactly as given here.
    """
    timer_id: str
    duration_s: float
    timeout_event_type: EventType
    episode: int
    generation: int = 0
    command_type: CommandType = CommandType.START_TIMER


@dataclass(frozen=True)
class CancelTimer(Command):
    """Request to cancel a previously scheduled timer."""
    timer_id: str
    command_type: CommandType = CommandType.CANCEL_TIMER


# =============================================================================
# Observability Commands
# =============================================================================

@dataclass(frozen=True)
class LogEvent(Command):
    """Request to emit a structured observability event."""
    event: dict[str, Any]
    command_type: CommandType = CommandType.LOG_EVENT
