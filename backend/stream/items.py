"""
Items delivered by EventStreamClient.

Rules:
- Items describe facts about one subscription; they carry no pairing meaning.
- Every item carries the subscription_id it was produced under so the
  consumer can drop items from a subscription that is no longer active.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union


@dataclass(frozen=True)
class SSEEvent:
    """One server-sent event, forwarded verbatim."""
    subscription_id: int
    event: str
    data: str
    last_event_id: str | None = None


@dataclass(frozen=True)
class StreamOpened:
    """Physical stream opened; the reconnect counter was reset."""
    subscription_id: int


@dataclass(frozen=True)
class StreamDropped:
    """Abnormal close; a reconnect may follow."""
    subscription_id: int
    reason: str
    attempt: int


@dataclass(frozen=True)
class StreamGaveUp:
    """Reconnect cap reached. Delivered at most once per subscription."""
    subscription_id: int
    attempts: int


StreamItem = Union[SSEEvent, StreamOpened, StreamDropped, StreamGaveUp]
