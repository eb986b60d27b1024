"""
Reconnect backoff policy for the event-stream client.

Purpose:
- Centralize the reconnect rules
- Keep EventStreamClient free of arithmetic
- Allow deterministic tests of delay and give-up decisions

This module contains NO timers, NO async, NO side effects.
"""
from __future__ import annotations

from dataclasses import dataclass

from spec import (
    STREAM_BASE_DELAY_S,
    STREAM_MAX_DELAY_S,
    STREAM_MAX_RECONNECT_ATTEMPTS,
)


# =============================================================================
# Attempt counter
# =============================================================================

@dataclass(frozen=True)
class ReconnectAttempt:
    """
    Immutable reconnect counter.

    Semantics:
    - attempt == 0: no abnormal close since the last successful open.
    - attempt == N: N consecutive abnormal closes without a successful open.
    """
    attempt: int


def next_attempt(current: ReconnectAttempt) -> ReconnectAttempt:
    """Advance after an abnormal close."""
    return ReconnectAttempt(attempt=current.attempt + 1)


def reset_attempt() -> ReconnectAttempt:
    """Fresh counter; used after a successful open and on re-subscription."""
    return ReconnectAttempt(attempt=0)


# =============================================================================
# Policy
# =============================================================================

@dataclass(frozen=True)
class BackoffPolicy:
    """
    Exponential backoff with a ceiling and a give-up cap.

    delay(N) = min(base_delay_s * 2**N, max_delay_s)
    """
    base_delay_s: float = STREAM_BASE_DELAY_S
    max_delay_s: float = STREAM_MAX_DELAY_S
    max_attempts: int = STREAM_MAX_RECONNECT_ATTEMPTS

    def __post_init__(self) -> None:
        if self.base_delay_s < 0 or self.max_delay_s < 0:
            raise ValueError("backoff delays must be non-negative")
        if self.max_attempts < 0:
            raise ValueError("max_attempts must be non-negative")


def get_reconnect_delay_s(policy: BackoffPolicy, attempt: ReconnectAttempt) -> float:
    """
    Delay before the reconnect that follows `attempt` abnormal closes.

    The exponent is clamped once the ceiling is reached so large attempt
    numbers cannot overflow the float.
    """
    if policy.base_delay_s == 0:
        return 0.0
    exponent = attempt.attempt
    delay = policy.base_delay_s
    while exponent > 0 and delay < policy.max_delay_s:
        delay *= 2
        exponent -= 1
    return min(delay, policy.max_delay_s)


def should_reconnect(policy: BackoffPolicy, attempt: ReconnectAttempt) -> bool:
    """
    True while the cap has not been reached.

    attempt = reconnects already scheduled since the last successful open
    """
    return attempt.attempt < policy.max_attempts
