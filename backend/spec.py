"""
SPEC-AS-CONSTANTS
-----------------
Single source of truth for all behavioral invariants of the pairing pipeline.

Rules:
- If changing a value changes runtime behavior, it belongs here.
- No magic numbers elsewhere in the codebase.
- Deployment overrides go through config.AppConfig, which defaults to these.
"""

from __future__ import annotations

from typing import Final

# =============================================================================
# Event stream reconnect policy
# =============================================================================

STREAM_BASE_DELAY_S: Final[float] = 1.0
STREAM_MAX_DELAY_S: Final[float] = 30.0
STREAM_MAX_RECONNECT_ATTEMPTS: Final[int] = 10

STREAM_ACCEPT_HEADER: Final[str] = "text/event-stream"

# =============================================================================
# Pairing flow timing
# =============================================================================

# Wall-clock deadline measured from the most recent QR code.
PAIRING_TIMEOUT_S: Final[float] = 300.0

# Delay between retry() and the fresh begin().
RETRY_BEGIN_DELAY_S: Final[float] = 0.1

# Grace period before the pairing surface auto-dismisses after success.
DISMISS_GRACE_S: Final[float] = 1.5

# Delay between "connected and dismissed" and the contact import.
IMPORT_DELAY_S: Final[float] = 2.0

# =============================================================================
# Backend stream contract
# =============================================================================

STREAM_EVENT_QRCODE: Final[str] = "qrcode"
STREAM_EVENT_STATUS: Final[str] = "status"
STREAM_EVENT_ERROR: Final[str] = "error"
STREAM_EVENT_MESSAGE: Final[str] = "message"

# status{connected:false} sub-statuses that end the attempt.
TERMINAL_SUB_STATUSES: Final[frozenset[str]] = frozenset({"timeout", "error"})

# =============================================================================
# User-facing messages
# =============================================================================

TIMEOUT_MESSAGE: Final[str] = "Pairing time limit exceeded. Please try again."
STREAM_LOST_MESSAGE: Final[str] = "Lost connection to the pairing service."
UNKNOWN_ERROR_MESSAGE: Final[str] = "Unknown pairing error."
BACKEND_UNREACHABLE_MESSAGE: Final[str] = "Could not reach the pairing service."

# =============================================================================
# Session identity
# =============================================================================

SESSION_TOKEN_KEY: Final[str] = "pairing_session_id"
SESSION_TOKEN_PREFIX: Final[str] = "session"
SESSION_TOKEN_SUFFIX_LEN: Final[int] = 7

# =============================================================================
# HTTP
# =============================================================================

HTTP_TIMEOUT_S: Final[float] = 15.0
