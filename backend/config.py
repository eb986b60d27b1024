"""
Application configuration.

Responsibilities:
- Load deployment-specific configuration
- Read environment variables
- Provide a typed, immutable config object

Non-responsibilities:
- No pairing logic
- No protocol constants (see spec.py)
- No runtime mutation
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from spec import (
    HTTP_TIMEOUT_S,
    PAIRING_TIMEOUT_S,
    STREAM_BASE_DELAY_S,
    STREAM_MAX_DELAY_S,
    STREAM_MAX_RECONNECT_ATTEMPTS,
)


@dataclass(frozen=True)
class AppConfig:
    """
    Immutable application configuration.

    Constructed once at process startup.
    Passed downward to ConnectionContext and the server factory.
    """

    # ------------------------------------------------------------------
    # Environment
    # ------------------------------------------------------------------

    env: str
    log_level: str

    # ------------------------------------------------------------------
    # Pairing backend
    # ------------------------------------------------------------------

    pairing_api_url: str
    http_timeout_s: float

    # ------------------------------------------------------------------
    # Session identity
    # ------------------------------------------------------------------

    session_store_path: Path

    # ------------------------------------------------------------------
    # Stream reconnect policy
    # ------------------------------------------------------------------

    stream_base_delay_s: float
    stream_max_delay_s: float
    stream_max_attempts: int

    # ------------------------------------------------------------------
    # Pairing flow
    # ------------------------------------------------------------------

    pairing_timeout_s: float

    # ------------------------------------------------------------------
    # Factory
    # ------------------------------------------------------------------

    @staticmethod
    def load_from_env() -> AppConfig:
        """
        Load configuration from environment variables.

        Raises:
            ValueError if a numeric variable cannot be parsed.
        """
        return AppConfig(
            env=os.environ.get("ENV", "dev"),
            log_level=os.environ.get("LOG_LEVEL", "INFO"),

            pairing_api_url=os.environ.get(
                "PAIRING_API_URL", "http://localhost:4000/api/v1"
            ),
            http_timeout_s=float(os.environ.get("HTTP_TIMEOUT_S", HTTP_TIMEOUT_S)),

            session_store_path=Path(
                os.environ.get("SESSION_STORE_PATH", "~/.pairing/session.json")
            ).expanduser(),

            stream_base_delay_s=float(
                os.environ.get("STREAM_BASE_DELAY_S", STREAM_BASE_DELAY_S)
            ),
            stream_max_delay_s=float(
                os.environ.get("STREAM_MAX_DELAY_S", STREAM_MAX_DELAY_S)
            ),
            stream_max_attempts=int(
                os.environ.get("STREAM_MAX_ATTEMPTS", STREAM_MAX_RECONNECT_ATTEMPTS)
            ),

            pairing_timeout_s=float(
                os.environ.get("PAIRING_TIMEOUT_S", PAIRING_TIMEOUT_S)
            ),
        )
