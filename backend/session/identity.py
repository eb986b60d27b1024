"""
Persistent per-installation session token.

The token is generated once, stored under a single key in a local
key/value store, and never mutated or deleted by this package.

Format: session_<epoch-ms>_<7 base36 chars>
"""
from __future__ import annotations

import json
import os
import secrets
import string
import tempfile
import time
from pathlib import Path
from typing import Protocol

from observability.logger import log_event
from spec import SESSION_TOKEN_KEY, SESSION_TOKEN_PREFIX, SESSION_TOKEN_SUFFIX_LEN


_BASE36 = string.digits + string.ascii_lowercase


def generate_session_token() -> str:
    suffix = "".join(secrets.choice(_BASE36) for _ in range(SESSION_TOKEN_SUFFIX_LEN))
    return f"{SESSION_TOKEN_PREFIX}_{time.time_ns() // 1_000_000}_{suffix}"


class TokenStore(Protocol):
    """Minimal key/value store the identity needs."""

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...


class MemoryTokenStore:
    """Process-local store; used in tests and when no path is configured."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value


class JsonFileTokenStore:
    """
    Flat JSON object on disk.

    Writes go through a temp file + os.replace so a crash never leaves a
    truncated store. Unknown keys are preserved.
    """

    def __init__(self, path: Path) -> None:
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> dict[str, str]:
        try:
            raw = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            log_event({
                "level": "WARNING",
                "event_type": "TOKEN_STORE_CORRUPT",
                "path": str(self._path),
            })
            return {}
        if not isinstance(data, dict):
            return {}
        return {k: v for k, v in data.items() if isinstance(v, str)}

    def get(self, key: str) -> str | None:
        return self._load().get(key)

    def set(self, key: str, value: str) -> None:
        data = self._load()
        data[key] = value
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self._path.parent, prefix=".session-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f)
            os.replace(tmp, self._path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise


class SessionIdentity:
    """
    Lazily created, then stable, session token.

    get_or_create() only writes to the store on a read-miss.
    """

    def __init__(self, store: TokenStore, *, key: str = SESSION_TOKEN_KEY) -> None:
        self._store = store
        self._key = key
        self._token: str | None = None

    def get_or_create(self) -> str:
        if self._token is not None:
            return self._token

        token = self._store.get(self._key)
        if token:
            self._token = token
            return token

        token = generate_session_token()
        self._store.set(self._key, token)
        self._token = token
        log_event({"event_type": "SESSION_TOKEN_CREATED", "session_id": token})
        return token
