"""
Server-sent event framing.

Wire format (text/event-stream, one field per line):

    event: qrcode
    data: {"qrcode": "data:image/png;base64,..."}
    id: 42
    <blank line>   -> dispatch

- Lines starting with ":" are comments (server keep-alives)
- Multiple data lines are joined with "\\n"
- A single space after the colon is stripped
- Missing event name defaults to "message"
- A block with no data lines is not dispatched

Usage example:

    decoder = SSEDecoder()
    async for frame in decoder.iter_frames(response.aiter_lines()):
        handle(frame.event, frame.data)
"""

from __future__ import annotations

from collections.abc import AsyncIterable, AsyncIterator
from dataclasses import dataclass

from spec import STREAM_EVENT_MESSAGE


# Upper bound on one buffered event; a server that never sends the
# terminating blank line must not grow memory without bound.
MAX_EVENT_BYTES = 1 << 20


# -------------------------
# Exceptions
# -------------------------

class SSEProtocolError(Exception):
    """
    Raised when the stream violates text/event-stream framing badly enough
    that the connection must be dropped (e.g. an unterminated oversized event).
    """


# -------------------------
# Frames
# -------------------------

@dataclass(frozen=True)
class SSEFrame:
    """One dispatched server-sent event, payload still undecoded."""
    event: str
    data: str
    last_event_id: str | None = None


class SSEDecoder:
    """
    Incremental line-oriented decoder.

    One decoder per physical connection; last_event_id persists across
    events of that connection only.
    """

    def __init__(self, *, max_event_bytes: int = MAX_EVENT_BYTES) -> None:
        self._max_event_bytes = max_event_bytes
        self._event_name: str = ""
        self._data_lines: list[str] = []
        self._buffered_bytes = 0
        self.last_event_id: str | None = None
        self.retry_ms: int | None = None

    def feed_line(self, line: str) -> SSEFrame | None:
        """Consume one line (without terminator); return a frame on dispatch."""
        line = line.rstrip("\r\n")

        if line == "":
            return self._dispatch()

        if line.startswith(":"):
            return None

        field, sep, value = line.partition(":")
        if sep and value.startswith(" "):
            value = value[1:]

        if field == "event":
            self._event_name = value
        elif field == "data":
            self._buffered_bytes += len(value) + 1
            if self._buffered_bytes > self._max_event_bytes:
                self._reset()
                raise SSEProtocolError(
                    f"event exceeds {self._max_event_bytes} bytes without terminator"
                )
            self._data_lines.append(value)
        elif field == "id":
            if "\x00" not in value:
                self.last_event_id = value
        elif field == "retry":
            if value.isdigit():
                self.retry_ms = int(value)
        # Unknown fields are ignored per the event-stream format.

        return None

    async def iter_frames(self, lines: AsyncIterable[str]) -> AsyncIterator[SSEFrame]:
        async for line in lines:
            frame = self.feed_line(line)
            if frame is not None:
                yield frame

    # -------------------------
    # Internal
    # -------------------------

    def _dispatch(self) -> SSEFrame | None:
        if not self._data_lines:
            self._reset()
            return None

        frame = SSEFrame(
            event=self._event_name or STREAM_EVENT_MESSAGE,
            data="\n".join(self._data_lines),
            last_event_id=self.last_event_id,
        )
        self._reset()
        return frame

    def _reset(self) -> None:
        self._event_name = ""
        self._data_lines = []
        self._buffered_bytes = 0
