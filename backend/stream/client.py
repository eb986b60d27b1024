"""
Reconnecting server-sent-event subscriber.

Core model:
- One subscription = (url, enabled). At most one physical stream is open.
- Every (re)subscription gets a new subscription_id; every delivered item
  carries it.
- Transport failures are absorbed here with exponential backoff; the consumer
  only sees StreamDropped notices and, at the cap, one StreamGaveUp.

Design constraints:
- Client must not interpret payloads (no pairing semantics).
- Client must not own pairing state; it only delivers items to the sink.
- disable()/close() return only after the physical connection is gone and
  no reconnect timer is pending.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable

import httpx

from observability.logger import log_event
from protocol.sse import SSEDecoder, SSEProtocolError
from scheduling.timers import TimerHandle, TimerRegistry
from spec import HTTP_TIMEOUT_S, STREAM_ACCEPT_HEADER
from stream.backoff import (
    BackoffPolicy,
    ReconnectAttempt,
    get_reconnect_delay_s,
    next_attempt,
    reset_attempt,
    should_reconnect,
)
from stream.items import (
    SSEEvent,
    StreamDropped,
    StreamGaveUp,
    StreamItem,
    StreamOpened,
)
from stream.link_status import LinkStatus


StreamSink = Callable[[StreamItem], Awaitable[None]]
ErrorHandler = Callable[[Exception], None]

TIMER_RECONNECT = "stream_reconnect"


class StreamTransportError(Exception):
    """Stream could not be opened or ended without being closed by us."""


class EventStreamClient:
    """
    Long-lived text/event-stream subscription with reconnect.

    Public interface:
    - enable(url): open (no-op if already open for url; re-subscribe if url changed)
    - disable(): tear down, cancel pending reconnect
    - update(url, enabled): declarative form of the two above
    - close(): manual close; idempotent
    - aclose(): close and release owned resources
    """

    def __init__(
        self,
        *,
        emit: StreamSink,
        http_client: httpx.AsyncClient | None = None,
        policy: BackoffPolicy | None = None,
        on_error: ErrorHandler | None = None,
        connect_timeout_s: float = HTTP_TIMEOUT_S,
    ) -> None:
        self._emit = emit
        self._owns_http = http_client is None
        self._http = http_client or httpx.AsyncClient()
        self._policy = policy or BackoffPolicy()
        self._on_error = on_error
        self._connect_timeout_s = connect_timeout_s

        self._url: str | None = None
        self._enabled = False
        self._subscription_id = 0
        self._attempt: ReconnectAttempt = reset_attempt()
        self._link_status = LinkStatus.DOWN

        self._conn_task: asyncio.Task[None] | None = None
        self._timers = TimerRegistry(name="stream")

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def url(self) -> str | None:
        return self._url

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def link_status(self) -> LinkStatus:
        return self._link_status

    @property
    def is_open(self) -> bool:
        return self._link_status is LinkStatus.UP

    @property
    def attempts(self) -> int:
        return self._attempt.attempt

    @property
    def active_subscription_id(self) -> int | None:
        """Id whose items are still meaningful; None while disabled."""
        return self._subscription_id if self._enabled else None

    @property
    def reconnect_pending(self) -> bool:
        return self._timers.is_pending(TIMER_RECONNECT)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def enable(self, url: str) -> int:
        """
        Ensure a subscription to url exists; returns its subscription_id.

        - Same url, already enabled and not given up: no-op.
        - Different url while enabled: old connection closed, fresh one at attempt 0.
        """
        if (
            self._enabled
            and url == self._url
            and self._link_status is not LinkStatus.GAVE_UP
        ):
            return self._subscription_id

        if self._enabled:
            await self._teardown()

        self._url = url
        self._enabled = True
        self._subscription_id += 1
        self._attempt = reset_attempt()

        log_event({
            "event_type": "STREAM_SUBSCRIBE",
            "subscription_id": self._subscription_id,
            "url": url,
        })
        self._open()
        return self._subscription_id

    async def disable(self) -> None:
        """Tear down the connection and any pending reconnect; idempotent."""
        was_enabled = self._enabled
        self._enabled = False
        await self._teardown()
        self._link_status = LinkStatus.DOWN
        if was_enabled:
            log_event({
                "event_type": "STREAM_UNSUBSCRIBE",
                "subscription_id": self._subscription_id,
            })

    async def update(self, url: str, enabled: bool) -> None:
        if enabled:
            await self.enable(url)
        else:
            await self.disable()

    async def close(self) -> None:
        """
        Manual close.

        Suppresses auto-reconnect until enable() is called again.
        Calling it twice is harmless.
        """
        await self.disable()

    async def aclose(self) -> None:
        await self.close()
        await self._timers.aclose()
        if self._owns_http:
            await self._http.aclose()

    # ------------------------------------------------------------------
    # Connection management
    # ------------------------------------------------------------------

    def _open(self) -> None:
        self._link_status = LinkStatus.CONNECTING
        self._conn_task = asyncio.create_task(
            self._run_connection(self._subscription_id),
            name=f"sse-subscription-{self._subscription_id}",
        )

    async def _teardown(self) -> None:
        self._timers.cancel(TIMER_RECONNECT)

        task = self._conn_task
        self._conn_task = None
        if task is None or task is asyncio.current_task():
            return
        if not task.done():
            task.cancel()
        await asyncio.gather(task, return_exceptions=True)

    async def _run_connection(self, subscription_id: int) -> None:
        assert self._url is not None
        decoder = SSEDecoder()
        timeout = httpx.Timeout(self._connect_timeout_s, read=None)
        headers = {"Accept": STREAM_ACCEPT_HEADER, "Cache-Control": "no-cache"}

        try:
            async with self._http.stream(
                "GET", self._url, headers=headers, timeout=timeout
            ) as response:
                if response.status_code != 200:
                    raise StreamTransportError(f"stream HTTP {response.status_code}")

                content_type = response.headers.get("content-type", "")
                if content_type and not content_type.startswith(STREAM_ACCEPT_HEADER):
                    raise StreamTransportError(f"unexpected content-type {content_type!r}")

                self._attempt = reset_attempt()
                self._link_status = LinkStatus.UP
                log_event({
                    "event_type": "STREAM_OPENED",
                    "subscription_id": subscription_id,
                })
                await self._deliver(StreamOpened(subscription_id=subscription_id))

                async for frame in decoder.iter_frames(response.aiter_lines()):
                    if subscription_id != self.active_subscription_id:
                        return
                    await self._deliver(
                        SSEEvent(
                            subscription_id=subscription_id,
                            event=frame.event,
                            data=frame.data,
                            last_event_id=frame.last_event_id,
                        )
                    )

            raise StreamTransportError("server closed the stream")

        except asyncio.CancelledError:
            raise
        except (httpx.HTTPError, SSEProtocolError, StreamTransportError) as exc:
            await self._handle_drop(subscription_id, exc)

    async def _handle_drop(self, subscription_id: int, exc: Exception) -> None:
        if subscription_id != self.active_subscription_id:
            return

        attempt = self._attempt

        log_event({
            "level": "WARNING",
            "event_type": "STREAM_DROPPED",
            "subscription_id": subscription_id,
            "attempt": attempt.attempt,
            "reason": repr(exc),
        })

        if self._on_error is not None:
            try:
                self._on_error(exc)
            except Exception as handler_exc:  # pylint: disable=broad-exception-caught
                log_event({
                    "level": "ERROR",
                    "event_type": "STREAM_ERROR_HANDLER_FAILED",
                    "error": repr(handler_exc),
                })

        await self._deliver(
            StreamDropped(
                subscription_id=subscription_id,
                reason=str(exc),
                attempt=attempt.attempt,
            )
        )
        if subscription_id != self.active_subscription_id:
            return

        if not should_reconnect(self._policy, attempt):
            self._link_status = LinkStatus.GAVE_UP
            log_event({
                "level": "ERROR",
                "event_type": "STREAM_GAVE_UP",
                "subscription_id": subscription_id,
                "attempts": attempt.attempt,
            })
            await self._deliver(
                StreamGaveUp(subscription_id=subscription_id, attempts=attempt.attempt)
            )
            return

        delay_s = get_reconnect_delay_s(self._policy, attempt)
        self._attempt = next_attempt(attempt)
        self._link_status = LinkStatus.CONNECTING

        log_event({
            "event_type": "STREAM_RECONNECT_SCHEDULED",
            "subscription_id": subscription_id,
            "delay_s": delay_s,
            "attempt": self._attempt.attempt,
            "max_attempts": self._policy.max_attempts,
        })
        self._timers.start(TIMER_RECONNECT, delay_s, self._on_reconnect_timer)

    async def _on_reconnect_timer(self, handle: TimerHandle) -> None:  # pylint: disable=unused-argument
        if not self._enabled:
            return
        self._open()

    async def _deliver(self, item: StreamItem) -> None:
        try:
            await self._emit(item)
        except Exception as exc:  # pylint: disable=broad-exception-caught
            log_event({
                "level": "ERROR",
                "event_type": "STREAM_SINK_FAILED",
                "item": type(item).__name__,
                "error": repr(exc),
            })
