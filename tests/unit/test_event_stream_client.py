# pylint: disable=missing-module-docstring,missing-function-docstring

import asyncio

import httpx
import pytest

from stream.backoff import BackoffPolicy
from stream.client import EventStreamClient
from stream.items import SSEEvent, StreamDropped, StreamGaveUp, StreamItem, StreamOpened
from stream.link_status import LinkStatus


URL_A = "http://pairing.test/stream?sessionId=a"
URL_B = "http://pairing.test/stream?sessionId=b"

FAST = BackoffPolicy(base_delay_s=0.01, max_delay_s=0.02, max_attempts=10)


def _held_open(*chunks: bytes):
    async def body():
        for chunk in chunks:
            yield chunk
        await asyncio.Event().wait()

    return httpx.Response(200, headers={"content-type": "text/event-stream"}, content=body())


class _Harness:
    def __init__(self, handler, policy: BackoffPolicy = FAST) -> None:
        self.items: list[StreamItem] = []
        self.errors: list[Exception] = []
        self.http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        self.client = EventStreamClient(
            emit=self._sink,
            http_client=self.http,
            policy=policy,
            on_error=self.errors.append,
        )

    async def _sink(self, item: StreamItem) -> None:
        self.items.append(item)

    def of_type(self, kind):
        return [i for i in self.items if isinstance(i, kind)]

    async def aclose(self) -> None:
        await self.client.aclose()
        await self.http.aclose()


@pytest.mark.asyncio
async def test_events_are_delivered_in_stream_order(wait_for):
    harness = _Harness(lambda request: _held_open(
        b'event: qrcode\ndata: {"qrcode": "Q"}\n\n',
        b": keep-alive\n\n",
        b'event: status\ndata: {"connected": true}\n\n',
    ))

    sub_id = await harness.client.enable(URL_A)
    await wait_for(lambda: len(harness.of_type(SSEEvent)) == 2)

    events = harness.of_type(SSEEvent)
    assert [e.event for e in events] == ["qrcode", "status"]
    assert all(e.subscription_id == sub_id for e in events)
    assert isinstance(harness.items[0], StreamOpened)
    assert harness.client.is_open
    await harness.aclose()


@pytest.mark.asyncio
async def test_counter_resets_after_successful_open(wait_for):
    calls = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        if calls <= 3:
            return httpx.Response(503)
        return _held_open()

    harness = _Harness(handler)
    await harness.client.enable(URL_A)

    await wait_for(lambda: harness.client.is_open)

    assert calls == 4
    assert harness.client.attempts == 0
    assert [d.attempt for d in harness.of_type(StreamDropped)] == [0, 1, 2]
    assert len(harness.errors) == 3
    await harness.aclose()


@pytest.mark.asyncio
async def test_reconnect_delays_double_on_consecutive_drops(wait_for, captured_logs):
    calls = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        if calls <= 3:
            return httpx.Response(503)
        return _held_open()

    base = 0.01
    policy = BackoffPolicy(base_delay_s=base, max_delay_s=1.0, max_attempts=10)
    harness = _Harness(handler, policy)
    await harness.client.enable(URL_A)

    await wait_for(lambda: harness.client.is_open)

    delays = [
        r["delay_s"] for r in captured_logs
        if r["event_type"] == "STREAM_RECONNECT_SCHEDULED"
    ]
    assert delays == pytest.approx([base, 2 * base, 4 * base])
    await harness.aclose()


@pytest.mark.asyncio
async def test_gives_up_exactly_once_after_max_attempts(wait_for):
    calls = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        raise httpx.ConnectError("refused", request=request)

    policy = BackoffPolicy(base_delay_s=0.01, max_delay_s=0.02, max_attempts=2)
    harness = _Harness(handler, policy)
    await harness.client.enable(URL_A)

    await wait_for(lambda: bool(harness.of_type(StreamGaveUp)))
    await asyncio.sleep(0.1)

    gave_up = harness.of_type(StreamGaveUp)
    assert len(gave_up) == 1
    assert gave_up[0].attempts == 2
    assert calls == 3
    assert harness.client.link_status is LinkStatus.GAVE_UP
    assert not harness.client.reconnect_pending
    await harness.aclose()


@pytest.mark.asyncio
async def test_server_closing_the_stream_triggers_reconnect(wait_for):
    calls = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        if calls == 1:
            return httpx.Response(
                200,
                headers={"content-type": "text/event-stream"},
                content=b'event: status\ndata: {"connected": false}\n\n',
            )
        return _held_open()

    harness = _Harness(handler)
    await harness.client.enable(URL_A)

    await wait_for(lambda: calls == 2 and harness.client.is_open)

    assert len(harness.of_type(StreamDropped)) == 1
    assert len(harness.of_type(StreamOpened)) == 2
    await harness.aclose()


@pytest.mark.asyncio
async def test_close_is_idempotent_and_leaves_nothing_pending(wait_for):
    harness = _Harness(lambda request: _held_open())
    await harness.client.enable(URL_A)
    await wait_for(lambda: harness.client.is_open)

    await harness.client.close()
    await harness.client.close()

    assert harness.client.link_status is LinkStatus.DOWN
    assert harness.client.active_subscription_id is None
    assert not harness.client.reconnect_pending
    await harness.aclose()


@pytest.mark.asyncio
async def test_close_cancels_pending_reconnect(wait_for):
    calls = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        return httpx.Response(500)

    policy = BackoffPolicy(base_delay_s=0.2, max_delay_s=0.2, max_attempts=5)
    harness = _Harness(handler, policy)
    await harness.client.enable(URL_A)
    await wait_for(lambda: harness.client.reconnect_pending)

    await harness.client.close()
    await asyncio.sleep(0.3)

    assert calls == 1
    assert not harness.client.reconnect_pending
    await harness.aclose()


@pytest.mark.asyncio
async def test_enable_same_url_is_noop(wait_for):
    calls = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        return _held_open()

    harness = _Harness(handler)
    first = await harness.client.enable(URL_A)
    await wait_for(lambda: harness.client.is_open)
    second = await harness.client.enable(URL_A)

    assert first == second
    assert calls == 1
    await harness.aclose()


@pytest.mark.asyncio
async def test_url_change_resubscribes_at_attempt_zero(wait_for):
    seen: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(str(request.url))
        return _held_open()

    harness = _Harness(handler)
    first = await harness.client.enable(URL_A)
    await wait_for(lambda: harness.client.is_open)

    await harness.client.update(URL_B, enabled=True)
    await wait_for(lambda: len(seen) == 2 and harness.client.is_open)

    assert seen == [URL_A, URL_B]
    assert harness.client.active_subscription_id == first + 1
    assert harness.client.attempts == 0
    assert harness.client.url == URL_B

    await harness.client.update(URL_B, enabled=False)
    assert harness.client.active_subscription_id is None
    await harness.aclose()
