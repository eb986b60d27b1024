# pylint: disable=missing-module-docstring,missing-function-docstring

import asyncio

import pytest

from pairing.enums.status import PairingStatus
from pairing.runtime import PairingRuntime
from pairing.state_dataclass import PairingState
from spec import STREAM_LOST_MESSAGE, TIMEOUT_MESSAGE
from stream.backoff import BackoffPolicy


SESSION_ID = "session_1700000000000_abc1234"
FAST = BackoffPolicy(base_delay_s=0.01, max_delay_s=0.02, max_attempts=2)


async def _runtime(backend, **state_kwargs):
    connected: list[int] = []

    async def on_connected(episode: int) -> None:
        connected.append(episode)

    runtime = PairingRuntime(
        api=backend.api(),
        session_id=SESSION_ID,
        initial_state=PairingState(**state_kwargs),
        policy=FAST,
        on_connected=on_connected,
    )
    runtime.start()
    return runtime, connected


@pytest.mark.asyncio
async def test_qrcode_then_connected(backend, wait_for):
    backend.stream_chunks = [
        backend.sse("qrcode", {"qrcode": "QR-1"}),
        backend.sse("status", {"connected": False, "status": "connecting"}),
        backend.sse("status", {"connected": True}),
    ]
    runtime, connected = await _runtime(backend)

    await runtime.begin()
    await wait_for(lambda: runtime.state.status is PairingStatus.CONNECTED)
    await wait_for(lambda: connected == [1])

    assert runtime.state.qr_code is None
    assert runtime.state.error is None
    assert runtime.pending_timers == ()
    assert not runtime.stream.enabled
    assert connected == [1]
    assert backend.count("POST", "/pairing/connect") == 1

    await runtime.dispose()


@pytest.mark.asyncio
async def test_pairing_timeout_enters_error(backend, wait_for):
    backend.stream_chunks = [backend.sse("qrcode", {"qrcode": "QR-1"})]
    runtime, _ = await _runtime(backend, pairing_timeout_s=0.05)

    await runtime.begin()
    await wait_for(lambda: runtime.state.status is PairingStatus.ERROR)

    assert runtime.state.error == TIMEOUT_MESSAGE
    assert not runtime.stream.enabled
    assert runtime.pending_timers == ()

    await runtime.dispose()


@pytest.mark.asyncio
async def test_server_error_event(backend, wait_for):
    backend.stream_chunks = [
        backend.sse("qrcode", {"qrcode": "QR-1"}),
        backend.sse("error", {"message": "Instance unavailable"}),
    ]
    runtime, _ = await _runtime(backend)

    await runtime.begin()
    await wait_for(lambda: runtime.state.status is PairingStatus.ERROR)

    assert runtime.state.error == "Instance unavailable"
    assert runtime.pending_timers == ()

    await runtime.dispose()


@pytest.mark.asyncio
async def test_malformed_payload_is_dropped(backend, wait_for, captured_logs):
    backend.stream_chunks = [
        b"event: qrcode\ndata: not-json\n\n",
        backend.sse("qrcode", {"qrcode": "QR-2"}),
    ]
    runtime, _ = await _runtime(backend)

    await runtime.begin()
    await wait_for(lambda: runtime.state.qr_code == "QR-2")

    assert runtime.state.status is PairingStatus.CONNECTING
    assert any(r["event_type"] == "PAIRING_MESSAGE_DROPPED" for r in captured_logs)

    await runtime.dispose()


@pytest.mark.asyncio
async def test_cancel_while_connecting_leaves_nothing_running(backend, wait_for):
    backend.stream_chunks = [backend.sse("qrcode", {"qrcode": "QR-1"})]
    runtime, connected = await _runtime(backend)

    await runtime.begin()
    await wait_for(lambda: runtime.state.qr_code == "QR-1")

    await runtime.cancel()

    assert runtime.state.status is PairingStatus.IDLE
    assert runtime.state.qr_code is None
    assert runtime.pending_timers == ()
    assert not runtime.stream.enabled
    assert runtime.stream.active_subscription_id is None
    assert not connected

    await runtime.dispose()


@pytest.mark.asyncio
async def test_backend_rejection_is_an_error_state(backend, wait_for):
    backend.connect_replies = [(503, {"message": "Pairing disabled"})]
    runtime, _ = await _runtime(backend)

    await runtime.begin()
    await wait_for(lambda: runtime.state.status is PairingStatus.ERROR)

    assert runtime.state.error == "Pairing disabled"
    assert backend.count("GET", "/pairing/connect/stream") == 0

    await runtime.dispose()


@pytest.mark.asyncio
async def test_stream_give_up_is_an_error_state(backend, wait_for):
    backend.stream_status = 500
    runtime, _ = await _runtime(backend)

    await runtime.begin()
    await wait_for(lambda: runtime.state.status is PairingStatus.ERROR)

    assert runtime.state.error == STREAM_LOST_MESSAGE
    assert backend.count("GET", "/pairing/connect/stream") == 3

    await runtime.dispose()


@pytest.mark.asyncio
async def test_retry_begins_a_new_episode(backend, wait_for):
    backend.connect_replies = [(500, {"message": "try later"})]
    backend.stream_chunks = [backend.sse("qrcode", {"qrcode": "QR-2"})]
    runtime, _ = await _runtime(backend, retry_delay_s=0.01)

    await runtime.begin()
    await wait_for(lambda: runtime.state.status is PairingStatus.ERROR)

    await runtime.retry()
    assert runtime.state.status is PairingStatus.IDLE

    await wait_for(lambda: runtime.state.qr_code == "QR-2")
    assert runtime.state.episode == 2
    assert runtime.state.status is PairingStatus.CONNECTING

    await runtime.dispose()


@pytest.mark.asyncio
async def test_already_connected_skips_stream(backend, wait_for):
    backend.connect_replies = [(200, {"sessionId": SESSION_ID, "alreadyConnected": True})]
    runtime, connected = await _runtime(backend)

    await runtime.begin()
    await wait_for(lambda: runtime.state.status is PairingStatus.CONNECTED)
    await wait_for(lambda: connected == [1])

    assert connected == [1]
    assert backend.count("GET", "/pairing/connect/stream") == 0

    await runtime.dispose()


@pytest.mark.asyncio
async def test_dispose_is_idempotent_and_drops_later_events(backend, wait_for):
    backend.stream_chunks = [backend.sse("qrcode", {"qrcode": "QR-1"})]
    runtime, _ = await _runtime(backend)
    await runtime.begin()
    await wait_for(lambda: runtime.state.qr_code == "QR-1")

    await runtime.dispose()
    await runtime.dispose()
    await runtime.begin()
    await asyncio.sleep(0.02)

    assert runtime.state.status is PairingStatus.IDLE
    assert runtime.pending_timers == ()
    assert not runtime.stream.enabled


@pytest.mark.asyncio
async def test_reconnect_discards_qr_from_dropped_stream(backend, wait_for, captured_logs):
    backend.closing_streams = [[backend.sse("qrcode", {"qrcode": "QR-OLD"})]]
    runtime, _ = await _runtime(backend)

    await runtime.begin()
    await wait_for(lambda: any(r.get("decision") == "qrcode_discarded" for r in captured_logs))
    await wait_for(lambda: backend.count("GET", "/pairing/connect/stream") == 2)

    assert runtime.state.status is PairingStatus.CONNECTING
    assert runtime.state.qr_code is None
    assert not runtime.state.timeout_armed
    assert runtime.pending_timers == ()
    assert runtime.stream.enabled

    await runtime.dispose()


@pytest.mark.asyncio
async def test_qr_after_reconnect_rearms_timeout(backend, wait_for):
    backend.closing_streams = [[backend.sse("qrcode", {"qrcode": "QR-OLD"})]]
    backend.stream_chunks = [backend.sse("qrcode", {"qrcode": "QR-NEW"})]
    runtime, _ = await _runtime(backend)

    await runtime.begin()
    await wait_for(lambda: runtime.state.qr_code == "QR-NEW")

    assert runtime.state.timeout_armed
    assert runtime.state.timeout_generation == 2
    assert runtime.pending_timers == ("pairing_timeout",)

    await runtime.dispose()
