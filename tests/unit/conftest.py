# pylint: disable=missing-module-docstring,missing-function-docstring

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any

import httpx
import pytest

from observability import logger
from services.pairing_api import PairingApiClient


API_BASE = "http://pairing.test/api/v1"

WaitFor = Callable[..., Awaitable[None]]


@pytest.fixture(autouse=True)
def _debug_logging(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(logger, "_min_level", logger._LEVELS["DEBUG"])  # pylint: disable=protected-access


@pytest.fixture
def captured_logs(monkeypatch: pytest.MonkeyPatch) -> list[dict[str, Any]]:
    records: list[dict[str, Any]] = []
    monkeypatch.setattr(logger, "_print", lambda line: records.append(json.loads(line)))
    return records


@pytest.fixture
def wait_for() -> WaitFor:
    async def _wait_for(predicate: Callable[[], bool], timeout_s: float = 2.0) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout_s
        while not predicate():
            if loop.time() > deadline:
                raise AssertionError("condition not met before timeout")
            await asyncio.sleep(0.005)

    return _wait_for


class FakePairingBackend:
    """
    In-process pairing backend behind httpx.MockTransport.

    The stream endpoint emits stream_chunks and then stays open until the
    client goes away.
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.connect_replies: list[tuple[int, dict[str, Any]]] = []
        self.status_reply: tuple[int, dict[str, Any]] = (200, {"connected": False})
        self.disconnect_reply: tuple[int, dict[str, Any]] = (200, {"success": True})
        self.import_status = 202
        self.stream_chunks: list[bytes] = []
        self.stream_status = 200
        # Chunks for upcoming connections that close afterwards; once used up
        # the stream serves stream_chunks and stays open.
        self.closing_streams: list[list[bytes]] = []

    @staticmethod
    def sse(event: str, payload: dict[str, Any]) -> bytes:
        return f"event: {event}\ndata: {json.dumps(payload)}\n\n".encode()

    def count(self, method: str, suffix: str) -> int:
        return sum(
            1 for r in self.requests
            if r.method == method and r.url.path.endswith(suffix)
        )

    def api(self) -> PairingApiClient:
        return PairingApiClient(API_BASE, transport=httpx.MockTransport(self.handler))

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if path.endswith("/pairing/connect/stream"):
            if self.stream_status != 200:
                return httpx.Response(self.stream_status)
            return httpx.Response(
                200,
                headers={"content-type": "text/event-stream"},
                content=self._stream_body(),
            )
        if path.endswith("/pairing/connect"):
            if self.connect_replies:
                code, body = self.connect_replies.pop(0)
                return httpx.Response(code, json=body)
            session_id = json.loads(request.content)["sessionId"]
            return httpx.Response(200, json={"sessionId": session_id})
        if path.endswith("/pairing/status"):
            code, body = self.status_reply
            return httpx.Response(code, json=body)
        if path.endswith("/pairing/disconnect"):
            code, body = self.disconnect_reply
            return httpx.Response(code, json=body)
        if path.endswith("/pairing/import"):
            return httpx.Response(self.import_status)
        return httpx.Response(404)

    def _stream_body(self) -> AsyncIterator[bytes]:
        if self.closing_streams:
            chunks = self.closing_streams.pop(0)

            async def closing() -> AsyncIterator[bytes]:
                for chunk in chunks:
                    yield chunk

            return closing()
        return self._held_open_body()

    async def _held_open_body(self) -> AsyncIterator[bytes]:
        for chunk in self.stream_chunks:
            yield chunk
        await asyncio.Event().wait()


@pytest.fixture
def backend() -> FakePairingBackend:
    return FakePairingBackend()
