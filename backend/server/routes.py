"""
Route registration for the pairing API.

Responsibilities:
- Define HTTP endpoints over ConnectionContext
- Map backend failures to 502
- Pull dependencies from app.state
"""

from __future__ import annotations

from typing import Any

from fastapi import FastAPI, HTTPException

from observability.logger import log_event
from services.pairing_api import PairingApiError
from session.context import ConnectionContext


def register_routes(app: FastAPI) -> None:
    """Register all routes on the FastAPI app."""

    def _ctx() -> ConnectionContext:
        return app.state.connection

    def _backend_failed(op: str, e: PairingApiError) -> HTTPException:
        log_event({
            "level": "WARNING",
            "event_type": "ROUTE_BACKEND_FAILED",
            "op": op,
            "status_code": e.status_code,
            "error": e.message,
        })
        return HTTPException(status_code=502, detail=e.message)

    @app.get("/health")
    async def health() -> dict[str, str]: # pyright: ignore[reportUnusedFunction]
        return {"status": "ok"}

    @app.get("/pairing")
    async def pairing_snapshot() -> dict[str, Any]: # pyright: ignore[reportUnusedFunction]
        return _ctx().snapshot()

    @app.post("/pairing/check")
    async def pairing_check() -> dict[str, Any]: # pyright: ignore[reportUnusedFunction]
        ctx = _ctx()
        try:
            await ctx.check_status()
        except PairingApiError as e:
            raise _backend_failed("check_status", e) from e
        return ctx.snapshot()

    @app.post("/pairing/connect")
    async def pairing_connect() -> dict[str, Any]: # pyright: ignore[reportUnusedFunction]
        ctx = _ctx()
        await ctx.connect()
        return ctx.snapshot()

    @app.post("/pairing/cancel")
    async def pairing_cancel() -> dict[str, Any]: # pyright: ignore[reportUnusedFunction]
        ctx = _ctx()
        await ctx.cancel()
        return ctx.snapshot()

    @app.post("/pairing/retry")
    async def pairing_retry() -> dict[str, Any]: # pyright: ignore[reportUnusedFunction]
        ctx = _ctx()
        await ctx.retry()
        return ctx.snapshot()

    @app.post("/pairing/dismiss")
    async def pairing_dismiss() -> dict[str, Any]: # pyright: ignore[reportUnusedFunction]
        ctx = _ctx()
        await ctx.dismiss_surface()
        return ctx.snapshot()

    @app.delete("/pairing")
    async def pairing_disconnect() -> dict[str, Any]: # pyright: ignore[reportUnusedFunction]
        ctx = _ctx()
        try:
            await ctx.disconnect()
        except PairingApiError as e:
            raise _backend_failed("disconnect", e) from e
        return ctx.snapshot()
