"""
Typed payloads of the pairing event stream.

    event: qrcode  -> {"qrcode": str}
    event: status  -> {"connected": bool, "status"?: str}
    event: error   -> {"message": str, "code"?: str}

A generic "message" event whose JSON carries a "type" field is decoded as
that type. Anything else raises PairingProtocolError; the caller drops it.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Union

from protocol.sse import SSEFrame
from spec import (
    STREAM_EVENT_ERROR,
    STREAM_EVENT_MESSAGE,
    STREAM_EVENT_QRCODE,
    STREAM_EVENT_STATUS,
    UNKNOWN_ERROR_MESSAGE,
)


class PairingProtocolError(Exception):
    """Stream payload does not match the pairing contract."""


@dataclass(frozen=True)
class QRCodeMessage:
    qrcode: str


@dataclass(frozen=True)
class StatusMessage:
    connected: bool
    status: str | None = None


@dataclass(frozen=True)
class ErrorMessage:
    message: str
    code: str | None = None


PairingMessage = Union[QRCodeMessage, StatusMessage, ErrorMessage]


def _load_object(data: str) -> dict[str, Any]:
    try:
        payload = json.loads(data)
    except json.JSONDecodeError as e:
        raise PairingProtocolError(f"payload is not JSON: {e}") from e
    if not isinstance(payload, dict):
        raise PairingProtocolError("payload is not a JSON object")
    return payload


def decode_pairing_message(frame: SSEFrame) -> PairingMessage:
    payload = _load_object(frame.data)

    kind = frame.event
    if kind == STREAM_EVENT_MESSAGE:
        kind = payload.get("type", "")

    if kind == STREAM_EVENT_QRCODE:
        qrcode = payload.get("qrcode")
        if not isinstance(qrcode, str) or not qrcode:
            raise PairingProtocolError("qrcode event without qrcode payload")
        return QRCodeMessage(qrcode=qrcode)

    if kind == STREAM_EVENT_STATUS:
        connected = payload.get("connected")
        if not isinstance(connected, bool):
            raise PairingProtocolError("status event without boolean 'connected'")
        status = payload.get("status")
        return StatusMessage(
            connected=connected,
            status=status if isinstance(status, str) else None,
        )

    if kind == STREAM_EVENT_ERROR:
        message = payload.get("message")
        code = payload.get("code")
        return ErrorMessage(
            message=message if isinstance(message, str) and message else UNKNOWN_ERROR_MESSAGE,
            code=code if isinstance(code, str) else None,
        )

    raise PairingProtocolError(f"unknown stream event type: {kind!r}")
