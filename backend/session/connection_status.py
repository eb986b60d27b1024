"""
Connection status exposed to clients of the pairing subsystem.

Tracked by ConnectionContext, separately from the pairing reducer state:
a dismissed surface resets the reducer to idle while the device stays
connected.

This is pure data. Only the pairing runtime (via ConnectionContext) and
ConnectionContext itself construct new values.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from pairing.enums.status import PairingStatus
from pairing.state_dataclass import PairingState


@dataclass(frozen=True)
class ConnectionStatus:
    """
    Immutable snapshot of the device connection.

    - connected: qr_code and error are both None
    - error is only set while status is ERROR
    """
    status: PairingStatus = PairingStatus.IDLE
    qr_code: str | None = None
    error: str | None = None

    def __post_init__(self) -> None:
        if self.status is PairingStatus.CONNECTED and (
            self.qr_code is not None or self.error is not None
        ):
            raise ValueError("connected status carries no qr_code or error")
        if self.error is not None and self.status is not PairingStatus.ERROR:
            raise ValueError("error is only set in the error status")

    @property
    def connected(self) -> bool:
        return self.status is PairingStatus.CONNECTED

    @classmethod
    def disconnected(cls) -> ConnectionStatus:
        return cls()

    @classmethod
    def connected_now(cls) -> ConnectionStatus:
        return cls(status=PairingStatus.CONNECTED)

    @classmethod
    def from_pairing(cls, state: PairingState) -> ConnectionStatus:
        if state.status is PairingStatus.CONNECTED:
            return cls.connected_now()
        if state.status is PairingStatus.ERROR:
            return cls(status=PairingStatus.ERROR, error=state.error)
        if state.status is PairingStatus.CONNECTING:
            return cls(status=PairingStatus.CONNECTING, qr_code=state.qr_code)
        return cls()

    def as_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "connected": self.connected,
            "qr_code": self.qr_code,
            "error": self.error,
        }
