"""
Pure pairing reducer.

(state, event) -> (new_state, commands)

Rules:
- Pure: no side effects, no IO, no clocks.
- Deterministic: output depends only on inputs.
- Total: every (state, event) pair is handled or explicitly ignored (logged).
"""

# Success path: CancelTimer(TIMER_PAIRING_TIMEOUT) is always the first
# command, so a timeout can never be recorded after a success.

from __future__ import annotations

from dataclasses import replace
from typing import Any

from pairing.commands import (
    CancelTimer,
    Command,
    DisableStream,
    EnableStream,
    LogEvent,
    ScheduleDismiss,
    StartSession,
    StartTimer,
)
from pairing.enums.status import PairingStatus
from pairing.events import (
    BeginRequested,
    CancelRequested,
    ConnectionConfirmed,
    EpisodeEvent,
    Event,
    EventType,
    PairingTimedOut,
    QRCodeReceived,
    RetryReady,
    RetryRequested,
    ServerError,
    SessionAccepted,
    SessionRejected,
    StatusReceived,
    StreamInterrupted,
    StreamLost,
)
from pairing.state_dataclass import PairingState
from spec import (
    STREAM_LOST_MESSAGE,
    TERMINAL_SUB_STATUSES,
    TIMEOUT_MESSAGE,
    UNKNOWN_ERROR_MESSAGE,
)


# =============================================================================
# Timer IDs
# =============================================================================

TIMER_PAIRING_TIMEOUT = "pairing_timeout"
TIMER_RETRY_BEGIN = "retry_begin"


# =============================================================================
# Small helpers
# =============================================================================

def _log(
    state: PairingState,
    event: Event,
    decision: str,
    details: dict[str, Any] | None = None,
) -> LogEvent:
    return LogEvent(
        event={
            "ts_ms": event.ts_ms,
            "status": state.status.value,
            "episode": state.episode,
            "event_type": event.event_type.value,
            "decision": decision,
            "details": details or {},
        }
    )


def _logs_last(commands: tuple[Command, ...]) -> tuple[Command, ...]:
    non_logs: list[Command] = []
    logs: list[Command] = []
    state_change_logs: list[Command] = []

    for command in commands:
        if isinstance(command, LogEvent):
            if command.event.get("decision") == "state_changed":
                state_change_logs.append(command)
            else:
                logs.append(command)
        else:
            non_logs.append(command)

    return tuple(non_logs + logs + state_change_logs)


def _ignore(
    state: PairingState, event: Event, reason: str
) -> tuple[PairingState, tuple[Command, ...]]:
    return state, (_log(state, event, "ignore", {"reason": reason}),)


def _state_changed(
    prev: PairingState, new: PairingState, event: Event, source: str
) -> LogEvent:
    return _log(
        new,
        event,
        "state_changed",
        {
            "from_state": prev.status.value,
            "to_state": new.status.value,
            "source": source,
        },
    )


def _teardown_commands(state: PairingState, reason: str) -> list[Command]:
    """Disarm the timeout and drop the stream. Order matters: timer first."""
    cmds: list[Command] = [CancelTimer(timer_id=TIMER_PAIRING_TIMEOUT)]
    if state.stream_enabled:
        cmds.append(DisableStream(reason=reason))
    return cmds


def _stale_reason(state: PairingState, event: EpisodeEvent) -> str | None:
    if event.episode != state.episode:
        return "stale_episode"
    if state.status is not PairingStatus.CONNECTING:
        return f"not_connecting:{state.status.value}"
    return None


def _begin(
    state: PairingState, event: Event, source: str
) -> tuple[PairingState, tuple[Command, ...]]:
    cmds: list[Command] = [
        CancelTimer(timer_id=TIMER_PAIRING_TIMEOUT),
        CancelTimer(timer_id=TIMER_RETRY_BEGIN),
    ]
    if state.stream_enabled:
        cmds.append(DisableStream(reason="new_episode"))

    new_state = replace(
        state,
        status=PairingStatus.CONNECTING,
        qr_code=None,
        error=None,
        episode=state.episode + 1,
        timeout_armed=False,
        stream_enabled=False,
        retry_pending=False,
        instance_name=None,
    )
    cmds.append(StartSession(episode=new_state.episode))
    cmds.append(_state_changed(state, new_state, event, source))
    return new_state, _logs_last(tuple(cmds))


def _enter_error(
    state: PairingState, event: Event, message: str, source: str
) -> tuple[PairingState, tuple[Command, ...]]:
    cmds = _teardown_commands(state, reason=source)
    new_state = replace(
        state,
        status=PairingStatus.ERROR,
        qr_code=None,
        error=message,
        timeout_armed=False,
        stream_enabled=False,
    )
    cmds.append(_log(new_state, event, "enter_error", {"reason": message}))
    cmds.append(_state_changed(state, new_state, event, source))
    return new_state, _logs_last(tuple(cmds))


def _enter_connected(
    state: PairingState, event: Event, source: str
) -> tuple[PairingState, tuple[Command, ...]]:
    cmds = _teardown_commands(state, reason="connected")
    new_state = replace(
        state,
        status=PairingStatus.CONNECTED,
        qr_code=None,
        error=None,
        timeout_armed=False,
        stream_enabled=False,
    )
    cmds.append(ScheduleDismiss(episode=new_state.episode))
    cmds.append(_state_changed(state, new_state, event, source))
    return new_state, _logs_last(tuple(cmds))


def _terminal_message(status: str) -> str:
    if status == "timeout":
        return TIMEOUT_MESSAGE
    return UNKNOWN_ERROR_MESSAGE


# =============================================================================
# Reducer
# =============================================================================

def reduce(  # pylint: disable=too-many-return-statements,too-many-branches
    state: PairingState, event: Event
) -> tuple[PairingState, tuple[Command, ...]]:
    """
    Pure reducer for the pairing state machine.

    Given the current pairing state and a single event, returns:
    - the next state
    - a tuple of commands describing required side effects

    Properties:
    - Deterministic: no IO, clocks, or randomness
    - Total: every (state, event) pair is handled or explicitly ignored
    - Episode-safe: ignores stream and timer events from finished episodes
    """

    # ------------------------------------------------------------------
    # Cancel: valid from any status
    # ------------------------------------------------------------------
    if isinstance(event, CancelRequested):
        cmds: list[Command] = [
            CancelTimer(timer_id=TIMER_PAIRING_TIMEOUT),
            CancelTimer(timer_id=TIMER_RETRY_BEGIN),
        ]
        if state.stream_enabled:
            cmds.append(DisableStream(reason=event.reason))

        new_state = replace(
            state,
            status=PairingStatus.IDLE,
            qr_code=None,
            error=None,
            timeout_armed=False,
            stream_enabled=False,
            retry_pending=False,
        )
        if new_state != state:
            cmds.append(_state_changed(state, new_state, event, "cancel"))
        else:
            cmds.append(_log(state, event, "cancel_noop", {"reason": event.reason}))
        return new_state, _logs_last(tuple(cmds))

    # ------------------------------------------------------------------
    # Begin / retry
    # ------------------------------------------------------------------
    if isinstance(event, BeginRequested):
        if state.status is PairingStatus.CONNECTING:
            return _ignore(state, event, "already_connecting")
        if state.status is PairingStatus.CONNECTED:
            return _ignore(state, event, "already_connected")
        return _begin(state, event, "begin")

    if isinstance(event, RetryRequested):
        if state.status is not PairingStatus.ERROR:
            return _ignore(state, event, f"retry_not_in_error:{state.status.value}")

        cmds = _teardown_commands(state, reason="retry")
        new_state = replace(
            state,
            status=PairingStatus.IDLE,
            qr_code=None,
            error=None,
            timeout_armed=False,
            stream_enabled=False,
            retry_pending=True,
        )
        cmds.append(
            StartTimer(
                timer_id=TIMER_RETRY_BEGIN,
                duration_s=state.retry_delay_s,
                timeout_event_type=EventType.RETRY_READY,
                episode=new_state.episode,
            )
        )
        cmds.append(_state_changed(state, new_state, event, "retry"))
        return new_state, _logs_last(tuple(cmds))

    if isinstance(event, RetryReady):
        if not state.retry_pending or event.episode != state.episode:
            return _ignore(state, event, "retry_not_pending")
        if state.status is not PairingStatus.IDLE:
            return _ignore(state, event, f"retry_not_idle:{state.status.value}")
        return _begin(state, event, "retry_ready")

    # ------------------------------------------------------------------
    # Everything below belongs to a single CONNECTING episode
    # ------------------------------------------------------------------
    if not isinstance(event, EpisodeEvent):
        return _ignore(state, event, "unhandled_event")

    stale = _stale_reason(state, event)
    if stale is not None:
        return _ignore(state, event, stale)

    if isinstance(event, SessionAccepted):
        if event.already_connected:
            new_state, cmds_t = _enter_connected(
                replace(state, instance_name=event.instance_name),
                event,
                "already_connected",
            )
            return new_state, cmds_t

        new_state = replace(
            state,
            stream_enabled=True,
            instance_name=event.instance_name,
        )
        return new_state, _logs_last((
            EnableStream(episode=new_state.episode),
            _log(new_state, event, "session_accepted", {
                "instance_name": event.instance_name,
            }),
        ))

    if isinstance(event, SessionRejected):
        return _enter_error(state, event, event.message, "session_rejected")

    # Backend status check; valid before the stream is up.
    if isinstance(event, ConnectionConfirmed):
        return _enter_connected(state, event, "status_check")

    if not state.stream_enabled and not isinstance(event, PairingTimedOut):
        return _ignore(state, event, "stream_not_enabled")

    if isinstance(event, QRCodeReceived):
        generation = state.timeout_generation + 1
        new_state = replace(
            state,
            qr_code=event.qrcode,
            timeout_generation=generation,
            timeout_armed=True,
        )
        return new_state, _logs_last((
            StartTimer(
                timer_id=TIMER_PAIRING_TIMEOUT,
                duration_s=state.pairing_timeout_s,
                timeout_event_type=EventType.PAIRING_TIMEOUT,
                episode=new_state.episode,
                generation=generation,
            ),
            _log(new_state, event, "qrcode_presented", {
                "generation": generation,
                "rearmed": state.timeout_armed,
            }),
        ))

    if isinstance(event, StatusReceived):
        if event.connected:
            return _enter_connected(state, event, "status_connected")
        if event.status in TERMINAL_SUB_STATUSES:
            return _enter_error(
                state, event, _terminal_message(event.status), "status_terminal"
            )
        return state, (
            _log(state, event, "heartbeat", {"status": event.status}),
        )

    if isinstance(event, ServerError):
        return _enter_error(
            state, event, event.message or UNKNOWN_ERROR_MESSAGE, "server_error"
        )

    if isinstance(event, StreamInterrupted):
        # The reconnected stream pushes a fresh QR; only that one rearms.
        if state.qr_code is None and not state.timeout_armed:
            return state, (
                _log(state, event, "stream_interrupted", {"reason": event.reason}),
            )
        new_state = replace(state, qr_code=None, timeout_armed=False)
        return new_state, _logs_last((
            CancelTimer(timer_id=TIMER_PAIRING_TIMEOUT),
            _log(new_state, event, "qrcode_discarded", {"reason": event.reason}),
        ))

    if isinstance(event, StreamLost):
        return _enter_error(state, event, STREAM_LOST_MESSAGE, "stream_lost")

    if isinstance(event, PairingTimedOut):
        if not state.timeout_armed:
            return _ignore(state, event, "timeout_not_armed")
        if event.generation != state.timeout_generation:
            return _ignore(state, event, "stale_timeout_generation")
        return _enter_error(state, event, TIMEOUT_MESSAGE, "pairing_timeout")

    return _ignore(state, event, "unhandled_event")
