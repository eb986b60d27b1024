"""
Runtime execution shell for one pairing state machine.

Responsibilities:
- Own pairing state
- Call the pure reducer
- Execute commands with side effects (backend calls, stream, timers)
- Drain the event-stream channel and turn items into reducer events
- Convert timer expiry into events

Non-responsibilities:
- Deciding transitions (reducer)
- Surface visibility and post-connection effects (ConnectionContext)
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable

from observability.logger import log_event
from observability.metrics import Stopwatch
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
from pairing.reducer import reduce
from pairing.state_dataclass import PairingState
from protocol.pairing_messages import (
    ErrorMessage,
    PairingProtocolError,
    QRCodeMessage,
    StatusMessage,
    decode_pairing_message,
)
from protocol.sse import SSEFrame
from scheduling.timers import TimerHandle, TimerRegistry
from services.pairing_api import PairingApiClient, PairingApiError
from stream.backoff import BackoffPolicy
from stream.client import EventStreamClient
from stream.items import SSEEvent, StreamDropped, StreamGaveUp, StreamItem, StreamOpened


StateListener = Callable[[PairingState, PairingState], Awaitable[None]]
ConnectedListener = Callable[[int], Awaitable[None]]


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


class PairingRuntime:
    """
    Runtime execution boundary for one pairing session token.

    Guarantees:
    - Reducer is called exactly once per incoming event
    - reduce + command execution is serialized by one lock
    - State is swapped before any command executes
    - Timers and stream items re-enter through handle_event()
    - After dispose() no timer fires and no stream is open
    """

    def __init__(
        self,
        *,
        api: PairingApiClient,
        session_id: str,
        initial_state: PairingState | None = None,
        policy: BackoffPolicy | None = None,
        on_change: StateListener | None = None,
        on_connected: ConnectedListener | None = None,
    ) -> None:
        self._api = api
        self._session_id = session_id
        self._state = initial_state or PairingState()
        self._on_change = on_change
        self._on_connected = on_connected

        self._lock = asyncio.Lock()
        self._timers = TimerRegistry(name="pairing")
        self._timer_commands: dict[str, StartTimer] = {}

        self._channel: asyncio.Queue[StreamItem] = asyncio.Queue()
        self._stream = EventStreamClient(
            emit=self._channel.put,
            http_client=api.http,
            policy=policy,
        )
        self._stream_episode: int | None = None

        self._dispatch_task: asyncio.Task[None] | None = None
        self._session_tasks: set[asyncio.Task[None]] = set()
        self._pending_connected: list[int] = []
        self._disposed = False

        self._qr_latency = Stopwatch("pairing_qr_to_connected", session_id=session_id)

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def state(self) -> PairingState:
        """Current immutable pairing state; read-only for consumers."""
        return self._state

    @property
    def stream(self) -> EventStreamClient:
        return self._stream

    @property
    def session_id(self) -> str:
        return self._session_id

    @property
    def pending_timers(self) -> tuple[str, ...]:
        return self._timers.pending()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start draining the stream channel; idempotent."""
        if self._disposed:
            raise RuntimeError("pairing runtime is disposed")
        if self._dispatch_task is None:
            self._dispatch_task = asyncio.create_task(
                self._dispatch_loop(), name="pairing-dispatch"
            )

    async def dispose(self) -> None:
        """
        Cancel the flow and release every resource.

        Idempotent. Afterwards no timer is pending and the stream is closed.
        """
        if self._disposed:
            return
        await self.handle_event(
            CancelRequested(
                event_type=EventType.CANCEL_REQUESTED,
                ts_ms=_now_ms(),
                reason="dispose",
            )
        )
        self._disposed = True

        tasks = list(self._session_tasks)
        if self._dispatch_task is not None:
            tasks.append(self._dispatch_task)
            self._dispatch_task = None
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._session_tasks.clear()

        await self._stream.aclose()
        await self._timers.aclose()
        self._timer_commands.clear()

    # ------------------------------------------------------------------
    # Intents
    # ------------------------------------------------------------------

    async def begin(self) -> None:
        await self.handle_event(
            BeginRequested(event_type=EventType.BEGIN_REQUESTED, ts_ms=_now_ms())
        )

    async def retry(self) -> None:
        await self.handle_event(
            RetryRequested(event_type=EventType.RETRY_REQUESTED, ts_ms=_now_ms())
        )

    async def cancel(self, reason: str = "cancel") -> None:
        await self.handle_event(
            CancelRequested(
                event_type=EventType.CANCEL_REQUESTED,
                ts_ms=_now_ms(),
                reason=reason,
            )
        )

    async def confirm_connected(self) -> None:
        """Backend reports the session connected; ends the current episode."""
        await self.handle_event(
            ConnectionConfirmed(
                event_type=EventType.CONNECTION_CONFIRMED,
                ts_ms=_now_ms(),
                episode=self._state.episode,
            )
        )

    # ------------------------------------------------------------------
    # Event entry point
    # ------------------------------------------------------------------

    async def handle_event(self, event: Event) -> None:
        """
        Process a single event through the pairing pipeline.

        1. Reduce under the lock and swap in the new state
        2. Execute all emitted commands in order, still under the lock
        3. Notify listeners after the lock is released

        Events arriving after dispose() are dropped.
        """
        if self._disposed:
            log_event({
                "level": "DEBUG",
                "event_type": "PAIRING_EVENT_AFTER_DISPOSE",
                "session_id": self._session_id,
                "pairing_event": event.event_type.value,
            })
            return

        async with self._lock:
            prev_state = self._state
            new_state, commands = reduce(self._state, event)
            self._state = new_state

            for cmd in commands:
                await self._execute_command(cmd)

            connected = self._pending_connected
            self._pending_connected = []

        self._observe_transition(prev_state, new_state)

        if self._on_change is not None and new_state != prev_state:
            await self._on_change(prev_state, new_state)
        if self._on_connected is not None:
            for episode in connected:
                await self._on_connected(episode)

    # ------------------------------------------------------------------
    # Command execution (side effects)
    # ------------------------------------------------------------------

    async def _execute_command(self, cmd: Command) -> None:
        if isinstance(cmd, LogEvent):
            log_event({**cmd.event, "session_id": self._session_id})

        elif isinstance(cmd, StartSession):
            task = asyncio.create_task(
                self._start_session(cmd.episode),
                name=f"pairing-connect-{cmd.episode}",
            )
            self._session_tasks.add(task)
            task.add_done_callback(self._session_tasks.discard)

        elif isinstance(cmd, EnableStream):
            if self._stream.enabled:
                await self._stream.disable()
            self._stream_episode = cmd.episode
            await self._stream.enable(self._api.stream_url(self._session_id))

        elif isinstance(cmd, DisableStream):
            self._stream_episode = None
            await self._stream.disable()

        elif isinstance(cmd, StartTimer):
            self._timer_commands[cmd.timer_id] = cmd
            self._timers.start(cmd.timer_id, cmd.duration_s, self._on_timer)

        elif isinstance(cmd, CancelTimer):
            self._timers.cancel(cmd.timer_id)
            self._timer_commands.pop(cmd.timer_id, None)

        elif isinstance(cmd, ScheduleDismiss):
            self._pending_connected.append(cmd.episode)

        else:
            raise TypeError(f"unknown command: {type(cmd).__name__}")

    async def _start_session(self, episode: int) -> None:
        try:
            result = await self._api.connect(self._session_id)
        except PairingApiError as e:
            await self.handle_event(
                SessionRejected(
                    event_type=EventType.SESSION_REJECTED,
                    ts_ms=_now_ms(),
                    episode=episode,
                    message=e.message,
                )
            )
            return

        await self.handle_event(
            SessionAccepted(
                event_type=EventType.SESSION_ACCEPTED,
                ts_ms=_now_ms(),
                episode=episode,
                already_connected=result.already_connected,
                instance_name=result.instance_name,
            )
        )

    # ------------------------------------------------------------------
    # Timers
    # ------------------------------------------------------------------

    async def _on_timer(self, handle: TimerHandle) -> None:
        cmd = self._timer_commands.pop(handle.timer_id, None)
        if cmd is None:
            return
        await self.handle_event(self._construct_timeout_event(cmd))

    def _construct_timeout_event(self, cmd: StartTimer) -> Event:
        """
        Build the event a timer injects on expiry.

        Episode and generation come from the command, not from current
        state, so a late timer is recognised as stale by the reducer.
        """
        ts = _now_ms()

        if cmd.timeout_event_type is EventType.PAIRING_TIMEOUT:
            return PairingTimedOut(
                event_type=EventType.PAIRING_TIMEOUT,
                ts_ms=ts,
                episode=cmd.episode,
                generation=cmd.generation,
            )

        if cmd.timeout_event_type is EventType.RETRY_READY:
            return RetryReady(
                event_type=EventType.RETRY_READY,
                ts_ms=ts,
                episode=cmd.episode,
            )

        raise ValueError(
            f"Unknown timeout event type: {cmd.timeout_event_type} "
            f"for timer_id: {cmd.timer_id}"
        )

    # ------------------------------------------------------------------
    # Stream channel
    # ------------------------------------------------------------------

    async def _dispatch_loop(self) -> None:
        while True:
            item = await self._channel.get()
            try:
                await self._dispatch_item(item)
            except Exception as e:  # pylint: disable=broad-exception-caught
                log_event({
                    "level": "ERROR",
                    "event_type": "PAIRING_DISPATCH_FAILED",
                    "session_id": self._session_id,
                    "item": type(item).__name__,
                    "error": repr(e),
                })

    async def _dispatch_item(self, item: StreamItem) -> None:
        episode = self._stream_episode
        if episode is None or item.subscription_id != self._stream.active_subscription_id:
            log_event({
                "level": "DEBUG",
                "event_type": "STREAM_ITEM_STALE",
                "session_id": self._session_id,
                "item": type(item).__name__,
                "subscription_id": item.subscription_id,
            })
            return

        if isinstance(item, StreamOpened):
            return

        if isinstance(item, StreamDropped):
            await self.handle_event(
                StreamInterrupted(
                    event_type=EventType.STREAM_INTERRUPTED,
                    ts_ms=_now_ms(),
                    episode=episode,
                    reason=item.reason,
                )
            )
            return

        if isinstance(item, StreamGaveUp):
            await self.handle_event(
                StreamLost(
                    event_type=EventType.STREAM_LOST,
                    ts_ms=_now_ms(),
                    episode=episode,
                    attempts=item.attempts,
                )
            )
            return

        event = self._translate(item, episode)
        if event is not None:
            await self.handle_event(event)

    def _translate(self, item: SSEEvent, episode: int) -> Event | None:
        try:
            message = decode_pairing_message(
                SSEFrame(event=item.event, data=item.data, last_event_id=item.last_event_id)
            )
        except PairingProtocolError as e:
            log_event({
                "level": "WARNING",
                "event_type": "PAIRING_MESSAGE_DROPPED",
                "session_id": self._session_id,
                "sse_event": item.event,
                "error": str(e),
            })
            return None

        ts = _now_ms()
        if isinstance(message, QRCodeMessage):
            return QRCodeReceived(
                event_type=EventType.QRCODE_RECEIVED,
                ts_ms=ts,
                episode=episode,
                qrcode=message.qrcode,
            )
        if isinstance(message, StatusMessage):
            return StatusReceived(
                event_type=EventType.STATUS_RECEIVED,
                ts_ms=ts,
                episode=episode,
                connected=message.connected,
                status=message.status,
            )
        if isinstance(message, ErrorMessage):
            return ServerError(
                event_type=EventType.SERVER_ERROR,
                ts_ms=ts,
                episode=episode,
                message=message.message,
                code=message.code,
            )
        return None

    # ------------------------------------------------------------------
    # Metrics
    # ------------------------------------------------------------------

    def _observe_transition(self, prev: PairingState, new: PairingState) -> None:
        if new.status is PairingStatus.CONNECTING:
            if new.qr_code is not None and prev.qr_code is None and not self._qr_latency.running:
                self._qr_latency.start()
            return
        if new.status is PairingStatus.CONNECTED and prev.status is PairingStatus.CONNECTING:
            self._qr_latency.stop({"episode": new.episode})
            return
        self._qr_latency.reset()
