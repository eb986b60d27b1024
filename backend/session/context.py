"""
Connection context for one installation.

Responsibilities:
- Own the session token, the pairing runtime and post-connection effects
- Track the client-visible ConnectionStatus and whether the pairing
  surface is open
- Expose check_status / connect / disconnect and the surface intents

Still NOT responsible for:
- Any transition logic (pairing reducer)
- Stream reconnects (EventStreamClient)
- Transport to the UI (server routes)
"""

from __future__ import annotations

from typing import Any, TYPE_CHECKING

from observability.logger import log_event
from pairing.effects import PostConnectionEffects
from pairing.enums.status import PairingStatus
from pairing.runtime import PairingRuntime
from pairing.state_dataclass import PairingState
from services.pairing_api import PairingApiClient, PairingApiError
from session.connection_status import ConnectionStatus
from session.identity import JsonFileTokenStore, SessionIdentity
from spec import DISMISS_GRACE_S, IMPORT_DELAY_S
from stream.backoff import BackoffPolicy

if TYPE_CHECKING:
    from config import AppConfig


class ConnectionContext:
    """
    Explicitly constructed service object with an init/shutdown lifecycle.

    Lifecycle:
    1. __init__: wire collaborators, no IO
    2. init(): resolve session token, start runtime, check status once
    3. intents: connect / cancel / retry / dismiss_surface / disconnect
    4. shutdown(): dispose effects, runtime and HTTP client

    Only connect() (and retry() from an error) open the pairing surface.
    A failed status check never does.
    """

    def __init__(
        self,
        config: AppConfig,
        *,
        identity: SessionIdentity | None = None,
        api: PairingApiClient | None = None,
        policy: BackoffPolicy | None = None,
        dismiss_grace_s: float = DISMISS_GRACE_S,
        import_delay_s: float = IMPORT_DELAY_S,
    ) -> None:
        self._config = config
        self._identity = identity or SessionIdentity(
            JsonFileTokenStore(config.session_store_path)
        )
        self._owns_api = api is None
        self._api = api or PairingApiClient(
            config.pairing_api_url, timeout_s=config.http_timeout_s
        )
        self._policy = policy or BackoffPolicy(
            base_delay_s=config.stream_base_delay_s,
            max_delay_s=config.stream_max_delay_s,
            max_attempts=config.stream_max_attempts,
        )
        self._dismiss_grace_s = dismiss_grace_s
        self._import_delay_s = import_delay_s

        self._status = ConnectionStatus.disconnected()
        self._surface_open = False
        self._session_id: str | None = None
        self._runtime: PairingRuntime | None = None
        self._effects: PostConnectionEffects | None = None

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def status(self) -> ConnectionStatus:
        return self._status

    @property
    def is_connected(self) -> bool:
        return self._status.connected

    @property
    def surface_open(self) -> bool:
        return self._surface_open

    @property
    def session_id(self) -> str | None:
        return self._session_id

    @property
    def runtime(self) -> PairingRuntime | None:
        return self._runtime

    @property
    def effects(self) -> PostConnectionEffects | None:
        return self._effects

    @property
    def started(self) -> bool:
        return self._runtime is not None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def init(self) -> None:
        """Start the context; idempotent. A failed status check is logged only."""
        if self._runtime is not None:
            return

        session_id = self._identity.get_or_create()
        self._session_id = session_id

        self._runtime = PairingRuntime(
            api=self._api,
            session_id=session_id,
            initial_state=PairingState(pairing_timeout_s=self._config.pairing_timeout_s),
            policy=self._policy,
            on_change=self._on_pairing_change,
            on_connected=self._on_pairing_connected,
        )
        self._effects = PostConnectionEffects(
            session_id=session_id,
            dismiss_surface=self.dismiss_surface,
            run_import=self._run_import,
            dismiss_grace_s=self._dismiss_grace_s,
            import_delay_s=self._import_delay_s,
        )
        self._runtime.start()

        log_event({
            "event_type": "CONNECTION_CONTEXT_INIT",
            "session_id": session_id,
            "env": self._config.env,
        })

        try:
            await self.check_status()
        except PairingApiError as e:
            log_event({
                "level": "WARNING",
                "event_type": "INITIAL_STATUS_CHECK_FAILED",
                "session_id": session_id,
                "error": e.message,
            })

    async def shutdown(self) -> None:
        """Dispose everything; no timer or stream survives. Idempotent."""
        runtime, effects = self._runtime, self._effects
        if runtime is None or effects is None:
            return

        self._surface_open = False
        await effects.dispose()
        await runtime.dispose()
        if self._owns_api:
            await self._api.aclose()

        self._runtime = None
        self._effects = None
        log_event({"event_type": "CONNECTION_CONTEXT_SHUTDOWN", "session_id": self._session_id})

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def check_status(self) -> ConnectionStatus:
        """
        Ask the backend whether this session is connected.

        A connected answer always wins: a running attempt is finished
        through the runtime so its timeout and stream go first. A negative
        answer or a failure leaves a running or failed attempt untouched.
        Never opens the surface.

        Raises:
            PairingApiError after marking the context disconnected.
        """
        runtime, _ = self._require()
        session_id = self._require_session()
        try:
            result = await self._api.status(session_id)
        except PairingApiError:
            if not self._pairing_active(runtime):
                self._status = ConnectionStatus.disconnected()
                self._sync_effects()
            raise

        if result.connected:
            if runtime.state.status is PairingStatus.CONNECTING:
                await runtime.confirm_connected()
            self._status = ConnectionStatus.connected_now()
            self._sync_effects()
        elif not self._pairing_active(runtime):
            self._status = ConnectionStatus.disconnected()
            self._sync_effects()

        log_event({
            "event_type": "CONNECTION_STATUS_CHECKED",
            "session_id": session_id,
            "backend_connected": result.connected,
            "backend_status": result.status,
            "status": self._status.status.value,
        })
        return self._status

    async def connect(self) -> None:
        """
        Open the pairing surface and begin pairing.

        No-op while already connected or while a pairing attempt is running.
        """
        runtime, effects = self._require()
        if self._status.connected:
            log_event({
                "event_type": "CONNECT_NOOP",
                "session_id": self._session_id,
                "reason": "already_connected",
            })
            return
        if self._surface_open and runtime.state.status is PairingStatus.CONNECTING:
            log_event({
                "event_type": "CONNECT_NOOP",
                "session_id": self._session_id,
                "reason": "already_connecting",
            })
            return

        self._surface_open = True
        effects.begin_episode()
        await runtime.begin()

    async def retry(self) -> None:
        runtime, effects = self._require()
        if runtime.state.status is not PairingStatus.ERROR:
            log_event({
                "event_type": "RETRY_NOOP",
                "session_id": self._session_id,
                "status": runtime.state.status.value,
            })
            return
        self._surface_open = True
        effects.begin_episode()
        await runtime.retry()

    async def cancel(self) -> None:
        await self.dismiss_surface(reason="cancel")

    async def dismiss_surface(self, reason: str = "dismissed") -> None:
        """Close the surface; any running attempt is cancelled before this returns."""
        runtime, _ = self._require()
        self._surface_open = False
        await runtime.cancel(reason=reason)
        self._sync_effects()

    async def disconnect(self) -> None:
        """
        Forget the connection locally, then tell the backend.

        Raises:
            PairingApiError if the backend call fails or is refused.
        """
        runtime, effects = self._require()
        session_id = self._require_session()

        self._status = ConnectionStatus.disconnected()
        effects.disarm()
        if self._surface_open:
            self._surface_open = False
            await runtime.cancel(reason="disconnect")

        log_event({"event_type": "DISCONNECT_REQUESTED", "session_id": session_id})
        try:
            ok = await self._api.disconnect(session_id)
        except PairingApiError as e:
            log_event({
                "level": "ERROR",
                "event_type": "DISCONNECT_FAILED",
                "session_id": session_id,
                "error": e.message,
            })
            raise
        if not ok:
            raise PairingApiError("Pairing service refused to disconnect.")

    def snapshot(self) -> dict[str, Any]:
        data = self._status.as_dict()
        data["surface_open"] = self._surface_open
        data["session_id"] = self._session_id
        if self._runtime is not None:
            data["pairing_status"] = self._runtime.state.status.value
            data["instance_name"] = self._runtime.state.instance_name
            data["stream"] = self._runtime.stream.link_status.value
        return data

    # ------------------------------------------------------------------
    # Runtime callbacks
    # ------------------------------------------------------------------

    async def _on_pairing_change(self, prev: PairingState, new: PairingState) -> None:  # pylint: disable=unused-argument
        # Cancelling a finished attempt resets the reducer, not the device.
        if not (new.status is PairingStatus.IDLE and self._status.connected):
            self._status = ConnectionStatus.from_pairing(new)
        self._sync_effects()

    async def _on_pairing_connected(self, episode: int) -> None:
        log_event({
            "event_type": "PAIRING_CONNECTED",
            "session_id": self._session_id,
            "episode": episode,
        })
        self._sync_effects()

    async def _run_import(self) -> None:
        await self._api.import_contacts(self._require_session())

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _sync_effects(self) -> None:
        if self._effects is not None:
            self._effects.observe(
                connected=self._status.connected,
                surface_open=self._surface_open,
            )

    def _pairing_active(self, runtime: PairingRuntime) -> bool:
        return self._surface_open and runtime.state.status in (
            PairingStatus.CONNECTING,
            PairingStatus.ERROR,
        )

    def _require(self) -> tuple[PairingRuntime, PostConnectionEffects]:
        if self._runtime is None or self._effects is None:
            raise RuntimeError("ConnectionContext.init() has not been called")
        return self._runtime, self._effects

    def _require_session(self) -> str:
        if self._session_id is None:
            raise RuntimeError("ConnectionContext.init() has not been called")
        return self._session_id
