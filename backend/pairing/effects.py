"""
Post-connection effects of one pairing episode.

Two delayed, one-shot actions follow a successful pairing:

    connected and surface open     --grace-->  dismiss the surface
    connected and surface closed   --delay-->  import contacts (once)

Effects are armed by begin_episode(); status observed outside a pairing
episode (e.g. "already connected" at startup) triggers nothing.
"""
from __future__ import annotations

from collections.abc import Awaitable, Callable

from observability.logger import log_event
from observability.metrics import timed
from scheduling.timers import TimerHandle, TimerRegistry
from spec import DISMISS_GRACE_S, IMPORT_DELAY_S


TIMER_DISMISS = "post_connect_dismiss"
TIMER_IMPORT = "post_connect_import"


class PostConnectionEffects:
    """
    Reacts to (connected, surface_open) observations.

    Invariants:
    - acknowledged is set before the surface is dismissed
    - imported is set before the import action runs, so it runs at most
      once per episode even if observations keep arriving
    - losing the connection cancels pending timers but keeps the flags
    """

    def __init__(
        self,
        *,
        session_id: str,
        dismiss_surface: Callable[[], Awaitable[None]],
        run_import: Callable[[], Awaitable[None]],
        dismiss_grace_s: float = DISMISS_GRACE_S,
        import_delay_s: float = IMPORT_DELAY_S,
    ) -> None:
        self._session_id = session_id
        self._dismiss_surface = dismiss_surface
        self._run_import = run_import
        self._dismiss_grace_s = dismiss_grace_s
        self._import_delay_s = import_delay_s

        self._timers = TimerRegistry(name="post-connect")
        self._armed = False
        self._acknowledged = False
        self._imported_for: str | None = None
        self._disposed = False

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def armed(self) -> bool:
        return self._armed

    @property
    def acknowledged(self) -> bool:
        return self._acknowledged

    @property
    def imported(self) -> bool:
        return self._imported_for == self._session_id

    def pending(self) -> tuple[str, ...]:
        return self._timers.pending()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def begin_episode(self) -> None:
        """New pairing attempt: reset flags and drop pending timers."""
        if self._disposed:
            return
        self._timers.cancel_all()
        self._armed = True
        self._acknowledged = False
        self._imported_for = None

    def disarm(self) -> None:
        """Stop reacting until the next begin_episode(); flags are kept."""
        self._timers.cancel_all()
        self._armed = False

    def observe(self, *, connected: bool, surface_open: bool) -> None:
        if self._disposed or not self._armed:
            return

        if not connected:
            self._timers.cancel_all()
            return

        if surface_open:
            self._timers.cancel(TIMER_IMPORT)
            if not self._acknowledged and not self._timers.is_pending(TIMER_DISMISS):
                self._timers.start(TIMER_DISMISS, self._dismiss_grace_s, self._on_dismiss)
            return

        self._timers.cancel(TIMER_DISMISS)
        if not self.imported and not self._timers.is_pending(TIMER_IMPORT):
            self._timers.start(TIMER_IMPORT, self._import_delay_s, self._on_import)

    async def dispose(self) -> None:
        """Cancel everything; no timer fires afterwards. Idempotent."""
        self._disposed = True
        self._armed = False
        await self._timers.aclose()

    # ------------------------------------------------------------------
    # Timer callbacks
    # ------------------------------------------------------------------

    async def _on_dismiss(self, handle: TimerHandle) -> None:
        self._acknowledged = True
        log_event({
            "event_type": "PAIRING_SURFACE_AUTO_DISMISS",
            "session_id": self._session_id,
            "generation": handle.generation,
        })
        await self._dismiss_surface()

    async def _on_import(self, handle: TimerHandle) -> None:  # pylint: disable=unused-argument
        if self.imported:
            return
        self._imported_for = self._session_id

        log_event({"event_type": "CONTACT_IMPORT_START", "session_id": self._session_id})
        try:
            with timed("contact_import", session_id=self._session_id):
                await self._run_import()
        except Exception as e:  # pylint: disable=broad-exception-caught
            log_event({
                "level": "ERROR",
                "event_type": "CONTACT_IMPORT_FAILED",
                "session_id": self._session_id,
                "error": repr(e),
            })
            return
        log_event({"event_type": "CONTACT_IMPORT_DONE", "session_id": self._session_id})
