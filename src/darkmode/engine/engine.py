"""DarkModeEngine facade.

One engine per document. ``attach_engine`` is the idempotent factory: the
instance is registered in ``document.services`` and returned again to any
later caller, so double installation cannot happen.

Lifecycle
---------
``bootstrap()`` (sync) reads persisted state and mounts the pending guard
when the site is enabled; ``resolve()`` (async) waits for a stable paint,
runs the dark-page heuristic once and renders the terminal state. Public
mutators (enable, disable, toggle, update, reset) persist first and then
re-render through the same primitives. Concurrent ``resolve()`` calls share
one in-flight task; the state machine's terminal lock keeps a settled page
settled until it is disabled.

Events (``engine.bus``): ``STATE_CHANGED {from, to}``, ``RENDERED {state}``,
``SETTINGS_CHANGED {snapshot}``.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Mapping, Optional

from darkmode.domain.models import SiteVisualState, Snapshot
from darkmode.dom.document import Document
from darkmode.services.event_bus import EngineEvent, EventBus
from darkmode.services.kv_store import KeyValueStore, MemoryKeyValueStore
from darkmode.services.persistence import PersistenceLayer
from darkmode.services.scheduler import AsyncioScheduler, Scheduler

from .config import EngineConfig
from .heuristic import DarkReason, DARK_REASONS, detect_reason
from .media_scanner import MediaScanner
from .readiness import wait_for_document_ready, wait_for_stable_paint
from .reconciler import ReconciliationLoop
from .renderer import Renderer
from .state import StateController, Transition, VisualState

__all__ = ["ENGINE_SERVICE_KEY", "DarkModeEngine", "attach_engine"]

_logger = logging.getLogger(__name__)

ENGINE_SERVICE_KEY = "darkmode_engine"


class DarkModeEngine:
    def __init__(
        self,
        document: Document,
        store: Optional[KeyValueStore] = None,
        *,
        config: Optional[EngineConfig] = None,
        scheduler: Optional[Scheduler] = None,
        bus: Optional[EventBus] = None,
    ) -> None:
        self.document = document
        self.config = config or EngineConfig()
        self.scheduler = scheduler or document.scheduler or AsyncioScheduler()
        if document.scheduler is None:
            document.scheduler = self.scheduler
        self.bus = bus or EventBus()
        self.persistence = PersistenceLayer(
            store if store is not None else MemoryKeyValueStore(), document.hostname, self.config.id
        )
        self._state = StateController(listener=self._on_transition)
        self.site_state: SiteVisualState = self.persistence.load()
        self.scanner = MediaScanner(document, self.config)
        self.renderer = Renderer(document, self.config, self.scanner)
        self.reconciler = ReconciliationLoop(
            document,
            self.scheduler,
            self.scanner,
            self._rerender,
            timing=self.config.timing,
            is_artifact=self.renderer.is_artifact,
        )
        self._resolving: Optional[asyncio.Future] = None
        self.heuristic_runs = 0
        self.last_reason: Optional[DarkReason] = None

    def __repr__(self) -> str:  # pragma: no cover - debug aid
        return f"<DarkModeEngine {self.document.hostname or self.document.url} {self.get_state().value}>"

    # Lifecycle ----------------------------------------------------------------
    def bootstrap(self) -> "DarkModeEngine":
        self.site_state = self.persistence.load()
        if self.site_state.enabled:
            # refused once resolved; a settled page keeps its render without the guard
            self._state.transition(VisualState.PENDING)
            if self.get_state() is VisualState.PENDING:
                self.renderer.mount_pending()
        else:
            self._state.transition(VisualState.DISABLED)
            self.renderer.strip()
        return self

    async def resolve(self) -> VisualState:
        """Settle the page; concurrent callers share one in-flight resolution.

        When ``destroy`` cancels the shared resolution, waiting callers get the
        state the engine was left in instead of ``CancelledError``.
        """
        task = self._resolving
        if task is None:
            task = asyncio.ensure_future(self._resolve_internal())
            self._resolving = task
            task.add_done_callback(self._resolution_done)
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            if not task.cancelled():
                raise
            return self.get_state()

    def _resolution_done(self, task: asyncio.Future) -> None:
        if self._resolving is task:
            self._resolving = None

    async def _resolve_internal(self) -> VisualState:
        if not self.site_state.enabled:
            self._apply_disabled()
            return self.get_state()
        if self._state.is_resolved():
            self._render(self.get_state())
            return self.get_state()
        if self.get_state() is not VisualState.PENDING:
            self._state.transition(VisualState.PENDING)
        if not self.renderer.guard_mounted:
            self.renderer.mount_pending()

        await wait_for_document_ready(self.document)
        await wait_for_stable_paint(self.document, self.scheduler, self.config.timing, self.config.limits)

        if not self.site_state.enabled or self.get_state() is not VisualState.PENDING:
            _logger.debug("resolution abandoned in state %s", self.get_state().value)
            return self.get_state()

        reason = detect_reason(
            self.document, self.config.thresholds, pending_style_id=self.config.pending_style_id
        )
        self.heuristic_runs += 1
        self.last_reason = reason
        target = VisualState.RESOLVED_ALREADY_DARK if reason in DARK_REASONS else VisualState.RESOLVED_ON
        self._state.transition(target)
        self._render(self.get_state())
        return self.get_state()

    def destroy(self) -> None:
        if self._resolving is not None:
            self._resolving.cancel()
            self._resolving = None
        self.reconciler.stop()
        self.scanner.clear_marks()
        self.renderer.strip()
        self._state.transition(VisualState.DISABLED)
        if self.document.services.try_get(ENGINE_SERVICE_KEY) is self:
            self.document.services.unregister(ENGINE_SERVICE_KEY)

    # Public mutators --------------------------------------------------------------
    async def enable(self) -> "DarkModeEngine":
        self.site_state = self.site_state.with_enabled(True)
        self._persist()
        if not self._state.is_resolved():
            self._state.transition(VisualState.PENDING)
            self.renderer.mount_pending()
            await self.resolve()
            return self
        self._render(self.get_state())
        return self

    def disable(self) -> "DarkModeEngine":
        self.site_state = self.site_state.with_enabled(False)
        self._persist()
        self._apply_disabled()
        return self

    async def toggle(self) -> "DarkModeEngine":
        if self.site_state.enabled:
            return self.disable()
        return await self.enable()

    async def set_enabled(self, enabled: bool) -> "DarkModeEngine":
        if enabled:
            return await self.enable()
        return self.disable()

    def update(self, partial: Optional[Mapping[str, Any]] = None) -> Snapshot:
        """Merge filter values (``enabled`` is preserved), persist and re-render."""
        self.site_state = self.site_state.merged(partial)
        self._persist()
        if self.site_state.enabled and self._state.is_resolved():
            self.renderer.render(self.get_state(), self.site_state)
            self._publish_rendered()
        elif not self.site_state.enabled:
            self.renderer.strip()
        snapshot = self.get_snapshot()
        self.bus.publish(EngineEvent.SETTINGS_CHANGED, {"snapshot": snapshot.to_dict()})
        return snapshot

    def reset(self) -> Snapshot:
        self.site_state = SiteVisualState.defaults()
        self._persist()
        self._apply_disabled()
        snapshot = self.get_snapshot()
        self.bus.publish(EngineEvent.SETTINGS_CHANGED, {"snapshot": snapshot.to_dict()})
        return snapshot

    # Queries ------------------------------------------------------------------------
    def get_state(self) -> VisualState:
        return self._state.get_state()

    def is_resolved(self) -> bool:
        return self._state.is_resolved()

    def is_enabled(self) -> bool:
        return self.site_state.enabled

    def get_snapshot(self) -> Snapshot:
        return Snapshot.of(self.site_state, self.get_state().value)

    @property
    def state_controller(self) -> StateController:
        return self._state

    @property
    def resolving(self) -> bool:
        return self._resolving is not None

    # Internals ------------------------------------------------------------------------
    def _persist(self) -> None:
        self.persistence.save(self.site_state)

    def _render(self, state: VisualState) -> None:
        self.renderer.render(state, self.site_state)
        if state is VisualState.RESOLVED_ON:
            self.reconciler.start()
        else:
            self.reconciler.stop()
        self._publish_rendered()

    def _rerender(self) -> None:
        state = self.get_state()
        if state in (VisualState.RESOLVED_ON, VisualState.RESOLVED_ALREADY_DARK):
            self.renderer.refresh(state, self.site_state)
            self._publish_rendered()

    def _apply_disabled(self) -> None:
        self._state.transition(VisualState.DISABLED)
        self.reconciler.stop()
        self.scanner.clear_marks()
        self.renderer.strip()

    def _publish_rendered(self) -> None:
        self.bus.publish(EngineEvent.RENDERED, {"state": self.get_state().value})

    def _on_transition(self, change: Transition) -> None:
        self.bus.publish(
            EngineEvent.STATE_CHANGED, {"from": change.previous.value, "to": change.current.value}
        )


def attach_engine(
    document: Document,
    store: Optional[KeyValueStore] = None,
    *,
    config: Optional[EngineConfig] = None,
    scheduler: Optional[Scheduler] = None,
    bus: Optional[EventBus] = None,
    bootstrap: bool = True,
) -> DarkModeEngine:
    """Return the document's engine, creating (and bootstrapping) it on first use."""
    existing = document.services.try_get(ENGINE_SERVICE_KEY)
    if isinstance(existing, DarkModeEngine):
        return existing
    engine = DarkModeEngine(document, store, config=config, scheduler=scheduler, bus=bus)
    document.services.register(ENGINE_SERVICE_KEY, engine, origin="attach_engine")
    if bootstrap:
        engine.bootstrap()
    return engine
