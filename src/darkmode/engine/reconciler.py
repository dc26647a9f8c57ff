"""Reconciliation loop.

Keeps media protection and the rendered filter in step with a mutating
document while the page is inverted (``RESOLVED_ON`` only).

Flow
----
* A ``MutationObserver`` on the root watches child-list changes and
  ``style``/``class`` attribute changes in the whole subtree.
* Records are appended to a queue; one ``drain`` tick is scheduled per burst.
* Draining classifies records:
    - added element subtrees: local background scan right away, shadow rescan
      scheduled (idle callback)
    - added/removed nodes that are or contain ``video``/``canvas``, and
      attribute changes on such nodes: re-render after
      ``rerender_debounce_ms``
    - attribute change on any other node: re-check that node's background
    - engine artifacts (style element, overlays): ignored
* ``Coalescer`` keeps at most one outstanding callback per kind of work, so a
  burst of N mutations costs one drain, one shadow scan and one re-render.

Tests drive the loop with ``ManualScheduler`` and ``Document.flush_mutations``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from darkmode.dom.document import Document
from darkmode.dom.nodes import Element
from darkmode.dom.observer import MutationObserver, MutationRecord
from darkmode.services.scheduler import Scheduler

from .config import TimingPolicy
from .media_scanner import SURFACE_SELECTOR, MediaScanner

__all__ = ["Coalescer", "ReconcilerStats", "ReconciliationLoop"]

_logger = logging.getLogger(__name__)

DRAIN = "drain"
SHADOW_SCAN = "shadow-scan"
RERENDER = "rerender"


class Coalescer:
    """At most one outstanding scheduled callback per key."""

    def __init__(self, scheduler: Scheduler) -> None:
        self._scheduler = scheduler
        self._handles: Dict[str, Any] = {}

    def schedule(self, key: str, delay_ms: float, callback: Callable[[], None], *, idle: bool = False) -> bool:
        """Schedule ``callback`` unless ``key`` is already pending. Returns True when scheduled."""
        current = self._handles.get(key)
        if current is not None:
            if self._scheduler.is_alive(current):
                return False
            # its loop went away before it fired
            del self._handles[key]

        def _run() -> None:
            self._handles.pop(key, None)
            callback()

        if idle:
            handle = self._scheduler.request_idle(_run, delay_ms)
        else:
            handle = self._scheduler.call_later(delay_ms, _run)
        self._handles[key] = handle
        return True

    def is_pending(self, key: str) -> bool:
        return key in self._handles

    def pending_count(self) -> int:
        return len(self._handles)

    def cancel_all(self) -> None:
        for handle in self._handles.values():
            self._scheduler.cancel(handle)
        self._handles.clear()


@dataclass
class ReconcilerStats:
    ticks: int = 0
    records: int = 0
    local_scans: int = 0
    shadow_scans: int = 0
    rerenders: int = 0


class ReconciliationLoop:
    def __init__(
        self,
        document: Document,
        scheduler: Scheduler,
        scanner: MediaScanner,
        rerender: Callable[[], None],
        *,
        timing: Optional[TimingPolicy] = None,
        is_artifact: Optional[Callable[[Element], bool]] = None,
    ) -> None:
        self.document = document
        self.scheduler = scheduler
        self.scanner = scanner
        self._rerender = rerender
        self.timing = timing or TimingPolicy()
        self._is_artifact = is_artifact or (lambda _el: False)
        self._coalescer = Coalescer(scheduler)
        self._observer: Optional[MutationObserver] = None
        self._queue: List[MutationRecord] = []
        self.stats = ReconcilerStats()

    # Lifecycle ------------------------------------------------------------
    @property
    def active(self) -> bool:
        return self._observer is not None

    def start(self) -> bool:
        if self._observer is not None:
            return False
        self.scanner.mark_eager()
        observer = self.document.create_mutation_observer(self._on_mutations)
        observer.observe(
            self.document.document_element,
            child_list=True,
            attributes=True,
            subtree=True,
            attribute_filter=("style", "class"),
        )
        self._observer = observer
        self._schedule_shadow_scan()
        self._schedule_rerender()
        _logger.debug("reconciliation loop started")
        return True

    def stop(self) -> bool:
        if self._observer is None:
            return False
        self._observer.disconnect()
        self._observer = None
        self._coalescer.cancel_all()
        self._queue.clear()
        _logger.debug("reconciliation loop stopped")
        return True

    def pending_work(self) -> int:
        return self._coalescer.pending_count()

    # Scheduling -------------------------------------------------------------
    def _schedule_shadow_scan(self) -> None:
        self._coalescer.schedule(SHADOW_SCAN, self.timing.idle_timeout_ms, self._run_shadow_scan, idle=True)

    def _schedule_rerender(self) -> None:
        self._coalescer.schedule(RERENDER, self.timing.rerender_debounce_ms, self._run_rerender)

    def _run_shadow_scan(self) -> None:
        if self._observer is None:
            return
        self.stats.shadow_scans += 1
        self.scanner.scan_shadow()

    def _run_rerender(self) -> None:
        if self._observer is None:
            return
        self.stats.rerenders += 1
        self._rerender()

    # Mutation intake ------------------------------------------------------------
    def _on_mutations(self, records: List[MutationRecord], _observer: MutationObserver) -> None:
        if self._observer is None:
            return
        self._queue.extend(records)
        self._coalescer.schedule(DRAIN, 0, self.drain)

    def _touches_media(self, el: Element) -> bool:
        return el.tag_name in ("video", "canvas") or el.query_selector(SURFACE_SELECTOR) is not None

    def drain(self) -> None:
        """Process every queued record (one tick)."""
        records, self._queue = self._queue, []
        if not records or self._observer is None:
            return
        self.stats.ticks += 1
        self.stats.records += len(records)
        needs_shadow_scan = False
        needs_rerender = False
        for record in records:
            if record.type == "childList":
                for node in record.added_nodes:
                    if self._is_artifact(node) or not node.is_connected:
                        continue
                    self.scanner.scan_local(node)
                    self.stats.local_scans += 1
                    needs_shadow_scan = True
                    if self._touches_media(node):
                        needs_rerender = True
                for node in record.removed_nodes:
                    if not self._is_artifact(node) and self._touches_media(node):
                        needs_rerender = True
            elif record.type == "attributes":
                target = record.target
                if not isinstance(target, Element) or self._is_artifact(target):
                    continue
                self.scanner.mark_background(target)
                if self._touches_media(target):
                    needs_rerender = True
        if needs_shadow_scan:
            self._schedule_shadow_scan()
        if needs_rerender:
            self._schedule_rerender()
