"""Mutation observation for the document model.

Records are queued per observer and delivered in one batch from a
``call_soon`` callback on the document scheduler, the same microtask-style
batching a browser applies. Documents without a scheduler keep records queued
until ``Document.flush_mutations`` (or ``take_records``) is called.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, FrozenSet, List, Optional, Sequence, Tuple, Union

if TYPE_CHECKING:  # pragma: no cover
    from .document import Document
    from .nodes import Element, ShadowRoot

__all__ = ["MutationRecord", "MutationObserver", "ObserverOptions"]

_logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MutationRecord:
    type: str  # "childList" | "attributes"
    target: Union["Element", "ShadowRoot"]
    added_nodes: Tuple["Element", ...] = ()
    removed_nodes: Tuple["Element", ...] = ()
    attribute_name: Optional[str] = None
    old_value: Optional[str] = None


@dataclass(frozen=True)
class ObserverOptions:
    child_list: bool = False
    attributes: bool = False
    subtree: bool = False
    attribute_filter: Optional[FrozenSet[str]] = None


MutationCallback = Callable[[List[MutationRecord], "MutationObserver"], None]


@dataclass(eq=False)
class _Registration:
    target: Union["Element", "ShadowRoot"]
    options: ObserverOptions


class MutationObserver:
    def __init__(self, document: "Document", callback: MutationCallback) -> None:
        self._document = document
        self._callback = callback
        self._registrations: List[_Registration] = []
        self._queue: List[MutationRecord] = []
        self._delivery_handle = None

    def observe(
        self,
        target: Union["Element", "ShadowRoot"],
        *,
        child_list: bool = False,
        attributes: bool = False,
        subtree: bool = False,
        attribute_filter: Optional[Sequence[str]] = None,
    ) -> None:
        if not (child_list or attributes):
            raise TypeError("observe() needs child_list or attributes")
        options = ObserverOptions(
            child_list=child_list,
            attributes=attributes or attribute_filter is not None,
            subtree=subtree,
            attribute_filter=frozenset(attribute_filter) if attribute_filter is not None else None,
        )
        self._registrations = [r for r in self._registrations if r.target is not target]
        self._registrations.append(_Registration(target=target, options=options))
        self._document._add_observer(self)

    def disconnect(self) -> None:
        self._registrations.clear()
        self._queue.clear()
        if self._delivery_handle is not None and self._document.scheduler is not None:
            self._document.scheduler.cancel(self._delivery_handle)
        self._delivery_handle = None
        self._document._remove_observer(self)

    def take_records(self) -> List[MutationRecord]:
        records, self._queue = self._queue, []
        return records

    @property
    def is_observing(self) -> bool:
        return bool(self._registrations)

    # Document side ------------------------------------------------------------
    def _wants(self, record: MutationRecord) -> bool:
        for reg in self._registrations:
            opts = reg.options
            if record.type == "childList" and not opts.child_list:
                continue
            if record.type == "attributes":
                if not opts.attributes:
                    continue
                if opts.attribute_filter is not None and record.attribute_name not in opts.attribute_filter:
                    continue
            if record.target is reg.target:
                return True
            if opts.subtree and _within(reg.target, record.target):
                return True
        return False

    def _enqueue(self, record: MutationRecord) -> None:
        self._queue.append(record)
        scheduler = self._document.scheduler
        if scheduler is None:
            return
        if self._delivery_handle is None or not scheduler.is_alive(self._delivery_handle):
            self._delivery_handle = scheduler.call_soon(self._deliver)

    def _deliver(self) -> None:
        self._delivery_handle = None
        records = self.take_records()
        if not records:
            return
        try:
            self._callback(records, self)
        except Exception:  # noqa: BLE001 - observer callbacks never break the mutating caller
            _logger.debug("mutation observer callback failed", exc_info=True)


def _within(ancestor, node) -> bool:
    from .nodes import Element, ShadowRoot

    if isinstance(node, ShadowRoot):
        return False
    if isinstance(ancestor, (Element, ShadowRoot)):
        return ancestor.contains(node)
    return False
