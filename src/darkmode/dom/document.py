"""Live document model.

``Document`` wraps a BeautifulSoup tree and exposes the surface the engine
needs from a browser page: element lookup and creation, computed styles,
element box sizes, shadow roots, mutation observation, ready state and the
``(prefers-color-scheme: dark)`` media query.

Every document carries its own ``ServiceLocator`` (``document.services``) so
per-document singletons such as the engine are owned by the document rather
than by module globals.
"""

from __future__ import annotations

import logging
import weakref
from typing import Callable, Dict, List, Optional, Set, Tuple
from urllib.parse import urlparse

from bs4 import BeautifulSoup, Doctype, Tag

from darkmode.services.scheduler import Scheduler
from darkmode.services.service_locator import ServiceLocator

from .nodes import Element, ShadowRoot
from .observer import MutationCallback, MutationObserver, MutationRecord
from .styles import ComputedStyle, StyleResolver, parse_px

__all__ = ["Document", "MediaQueryList", "DARK_SCHEME_QUERY"]

_logger = logging.getLogger(__name__)

DARK_SCHEME_QUERY = "(prefers-color-scheme: dark)"

# Intrinsic box of replaced elements without explicit dimensions
_INTRINSIC_SIZES: Dict[str, Tuple[float, float]] = {
    "video": (300.0, 150.0),
    "canvas": (300.0, 150.0),
    "iframe": (300.0, 150.0),
}


class MediaQueryList:
    """Live result of a media query with change listeners."""

    def __init__(self, media: str, matches: bool) -> None:
        self.media = media
        self.matches = matches
        self._listeners: List[Callable[["MediaQueryList"], None]] = []

    def add_listener(self, callback: Callable[["MediaQueryList"], None]) -> None:
        if callback not in self._listeners:
            self._listeners.append(callback)

    def remove_listener(self, callback: Callable[["MediaQueryList"], None]) -> None:
        if callback in self._listeners:
            self._listeners.remove(callback)

    def _set(self, matches: bool) -> None:
        if matches == self.matches:
            return
        self.matches = matches
        for callback in list(self._listeners):
            try:
                callback(self)
            except Exception:  # noqa: BLE001 - one listener must not starve the others
                _logger.debug("media query listener failed", exc_info=True)


class Document:
    def __init__(
        self,
        soup: BeautifulSoup,
        *,
        url: str = "about:blank",
        scheduler: Optional[Scheduler] = None,
        ready_state: str = "complete",
        prefers_dark: bool = False,
        viewport: Tuple[int, int] = (1280, 720),
    ) -> None:
        self._soup = soup
        self.url = url
        self.scheduler = scheduler
        self.viewport = viewport
        self.services = ServiceLocator()
        self._ready_state = ready_state
        self._ready_callbacks: List[Callable[[], None]] = []
        # keyed by id(tag); a wrapper keeps its tag alive, so ids stay unique
        self._wrappers: "weakref.WeakValueDictionary[int, Element]" = weakref.WeakValueDictionary()
        self._pinned: Set[Element] = set()
        self._fragments: Dict[int, ShadowRoot] = {}
        self._shadow_hosts: List[Element] = []
        self._observers: List[MutationObserver] = []
        self._box_sizes: Dict[Element, Tuple[float, float]] = {}
        self._generation = 0
        self._dark_scheme = MediaQueryList(DARK_SCHEME_QUERY, bool(prefers_dark))
        self._ensure_skeleton()
        self.style_resolver = StyleResolver(self)

    def __repr__(self) -> str:  # pragma: no cover - debug aid
        return f"<Document {self.url}>"

    # Structure ---------------------------------------------------------------
    def _ensure_skeleton(self) -> None:
        soup = self._soup
        html = soup.find("html")
        if not isinstance(html, Tag):
            html = soup.new_tag("html")
            for node in list(soup.contents):
                if isinstance(node, Doctype):
                    continue
                html.append(node.extract())
            soup.append(html)
        head = html.find("head", recursive=False)
        if not isinstance(head, Tag):
            head = soup.new_tag("head")
            html.insert(0, head)
        body = html.find("body", recursive=False)
        if not isinstance(body, Tag):
            body = soup.new_tag("body")
            for node in list(html.contents):
                if node is head:
                    continue
                body.append(node.extract())
            html.append(body)

    @property
    def soup(self) -> BeautifulSoup:
        return self._soup

    @property
    def hostname(self) -> str:
        return (urlparse(self.url).hostname or "").lower()

    @property
    def origin(self) -> str:
        parsed = urlparse(self.url)
        if not parsed.scheme or not parsed.netloc:
            return "null"
        return f"{parsed.scheme}://{parsed.netloc.lower()}"

    def wrap(self, tag: Tag) -> Element:
        element = self._wrappers.get(id(tag))
        if element is None:
            element = Element(self, tag)
            self._wrappers[id(tag)] = element
        return element

    def _pin(self, element: Element, pinned: bool) -> None:
        """Keep a wrapper carrying state of its own (a disabled sheet) alive."""
        if pinned:
            self._pinned.add(element)
        else:
            self._pinned.discard(element)

    @property
    def wrapper_count(self) -> int:
        return len(self._wrappers)

    def release_caches(self) -> None:
        """Drop parsed sheets and computed styles; wrappers nobody holds are already gone."""
        self.style_resolver.clear()

    @property
    def document_element(self) -> Element:
        return self.wrap(self._soup.find("html"))

    @property
    def head(self) -> Element:
        return self.wrap(self._soup.find("html").find("head", recursive=False))

    @property
    def body(self) -> Optional[Element]:
        body = self._soup.find("html").find("body", recursive=False)
        return self.wrap(body) if isinstance(body, Tag) else None

    def get_element_by_id(self, element_id: str) -> Optional[Element]:
        found = self._soup.find(attrs={"id": element_id})
        return self.wrap(found) if isinstance(found, Tag) else None

    def query_selector(self, selector: str) -> Optional[Element]:
        found = self._soup.select_one(selector)
        return self.wrap(found) if found is not None else None

    def query_selector_all(self, selector: str) -> List[Element]:
        return [self.wrap(t) for t in self._soup.select(selector)]

    def create_element(self, tag_name: str, attrs: Optional[Dict[str, str]] = None) -> Element:
        tag = self._soup.new_tag(tag_name.lower())
        element = self.wrap(tag)
        for name, value in (attrs or {}).items():
            if name == "class":
                tag[name] = str(value).split()
            else:
                tag[name] = str(value)
        return element

    @property
    def shadow_hosts(self) -> List[Element]:
        return list(self._shadow_hosts)

    # Styles and layout ----------------------------------------------------------
    @property
    def style_generation(self) -> int:
        return self._generation

    def _invalidate_styles(self) -> None:
        self._generation += 1

    def style_sheets_for(self, element: Element) -> List[Element]:
        root = element.root_node()
        if root is self:
            container: Tag = self._soup
        elif isinstance(root, ShadowRoot):
            container = root.fragment
        else:
            return []
        sheets = [self.wrap(t) for t in container.find_all("style")]
        return [s for s in sheets if not s.disabled]

    def computed_style(self, element: Element) -> ComputedStyle:
        return self.style_resolver.compute(element)

    def set_box_size(self, element: Element, width: float, height: float) -> None:
        """Record a measured layout box, taking precedence over style-derived sizes."""
        self._box_sizes[element] = (float(width), float(height))

    def bounding_size(self, element: Element) -> Tuple[float, float]:
        style = self.computed_style(element)
        if style.display == "none" or not element.is_connected:
            return (0.0, 0.0)
        measured = self._box_sizes.get(element)
        if measured is not None:
            return measured
        intrinsic = _INTRINSIC_SIZES.get(element.tag_name, (0.0, 0.0))
        width = parse_px(style.get_property_value("width") or None)
        if width is None:
            width = parse_px(element.get_attribute("width"))
        height = parse_px(style.get_property_value("height") or None)
        if height is None:
            height = parse_px(element.get_attribute("height"))
        return (
            width if width is not None else intrinsic[0],
            height if height is not None else intrinsic[1],
        )

    # Ready state ------------------------------------------------------------------
    @property
    def ready_state(self) -> str:
        return self._ready_state

    def set_ready_state(self, state: str) -> None:
        previous = self._ready_state
        self._ready_state = state
        if previous == "loading" and state != "loading":
            callbacks, self._ready_callbacks = self._ready_callbacks, []
            for callback in callbacks:
                callback()

    def on_ready(self, callback: Callable[[], None]) -> None:
        """Run ``callback`` once the document has left the ``loading`` state."""
        if self._ready_state != "loading":
            if self.scheduler is not None:
                self.scheduler.call_soon(callback)
            else:
                callback()
            return
        self._ready_callbacks.append(callback)

    # Media queries ------------------------------------------------------------------
    def match_media(self, query: str) -> MediaQueryList:
        normalized = " ".join(query.lower().split())
        if normalized == DARK_SCHEME_QUERY:
            return self._dark_scheme
        return MediaQueryList(query, False)

    def set_prefers_dark(self, prefers_dark: bool) -> None:
        self._dark_scheme._set(bool(prefers_dark))

    # Mutation observation -------------------------------------------------------------
    def create_mutation_observer(self, callback: MutationCallback) -> MutationObserver:
        return MutationObserver(self, callback)

    def flush_mutations(self) -> int:
        """Deliver queued records synchronously. Returns the number of observers notified."""
        delivered = 0
        for observer in list(self._observers):
            if observer._queue:
                if observer._delivery_handle is not None and self.scheduler is not None:
                    self.scheduler.cancel(observer._delivery_handle)
                observer._deliver()
                delivered += 1
        return delivered

    def _add_observer(self, observer: MutationObserver) -> None:
        if observer not in self._observers:
            self._observers.append(observer)

    def _remove_observer(self, observer: MutationObserver) -> None:
        if observer in self._observers:
            self._observers.remove(observer)

    def _dispatch(self, record: MutationRecord) -> None:
        for observer in list(self._observers):
            if observer._wants(record):
                observer._enqueue(record)

    def _record_attribute(self, element: Element, name: str, old_value: Optional[str]) -> None:
        self._invalidate_styles()
        self._dispatch(
            MutationRecord(type="attributes", target=element, attribute_name=name, old_value=old_value)
        )

    def _record_child_list(self, target, added: Tuple[Element, ...], removed: Tuple[Element, ...]) -> None:
        self._invalidate_styles()
        if isinstance(target, (Element, ShadowRoot)):
            self._dispatch(
                MutationRecord(type="childList", target=target, added_nodes=added, removed_nodes=removed)
            )

    def _insert(self, parent, child: Element, reference: Optional[Element]) -> None:
        if child.tag.parent is not None:
            self._detach(child)
        container: Tag = parent.fragment if isinstance(parent, ShadowRoot) else parent.tag
        if reference is None or reference.tag.parent is not container:
            container.append(child.tag)
        else:
            reference.tag.insert_before(child.tag)
        self._record_child_list(parent, (child,), ())

    def _detach(self, element: Element) -> None:
        previous_parent = element.parent_node
        if element.tag.parent is None:
            return
        element.tag.extract()
        self._record_child_list(previous_parent, (), (element,))

    def _register_fragment(self, fragment: BeautifulSoup, shadow: ShadowRoot) -> None:
        self._fragments[id(fragment)] = shadow

    def _register_shadow_host(self, host: Element) -> None:
        self._shadow_hosts.append(host)
        self._invalidate_styles()

    def _root_node_of_fragment(self, soup: Tag):
        if soup is self._soup:
            return self
        return self._fragments.get(id(soup))
