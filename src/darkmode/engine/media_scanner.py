"""Media protection scanner.

Finds the surfaces that must keep their natural colors under an inverted
page and flags them so the page style can counter-invert them:

 - media elements (``img, video, canvas, svg``; canvas is left alone on
   exempted live-stream hosts that paint video into canvases)
 - elements painting a raster ``background-image`` (flagged with
   ``data-dm-bg-fixed="true"`` unless they host a video/canvas themselves)
 - shadow roots, which document styles cannot reach and therefore get their
   own scoped style element

It also answers whether a dominant video/canvas is on screen, which
neutralises the colour-altering filters during playback.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from typing import Deque, Iterable, List, Optional, Set

from darkmode.config.settings import BG_FIXED_ATTR
from darkmode.design.filters import shadow_scope_css
from darkmode.dom.document import Document
from darkmode.dom.nodes import Element, ShadowRoot

from .config import EngineConfig

__all__ = [
    "MEDIA_TAGS",
    "EAGER_SELECTOR",
    "ShadowScanResult",
    "MediaScanner",
    "media_selector_for",
]

_logger = logging.getLogger(__name__)

MEDIA_TAGS = ("img", "video", "canvas", "svg")
SURFACE_SELECTOR = "video, canvas"
EAGER_SELECTOR = "[style], div, section, article, a, span"
LOCAL_SELECTOR = "[style], [class]"


def media_selector_for(hostname: str, canvas_whitelist: Iterable[str]) -> str:
    host = (hostname or "").lower()
    skip_canvas = any(host == site or host.endswith(f".{site}") for site in canvas_whitelist if site)
    return "img, video, svg" if skip_canvas else "img, video, canvas, svg"


@dataclass(frozen=True)
class ShadowScanResult:
    scanned: int
    new_roots: int
    truncated: bool


class MediaScanner:
    def __init__(self, document: Document, config: Optional[EngineConfig] = None) -> None:
        self.document = document
        self.config = config or EngineConfig()
        self._marked: List[Element] = []
        self._marked_ids: Set[Element] = set()
        self._visited_shadows: Set[ShadowRoot] = set()

    # Media -------------------------------------------------------------------
    def media_selector(self) -> str:
        return media_selector_for(self.document.hostname, self.config.canvas_whitelist)

    def has_dominant_media(self) -> bool:
        """True when a visible video or canvas is larger than the minimum box in both dimensions."""
        min_px = self.config.limits.media_min_px
        for el in self.document.query_selector_all(SURFACE_SELECTOR):
            try:
                style = self.document.computed_style(el)
                if style.display == "none" or style.visibility == "hidden":
                    continue
                width, height = self.document.bounding_size(el)
                if width > min_px and height > min_px:
                    return True
            except Exception:  # noqa: BLE001 - a failed measurement is "not a surface"
                _logger.debug("media measurement failed for %r", el, exc_info=True)
        return False

    # Background marking --------------------------------------------------------
    @property
    def marked(self) -> List[Element]:
        return list(self._marked)

    def _hosts_surface(self, el: Element) -> bool:
        return el.query_selector(SURFACE_SELECTOR) is not None

    def mark_background(self, el: Optional[Element]) -> bool:
        """Flag ``el`` when it paints a raster background. Returns True when newly flagged."""
        if not isinstance(el, Element) or el.get_attribute(BG_FIXED_ATTR) == "true":
            return False
        try:
            if el.tag_name in ("video", "canvas"):
                return False
            inline = el.get_attribute("style") or ""
            if "background-image" in inline and "url(" in inline:
                return self._flag(el)
            background = self.document.computed_style(el).background_image
            if background and background != "none" and "url(" in background:
                return self._flag(el)
        except Exception:  # noqa: BLE001 - style lookup failures leave the node untouched
            _logger.debug("background check failed for %r", el, exc_info=True)
        return False

    def _flag(self, el: Element) -> bool:
        if self._hosts_surface(el):
            return False
        el.set_attribute(BG_FIXED_ATTR, "true")
        if el not in self._marked_ids:
            self._marked_ids.add(el)
            self._marked.append(el)
        return True

    def mark_eager(self) -> int:
        count = sum(1 for el in self.document.query_selector_all(EAGER_SELECTOR) if self.mark_background(el))
        _logger.debug("eager background pass flagged %d nodes", count)
        return count

    def scan_local(self, node: Element) -> int:
        count = 1 if self.mark_background(node) else 0
        for el in node.query_selector_all(LOCAL_SELECTOR):
            if self.mark_background(el):
                count += 1
        return count

    def clear_marks(self) -> int:
        cleared = 0
        for el in self._marked:
            if el.get_attribute(BG_FIXED_ATTR) == "true":
                el.remove_attribute(BG_FIXED_ATTR)
                cleared += 1
        self._marked.clear()
        self._marked_ids.clear()
        return cleared

    # Shadow roots ------------------------------------------------------------------
    @property
    def visited_shadow_roots(self) -> int:
        return len(self._visited_shadows)

    def scan_shadow(self, start: Optional[Element] = None) -> ShadowScanResult:
        """Breadth-first walk from ``start`` (body by default), entering shadow roots.

        Stops after ``limits.max_shadow_nodes`` nodes; the next pass starts over
        from the top, already handled roots are skipped.
        """
        root = start if start is not None else self.document.body
        if root is None:
            return ShadowScanResult(0, 0, False)
        limit = self.config.limits.max_shadow_nodes
        queue: Deque[Element] = deque([root])
        scanned = 0
        new_roots = 0
        while queue and scanned < limit:
            node = queue.popleft()
            scanned += 1
            shadow = node.shadow_root
            if shadow is not None:
                if shadow not in self._visited_shadows:
                    self._visited_shadows.add(shadow)
                    self.protect_shadow_root(shadow)
                    new_roots += 1
                queue.extend(shadow.children)
            queue.extend(node.children)
        result = ShadowScanResult(scanned=scanned, new_roots=new_roots, truncated=bool(queue))
        _logger.debug("shadow scan: %s", result)
        return result

    def protect_shadow_root(self, shadow: ShadowRoot) -> None:
        style_id = self.config.shadow_style_id
        if shadow.get_element_by_id(style_id) is None:
            style_el = self.document.create_element("style", {"id": style_id})
            style_el.text_content = shadow_scope_css()
            shadow.append_child(style_el)
        for el in shadow.query_selector_all(EAGER_SELECTOR):
            self.mark_background(el)

    def release_shadow_roots(self) -> int:
        """Remove scoped styles from every handled shadow root and forget them."""
        released = 0
        for shadow in self._visited_shadows:
            style_el = shadow.get_element_by_id(self.config.shadow_style_id)
            if style_el is not None:
                style_el.remove()
                released += 1
        self._visited_shadows.clear()
        return released
