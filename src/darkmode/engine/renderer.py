"""Renderer: the only code that writes engine artifacts into the document.

Artifacts:
 - root marker attribute ``data-darkmode-pro`` (``on`` / ``already-dark``)
 - pending guard: root class, root ``min-height: 100vh`` and the guard style
 - engine style element (``#{id}``), rewritten in place on every render
 - brightness mask and warm tone overlays, mutated in place
 - first-paint preboot style (``#{id}-preboot``), removed with the guard

Writes are idempotent: re-rendering an unchanged program leaves the document
untouched, so the reconciliation loop never observes its own echo.
"""

from __future__ import annotations

import logging
from typing import Optional

from darkmode.config.settings import PENDING_CLASS, ROOT_MARKER_ATTR
from darkmode.design.filters import FilterProgram, OverlaySpec, compose, pending_guard_css
from darkmode.domain.models import SiteVisualState
from darkmode.dom.document import Document
from darkmode.dom.nodes import Element
from darkmode.services.persistence import PersistenceLayer

from .config import EngineConfig
from .media_scanner import MediaScanner, media_selector_for
from .state import VisualState

__all__ = ["Renderer", "mount_preboot_guard"]

_logger = logging.getLogger(__name__)

_MARKER_VALUES = {
    VisualState.RESOLVED_ON: VisualState.RESOLVED_ON.value,
    VisualState.RESOLVED_ALREADY_DARK: VisualState.RESOLVED_ALREADY_DARK.value,
}


def _upsert_style(document: Document, style_id: str, css: str) -> Element:
    style_el = document.get_element_by_id(style_id)
    if style_el is None:
        style_el = document.create_element("style", {"id": style_id})
        style_el.text_content = css
        document.head.append_child(style_el)
    elif style_el.text_content != css:
        style_el.text_content = css
    return style_el


def _remove_by_id(document: Document, element_id: str) -> bool:
    el = document.get_element_by_id(element_id)
    if el is None:
        return False
    el.remove()
    return True


def _enter_guard(document: Document, style_id: str, media_selector: str) -> Optional[str]:
    """Apply class, min-height and guard style. Returns the root's previous min-height."""
    root = document.document_element
    previous = root.style.get_property("min-height")
    root.add_class(PENDING_CLASS)
    if previous != "100vh":
        root.style.set_property("min-height", "100vh")
    _upsert_style(document, style_id, pending_guard_css(media_selector))
    return previous


def mount_preboot_guard(
    document: Document, persistence: PersistenceLayer, config: Optional[EngineConfig] = None
) -> bool:
    """First-paint guard installed before the engine exists, from the cached flag alone."""
    config = config or EngineConfig()
    if not persistence.read_cached_enabled():
        return False
    media = media_selector_for(document.hostname, config.canvas_whitelist)
    _enter_guard(document, config.preboot_style_id, media)
    _logger.debug("preboot guard mounted for %s", document.hostname)
    return True


class Renderer:
    def __init__(self, document: Document, config: EngineConfig, scanner: MediaScanner) -> None:
        self.document = document
        self.config = config
        self.scanner = scanner
        self._prev_min_height: Optional[str] = None
        self.render_count = 0
        self.refresh_count = 0
        self.last_program: Optional[FilterProgram] = None

    # Artifacts ---------------------------------------------------------------
    def artifact_ids(self) -> frozenset[str]:
        cfg = self.config
        return frozenset(
            {
                cfg.id,
                cfg.mask_id,
                cfg.tone_mask_id,
                cfg.pending_style_id,
                cfg.preboot_style_id,
                cfg.shadow_style_id,
            }
        )

    def is_artifact(self, element: Element) -> bool:
        return element.id in self.artifact_ids()

    # Pending guard -------------------------------------------------------------
    def mount_pending(self) -> None:
        previous = _enter_guard(
            self.document, self.config.pending_style_id, self.scanner.media_selector()
        )
        if self._prev_min_height is None:
            # A preboot guard already set 100vh; the author value is unknown then
            self._prev_min_height = "" if previous == "100vh" else previous

    def unmount_pending(self) -> None:
        root = self.document.document_element
        root.remove_class(PENDING_CLASS)
        _remove_by_id(self.document, self.config.pending_style_id)
        if _remove_by_id(self.document, self.config.preboot_style_id) and self._prev_min_height is None:
            self._prev_min_height = ""
        if self._prev_min_height is not None:
            if self._prev_min_height:
                root.style.set_property("min-height", self._prev_min_height)
            else:
                root.style.remove_property("min-height")
            self._prev_min_height = None

    @property
    def guard_mounted(self) -> bool:
        return self.document.document_element.has_class(PENDING_CLASS)

    # Rendering -------------------------------------------------------------------
    def program_for(self, state: VisualState, site: SiteVisualState) -> FilterProgram:
        return compose(
            state,
            site,
            self.scanner.media_selector(),
            self.scanner.has_dominant_media(),
            mask_id=self.config.mask_id,
            tone_id=self.config.tone_mask_id,
        )

    def render(self, state: VisualState, site: SiteVisualState) -> FilterProgram:
        """Full render of a state: marker, page style, guard removal, overlays."""
        root = self.document.document_element
        marker = _MARKER_VALUES.get(state)
        if marker is None:
            root.remove_attribute(ROOT_MARKER_ATTR)
        elif root.get_attribute(ROOT_MARKER_ATTR) != marker:
            root.set_attribute(ROOT_MARKER_ATTR, marker)
        program = self.program_for(state, site)
        _upsert_style(self.document, self.config.id, program.page_css)
        self.unmount_pending()
        self._apply_overlays(program)
        self.render_count += 1
        self.last_program = program
        _logger.debug("rendered %s (render #%d)", program.state, self.render_count)
        return program

    def refresh(self, state: VisualState, site: SiteVisualState) -> FilterProgram:
        """Page style and overlays only; used by the debounced re-render."""
        program = self.program_for(state, site)
        _upsert_style(self.document, self.config.id, program.page_css)
        self._apply_overlays(program)
        self.refresh_count += 1
        self.last_program = program
        return program

    def _apply_overlays(self, program: FilterProgram) -> None:
        self._apply_overlay(self.config.mask_id, program.mask)
        self._apply_overlay(self.config.tone_mask_id, program.tone)

    def _apply_overlay(self, element_id: str, spec: Optional[OverlaySpec]) -> None:
        existing = self.document.get_element_by_id(element_id)
        if spec is None:
            if existing is not None:
                existing.remove()
            return
        if existing is None:
            existing = self.document.create_element("div", {"id": element_id, "style": spec.css_text})
            self.document.document_element.append_child(existing)
        elif existing.style.css_text != spec.css_text:
            existing.style.css_text = spec.css_text

    def strip(self) -> None:
        """Remove every artifact, shadow-scope styles included."""
        self.document.document_element.remove_attribute(ROOT_MARKER_ATTR)
        self.unmount_pending()
        for element_id in (self.config.id, self.config.mask_id, self.config.tone_mask_id):
            _remove_by_id(self.document, element_id)
        self.scanner.release_shadow_roots()
        self.document.release_caches()
        self.last_program = None
