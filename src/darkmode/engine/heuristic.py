"""Dark-page heuristic.

Decides whether a page is already dark, in which case inverting it would
make it light again. Rules, first match wins:

1. ``color-scheme: dark`` on root or body, or a theme attribute
   (``data-theme``, ``theme``, ``data-mode``, ``data-color-mode``) on either
   containing "dark".
2. Root and body backgrounds both darker than ``dark_luminance``. A
   transparent root counts as white; a transparent body shows the root.
3. Body background darker than ``contrast_background_luminance`` with body
   text brighter than ``contrast_text_luminance``.

Both backgrounds transparent, or any failure while measuring, means "not
dark". Reads happen with the pending guard switched off so the guard's own
white background and inversion never skew the sample.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from enum import Enum
from typing import Iterator, Optional

from darkmode.config.settings import PENDING_CLASS
from darkmode.design.color import is_transparent, luminance, parse_rgb
from darkmode.dom.document import Document

from .config import HeuristicThresholds

__all__ = ["DarkReason", "THEME_ATTRIBUTES", "detect", "detect_reason", "without_pending_guard"]

_logger = logging.getLogger(__name__)

THEME_ATTRIBUTES = ("data-theme", "theme", "data-mode", "data-color-mode")


class DarkReason(str, Enum):
    COLOR_SCHEME = "color-scheme"
    THEME_ATTRIBUTE = "theme-attribute"
    DARK_BACKGROUND = "dark-background"
    LIGHT_TEXT = "light-text-on-dark"
    NOT_DARK = "not-dark"
    TRANSPARENT = "transparent"
    ERROR = "error"


DARK_REASONS = frozenset(
    {DarkReason.COLOR_SCHEME, DarkReason.THEME_ATTRIBUTE, DarkReason.DARK_BACKGROUND, DarkReason.LIGHT_TEXT}
)


@contextmanager
def without_pending_guard(
    document: Document, pending_style_id: str, pending_class: str = PENDING_CLASS
) -> Iterator[None]:
    root = document.document_element
    had_class = root.has_class(pending_class)
    guard_style = document.get_element_by_id(pending_style_id)
    previously_disabled = guard_style.disabled if guard_style is not None else False
    if had_class:
        root.remove_class(pending_class)
    if guard_style is not None:
        guard_style.disabled = True
    try:
        yield
    finally:
        if guard_style is not None:
            guard_style.disabled = previously_disabled
        if had_class:
            root.add_class(pending_class)


def _is_dark_scheme(value: str) -> bool:
    return value.split() in (["dark"], ["only", "dark"])


def _evaluate(document: Document, thresholds: HeuristicThresholds) -> DarkReason:
    root = document.document_element
    body = document.body
    root_style = document.computed_style(root)
    body_style = document.computed_style(body) if body is not None else None

    if _is_dark_scheme(root_style.color_scheme) or (
        body_style is not None and _is_dark_scheme(body_style.color_scheme)
    ):
        return DarkReason.COLOR_SCHEME

    for attr in THEME_ATTRIBUTES:
        root_value = (root.get_attribute(attr) or "").lower()
        body_value = ((body.get_attribute(attr) if body is not None else None) or "").lower()
        if "dark" in root_value or "dark" in body_value:
            return DarkReason.THEME_ATTRIBUTE

    root_bg = parse_rgb(root_style.background_color)
    body_bg = parse_rgb(body_style.background_color if body_style is not None else "")
    if is_transparent(root_bg) and is_transparent(body_bg):
        return DarkReason.TRANSPARENT

    root_lum = luminance(root_bg)
    if root_lum is None:
        root_lum = 1.0
    body_lum = luminance(root_bg if is_transparent(body_bg) else body_bg)
    if body_lum is None:
        body_lum = root_lum
    text_lum: Optional[float] = luminance(parse_rgb(body_style.color if body_style is not None else ""))

    if root_lum < thresholds.dark_luminance and body_lum < thresholds.dark_luminance:
        return DarkReason.DARK_BACKGROUND
    if (
        body_lum < thresholds.contrast_background_luminance
        and text_lum is not None
        and text_lum > thresholds.contrast_text_luminance
    ):
        return DarkReason.LIGHT_TEXT
    return DarkReason.NOT_DARK


def detect_reason(
    document: Document,
    thresholds: Optional[HeuristicThresholds] = None,
    *,
    pending_style_id: str = "darkmode-pro-pending",
) -> DarkReason:
    """Run the heuristic and report which rule decided it."""
    thresholds = thresholds or HeuristicThresholds()
    with without_pending_guard(document, pending_style_id):
        try:
            reason = _evaluate(document, thresholds)
        except Exception:  # noqa: BLE001 - measurement failures mean "not dark"
            _logger.debug("dark-page heuristic failed", exc_info=True)
            reason = DarkReason.ERROR
    _logger.debug("dark-page heuristic: %s", reason.value)
    return reason


def detect(
    document: Document,
    thresholds: Optional[HeuristicThresholds] = None,
    *,
    pending_style_id: str = "darkmode-pro-pending",
) -> bool:
    reason = detect_reason(document, thresholds, pending_style_id=pending_style_id)
    return reason in DARK_REASONS
