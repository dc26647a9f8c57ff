"""Filter compositor.

Pure functions turning (render state, site settings, media selector, dominant
media flag) into the CSS text and overlay specs the renderer writes into the
document. No document access happens here, so every output is easy to assert
on in tests.

Composition rules:
 - Base transform ``invert(1) hue-rotate(180deg)`` on the root element.
 - User chain appended after the base: ``contrast(N%)`` when contrast != 100,
   ``grayscale(N%)`` when grayscale != 0.
 - Brightness is never a CSS filter; it is a black overlay with opacity
   ``(100 - brightness) / 100``.
 - Sepia is a warm multiply overlay capped at 0.24 opacity.
 - While a dominant video/canvas surface is visible, contrast, sepia and
   grayscale are neutralised for rendering only (stored values untouched).

Public API:
- effective_filters(site, has_dominant_media) -> EffectiveFilters
- user_filter_chain(filters) -> str
- compose(state, site, media_selector, has_dominant_media, ...) -> FilterProgram
- pending_guard_css(media_selector, pending_class) -> str
- shadow_scope_css() -> str
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from darkmode.config.settings import (
    BASE_FILTER,
    BG_FIXED_ATTR,
    MASK_ID,
    PENDING_CLASS,
    ROOT_MARKER_ATTR,
    TONE_ID,
)

from .color import clamp_int, format_number

if TYPE_CHECKING:  # pragma: no cover
    from darkmode.domain.models import SiteVisualState

__all__ = [
    "EffectiveFilters",
    "OverlaySpec",
    "FilterProgram",
    "effective_filters",
    "user_filter_chain",
    "mask_opacity",
    "tone_opacity",
    "compose",
    "pending_guard_css",
    "shadow_scope_css",
]

TONE_RGB = "255,214,170"
TONE_MAX_OPACITY = 0.24
MASK_Z_INDEX = 2147483647
TONE_Z_INDEX = 2147483646

_RESOLVED_ON = "on"
_RESOLVED_ALREADY_DARK = "already-dark"


@dataclass(frozen=True)
class EffectiveFilters:
    brightness: int
    contrast: int
    sepia: int
    grayscale: int


@dataclass(frozen=True)
class OverlaySpec:
    element_id: str
    css_text: str
    opacity: float


@dataclass(frozen=True)
class FilterProgram:
    """Everything a render writes: page style text plus the two optional overlays."""

    state: str
    page_css: str
    effective: EffectiveFilters
    mask: Optional[OverlaySpec] = None
    tone: Optional[OverlaySpec] = None

    @property
    def root_filter(self) -> Optional[str]:
        if self.state != _RESOLVED_ON:
            return None
        chain = user_filter_chain(self.effective)
        return f"{BASE_FILTER} {chain}" if chain else BASE_FILTER


def effective_filters(site: SiteVisualState, has_dominant_media: bool) -> EffectiveFilters:
    if has_dominant_media:
        return EffectiveFilters(brightness=site.brightness, contrast=100, sepia=0, grayscale=0)
    return EffectiveFilters(
        brightness=site.brightness,
        contrast=site.contrast,
        sepia=site.sepia,
        grayscale=site.grayscale,
    )


def user_filter_chain(filters: EffectiveFilters) -> str:
    parts = []
    if filters.contrast != 100:
        parts.append(f"contrast({filters.contrast}%)")
    if filters.grayscale != 0:
        parts.append(f"grayscale({filters.grayscale}%)")
    return " ".join(parts)


def mask_opacity(brightness: int) -> float:
    return max(0.0, (100 - brightness) / 100)


def tone_opacity(sepia: int) -> float:
    clamped = clamp_int(sepia, 0, 100, 0)
    return min(TONE_MAX_OPACITY, (clamped / 100) * TONE_MAX_OPACITY)


def _mask_rule(mask_id: str, opacity: float) -> str:
    return (
        f"#{mask_id} {{\n"
        "  position: fixed;\n"
        "  inset: 0;\n"
        f"  background: rgba(0, 0, 0, {format_number(opacity)});\n"
        "  pointer-events: none;\n"
        f"  z-index: {MASK_Z_INDEX};\n"
        "}\n"
    )


def _page_css(state: str, effective: EffectiveFilters, media_selector: str, mask_id: str) -> str:
    opacity = mask_opacity(effective.brightness)
    if state == _RESOLVED_ALREADY_DARK:
        marker = f'html[{ROOT_MARKER_ATTR}="{_RESOLVED_ALREADY_DARK}"]'
        return (
            f"{marker} body :is({media_selector}) {{\n"
            "  filter: none !important;\n"
            "}\n" + _mask_rule(mask_id, opacity)
        )
    if state == _RESOLVED_ON:
        marker = f'html[{ROOT_MARKER_ATTR}="{_RESOLVED_ON}"]'
        chain = user_filter_chain(effective)
        root_filter = f"{BASE_FILTER} {chain}" if chain else BASE_FILTER
        return (
            f"{marker} {{\n"
            "  background-color: #fff !important;\n"
            f"  filter: {root_filter} !important;\n"
            "}\n"
            f"{marker} :is({media_selector}),\n"
            f'{marker} [{BG_FIXED_ATTR}="true"],\n'
            f'{marker} [style*="background-image"] {{\n'
            f"  filter: {BASE_FILTER} !important;\n"
            "  mix-blend-mode: normal !important;\n"
            "}\n"
            f'{marker} [{BG_FIXED_ATTR}="true"] :is(img, video, svg, canvas) {{\n'
            "  filter: none !important;\n"
            "}\n" + _mask_rule(mask_id, opacity)
        )
    return ""


def compose(
    state: str,
    site: SiteVisualState,
    media_selector: str,
    has_dominant_media: bool,
    *,
    mask_id: str = MASK_ID,
    tone_id: str = TONE_ID,
) -> FilterProgram:
    """Build the render program for ``state`` (a render-state value such as ``"on"``)."""
    state = str(getattr(state, "value", state))
    effective = effective_filters(site, has_dominant_media)
    page_css = _page_css(state, effective, media_selector, mask_id)
    resolved = state in (_RESOLVED_ON, _RESOLVED_ALREADY_DARK)

    mask = None
    if resolved and effective.brightness < 100:
        opacity = mask_opacity(effective.brightness)
        mask = OverlaySpec(
            element_id=mask_id,
            css_text=(
                "position:fixed;inset:0;"
                f"background:rgba(0,0,0,{format_number(opacity)});"
                f"pointer-events:none;z-index:{MASK_Z_INDEX}"
            ),
            opacity=opacity,
        )

    tone = None
    if resolved and effective.sepia > 0 and not has_dominant_media:
        opacity = tone_opacity(effective.sepia)
        tone = OverlaySpec(
            element_id=tone_id,
            css_text=(
                "position:fixed;inset:0;"
                f"background:rgba({TONE_RGB},{format_number(opacity)});"
                "mix-blend-mode:multiply;"
                f"pointer-events:none;z-index:{TONE_Z_INDEX}"
            ),
            opacity=opacity,
        )

    return FilterProgram(state=state, page_css=page_css, effective=effective, mask=mask, tone=tone)


def pending_guard_css(media_selector: str, pending_class: str = PENDING_CLASS) -> str:
    return (
        f"html.{pending_class} {{\n"
        "  background-color: #fff !important;\n"
        f"  filter: {BASE_FILTER} !important;\n"
        "}\n"
        f"html.{pending_class} :is({media_selector}) {{\n"
        f"  filter: {BASE_FILTER} !important;\n"
        "}\n"
    )


def shadow_scope_css() -> str:
    return (
        ":is(img, video, svg, canvas) {\n"
        f"  filter: {BASE_FILTER} !important;\n"
        "}\n"
        f':is([style*="background-image"], [{BG_FIXED_ATTR}="true"]) {{\n'
        f"  filter: {BASE_FILTER} !important;\n"
        "}\n"
    )
