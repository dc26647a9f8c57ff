"""Color parsing and luminance helpers.

Pure functions used by the dark-page heuristic, the computed-style cascade and
the state normalizer. CSS color keywords outside the small built-in table are
resolved through ``QColor`` (SVG keyword names, the same set CSS uses).

Nothing here raises for malformed input: parsing returns ``None`` and clamping
returns the supplied fallback, so callers can degrade to their safe defaults.

Public API:
- parse_rgb(color: str | None) -> RGBA | None
- luminance(rgb: RGBA | None) -> float | None
- is_transparent(rgb: RGBA | None) -> bool
- clamp_int(value, minimum, maximum, fallback) -> int
- normalize_color(value: str) -> str | None
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Optional

__all__ = [
    "RGBA",
    "parse_rgb",
    "luminance",
    "is_transparent",
    "clamp_int",
    "normalize_color",
    "format_number",
]

_RGB_RE = re.compile(
    r"rgba?\(\s*(\d+)\s*,\s*(\d+)\s*,\s*(\d+)(?:\s*,\s*([\d.]+))?\s*\)", re.IGNORECASE
)
_HEX_RE = re.compile(r"^#(?:[0-9a-fA-F]{3,4}|[0-9a-fA-F]{6}|[0-9a-fA-F]{8})$")
_KEYWORD_RE = re.compile(r"^[a-z]+$")

# Common keywords resolved without loading Qt; other names go through QColor.
NAMED_COLORS: dict[str, tuple[int, int, int]] = {
    "black": (0, 0, 0),
    "white": (255, 255, 255),
    "red": (255, 0, 0),
    "green": (0, 128, 0),
    "blue": (0, 0, 255),
    "gray": (128, 128, 128),
    "grey": (128, 128, 128),
    "silver": (192, 192, 192),
    "darkgray": (169, 169, 169),
    "darkgrey": (169, 169, 169),
    "lightgray": (211, 211, 211),
    "lightgrey": (211, 211, 211),
    "dimgray": (105, 105, 105),
    "whitesmoke": (245, 245, 245),
    "gainsboro": (220, 220, 220),
    "navy": (0, 0, 128),
    "yellow": (255, 255, 0),
    "orange": (255, 165, 0),
    "purple": (128, 0, 128),
    "ivory": (255, 255, 240),
    "beige": (245, 245, 220),
}


@dataclass(frozen=True)
class RGBA:
    r: int
    g: int
    b: int
    a: float = 1.0


def clamp_int(value: Any, minimum: int, maximum: int, fallback: int) -> int:
    """Coerce ``value`` to an int within ``[minimum, maximum]``.

    Numbers and numeric strings are rounded half-up; ``None``, booleans, blank
    strings and non-finite values return ``fallback``.
    """
    if value is None or isinstance(value, bool):
        return fallback
    if isinstance(value, (int, float)):
        num = float(value)
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return fallback
        try:
            num = float(text)
        except ValueError:
            return fallback
    else:
        return fallback
    if not math.isfinite(num):
        return fallback
    rounded = math.floor(num + 0.5)
    return int(min(maximum, max(minimum, rounded)))


def parse_rgb(color: Optional[str]) -> Optional[RGBA]:
    """Parse a computed ``rgb()``/``rgba()`` string.

    ``transparent`` and anything unrecognised give ``None``.
    """
    if not color or color == "transparent":
        return None
    match = _RGB_RE.search(color)
    if not match:
        return None
    alpha_raw = match.group(4)
    if alpha_raw is None:
        alpha = 1.0
    else:
        try:
            alpha = max(0.0, min(1.0, float(alpha_raw)))
        except ValueError:
            alpha = 0.0
    return RGBA(
        r=clamp_int(match.group(1), 0, 255, 0),
        g=clamp_int(match.group(2), 0, 255, 0),
        b=clamp_int(match.group(3), 0, 255, 0),
        a=alpha,
    )


def luminance(rgb: Optional[RGBA]) -> Optional[float]:
    """Broadcast-luma luminance in ``[0, 1]`` (0.299 R + 0.587 G + 0.114 B)."""
    if rgb is None:
        return None
    return (0.299 * rgb.r + 0.587 * rgb.g + 0.114 * rgb.b) / 255


def is_transparent(rgb: Optional[RGBA]) -> bool:
    return rgb is None or rgb.a == 0


def format_number(value: float) -> str:
    """Render a float for CSS text: four decimals at most, trailing zeros trimmed."""
    text = f"{value:.4f}".rstrip("0").rstrip(".")
    if text in ("", "-0"):
        return "0"
    return text


def _hex_to_rgba(value: str) -> RGBA:
    digits = value[1:]
    if len(digits) in (3, 4):
        digits = "".join(ch * 2 for ch in digits)
    r = int(digits[0:2], 16)
    g = int(digits[2:4], 16)
    b = int(digits[4:6], 16)
    a = int(digits[6:8], 16) / 255 if len(digits) == 8 else 1.0
    return RGBA(r, g, b, round(a, 3))


def _serialize(rgba: RGBA) -> str:
    if rgba.a >= 1:
        return f"rgb({rgba.r}, {rgba.g}, {rgba.b})"
    return f"rgba({rgba.r}, {rgba.g}, {rgba.b}, {format_number(rgba.a)})"


@lru_cache(maxsize=256)
def _keyword_to_rgba(name: str) -> Optional[RGBA]:
    from PyQt6.QtGui import QColor

    if not QColor.isValidColorName(name):
        return None
    qcolor = QColor.fromString(name)
    return RGBA(qcolor.red(), qcolor.green(), qcolor.blue(), round(qcolor.alphaF(), 3))


def normalize_color(value: str) -> Optional[str]:
    """Convert an authored color value into its computed ``rgb()`` form.

    Returns ``None`` when the value is not a color this module understands.
    """
    token = value.strip().lower()
    if not token:
        return None
    if token == "transparent":
        return "rgba(0, 0, 0, 0)"
    if _HEX_RE.match(token):
        return _serialize(_hex_to_rgba(token))
    if token in NAMED_COLORS:
        r, g, b = NAMED_COLORS[token]
        return _serialize(RGBA(r, g, b))
    if _KEYWORD_RE.match(token):
        named = _keyword_to_rgba(token)
        return _serialize(named) if named is not None else None
    parsed = parse_rgb(token)
    if parsed is not None:
        return _serialize(parsed)
    return None
