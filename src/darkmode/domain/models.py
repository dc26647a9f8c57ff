"""Domain models for per-site visual state."""

from __future__ import annotations

from dataclasses import asdict, dataclass, replace
from typing import Any, Dict, Mapping, Optional

from darkmode.design.color import clamp_int

__all__ = [
    "DEFAULT_FILTERS",
    "FILTER_RANGES",
    "SiteVisualState",
    "Snapshot",
]

DEFAULT_FILTERS: Dict[str, int] = {
    "brightness": 92,
    "contrast": 95,
    "sepia": 12,
    "grayscale": 0,
}

# (minimum, maximum) per adjustable dimension
FILTER_RANGES: Dict[str, tuple[int, int]] = {
    "brightness": (0, 100),
    "contrast": (50, 200),
    "sepia": (0, 100),
    "grayscale": (0, 100),
}


@dataclass(slots=True)
class SiteVisualState:
    enabled: bool = False
    brightness: int = DEFAULT_FILTERS["brightness"]
    contrast: int = DEFAULT_FILTERS["contrast"]
    sepia: int = DEFAULT_FILTERS["sepia"]
    grayscale: int = DEFAULT_FILTERS["grayscale"]

    @classmethod
    def defaults(cls) -> "SiteVisualState":
        return cls()

    @classmethod
    def normalize(cls, raw: Optional[Mapping[str, Any]] = None) -> "SiteVisualState":
        """Build a state from untrusted data, clamping every field.

        Missing or malformed fields fall back to device defaults; never raises.
        """
        data: Mapping[str, Any] = raw if isinstance(raw, Mapping) else {}
        values = {}
        for key, (lo, hi) in FILTER_RANGES.items():
            values[key] = clamp_int(data.get(key), lo, hi, DEFAULT_FILTERS[key])
        return cls(enabled=bool(data.get("enabled", False)), **values)

    def merged(self, partial: Optional[Mapping[str, Any]]) -> "SiteVisualState":
        """Return a normalized copy with ``partial`` applied (``enabled`` kept)."""
        data = self.to_dict()
        if isinstance(partial, Mapping):
            data.update(partial)
        data["enabled"] = self.enabled
        return SiteVisualState.normalize(data)

    def with_enabled(self, enabled: bool) -> "SiteVisualState":
        return replace(self, enabled=bool(enabled))

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True, slots=True)
class Snapshot:
    enabled: bool
    brightness: int
    contrast: int
    sepia: int
    grayscale: int
    state: str

    @classmethod
    def of(cls, site: SiteVisualState, state: str) -> "Snapshot":
        return cls(
            enabled=site.enabled,
            brightness=site.brightness,
            contrast=site.contrast,
            sepia=site.sepia,
            grayscale=site.grayscale,
            state=state,
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
