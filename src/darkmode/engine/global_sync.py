"""Global settings sync.

Applies installation-wide preferences to one document's engine:

1. Excluded site (host equals or is a subdomain of an entry) -> disable.
2. The site already has its own persisted record -> leave it alone.
3. Otherwise seed the site's filters from the global values. Globals still at
   the old all-neutral defaults (100/100/0/0) are upgraded to the eye-care
   defaults (92/95/12/0).
4. Enable when ``default_enabled`` is set, or when ``auto_follow_system`` is
   set and the system prefers a dark color scheme.

``follow_color_scheme`` keeps a followed site in step with later system
color-scheme changes until someone toggles the site by hand.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple

from darkmode.domain.models import DEFAULT_FILTERS
from darkmode.dom.document import DARK_SCHEME_QUERY, MediaQueryList

from .engine import DarkModeEngine

__all__ = [
    "LEGACY_GLOBAL_FILTERS",
    "GlobalSettings",
    "SyncDecision",
    "sync_global_settings",
    "ColorSchemeFollower",
    "follow_color_scheme",
]

_logger = logging.getLogger(__name__)

LEGACY_GLOBAL_FILTERS: Dict[str, int] = {"brightness": 100, "contrast": 100, "sepia": 0, "grayscale": 0}

# snake_case field -> camelCase key used by stored extension settings
_ALIASES = {
    "exclude_sites": "excludeSites",
    "auto_follow_system": "autoFollowSystem",
    "default_enabled": "defaultEnabled",
    "brightness": "globalBrightness",
    "contrast": "globalContrast",
    "sepia": "globalSepia",
    "grayscale": "globalGrayscale",
}


def _number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return float(value)
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


@dataclass(frozen=True)
class GlobalSettings:
    exclude_sites: Tuple[str, ...] = ()
    auto_follow_system: bool = False
    default_enabled: bool = False
    brightness: Any = DEFAULT_FILTERS["brightness"]
    contrast: Any = DEFAULT_FILTERS["contrast"]
    sepia: Any = DEFAULT_FILTERS["sepia"]
    grayscale: Any = DEFAULT_FILTERS["grayscale"]

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "GlobalSettings":
        """Accepts snake_case keys or the stored camelCase ones."""
        if not isinstance(data, Mapping):
            return cls()
        values: Dict[str, Any] = {}
        for name, alias in _ALIASES.items():
            if name in data:
                values[name] = data[name]
            elif alias in data:
                values[name] = data[alias]
        sites = values.get("exclude_sites") or ()
        if isinstance(sites, str):
            sites = (sites,)
        values["exclude_sites"] = tuple(str(s) for s in sites)
        for flag in ("auto_follow_system", "default_enabled"):
            values[flag] = bool(values.get(flag, False))
        return cls(**values)

    def is_excluded(self, hostname: str) -> bool:
        host = (hostname or "").lower()
        for site in self.exclude_sites:
            normalized = str(site or "").strip().lower()
            if normalized and (host == normalized or host.endswith(f".{normalized}")):
                return True
        return False

    def uses_legacy_filters(self) -> bool:
        return all(
            _number(getattr(self, key)) == float(value) for key, value in LEGACY_GLOBAL_FILTERS.items()
        )

    def seed_filters(self) -> Dict[str, Any]:
        """Filter values for a site without its own record (normalized later by the engine)."""
        if self.uses_legacy_filters():
            return dict(DEFAULT_FILTERS)
        return {key: getattr(self, key) for key in DEFAULT_FILTERS}


class SyncDecision(str, Enum):
    NO_SETTINGS = "no-settings"
    EXCLUDED = "excluded"
    SITE_STATE_KEPT = "site-state-kept"
    SEEDED = "seeded"
    ENABLED = "enabled"


async def sync_global_settings(
    engine: DarkModeEngine, settings: Optional[GlobalSettings]
) -> SyncDecision:
    if settings is None:
        return SyncDecision.NO_SETTINGS
    if settings.is_excluded(engine.document.hostname):
        await engine.set_enabled(False)
        decision = SyncDecision.EXCLUDED
    elif engine.persistence.has_persisted_state():
        decision = SyncDecision.SITE_STATE_KEPT
    else:
        engine.update(settings.seed_filters())
        prefers_dark = engine.document.match_media(DARK_SCHEME_QUERY).matches
        if settings.default_enabled or (settings.auto_follow_system and prefers_dark):
            await engine.set_enabled(True)
            decision = SyncDecision.ENABLED
        else:
            decision = SyncDecision.SEEDED
    _logger.debug("global settings sync for %s: %s", engine.document.hostname, decision.value)
    return decision


class ColorSchemeFollower:
    """Mirrors ``(prefers-color-scheme: dark)`` onto the engine's enabled flag."""

    def __init__(self, engine: DarkModeEngine) -> None:
        self.engine = engine
        self._query = engine.document.match_media(DARK_SCHEME_QUERY)
        self._expected: Optional[bool] = None
        self.pending: Optional[asyncio.Future] = None

    @property
    def active(self) -> bool:
        return self._expected is not None

    def start(self) -> None:
        self._expected = self.engine.is_enabled()
        self._query.add_listener(self._on_change)

    def stop(self) -> None:
        self._expected = None
        self._query.remove_listener(self._on_change)

    def _on_change(self, query: MediaQueryList) -> None:
        if self._expected is None:
            return
        if self.engine.is_enabled() != self._expected:
            _logger.debug("site toggled by hand, no longer following the color scheme")
            self.stop()
            return
        self._expected = query.matches
        if query.matches:
            self.pending = asyncio.ensure_future(self.engine.enable())
        else:
            self.engine.disable()


def follow_color_scheme(
    engine: DarkModeEngine, settings: Optional[GlobalSettings], decision: Optional[SyncDecision] = None
) -> Optional[ColorSchemeFollower]:
    """Start following when the site runs on global settings with ``auto_follow_system``."""
    if settings is None or not settings.auto_follow_system or settings.default_enabled:
        return None
    if settings.is_excluded(engine.document.hostname):
        return None
    if decision in (SyncDecision.SITE_STATE_KEPT, SyncDecision.EXCLUDED, SyncDecision.NO_SETTINGS):
        return None
    follower = ColorSchemeFollower(engine)
    follower.start()
    return follower
