"""Per-site visual state persistence.

A site's record is written under every equivalent host key (each parent
domain plus its ``www.`` alias) so a preference set on ``www.example.com`` is
found again on ``example.com`` and on ``news.example.com``.

Key layout per candidate host ``c``:
 - ``"{engine_id}_state_{c}"``: full JSON record (current format)
 - ``"darkmode_pro_cache_{c}"``: ``{"enabled": bool}`` (legacy format, still
   written so older readers and the first-paint guard stay in sync)

Storage failures never escape: reads fall back to defaults and writes are
dropped, both logged at DEBUG.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from typing import Any, Dict, List, Optional

from darkmode.config.settings import ENGINE_ID, LEGACY_CACHE_PREFIX
from darkmode.domain.models import SiteVisualState

from .kv_store import KeyValueStore

__all__ = ["domain_candidates", "PersistenceLayer"]

_logger = logging.getLogger(__name__)

_STORE_ERRORS = (sqlite3.Error, OSError, TypeError, ValueError)


def domain_candidates(hostname: Optional[str]) -> List[str]:
    """Equivalent host keys for ``hostname``, most specific first.

    >>> domain_candidates("a.b.example.com")[:3]
    ['a.b.example.com', 'www.a.b.example.com', 'b.example.com']
    """
    if not hostname:
        return []
    normalized = hostname.lower()
    labels = [label for label in normalized.split(".") if label]
    bases = [normalized]
    for i in range(1, len(labels) - 1):
        bases.append(".".join(labels[i:]))
    out: List[str] = []
    for base in bases:
        alias = base[4:] if base.startswith("www.") else f"www.{base}"
        for candidate in (base, alias):
            if candidate not in out:
                out.append(candidate)
    return out


def _parse_record(raw: Optional[str]) -> Optional[Dict[str, Any]]:
    if not raw:
        return None
    try:
        parsed = json.loads(raw)
    except ValueError:
        return None
    return parsed if isinstance(parsed, dict) else None


class PersistenceLayer:
    def __init__(self, store: KeyValueStore, hostname: str, engine_id: str = ENGINE_ID) -> None:
        self.store = store
        self.hostname = hostname
        self.engine_id = engine_id

    @property
    def state_prefix(self) -> str:
        return f"{self.engine_id}_state_"

    @property
    def legacy_prefix(self) -> str:
        return LEGACY_CACHE_PREFIX

    def candidates(self) -> List[str]:
        return domain_candidates(self.hostname)

    def _find(self, prefix: str) -> Optional[Dict[str, Any]]:
        for candidate in self.candidates():
            found = _parse_record(self.store.get_item(f"{prefix}{candidate}"))
            if found is not None:
                return found
        return None

    # Public ---------------------------------------------------------------
    def load(self) -> SiteVisualState:
        try:
            record = self._find(self.state_prefix)
            if record is not None:
                return SiteVisualState.normalize({**SiteVisualState.defaults().to_dict(), **record})
        except _STORE_ERRORS:
            _logger.debug("state read failed for %s", self.hostname, exc_info=True)
        try:
            legacy = self._find(self.legacy_prefix)
            if legacy is not None and isinstance(legacy.get("enabled"), bool):
                return SiteVisualState.defaults().with_enabled(legacy["enabled"])
        except _STORE_ERRORS:
            _logger.debug("legacy read failed for %s", self.hostname, exc_info=True)
        return SiteVisualState.defaults()

    def save(self, state: SiteVisualState) -> None:
        try:
            payload = json.dumps(state.to_dict())
            legacy_payload = json.dumps({"enabled": bool(state.enabled)})
            for candidate in self.candidates():
                self.store.set_item(f"{self.state_prefix}{candidate}", payload)
                self.store.set_item(f"{self.legacy_prefix}{candidate}", legacy_payload)
        except _STORE_ERRORS:
            _logger.debug("state write dropped for %s", self.hostname, exc_info=True)

    def has_persisted_state(self) -> bool:
        try:
            for candidate in self.candidates():
                for prefix in (self.state_prefix, self.legacy_prefix):
                    if self.store.get_item(f"{prefix}{candidate}") is not None:
                        return True
        except _STORE_ERRORS:
            _logger.debug("state probe failed for %s", self.hostname, exc_info=True)
        return False

    def read_cached_enabled(self) -> bool:
        """The persisted ``enabled`` flag alone; what the first-paint guard reads."""
        try:
            record = self._find(self.state_prefix)
            if record is not None and isinstance(record.get("enabled"), bool):
                return record["enabled"]
        except _STORE_ERRORS:
            _logger.debug("cached flag read failed for %s", self.hostname, exc_info=True)
        try:
            legacy = self._find(self.legacy_prefix)
            if legacy is not None:
                return bool(legacy.get("enabled"))
        except _STORE_ERRORS:
            _logger.debug("legacy flag read failed for %s", self.hostname, exc_info=True)
        return False
