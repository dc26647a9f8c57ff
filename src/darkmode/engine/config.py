"""Engine configuration and its JSON persistence.

Per-installation identifiers, the canvas exemption list and every tunable
policy value (heuristic thresholds, readiness timings, scan limits) live in
one serializable dataclass tree so hosts can ship their own tuning without
code changes.

Design principles:
- Explicit schema with a version field to enable future migrations.
- Graceful fallback: corrupt or incompatible files produce defaults instead of raising.
- Small surface: load_engine_config / save_engine_config plus dataclasses.
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Mapping, Tuple

from darkmode.config.settings import DEFAULT_CANVAS_WHITELIST, ENGINE_ID, MASK_ID

__all__ = [
    "CONFIG_VERSION",
    "DEFAULT_FILENAME",
    "HeuristicThresholds",
    "TimingPolicy",
    "ScanLimits",
    "EngineConfig",
    "load_engine_config",
    "save_engine_config",
]

_logger = logging.getLogger(__name__)

CONFIG_VERSION = 1  # Increment when structure changes

DEFAULT_FILENAME = "engine_config.json"


def _coerce(cls, data: Any):
    """Build dataclass ``cls`` from a mapping, keeping defaults for missing or mistyped fields."""
    if not isinstance(data, Mapping):
        return cls()
    defaults = cls()
    values = {}
    for f in fields(cls):
        current = getattr(defaults, f.name)
        raw = data.get(f.name, current)
        try:
            values[f.name] = type(current)(raw)
        except (TypeError, ValueError):
            values[f.name] = current
    return cls(**values)


@dataclass(frozen=True, slots=True)
class HeuristicThresholds:
    """Luminance cutoffs of the dark-page heuristic (empirically tuned)."""

    dark_luminance: float = 0.2
    contrast_background_luminance: float = 0.24
    contrast_text_luminance: float = 0.72


@dataclass(frozen=True, slots=True)
class TimingPolicy:
    """Milliseconds. Policy, not protocol: coalescing matters, exact values do not."""

    settle_ms: float = 24.0
    spa_timeout_ms: float = 1200.0
    spa_poll_ms: float = 80.0
    rerender_debounce_ms: float = 80.0
    idle_timeout_ms: float = 100.0


@dataclass(frozen=True, slots=True)
class ScanLimits:
    max_shadow_nodes: int = 600
    media_min_px: float = 48.0
    spa_text_min_chars: int = 180


@dataclass(slots=True)
class EngineConfig:
    """Serializable engine configuration.

    Attributes
    ----------
    id: Installation id; prefixes persisted keys and names injected style elements.
    mask_id: Element id of the brightness overlay.
    canvas_whitelist: Hosts (and their subdomains) whose canvases stay untouched.
    thresholds / timing / limits: Tunable policy groups.
    """

    version: int = CONFIG_VERSION
    id: str = ENGINE_ID
    mask_id: str = MASK_ID
    canvas_whitelist: Tuple[str, ...] = DEFAULT_CANVAS_WHITELIST
    thresholds: HeuristicThresholds = field(default_factory=HeuristicThresholds)
    timing: TimingPolicy = field(default_factory=TimingPolicy)
    limits: ScanLimits = field(default_factory=ScanLimits)

    @property
    def pending_style_id(self) -> str:
        return f"{self.id}-pending"

    @property
    def preboot_style_id(self) -> str:
        return f"{self.id}-preboot"

    @property
    def shadow_style_id(self) -> str:
        return f"{self.id}-shadow"

    @property
    def tone_mask_id(self) -> str:
        return f"{self.id}-tone-mask"

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["canvas_whitelist"] = list(self.canvas_whitelist)
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "EngineConfig":
        whitelist = data.get("canvas_whitelist", DEFAULT_CANVAS_WHITELIST)
        if not isinstance(whitelist, (list, tuple)):
            whitelist = DEFAULT_CANVAS_WHITELIST
        return cls(
            version=int(data.get("version", CONFIG_VERSION)),
            id=str(data.get("id") or ENGINE_ID),
            mask_id=str(data.get("mask_id") or MASK_ID),
            canvas_whitelist=tuple(str(h).lower() for h in whitelist if h),
            thresholds=_coerce(HeuristicThresholds, data.get("thresholds")),
            timing=_coerce(TimingPolicy, data.get("timing")),
            limits=_coerce(ScanLimits, data.get("limits")),
        )


def _resolve_path(target: str | Path | None) -> Path:
    base = Path(target) if target else Path.cwd()
    if base.suffix == ".json":
        return base
    return base / DEFAULT_FILENAME


def load_engine_config(target: str | Path | None = None) -> EngineConfig:
    """Load engine config from a JSON file or a directory holding ``engine_config.json``."""
    path = _resolve_path(target)
    if not path.exists():
        return EngineConfig()
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        cfg = EngineConfig.from_dict(data)
        if cfg.version != CONFIG_VERSION:
            _logger.debug("config version %s != %s, using defaults", cfg.version, CONFIG_VERSION)
            return EngineConfig()
        return cfg
    except Exception:  # noqa: BLE001
        _logger.debug("config at %s unreadable, using defaults", path, exc_info=True)
        return EngineConfig()


def save_engine_config(cfg: EngineConfig, target: str | Path | None = None) -> Path:
    """Persist engine config. Returns the path written for convenience."""
    path = _resolve_path(target)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(json.dumps(cfg.to_dict(), indent=2, ensure_ascii=False), encoding="utf-8")
    tmp.replace(path)
    return path
