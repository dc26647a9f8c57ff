"""Adaptive dark-mode engine public API.

Curated, small surface for callers (CLI, embedding hosts, tests) that want an
engine for a document without reaching into deep module paths.

Design Principles:
- Keep exports minimal & stable; prefer namespaced access (e.g. `from darkmode import design`).
- Avoid side-effect heavy imports (no Qt import unless `services.qt_scheduler` is requested).
"""

from __future__ import annotations

from .domain.models import SiteVisualState, Snapshot  # noqa: F401
from .dom.loader import parse_html, load_html_file, serialize  # noqa: F401
from .engine.engine import DarkModeEngine, attach_engine  # noqa: F401
from .engine.config import EngineConfig, load_engine_config  # noqa: F401
from .engine.state import VisualState  # noqa: F401
from .services.event_bus import EventBus, EngineEvent  # noqa: F401

from . import design  # noqa: F401

__all__ = [
    "SiteVisualState",
    "Snapshot",
    "parse_html",
    "load_html_file",
    "serialize",
    "DarkModeEngine",
    "attach_engine",
    "EngineConfig",
    "load_engine_config",
    "VisualState",
    "EventBus",
    "EngineEvent",
    "design",
]
