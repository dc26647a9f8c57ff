"""Engine package: state machine, heuristic, media protection, rendering and the
reconciliation loop, wired together by ``DarkModeEngine``."""

from .state import VisualState, StateController  # noqa: F401
from .config import EngineConfig  # noqa: F401
from .engine import DarkModeEngine, attach_engine  # noqa: F401
