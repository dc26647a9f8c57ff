"""Color math and filter composition.

Pure functions only; nothing here touches a document.
"""

from .color import RGBA, parse_rgb, luminance, is_transparent, normalize_color  # noqa: F401
from .filters import (  # noqa: F401
    EffectiveFilters,
    FilterProgram,
    OverlaySpec,
    compose,
    effective_filters,
    pending_guard_css,
    shadow_scope_css,
)
