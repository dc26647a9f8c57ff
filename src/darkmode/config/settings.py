"""Global configuration and constants for the dark-mode engine."""

from __future__ import annotations

import os
from typing import Final

ENGINE_ID: Final = "darkmode-pro"
MASK_ID: Final = "darkmode-pro-mask"
TONE_ID: Final = "darkmode-pro-tone-mask"
PENDING_CLASS: Final = "darkmode-pro-pending"
ROOT_MARKER_ATTR: Final = "data-darkmode-pro"
BG_FIXED_ATTR: Final = "data-dm-bg-fixed"
LEGACY_CACHE_PREFIX: Final = "darkmode_pro_cache_"

BASE_FILTER: Final = "invert(1) hue-rotate(180deg)"

# Live-stream and game sites paint video frames into canvas elements
DEFAULT_CANVAS_WHITELIST: Final = (
    "bilibili.com",
    "live.bilibili.com",
    "douyu.com",
    "huya.com",
    "twitch.tv",
)

DATA_DIR: Final = os.environ.get("DARKMODE_DATA_DIR", "data")
STORE_FILENAME: Final = "site_state.sqlite"
