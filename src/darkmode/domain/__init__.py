"""Domain models: per-site visual state and immutable snapshots."""

from .models import DEFAULT_FILTERS, FILTER_RANGES, SiteVisualState, Snapshot  # noqa: F401
