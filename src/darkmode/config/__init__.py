"""Static identifiers and paths shared across the engine."""
