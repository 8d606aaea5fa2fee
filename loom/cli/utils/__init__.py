"""Output utilities for the loom CLI."""
