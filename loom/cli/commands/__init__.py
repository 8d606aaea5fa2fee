"""Command implementations package."""

from . import resolve

__all__ = ["resolve"]
