"""Render-time helpers for showing message bodies."""

from .sanitizer import fallback_view, sanitize

__all__ = ["fallback_view", "sanitize"]
