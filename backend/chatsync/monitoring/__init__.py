"""Metric registry and metric definitions for the chat core."""

from . import metrics, registry

__all__ = ["metrics", "registry"]
