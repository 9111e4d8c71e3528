"""Monitoring helpers and metric registry for the seat coordination service."""

from . import metrics, registry

__all__ = ["metrics", "registry"]
