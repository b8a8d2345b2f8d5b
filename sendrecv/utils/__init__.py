"""Utility helpers for the client."""

from .dispatch import SerialDispatcher
from .logging import configure_logging

__all__ = ["SerialDispatcher", "configure_logging"]
