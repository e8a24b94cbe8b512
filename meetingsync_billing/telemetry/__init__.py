"""Logging setup for applications embedding the billing engine."""

from .logger import configure_logging

__all__ = ["configure_logging"]
