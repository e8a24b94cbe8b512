"""Pricing configuration loading."""

from .loader import load_catalog, load_pricing_config

__all__ = ["load_catalog", "load_pricing_config"]
