"""
Tests for the public package surface.
"""
import meetingsync_billing
from meetingsync_billing import (
    DEFAULT_CATALOG,
    EngineSettings,
    SessionAccountingEngine,
    UsageLedger,
)


def test_public_names_are_exported():
    """Verify everything in __all__ is importable from the package root."""
    for name in meetingsync_billing.__all__:
        assert hasattr(meetingsync_billing, name), name


def test_engine_builds_from_defaults():
    """Verify the engine can be constructed from package-level names."""
    engine = SessionAccountingEngine(DEFAULT_CATALOG, UsageLedger.load("user-1"), EngineSettings())
    assert engine.snapshot() is None
