"""
Tests for logging configuration.
"""
import io

import pytest
from loguru import logger

from meetingsync_billing.core.usage import UsageLedger
from meetingsync_billing.telemetry import configure_logging


@pytest.fixture
def log_stream():
    stream = io.StringIO()
    configure_logging(verbose=True, sink=stream)
    yield stream
    logger.remove()
    logger.disable("meetingsync_billing")


class TestConfigureLogging:
    """Test that package logs are routed once enabled."""

    def test_package_logs_reach_sink(self, log_stream):
        """Verify ledger changes are logged after configure_logging."""
        ledger = UsageLedger.load("user-1")
        ledger.add_payment_method()

        output = log_stream.getvalue()
        assert "Payment method added for user-1" in output
        assert "INFO" in output

    def test_debug_records_when_verbose(self, log_stream):
        """Verify DEBUG records are kept in verbose mode."""
        ledger = UsageLedger.load("user-1")
        ledger.add_payment_method()
        ledger.record_free_minutes(1)

        assert "Ignoring free minutes for PAYG account user-1" in log_stream.getvalue()
