"""
Tests for the CLI interface.
"""
import os

import pytest
import yaml
from typer.testing import CliRunner

from meetingsync_billing.cli.main import EXIT_CODE_FAIL, EXIT_CODE_PASS, _build_schedule, app

runner = CliRunner()


@pytest.fixture
def db_path(tmp_path):
    return os.path.join(str(tmp_path), "billing.db")


class TestCLI:
    """Test CLI commands."""

    def test_tiers_lists_plans(self):
        """Test the tier table and free tier summary."""
        result = runner.invoke(app, ["tiers"])

        assert result.exit_code == EXIT_CODE_PASS
        assert "Pay-As-You-Go Plans" in result.output
        assert "Starter" in result.output
        assert "Daily Free Tier" in result.output

    def test_quote(self):
        """Test quoting a scaled session."""
        result = runner.invoke(app, ["quote", "--tier", "professional", "--hours", "2", "-p", "150"])

        assert result.exit_code == EXIT_CODE_PASS
        assert "$187.50" in result.output

    def test_quote_unknown_tier(self):
        """Test that an unknown tier fails the command."""
        result = runner.invoke(app, ["quote", "--tier", "platinum"])

        assert result.exit_code == EXIT_CODE_FAIL
        assert "Unknown tier" in result.output

    def test_simulate_payg_hour(self):
        """Test a plain hour on Starter."""
        result = runner.invoke(app, ["simulate", "--tier", "starter", "--minutes", "60", "-p", "50"])

        assert result.exit_code == EXIT_CODE_PASS
        assert "Session Simulation Result" in result.output
        assert "Total: $45.00" in result.output
        assert "Ended by: manual" in result.output

    def test_simulate_overage_language(self):
        """Test an overage language added at minute 10 and removed at 40."""
        result = runner.invoke(app, [
            "simulate", "--tier", "professional", "--minutes", "60", "-p", "100",
            "-l", "es", "-l", "fr", "-l", "de", "-l", "it", "-l", "pt",
            "--add", "ja@10", "--remove", "ja@40"
        ])

        assert result.exit_code == EXIT_CODE_PASS
        assert "Overage cost: $4.00" in result.output
        assert "Total: $79.00" in result.output

    def test_simulate_free_tier_stops_at_limit(self):
        """Test that the free tier cap ends the simulation."""
        result = runner.invoke(app, ["simulate", "--free", "--minutes", "30"])

        assert result.exit_code == EXIT_CODE_PASS
        assert "Ended by: free_tier_limit" in result.output
        assert "Minutes Remaining Today: 0 of 15" in result.output

    def test_simulate_bad_schedule(self):
        """Test that malformed --add values fail cleanly."""
        result = runner.invoke(app, ["simulate", "--tier", "starter", "--add", "ja"])

        assert result.exit_code == EXIT_CODE_FAIL
        assert "Expected CODE@MINUTE" in result.output

    def test_simulate_billing_error(self):
        """Test that engine errors are reported as billing errors."""
        result = runner.invoke(app, ["simulate", "--tier", "starter", "-l", "es", "-l", "fr"])

        assert result.exit_code == EXIT_CODE_FAIL
        assert "Billing error" in result.output

    def test_simulate_persists_to_db(self, db_path):
        """Test that --db keeps the account and archives the session."""
        result = runner.invoke(app, [
            "simulate", "--tier", "starter", "--minutes", "60", "--user", "alice", "--db", db_path
        ])
        assert result.exit_code == EXIT_CODE_PASS

        result = runner.invoke(app, ["usage", "--user", "alice", "--db", db_path])

        assert result.exit_code == EXIT_CODE_PASS
        assert "Unpaid usage: $45.00" in result.output
        assert "Recent Sessions" in result.output

    def test_usage_uses_configured_free_minutes(self, db_path, tmp_path):
        """Test that usage resets a new account to the catalog's daily allowance."""
        config_path = tmp_path / "pricing.yaml"
        config_path.write_text(yaml.dump({
            "free_tier": {"daily_minutes": 20},
            "participant_scaling": {
                "base_threshold": 100,
                "increment_size": 100,
                "multiplier_rate": 0.25
            },
            "tiers": {
                "starter": {
                    "name": "Starter",
                    "base_rate_per_hour": 45,
                    "translation_limit": 1,
                    "total_language_limit": 2,
                    "overage_rate_per_hour": 10
                }
            }
        }), encoding="utf-8")

        result = runner.invoke(app, [
            "usage", "--user", "bob", "--db", db_path, "--config", str(config_path)
        ])

        assert result.exit_code == EXIT_CODE_PASS
        assert "Minutes Remaining Today: 20 of 20" in result.output

    def test_init_creates_database(self, db_path):
        result = runner.invoke(app, ["init", "--db", db_path])

        assert result.exit_code == EXIT_CODE_PASS
        assert os.path.exists(db_path)


class TestBuildSchedule:
    """Test CODE@MINUTE parsing."""

    def test_groups_actions_by_minute(self):
        schedule = _build_schedule(["ja@10", "ko@10"], ["ja@40"], 60)
        assert schedule[10] == [("add", "ja"), ("add", "ko")]
        assert schedule[40] == [("remove", "ja")]

    def test_minute_outside_session_rejected(self):
        with pytest.raises(ValueError):
            _build_schedule(["ja@60"], [], 60)
