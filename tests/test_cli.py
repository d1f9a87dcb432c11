"""
CLI tests, run against the in-memory database.
"""

import pytest
from typer.testing import CliRunner

from guroute import cli
from guroute.auth.tokens import SERVICE_ROLE, principal_from_token

runner = CliRunner()


@pytest.fixture(autouse=True)
def cli_database(database, monkeypatch):
    monkeypatch.setattr(cli, "db", database)
    return database


class TestTokenCommand:
    """Access tokens for local testing."""

    def test_user_token(self):
        result = runner.invoke(cli.app, ["token", "000304.alice"])

        assert result.exit_code == 0
        principal = principal_from_token(result.output.strip())
        assert principal.user_id == "000304.alice"
        assert principal.is_service is False

    def test_service_role_token(self):
        result = runner.invoke(cli.app, ["token", "ops", "--role", SERVICE_ROLE])

        assert result.exit_code == 0
        assert principal_from_token(result.output.strip()).is_service is True

    def test_unknown_role_rejected(self):
        result = runner.invoke(cli.app, ["token", "ops", "--role", "superuser"])

        assert result.exit_code != 0


class TestLedgerCommands:
    """Operator commands on ledgers."""

    def test_balance_without_ledger(self):
        result = runner.invoke(cli.app, ["balance", "nobody"])

        assert result.exit_code == 1

    def test_grant_and_balance(self, ledger):
        ledger.initialize_user_credits("user-1")

        grant = runner.invoke(cli.app, ["grant", "user-1", "3", "--reason", "Beta tester"])
        balance = runner.invoke(cli.app, ["balance", "user-1"])

        assert grant.exit_code == 0
        assert ledger.get_balance("user-1") == 5
        assert "5" in balance.output

    def test_grant_invalid_amount(self, ledger):
        ledger.initialize_user_credits("user-1")

        result = runner.invoke(cli.app, ["grant", "user-1", "0"])

        assert result.exit_code == 1
        assert ledger.get_balance("user-1") == 2

    def test_reconcile_all(self, ledger):
        ledger.initialize_user_credits("user-1")
        ledger.initialize_user_credits("user-2")

        result = runner.invoke(cli.app, ["reconcile"])

        assert result.exit_code == 0
        assert "user-1" in result.output
        assert "user-2" in result.output
