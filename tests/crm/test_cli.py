# SPDX-License-Identifier: MIT
"""Tests for the command line entry point."""

import pytest
from click.testing import CliRunner

from crm import main as cli_module


@pytest.fixture
def runner(scrubber, monkeypatch):
    monkeypatch.setattr(cli_module, "DuplicateScrubber", lambda: scrubber)
    return CliRunner()


@pytest.fixture
def duplicates(make_contact):
    make_contact(day=1, first_name="Al", phone1="5551234567", city="Austin", state="TX")
    make_contact(day=2, first_name="Bea", phone1="555-123-4567")


class TestDuplicatesCommands:

    def test_preview_prints_groups(self, runner, duplicates):
        result = runner.invoke(cli_module.cli, ["duplicates", "preview", "--limit", "0"])

        assert result.exit_code == 0, result.output
        assert "5551234567" in result.output
        assert "keep" in result.output

    def test_execute_requires_confirmation(self, runner, duplicates, scrubber):
        result = runner.invoke(cli_module.cli, ["duplicates", "execute"], input="n\n")

        assert result.exit_code != 0
        assert scrubber.preview().total_duplicate_groups == 1

    def test_execute_with_yes_merges(self, runner, duplicates, scrubber):
        result = runner.invoke(cli_module.cli, ["duplicates", "execute", "--yes"])

        assert result.exit_code == 0, result.output
        assert "Groups merged" in result.output
        assert scrubber.preview().total_duplicate_groups == 0

    def test_lock_contention_exits_non_zero(self, runner, duplicates, scrubber):
        from crm.deduplication.locks import EngineLock

        with EngineLock(scrubber.settings.lock_name):
            result = runner.invoke(cli_module.cli, ["duplicates", "execute", "--yes"])

        assert result.exit_code == 1
        assert "already running" in result.output


class TestServeCommand:

    def test_serve_uses_api_settings(self, monkeypatch):
        import uvicorn
        calls = []
        monkeypatch.setattr(uvicorn, "run", lambda app, **kwargs: calls.append((app, kwargs)))
        monkeypatch.setattr(cli_module.settings.api, "port", 8123)

        result = CliRunner().invoke(cli_module.cli, ["serve"])

        assert result.exit_code == 0, result.output
        app, kwargs = calls[0]
        assert app == "api.main:app"
        assert kwargs["port"] == 8123
        assert kwargs["host"] == cli_module.settings.api.host
        assert kwargs["log_level"] == "info"
