# ==============================================================================
# Tests for CLI Help Commands
# ==============================================================================
"""
Tests that all CLI help commands generate the expected output.

Verifies that every command and subcommand in the webstats CLI:
- Exits with code 0 when invoked with --help
- Contains the expected description text
- Lists the expected subcommands or options

These tests use the real app from webstats.app (not minimal Typer apps)
to ensure the full command tree is wired up correctly and that Typer can
introspect all command function signatures without errors.
"""

import pytest
from typer.testing import CliRunner

from webstats.app import app

runner = CliRunner()


# ==============================================================================
# Root App
# ==============================================================================


class TestRootHelp:
    """Tests for the root `webstats --help` output."""

    def test_exit_code(self):
        """Root --help exits successfully."""
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0

    def test_description(self):
        """Root --help shows the app description."""
        result = runner.invoke(app, ["--help"])
        assert "Privacy-friendly web analytics CLI" in result.output

    def test_lists_all_subcommands(self):
        """Root --help lists every top-level command."""
        result = runner.invoke(app, ["--help"])
        for cmd in ["config", "db", "domains", "events", "stats", "sessions"]:
            assert cmd in result.output, f"Missing command: {cmd}"


# ==============================================================================
# Command Groups
# ==============================================================================


@pytest.mark.parametrize(
    "group, description, subcommands",
    [
        ("config", "Configuration management", ["show", "check"]),
        ("db", "Database schema operations", ["init", "reset"]),
        ("domains", "Tracked domain management", ["add", "list", "remove"]),
        ("events", "Event ingestion", ["ingest"]),
        ("stats", "Traffic reports", ["timeseries", "breakdown", "live", "installed"]),
        ("sessions", "Session maintenance", ["restitch"]),
    ],
)
def test_group_help(group, description, subcommands):
    """Each group's --help shows its description and subcommands."""
    result = runner.invoke(app, [group, "--help"])
    assert result.exit_code == 0
    assert description in result.output
    for cmd in subcommands:
        assert cmd in result.output, f"Missing subcommand: {group} {cmd}"


# ==============================================================================
# Commands
# ==============================================================================


@pytest.mark.parametrize(
    "command, description, options",
    [
        (["config", "show"], "Display current configuration", ["--json"]),
        (["config", "check"], "Check connectivity", []),
        (["db", "init"], "Create the database schema", []),
        (["db", "reset"], "Drop and recreate the database schema", ["--yes"]),
        (["domains", "add"], "Start tracking a domain", []),
        (["domains", "list"], "List tracked domains", ["--json"]),
        (["domains", "remove"], "Stop tracking a domain", ["--yes"]),
        (
            ["events", "ingest"],
            "Record one page view",
            ["--domain", "--href", "--ip", "--user-agent", "--referrer", "--at", "--json"],
        ),
        (
            ["stats", "timeseries"],
            "Show views, visitors, sessions",
            ["--period", "--date", "--referrer", "--page", "--country", "--device", "--json"],
        ),
        (
            ["stats", "breakdown"],
            "Rank referrers",
            ["--period", "--date", "--browser", "--os", "--city", "--limit", "--json"],
        ),
        (["stats", "live"], "visitors are on the site", ["--json"]),
        (["stats", "installed"], "tracking script", ["--json"]),
        (
            ["sessions", "restitch"],
            "Attach stored events",
            ["--domain", "--limit", "--dry-run", "--json"],
        ),
    ],
)
def test_command_help(command, description, options):
    """Each command's --help shows its description and options."""
    result = runner.invoke(app, [*command, "--help"])
    assert result.exit_code == 0
    assert description in result.output
    for opt in options:
        assert opt in result.output, f"Missing option: {opt}"
