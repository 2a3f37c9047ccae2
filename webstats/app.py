# ==============================================================================
# Webstats CLI
# ==============================================================================
"""
Command-line interface for the webstats analytics backend.

Usage:
    webstats --help
    webstats config show
    webstats config check
    webstats db init
    webstats db reset -y
    webstats domains add example.com
    webstats domains list
    webstats events ingest -d example.com --href https://example.com/ --ip 203.0.113.7
    webstats stats timeseries example.com -p 7d
    webstats stats breakdown example.com referrers
    webstats stats live example.com
    webstats stats installed example.com
    webstats sessions restitch --dry-run
"""

import logging
import os

import typer

from webstats.utils.config import get_settings

# ==============================================================================
# App Configuration
# ==============================================================================
# Set consistent terminal width for help output formatting
if "COLUMNS" not in os.environ:
    os.environ["COLUMNS"] = "115"

app = typer.Typer(
    name="webstats",
    help="Privacy-friendly web analytics CLI",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


@app.callback()
def configure_logging(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log at DEBUG level"),
) -> None:
    """Privacy-friendly web analytics CLI."""
    settings = get_settings()
    level = logging.DEBUG if verbose or settings.debug else settings.log_level.upper()
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


config_app = typer.Typer(
    help="Configuration management",
    no_args_is_help=True,
)
app.add_typer(config_app, name="config")

# Register config commands from cli.config module
from webstats.cli.config import config_check, config_show

config_app.command("show")(config_show)
config_app.command("check")(config_check)

db_app = typer.Typer(
    help="Database schema operations",
    no_args_is_help=True,
)
app.add_typer(db_app, name="db")

from webstats.cli.db import db_init, db_reset

db_app.command("init")(db_init)
db_app.command("reset")(db_reset)

domains_app = typer.Typer(
    help="Tracked domain management",
    no_args_is_help=True,
)
app.add_typer(domains_app, name="domains")

from webstats.cli.domains import domains_add, domains_list, domains_remove

domains_app.command("add")(domains_add)
domains_app.command("list")(domains_list)
domains_app.command("remove")(domains_remove)

events_app = typer.Typer(
    help="Event ingestion",
    no_args_is_help=True,
)
app.add_typer(events_app, name="events")

from webstats.cli.events import events_ingest

events_app.command("ingest")(events_ingest)

stats_app = typer.Typer(
    help="Traffic reports",
    no_args_is_help=True,
)
app.add_typer(stats_app, name="stats")

from webstats.cli.analytics import stats_breakdown, stats_installed, stats_live, stats_timeseries

stats_app.command("timeseries")(stats_timeseries)
stats_app.command("breakdown")(stats_breakdown)
stats_app.command("live")(stats_live)
stats_app.command("installed")(stats_installed)

sessions_app = typer.Typer(
    help="Session maintenance",
    no_args_is_help=True,
)
app.add_typer(sessions_app, name="sessions")

from webstats.cli.sessions import sessions_restitch

sessions_app.command("restitch")(sessions_restitch)


# ==============================================================================
# Entry Point
# ==============================================================================


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
