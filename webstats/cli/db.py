# ==============================================================================
# Database Commands
# ==============================================================================
"""
Schema management commands for the webstats CLI.
"""

from typing import Annotated

import typer

from webstats.cli.shared import C, I
from webstats.utils.config import get_settings


def _require_postgres() -> None:
    from webstats.infrastructure import check_postgresql_connection

    if not check_postgresql_connection():
        print(f"{C.BRIGHT_RED}{I.CROSS} Cannot connect to PostgreSQL{C.RESET}")
        raise typer.Exit(1)


# ==============================================================================
# Commands
# ==============================================================================


def db_init() -> None:
    """Create the database schema if it does not exist.

    Safe to run repeatedly; existing tables are left untouched.

    Examples:
        webstats db init
    """
    from webstats.utils.db import ensure_schema

    schema_name = get_settings().postgres.schema_name
    _require_postgres()

    try:
        created = ensure_schema()
    except RuntimeError as e:
        print(f"{C.BRIGHT_RED}{I.CROSS} {e}{C.RESET}")
        raise typer.Exit(1)

    if created:
        print(f"{C.BRIGHT_GREEN}{I.CHECK} Schema '{schema_name}' initialized{C.RESET}")
    else:
        print(f"{C.BRIGHT_GREEN}{I.CHECK} Schema '{schema_name}' already exists{C.RESET}")


def db_reset(
    confirm: Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation prompt")] = False,
) -> None:
    """Drop and recreate the database schema.

    WARNING: deletes every domain, event and session.

    Examples:
        webstats db reset       # With confirmation prompt
        webstats db reset -y    # Skip confirmation
    """
    from webstats.utils.db import reset_schema

    schema_name = get_settings().postgres.schema_name
    _require_postgres()

    if not confirm:
        typer.confirm(
            f"This will DELETE all data in schema '{schema_name}'. Are you sure?",
            abort=True,
        )

    print(f"  Resetting PostgreSQL schema '{C.WHITE}{schema_name}{C.RESET}'...")
    try:
        reset_schema()
    except RuntimeError as e:
        print(f"{C.BRIGHT_RED}{I.CROSS} {e}{C.RESET}")
        raise typer.Exit(1)
    print(f"{C.BRIGHT_GREEN}{I.CHECK} PostgreSQL reset{C.RESET}")
