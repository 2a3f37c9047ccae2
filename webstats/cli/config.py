# ==============================================================================
# Config Commands
# ==============================================================================
"""
Configuration commands for the webstats CLI.

Commands for showing the effective configuration and checking that the
configured backing services are reachable.
"""

import json
from typing import Annotated

import typer

from webstats.cli.shared import (
    BOX_WIDTH,
    C,
    _box_bottom,
    _box_header,
    _box_line,
    _empty_line,
    _section_header_plain,
    _status_badge,
)
from webstats.utils.config import get_settings


# ==============================================================================
# Commands
# ==============================================================================


def config_show(
    json_output: Annotated[
        bool, typer.Option("--json", "-j", help="Output configuration as JSON")
    ] = False,
) -> None:
    """Display current configuration (includes secrets in JSON mode)."""
    settings = get_settings()

    if json_output:
        config = {
            "postgresql": {
                "host": settings.postgres.host,
                "port": settings.postgres.port,
                "database": settings.postgres.database,
                "schema": settings.postgres.schema_name,
                "user": settings.postgres.user,
                "password": settings.postgres.password,
                "sslmode": settings.postgres.sslmode,
                "statement_timeout_ms": settings.postgres.statement_timeout_ms,
            },
            "valkey": {
                "enabled": settings.valkey.enabled,
                "host": settings.valkey.host,
                "port": settings.valkey.port,
                "db": settings.valkey.db,
                "ssl_enabled": settings.valkey.ssl,
                "password": settings.valkey.password,
            },
            "geo": {
                "database_path": (
                    str(settings.geo.database_path) if settings.geo.database_path else None
                ),
            },
            "session": {
                "timeout_minutes": settings.session.timeout_minutes,
            },
            "analytics": {
                "launch_date": settings.analytics.launch_date.isoformat(),
                "live_window_seconds": settings.analytics.live_window_seconds,
                "default_period": settings.analytics.default_period,
            },
            "log_level": settings.log_level,
        }
        print(json.dumps(config, indent=2))
        return

    # Human-readable output
    print()
    print(f"{C.BOLD}Configuration{C.RESET}")
    print()

    # PostgreSQL
    print(f"{C.CYAN}PostgreSQL{C.RESET}")
    print(f"  Host:       {C.WHITE}{settings.postgres.host}{C.RESET}")
    print(f"  Port:       {C.WHITE}{settings.postgres.port}{C.RESET}")
    print(f"  Database:   {C.WHITE}{settings.postgres.database}{C.RESET}")
    print(f"  Schema:     {C.WHITE}{settings.postgres.schema_name}{C.RESET}")
    print(f"  User:       {C.WHITE}{settings.postgres.user}{C.RESET}")
    print(f"  SSL:        {C.WHITE}{settings.postgres.sslmode}{C.RESET}")
    print(f"  Timeout:    {C.WHITE}{settings.postgres.statement_timeout_ms} ms{C.RESET}")
    print()

    # Valkey
    print(f"{C.CYAN}Valkey{C.RESET}")
    valkey_status = "enabled" if settings.valkey.enabled else "disabled"
    print(f"  Status:     {C.WHITE}{valkey_status}{C.RESET}")
    print(f"  Host:       {C.WHITE}{settings.valkey.host}{C.RESET}")
    print(f"  Port:       {C.WHITE}{settings.valkey.port}{C.RESET}")
    valkey_ssl = "enabled" if settings.valkey.ssl else "disabled"
    print(f"  SSL:        {C.WHITE}{valkey_ssl}{C.RESET}")
    print()

    # Geo
    print(f"{C.CYAN}Geo-IP{C.RESET}")
    geo_path = settings.geo.database_path or "not configured"
    print(f"  Database:   {C.WHITE}{geo_path}{C.RESET}")
    print()

    # Sessions / queries
    print(f"{C.CYAN}Analytics{C.RESET}")
    print(f"  Session:    {C.WHITE}{settings.session.timeout_minutes} minutes{C.RESET}")
    print(f"  Launch:     {C.WHITE}{settings.analytics.launch_date.date()}{C.RESET}")
    print(f"  Live:       {C.WHITE}{settings.analytics.live_window_seconds} seconds{C.RESET}")
    print(f"  Period:     {C.WHITE}{settings.analytics.default_period}{C.RESET}")
    print()


def config_check() -> None:
    """Check connectivity to the configured services.

    Exits with status 1 if PostgreSQL is unreachable or the schema is
    missing. Valkey and the GeoIP database are optional.

    Examples:
        webstats config check
    """
    from webstats.infrastructure import check_postgresql_connection, check_valkey_connection
    from webstats.utils.db import check_schema_exists

    settings = get_settings()
    W = BOX_WIDTH

    pg_ok = check_postgresql_connection(settings)
    schema_ok = pg_ok and check_schema_exists(settings.postgres)

    rows = [
        ("PostgreSQL", *_status_badge("reachable" if pg_ok else "unreachable", pg_ok)),
        (
            "Schema",
            *_status_badge(
                "initialized" if schema_ok else "missing (run 'webstats db init')", schema_ok
            ),
        ),
    ]

    if settings.valkey.enabled:
        valkey_ok = check_valkey_connection(settings.valkey.url)
        status = "reachable" if valkey_ok else "unreachable"
        rows.append(("Valkey", *_status_badge(status, valkey_ok)))
    else:
        rows.append(("Valkey", *_status_badge("disabled", False, is_stopped=True)))

    if settings.geo.is_configured:
        geo_ok = settings.geo.database_path.exists()
        rows.append(("GeoIP", *_status_badge("found" if geo_ok else "file not found", geo_ok)))
    else:
        rows.append(("GeoIP", *_status_badge("not configured", False, is_stopped=True)))

    print()
    print(_box_header("WEBSTATS STATUS", W))
    print(_empty_line(W))
    print(_section_header_plain("Services", W))
    for label, badge, _ in rows:
        print(_box_line(f"  {label:<14}{badge}", W))
    print(_empty_line(W))
    print(_box_bottom(W))
    print()

    if not schema_ok:
        raise typer.Exit(1)
