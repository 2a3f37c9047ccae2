# ==============================================================================
# Database Utilities
# ==============================================================================
"""
Schema management for the PostgreSQL store.

schema/init.sql is a Jinja2 template parameterized by schema name. It is
idempotent (CREATE ... IF NOT EXISTS), so ensure_schema() can run on every
deployment. Connection failures are retried with exponential backoff.
"""

import logging
from pathlib import Path

import psycopg2
from jinja2 import Template

from webstats.utils.config import PostgresSettings, get_settings
from webstats.utils.paths import get_init_sql_path
from webstats.utils.retry import POSTGRES_RETRY_EXCEPTIONS, PROBE, retry_on

logger = logging.getLogger(__name__)


def get_schema_file() -> Path | None:
    """Get the schema init.sql path, or None if not found."""
    path = get_init_sql_path()
    if path.exists():
        return path
    return None


def render_schema_sql(schema_name: str) -> str:
    """Render the schema SQL template with the given schema name."""
    schema_file = get_schema_file()
    if not schema_file:
        raise RuntimeError("Schema file (webstats/schema/init.sql) not found.")

    template = Template(schema_file.read_text())
    return template.render(schema_name=schema_name)


@retry_on(POSTGRES_RETRY_EXCEPTIONS, logger, PROBE)
def check_schema_exists(postgres: PostgresSettings | None = None) -> bool:
    """
    Check if the database schema (events table) exists.

    Retries on connection errors (3 attempts, ~7 seconds).
    """
    postgres = postgres or get_settings().postgres
    with psycopg2.connect(postgres.connection_string, connect_timeout=5) as conn:
        with conn.cursor() as cur:
            cur.execute(
                """
                SELECT EXISTS (
                    SELECT FROM information_schema.tables
                    WHERE table_schema = %s
                    AND table_name = 'events'
                )
                """,
                (postgres.schema_name,),
            )
            result = cur.fetchone()
            return result[0] if result else False


@retry_on(POSTGRES_RETRY_EXCEPTIONS, logger)
def ensure_schema(postgres: PostgresSettings | None = None) -> bool:
    """
    Ensure database schema exists, initializing if needed.

    This function is idempotent and safe to call multiple times.

    Retries on connection errors with exponential backoff (10 attempts, ~60 seconds).

    Returns:
        True if the schema was created, False if it already existed

    Raises:
        RuntimeError: If the schema file is missing or initialization fails
    """
    postgres = postgres or get_settings().postgres
    if check_schema_exists(postgres):
        return False

    schema_name = postgres.schema_name
    logger.info("Initializing database schema '%s'...", schema_name)

    schema_sql = render_schema_sql(schema_name)
    try:
        with psycopg2.connect(postgres.connection_string) as conn:
            with conn.cursor() as cur:
                cur.execute(schema_sql)
            conn.commit()
    except POSTGRES_RETRY_EXCEPTIONS:
        raise
    except psycopg2.Error as e:
        raise RuntimeError(f"Failed to initialize schema: {e}") from e

    logger.info("Database schema '%s' initialized.", schema_name)
    return True


def reset_schema(postgres: PostgresSettings | None = None) -> None:
    """
    Drop and recreate the database schema.

    WARNING: This deletes all data in the schema!
    """
    postgres = postgres or get_settings().postgres
    schema_name = postgres.schema_name
    schema_sql = render_schema_sql(schema_name)

    try:
        with psycopg2.connect(postgres.connection_string) as conn:
            with conn.cursor() as cur:
                cur.execute(f"DROP SCHEMA IF EXISTS {schema_name} CASCADE")
                cur.execute(schema_sql)
            conn.commit()
    except psycopg2.Error as e:
        raise RuntimeError(f"Failed to reset schema: {e}") from e

    logger.info("Database schema '%s' reset.", schema_name)
