# ==============================================================================
# PostgreSQL Repository Implementations
# ==============================================================================
"""
PostgreSQL implementations of the repository interfaces.

Provides:
- PostgreSQLDomainRepository: Tracked domains
- PostgreSQLEventRepository: Event inserts, range scans and grouped counts
- PostgreSQLSessionRepository: Session lookup and race-safe creation
- compile_predicate(): Predicate -> SQL fragment with bound parameters

Every connection carries a server-side statement_timeout so a slow query
aborts instead of hanging the caller. Driver errors are rolled back and
re-raised as StorageError; only connecting is retried.
"""

import logging
from contextlib import contextmanager
from datetime import datetime

import psycopg2
from psycopg2.extras import RealDictCursor

from webstats.base.repositories import DomainRepository, EventRepository, SessionRepository
from webstats.core.errors import StorageError, ValidationError
from webstats.core.filters import (
    FILTERABLE_FIELDS,
    OP_EQ,
    OP_IS_NULL,
    OP_STARTS_WITH,
    Predicate,
)
from webstats.core.models import Domain, Event, GroupCount, Session
from webstats.utils.config import Settings, get_settings
from webstats.utils.retry import POSTGRES_RETRY_EXCEPTIONS, retry_on

logger = logging.getLogger(__name__)

# Connection timeout
CONNECT_TIMEOUT = 10

EVENT_COLUMNS = (
    "id",
    "domain_id",
    "type",
    "href",
    "referrer",
    "created_at",
    "updated_at",
    "unique_visitor_id",
    "session_id",
    "country",
    "country_code",
    "region",
    "city",
    "latitude",
    "longitude",
    "browser",
    "browser_version",
    "os",
    "os_version",
    "device",
    "device_vendor",
    "device_model",
    "engine",
    "engine_version",
    "cpu_architecture",
    "bot",
    "utm_source",
    "utm_medium",
    "utm_campaign",
)

INSERTABLE_EVENT_COLUMNS = tuple(c for c in EVENT_COLUMNS if c != "id")

SESSION_COLUMNS = "id, unique_visitor_id, domain_id, created_at, last_activity_at, updated_at"


def _add_connect_timeout(conn_string: str) -> str:
    """Add connect_timeout to connection string if not present."""
    if "connect_timeout" not in conn_string:
        separator = "&" if "?" in conn_string else "?"
        return f"{conn_string}{separator}connect_timeout={CONNECT_TIMEOUT}"
    return conn_string


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def compile_predicate(predicate: Predicate, prefix: str = "f") -> tuple[str, dict]:
    """
    Translate a Predicate into a SQL fragment.

    Column names come from the fixed FILTERABLE_FIELDS set; values are always
    bound parameters.

    Args:
        predicate: Compiled filter conditions
        prefix: Parameter name prefix

    Returns:
        (sql, params) where sql is "" for the empty predicate, otherwise a
        string of the form "AND col = %(f0)s AND ..."
    """
    clauses = []
    params = {}
    for i, condition in enumerate(predicate.conditions):
        if condition.field not in FILTERABLE_FIELDS:
            raise ValidationError(f"Field '{condition.field}' is not filterable")
        name = f"{prefix}{i}"
        if condition.op == OP_IS_NULL:
            clauses.append(f"AND {condition.field} IS NULL")
        elif condition.op == OP_STARTS_WITH:
            clauses.append(f"AND {condition.field} LIKE %({name})s")
            params[name] = _escape_like(condition.value) + "%"
        elif condition.op == OP_EQ:
            clauses.append(f"AND {condition.field} = %({name})s")
            params[name] = condition.value
        else:
            raise ValidationError(f"Unsupported operator '{condition.op}'")
    return " ".join(clauses), params


class PostgreSQLRepository:
    """
    Connection handling shared by the PostgreSQL repositories.

    Each repository owns one connection. Call connect() before use and
    close() when done.
    """

    def __init__(self, settings: Settings | None = None):
        """
        Initialize the repository.

        Args:
            settings: Application settings. If None, uses get_settings().
        """
        self._settings = settings or get_settings()
        self._conn: psycopg2.extensions.connection | None = None
        self._schema = self._settings.postgres.schema_name

    @property
    def schema(self) -> str:
        """Get the database schema name."""
        return self._schema

    @retry_on(POSTGRES_RETRY_EXCEPTIONS, logger)
    def connect(self) -> None:
        """Establish connection to PostgreSQL."""
        postgres = self._settings.postgres
        conn_string = _add_connect_timeout(postgres.connection_string)
        options = None
        if postgres.statement_timeout_ms > 0:
            options = f"-c statement_timeout={postgres.statement_timeout_ms}"
        self._conn = psycopg2.connect(conn_string, options=options)
        logger.info("%s connected (schema=%s)", type(self).__name__, self._schema)

    @contextmanager
    def _transaction(self):
        """
        Yield a dict cursor inside a transaction.

        Commits on success. Driver errors roll back and raise StorageError.
        """
        if self._conn is None:
            raise RuntimeError("PostgreSQL connection not established. Call connect() first.")
        try:
            with self._conn.cursor(cursor_factory=RealDictCursor) as cur:
                yield cur
            self._conn.commit()
        except psycopg2.Error as e:
            self.rollback()
            raise StorageError(f"PostgreSQL error: {e}") from e

    def rollback(self) -> None:
        """Rollback current transaction."""
        if self._conn:
            try:
                self._conn.rollback()
            except psycopg2.Error as e:
                logger.warning("Rollback failed: %s", e)

    def close(self) -> None:
        """Close connection and release resources."""
        if self._conn:
            try:
                self._conn.close()
                logger.info("%s connection closed", type(self).__name__)
            except psycopg2.Error as e:
                logger.warning("Error closing connection: %s", e)
            finally:
                self._conn = None


# ==============================================================================
# Domains
# ==============================================================================


class PostgreSQLDomainRepository(PostgreSQLRepository, DomainRepository):
    """PostgreSQL implementation of DomainRepository."""

    def get_by_name(self, name: str) -> Domain | None:
        with self._transaction() as cur:
            cur.execute(
                f"SELECT id, name, created_at FROM {self._schema}.domains WHERE name = %(name)s",
                {"name": name.lower()},
            )
            row = cur.fetchone()
        return Domain.model_validate(dict(row)) if row else None

    def create(self, name: str) -> Domain:
        """
        Register a domain.

        Raises:
            ValidationError: If the domain already exists
        """
        with self._transaction() as cur:
            cur.execute(
                f"""
                INSERT INTO {self._schema}.domains (name)
                VALUES (%(name)s)
                ON CONFLICT (name) DO NOTHING
                RETURNING id, name, created_at
                """,
                {"name": name.lower()},
            )
            row = cur.fetchone()
        if row is None:
            raise ValidationError(f"Domain '{name.lower()}' already exists")
        logger.info("Registered domain %s", row["name"])
        return Domain.model_validate(dict(row))

    def list_all(self) -> list[Domain]:
        with self._transaction() as cur:
            cur.execute(f"SELECT id, name, created_at FROM {self._schema}.domains ORDER BY name")
            rows = cur.fetchall()
        return [Domain.model_validate(dict(row)) for row in rows]

    def delete(self, domain_id: str) -> None:
        params = {"domain_id": domain_id}
        with self._transaction() as cur:
            # Events reference sessions, sessions reference the domain
            cur.execute(
                f"DELETE FROM {self._schema}.events WHERE domain_id = %(domain_id)s", params
            )
            events = cur.rowcount
            cur.execute(
                f"DELETE FROM {self._schema}.sessions WHERE domain_id = %(domain_id)s", params
            )
            sessions = cur.rowcount
            cur.execute(f"DELETE FROM {self._schema}.domains WHERE id = %(domain_id)s", params)
        logger.info(
            "Deleted domain %s with %d events and %d sessions", domain_id, events, sessions
        )


# ==============================================================================
# Events
# ==============================================================================


class PostgreSQLEventRepository(PostgreSQLRepository, EventRepository):
    """
    PostgreSQL implementation of EventRepository.

    Range scans and grouped counts run against the (domain_id, created_at)
    index; filter conditions are appended via compile_predicate().
    """

    def insert(self, fields: dict) -> Event:
        columns = [c for c in INSERTABLE_EVENT_COLUMNS if c in fields]
        placeholders = ", ".join(f"%({c})s" for c in columns)
        with self._transaction() as cur:
            cur.execute(
                f"""
                INSERT INTO {self._schema}.events ({", ".join(columns)})
                VALUES ({placeholders})
                RETURNING {", ".join(EVENT_COLUMNS)}
                """,
                {c: fields[c] for c in columns},
            )
            row = cur.fetchone()
        return Event.model_validate(dict(row))

    def query(
        self,
        domain_id: str,
        predicate: Predicate,
        start: datetime,
        end: datetime,
        require_session: bool = False,
    ) -> list[Event]:
        filter_sql, params = compile_predicate(predicate)
        session_sql = "AND session_id IS NOT NULL" if require_session else ""
        params.update({"domain_id": domain_id, "start": start, "end": end})
        with self._transaction() as cur:
            cur.execute(
                f"""
                SELECT {", ".join(EVENT_COLUMNS)}
                FROM {self._schema}.events
                WHERE domain_id = %(domain_id)s
                    AND created_at >= %(start)s AND created_at <= %(end)s
                    {session_sql} {filter_sql}
                ORDER BY created_at
                """,
                params,
            )
            rows = cur.fetchall()
        return [Event.model_validate(dict(row)) for row in rows]

    def group_count(
        self,
        domain_id: str,
        predicate: Predicate,
        start: datetime,
        end: datetime,
        column: str,
    ) -> list[GroupCount]:
        if column not in FILTERABLE_FIELDS:
            raise ValidationError(f"Cannot group by '{column}'")
        filter_sql, params = compile_predicate(predicate)
        params.update({"domain_id": domain_id, "start": start, "end": end})
        with self._transaction() as cur:
            cur.execute(
                f"""
                SELECT {column} AS value, COUNT(*) AS count
                FROM {self._schema}.events
                WHERE domain_id = %(domain_id)s
                    AND created_at >= %(start)s AND created_at <= %(end)s
                    {filter_sql}
                GROUP BY {column}
                """,
                params,
            )
            rows = cur.fetchall()
        return [GroupCount(value=row["value"], count=row["count"]) for row in rows]

    def find_unstitched(self, domain_id: str | None, limit: int) -> list[Event]:
        domain_sql = "AND domain_id = %(domain_id)s" if domain_id else ""
        with self._transaction() as cur:
            cur.execute(
                f"""
                SELECT {", ".join(EVENT_COLUMNS)}
                FROM {self._schema}.events
                WHERE session_id IS NULL AND unique_visitor_id IS NOT NULL
                    {domain_sql}
                ORDER BY created_at
                LIMIT %(limit)s
                """,
                {"domain_id": domain_id, "limit": limit},
            )
            rows = cur.fetchall()
        return [Event.model_validate(dict(row)) for row in rows]

    def exists_for_domain(self, domain_id: str) -> bool:
        with self._transaction() as cur:
            cur.execute(
                f"""
                SELECT EXISTS (
                    SELECT 1 FROM {self._schema}.events WHERE domain_id = %(domain_id)s
                ) AS found
                """,
                {"domain_id": domain_id},
            )
            row = cur.fetchone()
        return bool(row and row["found"])


# ==============================================================================
# Sessions
# ==============================================================================


class PostgreSQLSessionRepository(PostgreSQLRepository, SessionRepository):
    """
    PostgreSQL implementation of SessionRepository.

    Session creation takes a transaction-scoped advisory lock on the visitor
    id, then re-checks for an open session before inserting. Concurrent
    first events for one visitor therefore end up in one session.
    """

    def _select_recent(self, cur, visitor_id, domain_id, active_since, not_after) -> dict | None:
        cur.execute(
            f"""
            SELECT {SESSION_COLUMNS}
            FROM {self._schema}.sessions
            WHERE unique_visitor_id = %(visitor_id)s
                AND domain_id = %(domain_id)s
                AND last_activity_at >= %(active_since)s
                AND created_at <= %(not_after)s
            ORDER BY created_at DESC
            LIMIT 1
            """,
            {
                "visitor_id": visitor_id,
                "domain_id": domain_id,
                "active_since": active_since,
                "not_after": not_after,
            },
        )
        return cur.fetchone()

    def _link_event(self, cur, session_id: str, event_id: str, event_created_at: datetime) -> None:
        cur.execute(
            f"""
            UPDATE {self._schema}.events
            SET session_id = %(session_id)s, updated_at = now()
            WHERE id = %(event_id)s AND session_id IS NULL
            """,
            {"session_id": session_id, "event_id": event_id},
        )
        cur.execute(
            f"""
            UPDATE {self._schema}.sessions
            SET last_activity_at = GREATEST(last_activity_at, %(at)s), updated_at = now()
            WHERE id = %(session_id)s
            """,
            {"session_id": session_id, "at": event_created_at},
        )

    def find_recent(
        self,
        visitor_id: str,
        domain_id: str,
        active_since: datetime,
        not_after: datetime,
    ) -> Session | None:
        with self._transaction() as cur:
            row = self._select_recent(cur, visitor_id, domain_id, active_since, not_after)
        return Session.model_validate(dict(row)) if row else None

    def create_for_event(
        self,
        visitor_id: str,
        domain_id: str,
        event_id: str,
        created_at: datetime,
        active_since: datetime,
    ) -> Session:
        with self._transaction() as cur:
            cur.execute("SELECT pg_advisory_xact_lock(hashtext(%(key)s))", {"key": visitor_id})

            row = self._select_recent(cur, visitor_id, domain_id, active_since, created_at)
            if row is not None:
                logger.debug("Session %s created concurrently; reusing it", row["id"])
                self._link_event(cur, row["id"], event_id, created_at)
                return Session.model_validate(dict(row))

            cur.execute(
                f"""
                INSERT INTO {self._schema}.sessions
                    (unique_visitor_id, domain_id, created_at, last_activity_at)
                VALUES (%(visitor_id)s, %(domain_id)s, %(created_at)s, %(created_at)s)
                RETURNING {SESSION_COLUMNS}
                """,
                {"visitor_id": visitor_id, "domain_id": domain_id, "created_at": created_at},
            )
            row = cur.fetchone()
            self._link_event(cur, row["id"], event_id, created_at)
        return Session.model_validate(dict(row))

    def attach_event(self, session_id: str, event_id: str, event_created_at: datetime) -> None:
        with self._transaction() as cur:
            self._link_event(cur, session_id, event_id, event_created_at)

    def get_many(self, session_ids: list[str]) -> dict[str, Session]:
        if not session_ids:
            return {}
        with self._transaction() as cur:
            cur.execute(
                f"""
                SELECT {SESSION_COLUMNS}
                FROM {self._schema}.sessions
                WHERE id = ANY(%(ids)s::uuid[])
                """,
                {"ids": list(session_ids)},
            )
            rows = cur.fetchall()
        return {str(row["id"]): Session.model_validate(dict(row)) for row in rows}


def check_postgresql_connection(settings: Settings | None = None) -> bool:
    """
    Check if PostgreSQL is reachable.

    Args:
        settings: Application settings. If None, uses get_settings().

    Returns:
        True if connection successful, False otherwise
    """
    settings = settings or get_settings()
    conn_string = _add_connect_timeout(settings.postgres.connection_string)
    try:
        conn = psycopg2.connect(conn_string)
    except psycopg2.Error as e:
        logger.debug("PostgreSQL connection check failed: %s", e)
        return False
    conn.close()
    return True
