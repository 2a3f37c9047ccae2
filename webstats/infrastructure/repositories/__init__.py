# ==============================================================================
# Database Repository Adapters
# ==============================================================================
"""
Database adapters implementing the repository interfaces from base/repositories.py.

Currently supported:
- PostgreSQL (postgresql.py)
"""

from webstats.infrastructure.repositories.postgresql import (
    PostgreSQLDomainRepository,
    PostgreSQLEventRepository,
    PostgreSQLSessionRepository,
    check_postgresql_connection,
    compile_predicate,
)

__all__ = [
    "PostgreSQLDomainRepository",
    "PostgreSQLEventRepository",
    "PostgreSQLSessionRepository",
    "check_postgresql_connection",
    "compile_predicate",
]
