# ==============================================================================
# Path Utilities
# ==============================================================================
"""
Project and package path helpers.

The schema template ships inside the package so it is available from an
installed wheel as well as a source checkout.
"""

from pathlib import Path


def get_package_root() -> Path:
    """
    Get the webstats package directory.

    Returns:
        Path to the directory containing this package's __init__.py
    """
    return Path(__file__).parent.parent  # utils/paths.py -> webstats


def get_schema_dir() -> Path:
    """
    Get the schema directory containing SQL templates.

    Returns:
        Path to the schema directory
    """
    return get_package_root() / "schema"


def get_init_sql_path() -> Path:
    """
    Get the path to the database initialization SQL template.

    Returns:
        Path to init.sql
    """
    return get_schema_dir() / "init.sql"
