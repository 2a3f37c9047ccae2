# ==============================================================================
# GeoIP2 Lookup
# ==============================================================================
"""
Geo-IP lookup backed by a local MaxMind GeoIP2/GeoLite2 City database.

The reader is opened lazily on first lookup and kept for the life of the
process. Lookup failures raise DependencyError; the ingestor substitutes
"Unknown" values.
"""

import logging
from pathlib import Path

import geoip2.database
import geoip2.errors
import maxminddb

from webstats.base.lookups import GeoLookup
from webstats.core.errors import DependencyError
from webstats.core.models import GeoResult

logger = logging.getLogger(__name__)


class GeoIP2Lookup(GeoLookup):
    """GeoLookup using geoip2.database.Reader.city()."""

    def __init__(self, database_path: str | Path):
        """
        Initialize the lookup.

        Args:
            database_path: Path to a City .mmdb file
        """
        self._database_path = Path(database_path)
        self._reader: geoip2.database.Reader | None = None

    def _get_reader(self) -> geoip2.database.Reader:
        if self._reader is None:
            if not self._database_path.exists():
                raise DependencyError(f"GeoIP database not found: {self._database_path}")
            try:
                self._reader = geoip2.database.Reader(str(self._database_path))
            except (maxminddb.InvalidDatabaseError, OSError, ValueError) as e:
                raise DependencyError(
                    f"Cannot open GeoIP database {self._database_path}: {e}"
                ) from e
            logger.info("Opened GeoIP database %s", self._database_path)
        return self._reader

    def lookup(self, ip: str) -> GeoResult:
        reader = self._get_reader()
        try:
            response = reader.city(ip)
        except (geoip2.errors.GeoIP2Error, ValueError) as e:
            raise DependencyError(f"GeoIP lookup failed for {ip}: {e}") from e

        return GeoResult(
            country=response.country.name,
            country_code=response.country.iso_code or response.registered_country.iso_code,
            region=response.subdivisions.most_specific.name,
            city=response.city.name,
            latitude=response.location.latitude,
            longitude=response.location.longitude,
        )

    def close(self) -> None:
        """Close the database reader."""
        if self._reader is not None:
            self._reader.close()
            self._reader = None
