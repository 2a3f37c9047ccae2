# ==============================================================================
# Enrichment Lookup Abstract Base Classes
# ==============================================================================
"""
Interfaces for the pure lookup collaborators used during ingestion and
reporting.

- GeoLookup: IP address -> location
- UserAgentParser: User-Agent header -> browser/OS/device fields
- BotDetector: User-Agent header -> bot flag
- ReferrerNameTable: referrer hostname -> display name
"""

from abc import ABC, abstractmethod

from webstats.core.models import GeoResult, ParsedUserAgent


class GeoLookup(ABC):
    """Resolve an IP address to a location."""

    @abstractmethod
    def lookup(self, ip: str) -> GeoResult:
        """
        Look up an IP address.

        Returns:
            GeoResult; fields the source does not know are None

        Raises:
            DependencyError: If the lookup fails
        """
        ...


class UserAgentParser(ABC):
    """Parse a User-Agent header."""

    @abstractmethod
    def parse(self, user_agent: str) -> ParsedUserAgent:
        """
        Parse a User-Agent string.

        Returns:
            ParsedUserAgent; device is a lowercase class such as "mobile",
            "tablet" or None for desktop/unknown

        Raises:
            DependencyError: If parsing fails
        """
        ...


class BotDetector(ABC):
    """Classify crawler traffic."""

    @abstractmethod
    def is_bot(self, user_agent: str) -> bool:
        """Return True if the User-Agent belongs to a bot."""
        ...


class ReferrerNameTable(ABC):
    """Map referrer hostnames to canonical display names."""

    @abstractmethod
    def canonical_name(self, hostname: str) -> str | None:
        """
        Look up a hostname (lowercase, without leading "www.").

        Returns:
            Display name such as "Google", or None if the host is not known
        """
        ...
