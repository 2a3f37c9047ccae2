# ==============================================================================
# Referrer Normalization
# ==============================================================================
"""
Turn raw referrer URLs into breakdown labels.

Resolution order for a referrer URL:
1. No referrer -> "Direct / None"
2. Not https, or no host -> skipped (None)
3. Hostname (lowercase, leading "www." stripped) found in the name table
4. First special-case matcher whose pattern matches the hostname
5. Otherwise the URL origin, e.g. "https://news.ycombinator.com"
"""

import logging
import re
from urllib.parse import urlsplit

from webstats.base.lookups import ReferrerNameTable
from webstats.core.models import DIRECT_REFERRER

logger = logging.getLogger(__name__)

# Ordered; first match wins. Covers hosts a static table cannot enumerate
# (regional subdomains, link shorteners).
DEFAULT_MATCHERS: tuple[tuple[re.Pattern, str], ...] = (
    (re.compile(r"(^|\.)linkedin\.com$"), "LinkedIn"),
    (re.compile(r"^lnkd\.in$"), "LinkedIn"),
    (re.compile(r"(^|\.)google\.[a-z.]+$"), "Google"),
    (re.compile(r"(^|\.)facebook\.com$"), "Facebook"),
    (re.compile(r"^(t\.co|x\.com|twitter\.com)$"), "X (Twitter)"),
    (re.compile(r"(^|\.)reddit\.com$"), "Reddit"),
)


def strip_www(hostname: str) -> str:
    """Lowercase a hostname and drop one leading "www."."""
    hostname = hostname.lower()
    return hostname[4:] if hostname.startswith("www.") else hostname


class ReferrerNormalizer:
    """
    Maps referrer URLs to display labels.

    Args:
        table: Exact hostname -> name lookup
        matchers: Ordered (pattern, label) pairs tried after the table
    """

    def __init__(
        self,
        table: ReferrerNameTable,
        matchers: tuple[tuple[re.Pattern, str], ...] = DEFAULT_MATCHERS,
    ):
        self._table = table
        self._matchers = matchers

    def label_for_host(self, hostname: str) -> str | None:
        """Canonical name for a hostname, or None if nothing matches."""
        host = strip_www(hostname)
        name = self._table.canonical_name(host)
        if name:
            return name
        for pattern, label in self._matchers:
            if pattern.search(host):
                return label
        return None

    def normalize(self, referrer: str | None) -> str | None:
        """
        Normalize one referrer.

        Returns:
            Label, or None if the referrer should be skipped
        """
        if referrer is None:
            return DIRECT_REFERRER
        try:
            parts = urlsplit(referrer.strip())
            hostname = parts.hostname
            port = parts.port
        except ValueError:
            logger.debug("Skipping unparsable referrer %r", referrer)
            return None
        if parts.scheme.lower() != "https" or not hostname:
            return None

        name = self.label_for_host(hostname)
        if name:
            return name
        if port and port != 443:
            return f"https://{hostname}:{port}"
        return f"https://{hostname}"
