# ==============================================================================
# Visitor Identity
# ==============================================================================
"""
Pseudonymous visitor identifiers.

A visitor id is an HMAC-SHA256 of "{domain}-{ip}-{user_agent}" keyed with the
UTC calendar day of the event. The id is stable within a day and unlinkable
across days, so raw IPs and user agents never need to be stored.

The day is always taken from an explicit timestamp (the event time), never from
the wall clock, so replayed or backfilled events hash the same way twice.

Known limitation: a visitor active across midnight UTC gets a new id (and
therefore a new session) after midnight.
"""

import hashlib
import hmac
from datetime import datetime, timezone


def salt_for_day(as_of: datetime, secret_salt: str = "") -> str:
    """
    Build the HMAC key for the UTC day containing as_of.

    Args:
        as_of: Reference timestamp. Naive values are treated as UTC.
        secret_salt: Optional deployment secret prepended to the day string

    Returns:
        Key string, e.g. "2024-03-15" (or "<secret>2024-03-15")
    """
    if as_of.tzinfo is None:
        as_of = as_of.replace(tzinfo=timezone.utc)
    day = as_of.astimezone(timezone.utc).strftime("%Y-%m-%d")
    return f"{secret_salt}{day}"


def derive_visitor_id(
    domain: str,
    ip: str,
    user_agent: str,
    as_of: datetime,
    secret_salt: str = "",
) -> str:
    """
    Derive the visitor id for a (domain, ip, user agent) triple.

    Args:
        domain: Tracking domain, already lowercased by the caller
        ip: Client IP address
        user_agent: Raw User-Agent header
        as_of: Event time selecting the salt epoch
        secret_salt: Optional deployment secret

    Returns:
        Hex digest (64 characters)
    """
    key = salt_for_day(as_of, secret_salt).encode("utf-8")
    message = f"{domain}-{ip}-{user_agent}".encode("utf-8")
    return hmac.new(key, message, hashlib.sha256).hexdigest()


class VisitorIdentity:
    """Visitor id derivation bound to a deployment secret."""

    def __init__(self, secret_salt: str = ""):
        self._secret_salt = secret_salt

    def derive(self, domain: str, ip: str, user_agent: str, as_of: datetime) -> str:
        """Derive the visitor id; see derive_visitor_id()."""
        return derive_visitor_id(domain, ip, user_agent, as_of, self._secret_salt)
