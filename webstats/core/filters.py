# ==============================================================================
# Filter Compilation
# ==============================================================================
"""
Translate a declarative filter set into a storage predicate.

A Predicate is an immutable conjunction of simple conditions. Storage adapters
translate it into their own query language (see
infrastructure/repositories/postgresql.py); Predicate.matches() evaluates it
in memory.

Rules:
- referrer: the "Direct / None" sentinel means "referrer IS NULL"; any other
  value is a prefix match
- page: exact match on "https://{domain}{page}"
- geography: city, else region, else country (one level only)
- browser, os, device: exact match
"""

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any

from pydantic import BaseModel, field_validator
from pydantic import ValidationError as PydanticValidationError

from webstats.core.errors import ValidationError
from webstats.core.models import DIRECT_REFERRER

# Values a caller may use to ask for "no referrer"
DIRECT_REFERRER_ALIASES = frozenset({DIRECT_REFERRER.lower(), "direct", "none"})

# Operators understood by every storage adapter
OP_EQ = "eq"
OP_IS_NULL = "is_null"
OP_STARTS_WITH = "starts_with"

# Event fields a predicate may reference
FILTERABLE_FIELDS = frozenset(
    {"referrer", "href", "country", "region", "city", "browser", "os", "device", "bot"}
)


def is_direct_referrer(value: str | None) -> bool:
    """Check whether a referrer filter value is the "no referrer" sentinel."""
    return value is not None and value.strip().lower() in DIRECT_REFERRER_ALIASES


class FilterSet(BaseModel):
    """
    Caller-supplied filters for a query.

    period/date select the time window (see core/periods.py); the remaining
    fields narrow the event set. Every field is optional.
    """

    referrer: str | None = None
    page: str | None = None
    country: str | None = None
    region: str | None = None
    city: str | None = None
    browser: str | None = None
    os: str | None = None
    device: str | None = None
    period: str | None = None
    date: datetime | None = None

    @field_validator("referrer", "page", "country", "region", "city", "browser", "os", "device")
    @classmethod
    def _blank_to_none(cls, value: str | None) -> str | None:
        if value is None:
            return None
        value = value.strip()
        return value or None

    @field_validator("page")
    @classmethod
    def _page_is_path(cls, value: str | None) -> str | None:
        if value is None:
            return None
        if not value.startswith("/"):
            raise ValueError("page must be a path starting with '/'")
        return value.rstrip("/") or "/"

    @classmethod
    def parse(cls, data: dict[str, Any]) -> "FilterSet":
        """
        Build a FilterSet from raw query parameters.

        Raises:
            ValidationError: If any value is malformed (e.g. unparsable date)
        """
        try:
            return cls.model_validate(data)
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid filters: {e}") from e

    @property
    def wants_direct_referrer(self) -> bool:
        """True when the referrer filter asks for direct traffic only."""
        return is_direct_referrer(self.referrer)


@dataclass(frozen=True)
class Condition:
    """A single field comparison."""

    field: str
    op: str
    value: Any = None

    def matches(self, record: dict) -> bool:
        """Evaluate the condition against a record dict."""
        actual = record.get(self.field)
        if self.op == OP_IS_NULL:
            return actual is None
        if self.op == OP_STARTS_WITH:
            return isinstance(actual, str) and actual.startswith(self.value)
        return actual == self.value


@dataclass(frozen=True)
class Predicate:
    """Conjunction of conditions; the empty predicate matches everything."""

    conditions: tuple[Condition, ...] = ()

    def with_condition(self, condition: Condition) -> "Predicate":
        """Return a new predicate with one more condition."""
        if condition.field not in FILTERABLE_FIELDS:
            raise ValidationError(f"Field '{condition.field}' is not filterable")
        return replace(self, conditions=self.conditions + (condition,))

    def exclude_bots(self) -> "Predicate":
        """Return a new predicate that also requires bot = false."""
        if Condition("bot", OP_EQ, False) in self.conditions:
            return self
        return self.with_condition(Condition("bot", OP_EQ, False))

    def matches(self, record: dict) -> bool:
        """Evaluate every condition against a record dict."""
        return all(condition.matches(record) for condition in self.conditions)

    def fields(self) -> set[str]:
        """Fields referenced by the predicate."""
        return {condition.field for condition in self.conditions}


def compile_filters(domain: str, filters: FilterSet) -> Predicate:
    """
    Compile a filter set into a predicate.

    Args:
        domain: Tracking domain (used to expand page paths into hrefs)
        filters: Parsed filters

    Returns:
        Predicate with one condition per supplied filter
    """
    predicate = Predicate()

    if filters.referrer is not None:
        if filters.wants_direct_referrer:
            predicate = predicate.with_condition(Condition("referrer", OP_IS_NULL))
        else:
            predicate = predicate.with_condition(
                Condition("referrer", OP_STARTS_WITH, filters.referrer)
            )

    if filters.page is not None:
        href = f"https://{domain.lower()}{filters.page}"
        predicate = predicate.with_condition(Condition("href", OP_EQ, href))

    # Geography is hierarchical: the most specific level wins
    if filters.city is not None:
        predicate = predicate.with_condition(Condition("city", OP_EQ, filters.city))
    elif filters.region is not None:
        predicate = predicate.with_condition(Condition("region", OP_EQ, filters.region))
    elif filters.country is not None:
        predicate = predicate.with_condition(Condition("country", OP_EQ, filters.country))

    for field in ("browser", "os", "device"):
        value = getattr(filters, field)
        if value is not None:
            predicate = predicate.with_condition(Condition(field, OP_EQ, value))

    return predicate


class FilterCompiler:
    """Object wrapper around compile_filters() for dependency injection."""

    def compile(self, domain: str, filters: FilterSet) -> Predicate:
        return compile_filters(domain, filters)
