# ==============================================================================
# Web Analytics Domain Models
# ==============================================================================
"""
Pydantic models for page-view events, sessions and query results.

These models are used for:
- Validating tracker payloads before ingestion
- Moving rows between the storage adapters and the core
- Returning time series and breakdown results to callers

This module is part of the core domain layer and has no external dependencies
beyond Pydantic.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

UNKNOWN = "Unknown"
DIRECT_REFERRER = "Direct / None"


class EventType(str, Enum):
    """Event types accepted by the tracker."""

    PAGE_VIEW = "PAGE_VIEW"


class DeviceType(str, Enum):
    """Device classes an event is attributed to."""

    DESKTOP = "Desktop"
    MOBILE = "Mobile"
    TABLET = "Tablet"


class Granularity(str, Enum):
    """Time-series bucket sizes."""

    MINUTE = "minute"
    HOUR = "hour"
    DAY = "day"
    MONTH = "month"


class Dimension(str, Enum):
    """Categorical dimensions available for breakdowns."""

    REFERRERS = "referrers"
    PAGES = "pages"
    COUNTRIES = "countries"
    REGIONS = "regions"
    CITIES = "cities"
    BROWSERS = "browsers"
    OS = "os"
    DEVICES = "devices"

    @property
    def column(self) -> str:
        """Event field the dimension groups by."""
        return _DIMENSION_COLUMNS[self]


_DIMENSION_COLUMNS = {
    Dimension.REFERRERS: "referrer",
    Dimension.PAGES: "href",
    Dimension.COUNTRIES: "country",
    Dimension.REGIONS: "region",
    Dimension.CITIES: "city",
    Dimension.BROWSERS: "browser",
    Dimension.OS: "os",
    Dimension.DEVICES: "device",
}


# ==============================================================================
# Ingestion Inputs
# ==============================================================================


class RawEventInput(BaseModel):
    """
    Tracker payload for a single event.

    The tracker script sends compact keys (n, h, d, r); the long names are
    accepted as well.

    Attributes:
        type: Event name (only PAGE_VIEW)
        href: Current page URL
        domain: Declared tracking domain
        referrer: document.referrer, if any
        created_at: Event time; None means "now" at ingestion
    """

    type: EventType = Field(..., alias="n", description="Event name")
    href: str = Field(..., alias="h", description="Current href")
    domain: str = Field(..., alias="d", description="Declared tracking domain")
    referrer: str | None = Field(None, alias="r", description="Referrer URL")
    created_at: datetime | None = Field(None, description="Event time")

    model_config = {"populate_by_name": True}


class RequestMeta(BaseModel):
    """Request metadata captured by the API layer."""

    ip: str = Field(..., description="Client IP address")
    user_agent: str = Field(default="", description="User-Agent header")


# ==============================================================================
# Collaborator Results
# ==============================================================================


class GeoResult(BaseModel):
    """Geo lookup result. Missing values are None."""

    country: str | None = None
    country_code: str | None = None
    region: str | None = None
    city: str | None = None
    latitude: float | None = None
    longitude: float | None = None


class ParsedUserAgent(BaseModel):
    """User-agent parser result. Missing values are None."""

    browser: str | None = None
    browser_version: str | None = None
    os: str | None = None
    os_version: str | None = None
    device: str | None = None
    device_vendor: str | None = None
    device_model: str | None = None
    engine: str | None = None
    engine_version: str | None = None
    cpu_architecture: str | None = None


# ==============================================================================
# Stored Entities
# ==============================================================================


class Domain(BaseModel):
    """A tracked website."""

    id: str
    name: str
    created_at: datetime | None = None


class Event(BaseModel):
    """
    A stored page-view event.

    Immutable after creation except for session_id and updated_at.
    """

    id: str
    domain_id: str
    type: EventType = EventType.PAGE_VIEW
    href: str
    referrer: str | None = None
    created_at: datetime
    updated_at: datetime | None = None
    unique_visitor_id: str | None = None
    session_id: str | None = None

    country: str = UNKNOWN
    country_code: str = UNKNOWN
    region: str = UNKNOWN
    city: str = UNKNOWN
    latitude: float | None = None
    longitude: float | None = None

    browser: str = UNKNOWN
    browser_version: str = UNKNOWN
    os: str = UNKNOWN
    os_version: str = UNKNOWN
    device: DeviceType = DeviceType.DESKTOP
    device_vendor: str = UNKNOWN
    device_model: str = UNKNOWN
    engine: str = UNKNOWN
    engine_version: str = UNKNOWN
    cpu_architecture: str = UNKNOWN

    bot: bool = False
    utm_source: str | None = None
    utm_medium: str | None = None
    utm_campaign: str | None = None

    def to_db_record(self) -> dict:
        """Convert event to database record format (enums as plain strings)."""
        record = self.model_dump()
        record["type"] = self.type.value
        record["device"] = self.device.value
        return record


class Session(BaseModel):
    """
    A run of one visitor's events on one domain.

    Attributes:
        id: Session identifier
        unique_visitor_id: Visitor the session belongs to
        domain_id: Domain the session belongs to
        created_at: Time of the first event; never changes
        last_activity_at: Time of the latest attached event
    """

    id: str
    unique_visitor_id: str
    domain_id: str
    created_at: datetime
    last_activity_at: datetime
    updated_at: datetime | None = None


# ==============================================================================
# Query Results
# ==============================================================================


class GroupCount(BaseModel):
    """One grouped count returned by storage."""

    value: str | None
    count: int


class TimeSeriesPoint(BaseModel):
    """Statistics for one time bucket."""

    date: datetime
    views: int = 0
    unique_visitors: int = 0
    sessions: int = 0
    views_per_session: float = 0.0
    bounce_rate: float = 0.0


class BreakdownRow(BaseModel):
    """One ranked row of a categorical breakdown."""

    label: str
    value: int
