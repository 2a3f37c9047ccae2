# ==============================================================================
# Stats Commands
# ==============================================================================
"""
Reporting commands for the webstats CLI.

Displays time series, breakdowns and live visitor counts for one domain.
Every reporting command accepts the same filter options.
"""

import json
from typing import Annotated, Any, Optional

import typer

from webstats.cli.shared import (
    BOX_WIDTH,
    C,
    I,
    _box_bottom,
    _box_header,
    _box_line,
    _empty_line,
    open_service,
)
from webstats.core.filters import FilterSet
from webstats.core.models import Dimension
from webstats.core.periods import utc_now
from webstats.utils.config import get_settings

# ==============================================================================
# Shared Options
# ==============================================================================

DomainArg = Annotated[str, typer.Argument(help="Tracked domain, e.g. example.com")]
PeriodOpt = Annotated[
    Optional[str],
    typer.Option("--period", "-p", help="day, month, year, all or rolling (1h, 7d, 30d, 1y)"),
]
DateOpt = Annotated[
    Optional[str], typer.Option("--date", help="Reference date (ISO-8601, default now)")
]
ReferrerOpt = Annotated[
    Optional[str], typer.Option("--referrer", help="Referrer prefix, or 'direct'")
]
PageOpt = Annotated[Optional[str], typer.Option("--page", help="Page path, e.g. /pricing")]
CountryOpt = Annotated[Optional[str], typer.Option("--country", help="Country name")]
RegionOpt = Annotated[Optional[str], typer.Option("--region", help="Region name")]
CityOpt = Annotated[Optional[str], typer.Option("--city", help="City name")]
BrowserOpt = Annotated[Optional[str], typer.Option("--browser", help="Browser name")]
OsOpt = Annotated[Optional[str], typer.Option("--os", help="Operating system name")]
DeviceOpt = Annotated[Optional[str], typer.Option("--device", help="Desktop, Mobile or Tablet")]
JsonOpt = Annotated[bool, typer.Option("--json", "-j", help="Output as JSON for scripting")]


def build_filters(period: Optional[str], date: Optional[str], **fields: Any) -> FilterSet:
    """
    Build a FilterSet, defaulting period from settings and date to now.

    Raises:
        ValidationError: If any value is malformed
    """
    data = {key: value for key, value in fields.items() if value is not None}
    data["period"] = period or get_settings().analytics.default_period
    data["date"] = date or utc_now()
    return FilterSet.parse(data)


# ==============================================================================
# Commands
# ==============================================================================


def stats_timeseries(
    domain: DomainArg,
    period: PeriodOpt = None,
    date: DateOpt = None,
    referrer: ReferrerOpt = None,
    page: PageOpt = None,
    country: CountryOpt = None,
    region: RegionOpt = None,
    city: CityOpt = None,
    browser: BrowserOpt = None,
    os: OsOpt = None,
    device: DeviceOpt = None,
    json_output: JsonOpt = False,
) -> None:
    """Show views, visitors, sessions and bounce rate per time bucket.

    Examples:
        webstats stats timeseries example.com                 # Last 7 days
        webstats stats timeseries example.com -p day          # Today, hourly
        webstats stats timeseries example.com -p month --date 2024-03-01
        webstats stats timeseries example.com --referrer direct --json
    """
    with open_service(json_output) as service:
        filters = build_filters(
            period,
            date,
            referrer=referrer,
            page=page,
            country=country,
            region=region,
            city=city,
            browser=browser,
            os=os,
            device=device,
        )
        points = service.time_series(domain, filters)

    if json_output:
        print(json.dumps([p.model_dump(mode="json") for p in points], indent=2))
        return

    W = BOX_WIDTH
    print()
    print(_box_header(f"{domain.upper()} ({filters.period})", W))
    print(_empty_line(W))
    header = f"  {'Bucket':<18}{'Views':>8}{'Visitors':>10}{'Sessions':>10}{'V/S':>7}{'Bounce':>9}"
    print(_box_line(header, W))
    print(_box_line("  " + "─" * (W - 6), W))
    for p in points:
        row = (
            f"  {p.date.strftime('%Y-%m-%d %H:%M'):<18}{p.views:>8,}{p.unique_visitors:>10,}"
            f"{p.sessions:>10,}{p.views_per_session:>7.2f}{p.bounce_rate * 100:>8.1f}%"
        )
        print(_box_line(row, W))
    print(_empty_line(W))
    total = sum(p.views for p in points)
    print(_box_line(f"  {'Total views':<18}{total:>8,}", W))
    print(_empty_line(W))
    print(_box_bottom(W))
    print()


def stats_breakdown(
    domain: DomainArg,
    dimension: Annotated[
        Dimension, typer.Argument(help="Dimension to rank", case_sensitive=False)
    ],
    period: PeriodOpt = None,
    date: DateOpt = None,
    referrer: ReferrerOpt = None,
    page: PageOpt = None,
    country: CountryOpt = None,
    region: RegionOpt = None,
    city: CityOpt = None,
    browser: BrowserOpt = None,
    os: OsOpt = None,
    device: DeviceOpt = None,
    limit: Annotated[int, typer.Option("--limit", "-n", min=1, help="Rows to show")] = 20,
    json_output: JsonOpt = False,
) -> None:
    """Rank referrers, pages, locations, browsers, OSes or devices by views.

    Examples:
        webstats stats breakdown example.com referrers
        webstats stats breakdown example.com pages -p 30d -n 10
        webstats stats breakdown example.com cities --country Germany --json
    """
    with open_service(json_output) as service:
        filters = build_filters(
            period,
            date,
            referrer=referrer,
            page=page,
            country=country,
            region=region,
            city=city,
            browser=browser,
            os=os,
            device=device,
        )
        rows = service.breakdown(domain, dimension, filters)

    if json_output:
        print(json.dumps([r.model_dump() for r in rows], indent=2))
        return

    W = BOX_WIDTH
    total = sum(r.value for r in rows) or 1
    print()
    print(_box_header(f"{dimension.value.upper()} ({filters.period})", W))
    print(_empty_line(W))
    if not rows:
        print(_box_line(f"  {C.DIM}No data for this period{C.RESET}", W))
    for r in rows[:limit]:
        label = r.label if len(r.label) <= 40 else r.label[:39] + "…"
        print(_box_line(f"  {label:<42}{r.value:>10,}{r.value / total * 100:>9.1f}%", W))
    if len(rows) > limit:
        print(_box_line(f"  {C.DIM}... {len(rows) - limit} more{C.RESET}", W))
    print(_empty_line(W))
    print(_box_bottom(W))
    print()


def stats_live(domain: DomainArg, json_output: JsonOpt = False) -> None:
    """Show how many visitors are on the site right now."""
    with open_service(json_output) as service:
        count = service.live_visitor_count(domain)

    if json_output:
        print(json.dumps({"domain": domain, "live_visitors": count}))
        return
    print(f"  {C.BRIGHT_GREEN}{I.CIRCLE}{C.RESET} {C.WHITE}{count}{C.RESET} live visitors")


def stats_installed(domain: DomainArg, json_output: JsonOpt = False) -> None:
    """Check whether the tracking script has reported any event yet.

    Exits with status 1 if no event was received.
    """
    with open_service(json_output) as service:
        installed = service.is_installed(domain)

    if json_output:
        print(json.dumps({"domain": domain, "installed": installed}))
    elif installed:
        print(f"{C.BRIGHT_GREEN}{I.CHECK} Tracking script is reporting for {domain}{C.RESET}")
    else:
        print(f"{C.BRIGHT_YELLOW}{I.CROSS} No events received for {domain} yet{C.RESET}")

    if not installed:
        raise typer.Exit(1)
