# ==============================================================================
# Event Commands
# ==============================================================================
"""
Record events from the command line (backfills, smoke tests).
"""

import json
from typing import Annotated, Optional

import typer

from webstats.cli.shared import C, I, open_service
from webstats.core.models import EventType, RawEventInput, RequestMeta
from webstats.core.periods import parse_date


def events_ingest(
    domain: Annotated[str, typer.Option("--domain", "-d", help="Tracked domain")],
    href: Annotated[str, typer.Option("--href", help="Page URL, e.g. https://example.com/about")],
    ip: Annotated[str, typer.Option("--ip", help="Client IP address")],
    user_agent: Annotated[str, typer.Option("--user-agent", "-u", help="User-Agent header")] = "",
    referrer: Annotated[
        Optional[str], typer.Option("--referrer", "-r", help="Referrer URL")
    ] = None,
    at: Annotated[
        Optional[str], typer.Option("--at", help="Event time (ISO-8601, default now)")
    ] = None,
    json_output: Annotated[
        bool, typer.Option("--json", "-j", help="Output the stored event as JSON")
    ] = False,
) -> None:
    """Record one page view.

    The event goes through the same validation, enrichment and session
    stitching as tracker traffic.

    Examples:
        webstats events ingest -d example.com --href https://example.com/ --ip 203.0.113.7
        webstats events ingest -d example.com --href https://example.com/blog \\
            --ip 203.0.113.7 -r https://news.ycombinator.com/ --at 2024-03-15T10:00:00Z
    """
    with open_service(json_output) as service:
        raw = RawEventInput(
            type=EventType.PAGE_VIEW,
            href=href,
            domain=domain,
            referrer=referrer,
            created_at=parse_date(at) if at else None,
        )
        event = service.ingest(raw, RequestMeta(ip=ip, user_agent=user_agent))

    if json_output:
        print(json.dumps(event.model_dump(mode="json"), indent=2))
        return

    print(f"{C.BRIGHT_GREEN}{I.CHECK} Stored event {C.WHITE}{event.id}{C.RESET}")
    print(f"  Page:       {C.WHITE}{event.href}{C.RESET}")
    print(f"  Session:    {C.WHITE}{event.session_id or 'pending'}{C.RESET}")
    print(f"  Location:   {C.WHITE}{event.city}, {event.country}{C.RESET}")
    print(f"  Browser:    {C.WHITE}{event.browser} / {event.os} / {event.device.value}{C.RESET}")
    if event.bot:
        print(f"  {C.BRIGHT_YELLOW}{I.CIRCLE} Flagged as bot traffic{C.RESET}")
