# ==============================================================================
# Session Commands
# ==============================================================================
"""
Session maintenance commands.

`restitch` attaches events that were stored while stitching failed (for
example during a storage outage).
"""

import json
from typing import Annotated, Optional

import typer

from webstats.cli.shared import C, I, open_service


def sessions_restitch(
    domain: Annotated[
        Optional[str], typer.Option("--domain", "-d", help="Only this domain (default: all)")
    ] = None,
    limit: Annotated[
        int, typer.Option("--limit", "-n", min=1, help="Maximum events to process")
    ] = 1000,
    dry_run: Annotated[
        bool, typer.Option("--dry-run", help="Show what would be attached without writing")
    ] = False,
    json_output: Annotated[
        bool, typer.Option("--json", "-j", help="Output as JSON for scripting")
    ] = False,
) -> None:
    """Attach stored events that have no session yet.

    Examples:
        webstats sessions restitch
        webstats sessions restitch -d example.com --dry-run
    """
    with open_service(json_output) as service:
        if dry_run:
            plan = service.plan_restitch(domain, limit)
        else:
            attached = service.restitch_pending(domain, limit)

    if dry_run:
        if json_output:
            print(json.dumps({"dry_run": True, **plan}))
            return
        print(
            f"  {C.WHITE}{plan['events']}{C.RESET} pending events would form at most "
            f"{C.WHITE}{plan['sessions']}{C.RESET} new sessions"
        )
        return

    if json_output:
        print(json.dumps({"attached": attached}))
        return
    print(f"{C.BRIGHT_GREEN}{I.CHECK} Attached {attached} events to sessions{C.RESET}")
