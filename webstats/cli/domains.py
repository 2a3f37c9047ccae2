# ==============================================================================
# Domain Commands
# ==============================================================================
"""
Commands for managing tracked domains.
"""

import json
from typing import Annotated

import typer

from webstats.cli.shared import C, I, open_service


def domains_add(
    name: Annotated[str, typer.Argument(help="Bare hostname, e.g. example.com")],
) -> None:
    """Start tracking a domain.

    Examples:
        webstats domains add example.com
    """
    with open_service() as service:
        domain = service.add_domain(name)
    print(f"{C.BRIGHT_GREEN}{I.CHECK} Tracking {C.WHITE}{domain.name}{C.RESET} ({domain.id})")


def domains_list(
    json_output: Annotated[
        bool, typer.Option("--json", "-j", help="Output as JSON for scripting")
    ] = False,
) -> None:
    """List tracked domains."""
    with open_service(json_output) as service:
        domains = service.list_domains()

    if json_output:
        print(json.dumps([d.model_dump(mode="json") for d in domains], indent=2))
        return

    if not domains:
        print(f"  {C.DIM}No domains tracked yet; add one with 'webstats domains add'{C.RESET}")
        return
    for domain in domains:
        print(f"  {I.BULLET} {C.WHITE}{domain.name:<40}{C.RESET} {C.DIM}{domain.id}{C.RESET}")


def domains_remove(
    name: Annotated[str, typer.Argument(help="Tracked domain to remove")],
    confirm: Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation prompt")] = False,
) -> None:
    """Stop tracking a domain and delete its events and sessions.

    Examples:
        webstats domains remove example.com       # With confirmation prompt
        webstats domains remove example.com -y    # Skip confirmation
    """
    if not confirm:
        typer.confirm(
            f"This will DELETE every event and session recorded for '{name}'. Are you sure?",
            abort=True,
        )

    with open_service() as service:
        domain = service.remove_domain(name)
    print(f"{C.BRIGHT_GREEN}{I.CHECK} Removed {C.WHITE}{domain.name}{C.RESET} ({domain.id})")
