#!/usr/bin/env python3
"""
CRM contact duplicate scrubber - command line entry point.

Usage:
    python -m crm.main init-db
    python -m crm.main status
    python -m crm.main serve
    python -m crm.main duplicates preview --limit 20
    python -m crm.main duplicates execute --yes
"""

import sys
from pathlib import Path

import click
from loguru import logger
from rich.console import Console
from rich.table import Table
from rich.progress import Progress, SpinnerColumn, TextColumn

from crm.config import settings
from crm.database import Contact, ContactProperty, get_session, init_db as create_tables
from crm.deduplication import DuplicateScrubber, DedupeError, MatchType


console = Console()


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
def cli(debug):
    """CRM contact duplicate scrubber"""
    if debug:
        from crm.utils.logging import setup_logging
        setup_logging(level="DEBUG")


@cli.command("init-db")
def init_db():
    """Create missing database tables."""
    create_tables()
    console.print("[green]Database tables ready[/green]")


@cli.command()
def status():
    """Show contact store statistics."""
    with get_session() as session:
        table = Table(title="Contact Store")
        table.add_column("Metric")
        table.add_column("Value")
        table.add_row("Contacts", str(session.query(Contact).count()))
        table.add_row("Additional Properties", str(session.query(ContactProperty).count()))
        console.print(table)


@cli.command()
def serve():
    """Run the admin API server."""
    import uvicorn

    console.print(f"[bold blue]Serving on {settings.api.host}:{settings.api.port}[/bold blue]")
    uvicorn.run(
        "api.main:app",
        host=settings.api.host,
        port=settings.api.port,
        reload=settings.api.reload,
        log_level="debug" if settings.api.debug else "info",
    )


@cli.group()
def duplicates():
    """Find and merge duplicate contacts."""
    pass


@duplicates.command("preview")
@click.option("--limit", type=int, default=20, help="Number of groups to show (0 = all)")
def duplicates_preview(limit: int):
    """Show duplicate groups without changing anything."""
    console.print("\n[bold blue]Duplicate Contacts - Preview[/bold blue]\n")

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
        transient=True,
    ) as progress:
        progress.add_task("Scanning contacts...", total=None)
        preview = DuplicateScrubber().preview(limit=limit)

    summary = Table()
    summary.add_column("Metric")
    summary.add_column("Value")
    summary.add_row("Duplicate groups", str(preview.total_duplicate_groups))
    summary.add_row("Contacts to merge", str(preview.total_contacts_to_merge))
    summary.add_row("Properties to consolidate", str(preview.total_properties_to_consolidate))
    console.print(summary)

    for group in preview.groups:
        label = "Phone" if group.match_type is MatchType.PHONE else "Name + location"
        table = Table(title=f"{label}: {group.match_key}", title_justify="left")
        table.add_column("")
        table.add_column("ID")
        table.add_column("Name")
        table.add_column("Phone")
        table.add_column("City / State")
        table.add_column("Property")
        table.add_column("Props")
        table.add_column("Created")

        for idx, member in enumerate(group.members):
            table.add_row(
                "[green]keep[/green]" if idx == 0 else "[red]merge[/red]",
                member.id[:8],
                member.name[:30],
                member.phone or "-",
                ", ".join(p for p in (member.city, member.state) if p) or "-",
                (member.property_address or "-")[:40],
                str(member.properties_count),
                member.created_at.strftime("%Y-%m-%d %H:%M"),
            )
        console.print(table)

    shown = len(preview.groups)
    if shown < preview.total_duplicate_groups:
        console.print(f"\n[dim]Showing {shown} of {preview.total_duplicate_groups} groups[/dim]")


@duplicates.command("execute")
@click.option("--group", "groups", multiple=True, help="Only merge the group with this match key (repeatable)")
@click.option("--log-file", type=click.Path(dir_okay=False, path_type=Path), help="Also write the merge log to this file")
@click.confirmation_option("--yes", prompt="Merging deletes duplicate contacts and cannot be undone. Continue?")
def duplicates_execute(groups: tuple[str, ...], log_file: Path | None):
    """Merge every duplicate group."""
    if log_file:
        from crm.utils.logging import setup_logging
        setup_logging(log_file=log_file)

    console.print("\n[bold blue]Duplicate Contacts - Merge[/bold blue]\n")

    try:
        result = DuplicateScrubber().execute(execute=True, group_keys=list(groups) or None)
    except DedupeError as e:
        console.print(f"[red]{e}[/red]")
        logger.error(f"Duplicate merge aborted: {e}")
        sys.exit(1)

    table = Table()
    table.add_column("Metric")
    table.add_column("Value")
    table.add_row("Groups merged", str(result.merged_groups))
    table.add_row("Contacts deleted", str(result.contacts_deleted))
    table.add_row("Properties consolidated", str(result.properties_consolidated))
    table.add_row("Failed groups", str(len(result.failures)))
    console.print(table)

    if result.failures:
        failures = Table(title="Failed Groups", title_justify="left")
        failures.add_column("Match Key")
        failures.add_column("Reason")
        for failure in result.failures:
            failures.add_row(failure.match_key, failure.reason)
        console.print(failures)


if __name__ == "__main__":
    cli()
