"""CLI entry point: python -m pilot [connection_id]

Interactive CLI for connecting a WordPress site and syncing its feeds.
"""

import logging
import sys

from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table

# Before pilot imports: the DB URL is resolved at import time.
load_dotenv(override=False)

from pilot.wordpress.contracts import SYNC_INTERVAL_OPTIONS, MappingResponse, RoleMappingOut, parse_role
from pilot.wordpress.errors import WordPressSyncError
from pilot.wordpress.runtime import get_connection_service
from pilot.wordpress.service import ConnectionService

console = Console()

HELP = (
    "[dim]/connect <url>[/dim] | [dim]/map[/dim] | [dim]/select <role> <endpoint|skip|default>[/dim] | "
    "[dim]/confirm[/dim] | [dim]/cancel[/dim] | [dim]/edit[/dim]\n"
    "[dim]/endpoint <role> \\[endpoint][/dim] | [dim]/interval <role> <interval>[/dim] | [dim]/intervals[/dim] | "
    "[dim]/sync <role> \\[full][/dim] | [dim]/status[/dim] | [dim]/disconnect \\[DELETE][/dim] | [dim]/quit[/dim]\n"
)


def _print_status(service: ConnectionService) -> None:
    status = service.status()
    console.print(f"[dim]step: {status.step}[/dim]  {status.site_url or '(no site)'}")
    if status.error:
        console.print(f"[red]{status.error}[/red]")
    if status.notice:
        console.print(f"[yellow]{status.notice}[/yellow]")
    if status.conflict:
        console.print("[yellow]Both feeds use the same endpoint.[/yellow]")
    if not status.roles:
        return

    table = Table(show_header=True, header_style="bold")
    for column in ("feed", "endpoint", "interval", "last sync", "items", "last error"):
        table.add_column(column)
    for role in status.roles:
        table.add_row(
            role.role,
            role.endpoint or "-",
            role.interval,
            "syncing…" if role.syncing else role.last_sync_label,
            str(role.count),
            role.last_error or "",
        )
    console.print(table)


def _print_role_mapping(mapping: RoleMappingOut | None) -> None:
    if mapping is None:
        return
    table = Table(title=mapping.role, show_header=True, header_style="bold")
    for column in ("", "endpoint", "confidence", "match", "items"):
        table.add_column(column)
    for candidate in mapping.candidates:
        marker = "→" if candidate.rest_base == mapping.effective else ""
        band = candidate.band
        if candidate.classified_as_other_role:
            band = f"{band} (other feed)"
        table.add_row(
            marker,
            candidate.rest_base,
            f"{round(candidate.confidence * 100)}%",
            band,
            "" if candidate.approximate_post_count is None else str(candidate.approximate_post_count),
        )
    console.print(table)
    if mapping.skipped:
        console.print(f"[dim]{mapping.role}: don't sync[/dim]")


def _print_mapping(view: MappingResponse) -> None:
    if view.step != "mapping":
        console.print(f"[dim]Nothing to map (step: {view.step}).[/dim]")
        return
    if view.notice:
        console.print(f"[yellow]{view.notice}[/yellow]")
    _print_role_mapping(view.community)
    _print_role_mapping(view.property)
    for warning in view.warnings:
        console.print(f"[yellow]{warning}[/yellow]")
    if not view.can_confirm:
        console.print("[dim]Select at least one endpoint, or skip both feeds, to confirm.[/dim]")


def _confirm_current(service: ConnectionService) -> None:
    result = service.confirm_selection()
    for warning in result.warnings:
        console.print(f"[yellow]{warning}[/yellow]")
    console.print("[green]Connected.[/green]")


def _handle(service: ConnectionService, command: str, args: list[str]) -> None:
    if command == "/connect" and args:
        service.submit_url(args[0])
        _print_status(service)
        if service.state.step == "mapping":
            _print_mapping(service.mapping_view())
    elif command == "/map":
        _print_mapping(service.mapping_view())
    elif command == "/select" and len(args) == 2:
        role = parse_role(args[0])
        if args[1] == "skip":
            view = service.select_endpoint(role, None, skip=True)
        elif args[1] == "default":
            view = service.select_endpoint(role, None)
        else:
            view = service.select_endpoint(role, args[1])
        _print_mapping(view)
    elif command == "/confirm":
        _confirm_current(service)
        _print_status(service)
    elif command == "/cancel":
        service.cancel_mapping()
        _print_status(service)
    elif command == "/edit":
        service.edit_connection()
        _print_status(service)
    elif command == "/endpoint" and args:
        service.update_endpoint(parse_role(args[0]), args[1] if len(args) > 1 else None)
        _print_status(service)
    elif command == "/interval" and len(args) == 2:
        service.update_sync_interval(parse_role(args[0]), args[1])
        _print_status(service)
    elif command == "/intervals":
        for value, label in SYNC_INTERVAL_OPTIONS:
            console.print(f"  {value:<10} [dim]{label}[/dim]")
    elif command == "/sync" and args:
        full = len(args) > 1 and args[1] == "full"
        with console.status("Syncing…"):
            result = service.trigger_sync(parse_role(args[0]), full=full)
        console.print(f"[green]{result.message}[/green]")
    elif command == "/status":
        _print_status(service)
    elif command == "/disconnect":
        confirmation = args[0] if args else None
        result = service.disconnect(delete_synced_data=confirmation is not None, confirmation=confirmation)
        console.print(f"[green]Disconnected.[/green] [dim]{result.deleted_records} records removed[/dim]")
    else:
        console.print(HELP)


def main() -> None:
    logging.basicConfig(level=logging.WARNING, format="%(levelname)s %(name)s — %(message)s")

    connection_id = sys.argv[1] if len(sys.argv) > 1 else "default"
    console.print(f"\n[bold cyan]Pilot[/bold cyan] — WordPress data source ([dim]{connection_id}[/dim])\n")
    console.print(HELP)

    service = get_connection_service(connection_id)
    _print_status(service)

    while True:
        try:
            prompt = console.input("[bold]pilot>[/bold] ").strip()
        except (EOFError, KeyboardInterrupt):
            console.print("\n[dim]Goodbye.[/dim]")
            break

        if not prompt:
            continue
        if prompt in ("/quit", "/exit", "/q"):
            console.print("[dim]Goodbye.[/dim]")
            break

        command, *args = prompt.split()
        try:
            _handle(service, command, args)
        except (WordPressSyncError, ValueError) as exc:
            console.print(f"[red]Error: {exc}[/red]")

        console.print()


if __name__ == "__main__":
    main()
