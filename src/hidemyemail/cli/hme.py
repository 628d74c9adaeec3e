"""CLI: hme generate|reserve|list|deactivate|reactivate|delete|update|forward-to|state"""

import json
from datetime import datetime
from typing import Optional

import click
from rich.console import Console
from rich.table import Table

from hidemyemail.config import DEFAULT_NOTE
from hidemyemail.models.store import PopupState
from hidemyemail.popup import Popup

console = Console()


def _with_popup(action, signed_in: bool = True):
    from hidemyemail.cli.main import _with_popup
    return _with_popup(action, signed_in=signed_in)


async def _open_view(popup: Popup, view: PopupState) -> None:
    from hidemyemail.cli.main import _open_view
    await _open_view(popup, view)


@click.command("generate")
def generate_cmd():
    """Generate a new alias (not yet reserved)."""

    async def _generate(popup: Popup):
        await _open_view(popup, PopupState.AUTHENTICATED)
        with console.status("Generating..."):
            hme = await popup.generate()
        click.echo(hme)

    _with_popup(_generate)


@click.command("reserve")
@click.argument("hme")
@click.option("--label", required=True, help="Label shown in iCloud settings")
@click.option("--note", default=DEFAULT_NOTE, show_default=True)
def reserve_cmd(hme: str, label: str, note: str):
    """Reserve a generated alias."""

    async def _reserve(popup: Popup):
        await _open_view(popup, PopupState.AUTHENTICATED)
        with console.status("Reserving..."):
            reserved = await popup.reserve(hme, label, note)
        console.print(f"[green]Reserved {reserved.hme}[/green] forwarding to {reserved.forward_to_email}")

    _with_popup(_reserve)


@click.command("list")
@click.option("--json-output", "--json", is_flag=True)
@click.option("-s", "--search", default=None, help="Fuzzy-match aliases by label or address")
def list_cmd(json_output: bool, search: Optional[str]):
    """List aliases."""

    async def _list(popup: Popup):
        await _open_view(popup, PopupState.AUTHENTICATED_AND_MANAGING)
        result = await popup.list_hme()
        emails = sorted(result.hme_emails, key=lambda e: e.create_timestamp, reverse=True)
        if search:
            emails = popup.search_hme(search, emails)
            result = result.model_copy(update={"hme_emails": emails})
        if json_output:
            click.echo(json.dumps(result.to_wire(), indent=2))
            return
        title = f"matching {search!r}" if search else "total"
        table = Table(title=f"Hide My Email ({len(emails)} {title})")
        table.add_column("Alias", style="bold")
        table.add_column("Label")
        table.add_column("Active")
        table.add_column("Anonymous ID")
        table.add_column("Created")
        for e in emails:
            created = datetime.fromtimestamp(e.create_timestamp / 1000).strftime("%Y-%m-%d") if e.create_timestamp else ""
            table.add_row(e.hme, e.label, "yes" if e.is_active else "no", e.anonymous_id, created)
        console.print(table)
        console.print(f"[dim]Forwarding to {result.selected_forward_to}[/dim]")

    _with_popup(_list)


def _manager_command(name: str, verb: str, help: str):
    @click.command(name, help=help)
    @click.argument("anonymous_id")
    def command(anonymous_id: str):
        async def _call(popup: Popup):
            await _open_view(popup, PopupState.AUTHENTICATED_AND_MANAGING)
            await getattr(popup, name)(anonymous_id)
            console.print(f"[green]{verb} {anonymous_id}.[/green]")

        _with_popup(_call)

    return command


deactivate_cmd = _manager_command("deactivate", "Deactivated", "Stop an alias from forwarding.")
reactivate_cmd = _manager_command("reactivate", "Reactivated", "Resume forwarding for an alias.")
delete_cmd = _manager_command("delete", "Deleted", "Delete a deactivated alias.")


@click.command("update")
@click.argument("anonymous_id")
@click.option("--label", required=True)
@click.option("--note", default=None)
def update_cmd(anonymous_id: str, label: str, note: Optional[str]):
    """Update an alias's label and note."""

    async def _update(popup: Popup):
        await _open_view(popup, PopupState.AUTHENTICATED_AND_MANAGING)
        await popup.update_metadata(anonymous_id, label, note)
        console.print(f"[green]Updated {anonymous_id}.[/green]")

    _with_popup(_update)


@click.command("forward-to")
@click.argument("email")
def forward_to_cmd(email: str):
    """Change the address aliases forward to."""

    async def _forward(popup: Popup):
        await _open_view(popup, PopupState.AUTHENTICATED_AND_MANAGING)
        await popup.update_forward_to(email)
        console.print(f"[green]Forwarding to {email}.[/green]")

    _with_popup(_forward)


@click.command("state")
def state_cmd():
    """Show the popup view the store will resume."""

    async def _state(popup: Popup):
        click.echo(popup.state.value)

    _with_popup(_state, signed_in=False)
