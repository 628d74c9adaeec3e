"""CLI: hme auth login|status|logout"""

import json
from pathlib import Path
from typing import Optional

import click
from rich.console import Console

from hidemyemail.models.store import PopupState
from hidemyemail.popup import Popup
from hidemyemail.session import REQUIRED_HEADERS

console = Console()


def _with_popup(action, signed_in: bool = True):
    from hidemyemail.cli.main import _with_popup
    return _with_popup(action, signed_in=signed_in)


def _parse_headers(pairs: tuple[str, ...], headers_file: Optional[Path]) -> dict[str, str]:
    headers: dict[str, str] = {}
    if headers_file is not None:
        try:
            loaded = json.loads(headers_file.read_text())
        except json.JSONDecodeError as e:
            raise click.BadParameter(f"{headers_file} is not valid JSON: {e}")
        if not isinstance(loaded, dict):
            raise click.BadParameter(f"{headers_file} must contain a JSON object")
        headers.update({str(k): str(v) for k, v in loaded.items()})
    for pair in pairs:
        name, sep, value = pair.partition("=")
        if not sep or not name.strip():
            raise click.BadParameter(f"Expected NAME=VALUE, got {pair!r}")
        headers[name.strip()] = value.strip()
    return headers


@click.group()
def auth():
    """Authentication commands."""


@auth.command("login")
@click.option("-H", "--header", "header_pairs", multiple=True, help="Captured response header NAME=VALUE")
@click.option("--headers-file", type=click.Path(exists=True, dir_okay=False, path_type=Path), default=None,
              help="JSON object of captured response headers")
@click.option("--setup-url", default=None, help="iCloud setup URL")
def auth_login(header_pairs: tuple[str, ...], headers_file: Optional[Path], setup_url: Optional[str]):
    """Sign in with session headers captured from icloud.com."""
    headers = _parse_headers(header_pairs, headers_file)

    async def _login(popup: Popup):
        if popup.state is not PopupState.SIGNED_OUT:
            console.print("[yellow]Already signed in.[/yellow]")
            return
        with console.status("Validating session..."):
            await popup.sign_in(headers, setup_url=setup_url)
        console.print("[green]Signed in to iCloud.[/green]")

    _with_popup(_login, signed_in=False)


@auth.command("status")
def auth_status():
    """Show whether the stored session still validates."""

    async def _status(popup: Popup):
        if popup.state is PopupState.SIGNED_OUT:
            console.print("[yellow]Not signed in. Run `hme auth login`.[/yellow]")
            console.print(f"[dim]Required headers: {', '.join(REQUIRED_HEADERS)}[/dim]")
        else:
            console.print(f"[green]Signed in[/green] ({popup.state.value})")

    _with_popup(_status, signed_in=False)


@auth.command("logout")
@click.option("--trust", is_flag=True, help="Also forget trusted browsers")
def auth_logout(trust: bool):
    """Sign out and clear the stored session."""

    async def _logout(popup: Popup):
        await popup.sign_out(trust=trust)
        console.print("[green]Signed out.[/green]")

    _with_popup(_logout)
