"""
Hide My Email CLI — `hme` command.

Commands:
  hme auth login|status|logout   Session capture and sign-out
  hme generate                   Generate a new alias
  hme reserve <alias>            Reserve a generated alias
  hme list                       List aliases
  hme deactivate|reactivate|delete|update <anonymous-id>
  hme forward-to <email>         Change the forwarding address
  hme state                      Show the persisted popup view
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional, TypeVar

try:
    import click
    from rich.console import Console
    from rich.logging import RichHandler
except ImportError:
    raise SystemExit("CLI requires extras: pip install hidemyemail[cli]")

import httpx

from hidemyemail.config import __version__, store_path
from hidemyemail.errors import HideMyEmailError
from hidemyemail.models.store import PopupState
from hidemyemail.popup import Popup
from hidemyemail.storage import JsonFileStore

console = Console()

T = TypeVar("T")


def _get_store() -> JsonFileStore:
    return JsonFileStore(store_path())


def _get_popup() -> Popup:
    return Popup(_get_store())


def _run(coro: Awaitable[T]) -> T:
    return asyncio.run(coro)  # type: ignore[arg-type]


def _fail(message: str) -> None:
    console.print(f"[red]{message}[/red]")
    raise SystemExit(1)


def _with_popup(action: Callable[[Popup], Awaitable[Any]], signed_in: bool = True) -> None:
    """Mount a popup, run ``action`` against it, render failures."""

    async def _go() -> Optional[str]:
        popup = _get_popup()
        try:
            state = await popup.mount()
            if signed_in and state is PopupState.SIGNED_OUT:
                return "Not signed in. Run `hme auth login` first."
            await action(popup)
        except (HideMyEmailError, httpx.HTTPError) as e:
            return str(e)
        finally:
            await popup.close()
        return None

    error = _run(_go())
    if error:
        _fail(error)


async def _open_view(popup: Popup, view: PopupState) -> None:
    if popup.state is view:
        return
    if view is PopupState.AUTHENTICATED_AND_MANAGING:
        await popup.manage()
    else:
        await popup.back_to_generator()


@click.group()
@click.version_option(__version__)
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
def main(verbose: bool):
    """iCloud Hide My Email from the command line."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )


# Register subcommands from separate modules
from hidemyemail.cli.auth import auth
from hidemyemail.cli.hme import (
    deactivate_cmd,
    delete_cmd,
    forward_to_cmd,
    generate_cmd,
    list_cmd,
    reactivate_cmd,
    reserve_cmd,
    state_cmd,
    update_cmd,
)

main.add_command(auth)
main.add_command(generate_cmd)
main.add_command(reserve_cmd)
main.add_command(list_cmd)
main.add_command(deactivate_cmd)
main.add_command(reactivate_cmd)
main.add_command(delete_cmd)
main.add_command(update_cmd)
main.add_command(forward_to_cmd)
main.add_command(state_cmd)


if __name__ == "__main__":
    main()
