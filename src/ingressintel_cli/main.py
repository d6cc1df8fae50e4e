"""CLI entry point for the ingressintel tool.

This module is the composition root of the application.  It is the only
place that imports concrete implementations (IntelClient) and decides
where credentials come from.  All other layers depend solely on
abstractions.
"""

import asyncio
import json
import logging
import sys
from collections.abc import Awaitable, Callable
from dataclasses import asdict
from datetime import datetime
from enum import Enum
from typing import TypeVar

# Ensure UTF-8 output on Windows where stdout may default to cp1252.
# reconfigure() is a no-op when encoding is already utf-8.
if hasattr(sys.stdout, "reconfigure"):
    sys.stdout.reconfigure(encoding="utf-8", errors="replace")
if hasattr(sys.stderr, "reconfigure"):
    sys.stderr.reconfigure(encoding="utf-8", errors="replace")

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from ingressintel.auth import credentials as creds_store
from ingressintel.auth.cookies import CookieJar
from ingressintel.auth.interfaces import CookiesOnly, Credentials
from ingressintel.core.exceptions import (
    ChallengeRequiredError,
    IntelError,
    InvalidCredentialsError,
    SessionExpiredNoCredentialsError,
)
from ingressintel.core.models import Entity
from ingressintel.providers.intel.client import IntelClient
from ingressintel.services.map_service import MapService

app = typer.Typer()
auth_app = typer.Typer(help="Manage Intel authentication.")

app.add_typer(auth_app, name="auth")

console = Console(legacy_windows=False)
err_console = Console(stderr=True, legacy_windows=False)

T = TypeVar("T")


# ---------------------------------------------------------------------------
# Output format
# ---------------------------------------------------------------------------


class OutputFormat(str, Enum):
    """Supported output formats for map commands."""

    table = "table"
    json = "json"


_TEAM_STYLE = {"E": "green", "R": "blue", "M": "red"}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _get_client() -> IntelClient:
    """Build an IntelClient from the environment and the saved cookies.

    Uses the Facebook login when ``INTEL_EMAIL``/``INTEL_PASSWORD`` are set;
    otherwise runs on cookies alone.

    Returns:
        An :class:`~ingressintel.providers.intel.client.IntelClient`.
    """
    client = IntelClient(mode=creds_store.resolve_mode())
    client.add_cookies(creds_store.resolve_cookies())
    return client


async def _with_service(fn: Callable[[MapService], Awaitable[T]]) -> T:
    async with _get_client() as client:
        return await fn(MapService(client))


def _run(coro: Awaitable[T]) -> T:
    """Run ``coro`` and turn library errors into a red message and exit 1."""
    try:
        return asyncio.run(coro)
    except SessionExpiredNoCredentialsError:
        console.print("[red]✗ Intel session expired or cookies rejected.[/red]")
        console.print(
            "Run [bold]ingressintel auth setup[/bold] or set "
            "INTEL_EMAIL and INTEL_PASSWORD."
        )
        raise typer.Exit(1)
    except InvalidCredentialsError:
        console.print("[red]✗ Facebook rejected the email or password.[/red]")
        raise typer.Exit(1)
    except ChallengeRequiredError as e:
        console.print(f"[red]✗ Facebook asked for verification:[/red] {e}")
        raise typer.Exit(1)
    except IntelError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)


def _fmt_coord(value: float | None) -> str:
    return f"{value:.6f}" if value is not None else "—"


def _fmt_ts(timestamp_ms: int | None) -> str:
    if timestamp_ms is None:
        return "—"
    return datetime.fromtimestamp(timestamp_ms / 1000).strftime("%Y-%m-%d %H:%M")


def _team(team: str | None) -> str:
    if not team:
        return "—"
    style = _TEAM_STYLE.get(team)
    return f"[{style}]{team}[/{style}]" if style else team


def _print_entities(entities: list[Entity], title: str, output: OutputFormat) -> None:
    if output == OutputFormat.json:
        print(json.dumps([asdict(e) for e in entities], indent=2))
        return

    portals = [e for e in entities if e.is_portal]
    table = Table(title=title)
    table.add_column("Name", style="cyan")
    table.add_column("Team", justify="center")
    table.add_column("Level", justify="right")
    table.add_column("Latitude", justify="right")
    table.add_column("Longitude", justify="right")
    table.add_column("GUID", style="dim")
    for p in portals:
        table.add_row(
            p.name or "—",
            _team(p.team),
            str(p.level) if p.level is not None else "—",
            _fmt_coord(p.latitude),
            _fmt_coord(p.longitude),
            p.id,
        )
    console.print(table)
    console.print(
        f"[dim]Total: {len(portals)} portals, "
        f"{len(entities) - len(portals)} links and fields[/]"
    )


@app.callback()
def main(
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Log requests and session changes."
    ),
):
    """Query the Ingress Intel map."""
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(name)s: %(message)s",
            handlers=[RichHandler(console=err_console, show_path=False)],
        )


# ---------------------------------------------------------------------------
# auth commands
# ---------------------------------------------------------------------------


async def _validate_cookies(jar: CookieJar) -> CookieJar:
    """Bootstrap a cookie-only session and return the cookies it ended with."""
    async with IntelClient(mode=CookiesOnly()) as client:
        client.add_cookies(jar)
        await client.login()
        return client.cookies


@auth_app.command()
def setup():
    """Save Intel session cookies copied from a logged-in browser."""
    console.print("\n[bold]Intel cookie setup[/bold]\n")
    console.print(
        "Log in at [cyan]https://intel.ingress.com[/cyan], open DevTools → "
        "Network, reload, and copy the [cyan]Cookie[/cyan] request header "
        "of the page request.\n"
    )
    header = typer.prompt("Paste the Cookie header", hide_input=True)
    jar = CookieJar.from_header_string(header)
    if not jar:
        console.print("[red]No cookies found in the pasted value.[/red]")
        raise typer.Exit(1)

    console.print(f"[dim]Validating {len(jar)} cookies...[/dim]")
    jar = _run(_validate_cookies(jar))

    creds_store.save(jar)
    console.print(
        f"[green]✓ Cookies saved to:[/green] {creds_store.credentials_path()}"
    )


@auth_app.command()
def status():
    """Show the configured credentials and check that they work."""
    mode = creds_store.resolve_mode()
    jar = creds_store.resolve_cookies()

    if isinstance(mode, CookiesOnly) and not jar:
        console.print("[yellow]No credentials configured.[/yellow]")
        console.print(
            "Run [bold]ingressintel auth setup[/bold] or set "
            "INTEL_EMAIL and INTEL_PASSWORD."
        )
        raise typer.Exit(1)

    if isinstance(mode, Credentials):
        console.print(f"[green]✓ Facebook login[/green]   {mode.email}")
    if jar:
        console.print(
            f"[green]✓ Cookie session[/green]   {creds_store.credential_source()}"
        )
        console.print(f"  Cookies : {', '.join(jar)}")

    async def _check() -> None:
        async with _get_client() as client:
            await client.login()

    console.print("[dim]Validating with Intel...[/dim]")
    _run(_check())
    console.print("[green]✓ Active credentials are valid.[/green]")


@auth_app.command()
def clear():
    """Remove the locally saved cookies."""
    if creds_store.clear():
        console.print("[green]✓ Saved cookies removed.[/green]")
    else:
        console.print("[yellow]No saved cookies found.[/yellow]")


# ---------------------------------------------------------------------------
# map commands
# ---------------------------------------------------------------------------


@app.command()
def portal(
    guid: str,
    output: OutputFormat = typer.Option(
        OutputFormat.table, "--output", "-o", help="Output format."
    ),
):
    """Show the details of a portal."""
    with console.status("[dim]Fetching portal…[/dim]", spinner="dots"):
        data = _run(_with_service(lambda s: s.get_portal(guid)))

    if output == OutputFormat.json:
        print(json.dumps(asdict(data), indent=2))
        return

    console.print(f"\n[bold cyan]{data.name}[/bold cyan]  {_team(data.team)}")
    console.print(
        f"  Level {data.level} · health {data.health}% · "
        f"{data.resonator_count} resonators"
    )
    console.print(
        f"  Position: {_fmt_coord(data.latitude)}, {_fmt_coord(data.longitude)}"
    )
    console.print(f"  Owner: {data.owner or '—'} · updated {_fmt_ts(data.timestamp)}")

    table = Table(title="Resonators")
    table.add_column("Owner", style="cyan")
    table.add_column("Level", justify="right")
    table.add_column("Energy", justify="right")
    for r in data.resonators:
        if r is not None:
            table.add_row(r.owner, str(r.level), str(r.energy))
    console.print(table)

    mods = [m for m in data.mods if m is not None]
    if mods:
        console.print("  Mods: " + ", ".join(f"{m.name} ({m.rarity})" for m in mods))


@app.command()
def entities(
    latitude: float,
    longitude: float,
    zoom: int = typer.Option(15, "--zoom", "-z", help="Intel zoom level."),
    output: OutputFormat = typer.Option(
        OutputFormat.table, "--output", "-o", help="Output format."
    ),
):
    """List entities in the tile around a point and its eight neighbours."""
    with console.status("[dim]Fetching entities…[/dim]", spinner="dots"):
        data = _run(
            _with_service(
                lambda s: s.get_entities_around(latitude, longitude, zoom=zoom)
            )
        )
    _print_entities(data, f"Entities around {latitude}, {longitude}", output)


@app.command(name="range")
def range_(
    lat1: float,
    lng1: float,
    lat2: float,
    lng2: float,
    zoom: int = typer.Option(15, "--zoom", "-z", help="Intel zoom level."),
    concurrency: int = typer.Option(
        4, "--concurrency", "-c", help="Requests in flight at once."
    ),
    output: OutputFormat = typer.Option(
        OutputFormat.table, "--output", "-o", help="Output format."
    ),
):
    """List every entity in the rectangle between two points."""
    with console.status("[dim]Scanning tiles…[/dim]", spinner="dots"):
        scan = _run(
            _with_service(
                lambda s: s.get_entities_in_range(
                    (lat1, lng1), (lat2, lng2), zoom=zoom, concurrency=concurrency
                )
            )
        )
    _print_entities(scan.entities, f"Entities in {scan.tiles_total} tiles", output)
    if scan.failed_tiles:
        err_console.print(
            f"[yellow]{len(scan.failed_tiles)} tiles were not served by Intel.[/yellow]"
        )
