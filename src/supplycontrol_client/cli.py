"""
Supply Control CLI Tool
Command-line interface for administering supply controllers.
"""

import json
import sys
from contextlib import contextmanager
from typing import Optional

import click
import httpx
from rich.console import Console
from rich.table import Table

from .client import SupplyControlAPIError, SupplyControlClient


console = Console()


def get_client(url: str, api_key: Optional[str] = None) -> SupplyControlClient:
    """Create a client instance."""
    return SupplyControlClient(base_url=url, api_key=api_key)


@contextmanager
def api_errors():
    """Print API and connection errors and exit non-zero."""
    try:
        yield
    except SupplyControlAPIError as e:
        console.print(f"❌ [red]{e.code}: {e.detail.message}[/red]")
        sys.exit(1)
    except httpx.HTTPError as e:
        console.print(f"❌ [red]Connection failed: {e}[/red]")
        sys.exit(1)


def _fmt_amount(value: int) -> str:
    return "max" if value == 2**256 - 1 else f"{value:,}"


@click.group()
@click.option("--url", "-u", default="http://localhost:8000", help="API server URL")
@click.option("--api-key", "-k", envvar="SUPPLYCONTROL_API_KEY", help="Bearer token")
@click.pass_context
def cli(ctx, url: str, api_key: Optional[str]):
    """Supply Control CLI - rate-limited mint and burn authorization."""
    ctx.ensure_object(dict)
    ctx.obj["url"] = url
    ctx.obj["api_key"] = api_key


@cli.command()
@click.pass_context
def health(ctx):
    """Check API server health."""
    with get_client(ctx.obj["url"], ctx.obj["api_key"]) as client, api_errors():
        status = client.health()
        if status.get("status") == "healthy":
            console.print("✅ [green]API is healthy[/green]")
        else:
            console.print("⚠️ [yellow]API is degraded[/yellow]")
        console.print(f"   Controllers: {status.get('controllers', 0)}")
        console.print(f"   Database: {'ok' if status.get('database') else 'unavailable'}")


@cli.command()
@click.pass_context
def whoami(ctx):
    """Show the authenticated identity and its roles."""
    with get_client(ctx.obj["url"], ctx.obj["api_key"]) as client, api_errors():
        info = client.whoami()
        roles = ", ".join(info.get("roles", [])) or "none"
        console.print(f"[cyan]{info.get('identity')}[/cyan] ({roles})")


@cli.command()
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def controllers(ctx, as_json: bool):
    """List registered controllers."""
    with get_client(ctx.obj["url"], ctx.obj["api_key"]) as client, api_errors():
        identities = client.list_controllers()

        if as_json:
            console.print(json.dumps(identities, indent=2))
            return

        if not identities:
            console.print("[yellow]No controllers registered[/yellow]")
            return
        for identity in identities:
            console.print(f"  {identity}")
        console.print(f"[dim]{len(identities)} controllers[/dim]")


@cli.command()
@click.argument("identity")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def show(ctx, identity: str, as_json: bool):
    """Show a controller's limits, quota state and whitelist."""
    with get_client(ctx.obj["url"], ctx.obj["api_key"]) as client, api_errors():
        info = client.get_controller(identity)

        if as_json:
            console.print(json.dumps({
                "identity": info.identity,
                "capacity": str(info.capacity),
                "refill_rate": str(info.refill_rate),
                "available": str(info.available),
                "last_update_time": info.last_update_time,
                "whitelist": info.whitelist,
                "allow_any_destination": info.allow_any_destination,
            }, indent=2))
            return

        table = Table(title=f"Controller {info.identity}")
        table.add_column("Field", style="cyan")
        table.add_column("Value", justify="right")

        table.add_row("Capacity", _fmt_amount(info.capacity))
        table.add_row("Refill rate", f"{_fmt_amount(info.refill_rate)}/s")
        table.add_row("Available", _fmt_amount(info.available))
        table.add_row("Last update", str(info.last_update_time))
        table.add_row("Rate limited", "yes" if info.rate_limited else "[yellow]no[/yellow]")
        table.add_row("Any destination", "[yellow]yes[/yellow]" if info.allow_any_destination else "no")
        table.add_row("Whitelist", ", ".join(info.whitelist) or "-")

        console.print(table)


@cli.command()
@click.argument("identity")
@click.option("--capacity", "-c", required=True, help="Quota ceiling (integer or 'max')")
@click.option("--refill-rate", "-r", required=True, help="Units per second, 0 disables limiting")
@click.option("--whitelist", "-w", multiple=True, help="Destination account (repeatable)")
@click.option("--allow-any", is_flag=True, help="Allow any destination")
@click.pass_context
def add(ctx, identity: str, capacity: str, refill_rate: str, whitelist: tuple[str, ...], allow_any: bool):
    """Register a supply controller."""
    with get_client(ctx.obj["url"], ctx.obj["api_key"]) as client, api_errors():
        info = client.add_controller(
            identity,
            capacity=capacity,
            refill_rate=refill_rate,
            whitelist=list(whitelist),
            allow_any_destination=allow_any,
        )
        console.print(f"✅ [green]Registered {info.identity}[/green] with {_fmt_amount(info.available)} available")


@cli.command()
@click.argument("identity")
@click.pass_context
def remove(ctx, identity: str):
    """Remove a supply controller."""
    with get_client(ctx.obj["url"], ctx.obj["api_key"]) as client, api_errors():
        client.remove_controller(identity)
        console.print(f"✅ [green]Removed {identity}[/green]")


@cli.command("set-limit")
@click.argument("identity")
@click.option("--capacity", "-c", required=True, help="Quota ceiling (integer or 'max')")
@click.option("--refill-rate", "-r", required=True, help="Units per second, 0 disables limiting")
@click.pass_context
def set_limit(ctx, identity: str, capacity: str, refill_rate: str):
    """Replace a controller's capacity and refill rate."""
    with get_client(ctx.obj["url"], ctx.obj["api_key"]) as client, api_errors():
        client.update_limit_config(identity, capacity, refill_rate)
        console.print(f"✅ [green]Updated limits for {identity}[/green]")


@cli.command("allow-any")
@click.argument("identity")
@click.argument("value", type=click.BOOL)
@click.pass_context
def allow_any(ctx, identity: str, value: bool):
    """Enable or disable any-destination for a controller."""
    with get_client(ctx.obj["url"], ctx.obj["api_key"]) as client, api_errors():
        previous = client.update_destination_policy(identity, value)
        console.print(f"✅ [green]{identity}: allow-any {previous} -> {value}[/green]")


@cli.group()
def whitelist():
    """Manage controller whitelists."""


@whitelist.command("add")
@click.argument("identity")
@click.argument("account")
@click.pass_context
def whitelist_add(ctx, identity: str, account: str):
    """Whitelist an account for a controller."""
    with get_client(ctx.obj["url"], ctx.obj["api_key"]) as client, api_errors():
        client.add_to_whitelist(identity, account)
        console.print(f"✅ [green]{account} whitelisted for {identity}[/green]")


@whitelist.command("remove")
@click.argument("identity")
@click.argument("account")
@click.pass_context
def whitelist_remove(ctx, identity: str, account: str):
    """Remove an account from a controller's whitelist."""
    with get_client(ctx.obj["url"], ctx.obj["api_key"]) as client, api_errors():
        client.remove_from_whitelist(identity, account)
        console.print(f"✅ [green]{account} removed from {identity}[/green]")


@cli.command()
@click.argument("identity")
@click.option("--now", type=int, default=None, help="Timestamp (defaults to server time)")
@click.pass_context
def remaining(ctx, identity: str, now: Optional[int]):
    """Show the quota a controller could use now."""
    with get_client(ctx.obj["url"], ctx.obj["api_key"]) as client, api_errors():
        quota = client.remaining_quota(identity, now=now)
        if quota.unlimited:
            console.print(f"[cyan]{identity}[/cyan]: [yellow]unlimited[/yellow]")
        else:
            console.print(f"[cyan]{identity}[/cyan]: {quota.remaining:,} at t={quota.now}")


@cli.command()
@click.argument("controller")
@click.argument("amount")
@click.argument("destination")
@click.option("--burn", is_flag=True, help="Authorize a burn instead of a mint")
@click.option("--now", type=int, default=None, help="Timestamp (defaults to server time)")
@click.pass_context
def authorize(ctx, controller: str, amount: str, destination: str, burn: bool, now: Optional[int]):
    """Authorize a mint (or burn) for a controller."""
    action = "burn" if burn else "mint"
    with get_client(ctx.obj["url"], ctx.obj["api_key"]) as client, api_errors():
        client.authorize(controller, amount, destination, action=action, now=now)
        console.print(f"✅ [green]Authorized {action} of {amount} by {controller}[/green]")


@cli.command()
@click.option("--limit", "-n", default=20, help="Number of events to show")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def events(ctx, limit: int, as_json: bool):
    """Show recent audit events."""
    with get_client(ctx.obj["url"], ctx.obj["api_key"]) as client, api_errors():
        recent = client.recent_events(limit=limit)

        if as_json:
            console.print(json.dumps(
                [{"event": e.event, "emitted_at": e.emitted_at, "data": e.data} for e in recent],
                indent=2,
            ))
            return

        table = Table(title=f"Recent Events ({len(recent)})")
        table.add_column("Time", style="dim")
        table.add_column("Event", style="cyan")
        table.add_column("Details")

        for e in recent:
            details = ", ".join(f"{k}={v}" for k, v in e.data.items())
            table.add_row(e.emitted_at, e.event, details)

        console.print(table)


def main():
    """CLI entry point."""
    cli(obj={})


if __name__ == "__main__":
    main()
