"""
CLI commands for the encrypted SFTPGo relay.

Operators use these to check the tunnel and to run provisioning operations by
hand when the storefront flow needs a nudge.
"""

from __future__ import annotations

import asyncio
import json
import sys
from typing import Awaitable, Callable

import click
from rich.console import Console
from rich.table import Table

from greenhost.core.config import get_settings
from greenhost.core.exceptions import ConfigurationError, GreenHostError
from greenhost.core.models import RequestEnvelope, ResponseEnvelope
from greenhost.relay.status import StatusProber
from greenhost.services.sftpgo_service import SFTPGoService

console = Console()

SECRET_FIELDS = ("password", "admin_password", "api_key")


def _run(ctx, operation: Callable[[SFTPGoService], Awaitable[ResponseEnvelope]]) -> None:
    """Build the service from settings, run one operation and print the result."""

    async def _main() -> ResponseEnvelope:
        async with SFTPGoService.from_settings(get_settings()) as service:
            return await operation(service)

    try:
        result = asyncio.run(_main())
    except ConfigurationError as e:
        console.print(f"[red]Configuration Error:[/red] {e}")
        sys.exit(1)
    except GreenHostError as e:
        console.print(f"[red]Relay Error:[/red] {e.message}")
        if ctx.obj and ctx.obj.get("debug") and e.details:
            console.print(e.details)
        sys.exit(1)

    _display_result(result)
    sys.exit(0 if result.success else 1)


def _display_result(result: ResponseEnvelope) -> None:
    table = Table(title="Relay Response")
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="white")

    table.add_row("Request ID", result.request_id)
    table.add_row("Success", "[green]yes[/green]" if result.success else "[red]no[/red]")
    table.add_row("Message", result.message or "")
    if result.data is not None:
        table.add_row("Data", json.dumps(result.data, indent=2, ensure_ascii=False))

    console.print(table)


def _display_dry_run(envelope: RequestEnvelope) -> None:
    payload = envelope.payload
    if isinstance(payload, dict):
        payload = {k: ("********" if k in SECRET_FIELDS else v) for k, v in payload.items()}

    console.print("[yellow]🔸 DRY RUN MODE - request not sent[/yellow]")
    table = Table(title="Request Envelope")
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="white")
    table.add_row("Endpoint", envelope.endpoint)
    table.add_row("Method", str(envelope.method))
    table.add_row("Request ID", envelope.request_id)
    table.add_row("Payload", json.dumps(payload, indent=2, ensure_ascii=False))
    console.print(table)


@click.group()
def relay():
    """Encrypted relay operations against the SFTPGo backend."""
    pass


@relay.command()
def status():
    """Probe the relay status endpoint (unauthenticated)."""
    relay_config = get_settings().relay
    prober = StatusProber(
        relay_config.base_urls,
        status_path=relay_config.status_path,
        timeout=relay_config.status_timeout,
    )
    result = asyncio.run(prober.check_status())

    colour = "green" if result.online else "red"
    console.print(f"[{colour}]{result.status.upper()}[/{colour}] {result.message}")
    if result.base_url:
        console.print(f"  via {result.base_url}")
    sys.exit(0 if result.online else 1)


@relay.command()
@click.pass_context
def health(ctx):
    """Encrypted health check routed through the relay."""
    _run(ctx, lambda service: service.health_check())


@relay.command("create-company")
@click.argument("company_email")
@click.option("--quota-gb", type=int, required=True, help="Storage quota in GB")
@click.option("--admin-password", prompt=True, hide_input=True, help="Company admin password")
@click.option("--dry-run", is_flag=True, help="Print the request instead of sending it")
@click.pass_context
def create_company(ctx, company_email: str, quota_gb: int, admin_password: str, dry_run: bool):
    """Create a company account with its quota."""
    if dry_run:
        _display_dry_run(
            SFTPGoService.create_company_request(company_email, quota_gb, admin_password)
        )
        return
    _run(ctx, lambda service: service.create_company(company_email, quota_gb, admin_password))


@relay.command("add-user")
@click.argument("company_email")
@click.argument("username")
@click.option("--api-key", required=True, help="Company API key issued at creation")
@click.option("--password", prompt=True, hide_input=True, help="Password for the new login")
@click.option("--dry-run", is_flag=True, help="Print the request instead of sending it")
@click.pass_context
def add_user(ctx, company_email: str, username: str, api_key: str, password: str, dry_run: bool):
    """Add an SFTP login to a company."""
    if dry_run:
        _display_dry_run(SFTPGoService.add_user_request(company_email, api_key, username, password))
        return
    _run(ctx, lambda service: service.add_user(company_email, api_key, username, password))


@relay.command("get-customer")
@click.argument("email")
@click.option("--api-key", required=True, help="Company API key")
@click.pass_context
def get_customer(ctx, email: str, api_key: str):
    """Fetch a customer's account details."""
    _run(ctx, lambda service: service.get_customer(email, api_key))


@relay.command("delete-user")
@click.argument("company_email")
@click.argument("username")
@click.option("--api-key", required=True, help="Company API key")
@click.option("--dry-run", is_flag=True, help="Print the request instead of sending it")
@click.pass_context
def delete_user(ctx, company_email: str, username: str, api_key: str, dry_run: bool):
    """Remove an SFTP login from a company."""
    if dry_run:
        _display_dry_run(SFTPGoService.delete_user_request(company_email, api_key, username))
        return
    _run(ctx, lambda service: service.delete_user(company_email, api_key, username))


@relay.command("update-quota")
@click.argument("company_email")
@click.argument("new_quota_gb", type=int)
@click.option("--api-key", required=True, help="Company API key")
@click.option("--dry-run", is_flag=True, help="Print the request instead of sending it")
@click.pass_context
def update_quota(ctx, company_email: str, new_quota_gb: int, api_key: str, dry_run: bool):
    """Change a company's storage quota."""
    if dry_run:
        _display_dry_run(SFTPGoService.update_quota_request(company_email, api_key, new_quota_gb))
        return
    _run(ctx, lambda service: service.update_quota(company_email, api_key, new_quota_gb))
