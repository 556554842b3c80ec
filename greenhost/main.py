"""
Main application entry point for the GreenHost relay client.

Provides CLI interface for relay diagnostics and provisioning operations.
"""

import sys
from typing import Optional

import click
from rich.console import Console
from rich.table import Table

from greenhost.cli_commands.relay import relay
from greenhost.core.config import configuration_summary, get_settings, validate_required_settings
from greenhost.core.logging import set_correlation_id, setup_logging

console = Console()


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.option("--json-logs", is_flag=True, help="Emit JSON logs instead of rich console output")
@click.option("--correlation-id", help="Set correlation ID for request tracing")
@click.pass_context
def main(ctx, debug: bool, json_logs: bool, correlation_id: Optional[str]):
    """GreenHost storage provisioning over the encrypted SFTPGo relay."""
    ctx.ensure_object(dict)

    setup_logging(debug=debug, rich_output=not json_logs)

    if correlation_id:
        set_correlation_id(correlation_id)

    ctx.obj["debug"] = debug
    ctx.obj["correlation_id"] = correlation_id


main.add_command(relay)


@main.command()
def config():
    """Display current configuration."""
    try:
        summary = configuration_summary(get_settings())
    except Exception as e:
        console.print(f"[red]Error loading configuration:[/red] {e}")
        sys.exit(1)

    table = Table(title="GreenHost Configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="white")
    for key, value in summary.items():
        table.add_row(key, value)
    console.print(table)

    missing = validate_required_settings()
    if missing:
        console.print("[red]Configuration Error:[/red]")
        for item in missing:
            console.print(f"  • Missing: {item}")
        sys.exit(1)

    console.print("[green]✅ Relay configuration complete[/green]")


if __name__ == "__main__":
    main()
