"""Rich Formatting Utilities for CLI Output"""

from typing import Any

from rich import box
from rich.console import Console
from rich.table import Table

console = Console()

# Settings whose values must never be printed
SECRET_FIELDS = frozenset(["aws_secret_access_key", "aws_session_token", "database_url"])


def print_success(message: str):
    """Print success message with green styling"""
    console.print(f"[green]✓ {message}[/green]")


def print_error(message: str):
    """Print error message with red styling"""
    console.print(f"[red]✗ {message}[/red]")


def print_warning(message: str):
    """Print warning message with yellow styling"""
    console.print(f"[yellow]⚠ {message}[/yellow]")


def print_info(message: str):
    """Print info message with blue styling"""
    console.print(f"[blue]ℹ {message}[/blue]")


def mask(name: str, value: Any) -> str:
    if value in (None, ""):
        return "-"
    if name in SECRET_FIELDS:
        return "********"
    return str(value)


def create_settings_table(values: dict[str, Any]) -> Table:
    """Create a formatted table of effective settings"""
    table = Table(title="Effective Settings", box=box.ROUNDED)

    table.add_column("Setting", justify="left", style="cyan", no_wrap=True)
    table.add_column("Value", justify="left", style="white")

    for name, value in values.items():
        table.add_row(name, mask(name, value))

    return table
