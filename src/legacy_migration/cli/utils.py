"""
Utility functions for CLI commands.

This module provides helper functions for formatting output and progress.
"""

from datetime import datetime
from typing import Any

import click
from rich.console import Console
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TaskProgressColumn,
    TextColumn,
    TimeElapsedColumn,
)
from rich.table import Table

console = Console()


def echo_success(message: str) -> None:
    """Print success message in green."""
    click.secho(f"✓ {message}", fg="green")


def echo_error(message: str) -> None:
    """Print error message in red."""
    click.secho(f"✗ {message}", fg="red", err=True)


def echo_warning(message: str) -> None:
    """Print warning message in yellow."""
    click.secho(f"⚠ {message}", fg="yellow")


def echo_info(message: str) -> None:
    """Print info message in blue."""
    click.secho(f"ℹ {message}", fg="blue")


def format_timestamp(dt: datetime | None) -> str:
    """
    Format timestamp in human-readable format.

    Args:
        dt: Datetime object

    Returns:
        Formatted timestamp string, or "-" when dt is None
    """
    if dt is None:
        return "-"
    return dt.strftime("%Y-%m-%d %H:%M:%S")


def format_count(count: int) -> str:
    """
    Format large numbers with thousands separator.

    Args:
        count: Number to format

    Returns:
        Formatted number (e.g., "1,234,567")
    """
    return f"{count:,}"


def print_table(
    title: str,
    columns: list[str],
    rows: list[list[Any]],
    show_header: bool = True,
) -> None:
    """
    Print a formatted table using rich.

    Args:
        title: Table title
        columns: Column headers
        rows: List of row data
        show_header: Whether to show header row
    """
    table = Table(title=title, show_header=show_header)

    for col in columns:
        table.add_column(col)

    for row in rows:
        table.add_row(*[str(cell) for cell in row])

    console.print(table)


def print_stats(stats: dict[str, Any], title: str = "Statistics") -> None:
    """
    Print statistics in a two-column table.

    Args:
        stats: Dictionary of statistics
        title: Table title
    """
    rows = [
        [key.replace("_", " ").title(), format_count(value) if isinstance(value, int) else value]
        for key, value in stats.items()
    ]
    print_table(title, ["Metric", "Value"], rows)


def create_progress_bar() -> Progress:
    """
    Create a progress bar with standard formatting.

    Returns:
        Rich Progress object
    """
    return Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        MofNCompleteColumn(),
        TaskProgressColumn(),
        TimeElapsedColumn(),
        console=console,
    )
