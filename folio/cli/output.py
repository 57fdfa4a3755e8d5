"""
folio CLI - Rich Output Helpers

Utility functions for consistent command-line output using Rich.

Functions:
    print_json    - Print formatted JSON
    print_error   - Print error message
    print_success - Print success message
    print_warning - Print warning message
"""

from __future__ import annotations

import json
from typing import Optional

from rich.json import JSON
from rich.markup import escape

from folio.cli import console, err_console


def print_json(
    data: dict | list,
    indent: int = 2,
    highlight: bool = True,
) -> None:
    """
    Print formatted JSON.

    Args:
        data: Data to print as JSON
        indent: Indentation level
        highlight: Whether to syntax highlight
    """
    json_str = json.dumps(data, indent=indent, default=str)
    if highlight:
        console.print(JSON(json_str), soft_wrap=True)
    else:
        console.print(json_str, markup=False, highlight=False, soft_wrap=True)


def print_error(
    message: str,
    details: Optional[str] = None,
) -> None:
    """
    Print error message.

    Args:
        message: Error message
        details: Optional detailed error information
    """
    err_console.print(f"[bold red]Error:[/bold red] {escape(message)}", highlight=False, soft_wrap=True)

    if details:
        err_console.print(f"[dim]{escape(details)}[/dim]", soft_wrap=True)


def print_success(
    message: str,
    details: Optional[str] = None,
) -> None:
    """Print success message."""
    console.print(f"[bold green]Success:[/bold green] {escape(message)}", soft_wrap=True)

    if details:
        console.print(f"[dim]{escape(details)}[/dim]", soft_wrap=True)


def print_warning(
    message: str,
    details: Optional[str] = None,
) -> None:
    """Print warning message."""
    console.print(f"[bold yellow]Warning:[/bold yellow] {escape(message)}", soft_wrap=True)

    if details:
        console.print(f"[dim]{escape(details)}[/dim]", soft_wrap=True)
