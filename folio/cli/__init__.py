"""
folio - Command Line Interface

Command line access to the folio plugin engine. Built with Typer for the
command surface and Rich for output.

Usage:
    $ folio --help
    $ folio plugin list
    $ folio plugin resolve book.json --strict
    $ folio plugin check plugins/callouts.py --base-dir ./book
    $ folio plugin render "Roll 2d6" --plugin ttrpg

Sub-command Groups:
    plugin - Plugin resolution and inspection

For detailed help on any command:
    $ folio <group> <command> --help
"""

from __future__ import annotations

import logging

import typer
from rich.console import Console

from folio import __version__

# Create main console for output
console = Console()
err_console = Console(stderr=True)

# Create main application
app = typer.Typer(
    name="folio",
    help="folio - extensible text transformation engine",
    no_args_is_help=True,
    rich_markup_mode="rich",
    pretty_exceptions_enable=True,
    pretty_exceptions_show_locals=False,
)

plugin_app = typer.Typer(
    name="plugin",
    help="Plugin resolution and inspection commands",
    no_args_is_help=True,
)

app.add_typer(plugin_app, name="plugin")


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"folio version {__version__}")
        raise typer.Exit()


def verbose_callback(value: bool) -> None:
    """Set verbose mode."""
    if value:
        logging.basicConfig(level=logging.DEBUG)


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        callback=verbose_callback,
        help="Enable verbose output.",
    ),
) -> None:
    """
    folio - extensible text transformation engine

    Resolves plugin declarations into grammar and render extensions
    for the document pipeline.

    Use --help on any subcommand for detailed information.
    """
    pass


def _register_subcommands() -> None:
    """Register all subcommand modules."""
    from folio.cli import plugins  # noqa: F401


__all__ = [
    "app",
    "plugin_app",
    "console",
    "err_console",
    "__version__",
]


def cli() -> None:
    """Entry point for the CLI."""
    app()


# Imported last: the subcommand modules import plugin_app and console from here
_register_subcommands()
