"""
folio CLI - Plugin Commands

Commands for inspecting builtin plugins, resolving plugin configuration
documents and trying plugins against the inline pipeline.

Commands:
    list    - List builtin plugins
    resolve - Resolve a plugin configuration document
    check   - Run the local path sandbox on a path
    render  - Render inline text through a set of plugins
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer
from rich.table import Table

from folio.cli import plugin_app, console
from folio.config import ManifestError, load_plugin_list, settings
from folio.plugins import (
    BUILTIN_PLUGINS,
    Composition,
    Pipeline,
    PathSandbox,
    PluginComposer,
    PluginError,
    PluginLoader,
    SecurityViolation,
    list_builtin_plugins,
)


def _build_composer(
    base_dir: Optional[Path],
    strict: bool,
    cache: bool = True,
) -> PluginComposer:
    loader = PluginLoader(
        base_dir=base_dir if base_dir is not None else settings.PLUGIN_BASE_DIR,
        strict=strict or settings.PLUGIN_STRICT,
        verbose=settings.PLUGIN_VERBOSE,
        cache=cache and settings.PLUGIN_CACHE,
        security_fatal=settings.PLUGIN_SECURITY_FATAL,
        entry_point_group=settings.PLUGIN_ENTRY_POINT_GROUP,
    )
    return PluginComposer(loader, max_workers=settings.PLUGIN_MAX_WORKERS)


def _report_failures(composition: Composition) -> None:
    from folio.cli.output import print_warning

    for error in composition.failures:
        print_warning(f"Skipped {error.plugin_name}: {error.reason}")


@plugin_app.command("list")
def list_plugins(
    format: str = typer.Option(
        "table",
        "--format",
        "-f",
        help="Output format: table, json, simple.",
    ),
) -> None:
    """
    List builtin plugins.

    Builtin plugins ship with folio and are referenced by name in
    plugin configuration.
    """
    from folio.cli.output import print_json

    entries = [BUILTIN_PLUGINS[name] for name in list_builtin_plugins()]

    if format == "json":
        print_json({"plugins": [entry.metadata().to_dict() for entry in entries]})
        return

    if format == "simple":
        for entry in entries:
            console.print(entry.name, highlight=False)
        return

    table = Table(title="Builtin Plugins")
    table.add_column("Name", style="cyan")
    table.add_column("Version")
    table.add_column("Stylesheet")
    table.add_column("Description", max_width=50)

    for entry in entries:
        meta = entry.metadata()
        table.add_row(
            entry.name,
            meta.version,
            "[green]yes[/green]" if entry.stylesheet else "[dim]no[/dim]",
            meta.description,
        )

    console.print(table)
    console.print()
    console.print(f"[dim]Total: {len(entries)} plugins[/dim]")


@plugin_app.command("resolve")
def resolve_plugins(
    config: Path = typer.Argument(
        ...,
        help="JSON document with a plugin list.",
    ),
    base_dir: Optional[Path] = typer.Option(
        None,
        "--base-dir",
        "-b",
        help="Base directory for local plugins. Defaults to FOLIO_PLUGIN_BASE_DIR.",
    ),
    strict: bool = typer.Option(
        False,
        "--strict",
        help="Fail on the first plugin error instead of skipping it.",
    ),
    no_cache: bool = typer.Option(
        False,
        "--no-cache",
        help="Disable the resolution cache.",
    ),
    css_out: Optional[Path] = typer.Option(
        None,
        "--css-out",
        help="Write the aggregate stylesheet to this file.",
    ),
    format: str = typer.Option(
        "table",
        "--format",
        "-f",
        help="Output format: table, json, simple.",
    ),
) -> None:
    """
    Resolve a plugin configuration document.

    Loads every declared plugin, orders the result by priority and
    reports what would be applied to the pipeline.
    """
    from folio.cli.output import print_error, print_json, print_success

    try:
        requests = load_plugin_list(config)
    except FileNotFoundError:
        print_error(f"Configuration file not found: {config}")
        raise typer.Exit(1)
    except ManifestError as e:
        print_error(str(e))
        raise typer.Exit(1)

    composer = _build_composer(base_dir, strict, cache=not no_cache)

    try:
        composition = composer.compose(requests)
    except PluginError as e:
        print_error(str(e))
        raise typer.Exit(1)

    if css_out is not None:
        css_out.write_text(composition.stylesheet, encoding="utf-8")

    if format == "json":
        print_json(composition.to_dict())
    elif format == "simple":
        for plugin in composition.plugins:
            console.print(f"{plugin.priority} {plugin.name}", highlight=False, markup=False)
    else:
        table = Table(title="Resolved Plugins")
        table.add_column("#", justify="right")
        table.add_column("Name", style="cyan")
        table.add_column("Provenance")
        table.add_column("Priority", justify="right")
        table.add_column("Version")
        table.add_column("CSS")

        for index, plugin in enumerate(composition.plugins, start=1):
            table.add_row(
                str(index),
                plugin.name,
                plugin.provenance.value,
                str(plugin.priority),
                plugin.metadata.version,
                "yes" if plugin.stylesheet else "-",
            )

        console.print(table)

    if format != "json":
        _report_failures(composition)
        if css_out is not None:
            print_success(f"Wrote {len(composition.stylesheet)} bytes of CSS to {css_out}")


@plugin_app.command("check")
def check_path(
    path: str = typer.Argument(
        ...,
        help="Local plugin path as it would appear in configuration.",
    ),
    base_dir: Optional[Path] = typer.Option(
        None,
        "--base-dir",
        "-b",
        help="Base directory for local plugins. Defaults to FOLIO_PLUGIN_BASE_DIR.",
    ),
) -> None:
    """
    Check a local plugin path against the sandbox.

    Nothing is imported; the path is only validated.
    """
    from folio.cli.output import print_error, print_success, print_warning

    sandbox = PathSandbox(base_dir if base_dir is not None else settings.PLUGIN_BASE_DIR)

    try:
        approved = sandbox.validate(path)
    except SecurityViolation as e:
        print_error(e.reason, details=f"Boundary: {e.boundary}")
        raise typer.Exit(1)

    print_success(f"{path} is inside {sandbox.base_dir}", details=str(approved))
    if not approved.is_file():
        print_warning(f"No file exists at {approved}")


@plugin_app.command("render")
def render_text(
    text: str = typer.Argument(
        ...,
        help="Inline text to render.",
    ),
    plugin: Optional[list[str]] = typer.Option(
        None,
        "--plugin",
        "-p",
        help="Plugin to apply (builtin name, package or local path). Repeatable.",
    ),
    base_dir: Optional[Path] = typer.Option(
        None,
        "--base-dir",
        "-b",
        help="Base directory for local plugins. Defaults to FOLIO_PLUGIN_BASE_DIR.",
    ),
    strict: bool = typer.Option(
        False,
        "--strict",
        help="Fail on the first plugin error instead of skipping it.",
    ),
) -> None:
    """
    Render inline text through a fresh pipeline.

    Example:
        folio plugin render "Roll 2d6+3 vs CR:4" -p ttrpg
    """
    from folio.cli.output import print_error

    composer = _build_composer(base_dir, strict)

    try:
        composition = composer.compose(plugin or [])
        pipeline = Pipeline()
        composer.apply(composition.plugins, pipeline)
        html = pipeline.render_inline(text)
    except PluginError as e:
        print_error(str(e))
        raise typer.Exit(1)

    console.print(html, markup=False, highlight=False, soft_wrap=True)
    _report_failures(composition)
