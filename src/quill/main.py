"""Quill CLI Main Entry Point

Usage:
    quill render pages.home                 # Render views/pages/home.quill
    quill render pages.home -d data.yaml    # Render with data from a file
    quill render pages.home -o out.html     # Render to file
    quill compile pages.home                # Show the resolved program
    quill list                              # List templates
    quill -v                                # Show version
"""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional

import typer

from ._version import __version__
from .commands import compile_command, list_command, render_command
from .commands.utils import setup_logging
from .exceptions import QuillError

typer_app = typer.Typer(no_args_is_help=True)

@typer_app.callback(invoke_without_command=True)
def main(
    version: bool = typer.Option(
        False, "-v", "--version", help="Show version and exit."
    ),
    verbose: bool = typer.Option(False, "--verbose", help="Show info logs."),
) -> None:
    """Quill - Blade-style templates compiled and rendered from Python."""
    if version:
        typer.echo(f"quill {__version__}")
        raise typer.Exit()
    setup_logging(verbose)


@typer_app.command()
def render(
    name: str = typer.Argument(..., help="Dotted template name, e.g. pages.home"),
    views: Optional[Path] = typer.Option(
        None, "--views", help="Directory holding templates."
    ),
    data: Optional[Path] = typer.Option(
        None, "-d", "--data", help="YAML or JSON file with template data."
    ),
    config: Optional[Path] = typer.Option(
        None, "-c", "--config", help="Path to quill.yaml file."
    ),
    output: Optional[Path] = typer.Option(
        None, "-o", "--output", help="Write output to file instead of stdout."
    ),
) -> None:
    """Render a template."""
    try:
        html = render_command(name, views, data, config, output)
    except (QuillError, OSError, ValueError) as exc:
        typer.secho(f"Error: {exc}", err=True, fg=typer.colors.RED)
        raise typer.Exit(code=1)

    if output is None:
        typer.echo(html, nl=False)
    else:
        typer.echo(f"Wrote {name} to {output}")


@typer_app.command("compile")
def compile_(
    name: str = typer.Argument(..., help="Dotted template name"),
    views: Optional[Path] = typer.Option(
        None, "--views", help="Directory holding templates."
    ),
    config: Optional[Path] = typer.Option(
        None, "-c", "--config", help="Path to quill.yaml file."
    ),
) -> None:
    """Compile a template and print its resolved program."""
    try:
        compile_command(name, views, config)
    except (QuillError, OSError, ValueError) as exc:
        typer.secho(f"Error: {exc}", err=True, fg=typer.colors.RED)
        raise typer.Exit(code=1)


@typer_app.command("list")
def list_(
    views: Optional[Path] = typer.Option(
        None, "--views", help="Directory holding templates."
    ),
    config: Optional[Path] = typer.Option(
        None, "-c", "--config", help="Path to quill.yaml file."
    ),
) -> None:
    """List available templates."""
    try:
        list_command(views, config)
    except (QuillError, OSError, ValueError) as exc:
        typer.secho(f"Error: {exc}", err=True, fg=typer.colors.RED)
        raise typer.Exit(code=1)


def app(argv: Optional[List[str]] = None) -> None:
    """Entry point for the CLI."""
    typer_app(args=argv)


if __name__ == "__main__":
    app()
