"""List command - list all templates"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from rich.table import Table

from quill.exceptions import QuillError

from .utils import build_engine, console


def list_command(views: Optional[Path] = None, config_path: Optional[Path] = None) -> None:
    """List the templates under the views directory with their parents."""
    engine = build_engine(views, config_path)
    names = engine.templates()

    if not names:
        console.print("[yellow]No templates found[/yellow]")
        return

    table = Table()
    table.add_column("Name", style="cyan")
    table.add_column("Extends")
    table.add_column("Status")

    for name in names:
        try:
            template = engine.get_template(name)
        except QuillError as e:
            table.add_row(name, "", f"[red]{e}[/red]")
            continue
        parents = " -> ".join(template.chain[1:])
        table.add_row(name, parents, "[green]ok[/green]")

    console.print(table)
