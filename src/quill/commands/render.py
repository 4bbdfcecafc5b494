"""Render and compile commands"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from rich.pretty import Pretty

from .utils import build_engine, console, load_data

log = logging.getLogger(__name__)


def render_command(
    name: str,
    views: Optional[Path] = None,
    data_path: Optional[Path] = None,
    config_path: Optional[Path] = None,
    output: Optional[Path] = None,
) -> str:
    """Render a template, writing to `output` when given.

    Returns:
        The rendered text.
    """
    engine = build_engine(views, config_path)
    html = engine.render_string(name, load_data(data_path))

    if output is not None:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(html, encoding="utf-8")
        log.info(f"Wrote {name} to {output}")
    return html


def compile_command(
    name: str,
    views: Optional[Path] = None,
    config_path: Optional[Path] = None,
) -> None:
    """Print the resolved instruction program of a template."""
    engine = build_engine(views, config_path)
    template = engine.get_template(name)

    console.print(f"[bold]{template.name}[/bold] [dim]({' -> '.join(template.chain)})[/dim]")
    for stack, program in template.stacks.items():
        console.print(f"[cyan]stack[/cyan] {stack}")
        console.print(Pretty(program))
    console.print(Pretty(template.program))
