"""CLI commands"""

from .render import render_command, compile_command
from .list import list_command

__all__ = ["render_command", "compile_command", "list_command"]
