"""Shared utilities for CLI commands"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from rich.console import Console
from rich.logging import RichHandler

from quill.engine import Engine, EngineConfig
from quill.engine.config import CONFIG_FILENAME

console = Console()


def setup_logging(verbose: bool = False) -> None:
    """Configure logging for the quill CLI.

    Log levels:
    - Normal: Only warnings/errors shown
    - Verbose (-v): INFO level - shows precompilation and cache activity
    - Debug (QUILL_DEBUG=1): DEBUG level - shows everything
    """
    debug = bool(os.environ.get("QUILL_DEBUG"))
    if debug:
        level = logging.DEBUG
    elif verbose:
        level = logging.INFO
    else:
        level = logging.WARNING

    handler = RichHandler(
        console=console,
        show_time=verbose,
        show_path=debug,
        rich_tracebacks=True,
    )
    handler.setFormatter(logging.Formatter("%(message)s"))

    quill_logger = logging.getLogger("quill")
    quill_logger.setLevel(level)
    quill_logger.handlers = [handler]
    quill_logger.propagate = False


def find_config_file() -> Optional[Path]:
    """Find quill.yaml in current directory or parents."""
    cwd = Path.cwd()
    for parent in [cwd] + list(cwd.parents):
        candidate = parent / CONFIG_FILENAME
        if candidate.exists():
            return candidate
    return None


def build_engine(views: Optional[Path] = None, config_path: Optional[Path] = None) -> Engine:
    """Create an engine from an explicit views dir and/or a quill.yaml.

    Without either, quill.yaml is searched upwards from the cwd and the
    views directory falls back to ./views.
    """
    if config_path is None and views is None:
        config_path = find_config_file()

    config = EngineConfig.load(config_path) if config_path else EngineConfig()
    if views is not None:
        return Engine(views, config=config)
    if config.views_path is None:
        return Engine(Path.cwd() / "views", config=config)
    return Engine(config=config)


def load_data(path: Optional[Path]) -> Dict[str, Any]:
    """Read template data from a YAML or JSON file."""
    if path is None:
        return {}
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Data file {path} must contain a mapping")
    return data
