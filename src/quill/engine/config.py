"""Configuration parsing for quill.yaml"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, field_validator

DEFAULT_EXTENSION = ".quill"
CONFIG_FILENAME = "quill.yaml"


class EngineConfig(BaseModel):
    """Engine options, from quill.yaml or keyword arguments"""

    views_path: Path | None = None
    extension: str = DEFAULT_EXTENSION
    development: bool = False  # disables the compiled-template cache
    while_limit: int = 1000
    component_prefix: str = "components"
    environment: str = "production"  # seen by @env/@production when data has no `env`
    shared: dict[str, Any] = {}

    @field_validator("extension")
    @classmethod
    def _dotted_extension(cls, value: str) -> str:
        if value and not value.startswith("."):
            return "." + value
        return value

    @field_validator("while_limit")
    @classmethod
    def _positive_limit(cls, value: int) -> int:
        if value < 1:
            raise ValueError("while_limit must be at least 1")
        return value

    @classmethod
    def load(cls, path: Path) -> "EngineConfig":
        """Load config from yaml file; a missing file yields defaults.

        A relative `views_path` is taken relative to the config file.
        """
        if not path.exists():
            return cls()

        with open(path) as f:
            data = yaml.safe_load(f) or {}

        config = cls.model_validate(data)
        if config.views_path is not None and not config.views_path.is_absolute():
            config.views_path = (path.parent / config.views_path).resolve()
        return config
