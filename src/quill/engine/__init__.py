"""Template engine, loaders, cache and configuration."""

from quill.engine.cache import TemplateCache
from quill.engine.config import EngineConfig
from quill.engine.engine import Engine
from quill.engine.loader import DictLoader, FileSystemLoader, TemplateLoader

__all__ = [
    "Engine",
    "EngineConfig",
    "TemplateCache",
    "TemplateLoader",
    "FileSystemLoader",
    "DictLoader",
]
