"""Template loaders.

A loader maps dotted template names (`pages.home`) to source text plus a
modification marker. The cache compares markers to decide whether a compiled
template is still valid.
"""

from __future__ import annotations

import hashlib
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Hashable, List, Mapping

from quill.engine.config import DEFAULT_EXTENSION
from quill.exceptions import TemplateNotFoundError


def checksum(content: str) -> str:
    return hashlib.md5(content.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class TemplateSource:
    name: str
    source: str
    marker: Hashable
    origin: str  # file path or "<memory>"


class TemplateLoader(ABC):
    """Interface for template sources."""

    @abstractmethod
    def get_source(self, name: str) -> TemplateSource:
        """Load a template.

        Raises:
            TemplateNotFoundError: If no template has that name.
        """

    @abstractmethod
    def marker(self, name: str) -> Hashable:
        """Current modification marker for a template; cheap to compute."""

    @abstractmethod
    def list_templates(self) -> List[str]:
        """All template names this loader can serve, sorted."""

    def exists(self, name: str) -> bool:
        try:
            self.marker(name)
        except TemplateNotFoundError:
            return False
        return True


class FileSystemLoader(TemplateLoader):
    """Loads `<views_path>/<dotted/name><extension>` files."""

    def __init__(self, views_path: Path | str, extension: str = DEFAULT_EXTENSION):
        self.views_path = Path(views_path)
        self.extension = extension

    def path_for(self, name: str) -> Path:
        relative = name.replace(".", "/") + self.extension
        return self.views_path / relative

    def get_source(self, name: str) -> TemplateSource:
        path = self.path_for(name)
        try:
            source = path.read_text(encoding="utf-8")
            stat = path.stat()
        except (FileNotFoundError, IsADirectoryError, NotADirectoryError):
            raise TemplateNotFoundError(name)
        return TemplateSource(name, source, (stat.st_mtime_ns, checksum(source)), str(path))

    def marker(self, name: str) -> Hashable:
        path = self.path_for(name)
        try:
            mtime = path.stat().st_mtime_ns
            source = path.read_text(encoding="utf-8")
        except (FileNotFoundError, IsADirectoryError, NotADirectoryError):
            raise TemplateNotFoundError(name)
        return (mtime, checksum(source))

    def list_templates(self) -> List[str]:
        if not self.views_path.is_dir():
            return []
        names = []
        for path in self.views_path.rglob(f"*{self.extension}"):
            if not path.is_file():
                continue
            relative = path.relative_to(self.views_path).as_posix()
            names.append(relative[: -len(self.extension)].replace("/", "."))
        return sorted(names)


class DictLoader(TemplateLoader):
    """Serves templates from an in-memory mapping."""

    def __init__(self, templates: Mapping[str, str] | None = None):
        self.templates: Dict[str, str] = dict(templates or {})

    def get_source(self, name: str) -> TemplateSource:
        if name not in self.templates:
            raise TemplateNotFoundError(name)
        source = self.templates[name]
        return TemplateSource(name, source, checksum(source), "<memory>")

    def marker(self, name: str) -> Hashable:
        if name not in self.templates:
            raise TemplateNotFoundError(name)
        return checksum(self.templates[name])

    def list_templates(self) -> List[str]:
        return sorted(self.templates)
