"""Compiled-template cache with modification-marker validation."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, Hashable, List, Optional

from quill.compiler.spec import ResolvedTemplate
from quill.exceptions import TemplateNotFoundError
from quill.runtime.locks import RWLock

log = logging.getLogger(__name__)


@dataclass
class CachedTemplate:
    template: ResolvedTemplate
    markers: Dict[str, Hashable] = field(default_factory=dict)  # per template in the chain


class TemplateCache:
    """Reader/writer-locked map of resolved templates.

    Only successful compilations are stored. An entry is valid while every
    template in its extends chain still has the marker it was compiled with.
    """

    def __init__(self, enabled: bool = True):
        self._lock = RWLock()
        self._entries: Dict[str, CachedTemplate] = {}
        self.enabled = enabled

    def get(self, name: str) -> Optional[CachedTemplate]:
        if not self.enabled:
            return None
        with self._lock.read():
            return self._entries.get(name)

    def set(self, name: str, template: ResolvedTemplate, markers: Dict[str, Hashable]) -> None:
        if not self.enabled:
            return
        with self._lock.write():
            self._entries[name] = CachedTemplate(template, dict(markers))

    def delete(self, name: str) -> None:
        with self._lock.write():
            self._entries.pop(name, None)

    def clear(self) -> None:
        with self._lock.write():
            self._entries.clear()

    def enable(self) -> None:
        self.enabled = True

    def disable(self) -> None:
        self.enabled = False
        self.clear()

    def size(self) -> int:
        with self._lock.read():
            return len(self._entries)

    def names(self) -> List[str]:
        with self._lock.read():
            return sorted(self._entries)

    def is_valid(self, entry: CachedTemplate, marker: Callable[[str], Hashable]) -> bool:
        """Check an entry against the loader's current markers."""
        for name, stored in entry.markers.items():
            try:
                current = marker(name)
            except TemplateNotFoundError:
                return False
            if current != stored:
                log.debug(f"Cache entry {entry.template.name} stale: {name} changed")
                return False
        return True
