"""Per-render state and the engine-wide shared data table."""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional

from quill.runtime.locks import RWLock
from quill.runtime.values import normalize, normalize_data


class RenderContext:
    """Mutable store for one render call.

    Holds template data, shared data, rendered sections and stacks, validation
    errors and old input. Every accessor is guarded by a reader/writer lock.
    """

    def __init__(
        self,
        data: Optional[Mapping[str, Any]] = None,
        shared: Optional[Mapping[str, Any]] = None,
    ):
        self._lock = RWLock()
        self._data: Dict[str, Any] = normalize_data(data)
        self._shared: Dict[str, Any] = dict(shared or {})
        self._sections: Dict[str, str] = {}
        self._stacks: Dict[str, List[str]] = {}
        self._errors: Dict[str, List[str]] = {}
        self._old: Dict[str, Any] = {}

        errors = self._data.get("errors")
        if isinstance(errors, dict):
            self._errors = _normalize_errors(errors)
        old = self._data.get("old")
        if isinstance(old, dict):
            self._old = dict(old)

    # -- data ---------------------------------------------------------------

    def set(self, key: str, value: Any) -> None:
        with self._lock.write():
            self._data[key] = normalize(value)

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock.read():
            if key in self._data:
                return self._data[key]
            return self._shared.get(key, default)

    def has(self, key: str) -> bool:
        with self._lock.read():
            return key in self._data or key in self._shared

    def merge(self, data: Optional[Mapping[str, Any]]) -> None:
        normalized = normalize_data(data)
        with self._lock.write():
            self._data.update(normalized)

    def variables(self) -> Dict[str, Any]:
        """Shared data overlaid with call data, as seen by expressions."""
        with self._lock.read():
            merged = dict(self._shared)
            merged.update(self._data)
            return merged

    # -- stacks -------------------------------------------------------------

    def push_stack(self, name: str, content: str) -> None:
        with self._lock.write():
            self._stacks.setdefault(name, []).append(content)

    def prepend_stack(self, name: str, content: str) -> None:
        with self._lock.write():
            self._stacks.setdefault(name, []).insert(0, content)

    def get_stack(self, name: str) -> List[str]:
        with self._lock.read():
            return list(self._stacks.get(name, []))

    # -- sections -----------------------------------------------------------

    def set_section(self, name: str, content: str) -> None:
        with self._lock.write():
            self._sections[name] = content

    def get_section(self, name: str) -> str:
        with self._lock.read():
            return self._sections.get(name, "")

    def has_section(self, name: str) -> bool:
        with self._lock.read():
            return name in self._sections

    # -- validation errors and old input ------------------------------------

    def set_errors(self, errors: Mapping[str, Any]) -> None:
        normalized = _normalize_errors(errors)
        with self._lock.write():
            self._errors = normalized

    def get_errors(self) -> Dict[str, List[str]]:
        with self._lock.read():
            return {k: list(v) for k, v in self._errors.items()}

    def has_error(self, field: str) -> bool:
        with self._lock.read():
            return bool(self._errors.get(field))

    def get_error(self, field: str) -> str:
        """First error message for a field, or an empty string."""
        with self._lock.read():
            messages = self._errors.get(field)
            return messages[0] if messages else ""

    def set_old(self, old: Mapping[str, Any]) -> None:
        with self._lock.write():
            self._old = dict(old)

    def get_old(self, field: str, default: Any = "") -> Any:
        with self._lock.read():
            return self._old.get(field, default)

    # -- scoping ------------------------------------------------------------

    def clone(self) -> "RenderContext":
        """Copy every table one level deep for an isolated sub-scope."""
        with self._lock.read():
            other = RenderContext.__new__(RenderContext)
            other._lock = RWLock()
            other._data = dict(self._data)
            other._shared = self._shared
            other._sections = dict(self._sections)
            other._stacks = {k: list(v) for k, v in self._stacks.items()}
            other._errors = {k: list(v) for k, v in self._errors.items()}
            other._old = dict(self._old)
            return other


def _normalize_errors(errors: Mapping[str, Any]) -> Dict[str, List[str]]:
    result: Dict[str, List[str]] = {}
    for field, messages in errors.items():
        if isinstance(messages, (list, tuple)):
            result[str(field)] = [str(m) for m in messages]
        elif messages is not None:
            result[str(field)] = [str(messages)]
    return result


class SharedData:
    """Engine-owned data visible to every render.

    Written while the engine is configured, then read by concurrent renders.
    """

    def __init__(self, initial: Optional[Mapping[str, Any]] = None):
        self._lock = RWLock()
        self._values: Dict[str, Any] = normalize_data(initial)

    def set(self, key: str, value: Any) -> None:
        with self._lock.write():
            self._values[key] = normalize(value)

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock.read():
            return self._values.get(key, default)

    def all(self) -> Dict[str, Any]:
        with self._lock.read():
            return dict(self._values)
