"""Closed value model shared by the renderer and the built-in functions.

Everything entering a render is normalised to None, bool, int, float, str,
list or dict. Markup strings, loop views and callables pass through.
"""

from __future__ import annotations

import dataclasses
import json
from collections.abc import Mapping
from typing import Any

from jinja2 import is_undefined
from markupsafe import Markup
from pydantic import BaseModel

from quill.runtime.loop import LoopView

SCALARS = (str, int, float, bool, type(None))


def normalize(value: Any) -> Any:
    """Convert an arbitrary Python value into the closed value model."""
    if isinstance(value, SCALARS) or isinstance(value, (Markup, LoopView)):
        return value
    if is_undefined(value):
        return None
    if isinstance(value, BaseModel):
        return normalize(value.model_dump())
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return normalize(dataclasses.asdict(value))
    if isinstance(value, Mapping):
        return {str(k): normalize(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [normalize(v) for v in value]
    if callable(value):
        return value
    if hasattr(value, "__dict__"):
        return {
            k: normalize(v) for k, v in vars(value).items() if not k.startswith("_")
        }
    return str(value)


def normalize_data(data: Mapping[str, Any] | None) -> dict:
    if not data:
        return {}
    return {str(k): normalize(v) for k, v in data.items()}


def is_empty(value: Any) -> bool:
    """PHP-style emptiness: undefined, None, False, 0, "", "0" and empty containers."""
    if value is None or is_undefined(value):
        return True
    if isinstance(value, bool):
        return not value
    if isinstance(value, (int, float)):
        return value == 0
    if isinstance(value, str):
        return value == "" or value == "0"
    if isinstance(value, (list, dict, tuple, set)):
        return len(value) == 0
    return False


def is_set(value: Any) -> bool:
    return value is not None and not is_undefined(value)


def to_text(value: Any) -> str:
    """Render a value as template output text."""
    if value is None or is_undefined(value):
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, str):
        return value
    if isinstance(value, (list, dict)):
        return json.dumps(value, default=str, ensure_ascii=False)
    return str(value)


def to_number(value: Any) -> float:
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return 0.0
    return 0.0


def to_int(value: Any) -> int:
    return int(to_number(value))
