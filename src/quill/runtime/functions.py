"""Function registry and built-in template functions.

Functions are plain callables over the closed value model. Functions that
need the current RenderContext are marked with `@context_function` and get
it bound as their first argument at call time.
"""

from __future__ import annotations

import functools
import json
import math
import re
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional
from urllib.parse import quote_plus

from markupsafe import Markup, escape

from quill.exceptions import UnknownFunctionError
from quill.runtime.locks import RWLock
from quill.runtime.values import (
    is_empty,
    is_set,
    normalize,
    to_int,
    to_number,
    to_text,
)

BUILTINS: Dict[str, Callable[..., Any]] = {}


def builtin(name: str):
    """Register a function in BUILTINS under a template-facing name."""

    def decorator(fn):
        BUILTINS[name] = fn
        return fn

    return decorator


def context_function(fn):
    """Mark a function as taking the RenderContext as its first argument."""
    fn.needs_context = True
    return fn


class FunctionRegistry:
    """Thread-safe name -> callable table."""

    def __init__(self, functions: Optional[Dict[str, Callable[..., Any]]] = None):
        self._lock = RWLock()
        self._functions: Dict[str, Callable[..., Any]] = dict(
            BUILTINS if functions is None else functions
        )

    def register(self, name: str, fn: Callable[..., Any], needs_context: bool = False) -> None:
        if needs_context:
            fn = context_function(fn)
        with self._lock.write():
            self._functions[name] = fn

    def has(self, name: str) -> bool:
        with self._lock.read():
            return name in self._functions

    def get(self, name: str) -> Callable[..., Any]:
        with self._lock.read():
            fn = self._functions.get(name)
        if fn is None:
            raise UnknownFunctionError(name)
        return fn

    def names(self) -> List[str]:
        with self._lock.read():
            return sorted(self._functions)

    def bind(self, name: str, context: Any) -> Callable[..., Any]:
        """Look up a function, binding the context if it asks for one."""
        fn = self.get(name)
        if getattr(fn, "needs_context", False):
            return functools.partial(fn, context)
        return fn

    def copy(self) -> "FunctionRegistry":
        with self._lock.read():
            return FunctionRegistry(dict(self._functions))


def _plain(value: Any) -> Any:
    return None if not is_set(value) else value


def _items(value: Any) -> list:
    value = _plain(value)
    if value is None:
        return []
    if isinstance(value, dict):
        return list(value.values())
    if isinstance(value, (list, tuple, set)):
        return list(value)
    return [value]


def _field(item: Any, key: str) -> Any:
    if isinstance(item, dict):
        return item.get(key)
    return getattr(item, key, None)


# ----------------------------------------------------------------------
# Strings
# ----------------------------------------------------------------------


@builtin("upper")
def upper(s):
    return to_text(s).upper()


@builtin("lower")
def lower(s):
    return to_text(s).lower()


@builtin("title")
def title(s):
    return to_text(s).title()


@builtin("trim")
def trim(s, chars=None):
    return to_text(s).strip(chars)


@builtin("ltrim")
def ltrim(s, chars=None):
    return to_text(s).lstrip(chars)


@builtin("rtrim")
def rtrim(s, chars=None):
    return to_text(s).rstrip(chars)


@builtin("replace")
def replace(s, old, new):
    return to_text(s).replace(to_text(old), to_text(new))


@builtin("contains")
def contains(haystack, needle):
    haystack = _plain(haystack)
    if isinstance(haystack, (list, dict)):
        return needle in haystack
    return to_text(needle) in to_text(haystack)


@builtin("hasPrefix")
def has_prefix(s, prefix):
    return to_text(s).startswith(to_text(prefix))


@builtin("hasSuffix")
def has_suffix(s, suffix):
    return to_text(s).endswith(to_text(suffix))


@builtin("split")
def split(s, sep=","):
    return to_text(s).split(to_text(sep))


@builtin("join")
def join(items, sep=", "):
    return to_text(sep).join(to_text(i) for i in _items(items))


@builtin("repeat")
def repeat(s, n):
    return to_text(s) * max(to_int(n), 0)


@builtin("substr")
def substr(s, start, length=None):
    text = to_text(s)
    start = to_int(start)
    if start < 0:
        start = max(len(text) + start, 0)
    if length is None or to_int(length) < 0:
        return text[start:]
    return text[start : start + to_int(length)]


@builtin("length")
def length(value):
    value = _plain(value)
    if value is None:
        return 0
    if isinstance(value, (list, dict, str)):
        return len(value)
    return len(to_text(value))


@builtin("nl2br")
def nl2br(s):
    return Markup("<br>\n").join(escape(to_text(s)).split("\n"))


@builtin("ucfirst")
def ucfirst(s):
    text = to_text(s)
    return text[:1].upper() + text[1:]


@builtin("lcfirst")
def lcfirst(s):
    text = to_text(s)
    return text[:1].lower() + text[1:]


@builtin("slug")
def slug(s, sep="-"):
    text = to_text(s).strip().lower()
    text = re.sub(r"[^a-z0-9\s-]", "", text)
    return re.sub(r"[\s-]+", sep, text).strip(sep)


@builtin("limit")
def limit(s, n, suffix="..."):
    text = to_text(s)
    n = to_int(n)
    return text if len(text) <= n else text[:n] + suffix


@builtin("wordLimit")
def word_limit(s, n, suffix="..."):
    words = to_text(s).split()
    n = to_int(n)
    return " ".join(words) if len(words) <= n else " ".join(words[:n]) + suffix


# ----------------------------------------------------------------------
# HTML
# ----------------------------------------------------------------------


@builtin("e")
def e(s):
    return escape(to_text(s))


@builtin("raw")
def raw(s):
    return Markup(to_text(s))


@builtin("url")
def url(s):
    return quote_plus(to_text(s))


# ----------------------------------------------------------------------
# Lists
# ----------------------------------------------------------------------


@builtin("first")
def first(items, default=None):
    values = _items(items) if not isinstance(items, str) else list(items)
    return values[0] if values else default


@builtin("last")
def last(items, default=None):
    values = _items(items) if not isinstance(items, str) else list(items)
    return values[-1] if values else default


@builtin("reverse")
def reverse(items):
    if isinstance(items, str):
        return items[::-1]
    return list(reversed(_items(items)))


def _sort_key(value):
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return (0, value, "")
    return (1, 0, to_text(value))


@builtin("sortAsc")
def sort_asc(items, key=None):
    values = _items(items)
    if key is not None:
        return sorted(values, key=lambda v: _sort_key(_field(v, key)))
    return sorted(values, key=_sort_key)


@builtin("sortDesc")
def sort_desc(items, key=None):
    return list(reversed(sort_asc(items, key)))


@builtin("unique")
def unique(items):
    seen: List[Any] = []
    for value in _items(items):
        if value not in seen:
            seen.append(value)
    return seen


@builtin("pluck")
def pluck(items, key):
    return [_field(item, key) for item in _items(items) if _field(item, key) is not None]


@builtin("where")
def where(items, key, value):
    return [item for item in _items(items) if _field(item, key) == value]


@builtin("groupBy")
def group_by(items, key):
    groups: Dict[str, list] = {}
    for item in _items(items):
        groups.setdefault(to_text(_field(item, key)), []).append(item)
    return groups


@builtin("chunk")
def chunk(items, size):
    values = _items(items)
    size = to_int(size)
    if size <= 0:
        return [values]
    return [values[i : i + size] for i in range(0, len(values), size)]


@builtin("flatten")
def flatten(items):
    result = []
    for value in _items(items):
        if isinstance(value, list):
            result.extend(flatten(value))
        else:
            result.append(value)
    return result


@builtin("slice")
def slice_(items, start, end=None):
    values = _items(items) if not isinstance(items, str) else items
    return values[to_int(start) : None if end is None else to_int(end)]


@builtin("merge")
def merge(a, b):
    a, b = _plain(a), _plain(b)
    if isinstance(a, dict) and isinstance(b, dict):
        return {**a, **b}
    return _items(a) + _items(b)


@builtin("count")
def count(value):
    return length(value)


# ----------------------------------------------------------------------
# Maps
# ----------------------------------------------------------------------


@builtin("dict")
def dict_(*pairs):
    if len(pairs) % 2:
        raise ValueError("dict expects an even number of arguments")
    return {to_text(pairs[i]): normalize(pairs[i + 1]) for i in range(0, len(pairs), 2)}


@builtin("keys")
def keys(mapping):
    mapping = _plain(mapping)
    if isinstance(mapping, dict):
        return list(mapping.keys())
    return list(range(len(_items(mapping))))


@builtin("values")
def values(mapping):
    return _items(mapping)


@builtin("hasKey")
def has_key(mapping, key):
    mapping = _plain(mapping)
    return isinstance(mapping, dict) and key in mapping


# ----------------------------------------------------------------------
# Numbers
# ----------------------------------------------------------------------


def _num(value):
    """Keep ints as ints so `add(1, 2)` prints `3`."""
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    number = to_number(value)
    return int(number) if number.is_integer() and not isinstance(value, float) else number


@builtin("add")
def add(a, b):
    return _num(a) + _num(b)


@builtin("sub")
def sub(a, b):
    return _num(a) - _num(b)


@builtin("mul")
def mul(a, b):
    return _num(a) * _num(b)


@builtin("div")
def div(a, b):
    divisor = to_number(b)
    if divisor == 0:
        return 0
    return to_number(a) / divisor


@builtin("mod")
def mod(a, b):
    divisor = to_int(b)
    if divisor == 0:
        return 0
    return to_int(a) % divisor


@builtin("round")
def round_(n, precision=0):
    precision = to_int(precision)
    value = round(to_number(n), precision)
    return int(value) if precision == 0 else value


@builtin("floor")
def floor(n):
    return math.floor(to_number(n))


@builtin("ceil")
def ceil(n):
    return math.ceil(to_number(n))


@builtin("abs")
def abs_(n):
    return abs(_num(n))


def _numbers(args: Iterable[Any]) -> list:
    args = list(args)
    if len(args) == 1 and isinstance(args[0], list):
        args = args[0]
    return [_num(a) for a in args]


@builtin("min")
def min_(*args):
    numbers = _numbers(args)
    return min(numbers) if numbers else None


@builtin("max")
def max_(*args):
    numbers = _numbers(args)
    return max(numbers) if numbers else None


@builtin("currency")
def currency(n, symbol="$"):
    return f"{symbol}{to_number(n):,.2f}"


@builtin("number")
def number(n, decimals=0):
    return f"{to_number(n):,.{to_int(decimals)}f}"


@builtin("percent")
def percent(n, decimals=0):
    return f"{to_number(n) * 100:.{to_int(decimals)}f}%"


# ----------------------------------------------------------------------
# Dates
# ----------------------------------------------------------------------

_PHP_DATE = {
    "d": lambda t: f"{t.day:02d}",
    "j": lambda t: str(t.day),
    "D": lambda t: t.strftime("%a"),
    "l": lambda t: t.strftime("%A"),
    "N": lambda t: str(t.isoweekday()),
    "m": lambda t: f"{t.month:02d}",
    "n": lambda t: str(t.month),
    "M": lambda t: t.strftime("%b"),
    "F": lambda t: t.strftime("%B"),
    "Y": lambda t: str(t.year),
    "y": lambda t: f"{t.year % 100:02d}",
    "H": lambda t: f"{t.hour:02d}",
    "G": lambda t: str(t.hour),
    "h": lambda t: f"{(t.hour % 12) or 12:02d}",
    "g": lambda t: str((t.hour % 12) or 12),
    "i": lambda t: f"{t.minute:02d}",
    "s": lambda t: f"{t.second:02d}",
    "A": lambda t: "PM" if t.hour >= 12 else "AM",
    "a": lambda t: "pm" if t.hour >= 12 else "am",
    "U": lambda t: str(int(t.timestamp())),
}


def _to_datetime(value: Any) -> datetime:
    value = _plain(value)
    if value is None:
        return datetime.now(timezone.utc)
    if isinstance(value, datetime):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return datetime.fromtimestamp(value, timezone.utc)
    return datetime.fromisoformat(to_text(value).replace("Z", "+00:00"))


@builtin("date")
def date(fmt="Y-m-d", value=None):
    """Format a date with PHP-style format characters. Backslash escapes."""
    moment = _to_datetime(value)
    out = []
    chars = iter(to_text(fmt))
    for ch in chars:
        if ch == "\\":
            out.append(next(chars, ""))
        elif ch in _PHP_DATE:
            out.append(_PHP_DATE[ch](moment))
        else:
            out.append(ch)
    return "".join(out)


@builtin("now")
def now():
    return datetime.now(timezone.utc)


@builtin("timestamp")
def timestamp(value=None):
    if value is None:
        return int(time.time())
    return int(_to_datetime(value).timestamp())


# ----------------------------------------------------------------------
# Comparison
# ----------------------------------------------------------------------


def _is_numeric(value: Any) -> bool:
    if value is None or isinstance(value, (int, float)):
        return True
    if isinstance(value, str):
        try:
            float(value)
        except ValueError:
            return False
        return True
    return False


def _ordered(a, b):
    a, b = _plain(a), _plain(b)
    if _is_numeric(a) and _is_numeric(b):
        return to_number(a), to_number(b)
    return to_text(a), to_text(b)


@builtin("eq")
def eq(a, b):
    return _plain(a) == _plain(b)


@builtin("ne")
def ne(a, b):
    return _plain(a) != _plain(b)


@builtin("lt")
def lt(a, b):
    x, y = _ordered(a, b)
    return x < y


@builtin("gt")
def gt(a, b):
    x, y = _ordered(a, b)
    return x > y


@builtin("lte")
def lte(a, b):
    x, y = _ordered(a, b)
    return x <= y


@builtin("gte")
def gte(a, b):
    x, y = _ordered(a, b)
    return x >= y


@builtin("and")
def and_(*args):
    return all(args)


@builtin("or")
def or_(*args):
    return any(args)


@builtin("not")
def not_(value):
    return not value


# ----------------------------------------------------------------------
# Utility
# ----------------------------------------------------------------------


@builtin("default")
def default(value, fallback):
    return fallback if is_empty(value) else value


@builtin("isset")
def isset(*values):
    return bool(values) and all(is_set(v) for v in values)


@builtin("empty")
def empty(value):
    return is_empty(value)


@builtin("json")
def json_(value, pretty=False):
    return Markup(
        json.dumps(normalize(_plain(value)), indent=2 if pretty else None,
                   ensure_ascii=False, default=str)
    )


@builtin("jsonDec")
def json_dec(text):
    return normalize(json.loads(to_text(text)))


@builtin("dump")
def dump(value):
    return Markup("<pre>") + escape(json_(value, pretty=True)) + Markup("</pre>")


@builtin("seq")
def seq(start, end):
    start, end = to_int(start), to_int(end)
    step = 1 if end >= start else -1
    return list(range(start, end + step, step))


@builtin("until")
def until(n):
    return list(range(max(to_int(n), 0)))


@builtin("index")
def index(container, key):
    container = _plain(container)
    if isinstance(container, dict):
        if key in container:
            return container[key]
        return container.get(to_text(key))
    if isinstance(container, (list, str)):
        i = to_int(key)
        return container[i] if -len(container) <= i < len(container) else None
    if container is not None and isinstance(key, str):
        return getattr(container, key, None)
    return None


@builtin("printf")
def printf(fmt, *args):
    return to_text(fmt) % args


@builtin("coalesce")
def coalesce(*values):
    for value in values:
        if is_set(value):
            return value
    return None


@builtin("ternary")
def ternary(condition, when_true, when_false):
    return when_true if condition else when_false


@builtin("typeof")
def typeof(value):
    value = _plain(value)
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "bool"
    if isinstance(value, int):
        return "int"
    if isinstance(value, float):
        return "float"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "array"
    if isinstance(value, dict):
        return "map"
    return type(value).__name__


@builtin("toInt")
def to_int_(value):
    return to_int(_plain(value))


@builtin("toFloat")
def to_float(value):
    return to_number(_plain(value))


@builtin("toString")
def to_string(value):
    return to_text(value)


@builtin("toBool")
def to_bool(value):
    value = _plain(value)
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


# ----------------------------------------------------------------------
# Attributes
# ----------------------------------------------------------------------


def _conditional_entries(value: Any) -> List[tuple]:
    value = _plain(value)
    if isinstance(value, dict):
        return [
            (v, True) if isinstance(k, int) else (k, v) for k, v in value.items()
        ]
    return [(v, True) for v in _items(value)]


@builtin("classArray")
def class_array(classes):
    """`['p-4', 'active' => $on]` -> `p-4 active` when $on is truthy."""
    return " ".join(to_text(name) for name, on in _conditional_entries(classes) if on)


@builtin("styleArray")
def style_array(styles):
    parts = []
    for rule, on in _conditional_entries(styles):
        if on:
            rule = to_text(rule).strip().rstrip(";")
            parts.append(rule + ";")
    return " ".join(parts)


# ----------------------------------------------------------------------
# Context-bound helpers
# ----------------------------------------------------------------------


@builtin("hasError")
@context_function
def has_error(context, field):
    return context.has_error(to_text(field))


@builtin("getError")
@context_function
def get_error(context, field):
    return context.get_error(to_text(field))


@builtin("old")
@context_function
def old(context, field, fallback=""):
    return context.get_old(to_text(field), fallback)


@builtin("concat-stack")
@context_function
def concat_stack(context, name):
    return Markup("".join(context.get_stack(to_text(name))))
