"""Expression rewriting and evaluation.

Template expressions are written in a PHP-flavoured syntax (`$user->name`,
`$a && !$b`, `['k' => $v]`). They are rewritten textually into Jinja2
expression syntax and compiled once with a sandboxed Jinja2 environment.

The rewrite is token based and best-effort. It never touches string
literals, but it is not a full parser. Operator precedence after rewriting
is whatever Jinja2 imposes.

Rewrites applied:
    $name               -> name
    a->b                -> a.b
    a . b (concat)      -> a ~ b
    === / ==            -> ==
    !== / !=            -> !=
    && / || / !         -> and / or / not
    null                -> none
    a > b, a >= b ...   -> gt(a, b), gte(a, b) ...
    a ?? b              -> coalesce(a, b)
    c ? a : b           -> (a if c else b)
    x['key']            -> index(x, 'key')
    ['k' => v]          -> {'k': v}
    fn(args)            -> registry function `fn`

Bare function calls are looked up in the function registry at evaluation
time and never in template data, so `$title` and `title(...)` can coexist.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from jinja2 import ChainableUndefined, TemplateSyntaxError, UndefinedError
from jinja2.exceptions import SecurityError
from jinja2.sandbox import SandboxedEnvironment

from quill.exceptions import CompileError, ExpressionError, QuillError

FUNCTION_PREFIX = "_fn_"

_OPERATORS = ["===", "!==", "==", "!=", ">=", "<=", "=>", "->", "&&", "||", "??", "**", "//"]
_KEYWORDS = {"and", "or", "not", "in", "is", "if", "else"}
_CONSTANTS = {
    "null": "none",
    "NULL": "none",
    "TRUE": "true",
    "FALSE": "false",
}
_COMPARISONS = {">=": "gte", "<=": "lte", ">": "gt", "<": "lt"}
_PAIRS = {"(": ")", "[": "]", "{": "}"}


class _DataEnvironment(SandboxedEnvironment):
    """Sandbox where `a.b` on a mapping reads the key before any attribute.

    Template data is normalized to dicts, so `$order->items` must not resolve
    to `dict.items`.
    """

    def getattr(self, obj: Any, attribute: str) -> Any:
        if isinstance(obj, Mapping):
            try:
                return obj[attribute]
            except (KeyError, TypeError):
                pass
        return super().getattr(obj, attribute)


_environment = _DataEnvironment(undefined=ChainableUndefined)

Item = Tuple[str, Any]


@dataclass
class _Group:
    open: str
    items: List[Item] = field(default_factory=list)


def _scan(source: str) -> List[Item]:
    tokens: List[Item] = []
    i = 0
    n = len(source)

    while i < n:
        ch = source[i]
        if ch.isspace():
            while i < n and source[i].isspace():
                i += 1
            tokens.append(("ws", " "))
        elif ch in ("'", '"'):
            j = i + 1
            while j < n and source[j] != ch:
                j += 2 if source[j] == "\\" else 1
            tokens.append(("str", source[i : j + 1]))
            i = j + 1
        elif ch == "$" and i + 1 < n and (source[i + 1].isalpha() or source[i + 1] == "_"):
            j = i + 1
            while j < n and (source[j].isalnum() or source[j] == "_"):
                j += 1
            tokens.append(("var", source[i + 1 : j]))
            i = j
        elif ch.isalnum() or ch == "_":
            j = i
            while j < n and (source[j].isalnum() or source[j] == "_"):
                j += 1
            tokens.append(("name", source[i:j]))
            i = j
        elif ch in _PAIRS:
            tokens.append(("open", ch))
            i += 1
        elif ch in ")]}":
            tokens.append(("close", ch))
            i += 1
        elif ch == ",":
            tokens.append(("comma", ","))
            i += 1
        else:
            op = next((o for o in _OPERATORS if source.startswith(o, i)), ch)
            tokens.append(("op", op))
            i += len(op)

    return tokens


def _nest(tokens: List[Item]) -> List[Item]:
    """Fold bracketed runs into `_Group` items. Unclosed groups end at EOF."""
    root: List[Item] = []
    stack: List[List[Item]] = [root]
    for kind, value in tokens:
        if kind == "open":
            group = _Group(value)
            stack[-1].append(("group", group))
            stack.append(group.items)
        elif kind == "close" and len(stack) > 1:
            stack.pop()
        else:
            stack[-1].append((kind, value))
    return root


class _Rewriter:
    def __init__(self) -> None:
        self.functions: Set[str] = set()

    def rewrite(self, items: List[Item], dict_mode: bool = False) -> str:
        return self._commas(self._atoms(items), dict_mode)

    # -- primaries --------------------------------------------------------

    def _atoms(self, items: List[Item]) -> List[Item]:
        out: List[Item] = []
        i = 0
        while i < len(items):
            kind, value = items[i]
            nxt = items[i + 1] if i + 1 < len(items) else None

            if kind == "name" and value in _KEYWORDS:
                out.append(("kw", value))
            elif kind == "name" and nxt and nxt[0] == "group" and nxt[1].open == "(":
                self.functions.add(value)
                out.append(("atom", f"{FUNCTION_PREFIX}{value}({self.rewrite(nxt[1].items)})"))
                i += 1
            elif kind == "name":
                out.append(("atom", _CONSTANTS.get(value, value)))
            elif kind in ("var", "str"):
                out.append(("atom", value))
            elif kind == "group":
                if value.open == "[" and out and out[-1][0] == "atom":
                    self.functions.add("index")
                    target = out.pop()[1]
                    out.append(("atom", f"{FUNCTION_PREFIX}index({target}, {self.rewrite(value.items)})"))
                else:
                    out.append(("atom", self._group(value)))
            elif kind == "op" and value in ("->", "."):
                member = nxt is not None and nxt[0] == "name"
                if member and out and out[-1][0] == "atom":
                    name = nxt[1]
                    target = out.pop()[1]
                    i += 1
                    call = items[i + 1] if i + 1 < len(items) else None
                    if call and call[0] == "group" and call[1].open == "(":
                        out.append(("atom", f"{target}.{name}({self.rewrite(call[1].items)})"))
                        i += 1
                    else:
                        out.append(("atom", f"{target}.{name}"))
                else:
                    out.append(("op", "~"))
            elif kind == "op" and value in ("===", "=="):
                out.append(("op", "=="))
            elif kind == "op" and value in ("!==", "!="):
                out.append(("op", "!="))
            elif kind == "op" and value == "&&":
                out.append(("kw", "and"))
            elif kind == "op" and value == "||":
                out.append(("kw", "or"))
            elif kind == "op" and value == "!":
                out.append(("kw", "not"))
            else:
                out.append((kind, value))
            i += 1
        return out

    def _group(self, group: _Group) -> str:
        if group.open == "[":
            if any(kind == "op" and value == "=>" for kind, value in group.items):
                return "{" + self.rewrite(group.items, dict_mode=True) + "}"
            return "[" + self.rewrite(group.items) + "]"
        if group.open == "{":
            return "{" + self.rewrite(group.items) + "}"
        return "(" + self.rewrite(group.items) + ")"

    # -- operators, loosest first ----------------------------------------

    def _commas(self, items: List[Item], dict_mode: bool) -> str:
        parts: List[List[Item]] = [[]]
        for item in items:
            if item[0] == "comma":
                parts.append([])
            else:
                parts[-1].append(item)

        rendered = []
        position = 0
        for part in parts:
            if not any(kind != "ws" for kind, _ in part):
                continue
            arrow = _find(part, "=>") if dict_mode else None
            if arrow is not None:
                key = self._ternary(part[:arrow])
                value = self._ternary(part[arrow + 1 :])
                rendered.append(f"{key}: {value}")
            elif dict_mode:
                # Unkeyed entries in a keyed array get positional keys.
                rendered.append(f"{position}: {self._ternary(part)}")
                position += 1
            else:
                rendered.append(self._ternary(part))
        return ", ".join(rendered)

    def _ternary(self, part: List[Item]) -> str:
        q = _find(part, "?")
        if q is None:
            return self._coalesce(part)

        cond, rest = part[:q], _lstrip(part[q + 1 :])
        if rest and rest[0] == ("op", ":"):
            return f"({self._coalesce(cond)} or {self._ternary(rest[1:])})"

        depth = 0
        for j, item in enumerate(rest):
            if item == ("op", "?"):
                depth += 1
            elif item == ("op", ":"):
                if depth == 0:
                    then, otherwise = rest[:j], rest[j + 1 :]
                    return (
                        f"({self._ternary(then)} if {self._coalesce(cond)} "
                        f"else {self._ternary(otherwise)})"
                    )
                depth -= 1
        return self._coalesce(part)

    def _coalesce(self, part: List[Item]) -> str:
        chunks = _split(part, ("op", "??"))
        if len(chunks) == 1:
            return self._bool(part)
        self.functions.add("coalesce")
        args = ", ".join(self._bool(chunk) for chunk in chunks)
        return f"{FUNCTION_PREFIX}coalesce({args})"

    def _bool(self, part: List[Item]) -> str:
        out: List[Item] = []
        chunk: List[Item] = []
        for item in part:
            if item[0] == "kw" and item[1] in ("and", "or", "not"):
                if chunk:
                    out.append(("atom", self._compare(chunk)))
                    chunk = []
                out.append(item)
            else:
                chunk.append(item)
        if chunk:
            out.append(("atom", self._compare(chunk)))
        return _join(out)

    def _compare(self, chunk: List[Item]) -> str:
        positions = [
            i for i, (kind, value) in enumerate(chunk)
            if kind == "op" and value in _COMPARISONS
        ]
        if len(positions) != 1:
            return _join(chunk)
        i = positions[0]
        name = _COMPARISONS[chunk[i][1]]
        self.functions.add(name)
        return f"{FUNCTION_PREFIX}{name}({_join(chunk[:i])}, {_join(chunk[i + 1 :])})"


def _find(items: List[Item], op: str) -> Optional[int]:
    for i, item in enumerate(items):
        if item == ("op", op):
            return i
    return None


def _split(items: List[Item], sep: Item) -> List[List[Item]]:
    chunks: List[List[Item]] = [[]]
    for item in items:
        if item == sep:
            chunks.append([])
        else:
            chunks[-1].append(item)
    return chunks


def _lstrip(items: List[Item]) -> List[Item]:
    i = 0
    while i < len(items) and items[i][0] == "ws":
        i += 1
    return items[i:]


def _join(items: List[Item]) -> str:
    out = ""
    for kind, value in items:
        if kind in ("ws", "kw"):
            piece = f" {value} " if kind == "kw" else " "
            if out.endswith(" ") or not out:
                piece = piece.lstrip()
            out += piece
        else:
            out += value
    return out.strip()


def rewrite(source: str) -> Tuple[str, Set[str]]:
    """Rewrite a template expression into Jinja2 expression syntax.

    Args:
        source: Expression as written in the template.

    Returns:
        Tuple of the rewritten code and the registry function names it calls.
    """
    rewriter = _Rewriter()
    code = rewriter.rewrite(_nest(_scan(source)))
    return code or "none", rewriter.functions


class Expression:
    """A compiled template expression.

    Equality and repr use the source text so compiled programs hash stably.
    """

    __slots__ = ("source", "code", "functions", "_compiled")

    def __init__(self, source: str):
        self.source = source.strip()
        self.code, functions = rewrite(self.source)
        self.functions = frozenset(functions)
        try:
            self._compiled = _environment.compile_expression(
                self.code, undefined_to_none=False
            )
        except TemplateSyntaxError as e:
            raise CompileError(f"Invalid expression '{self.source}': {e.message}")

    def evaluate(
        self, variables: Dict[str, Any], resolve: Callable[[str], Callable[..., Any]]
    ) -> Any:
        """Evaluate against template variables.

        Args:
            variables: Names visible to the expression.
            resolve: Maps a function name to a callable; raises
                UnknownFunctionError for unknown names.

        Returns:
            The raw value, which may be a jinja2 Undefined.
        """
        scope = dict(variables)
        for name in self.functions:
            scope[FUNCTION_PREFIX + name] = resolve(name)
        try:
            return self._compiled(scope)
        except QuillError:
            raise
        except (UndefinedError, SecurityError, TypeError, ValueError,
                ArithmeticError, LookupError, AttributeError) as e:
            raise ExpressionError(self.source, e) from e

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Expression) and other.source == self.source

    def __hash__(self) -> int:
        return hash(self.source)

    def __repr__(self) -> str:
        return f"Expression({self.source!r})"
