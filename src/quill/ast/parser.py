"""Parser - LL(1) recursive descent from tokens to the directive AST.

Block directives parse children until one of their terminators appears.
A block left open at end of input is closed leniently instead of failing.
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, List, Optional, Tuple

from quill.ast import spec
from quill.ast.lexer import Lexer, Token, TokenKind
from quill.exceptions import ParseError

log = logging.getLogger(__name__)


# Directives that need an argument list to mean anything.
REQUIRES_ARGS = {
    "if", "elseif", "unless", "foreach", "forelse", "for", "while", "switch",
    "case", "section", "push", "pushOnce", "prepend", "component", "extends",
    "include", "includeIf", "includeWhen", "includeUnless", "includeFirst",
    "each", "isset", "error",
}

# Closing directives that are dropped when they appear without an opener.
TERMINATORS = {
    "else", "elseif", "endif", "endunless", "case", "default", "endswitch",
    "endfor", "endforeach", "endforelse", "endwhile", "endsection", "show",
    "stop", "endpush", "endPushOnce", "endprepend", "endcomponent", "slot",
    "endslot", "endphp", "endisset", "endempty", "endauth", "endguest",
    "endenv", "endproduction", "enderror", "endonce",
}


# ----------------------------------------------------------------------
# Argument helpers
# ----------------------------------------------------------------------


def split_args(args: Optional[str]) -> List[str]:
    """Split a directive argument string on top-level commas.

    Commas nested inside (), [] or {} or inside quoted strings are kept.

    Example:
        >>> split_args("'name', ['a' => 1, 'b' => 2]")
        ["'name'", "['a' => 1, 'b' => 2]"]
    """
    if not args:
        return []

    parts: List[str] = []
    depth = 0
    quote: Optional[str] = None
    escaped = False
    start = 0

    for i, ch in enumerate(args):
        if quote:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == quote:
                quote = None
            continue
        if ch in ("'", '"'):
            quote = ch
        elif ch in "([{":
            depth += 1
        elif ch in ")]}":
            depth -= 1
        elif ch == "," and depth == 0:
            parts.append(args[start:i].strip())
            start = i + 1

    tail = args[start:].strip()
    if tail or parts:
        parts.append(tail)
    return parts


def is_quoted(value: str) -> bool:
    value = value.strip()
    return len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"')


def trim_quotes(value: Optional[str]) -> str:
    """Strip whitespace and one pair of matching surrounding quotes."""
    if value is None:
        return ""
    value = value.strip()
    if is_quoted(value):
        return value[1:-1]
    return value


def parse_env_list(args: Optional[str]) -> List[str]:
    """Parse `'local'` or `['local', 'staging']` into a list of names."""
    if not args:
        return []
    args = args.strip()
    if args.startswith("[") and args.endswith("]"):
        args = args[1:-1]
    return [trim_quotes(part) for part in split_args(args) if part]


# ----------------------------------------------------------------------
# Parser
# ----------------------------------------------------------------------


class Parser:
    """Builds a `spec.Template` from a token list."""

    def __init__(self, tokens: List[Token]):
        self.tokens = tokens
        self.pos = 0
        self._rules: Dict[str, Callable[[Token], Optional[spec.Node]]] = {
            "if": self._parse_if,
            "unless": self._parse_unless,
            "switch": self._parse_switch,
            "for": self._parse_for,
            "foreach": self._parse_foreach,
            "forelse": self._parse_foreach,
            "while": self._parse_while,
            "section": self._parse_section,
            "yield": self._parse_yield,
            "extends": self._parse_extends,
            "include": self._parse_include,
            "includeIf": self._parse_include,
            "includeWhen": self._parse_include,
            "includeUnless": self._parse_include,
            "includeFirst": self._parse_include,
            "each": self._parse_each,
            "push": self._parse_push,
            "pushOnce": self._parse_push,
            "prepend": self._parse_push,
            "stack": self._parse_stack,
            "component": self._parse_component,
            "php": self._parse_php,
            "isset": self._parse_isset,
            "empty": self._parse_empty,
            "auth": self._parse_auth,
            "guest": self._parse_auth,
            "env": self._parse_env,
            "production": self._parse_production,
            "error": self._parse_error,
            "once": self._parse_once,
            "break": self._parse_loop_control,
            "continue": self._parse_loop_control,
            "parent": self._parse_parent,
        }

    @property
    def current(self) -> Token:
        return self.tokens[self.pos]

    def parse(self) -> spec.Template:
        """Parse the whole token stream.

        Returns:
            The template root node.

        Raises:
            ParseError: If a block directive is missing required arguments.
        """
        children: List[spec.Node] = []
        while not self._at_end():
            node = self._parse_node()
            if node is not None:
                children.append(node)
        return spec.Template(children=children)

    # ------------------------------------------------------------------
    # Token helpers
    # ------------------------------------------------------------------

    def _at_end(self) -> bool:
        return self.current.kind == TokenKind.EOF

    def _advance(self) -> Token:
        token = self.current
        if not self._at_end():
            self.pos += 1
        return token

    def _is_directive(self, *names: str) -> bool:
        token = self.current
        return token.kind == TokenKind.DIRECTIVE and token.value in names

    def _parse_until(self, *terminators: str) -> List[spec.Node]:
        """Parse children until a terminator directive or end of input.

        The terminator itself is left unconsumed.
        """
        children: List[spec.Node] = []
        while not self._at_end() and not self._is_directive(*terminators):
            node = self._parse_node()
            if node is not None:
                children.append(node)
        return children

    def _expect_end(self, *names: str) -> Optional[str]:
        """Consume a closing directive if present; tolerate its absence."""
        if self._is_directive(*names):
            return self._advance().value
        return None

    @staticmethod
    def _pos(token: Token) -> dict:
        return {"line": token.position.line, "column": token.position.column}

    # ------------------------------------------------------------------
    # Nodes
    # ------------------------------------------------------------------

    def _parse_node(self) -> Optional[spec.Node]:
        token = self._advance()
        kind = token.kind

        if kind == TokenKind.TEXT:
            return spec.Text(token.value, **self._pos(token))
        if kind == TokenKind.ECHO_ESCAPED:
            return spec.Echo(token.value, escaped=True, **self._pos(token))
        if kind == TokenKind.ECHO_RAW:
            return spec.Echo(token.value, escaped=False, **self._pos(token))
        if kind == TokenKind.COMMENT:
            return spec.Comment(token.value, **self._pos(token))
        if kind == TokenKind.VERBATIM:
            return spec.Verbatim(token.value, **self._pos(token))
        return self._parse_directive(token)

    def _parse_directive(self, token: Token) -> Optional[spec.Node]:
        name = token.value
        if name in REQUIRES_ARGS and not (token.args or "").strip():
            raise ParseError(
                f"@{name} requires arguments", token.position.line, token.position.column
            )

        rule = self._rules.get(name)
        if rule is not None:
            return rule(token)

        if name in TERMINATORS:
            log.debug(
                f"Dropping unmatched @{name} at line {token.position.line}"
            )
            return None

        return spec.Directive(name, token.args, **self._pos(token))

    def _parse_if(self, token: Token) -> spec.If:
        node = spec.If(token.args or "", **self._pos(token))
        node.children = self._parse_until("elseif", "else", "endif")

        while self._is_directive("elseif"):
            clause_token = self._advance()
            if not (clause_token.args or "").strip():
                raise ParseError(
                    "@elseif requires arguments",
                    clause_token.position.line,
                    clause_token.position.column,
                )
            clause = spec.ElseIf(clause_token.args, **self._pos(clause_token))
            clause.children = self._parse_until("elseif", "else", "endif")
            node.elseifs.append(clause)

        if self._is_directive("else"):
            self._advance()
            node.else_children = self._parse_until("endif")

        self._expect_end("endif")
        return node

    def _parse_unless(self, token: Token) -> spec.Unless:
        node = spec.Unless(token.args or "", **self._pos(token))
        node.children = self._parse_until("else", "endunless")
        if self._is_directive("else"):
            self._advance()
            node.else_children = self._parse_until("endunless")
        self._expect_end("endunless")
        return node

    def _parse_switch(self, token: Token) -> spec.Switch:
        node = spec.Switch(token.args or "", **self._pos(token))
        target: Optional[List[spec.Node]] = None

        while not self._at_end() and not self._is_directive("endswitch"):
            if self._is_directive("case"):
                case_token = self._advance()
                if not (case_token.args or "").strip():
                    raise ParseError(
                        "@case requires arguments",
                        case_token.position.line,
                        case_token.position.column,
                    )
                case = spec.Case(case_token.args, **self._pos(case_token))
                node.cases.append(case)
                target = case.children
                continue
            if self._is_directive("default"):
                self._advance()
                node.default = []
                target = node.default
                continue
            if self._is_directive("break"):
                self._advance()
                continue

            child = self._parse_node()
            # Text between @switch and the first @case has nowhere to go.
            if child is not None and target is not None:
                target.append(child)

        self._expect_end("endswitch")
        return node

    def _parse_for(self, token: Token) -> spec.For:
        parts = [p.strip() for p in (token.args or "").split(";", 2)]
        parts += [""] * (3 - len(parts))
        node = spec.For(parts[0], parts[1], parts[2], **self._pos(token))
        node.children = self._parse_until("endfor")
        self._expect_end("endfor")
        return node

    def _parse_foreach(self, token: Token) -> spec.Foreach:
        forelse = token.value == "forelse"
        items, key, value = self._split_foreach_args(token.args or "")
        node = spec.Foreach(
            items, value, key=key, forelse=forelse, **self._pos(token)
        )

        if not forelse:
            node.children = self._parse_until("endforeach")
            self._expect_end("endforeach")
            return node

        node.children = self._parse_until("empty", "endforelse")
        # A bare @empty splits the body; @empty($x) is a nested check.
        while self._is_directive("empty") and self.current.args:
            child = self._parse_node()
            if child is not None:
                node.children.append(child)
            node.children.extend(self._parse_until("empty", "endforelse"))
        if self._is_directive("empty"):
            self._advance()
            node.empty = self._parse_until("endforelse")
        else:
            node.empty = []
        self._expect_end("endforelse")
        return node

    @staticmethod
    def _split_foreach_args(args: str) -> Tuple[str, Optional[str], str]:
        items, sep, rest = args.partition(" as ")
        if not sep:
            return args.strip(), None, ""
        if "=>" in rest:
            key, _, value = rest.partition("=>")
            return items.strip(), key.strip(), value.strip()
        return items.strip(), None, rest.strip()

    def _parse_while(self, token: Token) -> spec.While:
        node = spec.While(token.args or "", **self._pos(token))
        node.children = self._parse_until("endwhile")
        self._expect_end("endwhile")
        return node

    def _parse_section(self, token: Token) -> spec.Section:
        parts = split_args(token.args)
        node = spec.Section(trim_quotes(parts[0]), **self._pos(token))
        if len(parts) >= 2:
            node.content = parts[1]
            return node

        node.children = self._parse_until("endsection", "stop", "show")
        closer = self._expect_end("endsection", "stop", "show")
        node.show = closer == "show"
        return node

    def _parse_yield(self, token: Token) -> spec.Yield:
        parts = split_args(token.args)
        name = trim_quotes(parts[0]) if parts else ""
        default = parts[1] if len(parts) >= 2 else None
        return spec.Yield(name, default, **self._pos(token))

    def _parse_extends(self, token: Token) -> spec.Extends:
        return spec.Extends(trim_quotes(token.args), **self._pos(token))

    def _parse_include(self, token: Token) -> spec.Include:
        variant = token.value
        parts = split_args(token.args)
        node = spec.Include(variant, "", **self._pos(token))

        if variant in ("includeWhen", "includeUnless"):
            node.condition = parts[0]
            parts = parts[1:]
            node.template = trim_quotes(parts[0]) if parts else ""
        elif variant == "includeFirst":
            node.template = parts[0]
        else:
            node.template = trim_quotes(parts[0])

        if len(parts) >= 2:
            node.data = parts[1]
        return node

    def _parse_each(self, token: Token) -> spec.Each:
        parts = split_args(token.args)
        parts += [""] * (3 - len(parts))
        empty_view = trim_quotes(parts[3]) if len(parts) >= 4 else None
        return spec.Each(
            trim_quotes(parts[0]),
            parts[1],
            trim_quotes(parts[2]).lstrip("$"),
            empty_view or None,
            **self._pos(token),
        )

    def _parse_push(self, token: Token) -> spec.Push:
        closers = {
            "push": ("endpush",),
            "pushOnce": ("endPushOnce", "endpushOnce"),
            "prepend": ("endprepend",),
        }[token.value]
        node = spec.Push(
            trim_quotes(split_args(token.args)[0]),
            prepend=token.value == "prepend",
            once=token.value == "pushOnce",
            **self._pos(token),
        )
        node.children = self._parse_until(*closers)
        self._expect_end(*closers)
        return node

    def _parse_stack(self, token: Token) -> spec.Stack:
        return spec.Stack(trim_quotes(token.args), **self._pos(token))

    def _parse_component(self, token: Token) -> spec.Component:
        parts = split_args(token.args)
        node = spec.Component(trim_quotes(parts[0]), **self._pos(token))
        if len(parts) >= 2:
            node.data = parts[1]

        slot: Optional[spec.Slot] = None
        while not self._at_end() and not self._is_directive("endcomponent"):
            if self._is_directive("slot"):
                slot_token = self._advance()
                slot = spec.Slot(trim_quotes(slot_token.args), **self._pos(slot_token))
                node.slots[slot.name] = slot
                continue
            if self._is_directive("endslot"):
                self._advance()
                slot = None
                continue

            child = self._parse_node()
            if child is None:
                continue
            if slot is not None:
                slot.children.append(child)
            else:
                node.children.append(child)

        self._expect_end("endcomponent")
        return node

    def _parse_php(self, token: Token) -> spec.Php:
        if token.args is not None:
            return spec.Php(token.args.strip(), **self._pos(token))

        code: List[str] = []
        while not self._at_end() and not self._is_directive("endphp"):
            inner = self._advance()
            if inner.kind == TokenKind.TEXT:
                code.append(inner.value)
        self._expect_end("endphp")
        return spec.Php("".join(code).strip(), **self._pos(token))

    def _parse_isset(self, token: Token) -> spec.Isset:
        node = spec.Isset(token.args, **self._pos(token))
        node.children = self._parse_until("endisset")
        self._expect_end("endisset")
        return node

    def _parse_empty(self, token: Token) -> Optional[spec.EmptyCheck]:
        if not token.args:
            # Bare @empty outside @forelse.
            log.debug(f"Dropping unmatched @empty at line {token.position.line}")
            return None
        node = spec.EmptyCheck(token.args, **self._pos(token))
        node.children = self._parse_until("endempty")
        self._expect_end("endempty")
        return node

    def _parse_auth(self, token: Token) -> spec.Auth:
        guest = token.value == "guest"
        closer = "endguest" if guest else "endauth"
        guard = trim_quotes(token.args) or None
        node = spec.Auth(guard, guest=guest, **self._pos(token))
        node.children = self._parse_until(closer)
        self._expect_end(closer)
        return node

    def _parse_env(self, token: Token) -> spec.Env:
        node = spec.Env(parse_env_list(token.args), **self._pos(token))
        node.children = self._parse_until("endenv")
        self._expect_end("endenv")
        return node

    def _parse_production(self, token: Token) -> spec.Production:
        node = spec.Production(**self._pos(token))
        node.children = self._parse_until("endproduction")
        self._expect_end("endproduction")
        return node

    def _parse_error(self, token: Token) -> spec.Error:
        node = spec.Error(trim_quotes(token.args), **self._pos(token))
        node.children = self._parse_until("enderror")
        self._expect_end("enderror")
        return node

    def _parse_once(self, token: Token) -> spec.Once:
        node = spec.Once(**self._pos(token))
        node.children = self._parse_until("endonce")
        self._expect_end("endonce")
        return node

    def _parse_loop_control(self, token: Token) -> spec.Node:
        condition = (token.args or "").strip() or None
        if token.value == "break":
            return spec.Break(condition, **self._pos(token))
        return spec.Continue(condition, **self._pos(token))

    def _parse_parent(self, token: Token) -> spec.Parent:
        return spec.Parent(**self._pos(token))


def parse(source: str) -> spec.Template:
    """Lex and parse template source into an AST."""
    return Parser(Lexer(source).tokenize()).parse()
