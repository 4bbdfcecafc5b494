"""Compiler - lowers the directive AST into the render IR.

One pass over the AST in document order. Sections and stacks are collected
into side-tables on the resulting CompiledTemplate; everything else becomes
instructions in the main program.
"""

from __future__ import annotations

import logging
import re
from typing import Callable, Dict, List, Optional, Set

import xxhash

from quill.ast import spec as ast
from quill.ast.parser import is_quoted, parse, split_args, trim_quotes
from quill.compiler import spec as ir
from quill.compiler.expressions import Expression
from quill.exceptions import CompileError

log = logging.getLogger(__name__)

DEFAULT_WHILE_LIMIT = 1000
DEFAULT_FOR_END = 10

_FOR_INIT = re.compile(r"^\s*\$?(\w+)\s*=\s*(-?\d+)")
_FOR_END = re.compile(r"<\s*(=?)\s*(-?\d+)\s*$")
_FOR_VAR = re.compile(r"^\s*\$?(\w+)")
_ASSIGNMENT = re.compile(r"^\$(\w+)\s*=(?!=)\s*(.+)$", re.DOTALL)

BOOLEAN_ATTRIBUTES = ("checked", "selected", "disabled", "readonly", "required")


def content_hash(value: object) -> str:
    """Stable hash of a compiled body, used for once-deduplication."""
    return xxhash.xxh64_hexdigest(repr(value).encode("utf-8"))


def _var(name: Optional[str]) -> Optional[str]:
    if name is None:
        return None
    return name.strip().lstrip("$") or None


def _split_statements(code: str) -> List[str]:
    """Split `@php` code on top-level semicolons, quotes respected."""
    statements: List[str] = []
    quote: Optional[str] = None
    start = 0
    i = 0
    while i < len(code):
        ch = code[i]
        if quote:
            if ch == "\\":
                i += 1
            elif ch == quote:
                quote = None
        elif ch in ("'", '"'):
            quote = ch
        elif ch == ";":
            statements.append(code[start:i])
            start = i + 1
        i += 1
    statements.append(code[start:])
    return [s.strip() for s in statements if s.strip()]


class Compiler:
    """Compiles a parsed template into a CompiledTemplate."""

    def __init__(self, name: str = "<template>", while_limit: int = DEFAULT_WHILE_LIMIT):
        """Initialize compiler state for one template.

        Args:
            name: Template name, used in error messages.
            while_limit: Upper bound on `@while` iterations.
        """
        self.name = name
        self.while_limit = while_limit
        self.sections: Dict[str, ir.Program] = {}
        self.stacks: Dict[str, List[ir.Program]] = {}
        self.extends: Optional[str] = None
        self.loop_depth = 0
        self.seen_hashes: Set[str] = set()
        self._handlers: Dict[type, Callable[[ast.Node], ir.Program]] = {
            ast.Text: self._text,
            ast.Echo: self._echo,
            ast.Comment: lambda node: [],
            ast.Verbatim: self._verbatim,
            ast.Directive: self._directive,
            ast.If: self._if,
            ast.Unless: self._unless,
            ast.Switch: self._switch,
            ast.For: self._for,
            ast.Foreach: self._foreach,
            ast.While: self._while,
            ast.Section: self._section,
            ast.Yield: self._yield,
            ast.Extends: self._extends,
            ast.Include: self._include,
            ast.Each: self._each,
            ast.Push: self._push,
            ast.Stack: self._stack,
            ast.Component: self._component,
            ast.Php: self._php,
            ast.Break: self._break,
            ast.Continue: self._continue,
            ast.Isset: self._isset,
            ast.EmptyCheck: self._empty,
            ast.Auth: self._auth,
            ast.Env: self._env,
            ast.Production: self._production,
            ast.Error: self._error,
            ast.Once: self._once,
            ast.Parent: lambda node: [ir.ParentMarker()],
        }

    def compile(self, template: ast.Template) -> ir.CompiledTemplate:
        """Compile a template AST.

        Args:
            template: Root node produced by the parser.

        Returns:
            The program together with its section and stack tables and the
            name of the template it extends, if any.

        Raises:
            CompileError: On an unknown node type or an invalid expression.
        """
        program = self._body(template.children)
        log.debug(
            f"Compiled {self.name}: {len(program)} instructions, "
            f"{len(self.sections)} sections, {len(self.stacks)} stacks"
        )
        return ir.CompiledTemplate(
            name=self.name,
            program=program,
            sections=self.sections,
            stacks=self.stacks,
            extends=self.extends,
        )

    # ------------------------------------------------------------------
    # Dispatch helpers
    # ------------------------------------------------------------------

    def _body(self, nodes: List[ast.Node]) -> ir.Program:
        program: ir.Program = []
        for node in nodes:
            for instruction in self._node(node):
                # Merge adjacent literals.
                if (
                    isinstance(instruction, ir.EmitLiteral)
                    and program
                    and isinstance(program[-1], ir.EmitLiteral)
                ):
                    program[-1] = ir.EmitLiteral(program[-1].text + instruction.text)
                else:
                    program.append(instruction)
        return program

    def _node(self, node: ast.Node) -> ir.Program:
        handler = self._handlers.get(type(node))
        if handler is None:
            raise CompileError(
                f"Unsupported node {type(node).__name__}", self.name, node.line
            )
        try:
            return handler(node)
        except CompileError as e:
            if e.line is not None:
                raise
            raise CompileError(e.detail, self.name, node.line or None) from e

    def _expr(self, source: str) -> Expression:
        return Expression(source)

    def _value(self, raw: Optional[str]) -> ir.Program:
        """A quoted literal becomes text; anything else an escaped expression."""
        if raw is None or not raw.strip():
            return []
        if is_quoted(raw):
            return [ir.EmitLiteral(trim_quotes(raw))]
        return [ir.EmitExpr(self._expr(raw), escaped=True)]

    def _guarded(self, cond: ir.Condition, body: ir.Program) -> ir.Program:
        return [ir.If(branches=[ir.Branch(cond, body)])]

    # ------------------------------------------------------------------
    # Output
    # ------------------------------------------------------------------

    def _text(self, node: ast.Text) -> ir.Program:
        return [ir.EmitLiteral(node.content)]

    def _verbatim(self, node: ast.Verbatim) -> ir.Program:
        return [ir.EmitLiteral(node.content)]

    def _echo(self, node: ast.Echo) -> ir.Program:
        return [ir.EmitExpr(self._expr(node.expression), escaped=node.escaped)]

    def _directive(self, node: ast.Directive) -> ir.Program:
        name, args = node.name, node.args
        parts = split_args(args)

        if name == "csrf":
            return [
                ir.EmitLiteral('<input type="hidden" name="_token" value="'),
                ir.EmitExpr(self._expr("$csrf_token"), escaped=True),
                ir.EmitLiteral('">'),
            ]
        if name == "method":
            return [
                ir.EmitLiteral('<input type="hidden" name="_method" value="'),
                *self._value(parts[0] if parts else "'GET'"),
                ir.EmitLiteral('">'),
            ]
        if name == "json":
            return [ir.CallNamed("json", [self._expr(p) for p in parts[:2]], escaped=False)]
        if name in ("class", "style"):
            helper = "classArray" if name == "class" else "styleArray"
            return [
                ir.EmitLiteral(f'{name}="'),
                ir.CallNamed(helper, [self._expr(args or "[]")], escaped=True),
                ir.EmitLiteral('"'),
            ]
        if name in BOOLEAN_ATTRIBUTES:
            cond = self._expr(args) if args else self._expr("true")
            return self._guarded(cond, [ir.EmitLiteral(name)])
        if name == "old":
            return [ir.CallNamed("old", [self._expr(p) for p in parts], escaped=True)]

        # Custom directive: resolved at render time against registered
        # directive handlers, then the function registry.
        try:
            call_args: Optional[list] = [self._expr(p) for p in parts]
        except CompileError:
            call_args = None
        return [ir.CallNamed(name, call_args, escaped=False, raw_args=args)]

    # ------------------------------------------------------------------
    # Control flow
    # ------------------------------------------------------------------

    def _if(self, node: ast.If) -> ir.Program:
        branches = [ir.Branch(self._expr(node.condition), self._body(node.children))]
        for clause in node.elseifs:
            branches.append(
                ir.Branch(self._expr(clause.condition), self._body(clause.children))
            )
        else_body = None
        if node.else_children is not None:
            else_body = self._body(node.else_children)
        return [ir.If(branches=branches, else_body=else_body)]

    def _unless(self, node: ast.Unless) -> ir.Program:
        else_body = None
        if node.else_children is not None:
            else_body = self._body(node.else_children)
        return [
            ir.If(
                branches=[
                    ir.Branch(self._expr(f"!({node.condition})"), self._body(node.children))
                ],
                else_body=else_body,
            )
        ]

    def _switch(self, node: ast.Switch) -> ir.Program:
        branches = [
            ir.Branch(
                self._expr(f"({node.expression}) == ({case.value})"),
                self._body(case.children),
            )
            for case in node.cases
        ]
        else_body = self._body(node.default) if node.default is not None else None
        if not branches:
            return else_body or []
        return [ir.If(branches=branches, else_body=else_body)]

    def _for(self, node: ast.For) -> ir.Program:
        """Lower `@for` to a bounded counted range.

        The start comes from the init literal and the end from a literal
        upper bound in the condition (`<` or `<=`). Without a literal bound
        the condition is re-checked every pass, up to the while limit.
        """
        init = _FOR_INIT.match(node.init)
        if init:
            var, start = init.group(1), int(init.group(2))
        else:
            var_match = _FOR_VAR.match(node.init)
            var, start = (var_match.group(1) if var_match else None), 0

        end = _FOR_END.search(node.condition)
        cond = None
        if end:
            stop = int(end.group(2)) + (1 if end.group(1) else 0)
        elif node.condition:
            stop = start + self.while_limit
            cond = self._expr(node.condition)
        else:
            stop = start + DEFAULT_FOR_END

        return [
            ir.Range(
                collection=None,
                value_name=var,
                body=self._body(node.children),
                start=start,
                stop=stop,
                cond=cond,
            )
        ]

    def _foreach(self, node: ast.Foreach) -> ir.Program:
        self.loop_depth += 1
        try:
            binding = f"__items{self.loop_depth}"
            collection = self._expr(f"${binding}")
            body = [ir.LoopUpdate()] + self._body(node.children)
        finally:
            self.loop_depth -= 1

        loop = [
            ir.LoopPush(count=collection),
            ir.Range(
                collection=collection,
                value_name=_var(node.value),
                key_name=_var(node.key),
                body=body,
            ),
            ir.LoopPop(),
        ]
        program: ir.Program = [ir.Assign(binding, self._expr(node.items))]
        if not node.forelse:
            return program + loop

        program.append(
            ir.If(
                branches=[ir.Branch(ir.Predicate("nonempty", [collection]), loop)],
                else_body=self._body(node.empty or []),
            )
        )
        return program

    def _while(self, node: ast.While) -> ir.Program:
        return [
            ir.Range(
                collection=None,
                value_name=None,
                body=self._body(node.children),
                start=0,
                stop=self.while_limit,
                cond=self._expr(node.condition),
            )
        ]

    def _break(self, node: ast.Break) -> ir.Program:
        return [ir.Break(self._expr(node.condition) if node.condition else None)]

    def _continue(self, node: ast.Continue) -> ir.Program:
        return [ir.Continue(self._expr(node.condition) if node.condition else None)]

    # ------------------------------------------------------------------
    # Inheritance
    # ------------------------------------------------------------------

    def _section(self, node: ast.Section) -> ir.Program:
        if node.content is not None:
            self.sections[node.name] = self._value(node.content)
            return []

        body = self._body(node.children)
        self.sections[node.name] = body
        if node.show:
            return [ir.Placeholder(node.name, body)]
        return []

    def _yield(self, node: ast.Yield) -> ir.Program:
        return [ir.Placeholder(node.name, self._value(node.default))]

    def _extends(self, node: ast.Extends) -> ir.Program:
        self.extends = node.template
        return []

    # ------------------------------------------------------------------
    # Includes, stacks and components
    # ------------------------------------------------------------------

    def _include(self, node: ast.Include) -> ir.Program:
        data = self._expr(node.data) if node.data else None
        condition = self._expr(node.condition) if node.condition else None
        if node.variant == "includeFirst":
            return [
                ir.Include(
                    node.variant,
                    candidates=self._expr(node.template),
                    data=data,
                )
            ]
        return [ir.Include(node.variant, template=node.template, data=data, condition=condition)]

    def _each(self, node: ast.Each) -> ir.Program:
        return [
            ir.Each(
                template=node.template,
                items=self._expr(node.items),
                item_name=node.item_var,
                empty_view=node.empty_view,
            )
        ]

    def _push(self, node: ast.Push) -> ir.Program:
        body = self._body(node.children)
        if node.once:
            key = content_hash(f"push_{node.stack}_{body!r}")
            if key in self.seen_hashes:
                return []
            self.seen_hashes.add(key)

        entries = self.stacks.setdefault(node.stack, [])
        if node.prepend:
            entries.insert(0, body)
        else:
            entries.append(body)
        return []

    def _stack(self, node: ast.Stack) -> ir.Program:
        return [ir.CallNamed("concat-stack", [node.name], escaped=False)]

    def _component(self, node: ast.Component) -> ir.Program:
        return [
            ir.Component(
                name=node.name,
                data=self._expr(node.data) if node.data else None,
                default_slot=self._body(node.children),
                slots={name: self._body(slot.children) for name, slot in node.slots.items()},
            )
        ]

    def _php(self, node: ast.Php) -> ir.Program:
        program: ir.Program = []
        for statement in _split_statements(node.code):
            assignment = _ASSIGNMENT.match(statement)
            if assignment:
                name, expr = assignment.groups()
                program.append(ir.Assign(name, self._expr(expr)))
            else:
                program.append(ir.Assign(None, self._expr(statement)))
        return program

    # ------------------------------------------------------------------
    # Runtime-predicate blocks
    # ------------------------------------------------------------------

    def _isset(self, node: ast.Isset) -> ir.Program:
        cond = ir.Predicate("isset", [self._expr(node.variable)])
        return self._guarded(cond, self._body(node.children))

    def _empty(self, node: ast.EmptyCheck) -> ir.Program:
        cond = ir.Predicate("empty", [self._expr(node.variable)])
        return self._guarded(cond, self._body(node.children))

    def _auth(self, node: ast.Auth) -> ir.Program:
        name = "guest" if node.guest else "auth"
        args = [node.guard] if node.guard else []
        return self._guarded(ir.Predicate(name, args), self._body(node.children))

    def _env(self, node: ast.Env) -> ir.Program:
        return self._guarded(ir.Predicate("env", list(node.envs)), self._body(node.children))

    def _production(self, node: ast.Production) -> ir.Program:
        return self._guarded(ir.Predicate("production"), self._body(node.children))

    def _error(self, node: ast.Error) -> ir.Program:
        body = [ir.BindError(node.field_name, self._body(node.children))]
        return self._guarded(ir.Predicate("error", [node.field_name]), body)

    def _once(self, node: ast.Once) -> ir.Program:
        body = self._body(node.children)
        key = content_hash(f"once_{body!r}")
        if key in self.seen_hashes:
            return []
        self.seen_hashes.add(key)
        return self._guarded(ir.Predicate("once", [key]), body)


def compile_source(
    source: str, name: str = "<template>", while_limit: int = DEFAULT_WHILE_LIMIT
) -> ir.CompiledTemplate:
    """Lex, parse and compile template source in one call."""
    return Compiler(name, while_limit).compile(parse(source))
