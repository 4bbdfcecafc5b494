"""AST node definitions produced by the parser."""

from dataclasses import dataclass, field
from typing import Dict, List, Optional


@dataclass
class Node:
    """Base class for all AST nodes."""

    line: int = field(default=0, kw_only=True, compare=False)
    column: int = field(default=0, kw_only=True, compare=False)


@dataclass
class Text(Node):
    content: str


@dataclass
class Echo(Node):
    """`{{ expr }}` when escaped, `{!! expr !!}` otherwise."""

    expression: str
    escaped: bool = True


@dataclass
class Comment(Node):
    content: str


@dataclass
class Directive(Node):
    """A directive with no dedicated grammar rule (custom or simple)."""

    name: str
    args: Optional[str] = None


@dataclass
class ElseIf(Node):
    condition: str
    children: List[Node] = field(default_factory=list)


@dataclass
class If(Node):
    condition: str
    children: List[Node] = field(default_factory=list)
    elseifs: List[ElseIf] = field(default_factory=list)
    else_children: Optional[List[Node]] = None


@dataclass
class Unless(Node):
    condition: str
    children: List[Node] = field(default_factory=list)
    else_children: Optional[List[Node]] = None


@dataclass
class Case(Node):
    value: str
    children: List[Node] = field(default_factory=list)


@dataclass
class Switch(Node):
    expression: str
    cases: List[Case] = field(default_factory=list)
    default: Optional[List[Node]] = None


@dataclass
class For(Node):
    init: str
    condition: str
    post: str
    children: List[Node] = field(default_factory=list)


@dataclass
class Foreach(Node):
    """`@foreach` and `@forelse`; `empty` is only set for the latter."""

    items: str
    value: str
    key: Optional[str] = None
    children: List[Node] = field(default_factory=list)
    empty: Optional[List[Node]] = None
    forelse: bool = False


@dataclass
class While(Node):
    condition: str
    children: List[Node] = field(default_factory=list)


@dataclass
class Section(Node):
    """Block form carries children; inline form carries literal content."""

    name: str
    content: Optional[str] = None
    children: List[Node] = field(default_factory=list)
    show: bool = False


@dataclass
class Yield(Node):
    name: str
    default: Optional[str] = None


@dataclass
class Extends(Node):
    template: str


@dataclass
class Include(Node):
    """One of include, includeIf, includeWhen, includeUnless, includeFirst.

    For includeFirst, `template` holds the raw candidate-list expression.
    """

    variant: str
    template: str
    data: Optional[str] = None
    condition: Optional[str] = None


@dataclass
class Each(Node):
    template: str
    items: str
    item_var: str
    empty_view: Optional[str] = None


@dataclass
class Push(Node):
    """`@push`, `@pushOnce` and `@prepend` blocks."""

    stack: str
    children: List[Node] = field(default_factory=list)
    prepend: bool = False
    once: bool = False


@dataclass
class Stack(Node):
    name: str


@dataclass
class Slot(Node):
    name: str
    children: List[Node] = field(default_factory=list)


@dataclass
class Component(Node):
    name: str
    data: Optional[str] = None
    children: List[Node] = field(default_factory=list)
    slots: Dict[str, Slot] = field(default_factory=dict)


@dataclass
class Verbatim(Node):
    content: str


@dataclass
class Php(Node):
    code: str


@dataclass
class Break(Node):
    condition: Optional[str] = None


@dataclass
class Continue(Node):
    condition: Optional[str] = None


@dataclass
class Isset(Node):
    variable: str
    children: List[Node] = field(default_factory=list)


@dataclass
class EmptyCheck(Node):
    variable: str
    children: List[Node] = field(default_factory=list)


@dataclass
class Auth(Node):
    """`@auth` when `guest` is false, `@guest` otherwise."""

    guard: Optional[str] = None
    children: List[Node] = field(default_factory=list)
    guest: bool = False


@dataclass
class Env(Node):
    envs: List[str] = field(default_factory=list)
    children: List[Node] = field(default_factory=list)


@dataclass
class Production(Node):
    children: List[Node] = field(default_factory=list)


@dataclass
class Error(Node):
    field_name: str
    children: List[Node] = field(default_factory=list)


@dataclass
class Once(Node):
    children: List[Node] = field(default_factory=list)


@dataclass
class Parent(Node):
    pass


@dataclass
class Template(Node):
    """Root of a parsed template."""

    children: List[Node] = field(default_factory=list)

