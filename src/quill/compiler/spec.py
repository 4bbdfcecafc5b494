"""Compiler IR spec - the render program executed by the Renderer.

The IR is a tree: block instructions own their bodies. Expressions are
compiled `Expression` objects; conditions may also be named runtime
`Predicate`s.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Union

from quill.compiler.expressions import Expression


@dataclass
class Instruction:
    """Base class for all IR instructions."""


Program = List[Instruction]


@dataclass
class Predicate:
    """A condition evaluated by a named renderer predicate, not an expression."""

    name: str  # isset, empty, nonempty, auth, guest, env, production, error, once
    args: List[Union[Expression, str]] = field(default_factory=list)


Condition = Union[Expression, Predicate]


@dataclass
class EmitLiteral(Instruction):
    text: str


@dataclass
class EmitExpr(Instruction):
    expr: Expression
    escaped: bool = True


@dataclass
class Assign(Instruction):
    """Bind `name` to the value of `expr`; a None name evaluates and discards."""

    name: Optional[str]
    expr: Expression


@dataclass
class Branch:
    cond: Condition
    body: Program = field(default_factory=list)


@dataclass
class If(Instruction):
    branches: List[Branch] = field(default_factory=list)
    else_body: Optional[Program] = None


@dataclass
class Range(Instruction):
    """Iterate a collection, or a bounded count when `collection` is None.

    For counted ranges `start`/`stop` bound the values bound to `value_name`,
    and `cond` (if set) is re-checked before every pass.
    """

    collection: Optional[Expression]
    value_name: Optional[str]
    body: Program = field(default_factory=list)
    key_name: Optional[str] = None
    start: int = 0
    stop: int = 0
    cond: Optional[Expression] = None


@dataclass
class LoopPush(Instruction):
    count: Optional[Expression] = None  # None: count unknown


@dataclass
class LoopUpdate(Instruction):
    pass


@dataclass
class LoopPop(Instruction):
    pass


@dataclass
class CallNamed(Instruction):
    name: str
    args: Optional[List[Union[Expression, str]]] = field(default_factory=list)
    escaped: bool = False
    raw_args: Optional[str] = None


@dataclass
class Break(Instruction):
    cond: Optional[Expression] = None


@dataclass
class Continue(Instruction):
    cond: Optional[Expression] = None


@dataclass
class Placeholder(Instruction):
    """Where a section named `name` is substituted; `default` otherwise."""

    name: str
    default: Program = field(default_factory=list)


@dataclass
class ParentMarker(Instruction):
    """`@parent` inside a section; removed by the resolver."""


@dataclass
class BindError(Instruction):
    """Binds `name` to the field's first error while `body` runs."""

    field_name: str
    body: Program = field(default_factory=list)
    name: str = "message"


@dataclass
class Include(Instruction):
    variant: str  # include, includeIf, includeWhen, includeUnless, includeFirst
    template: Optional[str] = None
    candidates: Optional[Expression] = None
    data: Optional[Expression] = None
    condition: Optional[Expression] = None


@dataclass
class Each(Instruction):
    template: str
    items: Expression
    item_name: str
    empty_view: Optional[str] = None


@dataclass
class Component(Instruction):
    name: str
    data: Optional[Expression] = None
    default_slot: Program = field(default_factory=list)
    slots: Dict[str, Program] = field(default_factory=dict)


@dataclass
class CompiledTemplate:
    """One template's program plus the side-tables gathered while compiling."""

    name: str
    program: Program = field(default_factory=list)
    sections: Dict[str, Program] = field(default_factory=dict)
    stacks: Dict[str, List[Program]] = field(default_factory=dict)
    extends: Optional[str] = None


@dataclass
class ResolvedTemplate:
    """A program with inheritance applied, ready to render."""

    name: str
    program: Program = field(default_factory=list)
    stacks: Dict[str, List[Program]] = field(default_factory=dict)
    chain: List[str] = field(default_factory=list)
