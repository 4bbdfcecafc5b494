"""Renderer - interprets a resolved IR program against a RenderContext."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Iterable
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

from markupsafe import Markup, escape

from quill.compiler import spec as ir
from quill.compiler.expressions import Expression
from quill.exceptions import (
    ExpressionError,
    LoopControlError,
    QuillError,
    RenderCancelledError,
    TemplateNotFoundError,
)
from quill.runtime.context import RenderContext
from quill.runtime.functions import FunctionRegistry
from quill.runtime.loop import UNKNOWN_COUNT, LoopStack
from quill.runtime.values import is_empty, is_set, normalize, normalize_data, to_text

log = logging.getLogger(__name__)

DirectiveHandler = Callable[[str, Dict[str, Any]], Any]
TemplateSource = Callable[[str], ir.ResolvedTemplate]

_MISSING = object()


class _BreakLoop(Exception):
    pass


class _ContinueLoop(Exception):
    pass


class RenderState:
    """Mutable interpreter state for one (sub-)render."""

    def __init__(
        self,
        context: RenderContext,
        scope: Dict[str, Any],
        cancel: Optional[threading.Event] = None,
        deadline: Optional[float] = None,
        once: Optional[set] = None,
    ):
        self.context = context
        self.scope = scope
        self.cancel = cancel
        self.deadline = deadline
        self.once = once if once is not None else set()
        self.loops = LoopStack()
        self.saved_loops: List[Any] = []
        self.indexes: List[int] = []
        self.out: List[str] = []

    def child(self, context: RenderContext, scope: Dict[str, Any]) -> "RenderState":
        return RenderState(context, scope, self.cancel, self.deadline, self.once)

    def check_cancelled(self) -> None:
        if self.cancel is not None and self.cancel.is_set():
            raise RenderCancelledError("cancelled")
        if self.deadline is not None and time.monotonic() > self.deadline:
            raise RenderCancelledError("timed out")


def truthy(value: Any) -> bool:
    return not is_empty(value)


def _count(value: Any) -> int:
    if value is None or not is_set(value):
        return 0
    if isinstance(value, (list, tuple, dict)):
        return len(value)
    if isinstance(value, (str, int, float, bool)):
        return 0
    return UNKNOWN_COUNT


def _pairs(value: Any) -> Iterator[Tuple[Any, Any]]:
    if value is None or not is_set(value) or isinstance(value, (str, int, float, bool)):
        return iter(())
    if isinstance(value, dict):
        return iter(value.items())
    if isinstance(value, Iterable):
        return enumerate(value)
    return iter(())


class Renderer:
    """Executes resolved programs.

    Sub-renders (includes, `@each` and components) look templates up through
    the `templates` callable and run against a cloned context.
    """

    def __init__(
        self,
        functions: Optional[FunctionRegistry] = None,
        directives: Optional[Dict[str, DirectiveHandler]] = None,
        templates: Optional[TemplateSource] = None,
        exists: Optional[Callable[[str], bool]] = None,
        component_prefix: str = "components",
        environment: str = "production",
    ):
        self.functions = functions or FunctionRegistry()
        self.directives = directives if directives is not None else {}
        self.templates = templates
        self.exists = exists
        self.component_prefix = component_prefix
        self.environment = environment
        self._handlers: Dict[type, Callable[[Any, RenderState], None]] = {
            ir.EmitLiteral: self._emit_literal,
            ir.EmitExpr: self._emit_expr,
            ir.Assign: self._assign,
            ir.If: self._if,
            ir.Range: self._range,
            ir.LoopPush: self._loop_push,
            ir.LoopUpdate: self._loop_update,
            ir.LoopPop: self._loop_pop,
            ir.CallNamed: self._call_named,
            ir.Break: self._break,
            ir.Continue: self._continue,
            ir.Placeholder: self._placeholder,
            ir.ParentMarker: lambda ins, state: None,
            ir.BindError: self._bind_error,
            ir.Include: self._include,
            ir.Each: self._each,
            ir.Component: self._component,
        }
        self._predicates: Dict[str, Callable[..., bool]] = {
            "isset": lambda state, value: is_set(value),
            "empty": lambda state, value: is_empty(value),
            "nonempty": lambda state, value: _count(value) != 0,
            "auth": self._is_authenticated,
            "guest": lambda state, *guard: not self._is_authenticated(state, *guard),
            "env": lambda state, *names: self._environment(state) in names,
            "production": lambda state: self._environment(state) == "production",
            "error": lambda state, field: state.context.has_error(field),
            "once": self._first_time,
        }

    def render(
        self,
        template: ir.ResolvedTemplate,
        context: RenderContext,
        cancel: Optional[threading.Event] = None,
        timeout: Optional[float] = None,
    ) -> str:
        """Render a resolved template.

        Args:
            template: Program with inheritance already applied.
            context: Per-call data, errors and old input.
            cancel: Optional event; setting it aborts the render.
            timeout: Optional limit in seconds.

        Returns:
            The complete output. Nothing is returned on failure.

        Raises:
            RenderError: Any render-time failure, including cancellation.
        """
        deadline = time.monotonic() + timeout if timeout is not None else None
        state = RenderState(context, context.variables(), cancel, deadline)
        return self._run(template, state)

    def _run(self, template: ir.ResolvedTemplate, state: RenderState) -> str:
        for name, entries in template.stacks.items():
            for body in entries:
                state.context.push_stack(name, self._capture(body, state))
        self._exec(template.program, state)
        return "".join(state.out)

    def _exec(self, program: ir.Program, state: RenderState) -> None:
        for instruction in program:
            self._handlers[type(instruction)](instruction, state)

    def _capture(self, program: ir.Program, state: RenderState) -> str:
        saved = state.out
        state.out = []
        try:
            self._exec(program, state)
            return "".join(state.out)
        finally:
            state.out = saved

    def _eval(self, expr: Expression, state: RenderState) -> Any:
        return expr.evaluate(state.scope, lambda name: self.functions.bind(name, state.context))

    def _test(self, cond: ir.Condition, state: RenderState) -> bool:
        if isinstance(cond, ir.Predicate):
            args = [
                self._eval(a, state) if isinstance(a, Expression) else a for a in cond.args
            ]
            return self._predicates[cond.name](state, *args)
        return truthy(self._eval(cond, state))

    @staticmethod
    def _write(state: RenderState, value: Any, escaped: bool) -> None:
        text = to_text(value)
        state.out.append(str(escape(text)) if escaped else str(text))

    # ------------------------------------------------------------------
    # Instructions
    # ------------------------------------------------------------------

    def _emit_literal(self, ins: ir.EmitLiteral, state: RenderState) -> None:
        state.out.append(ins.text)

    def _emit_expr(self, ins: ir.EmitExpr, state: RenderState) -> None:
        self._write(state, self._eval(ins.expr, state), ins.escaped)

    def _assign(self, ins: ir.Assign, state: RenderState) -> None:
        value = self._eval(ins.expr, state)
        if ins.name is not None:
            state.scope[ins.name] = value

    def _if(self, ins: ir.If, state: RenderState) -> None:
        for branch in ins.branches:
            if self._test(branch.cond, state):
                self._exec(branch.body, state)
                return
        if ins.else_body is not None:
            self._exec(ins.else_body, state)

    def _range(self, ins: ir.Range, state: RenderState) -> None:
        if ins.collection is None:
            pairs: Iterator[Tuple[Any, Any]] = ((None, v) for v in range(ins.start, ins.stop))
        else:
            pairs = _pairs(self._eval(ins.collection, state))

        names = [n for n in (ins.key_name, ins.value_name) if n]
        saved = {n: state.scope.get(n, _MISSING) for n in names}
        state.indexes.append(-1)
        try:
            for index, (key, value) in enumerate(pairs):
                state.check_cancelled()
                state.indexes[-1] = index
                if ins.key_name:
                    state.scope[ins.key_name] = key
                if ins.value_name:
                    state.scope[ins.value_name] = value
                if ins.cond is not None and not truthy(self._eval(ins.cond, state)):
                    break
                try:
                    self._exec(ins.body, state)
                except _ContinueLoop:
                    continue
                except _BreakLoop:
                    break
        finally:
            state.indexes.pop()
            for name, value in saved.items():
                if value is _MISSING:
                    state.scope.pop(name, None)
                else:
                    state.scope[name] = value

    def _loop_push(self, ins: ir.LoopPush, state: RenderState) -> None:
        count = _count(self._eval(ins.count, state)) if ins.count is not None else UNKNOWN_COUNT
        state.loops.push(count)
        state.saved_loops.append(state.scope.get("loop", _MISSING))
        state.scope["loop"] = state.loops.view()

    def _loop_update(self, ins: ir.LoopUpdate, state: RenderState) -> None:
        state.loops.update(state.indexes[-1])

    def _loop_pop(self, ins: ir.LoopPop, state: RenderState) -> None:
        state.loops.pop()
        previous = state.saved_loops.pop()
        if previous is _MISSING:
            state.scope.pop("loop", None)
        else:
            state.scope["loop"] = previous

    def _call_named(self, ins: ir.CallNamed, state: RenderState) -> None:
        handler = self.directives.get(ins.name)
        if handler is not None:
            self._write(state, handler(ins.raw_args or "", dict(state.scope)), ins.escaped)
            return

        fn = self.functions.bind(ins.name, state.context)
        if ins.args is None:
            raise ExpressionError(
                ins.raw_args or "", ValueError(f"invalid arguments for @{ins.name}")
            )
        args = [self._eval(a, state) if isinstance(a, Expression) else a for a in ins.args]
        try:
            result = fn(*args)
        except QuillError:
            raise
        except (TypeError, ValueError, ArithmeticError, LookupError) as e:
            raise ExpressionError(f"@{ins.name}({ins.raw_args or ''})", e) from e
        self._write(state, result, ins.escaped)

    def _loop_control(self, keyword: str, cond: Optional[Expression], state: RenderState) -> bool:
        if not state.indexes:
            raise LoopControlError(keyword)
        return cond is None or truthy(self._eval(cond, state))

    def _break(self, ins: ir.Break, state: RenderState) -> None:
        if self._loop_control("break", ins.cond, state):
            raise _BreakLoop()

    def _continue(self, ins: ir.Continue, state: RenderState) -> None:
        if self._loop_control("continue", ins.cond, state):
            raise _ContinueLoop()

    def _placeholder(self, ins: ir.Placeholder, state: RenderState) -> None:
        self._exec(ins.default, state)

    def _bind_error(self, ins: ir.BindError, state: RenderState) -> None:
        saved = state.scope.get(ins.name, _MISSING)
        state.scope[ins.name] = state.context.get_error(ins.field_name)
        try:
            self._exec(ins.body, state)
        finally:
            if saved is _MISSING:
                state.scope.pop(ins.name, None)
            else:
                state.scope[ins.name] = saved

    # ------------------------------------------------------------------
    # Sub-renders
    # ------------------------------------------------------------------

    def _render_sub(self, name: str, state: RenderState, data: Any) -> None:
        if self.templates is None:
            raise TemplateNotFoundError(name)
        template = self.templates(name)
        scope = dict(state.scope)
        scope.pop("loop", None)
        if isinstance(data, dict):
            scope.update(normalize_data(data))
        sub_state = state.child(state.context.clone(), scope)
        state.out.append(self._run(template, sub_state))

    def _template_exists(self, name: str) -> bool:
        if self.exists is not None:
            return self.exists(name)
        if self.templates is None:
            return False
        try:
            self.templates(name)
        except TemplateNotFoundError:
            return False
        return True

    def _include(self, ins: ir.Include, state: RenderState) -> None:
        data = self._eval(ins.data, state) if ins.data is not None else {}

        if ins.variant == "includeFirst":
            candidates = self._eval(ins.candidates, state)
            names = [to_text(c) for c in (candidates if isinstance(candidates, list) else [candidates])]
            for name in names:
                if self._template_exists(name):
                    self._render_sub(name, state, data)
                    return
            raise TemplateNotFoundError(", ".join(names))

        if ins.variant == "includeWhen" and not truthy(self._eval(ins.condition, state)):
            return
        if ins.variant == "includeUnless" and truthy(self._eval(ins.condition, state)):
            return
        if ins.variant == "includeIf" and not self._template_exists(ins.template):
            log.debug(f"Skipping missing optional include {ins.template}")
            return
        self._render_sub(ins.template, state, data)

    def _each(self, ins: ir.Each, state: RenderState) -> None:
        items = self._eval(ins.items, state)
        rendered = False
        for key, item in _pairs(items):
            state.check_cancelled()
            self._render_sub(ins.template, state, {ins.item_name: item, "key": key})
            rendered = True

        if not rendered and ins.empty_view:
            if ins.empty_view.startswith("raw|"):
                state.out.append(ins.empty_view[len("raw|"):])
            else:
                self._render_sub(ins.empty_view, state, {})

    def _component(self, ins: ir.Component, state: RenderState) -> None:
        slots = {name: Markup(self._capture(body, state)) for name, body in ins.slots.items()}
        data = self._eval(ins.data, state) if ins.data is not None else {}
        merged: Dict[str, Any] = dict(normalize(data)) if isinstance(data, dict) else {}
        merged.update(slots)
        merged["slot"] = Markup(self._capture(ins.default_slot, state))
        merged["slots"] = slots
        self._render_sub(f"{self.component_prefix}.{ins.name}", state, merged)

    # ------------------------------------------------------------------
    # Predicates
    # ------------------------------------------------------------------

    def _environment(self, state: RenderState) -> str:
        env = state.scope.get("env")
        return to_text(env) if is_set(env) and env != "" else self.environment

    @staticmethod
    def _is_authenticated(state: RenderState, guard: Optional[str] = None) -> bool:
        auth = state.scope.get("auth")
        if guard is not None and isinstance(auth, dict) and guard in auth:
            return truthy(auth[guard])
        return truthy(auth)

    @staticmethod
    def _first_time(state: RenderState, key: str) -> bool:
        if key in state.once:
            return False
        state.once.add(key)
        return True
