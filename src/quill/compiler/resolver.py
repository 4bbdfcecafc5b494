"""Resolver - applies template inheritance to compiled programs.

Given a compiled template, walks its `@extends` chain up to the root layout,
merging section tables on the way (child wins), and substitutes the merged
sections into the root layout's placeholders.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Callable, Dict, FrozenSet, List, Optional, Set

from quill.compiler import spec as ir
from quill.exceptions import CyclicExtendsError

log = logging.getLogger(__name__)

Visitor = Callable[[ir.Instruction], Optional[ir.Program]]


def map_bodies(
    instruction: ir.Instruction, fn: Callable[[ir.Program], ir.Program]
) -> ir.Instruction:
    """Return a copy of `instruction` with `fn` applied to each nested body."""
    if isinstance(instruction, ir.If):
        return replace(
            instruction,
            branches=[replace(b, body=fn(b.body)) for b in instruction.branches],
            else_body=None if instruction.else_body is None else fn(instruction.else_body),
        )
    if isinstance(instruction, ir.Range):
        return replace(instruction, body=fn(instruction.body))
    if isinstance(instruction, ir.Placeholder):
        return replace(instruction, default=fn(instruction.default))
    if isinstance(instruction, ir.BindError):
        return replace(instruction, body=fn(instruction.body))
    if isinstance(instruction, ir.Component):
        return replace(
            instruction,
            default_slot=fn(instruction.default_slot),
            slots={name: fn(body) for name, body in instruction.slots.items()},
        )
    return instruction


def transform(program: ir.Program, visit: Visitor) -> ir.Program:
    """Rebuild a program bottom-up.

    `visit` returns a replacement list for an instruction, or None to keep the
    instruction and descend into its bodies.
    """
    out: ir.Program = []
    for instruction in program:
        replacement = visit(instruction)
        if replacement is not None:
            out.extend(replacement)
        else:
            out.append(map_bodies(instruction, lambda body: transform(body, visit)))
    return out


def _replace_parent(body: ir.Program, parent_body: ir.Program) -> ir.Program:
    def visit(instruction):
        if isinstance(instruction, ir.ParentMarker):
            return list(parent_body)
        return None

    return transform(body, visit)


def _strip_parent(body: ir.Program) -> ir.Program:
    def visit(instruction):
        if isinstance(instruction, ir.ParentMarker):
            return []
        return None

    return transform(body, visit)


class InheritanceResolver:
    """Resolves `@extends` chains into a single executable program."""

    def __init__(self, load: Callable[[str], ir.CompiledTemplate]):
        """Initialize resolver.

        Args:
            load: Returns the compiled template for a name. Raises
                TemplateNotFoundError for unknown names.
        """
        self.load = load

    def resolve(self, template: ir.CompiledTemplate) -> ir.ResolvedTemplate:
        """Resolve a compiled template against its ancestors.

        Args:
            template: The leaf (most-derived) template.

        Returns:
            ResolvedTemplate whose program is the root layout's program with
            every placeholder substituted, plus the merged stack table.

        Raises:
            CyclicExtendsError: If the extends chain revisits a template.
        """
        chain: List[str] = [template.name]
        sections: Dict[str, ir.Program] = dict(template.sections)
        stacks: Dict[str, List[ir.Program]] = {
            name: list(entries) for name, entries in template.stacks.items()
        }
        current = template

        while current.extends:
            parent_name = current.extends
            if parent_name in chain:
                raise CyclicExtendsError(chain + [parent_name])
            parent = self.load(parent_name)
            chain.append(parent_name)
            log.debug(f"Resolving {template.name}: merging sections from {parent_name}")

            sections = self.merge_sections(sections, parent.sections)
            for name, entries in parent.stacks.items():
                stacks.setdefault(name, []).extend(entries)
            current = parent

        used: Set[str] = set()
        program = self._substitute(current.program, sections, frozenset(), used)

        dropped = sorted(set(sections) - used)
        if dropped:
            log.debug(f"Sections with no placeholder in {template.name}: {', '.join(dropped)}")

        return ir.ResolvedTemplate(
            name=template.name,
            program=program,
            stacks={name: [_strip_parent(e) for e in entries] for name, entries in stacks.items()},
            chain=chain,
        )

    @staticmethod
    def merge_sections(
        child: Dict[str, ir.Program], parent: Dict[str, ir.Program]
    ) -> Dict[str, ir.Program]:
        """Merge a child's sections over its parent's.

        The child wins on collision; `@parent` inside a child section becomes
        the parent's own body for that name.
        """
        merged = dict(parent)
        for name, body in child.items():
            merged[name] = _replace_parent(body, parent.get(name, []))
        return merged

    def _substitute(
        self,
        program: ir.Program,
        sections: Dict[str, ir.Program],
        active: FrozenSet[str],
        used: Set[str],
    ) -> ir.Program:
        def visit(instruction):
            if isinstance(instruction, ir.Placeholder):
                name = instruction.name
                if name in sections and name not in active:
                    used.add(name)
                    return self._substitute(sections[name], sections, active | {name}, used)
                return self._substitute(instruction.default, sections, active, used)
            if isinstance(instruction, ir.ParentMarker):
                return []
            return None

        return transform(program, visit)
