"""Quill Compiler - lowers templates to IR, resolves inheritance, renders."""

from quill.compiler.compiler import Compiler, compile_source
from quill.compiler.expressions import Expression
from quill.compiler.renderer import Renderer
from quill.compiler.resolver import InheritanceResolver
from quill.compiler.spec import CompiledTemplate, ResolvedTemplate

__all__ = [
    "Compiler",
    "compile_source",
    "Expression",
    "Renderer",
    "InheritanceResolver",
    "CompiledTemplate",
    "ResolvedTemplate",
]
