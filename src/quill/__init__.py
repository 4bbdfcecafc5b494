"""Quill - a Blade-style template compiler.

Templates are lexed, parsed into a directive AST, compiled to a small IR,
resolved against their @extends chain and interpreted.
"""

from quill._version import __version__
from quill.engine import DictLoader, Engine, EngineConfig, FileSystemLoader
from quill.exceptions import (
    CompileError,
    CyclicExtendsError,
    ExpressionError,
    LexError,
    LoopControlError,
    ParseError,
    QuillError,
    RenderCancelledError,
    RenderError,
    TemplateNotFoundError,
    UnknownFunctionError,
)
from quill.runtime import RenderContext, context_function

__all__ = [
    "__version__",
    "Engine",
    "EngineConfig",
    "DictLoader",
    "FileSystemLoader",
    "RenderContext",
    "context_function",
    "QuillError",
    "LexError",
    "ParseError",
    "CompileError",
    "RenderError",
    "TemplateNotFoundError",
    "UnknownFunctionError",
    "LoopControlError",
    "CyclicExtendsError",
    "RenderCancelledError",
    "ExpressionError",
]
