"""Quill Exceptions

Error hierarchy shared by the lexer, parser, compiler and renderer.
"""

from __future__ import annotations

from typing import Optional


class QuillError(Exception):
    """Base exception for all Quill errors."""

    template: Optional[str] = None


class LexError(QuillError):
    """Raised when the lexer meets an unterminated construct."""

    UNTERMINATED_COMMENT = "UnterminatedComment"
    UNTERMINATED_ECHO = "UnterminatedEcho"
    UNTERMINATED_VERBATIM = "UnterminatedVerbatim"
    UNTERMINATED_DIRECTIVE_ARGS = "UnterminatedDirectiveArgs"

    def __init__(self, kind: str, message: str, line: int, column: int, offset: int):
        self.kind = kind
        self.line = line
        self.column = column
        self.offset = offset
        super().__init__(f"{message} at line {line}, column {column}")


class ParseError(QuillError):
    """Raised for structurally impossible directive usage."""

    def __init__(self, message: str, line: int = 0, column: int = 0):
        self.line = line
        self.column = column
        super().__init__(f"{message} at line {line}, column {column}")


class CompileError(QuillError):
    """Raised when the compiler cannot lower a node or expression."""

    def __init__(
        self, message: str, template: Optional[str] = None, line: Optional[int] = None
    ):
        self.template = template
        self.line = line
        self.detail = message
        prefix = f"[{template}] " if template else ""
        where = f" (line {line})" if line else ""
        super().__init__(f"{prefix}{message}{where}")


class RenderError(QuillError):
    """Base exception for errors raised while rendering."""

    pass


class TemplateNotFoundError(RenderError):
    """Raised when a loader has no template under the requested name."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Template not found: {name}")


class UnknownFunctionError(RenderError):
    """Raised when a named call has no registered function or directive."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Unknown function: {name}")


class LoopControlError(RenderError):
    """Raised when @break or @continue runs outside of any loop."""

    def __init__(self, keyword: str):
        self.keyword = keyword
        super().__init__(f"@{keyword} used outside of a loop")


class CyclicExtendsError(RenderError):
    """Raised when a template's @extends chain loops back on itself."""

    def __init__(self, chain: list):
        self.chain = list(chain)
        super().__init__(f"Cyclic @extends chain: {' -> '.join(self.chain)}")


class RenderCancelledError(RenderError):
    """Raised when the caller cancels a render or its deadline passes."""

    def __init__(self, reason: str = "cancelled"):
        self.reason = reason
        super().__init__(f"Render {reason}")


class ExpressionError(RenderError):
    """Raised when a template expression fails to evaluate."""

    def __init__(self, source: str, cause: Exception):
        self.source = source
        self.cause = cause
        super().__init__(f"Error evaluating '{source}': {cause}")
