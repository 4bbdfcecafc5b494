"""Runtime support: render context, loop stack, values and functions."""

from quill.runtime.context import RenderContext, SharedData
from quill.runtime.functions import FunctionRegistry, context_function
from quill.runtime.loop import LoopRecord, LoopStack, LoopView

__all__ = [
    "RenderContext",
    "SharedData",
    "FunctionRegistry",
    "context_function",
    "LoopRecord",
    "LoopStack",
    "LoopView",
]
