"""Engine - public entry point tying loader, cache, compiler and renderer together."""

from __future__ import annotations

import dataclasses
import logging
import threading
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Callable, Dict, Hashable, List, Optional, TextIO

from pydantic import BaseModel

from quill.ast.parser import parse
from quill.compiler.compiler import Compiler
from quill.compiler.renderer import DirectiveHandler, Renderer
from quill.compiler.resolver import InheritanceResolver
from quill.compiler.spec import CompiledTemplate, ResolvedTemplate
from quill.engine.cache import TemplateCache
from quill.engine.config import EngineConfig
from quill.engine.loader import DictLoader, FileSystemLoader, TemplateLoader
from quill.exceptions import CompileError, LexError, ParseError
from quill.runtime.context import RenderContext, SharedData
from quill.runtime.functions import FunctionRegistry
from quill.runtime.values import normalize

log = logging.getLogger(__name__)

INLINE_NAME = "<inline>"


class Engine:
    """Compiles, caches and renders templates.

    Example:
        engine = Engine("views")
        html = engine.render_string("pages.home", {"title": "Hi"})
    """

    def __init__(
        self,
        views_path: Optional[Path | str] = None,
        *,
        loader: Optional[TemplateLoader] = None,
        config: Optional[EngineConfig] = None,
        **options: Any,
    ):
        """Initialize engine.

        Args:
            views_path: Directory holding template files.
            loader: Custom loader; overrides `views_path`.
            config: Base configuration.
            **options: EngineConfig fields overriding `config`.
        """
        config = config or EngineConfig()
        if views_path is not None:
            options["views_path"] = views_path
        if options:
            config = EngineConfig.model_validate({**config.model_dump(), **options})
        self.config = config

        if loader is not None:
            self.loader = loader
        elif config.views_path is not None:
            self.loader = FileSystemLoader(config.views_path, config.extension)
        else:
            self.loader = DictLoader()

        self.cache = TemplateCache(enabled=not config.development)
        self.functions = FunctionRegistry()
        self.shared = SharedData(config.shared)
        self._directives: Dict[str, DirectiveHandler] = {}
        self._lock = threading.Lock()
        self.renderer = Renderer(
            functions=self.functions,
            directives=self._directives,
            templates=self.get_template,
            exists=self.exists,
            component_prefix=config.component_prefix,
            environment=config.environment,
        )

    @classmethod
    def from_config(cls, path: Path, **options: Any) -> "Engine":
        """Build an engine from a quill.yaml file."""
        return cls(config=EngineConfig.load(path), **options)

    # ------------------------------------------------------------------
    # Extension points
    # ------------------------------------------------------------------

    def add_function(
        self, name: str, fn: Callable[..., Any], needs_context: bool = False
    ) -> None:
        """Register a function callable from template expressions."""
        self.functions.register(name, fn, needs_context=needs_context)

    def add_directive(self, name: str, handler: DirectiveHandler) -> None:
        """Register `@name(args)`; the handler gets the raw args and the data."""
        with self._lock:
            self._directives[name] = handler

    def share(self, key: str, value: Any) -> None:
        """Make a value visible to every render."""
        self.shared.set(key, value)

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def render(
        self,
        name: str,
        data: Any,
        stream: TextIO,
        *,
        cancel: Optional[threading.Event] = None,
        timeout: Optional[float] = None,
    ) -> None:
        """Render a template to a text stream.

        Output is written only after the whole render succeeds.
        """
        stream.write(self.render_string(name, data, cancel=cancel, timeout=timeout))

    def render_string(
        self,
        name: str,
        data: Any = None,
        *,
        cancel: Optional[threading.Event] = None,
        timeout: Optional[float] = None,
    ) -> str:
        """Render a named template and return the output."""
        return self._render(self.get_template(name), data, cancel, timeout)

    def render_template(
        self,
        source: str,
        data: Any = None,
        *,
        cancel: Optional[threading.Event] = None,
        timeout: Optional[float] = None,
    ) -> str:
        """Render inline template source. Inline templates are never cached."""
        markers: Dict[str, Hashable] = {}
        compiled = self.compile_source(source, INLINE_NAME)
        return self._render(self._resolve(compiled, markers), data, cancel, timeout)

    def _render(
        self,
        template: ResolvedTemplate,
        data: Any,
        cancel: Optional[threading.Event],
        timeout: Optional[float],
    ) -> str:
        context = RenderContext(self._prepare_data(data), shared=self.shared.all())
        return self.renderer.render(template, context, cancel=cancel, timeout=timeout)

    @staticmethod
    def _prepare_data(data: Any) -> Dict[str, Any]:
        if data is None:
            return {}
        if isinstance(data, (Mapping, BaseModel)) or (
            dataclasses.is_dataclass(data) and not isinstance(data, type)
        ):
            normalized = normalize(data)
            if isinstance(normalized, dict):
                return normalized
        raise TypeError(f"Template data must be a mapping, got {type(data).__name__}")

    # ------------------------------------------------------------------
    # Compilation and caching
    # ------------------------------------------------------------------

    def get_template(self, name: str) -> ResolvedTemplate:
        """Return the resolved template, compiling it on a cache miss."""
        entry = self.cache.get(name)
        if entry is not None and self.cache.is_valid(entry, self.loader.marker):
            log.debug(f"Cache hit: {name}")
            return entry.template

        log.debug(f"Cache miss: {name}")
        markers: Dict[str, Hashable] = {}
        resolved = self._resolve(self._compile(name, markers), markers)
        self.cache.set(name, resolved, markers)
        return resolved

    def compile_source(self, source: str, name: str = INLINE_NAME) -> CompiledTemplate:
        """Lex, parse and compile source without touching the cache.

        Raises:
            LexError, ParseError, CompileError: With `template` set to `name`.
        """
        try:
            return Compiler(name, self.config.while_limit).compile(parse(source))
        except (LexError, ParseError, CompileError) as e:
            e.template = name
            log.debug(f"Failed to compile {name}: {e}")
            raise

    def _compile(self, name: str, markers: Dict[str, Hashable]) -> CompiledTemplate:
        source = self.loader.get_source(name)
        markers[name] = source.marker
        return self.compile_source(source.source, name)

    def _resolve(
        self, compiled: CompiledTemplate, markers: Dict[str, Hashable]
    ) -> ResolvedTemplate:
        resolver = InheritanceResolver(lambda parent: self._compile(parent, markers))
        return resolver.resolve(compiled)

    def exists(self, name: str) -> bool:
        return self.loader.exists(name)

    def templates(self) -> List[str]:
        """Names of every template the loader can find."""
        return self.loader.list_templates()

    def load(self) -> int:
        """Precompile every template; returns how many were compiled."""
        names = self.templates()
        for name in names:
            self.get_template(name)
        log.info(f"Precompiled {len(names)} templates")
        return len(names)

    def clear_cache(self) -> None:
        self.cache.clear()
