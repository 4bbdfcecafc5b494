"""Shared fixtures for quill tests."""

import pytest

from quill.engine import DictLoader, Engine


@pytest.fixture
def make_engine():
    """Build an engine over an in-memory set of templates."""

    def factory(templates=None, **options):
        return Engine(loader=DictLoader(templates or {}), **options)

    return factory


@pytest.fixture
def render(make_engine):
    """Render inline source with optional data."""
    engine = make_engine()

    def _render(source, data=None):
        return engine.render_template(source, data or {})

    return _render
