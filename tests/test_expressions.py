"""Tests for expression rewriting and evaluation."""

import pytest
from jinja2 import is_undefined

from quill.compiler.expressions import Expression, rewrite
from quill.exceptions import CompileError, ExpressionError, UnknownFunctionError
from quill.runtime.functions import FunctionRegistry


@pytest.fixture
def registry():
    return FunctionRegistry()


def evaluate(source, variables=None, registry=None):
    registry = registry or FunctionRegistry()
    return Expression(source).evaluate(variables or {}, registry.get)


# =============================================================================
# Rewriting
# =============================================================================


class TestRewrite:
    @pytest.mark.parametrize(
        "source, expected",
        [
            ("$user->name", "user.name"),
            ("$loop.iteration", "loop.iteration"),
            ("$a && !$b", "a and not b"),
            ("$a || $b", "a or b"),
            ("$a === $b", "a == b"),
            ("$a !== null", "a != none"),
            ("'a' . $b", "'a' ~ b"),
            ("$a ? 'y' : 'n'", "('y' if a else 'n')"),
            ("$a ?: 'n'", "(a or 'n')"),
            ("['a' => 1, 'b']", "{'a': 1, 0: 'b'}"),
            ("[1, 2]", "[1, 2]"),
        ],
    )
    def test_rewrites(self, source, expected):
        code, _ = rewrite(source)
        assert code == expected

    def test_comparison_becomes_function(self):
        code, functions = rewrite("$x > 0")
        assert code == "_fn_gt(x, 0)"
        assert functions == {"gt"}

    def test_coalesce(self):
        code, functions = rewrite("$a ?? 'x'")
        assert code == "_fn_coalesce(a, 'x')"
        assert "coalesce" in functions

    def test_subscript_becomes_index(self):
        code, functions = rewrite("$items['key']")
        assert code == "_fn_index(items, 'key')"
        assert functions == {"index"}

    def test_function_calls_are_collected(self):
        code, functions = rewrite("upper(trim($name))")
        assert code == "_fn_upper(_fn_trim(name))"
        assert functions == {"upper", "trim"}

    def test_strings_are_untouched(self):
        code, _ = rewrite("'$a && $b'")
        assert code == "'$a && $b'"

    def test_empty_expression(self):
        assert rewrite("")[0] == "none"


# =============================================================================
# Evaluation
# =============================================================================


class TestEvaluate:
    def test_arithmetic(self):
        assert evaluate("$a + 1", {"a": 2}) == 3

    def test_member_access_on_dict(self):
        assert evaluate("$user->name", {"user": {"name": "Ada"}}) == "Ada"

    @pytest.mark.parametrize("key", ["items", "values", "keys", "get", "copy"])
    def test_member_access_prefers_keys_over_dict_methods(self, key):
        """Data keys named like dict methods resolve to the stored value."""
        assert evaluate("$o->" + key, {"o": {key: "v"}}) == "v"

    def test_missing_key_on_mapping_is_undefined(self):
        assert is_undefined(evaluate("$o->name", {"o": {"id": 1}}))

    def test_missing_variable_is_undefined(self):
        """Undefined names chain without raising."""
        assert is_undefined(evaluate("$missing->name"))

    def test_registry_functions(self, registry):
        assert evaluate("upper($name)", {"name": "ada"}, registry) == "ADA"

    def test_comparisons(self):
        assert evaluate("$n >= 3", {"n": 3}) is True
        assert evaluate("$n < 3", {"n": 3}) is False

    def test_keyed_array(self):
        assert evaluate("['a' => $x]", {"x": 1}) == {"a": 1}

    def test_ternary_and_coalesce(self):
        assert evaluate("$on ? 'yes' : 'no'", {"on": True}) == "yes"
        assert evaluate("$name ?? 'guest'") == "guest"

    def test_function_names_do_not_shadow_data(self):
        """`title` as data and `title()` as a function coexist."""
        assert evaluate("title($title)", {"title": "hello world"}) == "Hello World"

    def test_unknown_function(self):
        with pytest.raises(UnknownFunctionError):
            evaluate("nope(1)")

    def test_runtime_failure_is_wrapped(self):
        with pytest.raises(ExpressionError) as exc_info:
            evaluate("$a / $b", {"a": 1, "b": 0})
        assert exc_info.value.source == "$a / $b"


class TestExpressionObject:
    def test_invalid_syntax_fails_at_compile(self):
        with pytest.raises(CompileError):
            Expression("$a +")

    def test_equality_uses_source(self):
        assert Expression("$a") == Expression(" $a ")
        assert hash(Expression("$a")) == hash(Expression("$a"))
        assert repr(Expression("$a")) == "Expression('$a')"
