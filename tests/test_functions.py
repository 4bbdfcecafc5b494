"""Tests for the function registry and built-in functions."""

import pytest
from markupsafe import Markup

from quill.exceptions import UnknownFunctionError
from quill.runtime import functions as fn
from quill.runtime.context import RenderContext
from quill.runtime.functions import FunctionRegistry


# =============================================================================
# Registry
# =============================================================================


class TestRegistry:
    def test_builtins_are_registered(self):
        registry = FunctionRegistry()
        assert registry.has("upper")
        assert "concat-stack" in registry.names()

    def test_unknown_function(self):
        with pytest.raises(UnknownFunctionError) as exc_info:
            FunctionRegistry().get("nope")
        assert exc_info.value.name == "nope"

    def test_register_and_bind(self):
        registry = FunctionRegistry()
        registry.register("twice", lambda x: x * 2)
        assert registry.bind("twice", None)(3) == 6

    def test_context_functions_receive_context(self):
        registry = FunctionRegistry()
        registry.register("who", lambda ctx: ctx.get("name"), needs_context=True)
        context = RenderContext({"name": "Ada"})
        assert registry.bind("who", context)() == "Ada"

    def test_copy_is_independent(self):
        registry = FunctionRegistry()
        clone = registry.copy()
        clone.register("extra", lambda: 1)
        assert clone.has("extra")
        assert not registry.has("extra")


# =============================================================================
# Built-ins
# =============================================================================


class TestStringFunctions:
    def test_case(self):
        assert fn.upper("ab") == "AB"
        assert fn.title("hello world") == "Hello World"
        assert fn.ucfirst("ada") == "Ada"

    def test_slug(self):
        assert fn.slug("Hello, World!  Again") == "hello-world-again"

    def test_limit_and_substr(self):
        assert fn.limit("abcdef", 3) == "abc..."
        assert fn.limit("abc", 3) == "abc"
        assert fn.substr("abcdef", 1, 3) == "bcd"
        assert fn.substr("abcdef", -2) == "ef"

    def test_nl2br_escapes(self):
        assert fn.nl2br("<a>\nb") == Markup("&lt;a&gt;<br>\nb")


class TestListFunctions:
    def test_sorting(self):
        assert fn.sort_asc([3, 1, 2]) == [1, 2, 3]
        assert fn.sort_desc([{"n": 1}, {"n": 3}], "n") == [{"n": 3}, {"n": 1}]

    def test_pluck_where_group(self):
        rows = [{"k": "a", "v": 1}, {"k": "b", "v": 2}, {"k": "a", "v": 3}]
        assert fn.pluck(rows, "v") == [1, 2, 3]
        assert fn.where(rows, "k", "b") == [{"k": "b", "v": 2}]
        assert list(fn.group_by(rows, "k")) == ["a", "b"]

    def test_chunk_and_flatten(self):
        assert fn.chunk([1, 2, 3], 2) == [[1, 2], [3]]
        assert fn.flatten([1, [2, [3]]]) == [1, 2, 3]

    def test_first_last_length(self):
        assert fn.first([1, 2]) == 1
        assert fn.last([]) is None
        assert fn.length({"a": 1}) == 1
        assert fn.length(None) == 0

    def test_seq(self):
        assert fn.seq(1, 3) == [1, 2, 3]
        assert fn.seq(3, 1) == [3, 2, 1]


class TestNumberAndComparison:
    def test_arithmetic(self):
        assert fn.add(1, 2) == 3
        assert fn.div(1, 0) == 0
        assert fn.mod(7, 3) == 1
        assert fn.round_(2.567, 2) == 2.57

    def test_numeric_strings_compare_as_numbers(self):
        assert fn.gt("10", "9") is True
        assert fn.lt("apple", "banana") is True

    def test_formatting(self):
        assert fn.currency(1234.5) == "$1,234.50"
        assert fn.percent(0.25) == "25%"


class TestUtilityFunctions:
    def test_coalesce_and_default(self):
        assert fn.coalesce(None, 0, 1) == 0
        assert fn.default("", "x") == "x"
        assert fn.default("y", "x") == "y"

    def test_index(self):
        assert fn.index({"a": 1}, "a") == 1
        assert fn.index([1, 2], 5) is None
        assert fn.index([1, 2], -1) == 2

    def test_json(self):
        out = fn.json_({"a": [1]})
        assert isinstance(out, Markup)
        assert out == '{"a": [1]}'

    def test_date(self):
        assert fn.date("Y-m-d", "2024-03-05T10:07:00") == "2024-03-05"
        assert fn.date("d/m/y H:i", "2024-03-05T10:07:00") == "05/03/24 10:07"

    def test_typeof(self):
        assert [fn.typeof(v) for v in (None, True, 1, 1.5, "s", [], {})] == [
            "null", "bool", "int", "float", "string", "array", "map",
        ]


class TestAttributeHelpers:
    def test_class_array(self):
        assert fn.class_array({0: "p-4", "active": True, "hidden": False}) == "p-4 active"
        assert fn.class_array(["a", "b"]) == "a b"

    def test_style_array(self):
        assert fn.style_array({0: "color: red", "font-weight: bold": False}) == "color: red;"


class TestContextHelpers:
    def test_concat_stack(self):
        context = RenderContext()
        context.push_stack("js", "<a>")
        context.push_stack("js", "<b>")
        assert fn.concat_stack(context, "js") == Markup("<a><b>")

    def test_error_helpers(self):
        context = RenderContext({"errors": {"email": "Bad"}})
        assert fn.has_error(context, "email") is True
        assert fn.get_error(context, "email") == "Bad"
