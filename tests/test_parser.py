"""Tests for the directive parser."""

import pytest

from quill.ast import spec
from quill.ast.parser import parse, parse_env_list, split_args, trim_quotes
from quill.exceptions import ParseError


# =============================================================================
# Argument helpers
# =============================================================================


class TestArgumentHelpers:
    def test_split_args_top_level_only(self):
        assert split_args("'a', fn(1, 2), ['k' => 'x, y']") == [
            "'a'",
            "fn(1, 2)",
            "['k' => 'x, y']",
        ]

    def test_split_args_empty(self):
        assert split_args("") == []
        assert split_args(None) == []

    def test_trim_quotes(self):
        assert trim_quotes("  'layouts.app' ") == "layouts.app"
        assert trim_quotes('"x"') == "x"
        assert trim_quotes("$name") == "$name"

    def test_parse_env_list(self):
        assert parse_env_list("'local'") == ["local"]
        assert parse_env_list("['local', \"staging\"]") == ["local", "staging"]


# =============================================================================
# Conditionals
# =============================================================================


class TestConditionals:
    def test_if_elseif_else(self):
        template = parse("@if($a)A@elseif($b)B@else C@endif")
        node = template.children[0]
        assert isinstance(node, spec.If)
        assert node.condition == "$a"
        assert node.children == [spec.Text("A")]
        assert len(node.elseifs) == 1
        assert node.elseifs[0].condition == "$b"
        assert node.else_children == [spec.Text("C")]

    def test_missing_endif_is_tolerated(self):
        """A block left open at end of input closes leniently."""
        template = parse("@if($a)open")
        node = template.children[0]
        assert node.children == [spec.Text("open")]

    def test_unless_with_else(self):
        node = parse("@unless($a)x@else y@endunless").children[0]
        assert isinstance(node, spec.Unless)
        assert node.else_children == [spec.Text("y")]

    def test_switch_consumes_break(self):
        node = parse(
            "@switch($v)@case(1)one@break@case(2)two@break@default other@endswitch"
        ).children[0]
        assert isinstance(node, spec.Switch)
        assert [c.value for c in node.cases] == ["1", "2"]
        assert node.cases[0].children == [spec.Text("one")]
        assert node.default == [spec.Text("other")]

    def test_if_requires_arguments(self):
        with pytest.raises(ParseError, match="@if requires arguments"):
            parse("@if x @endif")

    def test_stray_terminator_is_dropped(self):
        template = parse("a@endif b")
        assert template.children == [spec.Text("a"), spec.Text("b")]


# =============================================================================
# Loops
# =============================================================================


class TestLoops:
    def test_foreach_with_key(self):
        node = parse("@foreach($users as $id => $user)x@endforeach").children[0]
        assert isinstance(node, spec.Foreach)
        assert node.items == "$users"
        assert node.key == "$id"
        assert node.value == "$user"
        assert node.forelse is False

    def test_forelse_splits_on_bare_empty(self):
        node = parse(
            "@forelse($items as $item){{ $item }}@empty none@endforelse"
        ).children[0]
        assert node.forelse is True
        assert node.children == [spec.Echo("$item")]
        assert node.empty == [spec.Text("none")]

    def test_empty_with_args_inside_forelse_is_nested(self):
        node = parse(
            "@forelse($xs as $x)@empty($x->tags)-@endempty@empty no@endforelse"
        ).children[0]
        assert isinstance(node.children[0], spec.EmptyCheck)
        assert node.empty == [spec.Text("no")]

    def test_for_clauses(self):
        node = parse("@for($i = 0; $i < 3; $i++)x@endfor").children[0]
        assert isinstance(node, spec.For)
        assert (node.init, node.condition, node.post) == ("$i = 0", "$i < 3", "$i++")

    def test_while(self):
        node = parse("@while($n > 0)x@endwhile").children[0]
        assert isinstance(node, spec.While)
        assert node.condition == "$n > 0"

    def test_break_with_condition(self):
        node = parse("@break($i > 2)").children[0]
        assert isinstance(node, spec.Break)
        assert node.condition == "$i > 2"


# =============================================================================
# Layouts, includes and stacks
# =============================================================================


class TestLayouts:
    def test_inline_section(self):
        node = parse("@section('title', 'Hi')").children[0]
        assert isinstance(node, spec.Section)
        assert node.name == "title"
        assert node.content == "'Hi'"

    def test_block_section_with_show(self):
        node = parse("@section('sidebar')links@show").children[0]
        assert node.children == [spec.Text("links")]
        assert node.show is True

    def test_yield_with_default(self):
        node = parse("@yield('title', 'Default')").children[0]
        assert node == spec.Yield("title", "'Default'")

    def test_extends(self):
        node = parse("@extends('layouts.app')").children[0]
        assert node == spec.Extends("layouts.app")

    def test_include_variants(self):
        children = parse(
            "@include('a', ['x' => 1])"
            "@includeWhen($show, 'b')"
            "@includeFirst(['c', 'd'])"
        ).children
        assert children[0] == spec.Include("include", "a", data="['x' => 1]")
        assert children[1] == spec.Include("includeWhen", "b", condition="$show")
        assert children[2].template == "['c', 'd']"

    def test_each(self):
        node = parse("@each('item', $items, 'item', 'empty')").children[0]
        assert node == spec.Each("item", "$items", "item", "empty")

    def test_push_variants(self):
        children = parse(
            "@push('js')a@endpush@prepend('js')b@endprepend@pushOnce('js')c@endPushOnce"
        ).children
        assert [type(c) for c in children] == [spec.Push] * 3
        assert children[1].prepend is True
        assert children[2].once is True
        assert children[2].children == [spec.Text("c")]

    def test_component_slots(self):
        node = parse(
            "@component('alert', ['type' => 'x'])"
            "@slot('title')T@endslot\n"
            "body"
            "@endcomponent"
        ).children[0]
        assert isinstance(node, spec.Component)
        assert node.name == "alert"
        assert node.data == "['type' => 'x']"
        assert node.slots["title"].children == [spec.Text("T")]
        assert node.children == [spec.Text("\nbody")]


# =============================================================================
# Miscellaneous blocks
# =============================================================================


class TestMiscBlocks:
    def test_php_block_collects_text(self):
        node = parse("@php $x = 1; @endphp").children[0]
        assert node == spec.Php("$x = 1;")

    def test_php_inline(self):
        node = parse("@php($x = 2)").children[0]
        assert node == spec.Php("$x = 2")

    def test_env_list(self):
        node = parse("@env(['local', 'staging'])x@endenv").children[0]
        assert node.envs == ["local", "staging"]

    def test_auth_and_guest(self):
        auth, guest = parse("@auth('admin')a@endauth@guest g@endguest").children
        assert auth.guard == "admin"
        assert guest.guest is True
        assert guest.children == [spec.Text("g")]

    def test_error_block(self):
        node = parse("@error('email'){{ $message }}@enderror").children[0]
        assert node.field_name == "email"

    def test_unknown_directive_is_generic(self):
        node = parse("@datetime($now)").children[0]
        assert node == spec.Directive("datetime", "$now")

    def test_node_positions(self):
        template = parse("a\n  @if($x)b@endif")
        node = template.children[1]
        assert (node.line, node.column) == (2, 3)
