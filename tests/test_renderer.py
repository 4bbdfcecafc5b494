"""End-to-end rendering tests: source in, text out."""

import threading

import pytest

from quill.exceptions import (
    CyclicExtendsError,
    LoopControlError,
    RenderCancelledError,
    UnknownFunctionError,
)


# =============================================================================
# Core laws
# =============================================================================


class TestCoreLaws:
    def test_plain_text_identity(self, render):
        """Text with no directives renders unchanged."""
        source = "Hello\n  <b>world</b> & { braces } 100% @ noon\n"
        assert render(source) == source

    def test_escaped_and_raw_echo(self, render):
        assert render("{{ $x }}", {"x": "<b>"}) == "&lt;b&gt;"
        assert render("{!! $x !!}", {"x": "<b>"}) == "<b>"

    def test_missing_variable_renders_empty(self, render):
        assert render("[{{ $nope }}|{{ $nope->deeper }}]") == "[|]"

    def test_if_elseif_else(self, render):
        source = "@if($a)A@elseif($b)B@else C@endif"
        assert render(source, {"a": False, "b": True}) == "B"
        assert render(source, {"a": False, "b": False}) == "C"
        assert render(source, {"a": True, "b": True}) == "A"

    def test_foreach_loop_iteration(self, render):
        source = "@foreach($items as $item){{ $loop.iteration }}@endforeach"
        assert render(source, {"items": ["x", "y", "z"]}) == "123"
        assert render(source, {"items": []}) == ""

    def test_forelse(self, render):
        source = "@forelse($items as $i){{ $i }}@empty none@endforelse"
        assert render(source, {"items": []}) == "none"
        assert render(source, {"items": [1]}) == "1"

    def test_stack_order(self, render):
        pushes = "@push('s')A@endpush @push('s')B@endpush"
        assert render(pushes + "@stack('s')") == "AB"
        assert render("@prepend('s')Z@endprepend" + pushes + "@stack('s')") == "ZAB"

    def test_nested_loop_parent(self, render):
        """Inner loops see the outer loop's current iteration through parent."""
        source = (
            "@foreach($outer as $o)"
            "@foreach($inner as $i)"
            "{{ $loop->parent->iteration }}{{ $loop->iteration }},"
            "@endforeach"
            "@endforeach"
        )
        data = {"outer": ["a", "b"], "inner": [1, 2]}
        assert render(source, data) == "11,12,21,22,"


class TestInheritance:
    def test_yield_and_section(self, make_engine):
        engine = make_engine(
            {
                "base": "<h1>@yield('title', 'Default')</h1>",
                "child": "@extends('base')@section('title', 'Hi')@endsection",
                "bare": "@extends('base')",
            }
        )
        assert engine.render_string("child") == "<h1>Hi</h1>"
        assert engine.render_string("bare") == "<h1>Default</h1>"

    def test_block_sections_see_child_data(self, make_engine):
        engine = make_engine(
            {
                "layout": "<main>@yield('content')</main>",
                "page": "@extends('layout')\n@section('content')Hi {{ $name }}@endsection\n",
            }
        )
        assert engine.render_string("page", {"name": "Ada"}) == "<main>Hi Ada</main>"

    def test_cyclic_extends_fails(self, make_engine):
        engine = make_engine({"a": "@extends('b')", "b": "@extends('a')"})
        with pytest.raises(CyclicExtendsError):
            engine.render_string("a")


# =============================================================================
# Loops
# =============================================================================


class TestLoops:
    def test_loop_metadata(self, render):
        source = (
            "@foreach([10, 20, 30] as $n)"
            "{{ $loop->index }}{{ $loop->first ? 'F' : '' }}{{ $loop->last ? 'L' : '' }}"
            "{{ $loop->remaining }}{{ $loop->count }};"
            "@endforeach"
        )
        assert render(source) == "0F23;113;2L03;"

    def test_foreach_with_keys(self, render):
        source = "@foreach($map as $k => $v){{ $k }}={{ $v }};@endforeach"
        assert render(source, {"map": {"a": 1, "b": 2}}) == "a=1;b=2;"

    def test_loop_variable_restored_after_loop(self, render):
        source = "@foreach([1] as $x)@endforeach[{{ $x }}]"
        assert render(source, {"x": "outer"}) == "[outer]"

    def test_for_range(self, render):
        assert render("@for($i = 1; $i <= 3; $i++){{ $i }}@endfor") == "123"
        assert render("@for($i = 0; $i < 3; $i++){{ $i }}@endfor") == "012"

    def test_while_loop(self, render):
        source = (
            "@php $n = 3; @endphp"
            "@while($n > 0){{ $n }}@php $n = $n - 1; @endphp@endwhile"
        )
        assert render(source) == "321"

    def test_while_loop_is_bounded(self, make_engine):
        engine = make_engine(while_limit=5)
        assert engine.render_template("@while(true)x@endwhile") == "xxxxx"

    def test_break_and_continue(self, render):
        source = (
            "@foreach([1, 2, 3, 4] as $i)"
            "@continue($i == 2)@break($i == 4){{ $i }}"
            "@endforeach"
        )
        assert render(source) == "13"

    def test_break_outside_loop(self, render):
        with pytest.raises(LoopControlError):
            render("@break")


# =============================================================================
# Conditionals and helpers
# =============================================================================


class TestConditionals:
    def test_unless(self, render):
        assert render("@unless($a)no@else yes@endunless", {"a": False}) == "no"
        assert render("@unless($a)no@else yes@endunless", {"a": True}) == "yes"

    def test_switch(self, render):
        source = "@switch($v)@case('a')A@break@case('b')B@break@default D@endswitch"
        assert render(source, {"v": "b"}) == "B"
        assert render(source, {"v": "z"}) == "D"

    def test_isset_and_empty(self, render):
        assert render("@isset($name)set@endisset", {"name": "x"}) == "set"
        assert render("@isset($name)set@endisset") == ""
        assert render("@empty($list)none@endempty", {"list": []}) == "none"
        assert render("@empty($list)none@endempty", {"list": [1]}) == ""

    def test_env_and_production(self, make_engine):
        engine = make_engine()
        source = "@production P@endproduction@env('local')L@endenv"
        assert engine.render_template(source) == "P"
        assert engine.render_template(source, {"env": "local"}) == "L"

    def test_auth_and_guest(self, render):
        source = "@auth in@endauth@guest out@endguest"
        assert render(source, {"auth": {"id": 1}}) == "in"
        assert render(source) == "out"

    def test_error_binds_message(self, render):
        source = "@error('email')<p>{{ $message }}</p>@enderror"
        assert render(source, {"errors": {"email": ["Bad email"]}}) == "<p>Bad email</p>"
        assert render(source) == ""

    def test_error_message_is_scoped_to_block(self, render):
        source = "@error('e'){{ $message }}@enderror[{{ $message }}]"
        assert render(source, {"errors": {"e": ["bad"]}}) == "bad[]"
        assert render(source, {"errors": {"e": ["bad"]}, "message": "hi"}) == "bad[hi]"

    def test_once_across_includes(self, make_engine):
        engine = make_engine(
            {"partial": "@once<script>@endonce", "page": "@include('partial')@include('partial')"}
        )
        assert engine.render_string("page") == "<script>"


class TestHtmlHelpers:
    def test_csrf_and_method(self, render):
        assert render("@csrf", {"csrf_token": "abc"}) == (
            '<input type="hidden" name="_token" value="abc">'
        )
        assert render("@method('PUT')") == '<input type="hidden" name="_method" value="PUT">'

    def test_class_directive(self, render):
        source = "<div @class(['p-4', 'active' => $on, 'hidden' => !$on])>"
        assert render(source, {"on": True}) == '<div class="p-4 active">'

    def test_checked(self, render):
        assert render("<input @checked($on)>", {"on": True}) == "<input checked>"
        assert render("<input @checked($on)>", {"on": False}) == "<input >"

    def test_json_is_not_escaped(self, render):
        assert render("@json($data)", {"data": {"a": [1, "<"]}}) == '{"a": [1, "<"]}'

    def test_old_input(self, render):
        assert render("{{ old('name', 'none') }}", {"old": {"name": "Ada"}}) == "Ada"
        assert render("@old('name')") == ""

    def test_markup_functions_are_not_double_escaped(self, render):
        assert render("{{ raw('<b>') }}|{{ e('<b>') }}") == "<b>|&lt;b&gt;"


# =============================================================================
# Includes and components
# =============================================================================


class TestIncludes:
    def test_include_with_data(self, make_engine):
        engine = make_engine(
            {"partial": "Hi {{ $name }}", "page": "@include('partial', ['name' => 'Ada'])"}
        )
        assert engine.render_string("page") == "Hi Ada"

    def test_include_inherits_scope(self, make_engine):
        engine = make_engine({"partial": "Hi {{ $name }}", "page": "@include('partial')"})
        assert engine.render_string("page", {"name": "Bo"}) == "Hi Bo"

    def test_conditional_includes(self, make_engine):
        engine = make_engine(
            {
                "partial": "P",
                "page": (
                    "@includeIf('missing')"
                    "@includeWhen($yes, 'partial')"
                    "@includeUnless($yes, 'partial')"
                    "@includeFirst(['missing', 'partial'])"
                ),
            }
        )
        assert engine.render_string("page", {"yes": True}) == "PP"

    def test_each(self, make_engine):
        engine = make_engine(
            {
                "item": "<{{ $item }}:{{ $key }}>",
                "page": "@each('item', $items, 'item', 'raw|none')",
            }
        )
        assert engine.render_string("page", {"items": ["a", "b"]}) == "<a:0><b:1>"
        assert engine.render_string("page", {"items": []}) == "none"

    def test_component_with_slots(self, make_engine):
        engine = make_engine(
            {
                "components.alert": '<div class="{{ $type }}">{{ $title }}|{{ $slot }}</div>',
                "page": (
                    "@component('alert', ['type' => 'warn'])"
                    "@slot('title')<b>T</b>@endslot Body"
                    "@endcomponent"
                ),
            }
        )
        assert engine.render_string("page") == '<div class="warn"><b>T</b>|Body</div>'


# =============================================================================
# Extension points and cancellation
# =============================================================================


class TestExtensions:
    def test_custom_directive(self, make_engine):
        engine = make_engine()
        engine.add_directive("shout", lambda args, data: args.upper())
        assert engine.render_template("@shout(hi)") == "HI"

    def test_custom_function(self, make_engine):
        engine = make_engine()
        engine.add_function("double", lambda x: x * 2)
        assert engine.render_template("{{ double(4) }}") == "8"

    def test_context_function(self, make_engine):
        engine = make_engine()
        engine.add_function(
            "greeting", lambda ctx: f"Hi {ctx.get('name')}", needs_context=True
        )
        assert engine.render_template("{{ greeting() }}", {"name": "Ada"}) == "Hi Ada"

    def test_unknown_directive_fails(self, render):
        with pytest.raises(UnknownFunctionError):
            render("@nope")

    def test_cancelled_render(self, make_engine):
        engine = make_engine()
        cancel = threading.Event()
        cancel.set()
        with pytest.raises(RenderCancelledError):
            engine.render_template("@foreach([1, 2] as $x){{ $x }}@endforeach", cancel=cancel)
