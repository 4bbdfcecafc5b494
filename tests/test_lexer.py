"""Tests for the template lexer."""

import pytest

from quill.ast.lexer import Position, TokenKind, tokenize
from quill.exceptions import LexError


def kinds(tokens):
    return [t.kind for t in tokens]


# =============================================================================
# Text and echoes
# =============================================================================


class TestBasicTokens:
    def test_plain_text_is_one_token(self):
        """Text without special sequences is a single TEXT token plus EOF."""
        tokens = tokenize("Hello, world!\n")
        assert kinds(tokens) == [TokenKind.TEXT, TokenKind.EOF]
        assert tokens[0].value == "Hello, world!\n"

    def test_empty_source_yields_eof(self):
        tokens = tokenize("")
        assert kinds(tokens) == [TokenKind.EOF]

    def test_echo_bodies_are_trimmed(self):
        """Escaped and raw echoes carry their trimmed expression."""
        tokens = tokenize("{{  $name  }}{!! $html !!}")
        assert kinds(tokens)[:2] == [TokenKind.ECHO_ESCAPED, TokenKind.ECHO_RAW]
        assert tokens[0].value == "$name"
        assert tokens[1].value == "$html"

    def test_comment(self):
        tokens = tokenize("a{{-- note --}}b")
        assert kinds(tokens) == [
            TokenKind.TEXT,
            TokenKind.COMMENT,
            TokenKind.TEXT,
            TokenKind.EOF,
        ]
        assert tokens[1].value == "note"

    def test_double_at_is_literal(self):
        """`@@` escapes a directive and yields a literal @."""
        tokens = tokenize("@@if")
        assert tokens[0].kind == TokenKind.TEXT
        assert tokens[0].value == "@"
        assert tokens[1].value == "if"

    def test_at_followed_by_non_letter_is_text(self):
        tokens = tokenize("price @ 5")
        assert kinds(tokens) == [TokenKind.TEXT, TokenKind.EOF]


# =============================================================================
# Directives
# =============================================================================


class TestDirectives:
    def test_bare_directive(self):
        tokens = tokenize("@csrf")
        assert tokens[0].kind == TokenKind.DIRECTIVE
        assert tokens[0].value == "csrf"
        assert tokens[0].args is None

    def test_directive_args_balanced(self):
        """Nested parentheses stay inside the argument string."""
        tokens = tokenize("@if(count($items) > (1 + 2))x")
        assert tokens[0].args == "count($items) > (1 + 2)"
        assert tokens[1].value == "x"

    def test_directive_args_respect_quotes(self):
        """Parentheses inside quoted strings do not affect nesting."""
        tokens = tokenize("@include('a)b', ['x' => \"(\"])")
        assert tokens[0].args == "'a)b', ['x' => \"(\"]"

    def test_blank_after_bare_directive_is_consumed(self):
        tokens = tokenize("@else C")
        assert tokens[0].value == "else"
        assert tokens[1].kind == TokenKind.TEXT
        assert tokens[1].value == "C"

    def test_only_one_blank_is_consumed(self):
        tokens = tokenize("@endif  x")
        assert tokens[1].value == " x"

    def test_verbatim_passes_content_through(self):
        """Echo syntax inside @verbatim is not interpreted."""
        tokens = tokenize("@verbatim{{ $x }} @if@endverbatim!")
        assert tokens[0].kind == TokenKind.VERBATIM
        assert tokens[0].value == "{{ $x }} @if"
        assert tokens[1].value == "!"


# =============================================================================
# Positions
# =============================================================================


class TestPositions:
    def test_line_and_column_tracking(self):
        tokens = tokenize("ab\ncd {{ $x }}\n@if($y)")
        echo = tokens[1]
        directive = tokens[3]
        assert echo.position == Position(line=2, column=4, offset=6)
        assert directive.position.line == 3
        assert directive.position.column == 1

    def test_eof_position(self):
        tokens = tokenize("a\nb")
        assert tokens[-1].position == Position(line=2, column=2, offset=3)


# =============================================================================
# Errors
# =============================================================================


class TestLexErrors:
    @pytest.mark.parametrize(
        "source, kind",
        [
            ("{{-- open", LexError.UNTERMINATED_COMMENT),
            ("{{ $x", LexError.UNTERMINATED_ECHO),
            ("{!! $x", LexError.UNTERMINATED_ECHO),
            ("@verbatim text", LexError.UNTERMINATED_VERBATIM),
            ("@if($x", LexError.UNTERMINATED_DIRECTIVE_ARGS),
        ],
    )
    def test_unterminated_constructs(self, source, kind):
        with pytest.raises(LexError) as exc_info:
            tokenize(source)
        assert exc_info.value.kind == kind

    def test_error_reports_position(self):
        with pytest.raises(LexError) as exc_info:
            tokenize("line one\n  {{ $x")
        error = exc_info.value
        assert error.line == 2
        assert error.column == 3
        assert "line 2" in str(error)
