"""Lexer - turns template source into a flat token stream.

Recognised sequences, checked in order at every position:

    {{-- ... --}}   comment
    {!! ... !!}     raw echo
    {{ ... }}       escaped echo
    @@              literal "@"
    @name(...)      directive, with optional balanced argument string
    @verbatim       raw passthrough up to @endverbatim

Everything else is text. The stream always ends with an EOF token.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

from quill.exceptions import LexError


class TokenKind(Enum):
    TEXT = "text"
    ECHO_ESCAPED = "echo_escaped"
    ECHO_RAW = "echo_raw"
    COMMENT = "comment"
    DIRECTIVE = "directive"
    VERBATIM = "verbatim"
    EOF = "eof"


@dataclass(frozen=True)
class Position:
    """1-based line/column plus 0-based character offset."""

    line: int = 1
    column: int = 1
    offset: int = 0


@dataclass(frozen=True)
class Token:
    kind: TokenKind
    value: str
    position: Position
    args: Optional[str] = None  # raw text between the directive's parentheses


COMMENT_OPEN = "{{--"
COMMENT_CLOSE = "--}}"
RAW_OPEN = "{!!"
RAW_CLOSE = "!!}"
ECHO_OPEN = "{{"
ECHO_CLOSE = "}}"
AT_ESCAPE = "@@"
VERBATIM_CLOSE = "@endverbatim"


def _is_ident_start(ch: str) -> bool:
    return ch.isalpha() or ch == "_"


def _is_ident_char(ch: str) -> bool:
    return ch.isalnum() or ch == "_"


class Lexer:
    """Single-pass scanner with exact line/column tracking."""

    def __init__(self, source: str):
        self.source = source
        self.pos = 0
        self.line = 1
        self.column = 1

    def tokenize(self) -> List[Token]:
        """Scan the whole source.

        Returns:
            Tokens in document order, terminated by a single EOF token.

        Raises:
            LexError: On an unterminated comment, echo, verbatim block or
                directive argument list.
        """
        tokens: List[Token] = []
        while self.pos < len(self.source):
            tokens.append(self._next_token())
        tokens.append(Token(TokenKind.EOF, "", self._position()))
        return tokens

    # ------------------------------------------------------------------
    # Scanning
    # ------------------------------------------------------------------

    def _next_token(self) -> Token:
        start = self._position()

        if self._match(COMMENT_OPEN):
            body = self._scan_delimited(
                COMMENT_OPEN, COMMENT_CLOSE, LexError.UNTERMINATED_COMMENT,
                "Unclosed comment", start,
            )
            return Token(TokenKind.COMMENT, body.strip(), start)

        if self._match(RAW_OPEN):
            body = self._scan_delimited(
                RAW_OPEN, RAW_CLOSE, LexError.UNTERMINATED_ECHO,
                "Unclosed raw echo", start,
            )
            return Token(TokenKind.ECHO_RAW, body.strip(), start)

        if self._match(ECHO_OPEN):
            body = self._scan_delimited(
                ECHO_OPEN, ECHO_CLOSE, LexError.UNTERMINATED_ECHO,
                "Unclosed echo", start,
            )
            return Token(TokenKind.ECHO_ESCAPED, body.strip(), start)

        if self._match(AT_ESCAPE):
            self._advance(2)
            return Token(TokenKind.TEXT, "@", start)

        if self._at_directive():
            return self._scan_directive(start)

        return self._scan_text(start)

    def _scan_delimited(
        self, opener: str, closer: str, kind: str, message: str, start: Position
    ) -> str:
        body_start = self.pos + len(opener)
        end = self.source.find(closer, body_start)
        if end == -1:
            raise LexError(kind, message, start.line, start.column, start.offset)
        body = self.source[body_start:end]
        self._advance(end + len(closer) - self.pos)
        return body

    def _scan_directive(self, start: Position) -> Token:
        self._advance(1)  # @
        name_start = self.pos
        while self.pos < len(self.source) and _is_ident_char(self.source[self.pos]):
            self._advance(1)
        name = self.source[name_start : self.pos]

        if name == "verbatim":
            end = self.source.find(VERBATIM_CLOSE, self.pos)
            if end == -1:
                raise LexError(
                    LexError.UNTERMINATED_VERBATIM,
                    "Unclosed @verbatim block",
                    start.line,
                    start.column,
                    start.offset,
                )
            content = self.source[self.pos : end]
            self._advance(end + len(VERBATIM_CLOSE) - self.pos)
            return Token(TokenKind.VERBATIM, content, start)

        args = None
        if self._match("("):
            args = self._scan_args()
        elif self._match(" ") or self._match("\t"):
            # One blank after a bare directive separates it from the text.
            self._advance(1)
        return Token(TokenKind.DIRECTIVE, name, start, args)

    def _scan_args(self) -> str:
        """Scan a balanced parenthesised argument string, quotes respected."""
        open_pos = self._position()
        self._advance(1)  # (
        args_start = self.pos
        depth = 1
        quote: Optional[str] = None
        i = self.pos
        src = self.source

        while i < len(src):
            ch = src[i]
            if quote:
                if ch == "\\":
                    i += 2
                    continue
                if ch == quote:
                    quote = None
            elif ch in ("'", '"'):
                quote = ch
            elif ch == "(":
                depth += 1
            elif ch == ")":
                depth -= 1
                if depth == 0:
                    break
            i += 1

        if depth != 0:
            raise LexError(
                LexError.UNTERMINATED_DIRECTIVE_ARGS,
                "Unclosed parenthesis in directive arguments",
                open_pos.line,
                open_pos.column,
                open_pos.offset,
            )

        args = src[args_start:i]
        self._advance(i + 1 - self.pos)
        return args.strip()

    def _scan_text(self, start: Position) -> Token:
        text_start = self.pos
        self._advance(1)
        while self.pos < len(self.source):
            if (
                self._match(ECHO_OPEN)
                or self._match(RAW_OPEN)
                or self._match(AT_ESCAPE)
                or self._at_directive()
            ):
                break
            self._advance(1)
        return Token(TokenKind.TEXT, self.source[text_start : self.pos], start)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _match(self, literal: str) -> bool:
        return self.source.startswith(literal, self.pos)

    def _at_directive(self) -> bool:
        nxt = self.pos + 1
        return (
            self.source[self.pos] == "@"
            and nxt < len(self.source)
            and _is_ident_start(self.source[nxt])
        )

    def _position(self) -> Position:
        return Position(self.line, self.column, self.pos)

    def _advance(self, n: int) -> None:
        chunk = self.source[self.pos : self.pos + n]
        newlines = chunk.count("\n")
        if newlines:
            self.line += newlines
            self.column = len(chunk) - chunk.rfind("\n")
        else:
            self.column += len(chunk)
        self.pos += len(chunk)


def tokenize(source: str) -> List[Token]:
    """Convenience wrapper around Lexer(source).tokenize()."""
    return Lexer(source).tokenize()
