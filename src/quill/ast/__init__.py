"""Quill AST - lexer, parser and node definitions."""

from quill.ast.lexer import Lexer, Position, Token, TokenKind, tokenize
from quill.ast.parser import Parser, parse, split_args, trim_quotes

__all__ = [
    "Lexer",
    "Position",
    "Token",
    "TokenKind",
    "tokenize",
    "Parser",
    "parse",
    "split_args",
    "trim_quotes",
]
