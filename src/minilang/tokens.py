"""
Token types for the minilang lexer.

Error code ranges used across the package:
- E0xx: Lexer errors
- E1xx: Parser errors
- E2xx: Runtime binding/value errors
- E3xx: Module loading errors
- E4xx: Task errors
"""

from enum import Enum, auto
from dataclasses import dataclass
from typing import Any, Optional


class TokenType(Enum):
    """All token kinds produced by the lexer."""

    NUMBER = auto()         # 42, 3.14, .5
    STRING = auto()         # "hello", 'world'
    IDENTIFIER = auto()     # foo, Math.floor
    KEYWORD = auto()        # let, if, fn, ...
    OPERATOR = auto()       # + == ( { , ;
    EOF = auto()            # end of input


@dataclass(frozen=True)
class SourceLocation:
    """Represents a position in source code."""
    line: int           # 1-indexed line number
    column: int         # 1-indexed column number
    offset: int         # 0-indexed character offset from start
    filename: Optional[str] = None

    def __str__(self) -> str:
        if self.filename:
            return f"{self.filename}:{self.line}:{self.column}"
        return f"{self.line}:{self.column}"


@dataclass(frozen=True)
class SourceSpan:
    """Represents a range in source code."""
    start: SourceLocation
    end: SourceLocation

    def __str__(self) -> str:
        if self.start.filename:
            return f"{self.start.filename}:{self.start.line}:{self.start.column}-{self.end.line}:{self.end.column}"
        return f"{self.start.line}:{self.start.column}-{self.end.line}:{self.end.column}"


@dataclass(frozen=True)
class Token:
    """A single token from the lexer."""
    type: TokenType
    value: Any              # float for numbers, decoded text for strings, else the lexeme
    lexeme: str             # The original source text
    span: SourceSpan        # Location in source

    @property
    def offset(self) -> int:
        return self.span.start.offset

    def is_keyword(self, word: str) -> bool:
        return self.type == TokenType.KEYWORD and self.value == word

    def is_operator(self, *ops: str) -> bool:
        return self.type == TokenType.OPERATOR and self.value in ops

    def __str__(self) -> str:
        if self.type == TokenType.EOF:
            return "end of input"
        if self.type in (TokenType.NUMBER, TokenType.STRING, TokenType.IDENTIFIER):
            return f"{self.type.name}({self.value!r})"
        return f"'{self.lexeme}'"


KEYWORDS: frozenset = frozenset({
    "let",
    "if",
    "else",
    "while",
    "fn",
    "return",
    "break",
    "continue",
    "new",
    "require",
    "true",
    "false",
    # Word forms of logical operators
    "and",
    "or",
    "isnt",
})

# Matched before the single-character set
TWO_CHAR_OPERATORS: frozenset = frozenset({"==", "!=", "<=", ">=", "&&", "||"})

SINGLE_CHAR_OPERATORS: frozenset = frozenset("+-*/%=<>!(){}[],;")

# Keywords that act as binary operators, with the symbol they stand for
WORD_OPERATORS: dict[str, str] = {
    "or": "||",
    "and": "&&",
    "isnt": "!=",
}


def is_keyword(word: str) -> bool:
    """Check whether a plain (dot-free) word is reserved."""
    return word in KEYWORDS
