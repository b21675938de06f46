"""
Lexer for minilang.

Converts source text into a list of tokens for the parser.
Supports:
- Line comments (# to end of line)
- Number literals (digits with at most one decimal point)
- String literals in single or double quotes with \\n and \\t escapes
- Identifiers, including dotted namespace paths such as Math.floor
- Keywords and one/two-character operators
"""

from typing import List, Optional, Iterator
from .tokens import (
    Token, TokenType, SourceLocation, SourceSpan,
    TWO_CHAR_OPERATORS, SINGLE_CHAR_OPERATORS, is_keyword,
)
from .errors import (
    error_unexpected_character,
    error_unterminated_string,
)


def _is_digit(ch: str) -> bool:
    return '0' <= ch <= '9'


def _is_ident_start(ch: str) -> bool:
    return ch.isalpha() or ch == '_'


def _is_ident_part(ch: str) -> bool:
    return ch.isalnum() or ch == '_'


class Lexer:
    """
    Tokenizer for minilang source text.

    Usage:
        lexer = Lexer(source_code)
        tokens = lexer.tokenize()

    Or for streaming:
        lexer = Lexer(source_code)
        for token in lexer:
            process(token)
    """

    def __init__(self, source: str, filename: Optional[str] = None):
        self.source = source
        self.filename = filename
        self.pos = 0            # Current position in source
        self.line = 1           # Current line (1-indexed)
        self.column = 1         # Current column (1-indexed)
        self._lines: Optional[List[str]] = None

    @property
    def lines(self) -> List[str]:
        """Lazy-load line list for error reporting."""
        if self._lines is None:
            self._lines = self.source.splitlines()
        return self._lines

    def get_source_line(self, line_num: int) -> Optional[str]:
        """Get a specific line of source (1-indexed)."""
        if 1 <= line_num <= len(self.lines):
            return self.lines[line_num - 1]
        return None

    def _location(self) -> SourceLocation:
        return SourceLocation(self.line, self.column, self.pos, self.filename)

    def _span(self, start: SourceLocation) -> SourceSpan:
        return SourceSpan(start, self._location())

    def _peek(self, offset: int = 0) -> str:
        """Look at character at current position + offset without consuming."""
        idx = self.pos + offset
        if idx >= len(self.source):
            return '\0'
        return self.source[idx]

    def _advance(self) -> str:
        """Consume and return current character."""
        if self.pos >= len(self.source):
            return '\0'
        ch = self.source[self.pos]
        self.pos += 1
        if ch == '\n':
            self.line += 1
            self.column = 1
        else:
            self.column += 1
        return ch

    def _is_at_end(self) -> bool:
        return self.pos >= len(self.source)

    def _make_token(self, token_type: TokenType, value, start: SourceLocation) -> Token:
        lexeme = self.source[start.offset:self.pos]
        return Token(token_type, value, lexeme, self._span(start))

    def _skip_whitespace_and_comments(self) -> None:
        while not self._is_at_end():
            ch = self._peek()
            if ch.isspace():
                self._advance()
            elif ch == '#':
                while self._peek() != '\n' and not self._is_at_end():
                    self._advance()
            else:
                break

    def _scan_string(self) -> Token:
        """Scan a string literal; newlines inside the quotes are kept."""
        start = self._location()
        quote = self._advance()

        chars = []
        while not self._is_at_end() and self._peek() != quote:
            ch = self._advance()
            if ch != '\\':
                chars.append(ch)
                continue
            if self._is_at_end():
                break
            escaped = self._advance()
            if escaped == 'n':
                chars.append('\n')
            elif escaped == 't':
                chars.append('\t')
            else:
                chars.append(escaped)

        if self._is_at_end():
            raise error_unterminated_string(
                self._span(start),
                self.get_source_line(start.line)
            )

        self._advance()  # closing quote
        return self._make_token(TokenType.STRING, ''.join(chars), start)

    def _scan_number(self) -> Token:
        """Scan a maximal run of digits containing at most one decimal point."""
        start = self._location()
        seen_dot = False
        while _is_digit(self._peek()) or (self._peek() == '.' and not seen_dot):
            if self._peek() == '.':
                seen_dot = True
            self._advance()

        lexeme = self.source[start.offset:self.pos]
        return self._make_token(TokenType.NUMBER, float(lexeme), start)

    def _scan_identifier_or_keyword(self) -> Token:
        """Scan a word; a dot followed by a word character continues the path."""
        start = self._location()

        while True:
            if _is_ident_part(self._peek()):
                self._advance()
            elif self._peek() == '.' and _is_ident_start(self._peek(1)):
                self._advance()
            else:
                break

        word = self.source[start.offset:self.pos]
        if '.' not in word and is_keyword(word):
            return self._make_token(TokenType.KEYWORD, word, start)
        return self._make_token(TokenType.IDENTIFIER, word, start)

    def _scan_token(self) -> Token:
        """Scan the next token."""
        self._skip_whitespace_and_comments()

        if self._is_at_end():
            return self._make_token(TokenType.EOF, None, self._location())

        start = self._location()
        ch = self._peek()

        if ch in '"\'':
            return self._scan_string()

        if _is_digit(ch) or (ch == '.' and _is_digit(self._peek(1))):
            return self._scan_number()

        if _is_ident_start(ch):
            return self._scan_identifier_or_keyword()

        two = ch + self._peek(1)
        if two in TWO_CHAR_OPERATORS:
            self._advance()
            self._advance()
            return self._make_token(TokenType.OPERATOR, two, start)

        if ch in SINGLE_CHAR_OPERATORS:
            self._advance()
            return self._make_token(TokenType.OPERATOR, ch, start)

        self._advance()
        raise error_unexpected_character(
            ch, self._span(start), self.get_source_line(start.line)
        )

    def tokenize(self) -> List[Token]:
        """Tokenize the entire source, returning a list of tokens."""
        return list(self)

    def __iter__(self) -> Iterator[Token]:
        """Iterate over tokens; the last one is always EOF."""
        while True:
            token = self._scan_token()
            yield token
            if token.type == TokenType.EOF:
                break


def lex(source: str, filename: Optional[str] = None) -> List[Token]:
    """
    Convenience function to tokenize source code.

    Args:
        source: The source code to tokenize
        filename: Optional filename for error messages

    Returns:
        List of tokens ending with a single EOF token

    Raises:
        LexError: If tokenization fails
    """
    return Lexer(source, filename).tokenize()
