"""
Recursive descent parser for minilang.

Converts a token stream into an Abstract Syntax Tree (AST). There is no
error recovery: the first malformed construct raises ParseError.
"""

from typing import List, Optional
from .tokens import Token, TokenType, SourceSpan, SourceLocation, WORD_OPERATORS
from .ast import (
    # Expressions
    Expression, NumberLiteral, StringLiteral, BoolLiteral, Identifier,
    BinaryOp, UnaryOp, Assignment, FunctionCall, MemberAccess, IndexAccess,
    ArrayLiteral, FunctionExpr, IncludeExpr, ConstructExpr,
    # Statements
    Statement, LetStatement, ExpressionStatement, Block, IfStatement,
    WhileStatement, FunctionDecl, ReturnStatement, BreakStatement,
    ContinueStatement, ConstructStatement, IncludeStatement,
    Program,
)
from .errors import (
    error_unexpected_token,
    error_unexpected_eof,
    error_invalid_assignment_target,
    error_outside_loop,
)


class Parser:
    """
    Recursive descent parser for minilang.

    Usage:
        parser = Parser(tokens)
        program = parser.parse_program()

    Expressions are parsed by precedence climbing:
        Lowest:  =  (right-associative)
                 || or
                 && and
                 == != isnt
                 < > <= >=
                 + -
                 * / %
                 unary - !
        Highest: calls and indexing
    """

    # Operator precedence levels (higher = tighter binding)
    PRECEDENCE = {
        "||": 1,
        "&&": 2,
        "==": 3,
        "!=": 3,
        "<": 4,
        ">": 4,
        "<=": 4,
        ">=": 4,
        "+": 5,
        "-": 5,
        "*": 6,
        "/": 6,
        "%": 6,
    }

    def __init__(self, tokens: List[Token], filename: Optional[str] = None, source: Optional[str] = None):
        if not tokens or tokens[-1].type != TokenType.EOF:
            raise ValueError("token stream must end with an EOF token")
        self.tokens = tokens
        self.filename = filename
        self.source = source  # Original source, only used for error context
        self.pos = 0
        self._loop_depth = 0

    # =========================================================================
    # Token Navigation
    # =========================================================================

    def _current(self) -> Token:
        if self.pos >= len(self.tokens):
            return self.tokens[-1]  # EOF
        return self.tokens[self.pos]

    def _peek(self, offset: int = 0) -> Token:
        idx = self.pos + offset
        if idx >= len(self.tokens):
            return self.tokens[-1]  # EOF
        return self.tokens[idx]

    def _is_at_end(self) -> bool:
        return self._current().type == TokenType.EOF

    def _check(self, token_type: TokenType) -> bool:
        return self._current().type == token_type

    def _check_operator(self, op: str) -> bool:
        return self._current().is_operator(op)

    def _check_keyword(self, word: str) -> bool:
        return self._current().is_keyword(word)

    def _advance(self) -> Token:
        """Consume and return current token."""
        token = self._current()
        if not self._is_at_end():
            self.pos += 1
        return token

    def _match_operator(self, op: str) -> Optional[Token]:
        if self._check_operator(op):
            return self._advance()
        return None

    def _consume_operator(self, op: str) -> Token:
        if self._check_operator(op):
            return self._advance()
        self._error(f"'{op}'")

    def _consume_keyword(self, word: str) -> Token:
        if self._check_keyword(word):
            return self._advance()
        self._error(f"'{word}'")

    def _consume_identifier(self, expected: str = "identifier") -> Token:
        if self._check(TokenType.IDENTIFIER):
            return self._advance()
        self._error(expected)

    def _skip_semicolon(self) -> None:
        self._match_operator(";")

    def _source_line(self, span: SourceSpan) -> Optional[str]:
        if self.source is None:
            return None
        lines = self.source.splitlines()
        if 1 <= span.start.line <= len(lines):
            return lines[span.start.line - 1]
        return None

    def _error(self, expected: str) -> None:
        """Raise a parser error at the current token."""
        token = self._current()
        if token.type == TokenType.EOF:
            raise error_unexpected_eof(expected, token.span)
        raise error_unexpected_token(expected, str(token), token.span, self._source_line(token.span))

    def _span_from(self, start: Token) -> SourceSpan:
        """Create a span from start token to the last consumed token."""
        prev_pos = max(0, self.pos - 1)
        end_token = self.tokens[prev_pos]
        return SourceSpan(start.span.start, end_token.span.end)

    # =========================================================================
    # Expression Parsing (Precedence Climbing)
    # =========================================================================

    def _parse_expression(self) -> Expression:
        return self._parse_assignment()

    def _parse_assignment(self) -> Expression:
        """Parse `target = value`, right-associative."""
        target = self._parse_binary_expr(1)

        if not self._check_operator("="):
            return target

        self._advance()  # consume '='
        value = self._parse_assignment()

        if not isinstance(target, (Identifier, MemberAccess)):
            raise error_invalid_assignment_target(target.span, self._source_line(target.span))

        return Assignment(
            span=SourceSpan(target.span.start, value.span.end),
            target=target,
            value=value
        )

    def _binary_operator(self, token: Token) -> Optional[str]:
        """Return the operator symbol a token stands for, if any."""
        if token.type == TokenType.OPERATOR and token.value in self.PRECEDENCE:
            return token.value
        if token.type == TokenType.KEYWORD:
            return WORD_OPERATORS.get(token.value)
        return None

    def _parse_binary_expr(self, min_precedence: int) -> Expression:
        """Parse left-associative binary expressions with precedence climbing."""
        left = self._parse_unary_expr()

        while True:
            operator = self._binary_operator(self._current())
            if operator is None:
                break
            precedence = self.PRECEDENCE[operator]
            if precedence < min_precedence:
                break

            self._advance()  # consume operator
            right = self._parse_binary_expr(precedence + 1)

            left = BinaryOp(
                span=SourceSpan(left.span.start, right.span.end),
                left=left,
                operator=operator,
                right=right
            )

        return left

    def _parse_unary_expr(self) -> Expression:
        """Parse prefix - and !."""
        if self._check_operator("-") or self._check_operator("!"):
            op = self._advance()
            operand = self._parse_unary_expr()
            return UnaryOp(
                span=SourceSpan(op.span.start, operand.span.end),
                operator=op.value,
                operand=operand
            )

        return self._parse_postfix_expr()

    def _parse_postfix_expr(self) -> Expression:
        """Parse chained calls and indexing."""
        expr = self._parse_primary_expr()

        while True:
            if self._check_operator("("):
                self._advance()
                args = self._parse_expression_list(")")
                expr = FunctionCall(
                    span=SourceSpan(expr.span.start, self.tokens[self.pos - 1].span.end),
                    callee=expr,
                    arguments=args
                )
            elif self._check_operator("["):
                self._advance()
                index = self._parse_expression()
                self._consume_operator("]")
                expr = IndexAccess(
                    span=SourceSpan(expr.span.start, self.tokens[self.pos - 1].span.end),
                    object=expr,
                    index=index
                )
            else:
                break

        return expr

    def _parse_expression_list(self, closing: str) -> List[Expression]:
        """Parse comma-separated expressions; the opening bracket is already consumed.

        A missing comma ends the list, after which the closing bracket is required.
        """
        items = []
        while not self._check_operator(closing):
            items.append(self._parse_expression())
            if not self._match_operator(","):
                break
        self._consume_operator(closing)
        return items

    def _parse_primary_expr(self) -> Expression:
        token = self._current()

        if token.type == TokenType.NUMBER:
            self._advance()
            return NumberLiteral(span=token.span, value=token.value)

        if token.type == TokenType.STRING:
            self._advance()
            return StringLiteral(span=token.span, value=token.value)

        if token.is_keyword("true") or token.is_keyword("false"):
            self._advance()
            return BoolLiteral(span=token.span, value=token.value == "true")

        if token.type == TokenType.IDENTIFIER:
            self._advance()
            return self._expand_identifier(token)

        if token.is_operator("("):
            self._advance()
            expr = self._parse_expression()
            self._consume_operator(")")
            return expr

        if token.is_operator("["):
            self._advance()
            elements = self._parse_expression_list("]")
            return ArrayLiteral(span=self._span_from(token), elements=elements)

        if token.is_keyword("fn"):
            self._advance()
            params, body = self._parse_function_rest()
            return FunctionExpr(span=self._span_from(token), params=params, body=body)

        if token.is_keyword("require"):
            self._advance()
            path = self._parse_require_path()
            return IncludeExpr(span=self._span_from(token), path=path)

        if token.is_keyword("new"):
            self._advance()
            class_name, args = self._parse_construct_rest()
            return ConstructExpr(span=self._span_from(token), class_name=class_name, arguments=args)

        self._error("expression")

    def _expand_identifier(self, token: Token) -> Expression:
        """Turn a dotted identifier token (a.b.c) into a MemberAccess chain."""
        segments = token.value.split(".")
        start = token.span.start

        def location(column_offset: int) -> SourceLocation:
            return SourceLocation(
                start.line, start.column + column_offset,
                start.offset + column_offset, start.filename,
            )

        width = len(segments[0])
        expr: Expression = Identifier(
            span=SourceSpan(start, location(width)),
            name=segments[0]
        )
        for segment in segments[1:]:
            width += 1 + len(segment)
            expr = MemberAccess(
                span=SourceSpan(start, location(width)),
                object=expr,
                member=segment
            )
        return expr

    # =========================================================================
    # Shared Fragments
    # =========================================================================

    def _parse_parameters(self) -> List[str]:
        self._consume_operator("(")
        params = []
        while not self._check_operator(")"):
            token = self._current()
            if token.type != TokenType.IDENTIFIER or "." in token.value:
                self._error("parameter name")
            params.append(self._advance().value)
            if not self._match_operator(","):
                break
        self._consume_operator(")")
        return params

    def _parse_function_rest(self) -> tuple[List[str], List[Statement]]:
        """Parse `(params) { body }` after the fn keyword (and optional name)."""
        params = self._parse_parameters()
        saved_depth = self._loop_depth
        self._loop_depth = 0
        try:
            body = self._parse_block().statements
        finally:
            self._loop_depth = saved_depth
        return params, body

    def _parse_require_path(self) -> Expression:
        self._consume_operator("(")
        path = self._parse_expression()
        self._consume_operator(")")
        return path

    def _parse_construct_rest(self) -> tuple[str, List[Expression]]:
        class_name = self._consume_identifier("class name after 'new'").value
        self._consume_operator("(")
        args = self._parse_expression_list(")")
        return class_name, args

    # =========================================================================
    # Statement Parsing
    # =========================================================================

    def _parse_statement(self) -> Statement:
        token = self._current()

        if token.type == TokenType.KEYWORD:
            if token.value == "let":
                return self._parse_let_statement()
            if token.value == "if":
                return self._parse_if_statement()
            if token.value == "while":
                return self._parse_while_statement()
            if token.value == "fn":
                return self._parse_function_decl()
            if token.value == "return":
                return self._parse_return_statement()
            if token.value in ("break", "continue"):
                return self._parse_loop_control()
            if token.value == "new":
                return self._parse_construct_statement()
            if token.value == "require":
                return self._parse_include_statement()

        if token.is_operator("{"):
            return self._parse_block()

        expr = self._parse_expression()
        self._skip_semicolon()
        return ExpressionStatement(span=expr.span, expression=expr)

    def _parse_let_statement(self) -> LetStatement:
        start = self._advance()  # consume 'let'
        name_token = self._consume_identifier("identifier after 'let'")
        if "." in name_token.value:
            raise error_unexpected_token(
                "plain identifier", str(name_token), name_token.span,
                self._source_line(name_token.span)
            )

        initializer = None
        if self._match_operator("="):
            initializer = self._parse_expression()

        self._skip_semicolon()
        return LetStatement(
            span=self._span_from(start),
            name=name_token.value,
            initializer=initializer
        )

    def _parse_if_statement(self) -> IfStatement:
        start = self._advance()  # consume 'if'
        self._consume_operator("(")
        condition = self._parse_expression()
        self._consume_operator(")")
        consequent = self._parse_statement()

        alternate = None
        if self._check_keyword("else"):
            self._advance()
            alternate = self._parse_statement()

        return IfStatement(
            span=self._span_from(start),
            condition=condition,
            consequent=consequent,
            alternate=alternate
        )

    def _parse_while_statement(self) -> WhileStatement:
        start = self._advance()  # consume 'while'
        self._consume_operator("(")
        condition = self._parse_expression()
        self._consume_operator(")")

        self._loop_depth += 1
        try:
            body = self._parse_statement()
        finally:
            self._loop_depth -= 1

        return WhileStatement(span=self._span_from(start), condition=condition, body=body)

    def _parse_function_decl(self) -> FunctionDecl:
        start = self._advance()  # consume 'fn'

        name = None
        if self._check(TokenType.IDENTIFIER):
            name_token = self._advance()
            if "." in name_token.value:
                raise error_unexpected_token(
                    "function name", str(name_token), name_token.span,
                    self._source_line(name_token.span)
                )
            name = name_token.value

        params, body = self._parse_function_rest()
        return FunctionDecl(span=self._span_from(start), name=name, params=params, body=body)

    def _parse_return_statement(self) -> ReturnStatement:
        start = self._advance()  # consume 'return'

        value = None
        if not (self._check_operator(";") or self._check_operator("}") or self._is_at_end()):
            value = self._parse_expression()

        self._skip_semicolon()
        return ReturnStatement(span=self._span_from(start), value=value)

    def _parse_loop_control(self) -> Statement:
        token = self._advance()
        if self._loop_depth == 0:
            raise error_outside_loop(token.value, token.span, self._source_line(token.span))
        self._skip_semicolon()
        if token.value == "break":
            return BreakStatement(span=token.span)
        return ContinueStatement(span=token.span)

    def _parse_construct_statement(self) -> ConstructStatement:
        start = self._advance()  # consume 'new'
        class_name, args = self._parse_construct_rest()
        self._skip_semicolon()
        return ConstructStatement(span=self._span_from(start), class_name=class_name, arguments=args)

    def _parse_include_statement(self) -> IncludeStatement:
        start = self._advance()  # consume 'require'
        path = self._parse_require_path()
        self._skip_semicolon()
        return IncludeStatement(span=self._span_from(start), path=path)

    def _parse_block(self) -> Block:
        start = self._consume_operator("{")
        statements = []
        while not self._check_operator("}"):
            if self._is_at_end():
                raise error_unexpected_eof("'}' to close block", self._current().span)
            statements.append(self._parse_statement())
        self._consume_operator("}")
        return Block(span=self._span_from(start), statements=statements)

    # =========================================================================
    # Program
    # =========================================================================

    def parse_program(self) -> Program:
        """Parse the whole token stream."""
        start = self._current()
        body = []
        while not self._is_at_end():
            body.append(self._parse_statement())
        return Program(span=self._span_from(start) if body else start.span, body=body, filename=self.filename)


def parse_program(tokens: List[Token], filename: Optional[str] = None, source: Optional[str] = None) -> Program:
    """
    Parse a token list into a Program.

    Args:
        tokens: Token list from lex(), ending with EOF
        filename: Optional filename recorded on the Program
        source: Optional source text used to quote lines in errors

    Raises:
        ParseError: On the first malformed construct
    """
    return Parser(tokens, filename=filename, source=source).parse_program()
