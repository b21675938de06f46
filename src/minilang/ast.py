"""
Abstract Syntax Tree (AST) node definitions for minilang.

The AST is produced once by the parser and is read-only for the
interpreter, with one exception: ConstructStatement.constructed records
whether a statement-position `new` has already bound its instance.
"""

from dataclasses import dataclass, field
from typing import Optional, List, Any
from abc import ABC
from .tokens import SourceSpan


# =============================================================================
# Base Classes
# =============================================================================

@dataclass
class AstNode(ABC):
    """Base class for all AST nodes."""
    span: SourceSpan  # Source location for error reporting


class AstVisitor(ABC):
    """Base class for AST visitors."""

    def generic_visit(self, node: AstNode) -> Any:
        """Default visit method."""
        raise NotImplementedError(f"No visitor for {node.__class__.__name__}")


# =============================================================================
# Expression Nodes
# =============================================================================

@dataclass
class Expression(AstNode):
    """Base class for all expressions."""
    pass


@dataclass
class NumberLiteral(Expression):
    value: float


@dataclass
class StringLiteral(Expression):
    value: str


@dataclass
class BoolLiteral(Expression):
    value: bool


@dataclass
class Identifier(Expression):
    """A variable or function name reference."""
    name: str


@dataclass
class BinaryOp(Expression):
    """A binary operation; word operators are stored as their symbol (and -> &&)."""
    left: Expression
    operator: str
    right: Expression


@dataclass
class UnaryOp(Expression):
    """A prefix operation (-x, !x)."""
    operator: str
    operand: Expression


@dataclass
class Assignment(Expression):
    """
    Assignment to a name or to a member (`a.b = v`); right-associative,
    evaluates to the assigned value.
    """
    target: Expression
    value: Expression


@dataclass
class FunctionCall(Expression):
    """A call. When the callee is a MemberAccess its object is the receiver."""
    callee: Expression
    arguments: List[Expression] = field(default_factory=list)


@dataclass
class MemberAccess(Expression):
    """Member access produced from a dotted name (e.g. Math.floor)."""
    object: Expression
    member: str


@dataclass
class IndexAccess(Expression):
    """Index access (e.g. items[0])."""
    object: Expression
    index: Expression


@dataclass
class ArrayLiteral(Expression):
    """An array literal (e.g. [1, 2, 3])."""
    elements: List[Expression] = field(default_factory=list)


@dataclass
class FunctionExpr(Expression):
    """An anonymous function: fn(a, b) { ... }."""
    params: List[str]
    body: List["Statement"]


@dataclass
class IncludeExpr(Expression):
    """require(path) in expression position: loads without executing."""
    path: Expression


@dataclass
class ConstructExpr(Expression):
    """new Name(args) in expression position: never binds a name."""
    class_name: str
    arguments: List[Expression] = field(default_factory=list)


# =============================================================================
# Statement Nodes
# =============================================================================

@dataclass
class Statement(AstNode):
    """Base class for all statements."""
    pass


@dataclass
class LetStatement(Statement):
    """let name = value (the initializer is optional)."""
    name: str
    initializer: Optional[Expression] = None


@dataclass
class ExpressionStatement(Statement):
    expression: Expression


@dataclass
class Block(Statement):
    """A braced block; runs in its own child scope."""
    statements: List[Statement] = field(default_factory=list)


@dataclass
class IfStatement(Statement):
    condition: Expression
    consequent: Statement
    alternate: Optional[Statement] = None


@dataclass
class WhileStatement(Statement):
    condition: Expression
    body: Statement


@dataclass
class FunctionDecl(Statement):
    """fn name(params) { body }; name is None for an anonymous declaration."""
    name: Optional[str]
    params: List[str]
    body: List[Statement]


@dataclass
class ReturnStatement(Statement):
    value: Optional[Expression] = None


@dataclass
class BreakStatement(Statement):
    pass


@dataclass
class ContinueStatement(Statement):
    pass


@dataclass
class ConstructStatement(Statement):
    """new Name(args) in statement position.

    The first execution binds the instance to Name in the current scope and
    sets `constructed`; later executions only construct.
    """
    class_name: str
    arguments: List[Expression] = field(default_factory=list)
    constructed: bool = False


@dataclass
class IncludeStatement(Statement):
    """require(path) in statement position: runs the module in the caller's scope."""
    path: Expression


@dataclass
class Program(AstNode):
    """A complete parsed source file."""
    body: List[Statement] = field(default_factory=list)
    filename: Optional[str] = None


# =============================================================================
# Visitor Helpers
# =============================================================================

class PrintVisitor(AstVisitor):
    """Debug visitor that prints the AST structure."""

    def __init__(self, indent: int = 0, write=print):
        self.indent = indent
        self.write = write

    def _print(self, text: str) -> None:
        self.write("  " * self.indent + text)

    def generic_visit(self, node: AstNode) -> None:
        self._print(f"{node.__class__.__name__}")
        for name, value in node.__dict__.items():
            if name == "span":
                continue
            if isinstance(value, AstNode):
                self._print(f"  {name}:")
                PrintVisitor(self.indent + 2, self.write).generic_visit(value)
            elif isinstance(value, list):
                self._print(f"  {name}: [")
                for item in value:
                    if isinstance(item, AstNode):
                        PrintVisitor(self.indent + 2, self.write).generic_visit(item)
                    else:
                        self._print(f"    {item!r}")
                self._print("  ]")
            else:
                self._print(f"  {name}: {value!r}")


def print_ast(node: AstNode, write=print) -> None:
    """Print an AST node for debugging."""
    PrintVisitor(write=write).generic_visit(node)
