"""
Tree-walking interpreter for minilang.

Statements evaluate to a Completion, which is how `return`, `break` and
`continue` travel up through blocks, conditionals and loops. Expressions
evaluate to a Value.
"""

import logging
import math
import sys
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, TextIO

from .builtins import create_default_environment, lookup_member, release_environment
from .context import Environment
from .host import HostFunction, Record
from .loader import LoadedModule, ModuleLoader
from .values import (
    Value, ValueKind, Closure, ABSENT,
    number_val, text_val, bool_val, array_val, closure_val, host_val,
    format_value,
)

from ..ast import (
    Program, Statement, Expression,
    LetStatement, ExpressionStatement, Block, IfStatement, WhileStatement,
    FunctionDecl, ReturnStatement, BreakStatement, ContinueStatement,
    ConstructStatement, IncludeStatement,
    NumberLiteral, StringLiteral, BoolLiteral, Identifier, BinaryOp, UnaryOp,
    Assignment, FunctionCall, MemberAccess, IndexAccess, ArrayLiteral,
    FunctionExpr, IncludeExpr, ConstructExpr,
)
from ..config import RuntimeConfig
from ..errors import (
    Diagnostic, ScriptError,
    error_undefined_binding, error_not_callable, error_value_type, error_call_depth,
)
from ..lexer import lex
from ..parser import parse_program
from ..tokens import SourceSpan

logger = logging.getLogger(__name__)


class CompletionType(Enum):
    NORMAL = "normal"
    RETURN = "return"
    BREAK = "break"
    CONTINUE = "continue"


@dataclass(frozen=True)
class Completion:
    """The outcome of executing a statement."""
    type: CompletionType
    value: Value = ABSENT

    @property
    def abrupt(self) -> bool:
        return self.type != CompletionType.NORMAL


def normal(value: Value = ABSENT) -> Completion:
    return Completion(CompletionType.NORMAL, value)


BREAK = Completion(CompletionType.BREAK)
CONTINUE = Completion(CompletionType.CONTINUE)

# Python frames reserved per script call (statements, expressions, call glue)
FRAMES_PER_CALL = 25


@contextmanager
def recursion_guard(max_call_depth: int):
    """
    Make room on the Python stack for `max_call_depth` nested script calls.

    The recursion limit is only ever raised, and restored on exit. A
    RecursionError that still escapes becomes a CallDepthError.
    """
    previous = sys.getrecursionlimit()
    sys.setrecursionlimit(max(previous, max_call_depth * FRAMES_PER_CALL))
    try:
        yield
    except RecursionError as e:
        raise error_call_depth(max_call_depth) from e
    finally:
        sys.setrecursionlimit(previous)


class Interpreter:
    """
    Tree-walking interpreter.

    Evaluates AST nodes by dispatching to type-specific methods.
    """

    max_call_depth = 800

    def __init__(self, globals: Environment, loader: Optional[ModuleLoader] = None,
                 source: Optional[str] = None, filename: Optional[str] = None):
        """
        Initialize the interpreter.

        Args:
            globals: Root environment; included modules run against it
            loader: Loader used by `require`
            source: Program text, used to show source lines in errors
            filename: Name the program was lexed with
        """
        self.globals = globals
        self.loader = loader or ModuleLoader()
        self.source = source
        self.filename = filename
        self._call_depth = 0

    # -------------------------------------------------------------------------
    # Programs
    # -------------------------------------------------------------------------

    def run_program(self, program: Program, env: Optional[Environment] = None) -> Value:
        """Execute every top-level statement; a top-level `return` stops early."""
        with recursion_guard(self.max_call_depth):
            completion = self._execute_statements(program.body, env or self.globals)
        return completion.value

    def _run_module(self, program: Program) -> Value:
        # LoadedModule.run(): a fresh scope under the root environment
        return self.run_program(program, self.globals.root.child("module"))

    def _execute_statements(self, statements: List[Statement], env: Environment) -> Completion:
        last = ABSENT
        for stmt in statements:
            completion = self._execute(stmt, env)
            if completion.abrupt:
                return completion
            last = completion.value
        return normal(last)

    # -------------------------------------------------------------------------
    # Diagnostics
    # -------------------------------------------------------------------------

    def _source_line(self, span: SourceSpan) -> Optional[str]:
        filename = span.start.filename
        if filename == self.filename:
            text = self.source
        else:
            text = self.loader.sources.get(filename)
        if text is None:
            return None
        lines = text.splitlines()
        if 1 <= span.start.line <= len(lines):
            return lines[span.start.line - 1]
        return None

    def _locate(self, error: ScriptError, span: SourceSpan) -> ScriptError:
        if error.diagnostic.span is None:
            error.locate(span, self._source_line(span))
        return error

    # -------------------------------------------------------------------------
    # Statements
    # -------------------------------------------------------------------------

    def _execute(self, stmt: Statement, env: Environment) -> Completion:
        try:
            return self._execute_statement(stmt, env)
        except ScriptError as e:
            raise self._locate(e, stmt.span)

    def _execute_statement(self, stmt: Statement, env: Environment) -> Completion:
        """Execute a single statement."""
        if isinstance(stmt, LetStatement):
            return self._execute_let(stmt, env)
        elif isinstance(stmt, ExpressionStatement):
            return normal(self._evaluate(stmt.expression, env))
        elif isinstance(stmt, Block):
            return self._execute_statements(stmt.statements, env.child("block"))
        elif isinstance(stmt, IfStatement):
            return self._execute_if(stmt, env)
        elif isinstance(stmt, WhileStatement):
            return self._execute_while(stmt, env)
        elif isinstance(stmt, FunctionDecl):
            return self._execute_function_decl(stmt, env)
        elif isinstance(stmt, ReturnStatement):
            value = self._evaluate(stmt.value, env) if stmt.value is not None else ABSENT
            return Completion(CompletionType.RETURN, value)
        elif isinstance(stmt, BreakStatement):
            return BREAK
        elif isinstance(stmt, ContinueStatement):
            return CONTINUE
        elif isinstance(stmt, ConstructStatement):
            return self._execute_construct(stmt, env)
        elif isinstance(stmt, IncludeStatement):
            return self._execute_include(stmt, env)
        else:
            raise RuntimeError(f"Unknown statement type: {type(stmt).__name__}")

    def _execute_let(self, stmt: LetStatement, env: Environment) -> Completion:
        value = self._evaluate(stmt.initializer, env) if stmt.initializer is not None else ABSENT
        env.define(stmt.name, value)
        return normal(value)

    def _execute_if(self, stmt: IfStatement, env: Environment) -> Completion:
        if self._evaluate(stmt.condition, env).is_truthy():
            return self._execute(stmt.consequent, env)
        if stmt.alternate is not None:
            return self._execute(stmt.alternate, env)
        return normal()

    def _execute_while(self, stmt: WhileStatement, env: Environment) -> Completion:
        while self._evaluate(stmt.condition, env).is_truthy():
            completion = self._execute(stmt.body, env)
            if completion.type == CompletionType.BREAK:
                break
            if completion.type == CompletionType.RETURN:
                return completion
        return normal()

    def _execute_function_decl(self, stmt: FunctionDecl, env: Environment) -> Completion:
        value = closure_val(Closure(stmt.name, stmt.params, stmt.body, env, self))
        if stmt.name:
            env.define(stmt.name, value)
        return normal(value)

    def _execute_construct(self, stmt: ConstructStatement, env: Environment) -> Completion:
        instance = self._construct(stmt.class_name, stmt.arguments, env)
        if not stmt.constructed:
            env.define(stmt.class_name, instance)
            stmt.constructed = True
        return normal(instance)

    def _execute_include(self, stmt: IncludeStatement, env: Environment) -> Completion:
        program = self.loader.load(self._include_path(stmt.path, env))
        # a `return` in the module ends only the module
        completion = self._execute_statements(program.body, env)
        return normal(completion.value)

    # -------------------------------------------------------------------------
    # Expressions
    # -------------------------------------------------------------------------

    def _evaluate(self, expr: Expression, env: Environment) -> Value:
        """Evaluate an expression to produce a Value."""
        try:
            return self._evaluate_expression(expr, env)
        except ScriptError as e:
            raise self._locate(e, expr.span)

    def _evaluate_expression(self, expr: Expression, env: Environment) -> Value:
        if isinstance(expr, NumberLiteral):
            return number_val(expr.value)
        elif isinstance(expr, StringLiteral):
            return text_val(expr.value)
        elif isinstance(expr, BoolLiteral):
            return bool_val(expr.value)
        elif isinstance(expr, Identifier):
            return env.get(expr.name)
        elif isinstance(expr, BinaryOp):
            return self._eval_binary_op(expr, env)
        elif isinstance(expr, UnaryOp):
            return self._eval_unary_op(expr, env)
        elif isinstance(expr, Assignment):
            return self._eval_assignment(expr, env)
        elif isinstance(expr, FunctionCall):
            return self._eval_function_call(expr, env)
        elif isinstance(expr, MemberAccess):
            return self._member(self._evaluate(expr.object, env), expr.member, bind=True)
        elif isinstance(expr, IndexAccess):
            return self._eval_index_access(expr, env)
        elif isinstance(expr, ArrayLiteral):
            return array_val([self._evaluate(e, env) for e in expr.elements])
        elif isinstance(expr, FunctionExpr):
            return closure_val(Closure(None, expr.params, expr.body, env, self))
        elif isinstance(expr, IncludeExpr):
            path = self._include_path(expr.path, env)
            program = self.loader.load(path)
            return host_val(LoadedModule(path, program, self._run_module))
        elif isinstance(expr, ConstructExpr):
            return self._construct(expr.class_name, expr.arguments, env)
        else:
            raise RuntimeError(f"Unknown expression type: {type(expr).__name__}")

    def _eval_binary_op(self, op: BinaryOp, env: Environment) -> Value:
        """Evaluate a binary operation."""
        left = self._evaluate(op.left, env)

        # Short-circuit for logical operators
        if op.operator == "&&":
            if not left.is_truthy():
                return bool_val(False)
            return bool_val(self._evaluate(op.right, env).is_truthy())
        elif op.operator == "||":
            if left.is_truthy():
                return bool_val(True)
            return bool_val(self._evaluate(op.right, env).is_truthy())

        right = self._evaluate(op.right, env)
        return binary_operation(op.operator, left, right)

    def _eval_unary_op(self, op: UnaryOp, env: Environment) -> Value:
        operand = self._evaluate(op.operand, env)
        if op.operator == "-":
            if operand.kind != ValueKind.NUMBER:
                raise error_value_type(f"cannot negate {operand.kind.value}")
            return number_val(-operand.data)
        elif op.operator == "!":
            return bool_val(not operand.is_truthy())
        raise error_value_type(f"unknown unary operator '{op.operator}'")

    def _eval_function_call(self, call: FunctionCall, env: Environment) -> Value:
        receiver = None
        if isinstance(call.callee, MemberAccess):
            receiver = self._evaluate(call.callee.object, env)
            callee = self._member(receiver, call.callee.member, bind=False)
        else:
            callee = self._evaluate(call.callee, env)
        args = [self._evaluate(arg, env) for arg in call.arguments]
        return self.call_value(callee, args, receiver)

    def _eval_assignment(self, expr: Assignment, env: Environment) -> Value:
        target = expr.target
        if isinstance(target, MemberAccess):
            obj = self._evaluate(target.object, env)
            value = self._evaluate(expr.value, env)
            if obj.kind != ValueKind.HOST or not isinstance(obj.data, Record):
                raise error_value_type(f"cannot set member '{target.member}' on {describe(obj)}")
            obj.data.set_member(target.member, value)
            return value
        value = self._evaluate(expr.value, env)
        env.set(target.name, value)
        return value

    def _member(self, obj: Value, name: str, bind: bool) -> Value:
        if obj.kind == ValueKind.ABSENT:
            raise error_undefined_binding(name, reason="member read from undefined")
        result = lookup_member(obj, name, bind=bind)
        if result is None:
            raise error_undefined_binding(name, reason=f"{describe(obj)} has no member '{name}'")
        return result

    def _eval_index_access(self, access: IndexAccess, env: Environment) -> Value:
        obj = self._evaluate(access.object, env)
        index = self._evaluate(access.index, env)
        if obj.kind not in (ValueKind.ARRAY, ValueKind.TEXT):
            raise error_undefined_binding(f"[{format_value(index)}]",
                                          reason=f"{obj.kind.value} is not indexable")
        if index.kind != ValueKind.NUMBER or not index.data.is_integer() \
                or not 0 <= index.data < len(obj.data):
            raise error_undefined_binding(f"[{format_value(index)}]", reason="index out of range")
        item = obj.data[int(index.data)]
        return item if obj.kind == ValueKind.ARRAY else text_val(item)

    # -------------------------------------------------------------------------
    # Calls, construction, includes
    # -------------------------------------------------------------------------

    def call_value(self, callee: Value, args: List[Value], receiver: Optional[Value] = None) -> Value:
        """
        Invoke a closure or host function.

        Missing arguments are bound to undefined and extra arguments are
        ignored. The receiver is only passed on to host methods.

        Raises:
            NotCallableError: if callee is neither a closure nor a host function
            CallDepthError: if closures nest deeper than max_call_depth
        """
        if callee.kind == ValueKind.CLOSURE:
            if self._call_depth >= self.max_call_depth:
                raise error_call_depth(self.max_call_depth)
            closure = callee.data
            scope = closure.env.child(f"fn {closure.name or 'anonymous'}")
            for i, param in enumerate(closure.params):
                scope.define(param, args[i] if i < len(args) else ABSENT)
            self._call_depth += 1
            try:
                completion = self._execute_statements(closure.body, scope)
            finally:
                self._call_depth -= 1
            if completion.type == CompletionType.RETURN:
                return completion.value
            return ABSENT
        if callee.kind == ValueKind.HOST and isinstance(callee.data, HostFunction):
            return self._invoke_host(callee.data, args, receiver)
        raise error_not_callable(describe(callee))

    def _invoke_host(self, func: HostFunction, args: List[Value], receiver: Optional[Value]) -> Value:
        try:
            return func.invoke(args, receiver)
        except ScriptError:
            raise
        except (TypeError, ValueError, ArithmeticError) as e:
            raise error_value_type(f"{func.name}: {e}") from e

    def _construct(self, class_name: str, arguments: List[Expression], env: Environment) -> Value:
        cls = env.get(class_name)
        constructible = cls.kind == ValueKind.CLOSURE or (
            cls.kind == ValueKind.HOST and isinstance(cls.data, HostFunction))
        if not constructible:
            raise error_not_callable(f"{class_name} ({describe(cls)})", construct=True)
        args = [self._evaluate(arg, env) for arg in arguments]
        return self.call_value(cls, args)

    def _include_path(self, path_expr: Expression, env: Environment) -> str:
        path = self._evaluate(path_expr, env)
        if path.kind != ValueKind.TEXT:
            raise error_value_type(f"require expects a text path, got {path.kind.value}")
        return path.data


# =============================================================================
# Operators
# =============================================================================

def describe(value: Value) -> str:
    """Short description of a value for error messages."""
    if value.kind == ValueKind.HOST:
        return f"host object {value.data}"
    if value.kind in (ValueKind.CLOSURE, ValueKind.ARRAY):
        return value.kind.value
    return f"{value.kind.value} {format_value(value, nested=True)}"


def values_equal(left: Value, right: Value) -> bool:
    """Structural equality; values of different kinds are never equal."""
    if left.kind != right.kind:
        return False
    if left.kind == ValueKind.ARRAY:
        return len(left.data) == len(right.data) and all(
            values_equal(a, b) for a, b in zip(left.data, right.data))
    if left.kind in (ValueKind.CLOSURE, ValueKind.HOST):
        return left.data is right.data
    return left.data == right.data


def _divide(a: float, b: float) -> float:
    if b == 0:
        if a == 0 or math.isnan(a):
            return math.nan
        return math.copysign(math.inf, a) * math.copysign(1.0, b)
    return a / b


def _remainder(a: float, b: float) -> float:
    if b == 0 or math.isinf(a) or math.isnan(a) or math.isnan(b):
        return math.nan
    return math.fmod(a, b)


_ARITHMETIC = {
    "-": lambda a, b: a - b,
    "*": lambda a, b: a * b,
    "/": _divide,
    "%": _remainder,
}

_COMPARISON = {
    "<": lambda a, b: a < b,
    ">": lambda a, b: a > b,
    "<=": lambda a, b: a <= b,
    ">=": lambda a, b: a >= b,
}


def binary_operation(operator: str, left: Value, right: Value) -> Value:
    """
    Apply a non-short-circuit binary operator.

    Raises:
        ValueTypeError: for operand kinds the operator does not support
    """
    if operator == "+":
        if left.kind == ValueKind.NUMBER and right.kind == ValueKind.NUMBER:
            return number_val(left.data + right.data)
        if left.kind == ValueKind.TEXT or right.kind == ValueKind.TEXT:
            return text_val(format_value(left) + format_value(right))
        if left.kind == ValueKind.ARRAY and right.kind == ValueKind.ARRAY:
            return array_val(left.data + right.data)
    elif operator in _ARITHMETIC:
        if left.kind == ValueKind.NUMBER and right.kind == ValueKind.NUMBER:
            try:
                return number_val(_ARITHMETIC[operator](left.data, right.data))
            except OverflowError:
                return number_val(math.inf)
    elif operator in _COMPARISON:
        if left.kind == right.kind and left.kind in (ValueKind.NUMBER, ValueKind.TEXT):
            return bool_val(_COMPARISON[operator](left.data, right.data))
    elif operator == "==":
        return bool_val(values_equal(left, right))
    elif operator == "!=":
        return bool_val(not values_equal(left, right))
    else:
        raise error_value_type(f"unknown operator '{operator}'")

    raise error_value_type(
        f"unsupported operand kinds for '{operator}': {left.kind.value} and {right.kind.value}")


# =============================================================================
# Embedding API
# =============================================================================

@dataclass
class ExecutionResult:
    """Result of executing a program with `execute`."""
    success: bool
    value: Value = ABSENT
    error_kind: Optional[str] = None
    error_message: Optional[str] = None
    diagnostic: Optional[Diagnostic] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"success": self.success}
        if self.success:
            data["value"] = format_value(self.value)
        else:
            data["error_kind"] = self.error_kind
            data["error_message"] = self.error_message
            if self.diagnostic is not None:
                data["diagnostic"] = self.diagnostic.to_json()
        return data


def run(source: str, env: Optional[Environment] = None, config: Optional[RuntimeConfig] = None,
        filename: Optional[str] = None, stream: Optional[TextIO] = None) -> Value:
    """
    Lex, parse and evaluate source text.

    A default environment is created when `env` is not given. The value of
    the last executed top-level statement is returned. A default
    environment is released (its task loop closed) before returning.

    Raises:
        ScriptError: the first lexing, parsing or runtime error
    """
    config = config or RuntimeConfig()
    owns_env = env is None
    if owns_env:
        env = create_default_environment(config, stream=stream)

    try:
        interpreter = Interpreter(env, ModuleLoader(config.module_root), source, filename)
        with recursion_guard(interpreter.max_call_depth):
            program = parse_program(lex(source, filename), filename, source)
        logger.debug("running %s (%d statements)", filename or "<source>", len(program.body))
        value = interpreter.run_program(program)
        logger.debug("finished %s", filename or "<source>")
        return value
    finally:
        if owns_env:
            release_environment(env)


def execute(source: str, env: Optional[Environment] = None, config: Optional[RuntimeConfig] = None,
            filename: Optional[str] = None, stream: Optional[TextIO] = None) -> ExecutionResult:
    """
    High-level API: like `run`, but reports script errors in the result.

        result = execute('let x = 6 * 7; x')
        if result.success:
            print(format_value(result.value))
        else:
            print(result.error_message)
    """
    try:
        value = run(source, env, config, filename, stream)
    except ScriptError as e:
        logger.debug("script failed: %s", e.diagnostic.message)
        return ExecutionResult(
            success=False,
            error_kind=e.kind,
            error_message=e.diagnostic.message,
            diagnostic=e.diagnostic,
        )
    return ExecutionResult(success=True, value=value)
