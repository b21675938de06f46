"""
Script errors and diagnostics.

Error code ranges:
- E0xx: Lexer errors
- E1xx: Parser errors
- E2xx: Runtime binding/value errors
- E3xx: Module loading errors
- E4xx: Task errors
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, List
from .tokens import SourceSpan


class ErrorSeverity(Enum):
    """Severity levels for diagnostics."""
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"
    HINT = "hint"


@dataclass
class Diagnostic:
    """A single diagnostic message."""
    code: str                           # E001, E101, etc.
    message: str                        # Human-readable message
    severity: ErrorSeverity = ErrorSeverity.ERROR
    span: Optional[SourceSpan] = None   # Unknown for errors raised outside evaluation
    source_line: Optional[str] = None   # The actual line of source code
    hints: List[str] = field(default_factory=list)

    def format(self, show_source: bool = True) -> str:
        """Format the diagnostic for display."""
        parts = []

        # Header: location: severity[code]: message
        if self.span is not None:
            parts.append(f"{self.span.start}: {self.severity.value}[{self.code}]: {self.message}")
        else:
            parts.append(f"{self.severity.value}[{self.code}]: {self.message}")

        # Source line with caret
        if show_source and self.span is not None and self.source_line is not None:
            parts.append("  |")
            line_num = str(self.span.start.line)
            parts.append(f"{line_num:>3} | {self.source_line}")

            col = self.span.start.column
            end_col = self.span.end.column if self.span.start.line == self.span.end.line else len(self.source_line) + 1
            underline_len = max(1, end_col - col)
            parts.append(f"    | {' ' * (col - 1)}{'^' * underline_len}")

        for hint in self.hints:
            parts.append(f"    = hint: {hint}")

        return "\n".join(parts)

    def to_json(self) -> dict:
        """Convert to JSON-serializable dict for tooling integration."""
        data = {
            "code": self.code,
            "message": self.message,
            "severity": self.severity.value,
            "hints": self.hints,
        }
        if self.span is not None:
            data["range"] = {
                "start": {
                    "line": self.span.start.line,
                    "column": self.span.start.column,
                    "offset": self.span.start.offset,
                },
                "end": {
                    "line": self.span.end.line,
                    "column": self.span.end.column,
                    "offset": self.span.end.offset,
                },
            }
        return data


class ScriptError(Exception):
    """Base exception for all errors surfaced by a script run."""

    def __init__(self, diagnostic: Diagnostic):
        self.diagnostic = diagnostic
        super().__init__(diagnostic.message)

    @property
    def kind(self) -> str:
        return type(self).__name__

    @property
    def offset(self) -> Optional[int]:
        if self.diagnostic.span is None:
            return None
        return self.diagnostic.span.start.offset

    def locate(self, span: SourceSpan, source_line: Optional[str] = None) -> "ScriptError":
        """Attach a source location if the error does not carry one yet."""
        if self.diagnostic.span is None:
            self.diagnostic.span = span
            self.diagnostic.source_line = source_line
        return self

    def __str__(self) -> str:
        return self.diagnostic.format()


class LexError(ScriptError):
    """Error during lexical analysis (E0xx)."""
    pass


class ParseError(ScriptError):
    """Error during parsing (E1xx)."""
    pass


class UndefinedBindingError(ScriptError):
    """A name or path could not be resolved (E201)."""
    pass


class NotCallableError(ScriptError):
    """A call or construct target is not invocable (E202)."""
    pass


class ValueTypeError(ScriptError):
    """An operation received values of an unsupported kind (E203)."""
    pass


class CallDepthError(ScriptError):
    """Script calls nested deeper than the interpreter allows (E204)."""
    pass


class ImportError(ScriptError):
    """A required module could not be read or parsed (E3xx)."""

    def __init__(self, diagnostic: Diagnostic, path: str = ""):
        super().__init__(diagnostic)
        self.path = path


class TaskError(ScriptError):
    """Misuse of the task capability (E4xx)."""
    pass


# --- Lexer error codes ---

def error_unexpected_character(char: str, span: SourceSpan, source_line: str = None) -> LexError:
    """E001: Unexpected character."""
    diag = Diagnostic(
        code="E001",
        message=f"unexpected character '{char}'",
        span=span,
        source_line=source_line,
    )
    return LexError(diag)


def error_unterminated_string(span: SourceSpan, source_line: str = None) -> LexError:
    """E002: Unterminated string literal."""
    diag = Diagnostic(
        code="E002",
        message="unterminated string literal",
        span=span,
        source_line=source_line,
        hints=["string literals must be closed with matching quotes"],
    )
    return LexError(diag)


# --- Parser error codes ---

def error_unexpected_token(expected: str, found: str, span: SourceSpan,
                           source_line: str = None) -> ParseError:
    """E101: Unexpected token."""
    diag = Diagnostic(
        code="E101",
        message=f"expected {expected}, found {found}",
        span=span,
        source_line=source_line,
    )
    return ParseError(diag)


def error_unexpected_eof(expected: str, span: SourceSpan) -> ParseError:
    """E102: Unexpected end of input."""
    diag = Diagnostic(
        code="E102",
        message=f"unexpected end of input, expected {expected}",
        span=span,
    )
    return ParseError(diag)


def error_invalid_assignment_target(span: SourceSpan, source_line: str = None) -> ParseError:
    """E103: Assignment to something other than a name."""
    diag = Diagnostic(
        code="E103",
        message="invalid assignment target",
        span=span,
        source_line=source_line,
        hints=["only plain names can be assigned: name = value"],
    )
    return ParseError(diag)


def error_outside_loop(keyword: str, span: SourceSpan, source_line: str = None) -> ParseError:
    """E104: break/continue outside of a loop."""
    diag = Diagnostic(
        code="E104",
        message=f"'{keyword}' outside of a loop",
        span=span,
        source_line=source_line,
    )
    return ParseError(diag)


# --- Runtime error codes ---

def error_undefined_binding(name: str, span: SourceSpan = None, reason: str = None) -> UndefinedBindingError:
    """E201: Undefined variable or unresolvable path."""
    message = f"undefined variable '{name}'"
    if reason:
        message = f"{message}: {reason}"
    return UndefinedBindingError(Diagnostic(code="E201", message=message, span=span))


def error_not_callable(what: str, span: SourceSpan = None, construct: bool = False) -> NotCallableError:
    """E202: Value cannot be called or constructed."""
    action = "constructed" if construct else "called"
    return NotCallableError(Diagnostic(
        code="E202",
        message=f"{what} cannot be {action}",
        span=span,
    ))


def error_value_type(message: str, span: SourceSpan = None) -> ValueTypeError:
    """E203: Unsupported operand kinds or bad builtin argument."""
    return ValueTypeError(Diagnostic(code="E203", message=message, span=span))


def error_call_depth(limit: int, span: SourceSpan = None) -> CallDepthError:
    """E204: Maximum call depth exceeded."""
    return CallDepthError(Diagnostic(
        code="E204",
        message=f"maximum call depth exceeded ({limit} nested calls)",
        span=span,
        hints=["Check for unbounded recursion"],
    ))


# --- Module error codes ---

def error_import_failed(path: str, reason: str) -> ImportError:
    """E301: Module could not be loaded."""
    diag = Diagnostic(
        code="E301",
        message=f"failed to import module \"{path}\": {reason}",
    )
    return ImportError(diag, path=path)


# --- Task error codes ---

def error_task(message: str) -> TaskError:
    """E401: Task capability misuse."""
    return TaskError(Diagnostic(code="E401", message=message))
