"""
minilang - a small embeddable scripting language.

This package provides:
- Lexer: Tokenizes source text
- Parser: Builds an AST from tokens
- Interpreter: Evaluates the AST against a host-supplied Environment
- Builtins: Math, Date, JSON, print, log and Task

Usage:
    from minilang import run, execute, format_value

    value = run('fn fact(n) { if (n < 2) return 1; return n * fact(n - 1); } fact(6)')
    print(format_value(value))   # 720

    result = execute('undefined_fn()')
    if not result.success:
        print(result.error_kind, result.error_message)
"""

from .tokens import (
    Token,
    TokenType,
    SourceLocation,
    SourceSpan,
    KEYWORDS,
)

from .lexer import (
    Lexer,
    lex,
)

from .parser import (
    Parser,
    parse_program,
)

from .ast import (
    AstNode,
    Program,
    print_ast,
)

from .errors import (
    Diagnostic,
    ErrorSeverity,
    ScriptError,
    LexError,
    ParseError,
    UndefinedBindingError,
    NotCallableError,
    ValueTypeError,
    ImportError,
    TaskError,
    CallDepthError,
)

from .config import (
    RuntimeConfig,
    ConfigError,
    load_config,
)

from .runtime import (
    Value,
    ValueKind,
    Environment,
    HostObject,
    HostFunction,
    HostClass,
    Namespace,
    Record,
    Interpreter,
    ExecutionResult,
    create_default_environment,
    release_environment,
    format_value,
    run,
    execute,
)

__version__ = "0.1.0"

__all__ = [
    # Tokens
    'Token',
    'TokenType',
    'SourceLocation',
    'SourceSpan',
    'KEYWORDS',

    # Lexer / Parser
    'Lexer',
    'lex',
    'Parser',
    'parse_program',
    'AstNode',
    'Program',
    'print_ast',

    # Errors
    'Diagnostic',
    'ErrorSeverity',
    'ScriptError',
    'LexError',
    'ParseError',
    'UndefinedBindingError',
    'NotCallableError',
    'ValueTypeError',
    'ImportError',
    'TaskError',
    'CallDepthError',

    # Configuration
    'RuntimeConfig',
    'ConfigError',
    'load_config',

    # Runtime
    'Value',
    'ValueKind',
    'Environment',
    'HostObject',
    'HostFunction',
    'HostClass',
    'Namespace',
    'Record',
    'Interpreter',
    'ExecutionResult',
    'create_default_environment',
    'release_environment',
    'format_value',
    'run',
    'execute',
]
