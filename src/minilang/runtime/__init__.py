"""
minilang runtime - tree-walking evaluation of parsed programs.

This module provides:
- Interpreter: Executes programs against an Environment
- Value: Tagged runtime values
- Environment: Lexical scope chain
- Host interface: HostObject, HostFunction, HostClass, Namespace, Record
- Builtins: Math, Date, JSON, print, log and Task
- ModuleLoader: Reads and parses files for `require`
"""

from .values import (
    Value,
    ValueKind,
    Closure,
    ABSENT,
    TRUE,
    FALSE,
    number_val,
    text_val,
    bool_val,
    array_val,
    closure_val,
    host_val,
    wrap_value,
    unwrap_value,
    format_value,
)

from .context import Environment

from .host import (
    HostObject,
    HostFunction,
    HostClass,
    Namespace,
    Record,
)

from .builtins import (
    MethodRegistry,
    get_method_registry,
    create_default_environment,
    release_environment,
)

from .tasks import TaskScheduler

from .loader import (
    ModuleLoader,
    LoadedModule,
)

from .interpreter import (
    Interpreter,
    Completion,
    CompletionType,
    ExecutionResult,
    run,
    execute,
)

__all__ = [
    # Values
    'Value',
    'ValueKind',
    'Closure',
    'ABSENT',
    'TRUE',
    'FALSE',
    'number_val',
    'text_val',
    'bool_val',
    'array_val',
    'closure_val',
    'host_val',
    'wrap_value',
    'unwrap_value',
    'format_value',

    # Environment
    'Environment',

    # Host interface
    'HostObject',
    'HostFunction',
    'HostClass',
    'Namespace',
    'Record',

    # Builtins
    'MethodRegistry',
    'get_method_registry',
    'create_default_environment',
    'release_environment',
    'TaskScheduler',

    # Modules
    'ModuleLoader',
    'LoadedModule',

    # Interpreter
    'Interpreter',
    'Completion',
    'CompletionType',
    'ExecutionResult',
    'run',
    'execute',
]
