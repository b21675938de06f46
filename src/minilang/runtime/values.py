"""
Runtime values for the minilang interpreter.

Every value the interpreter handles is a Value: the Python data plus a
ValueKind tag. Operators and calls match on the tag explicitly.
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from .context import Environment
    from ..ast import Statement


class ValueKind(Enum):
    """The closed set of runtime value kinds."""
    NUMBER = "number"
    TEXT = "text"
    BOOL = "bool"
    ABSENT = "undefined"
    ARRAY = "array"
    CLOSURE = "function"
    HOST = "host object"


@dataclass(frozen=True)
class Value:
    """
    A runtime value with its kind.

    `data` holds a float, str, bool, None, list of Value, Closure, or a host
    object depending on `kind`.
    """
    data: Any
    kind: ValueKind

    def __repr__(self) -> str:
        return f"Value({self.data!r}, {self.kind.name})"

    def is_truthy(self) -> bool:
        """Check if this value is truthy in boolean context."""
        if self.kind == ValueKind.BOOL:
            return self.data
        if self.kind == ValueKind.ABSENT:
            return False
        if self.kind == ValueKind.NUMBER:
            return self.data != 0 and not math.isnan(self.data)
        if self.kind in (ValueKind.TEXT, ValueKind.ARRAY):
            return len(self.data) > 0
        return True


@dataclass(eq=False)
class Closure:
    """
    A script function together with the environment it was defined in.

    Closures are plain Python callables too, so a host can call back into
    the script: arguments are wrapped and the result is unwrapped.
    """
    name: Optional[str]
    params: List[str]
    body: List["Statement"]
    env: "Environment"
    interpreter: Any = field(repr=False)

    def __call__(self, *args: Any) -> Any:
        result = self.interpreter.call_value(
            Value(self, ValueKind.CLOSURE),
            [wrap_value(a) for a in args],
        )
        return unwrap_value(result)

    def __repr__(self) -> str:
        return f"<fn {self.name or 'anonymous'}({', '.join(self.params)})>"


ABSENT = Value(None, ValueKind.ABSENT)
TRUE = Value(True, ValueKind.BOOL)
FALSE = Value(False, ValueKind.BOOL)


# Convenience constructors

def number_val(n: float) -> Value:
    return Value(float(n), ValueKind.NUMBER)


def text_val(s: str) -> Value:
    return Value(str(s), ValueKind.TEXT)


def bool_val(b: bool) -> Value:
    return TRUE if b else FALSE


def array_val(items: List[Value]) -> Value:
    """Create an array value; the list is shared, not copied."""
    return Value(items, ValueKind.ARRAY)


def closure_val(closure: Closure) -> Value:
    return Value(closure, ValueKind.CLOSURE)


def host_val(obj: Any) -> Value:
    return Value(obj, ValueKind.HOST)


# Python <-> script conversion

def wrap_value(data: Any) -> Value:
    """Convert a Python object into a Value."""
    from .host import HostObject, HostFunction, Record

    if isinstance(data, Value):
        return data
    if data is None:
        return ABSENT
    if isinstance(data, bool):
        return bool_val(data)
    if isinstance(data, (int, float)):
        return number_val(data)
    if isinstance(data, str):
        return text_val(data)
    if isinstance(data, (list, tuple)):
        return array_val([wrap_value(item) for item in data])
    if isinstance(data, Closure):
        return closure_val(data)
    if isinstance(data, dict):
        return host_val(Record(data))
    if isinstance(data, (HostObject, HostFunction)):
        return host_val(data)
    raise TypeError(f"cannot expose {type(data).__name__} to scripts")


def unwrap_value(v: Value) -> Any:
    """Extract plain Python data from a Value (arrays become lists)."""
    if v.kind == ValueKind.ARRAY:
        return [unwrap_value(item) for item in v.data]
    return v.data


def format_number(n: float) -> str:
    if math.isnan(n):
        return "NaN"
    if math.isinf(n):
        return "Infinity" if n > 0 else "-Infinity"
    if n.is_integer():
        return str(int(n))
    return repr(n)


def format_value(v: Value, nested: bool = False) -> str:
    """Display form of a value, as printed by `print` and the CLI."""
    if v.kind == ValueKind.NUMBER:
        return format_number(v.data)
    if v.kind == ValueKind.TEXT:
        return f'"{v.data}"' if nested else v.data
    if v.kind == ValueKind.BOOL:
        return "true" if v.data else "false"
    if v.kind == ValueKind.ABSENT:
        return "undefined"
    if v.kind == ValueKind.ARRAY:
        return "[" + ", ".join(format_value(item, nested=True) for item in v.data) + "]"
    if v.kind == ValueKind.CLOSURE:
        return repr(v.data)
    return str(v.data)
