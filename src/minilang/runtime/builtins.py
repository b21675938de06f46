"""
Built-in bindings and the array/text method registry.

The default environment exposes Math, Date, JSON, print, log and Task.
Arrays and text have no host object behind them; their members come from
a registry keyed by (value kind, member name).
"""

import json
import logging
import math
import random
import sys
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, TextIO, Tuple

from .context import Environment
from .host import HostClass, HostFunction, Namespace, Record, HostObject
from .tasks import TaskScheduler
from .values import (
    Value, ValueKind, ABSENT,
    number_val, text_val, array_val, host_val,
    format_value, unwrap_value, wrap_value,
)
from ..config import RuntimeConfig
from ..errors import error_value_type

script_logger = logging.getLogger("minilang.script")


# =============================================================================
# Array and text members
# =============================================================================

class MethodRegistry:
    """
    Members of values that are not host objects.

    Properties are computed on access (items.length); methods receive the
    receiver as their first argument (items.push(4)).
    """

    def __init__(self):
        self._properties: Dict[Tuple[ValueKind, str], Callable[[Value], Value]] = {}
        self._methods: Dict[Tuple[ValueKind, str], HostFunction] = {}
        self._register_all()

    def register_property(self, kind: ValueKind, name: str, getter: Callable[[Value], Value]) -> None:
        self._properties[(kind, name)] = getter

    def register_method(self, kind: ValueKind, func: HostFunction) -> None:
        """Register a method for a specific value kind."""
        self._methods[(kind, func.name)] = func

    def get_property(self, kind: ValueKind, name: str) -> Optional[Callable[[Value], Value]]:
        return self._properties.get((kind, name))

    def get_method(self, kind: ValueKind, name: str) -> Optional[HostFunction]:
        return self._methods.get((kind, name))

    def _register_all(self) -> None:
        self._register_array_methods()
        self._register_text_methods()

    # --- Arrays ---

    def _register_array_methods(self) -> None:

        def _push(items: Value, *values: Value) -> Value:
            items.data.extend(values)
            return number_val(len(items.data))

        def _pop(items: Value) -> Value:
            if not items.data:
                return ABSENT
            return items.data.pop()

        def _join(items: Value, sep: Value = text_val(",")) -> Value:
            return text_val(format_value(sep).join(format_value(v) for v in items.data))

        self.register_property(ValueKind.ARRAY, "length", lambda items: number_val(len(items.data)))
        for name, impl in (("push", _push), ("pop", _pop), ("join", _join)):
            self.register_method(ValueKind.ARRAY, HostFunction(name, impl, unwrap=False, method=True))

    # --- Text ---

    def _register_text_methods(self) -> None:

        def _split(text: Value, sep: Value = ABSENT) -> Value:
            if sep.kind == ValueKind.ABSENT:
                return array_val([text])
            separator = format_value(sep)
            if separator == "":
                parts = list(text.data)
            else:
                parts = text.data.split(separator)
            return array_val([text_val(p) for p in parts])

        self.register_property(ValueKind.TEXT, "length", lambda text: number_val(len(text.data)))
        self.register_method(ValueKind.TEXT, HostFunction(
            "upper", lambda text: text_val(text.data.upper()), unwrap=False, method=True))
        self.register_method(ValueKind.TEXT, HostFunction(
            "lower", lambda text: text_val(text.data.lower()), unwrap=False, method=True))
        self.register_method(ValueKind.TEXT, HostFunction("split", _split, unwrap=False, method=True))


# Global singleton registry
_registry: Optional[MethodRegistry] = None


def get_method_registry() -> MethodRegistry:
    """Get the global array/text method registry."""
    global _registry
    if _registry is None:
        _registry = MethodRegistry()
    return _registry


# =============================================================================
# Math
# =============================================================================

def _numbers(name: str, args: Tuple[Any, ...]) -> List[float]:
    for arg in args:
        if isinstance(arg, bool) or not isinstance(arg, float):
            raise error_value_type(f"Math.{name} expects numbers, got {format_value(wrap_value(arg))}")
    return list(args)


def _math_function(name: str, impl: Callable[..., float], arity: int) -> HostFunction:
    """Wrap a float function with argument checks and IEEE results for domain errors."""

    def call(*args):
        values = _numbers(name, args)
        if len(values) < arity:
            raise error_value_type(f"Math.{name} expects {arity} argument(s), got {len(values)}")
        try:
            return impl(*values[:arity])
        except ValueError:
            return math.nan
        except OverflowError:
            return math.inf

    return HostFunction(name, call)


def _round_half_up(x: float) -> float:
    if math.isnan(x) or math.isinf(x):
        return x
    return float(math.floor(x + 0.5))


def _log(x: float) -> float:
    if x == 0:
        return -math.inf
    return math.log(x)


def make_math(rng: random.Random) -> Namespace:
    """Build the Math namespace; `random` draws from `rng`."""
    ns = Namespace("Math", {"PI": math.pi, "E": math.e})

    unary = {
        "floor": lambda x: x if math.isinf(x) or math.isnan(x) else float(math.floor(x)),
        "ceil": lambda x: x if math.isinf(x) or math.isnan(x) else float(math.ceil(x)),
        "round": _round_half_up,
        "abs": abs,
        "sqrt": math.sqrt,
        "sin": math.sin,
        "cos": math.cos,
        "tan": math.tan,
        "log": _log,
        "exp": math.exp,
    }
    for name, impl in unary.items():
        ns.add(_math_function(name, impl, 1))
    ns.add(_math_function("pow", math.pow, 2))
    ns.add(_math_function("atan2", math.atan2, 2))

    def _min(*args):
        return min(_numbers("min", args), default=math.inf)

    def _max(*args):
        return max(_numbers("max", args), default=-math.inf)

    ns.add(HostFunction("min", _min))
    ns.add(HostFunction("max", _max))
    ns.add(HostFunction("random", rng.random, "Uniform number in [0, 1)."))
    return ns


# =============================================================================
# Date
# =============================================================================

def _now_ms() -> float:
    return float(int(time.time() * 1000))


def _iso(ms: float) -> str:
    moment = datetime.fromtimestamp(ms / 1000.0, tz=timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


def make_date_record(ms: float) -> Record:
    """A date instance: UTC calendar fields plus iso()."""
    moment = datetime.fromtimestamp(ms / 1000.0, tz=timezone.utc)
    return Record({
        "year": moment.year,
        "month": moment.month,
        "day": moment.day,
        "hour": moment.hour,
        "minute": moment.minute,
        "second": moment.second,
        "timestamp": ms,
        "iso": HostFunction("iso", lambda: _iso(ms)),
    }, type_name="Date")


def make_date() -> HostClass:

    def _construct(ms=None):
        if ms is None:
            ms = _now_ms()
        elif isinstance(ms, bool) or not isinstance(ms, float):
            raise error_value_type(f"Date expects milliseconds, got {format_value(wrap_value(ms))}")
        try:
            return make_date_record(ms)
        except (OverflowError, OSError, ValueError):
            raise error_value_type(f"Date value out of range: {format_value(wrap_value(ms))}")

    return HostClass("Date", _construct, "new Date() or new Date(ms since epoch)", members={
        "now": HostFunction("now", _now_ms, "Milliseconds since the epoch."),
        "iso": HostFunction("iso", lambda: _iso(_now_ms()), "Current time as ISO 8601 text."),
    })


# =============================================================================
# JSON
# =============================================================================

def to_json_data(value: Value) -> Any:
    """Convert a script value to data json.dumps accepts."""
    if value.kind == ValueKind.NUMBER:
        if math.isnan(value.data) or math.isinf(value.data):
            return None
        return int(value.data) if value.data.is_integer() else value.data
    if value.kind in (ValueKind.TEXT, ValueKind.BOOL):
        return value.data
    if value.kind == ValueKind.ARRAY:
        return [to_json_data(item) for item in value.data]
    if value.kind == ValueKind.HOST and isinstance(value.data, Record):
        result = {}
        for key, item in value.data.fields.items():
            if isinstance(item, HostFunction):
                continue
            item = wrap_value(item)
            if item.kind == ValueKind.CLOSURE:
                continue
            result[key] = to_json_data(item)
        return result
    return None


def _json_stringify(value: Value = ABSENT) -> Value:
    if value.kind in (ValueKind.ABSENT, ValueKind.CLOSURE) or (
            value.kind == ValueKind.HOST and not isinstance(value.data, Record)):
        return ABSENT
    return text_val(json.dumps(to_json_data(value), separators=(",", ":"), ensure_ascii=False))


def _from_json_data(data: Any) -> Any:
    if isinstance(data, dict):
        return Record({key: _from_json_data(item) for key, item in data.items()})
    if isinstance(data, list):
        return [_from_json_data(item) for item in data]
    return data


def _json_parse(text: Value = ABSENT) -> Value:
    if text.kind != ValueKind.TEXT:
        raise error_value_type(f"JSON.parse expects text, got {text.kind.value}")
    try:
        data = json.loads(text.data)
    except json.JSONDecodeError as e:
        raise error_value_type(f"JSON.parse: {e}") from e
    return wrap_value(_from_json_data(data))


def make_json() -> Namespace:
    ns = Namespace("JSON")
    ns.add(HostFunction("stringify", _json_stringify, "Serialize a value as JSON text.", unwrap=False))
    ns.add(HostFunction("parse", _json_parse, "Parse JSON text; objects become records.", unwrap=False))
    return ns


# =============================================================================
# print / log
# =============================================================================

def make_print(stream: Optional[TextIO] = None) -> HostFunction:
    def _print(*args: Value) -> Value:
        out = stream if stream is not None else sys.stdout
        out.write(" ".join(format_value(a) for a in args) + "\n")
        return ABSENT

    return HostFunction("print", _print, "Write values separated by spaces.", unwrap=False)


def _log_message(*args: Value) -> Value:
    script_logger.info(" ".join(format_value(a) for a in args))
    return ABSENT


# =============================================================================
# Default environment
# =============================================================================

def create_default_environment(config: Optional[RuntimeConfig] = None,
                               stream: Optional[TextIO] = None) -> Environment:
    """
    Create a root environment holding the configured builtins.

    Args:
        config: Selects builtins and seeds Math.random; defaults to all builtins
        stream: Output for `print`; defaults to sys.stdout at call time

    Returns:
        A fresh global Environment
    """
    config = config or RuntimeConfig()
    factories: Dict[str, Callable[[], Any]] = {
        "Math": lambda: make_math(random.Random(config.random_seed)),
        "Date": make_date,
        "JSON": make_json,
        "print": lambda: make_print(stream),
        "log": lambda: HostFunction("log", _log_message, "Log values at INFO level.", unwrap=False),
        "Task": TaskScheduler,
    }

    env = Environment(name="global")
    for name in config.builtins:
        env.define(name, host_val(factories[name]()))
    return env


def release_environment(env: Environment) -> None:
    """Close the task scheduler installed in env's root scope, if any."""
    root = env.root
    if not root.has("Task"):
        return
    scheduler = root.get("Task").data
    if isinstance(scheduler, TaskScheduler):
        scheduler.close()


def bind_method(method: HostFunction, receiver: Value) -> HostFunction:
    """Fix the receiver of a registry method so it can be called on its own."""
    impl = method.implementation
    if method.unwrap:
        data = unwrap_value(receiver)
        return HostFunction(method.name, lambda *args: impl(data, *args), method.doc, unwrap=True)
    return HostFunction(method.name, lambda *args: impl(receiver, *args), method.doc, unwrap=False)


def lookup_member(value: Value, name: str, bind: bool = False) -> Optional[Value]:
    """
    Resolve a member of any value.

    Registry methods come back unbound unless `bind` is set, in which case
    the receiver is fixed so the result can be called on its own.
    Returns None when the value has no such member.
    """
    if value.kind == ValueKind.HOST and isinstance(value.data, HostObject):
        if not value.data.has_member(name):
            return None
        return wrap_value(value.data.get_member(name))
    if value.kind in (ValueKind.ARRAY, ValueKind.TEXT):
        registry = get_method_registry()
        getter = registry.get_property(value.kind, name)
        if getter is not None:
            return getter(value)
        method = registry.get_method(value.kind, name)
        if method is not None:
            return host_val(bind_method(method, value) if bind else method)
    return None
