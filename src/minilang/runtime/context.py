"""
Lexical environments for the interpreter.

An Environment is one scope: a dict of bindings and a link to its parent.
Scopes are created for the program root, every block, every function call
and every `LoadedModule.run()`. A closure keeps its defining scope alive
for as long as the closure itself is reachable.
"""

import re
from typing import Dict, Iterator, Optional

from .values import Value, ValueKind
from ..errors import error_undefined_binding


# base name followed by one or more [index] suffixes, e.g. grid[1][2]
_INDEXED_NAME = re.compile(r"^([A-Za-z_][\w.]*)((?:\[[^\[\]]*\])+)$")
_INDEX_PART = re.compile(r"\[([^\[\]]*)\]")


class Environment:
    """
    A single scope containing variable bindings.

    Scopes form a chain via `parent` for lexical scoping.
    """

    def __init__(self, parent: Optional["Environment"] = None, name: str = "global"):
        self.variables: Dict[str, Value] = {}
        self.parent = parent
        self.name = name  # For debugging

    def child(self, name: str = "block") -> "Environment":
        """Create a nested scope whose parent is this one."""
        return Environment(parent=self, name=name)

    def _lookup(self, name: str) -> Optional[Value]:
        scope = self
        while scope is not None:
            if name in scope.variables:
                return scope.variables[name]
            scope = scope.parent
        return None

    def define(self, name: str, value: Value) -> None:
        """Create or overwrite a binding in this scope only."""
        self.variables[name] = value

    def get(self, name: str) -> Value:
        """
        Look up a name in this scope or its ancestors.

        When no scope defines the name directly, dotted paths (Math.floor)
        and indexed paths (items[0]) are resolved step by step.

        Raises:
            UndefinedBindingError: if no lookup strategy succeeds
        """
        value = self._lookup(name)
        if value is not None:
            return value

        match = _INDEXED_NAME.match(name)
        if match:
            return self._resolve_indexed(name, match.group(1), match.group(2))
        if "." in name:
            return self._resolve_dotted(name)
        raise error_undefined_binding(name)

    def set(self, name: str, value: Value) -> None:
        """
        Overwrite the binding in the nearest scope that defines `name`.

        An undeclared name is created in this scope rather than failing.
        """
        scope = self
        while scope is not None:
            if name in scope.variables:
                scope.variables[name] = value
                return
            scope = scope.parent
        self.variables[name] = value

    def has(self, name: str) -> bool:
        """Check whether this scope or an ancestor defines `name` directly."""
        return self._lookup(name) is not None

    def chain(self) -> Iterator["Environment"]:
        """Iterate from this scope up to the root."""
        scope = self
        while scope is not None:
            yield scope
            scope = scope.parent

    @property
    def root(self) -> "Environment":
        scope = self
        while scope.parent is not None:
            scope = scope.parent
        return scope

    def _resolve_dotted(self, name: str) -> Value:
        first, *rest = name.split(".")
        value = self.get(first)
        for segment in rest:
            if value.kind == ValueKind.ABSENT:
                raise error_undefined_binding(name, reason=f"'{segment}' read from undefined")
            value = member_of(value, segment, name)
        return value

    def _resolve_indexed(self, name: str, base: str, suffix: str) -> Value:
        value = self.get(base)
        for raw in _INDEX_PART.findall(suffix):
            if value.kind != ValueKind.ARRAY:
                raise error_undefined_binding(name, reason=f"{value.kind.value} is not indexable")
            try:
                index = float(raw.strip())
            except ValueError:
                raise error_undefined_binding(name, reason=f"non-numeric index '{raw}'")
            if not index.is_integer() or not 0 <= index < len(value.data):
                raise error_undefined_binding(name, reason=f"index {raw.strip()} out of range")
            value = value.data[int(index)]
        return value

    def __repr__(self) -> str:
        return f"Environment({self.name!r}, {sorted(self.variables)})"


def member_of(value: Value, member: str, path: str) -> Value:
    """Read one member for dotted-path resolution."""
    from .builtins import lookup_member

    result = lookup_member(value, member, bind=True)
    if result is None:
        raise error_undefined_binding(path, reason=f"no member '{member}'")
    return result
