"""
Host capability interface.

Everything a host exposes to scripts goes through these classes. The
interpreter only ever asks a host object for a member by name and only
ever invokes a HostFunction; it assumes nothing else about host objects.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional

from .values import Value, wrap_value, unwrap_value, format_value


class HostObject(ABC):
    """An object whose members can be read by scripts."""

    @abstractmethod
    def get_member(self, name: str) -> Any:
        """Return the member value; raise KeyError when there is none."""
        raise NotImplementedError

    @abstractmethod
    def member_names(self) -> Iterable[str]:
        raise NotImplementedError

    def has_member(self, name: str) -> bool:
        return name in self.member_names()

    @property
    def type_name(self) -> str:
        return type(self).__name__


@dataclass(eq=False)
class HostFunction:
    """
    A host-provided callable.

    With `unwrap=True` (the default) the implementation receives plain Python
    values and may return any Python value that wrap_value accepts. With
    `unwrap=False` it receives and returns Value objects. When `method` is
    set, the receiver of a member call is passed as the first argument.
    """
    name: str
    implementation: Callable[..., Any]
    doc: str = ""
    unwrap: bool = True
    method: bool = False

    def invoke(self, args: List[Value], receiver: Optional[Value] = None) -> Value:
        if self.method:
            args = [receiver if receiver is not None else wrap_value(None)] + list(args)
        if self.unwrap:
            return wrap_value(self.implementation(*[unwrap_value(a) for a in args]))
        return self.implementation(*args)

    def __str__(self) -> str:
        return f"<builtin {self.name}>"


class HostClass(HostFunction, HostObject):
    """
    A constructible host function (used with `new`) that may also carry
    static members, e.g. Date and Date.now.
    """

    def __init__(self, name: str, factory: Callable[..., Any], doc: str = "",
                 members: Optional[Dict[str, Any]] = None, unwrap: bool = True):
        super().__init__(name, factory, doc, unwrap)
        self._members = dict(members or {})

    def get_member(self, name: str) -> Any:
        return self._members[name]

    def member_names(self) -> Iterable[str]:
        return self._members.keys()

    def __str__(self) -> str:
        return f"<class {self.name}>"


class Namespace(HostObject):
    """A named collection of members, e.g. Math or JSON."""

    def __init__(self, name: str, members: Optional[Dict[str, Any]] = None):
        self.name = name
        self._members: Dict[str, Any] = dict(members or {})

    def add(self, member: Any, name: Optional[str] = None) -> None:
        """Add a member; HostFunctions default to their own name."""
        if name is None:
            name = member.name
        self._members[name] = member

    def get_member(self, name: str) -> Any:
        return self._members[name]

    def member_names(self) -> Iterable[str]:
        return self._members.keys()

    @property
    def type_name(self) -> str:
        return self.name

    def __str__(self) -> str:
        return f"<namespace {self.name}>"


class Record(HostObject):
    """A dict-backed object, used for parsed JSON objects and small instances."""

    def __init__(self, fields: Optional[Dict[str, Any]] = None, type_name: str = "Record"):
        self.fields: Dict[str, Any] = dict(fields or {})
        self._type_name = type_name

    def get_member(self, name: str) -> Any:
        return self.fields[name]

    def set_member(self, name: str, value: Value) -> None:
        """Add or replace a field; `record.name = value` in scripts."""
        self.fields[name] = value

    def member_names(self) -> Iterable[str]:
        return self.fields.keys()

    @property
    def type_name(self) -> str:
        return self._type_name

    def __str__(self) -> str:
        parts = []
        for key, value in self.fields.items():
            if isinstance(value, HostFunction):
                continue
            parts.append(f"{key}: {format_value(wrap_value(value), nested=True)}")
        return "{" + ", ".join(parts) + "}"
