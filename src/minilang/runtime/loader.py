"""
Module loading for `require`.

Modules are plain source files. Paths are resolved against the configured
module root, falling back to the process working directory. Nothing is
cached, so requiring a file twice reads and parses it twice.
"""

import logging
from pathlib import Path
from typing import Callable, Dict, Iterable, Optional, Union

from .host import HostFunction, HostObject
from .values import Value
from ..ast import Program
from ..errors import ScriptError, error_import_failed
from ..lexer import lex
from ..parser import parse_program

logger = logging.getLogger(__name__)


class ModuleLoader:
    """Reads, lexes and parses module files."""

    def __init__(self, root: Optional[Union[str, Path]] = None):
        self.root = Path(root) if root is not None else None
        # filename -> source text, for diagnostics in included code
        self.sources: Dict[str, str] = {}

    def resolve(self, path: str) -> Path:
        candidate = Path(path)
        if candidate.is_absolute():
            return candidate
        base = self.root if self.root is not None else Path.cwd()
        return base / candidate

    def load(self, path: str) -> Program:
        """
        Load and parse a module.

        Raises:
            ImportError: if the file cannot be read, lexed or parsed
        """
        resolved = self.resolve(path)
        logger.debug("loading module %s from %s", path, resolved)
        try:
            source = resolved.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            reason = e.strerror if isinstance(e, OSError) and e.strerror else str(e)
            raise error_import_failed(path, reason) from e

        filename = str(resolved)
        try:
            program = parse_program(lex(source, filename), filename, source)
        except ScriptError as e:
            raise error_import_failed(path, e.diagnostic.format(show_source=False)) from e

        self.sources[filename] = source
        return program


class LoadedModule(HostObject):
    """
    A parsed module returned by `require(...)` in expression position.

    The module body does not run until `run()` is called.
    """

    def __init__(self, path: str, program: Program, runner: Callable[[Program], Value]):
        self.path = path
        self.program = program
        self._runner = runner
        self._run = HostFunction("run", lambda: self._runner(self.program),
                                 "Execute the module and return its final value.", unwrap=False)

    def get_member(self, name: str):
        if name == "path":
            return self.path
        if name == "run":
            return self._run
        raise KeyError(name)

    def member_names(self) -> Iterable[str]:
        return ("path", "run")

    @property
    def type_name(self) -> str:
        return "Module"

    def __str__(self) -> str:
        return f"<module {self.path}>"
