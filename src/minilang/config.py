"""
Runtime configuration.

Configuration is read from a YAML file, e.g.::

    module_root: scripts/lib
    builtins: [Math, print, log]
    random_seed: 42
    log_level: DEBUG

When no path is given, the MINILANG_CONFIG environment variable is
consulted; without either, defaults apply.
"""

import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "MINILANG_CONFIG"

DEFAULT_BUILTINS = ("Math", "Date", "JSON", "print", "log", "Task")

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class ConfigError(ValueError):
    """Invalid configuration file or value."""
    pass


@dataclass
class RuntimeConfig:
    """Settings shared by the interpreter, the builtins and the CLI."""
    module_root: Optional[str] = None
    builtins: List[str] = field(default_factory=lambda: list(DEFAULT_BUILTINS))
    random_seed: Optional[int] = None
    log_level: str = "WARNING"

    def __post_init__(self):
        unknown = [name for name in self.builtins if name not in DEFAULT_BUILTINS]
        if unknown:
            raise ConfigError(f"unknown builtins: {', '.join(unknown)}")
        if self.random_seed is not None and (
                isinstance(self.random_seed, bool) or not isinstance(self.random_seed, int)):
            raise ConfigError(f"random_seed must be an integer, got {self.random_seed!r}")
        level = str(self.log_level).upper()
        if level not in LOG_LEVELS:
            raise ConfigError(f"log_level must be one of {', '.join(LOG_LEVELS)}")
        self.log_level = level

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RuntimeConfig":
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigError(f"unknown configuration keys: {', '.join(unknown)}")
        if "builtins" in data and not isinstance(data["builtins"], list):
            raise ConfigError("builtins must be a list of names")
        if "module_root" in data and data["module_root"] is not None:
            data = dict(data, module_root=str(data["module_root"]))
        return cls(**data)


def load_config(path: Optional[Union[str, Path]] = None) -> RuntimeConfig:
    """
    Load configuration from a YAML file.

    Args:
        path: File to read; defaults to $MINILANG_CONFIG when set

    Returns:
        RuntimeConfig (defaults when there is no file to read)

    Raises:
        ConfigError: if the file is unreadable, not a mapping, or holds bad values
    """
    if path is None:
        path = os.environ.get(CONFIG_ENV_VAR)
        if not path:
            return RuntimeConfig()

    config_path = Path(path)
    logger.debug("loading configuration from %s", config_path)
    try:
        with open(config_path, "r", encoding="utf-8") as fp:
            data = yaml.safe_load(fp) or {}
    except OSError as e:
        raise ConfigError(f"cannot read configuration {config_path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid YAML in {config_path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"configuration {config_path} must be a mapping")
    return RuntimeConfig.from_dict(data)
