"""
dispatch configuration

Configuration values with YAML files, environment variables and validation,
plus the file-backed name profiles used when publishing.

Configuration sources (in order of precedence):
    1. Environment variables (DISPATCH_*)
    2. Values set at runtime or read from the config file
       (<config_dir>/config.yaml)
    3. Default values

The config directory is ``$DISPATCH_CONFIG_DIR``, else
``$XDG_CONFIG_HOME/dispatch``, else ``~/.config/dispatch``.  It also holds
the profile files:

    languages.yaml   name -> {language: <cid>}
    tools.yaml       name -> {tool: <cid>}
    agents.yaml      name -> {private-key: <pem>, public-key: <pem>}

There is no process-wide configuration object; callers load a
``DispatchConfig`` and pass it along.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Generic, List, Optional, TypeVar

import yaml

T = TypeVar("T")

logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = "config.yaml"
LOG_LEVELS = ("debug", "info", "warning", "error", "critical")


class ConfigError(Exception):
    """Configuration error."""
    pass


class ProfileError(ConfigError):
    """Unknown or malformed profile entry."""
    pass


def default_config_dir() -> Path:
    explicit = os.environ.get("DISPATCH_CONFIG_DIR", "").strip()
    if explicit:
        return Path(explicit).expanduser()
    xdg = os.environ.get("XDG_CONFIG_HOME", "").strip()
    base = Path(xdg).expanduser() if xdg else Path.home() / ".config"
    return base / "dispatch"


@dataclass
class ConfigValue(Generic[T]):
    """
    A single configuration value with metadata.

    Supports default values, environment variable binding and validation.
    """
    default: T
    env_var: Optional[str] = None
    description: str = ""
    validator: Optional[Callable[[T], bool]] = None
    _value: Optional[T] = field(default=None, repr=False)

    def get(self) -> T:
        """Get the current value."""
        if self.env_var and self.env_var in os.environ:
            raw = os.environ[self.env_var]
            try:
                value = self._coerce(raw)
            except ValueError as ex:
                raise ConfigError(f"Invalid value for {self.env_var}: {raw!r}") from ex
            if not self._valid(value):
                raise ConfigError(f"Invalid value for {self.env_var}: {raw!r}")
            return value
        return self._value if self._value is not None else self.default

    def set(self, value: T) -> None:
        """Set the value with validation."""
        if not self._valid(value):
            raise ConfigError(f"Invalid value for config: {value!r}")
        self._value = value

    def _valid(self, value: Any) -> bool:
        if self.validator is None:
            return True
        try:
            return bool(self.validator(value))
        except (TypeError, ValueError):
            return False

    def _coerce(self, value: str) -> T:
        """Coerce string value to target type."""
        target_type = type(self.default)

        if target_type == bool:
            return value.lower() in ("true", "1", "yes", "on")  # type: ignore
        elif target_type == int:
            return int(value)  # type: ignore
        elif target_type == float:
            return float(value)  # type: ignore
        elif target_type == list:
            return [p for p in value.split(os.pathsep) if p.strip()]  # type: ignore
        else:
            return value  # type: ignore


@dataclass
class DispatchConfig:
    """Root configuration for dispatch."""
    config_dir: Path = field(default_factory=default_config_dir)
    store_dirs: ConfigValue[list] = field(default_factory=lambda: ConfigValue(
        default=[],
        env_var="DISPATCH_STORE_DIRS",
        description="Object store directories (os.pathsep-separated); first is written to",
        validator=lambda x: isinstance(x, list),
    ))
    gateway: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="",
        env_var="DISPATCH_GATEWAY",
        description="HTTP gateway used to complete missing objects",
        validator=lambda x: x == "" or str(x).startswith(("http://", "https://")),
    ))
    request_timeout: ConfigValue[float] = field(default_factory=lambda: ConfigValue(
        default=30.0,
        env_var="DISPATCH_TIMEOUT_SECONDS",
        description="Gateway request timeout in seconds",
        validator=lambda x: float(x) > 0,
    ))
    results_dir: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="lookup-results",
        env_var="DISPATCH_RESULTS_DIR",
        description="Directory receiving lookup result files",
        validator=lambda x: bool(str(x).strip()),
    ))
    log_level: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="warning",
        env_var="DISPATCH_LOG_LEVEL",
        description="Log level (debug, info, warning, error)",
        validator=lambda x: x in LOG_LEVELS,
    ))

    @property
    def config_file(self) -> Path:
        return self.config_dir / CONFIG_FILE_NAME

    def _values(self) -> Dict[str, ConfigValue]:
        return {
            name: getattr(self, name)
            for name in self.__dataclass_fields__
            if isinstance(getattr(self, name), ConfigValue)
        }

    def store_roots(self) -> List[Path]:
        roots: List[Path] = []
        for part in self.store_dirs.get():
            p = Path(str(part).strip()).expanduser()
            if not p.is_absolute():
                p = self.config_dir / p
            roots.append(p)
        default_root = self.config_dir / "objects"
        if default_root not in roots:
            roots.append(default_root)
        return roots

    def apply_dict(self, data: Dict[str, Any]) -> None:
        """Apply values from a mapping (unknown keys are ignored with a warning)."""
        values = self._values()
        for key, value in data.items():
            attr = values.get(key)
            if attr is None:
                logger.warning(f"ignoring unknown config key: {key}")
                continue
            attr.set(value)

    def set(self, key: str, value: Any) -> None:
        attr = self._values().get(key)
        if attr is None:
            raise ConfigError(f"Invalid config key: {key}")
        attr.set(value)

    def get(self, key: str) -> Any:
        attr = self._values().get(key)
        if attr is None:
            raise ConfigError(f"Invalid config key: {key}")
        return attr.get()

    def to_dict(self) -> Dict[str, Any]:
        return {name: value.get() for name, value in self._values().items()}

    def to_yaml(self) -> str:
        return yaml.safe_dump(self.to_dict(), default_flow_style=False, sort_keys=True)

    def save(self) -> Path:
        """Write the non-environment view of the values to the config file."""
        data = {
            name: (value._value if value._value is not None else value.default)
            for name, value in self._values().items()
        }
        self.config_dir.mkdir(parents=True, exist_ok=True)
        self.config_file.write_text(
            yaml.safe_dump(data, default_flow_style=False, sort_keys=True),
            encoding="utf-8",
        )
        return self.config_file


def load_config(config_dir: Optional[Path] = None) -> DispatchConfig:
    """Load configuration from ``<config_dir>/config.yaml`` if it exists."""
    cfg = DispatchConfig(config_dir=Path(config_dir) if config_dir else default_config_dir())
    path = cfg.config_file
    if path.exists():
        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8"))
        except yaml.YAMLError as ex:
            raise ConfigError(f"Configuration file is not valid YAML: {path}: {ex}") from ex
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigError(f"Configuration file must hold a mapping: {path}")
        cfg.apply_dict(data)
        logger.debug(f"loaded configuration from {path}")
    return cfg


class ProfileStore:
    """
    File-backed name profiles: one YAML mapping per profile kind.

    Reads are cached per instance, so one publish session sees a stable view.
    """

    KINDS = ("languages", "tools", "agents")

    def __init__(self, config_dir: Path):
        self.config_dir = Path(config_dir)
        self._cache: Dict[str, Dict[str, Any]] = {}

    def _path(self, kind: str) -> Path:
        if kind not in self.KINDS:
            raise ProfileError(f"unknown profile kind: {kind}")
        return self.config_dir / f"{kind}.yaml"

    def _table(self, kind: str) -> Dict[str, Any]:
        if kind not in self._cache:
            path = self._path(kind)
            data: Any = {}
            if path.exists():
                data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
            if not isinstance(data, dict):
                raise ProfileError(f"profile file must hold a mapping: {path}")
            self._cache[kind] = data
        return self._cache[kind]

    def read(self, kind: str, name: str) -> Dict[str, Any]:
        entry = self._table(kind).get(name)
        if not isinstance(entry, dict):
            raise ProfileError(f"unknown {kind[:-1]} profile: {name}")
        return entry

    def write(self, kind: str, name: str, entry: Dict[str, Any]) -> Path:
        table = dict(self._table(kind))
        table[name] = entry
        path = self._path(kind)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(yaml.safe_dump(table, default_flow_style=False, sort_keys=True), encoding="utf-8")
        self._cache[kind] = table
        return path

    def language_cid(self, name: str) -> str:
        cid = self.read("languages", name).get("language")
        if not cid:
            raise ProfileError(f"language profile {name} has no 'language' cid")
        return str(cid)

    def tool_cid(self, name: str) -> str:
        cid = self.read("tools", name).get("tool")
        if not cid:
            raise ProfileError(f"tool profile {name} has no 'tool' cid")
        return str(cid)

    def agent(self, name: str) -> Dict[str, str]:
        entry = self.read("agents", name)
        if not entry.get("private-key") or not entry.get("public-key"):
            raise ProfileError(f"agent profile {name} must have 'private-key' and 'public-key'")
        return {"private-key": str(entry["private-key"]), "public-key": str(entry["public-key"])}
