"""
Metaguard Configuration

Configuration sources (in order of precedence):
    1. Environment variables (METAGUARD_*)
    2. Runtime overrides (ConfigManager.set)
    3. Config file (METAGUARD_CONFIG, ./metaguard.yaml, ~/.metaguard/config.yaml)
    4. Default values

Config files are YAML documents checked against the JSON schema produced by
ConfigManager.json_schema() before any value is applied.

Copyright (c) 2026 Metaguard. All rights reserved.
"""

from __future__ import annotations

import os
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Generic, List, Optional, TypeVar, Union

import yaml
from jsonschema import Draft202012Validator

from metaguard.pubkey import Pubkey, b58decode

T = TypeVar("T")

DEFAULT_PROGRAM_ID = "metaqbxxUerdq28cj1RbAWkYQm3ybzjb6a8bt518x1s"
CONFIG_PATH_ENV = "METAGUARD_CONFIG"


class ConfigError(Exception):
    """Configuration error."""
    pass


class ValidationError(ConfigError):
    """Configuration validation error."""
    pass


def _is_pubkey(value: str) -> bool:
    if not isinstance(value, str):
        return False
    try:
        return len(b58decode(value)) == 32
    except ValueError:
        return False


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
        if self.env_var and self.env_var in os.environ:
            return self._coerce(os.environ[self.env_var])
        return self._value if self._value is not None else self.default

    def set(self, value: T) -> None:
        if self.validator and not self.validator(value):
            raise ValidationError(f"Invalid value for config: {value}")
        self._value = value

    def reset(self) -> None:
        self._value = None

    def _coerce(self, value: str) -> T:
        target_type = type(self.default)
        if target_type == bool:
            return value.lower() in ("true", "1", "yes", "on")  # type: ignore
        if target_type == int:
            try:
                return int(value)  # type: ignore
            except ValueError as e:
                raise ValidationError(f"{self.env_var}: expected an integer, got {value!r}") from e
        return value  # type: ignore


@dataclass
class EngineConfig:
    """Instruction engine settings."""
    program_id: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default=DEFAULT_PROGRAM_ID,
        env_var="METAGUARD_PROGRAM_ID",
        description="Address that owns asset and token records",
        validator=_is_pubkey,
    ))
    max_accounts: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=64,
        env_var="METAGUARD_MAX_ACCOUNTS",
        description="Maximum accounts accepted with one instruction",
        validator=lambda x: 0 < x <= 256,
    ))
    rule_sets_path: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="",
        env_var="METAGUARD_RULE_SETS",
        description="YAML file of rule sets for the local policy oracle",
    ))


@dataclass
class ObservabilityConfig:
    """Logging and tracing settings."""
    log_level: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="info",
        env_var="METAGUARD_LOG_LEVEL",
        description="Log level (debug, info, warning, error)",
        validator=lambda x: x in ("debug", "info", "warning", "error", "critical"),
    ))
    log_format: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="json",
        env_var="METAGUARD_LOG_FORMAT",
        description="Log format (json, text)",
        validator=lambda x: x in ("json", "text"),
    ))
    enable_tracing: ConfigValue[bool] = field(default_factory=lambda: ConfigValue(
        default=True,
        env_var="METAGUARD_TRACING_ENABLED",
        description="Export instruction spans",
    ))


@dataclass
class MetaguardConfig:
    """Root configuration."""
    engine: EngineConfig = field(default_factory=EngineConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @property
    def program_id(self) -> Pubkey:
        return Pubkey.from_string(self.engine.program_id.get())

    def to_dict(self) -> Dict[str, Any]:
        return _extract_values(self)

    def to_yaml(self) -> str:
        return yaml.dump(self.to_dict(), default_flow_style=False)


def _extract_values(obj: Any) -> Any:
    if isinstance(obj, ConfigValue):
        return obj.get()
    elif hasattr(obj, "__dataclass_fields__"):
        return {k: _extract_values(getattr(obj, k)) for k in obj.__dataclass_fields__}
    return obj


_JSON_TYPES = {bool: "boolean", int: "integer", str: "string"}


class ConfigManager:
    """
    Configuration manager with file loading and environment binding.

    Thread-safe singleton that manages configuration lifecycle.
    """

    _instance: Optional["ConfigManager"] = None
    _lock = threading.Lock()

    def __new__(cls) -> "ConfigManager":
        with cls._lock:
            if cls._instance is None:
                cls._instance = super().__new__(cls)
                cls._instance._initialized = False
            return cls._instance

    def __init__(self):
        if self._initialized:
            return
        self._config = MetaguardConfig()
        self._config_paths: List[Path] = []
        self._initialized = True

    @classmethod
    def reset(cls) -> None:
        """Drop the singleton; the next ConfigManager() starts from defaults."""
        with cls._lock:
            cls._instance = None

    @property
    def config(self) -> MetaguardConfig:
        return self._config

    @property
    def loaded_paths(self) -> List[Path]:
        return list(self._config_paths)

    def load_from_file(self, path: Union[str, Path]) -> None:
        """Load configuration from a YAML file."""
        path = Path(path)
        if not path.exists():
            raise ConfigError(f"Configuration file not found: {path}")

        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)

        if data:
            errors = self.validate_document(data)
            if errors:
                raise ValidationError(f"{path}: " + "; ".join(errors))
            self._apply_dict(data)
        self._config_paths.append(path)

    def load_defaults(self) -> None:
        """Load the first config file found in the standard locations."""
        candidates = []
        if os.environ.get(CONFIG_PATH_ENV):
            candidates.append(Path(os.environ[CONFIG_PATH_ENV]))
        candidates += [
            Path("metaguard.yaml"),
            Path.home() / ".metaguard" / "config.yaml",
        ]
        for path in candidates:
            if path.exists():
                self.load_from_file(path)
                return

    def _apply_dict(self, data: Dict[str, Any]) -> None:
        def apply_to_config(config_obj: Any, values: Dict[str, Any]) -> None:
            for key, value in values.items():
                attr = getattr(config_obj, key)
                if isinstance(attr, ConfigValue):
                    attr.set(value)
                else:
                    apply_to_config(attr, value)

        apply_to_config(self._config, data)

    def _resolve(self, path: str) -> Any:
        obj: Any = self._config
        for part in path.split("."):
            if not hasattr(obj, "__dataclass_fields__") or part not in obj.__dataclass_fields__:
                raise ConfigError(f"Invalid config path: {path}")
            obj = getattr(obj, part)
        return obj

    def set(self, path: str, value: Any) -> None:
        """
        Set a configuration value by path.

        Example: config.set("engine.max_accounts", 32)
        """
        attr = self._resolve(path)
        if not isinstance(attr, ConfigValue):
            raise ConfigError(f"Invalid config path: {path}")
        attr.set(value)

    def get(self, path: str) -> Any:
        """
        Get a configuration value by path.

        Example: config.get("observability.log_level")
        """
        return _extract_values(self._resolve(path))

    def validate(self) -> List[str]:
        """Validate all effective values; returns a list of errors."""
        errors: List[str] = []

        def validate_config(obj: Any, path: str = "") -> None:
            if isinstance(obj, ConfigValue):
                try:
                    value = obj.get()
                except ConfigError as e:
                    errors.append(f"{path}: {e}")
                    return
                if obj.validator and not obj.validator(value):
                    errors.append(f"{path}: validation failed for value {value}")
            elif hasattr(obj, "__dataclass_fields__"):
                for field_name in obj.__dataclass_fields__:
                    field_path = f"{path}.{field_name}" if path else field_name
                    validate_config(getattr(obj, field_name), field_path)

        validate_config(self._config)
        return errors

    def export_schema(self) -> Dict[str, Any]:
        """Export configuration schema for documentation."""
        schema: Dict[str, Any] = {"properties": {}}

        def extract_schema(obj: Any, properties: Dict[str, Any]) -> None:
            if isinstance(obj, ConfigValue):
                properties["type"] = type(obj.default).__name__
                properties["default"] = str(obj.default)
                properties["description"] = obj.description
                if obj.env_var:
                    properties["env_var"] = obj.env_var
            elif hasattr(obj, "__dataclass_fields__"):
                for field_name in obj.__dataclass_fields__:
                    properties[field_name] = {}
                    extract_schema(getattr(obj, field_name), properties[field_name])

        extract_schema(self._config, schema["properties"])
        return schema

    def json_schema(self) -> Dict[str, Any]:
        """JSON schema (draft 2020-12) accepted for config files."""
        def section_schema(obj: Any) -> Dict[str, Any]:
            props: Dict[str, Any] = {}
            for name in obj.__dataclass_fields__:
                attr = getattr(obj, name)
                if isinstance(attr, ConfigValue):
                    props[name] = {
                        "type": _JSON_TYPES[type(attr.default)],
                        "description": attr.description,
                    }
                else:
                    props[name] = section_schema(attr)
            return {"type": "object", "additionalProperties": False, "properties": props}

        schema = section_schema(self._config)
        schema["$schema"] = "https://json-schema.org/draft/2020-12/schema"
        return schema

    def validate_document(self, data: Any) -> List[str]:
        validator = Draft202012Validator(self.json_schema())
        return [
            f"{error.json_path}: {error.message}"
            for error in validator.iter_errors(data)
        ]


def get_config() -> MetaguardConfig:
    return ConfigManager().config


def get_config_manager() -> ConfigManager:
    return ConfigManager()
