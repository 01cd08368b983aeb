"""
Config system - Layered typed configuration with validation.

Merge precedence (later overrides earlier):
defaults < YAML files < .env file < environment variables < overrides
"""

from __future__ import annotations

import builtins
import importlib
import json
import os
import types
from dataclasses import MISSING, dataclass, field, fields
from glob import glob
from pathlib import Path
from typing import Any, Dict, Optional, Union, get_args, get_origin, get_type_hints

import yaml
from dotenv import dotenv_values

from .faults.domains import ConfigFault

ENV_PREFIX = "ERRORPIPE_"


@dataclass
class PipelineConfig:
    """Typed pipeline configuration."""

    error_path: str = "/error"
    error_page_prefix: str = "/error-page"
    generic_message: str = "Internal server error"
    strategy_timeout: Optional[float] = 2.0
    catch_all: bool = True
    include_exception: bool = False
    api_path_prefixes: list = field(default_factory=list)
    template_dirs: list = field(default_factory=list)
    static_dirs: list = field(default_factory=list)
    messages_file: Optional[str] = None
    # route key ("404", "5xx", "error", "builtins.RuntimeError") -> path
    error_routes: dict = field(default_factory=dict)
    # dotted exception type -> {"status": 400, "code": "...", "reason": "..."}
    statuses: dict = field(default_factory=dict)
    # dotted exception type -> status, resolved by SendErrorStrategy
    send_error: dict = field(default_factory=dict)

    @property
    def error_route_patterns(self) -> tuple[str, ...]:
        """Path patterns interceptors skip by default."""
        prefix = self.error_page_prefix.rstrip("/")
        return (self.error_path, f"{prefix}/**")


class ConfigLoader:
    """
    Loads and merges configuration from multiple sources.

    Environment variables use ``ERRORPIPE_`` as prefix and ``__`` to
    separate nested keys: ``ERRORPIPE_ERROR_ROUTES__404=/error-page/404``.
    """

    def __init__(self, env_prefix: str = ENV_PREFIX):
        self.env_prefix = env_prefix
        self.config_data: Dict[str, Any] = {}

    @classmethod
    def load(
        cls,
        paths: Optional[list[str]] = None,
        env_prefix: str = ENV_PREFIX,
        env_file: Optional[str] = None,
        overrides: Optional[Dict[str, Any]] = None,
        *,
        use_environ: bool = True,
    ) -> "ConfigLoader":
        """
        Load configuration from multiple sources with proper merge strategy.

        Args:
            paths: YAML/JSON config files (glob patterns supported)
            env_prefix: Prefix for environment variables
            env_file: Path to .env file
            overrides: Manual overrides (highest precedence)
            use_environ: Read ``os.environ``

        Returns:
            Configured ConfigLoader instance
        """
        loader = cls(env_prefix=env_prefix)

        for pattern in paths or []:
            matched = sorted(glob(pattern))
            if not matched and not any(ch in pattern for ch in "*?["):
                raise ConfigFault(f"Config file '{pattern}' does not exist")
            for path in matched:
                loader._load_file(Path(path))

        if env_file:
            loader._load_env_file(env_file)

        if use_environ:
            loader._load_from_env(os.environ)

        if overrides:
            loader._merge_dict(loader.config_data, overrides)

        return loader

    def _load_file(self, path: Path) -> None:
        if path.suffix in (".yaml", ".yml"):
            with open(path, encoding="utf-8") as f:
                data = yaml.safe_load(f)
        elif path.suffix == ".json":
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        else:
            raise ConfigFault(f"Unsupported config file type: {path}")

        if data:
            if not isinstance(data, dict):
                raise ConfigFault(f"Config file {path} must contain a mapping")
            self._merge_dict(self.config_data, data.get("errorpipe", data))

    def _load_env_file(self, path: str) -> None:
        """Load config from .env file."""
        env_path = Path(path)
        if not env_path.exists():
            return
        values = {k: v for k, v in dotenv_values(env_path).items() if v is not None}
        self._load_from_env(values)

    def _load_from_env(self, environ: Any) -> None:
        for key, value in environ.items():
            if key.startswith(self.env_prefix):
                self._set_nested(key, value)

    def _set_nested(self, key: str, value: str) -> None:
        """
        Convert ERRORPIPE_ERROR_ROUTES__404 to a nested dict entry.

        Segments are lowercased, except dotted exception type paths
        (ERRORPIPE_STATUSES__myapp.errors.MemberNotFound__STATUS).
        """
        key = key[len(self.env_prefix):]
        parts = [p if "." in p else p.lower() for p in key.split("__")]

        current = self.config_data
        for part in parts[:-1]:
            if not isinstance(current.get(part), dict):
                current[part] = {}
            current = current[part]

        current[parts[-1]] = self._parse_value(value)

    def _parse_value(self, value: str) -> Any:
        """Parse string value to appropriate type."""
        lowered = value.lower()
        if lowered in ("true", "yes"):
            return True
        if lowered in ("false", "no"):
            return False
        if lowered in ("none", "null"):
            return None

        try:
            if "." in value:
                return float(value)
            return int(value)
        except ValueError:
            pass

        if value.startswith(("{", "[")):
            try:
                return json.loads(value)
            except json.JSONDecodeError:
                pass

        return value

    def _merge_dict(self, target: dict, source: dict) -> None:
        """Deep merge source into target."""
        for key, value in source.items():
            if key in target and isinstance(target[key], dict) and isinstance(value, dict):
                self._merge_dict(target[key], value)
            else:
                target[key] = value

    def get(self, path: str, default: Any = None) -> Any:
        """Get config value by dot-separated path."""
        current: Any = self.config_data
        for part in path.split("."):
            if isinstance(current, dict) and part in current:
                current = current[part]
            else:
                return default
        return current

    def to_config(self) -> PipelineConfig:
        """Instantiate and validate PipelineConfig."""
        hints = get_type_hints(PipelineConfig)
        known = {f.name for f in fields(PipelineConfig)}
        unknown = set(self.config_data) - known
        if unknown:
            raise ConfigFault(f"Unknown config keys: {', '.join(sorted(unknown))}")

        kwargs: Dict[str, Any] = {}
        for field_info in fields(PipelineConfig):
            name = field_info.name
            if name in self.config_data:
                value = self._coerce(self.config_data[name], hints[name])
                if not self._check_type(value, hints[name]):
                    raise ConfigFault(
                        f"Config field '{name}' expected {hints[name]}, "
                        f"got {type(value).__name__}"
                    )
                kwargs[name] = value
            elif field_info.default is MISSING and field_info.default_factory is MISSING:
                raise ConfigFault(f"Required config field '{name}' not provided")
        return PipelineConfig(**kwargs)

    @staticmethod
    def _coerce(value: Any, expected: Any) -> Any:
        # a single env value for a list field becomes a one-element list
        if expected is list and isinstance(value, str):
            return [v.strip() for v in value.split(",") if v.strip()]
        if _base_type(expected) is float and isinstance(value, int) and not isinstance(value, bool):
            return float(value)
        return value

    def _check_type(self, value: Any, expected_type: Any) -> bool:
        """Basic type checking."""
        origin = get_origin(expected_type)
        if origin is types.UnionType or origin is Union:
            if value is None:
                return type(None) in get_args(expected_type)
            return any(self._check_type(value, arg) for arg in get_args(expected_type)
                       if arg is not type(None))
        if origin:
            return isinstance(value, origin)
        if expected_type is float and isinstance(value, bool):
            return False
        try:
            return isinstance(value, expected_type)
        except TypeError:
            return True

    def to_dict(self) -> dict:
        """Export all config as dictionary."""
        return self.config_data.copy()


def _base_type(expected: Any) -> Any:
    if get_origin(expected) in (Union, types.UnionType):
        args = [a for a in get_args(expected) if a is not type(None)]
        return args[0] if len(args) == 1 else expected
    return expected


def resolve_type(dotted: str) -> type:
    """
    Import an exception type from a dotted path.

    Names without a module resolve to builtins (``RuntimeError``).
    """
    module_name, _, attr = dotted.rpartition(".")
    try:
        if not module_name:
            obj = getattr(builtins, attr)
        else:
            obj = getattr(importlib.import_module(module_name), attr)
    except (ImportError, AttributeError) as e:
        raise ConfigFault(f"Cannot resolve exception type '{dotted}': {e}") from e
    if not (isinstance(obj, type) and issubclass(obj, BaseException)):
        raise ConfigFault(f"'{dotted}' is not an exception type")
    return obj


def load_config(
    paths: Optional[list[str]] = None,
    *,
    env_file: Optional[str] = None,
    overrides: Optional[Dict[str, Any]] = None,
    use_environ: bool = True,
) -> PipelineConfig:
    """Convenience wrapper: ``ConfigLoader.load(...).to_config()``."""
    return ConfigLoader.load(
        paths,
        env_file=env_file,
        overrides=overrides,
        use_environ=use_environ,
    ).to_config()
