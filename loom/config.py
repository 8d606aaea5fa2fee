"""
Config system - resolver policy loaded from layered sources.

Precedence (later overrides earlier):
    config files (YAML/JSON) < .env file < LOOM_* environment < overrides
"""

from typing import Any, Dict, Optional, Sequence, Tuple
from dataclasses import dataclass, fields
from pathlib import Path
import json
import os

import yaml
from dotenv import dotenv_values

from .errors import ResolutionError


VARIABLE_ENV_PREFIX = "LOOM_VARIABLE_"


class ConfigError(ResolutionError):
    """Raised when configuration validation fails."""

    def __init__(self, message: str, *, key: Optional[str] = None):
        super().__init__(
            message,
            suggestion="Check the loom config file and LOOM_* environment variables.",
            details={"key": key} if key else None,
        )


@dataclass(frozen=True)
class ResolverConfig:
    """
    Policy knobs for a resolution pass.

    Attributes:
        allow_parent_paths: Accept local paths that escape upward with '..'
        allowed_host_schemes: Schemes permitted in allowed_outbound_hosts
        default_registry: Registry for dependencies that name none
        inheritance_set_merge: "union" merges declared sets with inherited
            entries, "explicit" keeps non-empty declared sets
        check_source_exists: Ask the filesystem collaborator about local sources
    """

    allow_parent_paths: bool = False
    allowed_host_schemes: Tuple[str, ...] = ("http", "https")
    default_registry: Optional[str] = None
    inheritance_set_merge: str = "union"
    check_source_exists: bool = True

    def __post_init__(self):
        if self.inheritance_set_merge not in ("explicit", "union"):
            raise ConfigError(
                f"inheritance_set_merge must be 'explicit' or 'union', "
                f"got '{self.inheritance_set_merge}'",
                key="inheritance_set_merge",
            )
        if not self.allowed_host_schemes:
            raise ConfigError(
                "allowed_host_schemes must name at least one scheme",
                key="allowed_host_schemes",
            )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ResolverConfig":
        """
        Build from plain data, checking types.

        Raises:
            ConfigError: On unknown keys or wrong types
        """
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigError(f"Unknown config key(s): {', '.join(unknown)}", key=unknown[0])

        values: Dict[str, Any] = {}
        for key, value in data.items():
            if key in ("allow_parent_paths", "check_source_exists"):
                if not isinstance(value, bool):
                    raise ConfigError(f"{key} must be a boolean", key=key)
                values[key] = value
            elif key == "allowed_host_schemes":
                if isinstance(value, str):
                    value = [part.strip() for part in value.split(",") if part.strip()]
                if not isinstance(value, (list, tuple)) or not all(
                    isinstance(v, str) for v in value
                ):
                    raise ConfigError(f"{key} must be a list of strings", key=key)
                values[key] = tuple(value)
            elif key in ("default_registry", "inheritance_set_merge"):
                if value is not None and not isinstance(value, str):
                    raise ConfigError(f"{key} must be a string", key=key)
                values[key] = value

        return cls(**values)


class ConfigLoader:
    """
    Loads and merges configuration from multiple sources with precedence:
    overrides > environment variables > .env file > config files > defaults
    """

    def __init__(self, env_prefix: str = "LOOM_"):
        self.env_prefix = env_prefix
        self.config_data: Dict[str, Any] = {}

    @classmethod
    def load(
        cls,
        paths: Optional[Sequence[str]] = None,
        env_prefix: str = "LOOM_",
        env_file: Optional[str] = None,
        overrides: Optional[Dict[str, Any]] = None,
        environ: Optional[Dict[str, str]] = None,
    ) -> "ConfigLoader":
        """
        Load configuration from multiple sources with proper merge strategy.

        Args:
            paths: Config file paths (.yaml/.yml/.json)
            env_prefix: Prefix for environment variables
            env_file: Path to .env file
            overrides: Manual overrides (highest precedence)
            environ: Environment to read instead of os.environ

        Returns:
            Configured ConfigLoader instance
        """
        loader = cls(env_prefix=env_prefix)

        for path in paths or []:
            loader._load_file(Path(path))

        if env_file:
            loader._load_env_file(env_file)

        loader._load_from_env(os.environ if environ is None else environ)

        if overrides:
            loader._merge_dict(loader.config_data, overrides)

        return loader

    def _load_file(self, path: Path):
        """Load config from a YAML or JSON file."""
        if not path.exists():
            raise ConfigError(f"Config file not found: {path}", key=str(path))

        if path.suffix in (".yaml", ".yml"):
            with open(path) as f:
                data = yaml.safe_load(f)
        elif path.suffix == ".json":
            with open(path) as f:
                data = json.load(f)
        else:
            raise ConfigError(f"Unsupported config format: {path.suffix}", key=str(path))

        if data:
            if not isinstance(data, dict):
                raise ConfigError(f"Config file {path} must contain a mapping", key=str(path))
            self._merge_dict(self.config_data, data.get("resolver", data))

    def _load_env_file(self, path: str):
        """Load config from .env file."""
        if not Path(path).exists():
            return
        for key, value in dotenv_values(path).items():
            if value is not None:
                self._set_from_env(key, value)

    def _load_from_env(self, environ: Dict[str, str]):
        """Load config from environment variables."""
        for key, value in environ.items():
            self._set_from_env(key, value)

    def _set_from_env(self, key: str, value: str):
        if not key.startswith(self.env_prefix) or key.startswith(VARIABLE_ENV_PREFIX):
            return
        self._set_nested(key, value)

    def _set_nested(self, key: str, value: str):
        """Convert LOOM_SECTION__KEY to nested dict."""
        key = key[len(self.env_prefix):]

        parts = key.lower().split("__")

        current = self.config_data
        for part in parts[:-1]:
            if part not in current:
                current[part] = {}
            current = current[part]

        current[parts[-1]] = self._parse_value(value)

    def _parse_value(self, value: str) -> Any:
        """Parse string value to appropriate type."""
        if value.lower() in ("true", "yes"):
            return True
        if value.lower() in ("false", "no"):
            return False

        if value.startswith(("{", "[")):
            try:
                return json.loads(value)
            except json.JSONDecodeError:
                pass

        return value

    def _merge_dict(self, target: dict, source: dict):
        """Deep merge source into target."""
        for key, value in source.items():
            if key in target and isinstance(target[key], dict) and isinstance(value, dict):
                self._merge_dict(target[key], value)
            else:
                target[key] = value

    def to_resolver_config(self) -> ResolverConfig:
        """Validated ResolverConfig from the merged data."""
        return ResolverConfig.from_dict(self.config_data)


def supplied_variables_from_env(environ: Optional[Dict[str, str]] = None) -> Dict[str, str]:
    """
    Variable values passed as LOOM_VARIABLE_<NAME> environment variables.

    Names are lowercased to match manifest variable names.
    """
    environ = os.environ if environ is None else environ
    return {
        key[len(VARIABLE_ENV_PREFIX):].lower(): value
        for key, value in environ.items()
        if key.startswith(VARIABLE_ENV_PREFIX) and len(key) > len(VARIABLE_ENV_PREFIX)
    }
