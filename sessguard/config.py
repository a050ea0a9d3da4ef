"""
Config system - Layered typed configuration with validation.

Merge precedence (later overrides earlier):
defaults < config files (YAML / JSON) < .env file < environment < overrides
"""

from __future__ import annotations

import json
import os
import types
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional, Union, get_args, get_origin, get_type_hints

import yaml
from dotenv import dotenv_values


class ConfigError(Exception):
    """Raised when configuration validation fails."""
    pass


@dataclass
class SessionConfig:
    """
    Session configuration.

    Durations are in seconds; 0 / None disables the corresponding check.
    """

    # Identifier transport
    id_store: str = "cookie"
    cookie_name: str = "sessguard"
    cookie_path: str = "/"
    cookie_domain: Optional[str] = None
    cookie_secure: bool = True
    cookie_httponly: bool = True
    cookie_samesite: Optional[str] = "lax"
    cookie_max_age: Optional[int] = None
    header_name: str = "X-Session-ID"

    # Storage
    store: str = "memory"
    store_dir: str = "sessions"
    max_sessions: int = 10000
    encryption_key: Optional[str] = None

    # Fingerprinting
    fingerprint: list = field(default_factory=lambda: ["user_agent"])
    fingerprint_secret: Optional[str] = None
    fingerprint_mask_network: bool = False
    check_fingerprint: bool = True

    # Policy
    idle_ttl: Optional[int] = 1800
    max_lifetime: Optional[int] = None
    id_requests_limit: Optional[int] = None
    id_ttl: Optional[int] = None
    strict: bool = False
    auto_create: bool = True

    def validate(self) -> None:
        """Check cross-field constraints."""
        if self.id_store not in ("cookie", "header", "memory"):
            raise ConfigError(f"Unsupported id_store '{self.id_store}'")
        if self.store not in ("memory", "file"):
            raise ConfigError(f"Unsupported store '{self.store}'")
        if self.cookie_samesite not in (None, "strict", "lax", "none"):
            raise ConfigError(f"Invalid cookie_samesite '{self.cookie_samesite}'")
        if self.cookie_samesite == "none" and not self.cookie_secure:
            raise ConfigError("cookie_samesite=none requires cookie_secure")
        for name in ("idle_ttl", "max_lifetime", "id_requests_limit", "id_ttl", "cookie_max_age"):
            value = getattr(self, name)
            if value is not None and value < 0:
                raise ConfigError(f"Config field '{name}' must not be negative")


class ConfigLoader:
    """
    Loads and merges configuration from multiple sources with precedence:
    overrides > environment variables > .env file > config files > defaults
    """

    def __init__(self, env_prefix: str = "SESSGUARD_"):
        self.env_prefix = env_prefix
        self.config_data: Dict[str, Any] = {}

    @classmethod
    def load(
        cls,
        paths: Optional[list[str]] = None,
        env_prefix: str = "SESSGUARD_",
        env_file: Optional[str] = None,
        overrides: Optional[Dict[str, Any]] = None,
    ) -> "ConfigLoader":
        """
        Load configuration from multiple sources with proper merge strategy.

        Args:
            paths: Config file paths (.yaml, .yml, .json)
            env_prefix: Prefix for environment variables
            env_file: Path to .env file
            overrides: Manual overrides (highest precedence)

        Returns:
            Configured ConfigLoader instance
        """
        loader = cls(env_prefix=env_prefix)

        for path in paths or []:
            loader._load_file(Path(path))

        if env_file:
            loader._load_env_file(env_file)

        loader._load_from_env()

        if overrides:
            loader._merge_dict(loader.config_data, overrides)

        return loader

    def _load_file(self, path: Path):
        if not path.exists():
            raise ConfigError(f"Config file not found: {path}")

        if path.suffix == ".json":
            with open(path) as f:
                data = json.load(f)
        elif path.suffix in (".yaml", ".yml"):
            with open(path) as f:
                data = yaml.safe_load(f)
        else:
            raise ConfigError(f"Unsupported config file type: {path.suffix}")

        if data:
            # Allow the settings to live under a top-level "session" key
            if isinstance(data, dict) and isinstance(data.get("session"), dict):
                data = data["session"]
            if not isinstance(data, dict):
                raise ConfigError(f"Config file {path} must contain a mapping")
            self._merge_dict(self.config_data, data)

    def _load_env_file(self, path: str):
        """Load config from .env file."""
        if not Path(path).exists():
            return

        for key, value in dotenv_values(path).items():
            if key.startswith(self.env_prefix) and value is not None:
                self._set_key(key, value)

    def _load_from_env(self):
        """Load config from environment variables."""
        for key, value in os.environ.items():
            if key.startswith(self.env_prefix):
                self._set_key(key, value)

    def _set_key(self, key: str, value: str):
        """Convert SESSGUARD_IDLE_TTL to idle_ttl."""
        name = key[len(self.env_prefix):].lower()
        self.config_data[name] = self._parse_value(value)

    def _parse_value(self, value: str) -> Any:
        """Parse string value to appropriate type."""
        if value.lower() in ("true", "yes", "on"):
            return True
        if value.lower() in ("false", "no", "off"):
            return False
        if value.lower() in ("none", "null"):
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

    def _merge_dict(self, target: dict, source: dict):
        """Deep merge source into target."""
        for key, value in source.items():
            if key in target and isinstance(target[key], dict) and isinstance(value, dict):
                self._merge_dict(target[key], value)
            else:
                target[key] = value

    def get(self, path: str, default: Any = None) -> Any:
        """Get config value by dot-separated path."""
        current = self.config_data

        for part in path.split("."):
            if isinstance(current, dict) and part in current:
                current = current[part]
            else:
                return default

        return current

    def session_config(self) -> SessionConfig:
        """
        Build and validate the SessionConfig.

        Raises:
            ConfigError: Unknown key, wrong type or invalid combination
        """
        known = {f.name for f in fields(SessionConfig)}
        unknown = sorted(set(self.config_data) - known)
        if unknown:
            raise ConfigError(f"Unknown config field(s): {', '.join(unknown)}")

        hints = get_type_hints(SessionConfig)
        kwargs = {}

        for field_info in fields(SessionConfig):
            name = field_info.name
            if name not in self.config_data:
                continue

            value = self._coerce(self.config_data[name], hints[name])
            if not self._check_type(value, hints[name]):
                raise ConfigError(
                    f"Config field '{name}' expected {hints[name]}, "
                    f"got {type(value).__name__}"
                )
            kwargs[name] = value

        config = SessionConfig(**kwargs)
        config.validate()
        return config

    @staticmethod
    def _coerce(value: Any, expected_type: Any) -> Any:
        # Comma-separated lists from the environment
        if expected_type is list and isinstance(value, str):
            return [part.strip() for part in value.split(",") if part.strip()]
        # Numeric secrets / names read back as ints from the environment
        if expected_type in (str, Optional[str]) and isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value

    def _check_type(self, value: Any, expected_type: Any) -> bool:
        """Basic type checking."""
        origin = get_origin(expected_type)
        if origin is types.UnionType or origin is Union:
            if value is None:
                return type(None) in get_args(expected_type)
            return any(
                self._check_type(value, arg)
                for arg in get_args(expected_type)
                if arg is not type(None)
            )

        if origin:
            expected_type = origin

        if expected_type is int:
            return isinstance(value, int) and not isinstance(value, bool)

        if expected_type is float:
            return isinstance(value, (int, float)) and not isinstance(value, bool)

        return isinstance(value, expected_type)
