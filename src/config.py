# File: config.py
# Manages application configuration using environment variables loaded from .env.

import logging
import os
import json
from copy import deepcopy
from pathlib import Path
from threading import Lock
from typing import Any, Dict, Optional

import yaml

from cache import DEFAULT_CACHE_CAPACITY

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parent.parent
ENV_FILE_PATH = PROJECT_ROOT / ".env"

_BASE_PROFILE_OPTIONS: Dict[str, Any] = {
    "allow_html": False,
    "animated": False,
    "enable_custom_footnotes": False,
    "enable_latex": False,
    "is_chat_mode": False,
    "citations_length": 0,
    "fix_markdown_bold": False,
}

DEFAULT_CONFIG: Dict[str, Any] = {
    "server": {
        "host": "0.0.0.0",
        "port": 8010,
        "enable_performance_monitor": False,
    },
    "cache": {
        "capacity": DEFAULT_CACHE_CAPACITY,
    },
    "preprocessing": {
        "active_profile": "chat",
        "profiles_file": "",
        "profiles": {
            "chat": {
                **_BASE_PROFILE_OPTIONS,
                "enable_latex": True,
                "enable_custom_footnotes": True,
                "is_chat_mode": True,
                "animated": True,
            },
            "document": {
                **_BASE_PROFILE_OPTIONS,
                "enable_latex": True,
                "enable_custom_footnotes": True,
            },
            "plain": dict(_BASE_PROFILE_OPTIONS),
        },
    },
    "ui": {
        "title": "Markdown Preprocessing Server",
    },
}

ENV_KEY_MAP: Dict[str, str] = {
    "server.host": "MDPREP_SERVER_HOST",
    "server.port": "MDPREP_SERVER_PORT",
    "server.enable_performance_monitor": "MDPREP_SERVER_ENABLE_PERFORMANCE_MONITOR",
    "cache.capacity": "MDPREP_CACHE_CAPACITY",
    "preprocessing.active_profile": "MDPREP_PROFILE",
    "preprocessing.profiles_file": "MDPREP_PROFILES_FILE",
    "preprocessing.profiles": "MDPREP_PROFILES_JSON",
    "ui.title": "MDPREP_UI_TITLE",
}


def _set_nested_value(d: Dict[str, Any], keys: list[str], value: Any):
    for key in keys[:-1]:
        d = d.setdefault(key, {})
    d[keys[-1]] = value


def _get_nested_value(d: Dict[str, Any], keys: list[str], default: Any = None) -> Any:
    for key in keys:
        if isinstance(d, dict) and key in d:
            d = d[key]
        else:
            return default
    return d


def _parse_bool(raw_value: Any, default: bool = False) -> bool:
    if raw_value is None:
        return default
    if isinstance(raw_value, bool):
        return raw_value
    if isinstance(raw_value, str):
        return raw_value.strip().lower() in {"1", "true", "t", "yes", "y", "on"}
    return bool(raw_value)


def _merge_profiles(
    base_profiles: Dict[str, Any], overrides: Dict[str, Any]
) -> Dict[str, Any]:
    """Merge profile overrides key by key; unknown profiles start from the base options."""
    merged = deepcopy(base_profiles)
    for name, profile in overrides.items():
        if not isinstance(profile, dict):
            logger.warning("Ignoring profile '%s': expected an object, got %s.", name, type(profile).__name__)
            continue
        profile_key = str(name).strip().lower()
        target = merged.setdefault(profile_key, dict(_BASE_PROFILE_OPTIONS))
        target.update(profile)
    return merged


class EnvConfigManager:
    """Loads read-only runtime configuration from .env and process environment variables."""

    def __init__(self):
        self._lock = Lock()
        self.config: Dict[str, Any] = {}
        self.load_config()

    def _parse_env_file(self) -> Dict[str, str]:
        if not ENV_FILE_PATH.exists():
            return {}

        parsed: Dict[str, str] = {}
        with open(ENV_FILE_PATH, "r", encoding="utf-8") as env_file:
            for raw_line in env_file:
                line = raw_line.strip()
                if not line or line.startswith("#"):
                    continue

                if line.startswith("export "):
                    line = line[len("export ") :].strip()

                if "=" not in line:
                    continue

                key, value = line.split("=", 1)
                key = key.strip()
                value = value.strip()

                if len(value) >= 2 and value[0] == value[-1] and value[0] in {'"', "'"}:
                    value = value[1:-1]

                parsed[key] = value

        return parsed

    def _coerce_env_value(self, raw_value: str, default_value: Any) -> Any:
        if isinstance(default_value, bool):
            return _parse_bool(raw_value, default=default_value)
        if isinstance(default_value, int) and not isinstance(default_value, bool):
            try:
                return int(str(raw_value).strip())
            except (ValueError, TypeError):
                logger.warning("Invalid integer env value '%s'. Falling back to default '%s'.", raw_value, default_value)
                return default_value
        if isinstance(default_value, dict):
            try:
                parsed = json.loads(str(raw_value).strip())
                if isinstance(parsed, dict):
                    return parsed
                logger.warning(
                    "Expected JSON object for env value '%s'. Falling back to default.",
                    raw_value,
                )
                return default_value
            except (json.JSONDecodeError, TypeError):
                logger.warning(
                    "Invalid JSON env value '%s'. Falling back to default '%s'.",
                    raw_value,
                    default_value,
                )
                return default_value
        return str(raw_value)

    def _load_profiles_file(self, profiles_file: str) -> Dict[str, Any]:
        path = Path(profiles_file).expanduser()
        if not path.is_file():
            logger.warning("Profiles file not found: %s. Using built-in profiles.", path)
            return {}
        try:
            with open(path, "r", encoding="utf-8") as f:
                loaded = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as exc:
            logger.error("Error reading profiles file %s: %s", path, exc, exc_info=True)
            return {}
        if not isinstance(loaded, dict):
            logger.warning(
                "Invalid format in %s. Expected a mapping of profiles, got %s.",
                path,
                type(loaded).__name__,
            )
            return {}
        return loaded

    def _resolve_profiles_and_cache(
        self, config_data: Dict[str, Any], env_profiles: Dict[str, Any]
    ) -> Dict[str, Any]:
        profiles = _get_nested_value(DEFAULT_CONFIG, ["preprocessing", "profiles"], {})

        profiles_file = str(_get_nested_value(config_data, ["preprocessing", "profiles_file"], "") or "").strip()
        if profiles_file:
            profiles = _merge_profiles(profiles, self._load_profiles_file(profiles_file))

        # Env JSON is applied last so it wins over the profiles file.
        if env_profiles:
            profiles = _merge_profiles(profiles, env_profiles)
        _set_nested_value(config_data, ["preprocessing", "profiles"], deepcopy(profiles))

        capacity = _get_nested_value(config_data, ["cache", "capacity"], DEFAULT_CACHE_CAPACITY)
        if not isinstance(capacity, int) or capacity < 1:
            logger.warning(
                "Invalid MDPREP_CACHE_CAPACITY '%s'. Using default %d.",
                capacity,
                DEFAULT_CACHE_CAPACITY,
            )
            _set_nested_value(config_data, ["cache", "capacity"], DEFAULT_CACHE_CAPACITY)

        logger.info(
            "Preprocessing profiles available: %s (active: %s)",
            ", ".join(sorted(profiles)),
            _get_nested_value(config_data, ["preprocessing", "active_profile"]),
        )
        return config_data

    def _load_from_environment(self) -> Dict[str, Any]:
        base_config = deepcopy(DEFAULT_CONFIG)
        env_file_values = self._parse_env_file()
        env_profiles: Dict[str, Any] = {}

        for key_path, env_key in ENV_KEY_MAP.items():
            raw_value = os.environ.get(env_key, env_file_values.get(env_key))
            if raw_value is None:
                continue

            default_value = _get_nested_value(DEFAULT_CONFIG, key_path.split("."))
            coerced_value = self._coerce_env_value(raw_value, default_value)
            if key_path == "preprocessing.profiles":
                if coerced_value is not default_value:
                    env_profiles = coerced_value
                continue
            _set_nested_value(base_config, key_path.split("."), coerced_value)

        return self._resolve_profiles_and_cache(base_config, env_profiles)

    def load_config(self) -> None:
        with self._lock:
            self.config = self._load_from_environment()

    def get(self, key_path: str, default: Any = None) -> Any:
        keys = key_path.split(".")
        with self._lock:
            value = _get_nested_value(self.config, keys, default)
        return deepcopy(value) if isinstance(value, (dict, list)) else value

    def get_string(self, key_path: str, default: Optional[str] = None) -> str:
        value = self.get(key_path, default)
        if value is None:
            return default if default is not None else ""
        return str(value)

    def get_int(self, key_path: str, default: Optional[int] = None) -> int:
        value = self.get(key_path, default)
        if value is None:
            return default if default is not None else 0
        try:
            return int(value)
        except (ValueError, TypeError):
            return default if isinstance(default, int) else 0

    def get_bool(self, key_path: str, default: Optional[bool] = None) -> bool:
        value = self.get(key_path, default)
        return _parse_bool(value, default if default is not None else False)


config_manager = EnvConfigManager()


def _get_default_from_structure(key_path: str) -> Any:
    return _get_nested_value(DEFAULT_CONFIG, key_path.split("."))


def get_host() -> str:
    return config_manager.get_string("server.host", _get_default_from_structure("server.host"))


def get_port() -> int:
    return config_manager.get_int("server.port", _get_default_from_structure("server.port"))


def get_cache_capacity() -> int:
    return config_manager.get_int("cache.capacity", _get_default_from_structure("cache.capacity"))


def get_active_profile() -> str:
    return config_manager.get_string(
        "preprocessing.active_profile",
        _get_default_from_structure("preprocessing.active_profile"),
    )


def get_ui_title() -> str:
    return config_manager.get_string("ui.title", _get_default_from_structure("ui.title"))


# --- End File: config.py ---
