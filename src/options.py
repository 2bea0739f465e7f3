# File: options.py
# Resolves the effective MarkdownOptions for a request from the configured
# profiles and request-level overrides.

import logging
from typing import Any, Dict, Optional

from config import config_manager
from models import MarkdownOptions

logger = logging.getLogger(__name__)

_BOOL_OPTION_KEYS = (
    "allow_html",
    "animated",
    "enable_custom_footnotes",
    "enable_latex",
    "is_chat_mode",
    "fix_markdown_bold",
)
_CAMEL_TO_SNAKE = {
    field.alias: name
    for name, field in MarkdownOptions.model_fields.items()
    if field.alias and field.alias != name
}
_MAX_CITATIONS_LENGTH = 10000
_FALLBACK_PROFILE = "plain"


def _as_bool(value: Any, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "t", "yes", "y", "on"}
    return bool(value)


def _as_int(value: Any, default: int, *, min_value: int, max_value: int) -> int:
    try:
        int_value = int(value)
    except (TypeError, ValueError):
        return default
    return max(min_value, min(max_value, int_value))


def sanitize_options(raw_options: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Keep only known option keys (camelCase accepted), coercing their values.
    Keys whose value is None are treated as not given.
    """
    if not isinstance(raw_options, dict):
        return {}

    normalized = {_CAMEL_TO_SNAKE.get(key, key): value for key, value in raw_options.items()}
    sanitized: Dict[str, Any] = {}

    for key in _BOOL_OPTION_KEYS:
        if normalized.get(key) is not None:
            sanitized[key] = _as_bool(normalized[key])
    if normalized.get("citations_length") is not None:
        sanitized["citations_length"] = _as_int(
            normalized["citations_length"],
            0,
            min_value=0,
            max_value=_MAX_CITATIONS_LENGTH,
        )

    unknown = set(normalized) - set(_BOOL_OPTION_KEYS) - {"citations_length", "profile"}
    if unknown:
        logger.warning("Ignoring unknown preprocessing option(s): %s", ", ".join(sorted(unknown)))
    return sanitized


def resolve_options_dict(
    request_overrides: Optional[Dict[str, Any]] = None,
    profile: Optional[str] = None,
) -> Dict[str, Any]:
    preprocessing_cfg = config_manager.get("preprocessing", {})
    if not isinstance(preprocessing_cfg, dict):
        preprocessing_cfg = {}

    profiles = preprocessing_cfg.get("profiles", {})
    if not isinstance(profiles, dict):
        profiles = {}

    active_profile = str(preprocessing_cfg.get("active_profile") or _FALLBACK_PROFILE).strip().lower()
    requested_profile = str(profile).strip().lower() if profile else None

    selected_profile_name = requested_profile or active_profile
    selected_profile = profiles.get(selected_profile_name)

    if not isinstance(selected_profile, dict):
        fallback_profile_name = active_profile if isinstance(profiles.get(active_profile), dict) else _FALLBACK_PROFILE
        logger.warning(
            "Unknown preprocessing profile '%s'. Falling back to '%s'.",
            selected_profile_name,
            fallback_profile_name,
        )
        selected_profile_name = fallback_profile_name
        selected_profile = profiles.get(fallback_profile_name, {})
        if not isinstance(selected_profile, dict):
            selected_profile = {}

    effective_options = MarkdownOptions().model_dump()
    effective_options.update(sanitize_options(selected_profile))
    effective_options.update(sanitize_options(request_overrides))
    effective_options["profile"] = selected_profile_name
    return effective_options


def resolve_markdown_options(
    request_overrides: Optional[Dict[str, Any]] = None,
    profile: Optional[str] = None,
) -> MarkdownOptions:
    """Profile defaults (requested or active) with request overrides on top."""
    options = resolve_options_dict(request_overrides, profile)
    options.pop("profile", None)
    return MarkdownOptions.model_validate(options)
