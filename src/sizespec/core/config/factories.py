# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2024-2026 SIZESPEC Team <dev@sizespec.org>

"""
Factory methods for creating SIZESPEC configurations.

This module provides factory functions for creating SizespecConfig instances:
- from_file_factory: Load from YAML file with environment and programmatic overrides
- from_dict_factory: Build from an in-memory dictionary

Both accept flat format (uppercase aliases like YIELD_LAMBDA) and nested
format (sections like match.yield_lambda).
"""

import os
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, Optional

import yaml
from pydantic import ValidationError

from sizespec.core.exceptions import ConfigurationError

if TYPE_CHECKING:
    from sizespec.core.config.models import SizespecConfig

ENV_PREFIX = "SIZESPEC_"


def _flat_to_nested_map() -> Dict[str, tuple]:
    """Map every field alias to its (section, field_name) location."""
    from sizespec.core.config.models import SECTION_MODELS

    mapping: Dict[str, tuple] = {}
    for section, model in SECTION_MODELS.items():
        for name, info in model.model_fields.items():
            if info.alias:
                mapping[info.alias.upper()] = (section, name)
    return mapping


def _is_nested_config(config: Dict[str, Any]) -> bool:
    """
    Detect if a configuration dictionary is in nested format.

    Nested format has lowercase section keys like 'match' or 'snapshot_log'.
    Flat format has uppercase keys like 'MATCH_STAGES'.
    """
    from sizespec.core.config.models import SECTION_MODELS

    return bool(set(SECTION_MODELS) & {str(k).lower() for k in config})


def _normalize_nested_config(nested_config: Dict[str, Any]) -> Dict[str, Any]:
    """Ensure nested section keys are lowercase (MATCH vs match)."""
    from sizespec.core.config.models import SECTION_MODELS

    normalized: Dict[str, Any] = {}
    for key, value in nested_config.items():
        key_lower = str(key).lower()
        normalized[key_lower if key_lower in SECTION_MODELS else key] = value
    return normalized


def transform_flat_to_nested(flat_config: Dict[str, Any]) -> Dict[str, Any]:
    """Transform flat configuration dict to nested structure.

    Example:
        >>> transform_flat_to_nested({'YIELD_LAMBDA': 10.0})
        {'match': {'yield_lambda': 10.0}}

    Unknown keys are kept at the top level (the models allow extras).
    """
    mapping = _flat_to_nested_map()
    nested: Dict[str, Any] = {}
    for key, value in flat_config.items():
        location = mapping.get(str(key).upper())
        if location is None:
            nested[key] = value
            continue
        section, name = location
        nested.setdefault(section, {})[name] = value
    return nested


def _coerce_value(value: Any) -> Any:
    """Normalize an environment value; empty and null markers become None.

    Everything else stays a string and is converted by the field's validator,
    so numeric-looking values of string fields (``SESSION_ID=42``) survive.
    """
    if not isinstance(value, str):
        return value

    stripped = value.strip()
    if stripped.lower() in ('none', 'null', ''):
        return None
    return stripped


def _load_env_overrides() -> Dict[str, Any]:
    """Load configuration overrides from ``SIZESPEC_*`` environment variables."""
    env_overrides = {}
    for env_key, env_value in os.environ.items():
        if env_key.startswith(ENV_PREFIX):
            config_key = env_key[len(ENV_PREFIX):].upper()
            env_overrides[config_key] = _coerce_value(env_value)
    return env_overrides


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """
    Deep merge two dictionaries, with override taking precedence.

    For nested dictionaries, recursively merge. For other values, override wins.
    """
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _as_nested(config: Dict[str, Any]) -> Dict[str, Any]:
    if _is_nested_config(config):
        return _normalize_nested_config(config)
    return transform_flat_to_nested(config)


def _format_validation_error(error: ValidationError) -> str:
    lines = ["Configuration validation failed:"]
    for err in error.errors():
        loc = ".".join(str(part) for part in err['loc']) or 'unknown'
        lines.append(f"  - {loc}: {err['msg']}")
    return "\n".join(lines)


def from_dict_factory(
    cls: type,
    config: Dict[str, Any],
    overrides: Optional[Dict[str, Any]] = None,
    *,
    use_env: bool = False,
) -> 'SizespecConfig':
    """
    Build a configuration from a dictionary.

    Loading precedence (highest to lowest):
    1. Programmatic overrides
    2. Environment variables (SIZESPEC_*)
    3. The supplied dictionary
    4. Defaults from the Pydantic models

    Raises:
        ConfigurationError: If the merged configuration is invalid
    """
    nested = _as_nested(config or {})

    if use_env:
        env_overrides = _load_env_overrides()
        if env_overrides:
            nested = _deep_merge(nested, transform_flat_to_nested(env_overrides))

    if overrides:
        nested = _deep_merge(nested, _as_nested(overrides))

    try:
        return cls.model_validate(nested)
    except ValidationError as e:
        raise ConfigurationError(_format_validation_error(e)) from e


def from_file_factory(
    cls: type,
    path: Path,
    overrides: Optional[Dict[str, Any]] = None,
    *,
    use_env: bool = True,
) -> 'SizespecConfig':
    """
    Load configuration from a YAML file.

    Args:
        cls: SizespecConfig class
        path: Path to configuration YAML file
        overrides: Dictionary of CLI/programmatic overrides
        use_env: Whether to load environment variables (default: True)

    Returns:
        Validated SizespecConfig instance

    Raises:
        ConfigurationError: If the file cannot be parsed or the configuration is invalid
        FileNotFoundError: If config file is missing
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {path}")

    try:
        with open(path, "r") as f:
            file_config = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Could not parse configuration file {path}: {e}") from e

    if not isinstance(file_config, dict):
        raise ConfigurationError(f"Configuration file {path} must contain a mapping")

    return from_dict_factory(cls, file_config, overrides, use_env=use_env)
