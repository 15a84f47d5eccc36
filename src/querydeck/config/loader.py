# src/querydeck/config/loader.py
"""
Settings resolution.

Priority: explicit path > QUERYDECK_CONFIG > ./querydeck.yml > built-in defaults,
then QUERYDECK_* environment overrides on top.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import ValidationError

from querydeck.config.models import QueryDeckSettings

DEFAULT_CONFIG_FILE = "querydeck.yml"

# env var -> (section, key); section None means top level
_ENV_OVERRIDES = {
    "QUERYDECK_DETECTION_MODE": ("detection", "mode"),
    "QUERYDECK_DEFAULT_ENGINE": ("detection", "default_engine"),
    "QUERYDECK_CHUNK_SIZE": ("execution", "chunk_size"),
    "QUERYDECK_CACHE_PATH": ("cache", "path"),
    "QUERYDECK_CACHE_ENABLED": ("cache", "enabled"),
    "QUERYDECK_ACTIVE_CONNECTOR": (None, "active_connector"),
    "QUERYDECK_LOG_LEVEL": (None, "log_level"),
}


def _find_config_file(path: Optional[str]) -> Optional[Path]:
    if path:
        p = Path(path)
        if not p.exists():
            raise FileNotFoundError(f"Config file not found: {path}")
        return p
    env_path = os.getenv("QUERYDECK_CONFIG")
    if env_path:
        p = Path(env_path)
        if not p.exists():
            raise FileNotFoundError(
                f"Config file not found: {env_path}\n\n"
                "QUERYDECK_CONFIG points to a missing file. Unset it or fix the path:\n"
                "  export QUERYDECK_CONFIG=./querydeck.yml"
            )
        return p
    local = Path.cwd() / DEFAULT_CONFIG_FILE
    return local if local.exists() else None


def _apply_env_overrides(raw: Dict[str, Any]) -> Dict[str, Any]:
    for env_name, (section, key) in _ENV_OVERRIDES.items():
        value = os.getenv(env_name)
        if value is None or value == "":
            continue
        if section is None:
            raw[key] = value
        else:
            raw[section] = raw.get(section) or {}
            raw[section][key] = value
    return raw


def load_settings(path: Optional[str] = None) -> QueryDeckSettings:
    """
    Load settings from YAML plus environment overrides.

    Raises:
        FileNotFoundError: explicit or QUERYDECK_CONFIG path does not exist.
        ValueError: the file is not YAML, not a mapping, or fails validation.
    """
    raw: Dict[str, Any] = {}
    cfg_file = _find_config_file(path)
    if cfg_file is not None:
        try:
            loaded = yaml.safe_load(cfg_file.read_text(encoding="utf-8"))
        except yaml.YAMLError as e:
            raise ValueError(f"Config file {cfg_file} is not valid YAML:\n{e}") from e
        if loaded is None:
            loaded = {}
        if not isinstance(loaded, dict):
            raise ValueError(f"Config file {cfg_file} must contain a mapping at the top level.")
        # An empty `section:` means defaults for that section
        raw = {k: v for k, v in loaded.items() if v is not None}

    raw = _apply_env_overrides(raw)

    try:
        return QueryDeckSettings.model_validate(raw)
    except ValidationError as e:
        source = str(cfg_file) if cfg_file else "environment"
        raise ValueError(f"Invalid querydeck configuration ({source}):\n{e}") from e
