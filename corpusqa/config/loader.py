"""Configuration loading utilities."""

import json
import os
from pathlib import Path
from typing import Any

from corpusqa.config.schema import Config
from corpusqa.utils.helpers import get_data_path

# Flat keys from early config files -> (section, key) in the current schema
LEGACY_FLAT_KEYS: dict[str, tuple[str, str]] = {
    "chunkSize": ("chunking", "chunkSize"),
    "chunkOverlap": ("chunking", "chunkOverlap"),
    "topK": ("retrieval", "topK"),
    "namespace": ("vectorIndex", "namespace"),
    "embeddingModel": ("embedding", "model"),
    "temperature": ("generation", "temperature"),
}


def get_config_path() -> Path:
    """Get the default configuration file path."""
    return get_data_path() / "config.json"


def load_config(config_path: Path | None = None) -> Config:
    """
    Load configuration from file or create default.

    Args:
        config_path: Optional path to config file. Uses default if not provided.

    Returns:
        Loaded configuration object.
    """
    path = config_path or get_config_path()

    if path.exists():
        try:
            with open(path) as f:
                data = json.load(f)
            if not isinstance(data, dict):
                raise ValueError("config root must be a JSON object")
            data = _migrate_config(data)
            cfg = Config(**convert_keys(data))
            _apply_config_env_vars(cfg)
            return cfg
        except (json.JSONDecodeError, ValueError) as e:
            raise ValueError(
                f"Failed to load config from {path}: {e}. "
                "Fix the file or remove it to regenerate defaults."
            ) from e

    return Config()


def _apply_config_env_vars(cfg: Config) -> None:
    """Apply config.env.vars to os.environ with setdefault (do not overwrite existing)."""
    if not cfg.env or not cfg.env.vars:
        return
    for key, value in cfg.env.vars.items():
        if isinstance(key, str) and isinstance(value, str):
            os.environ.setdefault(key, value)


def save_config(config: Config, config_path: Path | None = None) -> None:
    """
    Save configuration to file.

    Args:
        config: Configuration to save.
        config_path: Optional path to save to. Uses default if not provided.
    """
    path = config_path or get_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)

    data = config.model_dump()
    data = convert_to_camel(data)

    with open(path, "w") as f:
        json.dump(data, f, indent=2)

def _migrate_config(data: dict) -> dict:
    """Move legacy flat keys into their sections (section value wins when both exist)."""
    for flat_key, (section, key) in LEGACY_FLAT_KEYS.items():
        if flat_key not in data:
            continue
        value = data.pop(flat_key)
        target = data.setdefault(section, {})
        if isinstance(target, dict) and key not in target:
            target[key] = value

    env_src = data.get("env")
    if isinstance(env_src, dict):
        vars_merged: dict[str, str] = dict(env_src.get("vars") or {})
        for k, v in env_src.items():
            if k != "vars" and isinstance(v, str):
                vars_merged[k] = v
        data["env"] = {"vars": vars_merged}
    return data


# Dict-valued fields whose keys are data (header names, env var names), not config keys
_VERBATIM_KEYS = {"vars", "headers", "extra_headers", "extraHeaders"}


def convert_keys(data: Any) -> Any:
    """Convert camelCase keys to snake_case for Pydantic.
    Keys under env.vars and header maps are preserved."""
    if isinstance(data, dict):
        result: dict[str, Any] = {}
        for k, v in data.items():
            new_k = camel_to_snake(k)
            if k in _VERBATIM_KEYS and isinstance(v, dict):
                result[new_k] = dict(v)
            else:
                result[new_k] = convert_keys(v)
        return result
    if isinstance(data, list):
        return [convert_keys(item) for item in data]
    return data


def convert_to_camel(data: Any) -> Any:
    """Convert snake_case keys to camelCase.
    Keys under env.vars and header maps are preserved."""
    if isinstance(data, dict):
        result: dict[str, Any] = {}
        for k, v in data.items():
            new_k = snake_to_camel(k)
            if k in _VERBATIM_KEYS and isinstance(v, dict):
                result[new_k] = dict(v)
            else:
                result[new_k] = convert_to_camel(v)
        return result
    if isinstance(data, list):
        return [convert_to_camel(item) for item in data]
    return data


def camel_to_snake(name: str) -> str:
    """Convert camelCase to snake_case."""
    result = []
    for i, char in enumerate(name):
        if char.isupper() and i > 0:
            result.append("_")
        result.append(char.lower())
    return "".join(result)


def snake_to_camel(name: str) -> str:
    """Convert snake_case to camelCase."""
    components = name.split("_")
    return components[0] + "".join(x.title() for x in components[1:])
