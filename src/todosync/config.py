"""YAML configuration for the todosync command line and scanner."""

from __future__ import annotations

import copy
from pathlib import Path
from typing import Any, Dict, List, Mapping

import yaml
from pydantic import ValidationError

from .models import ScannerConfig

DEFAULT_CONFIG_NAME = "todosync.yaml"

DEFAULT_CONFIG_TEMPLATE: Dict[str, Any] = {
    "workspace": {
        "folders": ["."],
    },
    "todos": {
        "include": [
            "**/*.py",
            "**/*.{js,jsx,ts,tsx}",
            "**/*.{c,h,cpp,hpp,cs,go,rs,java,kt,swift}",
            "**/*.{rb,php,sh,yaml,yml,toml}",
            "**/*.{html,md,vue,svelte}",
        ],
        "exclude": [
            "**/.git/**",
            "**/node_modules/**",
            "**/.venv/**",
            "**/venv/**",
            "**/__pycache__/**",
            "**/dist/**",
            "**/build/**",
            "**/.todosync/**",
        ],
        "scan_on_save": True,
        "custom_patterns": [],
        "max_files": 1000,
        "batch_size": 20,
    },
    "paths": {
        "db_path": ".todosync/state.sqlite",
    },
}


class ConfigError(ValueError):
    """Raised when the configuration file is missing or malformed."""


def default_config() -> Dict[str, Any]:
    """Return a deep copy of the default configuration template."""
    return copy.deepcopy(DEFAULT_CONFIG_TEMPLATE)


def write_config(config_path: Path, config_data: Mapping[str, Any]) -> None:
    """Persist configuration data to disk with stable formatting."""
    config_path.parent.mkdir(parents=True, exist_ok=True)
    with config_path.open("w", encoding="utf-8") as handle:
        yaml.safe_dump(dict(config_data), handle, sort_keys=False)


def _merge(defaults: Dict[str, Any], overrides: Mapping[str, Any]) -> Dict[str, Any]:
    merged = dict(defaults)
    for key, value in overrides.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(config_path: Path) -> Dict[str, Any]:
    """Read ``config_path`` and overlay it on the defaults template."""
    if not config_path.exists():
        raise ConfigError(f"Config file not found: {config_path}")
    try:
        with config_path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
    except yaml.YAMLError as error:
        raise ConfigError(f"Failed to parse config: {error}") from error
    if not isinstance(data, Mapping):
        raise ConfigError("Configuration must be a mapping at the top level.")
    return _merge(default_config(), data)


def scanner_config(config: Mapping[str, Any]) -> ScannerConfig:
    section = config.get("todos") or {}
    if not isinstance(section, Mapping):
        raise ConfigError("The 'todos' section must be a mapping.")
    try:
        return ScannerConfig.model_validate(dict(section))
    except ValidationError as error:
        raise ConfigError(f"Invalid 'todos' settings: {error}") from error


def workspace_folders(config: Mapping[str, Any], config_path: Path) -> List[Path]:
    """Resolve workspace folders relative to the directory holding the config file."""
    section = config.get("workspace") or {}
    raw = section.get("folders") if isinstance(section, Mapping) else None
    if not isinstance(raw, list):
        raw = ["."]
    base_path = config_path.resolve().parent
    folders: List[Path] = []
    for entry in raw:
        if not isinstance(entry, str) or not entry.strip():
            continue
        folder = Path(entry)
        if not folder.is_absolute():
            folder = base_path / folder
        folders.append(folder.resolve())
    return folders
