"""App configuration: text backend connection, media endpoints, reader timings.

Stored as {data_dir}/config.json. get_config() returns the defaults merged
with stored values and then with environment overrides; update_config()
merges a partial update and persists it.

Environment overrides (read on every get_config call):

    LLM_PROVIDER_URL    llm.provider_url
    LLM_API_KEY         llm.api_key
    IMAGE_PROVIDER_URL  image.endpoint_url
    AUDIO_PROVIDER_URL  audio.endpoint_url
"""

from __future__ import annotations

import copy
import json
import os
from pathlib import Path
from typing import Any

DEFAULT_DATA_DIR = Path(__file__).parent.parent / "data"

_CONFIG_DEFAULTS: dict[str, Any] = {
    "llm": {
        "provider_url": "http://localhost:5001",
        "api_key": "",
        "provider_format": "koboldcpp",
        "model": "",
        "timeout": 120.0,
    },
    "image": {"endpoint_url": "", "api_key": ""},
    "audio": {"endpoint_url": "", "api_key": ""},
    "reader": {
        "ending_delay": 2.0,
        "refetch_attempts": 5,
        "refetch_interval": 1.0,
        "burst_interval": 1.0,
        "burst_duration": 5.0,
        "background_interval": 3.0,
    },
}

_ENV_OVERRIDES = {
    "LLM_PROVIDER_URL": ("llm", "provider_url"),
    "LLM_API_KEY": ("llm", "api_key"),
    "IMAGE_PROVIDER_URL": ("image", "endpoint_url"),
    "AUDIO_PROVIDER_URL": ("audio", "endpoint_url"),
}


def resolve_data_dir(data_dir: Path | None = None) -> Path:
    """Explicit argument, then DATA_DIR, then ./data next to the package."""
    if data_dir is not None:
        return data_dir
    return Path(os.getenv("DATA_DIR", str(DEFAULT_DATA_DIR)))


def _config_path(data_dir: Path) -> Path:
    return data_dir / "config.json"


def _merge(config: dict[str, Any], fields: dict[str, Any]) -> None:
    for section, values in fields.items():
        if section in config and isinstance(values, dict):
            config[section].update(
                {k: v for k, v in values.items() if k in _CONFIG_DEFAULTS[section]}
            )


def _stored(data_dir: Path) -> dict[str, Any]:
    config = copy.deepcopy(_CONFIG_DEFAULTS)
    path = _config_path(data_dir)
    if path.is_file():
        _merge(config, json.loads(path.read_text()))
    return config


def get_config(data_dir: Path) -> dict[str, Any]:
    """Read config, returning defaults merged with stored values and env overrides."""
    config = _stored(data_dir)
    for var, (section, key) in _ENV_OVERRIDES.items():
        value = os.getenv(var)
        if value:
            config[section][key] = value
    return config


def update_config(data_dir: Path, fields: dict[str, Any]) -> dict[str, Any]:
    """Merge fields into the stored config and persist. Returns the full config."""
    config = _stored(data_dir)
    _merge(config, fields)
    data_dir.mkdir(parents=True, exist_ok=True)
    _config_path(data_dir).write_text(json.dumps(config, indent=2))
    return get_config(data_dir)
