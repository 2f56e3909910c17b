"""YAML configuration loader with environment variable overrides.

Layers (later layers override earlier):

    1. config/config.yaml  -- static defaults checked into the repo
    2. .env file           -- local developer overrides
    3. Environment vars    -- set at deploy time

The upstream source list and the synthetic probe query live in YAML;
``UPSTREAM_SOURCES`` replaces the YAML list when it is set.
"""

from pathlib import Path

import yaml

from src.config.settings import Settings


def load_config(path: str = "config/config.yaml", settings: Settings | None = None) -> dict:
    """Load YAML config and merge environment-based Settings on top.

    Args:
        path: Path to the YAML configuration file.
        settings: Settings instance to merge; a fresh one is read if omitted.

    Returns:
        Fully resolved configuration dictionary.
    """
    config_path = Path(path)
    if config_path.exists():
        with open(config_path) as f:
            yaml_config = yaml.safe_load(f) or {}
    else:
        yaml_config = {}

    settings = settings or Settings()
    env_overrides: dict = {}
    if settings.upstream_sources:
        env_overrides["upstream"] = {"sources": list(settings.upstream_sources)}

    _deep_merge(yaml_config, env_overrides)
    return yaml_config


def _deep_merge(base: dict, overrides: dict) -> None:
    """Recursively merge overrides into base dict, mutating base in place."""
    for key, value in overrides.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
