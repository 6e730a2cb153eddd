"""YAML configuration file support with environment variable overrides.

# ─── CONFIGURATION HIERARCHY ──────────────────────────────────────────
#
# Configuration is loaded in layers (later layers override earlier):
#
#   1. config/config.yaml  -- Static defaults checked into the deployment
#   2. .env file           -- Local developer overrides (not committed)
#   3. Environment vars    -- Set at deploy time
#
# ``settings_from_config`` builds a Settings object from the YAML file and
# lets values pydantic-settings resolved from the environment win, so
# ``--config`` on the CLI never hides an exported variable.
#
# The _deep_merge helper does recursive dict merging:
#   base = {"chunking": {"max_chunk_size": 800}}
#   overrides = {"chunking": {"overlap_size": 40}}
#   result = {"chunking": {"max_chunk_size": 800, "overlap_size": 40}}
# ──────────────────────────────────────────────────────────────────────
"""

import copy
from pathlib import Path

import yaml

from coursekb.config.settings import Settings


def settings_from_config(path: str) -> Settings:
    """Build :class:`Settings` from a flat or sectioned YAML file.

    Sections (``chunking:``, ``vector_store:`` ...) are flattened and unknown
    keys ignored.  Init kwargs outrank the environment in pydantic-settings,
    so values that came from env vars or .env are merged back over the YAML
    before construction.
    """
    raw = _read_yaml(path)
    flat: dict = {}
    for key, value in raw.items():
        if isinstance(value, dict):
            flat.update(value)
        else:
            flat[key] = value
    known = {k: v for k, v in flat.items() if k in Settings.model_fields}
    env_settings = Settings()
    explicit_env = env_settings.model_dump(exclude_unset=True)
    _deep_merge(known, explicit_env)
    return Settings(**known)


def _read_yaml(path: str) -> dict:
    config_path = Path(path)
    if not config_path.exists():
        return {}
    with open(config_path) as f:
        return yaml.safe_load(f) or {}


def _deep_merge(base: dict, overrides: dict) -> None:
    """Recursively merge overrides into base dict, mutating base in place."""
    for key, value in overrides.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value


def deep_merged(base: dict, overrides: dict) -> dict:
    """Return a new dict with *overrides* deep-merged over a copy of *base*."""
    merged = copy.deepcopy(base)
    _deep_merge(merged, overrides)
    return merged
