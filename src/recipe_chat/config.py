"""YAML settings shared by the chat server, the recipe agent and the terminal client.

Sections: ``server`` (bind address, CORS), ``model`` (GGUF path and sampling),
``agent`` (system prompt) and ``client`` (server URL, timeout, history dir).
``RECIPE_CHAT_CONFIG`` picks the file; ``RECIPE_CHAT__<SECTION>__<KEY>``
variables override single keys, e.g. ``RECIPE_CHAT__CLIENT__BASE_URL``.
"""

from __future__ import annotations

import copy
import logging
import os
from pathlib import Path
from typing import Any, Dict

import yaml

logger = logging.getLogger(__name__)

ENV_PREFIX = "RECIPE_CHAT__"
CONFIG_ENV = "RECIPE_CHAT_CONFIG"
DEFAULT_CONFIG_PATH = "config/default.yaml"

DEFAULTS: Dict[str, Any] = {
    "server": {"host": "127.0.0.1", "port": 8000, "cors_origins": ["*"]},
    "model": {"model_path": "models/model.gguf", "n_ctx": 4096},
    "agent": {},
    "client": {
        "base_url": "http://127.0.0.1:8000",
        "timeout": 120.0,
        "data_dir": "data",
    },
}


def _coerce(value: str) -> Any:
    if value.lower() in {"true", "false"}:
        return value.lower() == "true"
    try:
        if "." in value:
            return float(value)
        return int(value)
    except ValueError:
        return value


def _apply_env_overrides(cfg: Dict[str, Any]) -> Dict[str, Any]:
    """Apply environment variable overrides with prefix RECIPE_CHAT__."""
    for key, value in os.environ.items():
        if not key.startswith(ENV_PREFIX):
            continue
        # e.g., RECIPE_CHAT__CLIENT__BASE_URL -> cfg["client"]["base_url"]
        parts = key[len(ENV_PREFIX):].lower().split("__")
        sub = cfg
        for p in parts[:-1]:
            if p not in sub or not isinstance(sub[p], dict):
                sub[p] = {}
            sub = sub[p]
        sub[parts[-1]] = _coerce(value)
    return cfg


def load_config(path: str | None = None) -> Dict[str, Any]:
    """Return the settings dict for ``path`` (or the env/default file).

    A missing file yields :data:`DEFAULTS`; malformed YAML or a non-mapping
    document raises :class:`RuntimeError`.
    """
    if path is None:
        path = os.environ.get(CONFIG_ENV, DEFAULT_CONFIG_PATH)

    path_obj = Path(path)
    if not path_obj.exists():
        logger.warning("Config file not found at %s. Using defaults.", path_obj)
        return _apply_env_overrides(copy.deepcopy(DEFAULTS))

    with path_obj.open("r", encoding="utf-8") as f:
        try:
            cfg = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise RuntimeError(f"Failed to parse config file {path_obj}: {e}")

    if not isinstance(cfg, dict):
        raise RuntimeError(f"Invalid config format in {path_obj}, expected dict.")

    return _apply_env_overrides(cfg)
