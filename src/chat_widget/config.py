"""Configuration loading utilities for the chat widget.

This module handles layered configuration:
1. Explicit path argument (highest precedence)
2. Environment variable CHAT_WIDGET_CONFIG
3. Fallback to "config/default.yaml"

It also supports optional overrides from environment variables with prefix
``CHAT_WIDGET__`` (e.g., CHAT_WIDGET__TIMING__BASE_DELAY_MS=100).
"""

from __future__ import annotations

import copy
import logging
import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from .storage import HISTORY_KEY, THEME_KEY

logger = logging.getLogger(__name__)

ENV_PATH = "CHAT_WIDGET_CONFIG"
ENV_PREFIX = "CHAT_WIDGET__"

DEFAULTS: Dict[str, Any] = {
    "storage": {
        "backend": "file",
        "data_dir": "data",
        "history_key": HISTORY_KEY,
        "theme_key": THEME_KEY,
        "fsync": True,
    },
    "timing": {
        "base_delay_ms": 600,
        "per_char_ms": 6,
        "min_variable_ms": 400,
        "max_variable_ms": 1400,
        "delivered_at_ms": 600,
        "read_at_ms": 900,
    },
    "assistant": {
        "name": "Pidima",
        "welcome_text": "Hi! I'm the Pidima Assistant. Ask me about your docs or say hello 👋",
    },
    "events": {"max_events": 500},
    "server": {"cors_origins": ["*"]},
}


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge ``override`` into a copy of ``base``."""
    out = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(out.get(key), dict):
            out[key] = _merge(out[key], value)
        else:
            out[key] = value
    return out


def coerce_scalar(value: str) -> Any:
    """Best-effort ``"true"``/``"3"``/``"0.5"`` -> bool/int/float; other text stays a string."""
    lowered = value.strip().lower()
    if lowered in {"true", "false"}:
        return lowered == "true"
    try:
        return int(value)
    except ValueError:
        pass
    if "." in value:
        try:
            return float(value)
        except ValueError:
            pass
    return value


def _apply_env_overrides(
    cfg: Dict[str, Any],
    environ: Optional[Mapping[str, str]] = None,
    prefix: str = ENV_PREFIX,
) -> Dict[str, Any]:
    """Fold ``<prefix>SECTION__KEY=value`` variables into ``cfg`` in place."""
    environ = os.environ if environ is None else environ
    for name, raw in environ.items():
        if not name.startswith(prefix):
            continue
        *sections, leaf = name[len(prefix):].lower().split("__")
        node = cfg
        for section in sections:
            if not isinstance(node.get(section), dict):
                node[section] = {}
            node = node[section]
        node[leaf] = coerce_scalar(raw)
    return cfg


def load_config(path: str | None = None) -> Dict[str, Any]:
    """Load YAML configuration for the chat widget.

    Parameters
    ----------
    path : str | None
        Optional path to a configuration file. If not provided, the
        environment variable ``CHAT_WIDGET_CONFIG`` is consulted. As a
        last resort ``config/default.yaml`` is used.

    Returns
    -------
    Dict[str, Any]
        Built-in defaults, overlaid with the file's contents, with
        environment overrides applied last.
    """
    if path is None:
        path = os.environ.get(ENV_PATH, "config/default.yaml")

    path_obj = Path(path)
    if not path_obj.exists():
        logger.warning("Config file not found at %s. Using defaults.", path_obj)
        return _apply_env_overrides(copy.deepcopy(DEFAULTS))

    with path_obj.open("r", encoding="utf-8") as f:
        try:
            loaded = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise RuntimeError(f"Failed to parse config file {path_obj}: {e}")

    if not isinstance(loaded, dict):
        raise RuntimeError(f"Invalid config format in {path_obj}, expected dict.")

    return _apply_env_overrides(_merge(DEFAULTS, loaded))
