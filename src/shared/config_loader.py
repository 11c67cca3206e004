"""Loading YAML configuration files."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml

log = logging.getLogger(__name__)


def load_yaml(path: str | Path) -> dict[str, Any]:
    """Read a YAML file and return its top-level mapping.

    Args:
        path: Path to the file.

    Returns:
        File contents as a dict (empty dict for an empty file).

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the top level is not a mapping.
    """
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Config not found: {p}")
    with p.open("r", encoding="utf-8") as fh:
        data = yaml.safe_load(fh)
    if data is not None and not isinstance(data, dict):
        raise ValueError(f"Config {p} must contain a mapping, got {type(data).__name__}")
    log.debug("Loaded config %s (%d top-level keys)", p.name, len(data or {}))
    return data or {}


def load_optional_yaml(path: str | Path) -> dict[str, Any]:
    """Like :func:`load_yaml` but a missing file yields ``{}``."""
    p = Path(path)
    if not p.exists():
        log.info("Config %s not found — using built-in defaults", p)
        return {}
    return load_yaml(p)
