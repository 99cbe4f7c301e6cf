#!/usr/bin/env python3
from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict

_BASE_DIR = Path(__file__).resolve().parent
_CONFIG_DIR = _BASE_DIR / "config"
_CONFIG_PATH = _CONFIG_DIR / "sim_config.json"
_CATALOG_PATH = _CONFIG_DIR / "catalog.json"


def _load_json(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")
    with path.open("r", encoding="utf-8") as f:
        return json.load(f)


SIM_CONFIG: Dict[str, Any] = _load_json(_CONFIG_PATH)
# Action and skill tables; engines build their own mutable instances from this
CATALOG_CONFIG: Dict[str, Any] = _load_json(_CATALOG_PATH)
