"""
Runtime settings from YAML, shallow-merged over DEFAULTS.

Path: HARVESTLOG_CONFIG if set, else config/harvestlog.yml at the repo root.
A missing file means defaults; the file is re-read on every call so tests can
point HARVESTLOG_CONFIG somewhere else with monkeypatch.
"""

import os
from typing import Any, Dict

import yaml

from harvestlog.models.schemas import DuplicateTolerance
from harvestlog.util.logger import get_logger

DEFAULTS: Dict[str, Any] = {
    "duplicates": {"pounds_tolerance": 0.25, "amount_tolerance": 2.00},
    "backup": {"max_trips_warning": 20000, "safety_prefix": "shellfish_safety_before_restore"},
    "store": {"state_key": "shellfish-state"},
}


def _config_path() -> str:
    default = os.path.join(os.path.dirname(os.path.dirname(os.path.dirname(__file__))), "config", "harvestlog.yml")
    return os.getenv("HARVESTLOG_CONFIG", default)


def load_config() -> Dict[str, Any]:
    path = _config_path()
    try:
        with open(path, "r", encoding="utf-8") as f:
            cfg = yaml.safe_load(f) or {}
    except FileNotFoundError:
        return {k: dict(v) for k, v in DEFAULTS.items()}

    if not isinstance(cfg, dict):
        get_logger().warning(f"Ignoring config {path}: top level is not a mapping")
        cfg = {}

    merged = {k: dict(v) for k, v in DEFAULTS.items()}
    for k, v in cfg.items():
        if isinstance(v, dict) and isinstance(merged.get(k), dict):
            merged[k].update(v)
        else:
            merged[k] = v
    return merged


def duplicate_tolerance(cfg: Dict[str, Any] = None) -> DuplicateTolerance:
    section = (cfg or load_config()).get("duplicates", {})
    return DuplicateTolerance(
        pounds=float(section.get("pounds_tolerance", 0.25)),
        amount=float(section.get("amount_tolerance", 2.00)),
    )
