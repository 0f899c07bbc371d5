"""
Durable state: one JSON record in a sqlite key/value table.

- The record lives under config `store.state_key` (default `shellfish-state`).
- Builds that wrote versioned keys (`shellfish-v1.4.2`, ...) are migrated on
  first load: the highest version is copied forward, stamped with
  settings.migratedFrom / migratedAt. The old key is left in place.
- A corrupt record loads as an empty state with a warning, never a crash.
"""

import datetime as dt
import json
import os
import re
import sqlite3
from contextlib import contextmanager
from typing import Any, Dict, Iterable, List, Optional

from pydantic import ValidationError

from harvestlog.models.schemas import SCHEMA_VERSION, AppState, TripRecord
from harvestlog.services.normalize import unique_by_key
from harvestlog.util.config import load_config
from harvestlog.util.logger import get_logger

logger = get_logger("store")

LEGACY_KEYS = ["shellfish-v1.5.0", "shellfish-v1.4.2"]
_SEMVER_KEY = re.compile(r"^shellfish-v(\d+)\.(\d+)\.(\d+)$")


def _get_db_path() -> str:
    """Read per call so tests can monkeypatch HARVESTLOG_STATE_DB."""
    return os.getenv("HARVESTLOG_STATE_DB", "harvestlog_state.db")


def _state_key() -> str:
    return str(load_config().get("store", {}).get("state_key") or "shellfish-state")


@contextmanager
def _conn():
    con = sqlite3.connect(_get_db_path())
    try:
        yield con
        con.commit()
    finally:
        con.close()


def init_db():
    with _conn() as con:
        con.execute(
            """
            CREATE TABLE IF NOT EXISTS kv (
              key TEXT PRIMARY KEY,
              value_json TEXT,
              saved_at TEXT
            );
            """
        )


def _get(key: str) -> Optional[str]:
    with _conn() as con:
        cur = con.execute("SELECT value_json FROM kv WHERE key=?", (key,))
        row = cur.fetchone()
        return row[0] if row else None


def _put(key: str, value_json: str):
    with _conn() as con:
        con.execute(
            "INSERT OR REPLACE INTO kv(key, value_json, saved_at) VALUES (?,?,?)",
            (key, value_json, dt.datetime.now(dt.timezone.utc).isoformat()),
        )


def _keys() -> List[str]:
    with _conn() as con:
        return [r[0] for r in con.execute("SELECT key FROM kv")]


def pick_legacy_key(keys: Iterable[str]) -> Optional[str]:
    """Highest `shellfish-vX.Y.Z` present, else the first known legacy key present."""
    keys = list(keys)
    versioned = []
    for k in keys:
        m = _SEMVER_KEY.match(k)
        if m:
            versioned.append((tuple(int(g) for g in m.groups()), k))
    if versioned:
        return max(versioned)[1]
    for k in LEGACY_KEYS:
        if k in keys:
            return k
    return None


def migrate_legacy_state() -> Optional[str]:
    """Copy the newest legacy record to the current key if it is unset. Returns the source key."""
    current = _state_key()
    if _get(current) is not None:
        return None
    legacy = pick_legacy_key(k for k in _keys() if k != current)
    if not legacy:
        return None
    try:
        raw = json.loads(_get(legacy) or "")
    except json.JSONDecodeError:
        logger.warning(f"Legacy record {legacy} is not valid JSON; skipping migration")
        return None
    if not isinstance(raw, dict):
        logger.warning(f"Legacy record {legacy} is not an object; skipping migration")
        return None

    settings = raw.get("settings") if isinstance(raw.get("settings"), dict) else {}
    settings["migratedFrom"] = legacy
    settings["migratedAt"] = dt.datetime.now(dt.timezone.utc).isoformat()
    raw["settings"] = settings
    _put(current, json.dumps(raw, ensure_ascii=False))
    logger.info(f"Migrated state from {legacy} to {current}")
    return legacy


def state_from_dict(raw: Dict[str, Any]) -> AppState:
    """Tolerant load: bad trips are dropped with a warning, name lists deduped."""
    trips = []
    for i, t in enumerate(raw.get("trips") or []):
        try:
            trips.append(TripRecord.model_validate(t))
        except ValidationError as e:
            logger.warning(f"Dropping stored trip #{i}: {e.error_count()} validation error(s)")
    settings = raw.get("settings")
    return AppState(
        trips=trips,
        areas=unique_by_key(raw.get("areas") or []),
        dealers=unique_by_key(raw.get("dealers") or []),
        settings=settings if isinstance(settings, dict) else {},
        view=str(raw.get("view") or "home"),
        filter=str(raw.get("filter") or "YTD"),
    )


def load_state() -> AppState:
    init_db()
    migrate_legacy_state()
    blob = _get(_state_key())
    if not blob:
        return AppState()
    try:
        raw = json.loads(blob)
    except json.JSONDecodeError:
        logger.warning("Stored state is not valid JSON; starting empty")
        return AppState()
    if not isinstance(raw, dict):
        logger.warning("Stored state is not an object; starting empty")
        return AppState()
    state = state_from_dict(raw)
    logger.info(f"Loaded state: {len(state.trips)} trips, {len(state.areas)} areas, {len(state.dealers)} dealers")
    return state


def save_state(state: AppState):
    init_db()
    record = {"schemaVersion": SCHEMA_VERSION, **state.to_dict()}
    _put(_state_key(), json.dumps(record, ensure_ascii=False))
    logger.debug(f"Saved state with {len(state.trips)} trips")


def erase_all():
    """Delete the current record and every legacy record."""
    init_db()
    current = _state_key()
    doomed = [k for k in _keys() if k == current or k in LEGACY_KEYS or _SEMVER_KEY.match(k)]
    with _conn() as con:
        con.executemany("DELETE FROM kv WHERE key=?", [(k,) for k in doomed])
    logger.info(f"Erased {len(doomed)} stored record(s)")
