"""
Backup export, validation and restore.

Restore is two-phase:

1) normalize_backup(raw) checks structure and cleans entries. Any error means
   the import is refused and nothing is touched. Warnings (oversized file,
   non-string names, unusable trips, newer schema) let it proceed with the
   offending entries skipped.
2) reconcile(state, payload, mode) applies the validated payload:
   - replace: trips/areas/dealers/settings swapped wholesale.
   - merge: imported trips appended unless their composite key is already
     present or they likely duplicate a trip already in the target (including
     ones appended earlier in this same import). Names appended when their
     canonical key is new. Settings only fill keys the target lacks.
   The next collections are built first and assigned together at the end.

Backup JSON layout (legacy keys `schema` / `version` still written):
{app, appName, schema, schemaVersion, version, appVersion, exportedAt,
 data: {trips, areas, dealers, settings}}
"""

import datetime as dt
import json
import os
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError

from harvestlog.models.schemas import (
    APP_NAME,
    APP_VERSION,
    SCHEMA_VERSION,
    AppState,
    BackupValidation,
    ReconcileSummary,
    TripRecord,
    ValidatedPayload,
    new_trip_id,
)
from harvestlog.services.duplicates import composite_key, likely_duplicate
from harvestlog.services.normalize import canonical_key, unique_by_key
from harvestlog.services.store import save_state
from harvestlog.util.config import duplicate_tolerance, load_config
from harvestlog.util.logger import get_logger

logger = get_logger("backup")

BACKUP_PREFIX = "shellfish_backup"


class BackupReadError(Exception):
    """The chosen backup could not be read or is not JSON."""


class BackupValidationError(Exception):
    """Structural problems; the import was refused before any mutation."""

    def __init__(self, errors: List[str], warnings: Optional[List[str]] = None):
        super().__init__("; ".join(errors))
        self.errors = list(errors)
        self.warnings = list(warnings or [])


# ---------- export ----------

def build_backup_payload(state: AppState, exported_at: Optional[str] = None) -> Dict[str, Any]:
    data = state.to_dict()
    return {
        "app": APP_NAME,
        "appName": APP_NAME,
        "schema": SCHEMA_VERSION,
        "schemaVersion": SCHEMA_VERSION,
        "version": APP_VERSION,
        "appVersion": APP_VERSION,
        "exportedAt": exported_at or dt.datetime.now(dt.timezone.utc).isoformat(),
        "data": {
            "trips": data["trips"],
            "areas": data["areas"],
            "dealers": data["dealers"],
            "settings": data["settings"],
        },
    }


def backup_filename(prefix: str = BACKUP_PREFIX, now: Optional[dt.datetime] = None) -> str:
    """`<prefix>_YYYY-MM-DD_HHMM.json` in local time."""
    now = now or dt.datetime.now()
    return f"{prefix}_{now:%Y-%m-%d}_{now:%H%M}.json"


def write_backup(payload: Dict[str, Any], directory: str, prefix: str = BACKUP_PREFIX) -> str:
    os.makedirs(directory, exist_ok=True)
    path = os.path.join(directory, backup_filename(prefix))
    with open(path, "w", encoding="utf-8") as f:
        json.dump(payload, f, indent=2, ensure_ascii=False)
    logger.info(f"Wrote backup to {path}")
    return path


def needs_safety_export(state: AppState) -> bool:
    """Replacing a non-empty store should offer a safety export first."""
    return state.has_data()


# ---------- read + validate ----------

def load_backup_text(text: str) -> Any:
    try:
        return json.loads(text)
    except (TypeError, json.JSONDecodeError) as e:
        raise BackupReadError(f"Backup is not valid JSON: {e}") from e


def read_backup_file(path: str) -> Any:
    try:
        with open(path, "r", encoding="utf-8") as f:
            text = f.read()
    except (OSError, UnicodeDecodeError) as e:
        raise BackupReadError(f"Failed to read backup file: {e}") from e
    return load_backup_text(text)


def _clean_names(entries: List[Any], what: str, warnings: List[str]) -> List[str]:
    if any(not isinstance(e, str) for e in entries):
        warnings.append(f"Some {what} were not strings and will be skipped")
    return [e.strip() for e in entries if isinstance(e, str) and e.strip()]


def _clean_trips(entries: List[Any], warnings: List[str]):
    trips = []
    skipped = 0
    for e in entries:
        if not isinstance(e, dict):
            skipped += 1
            continue
        try:
            trip = TripRecord.model_validate(e)
        except ValidationError:
            skipped += 1
            continue
        if not trip.is_committable:
            skipped += 1
            continue
        trips.append(trip)
    if skipped:
        warnings.append(f"{skipped} trip(s) were missing a valid date, pounds or amount and will be skipped")
    return trips, skipped


def normalize_backup(raw: Any) -> BackupValidation:
    if not isinstance(raw, dict):
        return BackupValidation(errors=["Backup file is not a JSON object"])

    data = raw.get("data") if isinstance(raw.get("data"), dict) else raw
    errors: List[str] = []
    warnings: List[str] = []

    for name in ("trips", "areas", "dealers"):
        if name not in data:
            errors.append(f"Backup is missing {name}")
        elif not isinstance(data[name], list):
            errors.append(f"Backup {name} must be a list")
    settings = data.get("settings")
    if settings is not None and not isinstance(settings, dict):
        errors.append("Backup settings must be an object")
    if errors:
        return BackupValidation(errors=errors)

    try:
        schema_version = int(raw.get("schemaVersion", raw.get("schema", 0)) or 0)
    except (TypeError, ValueError):
        schema_version = 0
    if schema_version > SCHEMA_VERSION:
        warnings.append(f"Backup schema {schema_version} is newer than supported ({SCHEMA_VERSION})")

    limit = int(load_config().get("backup", {}).get("max_trips_warning", 20000))
    if len(data["trips"]) > limit:
        warnings.append(f"Large backup ({len(data['trips'])} trips) may be slow to import")

    trips, skipped = _clean_trips(data["trips"], warnings)
    payload = ValidatedPayload(
        schema_version=schema_version,
        app_version=str(raw.get("appVersion", raw.get("version", "")) or ""),
        exported_at=str(raw.get("exportedAt") or ""),
        trips=trips,
        areas=_clean_names(data["areas"], "areas", warnings),
        dealers=_clean_names(data["dealers"], "dealers", warnings),
        settings=settings or {},
        trips_skipped=skipped,
    )
    return BackupValidation(warnings=warnings, payload=payload)


# ---------- apply ----------

def _merge_names(current: List[str], incoming: List[str]) -> List[str]:
    keys = {canonical_key(n) for n in current}
    out = list(current)
    for n in incoming:
        k = canonical_key(n)
        if k and k not in keys:
            keys.add(k)
            out.append(n)
    return out


def reconcile(state: AppState, payload: ValidatedPayload, mode: str,
              warnings: Optional[List[str]] = None) -> ReconcileSummary:
    if mode not in ("replace", "merge"):
        raise ValueError(f"unknown restore mode: {mode!r}")
    replace = mode == "replace"
    tolerance = duplicate_tolerance()

    next_trips: List[TripRecord] = [] if replace else list(state.trips)
    seen_keys = {composite_key(t) for t in next_trips}
    seen_ids = {t.id for t in next_trips}
    added = 0
    for incoming in payload.trips:
        trip = incoming.model_copy()
        key = composite_key(trip)
        if not replace:
            if key in seen_keys or any(likely_duplicate(x, trip, tolerance) for x in next_trips):
                continue
        if trip.id in seen_ids:
            trip.id = new_trip_id()
        next_trips.append(trip)
        seen_keys.add(key)
        seen_ids.add(trip.id)
        added += 1

    if replace:
        next_areas = unique_by_key(payload.areas)
        next_dealers = unique_by_key(payload.dealers)
        next_settings = dict(payload.settings)
    else:
        next_areas = _merge_names(state.areas, payload.areas)
        next_dealers = _merge_names(state.dealers, payload.dealers)
        next_settings = dict(state.settings)
        for k, v in payload.settings.items():
            next_settings.setdefault(k, v)

    state.trips = next_trips
    state.areas = next_areas
    state.dealers = next_dealers
    state.settings = next_settings

    summary = ReconcileSummary(
        mode=mode,
        trips_in_file=len(payload.trips),
        trips_added=added,
        areas_in_file=len(payload.areas),
        dealers_in_file=len(payload.dealers),
        warnings=list(warnings or []),
    )
    logger.info(summary.message())
    return summary


def import_backup(state: AppState, text: str, mode: str, safety_dir: Optional[str] = None,
                  save: Callable[[AppState], None] = save_state) -> ReconcileSummary:
    """
    Full restore: parse, validate, optionally write a safety export of the
    current state (replace mode, non-empty store, `safety_dir` given),
    reconcile, persist.

    Raises BackupReadError / BackupValidationError before anything changes.
    """
    result = normalize_backup(load_backup_text(text))
    if not result.ok:
        logger.warning(f"Backup refused: {result.errors}")
        raise BackupValidationError(result.errors, result.warnings)

    if mode == "replace" and safety_dir and needs_safety_export(state):
        prefix = load_config().get("backup", {}).get("safety_prefix", "shellfish_safety_before_restore")
        write_backup(build_backup_payload(state), safety_dir, prefix)

    summary = reconcile(state, result.payload, mode, result.warnings)
    save(state)
    return summary
