"""
Trip and name-list mutations on AppState.

Every function mutates the given state in place and returns what happened;
none of them persist. Callers follow up with store.save_state(state).
"""

import datetime as dt
from typing import Any, Dict, List, Mapping, Optional, Tuple

from harvestlog.models.schemas import AppState, CommitResult, DuplicateTolerance, TripRecord
from harvestlog.services.duplicates import find_duplicate_trip
from harvestlog.services.normalize import (
    canonical_key,
    display_dealer_name,
    parse_date_text,
    parse_money,
    parse_number,
    to2,
    unique_by_key,
)
from harvestlog.util.config import duplicate_tolerance
from harvestlog.util.logger import get_logger

logger = get_logger("trips")


def prepare_trip(inputs: Mapping[str, Any],
                 existing: Optional[TripRecord] = None) -> Tuple[Optional[TripRecord], List[str]]:
    """
    Review-form strings -> TripRecord, or (None, names of the bad fields).

    When editing, fields the form does not carry (id, created_at, source,
    raw_text) come from `existing`.
    """
    harvest_date = parse_date_text(inputs.get("date"))
    dealer = display_dealer_name(str(inputs.get("dealer") or "").strip())
    pounds = parse_number(inputs.get("pounds"))
    amount = parse_money(inputs.get("amount"))
    area = str(inputs.get("area") or "").strip()

    errors = []
    if harvest_date is None:
        errors.append("Date")
    if not dealer:
        errors.append("Dealer")
    if not (pounds is not None and pounds > 0):
        errors.append("Pounds")
    if not (amount is not None and amount > 0):
        errors.append("Amount")
    if errors:
        return None, errors

    base: Dict[str, Any] = existing.model_dump() if existing else {
        "source": inputs.get("source") or "manual",
        "raw_text": inputs.get("raw_text") or None,
    }
    base.update(
        harvest_date=harvest_date,
        dealer=dealer,
        pounds=to2(pounds),
        amount=to2(amount),
        area=area,
    )
    return TripRecord.model_validate(base), []


def _find(state: AppState, trip_id: str) -> Optional[TripRecord]:
    return next((t for t in state.trips if t.id == trip_id), None)


def commit_trip(state: AppState, inputs: Mapping[str, Any], edit_id: Optional[str] = None,
                confirm_duplicate: bool = False,
                tolerance: Optional[DuplicateTolerance] = None) -> CommitResult:
    """Validate, duplicate-check, then append (or replace the edited record)."""
    existing = None
    if edit_id:
        existing = _find(state, edit_id)
        if existing is None:
            logger.warning(f"Edit target {edit_id} not found")
            return CommitResult(status="not_found")

    trip, errors = prepare_trip(inputs, existing)
    if trip is None:
        return CommitResult(status="invalid", errors=errors)

    dup = find_duplicate_trip(state.trips, trip, exclude_id=edit_id,
                              tolerance=tolerance or duplicate_tolerance())
    if dup is not None and not confirm_duplicate:
        logger.info(f"Trip on {trip.harvest_date} for {trip.dealer} looks like {dup.id}; asking operator")
        return CommitResult(status="duplicate", trip=trip, duplicate=dup)

    if existing is not None:
        state.trips = [trip if t.id == existing.id else t for t in state.trips]
    else:
        state.trips = state.trips + [trip]
    add_dealer(state, trip.dealer)
    if trip.area:
        add_area(state, trip.area)
    logger.info(f"Saved trip {trip.id} ({'edit' if existing else 'new'})")
    return CommitResult(status="saved", trip=trip, duplicate=dup)


def delete_trip(state: AppState, trip_id: str) -> bool:
    before = len(state.trips)
    state.trips = [t for t in state.trips if t.id != trip_id]
    return len(state.trips) < before


def _add_name(names: List[str], name: str) -> Tuple[List[str], bool]:
    v = str(name or "").strip()
    key = canonical_key(v)
    if not key or any(canonical_key(n) == key for n in names):
        return names, False
    return names + [v], True


def _remove_name(names: List[str], name: str) -> Tuple[List[str], bool]:
    key = canonical_key(name)
    kept = [n for n in names if canonical_key(n) != key]
    return kept, len(kept) < len(names)


def add_dealer(state: AppState, name: str) -> bool:
    state.dealers, added = _add_name(state.dealers, name)
    return added


def remove_dealer(state: AppState, name: str) -> bool:
    state.dealers, removed = _remove_name(state.dealers, name)
    return removed


def add_area(state: AppState, name: str) -> bool:
    state.areas, added = _add_name(state.areas, name)
    return added


def remove_area(state: AppState, name: str) -> bool:
    state.areas, removed = _remove_name(state.areas, name)
    return removed


def dedupe_lists(state: AppState) -> None:
    state.dealers = unique_by_key(state.dealers)
    state.areas = unique_by_key(state.areas)


FILTERS = ("YTD", "Month", "7D", "ALL")


def filter_trips(trips: List[TripRecord], label: str,
                 today: Optional[dt.date] = None) -> List[TripRecord]:
    """Trips inside the named window ending today; unknown labels mean ALL."""
    today = today or dt.date.today()
    if label == "YTD":
        start = today.replace(month=1, day=1)
    elif label == "Month":
        start = today.replace(day=1)
    elif label == "7D":
        start = today - dt.timedelta(days=6)
    else:
        return list(trips)
    return [t for t in trips if start <= t.harvest_date <= today]


def price_per_pound(pounds: float, amount: float) -> float:
    return to2(amount / pounds) if pounds and pounds > 0 else 0.0


def totals(trips: List[TripRecord]) -> Dict[str, float]:
    """Count, pounds, amount and average price per pound across `trips`."""
    pounds = to2(sum(t.pounds for t in trips))
    amount = to2(sum(t.amount for t in trips))
    return {
        "trips": len(trips),
        "pounds": pounds,
        "amount": amount,
        "price_per_pound": price_per_pound(pounds, amount),
    }
