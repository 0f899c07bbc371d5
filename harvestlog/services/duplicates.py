"""
Duplicate detection for trips.

- likely_duplicate: same date, same canonical dealer, pounds and amount within
  tolerance. Tolerances absorb transcription rounding (43.5 vs 43.6 lb).
- composite_key: exact identity used by backup merge
  (date | dealer | area | pounds 2dp | amount 2dp, canonicalized).
- find_duplicate_trip: linear scan used before saving and during merge.

Nothing here mutates or blocks. A hit is a question for the operator, not a
decision; callers surface it as a confirm prompt.
"""

from decimal import Decimal
from typing import Iterable, Optional

from harvestlog.models.schemas import DuplicateTolerance, TripRecord
from harvestlog.services.normalize import canonical_key, to2

DEFAULT_TOLERANCE = DuplicateTolerance()


def _within(a: Optional[float], b: Optional[float], tol: float) -> bool:
    """|a - b| <= tol in decimal arithmetic, so 0.25 means exactly 0.25."""
    da = Decimal(str(a or 0))
    db = Decimal(str(b or 0))
    return abs(da - db) <= Decimal(str(tol))


def likely_duplicate(existing: TripRecord, candidate: TripRecord,
                     tolerance: Optional[DuplicateTolerance] = None) -> bool:
    """Symmetric: likely_duplicate(a, b) == likely_duplicate(b, a)."""
    tol = tolerance or DEFAULT_TOLERANCE
    if existing.harvest_date != candidate.harvest_date:
        return False
    if canonical_key(existing.dealer) != canonical_key(candidate.dealer):
        return False
    return (_within(existing.pounds, candidate.pounds, tol.pounds)
            and _within(existing.amount, candidate.amount, tol.amount))


def composite_key(trip: TripRecord) -> str:
    return "|".join([
        canonical_key(trip.harvest_date.isoformat()),
        canonical_key(trip.dealer),
        canonical_key(trip.area),
        f"{to2(trip.pounds):.2f}",
        f"{to2(trip.amount):.2f}",
    ])


def find_duplicate_trip(trips: Iterable[TripRecord], candidate: TripRecord,
                        exclude_id: Optional[str] = None,
                        tolerance: Optional[DuplicateTolerance] = None) -> Optional[TripRecord]:
    """First stored trip that likely duplicates `candidate`, skipping `exclude_id`."""
    for t in trips:
        if exclude_id and t.id == exclude_id:
            continue
        if likely_duplicate(t, candidate, tolerance):
            return t
    return None
