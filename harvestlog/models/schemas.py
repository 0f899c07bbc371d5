"""
Data shapes for the trip log core.

- Confidence / Present / Absent: how sure the extractor is about one field.
- ParsedDraft: what the extractor hands to the review form (never persisted).
- TripRecord: one harvest sale as it lives in the store and in backups.
- AppState: the single state object every mutating operation receives.
- Backup shapes: validation result, validated payload, reconcile summary.

Persisted/backup JSON keeps the field names older builds wrote (`dateISO`,
`createdAt`, ...), so every record model here serialises by alias.
"""

from __future__ import annotations

import datetime as dt
import uuid
from enum import IntEnum
from typing import Annotated, Any, ClassVar, Dict, List, Literal, Optional, Tuple, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from harvestlog.services.normalize import parse_date_text, to2

APP_NAME = "Shellfish Tracker"
APP_VERSION = "1.0.0"
# bump when the persisted/backup layout changes shape
SCHEMA_VERSION = 1


def new_trip_id() -> str:
    return f"t_{uuid.uuid4().hex[:16]}"


def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


class Confidence(IntEnum):
    """Ordered so drafts can be compared and sorted deterministically."""

    ABSENT = 0
    LOW = 1
    MED = 2
    HIGH = 3

    @property
    def label(self) -> str:
        return self.name.lower()


class Present(BaseModel):
    """A field the extractor found, with the tier that produced it."""

    kind: Literal["present"] = "present"
    value: str
    confidence: Confidence


class Absent(BaseModel):
    """A field the extractor could not locate. Nothing was guessed."""

    kind: Literal["absent"] = "absent"

    @property
    def value(self) -> None:
        return None

    @property
    def confidence(self) -> Confidence:
        return Confidence.ABSENT


FieldResult = Annotated[Union[Present, Absent], Field(discriminator="kind")]


class ParsedDraft(BaseModel):
    """
    Candidate trip fields pulled out of pasted text.

    Values are the strings the review form shows (`01/15/2024`, `152.25`,
    `43.5`), so the operator edits exactly what was extracted. `flags` carries
    short notes about ambiguous picks (e.g. several competing amounts).
    """

    FIELDS: ClassVar[Tuple[str, ...]] = ("date", "dealer", "pounds", "amount", "area")

    date: FieldResult = Field(default_factory=Absent)
    dealer: FieldResult = Field(default_factory=Absent)
    pounds: FieldResult = Field(default_factory=Absent)
    amount: FieldResult = Field(default_factory=Absent)
    area: FieldResult = Field(default_factory=Absent)
    raw_text: str = ""
    flags: List[str] = Field(default_factory=list)

    @property
    def confidence(self) -> Dict[str, Confidence]:
        return {name: getattr(self, name).confidence for name in self.FIELDS}

    def to_inputs(self) -> Dict[str, str]:
        """Prefill values for the review form; absent fields become ''."""
        out = {name: getattr(self, name).value or "" for name in self.FIELDS}
        out["raw_text"] = self.raw_text
        out["source"] = "parsed"
        return out


class TripRecord(BaseModel):
    """
    One persisted harvest sale.

    Invariant enforced by callers before persisting: `is_committable` holds
    (pounds > 0, amount > 0, valid calendar date).
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str = Field(default_factory=new_trip_id)
    harvest_date: dt.date = Field(
        validation_alias=AliasChoices("harvest_date", "dateISO", "harvestDate", "date"),
        serialization_alias="dateISO",
    )
    dealer: str = Field("", validation_alias=AliasChoices("dealer", "dealerName"))
    pounds: float = Field(0.0, ge=0)
    amount: float = Field(0.0, ge=0, validation_alias=AliasChoices("amount", "amountPaid"))
    area: str = Field("", validation_alias=AliasChoices("area", "areaTag"))
    created_at: dt.datetime = Field(
        default_factory=_utcnow,
        validation_alias=AliasChoices("created_at", "createdAt"),
        serialization_alias="createdAt",
    )
    source: Literal["manual", "parsed"] = "manual"
    raw_text: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("raw_text", "rawText"),
        serialization_alias="rawText",
    )

    @field_validator("id", mode="before")
    @classmethod
    def _id_or_new(cls, v: Any) -> str:
        s = str(v or "").strip()
        return s or new_trip_id()

    @field_validator("harvest_date", mode="before")
    @classmethod
    def _parse_date(cls, v: Any) -> Any:
        if isinstance(v, dt.datetime):
            return v.date()
        if isinstance(v, dt.date):
            return v
        parsed = parse_date_text(str(v or ""))
        if parsed is None:
            raise ValueError(f"not a calendar date: {v!r}")
        return parsed

    @field_validator("dealer", "area", mode="before")
    @classmethod
    def _strip_text(cls, v: Any) -> str:
        return str(v or "").strip()

    @field_validator("pounds", "amount")
    @classmethod
    def _two_places(cls, v: float) -> float:
        return to2(v)

    @field_validator("source", mode="before")
    @classmethod
    def _known_source(cls, v: Any) -> str:
        return "parsed" if str(v or "").strip().lower() == "parsed" else "manual"

    @property
    def is_committable(self) -> bool:
        return self.pounds > 0 and self.amount > 0

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class DuplicateTolerance(BaseModel):
    """How far two records may drift and still count as the same sale."""

    pounds: float = 0.25
    amount: float = 2.00


class AppState(BaseModel):
    """Everything the store persists, as one versioned record."""

    trips: List[TripRecord] = Field(default_factory=list)
    areas: List[str] = Field(default_factory=list)
    dealers: List[str] = Field(default_factory=list)
    settings: Dict[str, Any] = Field(default_factory=dict)
    view: str = "home"
    filter: str = "YTD"

    def has_data(self) -> bool:
        return bool(self.trips or self.areas or self.dealers)

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


# ---------- backup shapes ----------

class ValidatedPayload(BaseModel):
    """A backup that passed structural validation; entries already cleaned."""

    schema_version: int = 0
    app_version: str = ""
    exported_at: str = ""
    trips: List[TripRecord] = Field(default_factory=list)
    areas: List[str] = Field(default_factory=list)
    dealers: List[str] = Field(default_factory=list)
    settings: Dict[str, Any] = Field(default_factory=dict)
    trips_skipped: int = 0


class BackupValidation(BaseModel):
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    payload: Optional[ValidatedPayload] = None

    @property
    def ok(self) -> bool:
        return not self.errors and self.payload is not None


class ReconcileSummary(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    mode: Literal["replace", "merge"]
    trips_in_file: int = Field(0, serialization_alias="tripsInFile")
    trips_added: int = Field(0, serialization_alias="tripsAdded")
    areas_in_file: int = Field(0, serialization_alias="areasInFile")
    dealers_in_file: int = Field(0, serialization_alias="dealersInFile")
    warnings: List[str] = Field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)

    def message(self) -> str:
        verb = "Replaced with" if self.mode == "replace" else "Merged"
        msg = (
            f"{verb} {self.trips_added} of {self.trips_in_file} trips "
            f"({self.areas_in_file} areas, {self.dealers_in_file} dealers in file)."
        )
        if self.warnings:
            msg += " Warnings: " + "; ".join(self.warnings)
        return msg


class CommitResult(BaseModel):
    """
    Outcome of trying to save a reviewed trip.

    - saved: state.trips now holds `trip`; caller persists.
    - invalid: `errors` names the fields to fix.
    - duplicate: `duplicate` is the stored record it matches; ask the operator,
      then commit again with confirm_duplicate=True.
    - not_found: the record being edited no longer exists.
    """

    status: Literal["saved", "invalid", "duplicate", "not_found"]
    trip: Optional[TripRecord] = None
    duplicate: Optional[TripRecord] = None
    errors: List[str] = Field(default_factory=list)
