"""Pydantic models for scalesync: canonical body-composition records, run results, tool inputs/outputs."""

from __future__ import annotations

from datetime import date as Date
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field

# --- Raw CSV shapes ---

# One tokenized CSV row: header -> trimmed string value.
RawRecord = dict[str, str]

CsvFormat = Literal["raw", "processed"]


# Display vocabulary exposed to callers -> CanonicalRecord attribute.
# "Protien %" is a fixed external contract; do not correct the spelling.
DISPLAY_FIELDS: dict[str, str] = {
    "Date": "date",
    "Weight": "weight",
    "BMI": "bmi",
    "Body Fat %": "body_fat_pct",
    "V-Fat": "visceral_fat",
    "S-Fat": "subcutaneous_fat",
    "Age": "metabolic_age",
    "HR": "heart_rate",
    "Water %": "water_pct",
    "Bone Mass %": "bone_mass_pct",
    "Protien %": "protein_pct",
    "Fat Free Weight": "fat_free_weight",
    "Bone Mass LB": "bone_mass_lb",
    "BMR": "bmr",
    "Muscle Mass": "muscle_mass",
}

NUMERIC_FIELDS: tuple[str, ...] = tuple(a for a in DISPLAY_FIELDS.values() if a != "date")


# --- Canonical record schema ---


class CanonicalRecord(BaseModel):
    """One day's measurement. The calendar date is the business key; id is storage-assigned."""
    date: Date
    weight: float = 0.0
    bmi: float = 0.0
    body_fat_pct: float = 0.0
    visceral_fat: float = 0.0
    subcutaneous_fat: float = 0.0
    metabolic_age: float = 0.0
    heart_rate: float = 0.0
    water_pct: float = 0.0
    bone_mass_pct: float = 0.0
    protein_pct: float = 0.0
    fat_free_weight: float = 0.0
    bone_mass_lb: float = 0.0
    bmr: float = 0.0
    muscle_mass: float = 0.0
    id: Optional[str] = None

    @property
    def date_display(self) -> str:
        """MM-DD-YY, the canonical display/storage-key form."""
        return self.date.strftime("%m-%d-%y")

    def measurements(self) -> dict[str, float]:
        return {name: getattr(self, name) for name in NUMERIC_FIELDS}

    def to_display(self, include_id: bool = False) -> dict[str, Any]:
        out: dict[str, Any] = {}
        if include_id:
            out["id"] = self.id
        for display, attr in DISPLAY_FIELDS.items():
            out[display] = self.date_display if attr == "date" else getattr(self, attr)
        return out

    @classmethod
    def from_display(cls, data: dict[str, Any], record_date: Date) -> "CanonicalRecord":
        """Build from a display-keyed mapping; unknown keys are ignored, missing numbers default to 0."""
        values: dict[str, Any] = {"date": record_date, "id": data.get("id")}
        for display, attr in DISPLAY_FIELDS.items():
            if attr == "date" or display not in data:
                continue
            values[attr] = float(data[display] or 0)
        return cls(**values)


class StoredRecord(CanonicalRecord):
    """CanonicalRecord as owned by the record store (identifier and audit timestamps)."""
    id: str
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


# --- Ingest output ---

class RunResult(BaseModel):
    total_records: int = 0  # tokenized data rows
    created: int = 0
    updated: int = 0
    skipped: int = 0  # identical to the stored record within epsilon
    invalid_records: int = 0  # date could not be parsed
    errors: int = 0  # store operation raised


class IngestCsvInput(BaseModel):
    content: Optional[str] = None
    path: Optional[str] = None  # read from disk when content is not given


class IngestCsvOutput(BaseModel):
    status: Literal["ok", "ok_with_warnings", "error"]
    format: Optional[CsvFormat] = None
    records: list[CanonicalRecord] = Field(default_factory=list)
    result: RunResult = Field(default_factory=RunResult)
    message: Optional[str] = None


# --- Single-record edits ---

class UpdateRecordInput(BaseModel):
    record_id: str
    data: dict[str, Any]  # display-keyed fields to change, e.g. {"Weight": 181.2, "Date": "04-05-25"}


class UpdateRecordOutput(BaseModel):
    status: Literal["ok", "error"]
    record_id: str
    record: Optional[dict[str, Any]] = None  # display form after the edit
    errors: list[str] = Field(default_factory=list)


# --- Queries / stats ---

class DateRange(BaseModel):
    start: Optional[Date] = None  # YYYY-MM-DD
    end: Optional[Date] = None


class RecordStats(BaseModel):
    count: int = 0
    oldest: Optional[dict[str, Any]] = None
    latest: Optional[dict[str, Any]] = None
    averages: dict[str, float] = Field(default_factory=dict)  # display name -> mean of non-zero readings
