"""Normalization: header synonyms, unit-suffixed numbers, scale dates, raw row -> CanonicalRecord."""

from __future__ import annotations

import logging
import re
from datetime import date, datetime
from typing import Optional

from .models import CanonicalRecord, RawRecord

logger = logging.getLogger(__name__)

PLACEHOLDER = "--"

# Vendor header -> canonical raw header. Exact match only; add new scale variants here.
HEADER_SYNONYMS: dict[str, str] = {
    "Muscle": "Muscle Mass",
    "Skeletal Muscle": "Muscle Mass",
    "Skeletal Muscles": "Muscle Mass",
    "Bone": "Bone Mass",
    "Water": "Body Water",
}

# Pre-processed (display) header -> raw header it back-fills.
PROCESSED_TO_RAW: dict[str, str] = {
    "Body Fat %": "Body Fat",
    "Fat Free Weight": "Fat-Free Body Weight",
    "S-Fat": "Subcutaneous Fat",
    "V-Fat": "Visceral Fat",
    "Water %": "Body Water",
    "Protien %": "Protein",
    "Age": "Metabolic Age",
    "HR": "Heart Rate",
    "Bone Mass LB": "Bone Mass",
}

# Formats tried in order against the part of a timestamp before the first comma.
_DATE_FORMATS = ("%m/%d/%Y", "%m/%d/%y", "%m-%d-%Y", "%m-%d-%y", "%Y-%m-%d", "%Y/%m/%d")

_NON_NUMERIC = re.compile(r"[^0-9.]")


def is_missing(value: Optional[str]) -> bool:
    """True for absent, empty, or placeholder ("--") values."""
    if value is None:
        return True
    v = value.strip()
    return v == "" or v == PLACEHOLDER


def normalize_fields(record: RawRecord) -> RawRecord:
    """
    Collapse vendor header synonyms onto canonical raw names, then, for a pre-processed row
    (has Date, no Time), copy Date into Time and back-fill raw keys from their display equivalents.
    Returns a new dict; the input is not modified.
    """
    out: RawRecord = {}
    for key, value in record.items():
        out[HEADER_SYNONYMS.get(key, key)] = value
    if out.get("Date") and not out.get("Time"):
        out["Time"] = out["Date"]
        for processed_key, raw_key in PROCESSED_TO_RAW.items():
            if out.get(processed_key) and not out.get(raw_key):
                out[raw_key] = out[processed_key]
    return out


def extract_number(value: Optional[str]) -> float:
    """
    Magnitude of a unit-suffixed reading: "306.0lb" -> 306.0, "31.5%" -> 31.5.
    Missing, placeholder, or unparseable values give 0.0.
    """
    if is_missing(value):
        return 0.0
    numeric = _NON_NUMERIC.sub("", value)
    try:
        return float(numeric)
    except ValueError:
        # "1.2.3" and similar survive the strip but are not numbers
        m = re.match(r"\d*\.?\d+|\d+", numeric)
        return float(m.group(0)) if m else 0.0


def parse_scale_date(value: Optional[str]) -> Optional[date]:
    """Parse "4/5/2025, 8:43 AM" style timestamps to a calendar date; None if invalid."""
    if not value or not value.strip():
        return None
    part = value.split(",")[0].strip()
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(part, fmt).date()
        except ValueError:
            continue
    return None


def format_date_mmddyy(d: date) -> str:
    return d.strftime("%m-%d-%y")


def bone_mass_percentage(bone_mass_lb: float, weight_lb: float) -> float:
    if weight_lb == 0:
        return 0.0
    return (bone_mass_lb / weight_lb) * 100


def convert_record(record: RawRecord) -> Optional[CanonicalRecord]:
    """
    Map one normalized, filtered raw row to a CanonicalRecord.
    Returns None when the Time field does not hold a parseable date (caller counts it as invalid).
    """
    record_date = parse_scale_date(record.get("Time"))
    if record_date is None:
        logger.warning("Invalid date %r; record cannot be stored", record.get("Time"))
        return None
    weight = extract_number(record.get("Weight"))
    bone_mass = extract_number(record.get("Bone Mass"))
    return CanonicalRecord(
        date=record_date,
        weight=weight,
        bmi=extract_number(record.get("BMI")),
        body_fat_pct=extract_number(record.get("Body Fat")),
        visceral_fat=extract_number(record.get("Visceral Fat")),
        subcutaneous_fat=extract_number(record.get("Subcutaneous Fat")),
        metabolic_age=extract_number(record.get("Metabolic Age")),
        heart_rate=extract_number(record.get("Heart Rate")),
        water_pct=extract_number(record.get("Body Water")),
        bone_mass_pct=bone_mass_percentage(bone_mass, weight),
        protein_pct=extract_number(record.get("Protein")),
        fat_free_weight=extract_number(record.get("Fat-Free Body Weight")),
        bone_mass_lb=bone_mass,
        bmr=extract_number(record.get("BMR")),
        muscle_mass=extract_number(record.get("Muscle Mass")),
    )
