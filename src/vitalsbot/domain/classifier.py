"""Deterministic classification of biometric text messages.

NO LLM. Two anchored regexes decide whether a message is a blood-sugar or a
blood-pressure reading; anything else is "no match" and the caller re-prompts.
Security: NEVER log raw text.
"""

from __future__ import annotations

import re
from datetime import datetime

from vitalsbot.domain.readings import (
    HEART_RATE_NOT_ENTERED,
    BloodPressureReading,
    BloodSugarReading,
    MeasurementType,
    Reading,
    ReadingKind,
)

_BS_TYPE = r"fasting|fast|f|post(?:[-\s]?meal)?|p"

# "F 95", "95 f", "post-meal 140", "140 Post meal"
_BLOOD_SUGAR_PATTERN = re.compile(
    rf"^\s*(?:(?P<type_first>{_BS_TYPE})\s+(?P<value_last>\d{{2,3}})"
    rf"|(?P<value_first>\d{{2,3}})\s+(?P<type_last>{_BS_TYPE}))\s*$",
    re.IGNORECASE,
)

# "120/80", "120/80 72", "72 120/80"
_BLOOD_PRESSURE_PATTERN = re.compile(
    r"^\s*(?:(?P<sys_first>\d{2,3})\s*/\s*(?P<dia_first>\d{2,3})(?:\s+(?P<hr_last>\d{2,3}))?"
    r"|(?P<hr_first>\d{2,3})\s+(?P<sys_last>\d{2,3})\s*/\s*(?P<dia_last>\d{2,3}))\s*$"
)


def format_capture_date(moment: datetime) -> str:
    """DD-MM-YYYY, e.g. ``07-01-2026``."""
    return moment.strftime("%d-%m-%Y")


def format_capture_time(moment: datetime) -> str:
    """12-hour clock without padding, e.g. ``2:30pm`` or ``11:05am``."""
    hour = moment.hour % 12 or 12
    suffix = "pm" if moment.hour >= 12 else "am"
    return f"{hour}:{moment.minute:02d}{suffix}"


def classify_kind(raw: str) -> ReadingKind:
    """Return which reading grammar `raw` matches. Blood sugar wins ties."""
    if _BLOOD_SUGAR_PATTERN.match(raw):
        return ReadingKind.BLOOD_SUGAR
    if _BLOOD_PRESSURE_PATTERN.match(raw):
        return ReadingKind.BLOOD_PRESSURE
    return ReadingKind.NONE


def classify(raw: str, now: datetime | None = None) -> Reading | None:
    """Parse a text message into a reading.

    Args:
        raw: Message body as received.
        now: Capture moment; the reading is stamped with this, not with the
            message's own timestamp. Defaults to the local clock.

    Returns:
        A BloodSugarReading or BloodPressureReading, or None when the text is
        not a recognized reading.
    """
    moment = now or datetime.now()
    date = format_capture_date(moment)
    time = format_capture_time(moment)

    match = _BLOOD_SUGAR_PATTERN.match(raw)
    if match:
        type_token = match.group("type_first") or match.group("type_last")
        value_token = match.group("value_last") or match.group("value_first")
        measurement = (
            MeasurementType.FASTING
            if type_token.lower().startswith("f")
            else MeasurementType.POST_MEAL
        )
        return BloodSugarReading(
            measurement_type=measurement,
            value=int(value_token),
            date=date,
            time=time,
        )

    match = _BLOOD_PRESSURE_PATTERN.match(raw)
    if match:
        if match.group("sys_first"):
            systolic = match.group("sys_first")
            diastolic = match.group("dia_first")
            heart_rate = match.group("hr_last")
        else:
            systolic = match.group("sys_last")
            diastolic = match.group("dia_last")
            heart_rate = match.group("hr_first")
        return BloodPressureReading(
            systolic=int(systolic),
            diastolic=int(diastolic),
            heart_rate=f"{int(heart_rate)} bpm" if heart_rate else HEART_RATE_NOT_ENTERED,
            date=date,
            time=time,
        )

    return None
