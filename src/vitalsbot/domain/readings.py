"""Biometric reading models.

A reading is captured once from a WhatsApp message and appended as one row
to the user's spreadsheet. Readings are never mutated after parsing.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Literal, Union

HEART_RATE_NOT_ENTERED = "value not entered"


class ReadingKind(str, Enum):
    """Classification of an inbound text. Values double as button reply ids."""

    BLOOD_SUGAR = "bs"
    BLOOD_PRESSURE = "bp"
    NONE = "none"


class MeasurementType(str, Enum):
    FASTING = "Fasting"
    POST_MEAL = "Post-Meal"


@dataclass(frozen=True)
class BloodSugarReading:
    measurement_type: MeasurementType
    value: int
    date: str  # DD-MM-YYYY
    time: str  # h:mmam / h:mmpm

    kind: Literal[ReadingKind.BLOOD_SUGAR] = ReadingKind.BLOOD_SUGAR

    def to_row(self) -> list[str | int]:
        """Row for the ``Blood Sugar`` sheet: date, time, type, value."""
        return [self.date, self.time, self.measurement_type.value, self.value]


@dataclass(frozen=True)
class BloodPressureReading:
    systolic: int
    diastolic: int
    heart_rate: str  # "72 bpm" or HEART_RATE_NOT_ENTERED
    date: str
    time: str

    kind: Literal[ReadingKind.BLOOD_PRESSURE] = ReadingKind.BLOOD_PRESSURE

    def to_row(self) -> list[str | int]:
        """Row for the ``Blood Pressure`` sheet: date, time, sys, dia, hr."""
        return [self.date, self.time, self.systolic, self.diastolic, self.heart_rate]


Reading = Union[BloodSugarReading, BloodPressureReading]
