"""
Leave amounts in either unit.

A LeaveAmount is a tagged value: fractional days for DAYS categories, or a
normalized number of minutes for HOURS_MINUTES (short leave) categories.
Arithmetic and comparison are only defined between amounts of the same unit.
"""
from dataclasses import dataclass
from datetime import datetime

from app.models.leave_category import LeaveUnit

MINUTES_PER_HOUR = 60


def normalize_days(value) -> float:
    """Days carry one decimal of granularity (half and short days)."""
    return round(float(value or 0), 1)


def parse_hhmm(value: str) -> int:
    """Parses "HH:MM" into minutes since midnight. Raises ValueError on bad input."""
    parsed = datetime.strptime(value.strip(), "%H:%M")
    return parsed.hour * MINUTES_PER_HOUR + parsed.minute


@dataclass(frozen=True)
class LeaveAmount:
    unit: LeaveUnit
    value: float  # days, or total minutes

    @classmethod
    def days(cls, value) -> "LeaveAmount":
        return cls(LeaveUnit.DAYS, normalize_days(value))

    @classmethod
    def hours_minutes(cls, hours: int = 0, minutes: int = 0) -> "LeaveAmount":
        total = int(hours or 0) * MINUTES_PER_HOUR + int(minutes or 0)
        return cls(LeaveUnit.HOURS_MINUTES, total)

    @classmethod
    def zero(cls, unit: LeaveUnit) -> "LeaveAmount":
        return cls(unit, 0.0 if unit == LeaveUnit.DAYS else 0)

    @classmethod
    def from_time_range(cls, start: str, end: str) -> "LeaveAmount":
        """Short leave between two "HH:MM" times on the same day."""
        return cls(LeaveUnit.HOURS_MINUTES, parse_hhmm(end) - parse_hhmm(start))

    @classmethod
    def from_columns(cls, unit: LeaveUnit, days, minutes) -> "LeaveAmount":
        if unit == LeaveUnit.HOURS_MINUTES:
            return cls(unit, int(minutes or 0))
        return cls.days(days)

    @property
    def total_minutes(self) -> int:
        return int(self.value)

    @property
    def hours(self) -> int:
        return self.total_minutes // MINUTES_PER_HOUR

    @property
    def minutes(self) -> int:
        return self.total_minutes % MINUTES_PER_HOUR

    def _check_unit(self, other: "LeaveAmount"):
        if self.unit != other.unit:
            raise ValueError(f"Cannot combine {self.unit.value} with {other.unit.value}")

    def __add__(self, other: "LeaveAmount") -> "LeaveAmount":
        self._check_unit(other)
        if self.unit == LeaveUnit.DAYS:
            return LeaveAmount.days(self.value + other.value)
        return LeaveAmount(self.unit, self.total_minutes + other.total_minutes)

    def clamped_sub(self, other: "LeaveAmount") -> "LeaveAmount":
        """self - other, never below zero."""
        self._check_unit(other)
        if self.unit == LeaveUnit.DAYS:
            return LeaveAmount.days(max(0.0, self.value - other.value))
        return LeaveAmount(self.unit, max(0, self.total_minutes - other.total_minutes))

    def __lt__(self, other: "LeaveAmount") -> bool:
        self._check_unit(other)
        return self.value < other.value

    def __le__(self, other: "LeaveAmount") -> bool:
        self._check_unit(other)
        return self.value <= other.value

    @property
    def is_positive(self) -> bool:
        return self.value > 0

    def column_values(self) -> dict:
        """Values for the (days, minutes) column pair of allotments and requests."""
        if self.unit == LeaveUnit.HOURS_MINUTES:
            return {"days": 0.0, "minutes": self.total_minutes}
        return {"days": float(self.value), "minutes": 0}

    def __str__(self) -> str:
        if self.unit == LeaveUnit.HOURS_MINUTES:
            return f"{self.hours}h" + (f" {self.minutes}m" if self.minutes else "")
        days = float(self.value)
        shown = str(int(days)) if days.is_integer() else f"{days:.1f}"
        return f"{shown} day" + ("" if days == 1 else "s")
