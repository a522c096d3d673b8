"""
streakbot.engine.retention — Activity Retention Between Date Ranges
====================================================================

A user is *active* in a range when their heatmap has a non-zero entry on
any date inside it (both ends inclusive).  Retention compares the users
active in range A with those also active in range B.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date

from streakbot.database.models import UserRecord
from streakbot.errors import ValidationError


@dataclass(frozen=True, slots=True)
class DateRange:
    start: date
    end: date

    @classmethod
    def parse(cls, start: str | date, end: str | date, *, field: str = "range") -> DateRange:
        """Build a range from ISO strings; rejects bad dates and reversed ranges."""
        try:
            start_d = start if isinstance(start, date) else date.fromisoformat(start)
            end_d = end if isinstance(end, date) else date.fromisoformat(end)
        except ValueError as exc:
            raise ValidationError(field, "Dates must be in YYYY-MM-DD format") from exc
        if start_d > end_d:
            raise ValidationError(field, "The start date must be on or before the end date")
        return cls(start_d, end_d)

    def contains(self, iso_day: str) -> bool:
        return self.start.isoformat() <= iso_day[:10] <= self.end.isoformat()

    def __str__(self) -> str:
        return f"{self.start.isoformat()} - {self.end.isoformat()}"


@dataclass(frozen=True, slots=True)
class RetentionResult:
    range_a: DateRange
    range_b: DateRange | None
    active_a: int
    active_b: int | None
    retained: int
    rate: float  # percent, 0–100


def users_active_in(users: dict[str, UserRecord], window: DateRange) -> set[str]:
    return {
        user_id for user_id, record in users.items()
        if any(window.contains(day) for day in record.active_dates())
    }


def compute_retention(
    users: dict[str, UserRecord],
    range_a: DateRange,
    range_b: DateRange | None = None,
) -> RetentionResult:
    """Single range: everyone active counts as retained (100 %, or 0 if none).

    Two ranges: retained = active in both; rate = retained / active in A.
    """
    active_a = users_active_in(users, range_a)

    if range_b is None:
        return RetentionResult(
            range_a=range_a,
            range_b=None,
            active_a=len(active_a),
            active_b=None,
            retained=len(active_a),
            rate=100.0 if active_a else 0.0,
        )

    active_b = users_active_in(users, range_b)
    retained = active_a & active_b
    rate = (len(retained) / len(active_a) * 100) if active_a else 0.0
    return RetentionResult(
        range_a=range_a,
        range_b=range_b,
        active_a=len(active_a),
        active_b=len(active_b),
        retained=len(retained),
        rate=round(rate, 2),
    )
