"""Shared validation utilities"""

import math
from datetime import date, datetime, timedelta
from typing import Iterable, List, Optional

from ..errors import ValidationError


def parse_iso_date(value, field: str = "date") -> date:
    """
    Parse a calendar date from a ``date``, ``datetime`` or ISO string.

    Raises:
        ValidationError: If the value is missing or not a yyyy-MM-dd date
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not value or not isinstance(value, str):
        raise ValidationError(f"{field} is required")
    try:
        return date.fromisoformat(value[:10])
    except ValueError as e:
        raise ValidationError(f"Invalid {field}: {value}") from e


def validate_amount(value, field: str = "amount") -> float:
    """Money amounts must be finite and non-negative"""
    try:
        amount = float(value)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"{field} must be a number") from e
    if math.isnan(amount) or math.isinf(amount):
        raise ValidationError(f"{field} must be a finite number")
    if amount < 0:
        raise ValidationError(f"{field} cannot be negative")
    return amount


def stay_nights(start: date, end: date) -> List[date]:
    """Occupied days of a stay. The checkout day is excluded."""
    return [start + timedelta(days=i) for i in range((end - start).days)]


def normalize_occupancy(
    entries: Optional[Iterable],
    start: date,
    end: date,
    inclusive_end: bool = False,
) -> List[dict]:
    """
    Validate and normalize a daily occupancy list.

    Each entry must have a date inside ``[start, end)`` (or ``[start, end]`` when
    ``inclusive_end``), a non-negative integer guest count and no duplicate dates.
    Returns a new list of plain dicts sorted by date with ISO date strings.
    """
    normalized = []
    seen = set()
    for entry in entries or []:
        if hasattr(entry, "model_dump"):
            entry = entry.model_dump(exclude_none=True)
        day = parse_iso_date(entry.get("date"), "occupancy date")
        in_range = start <= day <= end if inclusive_end else start <= day < end
        if not in_range:
            raise ValidationError(
                f"Occupancy date {day.isoformat()} is outside the stay "
                f"({start.isoformat()} to {end.isoformat()})"
            )
        if day in seen:
            raise ValidationError(f"Duplicate occupancy date {day.isoformat()}")
        seen.add(day)

        guests = entry.get("guests", 0)
        if isinstance(guests, bool) or not isinstance(guests, int) and not (
            isinstance(guests, float) and guests.is_integer()
        ):
            raise ValidationError(f"Guest count for {day.isoformat()} must be a whole number")
        guests = int(guests)
        if guests < 0:
            raise ValidationError(f"Guest count for {day.isoformat()} cannot be negative")

        item = {"date": day.isoformat(), "guests": guests}
        if entry.get("names"):
            item["names"] = [str(name) for name in entry["names"]]
        if entry.get("cost") is not None:
            item["cost"] = validate_amount(entry["cost"], f"cost for {day.isoformat()}")
        normalized.append(item)

    normalized.sort(key=lambda item: item["date"])
    return normalized


def occupancy_map(entries: Optional[Iterable[dict]]) -> dict:
    """Collapse an occupancy list into ``{iso_date: guests}``"""
    return {str(entry["date"])[:10]: int(entry.get("guests") or 0) for entry in entries or []}
