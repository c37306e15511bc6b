"""Occupancy domain schemas"""

from datetime import date
from typing import List, Optional

from pydantic import BaseModel, field_validator


class OccupancyEntry(BaseModel):
    """One day of a stay: ``{date, guests, names?}``"""

    date: date
    guests: int
    names: Optional[List[str]] = None
    cost: Optional[float] = None

    @field_validator("guests")
    @classmethod
    def validate_guests(cls, v: int) -> int:
        if v < 0:
            raise ValueError("guests cannot be negative")
        return v


class OccupancyUpdate(BaseModel):
    occupancy: List[OccupancyEntry]
    skipBillingRecalc: bool = False


class SplitOccupancyUpdate(BaseModel):
    splitPaymentId: str
    occupancy: List[OccupancyEntry]


class BillingAdjustment(BaseModel):
    """Manual adjustment applied on top of the computed charge"""

    adjustment: float = 0.0
    notes: Optional[str] = None
    locked: Optional[bool] = None
