"""Split domain schemas - request bodies for the split-payment RPC"""

from datetime import date
from typing import List, Optional

from pydantic import BaseModel, field_validator


class SplitDayOccupancy(BaseModel):
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


class SplitUser(BaseModel):
    userId: str
    familyGroup: str
    displayName: str
    amount: float
    dailyOccupancy: List[SplitDayOccupancy]


class DateRange(BaseModel):
    start: date
    end: date


class CreateSplitRequest(BaseModel):
    """Schema for dividing one stay's charge among guest families"""

    organizationId: str
    reservationId: Optional[str] = None
    sourceFamilyGroup: str
    sourceUserId: Optional[str] = None
    sourceAmount: float
    sourceDailyOccupancy: List[SplitDayOccupancy] = []
    splitUsers: List[SplitUser]
    description: Optional[str] = None
    dateRange: DateRange
    originalAmount: Optional[float] = None
    operationId: Optional[str] = None

    @field_validator("operationId")
    @classmethod
    def validate_operation_id(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not 8 <= len(v) <= 64:
            raise ValueError("operationId must be between 8 and 64 characters")
        return v
