"""Billing domain schemas - Pydantic models for calculator input and output"""

from datetime import date
from typing import Dict, List, Optional

from pydantic import BaseModel, field_validator


class BillingConfig(BaseModel):
    """Organization pricing configuration consumed by the calculator"""

    method: Optional[str] = None  # per-person-per-day, flat-rate-per-week, ...
    amount: float = 0.0
    tax_rate: Optional[float] = None  # percent
    cleaning_fee: Optional[float] = None
    pet_fee: Optional[float] = None
    damage_deposit: Optional[float] = None

    @classmethod
    def from_settings(cls, settings) -> "BillingConfig":
        if settings is None:
            return cls()
        return cls(
            method=settings.billing_method,
            amount=settings.billing_amount or 0.0,
            tax_rate=settings.tax_rate,
            cleaning_fee=settings.cleaning_fee,
            pet_fee=settings.pet_fee,
            damage_deposit=settings.damage_deposit,
        )


class StayDetails(BaseModel):
    """Aggregate stay counts for calculate_stay_billing"""

    guests: int = 0
    nights: int = 0
    weeks: Optional[int] = None

    @field_validator("guests", "nights")
    @classmethod
    def validate_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("guests and nights cannot be negative")
        return v


class MethodResolution(BaseModel):
    """Outcome of resolving a configured billing method"""

    method: str
    defaulted: bool = False
    error: Optional[str] = None


class DayCost(BaseModel):
    date: str
    guests: int
    cost: float


class BillingBreakdown(BaseModel):
    base_amount: float = 0.0
    cleaning_fee: float = 0.0
    pet_fee: float = 0.0
    damage_deposit: float = 0.0
    subtotal: float = 0.0
    tax: float = 0.0
    total: float = 0.0
    details: str = ""
    method: str = ""
    method_defaulted: bool = False
    day_breakdown: List[DayCost] = []
    warnings: List[str] = []


class CalculateRequest(BaseModel):
    """Schema for the billing preview endpoint"""

    config: BillingConfig
    dailyOccupancy: Optional[Dict[str, int]] = None
    startDate: Optional[date] = None
    endDate: Optional[date] = None
    guests: int = 0
    nights: int = 0

    @field_validator("endDate")
    @classmethod
    def validate_end_date(cls, v: Optional[date], info) -> Optional[date]:
        start = info.data.get("startDate")
        if v and start and v < start:
            raise ValueError("endDate cannot be before startDate")
        return v
