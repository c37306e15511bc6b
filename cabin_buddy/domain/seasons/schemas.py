"""Season domain schemas"""

from datetime import date
from typing import List, Optional

from pydantic import BaseModel


class SeasonConfig(BaseModel):
    season_year: int
    season_name: str
    season_start: date
    season_end: date
    payment_deadline: date
    payment_deadline_offset_days: int = 0
    is_default: bool = False


class StaySummary(BaseModel):
    reservation_id: str
    check_in: date
    check_out: date
    nights: int
    status: str
    payment_id: Optional[str] = None
    base_charge: float = 0.0
    total_charged: float = 0.0
    amount_paid: float = 0.0
    balance_due: float = 0.0
    payment_status: str = "awaiting"
    charge_source: str = "awaiting_data"
    billing_locked: bool = False
    occupancy_days: int = 0
    average_occupancy: Optional[float] = None


class SplitCharge(BaseModel):
    """A guest share of another family's stay, payable by this family"""

    payment_id: str
    reservation_id: Optional[str] = None
    source_family_group: Optional[str] = None
    description: Optional[str] = None
    check_in: Optional[date] = None
    check_out: Optional[date] = None
    total_charged: float = 0.0
    amount_paid: float = 0.0
    balance_due: float = 0.0
    payment_status: str = "pending"


class FamilySummary(BaseModel):
    family_group: str
    lead_email: Optional[str] = None
    lead_phone: Optional[str] = None
    stays: List[StaySummary] = []
    split_charges: List[SplitCharge] = []
    total_stays: int = 0
    total_nights: int = 0
    total_charged: float = 0.0
    total_paid: float = 0.0
    outstanding: float = 0.0
    missing_occupancy: int = 0


class SeasonTotals(BaseModel):
    total_families: int = 0
    total_stays: int = 0
    total_nights: int = 0
    total_charged: float = 0.0
    total_paid: float = 0.0
    outstanding: float = 0.0


class FamilyError(BaseModel):
    family_group: str
    error: str


class SeasonSummary(BaseModel):
    config: SeasonConfig
    family_summaries: List[FamilySummary] = []
    totals: SeasonTotals
    errors: List[FamilyError] = []
    warnings: List[str] = []


class PaymentSyncResult(BaseModel):
    created: int = 0
    existing: int = 0
    skipped: int = 0
    total: int = 0
    errors: List[str] = []
