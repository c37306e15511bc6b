"""Selection-period schemas"""

from datetime import date
from typing import Optional

from pydantic import BaseModel, field_validator


class SelectionWindow(BaseModel):
    """One family group's turn to pick dates in a rotation year"""

    family_group: str
    group_index: int
    start_date: date
    end_date: date

    @property
    def duration_days(self) -> int:
        return (self.end_date - self.start_date).days


class ExtensionRequest(BaseModel):
    rotationYear: int
    familyGroup: str
    extendedUntil: date
    reason: Optional[str] = None

    @field_validator("familyGroup")
    @classmethod
    def validate_family_group(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("familyGroup is required")
        return v
