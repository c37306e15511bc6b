"""Snapshot domain schemas"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, field_validator


class CreateSnapshotRequest(BaseModel):
    seasonYear: int

    @field_validator("seasonYear")
    @classmethod
    def validate_year(cls, v: int) -> int:
        if v < 2000 or v > 2100:
            raise ValueError("seasonYear must be between 2000 and 2100")
        return v


class RestoreRequest(BaseModel):
    filePath: str
    scope: str = "full"
    confirm: bool = False


class SnapshotResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    backup_type: str
    file_path: Optional[str] = None
    file_size: Optional[int] = None
    snapshot_source: str
    season_year: Optional[int] = None
    status: str
    created_by_user_id: Optional[str] = None
    created_at: Optional[datetime] = None
