"""Sheet and contribution Pydantic schemas."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class SheetOut(BaseModel):
    id: int
    board_id: int
    origin_participant_id: Optional[int] = None
    holder: Optional[str] = None
    lease_expires_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    is_finished: bool

    model_config = {"from_attributes": True}


class ContributionIn(BaseModel):
    row_index: int = Field(ge=0)
    values: List[Optional[str]]


class ContributionOut(BaseModel):
    id: int
    sheet_id: int
    author: str
    row_index: int
    values: List[Optional[str]]
    is_blank: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class SheetWithRows(BaseModel):
    sheet: SheetOut
    rows: List[ContributionOut]


class LeaseStatus(BaseModel):
    sheet_id: int
    holder: Optional[str] = None
    lease_expires_at: Optional[datetime] = None
    held_by_other: bool
    finished: bool
