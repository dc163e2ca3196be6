"""Board Pydantic schemas."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from brainwriting.models.board import BoardMode
from brainwriting.schemas.sheet import SheetOut, SheetWithRows


class BoardCreate(BaseModel):
    mode: BoardMode = BoardMode.Team
    title: str = Field(min_length=1, max_length=200)
    theme_name: str = Field(min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=1000)


class BoardOut(BaseModel):
    id: int
    owner_id: str
    mode: BoardMode
    title: str
    theme_name: str
    description: Optional[str] = None
    invite_token: str
    is_invite_active: bool
    min_participants: int
    max_participants: int
    participant_count: int
    started_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class JoinIn(BaseModel):
    display_name: Optional[str] = Field(default=None, max_length=200)


class InviteToggle(BaseModel):
    active: bool


class ParticipantOut(BaseModel):
    id: int
    board_id: int
    identity: str
    display_name: Optional[str] = None
    joined_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class BoardStatus(BaseModel):
    """Snapshot used by clients to decide what to render next."""
    board: BoardOut
    participants: List[ParticipantOut]
    started: bool
    complete: bool
    sheets: List[SheetOut]


class BoardResults(BaseModel):
    board: BoardOut
    participants: List[ParticipantOut]
    sheets: List[SheetWithRows]
