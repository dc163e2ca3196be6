"""Board model — one brainwriting session."""

import enum
from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, Enum, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from brainwriting.database import Base


class BoardMode(str, enum.Enum):
    Single = "single"
    Team = "team"


class Board(Base):
    __tablename__ = "boards"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    owner_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    mode: Mapped[BoardMode] = mapped_column(Enum(BoardMode), nullable=False)

    # ── Content ──
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    theme_name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(String(1000))

    # ── Invite link ──
    invite_token: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    is_invite_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # ── Capacity ──
    min_participants: Mapped[int] = mapped_column(Integer, nullable=False)
    max_participants: Mapped[int] = mapped_column(Integer, nullable=False)
    participant_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # ── Lifecycle ──
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    @property
    def is_started(self) -> bool:
        return self.started_at is not None
