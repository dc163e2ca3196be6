"""Contribution model — one row of ideas written during one turn."""

import json
from datetime import datetime
from typing import List, Optional

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from brainwriting.database import Base


class Contribution(Base):
    __tablename__ = "contributions"
    __table_args__ = (UniqueConstraint("sheet_id", "row_index", name="uq_contribution_sheet_row"),)

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    board_id: Mapped[int] = mapped_column(
        ForeignKey("boards.id", ondelete="CASCADE"), nullable=False, index=True
    )
    sheet_id: Mapped[int] = mapped_column(
        ForeignKey("sheets.id", ondelete="CASCADE"), nullable=False, index=True
    )
    author: Mapped[str] = mapped_column(String(255), nullable=False)
    row_index: Mapped[int] = mapped_column(Integer, nullable=False)
    values_json: Mapped[str] = mapped_column(Text, nullable=False, default="[]")

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    @staticmethod
    def encode(cells: List[Optional[str]]) -> str:
        return json.dumps(cells, ensure_ascii=False)

    @property
    def values(self) -> List[Optional[str]]:
        return json.loads(self.values_json or "[]")

    @values.setter
    def values(self, cells: List[Optional[str]]) -> None:
        self.values_json = self.encode(cells)

    @property
    def is_blank(self) -> bool:
        return all(cell is None for cell in self.values)
