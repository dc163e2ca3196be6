"""ParticipantRegistry: membership and the capacity ceiling of a board."""

import logging
from typing import List, Optional, Tuple

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from brainwriting.exceptions import AlreadyStarted, Full, NotAParticipant
from brainwriting.models.board import Board, BoardMode
from brainwriting.models.participant import Participant

logger = logging.getLogger(__name__)


class ParticipantRegistry:

    async def get(self, db: AsyncSession, board_id: int, identity: str) -> Optional[Participant]:
        result = await db.execute(
            select(Participant).where(
                Participant.board_id == board_id,
                Participant.identity == identity,
            )
        )
        return result.scalar_one_or_none()

    async def require(self, db: AsyncSession, board_id: int, identity: str) -> Participant:
        participant = await self.get(db, board_id, identity)
        if participant is None:
            raise NotAParticipant()
        return participant

    async def ordered(self, db: AsyncSession, board_id: int) -> List[Participant]:
        """Participants in join order."""
        result = await db.execute(
            select(Participant)
            .where(Participant.board_id == board_id)
            .order_by(Participant.id.asc())
        )
        return list(result.scalars().all())

    async def count(self, db: AsyncSession, board_id: int) -> int:
        result = await db.execute(
            select(func.count(Participant.id)).where(Participant.board_id == board_id)
        )
        return result.scalar() or 0

    async def is_full(self, db: AsyncSession, board: Board) -> bool:
        return await self.count(db, board.id) >= board.max_participants

    async def join(
        self,
        db: AsyncSession,
        board: Board,
        identity: str,
        display_name: Optional[str] = None,
    ) -> Tuple[Participant, bool]:
        """
        Admit ``identity`` to ``board``; returns ``(participant, created)``.

        Rejoining returns the existing record. The seat is reserved with a
        conditional increment of ``boards.participant_count`` so concurrent
        joins cannot overshoot the ceiling. A concurrent join of the same
        identity surfaces as an ``IntegrityError`` from the unique
        (board, identity) constraint; the caller resolves it by re-reading.
        """
        existing = await self.get(db, board.id, identity)
        if existing is not None:
            return existing, False

        team = board.mode == BoardMode.Team
        if team and board.is_started:
            raise AlreadyStarted("This board has already started; late joins are not permitted.")

        conditions = [
            Board.id == board.id,
            Board.participant_count < Board.max_participants,
        ]
        if team:
            conditions.append(Board.started_at.is_(None))
        result = await db.execute(
            update(Board)
            .where(*conditions)
            .values(participant_count=Board.participant_count + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            current = await db.get(Board, board.id, populate_existing=True)
            if team and current is not None and current.is_started:
                raise AlreadyStarted("This board has already started; late joins are not permitted.")
            raise Full()

        participant = Participant(
            board_id=board.id,
            identity=identity,
            display_name=display_name,
        )
        db.add(participant)
        await db.flush()
        logger.info(f"{identity} joined board {board.id}")
        return participant, True

    async def remove(self, db: AsyncSession, board_id: int, identity: str) -> bool:
        """Drop a participant and free their seat. Returns False if absent."""
        result = await db.execute(
            delete(Participant)
            .where(Participant.board_id == board_id, Participant.identity == identity)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            return False
        await db.execute(
            update(Board)
            .where(Board.id == board_id, Board.participant_count > 0)
            .values(participant_count=Board.participant_count - 1)
            .execution_options(synchronize_session=False)
        )
        logger.info(f"{identity} removed from board {board_id}")
        return True
