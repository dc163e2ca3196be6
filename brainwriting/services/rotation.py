"""
RotationScheduler: who writes on a sheet next, or whether it is complete.

The order is the board's join order, rotated so the sheet's origin
participant comes first. A participant who has authored a row on the sheet
(blank rows included) is never offered it again, so a sheet passes through N
participants in exactly N turns. Participants removed from the board simply
drop out of the order.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Set

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from brainwriting.models.board import Board, BoardMode
from brainwriting.models.contribution import Contribution
from brainwriting.models.participant import Participant
from brainwriting.models.sheet import Sheet
from brainwriting.services.leases import LeaseManager
from brainwriting.services.registry import ParticipantRegistry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Rotation:
    sheet_id: int
    next_holder: Optional[str]
    finished: bool


def rotation_order(
    participants: Iterable[Participant],
    origin_participant_id: Optional[int] = None,
) -> List[Participant]:
    """Join order, starting at the origin participant and wrapping around."""
    ordered = sorted(participants, key=lambda p: p.id)
    if origin_participant_id is None:
        return ordered
    head = [p for p in ordered if p.id >= origin_participant_id]
    tail = [p for p in ordered if p.id < origin_participant_id]
    return head + tail


def next_holder(
    participants: Iterable[Participant],
    authors: Set[str],
    origin_participant_id: Optional[int] = None,
) -> Optional[Participant]:
    """First participant in rotation order without a row on the sheet; None when complete."""
    for participant in rotation_order(participants, origin_participant_id):
        if participant.identity not in authors:
            return participant
    return None


class RotationScheduler:
    def __init__(self, registry: ParticipantRegistry, leases: LeaseManager):
        self.registry = registry
        self.leases = leases

    async def authors(self, db: AsyncSession, sheet_id: int) -> Set[str]:
        result = await db.execute(
            select(Contribution.author).where(Contribution.sheet_id == sheet_id)
        )
        return set(result.scalars().all())

    async def next_holder_for(self, db: AsyncSession, board: Board, sheet: Sheet) -> Optional[Participant]:
        participants = await self.registry.ordered(db, board.id)
        authors = await self.authors(db, sheet.id)
        return next_holder(participants, authors, sheet.origin_participant_id)

    @staticmethod
    def roster_closed(board: Board) -> bool:
        """Whether no further participant can join and extend the rotation."""
        if board.mode == BoardMode.Team:
            return board.is_started
        return board.participant_count >= board.max_participants

    async def advance(
        self,
        db: AsyncSession,
        board: Board,
        sheet: Sheet,
        from_identity: Optional[str] = None,
    ) -> Rotation:
        """
        Pass the sheet on after a turn.

        ``from_identity`` is the holder finishing the turn; pass None when the
        lease was already released (sweeps). The sheet is finished once nobody
        is left to write and the roster is closed; in single-sheet mode with
        open seats the lease is released to wait for the next joiner.
        """
        upcoming = await self.next_holder_for(db, board, sheet)
        if upcoming is None:
            current = await db.get(Board, board.id, populate_existing=True)
            if self.roster_closed(current):
                await self.leases.finish(db, sheet.id)
                logger.info(f"Sheet {sheet.id} on board {board.id} complete")
                return Rotation(sheet_id=sheet.id, next_holder=None, finished=True)
            await self.leases.release(db, sheet.id)
            return Rotation(sheet_id=sheet.id, next_holder=None, finished=False)

        if from_identity is not None:
            await self.leases.hand_off(db, sheet.id, from_identity, upcoming.identity)
        else:
            await self.leases.try_acquire(db, sheet.id, upcoming.identity)
        logger.info(f"Sheet {sheet.id} rotated to {upcoming.identity}")
        return Rotation(sheet_id=sheet.id, next_holder=upcoming.identity, finished=False)
