"""
AbandonmentSweeper: reclaim sheets whose holder walked away.

A sweep finds sheets with a lapsed lease, claims each one with a
compare-and-swap on (holder, expiry) and then advances the rotation exactly
as a submitted turn would. What happens to the silent participant depends on
the abandonment policy:

* ``blank``: their turn is recorded as an empty row, keeping rows aligned
  across sheets.
* ``purge``: their rows on the sheet and their participant record are
  removed, shrinking the rotation and freeing a seat.

Each sheet is handled in its own transaction, so one failure only delays
that sheet until the next sweep.
"""

import asyncio
import logging
from typing import List, Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from brainwriting.config import settings
from brainwriting.exceptions import CoordinatorError, InvalidContribution
from brainwriting.models.board import Board
from brainwriting.models.contribution import Contribution
from brainwriting.models.sheet import Sheet
from brainwriting.services.leases import LeaseManager
from brainwriting.services.notifications import BrainwritingEvent, NotificationPublisher
from brainwriting.services.registry import ParticipantRegistry
from brainwriting.services.rotation import Rotation, RotationScheduler
from brainwriting.services.store import transaction

logger = logging.getLogger(__name__)

POLICIES = ("blank", "purge")


async def free_row_index(db: AsyncSession, sheet_id: int, limit: int) -> int:
    """Lowest row index below ``limit`` that no contribution on the sheet uses."""
    result = await db.execute(
        select(Contribution.row_index).where(Contribution.sheet_id == sheet_id)
    )
    taken = set(result.scalars().all())
    for index in range(limit):
        if index not in taken:
            return index
    raise InvalidContribution(f"Sheet {sheet_id} has no free row below {limit}.")


class AbandonmentSweeper:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        leases: LeaseManager,
        scheduler: RotationScheduler,
        registry: ParticipantRegistry,
        policy: Optional[str] = None,
        columns: Optional[int] = None,
        publisher: Optional[NotificationPublisher] = None,
    ):
        self.session_factory = session_factory
        self.leases = leases
        self.scheduler = scheduler
        self.registry = registry
        self.policy = policy or settings.ABANDON_POLICY
        if self.policy not in POLICIES:
            raise ValueError(f"Unknown abandonment policy: {self.policy}")
        self.columns = columns or settings.SHEET_COLUMNS
        self.publisher = publisher or NotificationPublisher()

    async def sweep(self, board_id: int, except_holder: Optional[str] = None) -> List[Rotation]:
        """
        Reclaim every expired lease on ``board_id``; returns the rotations applied.

        Sheets whose lapsed holder is ``except_holder`` are left alone: that
        participant is writing right now and may re-acquire their own lease.
        """
        async with transaction(self.session_factory) as db:
            stale = [
                (sheet.id, sheet.holder, sheet.lease_expires_at)
                for sheet in await self.leases.expired_sheets(db, board_id)
                if except_holder is None or sheet.holder != except_holder
            ]

        rotations = []
        for sheet_id, holder, expires_at in stale:
            try:
                rotation = await self._reclaim(sheet_id, holder, expires_at)
            except (SQLAlchemyError, CoordinatorError) as e:
                logger.error(f"Sweep of sheet {sheet_id} failed, retrying next pass: {e}")
                continue
            if rotation is not None:
                rotations.append(rotation)

        if rotations:
            event = (
                BrainwritingEvent.SHEET_FINISHED
                if all(r.finished for r in rotations)
                else BrainwritingEvent.SHEET_ROTATED
            )
            await self.publisher.publish(board_id, event)
        return rotations

    async def _reclaim(self, sheet_id: int, holder: str, expires_at) -> Optional[Rotation]:
        async with transaction(self.session_factory) as db:
            if not await self.leases.claim_expired(db, sheet_id, holder, expires_at):
                return None
            sheet = await db.get(Sheet, sheet_id, populate_existing=True)
            board = await db.get(Board, sheet.board_id)

            if self.policy == "purge":
                await db.execute(
                    delete(Contribution)
                    .where(Contribution.sheet_id == sheet_id, Contribution.author == holder)
                    .execution_options(synchronize_session=False)
                )
                await self.registry.remove(db, board.id, holder)
                logger.info(f"Purged silent participant {holder} from board {board.id}")
            elif holder not in await self.scheduler.authors(db, sheet_id):
                db.add(Contribution(
                    board_id=board.id,
                    sheet_id=sheet_id,
                    author=holder,
                    row_index=await free_row_index(db, sheet_id, board.max_participants),
                    values_json=Contribution.encode([None] * self.columns),
                ))
                await db.flush()
                logger.info(f"Recorded blank turn for {holder} on sheet {sheet_id}")

            return await self.scheduler.advance(db, board, sheet)

    async def sweep_all(self) -> int:
        """Sweep every started board that still has unfinished sheets."""
        async with transaction(self.session_factory) as db:
            result = await db.execute(
                select(Board.id)
                .join(Sheet, Sheet.board_id == Board.id)
                .where(Board.started_at.is_not(None), Sheet.finished_at.is_(None))
                .distinct()
            )
            board_ids = list(result.scalars().all())

        swept = 0
        for board_id in board_ids:
            try:
                swept += len(await self.sweep(board_id))
            except (SQLAlchemyError, CoordinatorError) as e:
                logger.error(f"Sweep of board {board_id} failed: {e}")
        return swept

    async def run_forever(self, interval_seconds: float) -> None:
        """Timer loop for the app lifespan; cancelled on shutdown."""
        logger.info(f"Abandonment sweeper running every {interval_seconds}s")
        while True:
            await asyncio.sleep(interval_seconds)
            try:
                swept = await self.sweep_all()
            except Exception:
                logger.exception("Sweep pass failed, retrying next interval")
                continue
            if swept:
                logger.info(f"Sweeper reclaimed {swept} sheet(s)")
