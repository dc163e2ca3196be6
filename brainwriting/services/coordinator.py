"""
BoardCoordinator: the facade every other subsystem calls.

It composes the registry, lease manager, rotation scheduler and sweeper into
the join / start / write / complete flows. Each public operation runs in its
own transaction; realtime notifications go out after the commit.
"""

import logging
import secrets
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Sequence

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from brainwriting.config import settings
from brainwriting.database import async_session, utcnow
from brainwriting.exceptions import (
    AlreadyStarted,
    BoardNotComplete,
    BoardNotStarted,
    InvalidContribution,
    InviteInactive,
    LeaseDenied,
    NotAParticipant,
    NotEnoughParticipants,
    NotFound,
)
from brainwriting.models.board import Board, BoardMode
from brainwriting.models.contribution import Contribution
from brainwriting.models.participant import Participant
from brainwriting.models.sheet import Sheet
from brainwriting.schemas.board import BoardOut, BoardResults, BoardStatus, ParticipantOut
from brainwriting.schemas.sheet import ContributionOut, LeaseStatus, SheetOut, SheetWithRows
from brainwriting.services.leases import LeaseManager, is_held, is_held_by_other
from brainwriting.services.notifications import BrainwritingEvent, NotificationPublisher
from brainwriting.services.registry import ParticipantRegistry
from brainwriting.services.rotation import Rotation, RotationScheduler
from brainwriting.services.store import transaction
from brainwriting.services.sweeper import AbandonmentSweeper

logger = logging.getLogger(__name__)


class BoardCoordinator:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] = async_session,
        *,
        clock: Callable[[], datetime] = utcnow,
        lease_ttl: Optional[timedelta] = None,
        abandon_policy: Optional[str] = None,
        sweep_on_write: Optional[bool] = None,
        max_participants: Optional[int] = None,
        min_participants: Optional[int] = None,
        columns: Optional[int] = None,
        cell_max_length: Optional[int] = None,
        publisher: Optional[NotificationPublisher] = None,
    ):
        self.session_factory = session_factory
        self.max_participants = max_participants or settings.MAX_PARTICIPANTS
        self.min_participants = min_participants or settings.MIN_PARTICIPANTS
        self.columns = columns or settings.SHEET_COLUMNS
        self.cell_max_length = cell_max_length or settings.CELL_MAX_LENGTH
        self.sweep_on_write = settings.SWEEP_ON_WRITE if sweep_on_write is None else sweep_on_write
        self.publisher = publisher or NotificationPublisher()

        self.registry = ParticipantRegistry()
        self.leases = LeaseManager(ttl=lease_ttl, clock=clock)
        self.scheduler = RotationScheduler(self.registry, self.leases)
        self.sweeper = AbandonmentSweeper(
            session_factory,
            self.leases,
            self.scheduler,
            self.registry,
            policy=abandon_policy,
            columns=self.columns,
            publisher=self.publisher,
        )

    # ═══════════════════════════════════════════════════════════════
    #  Helpers
    # ═══════════════════════════════════════════════════════════════

    async def _board(self, db: AsyncSession, board_id: int) -> Board:
        board = await db.get(Board, board_id, populate_existing=True)
        if board is None:
            raise NotFound("Board not found.")
        return board

    async def _sheet(self, db: AsyncSession, sheet_id: int) -> Sheet:
        sheet = await db.get(Sheet, sheet_id, populate_existing=True)
        if sheet is None:
            raise NotFound("Sheet not found.")
        return sheet

    async def _sheets(self, db: AsyncSession, board_id: int) -> List[Sheet]:
        result = await db.execute(
            select(Sheet).where(Sheet.board_id == board_id).order_by(Sheet.id)
        )
        return list(result.scalars().all())

    async def _rows(self, db: AsyncSession, sheet_id: int) -> List[Contribution]:
        result = await db.execute(
            select(Contribution)
            .where(Contribution.sheet_id == sheet_id)
            .order_by(Contribution.row_index)
        )
        return list(result.scalars().all())

    def _normalize(self, values: Sequence[Optional[str]]) -> List[Optional[str]]:
        """Pad to the column count; whitespace-only cells are stored as blank."""
        if len(values) > self.columns:
            raise InvalidContribution(f"A row has at most {self.columns} ideas.")
        cells = []
        for value in values:
            text = value.strip() if value is not None else ""
            if len(text) > self.cell_max_length:
                raise InvalidContribution(f"Ideas are limited to {self.cell_max_length} characters.")
            cells.append(text or None)
        return cells + [None] * (self.columns - len(cells))

    async def _offer_free_sheets(self, db: AsyncSession, board: Board) -> List[str]:
        """Hand unheld or lapsed sheets to the next eligible participant."""
        now = self.leases.now()
        assigned = []
        for sheet in await self._sheets(db, board.id):
            if sheet.is_finished or is_held(sheet, now):
                continue
            upcoming = await self.scheduler.next_holder_for(db, board, sheet)
            if upcoming is None:
                continue
            try:
                await self.leases.try_acquire(db, sheet.id, upcoming.identity)
            except LeaseDenied:
                continue
            assigned.append(upcoming.identity)
        return assigned

    async def _publish(self, board_id: int, event: BrainwritingEvent) -> None:
        await self.publisher.publish(board_id, event)

    # ═══════════════════════════════════════════════════════════════
    #  Board lifecycle
    # ═══════════════════════════════════════════════════════════════

    async def create_board(
        self,
        owner_id: str,
        title: str,
        theme_name: str,
        mode: BoardMode = BoardMode.Team,
        description: Optional[str] = None,
        owner_name: Optional[str] = None,
    ) -> Board:
        """
        Create a board with its owner as the first participant.

        A single-sheet board is started immediately: its one sheet exists
        from creation and the owner receives the first lease.
        """
        async with transaction(self.session_factory) as db:
            board = Board(
                owner_id=owner_id,
                mode=mode,
                title=title,
                theme_name=theme_name,
                description=description,
                invite_token=secrets.token_urlsafe(24),
                is_invite_active=True,
                min_participants=self.min_participants,
                max_participants=self.max_participants,
                participant_count=0,
            )
            db.add(board)
            await db.flush()

            await self.registry.join(db, board, owner_id, owner_name)

            if mode == BoardMode.Single:
                board.started_at = self.leases.now()
                db.add(Sheet(board_id=board.id))
                await db.flush()
                await self._offer_free_sheets(db, board)

            await db.refresh(board)
        logger.info(f"Board {board.id} ({mode.value}) created by {owner_id}")
        return board

    async def delete_board(self, board_id: int, identity: str) -> None:
        """Owner-only; removes the board and every child row."""
        async with transaction(self.session_factory) as db:
            board = await self._board(db, board_id)
            if board.owner_id != identity:
                raise NotAParticipant("Only the board owner can delete it.")
            await db.execute(delete(Contribution).where(Contribution.board_id == board_id))
            await db.execute(delete(Sheet).where(Sheet.board_id == board_id))
            await db.execute(delete(Participant).where(Participant.board_id == board_id))
            await db.delete(board)
        logger.info(f"Board {board_id} deleted by {identity}")

    async def set_invite_active(self, board_id: int, identity: str, active: bool) -> Board:
        async with transaction(self.session_factory) as db:
            board = await self._board(db, board_id)
            if board.owner_id != identity:
                raise NotAParticipant("Only the board owner can change the invite link.")
            board.is_invite_active = active
            await db.flush()
            await db.refresh(board)
        return board

    # ═══════════════════════════════════════════════════════════════
    #  Join
    # ═══════════════════════════════════════════════════════════════

    async def join(
        self,
        board_id: int,
        identity: str,
        display_name: Optional[str] = None,
        invite_token: Optional[str] = None,
    ) -> Participant:
        """
        Admit ``identity`` to the board. Idempotent for the same identity.

        In single-sheet mode a newcomer may immediately receive the lease
        when the sheet is free and it is their turn.
        """
        try:
            async with transaction(self.session_factory) as db:
                board = await self._board(db, board_id)
                if invite_token is not None and not board.is_invite_active:
                    if await self.registry.get(db, board.id, identity) is None:
                        raise InviteInactive()
                participant, created = await self.registry.join(db, board, identity, display_name)
                if created and board.mode == BoardMode.Single:
                    await self._offer_free_sheets(db, board)
                await db.refresh(participant)
        except IntegrityError:
            # A concurrent join for the same identity committed first.
            async with transaction(self.session_factory) as db:
                participant = await self.registry.get(db, board_id, identity)
            if participant is None:
                raise
            return participant

        if created:
            await self._publish(board_id, BrainwritingEvent.USER_JOINED)
        return participant

    async def join_by_token(
        self,
        token: str,
        identity: str,
        display_name: Optional[str] = None,
    ) -> Participant:
        async with transaction(self.session_factory) as db:
            result = await db.execute(select(Board.id).where(Board.invite_token == token))
            board_id = result.scalar_one_or_none()
        if board_id is None:
            raise NotFound("Invite link not found.")
        return await self.join(board_id, identity, display_name, invite_token=token)

    async def count(self, board_id: int) -> int:
        async with transaction(self.session_factory) as db:
            await self._board(db, board_id)
            return await self.registry.count(db, board_id)

    async def is_full(self, board_id: int) -> bool:
        async with transaction(self.session_factory) as db:
            board = await self._board(db, board_id)
            return await self.registry.is_full(db, board)

    async def list_participants(self, board_id: int) -> List[ParticipantOut]:
        async with transaction(self.session_factory) as db:
            await self._board(db, board_id)
            participants = await self.registry.ordered(db, board_id)
            return [ParticipantOut.model_validate(p) for p in participants]

    # ═══════════════════════════════════════════════════════════════
    #  Start
    # ═══════════════════════════════════════════════════════════════

    async def start_team_board(self, board_id: int, identity: Optional[str] = None) -> List[Sheet]:
        """
        One-shot: create one sheet per participant, each initially held by
        the participant it originates from.

        The ``started_at`` stamp is set with a conditional update, so a second
        start (or a join racing with the start) loses cleanly.
        """
        async with transaction(self.session_factory) as db:
            board = await self._board(db, board_id)
            if identity is not None:
                await self.registry.require(db, board_id, identity)
            if board.mode != BoardMode.Team or board.is_started:
                raise AlreadyStarted()
            if board.participant_count < board.min_participants:
                raise NotEnoughParticipants(
                    f"At least {board.min_participants} participants are needed to start."
                )

            now = self.leases.now()
            result = await db.execute(
                update(Board)
                .where(
                    Board.id == board_id,
                    Board.started_at.is_(None),
                    Board.participant_count >= Board.min_participants,
                )
                .values(started_at=now)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise AlreadyStarted()

            sheets = []
            expires_at = now + self.leases.ttl
            for participant in await self.registry.ordered(db, board_id):
                sheet = Sheet(
                    board_id=board_id,
                    origin_participant_id=participant.id,
                    holder=participant.identity,
                    lease_expires_at=expires_at,
                )
                db.add(sheet)
                sheets.append(sheet)
            await db.flush()
            for sheet in sheets:
                await db.refresh(sheet)

        logger.info(f"Board {board_id} started with {len(sheets)} sheets")
        await self._publish(board_id, BrainwritingEvent.BRAINWRITING_STARTED)
        return sheets

    # ═══════════════════════════════════════════════════════════════
    #  Write
    # ═══════════════════════════════════════════════════════════════

    async def submit_contribution(
        self,
        sheet_id: int,
        identity: str,
        row_index: int,
        values: Sequence[Optional[str]],
    ) -> Contribution:
        """
        Store ``identity``'s row and pass the sheet to the next participant.

        The caller must hold the lease, or the sheet must be free or lapsed,
        in which case it is acquired for the caller first. When nobody is left
        to write, the sheet is finished and its lease released for good.
        """
        if self.sweep_on_write:
            async with transaction(self.session_factory) as db:
                board_id = (await self._sheet(db, sheet_id)).board_id
            await self.sweeper.sweep(board_id, except_holder=identity)

        async with transaction(self.session_factory) as db:
            sheet = await self._sheet(db, sheet_id)
            board = await self._board(db, sheet.board_id)
            # Sheets are only created by a start (or with a single-sheet board),
            # so this guards rows inserted outside the coordinator.
            if not board.is_started:
                raise BoardNotStarted()
            await self.registry.require(db, board.id, identity)
            cells = self._normalize(values)

            await self.leases.try_acquire(db, sheet.id, identity)

            if row_index >= board.max_participants:
                raise InvalidContribution(f"Row index must be below {board.max_participants}.")
            rows = await self._rows(db, sheet.id)
            own = next((r for r in rows if r.author == identity), None)
            occupied = next((r for r in rows if r.row_index == row_index), None)
            if occupied is not None and occupied.author != identity:
                raise InvalidContribution("That row belongs to another participant.")
            if own is not None and own.row_index != row_index:
                raise InvalidContribution("You have already written a row on this sheet.")

            if own is None:
                contribution = Contribution(
                    board_id=board.id,
                    sheet_id=sheet.id,
                    author=identity,
                    row_index=row_index,
                    values_json=Contribution.encode(cells),
                )
                db.add(contribution)
            else:
                contribution = own
                contribution.values = cells
            await db.flush()

            rotation = await self.scheduler.advance(db, board, sheet, from_identity=identity)
            await db.refresh(contribution)

        await self._announce(board.id, rotation)
        return contribution

    async def _announce(self, board_id: int, rotation: Rotation) -> None:
        if rotation.finished:
            await self._publish(board_id, BrainwritingEvent.SHEET_FINISHED)
        else:
            await self._publish(board_id, BrainwritingEvent.SHEET_ROTATED)

    async def sweep(self, board_id: int) -> List[Rotation]:
        async with transaction(self.session_factory) as db:
            await self._board(db, board_id)
        return await self.sweeper.sweep(board_id)

    # ═══════════════════════════════════════════════════════════════
    #  Reads
    # ═══════════════════════════════════════════════════════════════

    async def _complete(self, db: AsyncSession, board: Board) -> bool:
        if not board.is_started:
            return False
        sheets = await self._sheets(db, board.id)
        return bool(sheets) and all(sheet.is_finished for sheet in sheets)

    async def is_board_complete(self, board_id: int) -> bool:
        async with transaction(self.session_factory) as db:
            board = await self._board(db, board_id)
            return await self._complete(db, board)

    async def get_board_status(self, board_id: int) -> BoardStatus:
        async with transaction(self.session_factory) as db:
            board = await self._board(db, board_id)
            participants = await self.registry.ordered(db, board_id)
            sheets = await self._sheets(db, board_id)
            return BoardStatus(
                board=BoardOut.model_validate(board),
                participants=[ParticipantOut.model_validate(p) for p in participants],
                started=board.is_started,
                complete=bool(sheets) and board.is_started and all(s.is_finished for s in sheets),
                sheets=[SheetOut.model_validate(s) for s in sheets],
            )

    async def get_sheet(self, sheet_id: int, identity: str) -> SheetWithRows:
        """Participant-only view of one sheet and the rows written so far."""
        async with transaction(self.session_factory) as db:
            sheet = await self._sheet(db, sheet_id)
            await self.registry.require(db, sheet.board_id, identity)
            rows = await self._rows(db, sheet.id)
            return SheetWithRows(
                sheet=SheetOut.model_validate(sheet),
                rows=[ContributionOut.model_validate(r) for r in rows],
            )

    async def lease_status(self, sheet_id: int, identity: str) -> LeaseStatus:
        async with transaction(self.session_factory) as db:
            sheet = await self._sheet(db, sheet_id)
            return LeaseStatus(
                sheet_id=sheet.id,
                holder=sheet.holder,
                lease_expires_at=sheet.lease_expires_at,
                held_by_other=is_held_by_other(sheet, identity, self.leases.now()),
                finished=sheet.is_finished,
            )

    async def get_results(self, board_id: int, identity: str) -> BoardResults:
        """Every sheet with its rows; visible to participants once all sheets finished."""
        async with transaction(self.session_factory) as db:
            board = await self._board(db, board_id)
            await self.registry.require(db, board_id, identity)
            if not await self._complete(db, board):
                raise BoardNotComplete()
            participants = await self.registry.ordered(db, board_id)
            sheets = []
            for sheet in await self._sheets(db, board_id):
                rows = await self._rows(db, sheet.id)
                sheets.append(SheetWithRows(
                    sheet=SheetOut.model_validate(sheet),
                    rows=[ContributionOut.model_validate(r) for r in rows],
                ))
            return BoardResults(
                board=BoardOut.model_validate(board),
                participants=[ParticipantOut.model_validate(p) for p in participants],
                sheets=sheets,
            )
