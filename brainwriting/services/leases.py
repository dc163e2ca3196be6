"""
LeaseManager: time-bounded exclusive write access to a sheet.

Every state change is a single conditional UPDATE against the ``sheets`` row,
so two workers racing for the same sheet cannot both win, whether they run in
one process or on different machines.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from brainwriting.config import settings
from brainwriting.database import utcnow
from brainwriting.exceptions import LeaseDenied, NotFound, SheetFinished
from brainwriting.models.sheet import Sheet

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LeaseToken:
    sheet_id: int
    holder: str
    expires_at: datetime


def is_held(sheet: Sheet, now: datetime) -> bool:
    return (
        sheet.holder is not None
        and sheet.lease_expires_at is not None
        and sheet.lease_expires_at > now
    )


def is_held_by_other(sheet: Sheet, identity: str, now: datetime) -> bool:
    """True iff someone other than ``identity`` holds an unexpired lease."""
    return is_held(sheet, now) and sheet.holder != identity


class LeaseManager:
    def __init__(
        self,
        ttl: Optional[timedelta] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.ttl = ttl or timedelta(minutes=settings.LEASE_TTL_MINUTES)
        self._clock = clock

    def now(self) -> datetime:
        return self._clock()

    async def _load(self, db: AsyncSession, sheet_id: int) -> Sheet:
        sheet = await db.get(Sheet, sheet_id, populate_existing=True)
        if sheet is None:
            raise NotFound("Sheet not found.")
        return sheet

    async def try_acquire(
        self,
        db: AsyncSession,
        sheet_id: int,
        identity: str,
        ttl: Optional[timedelta] = None,
    ) -> LeaseToken:
        """
        Take (or renew) the lease for ``identity``.

        Succeeds when the sheet is unheld, already held by ``identity``, or
        the current lease has expired. Raises ``LeaseDenied`` otherwise and
        ``SheetFinished`` once the sheet completed its rotation.
        """
        now = self.now()
        expires_at = now + (ttl or self.ttl)
        result = await db.execute(
            update(Sheet)
            .where(
                Sheet.id == sheet_id,
                Sheet.finished_at.is_(None),
                or_(
                    Sheet.holder.is_(None),
                    Sheet.holder == identity,
                    Sheet.lease_expires_at.is_(None),
                    Sheet.lease_expires_at <= now,
                ),
            )
            .values(holder=identity, lease_expires_at=expires_at)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            return LeaseToken(sheet_id=sheet_id, holder=identity, expires_at=expires_at)

        sheet = await self._load(db, sheet_id)
        if sheet.is_finished:
            raise SheetFinished()
        logger.debug(f"Lease on sheet {sheet_id} denied to {identity}; held by {sheet.holder}")
        raise LeaseDenied()

    async def hand_off(
        self,
        db: AsyncSession,
        sheet_id: int,
        from_identity: str,
        to_identity: str,
    ) -> LeaseToken:
        """Move a lease the caller holds to the next participant with a fresh expiry."""
        expires_at = self.now() + self.ttl
        result = await db.execute(
            update(Sheet)
            .where(Sheet.id == sheet_id, Sheet.holder == from_identity, Sheet.finished_at.is_(None))
            .values(holder=to_identity, lease_expires_at=expires_at)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise LeaseDenied()
        return LeaseToken(sheet_id=sheet_id, holder=to_identity, expires_at=expires_at)

    async def release(self, db: AsyncSession, sheet_id: int) -> None:
        """Clear holder and expiry unconditionally."""
        await db.execute(
            update(Sheet)
            .where(Sheet.id == sheet_id)
            .values(holder=None, lease_expires_at=None)
            .execution_options(synchronize_session=False)
        )

    async def claim_expired(
        self,
        db: AsyncSession,
        sheet_id: int,
        holder: str,
        expires_at: datetime,
    ) -> bool:
        """
        Release a lease only if it is still the exact expired lease observed.

        Returns False when another worker already handled it or the holder
        renewed in the meantime.
        """
        result = await db.execute(
            update(Sheet)
            .where(
                Sheet.id == sheet_id,
                Sheet.holder == holder,
                Sheet.lease_expires_at == expires_at,
                Sheet.lease_expires_at <= self.now(),
                Sheet.finished_at.is_(None),
            )
            .values(holder=None, lease_expires_at=None)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def finish(self, db: AsyncSession, sheet_id: int) -> None:
        """Release permanently; no acquisition succeeds afterwards."""
        await db.execute(
            update(Sheet)
            .where(Sheet.id == sheet_id, Sheet.finished_at.is_(None))
            .values(holder=None, lease_expires_at=None, finished_at=self.now())
            .execution_options(synchronize_session=False)
        )

    async def is_held_by_other(self, db: AsyncSession, sheet_id: int, identity: str) -> bool:
        sheet = await self._load(db, sheet_id)
        return is_held_by_other(sheet, identity, self.now())

    async def expired_sheets(self, db: AsyncSession, board_id: int) -> list:
        """Sheets of ``board_id`` whose lease has lapsed without a hand-off."""
        result = await db.execute(
            select(Sheet).where(
                Sheet.board_id == board_id,
                Sheet.finished_at.is_(None),
                Sheet.holder.is_not(None),
                Sheet.lease_expires_at <= self.now(),
            )
            .order_by(Sheet.id)
        )
        return list(result.scalars().all())
