"""Transaction helper shared by the coordinator and the sweeper."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from brainwriting.exceptions import StoreUnavailable

logger = logging.getLogger(__name__)


@asynccontextmanager
async def transaction(session_factory: async_sessionmaker[AsyncSession]) -> AsyncIterator[AsyncSession]:
    """
    Open a session and a transaction that commits on clean exit.

    Integrity violations propagate unchanged so callers can resolve
    duplicate-key races; other driver failures become ``StoreUnavailable``.
    """
    try:
        async with session_factory() as db:
            async with db.begin():
                yield db
    except IntegrityError:
        raise
    except DBAPIError as exc:
        logger.error(f"Store failure: {exc}")
        raise StoreUnavailable() from exc
