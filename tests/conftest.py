"""Shared test fixtures for the brainwriting coordinator.

Each test gets its own file-backed SQLite database (so concurrent sessions
really contend for the same store), a controllable clock, and a publisher
that records events instead of sending them.
"""

from datetime import datetime, timedelta
from typing import List, Sequence, Tuple

import pytest

import brainwriting.models  # noqa: F401
from brainwriting.database import Base, build_engine, build_session_factory
from brainwriting.models.board import Board, BoardMode
from brainwriting.services.coordinator import BoardCoordinator
from brainwriting.services.notifications import BrainwritingEvent, NotificationPublisher

LEASE_TTL = timedelta(minutes=10)


class FakeClock:
    """Naive-UTC clock that only moves when told to."""

    def __init__(self, start: datetime = datetime(2026, 1, 5, 9, 0, 0)):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current += timedelta(**kwargs)
        return self.current


class RecordingPublisher(NotificationPublisher):
    def __init__(self):
        super().__init__(url="")
        self.events: List[Tuple[int, BrainwritingEvent]] = []

    async def publish(self, board_id: int, event: BrainwritingEvent) -> None:
        self.events.append((board_id, event))

    def types(self) -> List[BrainwritingEvent]:
        return [event for _, event in self.events]


@pytest.fixture
async def engine(tmp_path):
    eng = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'brainwriting-test.db'}")
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def publisher() -> RecordingPublisher:
    return RecordingPublisher()


@pytest.fixture
def make_coordinator(session_factory, clock, publisher):
    def _make(**kwargs) -> BoardCoordinator:
        kwargs.setdefault("clock", clock)
        kwargs.setdefault("publisher", publisher)
        kwargs.setdefault("lease_ttl", LEASE_TTL)
        kwargs.setdefault("abandon_policy", "blank")
        kwargs.setdefault("sweep_on_write", True)
        kwargs.setdefault("max_participants", 6)
        kwargs.setdefault("min_participants", 2)
        kwargs.setdefault("columns", 3)
        kwargs.setdefault("cell_max_length", 100)
        return BoardCoordinator(session_factory, **kwargs)
    return _make


@pytest.fixture
def coordinator(make_coordinator) -> BoardCoordinator:
    return make_coordinator()


# ------------------------------------------------------------------
# Shared helpers
# ------------------------------------------------------------------

async def make_team_board(
    coordinator: BoardCoordinator,
    members: Sequence[str] = ("A", "B", "C"),
) -> Board:
    """Team board owned by the first member, with the rest joined in order."""
    board = await coordinator.create_board(
        owner_id=members[0],
        title="Reduce onboarding time",
        theme_name="Onboarding",
        mode=BoardMode.Team,
        owner_name=members[0],
    )
    for member in members[1:]:
        await coordinator.join(board.id, member, member)
    return board


async def holders(coordinator: BoardCoordinator, board_id: int) -> List[str]:
    status = await coordinator.get_board_status(board_id)
    return [sheet.holder for sheet in status.sheets]
