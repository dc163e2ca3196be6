"""Abandoned-lease recovery under both abandonment policies."""

import asyncio
import contextlib
import logging

import pytest
from sqlalchemy.exc import OperationalError

from brainwriting.exceptions import NotAParticipant
from brainwriting.services.notifications import BrainwritingEvent

from tests.conftest import holders, make_team_board


async def _started(coordinator, members=("A", "B", "C")):
    board = await make_team_board(coordinator, members)
    sheets = await coordinator.start_team_board(board.id)
    return board, sheets


async def test_nothing_to_sweep_while_leases_are_live(coordinator, clock, publisher):
    board, _ = await _started(coordinator)
    clock.advance(minutes=9)
    assert await coordinator.sweep(board.id) == []
    assert BrainwritingEvent.SHEET_ROTATED not in publisher.types()


class TestBlankPolicy:
    async def test_silent_holders_get_blank_rows(self, coordinator, clock, publisher):
        board, (s1, _, _) = await _started(coordinator)
        clock.advance(minutes=11)

        rotations = await coordinator.sweep(board.id)
        assert [r.next_holder for r in rotations] == ["B", "C", "A"]
        assert await holders(coordinator, board.id) == ["B", "C", "A"]
        assert publisher.types()[-1] == BrainwritingEvent.SHEET_ROTATED

        lease = await coordinator.lease_status(s1.id, "B")
        assert lease.holder == "B"
        assert not lease.held_by_other

        await coordinator.submit_contribution(s1.id, "B", 1, ["picked up"])
        view = await coordinator.get_sheet(s1.id, "A")
        assert [(r.row_index, r.author) for r in view.rows] == [(0, "A"), (1, "B")]
        assert view.rows[0].values == [None, None, None]
        assert view.rows[0].is_blank and not view.rows[1].is_blank

    async def test_second_sweep_finds_nothing(self, coordinator, clock):
        board, _ = await _started(coordinator)
        clock.advance(minutes=11)
        assert len(await coordinator.sweep(board.id)) == 3
        assert await coordinator.sweep(board.id) == []

    async def test_blank_turn_can_finish_a_sheet(self, coordinator, clock, publisher):
        board, (s1, s2) = await _started(coordinator, ["A", "B"])
        await coordinator.submit_contribution(s1.id, "A", 0, ["idea"])
        clock.advance(minutes=11)

        rotations = await coordinator.sweep(board.id)
        by_sheet = {r.sheet_id: r for r in rotations}
        assert by_sheet[s1.id].finished
        assert by_sheet[s2.id].next_holder == "A"

        view = await coordinator.get_sheet(s1.id, "A")
        assert view.sheet.is_finished
        assert [r.author for r in view.rows] == ["A", "B"]

    async def test_blank_row_takes_lowest_free_index(self, coordinator, clock):
        board, (s1, _, _) = await _started(coordinator)
        await coordinator.submit_contribution(s1.id, "A", 5, ["last row"])
        clock.advance(minutes=11)

        await coordinator.sweep(board.id)
        view = await coordinator.get_sheet(s1.id, "A")
        assert [(r.row_index, r.author) for r in view.rows] == [(0, "B"), (5, "A")]
        assert all(r.row_index < board.max_participants for r in view.rows)

    async def test_board_completes_through_sweeps(self, coordinator, clock):
        board, _ = await _started(coordinator)
        for _ in range(3):
            clock.advance(minutes=11)
            await coordinator.sweep(board.id)
        assert await coordinator.is_board_complete(board.id)
        results = await coordinator.get_results(board.id, "C")
        assert all(len(sheet.rows) == 3 for sheet in results.sheets)


class TestPurgePolicy:
    async def test_silent_holder_is_removed(self, make_coordinator, clock):
        coordinator = make_coordinator(abandon_policy="purge")
        board, (s1, s2, s3) = await _started(coordinator)

        # Keep B and C active so only A's original sheet lapses.
        clock.advance(minutes=5)
        await coordinator.submit_contribution(s2.id, "B", 0, ["b"])
        await coordinator.submit_contribution(s3.id, "C", 0, ["c"])
        clock.advance(minutes=6)

        rotations = await coordinator.sweep(board.id)
        assert [(r.sheet_id, r.next_holder) for r in rotations] == [(s1.id, "B")]
        assert await coordinator.count(board.id) == 2
        assert [p.identity for p in await coordinator.list_participants(board.id)] == ["B", "C"]

        with pytest.raises(NotAParticipant):
            await coordinator.submit_contribution(s3.id, "A", 1, ["late"])

    async def test_purged_holder_drops_out_of_later_sheets(self, make_coordinator, clock):
        coordinator = make_coordinator(abandon_policy="purge")
        board, (s1, s2, s3) = await _started(coordinator)
        clock.advance(minutes=5)
        await coordinator.submit_contribution(s2.id, "B", 0, ["b"])
        await coordinator.submit_contribution(s3.id, "C", 0, ["c"])
        clock.advance(minutes=6)
        await coordinator.sweep(board.id)
        # C closes s2; with A gone there is nobody left to write on it.
        await coordinator.submit_contribution(s2.id, "C", 1, ["c"])

        # s3 is still leased to A until it lapses too.
        clock.advance(minutes=5)
        rotations = await coordinator.sweep(board.id)
        assert [(r.sheet_id, r.next_holder) for r in rotations] == [(s3.id, "B")]
        assert await coordinator.count(board.id) == 2

    async def test_purge_can_finish_a_sheet(self, make_coordinator, clock):
        coordinator = make_coordinator(abandon_policy="purge")
        board, (s1, s2) = await _started(coordinator, ["A", "B"])
        await coordinator.submit_contribution(s1.id, "A", 0, ["a"])
        clock.advance(minutes=11)

        rotations = await coordinator.sweep(board.id)
        by_sheet = {r.sheet_id: r for r in rotations}
        assert by_sheet[s1.id].finished
        assert by_sheet[s2.id].next_holder == "A"
        assert await coordinator.count(board.id) == 1

        view = await coordinator.get_sheet(s1.id, "A")
        assert [r.author for r in view.rows] == ["A"]


async def test_sweep_all_covers_every_started_board(coordinator, clock):
    first, _ = await _started(coordinator)
    second, _ = await _started(coordinator, ["D", "E"])
    waiting = await make_team_board(coordinator, ["F", "G"])
    clock.advance(minutes=11)

    assert await coordinator.sweeper.sweep_all() == 5
    assert await holders(coordinator, first.id) == ["B", "C", "A"]
    assert await holders(coordinator, second.id) == ["E", "D"]
    assert (await coordinator.get_board_status(waiting.id)).sheets == []


def test_unknown_policy_is_rejected(make_coordinator):
    with pytest.raises(ValueError):
        make_coordinator(abandon_policy="skip")


async def test_failed_sheet_is_retried_on_next_sweep(coordinator, clock, monkeypatch, caplog):
    board, (s1, s2, s3) = await _started(coordinator)
    clock.advance(minutes=11)

    claim = coordinator.leases.claim_expired
    failed = []

    async def flaky_claim(db, sheet_id, holder, expires_at):
        if not failed:
            failed.append(sheet_id)
            raise OperationalError("UPDATE sheets", {}, Exception("database is locked"))
        return await claim(db, sheet_id, holder, expires_at)

    monkeypatch.setattr(coordinator.leases, "claim_expired", flaky_claim)

    with caplog.at_level(logging.ERROR, logger="brainwriting.services.sweeper"):
        rotations = await coordinator.sweep(board.id)
    assert [r.sheet_id for r in rotations] == [s2.id, s3.id]
    assert f"Sweep of sheet {s1.id} failed" in caplog.text

    lease = await coordinator.lease_status(s1.id, "A")
    assert lease.holder == "A"
    assert (await coordinator.get_sheet(s1.id, "A")).rows == []

    rotations = await coordinator.sweep(board.id)
    assert [(r.sheet_id, r.next_holder) for r in rotations] == [(s1.id, "B")]


async def test_timer_loop_survives_a_failed_pass(coordinator, monkeypatch, caplog):
    calls = []
    second_pass = asyncio.Event()

    async def flaky_sweep_all():
        calls.append(len(calls))
        if len(calls) == 1:
            raise RuntimeError("publisher misconfigured")
        second_pass.set()
        return 0

    monkeypatch.setattr(coordinator.sweeper, "sweep_all", flaky_sweep_all)

    with caplog.at_level(logging.ERROR, logger="brainwriting.services.sweeper"):
        task = asyncio.create_task(coordinator.sweeper.run_forever(0))
        await asyncio.wait_for(second_pass.wait(), timeout=5)
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    assert len(calls) >= 2
    assert "Sweep pass failed" in caplog.text
