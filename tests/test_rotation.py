"""Tests for rotation order, fairness, and termination."""

from brainwriting.models.participant import Participant
from brainwriting.services.rotation import next_holder, rotation_order


def _people(*identities):
    return [Participant(id=i + 1, board_id=1, identity=identity) for i, identity in enumerate(identities)]


class TestRotationOrder:
    def test_join_order_without_origin(self):
        people = _people("A", "B", "C")
        assert [p.identity for p in rotation_order(people)] == ["A", "B", "C"]

    def test_starts_at_origin_and_wraps(self):
        people = _people("A", "B", "C")
        assert [p.identity for p in rotation_order(people, origin_participant_id=2)] == ["B", "C", "A"]

    def test_unsorted_input(self):
        people = list(reversed(_people("A", "B", "C")))
        assert [p.identity for p in rotation_order(people, origin_participant_id=3)] == ["C", "A", "B"]

    def test_removed_origin_still_anchors_order(self):
        people = [p for p in _people("A", "B", "C") if p.identity != "B"]
        assert [p.identity for p in rotation_order(people, origin_participant_id=2)] == ["C", "A"]


class TestNextHolder:
    def test_first_without_contribution(self):
        people = _people("A", "B", "C")
        assert next_holder(people, {"A"}, origin_participant_id=1).identity == "B"

    def test_order_not_write_order(self):
        people = _people("A", "B", "C")
        # C wrote out of turn; B is still owed the sheet before anyone else.
        assert next_holder(people, {"A", "C"}, origin_participant_id=1).identity == "B"

    def test_complete_when_everyone_wrote(self):
        people = _people("A", "B", "C")
        assert next_holder(people, {"A", "B", "C"}, origin_participant_id=2) is None

    def test_removed_participant_is_skipped(self):
        people = [p for p in _people("A", "B", "C") if p.identity != "B"]
        assert next_holder(people, {"A"}, origin_participant_id=1).identity == "C"

    def test_authors_who_left_do_not_block(self):
        people = _people("A", "C")
        assert next_holder(people, {"A", "B", "C"}) is None

    def test_terminates_after_n_turns(self):
        people = _people("A", "B", "C", "D", "E", "F")
        authors = set()
        turns = []
        for _ in range(len(people)):
            upcoming = next_holder(people, authors, origin_participant_id=4)
            turns.append(upcoming.identity)
            authors.add(upcoming.identity)
        assert next_holder(people, authors, origin_participant_id=4) is None
        assert turns == ["D", "E", "F", "A", "B", "C"]
