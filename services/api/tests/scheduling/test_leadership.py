"""Leadership rule and transfer target tests."""

from __future__ import annotations

import pytest

from services.api.scheduling.errors import ConflictError, ForbiddenError, ValidationError
from services.api.scheduling.leadership import (
    is_leader_or_circle_owner,
    new_pending_transfer,
    transfer_is_valid,
    validate_transfer_target,
)
from services.api.scheduling.participants import ParticipantRoster
from services.api.tests.helpers.factories import (
    BOB,
    CARA,
    FIXED_NOW,
    LEADER,
    OWNER,
    make_circle,
    make_pending,
    make_trip,
)


def _roster(*active):
    return ParticipantRoster("trip-1", "collaborative", frozenset(active))


class TestRoles:
    def test_owner_can_administer(self):
        trip = make_trip()
        assert is_leader_or_circle_owner(trip, make_circle(), LEADER)
        assert is_leader_or_circle_owner(trip, make_circle(), OWNER)
        assert not is_leader_or_circle_owner(trip, make_circle(), BOB)
        assert not is_leader_or_circle_owner(trip, None, OWNER)


class TestTransferTarget:
    def test_target_required(self):
        with pytest.raises(ValidationError, match="newLeaderId is required"):
            validate_transfer_target(make_trip(), _roster(LEADER, BOB), LEADER, None)

    def test_only_leader(self):
        with pytest.raises(ForbiddenError) as exc:
            validate_transfer_target(make_trip(), _roster(LEADER, BOB), BOB, CARA)
        assert exc.value.code == "LEADER_ONLY"

    def test_not_self(self):
        with pytest.raises(ValidationError, match="yourself"):
            validate_transfer_target(make_trip(), _roster(LEADER, BOB), LEADER, LEADER)

    def test_sole_traveler(self):
        with pytest.raises(ConflictError) as exc:
            validate_transfer_target(make_trip(), _roster(LEADER), LEADER, BOB)
        assert exc.value.code == "SOLE_TRAVELER"

    def test_target_must_be_active(self):
        with pytest.raises(ForbiddenError) as exc:
            validate_transfer_target(make_trip(), _roster(LEADER, BOB), LEADER, CARA)
        assert exc.value.code == "NOT_ACTIVE_TRAVELER"

    def test_valid(self):
        assert validate_transfer_target(make_trip(), _roster(LEADER, BOB), LEADER, BOB) == BOB


class TestPending:
    def test_valid_while_both_sides_hold(self):
        trip = make_trip(pending_leadership_transfer=make_pending(LEADER, BOB))
        assert transfer_is_valid(trip, _roster(LEADER, BOB))

    def test_void_when_recipient_left(self):
        trip = make_trip(pending_leadership_transfer=make_pending(LEADER, BOB))
        assert not transfer_is_valid(trip, _roster(LEADER, CARA))

    def test_void_when_initiator_no_longer_leads(self):
        trip = make_trip(created_by=CARA, pending_leadership_transfer=make_pending(LEADER, BOB))
        assert not transfer_is_valid(trip, _roster(LEADER, BOB, CARA))

    def test_no_pending(self):
        assert not transfer_is_valid(make_trip(), _roster(LEADER, BOB))

    def test_new_pending_to_dict(self):
        pending = new_pending_transfer(LEADER, BOB, FIXED_NOW)
        assert pending.to_dict() == {
            "fromUserId": LEADER,
            "toUserId": BOB,
            "createdAt": FIXED_NOW.isoformat(),
        }
