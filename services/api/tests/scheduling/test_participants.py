"""
Participant resolver tests.

Validates:
  - collaborative trips default every active circle member to traveler
  - hosted trips only count explicit participant rows
  - left / removed overrides drop a user from the active set
  - left circle members never count, even with an active override
  - resolution is idempotent
"""

from __future__ import annotations

from services.api.scheduling.participants import (
    ParticipantStatus,
    counts_as_active,
    resolve_participants,
    status_from_record,
)
from services.api.tests.helpers.factories import (
    BOB,
    CARA,
    LEADER,
    OUTSIDER,
    make_hosted_trip,
    make_membership,
    make_participant,
    make_trip,
)


def _members(*user_ids, **overrides):
    return [make_membership(u, **overrides) for u in user_ids]


class TestStatusPolicy:
    def test_missing_record_is_no_record(self):
        assert status_from_record(None) is ParticipantStatus.NO_RECORD

    def test_row_without_status_is_active(self):
        assert status_from_record(make_participant(BOB, status=None)) is ParticipantStatus.ACTIVE

    def test_no_record_counts_only_for_collaborative(self):
        assert counts_as_active("collaborative", ParticipantStatus.NO_RECORD)
        assert not counts_as_active("hosted", ParticipantStatus.NO_RECORD)

    def test_left_and_removed_never_count(self):
        for trip_type in ("collaborative", "hosted"):
            assert not counts_as_active(trip_type, ParticipantStatus.LEFT)
            assert not counts_as_active(trip_type, ParticipantStatus.REMOVED)


class TestCollaborative:
    def test_all_members_active_without_records(self):
        roster = resolve_participants(make_trip(), _members(LEADER, BOB, CARA), [])
        assert roster.active_user_ids == {LEADER, BOB, CARA}
        assert roster.status_of(BOB) is ParticipantStatus.NO_RECORD

    def test_left_override_removes_member(self):
        roster = resolve_participants(
            make_trip(),
            _members(LEADER, BOB, CARA),
            [make_participant(BOB, status="left")],
        )
        assert roster.active_user_ids == {LEADER, CARA}
        assert roster.status_of(BOB) is ParticipantStatus.LEFT

    def test_removed_override_removes_member(self):
        roster = resolve_participants(
            make_trip(), _members(LEADER, BOB), [make_participant(BOB, status="removed")]
        )
        assert not roster.is_active(BOB)

    def test_member_who_left_circle_is_not_active(self):
        memberships = _members(LEADER) + [make_membership(BOB, status="left")]
        roster = resolve_participants(make_trip(), memberships, [make_participant(BOB)])
        assert roster.active_user_ids == {LEADER}

    def test_override_for_non_member_is_reported_not_active(self):
        roster = resolve_participants(make_trip(), _members(LEADER), [make_participant(OUTSIDER)])
        assert not roster.is_active(OUTSIDER)
        assert roster.status_of(OUTSIDER) is ParticipantStatus.ACTIVE

    def test_records_for_other_trips_are_ignored(self):
        roster = resolve_participants(
            make_trip(), _members(LEADER, BOB), [make_participant(BOB, trip_id="trip-2", status="left")]
        )
        assert roster.is_active(BOB)


class TestHosted:
    def test_only_explicit_participants_count(self):
        roster = resolve_participants(
            make_hosted_trip(), _members(LEADER, BOB, CARA), [make_participant(LEADER)]
        )
        assert roster.active_user_ids == {LEADER}
        assert roster.status_of(BOB) is ParticipantStatus.NO_RECORD

    def test_left_participant_not_active(self):
        roster = resolve_participants(
            make_hosted_trip(),
            _members(LEADER, BOB),
            [make_participant(LEADER), make_participant(BOB, status="left")],
        )
        assert roster.active_user_ids == {LEADER}


class TestRoster:
    def test_resolution_is_idempotent(self):
        args = (make_trip(), _members(LEADER, BOB, CARA), [make_participant(CARA, status="left")])
        assert resolve_participants(*args) == resolve_participants(*args)

    def test_others_excludes_self(self):
        roster = resolve_participants(make_trip(), _members(LEADER, BOB), [])
        assert roster.others(LEADER) == {BOB}

    def test_to_dict_is_sorted(self):
        roster = resolve_participants(make_trip(), _members(CARA, LEADER, BOB), [])
        data = roster.to_dict()
        assert data["activeTravelerIds"] == sorted([CARA, LEADER, BOB])
        assert data["participantStatuses"][BOB] == "no_record"
