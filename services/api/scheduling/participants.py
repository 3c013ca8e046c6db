"""
Participant Lifecycle Resolver: who counts as an active traveler.

Two overlapping sources feed the roster:
  - circle memberships (collaborative trips only)
  - per-(trip, user) participant override records

Policy by trip type:
  collaborative  circle population is the default. A member is active unless
                 an override says LEFT or REMOVED. No record = active.
  hosted         participation is opt-in. Only users with an override whose
                 status is active (or missing on an existing row) count.
                 No record = not a participant.

The asymmetry is load-bearing: callers must never test `status or "active"`
themselves, they ask the roster.

Pure: no I/O. Recomputed from source records on every request.
"""

from __future__ import annotations

import enum
from collections.abc import Iterable
from dataclasses import dataclass, field

from services.api.scheduling.records import (
    MembershipRecord,
    ParticipantRecord,
    TripRecord,
)


class ParticipantStatus(str, enum.Enum):
    ACTIVE = "active"
    LEFT = "left"
    REMOVED = "removed"
    NO_RECORD = "no_record"


def status_from_record(record: ParticipantRecord | None) -> ParticipantStatus:
    """Map a raw override row to its tagged status. A row with no status is active."""
    if record is None:
        return ParticipantStatus.NO_RECORD
    if record.status == "left":
        return ParticipantStatus.LEFT
    if record.status == "removed":
        return ParticipantStatus.REMOVED
    return ParticipantStatus.ACTIVE


def counts_as_active(trip_type: str, status: ParticipantStatus) -> bool:
    """Single policy function for both trip types."""
    if status is ParticipantStatus.ACTIVE:
        return True
    if status is ParticipantStatus.NO_RECORD:
        return trip_type == "collaborative"
    return False


def active_circle_member_ids(memberships: Iterable[MembershipRecord]) -> set[str]:
    return {m.user_id for m in memberships if m.status != "left"}


@dataclass(frozen=True)
class ParticipantRoster:
    trip_id: str
    trip_type: str
    active_user_ids: frozenset[str]
    statuses: dict[str, ParticipantStatus] = field(default_factory=dict)

    def is_active(self, user_id: str | None) -> bool:
        return user_id is not None and user_id in self.active_user_ids

    def status_of(self, user_id: str) -> ParticipantStatus:
        return self.statuses.get(user_id, ParticipantStatus.NO_RECORD)

    def others(self, user_id: str) -> frozenset[str]:
        return self.active_user_ids - {user_id}

    def to_dict(self) -> dict:
        return {
            "activeTravelerIds": sorted(self.active_user_ids),
            "participantStatuses": {
                uid: status.value for uid, status in sorted(self.statuses.items())
            },
        }


def resolve_participants(
    trip: TripRecord,
    memberships: Iterable[MembershipRecord],
    records: Iterable[ParticipantRecord],
) -> ParticipantRoster:
    """Derive the effective active-traveler set for a trip."""
    by_user: dict[str, ParticipantRecord] = {}
    for rec in records:
        if rec.trip_id == trip.id:
            by_user[rec.user_id] = rec

    statuses: dict[str, ParticipantStatus] = {}
    active: set[str] = set()

    if trip.is_collaborative:
        members = active_circle_member_ids(memberships)
        for user_id in members:
            status = status_from_record(by_user.get(user_id))
            statuses[user_id] = status
            if counts_as_active(trip.type, status):
                active.add(user_id)
        # Override rows for non-members are reported but never make them active
        for user_id, rec in by_user.items():
            statuses.setdefault(user_id, status_from_record(rec))
    else:
        for user_id, rec in by_user.items():
            status = status_from_record(rec)
            statuses[user_id] = status
            if counts_as_active(trip.type, status):
                active.add(user_id)

    return ParticipantRoster(
        trip_id=trip.id,
        trip_type=trip.type,
        active_user_ids=frozenset(active),
        statuses=statuses,
    )
