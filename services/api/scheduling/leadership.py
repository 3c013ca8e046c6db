"""
Leadership rules and the two-phase transfer handshake.

  initiate(new)   current leader only -> PendingTransfer{from, to, createdAt}
  accept()        recipient only; re-checks the recipient is still active and
                  the initiator is still leader, else the transfer is void
  decline()       recipient only, clears the pending record
  cancel()        initiator only, clears the pending record

At most one transfer is outstanding per trip. A pending transfer whose
recipient has stopped being an active traveler is void: reads report it as
invalid and accept() clears it.
"""

from __future__ import annotations

from datetime import datetime

from services.api.scheduling.errors import ConflictError, ForbiddenError, ValidationError
from services.api.scheduling.participants import ParticipantRoster
from services.api.scheduling.records import CircleRecord, PendingTransfer, TripRecord


def is_trip_leader(trip: TripRecord, user_id: str) -> bool:
    return trip.created_by == user_id


def is_leader_or_circle_owner(trip: TripRecord, circle: CircleRecord | None, user_id: str) -> bool:
    if is_trip_leader(trip, user_id):
        return True
    return circle is not None and circle.owner_id == user_id


def require_trip_leader(trip: TripRecord, user_id: str, message: str) -> None:
    if not is_trip_leader(trip, user_id):
        raise ForbiddenError(message, code="LEADER_ONLY")


def require_leader_or_owner(
    trip: TripRecord, circle: CircleRecord | None, user_id: str, message: str
) -> None:
    if not is_leader_or_circle_owner(trip, circle, user_id):
        raise ForbiddenError(message, code="LEADER_ONLY")


def transfer_is_valid(trip: TripRecord, roster: ParticipantRoster) -> bool:
    pending = trip.pending_leadership_transfer
    if pending is None:
        return False
    return pending.from_user_id == trip.created_by and roster.is_active(pending.to_user_id)


def validate_transfer_target(
    trip: TripRecord,
    roster: ParticipantRoster,
    actor_id: str,
    new_leader_id: str | None,
) -> str:
    """Common checks for initiate() and leave-with-transfer. Returns the target id."""
    if not new_leader_id:
        raise ValidationError("newLeaderId is required")
    require_trip_leader(trip, actor_id, "Only the trip leader can transfer leadership")
    if new_leader_id == actor_id:
        raise ValidationError("Cannot transfer leadership to yourself")
    if not roster.others(actor_id):
        raise ConflictError(
            "You are the only traveler on this trip; delete the trip instead",
            code="SOLE_TRAVELER",
        )
    if not roster.is_active(new_leader_id):
        raise ForbiddenError("New leader must be an active traveler", code="NOT_ACTIVE_TRAVELER")
    return new_leader_id


def new_pending_transfer(from_user_id: str, to_user_id: str, now: datetime) -> PendingTransfer:
    return PendingTransfer(
        from_user_id=from_user_id,
        to_user_id=to_user_id,
        created_at=now.isoformat(),
    )
