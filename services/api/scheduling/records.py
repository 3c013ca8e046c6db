"""
Plain records for the trip aggregate and its child rows.

The store layer maps these to and from persistence; the engine only ever
sees these dataclasses. Dates are ISO YYYY-MM-DD strings, timestamps are
timezone-aware datetimes. to_dict() emits the camelCase API shape.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

TRIP_TYPES = ("collaborative", "hosted")
SCHEDULING_MODES = (None, "date_windows", "top3_heatmap", "funnel")
AVAILABILITY_STATUSES = ("available", "maybe", "unavailable")


def _iso(ts: datetime | None) -> str | None:
    return ts.isoformat() if ts else None


# ---------------------------------------------------------------------------
# Trip aggregate
# ---------------------------------------------------------------------------

@dataclass
class PendingTransfer:
    """Outstanding leadership hand-off. Stored as JSON on the trip row."""
    from_user_id: str
    to_user_id: str
    created_at: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "fromUserId": self.from_user_id,
            "toUserId": self.to_user_id,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any] | None) -> "PendingTransfer | None":
        if not d:
            return None
        return cls(
            from_user_id=d["fromUserId"],
            to_user_id=d["toUserId"],
            created_at=d.get("createdAt", ""),
        )


@dataclass
class TripRecord:
    id: str
    circle_id: str
    name: str
    type: str
    created_by: str
    status: str | None = None
    trip_status: str = "ACTIVE"
    scheduling_mode: str | None = None
    description: str | None = None
    start_date: str | None = None
    end_date: str | None = None
    start_bound: str | None = None
    end_bound: str | None = None
    duration: int | None = None
    trip_length_days: int | None = None
    locked_start_date: str | None = None
    locked_end_date: str | None = None
    locked_at: datetime | None = None
    lock_source: str | None = None
    proposed_window_id: str | None = None
    proposed_at: datetime | None = None
    proposed_by: str | None = None
    proposal_override: bool = False
    pending_leadership_transfer: PendingTransfer | None = None
    canceled_at: datetime | None = None
    canceled_by: str | None = None
    completed_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_collaborative(self) -> bool:
        return self.type == "collaborative"

    @property
    def is_hosted(self) -> bool:
        return self.type == "hosted"

    @property
    def dates_locked(self) -> bool:
        return self.status == "locked" or bool(self.locked_start_date)

    @property
    def planning_start(self) -> str | None:
        """Soft planning window start, falling back to the trip start date."""
        return self.start_bound or self.start_date

    @property
    def planning_end(self) -> str | None:
        return self.end_bound or self.end_date

    @property
    def window_length(self) -> int | None:
        return self.trip_length_days or self.duration

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "circleId": self.circle_id,
            "name": self.name,
            "description": self.description,
            "type": self.type,
            "schedulingMode": self.scheduling_mode,
            "status": self.status,
            "tripStatus": self.trip_status,
            "startDate": self.start_date,
            "endDate": self.end_date,
            "startBound": self.start_bound,
            "endBound": self.end_bound,
            "duration": self.duration,
            "tripLengthDays": self.trip_length_days,
            "lockedStartDate": self.locked_start_date,
            "lockedEndDate": self.locked_end_date,
            "lockedAt": _iso(self.locked_at),
            "lockSource": self.lock_source,
            "proposedWindowId": self.proposed_window_id,
            "proposedAt": _iso(self.proposed_at),
            "proposedBy": self.proposed_by,
            "proposalOverride": self.proposal_override,
            "createdBy": self.created_by,
            "pendingLeadershipTransfer": (
                self.pending_leadership_transfer.to_dict()
                if self.pending_leadership_transfer else None
            ),
            "canceledAt": _iso(self.canceled_at),
            "canceledBy": self.canceled_by,
            "completedAt": _iso(self.completed_at),
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }


@dataclass
class CircleRecord:
    id: str
    owner_id: str
    name: str = ""


@dataclass
class MembershipRecord:
    circle_id: str
    user_id: str
    role: str = "member"
    status: str | None = "active"


@dataclass
class ParticipantRecord:
    """Per-(trip, user) override row. Never deleted."""
    trip_id: str
    user_id: str
    status: str | None = "active"
    id: str | None = None
    joined_at: datetime | None = None
    left_at: datetime | None = None
    removed_at: datetime | None = None
    removed_by: str | None = None


# ---------------------------------------------------------------------------
# Scheduling child rows
# ---------------------------------------------------------------------------

@dataclass
class AvailabilityRecord:
    trip_id: str
    user_id: str
    kind: str  # "day" | "weekly" | "broad"
    status: str
    day: str | None = None
    start_date: str | None = None
    end_date: str | None = None
    sort_order: int = 0  # submission order within the payload
    id: str | None = None
    created_at: datetime | None = None


@dataclass
class WindowRecord:
    id: str
    trip_id: str
    proposed_by: str
    precision: str  # "exact" | "approx" | "unstructured"
    start_date: str | None = None
    end_date: str | None = None
    source_text: str | None = None
    created_at: datetime | None = None
    concretized_at: datetime | None = None
    concretized_by: str | None = None

    @property
    def is_concrete(self) -> bool:
        return bool(self.start_date and self.end_date)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "tripId": self.trip_id,
            "proposedBy": self.proposed_by,
            "startDate": self.start_date,
            "endDate": self.end_date,
            "precision": self.precision,
            "sourceText": self.source_text,
            "createdAt": _iso(self.created_at),
            "concretizedAt": _iso(self.concretized_at),
            "concretizedBy": self.concretized_by,
        }


@dataclass
class SupportRecord:
    window_id: str
    trip_id: str
    user_id: str
    created_at: datetime | None = None


@dataclass
class VoteRecord:
    trip_id: str
    user_id: str
    option_key: str
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class DatePickRecord:
    trip_id: str
    user_id: str
    picks: list[dict[str, Any]] = field(default_factory=list)
    updated_at: datetime | None = None
