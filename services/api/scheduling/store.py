"""
Storage contract for the trip aggregate.

SchedulingService only talks to this protocol. Production wires in
db.store.SqlTripStore; tests use an in-memory fake.

Conditional updates (update_trip / update_window with `expect`) are
compare-and-set: the change applies only if every expected field still
holds, and the call reports whether a row changed. An expected value of
None means "IS NULL".

Writes become durable on commit(); a request that raises before commit()
leaves nothing behind.
"""

from __future__ import annotations

from typing import Any, Protocol

from services.api.scheduling.records import (
    AvailabilityRecord,
    CircleRecord,
    DatePickRecord,
    MembershipRecord,
    ParticipantRecord,
    SupportRecord,
    TripRecord,
    VoteRecord,
    WindowRecord,
)


class TripStore(Protocol):
    # Trip aggregate
    async def get_trip(self, trip_id: str) -> TripRecord | None: ...

    async def insert_trip(self, trip: TripRecord) -> None: ...

    async def update_trip(
        self,
        trip_id: str,
        changes: dict[str, Any],
        *,
        expect: dict[str, Any] | None = None,
    ) -> bool: ...

    # Circle (read-only)
    async def get_circle(self, circle_id: str) -> CircleRecord | None: ...

    async def list_memberships(self, circle_id: str) -> list[MembershipRecord]: ...

    # Participants
    async def list_participants(self, trip_id: str) -> list[ParticipantRecord]: ...

    async def upsert_participant(self, record: ParticipantRecord) -> None: ...

    # Availability
    async def list_availability(self, trip_id: str) -> list[AvailabilityRecord]: ...

    async def replace_availability(
        self, trip_id: str, user_id: str, rows: list[AvailabilityRecord]
    ) -> None: ...

    # Date windows + support
    async def list_windows(self, trip_id: str) -> list[WindowRecord]: ...

    async def get_window(self, trip_id: str, window_id: str) -> WindowRecord | None: ...

    async def insert_window(self, window: WindowRecord, author_support: SupportRecord) -> None: ...

    async def update_window(
        self,
        window_id: str,
        changes: dict[str, Any],
        *,
        expect: dict[str, Any] | None = None,
    ) -> bool: ...

    async def list_supports(self, trip_id: str) -> list[SupportRecord]: ...

    async def add_support(self, support: SupportRecord) -> bool: ...

    async def remove_support(self, window_id: str, user_id: str) -> bool: ...

    # Legacy votes + heatmap picks
    async def list_votes(self, trip_id: str) -> list[VoteRecord]: ...

    async def upsert_vote(self, vote: VoteRecord) -> None: ...

    async def list_date_picks(self, trip_id: str) -> list[DatePickRecord]: ...

    async def upsert_date_picks(self, record: DatePickRecord) -> None: ...

    async def commit(self) -> None: ...
