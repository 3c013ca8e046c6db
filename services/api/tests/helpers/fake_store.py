"""
InMemoryTripStore -- dict-backed TripStore for service and router tests.

Conditional updates follow the same compare-and-set contract as
SqlTripStore: every expected field must still hold (None means "is None")
or nothing changes and False is returned.

Usage:
    store = InMemoryTripStore()
    store.add_circle(make_circle(), members=["u-leader", "u-bob"])
    store.add_trip(make_trip(created_by="u-leader"))
    service = SchedulingService(store, settings)
"""

from __future__ import annotations

import copy
from dataclasses import replace
from typing import Any

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


def _matches(obj: Any, expect: dict[str, Any] | None) -> bool:
    return all(getattr(obj, key) == value for key, value in (expect or {}).items())


class InMemoryTripStore:
    def __init__(self) -> None:
        self.trips: dict[str, TripRecord] = {}
        self.circles: dict[str, CircleRecord] = {}
        self.memberships: list[MembershipRecord] = []
        self.participants: dict[tuple[str, str], ParticipantRecord] = {}
        self.availability: list[AvailabilityRecord] = []
        self.windows: list[WindowRecord] = []
        self.supports: list[SupportRecord] = []
        self.votes: dict[tuple[str, str], VoteRecord] = {}
        self.date_picks: dict[tuple[str, str], DatePickRecord] = {}
        self.commits = 0

    # -- seeding ----------------------------------------------------------

    def add_circle(self, circle: CircleRecord, members: list[str] | None = None) -> CircleRecord:
        self.circles[circle.id] = circle
        for user_id in members or []:
            role = "owner" if user_id == circle.owner_id else "member"
            self.memberships.append(MembershipRecord(circle.id, user_id, role=role))
        return circle

    def add_trip(self, trip: TripRecord) -> TripRecord:
        self.trips[trip.id] = trip
        return trip

    def add_participant(self, record: ParticipantRecord) -> ParticipantRecord:
        self.participants[(record.trip_id, record.user_id)] = record
        return record

    def add_window(self, window: WindowRecord, supporters: list[str] | None = None) -> WindowRecord:
        self.windows.append(window)
        for user_id in supporters or []:
            self.supports.append(SupportRecord(window.id, window.trip_id, user_id))
        return window

    # -- trip -------------------------------------------------------------

    async def get_trip(self, trip_id: str) -> TripRecord | None:
        trip = self.trips.get(trip_id)
        return copy.deepcopy(trip) if trip is not None else None

    async def insert_trip(self, trip: TripRecord) -> None:
        self.trips[trip.id] = copy.deepcopy(trip)

    async def update_trip(self, trip_id, changes, *, expect=None) -> bool:
        trip = self.trips.get(trip_id)
        if trip is None or not _matches(trip, expect):
            return False
        self.trips[trip_id] = replace(trip, **changes)
        return True

    # -- circle -----------------------------------------------------------

    async def get_circle(self, circle_id: str) -> CircleRecord | None:
        return self.circles.get(circle_id)

    async def list_memberships(self, circle_id: str) -> list[MembershipRecord]:
        return [m for m in self.memberships if m.circle_id == circle_id]

    # -- participants -----------------------------------------------------

    async def list_participants(self, trip_id: str) -> list[ParticipantRecord]:
        return [copy.copy(p) for (tid, _), p in self.participants.items() if tid == trip_id]

    async def upsert_participant(self, record: ParticipantRecord) -> None:
        self.participants[(record.trip_id, record.user_id)] = copy.copy(record)

    # -- availability -----------------------------------------------------

    async def list_availability(self, trip_id: str) -> list[AvailabilityRecord]:
        return [a for a in self.availability if a.trip_id == trip_id]

    async def replace_availability(self, trip_id, user_id, rows) -> None:
        self.availability = [
            a for a in self.availability if not (a.trip_id == trip_id and a.user_id == user_id)
        ]
        self.availability.extend(rows)

    # -- windows + support ------------------------------------------------

    async def list_windows(self, trip_id: str) -> list[WindowRecord]:
        return [copy.copy(w) for w in self.windows if w.trip_id == trip_id]

    async def get_window(self, trip_id: str, window_id: str) -> WindowRecord | None:
        for window in self.windows:
            if window.id == window_id and window.trip_id == trip_id:
                return copy.copy(window)
        return None

    async def insert_window(self, window: WindowRecord, author_support: SupportRecord) -> None:
        self.windows.append(copy.copy(window))
        self.supports.append(author_support)

    async def update_window(self, window_id, changes, *, expect=None) -> bool:
        for idx, window in enumerate(self.windows):
            if window.id == window_id:
                if not _matches(window, expect):
                    return False
                self.windows[idx] = replace(window, **changes)
                return True
        return False

    async def list_supports(self, trip_id: str) -> list[SupportRecord]:
        return [s for s in self.supports if s.trip_id == trip_id]

    async def add_support(self, support: SupportRecord) -> bool:
        for s in self.supports:
            if s.window_id == support.window_id and s.user_id == support.user_id:
                return False
        self.supports.append(support)
        return True

    async def remove_support(self, window_id: str, user_id: str) -> bool:
        before = len(self.supports)
        self.supports = [
            s for s in self.supports if not (s.window_id == window_id and s.user_id == user_id)
        ]
        return len(self.supports) < before

    # -- votes + picks ----------------------------------------------------

    async def list_votes(self, trip_id: str) -> list[VoteRecord]:
        return [v for (tid, _), v in self.votes.items() if tid == trip_id]

    async def upsert_vote(self, vote: VoteRecord) -> None:
        self.votes[(vote.trip_id, vote.user_id)] = vote

    async def list_date_picks(self, trip_id: str) -> list[DatePickRecord]:
        return [p for (tid, _), p in self.date_picks.items() if tid == trip_id]

    async def upsert_date_picks(self, record: DatePickRecord) -> None:
        self.date_picks[(record.trip_id, record.user_id)] = record

    async def commit(self) -> None:
        self.commits += 1
