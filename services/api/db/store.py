"""
SqlTripStore -- TripStore backed by an SA AsyncSession.

Records use snake_case attributes; the tables use camelCase columns.
_camel() maps one to the other so the scheduling engine never sees ORM rows.

Nothing here commits except commit(). Conditional updates are a single
UPDATE ... WHERE <expected values> and report rowcount > 0, so two racing
requests cannot both win a lock, a proposal, or a leadership swap.
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import and_, delete, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from services.api.db.models import (
    Availability,
    Circle,
    CircleMembership,
    DatePick,
    DateWindow,
    Trip,
    TripParticipant,
    Vote,
    WindowSupport,
)
from services.api.scheduling.records import (
    AvailabilityRecord,
    CircleRecord,
    DatePickRecord,
    MembershipRecord,
    ParticipantRecord,
    PendingTransfer,
    SupportRecord,
    TripRecord,
    VoteRecord,
    WindowRecord,
)

logger = logging.getLogger(__name__)


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)


def _trip_values(changes: dict[str, Any]) -> dict[str, Any]:
    values = {}
    for key, value in changes.items():
        if isinstance(value, PendingTransfer):
            value = value.to_dict()
        values[_camel(key)] = value
    return values


def _where(model, expect: dict[str, Any] | None) -> list:
    clauses = []
    for key, value in (expect or {}).items():
        column = getattr(model, _camel(key))
        clauses.append(column.is_(None) if value is None else column == value)
    return clauses


# ---------------------------------------------------------------------------
# Row -> record
# ---------------------------------------------------------------------------

def _to_trip(row: Trip) -> TripRecord:
    return TripRecord(
        id=row.id,
        circle_id=row.circleId,
        name=row.name,
        description=row.description,
        type=row.type,
        created_by=row.createdBy,
        status=row.status,
        trip_status=row.tripStatus or "ACTIVE",
        scheduling_mode=row.schedulingMode,
        start_date=row.startDate,
        end_date=row.endDate,
        start_bound=row.startBound,
        end_bound=row.endBound,
        duration=row.duration,
        trip_length_days=row.tripLengthDays,
        locked_start_date=row.lockedStartDate,
        locked_end_date=row.lockedEndDate,
        locked_at=row.lockedAt,
        lock_source=row.lockSource,
        proposed_window_id=row.proposedWindowId,
        proposed_at=row.proposedAt,
        proposed_by=row.proposedBy,
        proposal_override=bool(row.proposalOverride),
        pending_leadership_transfer=PendingTransfer.from_dict(row.pendingLeadershipTransfer),
        canceled_at=row.canceledAt,
        canceled_by=row.canceledBy,
        completed_at=row.completedAt,
        created_at=row.createdAt,
        updated_at=row.updatedAt,
    )


def _to_participant(row: TripParticipant) -> ParticipantRecord:
    return ParticipantRecord(
        trip_id=row.tripId,
        user_id=row.userId,
        status=row.status,
        id=row.id,
        joined_at=row.joinedAt,
        left_at=row.leftAt,
        removed_at=row.removedAt,
        removed_by=row.removedBy,
    )


def _to_availability(row: Availability) -> AvailabilityRecord:
    return AvailabilityRecord(
        trip_id=row.tripId,
        user_id=row.userId,
        kind=row.kind,
        status=row.status,
        day=row.day,
        start_date=row.startDate,
        end_date=row.endDate,
        sort_order=row.sortOrder or 0,
        id=row.id,
        created_at=row.createdAt,
    )


def _to_window(row: DateWindow) -> WindowRecord:
    return WindowRecord(
        id=row.id,
        trip_id=row.tripId,
        proposed_by=row.proposedBy,
        precision=row.precision,
        start_date=row.startDate,
        end_date=row.endDate,
        source_text=row.sourceText,
        created_at=row.createdAt,
        concretized_at=row.concretizedAt,
        concretized_by=row.concretizedBy,
    )


class SqlTripStore:
    """TripStore over one request-scoped AsyncSession."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    # ------------------------------------------------------------------
    # Trip
    # ------------------------------------------------------------------

    async def get_trip(self, trip_id: str) -> TripRecord | None:
        result = await self._session.execute(select(Trip).where(Trip.id == trip_id))
        row = result.scalars().first()
        return _to_trip(row) if row is not None else None

    async def insert_trip(self, trip: TripRecord) -> None:
        values = _trip_values({
            "id": trip.id,
            "circle_id": trip.circle_id,
            "name": trip.name,
            "description": trip.description,
            "type": trip.type,
            "created_by": trip.created_by,
            "status": trip.status,
            "trip_status": trip.trip_status,
            "scheduling_mode": trip.scheduling_mode,
            "start_date": trip.start_date,
            "end_date": trip.end_date,
            "start_bound": trip.start_bound,
            "end_bound": trip.end_bound,
            "duration": trip.duration,
            "trip_length_days": trip.trip_length_days,
            "locked_start_date": trip.locked_start_date,
            "locked_end_date": trip.locked_end_date,
            "locked_at": trip.locked_at,
            "lock_source": trip.lock_source,
            "proposal_override": trip.proposal_override,
            "created_at": trip.created_at,
            "updated_at": trip.updated_at,
        })
        await self._session.execute(pg_insert(Trip).values(**values))

    async def update_trip(
        self,
        trip_id: str,
        changes: dict[str, Any],
        *,
        expect: dict[str, Any] | None = None,
    ) -> bool:
        stmt = (
            update(Trip)
            .where(and_(Trip.id == trip_id, *_where(Trip, expect)))
            .values(**_trip_values(changes))
        )
        result = await self._session.execute(stmt)
        if result.rowcount == 0 and expect:
            logger.info("trip_cas_miss trip=%s expect=%s", trip_id, sorted(expect))
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Circle
    # ------------------------------------------------------------------

    async def get_circle(self, circle_id: str) -> CircleRecord | None:
        result = await self._session.execute(select(Circle).where(Circle.id == circle_id))
        row = result.scalars().first()
        if row is None:
            return None
        return CircleRecord(id=row.id, owner_id=row.ownerId, name=row.name)

    async def list_memberships(self, circle_id: str) -> list[MembershipRecord]:
        result = await self._session.execute(
            select(CircleMembership).where(CircleMembership.circleId == circle_id)
        )
        return [
            MembershipRecord(circle_id=r.circleId, user_id=r.userId, role=r.role, status=r.status)
            for r in result.scalars().all()
        ]

    # ------------------------------------------------------------------
    # Participants
    # ------------------------------------------------------------------

    async def list_participants(self, trip_id: str) -> list[ParticipantRecord]:
        result = await self._session.execute(
            select(TripParticipant).where(TripParticipant.tripId == trip_id)
        )
        return [_to_participant(r) for r in result.scalars().all()]

    async def upsert_participant(self, record: ParticipantRecord) -> None:
        values = {
            "status": record.status,
            "joinedAt": record.joined_at,
            "leftAt": record.left_at,
            "removedAt": record.removed_at,
            "removedBy": record.removed_by,
        }
        stmt = (
            pg_insert(TripParticipant)
            .values(id=record.id, tripId=record.trip_id, userId=record.user_id, **values)
            .on_conflict_do_update(index_elements=["tripId", "userId"], set_=values)
        )
        await self._session.execute(stmt)

    # ------------------------------------------------------------------
    # Availability
    # ------------------------------------------------------------------

    async def list_availability(self, trip_id: str) -> list[AvailabilityRecord]:
        result = await self._session.execute(
            select(Availability)
            .where(Availability.tripId == trip_id)
            .order_by(Availability.userId, Availability.sortOrder)
        )
        return [_to_availability(r) for r in result.scalars().all()]

    async def replace_availability(
        self, trip_id: str, user_id: str, rows: list[AvailabilityRecord]
    ) -> None:
        await self._session.execute(
            delete(Availability).where(
                and_(Availability.tripId == trip_id, Availability.userId == user_id)
            )
        )
        for row in rows:
            self._session.add(Availability(
                id=row.id,
                tripId=row.trip_id,
                userId=row.user_id,
                kind=row.kind,
                status=row.status,
                day=row.day,
                startDate=row.start_date,
                endDate=row.end_date,
                sortOrder=row.sort_order,
                createdAt=row.created_at,
            ))
        await self._session.flush()

    # ------------------------------------------------------------------
    # Date windows + support
    # ------------------------------------------------------------------

    async def list_windows(self, trip_id: str) -> list[WindowRecord]:
        result = await self._session.execute(
            select(DateWindow).where(DateWindow.tripId == trip_id).order_by(DateWindow.createdAt)
        )
        return [_to_window(r) for r in result.scalars().all()]

    async def get_window(self, trip_id: str, window_id: str) -> WindowRecord | None:
        result = await self._session.execute(
            select(DateWindow).where(and_(DateWindow.id == window_id, DateWindow.tripId == trip_id))
        )
        row = result.scalars().first()
        return _to_window(row) if row is not None else None

    async def insert_window(self, window: WindowRecord, author_support: SupportRecord) -> None:
        self._session.add(DateWindow(
            id=window.id,
            tripId=window.trip_id,
            proposedBy=window.proposed_by,
            precision=window.precision,
            startDate=window.start_date,
            endDate=window.end_date,
            sourceText=window.source_text,
            createdAt=window.created_at,
        ))
        self._session.add(WindowSupport(
            windowId=author_support.window_id,
            tripId=author_support.trip_id,
            userId=author_support.user_id,
            createdAt=author_support.created_at,
        ))
        await self._session.flush()

    async def update_window(
        self,
        window_id: str,
        changes: dict[str, Any],
        *,
        expect: dict[str, Any] | None = None,
    ) -> bool:
        stmt = (
            update(DateWindow)
            .where(and_(DateWindow.id == window_id, *_where(DateWindow, expect)))
            .values(**{_camel(k): v for k, v in changes.items()})
        )
        result = await self._session.execute(stmt)
        return result.rowcount > 0

    async def list_supports(self, trip_id: str) -> list[SupportRecord]:
        result = await self._session.execute(
            select(WindowSupport).where(WindowSupport.tripId == trip_id)
        )
        return [
            SupportRecord(window_id=r.windowId, trip_id=r.tripId, user_id=r.userId, created_at=r.createdAt)
            for r in result.scalars().all()
        ]

    async def add_support(self, support: SupportRecord) -> bool:
        stmt = (
            pg_insert(WindowSupport)
            .values(
                windowId=support.window_id,
                tripId=support.trip_id,
                userId=support.user_id,
                createdAt=support.created_at,
            )
            .on_conflict_do_nothing(index_elements=["windowId", "userId"])
        )
        result = await self._session.execute(stmt)
        return result.rowcount > 0

    async def remove_support(self, window_id: str, user_id: str) -> bool:
        result = await self._session.execute(
            delete(WindowSupport).where(
                and_(WindowSupport.windowId == window_id, WindowSupport.userId == user_id)
            )
        )
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Votes + heatmap picks
    # ------------------------------------------------------------------

    async def list_votes(self, trip_id: str) -> list[VoteRecord]:
        result = await self._session.execute(select(Vote).where(Vote.tripId == trip_id))
        return [
            VoteRecord(
                trip_id=r.tripId,
                user_id=r.userId,
                option_key=r.optionKey,
                created_at=r.createdAt,
                updated_at=r.updatedAt,
            )
            for r in result.scalars().all()
        ]

    async def upsert_vote(self, vote: VoteRecord) -> None:
        stmt = (
            pg_insert(Vote)
            .values(
                tripId=vote.trip_id,
                userId=vote.user_id,
                optionKey=vote.option_key,
                createdAt=vote.created_at,
                updatedAt=vote.updated_at,
            )
            .on_conflict_do_update(
                index_elements=["tripId", "userId"],
                set_={"optionKey": vote.option_key, "updatedAt": vote.updated_at},
            )
        )
        await self._session.execute(stmt)

    async def list_date_picks(self, trip_id: str) -> list[DatePickRecord]:
        result = await self._session.execute(select(DatePick).where(DatePick.tripId == trip_id))
        return [
            DatePickRecord(trip_id=r.tripId, user_id=r.userId, picks=list(r.picks or []), updated_at=r.updatedAt)
            for r in result.scalars().all()
        ]

    async def upsert_date_picks(self, record: DatePickRecord) -> None:
        stmt = (
            pg_insert(DatePick)
            .values(tripId=record.trip_id, userId=record.user_id, picks=record.picks, updatedAt=record.updated_at)
            .on_conflict_do_update(
                index_elements=["tripId", "userId"],
                set_={"picks": record.picks, "updatedAt": record.updated_at},
            )
        )
        await self._session.execute(stmt)

    async def commit(self) -> None:
        await self._session.commit()
