"""
SQLAlchemy DeclarativeBase models for the trip scheduling tables.

Column names use camelCase to match the actual PostgreSQL column names
shared with the web app. Calendar days are stored as 'YYYY-MM-DD' strings
so they never pick up a timezone on the way through asyncpg.

Uniqueness the scheduling engine relies on is enforced here too:
one participant row per (trip, user), one vote per (trip, user), one
pick set per (trip, user), one support per (window, user).
"""

import uuid as _uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, Integer, JSON, String, Text, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _uuid_str() -> str:
    return str(_uuid.uuid4())


class Base(DeclarativeBase):
    pass


class Circle(Base):
    __tablename__ = "circles"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_uuid_str)
    name: Mapped[str] = mapped_column(String)
    ownerId: Mapped[str] = mapped_column(String)
    createdAt: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)


class CircleMembership(Base):
    __tablename__ = "circle_memberships"
    __table_args__ = (UniqueConstraint("circleId", "userId"),)

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_uuid_str)
    circleId: Mapped[str] = mapped_column(String, index=True)
    userId: Mapped[str] = mapped_column(String)
    role: Mapped[str] = mapped_column(String, default="member")  # owner | member
    status: Mapped[str] = mapped_column(String, default="active")  # active | left
    joinedAt: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)


class Trip(Base):
    __tablename__ = "trips"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_uuid_str)
    circleId: Mapped[str] = mapped_column(String, index=True)
    name: Mapped[str] = mapped_column(String)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    type: Mapped[str] = mapped_column(String)  # collaborative | hosted
    createdBy: Mapped[str] = mapped_column(String)
    # proposed | scheduling | voting | locked | canceled | completed; NULL on legacy rows
    status: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    tripStatus: Mapped[str] = mapped_column(String, default="ACTIVE")  # ACTIVE | CANCELLED | COMPLETED
    schedulingMode: Mapped[Optional[str]] = mapped_column(String, nullable=True)

    startDate: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    endDate: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    startBound: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    endBound: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    duration: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    tripLengthDays: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    lockedStartDate: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    lockedEndDate: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    lockedAt: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    lockSource: Mapped[Optional[str]] = mapped_column(String, nullable=True)

    proposedWindowId: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    proposedAt: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    proposedBy: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    proposalOverride: Mapped[bool] = mapped_column(Boolean, default=False)
    # {"fromUserId", "toUserId", "createdAt"}
    pendingLeadershipTransfer: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)

    canceledAt: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    canceledBy: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    completedAt: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    createdAt: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    updatedAt: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)


class TripParticipant(Base):
    __tablename__ = "trip_participants"
    __table_args__ = (UniqueConstraint("tripId", "userId"),)

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_uuid_str)
    tripId: Mapped[str] = mapped_column(String, index=True)
    userId: Mapped[str] = mapped_column(String)
    status: Mapped[str] = mapped_column(String, default="active")  # active | left | removed
    joinedAt: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    leftAt: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    removedAt: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    removedBy: Mapped[Optional[str]] = mapped_column(String, nullable=True)


class Availability(Base):
    """One row per broad / weekly / per-day statement. A resubmit replaces all of a user's rows."""

    __tablename__ = "availabilities"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_uuid_str)
    tripId: Mapped[str] = mapped_column(String, index=True)
    userId: Mapped[str] = mapped_column(String)
    kind: Mapped[str] = mapped_column(String)  # broad | weekly | day
    status: Mapped[str] = mapped_column(String)  # available | maybe | unavailable
    day: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    startDate: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    endDate: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    sortOrder: Mapped[int] = mapped_column(Integer, default=0)
    createdAt: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)


class DateWindow(Base):
    __tablename__ = "date_windows"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_uuid_str)
    tripId: Mapped[str] = mapped_column(String, index=True)
    proposedBy: Mapped[str] = mapped_column(String)
    precision: Mapped[str] = mapped_column(String)  # exact | approx | unstructured
    startDate: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    endDate: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    sourceText: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    createdAt: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    concretizedAt: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    concretizedBy: Mapped[Optional[str]] = mapped_column(String, nullable=True)


class WindowSupport(Base):
    __tablename__ = "window_supports"
    __table_args__ = (UniqueConstraint("windowId", "userId"),)

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_uuid_str)
    windowId: Mapped[str] = mapped_column(String, index=True)
    tripId: Mapped[str] = mapped_column(String, index=True)
    userId: Mapped[str] = mapped_column(String)
    createdAt: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)


class Vote(Base):
    __tablename__ = "votes"
    __table_args__ = (UniqueConstraint("tripId", "userId"),)

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_uuid_str)
    tripId: Mapped[str] = mapped_column(String, index=True)
    userId: Mapped[str] = mapped_column(String)
    optionKey: Mapped[str] = mapped_column(String)
    createdAt: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    updatedAt: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)


class DatePick(Base):
    __tablename__ = "date_picks"
    __table_args__ = (UniqueConstraint("tripId", "userId"),)

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_uuid_str)
    tripId: Mapped[str] = mapped_column(String, index=True)
    userId: Mapped[str] = mapped_column(String)
    # [{"rank": 1, "startDateISO": "2026-06-01"}, ...]
    picks: Mapped[list] = mapped_column(JSON, default=list)
    updatedAt: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
