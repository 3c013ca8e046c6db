"""
SQLAlchemy async database module.

Re-exports engine, session, store and model utilities for the FastAPI service.
"""

from services.api.db.engine import create_engine, create_session_factory
from services.api.db.session import get_db
from services.api.db.store import SqlTripStore
from services.api.db.models import (
    Base,
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

__all__ = [
    "create_engine",
    "create_session_factory",
    "get_db",
    "SqlTripStore",
    "Base",
    "Availability",
    "Circle",
    "CircleMembership",
    "DatePick",
    "DateWindow",
    "Trip",
    "TripParticipant",
    "Vote",
    "WindowSupport",
]
