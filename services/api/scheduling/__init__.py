"""
Group-trip scheduling engine.

Pure modules (participants, availability, consensus, heatmap, window_text,
overlap, readiness, voting, stage, locking, leadership) hold the rules and
never touch storage. SchedulingService wires them to a TripStore.
"""

from services.api.scheduling.errors import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    SchedulingError,
    StageGuardError,
    ValidationError,
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
from services.api.scheduling.service import SchedulingService
from services.api.scheduling.stage import Action, SchedulingPhase, derive_phase, guard_action
from services.api.scheduling.store import TripStore

__all__ = [
    "Action",
    "AvailabilityRecord",
    "CircleRecord",
    "ConflictError",
    "DatePickRecord",
    "ForbiddenError",
    "MembershipRecord",
    "NotFoundError",
    "ParticipantRecord",
    "PendingTransfer",
    "SchedulingError",
    "SchedulingPhase",
    "SchedulingService",
    "StageGuardError",
    "SupportRecord",
    "TripRecord",
    "TripStore",
    "ValidationError",
    "VoteRecord",
    "WindowRecord",
    "derive_phase",
    "guard_action",
]
