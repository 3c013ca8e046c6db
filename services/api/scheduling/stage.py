"""
Trip stage state machine.

Trip status:
    proposed -> scheduling -> voting -> locked
        |            |           |         |
        +------------+-----------+---------+--> canceled | completed (terminal)

  proposed    collaborative trip, nothing submitted yet
  scheduling  entered automatically on the first availability / window / pick
  voting      legacy funnel only, opened by the leader
  locked      dates fixed; hosted trips start here

Window funnel phase (derived, never stored):
    COLLECTING -> PROPOSED -> LOCKED
         ^            |
         +-- withdraw-+

Every mutating action declares the statuses (and, for funnel actions, the
phases) it is legal in. guard_action() fails closed with a StageGuardError
whose message names what the trip would need to be in.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field

from services.api.scheduling.errors import StageGuardError
from services.api.scheduling.records import TripRecord

TERMINAL_STATUSES = frozenset({"canceled", "completed"})
_OPEN = frozenset({"proposed", "scheduling", "voting", "locked"})
_COLLECTING_STATUSES = frozenset({"proposed", "scheduling"})


class SchedulingPhase(str, enum.Enum):
    COLLECTING = "COLLECTING"
    PROPOSED = "PROPOSED"
    LOCKED = "LOCKED"


class Action(str, enum.Enum):
    SUBMIT_AVAILABILITY = "submit_availability"
    SUBMIT_DATE_PICKS = "submit_date_picks"
    OPEN_VOTING = "open_voting"
    VOTE = "vote"
    CREATE_WINDOW = "create_window"
    SUPPORT_WINDOW = "support_window"
    CONCRETIZE_WINDOW = "concretize_window"
    PROPOSE_WINDOW = "propose_window"
    WITHDRAW_PROPOSAL = "withdraw_proposal"
    LOCK = "lock"
    JOIN = "join"
    LEAVE = "leave"
    REMOVE_PARTICIPANT = "remove_participant"
    TRANSFER_LEADERSHIP = "transfer_leadership"
    CANCEL = "cancel"
    COMPLETE = "complete"


def effective_status(trip: TripRecord) -> str:
    """Status with legacy defaults applied; tripStatus wins for terminal states."""
    if trip.trip_status == "CANCELLED":
        return "canceled"
    if trip.trip_status == "COMPLETED":
        return "completed"
    status = trip.status or ("locked" if trip.is_hosted else "scheduling")
    if trip.locked_start_date and status not in TERMINAL_STATUSES:
        return "locked"
    return status


def derive_phase(trip: TripRecord) -> SchedulingPhase:
    """The one place the funnel phase is inferred from trip fields."""
    if effective_status(trip) == "locked" or trip.locked_start_date:
        return SchedulingPhase.LOCKED
    if trip.proposed_window_id:
        return SchedulingPhase.PROPOSED
    return SchedulingPhase.COLLECTING


def is_terminal(trip: TripRecord) -> bool:
    return effective_status(trip) in TERMINAL_STATUSES


# ---------------------------------------------------------------------------
# Guard table
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class _Rule:
    statuses: frozenset[str]
    default_message: str
    status_messages: dict[str, str] = field(default_factory=dict)
    phases: frozenset[SchedulingPhase] | None = None
    phase_messages: dict[SchedulingPhase, str] = field(default_factory=dict)


_LOCKED_MSG = "Dates are locked; scheduling is closed."
_FUNNEL_STATUS_MESSAGES = {
    "voting": "Date windows are closed while voting is open.",
    "locked": _LOCKED_MSG,
}
_FUNNEL_PHASE_MESSAGES = {
    SchedulingPhase.PROPOSED: "Windows are frozen while a date proposal is active. Withdraw it first.",
    SchedulingPhase.LOCKED: _LOCKED_MSG,
}

_RULES: dict[Action, _Rule] = {
    Action.SUBMIT_AVAILABILITY: _Rule(
        statuses=_COLLECTING_STATUSES,
        default_message="Availability can only be submitted while the trip is proposed or scheduling.",
        status_messages={
            "voting": "Availability is frozen while voting is open.",
            "locked": _LOCKED_MSG,
        },
    ),
    Action.SUBMIT_DATE_PICKS: _Rule(
        statuses=frozenset({"proposed", "scheduling", "voting"}),
        default_message="Date picks require the trip to be proposed, scheduling or voting.",
        status_messages={"locked": "Trip dates are locked; picks cannot be changed"},
    ),
    Action.OPEN_VOTING: _Rule(
        statuses=_COLLECTING_STATUSES,
        default_message="Voting can only be opened during proposed or scheduling phase",
        status_messages={
            "voting": "Voting is already open",
            "locked": "Cannot open voting for a locked trip",
        },
    ),
    Action.VOTE: _Rule(
        statuses=frozenset({"voting"}),
        default_message="Voting is not open for this trip",
    ),
    Action.CREATE_WINDOW: _Rule(
        statuses=_COLLECTING_STATUSES,
        default_message="Date windows require the trip to be proposed or scheduling.",
        status_messages=_FUNNEL_STATUS_MESSAGES,
        phases=frozenset({SchedulingPhase.COLLECTING}),
        phase_messages=_FUNNEL_PHASE_MESSAGES,
    ),
    Action.SUPPORT_WINDOW: _Rule(
        statuses=_COLLECTING_STATUSES,
        default_message="Window support requires the trip to be proposed or scheduling.",
        status_messages=_FUNNEL_STATUS_MESSAGES,
        phases=frozenset({SchedulingPhase.COLLECTING}),
        phase_messages=_FUNNEL_PHASE_MESSAGES,
    ),
    Action.CONCRETIZE_WINDOW: _Rule(
        statuses=_COLLECTING_STATUSES,
        default_message="Windows can only be edited while collecting.",
        status_messages=_FUNNEL_STATUS_MESSAGES,
        phases=frozenset({SchedulingPhase.COLLECTING}),
        phase_messages=_FUNNEL_PHASE_MESSAGES,
    ),
    Action.PROPOSE_WINDOW: _Rule(
        statuses=_COLLECTING_STATUSES,
        default_message="Dates can only be proposed while the trip is proposed or scheduling.",
        status_messages={"locked": "Dates are already locked"},
        phases=frozenset({SchedulingPhase.COLLECTING}),
        phase_messages={
            SchedulingPhase.PROPOSED: "A date proposal is already active",
            SchedulingPhase.LOCKED: "Dates are already locked",
        },
    ),
    Action.WITHDRAW_PROPOSAL: _Rule(
        statuses=_COLLECTING_STATUSES,
        default_message="No date proposal to withdraw",
        status_messages={"locked": "Dates are already locked"},
        phases=frozenset({SchedulingPhase.PROPOSED}),
        phase_messages={
            SchedulingPhase.COLLECTING: "No date proposal to withdraw",
            SchedulingPhase.LOCKED: "Dates are already locked",
        },
    ),
    Action.LOCK: _Rule(
        statuses=frozenset({"proposed", "scheduling", "voting"}),
        default_message="Trip cannot be locked from its current stage",
        status_messages={"locked": "Trip is already locked"},
    ),
    Action.JOIN: _Rule(statuses=_OPEN, default_message="Trip is not open for joining"),
    Action.LEAVE: _Rule(statuses=_OPEN, default_message="Trip is not open"),
    Action.REMOVE_PARTICIPANT: _Rule(statuses=_OPEN, default_message="Trip is not open"),
    Action.TRANSFER_LEADERSHIP: _Rule(statuses=_OPEN, default_message="Trip is not open"),
    Action.CANCEL: _Rule(statuses=_OPEN, default_message="Trip is not open"),
    Action.COMPLETE: _Rule(statuses=_OPEN, default_message="Trip is not open"),
}


def _raise_terminal(status: str, action: Action) -> None:
    if action is Action.CANCEL or action is Action.COMPLETE:
        if status == "canceled":
            raise StageGuardError("Trip is already canceled", code="TRIP_ALREADY_CANCELED")
        raise StageGuardError("Trip is already completed", code="TRIP_ALREADY_COMPLETED")
    if status == "canceled":
        raise StageGuardError(
            "This trip has been canceled and cannot be modified", code="TRIP_CANCELED"
        )
    raise StageGuardError(
        "This trip has been completed and cannot be modified", code="TRIP_COMPLETED"
    )


def guard_action(trip: TripRecord, action: Action) -> None:
    """Raise StageGuardError unless `action` is legal for the trip right now."""
    status = effective_status(trip)
    if status in TERMINAL_STATUSES:
        _raise_terminal(status, action)

    rule = _RULES[action]
    if status not in rule.statuses:
        raise StageGuardError(
            rule.status_messages.get(status, rule.default_message),
            details={"status": status, "allowedStatuses": sorted(rule.statuses)},
        )

    if rule.phases is not None:
        phase = derive_phase(trip)
        if phase not in rule.phases:
            raise StageGuardError(
                rule.phase_messages.get(phase, rule.default_message),
                details={"phase": phase.value, "requiredPhase": sorted(p.value for p in rule.phases)},
            )


def allowed_actions(trip: TripRecord) -> list[str]:
    """Actions the stage machine would currently accept (ignoring permissions)."""
    out = []
    for action in Action:
        try:
            guard_action(trip, action)
        except StageGuardError:
            continue
        out.append(action.value)
    return out
