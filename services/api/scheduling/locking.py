"""
Lock sources: where a trip's final dates come from.

Three mechanisms coexist, one per scheduling mode:

  schedulingMode          source                 payload
  ----------------------  ---------------------  ----------------
  None (legacy)           VoteLock               optionKey
  top3_heatmap            HeatmapPickLock        startDateISO
  date_windows / funnel   FunnelProposalLock     (proposedWindowId)

The handler is chosen from the trip's mode, never from the payload shape;
a payload carrying another mode's field is rejected. Every source resolves
to an inclusive (start, end) pair, which the service commits with a single
compare-and-set so the locked dates are written exactly once.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol

from services.api.scheduling.dates import add_days, parse_iso_date, split_option_key
from services.api.scheduling.errors import StageGuardError, ValidationError
from services.api.scheduling.records import TripRecord, WindowRecord
from services.api.scheduling.stage import SchedulingPhase, derive_phase, effective_status

WINDOW_MODES = frozenset({"date_windows", "funnel"})
_PAYLOAD_FIELDS = ("optionKey", "startDateISO")


class Lockable(Protocol):
    label: str

    def resolve_dates(self, trip: TripRecord, window: WindowRecord | None = None) -> tuple[str, str]:
        ...


def _check_bounds(trip: TripRecord, start: str, end: str) -> None:
    lo, hi = trip.planning_start, trip.planning_end
    if lo and start < lo:
        raise ValidationError(f"{start} is before the trip's earliest date {lo}")
    if hi and end > hi:
        raise ValidationError(f"{end} is after the trip's latest date {hi}")


@dataclass(frozen=True)
class VoteLock:
    option_key: str
    label: str = "vote"

    def resolve_dates(self, trip: TripRecord, window: WindowRecord | None = None) -> tuple[str, str]:
        if effective_status(trip) != "voting":
            raise StageGuardError("Voting must be open before locking by vote")
        start, end = split_option_key(self.option_key)
        _check_bounds(trip, start, end)
        return start, end


@dataclass(frozen=True)
class HeatmapPickLock:
    start_date: str
    length: int
    label: str = "heatmap"

    def resolve_dates(self, trip: TripRecord, window: WindowRecord | None = None) -> tuple[str, str]:
        parse_iso_date(self.start_date, "startDateISO")
        end = add_days(self.start_date, self.length - 1)
        _check_bounds(trip, self.start_date, end)
        return self.start_date, end


@dataclass(frozen=True)
class FunnelProposalLock:
    window_id: str
    label: str = "funnel"

    def resolve_dates(self, trip: TripRecord, window: WindowRecord | None = None) -> tuple[str, str]:
        if derive_phase(trip) is not SchedulingPhase.PROPOSED:
            raise StageGuardError("No dates are proposed")
        if window is None or window.id != self.window_id:
            raise StageGuardError("Proposed window no longer exists")
        if not window.is_concrete:
            raise ValidationError("Proposed window has no concrete dates")
        return window.start_date, window.end_date


def lock_source_for(trip: TripRecord, payload: dict[str, Any], default_length: int = 3) -> Lockable:
    """Select the lock handler for the trip's scheduling mode."""
    mode = trip.scheduling_mode
    supplied = [f for f in _PAYLOAD_FIELDS if payload.get(f) is not None]

    if mode in WINDOW_MODES:
        if supplied:
            raise ValidationError(
                "This trip locks from its proposed date window; "
                f"{', '.join(supplied)} is not accepted"
            )
        if not trip.proposed_window_id:
            raise StageGuardError("No dates are proposed")
        return FunnelProposalLock(trip.proposed_window_id)

    if mode == "top3_heatmap":
        if "optionKey" in supplied:
            raise ValidationError("This trip locks by startDateISO, not optionKey")
        if "startDateISO" not in supplied:
            raise ValidationError("startDateISO is required to lock this trip")
        return HeatmapPickLock(payload["startDateISO"], trip.window_length or default_length)

    if mode is None:
        if "startDateISO" in supplied:
            raise ValidationError("This trip locks by optionKey, not startDateISO")
        if "optionKey" not in supplied:
            raise ValidationError("optionKey is required to lock this trip")
        return VoteLock(payload["optionKey"])

    raise ValidationError(f"Unsupported scheduling mode: {mode}")
