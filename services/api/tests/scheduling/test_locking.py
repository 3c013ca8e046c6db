"""
Lock source selection tests.

Validates:
  - the handler follows the trip's scheduling mode, not the payload
  - payload fields belonging to another mode are rejected
  - each source resolves to an inclusive date pair inside the planning range
"""

from __future__ import annotations

import pytest

from services.api.scheduling.errors import StageGuardError, ValidationError
from services.api.scheduling.locking import (
    FunnelProposalLock,
    HeatmapPickLock,
    VoteLock,
    lock_source_for,
)
from services.api.tests.helpers.factories import make_trip, make_window


class TestSelection:
    def test_window_mode_needs_proposal(self):
        with pytest.raises(StageGuardError, match="No dates are proposed"):
            lock_source_for(make_trip(), {})

    def test_window_mode_rejects_option_key(self):
        trip = make_trip(proposed_window_id="w-1")
        with pytest.raises(ValidationError, match="optionKey is not accepted"):
            lock_source_for(trip, {"optionKey": "2026-06-01_2026-06-03"})

    def test_window_mode(self):
        source = lock_source_for(make_trip(proposed_window_id="w-1"), {})
        assert source == FunnelProposalLock("w-1")

    def test_heatmap_mode(self):
        trip = make_trip(scheduling_mode="top3_heatmap")
        source = lock_source_for(trip, {"startDateISO": "2026-06-10"})
        assert source == HeatmapPickLock("2026-06-10", 3)
        with pytest.raises(ValidationError, match="not optionKey"):
            lock_source_for(trip, {"optionKey": "2026-06-01_2026-06-03"})
        with pytest.raises(ValidationError, match="startDateISO is required"):
            lock_source_for(trip, {})

    def test_legacy_mode(self):
        trip = make_trip(scheduling_mode=None)
        assert lock_source_for(trip, {"optionKey": "k"}) == VoteLock("k")
        with pytest.raises(ValidationError, match="not startDateISO"):
            lock_source_for(trip, {"startDateISO": "2026-06-10"})

    def test_unknown_mode(self):
        with pytest.raises(ValidationError, match="Unsupported"):
            lock_source_for(make_trip(scheduling_mode="carrier_pigeon"), {})


class TestResolve:
    def test_vote_lock_requires_voting(self):
        lock = VoteLock("2026-06-01_2026-06-03")
        with pytest.raises(StageGuardError):
            lock.resolve_dates(make_trip(scheduling_mode=None))
        trip = make_trip(scheduling_mode=None, status="voting")
        assert lock.resolve_dates(trip) == ("2026-06-01", "2026-06-03")

    def test_vote_lock_out_of_range(self):
        trip = make_trip(scheduling_mode=None, status="voting")
        with pytest.raises(ValidationError, match="after the trip's latest date"):
            VoteLock("2026-06-29_2026-07-02").resolve_dates(trip)

    def test_heatmap_lock_spans_trip_length(self):
        trip = make_trip(scheduling_mode="top3_heatmap")
        assert HeatmapPickLock("2026-06-28", 3).resolve_dates(trip) == ("2026-06-28", "2026-06-30")
        with pytest.raises(ValidationError):
            HeatmapPickLock("2026-06-29", 3).resolve_dates(trip)
        with pytest.raises(ValidationError):
            HeatmapPickLock("June 10", 3).resolve_dates(trip)

    def test_funnel_lock_uses_window(self):
        window = make_window(id="w-1")
        trip = make_trip(proposed_window_id="w-1")
        assert FunnelProposalLock("w-1").resolve_dates(trip, window) == ("2026-06-05", "2026-06-07")

    def test_funnel_lock_missing_window(self):
        trip = make_trip(proposed_window_id="w-1")
        with pytest.raises(StageGuardError, match="no longer exists"):
            FunnelProposalLock("w-1").resolve_dates(trip, None)
