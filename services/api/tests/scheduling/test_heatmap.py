"""
Ranked date pick (heatmap) tests.

Validates:
  - pick validation: list shape, max picks, rank 1..3, duplicates, bounds, window fit
  - weighted scoring 3/2/1 with per-rank breakdown
  - only active travelers' picks count
  - ordering: score desc, start date asc
"""

from __future__ import annotations

import pytest

from services.api.scheduling.errors import ValidationError
from services.api.scheduling.heatmap import build_heatmap, top_candidates, validate_date_picks
from services.api.scheduling.records import DatePickRecord

LO, HI = "2026-06-01", "2026-06-10"


def _pick(rank, start):
    return {"rank": rank, "startDateISO": start}


class TestValidate:
    def test_sorted_by_rank(self):
        picks = [_pick(3, "2026-06-05"), _pick(1, "2026-06-01"), _pick(2, "2026-06-03")]
        cleaned = validate_date_picks(picks, LO, HI, 3)
        assert [p["rank"] for p in cleaned] == [1, 2, 3]

    def test_empty_list_allowed(self):
        assert validate_date_picks([], LO, HI, 3) == []

    def test_not_a_list(self):
        with pytest.raises(ValidationError, match="must be a list"):
            validate_date_picks({"rank": 1}, LO, HI, 3)

    def test_too_many(self):
        picks = [_pick(1, "2026-06-01"), _pick(2, "2026-06-02"), _pick(3, "2026-06-03"), _pick(1, "2026-06-04")]
        with pytest.raises(ValidationError, match="At most 3"):
            validate_date_picks(picks, LO, HI, 3)

    @pytest.mark.parametrize("rank", [0, 4, "1", True, None])
    def test_bad_rank(self, rank):
        with pytest.raises(ValidationError, match="rank"):
            validate_date_picks([_pick(rank, "2026-06-01")], LO, HI, 3)

    def test_duplicate_rank(self):
        with pytest.raises(ValidationError, match="Duplicate rank"):
            validate_date_picks([_pick(1, "2026-06-01"), _pick(1, "2026-06-02")], LO, HI, 3)

    def test_duplicate_date(self):
        with pytest.raises(ValidationError, match="Duplicate date"):
            validate_date_picks([_pick(1, "2026-06-01"), _pick(2, "2026-06-01")], LO, HI, 3)

    def test_outside_bounds(self):
        with pytest.raises(ValidationError, match="outside"):
            validate_date_picks([_pick(1, "2026-05-31")], LO, HI, 3)

    def test_window_must_fit(self):
        validate_date_picks([_pick(1, "2026-06-08")], LO, HI, 3)
        with pytest.raises(ValidationError, match="would end after"):
            validate_date_picks([_pick(1, "2026-06-09")], LO, HI, 3)


class TestBuild:
    def _records(self):
        return [
            DatePickRecord("trip-1", "a", [_pick(1, "2026-06-03"), _pick(2, "2026-06-05")]),
            DatePickRecord("trip-1", "b", [_pick(1, "2026-06-05"), _pick(3, "2026-06-03")]),
            DatePickRecord("trip-1", "gone", [_pick(1, "2026-06-07")]),
        ]

    def test_scores_and_breakdown(self):
        heat = build_heatmap(self._records(), LO, HI, 3, user_ids=["a", "b"])
        assert heat["2026-06-05"].score == 5
        assert heat["2026-06-05"].breakdown == {"loveCount": 1, "canCount": 1, "mightCount": 0}
        assert heat["2026-06-03"].score == 4
        assert heat["2026-06-07"].score == 0

    def test_candidates_cover_only_fitting_starts(self):
        heat = build_heatmap([], LO, HI, 3)
        assert min(heat) == LO
        assert max(heat) == "2026-06-08"
        assert heat["2026-06-08"].end_date == HI

    def test_length_longer_than_range(self):
        assert build_heatmap([], LO, "2026-06-02", 3) == {}

    def test_top_candidates_order(self):
        heat = build_heatmap(self._records(), LO, HI, 3)
        top = top_candidates(heat, top_n=5)
        assert [c.start_date for c in top] == ["2026-06-05", "2026-06-03", "2026-06-07"]
        assert top[0].to_dict()["endDateISO"] == "2026-06-07"

    def test_ties_break_by_start_date(self):
        records = [
            DatePickRecord("trip-1", "a", [_pick(1, "2026-06-06")]),
            DatePickRecord("trip-1", "b", [_pick(1, "2026-06-02")]),
        ]
        top = top_candidates(build_heatmap(records, LO, HI, 3))
        assert [c.start_date for c in top] == ["2026-06-02", "2026-06-06"]
