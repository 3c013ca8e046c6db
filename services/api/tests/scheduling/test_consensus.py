"""
Consensus scorer tests.

Validates:
  - score = weighted sum / (D * responding users)
  - ordering: score desc, then startDate asc
  - windows never run past the end bound
  - coverage counts days with any response
  - promising windows drop zero-score options
"""

from __future__ import annotations

import random

import pytest

from services.api.scheduling.availability import DayAvailability, normalize_availability
from services.api.scheduling.consensus import promising_windows, score_windows
from services.api.tests.helpers.factories import make_weekly


def _days(user, start_day, end_day, status="available", month="2024-06"):
    return [
        DayAvailability(day=f"{month}-{d:02d}", status=status, user_id=user)
        for d in range(start_day, end_day + 1)
    ]


class TestScoring:
    def test_two_user_overlap_scenario(self):
        """A available 06-03..05, B 06-04..06, D=3 inside 06-01..06-10.

        Both 06-03..05 and 06-04..06 sum to 5 of a possible 6; the tie
        resolves to the earlier start date.
        """
        rows = [
            make_weekly("A", "2024-06-03", "2024-06-05", "available"),
            make_weekly("B", "2024-06-04", "2024-06-06", "available"),
        ]
        per_day = normalize_availability(rows, "2024-06-01", "2024-06-10")
        options = score_windows(per_day, "2024-06-01", "2024-06-10", 3)

        assert [o.option_key for o in options[:2]] == [
            "2024-06-03_2024-06-05",
            "2024-06-04_2024-06-06",
        ]
        assert options[0].score == pytest.approx(5 / 6)
        assert options[1].score == pytest.approx(5 / 6)
        assert options[0].total_score == pytest.approx(5.0)

    def test_maybe_counts_half(self):
        per_day = _days("A", 1, 2, "maybe")
        options = score_windows(per_day, "2024-06-01", "2024-06-02", 2)
        assert options[0].score == pytest.approx(0.5)

    def test_unavailable_counts_zero_but_covers(self):
        per_day = _days("A", 1, 3, "unavailable")
        options = score_windows(per_day, "2024-06-01", "2024-06-03", 3)
        assert options[0].score == 0.0
        assert options[0].coverage == 1.0

    def test_partial_coverage(self):
        per_day = _days("A", 1, 1)
        options = score_windows(per_day, "2024-06-01", "2024-06-04", 2)
        best = options[0]
        assert best.option_key == "2024-06-01_2024-06-02"
        assert best.coverage == pytest.approx(0.5)


class TestBounds:
    def test_no_window_exceeds_end(self):
        per_day = _days("A", 1, 10)
        options = score_windows(per_day, "2024-06-01", "2024-06-10", 4, top_n=20)
        assert len(options) == 7
        assert all(o.end_date <= "2024-06-10" for o in options)

    def test_duration_longer_than_range(self):
        assert score_windows(_days("A", 1, 3), "2024-06-01", "2024-06-03", 5) == []

    @pytest.mark.parametrize("duration", [None, 0, -1])
    def test_invalid_duration(self, duration):
        assert score_windows(_days("A", 1, 3), "2024-06-01", "2024-06-03", duration) == []

    def test_no_responses(self):
        assert score_windows([], "2024-06-01", "2024-06-10", 3) == []

    def test_top_n_truncates(self):
        options = score_windows(_days("A", 1, 10), "2024-06-01", "2024-06-10", 2, top_n=3)
        assert len(options) == 3


class TestDeterminism:
    def test_input_order_irrelevant(self):
        per_day = _days("A", 2, 6) + _days("B", 4, 9, "maybe") + _days("C", 1, 3, "unavailable")
        expected = score_windows(per_day, "2024-06-01", "2024-06-10", 3)
        shuffled = per_day[:]
        random.Random(3).shuffle(shuffled)
        assert score_windows(shuffled, "2024-06-01", "2024-06-10", 3) == expected

    def test_equal_scores_break_by_start_date(self):
        options = score_windows(_days("A", 1, 10), "2024-06-01", "2024-06-10", 3)
        assert [o.start_date for o in options] == ["2024-06-01", "2024-06-02", "2024-06-03"]


class TestPromising:
    def test_drops_zero_scores(self):
        per_day = _days("A", 1, 2) + _days("A", 3, 6, "unavailable")
        options = score_windows(per_day, "2024-06-01", "2024-06-06", 2, top_n=10)
        promising = promising_windows(options)
        assert all(o.total_score > 0 for o in promising)
        assert len(promising) == 2
