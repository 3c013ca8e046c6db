"""Window similarity tests, including the exact threshold boundary."""

from __future__ import annotations

import pytest

from services.api.scheduling.overlap import (
    find_similar_windows,
    overlap_days,
    similarity_score,
)
from services.api.tests.helpers.factories import make_window


class TestScore:
    def test_disjoint(self):
        assert overlap_days("2026-06-01", "2026-06-03", "2026-06-04", "2026-06-06") == 0
        assert similarity_score("2026-06-01", "2026-06-03", "2026-06-04", "2026-06-06") == 0.0

    def test_contained_window_scores_one(self):
        assert similarity_score("2026-06-01", "2026-06-10", "2026-06-03", "2026-06-04") == 1.0

    def test_uses_shorter_window(self):
        # 2 shared days out of a 4-day shorter window
        assert similarity_score("2026-06-01", "2026-06-10", "2026-06-09", "2026-06-12") == 0.5

    def test_symmetric(self):
        a = similarity_score("2026-06-01", "2026-06-05", "2026-06-04", "2026-06-08")
        b = similarity_score("2026-06-04", "2026-06-08", "2026-06-01", "2026-06-05")
        assert a == b == pytest.approx(0.4)


class TestFindSimilar:
    def test_threshold_is_inclusive(self):
        existing = [make_window(id="w-1", start_date="2026-06-03", end_date="2026-06-07")]
        # 3 of 5 days shared: exactly 0.6
        (match,) = find_similar_windows("2026-06-01", "2026-06-05", existing, threshold=0.6)
        assert match.window_id == "w-1"
        assert match.score == 0.6

    def test_below_threshold(self):
        existing = [make_window(id="w-1", start_date="2026-06-04", end_date="2026-06-08")]
        assert find_similar_windows("2026-06-01", "2026-06-05", existing, threshold=0.6) == []

    def test_threshold_is_configurable(self):
        existing = [make_window(id="w-1", start_date="2026-06-04", end_date="2026-06-08")]
        assert len(find_similar_windows("2026-06-01", "2026-06-05", existing, threshold=0.4)) == 1

    def test_unstructured_windows_are_skipped(self):
        existing = [make_window(id="w-u", precision="unstructured", start_date=None, end_date=None)]
        assert find_similar_windows("2026-06-01", "2026-06-05", existing) == []

    def test_most_similar_first_and_rounded(self):
        existing = [
            make_window(id="w-partial", start_date="2026-06-02", end_date="2026-06-08"),
            make_window(id="w-same", start_date="2026-06-01", end_date="2026-06-03"),
        ]
        similar = find_similar_windows("2026-06-01", "2026-06-03", existing)
        assert [s.window_id for s in similar] == ["w-same", "w-partial"]
        assert similar[1].score == 0.67
        assert similar[1].to_dict() == {"windowId": "w-partial", "score": 0.67}
