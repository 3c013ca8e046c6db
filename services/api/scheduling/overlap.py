"""
Window similarity: nudges travelers toward supporting an existing window
instead of adding a near-duplicate.

    similarity(A, B) = overlap_days(A, B) / min(len(A), len(B))

1.0 means one window sits entirely inside the other; 0.0 means disjoint.
The threshold is a setting (window_similarity_threshold); the comparison
is made on the unrounded score, and reported scores are rounded to 2 places.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from services.api.scheduling.dates import days_inclusive
from services.api.scheduling.records import WindowRecord

DEFAULT_SIMILARITY_THRESHOLD = 0.6


@dataclass(frozen=True)
class SimilarWindow:
    window_id: str
    score: float

    def to_dict(self) -> dict[str, Any]:
        return {"windowId": self.window_id, "score": self.score}


def overlap_days(start_a: str, end_a: str, start_b: str, end_b: str) -> int:
    lo = max(start_a, start_b)
    hi = min(end_a, end_b)
    if lo > hi:
        return 0
    return days_inclusive(lo, hi)


def similarity_score(start_a: str, end_a: str, start_b: str, end_b: str) -> float:
    overlap = overlap_days(start_a, end_a, start_b, end_b)
    if overlap == 0:
        return 0.0
    shorter = min(days_inclusive(start_a, end_a), days_inclusive(start_b, end_b))
    return overlap / shorter


def find_similar_windows(
    start: str,
    end: str,
    existing: Iterable[WindowRecord],
    threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
) -> list[SimilarWindow]:
    """Concrete windows at or above threshold, most similar first."""
    matches: list[tuple[float, int, SimilarWindow]] = []
    for idx, window in enumerate(existing):
        if not window.is_concrete:
            continue
        score = similarity_score(start, end, window.start_date, window.end_date)
        if score >= threshold:
            matches.append((score, idx, SimilarWindow(window.id, round(score, 2))))
    matches.sort(key=lambda m: (-m[0], m[1]))
    return [m[2] for m in matches]
