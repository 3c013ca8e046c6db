"""
Ranked date picks (top3_heatmap scheduling mode).

Each traveler submits up to three start dates ranked 1..3. A start date's
heat is the weighted sum of the ranks it received:

    rank 1 ("love") = 3, rank 2 ("can") = 2, rank 3 ("might") = 1

Candidates are every start date whose full window fits inside the planning
bounds. Output is sorted by score descending, then start date ascending.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from services.api.scheduling.dates import add_days, iter_days, parse_iso_date
from services.api.scheduling.errors import ValidationError
from services.api.scheduling.records import DatePickRecord

RANK_WEIGHTS: dict[int, int] = {1: 3, 2: 2, 3: 1}
_BREAKDOWN_KEYS = {1: "loveCount", 2: "canCount", 3: "mightCount"}


@dataclass
class HeatmapCandidate:
    start_date: str
    end_date: str
    score: int = 0
    breakdown: dict[str, int] = field(
        default_factory=lambda: {"loveCount": 0, "canCount": 0, "mightCount": 0}
    )

    def to_dict(self) -> dict[str, Any]:
        return {
            "startDateISO": self.start_date,
            "endDateISO": self.end_date,
            "score": self.score,
            "breakdown": dict(self.breakdown),
        }


def validate_date_picks(
    picks: object,
    bound_start: str,
    bound_end: str,
    length: int,
    max_picks: int = 3,
) -> list[dict[str, Any]]:
    """Check a submitted pick list and return it sorted by rank."""
    if not isinstance(picks, list):
        raise ValidationError("picks must be a list")
    if len(picks) > max_picks:
        raise ValidationError(f"At most {max_picks} date picks allowed")

    seen_ranks: set[int] = set()
    seen_dates: set[str] = set()
    latest_start = add_days(bound_end, -(length - 1))
    cleaned: list[dict[str, Any]] = []
    for pick in picks:
        if not isinstance(pick, dict):
            raise ValidationError("Each pick must be an object with rank and startDateISO")
        rank = pick.get("rank")
        if not isinstance(rank, int) or isinstance(rank, bool) or rank not in RANK_WEIGHTS:
            raise ValidationError("rank must be 1, 2 or 3")
        start = pick.get("startDateISO")
        parse_iso_date(start, "startDateISO")
        if rank in seen_ranks:
            raise ValidationError(f"Duplicate rank {rank}")
        if start in seen_dates:
            raise ValidationError(f"Duplicate date {start}")
        if start < bound_start or start > bound_end:
            raise ValidationError(f"{start} is outside the trip date range")
        if start > latest_start:
            raise ValidationError(f"A {length}-day trip starting {start} would end after {bound_end}")
        seen_ranks.add(rank)
        seen_dates.add(start)
        cleaned.append({"rank": rank, "startDateISO": start})

    return sorted(cleaned, key=lambda p: p["rank"])


def build_heatmap(
    records: Iterable[DatePickRecord],
    bound_start: str,
    bound_end: str,
    length: int,
    user_ids: Iterable[str] | None = None,
) -> dict[str, HeatmapCandidate]:
    """Score every valid start date. Picks from users outside user_ids are ignored."""
    candidates: dict[str, HeatmapCandidate] = {}
    if length < 1 or bound_start > bound_end:
        return candidates
    latest_start = add_days(bound_end, -(length - 1))
    if latest_start < bound_start:
        return candidates
    for day in iter_days(bound_start, latest_start):
        candidates[day] = HeatmapCandidate(start_date=day, end_date=add_days(day, length - 1))

    allowed = set(user_ids) if user_ids is not None else None
    for record in records:
        if allowed is not None and record.user_id not in allowed:
            continue
        for pick in record.picks or []:
            cand = candidates.get(pick.get("startDateISO"))
            rank = pick.get("rank")
            if cand is None or rank not in RANK_WEIGHTS:
                continue
            cand.score += RANK_WEIGHTS[rank]
            cand.breakdown[_BREAKDOWN_KEYS[rank]] += 1
    return candidates


def top_candidates(candidates: dict[str, HeatmapCandidate], top_n: int = 5) -> list[HeatmapCandidate]:
    scored = [c for c in candidates.values() if c.score > 0]
    scored.sort(key=lambda c: (-c.score, c.start_date))
    return scored[:top_n]
