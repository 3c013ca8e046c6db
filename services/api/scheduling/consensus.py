"""
Consensus Scorer: ranks every candidate D-day window against group availability.

Core algorithm:
  For each start day s in [start, end] with s + D - 1 <= end:
    total(s)    = sum over days d in window, users u of weight(status[d][u])
    score(s)    = total(s) / (D * U)          U = distinct users with any signal
    coverage(s) = |{d in window : any response on d}| / D

  weight: available = 1.0, maybe = 0.5, unavailable = 0.0

Ordering:
  score descending, then startDate ascending (ISO strings compare
  lexicographically == chronologically). Truncated to top_n.

Determinism guarantee:
  Pure function of (per-day availability, bounds, duration). Input order is
  irrelevant because per-day signals are folded into sums before ranking.
  No wall-clock reads, no randomness.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from services.api.scheduling.availability import DayAvailability
from services.api.scheduling.dates import add_days, iter_days, option_key

_STATUS_WEIGHTS: dict[str, float] = {
    "available": 1.0,
    "maybe": 0.5,
    "unavailable": 0.0,
}

DEFAULT_TOP_N = 3


@dataclass(frozen=True)
class ConsensusOption:
    start_date: str
    end_date: str
    score: float
    total_score: float
    coverage: float

    @property
    def option_key(self) -> str:
        return option_key(self.start_date, self.end_date)

    def to_dict(self) -> dict[str, Any]:
        return {
            "optionKey": self.option_key,
            "startDate": self.start_date,
            "endDate": self.end_date,
            "score": self.score,
            "totalScore": self.total_score,
            "coverage": self.coverage,
        }


def score_windows(
    per_day: Iterable[DayAvailability],
    start: str | None,
    end: str | None,
    duration: int | None,
    top_n: int = DEFAULT_TOP_N,
) -> list[ConsensusOption]:
    """Return the top_n windows of `duration` days inside [start, end]."""
    if not start or not end or start > end or not duration or duration < 1:
        return []

    day_totals: dict[str, float] = {}
    responded_days: set[str] = set()
    users: set[str] = set()
    for entry in per_day:
        users.add(entry.user_id)
        day_totals[entry.day] = day_totals.get(entry.day, 0.0) + _STATUS_WEIGHTS.get(entry.status, 0.0)
        responded_days.add(entry.day)

    if not users:
        return []

    denominator = duration * len(users)
    options: list[ConsensusOption] = []
    for window_start in iter_days(start, end):
        window_end = add_days(window_start, duration - 1)
        if window_end > end:
            break
        days = list(iter_days(window_start, window_end))
        total = sum(day_totals.get(d, 0.0) for d in days)
        responded = sum(1 for d in days if d in responded_days)
        options.append(
            ConsensusOption(
                start_date=window_start,
                end_date=window_end,
                score=total / denominator,
                total_score=total,
                coverage=responded / duration,
            )
        )

    options.sort(key=lambda o: (-o.score, o.start_date))
    return options[:top_n]


def promising_windows(options: list[ConsensusOption], limit: int = 3) -> list[ConsensusOption]:
    """Windows worth surfacing while availability is still being collected."""
    return [o for o in options if o.total_score > 0][:limit]
