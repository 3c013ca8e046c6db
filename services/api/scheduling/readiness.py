"""
Proposal readiness: when may the leader elevate a window to a proposal
without overriding the group?

Support is counted only from current active travelers. Windows are ranked by
support count descending; earlier-created windows win ties.

Thresholds:
  Small group (travelers <= small_group_max, default 10):
      needed = floor(travelers / 2) + 1            majority of everyone
  Large group:
      needed = max(large_group_min, ceil(responders / 2))
      responders = distinct active users supporting any window

ready = leading window's count >= needed.
"""

from __future__ import annotations

import math
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from services.api.scheduling.records import SupportRecord, WindowRecord

_SMALL_GROUP_MAX = 10
_LARGE_GROUP_MIN_SUPPORT = 5


@dataclass
class WindowTally:
    window: WindowRecord
    count: int
    user_ids: list[str] = field(default_factory=list)


@dataclass
class ProposalReadiness:
    proposal_ready: bool
    reason: str  # "no_windows" | "threshold_met" | "threshold_not_met"
    total_travelers: int
    responder_count: int
    threshold_needed: int
    leading: WindowTally | None = None
    runner_up: WindowTally | None = None
    window_count: int = 0

    @property
    def leader_count(self) -> int:
        return self.leading.count if self.leading else 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "proposalReady": self.proposal_ready,
            "reason": self.reason,
            "leadingWindow": self.leading.window.to_dict() if self.leading else None,
            "leaderCount": self.leader_count,
            "leaderUserIds": list(self.leading.user_ids) if self.leading else [],
            "runnerUp": (
                {"window": self.runner_up.window.to_dict(), "count": self.runner_up.count}
                if self.runner_up else None
            ),
            "stats": {
                "totalTravelers": self.total_travelers,
                "responderCount": self.responder_count,
                "leaderCount": self.leader_count,
                "thresholdNeeded": self.threshold_needed,
                "windowCount": self.window_count,
            },
        }


def threshold_needed(
    total_travelers: int,
    responder_count: int,
    small_group_max: int = _SMALL_GROUP_MAX,
    large_group_min: int = _LARGE_GROUP_MIN_SUPPORT,
) -> int:
    if total_travelers <= small_group_max:
        return total_travelers // 2 + 1
    return max(large_group_min, math.ceil(responder_count / 2))


def tally_support(
    windows: Iterable[WindowRecord],
    supports: Iterable[SupportRecord],
    active_user_ids: Iterable[str] | None = None,
) -> list[WindowTally]:
    """Per-window support from active travelers, ranked count desc then createdAt asc."""
    allowed = set(active_user_ids) if active_user_ids is not None else None
    by_window: dict[str, list[str]] = {}
    for s in supports:
        if allowed is not None and s.user_id not in allowed:
            continue
        users = by_window.setdefault(s.window_id, [])
        if s.user_id not in users:
            users.append(s.user_id)

    tallies = []
    for idx, window in enumerate(windows):
        users = by_window.get(window.id, [])
        tallies.append((idx, WindowTally(window=window, count=len(users), user_ids=users)))

    def _key(item: tuple[int, WindowTally]) -> tuple:
        idx, tally = item
        created = tally.window.created_at
        return (-tally.count, created is None, created.timestamp() if created else 0.0, idx)

    tallies.sort(key=_key)
    return [t for _, t in tallies]


def compute_proposal_readiness(
    windows: Iterable[WindowRecord],
    supports: Iterable[SupportRecord],
    active_user_ids: Iterable[str],
    small_group_max: int = _SMALL_GROUP_MAX,
    large_group_min: int = _LARGE_GROUP_MIN_SUPPORT,
) -> ProposalReadiness:
    active = set(active_user_ids)
    windows = list(windows)
    supports = [s for s in supports if s.user_id in active]
    window_ids = {w.id for w in windows}
    responders = {s.user_id for s in supports if s.window_id in window_ids}
    total = len(active)
    needed = threshold_needed(total, len(responders), small_group_max, large_group_min)

    if not windows:
        return ProposalReadiness(
            proposal_ready=False,
            reason="no_windows",
            total_travelers=total,
            responder_count=len(responders),
            threshold_needed=needed,
        )

    tallies = tally_support(windows, supports)
    leading = tallies[0]
    ready = leading.count >= needed
    return ProposalReadiness(
        proposal_ready=ready,
        reason="threshold_met" if ready else "threshold_not_met",
        total_travelers=total,
        responder_count=len(responders),
        threshold_needed=needed,
        leading=leading,
        runner_up=tallies[1] if len(tallies) > 1 else None,
        window_count=len(windows),
    )
