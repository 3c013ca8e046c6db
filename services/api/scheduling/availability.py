"""
Availability Normalizer: three submission shapes collapsed into one per-day view.

Precedence per user (lowest to highest; later writes overwrite earlier ones
in a day -> status map):
  1. broad    one status for every day of the trip range
  2. weekly   a sub-range, clipped to trip bounds; blocks applied in
              insertion order so later blocks win where they overlap
  3. day      exactly one day

Only days with some signal appear in the output. "Insertion order" is the
row's sort_order (its position in the submitted payload), so shuffling the
rows handed to the normalizer never changes the result.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from services.api.scheduling.dates import is_iso_date, iter_days
from services.api.scheduling.records import AVAILABILITY_STATUSES, AvailabilityRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DayAvailability:
    day: str
    status: str
    user_id: str

    def to_dict(self) -> dict[str, Any]:
        return {"day": self.day, "status": self.status, "userId": self.user_id}


def _sort_key(row: AvailabilityRecord) -> int:
    return row.sort_order


def normalize_user_availability(
    rows: Iterable[AvailabilityRecord],
    start: str,
    end: str,
    user_id: str | None = None,
) -> list[DayAvailability]:
    """Normalize one user's rows into an ordered per-day list within [start, end]."""
    rows = [r for r in rows if r.status in AVAILABILITY_STATUSES]
    if not rows or start > end:
        return []
    uid = user_id or rows[0].user_id

    broad = sorted((r for r in rows if r.kind == "broad"), key=_sort_key)
    weekly = sorted((r for r in rows if r.kind == "weekly"), key=_sort_key)
    per_day = sorted((r for r in rows if r.kind == "day"), key=_sort_key)

    day_map: dict[str, str] = {}

    if broad:
        if len(broad) > 1:
            logger.warning(
                "availability_multiple_broad user=%s count=%d using_first=%s",
                uid, len(broad), broad[0].status,
            )
        for day in iter_days(start, end):
            day_map[day] = broad[0].status

    for block in weekly:
        if not (is_iso_date(block.start_date) and is_iso_date(block.end_date)):
            continue
        lo = max(block.start_date, start)
        hi = min(block.end_date, end)
        if lo > hi:
            continue
        for day in iter_days(lo, hi):
            day_map[day] = block.status

    for row in per_day:
        if is_iso_date(row.day) and start <= row.day <= end:
            day_map[row.day] = row.status

    return [
        DayAvailability(day=day, status=status, user_id=uid)
        for day, status in sorted(day_map.items())
    ]


def normalize_availability(
    rows: Iterable[AvailabilityRecord],
    start: str,
    end: str,
    user_ids: Iterable[str] | None = None,
) -> list[DayAvailability]:
    """
    Normalize every user's rows. When user_ids is given, rows from anyone
    else (e.g. travelers who have since left) are dropped.
    """
    allowed = set(user_ids) if user_ids is not None else None
    by_user: dict[str, list[AvailabilityRecord]] = {}
    for row in rows:
        if allowed is not None and row.user_id not in allowed:
            continue
        by_user.setdefault(row.user_id, []).append(row)

    out: list[DayAvailability] = []
    for uid in sorted(by_user):
        out.extend(normalize_user_availability(by_user[uid], start, end, uid))
    return out
