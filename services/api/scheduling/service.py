"""
SchedulingService: orchestrates every scheduling mutation and the trip view.

Each operation follows the same pipeline:
  1. validate payload shape                      (ValidationError)
  2. load trip; invisible == missing             (NotFoundError)
  3. resolve active travelers from source rows   (never cached)
  4. permission check                            (ForbiddenError)
  5. stage guard                                 (StageGuardError)
  6. bound checks / normalization / scoring
  7. commit via the injected TripStore, using compare-and-set for
     race-prone transitions

The store and settings are injected; nothing here holds global state.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from services.api.config import Settings
from services.api.scheduling.availability import normalize_availability
from services.api.scheduling.consensus import promising_windows, score_windows
from services.api.scheduling.dates import (
    days_inclusive,
    parse_iso_date,
    split_option_key,
)
from services.api.scheduling.errors import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    StageGuardError,
    ValidationError,
)
from services.api.scheduling.heatmap import build_heatmap, top_candidates, validate_date_picks
from services.api.scheduling.leadership import (
    is_leader_or_circle_owner,
    is_trip_leader,
    new_pending_transfer,
    require_leader_or_owner,
    require_trip_leader,
    transfer_is_valid,
    validate_transfer_target,
)
from services.api.scheduling.locking import WINDOW_MODES, FunnelProposalLock, lock_source_for
from services.api.scheduling.overlap import find_similar_windows
from services.api.scheduling.participants import (
    ParticipantRoster,
    ParticipantStatus,
    active_circle_member_ids,
    resolve_participants,
)
from services.api.scheduling.readiness import compute_proposal_readiness, tally_support
from services.api.scheduling.records import (
    AVAILABILITY_STATUSES,
    SCHEDULING_MODES,
    TRIP_TYPES,
    AvailabilityRecord,
    CircleRecord,
    DatePickRecord,
    ParticipantRecord,
    SupportRecord,
    TripRecord,
    VoteRecord,
    WindowRecord,
)
from services.api.scheduling.stage import (
    Action,
    SchedulingPhase,
    allowed_actions,
    derive_phase,
    effective_status,
    guard_action,
)
from services.api.scheduling.store import TripStore
from services.api.scheduling.voting import voting_status
from services.api.scheduling.window_text import (
    WindowContext,
    WindowTextError,
    check_window_bounds,
    parse_window_text,
)

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _is_recipient(trip: TripRecord, user_id: str) -> bool:
    pending = trip.pending_leadership_transfer
    return pending is not None and pending.to_user_id == user_id


@dataclass
class TripContext:
    """Everything a request needs to know about a trip, loaded once."""
    trip: TripRecord
    circle: CircleRecord | None
    roster: ParticipantRoster
    circle_member_ids: set[str]
    participants: dict[str, ParticipantRecord]


class SchedulingService:
    """
    Async facade over the scheduling engine.

    Usage:
        service = SchedulingService(store=SqlTripStore(session), config=settings)
        view = await service.get_trip_view(trip_id, user_id)
    """

    def __init__(
        self,
        store: TripStore,
        config: Settings,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._config = config
        self._clock = clock or _utcnow

    # ------------------------------------------------------------------
    # Loading + shared checks
    # ------------------------------------------------------------------

    async def _load(self, trip_id: str, actor_id: str, *, as_recipient: bool = False) -> TripContext:
        trip = await self._store.get_trip(trip_id)
        if trip is None:
            raise NotFoundError("Trip not found", code="TRIP_NOT_FOUND")

        circle = await self._store.get_circle(trip.circle_id) if trip.circle_id else None
        memberships = await self._store.list_memberships(trip.circle_id) if trip.circle_id else []
        records = await self._store.list_participants(trip.id)
        roster = resolve_participants(trip, memberships, records)
        member_ids = active_circle_member_ids(memberships)

        visible = (
            actor_id in member_ids
            or actor_id in roster.active_user_ids
            or actor_id == trip.created_by
            or (circle is not None and circle.owner_id == actor_id)
            or (as_recipient and _is_recipient(trip, actor_id))
        )
        if not visible:
            # Same error as a missing trip so existence does not leak
            raise NotFoundError("Trip not found", code="TRIP_NOT_FOUND")

        return TripContext(
            trip=trip,
            circle=circle,
            roster=roster,
            circle_member_ids=member_ids,
            participants={r.user_id: r for r in records},
        )

    @staticmethod
    def _require_active(ctx: TripContext, actor_id: str) -> None:
        if not ctx.roster.is_active(actor_id):
            raise ForbiddenError(
                "You are not an active traveler on this trip", code="NOT_ACTIVE_TRAVELER"
            )

    @staticmethod
    def _require_collaborative(trip: TripRecord, what: str) -> None:
        if not trip.is_collaborative:
            raise ValidationError(
                f"{what} only applies to collaborative trips", code="NOT_COLLABORATIVE"
            )

    @staticmethod
    def _require_window_mode(trip: TripRecord) -> None:
        if trip.scheduling_mode not in WINDOW_MODES:
            raise StageGuardError(
                "This trip does not use date windows", code="WRONG_SCHEDULING_MODE"
            )

    def _planning_range(self, trip: TripRecord) -> tuple[str, str]:
        start, end = trip.planning_start, trip.planning_end
        if not start or not end:
            raise ValidationError("Trip has no date range yet", code="NO_DATE_RANGE")
        return start, end

    def _window_length(self, trip: TripRecord) -> int:
        return trip.window_length or self._config.default_trip_length_days

    async def _enter_scheduling(self, trip: TripRecord) -> str:
        """proposed -> scheduling on the first qualifying submission."""
        if effective_status(trip) != "proposed":
            return effective_status(trip)
        moved = await self._store.update_trip(
            trip.id,
            {"status": "scheduling", "updated_at": self._clock()},
            expect={"status": "proposed"},
        )
        if moved:
            logger.info("trip_stage trip=%s from=proposed to=scheduling", trip.id)
        return "scheduling"

    def _participant_row(self, ctx: TripContext, user_id: str) -> ParticipantRecord:
        existing = ctx.participants.get(user_id)
        if existing is not None:
            return ParticipantRecord(
                trip_id=existing.trip_id,
                user_id=existing.user_id,
                status=existing.status,
                id=existing.id,
                joined_at=existing.joined_at,
                left_at=existing.left_at,
                removed_at=existing.removed_at,
                removed_by=existing.removed_by,
            )
        return ParticipantRecord(trip_id=ctx.trip.id, user_id=user_id, id=str(uuid.uuid4()))

    # ------------------------------------------------------------------
    # Trip creation + view
    # ------------------------------------------------------------------

    async def create_trip(
        self,
        actor_id: str,
        *,
        circle_id: str,
        name: str,
        trip_type: str = "collaborative",
        start_date: str | None = None,
        end_date: str | None = None,
        duration: int | None = None,
        scheduling_mode: str | None = "date_windows",
        start_bound: str | None = None,
        end_bound: str | None = None,
        trip_length_days: int | None = None,
        description: str | None = None,
    ) -> TripRecord:
        if not name or not name.strip():
            raise ValidationError("name is required")
        if trip_type not in TRIP_TYPES:
            raise ValidationError(f"type must be one of {', '.join(TRIP_TYPES)}")
        if scheduling_mode not in SCHEDULING_MODES:
            raise ValidationError("schedulingMode is not supported")
        for label, value in (
            ("startDate", start_date),
            ("endDate", end_date),
            ("startBound", start_bound),
            ("endBound", end_bound),
        ):
            if value is not None:
                parse_iso_date(value, label)
        if start_date and end_date and start_date > end_date:
            raise ValidationError("startDate must be on or before endDate")
        if trip_type == "hosted" and not (start_date and end_date):
            raise ValidationError("Hosted trips require startDate and endDate")
        for label, value in (("duration", duration), ("tripLengthDays", trip_length_days)):
            if value is not None and value < 1:
                raise ValidationError(f"{label} must be at least 1")

        circle = await self._store.get_circle(circle_id)
        if circle is None:
            raise NotFoundError("Circle not found", code="CIRCLE_NOT_FOUND")
        memberships = await self._store.list_memberships(circle_id)
        if actor_id not in active_circle_member_ids(memberships) and circle.owner_id != actor_id:
            raise ForbiddenError("You must be a circle member to create a trip", code="NOT_CIRCLE_MEMBER")

        now = self._clock()
        trip = TripRecord(
            id=str(uuid.uuid4()),
            circle_id=circle_id,
            name=name.strip(),
            description=description,
            type=trip_type,
            created_by=actor_id,
            start_date=start_date,
            end_date=end_date,
            duration=duration,
            created_at=now,
            updated_at=now,
        )

        if trip_type == "hosted":
            trip.status = "locked"
            trip.locked_start_date = start_date
            trip.locked_end_date = end_date
            trip.locked_at = now
            trip.lock_source = "hosted"
            trip.trip_length_days = days_inclusive(start_date, end_date)
        else:
            bound_start = start_bound or start_date
            bound_end = end_bound or end_date
            if bound_start and bound_end and bound_start > bound_end:
                raise ValidationError("startBound must be on or before endBound")
            trip.status = "proposed"
            trip.scheduling_mode = scheduling_mode
            trip.start_bound = bound_start
            trip.end_bound = bound_end
            trip.trip_length_days = trip_length_days or duration or self._config.default_trip_length_days

        await self._store.insert_trip(trip)
        if trip_type == "hosted":
            await self._store.upsert_participant(
                ParticipantRecord(
                    trip_id=trip.id,
                    user_id=actor_id,
                    status="active",
                    id=str(uuid.uuid4()),
                    joined_at=now,
                )
            )
        await self._store.commit()

        logger.info(
            "trip_created trip=%s circle=%s by=%s type=%s mode=%s",
            trip.id, circle_id, actor_id, trip_type, trip.scheduling_mode,
        )
        return trip

    async def get_trip_view(self, trip_id: str, actor_id: str) -> dict[str, Any]:
        """Read model: status, phase, roster and whichever funnel the trip uses."""
        ctx = await self._load(trip_id, actor_id)
        trip, roster = ctx.trip, ctx.roster
        active = roster.active_user_ids

        pending = trip.pending_leadership_transfer
        view: dict[str, Any] = {
            "trip": trip.to_dict(),
            "status": effective_status(trip),
            "phase": derive_phase(trip).value,
            "datesLocked": trip.dates_locked,
            **roster.to_dict(),
            "isLeader": is_trip_leader(trip, actor_id),
            "canAdminister": is_leader_or_circle_owner(trip, ctx.circle, actor_id),
            "isActiveTraveler": roster.is_active(actor_id),
            "totalTravelers": len(active),
            "allowedActions": allowed_actions(trip),
            "pendingLeadershipTransfer": (
                {**pending.to_dict(), "valid": transfer_is_valid(trip, roster)} if pending else None
            ),
        }

        if not trip.is_collaborative:
            return view

        bound_start, bound_end = trip.planning_start, trip.planning_end
        length = self._window_length(trip)
        options = []
        if bound_start and bound_end:
            rows = await self._store.list_availability(trip.id)
            per_day = normalize_availability(rows, bound_start, bound_end, user_ids=active)
            if not trip.dates_locked:
                options = score_windows(
                    per_day, bound_start, bound_end, length, top_n=self._config.consensus_top_n
                )
            view["userAvailability"] = [d.to_dict() for d in per_day if d.user_id == actor_id]
            view["respondedCount"] = len({d.user_id for d in per_day})
        else:
            view["userAvailability"] = []
            view["respondedCount"] = 0
        view["consensusOptions"] = [o.to_dict() for o in options]
        view["promisingWindows"] = [o.to_dict() for o in promising_windows(options)]

        mode = trip.scheduling_mode
        if mode is None:
            votes = await self._store.list_votes(trip.id)
            status = voting_status(effective_status(trip), options, votes, active, actor_id)
            view["votingStatus"] = status.to_dict()
            mine = next((v for v in votes if v.user_id == actor_id), None)
            view["userVote"] = mine.option_key if mine else None
        elif mode == "top3_heatmap":
            picks = await self._store.list_date_picks(trip.id)
            heat = build_heatmap(picks, bound_start, bound_end, length, active) if bound_start and bound_end else {}
            view["heatmap"] = {
                "topCandidates": [c.to_dict() for c in top_candidates(heat, self._config.heatmap_top_n)],
                "respondedCount": len({p.user_id for p in picks if p.user_id in active and p.picks}),
            }
            mine = next((p for p in picks if p.user_id == actor_id), None)
            view["userDatePicks"] = mine.picks if mine else []
        elif mode in WINDOW_MODES:
            windows = await self._store.list_windows(trip.id)
            supports = await self._store.list_supports(trip.id)
            view["dateWindows"] = self._window_views(windows, supports, roster, actor_id)
            view["proposalReadiness"] = compute_proposal_readiness(
                windows,
                supports,
                active,
                self._config.small_group_max_travelers,
                self._config.large_group_min_support,
            ).to_dict()
            view["userWindowCount"] = sum(1 for w in windows if w.proposed_by == actor_id)
            view["maxWindows"] = self._config.max_windows_per_user
            view["proposedWindowId"] = trip.proposed_window_id
        return view

    # ------------------------------------------------------------------
    # Availability (all modes) + legacy voting
    # ------------------------------------------------------------------

    async def submit_availability(
        self,
        trip_id: str,
        actor_id: str,
        *,
        availabilities: list[dict[str, Any]] | None = None,
        broad_status: str | None = None,
        weekly_blocks: list[dict[str, Any]] | None = None,
    ) -> dict[str, Any]:
        availabilities = availabilities or []
        weekly_blocks = weekly_blocks or []
        if not availabilities and not weekly_blocks and broad_status is None:
            raise ValidationError("Provide availabilities, broadStatus or weeklyBlocks")
        if broad_status is not None and broad_status not in AVAILABILITY_STATUSES:
            raise ValidationError("broadStatus must be available, maybe or unavailable")
        for entry in availabilities:
            parse_iso_date(entry.get("day"), "day")
            if entry.get("status") not in AVAILABILITY_STATUSES:
                raise ValidationError("status must be available, maybe or unavailable")
        for block in weekly_blocks:
            start = parse_iso_date(block.get("startDate"), "startDate")
            end = parse_iso_date(block.get("endDate"), "endDate")
            if start > end:
                raise ValidationError("Weekly block startDate must be on or before endDate")
            if block.get("status") not in AVAILABILITY_STATUSES:
                raise ValidationError("status must be available, maybe or unavailable")

        ctx = await self._load(trip_id, actor_id)
        trip = ctx.trip
        self._require_collaborative(trip, "Availability")
        self._require_active(ctx, actor_id)
        guard_action(trip, Action.SUBMIT_AVAILABILITY)

        range_start, range_end = self._planning_range(trip)
        for entry in availabilities:
            if not range_start <= entry["day"] <= range_end:
                raise ValidationError(f"{entry['day']} is outside the trip date range")
        for block in weekly_blocks:
            if block["startDate"] < range_start or block["endDate"] > range_end:
                raise ValidationError(
                    f"Weekly block {block['startDate']}..{block['endDate']} is outside the trip date range"
                )

        now = self._clock()
        rows: list[AvailabilityRecord] = []
        if broad_status is not None:
            rows.append(AvailabilityRecord(
                trip_id=trip.id, user_id=actor_id, kind="broad", status=broad_status,
                sort_order=len(rows), id=str(uuid.uuid4()), created_at=now,
            ))
        for block in weekly_blocks:
            rows.append(AvailabilityRecord(
                trip_id=trip.id, user_id=actor_id, kind="weekly", status=block["status"],
                start_date=block["startDate"], end_date=block["endDate"],
                sort_order=len(rows), id=str(uuid.uuid4()), created_at=now,
            ))
        for entry in availabilities:
            rows.append(AvailabilityRecord(
                trip_id=trip.id, user_id=actor_id, kind="day", status=entry["status"],
                day=entry["day"], sort_order=len(rows), id=str(uuid.uuid4()), created_at=now,
            ))

        await self._store.replace_availability(trip.id, actor_id, rows)
        status = await self._enter_scheduling(trip)
        await self._store.commit()

        logger.info(
            "availability_saved trip=%s user=%s broad=%s weekly=%d days=%d",
            trip.id, actor_id, broad_status is not None, len(weekly_blocks), len(availabilities),
        )
        return {
            "saved": {
                "broad": 1 if broad_status is not None else 0,
                "weekly": len(weekly_blocks),
                "perDay": len(availabilities),
            },
            "status": status,
        }

    async def open_voting(self, trip_id: str, actor_id: str) -> TripRecord:
        ctx = await self._load(trip_id, actor_id)
        trip = ctx.trip
        require_leader_or_owner(
            trip, ctx.circle, actor_id, "Only the trip creator or circle owner can open voting"
        )
        guard_action(trip, Action.OPEN_VOTING)
        if trip.scheduling_mode is not None:
            raise StageGuardError(
                "Voting is only used by trips on the legacy voting flow", code="WRONG_SCHEDULING_MODE"
            )

        previous = effective_status(trip)
        moved = await self._store.update_trip(
            trip.id,
            {"status": "voting", "updated_at": self._clock()},
            expect={"status": trip.status},
        )
        if not moved:
            raise StageGuardError("Trip stage changed; reload and try again")
        await self._store.commit()

        logger.info("trip_stage trip=%s from=%s to=voting by=%s", trip.id, previous, actor_id)
        trip.status = "voting"
        return trip

    async def vote(self, trip_id: str, actor_id: str, option_key: str | None) -> VoteRecord:
        if not option_key:
            raise ValidationError("optionKey is required")
        start, end = split_option_key(option_key)

        ctx = await self._load(trip_id, actor_id)
        trip = ctx.trip
        self._require_active(ctx, actor_id)
        guard_action(trip, Action.VOTE)
        check_window_bounds(start, end, trip.planning_start, trip.planning_end)

        now = self._clock()
        vote = VoteRecord(
            trip_id=trip.id, user_id=actor_id, option_key=option_key, created_at=now, updated_at=now
        )
        await self._store.upsert_vote(vote)
        await self._store.commit()

        logger.info("vote_cast trip=%s user=%s option=%s", trip.id, actor_id, option_key)
        return vote

    async def submit_date_picks(
        self, trip_id: str, actor_id: str, picks: list[dict[str, Any]] | None
    ) -> list[dict[str, Any]]:
        if picks is None:
            raise ValidationError("picks is required")

        ctx = await self._load(trip_id, actor_id)
        trip = ctx.trip
        self._require_collaborative(trip, "Date picks")
        self._require_active(ctx, actor_id)
        guard_action(trip, Action.SUBMIT_DATE_PICKS)
        if trip.scheduling_mode != "top3_heatmap":
            raise StageGuardError(
                "Date picks are only used by top3_heatmap trips", code="WRONG_SCHEDULING_MODE"
            )

        bound_start, bound_end = self._planning_range(trip)
        cleaned = validate_date_picks(
            picks, bound_start, bound_end, self._window_length(trip), self._config.max_date_picks
        )
        await self._store.upsert_date_picks(
            DatePickRecord(trip_id=trip.id, user_id=actor_id, picks=cleaned, updated_at=self._clock())
        )
        await self._enter_scheduling(trip)
        await self._store.commit()

        logger.info("date_picks_saved trip=%s user=%s count=%d", trip.id, actor_id, len(cleaned))
        return cleaned

    # ------------------------------------------------------------------
    # Date windows funnel
    # ------------------------------------------------------------------

    @staticmethod
    def _window_views(
        windows: list[WindowRecord],
        supports: list[SupportRecord],
        roster: ParticipantRoster,
        actor_id: str,
    ) -> list[dict[str, Any]]:
        tallies = {t.window.id: t for t in tally_support(windows, supports, roster.active_user_ids)}
        out = []
        for window in windows:
            tally = tallies[window.id]
            out.append({
                **window.to_dict(),
                "supportCount": tally.count,
                "supporterIds": list(tally.user_ids),
                "supportedByMe": actor_id in tally.user_ids,
            })
        return out

    async def list_windows(self, trip_id: str, actor_id: str) -> list[dict[str, Any]]:
        ctx = await self._load(trip_id, actor_id)
        windows = await self._store.list_windows(ctx.trip.id)
        supports = await self._store.list_supports(ctx.trip.id)
        return self._window_views(windows, supports, ctx.roster, actor_id)

    def _check_concrete_range(self, trip: TripRecord, start: str, end: str) -> None:
        if start > end:
            raise ValidationError("startDate must be on or before endDate")
        days = days_inclusive(start, end)
        if days > self._config.max_window_days:
            raise ValidationError(
                f"That's {days} days, which is longer than the "
                f"{self._config.max_window_days}-day limit. Try a shorter range.",
                code="WINDOW_TOO_LONG",
            )
        check_window_bounds(start, end, trip.planning_start, trip.planning_end)

    async def _active_support_count(self, trip_id: str, window_id: str, roster: ParticipantRoster) -> int:
        supports = await self._store.list_supports(trip_id)
        return len({
            s.user_id for s in supports
            if s.window_id == window_id and roster.is_active(s.user_id)
        })

    async def create_window(
        self,
        trip_id: str,
        actor_id: str,
        *,
        start_date: str | None = None,
        end_date: str | None = None,
        text: str | None = None,
        accept_unstructured: bool = False,
        acknowledge_overlap: bool = False,
    ) -> dict[str, Any]:
        has_dates = start_date is not None or end_date is not None
        if has_dates:
            parse_iso_date(start_date, "startDate")
            parse_iso_date(end_date, "endDate")
        elif text is None:
            raise ValidationError("Provide startDate and endDate, or text")

        ctx = await self._load(trip_id, actor_id)
        trip = ctx.trip
        self._require_collaborative(trip, "Date windows")
        self._require_active(ctx, actor_id)
        guard_action(trip, Action.CREATE_WINDOW)
        self._require_window_mode(trip)

        windows = await self._store.list_windows(trip.id)
        mine = sum(1 for w in windows if w.proposed_by == actor_id)
        if mine >= self._config.max_windows_per_user:
            raise ConflictError(
                f"You can suggest at most {self._config.max_windows_per_user} date windows",
                code="WINDOW_LIMIT_REACHED",
                details={"userWindowCount": mine, "maxWindows": self._config.max_windows_per_user},
            )

        precision = "exact"
        if has_dates:
            start, end = start_date, end_date
        else:
            context = WindowContext(start_bound=trip.planning_start, today=self._clock().date())
            try:
                parsed = parse_window_text(text, context, self._config.max_window_days)
            except WindowTextError as exc:
                # Only text with no recognizable shape may be stored as unstructured
                if exc.code != "UNPARSEABLE_WINDOW" or not accept_unstructured or not text.strip():
                    raise
                start = end = None
                precision = "unstructured"
            else:
                start, end, precision = parsed.start_date, parsed.end_date, parsed.precision
                if parsed.is_bare_month:
                    # Whole months skip the length cap
                    check_window_bounds(start, end, trip.planning_start, trip.planning_end)
                else:
                    self._check_concrete_range(trip, start, end)
        if has_dates:
            self._check_concrete_range(trip, start, end)

        if start and end:
            similar = find_similar_windows(
                start, end, windows, self._config.window_similarity_threshold
            )
            if similar and not acknowledge_overlap:
                raise ConflictError(
                    "A similar date window already exists. Support it instead, "
                    "or resubmit with acknowledgeOverlap to add yours anyway.",
                    code="SIMILAR_WINDOW",
                    details={
                        "similarWindowId": similar[0].window_id,
                        "similarScore": similar[0].score,
                        "similarWindows": [s.to_dict() for s in similar],
                    },
                )

        now = self._clock()
        window = WindowRecord(
            id=str(uuid.uuid4()),
            trip_id=trip.id,
            proposed_by=actor_id,
            precision=precision,
            start_date=start,
            end_date=end,
            source_text=text.strip() if isinstance(text, str) else None,
            created_at=now,
        )
        await self._store.insert_window(
            window, SupportRecord(window_id=window.id, trip_id=trip.id, user_id=actor_id, created_at=now)
        )
        await self._enter_scheduling(trip)
        await self._store.commit()

        logger.info(
            "window_created trip=%s by=%s window=%s precision=%s range=%s..%s",
            trip.id, actor_id, window.id, precision, start, end,
        )
        return {
            "window": window.to_dict(),
            "supportCount": 1,
            "userWindowCount": mine + 1,
            "maxWindows": self._config.max_windows_per_user,
        }

    async def set_support(
        self, trip_id: str, window_id: str, actor_id: str, supported: bool
    ) -> dict[str, Any]:
        """Idempotent support toggle. `changed` reports whether anything moved."""
        ctx = await self._load(trip_id, actor_id)
        trip = ctx.trip
        self._require_active(ctx, actor_id)
        guard_action(trip, Action.SUPPORT_WINDOW)
        window = await self._store.get_window(trip.id, window_id)
        if window is None:
            raise NotFoundError("Date window not found", code="WINDOW_NOT_FOUND")

        if supported:
            changed = await self._store.add_support(
                SupportRecord(window_id=window.id, trip_id=trip.id, user_id=actor_id, created_at=self._clock())
            )
        else:
            changed = await self._store.remove_support(window.id, actor_id)
        await self._store.commit()

        if changed:
            logger.info(
                "window_support trip=%s window=%s user=%s supported=%s",
                trip.id, window.id, actor_id, supported,
            )
        return {
            "windowId": window.id,
            "supported": supported,
            "changed": changed,
            "supportCount": await self._active_support_count(trip.id, window.id, ctx.roster),
        }

    async def concretize_window(
        self, trip_id: str, window_id: str, actor_id: str, start_date: str, end_date: str
    ) -> WindowRecord:
        parse_iso_date(start_date, "startDate")
        parse_iso_date(end_date, "endDate")

        ctx = await self._load(trip_id, actor_id)
        trip = ctx.trip
        require_trip_leader(trip, actor_id, "Only the trip leader can set exact dates on a window")
        guard_action(trip, Action.CONCRETIZE_WINDOW)
        window = await self._store.get_window(trip.id, window_id)
        if window is None:
            raise NotFoundError("Date window not found", code="WINDOW_NOT_FOUND")
        if window.precision != "unstructured":
            raise ConflictError("Window already has dates", code="WINDOW_ALREADY_CONCRETE")
        self._check_concrete_range(trip, start_date, end_date)

        now = self._clock()
        changes = {
            "start_date": start_date,
            "end_date": end_date,
            "precision": "exact",
            "concretized_at": now,
            "concretized_by": actor_id,
        }
        updated = await self._store.update_window(window.id, changes, expect={"precision": "unstructured"})
        if not updated:
            raise ConflictError("Window already has dates", code="WINDOW_ALREADY_CONCRETE")
        await self._store.commit()

        logger.info(
            "window_concretized trip=%s window=%s by=%s range=%s..%s",
            trip.id, window.id, actor_id, start_date, end_date,
        )
        window.start_date, window.end_date, window.precision = start_date, end_date, "exact"
        window.concretized_at, window.concretized_by = now, actor_id
        return window

    async def propose_window(
        self, trip_id: str, actor_id: str, window_id: str | None, leader_override: bool = False
    ) -> dict[str, Any]:
        if not window_id:
            raise ValidationError("windowId is required")

        ctx = await self._load(trip_id, actor_id)
        trip = ctx.trip
        require_trip_leader(trip, actor_id, "Only the trip leader can propose dates")
        guard_action(trip, Action.PROPOSE_WINDOW)
        self._require_window_mode(trip)

        window = await self._store.get_window(trip.id, window_id)
        if window is None:
            raise NotFoundError("Date window not found", code="WINDOW_NOT_FOUND")
        if not window.is_concrete:
            raise ValidationError(
                "Set exact dates on this window before proposing it", code="WINDOW_NOT_CONCRETE"
            )

        windows = await self._store.list_windows(trip.id)
        supports = await self._store.list_supports(trip.id)
        readiness = compute_proposal_readiness(
            windows,
            supports,
            ctx.roster.active_user_ids,
            self._config.small_group_max_travelers,
            self._config.large_group_min_support,
        )
        window_support = next(
            (t.count for t in tally_support(windows, supports, ctx.roster.active_user_ids)
             if t.window.id == window.id),
            0,
        )
        ready = window_support >= readiness.threshold_needed
        if not ready and not leader_override:
            raise StageGuardError(
                f"Not enough travelers support this window yet "
                f"({window_support} of {readiness.threshold_needed} needed). "
                "Wait for more support or propose with leaderOverride.",
                code="PROPOSAL_NOT_READY",
                details={
                    **readiness.to_dict(),
                    "windowId": window.id,
                    "windowSupportCount": window_support,
                },
            )

        now = self._clock()
        changes: dict[str, Any] = {
            "proposed_window_id": window.id,
            "proposed_at": now,
            "proposed_by": actor_id,
            "proposal_override": not ready,
            "updated_at": now,
        }
        if effective_status(trip) == "proposed":
            changes["status"] = "scheduling"
        moved = await self._store.update_trip(
            trip.id, changes, expect={"proposed_window_id": None, "locked_start_date": None}
        )
        if not moved:
            raise StageGuardError("A date proposal is already active")
        await self._store.commit()

        logger.info(
            "dates_proposed trip=%s window=%s by=%s support=%d needed=%d override=%s",
            trip.id, window.id, actor_id, window_support, readiness.threshold_needed, not ready,
        )
        return {
            "phase": SchedulingPhase.PROPOSED.value,
            "proposedWindow": window.to_dict(),
            "leaderOverride": not ready,
            "readiness": readiness.to_dict(),
        }

    async def withdraw_proposal(self, trip_id: str, actor_id: str) -> dict[str, Any]:
        ctx = await self._load(trip_id, actor_id)
        trip = ctx.trip
        require_trip_leader(trip, actor_id, "Only the trip leader can withdraw a proposal")
        guard_action(trip, Action.WITHDRAW_PROPOSAL)

        withdrawn = trip.proposed_window_id
        moved = await self._store.update_trip(
            trip.id,
            {
                "proposed_window_id": None,
                "proposed_at": None,
                "proposed_by": None,
                "proposal_override": False,
                "updated_at": self._clock(),
            },
            expect={"proposed_window_id": withdrawn, "locked_start_date": None},
        )
        if not moved:
            raise StageGuardError("No date proposal to withdraw")
        await self._store.commit()

        logger.info("proposal_withdrawn trip=%s window=%s by=%s", trip.id, withdrawn, actor_id)
        return {"phase": SchedulingPhase.COLLECTING.value, "withdrawnWindowId": withdrawn}

    # ------------------------------------------------------------------
    # Locking
    # ------------------------------------------------------------------

    async def lock(
        self,
        trip_id: str,
        actor_id: str,
        *,
        option_key: str | None = None,
        start_date_iso: str | None = None,
        proposed_only: bool = False,
    ) -> TripRecord:
        ctx = await self._load(trip_id, actor_id)
        trip = ctx.trip
        require_leader_or_owner(
            trip, ctx.circle, actor_id, "Only the trip creator or circle owner can lock the trip"
        )
        guard_action(trip, Action.LOCK)
        if proposed_only:
            self._require_window_mode(trip)

        source = lock_source_for(
            trip,
            {"optionKey": option_key, "startDateISO": start_date_iso},
            self._config.default_trip_length_days,
        )
        window = None
        if isinstance(source, FunnelProposalLock):
            window = await self._store.get_window(trip.id, source.window_id)
        start, end = source.resolve_dates(trip, window)

        now = self._clock()
        changes = {
            "status": "locked",
            "locked_start_date": start,
            "locked_end_date": end,
            "locked_at": now,
            "lock_source": source.label,
            "updated_at": now,
        }
        locked = await self._store.update_trip(
            trip.id, changes, expect={"locked_start_date": None, "status": trip.status}
        )
        if not locked:
            raise StageGuardError("Trip is already locked")
        await self._store.commit()

        logger.info(
            "trip_locked trip=%s by=%s source=%s range=%s..%s", trip.id, actor_id, source.label, start, end
        )
        trip.status, trip.locked_start_date, trip.locked_end_date = "locked", start, end
        trip.locked_at, trip.lock_source = now, source.label
        return trip

    # ------------------------------------------------------------------
    # Participant lifecycle
    # ------------------------------------------------------------------

    async def join(self, trip_id: str, actor_id: str) -> ParticipantRecord:
        ctx = await self._load(trip_id, actor_id)
        guard_action(ctx.trip, Action.JOIN)
        if ctx.roster.is_active(actor_id):
            raise ConflictError("You are already on this trip", code="ALREADY_PARTICIPANT")
        if ctx.roster.status_of(actor_id) is ParticipantStatus.REMOVED:
            raise ForbiddenError("You were removed from this trip", code="REMOVED_FROM_TRIP")
        if actor_id not in ctx.circle_member_ids:
            raise ForbiddenError("You must be a circle member to join this trip", code="NOT_CIRCLE_MEMBER")

        now = self._clock()
        record = self._participant_row(ctx, actor_id)
        record.status = "active"
        record.joined_at = now
        record.left_at = None
        await self._store.upsert_participant(record)
        await self._store.commit()

        logger.info("participant_joined trip=%s user=%s", ctx.trip.id, actor_id)
        return record

    async def leave(
        self, trip_id: str, actor_id: str, transfer_to_user_id: str | None = None
    ) -> dict[str, Any]:
        ctx = await self._load(trip_id, actor_id)
        trip = ctx.trip
        guard_action(trip, Action.LEAVE)
        self._require_active(ctx, actor_id)

        now = self._clock()
        new_leader = None
        if is_trip_leader(trip, actor_id):
            if not ctx.roster.others(actor_id):
                raise ConflictError(
                    "You are the only traveler on this trip; delete the trip instead",
                    code="SOLE_TRAVELER",
                )
            if not transfer_to_user_id:
                raise ValidationError(
                    "Trip leader must transfer leadership before leaving",
                    code="LEADERSHIP_TRANSFER_REQUIRED",
                )
            new_leader = validate_transfer_target(trip, ctx.roster, actor_id, transfer_to_user_id)
            moved = await self._store.update_trip(
                trip.id,
                {"created_by": new_leader, "pending_leadership_transfer": None, "updated_at": now},
                expect={"created_by": actor_id},
            )
            if not moved:
                raise ConflictError("Trip leadership changed; reload and try again")
        else:
            pending = trip.pending_leadership_transfer
            if pending is not None and pending.to_user_id == actor_id:
                await self._store.update_trip(
                    trip.id, {"pending_leadership_transfer": None, "updated_at": now}
                )

        record = self._participant_row(ctx, actor_id)
        record.status = "left"
        record.left_at = now
        await self._store.upsert_participant(record)
        await self._store.commit()

        logger.info("participant_left trip=%s user=%s new_leader=%s", trip.id, actor_id, new_leader)
        return {"status": "left", "leftAt": now.isoformat(), "newLeaderId": new_leader}

    async def remove_participant(self, trip_id: str, actor_id: str, user_id: str) -> ParticipantRecord:
        ctx = await self._load(trip_id, actor_id)
        trip = ctx.trip
        require_trip_leader(trip, actor_id, "Only the trip leader can remove travelers")
        guard_action(trip, Action.REMOVE_PARTICIPANT)
        if user_id == actor_id:
            raise ValidationError("Leaders cannot remove themselves; leave the trip instead")
        if not ctx.roster.is_active(user_id):
            raise NotFoundError("Traveler not found on this trip", code="PARTICIPANT_NOT_FOUND")

        now = self._clock()
        pending = trip.pending_leadership_transfer
        if pending is not None and pending.to_user_id == user_id:
            await self._store.update_trip(trip.id, {"pending_leadership_transfer": None, "updated_at": now})

        record = self._participant_row(ctx, user_id)
        record.status = "removed"
        record.removed_at = now
        record.removed_by = actor_id
        await self._store.upsert_participant(record)
        await self._store.commit()

        logger.info("participant_removed trip=%s user=%s by=%s", trip.id, user_id, actor_id)
        return record

    # ------------------------------------------------------------------
    # Leadership transfer
    # ------------------------------------------------------------------

    async def initiate_transfer(
        self, trip_id: str, actor_id: str, new_leader_id: str | None
    ) -> dict[str, Any]:
        if not new_leader_id:
            raise ValidationError("newLeaderId is required")
        ctx = await self._load(trip_id, actor_id)
        trip = ctx.trip
        require_trip_leader(trip, actor_id, "Only the trip leader can transfer leadership")
        guard_action(trip, Action.TRANSFER_LEADERSHIP)
        if new_leader_id == actor_id:
            raise ValidationError("Cannot transfer leadership to yourself")
        if trip.pending_leadership_transfer and transfer_is_valid(trip, ctx.roster):
            raise ConflictError(
                "A leadership transfer is already pending", code="TRANSFER_PENDING"
            )
        validate_transfer_target(trip, ctx.roster, actor_id, new_leader_id)

        pending = new_pending_transfer(actor_id, new_leader_id, self._clock())
        moved = await self._store.update_trip(
            trip.id,
            {"pending_leadership_transfer": pending, "updated_at": self._clock()},
            expect={"created_by": actor_id},
        )
        if not moved:
            raise ConflictError("Trip leadership changed; reload and try again")
        await self._store.commit()

        logger.info("leadership_transfer_started trip=%s from=%s to=%s", trip.id, actor_id, new_leader_id)
        return pending.to_dict()

    async def _load_pending(self, trip_id: str, actor_id: str) -> TripContext:
        # The recipient may have left the circle; they still reach the void path
        ctx = await self._load(trip_id, actor_id, as_recipient=True)
        guard_action(ctx.trip, Action.TRANSFER_LEADERSHIP)
        if ctx.trip.pending_leadership_transfer is None:
            raise NotFoundError("No pending leadership transfer", code="TRANSFER_NOT_FOUND")
        return ctx

    async def _clear_pending(self, trip: TripRecord) -> None:
        await self._store.update_trip(
            trip.id, {"pending_leadership_transfer": None, "updated_at": self._clock()}
        )

    async def accept_transfer(self, trip_id: str, actor_id: str) -> TripRecord:
        ctx = await self._load_pending(trip_id, actor_id)
        trip = ctx.trip
        pending = trip.pending_leadership_transfer
        if pending.to_user_id != actor_id:
            raise ForbiddenError("Only the invited traveler can accept this transfer")

        if not transfer_is_valid(trip, ctx.roster):
            await self._clear_pending(trip)
            await self._store.commit()
            logger.info("leadership_transfer_voided trip=%s to=%s", trip.id, actor_id)
            raise ConflictError("This leadership transfer is no longer valid", code="TRANSFER_VOID")

        moved = await self._store.update_trip(
            trip.id,
            {"created_by": actor_id, "pending_leadership_transfer": None, "updated_at": self._clock()},
            expect={"created_by": pending.from_user_id},
        )
        if not moved:
            raise ConflictError("Trip leadership changed; reload and try again")
        await self._store.commit()

        logger.info(
            "leadership_transferred trip=%s from=%s to=%s", trip.id, pending.from_user_id, actor_id
        )
        trip.created_by = actor_id
        trip.pending_leadership_transfer = None
        return trip

    async def decline_transfer(self, trip_id: str, actor_id: str) -> None:
        ctx = await self._load_pending(trip_id, actor_id)
        pending = ctx.trip.pending_leadership_transfer
        if pending.to_user_id != actor_id:
            raise ForbiddenError("Only the invited traveler can decline this transfer")
        await self._clear_pending(ctx.trip)
        await self._store.commit()
        logger.info("leadership_transfer_declined trip=%s by=%s", ctx.trip.id, actor_id)

    async def cancel_transfer(self, trip_id: str, actor_id: str) -> None:
        ctx = await self._load_pending(trip_id, actor_id)
        pending = ctx.trip.pending_leadership_transfer
        if pending.from_user_id != actor_id:
            raise ForbiddenError("Only the leader who started this transfer can cancel it")
        await self._clear_pending(ctx.trip)
        await self._store.commit()
        logger.info("leadership_transfer_canceled trip=%s by=%s", ctx.trip.id, actor_id)

    # ------------------------------------------------------------------
    # Terminal transitions
    # ------------------------------------------------------------------

    async def cancel_trip(self, trip_id: str, actor_id: str) -> TripRecord:
        ctx = await self._load(trip_id, actor_id)
        trip = ctx.trip
        require_leader_or_owner(
            trip, ctx.circle, actor_id, "Only the trip leader or circle owner can cancel this trip"
        )
        guard_action(trip, Action.CANCEL)

        now = self._clock()
        changes = {
            "status": "canceled",
            "trip_status": "CANCELLED",
            "canceled_at": now,
            "canceled_by": actor_id,
            "updated_at": now,
        }
        moved = await self._store.update_trip(trip.id, changes, expect={"trip_status": trip.trip_status})
        if not moved:
            raise StageGuardError("Trip is already canceled", code="TRIP_ALREADY_CANCELED")
        await self._store.commit()

        logger.info("trip_canceled trip=%s by=%s", trip.id, actor_id)
        trip.status, trip.trip_status = "canceled", "CANCELLED"
        trip.canceled_at, trip.canceled_by = now, actor_id
        return trip

    async def complete_trip(self, trip_id: str, actor_id: str) -> TripRecord:
        ctx = await self._load(trip_id, actor_id)
        trip = ctx.trip
        require_leader_or_owner(
            trip, ctx.circle, actor_id, "Only the trip leader or circle owner can complete this trip"
        )
        guard_action(trip, Action.COMPLETE)

        now = self._clock()
        changes = {
            "status": "completed",
            "trip_status": "COMPLETED",
            "completed_at": now,
            "updated_at": now,
        }
        moved = await self._store.update_trip(trip.id, changes, expect={"trip_status": trip.trip_status})
        if not moved:
            raise StageGuardError("Trip is already completed", code="TRIP_ALREADY_COMPLETED")
        await self._store.commit()

        logger.info("trip_completed trip=%s by=%s", trip.id, actor_id)
        trip.status, trip.trip_status, trip.completed_at = "completed", "COMPLETED", now
        return trip
