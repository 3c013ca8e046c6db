"""
Trip scheduling endpoints.

Endpoints:
  POST   /trips                                   -- create a collaborative or hosted trip
  GET    /trips/{id}                              -- trip view (status, phase, consensus, funnel)
  POST   /trips/{id}/availability                 -- replace the caller's availability
  POST   /trips/{id}/open-voting                  -- scheduling -> voting (legacy flow)
  POST   /trips/{id}/vote                         -- upsert the caller's vote
  POST   /trips/{id}/date-picks                   -- upsert the caller's ranked picks (top3_heatmap)
  POST   /trips/{id}/propose-dates                -- COLLECTING -> PROPOSED
  POST   /trips/{id}/withdraw-proposal            -- PROPOSED -> COLLECTING
  POST   /trips/{id}/lock                         -- lock dates using the trip's mode
  POST   /trips/{id}/lock-proposed                -- lock the proposed window
  POST   /trips/{id}/join                         -- join / rejoin
  POST   /trips/{id}/leave                        -- leave, transferring leadership if leader
  POST   /trips/{id}/participants/{uid}/remove    -- leader removes a traveler
  POST   /trips/{id}/cancel                       -- terminal: canceled
  POST   /trips/{id}/complete                     -- terminal: completed

Auth: X-User-Id header is expected on every endpoint (set by the Next.js layer).
Domain errors propagate as SchedulingError and are rendered by middleware/errors.py.
"""

from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Depends, Header, Request
from pydantic import BaseModel, Field

from services.api.routers._trip_deps import Envelope, envelope, get_scheduling_service
from services.api.scheduling.service import SchedulingService

router = APIRouter(prefix="/trips", tags=["trips"])


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------

class CreateTripRequest(BaseModel):
    circleId: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1, max_length=200)
    type: str = "collaborative"
    description: Optional[str] = Field(None, max_length=2000)
    startDate: Optional[str] = None
    endDate: Optional[str] = None
    duration: Optional[int] = None
    schedulingMode: Optional[str] = "date_windows"
    startBound: Optional[str] = None
    endBound: Optional[str] = None
    tripLengthDays: Optional[int] = None


class DayStatus(BaseModel):
    day: Optional[str] = None
    status: Optional[str] = None


class WeeklyBlock(BaseModel):
    startDate: Optional[str] = None
    endDate: Optional[str] = None
    status: Optional[str] = None


class AvailabilityRequest(BaseModel):
    availabilities: list[DayStatus] = Field(default_factory=list)
    broadStatus: Optional[str] = None
    weeklyBlocks: list[WeeklyBlock] = Field(default_factory=list)


class VoteRequest(BaseModel):
    optionKey: Optional[str] = None


class DatePicksRequest(BaseModel):
    # Shape is checked by the heatmap validator so errors carry one message style
    picks: Optional[list[Any]] = None


class ProposeRequest(BaseModel):
    windowId: Optional[str] = None
    leaderOverride: bool = False


class LockRequest(BaseModel):
    optionKey: Optional[str] = None
    startDateISO: Optional[str] = None


class LeaveRequest(BaseModel):
    transferToUserId: Optional[str] = None


# ---------------------------------------------------------------------------
# Trip lifecycle
# ---------------------------------------------------------------------------

@router.post("", response_model=Envelope, status_code=201)
async def create_trip(
    body: CreateTripRequest,
    request: Request,
    service: SchedulingService = Depends(get_scheduling_service),
    x_user_id: str = Header(..., alias="X-User-Id"),
) -> Envelope:
    trip = await service.create_trip(
        x_user_id,
        circle_id=body.circleId,
        name=body.name,
        trip_type=body.type,
        description=body.description,
        start_date=body.startDate,
        end_date=body.endDate,
        duration=body.duration,
        scheduling_mode=body.schedulingMode,
        start_bound=body.startBound,
        end_bound=body.endBound,
        trip_length_days=body.tripLengthDays,
    )
    return envelope(request, trip.to_dict())


@router.get("/{trip_id}", response_model=Envelope)
async def get_trip(
    trip_id: str,
    request: Request,
    service: SchedulingService = Depends(get_scheduling_service),
    x_user_id: str = Header(..., alias="X-User-Id"),
) -> Envelope:
    return envelope(request, await service.get_trip_view(trip_id, x_user_id))


@router.post("/{trip_id}/cancel", response_model=Envelope)
async def cancel_trip(
    trip_id: str,
    request: Request,
    service: SchedulingService = Depends(get_scheduling_service),
    x_user_id: str = Header(..., alias="X-User-Id"),
) -> Envelope:
    trip = await service.cancel_trip(trip_id, x_user_id)
    return envelope(request, trip.to_dict())


@router.post("/{trip_id}/complete", response_model=Envelope)
async def complete_trip(
    trip_id: str,
    request: Request,
    service: SchedulingService = Depends(get_scheduling_service),
    x_user_id: str = Header(..., alias="X-User-Id"),
) -> Envelope:
    trip = await service.complete_trip(trip_id, x_user_id)
    return envelope(request, trip.to_dict())


# ---------------------------------------------------------------------------
# Availability, voting, heatmap picks
# ---------------------------------------------------------------------------

@router.post("/{trip_id}/availability", response_model=Envelope)
async def submit_availability(
    trip_id: str,
    body: AvailabilityRequest,
    request: Request,
    service: SchedulingService = Depends(get_scheduling_service),
    x_user_id: str = Header(..., alias="X-User-Id"),
) -> Envelope:
    result = await service.submit_availability(
        trip_id,
        x_user_id,
        availabilities=[a.model_dump() for a in body.availabilities],
        broad_status=body.broadStatus,
        weekly_blocks=[b.model_dump() for b in body.weeklyBlocks],
    )
    return envelope(request, result)


@router.post("/{trip_id}/open-voting", response_model=Envelope)
async def open_voting(
    trip_id: str,
    request: Request,
    service: SchedulingService = Depends(get_scheduling_service),
    x_user_id: str = Header(..., alias="X-User-Id"),
) -> Envelope:
    trip = await service.open_voting(trip_id, x_user_id)
    return envelope(request, {"status": trip.status})


@router.post("/{trip_id}/vote", response_model=Envelope)
async def vote(
    trip_id: str,
    body: VoteRequest,
    request: Request,
    service: SchedulingService = Depends(get_scheduling_service),
    x_user_id: str = Header(..., alias="X-User-Id"),
) -> Envelope:
    cast = await service.vote(trip_id, x_user_id, body.optionKey)
    return envelope(request, {"optionKey": cast.option_key})


@router.post("/{trip_id}/date-picks", response_model=Envelope)
async def submit_date_picks(
    trip_id: str,
    body: DatePicksRequest,
    request: Request,
    service: SchedulingService = Depends(get_scheduling_service),
    x_user_id: str = Header(..., alias="X-User-Id"),
) -> Envelope:
    picks = await service.submit_date_picks(trip_id, x_user_id, body.picks)
    return envelope(request, {"picks": picks})


# ---------------------------------------------------------------------------
# Proposal + lock
# ---------------------------------------------------------------------------

@router.post("/{trip_id}/propose-dates", response_model=Envelope)
async def propose_dates(
    trip_id: str,
    body: ProposeRequest,
    request: Request,
    service: SchedulingService = Depends(get_scheduling_service),
    x_user_id: str = Header(..., alias="X-User-Id"),
) -> Envelope:
    result = await service.propose_window(
        trip_id, x_user_id, body.windowId, leader_override=body.leaderOverride
    )
    return envelope(request, result)


@router.post("/{trip_id}/withdraw-proposal", response_model=Envelope)
async def withdraw_proposal(
    trip_id: str,
    request: Request,
    service: SchedulingService = Depends(get_scheduling_service),
    x_user_id: str = Header(..., alias="X-User-Id"),
) -> Envelope:
    return envelope(request, await service.withdraw_proposal(trip_id, x_user_id))


@router.post("/{trip_id}/lock", response_model=Envelope)
async def lock_trip(
    trip_id: str,
    request: Request,
    body: Optional[LockRequest] = None,
    service: SchedulingService = Depends(get_scheduling_service),
    x_user_id: str = Header(..., alias="X-User-Id"),
) -> Envelope:
    body = body or LockRequest()
    trip = await service.lock(
        trip_id, x_user_id, option_key=body.optionKey, start_date_iso=body.startDateISO
    )
    return envelope(request, trip.to_dict())


@router.post("/{trip_id}/lock-proposed", response_model=Envelope)
async def lock_proposed(
    trip_id: str,
    request: Request,
    service: SchedulingService = Depends(get_scheduling_service),
    x_user_id: str = Header(..., alias="X-User-Id"),
) -> Envelope:
    trip = await service.lock(trip_id, x_user_id, proposed_only=True)
    return envelope(request, trip.to_dict())


# ---------------------------------------------------------------------------
# Participants
# ---------------------------------------------------------------------------

@router.post("/{trip_id}/join", response_model=Envelope)
async def join_trip(
    trip_id: str,
    request: Request,
    service: SchedulingService = Depends(get_scheduling_service),
    x_user_id: str = Header(..., alias="X-User-Id"),
) -> Envelope:
    record = await service.join(trip_id, x_user_id)
    return envelope(request, {"userId": record.user_id, "status": record.status})


@router.post("/{trip_id}/leave", response_model=Envelope)
async def leave_trip(
    trip_id: str,
    request: Request,
    body: Optional[LeaveRequest] = None,
    service: SchedulingService = Depends(get_scheduling_service),
    x_user_id: str = Header(..., alias="X-User-Id"),
) -> Envelope:
    body = body or LeaveRequest()
    result = await service.leave(trip_id, x_user_id, body.transferToUserId)
    return envelope(request, result)


@router.post("/{trip_id}/participants/{user_id}/remove", response_model=Envelope)
async def remove_participant(
    trip_id: str,
    user_id: str,
    request: Request,
    service: SchedulingService = Depends(get_scheduling_service),
    x_user_id: str = Header(..., alias="X-User-Id"),
) -> Envelope:
    record = await service.remove_participant(trip_id, x_user_id, user_id)
    return envelope(request, {"userId": record.user_id, "status": record.status})
