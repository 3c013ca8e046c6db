"""
Two-phase leadership transfer.

Endpoints:
  POST /trips/{id}/transfer-leadership           -- leader starts a transfer
  POST /trips/{id}/transfer-leadership/accept    -- recipient accepts (re-validated)
  POST /trips/{id}/transfer-leadership/decline   -- recipient declines
  POST /trips/{id}/transfer-leadership/cancel    -- initiator withdraws

A transfer whose recipient is no longer an active traveler is void: accept
clears it and returns 409 TRANSFER_VOID.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Header, Request
from pydantic import BaseModel

from services.api.routers._trip_deps import Envelope, envelope, get_scheduling_service
from services.api.scheduling.service import SchedulingService

router = APIRouter(prefix="/trips", tags=["leadership"])


class TransferRequest(BaseModel):
    newLeaderId: Optional[str] = None


@router.post("/{trip_id}/transfer-leadership", response_model=Envelope, status_code=201)
async def initiate_transfer(
    trip_id: str,
    body: TransferRequest,
    request: Request,
    service: SchedulingService = Depends(get_scheduling_service),
    x_user_id: str = Header(..., alias="X-User-Id"),
) -> Envelope:
    pending = await service.initiate_transfer(trip_id, x_user_id, body.newLeaderId)
    return envelope(request, {"pendingLeadershipTransfer": pending})


@router.post("/{trip_id}/transfer-leadership/accept", response_model=Envelope)
async def accept_transfer(
    trip_id: str,
    request: Request,
    service: SchedulingService = Depends(get_scheduling_service),
    x_user_id: str = Header(..., alias="X-User-Id"),
) -> Envelope:
    trip = await service.accept_transfer(trip_id, x_user_id)
    return envelope(request, {"createdBy": trip.created_by})


@router.post("/{trip_id}/transfer-leadership/decline", response_model=Envelope)
async def decline_transfer(
    trip_id: str,
    request: Request,
    service: SchedulingService = Depends(get_scheduling_service),
    x_user_id: str = Header(..., alias="X-User-Id"),
) -> Envelope:
    await service.decline_transfer(trip_id, x_user_id)
    return envelope(request, {"pendingLeadershipTransfer": None})


@router.post("/{trip_id}/transfer-leadership/cancel", response_model=Envelope)
async def cancel_transfer(
    trip_id: str,
    request: Request,
    service: SchedulingService = Depends(get_scheduling_service),
    x_user_id: str = Header(..., alias="X-User-Id"),
) -> Envelope:
    await service.cancel_transfer(trip_id, x_user_id)
    return envelope(request, {"pendingLeadershipTransfer": None})
