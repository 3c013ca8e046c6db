"""
Date window funnel endpoints.

Endpoints:
  GET    /trips/{id}/date-windows                       -- windows with active support counts
  POST   /trips/{id}/date-windows                       -- suggest a window (dates or free text)
  POST   /trips/{id}/date-windows/{wid}/support         -- add the caller's support (idempotent)
  DELETE /trips/{id}/date-windows/{wid}/support         -- remove the caller's support (idempotent)
  POST   /trips/{id}/date-windows/{wid}/concretize      -- leader sets exact dates on free text
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Header, Request
from pydantic import BaseModel, Field

from services.api.routers._trip_deps import Envelope, envelope, get_scheduling_service
from services.api.scheduling.service import SchedulingService

router = APIRouter(prefix="/trips", tags=["date-windows"])


class CreateWindowRequest(BaseModel):
    startDate: Optional[str] = None
    endDate: Optional[str] = None
    text: Optional[str] = Field(None, max_length=200)
    acceptUnstructured: bool = False
    acknowledgeOverlap: bool = False


class ConcretizeRequest(BaseModel):
    startDate: str
    endDate: str


@router.get("/{trip_id}/date-windows", response_model=Envelope)
async def list_windows(
    trip_id: str,
    request: Request,
    service: SchedulingService = Depends(get_scheduling_service),
    x_user_id: str = Header(..., alias="X-User-Id"),
) -> Envelope:
    return envelope(request, {"windows": await service.list_windows(trip_id, x_user_id)})


@router.post("/{trip_id}/date-windows", response_model=Envelope, status_code=201)
async def create_window(
    trip_id: str,
    body: CreateWindowRequest,
    request: Request,
    service: SchedulingService = Depends(get_scheduling_service),
    x_user_id: str = Header(..., alias="X-User-Id"),
) -> Envelope:
    result = await service.create_window(
        trip_id,
        x_user_id,
        start_date=body.startDate,
        end_date=body.endDate,
        text=body.text,
        accept_unstructured=body.acceptUnstructured,
        acknowledge_overlap=body.acknowledgeOverlap,
    )
    return envelope(request, result)


@router.post("/{trip_id}/date-windows/{window_id}/support", response_model=Envelope)
async def support_window(
    trip_id: str,
    window_id: str,
    request: Request,
    service: SchedulingService = Depends(get_scheduling_service),
    x_user_id: str = Header(..., alias="X-User-Id"),
) -> Envelope:
    result = await service.set_support(trip_id, window_id, x_user_id, supported=True)
    return envelope(request, result)


@router.delete("/{trip_id}/date-windows/{window_id}/support", response_model=Envelope)
async def unsupport_window(
    trip_id: str,
    window_id: str,
    request: Request,
    service: SchedulingService = Depends(get_scheduling_service),
    x_user_id: str = Header(..., alias="X-User-Id"),
) -> Envelope:
    result = await service.set_support(trip_id, window_id, x_user_id, supported=False)
    return envelope(request, result)


@router.post("/{trip_id}/date-windows/{window_id}/concretize", response_model=Envelope)
async def concretize_window(
    trip_id: str,
    window_id: str,
    body: ConcretizeRequest,
    request: Request,
    service: SchedulingService = Depends(get_scheduling_service),
    x_user_id: str = Header(..., alias="X-User-Id"),
) -> Envelope:
    window = await service.concretize_window(
        trip_id, window_id, x_user_id, body.startDate, body.endDate
    )
    return envelope(request, window.to_dict())
