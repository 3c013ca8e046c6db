"""Shared dependencies and response envelope for the trip scheduling routers."""

import uuid
from typing import Any

from fastapi import Depends, Request
from pydantic import BaseModel

from services.api.db.session import get_trip_store
from services.api.scheduling.service import SchedulingService
from services.api.scheduling.store import TripStore


class Envelope(BaseModel):
    success: bool
    data: Any = None
    requestId: str


def envelope(request: Request, data: Any) -> Envelope:
    return Envelope(
        success=True,
        data=data,
        requestId=getattr(request.state, "request_id", str(uuid.uuid4())),
    )


async def get_scheduling_service(
    request: Request,
    store: TripStore = Depends(get_trip_store),
) -> SchedulingService:
    """One service per request, bound to that request's store."""
    return SchedulingService(store=store, config=request.app.state.settings)
