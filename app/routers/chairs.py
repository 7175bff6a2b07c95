"""
Chair router: POST /v1/chair/chairs (register), POST /v1/chair/activity,
              POST /v1/chair/coordinate, GET /v1/chair/notification,
              POST /v1/chair/rides/{id}/status
"""
import logging

import redis.asyncio as aioredis
from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.middleware.auth import CHAIR_ROLE, create_access_token, get_current_chair
from app.redis_client import get_redis
from app.schemas.schemas import (
    ChairActivityRequest, ChairCreateRequest, ChairCreateResponse, ChairNotificationResponse,
    ChairStatusRequest, Coordinate, CoordinateResponse,
)
from app.services import accounts, lifecycle, notifications
from app.timeutil import time_msec

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/v1/chair", tags=["Chairs"])


@router.post("/chairs", status_code=status.HTTP_201_CREATED, response_model=ChairCreateResponse)
async def create_chair(
    payload: ChairCreateRequest,
    db: AsyncSession = Depends(get_db),
):
    """Register a new chair. Starts inactive."""
    chair = await accounts.register_chair(db, payload)
    return ChairCreateResponse(
        id=chair.id,
        owner_id=chair.owner_id,
        access_token=create_access_token(chair.id, CHAIR_ROLE),
    )


@router.post("/activity", status_code=status.HTTP_204_NO_CONTENT)
async def update_activity(
    payload: ChairActivityRequest,
    db: AsyncSession = Depends(get_db),
    chair_id: str = Depends(get_current_chair),
):
    await lifecycle.set_chair_activity(db, chair_id, payload.is_active)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/coordinate", response_model=CoordinateResponse)
async def report_coordinate(
    payload: Coordinate,
    db: AsyncSession = Depends(get_db),
    chair_id: str = Depends(get_current_chair),
):
    """
    Position report. Reaching the pickup while ENROUTE or the destination
    while CARRYING advances the ride.
    """
    recorded_at = await lifecycle.record_coordinate(db, chair_id, payload)
    return CoordinateResponse(recorded_at=time_msec(recorded_at))


@router.get("/notification", response_model=ChairNotificationResponse)
async def notification(
    db: AsyncSession = Depends(get_db),
    redis: aioredis.Redis = Depends(get_redis),
    chair_id: str = Depends(get_current_chair),
):
    return await notifications.poll_chair(db, redis, chair_id)


@router.post("/rides/{ride_id}/status", status_code=status.HTTP_204_NO_CONTENT)
async def update_ride_status(
    ride_id: str,
    payload: ChairStatusRequest,
    db: AsyncSession = Depends(get_db),
    chair_id: str = Depends(get_current_chair),
):
    """ENROUTE acknowledges the assignment; CARRYING reports the rider on board."""
    await lifecycle.update_ride_status(db, ride_id, chair_id, payload.status)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
