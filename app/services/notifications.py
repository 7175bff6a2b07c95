"""
Per-ride, per-audience delivery of status events to pollers.

Each RideStatusEvent carries one delivered marker per audience (rider app,
chair), so the log acts as two persisted queues read in (created_at, id)
order. A poll hands out the oldest undelivered event and marks it in the
same transaction; with nothing pending it reports the ride's current status.
Delivery is at-least-once: clients must tolerate seeing a status twice.
"""
import logging
import uuid
from typing import Optional

import redis.asyncio as aioredis
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_settings
from app.errors import NotFoundError
from app.models.chair import Chair
from app.models.ride import Ride, RideStatusEvent
from app.models.user import User
from app.redis_client import acquire_lock, drain_lock_key, release_lock
from app.schemas.schemas import (
    AppNotificationResponse, AppRideView, AudienceEnum, ChairBrief, ChairNotificationResponse,
    ChairRideView, ChairStats, Coordinate, RideStatusEnum, UserBrief,
)
from app.services.geometry import distance
from app.timeutil import time_msec, utcnow

logger = logging.getLogger(__name__)
settings = get_settings()

_MARKERS = {
    AudienceEnum.app: RideStatusEvent.app_delivered_at,
    AudienceEnum.chair: RideStatusEvent.chair_delivered_at,
}


def retry_after_ms(status: str, ride: Ride, chair: Optional[Chair]) -> int:
    """
    Re-poll hint. While the chair is driving somewhere, wait roughly until it
    could have got there; otherwise a fixed interval.
    """
    if chair is not None and chair.location is not None:
        target = None
        if status == RideStatusEnum.ENROUTE.value:
            target = ride.pickup
        elif status == RideStatusEnum.CARRYING.value:
            target = ride.destination
        if target is not None:
            # Whole seconds of travel
            eta_ms = distance(chair.location, target) // chair.speed * 1000
            return max(eta_ms, settings.notification_min_retry_ms)
    return settings.notification_retry_ms


async def _last_delivered_status(db: AsyncSession, ride: Ride, audience: AudienceEnum) -> str:
    marker = _MARKERS[audience]
    result = await db.execute(
        select(RideStatusEvent.status)
        .where(RideStatusEvent.ride_id == ride.id, marker.is_not(None))
        .order_by(RideStatusEvent.created_at.desc(), RideStatusEvent.id.desc())
        .limit(1)
    )
    return result.scalar_one_or_none() or RideStatusEnum.MATCHING.value


async def _release_ride_slot(db: AsyncSession, ride: Ride, audience: AudienceEnum) -> None:
    """The audience has seen COMPLETED: free its pointer to the ride. No-op when already freed."""
    if audience is AudienceEnum.app:
        user = (
            await db.execute(select(User).where(User.id == ride.user_id).with_for_update())
        ).scalar_one_or_none()
        if user is not None and user.current_ride_id == ride.id:
            user.current_ride_id = None
            user.ride_count = user.ride_count + 1
            user.updated_at = utcnow()
    elif ride.chair_id is not None:
        chair = (
            await db.execute(select(Chair).where(Chair.id == ride.chair_id).with_for_update())
        ).scalar_one_or_none()
        if chair is not None and chair.current_ride_id == ride.id:
            chair.current_ride_id = None
            chair.updated_at = utcnow()


async def drain(db: AsyncSession, redis: aioredis.Redis, ride: Ride, audience: AudienceEnum) -> str:
    """Return the next status `audience` should see for `ride`, consuming it from the queue."""
    lock_key = drain_lock_key(ride.id, audience.value)
    owner = uuid.uuid4().hex
    if not await acquire_lock(redis, lock_key, owner, settings.notification_lock_ms):
        # Another poll for the same pair is draining; report what was already delivered
        return await _last_delivered_status(db, ride, audience)

    try:
        marker = _MARKERS[audience]
        event = (
            await db.execute(
                select(RideStatusEvent)
                .where(RideStatusEvent.ride_id == ride.id, marker.is_(None))
                .order_by(RideStatusEvent.created_at, RideStatusEvent.id)
                .limit(1)
                .with_for_update()
            )
        ).scalar_one_or_none()
        if event is None:
            return ride.status

        setattr(event, marker.key, utcnow())
        if event.status == RideStatusEnum.COMPLETED.value:
            await _release_ride_slot(db, ride, audience)
        await db.commit()
        logger.debug("Delivered %s of ride=%s to %s", event.status, ride.id, audience.value)
        return event.status
    finally:
        await release_lock(redis, lock_key, owner)


# ---------------------------------------------------------------------------
# Poll endpoints
# ---------------------------------------------------------------------------

def _coordinates(ride: Ride) -> tuple[Coordinate, Coordinate]:
    return (
        Coordinate(latitude=ride.pickup_latitude, longitude=ride.pickup_longitude),
        Coordinate(latitude=ride.destination_latitude, longitude=ride.destination_longitude),
    )


async def poll_rider(db: AsyncSession, redis: aioredis.Redis, user_id: str) -> AppNotificationResponse:
    user = await db.get(User, user_id)
    if user is None:
        raise NotFoundError("user not found")
    if not user.current_ride_id:
        return AppNotificationResponse(data=None, retry_after_ms=settings.rider_idle_retry_ms)

    ride = await db.get(Ride, user.current_ride_id)
    if ride is None:
        return AppNotificationResponse(data=None, retry_after_ms=settings.rider_idle_retry_ms)

    status = await drain(db, redis, ride, AudienceEnum.app)

    chair = await db.get(Chair, ride.chair_id) if ride.chair_id else None
    chair_brief = None
    if chair is not None:
        chair_brief = ChairBrief(
            id=chair.id,
            name=chair.name,
            model=chair.model,
            stats=ChairStats(
                total_rides_count=chair.total_rides_count,
                total_evaluation_avg=chair.evaluation_avg,
            ),
        )

    pickup, destination = _coordinates(ride)
    return AppNotificationResponse(
        data=AppRideView(
            ride_id=ride.id,
            pickup_coordinate=pickup,
            destination_coordinate=destination,
            fare=ride.fare,
            status=status,
            chair=chair_brief,
            created_at=time_msec(ride.created_at),
            updated_at=time_msec(ride.updated_at),
        ),
        retry_after_ms=retry_after_ms(status, ride, chair),
    )


async def poll_chair(db: AsyncSession, redis: aioredis.Redis, chair_id: str) -> ChairNotificationResponse:
    chair = await db.get(Chair, chair_id)
    if chair is None:
        raise NotFoundError("chair not found")
    if not chair.current_ride_id:
        return ChairNotificationResponse(data=None, retry_after_ms=settings.chair_idle_retry_ms)

    ride = await db.get(Ride, chair.current_ride_id)
    if ride is None:
        return ChairNotificationResponse(data=None, retry_after_ms=settings.chair_idle_retry_ms)

    status = await drain(db, redis, ride, AudienceEnum.chair)
    user = await db.get(User, ride.user_id)

    pickup, destination = _coordinates(ride)
    return ChairNotificationResponse(
        data=ChairRideView(
            ride_id=ride.id,
            user=UserBrief(id=user.id, name=user.full_name),
            pickup_coordinate=pickup,
            destination_coordinate=destination,
            status=status,
        ),
        retry_after_ms=retry_after_ms(status, ride, chair),
    )
