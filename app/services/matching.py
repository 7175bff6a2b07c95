"""
Chair–ride dispatch engine.

Flow (one pass):
  1. Load the oldest unmatched rides (bounded batch)
  2. Handle them longest trip first, so long trips get the fast chairs
     while the idle pool is still full
  3. For each ride, load idle chairs (fastest first) and rank them by
     (pickup distance + trip distance) / speed, ties → nearer chair
  4. Skip chairs in another town (pickup distance over the limit) and,
     until the ride has waited past the grace period, chairs slower than
     the patience threshold
  5. Lock both rows, re-check, assign, commit; on a lost race try the
     next candidate
A Redis lease per ride keeps concurrent passes from working the same ride.
Rides left unmatched are picked up again by the next pass.
"""
import asyncio
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Iterator, Optional, Sequence

import redis.asyncio as aioredis
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_settings
from app.database import AsyncSessionLocal
from app.models.chair import Chair
from app.models.ride import Ride, RideStatusEvent
from app.redis_client import acquire_lock, get_redis, release_lock, ride_lease_key
from app.schemas.schemas import RideStatusEnum
from app.services.geometry import Point, distance
from app.timeutil import as_utc, utcnow

logger = logging.getLogger(__name__)
settings = get_settings()


@dataclass(frozen=True)
class RideCandidate:
    id: str
    pickup: Point
    destination: Point
    created_at: datetime

    @property
    def trip_distance(self) -> int:
        return distance(self.pickup, self.destination)


@dataclass(frozen=True)
class ChairCandidate:
    id: str
    speed: int
    location: Point


@dataclass(frozen=True)
class RankedChair:
    chair: ChairCandidate
    pickup_distance: int
    time_to_serve: float


# ---------------------------------------------------------------------------
# Ranking (pure)
# ---------------------------------------------------------------------------

def rank_chairs(ride: RideCandidate, chairs: Sequence[ChairCandidate]) -> list[RankedChair]:
    ranked = []
    for chair in chairs:
        pickup_distance = distance(chair.location, ride.pickup)
        ranked.append(
            RankedChair(
                chair=chair,
                pickup_distance=pickup_distance,
                time_to_serve=(pickup_distance + ride.trip_distance) / chair.speed,
            )
        )
    ranked.sort(key=lambda r: (r.time_to_serve, r.pickup_distance))
    return ranked


def acceptable_chairs(
    ride: RideCandidate,
    chairs: Sequence[ChairCandidate],
    now: datetime,
    max_pickup_distance: Optional[int] = None,
    patience_threshold: Optional[float] = None,
    grace_period_ms: Optional[int] = None,
) -> Iterator[ChairCandidate]:
    """Yield chairs worth dispatching to `ride`, best first."""
    if max_pickup_distance is None:
        max_pickup_distance = settings.dispatch_max_pickup_distance
    if patience_threshold is None:
        patience_threshold = settings.dispatch_patience_threshold
    if grace_period_ms is None:
        grace_period_ms = settings.dispatch_grace_period_ms

    waited_ms = (as_utc(now) - as_utc(ride.created_at)).total_seconds() * 1000
    for ranked in rank_chairs(ride, chairs):
        if ranked.pickup_distance > max_pickup_distance:
            continue
        # A closer chair may free up soon; stop waiting for one once the grace period is over
        if ranked.time_to_serve > patience_threshold and waited_ms < grace_period_ms:
            continue
        yield ranked.chair


# ---------------------------------------------------------------------------
# Store access
# ---------------------------------------------------------------------------

async def fetch_unmatched_rides(db: AsyncSession, limit: int) -> list[RideCandidate]:
    result = await db.execute(
        select(
            Ride.id,
            Ride.pickup_latitude,
            Ride.pickup_longitude,
            Ride.destination_latitude,
            Ride.destination_longitude,
            Ride.created_at,
        )
        .where(Ride.chair_id.is_(None), Ride.status == RideStatusEnum.MATCHING.value)
        .order_by(Ride.created_at)
        .limit(limit)
    )
    return [
        RideCandidate(
            id=row.id,
            pickup=Point(row.pickup_latitude, row.pickup_longitude),
            destination=Point(row.destination_latitude, row.destination_longitude),
            created_at=row.created_at,
        )
        for row in result
    ]


async def fetch_idle_chairs(db: AsyncSession, limit: int) -> list[ChairCandidate]:
    """
    Active chairs with a known position and no ride. A chair that still has
    undelivered status events from its previous ride is not idle yet.
    """
    pending_events = (
        select(RideStatusEvent.id)
        .join(Ride, Ride.id == RideStatusEvent.ride_id)
        .where(Ride.chair_id == Chair.id, RideStatusEvent.chair_delivered_at.is_(None))
    )
    result = await db.execute(
        select(Chair.id, Chair.speed, Chair.latitude, Chair.longitude)
        .where(
            Chair.is_active.is_(True),
            Chair.current_ride_id.is_(None),
            Chair.latitude.is_not(None),
            Chair.longitude.is_not(None),
            ~pending_events.exists(),
        )
        .order_by(Chair.speed.desc())
        .limit(limit)
    )
    return [
        ChairCandidate(id=row.id, speed=row.speed, location=Point(row.latitude, row.longitude))
        for row in result
    ]


async def assign_chair(db: AsyncSession, ride_id: str, chair_id: str) -> bool:
    """
    Atomically bind chair and ride. Both rows are locked and re-checked, so
    a chair that was taken (or a ride that was matched) since the candidate
    scan is left alone.
    """
    chair = (
        await db.execute(
            select(Chair)
            .where(Chair.id == chair_id, Chair.is_active.is_(True), Chair.current_ride_id.is_(None))
            .with_for_update(skip_locked=True)
        )
    ).scalar_one_or_none()
    if chair is None:
        await db.rollback()
        return False

    ride = (
        await db.execute(
            select(Ride)
            .where(
                Ride.id == ride_id,
                Ride.chair_id.is_(None),
                Ride.status == RideStatusEnum.MATCHING.value,
            )
            .with_for_update()
        )
    ).scalar_one_or_none()
    if ride is None:
        await db.rollback()
        return False

    now = utcnow()
    ride.chair_id = chair_id
    ride.updated_at = now
    chair.current_ride_id = ride_id
    chair.updated_at = now
    await db.commit()
    return True


# ---------------------------------------------------------------------------
# Dispatch pass
# ---------------------------------------------------------------------------

async def match_ride(db: AsyncSession, ride: RideCandidate, now: Optional[datetime] = None) -> Optional[str]:
    """Assign the best acceptable idle chair to `ride`. Returns the chair id, or None."""
    now = now or utcnow()
    chairs = await fetch_idle_chairs(db, settings.dispatch_chair_pool_size)
    for chair in acceptable_chairs(ride, chairs, now):
        if await assign_chair(db, ride.id, chair.id):
            logger.info("Matched ride=%s to chair=%s", ride.id, chair.id)
            return chair.id
    return None


async def run_dispatch(db: AsyncSession, redis: aioredis.Redis, now: Optional[datetime] = None) -> int:
    """One matching pass. Returns the number of rides matched."""
    rides = await fetch_unmatched_rides(db, settings.dispatch_ride_batch_size)
    # Reading the candidates opened a transaction; end it so assignments start clean
    await db.commit()
    rides.sort(key=lambda r: r.trip_distance, reverse=True)

    owner = uuid.uuid4().hex
    matched = 0
    for ride in rides:
        lease_key = ride_lease_key(ride.id)
        if not await acquire_lock(redis, lease_key, owner, settings.dispatch_lease_ms):
            continue  # another pass is working this ride
        try:
            if await match_ride(db, ride, now):
                matched += 1
        finally:
            await release_lock(redis, lease_key, owner)

    if rides:
        logger.info("Dispatch pass: %d/%d rides matched", matched, len(rides))
    return matched


async def dispatch_loop(interval_ms: int) -> None:
    """In-process trigger for deployments without an external scheduler."""
    logger.info("Dispatch loop every %d ms", interval_ms)
    while True:
        try:
            redis = await get_redis()
            async with AsyncSessionLocal() as db:
                await run_dispatch(db, redis)
        except Exception as exc:
            logger.error("Dispatch pass failed: %s", exc, exc_info=True)
        await asyncio.sleep(interval_ms / 1000)
