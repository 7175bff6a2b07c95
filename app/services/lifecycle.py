"""
Ride status state machine.

    MATCHING → ENROUTE → PICKUP → CARRYING → ARRIVED → COMPLETED

Every transition updates the ride row and appends a RideStatusEvent in the
same transaction, so the event log and rides.status never diverge. Callers
own the transaction (commit/rollback).
"""
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.errors import ConflictError, InvalidRequestError, InvalidTransitionError, NotFoundError
from app.models.chair import Chair
from app.models.ride import Ride, RideStatusEvent
from app.schemas.schemas import Coordinate, RideStatusEnum
from app.services.geometry import distance
from app.timeutil import utcnow

logger = logging.getLogger(__name__)

STATUS_SEQUENCE: tuple[RideStatusEnum, ...] = (
    RideStatusEnum.MATCHING,
    RideStatusEnum.ENROUTE,
    RideStatusEnum.PICKUP,
    RideStatusEnum.CARRYING,
    RideStatusEnum.ARRIVED,
    RideStatusEnum.COMPLETED,
)

VALID_TRANSITIONS: dict[str, str] = {
    current.value: following.value
    for current, following in zip(STATUS_SEQUENCE, STATUS_SEQUENCE[1:])
}


def is_valid_transition(current: str, next_state: str) -> bool:
    return VALID_TRANSITIONS.get(current) == next_state


def record_initial_status(db: AsyncSession, ride: Ride) -> RideStatusEvent:
    event = RideStatusEvent(ride_id=ride.id, status=RideStatusEnum.MATCHING.value)
    db.add(event)
    return event


def transition(db: AsyncSession, ride: Ride, next_state: RideStatusEnum, now: Optional[datetime] = None) -> RideStatusEvent:
    """Advance `ride` one step and append the matching event. Raises without mutating on a bad step."""
    if not is_valid_transition(ride.status, next_state.value):
        raise InvalidTransitionError(f"cannot move ride from {ride.status} to {next_state.value}")
    now = now or utcnow()
    ride.status = next_state.value
    ride.updated_at = now
    event = RideStatusEvent(ride_id=ride.id, status=next_state.value, created_at=now)
    db.add(event)
    logger.info("Ride %s → %s", ride.id, next_state.value)
    return event


# ---------------------------------------------------------------------------
# Chair-driven transitions
# ---------------------------------------------------------------------------

async def _lock_assigned_ride(db: AsyncSession, ride_id: str, chair_id: str) -> Ride:
    result = await db.execute(select(Ride).where(Ride.id == ride_id).with_for_update())
    ride = result.scalar_one_or_none()
    if ride is None:
        raise NotFoundError("ride not found")
    if ride.chair_id != chair_id:
        raise ConflictError("not assigned to this ride")
    return ride


async def acknowledge_ride(db: AsyncSession, ride_id: str, chair_id: str) -> Ride:
    """Chair accepts its assignment: MATCHING → ENROUTE."""
    ride = await _lock_assigned_ride(db, ride_id, chair_id)
    transition(db, ride, RideStatusEnum.ENROUTE)
    await db.commit()
    return ride


async def report_picked_up(db: AsyncSession, ride_id: str, chair_id: str) -> Ride:
    """Rider is on board: PICKUP → CARRYING."""
    ride = await _lock_assigned_ride(db, ride_id, chair_id)
    if ride.status != RideStatusEnum.PICKUP.value:
        raise InvalidTransitionError("chair has not arrived yet")
    transition(db, ride, RideStatusEnum.CARRYING)
    await db.commit()
    return ride


async def update_ride_status(db: AsyncSession, ride_id: str, chair_id: str, status: str) -> Ride:
    if status == RideStatusEnum.ENROUTE.value:
        return await acknowledge_ride(db, ride_id, chair_id)
    if status == RideStatusEnum.CARRYING.value:
        return await report_picked_up(db, ride_id, chair_id)
    raise InvalidRequestError("invalid status")


async def record_coordinate(db: AsyncSession, chair_id: str, coordinate: Coordinate) -> datetime:
    """
    Store the chair's position and derive PICKUP/ARRIVED from it, in one
    transaction with the chair and its ride locked.
    """
    chair = (
        await db.execute(select(Chair).where(Chair.id == chair_id).with_for_update())
    ).scalar_one_or_none()
    if chair is None:
        raise NotFoundError("chair not found")

    ride = None
    if chair.current_ride_id:
        ride = (
            await db.execute(select(Ride).where(Ride.id == chair.current_ride_id).with_for_update())
        ).scalar_one_or_none()

    # Read under both locks: the event must sort after anything committed while waiting
    now = utcnow()
    previous = chair.location
    moved = distance(previous, coordinate) if previous is not None else 0
    chair.latitude = coordinate.latitude
    chair.longitude = coordinate.longitude
    chair.total_distance = chair.total_distance + moved
    chair.location_updated_at = now
    chair.updated_at = now

    if ride is not None:
        # Only one of these can fire per report: both compare against the status read here
        status = ride.status
        if status == RideStatusEnum.ENROUTE.value and distance(ride.pickup, coordinate) == 0:
            transition(db, ride, RideStatusEnum.PICKUP, now)
        elif status == RideStatusEnum.CARRYING.value and distance(ride.destination, coordinate) == 0:
            transition(db, ride, RideStatusEnum.ARRIVED, now)

    await db.commit()
    return now


async def set_chair_activity(db: AsyncSession, chair_id: str, is_active: bool) -> None:
    chair = await db.get(Chair, chair_id)
    if chair is None:
        raise NotFoundError("chair not found")
    chair.is_active = is_active
    chair.updated_at = utcnow()
    await db.commit()
