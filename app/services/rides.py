"""
Ride creation, fare estimate, evaluation + settlement, and ride history.
"""
import logging
import uuid
from datetime import datetime
from typing import Callable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_settings
from app.errors import ActiveRideExistsError, InvalidRequestError, InvalidTransitionError, NotFoundError
from app.models.chair import Chair
from app.models.payment_token import PaymentToken, SystemSetting
from app.models.ride import Ride
from app.models.user import User
from app.schemas.schemas import ChairOwnerBrief, CompletedRide, Coordinate, RideStatusEnum
from app.services.coupons import apply_coupon, preview_discount
from app.services.geometry import discounted_fare, metered_fare
from app.services.lifecycle import record_initial_status, transition
from app.services.payment import PaymentGatewayClient
from app.timeutil import time_msec, utcnow

logger = logging.getLogger(__name__)
settings = get_settings()


async def create_ride(db: AsyncSession, user_id: str, pickup: Coordinate, destination: Coordinate) -> Ride:
    """
    Open a MATCHING ride for the rider and freeze its fare, consuming a
    coupon if one applies. One active ride per rider.
    """
    user = (
        await db.execute(select(User).where(User.id == user_id).with_for_update())
    ).scalar_one_or_none()
    if user is None:
        raise NotFoundError("user not found")
    if user.current_ride_id:
        raise ActiveRideExistsError("ride already exists")

    ride = Ride(
        id=str(uuid.uuid4()),
        user_id=user.id,
        pickup_latitude=pickup.latitude,
        pickup_longitude=pickup.longitude,
        destination_latitude=destination.latitude,
        destination_longitude=destination.longitude,
        status=RideStatusEnum.MATCHING.value,
    )
    db.add(ride)
    await db.flush()

    discount = await apply_coupon(db, user, ride)
    ride.fare = discounted_fare(ride.pickup, ride.destination, discount)
    user.current_ride_id = ride.id
    user.updated_at = utcnow()
    record_initial_status(db, ride)

    await db.commit()
    logger.info("Ride %s created for user=%s fare=%s", ride.id, user.id, ride.fare)
    return ride


async def estimate_fare(db: AsyncSession, user_id: str, pickup: Coordinate, destination: Coordinate) -> tuple[int, int]:
    """(fare, discount) the rider would get right now. Read-only."""
    user = await db.get(User, user_id)
    if user is None:
        raise NotFoundError("user not found")
    discount = await preview_discount(db, user)
    fare = discounted_fare(pickup, destination, discount)
    return fare, metered_fare(pickup, destination) - fare


async def _payment_gateway_url(db: AsyncSession) -> str:
    setting = await db.get(SystemSetting, "payment_gateway_url")
    return setting.value if setting else settings.payment_gateway_url


async def evaluate_ride(
    db: AsyncSession,
    user_id: str,
    ride_id: str,
    evaluation: int,
    gateway_factory: Callable[[str, str], PaymentGatewayClient] = PaymentGatewayClient,
) -> datetime:
    """
    Rate an ARRIVED ride, charge its fare and complete it. If the charge
    fails nothing is written and the ride stays ARRIVED, so the rider can
    simply submit again.
    """
    if not 1 <= evaluation <= 5:
        raise InvalidRequestError("evaluation must be between 1 and 5")

    ride = (
        await db.execute(select(Ride).where(Ride.id == ride_id).with_for_update())
    ).scalar_one_or_none()
    if ride is None or ride.user_id != user_id:
        raise NotFoundError("ride not found")
    if ride.status != RideStatusEnum.ARRIVED.value:
        raise InvalidTransitionError("not arrived yet")

    payment_token = await db.get(PaymentToken, ride.user_id)
    if payment_token is None:
        raise InvalidRequestError("payment token not registered")

    async def ride_history() -> list[Ride]:
        result = await db.execute(
            select(Ride).where(Ride.user_id == ride.user_id).order_by(Ride.created_at)
        )
        return list(result.scalars().all())

    gateway = gateway_factory(await _payment_gateway_url(db), payment_token.token)
    await gateway.settle(ride.fare, ride_history)

    now = utcnow()
    ride.evaluation = evaluation
    transition(db, ride, RideStatusEnum.COMPLETED, now)

    chair = (
        await db.execute(select(Chair).where(Chair.id == ride.chair_id).with_for_update())
    ).scalar_one_or_none()
    if chair is not None:
        chair.total_rides_count = chair.total_rides_count + 1
        chair.total_evaluation = chair.total_evaluation + evaluation

    await db.commit()
    return now


async def list_completed_rides(db: AsyncSession, user_id: str) -> list[CompletedRide]:
    result = await db.execute(
        select(Ride, Chair)
        .join(Chair, Chair.id == Ride.chair_id)
        .where(Ride.user_id == user_id, Ride.status == RideStatusEnum.COMPLETED.value)
        .order_by(Ride.created_at.desc())
    )
    return [
        CompletedRide(
            id=ride.id,
            pickup_coordinate=Coordinate(latitude=ride.pickup_latitude, longitude=ride.pickup_longitude),
            destination_coordinate=Coordinate(
                latitude=ride.destination_latitude, longitude=ride.destination_longitude
            ),
            fare=ride.fare,
            evaluation=ride.evaluation,
            requested_at=time_msec(ride.created_at),
            completed_at=time_msec(ride.updated_at),
            chair=ChairOwnerBrief(id=chair.id, name=chair.name, model=chair.model, owner_id=chair.owner_id),
        )
        for ride, chair in result.all()
    ]
