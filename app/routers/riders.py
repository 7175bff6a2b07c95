"""
Rider app router: signup, payment method, rides, fare estimate, evaluation, notification
"""
import logging

import redis.asyncio as aioredis
from fastapi import APIRouter, Depends, Header, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.middleware.auth import RIDER_ROLE, create_access_token, get_current_rider
from app.middleware.idempotency import check_idempotency, store_idempotency_result
from app.redis_client import get_redis
from app.schemas.schemas import (
    AppNotificationResponse, EvaluationRequest, EvaluationResponse, FareEstimateResponse,
    PaymentMethodRequest, RideCreateRequest, RideCreateResponse, RideHistoryResponse,
    UserCreateRequest, UserCreateResponse,
)
from app.services import accounts, notifications, rides
from app.timeutil import time_msec

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/v1/app", tags=["Rider app"])


@router.post("/users", status_code=status.HTTP_201_CREATED, response_model=UserCreateResponse)
async def create_user(
    payload: UserCreateRequest,
    db: AsyncSession = Depends(get_db),
):
    """Sign up a rider. Grants the signup coupon and redeems an invitation code if given."""
    user = await accounts.register_user(db, payload)
    return UserCreateResponse(
        id=user.id,
        invitation_code=user.invitation_code,
        access_token=create_access_token(user.id, RIDER_ROLE),
    )


@router.post("/payment-methods", status_code=status.HTTP_204_NO_CONTENT)
async def register_payment_method(
    payload: PaymentMethodRequest,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_rider),
):
    await accounts.register_payment_token(db, user_id, payload.token)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/rides", response_model=RideHistoryResponse)
async def ride_history(
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_rider),
):
    return RideHistoryResponse(rides=await rides.list_completed_rides(db, user_id))


@router.post("/rides", status_code=status.HTTP_202_ACCEPTED, response_model=RideCreateResponse)
async def create_ride(
    payload: RideCreateRequest,
    db: AsyncSession = Depends(get_db),
    redis: aioredis.Redis = Depends(get_redis),
    user_id: str = Depends(get_current_rider),
    idempotency_key: str | None = Header(default=None, alias="Idempotency-Key"),
):
    # 1. Idempotency check
    cached = await check_idempotency(redis, user_id, idempotency_key)
    if cached:
        return cached

    # 2. Create ride, consume coupon, freeze fare
    ride = await rides.create_ride(db, user_id, payload.pickup_coordinate, payload.destination_coordinate)
    response = RideCreateResponse(ride_id=ride.id, fare=ride.fare)

    # 3. Store idempotency result
    if idempotency_key:
        await store_idempotency_result(redis, user_id, idempotency_key, 202, response.model_dump())

    return response


@router.post("/rides/estimated-fare", response_model=FareEstimateResponse)
async def estimated_fare(
    payload: RideCreateRequest,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_rider),
):
    fare, discount = await rides.estimate_fare(
        db, user_id, payload.pickup_coordinate, payload.destination_coordinate
    )
    return FareEstimateResponse(fare=fare, discount=discount)


@router.post("/rides/{ride_id}/evaluation", response_model=EvaluationResponse)
async def evaluate_ride(
    ride_id: str,
    payload: EvaluationRequest,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_rider),
):
    """Rate the ride; charges the fare and completes it."""
    completed_at = await rides.evaluate_ride(db, user_id, ride_id, payload.evaluation)
    return EvaluationResponse(completed_at=time_msec(completed_at))


@router.get("/notification", response_model=AppNotificationResponse)
async def notification(
    db: AsyncSession = Depends(get_db),
    redis: aioredis.Redis = Depends(get_redis),
    user_id: str = Depends(get_current_rider),
):
    return await notifications.poll_rider(db, redis, user_id)
