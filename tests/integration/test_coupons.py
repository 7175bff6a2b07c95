"""
Coupon allocation and issuance against a real (SQLite) session.
"""
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select

from app.errors import ActiveRideExistsError, InvalidRequestError
from app.models import Coupon, Ride
from app.schemas.schemas import Coordinate, UserCreateRequest
from app.services import accounts, rides
from app.services.coupons import SIGNUP_COUPON_CODE, apply_coupon

ORIGIN = Coordinate(latitude=0, longitude=0)
TEN_NORTH = Coordinate(latitude=0, longitude=10)
THIRTY_NORTH = Coordinate(latitude=0, longitude=30)


def _signup(username: str, invitation_code: str | None = None) -> UserCreateRequest:
    return UserCreateRequest(
        username=username, firstname="Ichiro", lastname="Tanaka",
        date_of_birth="1990-04-01", invitation_code=invitation_code,
    )


async def _coupons(db, user_id: str) -> dict[str, Coupon]:
    result = await db.execute(select(Coupon).where(Coupon.user_id == user_id))
    return {c.code: c for c in result.scalars().all()}


@pytest.mark.asyncio
class TestRideFare:
    async def test_fare_without_coupons(self, db, make_user):
        user = await make_user()

        ride = await rides.create_ride(db, user.id, ORIGIN, TEN_NORTH)

        assert ride.fare == 1500
        assert ride.status == "MATCHING"
        assert ride.chair_id is None
        assert user.current_ride_id == ride.id

    async def test_first_ride_uses_signup_coupon(self, db):
        user = await accounts.register_user(db, _signup("first-rider"))

        ride = await rides.create_ride(db, user.id, ORIGIN, TEN_NORTH)

        # max(1000 - 3000, 0) + 500
        assert ride.fare == 500
        coupons = await _coupons(db, user.id)
        assert coupons[SIGNUP_COUPON_CODE].used_by == ride.id

    async def test_signup_coupon_preferred_over_older_coupon(self, db, make_user):
        user = await make_user()
        older = datetime.now(timezone.utc) - timedelta(days=3)
        db.add(Coupon(user_id=user.id, code="OLD_PROMO", discount=200, created_at=older))
        db.add(Coupon(user_id=user.id, code=SIGNUP_COUPON_CODE, discount=3000))
        await db.commit()

        ride = await rides.create_ride(db, user.id, ORIGIN, THIRTY_NORTH)

        coupons = await _coupons(db, user.id)
        assert coupons[SIGNUP_COUPON_CODE].used_by == ride.id
        assert coupons["OLD_PROMO"].used_by is None
        assert ride.fare == 500 + 0

    async def test_returning_rider_uses_oldest_coupon(self, db, make_user):
        user = await make_user(ride_count=2)
        now = datetime.now(timezone.utc)
        db.add(Coupon(user_id=user.id, code="NEWER", discount=900, created_at=now))
        db.add(Coupon(user_id=user.id, code="OLDER", discount=400, created_at=now - timedelta(hours=1)))
        await db.commit()

        ride = await rides.create_ride(db, user.id, ORIGIN, TEN_NORTH)

        coupons = await _coupons(db, user.id)
        assert coupons["OLDER"].used_by == ride.id
        assert coupons["NEWER"].used_by is None
        assert ride.fare == 500 + (1000 - 400)

    async def test_reentrant_call_does_not_consume_another(self, db, make_user):
        user = await make_user(ride_count=1)
        now = datetime.now(timezone.utc)
        db.add(Coupon(user_id=user.id, code="A", discount=300, created_at=now - timedelta(minutes=2)))
        db.add(Coupon(user_id=user.id, code="B", discount=700, created_at=now - timedelta(minutes=1)))
        await db.commit()
        ride = await rides.create_ride(db, user.id, ORIGIN, TEN_NORTH)

        again = await apply_coupon(db, user, ride)

        coupons = await _coupons(db, user.id)
        assert again == 300
        assert coupons["A"].used_by == ride.id
        assert coupons["B"].used_by is None

    async def test_one_active_ride_per_rider(self, db, make_user):
        user = await make_user()
        await rides.create_ride(db, user.id, ORIGIN, TEN_NORTH)

        with pytest.raises(ActiveRideExistsError):
            await rides.create_ride(db, user.id, ORIGIN, THIRTY_NORTH)

        count = (await db.execute(select(Ride).where(Ride.user_id == user.id))).scalars().all()
        assert len(count) == 1


@pytest.mark.asyncio
class TestFareEstimate:
    async def test_estimate_reports_discount_without_consuming(self, db):
        user = await accounts.register_user(db, _signup("estimator"))

        fare, discount = await rides.estimate_fare(db, user.id, ORIGIN, TEN_NORTH)

        assert (fare, discount) == (500, 1000)
        coupons = await _coupons(db, user.id)
        assert coupons[SIGNUP_COUPON_CODE].used_by is None

    async def test_estimate_without_coupons(self, db, make_user):
        user = await make_user()

        assert await rides.estimate_fare(db, user.id, ORIGIN, TEN_NORTH) == (1500, 0)


@pytest.mark.asyncio
class TestInvitation:
    async def test_signup_grants_campaign_coupon(self, db):
        user = await accounts.register_user(db, _signup("newcomer"))

        coupons = await _coupons(db, user.id)
        assert list(coupons) == [SIGNUP_COUPON_CODE]
        assert coupons[SIGNUP_COUPON_CODE].discount == 3000
        assert len(user.invitation_code) == 30

    async def test_invitation_rewards_both_sides(self, db):
        inviter = await accounts.register_user(db, _signup("inviter"))
        invitee = await accounts.register_user(db, _signup("invitee", inviter.invitation_code))

        invitee_coupons = await _coupons(db, invitee.id)
        inviter_coupons = await _coupons(db, inviter.id)
        assert invitee_coupons[f"INV_{inviter.invitation_code}"].discount == 1500
        rewards = [c for code, c in inviter_coupons.items() if code.startswith(f"RWD_{inviter.invitation_code}_")]
        assert len(rewards) == 1
        assert rewards[0].discount == 1000

    async def test_invitation_code_capped_at_three(self, db):
        inviter = await accounts.register_user(db, _signup("popular"))
        for i in range(3):
            await accounts.register_user(db, _signup(f"friend-{i}", inviter.invitation_code))

        with pytest.raises(InvalidRequestError):
            await accounts.register_user(db, _signup("friend-3", inviter.invitation_code))

    async def test_unknown_invitation_code(self, db):
        with pytest.raises(InvalidRequestError):
            await accounts.register_user(db, _signup("stranger", "no-such-code"))
