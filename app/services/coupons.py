"""
Coupon allocation and issuance.

Allocation order for a ride:
  1. A coupon already bound to the ride (re-entrant call) → its discount
  2. First ride and an unused signup coupon → consume it
  3. Oldest unused coupon → consume it
  4. No discount

Selection and consumption run inside the caller's transaction with the
coupon row locked (SELECT ... FOR UPDATE) so two rides of one rider can
never spend the same coupon.
"""
import logging
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.errors import InvalidRequestError
from app.models.coupon import Coupon
from app.models.ride import Ride
from app.models.user import User
from app.timeutil import time_msec, utcnow

logger = logging.getLogger(__name__)

SIGNUP_COUPON_CODE = "CP_NEW2024"
SIGNUP_COUPON_DISCOUNT = 3000
INVITATION_COUPON_DISCOUNT = 1500
INVITATION_REWARD_DISCOUNT = 1000
MAX_INVITATIONS_PER_CODE = 3


async def _bound_coupon(db: AsyncSession, ride_id: str) -> Optional[Coupon]:
    result = await db.execute(select(Coupon).where(Coupon.used_by == ride_id))
    return result.scalars().first()


async def _select_coupon(db: AsyncSession, user: User, lock: bool) -> Optional[Coupon]:
    """Pick the coupon the next ride of `user` would consume."""
    if user.ride_count == 0:
        stmt = select(Coupon).where(
            Coupon.user_id == user.id,
            Coupon.code == SIGNUP_COUPON_CODE,
            Coupon.used_by.is_(None),
        )
        if lock:
            stmt = stmt.with_for_update()
        coupon = (await db.execute(stmt)).scalar_one_or_none()
        if coupon is not None:
            return coupon

    stmt = (
        select(Coupon)
        .where(Coupon.user_id == user.id, Coupon.used_by.is_(None))
        .order_by(Coupon.created_at, Coupon.code)
        .limit(1)
    )
    if lock:
        stmt = stmt.with_for_update()
    return (await db.execute(stmt)).scalar_one_or_none()


async def apply_coupon(db: AsyncSession, user: User, ride: Ride) -> int:
    """
    Return the discount for `ride`, consuming at most one coupon of `user`.
    Must run in the same transaction that freezes the ride's fare.
    """
    coupon = await _bound_coupon(db, ride.id)
    if coupon is None:
        coupon = await _select_coupon(db, user, lock=True)
        if coupon is None:
            return 0
        coupon.used_by = ride.id
        await db.flush()
        logger.info("Coupon %s of user=%s consumed by ride=%s", coupon.code, user.id, ride.id)
    return coupon.discount


async def preview_discount(db: AsyncSession, user: User) -> int:
    """Discount the next ride would get, without consuming anything."""
    coupon = await _select_coupon(db, user, lock=False)
    return coupon.discount if coupon else 0


# ---------------------------------------------------------------------------
# Issuance
# ---------------------------------------------------------------------------

async def issue_signup_coupons(db: AsyncSession, user: User, invitation_code: Optional[str]) -> None:
    """
    Grant the signup campaign coupon and, when an invitation code is given,
    the invitee/inviter pair. Invitation codes are capped at
    MAX_INVITATIONS_PER_CODE redemptions.
    """
    db.add(Coupon(user_id=user.id, code=SIGNUP_COUPON_CODE, discount=SIGNUP_COUPON_DISCOUNT))

    if not invitation_code:
        return

    # The inviter row is the lock that serializes concurrent redemptions of one code
    inviter = (
        await db.execute(
            select(User).where(User.invitation_code == invitation_code).with_for_update()
        )
    ).scalar_one_or_none()
    if inviter is None or inviter.id == user.id:
        raise InvalidRequestError("this invitation code cannot be used")

    invitation_coupon_code = f"INV_{invitation_code}"
    redeemed = (
        await db.execute(
            select(func.count()).select_from(Coupon).where(Coupon.code == invitation_coupon_code)
        )
    ).scalar_one()
    if redeemed >= MAX_INVITATIONS_PER_CODE:
        raise InvalidRequestError("this invitation code cannot be used")

    db.add(Coupon(user_id=user.id, code=invitation_coupon_code, discount=INVITATION_COUPON_DISCOUNT))
    db.add(
        Coupon(
            user_id=inviter.id,
            # Redemption ordinal keeps two rewards minted in the same millisecond apart
            code=f"RWD_{invitation_code}_{time_msec(utcnow())}_{redeemed + 1}",
            discount=INVITATION_REWARD_DISCOUNT,
        )
    )
    logger.info("Invitation code of user=%s redeemed by user=%s", inviter.id, user.id)
