"""
Rider signup, payment token registration and chair registration.
"""
import secrets
import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.errors import ConflictError, NotFoundError
from app.models.chair import Chair
from app.models.payment_token import PaymentToken
from app.models.user import User
from app.schemas.schemas import ChairCreateRequest, UserCreateRequest
from app.services.coupons import issue_signup_coupons


async def register_user(db: AsyncSession, payload: UserCreateRequest) -> User:
    existing = await db.execute(select(User.id).where(User.username == payload.username))
    if existing.first() is not None:
        raise ConflictError("username already taken")

    user = User(
        id=str(uuid.uuid4()),
        username=payload.username,
        firstname=payload.firstname,
        lastname=payload.lastname,
        date_of_birth=payload.date_of_birth,
        invitation_code=secrets.token_hex(15),
    )
    db.add(user)
    await db.flush()

    await issue_signup_coupons(db, user, payload.invitation_code)
    await db.commit()
    return user


async def register_payment_token(db: AsyncSession, user_id: str, token: str) -> None:
    if await db.get(User, user_id) is None:
        raise NotFoundError("user not found")
    existing = await db.get(PaymentToken, user_id)
    if existing is None:
        db.add(PaymentToken(user_id=user_id, token=token))
    else:
        existing.token = token
    await db.commit()


async def register_chair(db: AsyncSession, payload: ChairCreateRequest) -> Chair:
    chair = Chair(
        id=str(uuid.uuid4()),
        owner_id=payload.owner_id,
        name=payload.name,
        model=payload.model,
        speed=payload.speed,
        is_active=False,
    )
    db.add(chair)
    await db.commit()
    return chair
