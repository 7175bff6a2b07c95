from datetime import datetime
from sqlalchemy import Integer, String, DateTime, ForeignKey, func
from sqlalchemy.orm import Mapped, mapped_column
from app.database import Base
from app.timeutil import utcnow


class Coupon(Base):
    __tablename__ = "coupons"

    user_id: Mapped[str] = mapped_column(String, ForeignKey("users.id"), primary_key=True)
    code: Mapped[str] = mapped_column(String(255), primary_key=True, index=True)
    discount: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
    # Ride that consumed the coupon; immutable once set
    used_by: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
