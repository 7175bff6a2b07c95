import uuid
from datetime import datetime
from sqlalchemy import BigInteger, Integer, String, DateTime, ForeignKey, func
from sqlalchemy.orm import Mapped, mapped_column
from app.database import Base
from app.services.geometry import Point
from app.timeutil import utcnow


class Ride(Base):
    __tablename__ = "rides"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id: Mapped[str] = mapped_column(String, ForeignKey("users.id"), nullable=False, index=True)
    # Set once by the dispatcher, never reassigned
    chair_id: Mapped[str | None] = mapped_column(String, ForeignKey("chairs.id"), nullable=True, index=True)

    pickup_latitude: Mapped[int] = mapped_column(Integer, nullable=False)
    pickup_longitude: Mapped[int] = mapped_column(Integer, nullable=False)
    destination_latitude: Mapped[int] = mapped_column(Integer, nullable=False)
    destination_longitude: Mapped[int] = mapped_column(Integer, nullable=False)

    fare: Mapped[int | None] = mapped_column(Integer, nullable=True)
    evaluation: Mapped[int | None] = mapped_column(Integer, nullable=True)
    # MATCHING | ENROUTE | PICKUP | CARRYING | ARRIVED | COMPLETED
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="MATCHING", index=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), index=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )

    @property
    def pickup(self) -> Point:
        return Point(self.pickup_latitude, self.pickup_longitude)

    @property
    def destination(self) -> Point:
        return Point(self.destination_latitude, self.destination_longitude)


class RideStatusEvent(Base):
    """Append-only status log; the per-audience delivered markers are the only mutable columns."""

    __tablename__ = "ride_status_events"

    id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True
    )
    ride_id: Mapped[str] = mapped_column(String, ForeignKey("rides.id"), nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
    app_delivered_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    chair_delivered_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
