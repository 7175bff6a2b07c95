import uuid
from datetime import datetime
from sqlalchemy import Boolean, Integer, String, DateTime, func
from sqlalchemy.orm import Mapped, mapped_column
from app.database import Base
from app.services.geometry import Point
from app.timeutil import utcnow


class Chair(Base):
    __tablename__ = "chairs"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    owner_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    model: Mapped[str] = mapped_column(String(255), nullable=False)
    speed: Mapped[int] = mapped_column(Integer, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Unknown until the first coordinate report
    latitude: Mapped[int | None] = mapped_column(Integer, nullable=True)
    longitude: Mapped[int | None] = mapped_column(Integer, nullable=True)
    location_updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    current_ride_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
    total_distance: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_rides_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_evaluation: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )

    @property
    def location(self) -> Point | None:
        if self.latitude is None or self.longitude is None:
            return None
        return Point(self.latitude, self.longitude)

    @property
    def evaluation_avg(self) -> float:
        if self.total_rides_count == 0:
            return 0.0
        return self.total_evaluation / self.total_rides_count
