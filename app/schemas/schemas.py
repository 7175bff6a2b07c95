from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class RideStatusEnum(str, Enum):
    MATCHING = "MATCHING"
    ENROUTE = "ENROUTE"
    PICKUP = "PICKUP"
    CARRYING = "CARRYING"
    ARRIVED = "ARRIVED"
    COMPLETED = "COMPLETED"
    # Reserved; no transition leads here
    CANCELED = "CANCELED"


class AudienceEnum(str, Enum):
    app = "app"
    chair = "chair"


# ---------------------------------------------------------------------------
# Shared
# ---------------------------------------------------------------------------

class Coordinate(BaseModel):
    latitude: int
    longitude: int


# ---------------------------------------------------------------------------
# Rider (app) schemas
# ---------------------------------------------------------------------------

class UserCreateRequest(BaseModel):
    username: str = Field(..., min_length=1, max_length=255)
    firstname: str = Field(..., min_length=1, max_length=255)
    lastname: str = Field(..., min_length=1, max_length=255)
    date_of_birth: str = Field(..., min_length=1, max_length=30)
    invitation_code: Optional[str] = None


class UserCreateResponse(BaseModel):
    id: str
    invitation_code: str
    access_token: str


class PaymentMethodRequest(BaseModel):
    token: str = Field(..., min_length=1, max_length=255)


class RideCreateRequest(BaseModel):
    pickup_coordinate: Coordinate
    destination_coordinate: Coordinate


class RideCreateResponse(BaseModel):
    ride_id: str
    fare: int


class FareEstimateResponse(BaseModel):
    fare: int
    discount: int


class EvaluationRequest(BaseModel):
    evaluation: int = Field(..., ge=1, le=5)


class EvaluationResponse(BaseModel):
    completed_at: int


class ChairOwnerBrief(BaseModel):
    id: str
    name: str
    model: str
    owner_id: str


class CompletedRide(BaseModel):
    id: str
    pickup_coordinate: Coordinate
    destination_coordinate: Coordinate
    fare: int
    evaluation: int
    requested_at: int
    completed_at: int
    chair: ChairOwnerBrief


class RideHistoryResponse(BaseModel):
    rides: list[CompletedRide]


# ---------------------------------------------------------------------------
# Chair schemas
# ---------------------------------------------------------------------------

class ChairCreateRequest(BaseModel):
    owner_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1, max_length=255)
    model: str = Field(..., min_length=1, max_length=255)
    speed: int = Field(..., gt=0)


class ChairCreateResponse(BaseModel):
    id: str
    owner_id: str
    access_token: str


class ChairActivityRequest(BaseModel):
    is_active: bool


class CoordinateResponse(BaseModel):
    recorded_at: int


class ChairStatusRequest(BaseModel):
    # Validated against ENROUTE | CARRYING by the lifecycle service
    status: str


# ---------------------------------------------------------------------------
# Notification schemas
# ---------------------------------------------------------------------------

class ChairStats(BaseModel):
    total_rides_count: int
    total_evaluation_avg: float


class ChairBrief(BaseModel):
    id: str
    name: str
    model: str
    stats: ChairStats


class UserBrief(BaseModel):
    id: str
    name: str


class AppRideView(BaseModel):
    ride_id: str
    pickup_coordinate: Coordinate
    destination_coordinate: Coordinate
    fare: Optional[int] = None
    status: RideStatusEnum
    chair: Optional[ChairBrief] = None
    created_at: int
    updated_at: int


class ChairRideView(BaseModel):
    ride_id: str
    user: UserBrief
    pickup_coordinate: Coordinate
    destination_coordinate: Coordinate
    status: RideStatusEnum


class AppNotificationResponse(BaseModel):
    data: Optional[AppRideView] = None
    retry_after_ms: int


class ChairNotificationResponse(BaseModel):
    data: Optional[ChairRideView] = None
    retry_after_ms: int
