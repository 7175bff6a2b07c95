from app.models.user import User
from app.models.chair import Chair
from app.models.ride import Ride, RideStatusEvent
from app.models.coupon import Coupon
from app.models.payment_token import PaymentToken, SystemSetting

__all__ = ["User", "Chair", "Ride", "RideStatusEvent", "Coupon", "PaymentToken", "SystemSetting"]
