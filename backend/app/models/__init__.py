from .service import Language, Service, ServiceTranslation
from .mechanic import Mechanic
from .mechanic_service import MechanicService
from .customer import Customer
from .booking import Booking, BookingStatus
from .review import Review
from . import derived  # noqa: F401  (registers derived-field hooks)

__all__ = [
    "Language",
    "Service",
    "ServiceTranslation",
    "Mechanic",
    "MechanicService",
    "Customer",
    "Booking",
    "BookingStatus",
    "Review",
]
