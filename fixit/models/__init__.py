"""SQLAlchemy models package"""
from .base import generate_uuid, utcnow
from .user import User
from .technician import Technician
from .booking import Booking
from .job_offer import JobOffer
from .rating import Rating
from .payout_request import PayoutRequest
from .setting import Setting
from .notification import Notification

__all__ = [
    'generate_uuid',
    'utcnow',
    'User',
    'Technician',
    'Booking',
    'JobOffer',
    'Rating',
    'PayoutRequest',
    'Setting',
    'Notification',
]
