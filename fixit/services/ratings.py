"""
Customer ratings of technicians.
"""
import logging

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from fixit import db
from fixit.errors import (
    AlreadyRated,
    BookingNotEligible,
    BookingNotFound,
    TechnicianMismatch,
    TechnicianNotFound,
    ValidationError,
)
from fixit.models import Booking, Rating, Technician
from notifications import notify

logger = logging.getLogger(__name__)


def submit_rating(customer_id, booking_id, technician_id, rating, comment=None):
    """
    Record a 1-5 rating for a completed booking and recompute the
    technician's average from every rating they hold.

    A (booking, customer) pair can be rated once; the unique constraint on
    ``ratings`` backs up the lookup when two submissions race.
    """
    if isinstance(rating, bool) or not isinstance(rating, int) or not 1 <= rating <= 5:
        raise ValidationError("rating must be an integer between 1 and 5")

    booking = db.session.get(Booking, booking_id)
    if not booking or booking.customer_id != customer_id:
        raise BookingNotFound()
    if booking.technician_id != technician_id:
        raise TechnicianMismatch()
    if booking.status != 'completed':
        raise BookingNotEligible()
    if Rating.query.filter_by(booking_id=booking_id, customer_id=customer_id).first():
        raise AlreadyRated()

    technician = db.session.get(Technician, technician_id)
    if not technician:
        raise TechnicianNotFound()

    record = Rating(
        booking_id=booking_id,
        customer_id=customer_id,
        technician_id=technician_id,
        rating=rating,
        comment=comment,
    )
    try:
        with db.session.begin_nested():
            db.session.add(record)
    except IntegrityError:
        db.session.rollback()
        raise AlreadyRated()

    booking.rated = True

    average, count = (
        db.session.query(func.avg(Rating.rating), func.count(Rating.id))
        .filter(Rating.technician_id == technician_id)
        .one()
    )
    technician.avg_rating = round(float(average or 0), 2)
    technician.rating_count = count

    notify(
        "technician",
        "New Rating Received",
        "You received a {}-star rating.".format(rating),
        refs={"booking_id": booking_id, "rating": rating},
        recipient_id=technician_id,
        type="rating",
    )
    db.session.commit()

    logger.info("Booking %s rated %d; technician %s now at %.2f", booking_id, rating, technician_id,
                technician.avg_rating)
    return record


def list_ratings(technician, page=1, per_page=20):
    return (
        Rating.query
        .filter_by(technician_id=technician.id)
        .order_by(Rating.created_at.desc())
        .paginate(page=page, per_page=per_page, error_out=False)
    )
