"""
Job offer dispatch.

A paid booking is offered to a handful of technicians at once. Each offer is
open for ``OFFER_WINDOW_MINUTES``; the first technician to accept gets the
booking and every sibling offer is closed. All state changes are
conditional UPDATEs checked by rowcount, so two instances racing on the same
booking cannot both win.
"""
import logging
from datetime import timedelta
from math import radians, cos, sin, asin, sqrt

from flask import current_app
from sqlalchemy import update

from fixit import db
from fixit.errors import (
    BookingNotEligible,
    BookingNotFound,
    InvalidAmount,
    OfferNoLongerAvailable,
    OfferNotFound,
    TechnicianNotFound,
    ValidationError,
)
from fixit.models import Booking, JobOffer, Technician, utcnow
from fixit.models.booking import PAYMENT_STATUSES
from fixit.services.commission import get_commission_rate_provider
from fixit.services.earnings import compute_shares
from notifications import notify, notify_admins, notify_job_offer

logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371.0


def _haversine(lat1, lng1, lat2, lng2):
    """Return distance in kilometres between two GPS points."""
    lat1, lng1, lat2, lng2 = map(radians, [lat1, lng1, lat2, lng2])
    dlat = lat2 - lat1
    dlng = lng2 - lng1
    a = sin(dlat / 2) ** 2 + cos(lat1) * cos(lat2) * sin(dlng / 2) ** 2
    return 2 * EARTH_RADIUS_KM * asin(sqrt(a))


def _distance_km(technician, booking):
    if None in (technician.current_lat, technician.current_lng, booking.lat, booking.lng):
        return None
    return round(_haversine(technician.current_lat, technician.current_lng, booking.lat, booking.lng), 2)


class SimpleEligibilityFilter:
    """First ``fan_out`` active, available technicians by signup order.

    No distance or fairness weighting. When nobody is marked available the
    filter falls back to active technicians and flips them back to
    available, since stale availability flags are the usual cause.
    """

    def __init__(self, fan_out=5):
        self.fan_out = fan_out

    def select(self, booking):
        technicians = (
            Technician.query
            .filter_by(status='active', is_available=True)
            .order_by(Technician.created_at, Technician.id)
            .limit(self.fan_out)
            .all()
        )
        if technicians:
            return technicians

        fallback = (
            Technician.query
            .filter_by(status='active')
            .order_by(Technician.created_at, Technician.id)
            .limit(self.fan_out)
            .all()
        )
        if fallback:
            logger.warning(
                "No available technicians for booking %s; re-enabling %d active technician(s)",
                booking.id, len(fallback),
            )
            for technician in fallback:
                technician.is_available = True
        return fallback


def default_strategy():
    return SimpleEligibilityFilter(fan_out=current_app.config['DISPATCH_FAN_OUT'])


def dispatch_booking(booking, strategy=None, now=None, exclude=()):
    """Create pending offers for a paid, unassigned booking.

    Technicians whose ids are in ``exclude`` are never offered the booking.

    Does not commit; the caller owns the transaction.
    """
    if booking.status != 'confirmed' or booking.payment_status != 'paid' or booking.technician_id:
        raise BookingNotEligible("Booking is not waiting for a technician")

    strategy = strategy or default_strategy()
    now = now or utcnow()
    expires_at = now + timedelta(minutes=current_app.config['OFFER_WINDOW_MINUTES'])

    technicians = [t for t in strategy.select(booking) if t.id not in exclude]
    if not technicians:
        logger.warning("No eligible technicians for booking %s", booking.id)
        return []

    already_offered = {
        technician_id for (technician_id,) in db.session.query(JobOffer.technician_id).filter(
            JobOffer.booking_id == booking.id,
            JobOffer.status == 'pending',
            JobOffer.expires_at > now,
        )
    }

    preview = compute_shares(
        booking.amount or 0, get_commission_rate_provider().get_commission_percentage()
    ).technician_share

    offers = []
    for technician in technicians:
        if technician.id in already_offered:
            continue
        offer = JobOffer(
            booking_id=booking.id,
            technician_id=technician.id,
            status='pending',
            distance_km=_distance_km(technician, booking),
            service_name=booking.service_name,
            address=booking.address,
            amount=booking.amount,
            estimated_earnings=preview,
            scheduled_at=booking.scheduled_at,
            created_at=now,
            expires_at=expires_at,
        )
        db.session.add(offer)
        offers.append((technician, offer))
    db.session.flush()

    for technician, offer in offers:
        notify_job_offer(technician, offer)

    logger.info("Dispatched booking %s to %d technician(s)", booking.id, len(offers))
    return [offer for _, offer in offers]


def handle_payment_confirmation(booking_id, amount, payment_status):
    """Apply a payment event to its booking.

    Returns ``(booking, offers)``. Replaying a ``paid`` event is a no-op. A
    dispatch failure is logged and never undoes the payment.
    """
    if payment_status not in PAYMENT_STATUSES:
        raise ValidationError("Unknown payment status: {}".format(payment_status))

    booking = db.session.get(Booking, booking_id)
    if not booking:
        raise BookingNotFound()

    now = utcnow()

    if payment_status == 'paid':
        if isinstance(amount, bool) or not isinstance(amount, int) or amount < 0:
            raise InvalidAmount()
        if amount != booking.amount:
            raise ValidationError(
                "Payment amount does not match booking amount",
                booking_amount=booking.amount,
            )

        result = db.session.execute(
            update(Booking)
            .where(
                Booking.id == booking_id,
                Booking.status == 'pending',
                Booking.payment_status != 'paid',
            )
            .values(status='confirmed', payment_status='paid', confirmed_at=now, updated_at=now)
        )
        if result.rowcount == 0:
            logger.info("Payment for booking %s already applied (status=%s)", booking_id, booking.status)
            db.session.rollback()
            return booking, []

        db.session.refresh(booking)
        offers = []
        try:
            with db.session.begin_nested():
                offers = dispatch_booking(booking, now=now)
        except Exception:
            logger.exception("Dispatch failed for booking %s; payment kept", booking_id)
            offers = []
        db.session.commit()
        return booking, offers

    if payment_status == 'failed':
        db.session.execute(
            update(Booking)
            .where(Booking.id == booking_id, Booking.payment_status == 'pending')
            .values(payment_status='failed', updated_at=now)
        )
    elif payment_status == 'refunded':
        db.session.execute(
            update(Booking)
            .where(Booking.id == booking_id)
            .values(payment_status='refunded', updated_at=now)
        )
        cancelled = db.session.execute(
            update(Booking)
            .where(Booking.id == booking_id, Booking.status == 'confirmed')
            .values(status='cancelled', cancelled_at=now, cancellation_reason='Payment refunded')
        )
        db.session.refresh(booking)
        if cancelled.rowcount:
            invalidate_pending_offers(booking_id, now=now)
            if booking.technician_id:
                booking.technician.is_available = True
                notify(
                    "technician",
                    "Booking Cancelled",
                    "Booking {} was refunded and cancelled.".format(booking_id),
                    refs={"booking_id": booking_id},
                    recipient_id=booking.technician_id,
                    type="booking_update",
                )
            logger.info("Booking %s cancelled after refund", booking_id)
        elif booking.status == 'in_progress':
            notify_admins(
                "Refund On Active Booking",
                "Booking {} was refunded while work is in progress".format(booking_id),
                refs={"booking_id": booking_id, "technician_id": booking.technician_id},
                type="booking_update",
            )
            logger.warning("Booking %s refunded while in progress", booking_id)

    db.session.commit()
    db.session.refresh(booking)
    return booking, []


def redispatch_booking(booking_id, strategy=None, now=None):
    """Close outstanding offers and offer the booking again."""
    booking = db.session.get(Booking, booking_id)
    if not booking:
        raise BookingNotFound()

    now = now or utcnow()
    invalidate_pending_offers(booking.id, now=now)
    offers = dispatch_booking(booking, strategy=strategy, now=now)
    db.session.commit()
    return offers


def assign_booking(booking_id, technician_id, now=None):
    """Admin assignment that skips the offer round.

    Every open offer for the booking is closed, including one the chosen
    technician may hold.
    """
    booking = db.session.get(Booking, booking_id)
    if not booking:
        raise BookingNotFound()
    technician = db.session.get(Technician, technician_id)
    if not technician:
        raise TechnicianNotFound()
    if technician.status != 'active':
        raise ValidationError("Technician is not active")

    now = now or utcnow()
    result = db.session.execute(
        update(Booking)
        .where(
            Booking.id == booking_id,
            Booking.technician_id.is_(None),
            Booking.status == 'confirmed',
            Booking.payment_status == 'paid',
        )
        .values(technician_id=technician.id, accepted_at=now, updated_at=now)
    )
    if result.rowcount != 1:
        db.session.rollback()
        raise BookingNotEligible("Booking is not waiting for a technician")

    invalidate_pending_offers(booking_id, now=now)
    technician.is_available = False
    db.session.refresh(booking)

    notify(
        "technician",
        "New Booking Assigned",
        "You have been assigned to a new {} job".format(booking.service_name),
        refs={"booking_id": booking_id},
        recipient_id=technician.id,
        type="booking_update",
    )
    notify(
        "customer",
        "Technician Assigned",
        "{} will handle your {} booking.".format(technician.name or "A technician", booking.service_name),
        refs={"booking_id": booking_id, "technician_id": technician.id},
        recipient_id=booking.customer_id,
        type="booking_update",
    )
    db.session.commit()

    logger.info("Booking %s assigned to technician %s by admin", booking_id, technician.id)
    return booking


def accept_offer(technician, offer_id, now=None):
    """Accept an offer and take the booking. Returns the booking id.

    The booking row is claimed before any offer row, so concurrent accepts
    for the same booking queue on that one row and lock offers in the same
    order.
    """
    offer = db.session.get(JobOffer, offer_id)
    if not offer or offer.technician_id != technician.id:
        raise OfferNotFound()

    now = now or utcnow()
    booking_id = offer.booking_id

    assigned = db.session.execute(
        update(Booking)
        .where(
            Booking.id == booking_id,
            Booking.technician_id.is_(None),
            Booking.status == 'confirmed',
        )
        .values(technician_id=technician.id, accepted_at=now, updated_at=now)
    )
    if assigned.rowcount != 1:
        db.session.rollback()
        raise OfferNoLongerAvailable()

    claimed = db.session.execute(
        update(JobOffer)
        .where(
            JobOffer.id == offer_id,
            JobOffer.technician_id == technician.id,
            JobOffer.status == 'pending',
            JobOffer.expires_at > now,
        )
        .values(status='accepted', responded_at=now)
    )
    if claimed.rowcount != 1:
        db.session.rollback()
        raise OfferNoLongerAvailable()

    db.session.execute(
        update(JobOffer)
        .where(
            JobOffer.booking_id == booking_id,
            JobOffer.id != offer_id,
            JobOffer.status == 'pending',
        )
        .values(status='declined', responded_at=now)
    )
    technician.is_available = False

    booking = db.session.get(Booking, booking_id)
    notify(
        "customer",
        "Technician Assigned",
        "{} will handle your {} booking.".format(technician.name or "A technician", booking.service_name),
        refs={"booking_id": booking_id, "technician_id": technician.id},
        recipient_id=booking.customer_id,
        type="booking_update",
    )
    notify_admins(
        "Job Accepted",
        "Booking {} was accepted by technician {}".format(booking_id, technician.id),
        refs={"booking_id": booking_id, "technician_id": technician.id},
        type="booking_update",
    )
    db.session.commit()

    logger.info("Technician %s accepted offer %s for booking %s", technician.id, offer_id, booking_id)
    return booking_id


def decline_offer(technician, offer_id, now=None):
    offer = db.session.get(JobOffer, offer_id)
    if not offer or offer.technician_id != technician.id:
        raise OfferNotFound()

    now = now or utcnow()
    result = db.session.execute(
        update(JobOffer)
        .where(
            JobOffer.id == offer_id,
            JobOffer.technician_id == technician.id,
            JobOffer.status == 'pending',
            JobOffer.expires_at > now,
        )
        .values(status='declined', responded_at=now)
    )
    if result.rowcount != 1:
        db.session.rollback()
        raise OfferNoLongerAvailable()

    still_open = JobOffer.query.filter(
        JobOffer.booking_id == offer.booking_id,
        JobOffer.status == 'pending',
        JobOffer.expires_at > now,
    ).count()
    if not still_open:
        notify_admins(
            "Booking Needs Dispatch",
            "Every technician offered booking {} has declined".format(offer.booking_id),
            refs={"booking_id": offer.booking_id},
            type="dispatch",
        )
    db.session.commit()
    return offer


def list_offers(technician, status=None, now=None):
    """The technician's offers, newest first, with expiry applied to the view."""
    now = now or utcnow()
    offers = (
        JobOffer.query
        .filter_by(technician_id=technician.id)
        .order_by(JobOffer.created_at.desc())
        .all()
    )
    results = [offer.to_dict(now) for offer in offers]
    if status:
        results = [o for o in results if o['status'] == status]
    return results


def invalidate_pending_offers(booking_id, status='expired', now=None):
    """Close every pending offer for a booking. Does not commit."""
    now = now or utcnow()
    result = db.session.execute(
        update(JobOffer)
        .where(JobOffer.booking_id == booking_id, JobOffer.status == 'pending')
        .values(status=status, responded_at=now)
    )
    return result.rowcount


def expire_stale_offers(now=None):
    """Flip pending offers past their window to expired. Returns the count."""
    now = now or utcnow()
    result = db.session.execute(
        update(JobOffer)
        .where(JobOffer.status == 'pending', JobOffer.expires_at <= now)
        .values(status='expired')
    )
    db.session.commit()
    if result.rowcount:
        logger.info("Expired %d stale job offer(s)", result.rowcount)
    return result.rowcount
