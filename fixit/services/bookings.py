"""
Booking lifecycle after dispatch: start, complete, release, cancel.
"""
import logging

from sqlalchemy import update

from fixit import db
from fixit.errors import BookingNotFound, InvalidStatusTransition
from fixit.models import Booking, utcnow
from fixit.services.commission import get_commission_rate_provider
from fixit.services.dispatch import dispatch_booking, invalidate_pending_offers
from fixit.services.earnings import compute_shares
from fixit.services.ledger import refresh_earnings_cache
from notifications import notify, notify_admins

logger = logging.getLogger(__name__)


def _assigned_booking(technician, booking_id):
    booking = db.session.get(Booking, booking_id)
    if not booking or booking.technician_id != technician.id:
        raise BookingNotFound()
    return booking


def start_booking(technician, booking_id):
    booking = _assigned_booking(technician, booking_id)
    now = utcnow()
    result = db.session.execute(
        update(Booking)
        .where(
            Booking.id == booking_id,
            Booking.technician_id == technician.id,
            Booking.status == 'confirmed',
            Booking.payment_status == 'paid',
        )
        .values(status='in_progress', started_at=now, updated_at=now)
    )
    if result.rowcount != 1:
        db.session.rollback()
        raise InvalidStatusTransition("Only confirmed, paid bookings can be started")

    notify(
        "customer",
        "Service Started",
        "Your technician has started work on {}.".format(booking.service_name),
        refs={"booking_id": booking_id},
        recipient_id=booking.customer_id,
        type="booking_update",
    )
    db.session.commit()
    db.session.refresh(booking)
    return booking


def complete_booking(technician, booking_id, notes=None, rate_provider=None):
    """Finish a booking and write its earnings snapshot.

    The snapshot uses the commission rate in force right now and is never
    rewritten; later rate changes only affect bookings completed after them.
    """
    booking = _assigned_booking(technician, booking_id)

    rate_provider = rate_provider or get_commission_rate_provider()
    percentage = rate_provider.get_commission_percentage()
    shares = compute_shares(booking.amount or 0, percentage)

    now = utcnow()
    values = dict(
        status='completed',
        completed_at=now,
        updated_at=now,
        technician_earnings=shares.technician_share,
        admin_commission=shares.admin_share,
        admin_commission_percentage=percentage,
    )
    if notes:
        values['notes'] = notes

    result = db.session.execute(
        update(Booking)
        .where(
            Booking.id == booking_id,
            Booking.technician_id == technician.id,
            Booking.status == 'in_progress',
            Booking.payment_status == 'paid',
            Booking.technician_earnings.is_(None),
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.session.rollback()
        raise InvalidStatusTransition("Only in-progress, paid bookings can be completed")

    db.session.refresh(booking)
    technician.total_jobs = (technician.total_jobs or 0) + 1
    technician.is_available = True
    refresh_earnings_cache(technician, rate_provider=rate_provider)

    notify(
        "customer",
        "Service Completed",
        "Your {} is done. Please rate your technician.".format(booking.service_name),
        refs={"booking_id": booking_id, "technician_id": technician.id},
        recipient_id=booking.customer_id,
        type="rating_request",
    )
    notify_admins(
        "Booking Completed",
        "Booking {} completed; technician share {}, commission {}".format(
            booking_id, shares.technician_share, shares.admin_share,
        ),
        refs={"booking_id": booking_id, "technician_id": technician.id},
        type="booking_update",
    )
    db.session.commit()

    logger.info(
        "Booking %s completed by %s: %d/%d at %d%%",
        booking_id, technician.id, shares.technician_share, shares.admin_share, percentage,
    )
    return booking


def release_booking(technician, booking_id, reason=None):
    """Technician drops an assigned booking before finishing it.

    The booking goes back to confirmed and unassigned and is offered again
    to everyone except the releasing technician.
    """
    booking = _assigned_booking(technician, booking_id)
    now = utcnow()
    result = db.session.execute(
        update(Booking)
        .where(
            Booking.id == booking_id,
            Booking.technician_id == technician.id,
            Booking.status.in_(('confirmed', 'in_progress')),
        )
        .values(status='confirmed', technician_id=None, accepted_at=None, started_at=None, updated_at=now)
    )
    if result.rowcount != 1:
        db.session.rollback()
        raise InvalidStatusTransition("Only confirmed or in-progress bookings can be released")

    db.session.refresh(booking)
    offers = []
    try:
        with db.session.begin_nested():
            offers = dispatch_booking(booking, now=now, exclude=(technician.id,))
    except Exception:
        logger.exception("Redispatch failed for released booking %s", booking_id)
        offers = []
    technician.is_available = True

    notify(
        "customer",
        "Finding A New Technician",
        "Your technician can no longer make your {} booking. We are finding a replacement.".format(
            booking.service_name
        ),
        refs={"booking_id": booking_id},
        recipient_id=booking.customer_id,
        type="booking_update",
    )
    notify_admins(
        "Booking Released",
        "Technician {} released booking {}{}".format(
            technician.id, booking_id, ": {}".format(reason) if reason else ""
        ),
        refs={"booking_id": booking_id, "technician_id": technician.id},
        type="dispatch",
    )
    db.session.commit()

    logger.info("Technician %s released booking %s; %d new offer(s)", technician.id, booking_id, len(offers))
    return booking


def cancel_booking(customer_id, booking_id, reason=None):
    """Customer cancellation, allowed until work starts."""
    booking = db.session.get(Booking, booking_id)
    if not booking or booking.customer_id != customer_id:
        raise BookingNotFound()

    now = utcnow()
    result = db.session.execute(
        update(Booking)
        .where(
            Booking.id == booking_id,
            Booking.customer_id == customer_id,
            Booking.status.in_(('pending', 'confirmed')),
        )
        .values(status='cancelled', cancelled_at=now, updated_at=now, cancellation_reason=reason)
    )
    if result.rowcount != 1:
        db.session.rollback()
        raise InvalidStatusTransition("Only pending or confirmed bookings can be cancelled")

    invalidated = invalidate_pending_offers(booking_id, now=now)
    db.session.refresh(booking)

    if booking.technician_id:
        booking.technician.is_available = True
        notify(
            "technician",
            "Booking Cancelled",
            "The customer cancelled booking {}.".format(booking_id),
            refs={"booking_id": booking_id},
            recipient_id=booking.technician_id,
            type="booking_update",
        )
    notify_admins(
        "Booking Cancelled",
        "Booking {} was cancelled{}".format(booking_id, ": {}".format(reason) if reason else ""),
        refs={"booking_id": booking_id},
        type="booking_update",
    )
    db.session.commit()

    logger.info("Booking %s cancelled; %d pending offer(s) closed", booking_id, invalidated)
    return booking
