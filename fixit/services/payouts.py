"""
Payout requests.

A request claims every completed booking of the technician that no other
live request holds, by pointing ``bookings.payout_request_id`` at itself in
one conditional UPDATE. If any booking slips away between the read and the
claim, nothing is claimed and the request is not created, so a request's
amount always equals the sum of the bookings it owns.
"""
import logging

from flask import current_app
from sqlalchemy import update

from fixit import db
from fixit.errors import (
    BelowMinimumPayout,
    InvalidStatusTransition,
    NoUnpaidBookings,
    PayoutClaimConflict,
    PayoutNotFound,
    ValidationError,
)
from fixit.models import Booking, PayoutRequest, utcnow
from fixit.services.commission import get_commission_rate_provider
from fixit.services.earnings import technician_share_for
from fixit.services.ledger import get_earnings_summary, refresh_earnings_cache
from notifications import notify, notify_admins

logger = logging.getLogger(__name__)


def request_payout(technician, payment_method, account_details=None, rate_provider=None):
    if not payment_method:
        raise ValidationError("payment_method is required")

    rate_provider = rate_provider or get_commission_rate_provider()
    minimum = current_app.config['MINIMUM_PAYOUT_AMOUNT']

    summary = get_earnings_summary(technician, rate_provider=rate_provider)
    if summary.pending_earnings < minimum:
        raise BelowMinimumPayout(minimum_amount=minimum, pending_earnings=summary.pending_earnings)

    unclaimed = (
        Booking.query
        .filter(
            Booking.technician_id == technician.id,
            Booking.status == 'completed',
            Booking.payout_request_id.is_(None),
        )
        .order_by(Booking.completed_at)
        .all()
    )
    if not unclaimed:
        raise NoUnpaidBookings()

    booking_ids = [b.id for b in unclaimed]
    amount = sum(technician_share_for(b, rate_provider) for b in unclaimed)
    # Open requests count as unsettled in the summary but are not claimable.
    if amount < minimum:
        raise BelowMinimumPayout(minimum_amount=minimum, pending_earnings=amount)

    payout = PayoutRequest(
        technician_id=technician.id,
        amount=amount,
        booking_ids=booking_ids,
        payment_method=payment_method,
        account_details=account_details or {},
        status='pending',
    )
    db.session.add(payout)
    db.session.flush()

    claimed = db.session.execute(
        update(Booking)
        .where(
            Booking.id.in_(booking_ids),
            Booking.payout_request_id.is_(None),
            Booking.technician_id == technician.id,
            Booking.status == 'completed',
        )
        .values(payout_request_id=payout.id)
    )
    if claimed.rowcount != len(booking_ids):
        logger.warning(
            "Payout claim for technician %s got %d of %d bookings; rolling back",
            technician.id, claimed.rowcount, len(booking_ids),
        )
        db.session.rollback()
        raise PayoutClaimConflict()

    notify_admins(
        "New Payout Request",
        "Technician {} requested a payout of {}".format(technician.name or technician.id, amount),
        refs={"payout_request_id": payout.id, "technician_id": technician.id},
        type="payout_request",
    )
    refresh_earnings_cache(technician, rate_provider=rate_provider)
    db.session.commit()

    logger.info(
        "Payout request %s created for technician %s: %d booking(s), amount %d",
        payout.id, technician.id, len(booking_ids), amount,
    )
    return payout


def _get_payout(payout_id):
    payout = db.session.get(PayoutRequest, payout_id)
    if not payout:
        raise PayoutNotFound()
    return payout


def _transition(payout_id, from_statuses, values):
    payout = _get_payout(payout_id)
    result = db.session.execute(
        update(PayoutRequest)
        .where(PayoutRequest.id == payout_id, PayoutRequest.status.in_(from_statuses))
        .values(updated_at=utcnow(), **values)
    )
    if result.rowcount != 1:
        db.session.rollback()
        raise InvalidStatusTransition(
            "Cannot move payout request from {} to {}".format(payout.status, values['status'])
        )
    db.session.refresh(payout)
    return payout


def _settle(payout, title, message):
    notify(
        "technician",
        title,
        message,
        refs={"payout_request_id": payout.id},
        recipient_id=payout.technician_id,
        type="payout_update",
    )
    refresh_earnings_cache(payout.technician)
    db.session.commit()
    logger.info("Payout request %s is now %s", payout.id, payout.status)
    return payout


def approve_payout(payout_id):
    payout = _transition(payout_id, ('pending',), {'status': 'approved', 'processed_at': utcnow()})
    return _settle(payout, "Payout Approved", "Your payout of {} was approved".format(payout.amount))


def mark_payout_paid(payout_id):
    payout = _transition(payout_id, ('approved',), {'status': 'paid', 'processed_at': utcnow()})
    return _settle(payout, "Payout Sent", "Your payout of {} has been paid".format(payout.amount))


def reject_payout(payout_id, reason=None):
    """Reject a request and return its bookings to the unclaimed pool."""
    payout = _transition(
        payout_id, ('pending', 'approved'),
        {'status': 'rejected', 'rejection_reason': reason, 'processed_at': utcnow()},
    )
    db.session.execute(
        update(Booking)
        .where(Booking.payout_request_id == payout.id)
        .values(payout_request_id=None)
    )
    message = "Your payout of {} was rejected".format(payout.amount)
    if reason:
        message = "{}: {}".format(message, reason)
    return _settle(payout, "Payout Rejected", message)


def list_payouts(technician=None, status=None):
    query = PayoutRequest.query
    if technician is not None:
        query = query.filter_by(technician_id=technician.id)
    if status:
        query = query.filter_by(status=status)
    return query.order_by(PayoutRequest.created_at.desc()).all()
