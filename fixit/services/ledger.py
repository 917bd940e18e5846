"""
Technician earnings ledger.

Completed bookings are the source of truth. A booking counts as paid once
its id is listed on an approved or paid payout request; everything else is
pending. The ``earnings_*`` columns on Technician are a cache of this
computation and are only trusted when the technician has no completed
bookings at all (accounts migrated without their booking history).
"""
import logging

from fixit import db
from fixit.models import Booking, PayoutRequest, Technician, utcnow
from fixit.models.base import isoformat
from fixit.models.payout_request import SETTLED_STATUSES
from fixit.services.commission import get_commission_rate_provider
from fixit.services.earnings import Shares, compute_shares

logger = logging.getLogger(__name__)


class EarningsSummary:

    def __init__(self, total_earnings=0, pending_earnings=0, paid_earnings=0,
                 last_payout_date=None, last_payout_amount=0, transactions=None,
                 from_cache=False):
        self.total_earnings = total_earnings
        self.pending_earnings = pending_earnings
        self.paid_earnings = paid_earnings
        self.last_payout_date = last_payout_date
        self.last_payout_amount = last_payout_amount
        self.transactions = transactions or []
        self.from_cache = from_cache

    def to_dict(self):
        return {
            'total_earnings': self.total_earnings,
            'pending_earnings': self.pending_earnings,
            'paid_earnings': self.paid_earnings,
            'last_payout_date': isoformat(self.last_payout_date),
            'last_payout_amount': self.last_payout_amount,
            'transactions': self.transactions,
            'from_cache': self.from_cache,
        }


def _settled_payouts(technician_id):
    """Approved/paid requests keyed by every booking id they cover."""
    payouts = (
        PayoutRequest.query
        .filter(
            PayoutRequest.technician_id == technician_id,
            PayoutRequest.status.in_(SETTLED_STATUSES),
        )
        .all()
    )
    by_booking = {}
    for payout in payouts:
        for booking_id in payout.booking_ids or []:
            by_booking[booking_id] = payout
    return by_booking


def _latest_payout_request(technician_id):
    """Newest request of any status; the "last payout" shown to technicians."""
    return (
        PayoutRequest.query
        .filter_by(technician_id=technician_id)
        .order_by(PayoutRequest.created_at.desc(), PayoutRequest.id.desc())
        .first()
    )


def _transaction(booking, shares, percentage, payout):
    return {
        'booking_id': booking.id,
        'service_name': booking.service_name,
        'amount': booking.amount,
        'technician_earnings': shares.technician_share,
        'admin_commission': shares.admin_share,
        'commission_percentage': percentage,
        'snapshot': booking.has_earnings_snapshot,
        'completed_at': isoformat(booking.completed_at),
        'status': 'paid' if payout else 'pending',
        'claimed': booking.payout_request_id is not None,
        'payout_request_id': payout.id if payout else booking.payout_request_id,
        'payout_date': isoformat(payout.settled_at) if payout else None,
    }


def get_earnings_summary(technician, rate_provider=None):
    """Aggregate a technician's completed bookings into an EarningsSummary."""
    settled_by_booking = _settled_payouts(technician.id)

    last_payout = _latest_payout_request(technician.id)
    last_payout_date = last_payout.created_at if last_payout else None
    last_payout_amount = last_payout.amount if last_payout else 0

    bookings = (
        Booking.query
        .filter_by(technician_id=technician.id, status='completed')
        .order_by(Booking.completed_at.desc())
        .all()
    )

    if not bookings:
        cached = technician.cached_earnings()
        if any(cached.values()):
            return EarningsSummary(
                total_earnings=cached['total'],
                pending_earnings=cached['pending'],
                paid_earnings=cached['paid'],
                last_payout_date=last_payout_date,
                last_payout_amount=last_payout_amount,
                from_cache=True,
            )
        return EarningsSummary(last_payout_date=last_payout_date, last_payout_amount=last_payout_amount)

    current_percentage = None
    total = paid = 0
    transactions = []
    for booking in bookings:
        if booking.has_earnings_snapshot:
            percentage = booking.admin_commission_percentage
            shares = Shares(booking.technician_earnings, booking.admin_commission)
        else:
            if current_percentage is None:
                provider = rate_provider or get_commission_rate_provider()
                current_percentage = provider.get_commission_percentage()
            percentage = current_percentage
            shares = compute_shares(booking.amount or 0, percentage)

        payout = settled_by_booking.get(booking.id)
        total += shares.technician_share
        if payout:
            paid += shares.technician_share
        transactions.append(_transaction(booking, shares, percentage, payout))

    return EarningsSummary(
        total_earnings=total,
        pending_earnings=total - paid,
        paid_earnings=paid,
        last_payout_date=last_payout_date,
        last_payout_amount=last_payout_amount,
        transactions=transactions,
    )


def refresh_earnings_cache(technician, rate_provider=None):
    """Rewrite the cached totals from the ledger. Never raises.

    A summary that itself came from the cache is left alone. Does not
    commit.
    """
    try:
        with db.session.begin_nested():
            summary = get_earnings_summary(technician, rate_provider=rate_provider)
            if summary.from_cache:
                return summary
            technician.earnings_total = summary.total_earnings
            technician.earnings_pending = summary.pending_earnings
            technician.earnings_paid = summary.paid_earnings
            technician.earnings_refreshed_at = utcnow()
        return summary
    except Exception:
        logger.exception("Failed to refresh earnings cache for technician %s", technician.id)
        return None


def reconcile_earnings_cache():
    """Refresh every technician's cache. Returns how many were rewritten."""
    count = 0
    for technician in Technician.query.order_by(Technician.created_at).all():
        summary = refresh_earnings_cache(technician)
        if summary is not None and not summary.from_cache:
            count += 1
    db.session.commit()
    logger.info("Reconciled earnings cache for %d technician(s)", count)
    return count
