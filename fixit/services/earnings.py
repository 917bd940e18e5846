"""
Technician/admin split of a booking amount.
"""
from collections import namedtuple
from decimal import Decimal, ROUND_HALF_UP

from fixit.errors import InvalidAmount

Shares = namedtuple('Shares', ['technician_share', 'admin_share'])


def compute_shares(amount, commission_percentage):
    """Split ``amount`` into technician and admin shares.

    The admin share is rounded half-up to whole currency units and the
    technician gets the remainder, so the two always add up to ``amount``.
    The percentage is used as given; clamping is the provider's job.
    """
    if isinstance(amount, bool) or not isinstance(amount, int) or amount < 0:
        raise InvalidAmount()

    admin_share = int(
        (Decimal(amount) * Decimal(str(commission_percentage)) / Decimal(100))
        .quantize(Decimal('1'), rounding=ROUND_HALF_UP)
    )
    return Shares(technician_share=amount - admin_share, admin_share=admin_share)


def technician_share_for(booking, rate_provider):
    """The technician's share of a booking.

    Uses the snapshot written at completion. Bookings without one (legacy
    rows) are priced at the current rate and nothing is written back.
    """
    if booking.has_earnings_snapshot:
        return booking.technician_earnings
    return compute_shares(booking.amount or 0, rate_provider.get_commission_percentage()).technician_share
