"""
Domain errors raised by the fulfillment and earnings services.

Route handlers never build error responses for these by hand: the
application factory registers a single handler that serializes any
``ServiceError`` into ``{"success": false, "error": ..., "code": ...}``
with the class's HTTP status.
"""


class ServiceError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code = 500
    code = "internal_error"
    message = "Something went wrong"

    def __init__(self, message=None, **payload):
        super().__init__(message or self.message)
        self.message = message or self.message
        self.payload = payload

    def to_dict(self):
        data = {"success": False, "error": self.message, "code": self.code}
        data.update(self.payload)
        return data


# ---------------------------------------------------------------------------
# Validation (400)
# ---------------------------------------------------------------------------
class ValidationError(ServiceError):
    status_code = 400
    code = "validation_error"
    message = "Invalid request"


class InvalidAmount(ValidationError):
    code = "invalid_amount"
    message = "Amount must be a non-negative integer"


class TechnicianMismatch(ValidationError):
    code = "technician_mismatch"
    message = "This booking was not handled by that technician"


class BelowMinimumPayout(ValidationError):
    code = "below_minimum_payout"
    message = "Pending earnings are below the minimum payout amount"

    def __init__(self, minimum_amount, pending_earnings):
        super().__init__(
            "Minimum payout amount is {}".format(minimum_amount),
            minimum_amount=minimum_amount,
            pending_earnings=pending_earnings,
        )


# ---------------------------------------------------------------------------
# Not found (404)
# ---------------------------------------------------------------------------
class NotFoundError(ServiceError):
    status_code = 404
    code = "not_found"
    message = "Not found"


class BookingNotFound(NotFoundError):
    code = "booking_not_found"
    message = "Booking not found"


class TechnicianNotFound(NotFoundError):
    code = "technician_not_found"
    message = "Technician profile not found"


class OfferNotFound(NotFoundError):
    code = "offer_not_found"
    message = "Job offer not found"


class PayoutNotFound(NotFoundError):
    code = "payout_not_found"
    message = "Payout request not found"


# ---------------------------------------------------------------------------
# Conflict (409)
# ---------------------------------------------------------------------------
class ConflictError(ServiceError):
    status_code = 409
    code = "conflict"
    message = "Request conflicts with the current state"


class OfferNoLongerAvailable(ConflictError):
    code = "offer_no_longer_available"
    message = "This job offer is no longer available"


class AlreadyRated(ConflictError):
    code = "already_rated"
    message = "You have already rated this booking"


class BookingNotEligible(ConflictError):
    code = "booking_not_eligible"
    message = "Only completed bookings can be rated"


class NoUnpaidBookings(ConflictError):
    code = "no_unpaid_bookings"
    message = "No unpaid completed bookings to withdraw"


class PayoutClaimConflict(ConflictError):
    code = "payout_claim_conflict"
    message = "Some bookings were claimed by another payout request, nothing was claimed"


class InvalidStatusTransition(ConflictError):
    code = "invalid_status_transition"
    message = "This action is not allowed in the current status"


# ---------------------------------------------------------------------------
# Collaborator failures (never surfaced)
# ---------------------------------------------------------------------------
class DependencyError(Exception):
    """A best-effort collaborator failed. Callers log it and fall back."""
