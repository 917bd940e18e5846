"""
Customer booking routes.
"""
from flask import Blueprint, request, jsonify

from fixit.auth import require_customer
from fixit.services.bookings import cancel_booking

bookings_bp = Blueprint("bookings", __name__)


@bookings_bp.route("/<booking_id>/cancel", methods=["POST"])
@require_customer
def cancel(user_id, booking_id):
    """Body JSON: reason (str, optional)"""
    data = request.get_json(silent=True) or {}
    booking = cancel_booking(user_id, booking_id, reason=data.get("reason"))
    return jsonify({"success": True, "booking": booking.to_dict()}), 200
