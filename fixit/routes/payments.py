"""
Payment confirmation hook.

Called by the payment service once a charge settles, fails or is refunded.
A ``paid`` event confirms the booking and fans it out to technicians.
"""
import logging

from flask import Blueprint, request, jsonify

from extensions import limiter
from fixit.auth import require_api_key
from fixit.services.dispatch import handle_payment_confirmation

logger = logging.getLogger(__name__)

payments_bp = Blueprint("payments", __name__)


@payments_bp.route("/confirmation", methods=["POST"])
@limiter.limit("60 per minute")
@require_api_key
def payment_confirmation():
    """
    Body JSON: booking_id (str), amount (int), payment_status (str)
    """
    data = request.get_json() or {}

    booking_id = data.get("booking_id")
    payment_status = data.get("payment_status")
    if not booking_id:
        return jsonify({"success": False, "error": "booking_id is required"}), 400
    if not payment_status:
        return jsonify({"success": False, "error": "payment_status is required"}), 400

    booking, offers = handle_payment_confirmation(booking_id, data.get("amount"), payment_status)

    return jsonify({
        "success": True,
        "booking": booking.to_dict(),
        "offers_created": len(offers),
    }), 200
