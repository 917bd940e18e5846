"""
Rating API routes.
"""
from flask import Blueprint, request, jsonify

from extensions import limiter
from fixit.auth import require_customer
from fixit.services.ratings import submit_rating

ratings_bp = Blueprint("ratings", __name__)


@ratings_bp.route("", methods=["POST"])
@limiter.limit("10 per minute")
@require_customer
def create_rating(user_id):
    """
    Rate the technician of a completed booking.
    Body JSON: booking_id (str), technician_id (str), rating (int 1-5), comment (str or null)
    """
    data = request.get_json() or {}

    booking_id = data.get("booking_id")
    technician_id = data.get("technician_id")
    rating = data.get("rating")

    if not booking_id:
        return jsonify({"success": False, "error": "booking_id is required"}), 400
    if not technician_id:
        return jsonify({"success": False, "error": "technician_id is required"}), 400
    if rating is None:
        return jsonify({"success": False, "error": "rating is required"}), 400
    if isinstance(rating, str) and rating.strip().isdigit():
        rating = int(rating)

    record = submit_rating(user_id, booking_id, technician_id, rating, comment=data.get("comment"))
    return jsonify({"success": True, "rating": record.to_dict()}), 201
