"""
Technician self-service routes: availability, bookings in progress,
earnings, payouts and ratings.
"""
from flask import Blueprint, request, jsonify

from fixit import db
from extensions import limiter
from fixit.auth import require_technician
from fixit.services.bookings import complete_booking, release_booking, start_booking
from fixit.services.ledger import get_earnings_summary
from fixit.services.payouts import list_payouts, request_payout
from fixit.services.ratings import list_ratings

technicians_bp = Blueprint("technicians", __name__)


@technicians_bp.route("/availability", methods=["PUT"])
@require_technician
def update_availability(technician):
    """Body JSON: is_available (bool)"""
    data = request.get_json() or {}
    is_available = data.get("is_available")
    if not isinstance(is_available, bool):
        return jsonify({"success": False, "error": "is_available must be true or false"}), 400

    technician.is_available = is_available
    db.session.commit()
    return jsonify({"success": True, "technician": technician.to_dict()}), 200


@technicians_bp.route("/bookings/<booking_id>/start", methods=["POST"])
@require_technician
def start(technician, booking_id):
    booking = start_booking(technician, booking_id)
    return jsonify({"success": True, "booking": booking.to_dict()}), 200


@technicians_bp.route("/bookings/<booking_id>/complete", methods=["POST"])
@require_technician
def complete(technician, booking_id):
    """Body JSON: notes (str, optional)"""
    data = request.get_json(silent=True) or {}
    booking = complete_booking(technician, booking_id, notes=data.get("notes"))
    return jsonify({"success": True, "booking": booking.to_dict()}), 200


@technicians_bp.route("/bookings/<booking_id>/release", methods=["POST"])
@require_technician
def release(technician, booking_id):
    """Body JSON: reason (str, optional)"""
    data = request.get_json(silent=True) or {}
    booking = release_booking(technician, booking_id, reason=data.get("reason"))
    return jsonify({"success": True, "booking": booking.to_dict()}), 200


@technicians_bp.route("/earnings", methods=["GET"])
@require_technician
def get_earnings(technician):
    summary = get_earnings_summary(technician)
    return jsonify({"success": True, "earnings": summary.to_dict()}), 200


@technicians_bp.route("/payouts", methods=["POST"])
@limiter.limit("5 per minute")
@require_technician
def create_payout(technician):
    """
    Request a withdrawal of all unclaimed completed bookings.
    Body JSON: payment_method (str), account_details (object, optional)
    """
    data = request.get_json() or {}
    payout = request_payout(
        technician,
        payment_method=data.get("payment_method"),
        account_details=data.get("account_details"),
    )
    return jsonify({
        "success": True,
        "message": "Payout request submitted successfully",
        "payout_request": payout.to_dict(),
    }), 201


@technicians_bp.route("/payouts", methods=["GET"])
@require_technician
def get_payouts(technician):
    payouts = list_payouts(technician=technician, status=request.args.get("status"))
    return jsonify({"success": True, "payout_requests": [p.to_dict() for p in payouts]}), 200


@technicians_bp.route("/ratings", methods=["GET"])
@require_technician
def get_ratings(technician):
    page = request.args.get("page", 1, type=int)
    per_page = request.args.get("per_page", 20, type=int)

    pagination = list_ratings(technician, page=page, per_page=per_page)

    return jsonify({
        "success": True,
        "avg_rating": technician.avg_rating or 0.0,
        "rating_count": technician.rating_count or 0,
        "ratings": [r.to_dict() for r in pagination.items],
        "total": pagination.total,
        "page": pagination.page,
        "pages": pagination.pages,
    }), 200
