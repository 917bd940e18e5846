"""
Admin routes: manual dispatch and assignment, payout settlement, commission and
per-technician ledgers.
"""
from flask import Blueprint, request, jsonify

from fixit import db
from fixit.auth import require_admin
from fixit.errors import TechnicianNotFound
from fixit.models import Technician
from fixit.services.commission import get_commission_rate_provider
from fixit.services.dispatch import assign_booking, redispatch_booking
from fixit.services.ledger import get_earnings_summary
from fixit.services.payouts import approve_payout, list_payouts, mark_payout_paid, reject_payout

admin_bp = Blueprint("admin", __name__)


@admin_bp.route("/bookings/<booking_id>/dispatch", methods=["POST"])
@require_admin
def dispatch(user_id, booking_id):
    """Expire the booking's open offers and offer it again."""
    offers = redispatch_booking(booking_id)
    return jsonify({
        "success": True,
        "booking_id": booking_id,
        "offers": [o.to_dict() for o in offers],
    }), 200


@admin_bp.route("/bookings/<booking_id>/assign", methods=["POST"])
@require_admin
def assign(user_id, booking_id):
    """Body JSON: technician_id (str)"""
    data = request.get_json(silent=True) or {}
    technician_id = data.get("technician_id")
    if not technician_id:
        return jsonify({"success": False, "error": "technician_id is required"}), 400
    booking = assign_booking(booking_id, technician_id)
    return jsonify({"success": True, "booking": booking.to_dict()}), 200


@admin_bp.route("/payouts", methods=["GET"])
@require_admin
def get_payouts(user_id):
    """List payout requests. Optional ?status= filter."""
    payouts = list_payouts(status=request.args.get("status"))
    return jsonify({"success": True, "payout_requests": [p.to_dict() for p in payouts]}), 200


@admin_bp.route("/payouts/<payout_id>/approve", methods=["POST"])
@require_admin
def approve(user_id, payout_id):
    payout = approve_payout(payout_id)
    return jsonify({"success": True, "payout_request": payout.to_dict()}), 200


@admin_bp.route("/payouts/<payout_id>/mark-paid", methods=["POST"])
@require_admin
def mark_paid(user_id, payout_id):
    payout = mark_payout_paid(payout_id)
    return jsonify({"success": True, "payout_request": payout.to_dict()}), 200


@admin_bp.route("/payouts/<payout_id>/reject", methods=["POST"])
@require_admin
def reject(user_id, payout_id):
    """Body JSON: reason (str, optional)"""
    data = request.get_json(silent=True) or {}
    payout = reject_payout(payout_id, reason=data.get("reason"))
    return jsonify({"success": True, "payout_request": payout.to_dict()}), 200


@admin_bp.route("/commission", methods=["GET"])
@require_admin
def get_commission(user_id):
    percentage = get_commission_rate_provider().get_commission_percentage()
    return jsonify({"success": True, "commission_percentage": percentage}), 200


@admin_bp.route("/technicians/<technician_id>/earnings", methods=["GET"])
@require_admin
def technician_earnings(user_id, technician_id):
    technician = db.session.get(Technician, technician_id)
    if not technician:
        raise TechnicianNotFound()
    summary = get_earnings_summary(technician)
    return jsonify({
        "success": True,
        "technician": technician.to_dict(),
        "earnings": summary.to_dict(),
    }), 200
