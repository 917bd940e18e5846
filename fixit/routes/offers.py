"""
Technician job offer routes.
"""
from flask import Blueprint, request, jsonify

from extensions import limiter
from fixit.auth import require_technician
from fixit.services.dispatch import accept_offer, decline_offer, list_offers

offers_bp = Blueprint("offers", __name__)


@offers_bp.route("", methods=["GET"])
@require_technician
def get_offers(technician):
    """List the technician's offers. Optional ?status= filter (pending, accepted, declined, expired)."""
    offers = list_offers(technician, status=request.args.get("status"))
    return jsonify({"success": True, "offers": offers}), 200


@offers_bp.route("/<offer_id>/accept", methods=["POST"])
@limiter.limit("30 per minute")
@require_technician
def accept(technician, offer_id):
    booking_id = accept_offer(technician, offer_id)
    return jsonify({
        "success": True,
        "message": "Job accepted successfully",
        "booking_id": booking_id,
    }), 200


@offers_bp.route("/<offer_id>/decline", methods=["POST"])
@require_technician
def decline(technician, offer_id):
    offer = decline_offer(technician, offer_id)
    return jsonify({"success": True, "offer": offer.to_dict()}), 200
