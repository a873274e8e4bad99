# Overview: Flask API routes for offer operations; parses input and returns JSON responses.

# backend/storefront/routes/offers.py
"""
Offer management routes (admin only).

Editing an offer never touches the snapshots already on products; apply
and stop are the only actions that reach the catalog.
"""
from flask import Blueprint, request, jsonify, current_app, g

from ..errors import StorefrontError
from ..models import Offer, ROLE_ADMIN
from ..services import offers_service
from ..validation import ModelValidationPolicy, validate_payload
from ..decorators import require_auth, require_role

OFFER_POLICY = ModelValidationPolicy(
    writable_fields={"name", "discount_percent", "start_date", "end_date", "active"},
    required_on_create={"name", "discount_percent"},
)

offers_bp = Blueprint("offers", __name__, url_prefix="/api/offers")


@offers_bp.get("")
@require_auth
@require_role(ROLE_ADMIN)
def list_offers_route():
    try:
        offers = offers_service.list_offers()
        return jsonify({"items": offers, "count": len(offers)}), 200
    except Exception:
        current_app.logger.exception("Failed to list offers")
        return jsonify({"error": "Internal server error"}), 500


@offers_bp.post("")
@require_auth
@require_role(ROLE_ADMIN)
def create_offer_route():
    """
    Create an offer.

    Body: name, discount_percent (0..100) required; start_date, end_date
    (ISO-8601) and active (default false) optional.
    """
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Offer, payload=payload, policy=OFFER_POLICY, partial=False)
        offer = offers_service.create_offer(patch, user_id=g.current_user.id)
        return jsonify({"offer": offer.to_dict()}), 201
    except StorefrontError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create offer")
        return jsonify({"error": "Internal server error"}), 500


@offers_bp.put("/<int:offer_id>")
@require_auth
@require_role(ROLE_ADMIN)
def update_offer_route(offer_id: int):
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Offer, payload=payload, policy=OFFER_POLICY, partial=True)
        offer = offers_service.update_offer(offer_id, patch)
        return jsonify({"offer": offer.to_dict()}), 200
    except StorefrontError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update offer")
        return jsonify({"error": "Internal server error"}), 500


@offers_bp.post("/<int:offer_id>/apply")
@require_auth
@require_role(ROLE_ADMIN)
def apply_offer_route(offer_id: int):
    """Activate the offer and snapshot it onto every product."""
    try:
        modified = offers_service.apply_offer_to_all(offer_id)
        return jsonify({
            "message": "Offer applied to all products",
            "modified_count": modified,
        }), 200
    except StorefrontError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to apply offer")
        return jsonify({"error": "Internal server error"}), 500


@offers_bp.post("/<int:offer_id>/stop")
@require_auth
@require_role(ROLE_ADMIN)
def stop_offer_route(offer_id: int):
    """Deactivate the offer and its snapshots; snapshots are kept."""
    try:
        modified = offers_service.stop_offer(offer_id)
        return jsonify({
            "message": "Offer stopped",
            "modified_count": modified,
        }), 200
    except StorefrontError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to stop offer")
        return jsonify({"error": "Internal server error"}), 500
