# Overview: Flask API routes for catalog operations; parses input and returns JSON responses.

# backend/storefront/routes/products.py
"""
Catalog routes.

SECURITY:
- Reads are public (the storefront lists phones to anonymous visitors)
- Writes require an admin session

Stock is set once on create. After that it only moves through
POST /<id>/restock and checkout.
"""
from flask import Blueprint, request, jsonify, current_app, g

from ..errors import StorefrontError
from ..models import Product, ROLE_ADMIN
from ..services import products_service
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_product,
)
from ..decorators import require_auth, require_role

PRODUCT_CREATE_POLICY = ModelValidationPolicy(
    writable_fields={"name", "brand", "price", "description", "stock", "image", "images"},
    required_on_create={"name", "brand", "price"},
    extra_fields={"offer"},
)

PRODUCT_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields={"name", "brand", "price", "description", "image", "images"},
    extra_fields={"offer"},
)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
def list_products_route():
    """
    List the catalog with optional pagination.

    Query params:
    - page: int (optional) - page number (1-indexed). If omitted, returns all items.
    - per_page: int (optional) - items per page (default 20, max 100)
    """
    page = request.args.get("page", type=int)
    per_page = request.args.get("per_page", type=int)

    try:
        return jsonify(products_service.list_products(page=page, per_page=per_page)), 200
    except Exception:
        current_app.logger.exception("Failed to list products")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.get("/<int:product_id>")
def get_product_route(product_id: int):
    try:
        product = products_service.get_product(product_id)
        return jsonify({"product": product.to_dict()}), 200
    except StorefrontError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.post("")
@require_auth
@require_role(ROLE_ADMIN)
def create_product_route():
    """
    Create a product. Requires admin.

    Body: name, brand, price (required); description, stock, image, images,
    offer (legacy single offer, optional).
    """
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_CREATE_POLICY, partial=False)
        enforce_rules_product(patch)
        product = products_service.create_product(patch=patch, user_id=g.current_user.id)
        return jsonify({"product": product.to_dict()}), 201
    except StorefrontError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.put("/<int:product_id>")
@require_auth
@require_role(ROLE_ADMIN)
def update_product_route(product_id: int):
    """Update catalog fields. Requires admin. Stock is not writable here."""
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_UPDATE_POLICY, partial=True)
        enforce_rules_product(patch)
        product = products_service.update_product(product_id, patch)
        return jsonify({"product": product.to_dict()}), 200
    except StorefrontError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.post("/<int:product_id>/restock")
@require_auth
@require_role(ROLE_ADMIN)
def restock_product_route(product_id: int):
    """Body: {"quantity": positive int}. Requires admin."""
    payload = request.get_json(silent=True) or {}

    try:
        product = products_service.restock_product(product_id, payload.get("quantity"))
        return jsonify({"product": product.to_dict()}), 200
    except StorefrontError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to restock product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.delete("/<int:product_id>")
@require_auth
@require_role(ROLE_ADMIN)
def delete_product_route(product_id: int):
    try:
        products_service.delete_product(product_id)
        return jsonify({"ok": True}), 200
    except StorefrontError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete product")
        return jsonify({"error": "Internal server error"}), 500
