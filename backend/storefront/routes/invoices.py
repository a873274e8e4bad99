# Overview: Flask API routes for checkout and invoice access; parses input and returns JSON or PDF responses.

# backend/storefront/routes/invoices.py
"""
Checkout and invoice routes.

SECURITY:
- Every route requires a session
- Invoices are visible to their owner and to admins only
- Ownership is checked before a single PDF byte is produced
"""
from flask import Blueprint, Response, request, jsonify, current_app, g

from ..errors import StorefrontError
from ..models import ROLE_ADMIN
from ..services import checkout_service, invoice_service
from ..services.invoice_pdf import render_invoice_pdf
from ..decorators import require_auth, require_role

invoices_bp = Blueprint("invoices", __name__, url_prefix="/api/invoices")


@invoices_bp.post("/checkout")
@require_auth
def checkout_route():
    """
    Convert the cart into an invoice.

    Body:
    {
        "cart": [{"product_id": 1, "quantity": 2}, ...],
        "customer": {"name": "...", "email": "..."}   // optional
    }

    Prices in the cart are ignored; they are recomputed from the catalog.
    """
    payload = request.get_json(silent=True) or {}

    try:
        invoice = checkout_service.checkout(
            g.current_user,
            payload.get("cart"),
            customer=payload.get("customer"),
        )
        return jsonify({"invoice": invoice.to_dict()}), 201
    except StorefrontError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Checkout failed")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.get("")
@require_auth
def list_my_invoices_route():
    try:
        invoices = invoice_service.list_invoices_for_user(g.current_user.id)
        return jsonify({"items": [i.to_dict() for i in invoices], "count": len(invoices)}), 200
    except Exception:
        current_app.logger.exception("Failed to list invoices")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.get("/all")
@require_auth
@require_role(ROLE_ADMIN)
def list_all_invoices_route():
    try:
        invoices = invoice_service.list_all_invoices()
        return jsonify({"items": [i.to_dict() for i in invoices], "count": len(invoices)}), 200
    except Exception:
        current_app.logger.exception("Failed to list all invoices")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.get("/<int:invoice_id>")
@require_auth
def get_invoice_route(invoice_id: int):
    try:
        invoice = invoice_service.get_invoice_for(invoice_id, g.current_user)
        return jsonify({"invoice": invoice.to_dict()}), 200
    except StorefrontError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get invoice")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.get("/<int:invoice_id>/pdf")
@require_auth
def invoice_pdf_route(invoice_id: int):
    """Download the invoice as a PDF (inline)."""
    try:
        invoice = invoice_service.get_invoice_for(invoice_id, g.current_user)
        pdf = render_invoice_pdf(invoice)
    except StorefrontError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to render invoice PDF")
        return jsonify({"error": "Internal server error"}), 500

    return Response(
        pdf,
        mimetype="application/pdf",
        headers={"Content-Disposition": f'inline; filename="invoice-{invoice.invoice_number}.pdf"'},
    )
