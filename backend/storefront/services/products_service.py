# backend/storefront/services/products_service.py
"""
Catalog Service

- Product codes come from the counter table (atomic increment-and-read).
- Stock is never written by create/update patches after creation; restock
  is an atomic increment and checkout is the only decrement.
- The legacy single `offer` payload is normalised here, at write time, into
  one ProductAppliedOffer without an offer_id. Read paths only ever see
  applied_offers.
"""
from __future__ import annotations

from typing import Any

from flask import current_app
from sqlalchemy import update
from sqlalchemy.orm.exc import StaleDataError

from ..config import PRODUCT_CODE_WIDTH
from ..errors import ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Product, ProductAppliedOffer
from ..validation import validate_discount_percent
from .concurrency import run_with_retry
from .sequence_service import PRODUCT_CODE_COUNTER, next_value
from storefront.time_utils import coerce_datetime

PRODUCT_MUTABLE_FIELDS = {"name", "brand", "price", "description", "image", "images"}


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(p, k, v)


def format_product_code(seq: int) -> str:
    return str(seq).zfill(PRODUCT_CODE_WIDTH)


def list_products(page: int | None = None, per_page: int | None = None) -> dict:
    """
    Catalog listing with optional pagination.

    Returns dict with 'items', 'count', and pagination metadata if paginated.
    """
    base_query = db.session.query(Product).order_by(Product.brand.asc(), Product.name.asc(), Product.id.asc())

    if page is None:
        products = base_query.all()
        return {
            "items": [p.to_dict() for p in products],
            "count": len(products),
        }

    per_page = max(1, min(per_page or 20, 100))
    page = max(page, 1)

    total = base_query.count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1

    products = base_query.offset((page - 1) * per_page).limit(per_page).all()

    return {
        "items": [p.to_dict() for p in products],
        "count": len(products),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


def get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError(f"Product not found: {product_id}")
    return product


def normalize_legacy_offer(raw: Any) -> dict | None:
    """
    Validate a legacy `offer` payload and return snapshot values.

    Accepts {"name", "discount_percent" | "discountPercent", "start_date" |
    "startDate", "end_date" | "endDate", "active"}. A falsy payload means
    "no legacy offer".
    """
    if not raw:
        return None
    if not isinstance(raw, dict):
        raise ValidationError("offer must be an object")

    percent = raw.get("discount_percent", raw.get("discountPercent"))
    if percent is None:
        raise ValidationError("offer discount_percent is required")
    try:
        percent = validate_discount_percent(percent, key="offer discount_percent")
    except ValidationError:
        raise ValidationError("Invalid offer discount_percent")

    bounds = {}
    for key, alt in (("start_date", "startDate"), ("end_date", "endDate")):
        value = raw.get(key, raw.get(alt))
        if value is None or value == "":
            bounds[key] = None
            continue
        parsed = coerce_datetime(value)
        if parsed is None:
            raise ValidationError(f"offer {key} must be an ISO-8601 datetime")
        bounds[key] = parsed

    if bounds["start_date"] and bounds["end_date"] and bounds["start_date"] > bounds["end_date"]:
        raise ValidationError("offer start_date must be on or before end_date")

    active = raw.get("active", True)
    if not isinstance(active, bool):
        raise ValidationError("offer active must be true or false")

    return {
        "offer_id": None,
        "name": str(raw.get("name") or "Offer").strip(),
        "discount_percent": percent,
        "start_date": bounds["start_date"],
        "end_date": bounds["end_date"],
        "active": active,
    }


def _replace_legacy_offer(product: Product, snapshot: dict | None) -> None:
    for existing in [o for o in product.applied_offers if o.offer_id is None]:
        product.applied_offers.remove(existing)
    if snapshot is not None:
        product.applied_offers.append(ProductAppliedOffer(**snapshot))


def create_product(*, patch: dict, user_id: int) -> Product:
    """
    Create product using a validated patch dict.

    The product code is allocated in the same transaction as the insert.
    """
    legacy = normalize_legacy_offer(patch.get("offer"))

    def _op() -> Product:
        product = Product(
            product_code=format_product_code(next_value(PRODUCT_CODE_COUNTER)),
            stock=patch.get("stock") or 0,
            created_by_user_id=user_id,
        )
        apply_product_patch(product, patch)
        _replace_legacy_offer(product, legacy)
        db.session.add(product)
        db.session.commit()
        return product

    product = run_with_retry(_op)
    current_app.logger.info("product created: %s (%s)", product.product_code, product.name)
    return product


def update_product(product_id: int, patch: dict) -> Product:
    product = get_product(product_id)

    if "stock" in patch:
        raise ValidationError("stock cannot be set directly; use restock")

    legacy = normalize_legacy_offer(patch["offer"]) if "offer" in patch else None

    apply_product_patch(product, patch)
    if "offer" in patch:
        _replace_legacy_offer(product, legacy)

    try:
        db.session.commit()
    except StaleDataError:
        db.session.rollback()
        raise ConflictError("Product was modified concurrently, please retry")
    return product


def restock_product(product_id: int, quantity: Any) -> Product:
    """Atomically increase stock by a positive integer quantity."""
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise ValidationError("quantity must be a positive integer")

    def _op() -> Product:
        result = db.session.execute(
            update(Product)
            .where(Product.id == product_id)
            .values(stock=Product.stock + quantity, version_id=Product.version_id + 1)
            .execution_options(synchronize_session=False)
        )
        if not result.rowcount:
            db.session.rollback()
            raise NotFoundError(f"Product not found: {product_id}")
        db.session.commit()
        return get_product(product_id)

    product = run_with_retry(_op)
    current_app.logger.info("product %s restocked by %s, stock now %s", product.product_code, quantity, product.stock)
    return product


def delete_product(product_id: int) -> None:
    """Remove a catalog entry. Invoice lines keep their own snapshots."""
    product = get_product(product_id)
    db.session.delete(product)
    db.session.commit()

