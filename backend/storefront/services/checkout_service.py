# Overview: Cart to invoice conversion; stock reservation, price locking and invoice persistence.

"""
Storefront Checkout Invariants (authoritative)

Stages, per call: VALIDATING -> RESERVING -> PRICING -> PERSISTING -> DONE.
Any failure rejects the checkout with no effect at all.

- All-or-nothing: every stock check runs before any stock is written, and
  decrements, the invoice number and the invoice row share one database
  transaction. A rejected or aborted checkout leaves stock untouched.
- Stock is decremented with a conditional UPDATE (stock >= n) so two
  checkouts racing for the last unit cannot both pass.
- Demand is aggregated per product: two cart lines for the same phone are
  checked against stock together.
- Prices are recomputed server-side from the product's applied offers at
  one as_of for the whole cart. Client-sent prices and offers are ignored.
- Invoice lines deep-copy the offer snapshots that priced them.
- total == sum(price * quantity), summed in integer cents.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..errors import ConflictError, InsufficientStockError, NotFoundError, StorefrontError, ValidationError
from ..extensions import db
from ..models import Invoice, InvoiceItem, InvoiceItemOffer, Product, User
from .concurrency import begin_write_transaction, lock_for_update, run_with_retry
from .pricing import effective_price, to_cents, valid_offers
from .sequence_service import INVOICE_NUMBER_COUNTER, next_value
from storefront.time_utils import as_utc_naive, utcnow


VALIDATING = "VALIDATING"
RESERVING = "RESERVING"
PRICING = "PRICING"
PERSISTING = "PERSISTING"
DONE = "DONE"

# Accepted spellings of the product reference in a cart entry
PRODUCT_ID_FIELDS = ("product_id", "productId", "_id", "id")

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")


@dataclass(frozen=True)
class CartLine:
    product_id: int
    quantity: int


def normalize_quantity(raw: Any) -> int:
    """
    Positive integer quantity; never rejects.

    Integers pass through, floats truncate, strings use their leading
    integer ("3 units" -> 3). Anything else, and anything below 1, becomes 1.
    """
    value = None
    if isinstance(raw, bool):
        value = None
    elif isinstance(raw, int):
        value = raw
    elif isinstance(raw, float) and raw == raw and abs(raw) != float("inf"):
        value = int(raw)
    elif isinstance(raw, str):
        match = _LEADING_INT.match(raw)
        if match:
            value = int(match.group(1))

    if value is None or value < 1:
        return 1
    return value


def _resolve_product_id(entry: dict) -> int:
    raw = next((entry.get(k) for k in PRODUCT_ID_FIELDS if entry.get(k) not in (None, "")), None)
    if raw is None:
        raise ValidationError("Each cart item must include a product id")
    if isinstance(raw, bool):
        raise NotFoundError(f"Product not found: {raw}")
    if isinstance(raw, int):
        return raw
    if isinstance(raw, str) and raw.strip().isdigit():
        return int(raw.strip())
    raise NotFoundError(f"Product not found: {raw}")


def parse_cart(cart: Any) -> list[CartLine]:
    """VALIDATING: shape checks only, no database access."""
    if not isinstance(cart, list) or not cart:
        raise ValidationError("Cart is empty")

    lines = []
    for index, entry in enumerate(cart, start=1):
        if not isinstance(entry, dict):
            raise ValidationError(f"Cart item {index} must be an object")
        lines.append(CartLine(
            product_id=_resolve_product_id(entry),
            quantity=normalize_quantity(entry.get("quantity")),
        ))
    return lines


def aggregate_demand(lines: list[CartLine]) -> dict[int, int]:
    """Requested units per product, in first-seen cart order."""
    demand: dict[int, int] = {}
    for line in lines:
        demand[line.product_id] = demand.get(line.product_id, 0) + line.quantity
    return demand


def invoice_total(items: list[InvoiceItem]) -> float:
    cents = sum(to_cents(item.price) * item.quantity for item in items)
    return cents / 100


def format_invoice_number(seq: int, as_of: datetime) -> str:
    prefix = current_app.config.get("INVOICE_PREFIX", "INV")
    return f"{prefix}-{as_of:%Y%m%d}-{seq:06d}"


def _reserve(lines: list[CartLine], demand: dict[int, int]) -> dict[int, Product]:
    """RESERVING: lock the rows and check stock for the whole cart."""
    query = db.session.query(Product).filter(Product.id.in_(list(demand)))
    products = {p.id: p for p in lock_for_update(query).all()}

    for line in lines:
        if line.product_id not in products:
            raise NotFoundError(f"Product not found: {line.product_id}")

    for product_id, requested in demand.items():
        product = products[product_id]
        if product.stock < requested:
            raise InsufficientStockError(
                product_id=product.id,
                product_name=product.name,
                requested=requested,
                available=product.stock,
            )
    return products


def _price_line(line: CartLine, product: Product, as_of: datetime) -> InvoiceItem:
    """PRICING: lock the unit price and copy the offers that produced it."""
    base = product.price
    offers = valid_offers(product.applied_offers, as_of)
    unit_price = min(effective_price(base, offers, as_of), base)

    return InvoiceItem(
        product_id=product.id,
        name=product.name,
        price=unit_price,
        original_price=base,
        quantity=line.quantity,
        applied_offers=[InvoiceItemOffer(**offer.snapshot_values()) for offer in offers],
    )


def _decrement(products: dict[int, Product], demand: dict[int, int]) -> None:
    """PERSISTING: read-check-write as one statement per product."""
    for product_id, requested in demand.items():
        result = db.session.execute(
            update(Product)
            .where(Product.id == product_id, Product.stock >= requested)
            .values(stock=Product.stock - requested, version_id=Product.version_id + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            available = db.session.query(Product.stock).filter_by(id=product_id).scalar()
            raise InsufficientStockError(
                product_id=product_id,
                product_name=products[product_id].name,
                requested=requested,
                available=available or 0,
            )


def checkout(
    user: User,
    cart: Any,
    customer: dict | None = None,
    as_of: datetime | None = None,
) -> Invoice:
    """
    Convert a cart into one persisted, immutable Invoice.

    Raises:
        ValidationError: empty or malformed cart
        NotFoundError: unknown product
        InsufficientStockError: not enough stock for a product (all lines rejected)
        ConflictError: invoice number collision
    """
    stage = VALIDATING
    customer = customer if isinstance(customer, dict) else {}
    as_of = as_utc_naive(as_of or utcnow())

    try:
        lines = parse_cart(cart)
    except StorefrontError as exc:
        current_app.logger.warning("checkout rejected at %s for user %s: %s", stage, user.id, exc.message)
        raise
    demand = aggregate_demand(lines)

    customer_name = str(customer.get("name") or "").strip() or user.name
    customer_email = str(customer.get("email") or "").strip() or user.email

    def _op() -> Invoice:
        nonlocal stage
        try:
            begin_write_transaction()

            stage = RESERVING
            products = _reserve(lines, demand)

            stage = PRICING
            items = [_price_line(line, products[line.product_id], as_of) for line in lines]

            stage = PERSISTING
            _decrement(products, demand)

            invoice = Invoice(
                invoice_number=format_invoice_number(next_value(INVOICE_NUMBER_COUNTER), as_of),
                user_id=user.id,
                items=items,
                total=invoice_total(items),
                customer_name=customer_name,
                customer_email=customer_email,
                status="completed",
                created_at=as_of,
            )
            db.session.add(invoice)
            try:
                db.session.flush()
            except IntegrityError:
                raise ConflictError("Invoice number already exists, please retry checkout")

            db.session.commit()
            stage = DONE
            return invoice
        except StorefrontError:
            db.session.rollback()
            raise

    try:
        invoice = run_with_retry(_op)
    except StorefrontError as exc:
        current_app.logger.warning("checkout rejected at %s for user %s: %s", stage, user.id, exc.message)
        raise

    current_app.logger.info(
        "checkout completed: %s for user %s, %d lines, total %.2f",
        invoice.invoice_number, user.id, len(invoice.items), invoice.total,
    )
    return invoice
