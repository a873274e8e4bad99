from __future__ import annotations

from sqlalchemy import event
from sqlalchemy.ext.orderinglist import ordering_list

from ..extensions import db
from ..errors import InvoiceImmutableError
from .snapshots import OfferSnapshotMixin
from storefront.time_utils import to_utc_z


INVOICE_STATUSES = ("pending", "completed", "cancelled")


class Invoice(db.Model):
    """
    Financial record of a completed checkout.

    IMMUTABLE: rows here, in invoice_items and in invoice_item_offers are
    written once by the checkout engine. ORM hooks below reject updates and
    deletes. `total` is tax-inclusive and equals the sum of line totals at
    creation time.

    pending/cancelled are reserved; nothing transitions an invoice today.
    """
    __tablename__ = "invoices"
    __table_args__ = (
        db.CheckConstraint("total >= 0", name="ck_invoices_total_non_negative"),
        db.CheckConstraint("status IN ('pending', 'completed', 'cancelled')", name="ck_invoices_status"),
        db.Index("ix_invoices_user_created", "user_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable and sortable, e.g. "INV-20261019-000042"
    invoice_number = db.Column(db.String(64), nullable=False, unique=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    total = db.Column(db.Numeric(12, 2, asdecimal=False), nullable=False)

    customer_name = db.Column(db.String(255), nullable=True)
    customer_email = db.Column(db.String(255), nullable=True)

    status = db.Column(db.String(16), nullable=False, default="completed", index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    items = db.relationship(
        "InvoiceItem",
        order_by="InvoiceItem.position",
        collection_class=ordering_list("position"),
        cascade="all, delete-orphan",
        lazy="selectin",
        back_populates="invoice",
    )
    user = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "invoice_number": self.invoice_number,
            "user_id": self.user_id,
            "items": [item.to_dict() for item in self.items],
            "total": self.total,
            "customer_name": self.customer_name,
            "customer_email": self.customer_email,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
        }


class InvoiceItem(db.Model):
    """
    Line item with prices frozen at checkout.

    product_id is a weak reference: the product may later change or be
    deleted, the line keeps its own name and prices.
    """
    __tablename__ = "invoice_items"
    __table_args__ = (
        db.CheckConstraint("quantity >= 1", name="ck_invoice_items_quantity_positive"),
        db.CheckConstraint("price <= original_price", name="ck_invoice_items_price_le_original"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id"), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False, default=0)

    product_id = db.Column(db.Integer, nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)

    # Effective unit price charged, and base unit price before offers
    price = db.Column(db.Numeric(12, 2, asdecimal=False), nullable=False)
    original_price = db.Column(db.Numeric(12, 2, asdecimal=False), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)

    invoice = db.relationship("Invoice", back_populates="items")
    applied_offers = db.relationship(
        "InvoiceItemOffer",
        order_by="InvoiceItemOffer.position",
        collection_class=ordering_list("position"),
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "name": self.name,
            "price": self.price,
            "original_price": self.original_price,
            "quantity": self.quantity,
            "applied_offers": [o.to_dict() for o in self.applied_offers],
        }


class InvoiceItemOffer(OfferSnapshotMixin, db.Model):
    """Deep copy of a product's offer snapshot, owned by the invoice line."""
    __tablename__ = "invoice_item_offers"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    invoice_item_id = db.Column(db.Integer, db.ForeignKey("invoice_items.id"), nullable=False, index=True)


def _reject_update(mapper, connection, target):
    if not db.session.is_modified(target, include_collections=False):
        return
    raise InvoiceImmutableError(f"{type(target).__name__} records are immutable")


def _reject_delete(mapper, connection, target):
    raise InvoiceImmutableError(f"{type(target).__name__} records cannot be deleted")


for _model in (Invoice, InvoiceItem, InvoiceItemOffer):
    event.listen(_model, "before_update", _reject_update)
    event.listen(_model, "before_delete", _reject_delete)
