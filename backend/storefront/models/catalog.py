from __future__ import annotations

from datetime import datetime

from sqlalchemy.ext.orderinglist import ordering_list

from ..extensions import db
from .snapshots import OfferSnapshotMixin
from storefront.time_utils import to_utc_z
from storefront.services.pricing import discounted_price, effective_price


class Product(db.Model):
    """
    Catalog entry.

    STOCK: never negative (CHECK constraint). Decremented only by checkout
    with a conditional UPDATE, increased only by restock.

    PRICING: `price` is the base price. The price a customer pays is derived
    on read from `applied_offers` and is never stored.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("stock >= 0", name="ck_products_stock_non_negative"),
        db.CheckConstraint("price >= 0", name="ck_products_price_non_negative"),
        db.Index("ix_products_brand_name", "brand", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Sequential display code, e.g. "0000000000042"
    product_code = db.Column(db.String(32), nullable=False, unique=True)

    name = db.Column(db.String(255), nullable=False)
    brand = db.Column(db.String(120), nullable=False)
    description = db.Column(db.Text, nullable=True)

    price = db.Column(db.Numeric(12, 2, asdecimal=False), nullable=False)
    stock = db.Column(db.Integer, nullable=False, default=0)

    image = db.Column(db.String(512), nullable=True)
    images = db.Column(db.JSON, nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    version_id = db.Column(db.Integer, nullable=False, default=1)

    applied_offers = db.relationship(
        "ProductAppliedOffer",
        order_by="ProductAppliedOffer.position",
        collection_class=ordering_list("position"),
        cascade="all, delete-orphan",
        lazy="selectin",
        back_populates="product",
    )
    created_by = db.relationship("User")
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} code={self.product_code!r} name={self.name!r} stock={self.stock}>"

    def effective_price(self, as_of: datetime | None = None) -> float:
        return effective_price(self.price, self.applied_offers, as_of)

    def discounted_price(self, as_of: datetime | None = None) -> float | None:
        return discounted_price(self.price, self.applied_offers, as_of)

    def to_dict(self, as_of: datetime | None = None) -> dict:
        return {
            "id": self.id,
            "product_code": self.product_code,
            "name": self.name,
            "brand": self.brand,
            "description": self.description,
            "price": self.price,
            "stock": self.stock,
            "image": self.image,
            "images": list(self.images or []),
            "applied_offers": [o.to_dict() for o in self.applied_offers],
            "discounted_price": self.discounted_price(as_of),
            "effective_price": self.effective_price(as_of),
            "created_by_user_id": self.created_by_user_id,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class ProductAppliedOffer(OfferSnapshotMixin, db.Model):
    """Offer snapshot owned by a product. Insertion order is application order."""
    __tablename__ = "product_applied_offers"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)

    product = db.relationship("Product", back_populates="applied_offers")
