from __future__ import annotations

from ..extensions import db
from storefront.time_utils import to_utc_z


class OfferSnapshotMixin:
    """
    Pricing-relevant copy of an Offer at the moment it was applied.

    offer_id is a back-reference only (no foreign key): the snapshot is the
    record of truth once taken, and legacy product offers have none.
    """
    position = db.Column(db.Integer, nullable=False, default=0)
    offer_id = db.Column(db.Integer, nullable=True, index=True)
    name = db.Column(db.String(255), nullable=True)
    discount_percent = db.Column(db.Float, nullable=True)
    start_date = db.Column(db.DateTime(timezone=True), nullable=True)
    end_date = db.Column(db.DateTime(timezone=True), nullable=True)
    active = db.Column(db.Boolean, nullable=False, default=True)

    SNAPSHOT_FIELDS = ("offer_id", "name", "discount_percent", "start_date", "end_date", "active")

    def snapshot_values(self) -> dict:
        return {field: getattr(self, field) for field in self.SNAPSHOT_FIELDS}

    def to_dict(self) -> dict:
        return {
            "offer_id": self.offer_id,
            "name": self.name,
            "discount_percent": self.discount_percent,
            "start_date": to_utc_z(self.start_date),
            "end_date": to_utc_z(self.end_date),
            "active": self.active,
        }
