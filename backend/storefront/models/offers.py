from __future__ import annotations

from ..extensions import db
from storefront.time_utils import to_utc_z


class Offer(db.Model):
    """
    Master promotional rule.

    Products never reference this row for pricing; they carry snapshots
    (ProductAppliedOffer) taken when the offer is applied. `active` is
    server-authoritative and flipped by the apply/stop actions.
    """
    __tablename__ = "offers"
    __table_args__ = (
        db.CheckConstraint("discount_percent >= 0 AND discount_percent <= 100", name="ck_offers_discount_range"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    discount_percent = db.Column(db.Float, nullable=False)

    # Inclusive bounds, UTC-naive; NULL means unbounded
    start_date = db.Column(db.DateTime(timezone=True), nullable=True)
    end_date = db.Column(db.DateTime(timezone=True), nullable=True)

    active = db.Column(db.Boolean, nullable=False, default=False, index=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "discount_percent": self.discount_percent,
            "start_date": to_utc_z(self.start_date),
            "end_date": to_utc_z(self.end_date),
            "active": self.active,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
