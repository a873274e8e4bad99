from __future__ import annotations

from flask import current_app
from sqlalchemy import update

from ..errors import NotFoundError
from ..extensions import db
from ..models import Offer, Product, ProductAppliedOffer
from ..validation import enforce_rules_offer
from .concurrency import run_with_retry

OFFER_MUTABLE_FIELDS = ("name", "discount_percent", "start_date", "end_date", "active")


def list_offers() -> list[dict]:
    q = db.session.query(Offer).order_by(Offer.created_at.desc(), Offer.id.desc())
    return [o.to_dict() for o in q.all()]


def get_offer(offer_id: int) -> Offer:
    offer = db.session.get(Offer, offer_id)
    if offer is None:
        raise NotFoundError(f"Offer not found: {offer_id}")
    return offer


def create_offer(patch: dict, user_id: int) -> Offer:
    enforce_rules_offer(patch)
    offer = Offer(
        name=patch["name"],
        discount_percent=patch["discount_percent"],
        start_date=patch.get("start_date"),
        end_date=patch.get("end_date"),
        active=bool(patch.get("active", False)),
        created_by_user_id=user_id,
    )
    db.session.add(offer)
    db.session.commit()
    return offer


def update_offer(offer_id: int, patch: dict) -> Offer:
    """
    Edit the master record only.

    Snapshots already on products keep their old terms until the offer is
    applied again.
    """
    offer = get_offer(offer_id)
    enforce_rules_offer(patch, start=offer.start_date, end=offer.end_date)
    for key in OFFER_MUTABLE_FIELDS:
        if key in patch:
            setattr(offer, key, patch[key])
    db.session.commit()
    return offer


def _snapshot_of(offer: Offer) -> dict:
    return {
        "offer_id": offer.id,
        "name": offer.name,
        "discount_percent": offer.discount_percent,
        "start_date": offer.start_date,
        "end_date": offer.end_date,
        "active": True,
    }


def apply_offer_to_all(offer_id: int) -> int:
    """
    Activate the offer and snapshot it onto every product.

    Remove-then-add: a product never carries two snapshots of the same
    offer, and re-applying moves the snapshot to the end with fresh terms.
    Returns the number of products touched.
    """
    def _op() -> int:
        offer = get_offer(offer_id)
        offer.active = True
        snapshot = _snapshot_of(offer)

        products = db.session.query(Product).order_by(Product.id.asc()).all()
        for product in products:
            for existing in [o for o in product.applied_offers if o.offer_id == offer.id]:
                product.applied_offers.remove(existing)
            product.applied_offers.append(ProductAppliedOffer(**snapshot))

        db.session.commit()
        return len(products)

    modified = run_with_retry(_op)
    current_app.logger.info("offer %s applied to %s products", offer_id, modified)
    return modified


def stop_offer(offer_id: int) -> int:
    """
    Deactivate the offer and every snapshot of it.

    Snapshots stay on the products as history. Returns the number of
    products whose snapshot was switched off.
    """
    def _op() -> int:
        offer = get_offer(offer_id)
        offer.active = False

        affected = (
            db.session.query(ProductAppliedOffer.product_id)
            .filter(ProductAppliedOffer.offer_id == offer.id, ProductAppliedOffer.active.is_(True))
            .distinct()
            .count()
        )
        db.session.execute(
            update(ProductAppliedOffer)
            .where(ProductAppliedOffer.offer_id == offer.id)
            .values(active=False)
            .execution_options(synchronize_session=False)
        )
        db.session.commit()
        return affected

    modified = run_with_retry(_op)
    current_app.logger.info("offer %s stopped, %s products affected", offer_id, modified)
    return modified
