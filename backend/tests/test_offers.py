"""
Offer management tests.

Verifies:
- Create/update validation (discount range, date window)
- Apply snapshots the offer onto every product, once per offer
- Stop deactivates snapshots but keeps them on the products
- Editing the master offer leaves existing snapshots alone
- Offer routes are admin-only
"""

from datetime import datetime

import pytest

from conftest import make_product
from storefront.errors import NotFoundError, ValidationError
from storefront.models import Offer, Product, ProductAppliedOffer
from storefront.services.offers_service import apply_offer_to_all, create_offer, stop_offer, update_offer


@pytest.fixture
def catalog(db_session, admin, phone, discounted_phone):
    third = make_product(db_session, admin, name="Zen Mini", price=250.00, stock=10, code="0000000000003")
    return [phone, discounted_phone, third]


def _snapshots(session, offer_id):
    return session.query(ProductAppliedOffer).filter_by(offer_id=offer_id).all()


# =============================================================================
# VALIDATION
# =============================================================================


class TestOfferValidation:

    def test_create_defaults_inactive(self, db_session, admin):
        offer = create_offer({"name": "Monsoon", "discount_percent": 15}, user_id=admin.id)
        assert offer.active is False
        assert offer.discount_percent == 15.0

    @pytest.mark.parametrize("percent", [-1, 100.5, 250])
    def test_discount_out_of_range(self, db_session, admin, percent):
        with pytest.raises(ValidationError):
            create_offer({"name": "Bad", "discount_percent": percent}, user_id=admin.id)

    def test_inverted_window(self, db_session, admin):
        with pytest.raises(ValidationError, match="start_date"):
            create_offer({
                "name": "Backwards",
                "discount_percent": 10,
                "start_date": datetime(2026, 11, 2),
                "end_date": datetime(2026, 11, 1),
            }, user_id=admin.id)

    def test_update_checks_window_against_stored_bounds(self, db_session, admin):
        offer = create_offer({
            "name": "Week",
            "discount_percent": 10,
            "start_date": datetime(2026, 11, 1),
            "end_date": datetime(2026, 11, 7),
        }, user_id=admin.id)

        with pytest.raises(ValidationError):
            update_offer(offer.id, {"end_date": datetime(2026, 10, 30)})

    def test_missing_offer(self, db_session):
        with pytest.raises(NotFoundError):
            apply_offer_to_all(999)


# =============================================================================
# APPLY / STOP
# =============================================================================


class TestApplyOffer:

    def test_apply_snapshots_every_product(self, db_session, catalog, offer):
        modified = apply_offer_to_all(offer.id)

        assert modified == 3
        assert db_session.get(Offer, offer.id).active is True
        snapshots = _snapshots(db_session, offer.id)
        assert len(snapshots) == 3
        assert {s.product_id for s in snapshots} == {p.id for p in catalog}
        assert all(s.active and s.discount_percent == 10.0 and s.name == "Diwali 10" for s in snapshots)

    def test_apply_twice_keeps_one_snapshot(self, db_session, catalog, offer):
        apply_offer_to_all(offer.id)
        modified = apply_offer_to_all(offer.id)

        assert modified == 3
        assert len(_snapshots(db_session, offer.id)) == 3

    def test_reapply_refreshes_terms(self, db_session, catalog, offer):
        apply_offer_to_all(offer.id)
        update_offer(offer.id, {"discount_percent": 25})

        # editing the master does not reach the products
        assert {s.discount_percent for s in _snapshots(db_session, offer.id)} == {10.0}

        apply_offer_to_all(offer.id)
        db_session.expire_all()
        assert {s.discount_percent for s in _snapshots(db_session, offer.id)} == {25.0}

    def test_snapshots_stack_with_existing_offers(self, db_session, catalog, offer, discounted_phone):
        apply_offer_to_all(offer.id)
        db_session.expire_all()

        product = db_session.get(Product, discounted_phone.id)
        assert [o.name for o in product.applied_offers] == ["Festive 20", "Diwali 10"]
        # 1000 * 0.8 * 0.9
        assert product.effective_price() == 720.00

    def test_catalog_reads_reflect_offer(self, client, db_session, catalog, offer, phone):
        apply_offer_to_all(offer.id)

        resp = client.get(f"/api/products/{phone.id}")
        assert resp.status_code == 200
        assert resp.json["product"]["discounted_price"] == 900.00


class TestStopOffer:

    def test_stop_keeps_snapshots_inactive(self, db_session, catalog, offer, phone):
        apply_offer_to_all(offer.id)
        modified = stop_offer(offer.id)

        assert modified == 3
        db_session.expire_all()
        assert db_session.get(Offer, offer.id).active is False
        snapshots = _snapshots(db_session, offer.id)
        assert len(snapshots) == 3
        assert not any(s.active for s in snapshots)
        assert db_session.get(Product, phone.id).discounted_price() is None

    def test_stop_leaves_other_offers(self, db_session, catalog, offer, discounted_phone):
        apply_offer_to_all(offer.id)
        stop_offer(offer.id)
        db_session.expire_all()

        assert db_session.get(Product, discounted_phone.id).effective_price() == 800.00

    def test_stop_unapplied_offer(self, db_session, catalog, offer):
        assert stop_offer(offer.id) == 0


# =============================================================================
# HTTP
# =============================================================================


class TestOfferRoutes:

    def test_customer_forbidden(self, client, customer_headers, offer):
        resp = client.get("/api/offers", headers=customer_headers)
        assert resp.status_code == 403
        assert resp.json["error"] == "Permission denied"

        assert client.post(f"/api/offers/{offer.id}/apply", headers=customer_headers).status_code == 403

    def test_anonymous_unauthorized(self, client, db_session):
        assert client.get("/api/offers").status_code == 401

    def test_create_and_list(self, client, admin_headers):
        resp = client.post(
            "/api/offers",
            json={"name": "New Year", "discount_percent": 12.5, "start_date": "2026-12-31T00:00:00Z"},
            headers=admin_headers,
        )
        assert resp.status_code == 201
        assert resp.json["offer"]["start_date"] == "2026-12-31T00:00:00.000Z"
        assert resp.json["offer"]["active"] is False

        listing = client.get("/api/offers", headers=admin_headers)
        assert listing.status_code == 200
        assert listing.json["count"] == 1

    def test_create_rejects_unknown_field(self, client, admin_headers):
        resp = client.post("/api/offers", json={"name": "X", "discount_percent": 5, "id": 7}, headers=admin_headers)
        assert resp.status_code == 400

    def test_create_rejects_bad_percent(self, client, admin_headers):
        resp = client.post("/api/offers", json={"name": "X", "discount_percent": 101}, headers=admin_headers)
        assert resp.status_code == 400

    def test_update(self, client, admin_headers, offer):
        resp = client.put(f"/api/offers/{offer.id}", json={"name": "Diwali Mega"}, headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json["offer"]["name"] == "Diwali Mega"

    def test_apply_and_stop(self, client, admin_headers, catalog, offer):
        resp = client.post(f"/api/offers/{offer.id}/apply", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json["modified_count"] == 3

        resp = client.post(f"/api/offers/{offer.id}/stop", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json["modified_count"] == 3

    def test_apply_missing(self, client, admin_headers):
        assert client.post("/api/offers/4242/apply", headers=admin_headers).status_code == 404
