"""
Checkout engine tests.

Verifies:
- Successful checkout decrements stock and freezes prices and offers
- Any failing line rejects the whole cart with no stock change
- Quantities for the same product are checked together
- Client-sent prices are ignored
- Invoices are immutable and numbered sequentially
"""

import re
from datetime import datetime, timezone

import pytest

from conftest import make_product
from storefront.errors import (
    InsufficientStockError,
    InvoiceImmutableError,
    NotFoundError,
    ValidationError,
)
from storefront.models import Counter, Invoice, InvoiceItem, Product
from storefront.services.checkout_service import (
    aggregate_demand,
    checkout,
    normalize_quantity,
    parse_cart,
)
from storefront.services.offers_service import stop_offer
from storefront.time_utils import utcnow


@pytest.fixture
def scarce_phone(db_session, admin):
    """Only one unit left."""
    return make_product(db_session, admin, name="Last One", price=500.00, stock=1, code="0000000000009")


# =============================================================================
# CART PARSING
# =============================================================================


class TestCartParsing:

    @pytest.mark.parametrize(
        "raw,expected",
        [
            (3, 3),
            (2.9, 2),
            ("4", 4),
            (" 5 units", 5),
            (None, 1),
            ("abc", 1),
            (0, 1),
            (-2, 1),
            (True, 1),
            (float("nan"), 1),
            ([2], 1),
        ],
    )
    def test_normalize_quantity(self, raw, expected):
        assert normalize_quantity(raw) == expected

    @pytest.mark.parametrize("cart", [None, [], {}, "cart"])
    def test_empty_cart(self, cart):
        with pytest.raises(ValidationError, match="Cart is empty"):
            parse_cart(cart)

    def test_product_id_aliases(self):
        lines = parse_cart([
            {"product_id": 1},
            {"productId": "2", "quantity": 2},
            {"_id": 3},
            {"id": 4},
        ])
        assert [(line.product_id, line.quantity) for line in lines] == [(1, 1), (2, 2), (3, 1), (4, 1)]

    def test_missing_product_id(self):
        with pytest.raises(ValidationError):
            parse_cart([{"quantity": 1}])

    def test_non_numeric_product_id_is_not_found(self):
        with pytest.raises(NotFoundError):
            parse_cart([{"product_id": "507f1f77bcf86cd799439011"}])

    def test_non_object_line(self):
        with pytest.raises(ValidationError):
            parse_cart([1, 2])

    def test_aggregate_demand(self):
        lines = parse_cart([{"id": 7, "quantity": 2}, {"id": 8}, {"id": 7, "quantity": 3}])
        assert aggregate_demand(lines) == {7: 5, 8: 1}


# =============================================================================
# SUCCESSFUL CHECKOUT
# =============================================================================


class TestCheckoutSuccess:

    def test_prices_stock_and_total(self, db_session, customer, phone, discounted_phone):
        invoice = checkout(customer, [
            {"product_id": phone.id, "quantity": 2},
            {"product_id": discounted_phone.id, "quantity": 1},
        ])

        assert invoice.total == 2800.00
        assert invoice.status == "completed"
        assert invoice.user_id == customer.id
        assert invoice.customer_name == "Asha Rao"
        assert invoice.customer_email == "asha@example.com"

        first, second = invoice.items
        assert (first.name, first.price, first.original_price, first.quantity) == ("Nova 5G", 1000.00, 1000.00, 2)
        assert first.applied_offers == []
        assert (second.name, second.price, second.original_price, second.quantity) == ("Pulse X", 800.00, 1000.00, 1)
        assert [o.name for o in second.applied_offers] == ["Festive 20"]
        assert second.applied_offers[0].discount_percent == 20.0

        assert db_session.get(Product, phone.id).stock == 3
        assert db_session.get(Product, discounted_phone.id).stock == 2

    def test_total_equals_sum_of_lines(self, db_session, customer, admin):
        product = make_product(db_session, admin, name="Odd Price", price=333.33, stock=10, code="0000000000010")
        invoice = checkout(customer, [{"id": product.id, "quantity": 3}])
        assert invoice.total == 999.99

    def test_customer_override(self, db_session, customer, phone):
        invoice = checkout(customer, [{"id": phone.id}], customer={"name": "Gift For Mom", "email": "mom@example.com"})
        assert invoice.customer_name == "Gift For Mom"
        assert invoice.customer_email == "mom@example.com"

    def test_client_price_ignored(self, db_session, customer, phone):
        invoice = checkout(customer, [{
            "product_id": phone.id,
            "quantity": 1,
            "price": 1,
            "originalPrice": 1,
            "appliedOffers": [{"active": True, "discount_percent": 99}],
        }])
        assert invoice.items[0].price == 1000.00
        assert invoice.items[0].applied_offers == []
        assert invoice.total == 1000.00

    def test_invoice_numbers_sequential(self, db_session, customer, phone):
        as_of = utcnow()
        first = checkout(customer, [{"id": phone.id}], as_of=as_of)
        second = checkout(customer, [{"id": phone.id}], as_of=as_of)

        day = as_of.strftime("%Y%m%d")
        assert first.invoice_number == f"INV-{day}-000001"
        assert second.invoice_number == f"INV-{day}-000002"
        assert re.fullmatch(r"INV-\d{8}-\d{6}", first.invoice_number)
        assert db_session.query(Counter).filter_by(name="invoice_number").one().value == 2

    def test_created_at_is_as_of(self, db_session, customer, phone):
        as_of = utcnow().replace(microsecond=0)
        invoice = checkout(customer, [{"id": phone.id}], as_of=as_of)
        assert invoice.created_at == as_of

    def test_aware_as_of_prices_and_stamps_in_utc(self, db_session, customer, discounted_phone):
        as_of = datetime.now(timezone.utc).replace(microsecond=0)
        invoice = checkout(customer, [{"product_id": discounted_phone.id, "quantity": 1}], as_of=as_of)

        naive = as_of.replace(tzinfo=None)
        assert invoice.items[0].price == 800.00
        assert invoice.created_at == naive
        assert invoice.invoice_number.startswith(f"INV-{naive:%Y%m%d}-")


# =============================================================================
# REJECTION: ALL OR NOTHING
# =============================================================================


class TestCheckoutRejection:

    def test_insufficient_stock_leaves_stock(self, db_session, customer, scarce_phone):
        with pytest.raises(InsufficientStockError) as exc:
            checkout(customer, [{"product_id": scarce_phone.id, "quantity": 2}])

        assert exc.value.available == 1
        assert exc.value.requested == 2
        assert "Last One" in exc.value.message
        assert "Available: 1" in exc.value.message
        assert db_session.get(Product, scarce_phone.id).stock == 1
        assert db_session.query(Invoice).count() == 0

    def test_earlier_lines_keep_their_stock(self, db_session, customer, phone, scarce_phone):
        with pytest.raises(InsufficientStockError):
            checkout(customer, [
                {"product_id": phone.id, "quantity": 2},
                {"product_id": scarce_phone.id, "quantity": 5},
            ])

        assert db_session.get(Product, phone.id).stock == 5
        assert db_session.get(Product, scarce_phone.id).stock == 1
        assert db_session.query(Invoice).count() == 0
        assert db_session.query(InvoiceItem).count() == 0

    def test_duplicate_lines_are_aggregated(self, db_session, customer, discounted_phone):
        # 2 + 2 > 3 even though each line alone fits
        with pytest.raises(InsufficientStockError) as exc:
            checkout(customer, [
                {"product_id": discounted_phone.id, "quantity": 2},
                {"product_id": discounted_phone.id, "quantity": 2},
            ])

        assert exc.value.requested == 4
        assert exc.value.available == 3
        assert db_session.get(Product, discounted_phone.id).stock == 3

    def test_unknown_product(self, db_session, customer, phone):
        with pytest.raises(NotFoundError):
            checkout(customer, [{"id": phone.id}, {"id": 999999}])
        assert db_session.get(Product, phone.id).stock == 5

    def test_rejection_does_not_consume_invoice_number(self, db_session, customer, phone, scarce_phone):
        with pytest.raises(InsufficientStockError):
            checkout(customer, [{"id": scarce_phone.id, "quantity": 3}])

        invoice = checkout(customer, [{"id": phone.id}])
        assert invoice.invoice_number.endswith("-000001")


# =============================================================================
# SNAPSHOTS AND IMMUTABILITY
# =============================================================================


class TestInvoiceSnapshots:

    def test_later_catalog_changes_do_not_touch_invoice(self, db_session, customer, discounted_phone, offer):
        invoice = checkout(customer, [{"id": discounted_phone.id}])
        invoice_id = invoice.id

        product = db_session.get(Product, discounted_phone.id)
        product.price = 2000.00
        product.applied_offers[0].discount_percent = 50.0
        db_session.commit()
        stop_offer(offer.id)

        db_session.expire_all()
        item = db_session.get(Invoice, invoice_id).items[0]
        assert item.price == 800.00
        assert item.original_price == 1000.00
        assert item.applied_offers[0].discount_percent == 20.0
        assert item.applied_offers[0].active is True

    def test_invoice_update_rejected(self, db_session, customer, phone):
        invoice = checkout(customer, [{"id": phone.id}])

        invoice.total = 1.00
        with pytest.raises(InvoiceImmutableError):
            db_session.commit()
        db_session.rollback()

        assert db_session.get(Invoice, invoice.id).total == 1000.00

    def test_invoice_item_update_rejected(self, db_session, customer, phone):
        invoice = checkout(customer, [{"id": phone.id}])

        invoice.items[0].price = 1.00
        with pytest.raises(InvoiceImmutableError):
            db_session.commit()
        db_session.rollback()

    def test_invoice_delete_rejected(self, db_session, customer, phone):
        invoice = checkout(customer, [{"id": phone.id}])

        db_session.delete(invoice)
        with pytest.raises(InvoiceImmutableError):
            db_session.commit()
        db_session.rollback()

        assert db_session.query(Invoice).count() == 1


# =============================================================================
# HTTP
# =============================================================================


class TestCheckoutRoute:

    def test_requires_auth(self, client, db_session):
        resp = client.post("/api/invoices/checkout", json={"cart": [{"id": 1}]})
        assert resp.status_code == 401

    def test_created(self, client, customer_headers, phone):
        resp = client.post(
            "/api/invoices/checkout",
            json={"cart": [{"productId": phone.id, "quantity": 2, "price": 5}], "customer": {"name": "Asha"}},
            headers=customer_headers,
        )
        assert resp.status_code == 201
        invoice = resp.json["invoice"]
        assert invoice["total"] == 2000.00
        assert invoice["customer_name"] == "Asha"
        assert invoice["items"][0]["price"] == 1000.00
        assert invoice["created_at"].endswith("Z")

    def test_empty_cart(self, client, customer_headers):
        resp = client.post("/api/invoices/checkout", json={"cart": []}, headers=customer_headers)
        assert resp.status_code == 400
        assert resp.json["error"] == "Cart is empty"

    def test_insufficient_stock_payload(self, client, customer_headers, phone):
        resp = client.post(
            "/api/invoices/checkout",
            json={"cart": [{"id": phone.id, "quantity": 6}]},
            headers=customer_headers,
        )
        assert resp.status_code == 400
        assert resp.json["error"] == "Insufficient stock for Nova 5G. Available: 5"
        assert resp.json["details"]["available"] == 5
        assert resp.json["details"]["product_id"] == phone.id

    def test_unknown_product(self, client, customer_headers, db_session):
        resp = client.post("/api/invoices/checkout", json={"cart": [{"id": 424242}]}, headers=customer_headers)
        assert resp.status_code == 404
