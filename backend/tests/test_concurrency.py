"""
Concurrent checkout tests.

Runs real threads against a temporary SQLite file (an in-memory database
shares one connection, which would hide the race).

Verifies:
- Two checkouts racing for the last unit: exactly one wins, stock ends at 0
- Many concurrent checkouts never oversell
- Invoice numbers stay unique under contention
"""

import threading

import pytest

from storefront import create_app
from storefront.errors import InsufficientStockError
from storefront.extensions import db
from storefront.models import Invoice, Product, User
from storefront.services.checkout_service import checkout
from storefront.services.concurrency import begin_write_transaction, run_with_retry
from storefront.services.sequence_service import next_value


@pytest.fixture
def file_app(tmp_path):
    """App bound to its own SQLite file so each thread gets its own connection."""
    db_path = tmp_path / "concurrency.sqlite3"
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{db_path}",
        'SQLALCHEMY_ENGINE_OPTIONS': {'connect_args': {'timeout': 30, 'check_same_thread': False}},
        'BCRYPT_ROUNDS': 4,
        'LOG_LEVEL': 'ERROR',
    })
    with app.app_context():
        db.create_all()

    yield app

    with app.app_context():
        db.drop_all()
        db.engine.dispose()


def _seed(app, *, stock: int, buyers: int) -> tuple[int, list[int]]:
    with app.app_context():
        admin = User(name="Admin", email="admin@example.com", password_hash="x", role="admin")
        db.session.add(admin)
        db.session.flush()

        product = Product(
            product_code="0000000000001",
            name="Limited Edition",
            brand="Acme",
            price=49999.00,
            stock=stock,
            created_by_user_id=admin.id,
        )
        users = [User(name=f"Buyer {i}", email=f"buyer{i}@example.com", password_hash="x") for i in range(buyers)]
        db.session.add(product)
        db.session.add_all(users)
        db.session.commit()
        return product.id, [u.id for u in users]


def _race(app, product_id: int, user_ids: list[int], quantity: int = 1):
    """Start one checkout per user at the same moment; collect outcomes."""
    barrier = threading.Barrier(len(user_ids))
    outcomes = []
    lock = threading.Lock()

    def worker(user_id):
        with app.app_context():
            user = db.session.get(User, user_id)
            barrier.wait()
            try:
                invoice = checkout(user, [{"product_id": product_id, "quantity": quantity}])
                result = ("ok", invoice.invoice_number)
            except InsufficientStockError as e:
                result = ("insufficient", e.available)
            except Exception as e:  # surfaced by the assertions below
                result = ("error", repr(e))
            finally:
                db.session.remove()
            with lock:
                outcomes.append(result)

    threads = [threading.Thread(target=worker, args=(uid,)) for uid in user_ids]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=60)
    return outcomes


def _stock(app, product_id: int) -> int:
    with app.app_context():
        return db.session.get(Product, product_id).stock


def test_last_unit_race(file_app):
    product_id, buyers = _seed(file_app, stock=1, buyers=2)

    outcomes = _race(file_app, product_id, buyers)

    kinds = sorted(kind for kind, _ in outcomes)
    assert kinds == ["insufficient", "ok"], outcomes
    assert [value for kind, value in outcomes if kind == "insufficient"] == [0]
    assert _stock(file_app, product_id) == 0

    with file_app.app_context():
        assert db.session.query(Invoice).count() == 1


def test_no_oversell_under_load(file_app):
    product_id, buyers = _seed(file_app, stock=3, buyers=8)

    outcomes = _race(file_app, product_id, buyers)

    ok = [value for kind, value in outcomes if kind == "ok"]
    assert not [o for o in outcomes if o[0] == "error"], outcomes
    assert len(ok) == 3
    assert len(set(ok)) == 3
    assert _stock(file_app, product_id) == 0

    with file_app.app_context():
        assert db.session.query(Invoice).count() == 3


def test_counter_is_atomic(file_app):
    results = []
    lock = threading.Lock()

    def worker():
        with file_app.app_context():
            try:
                for _ in range(5):
                    def _op():
                        begin_write_transaction()
                        value = next_value("test_counter")
                        db.session.commit()
                        return value
                    value = run_with_retry(_op)
                    with lock:
                        results.append(value)
            finally:
                db.session.remove()

    threads = [threading.Thread(target=worker) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=60)

    assert sorted(results) == list(range(1, 21))
