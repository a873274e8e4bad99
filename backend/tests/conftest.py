"""
Pytest fixtures for storefront backend tests.

Provides an in-memory database, accounts, a small phone catalog, and
helpers for bearer-token requests.
"""

from datetime import timedelta

import pytest
from storefront import create_app
from storefront.extensions import db
from storefront.models import Offer, Product, ProductAppliedOffer, User, ROLE_ADMIN, ROLE_USER
from storefront.services.auth_service import hash_password
from storefront.services.session_service import create_session
from storefront.time_utils import utcnow


TEST_PASSWORD = "Password123"

TEST_CONFIG = {
    'TESTING': True,
    'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
    'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    'BCRYPT_ROUNDS': 4,
    'LOG_LEVEL': 'WARNING',
}


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TEST_CONFIG)

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


def make_user(session, *, name: str, email: str, role: str = ROLE_USER) -> User:
    user = User(name=name, email=email, password_hash=hash_password(TEST_PASSWORD), role=role)
    session.add(user)
    session.commit()
    return user


@pytest.fixture(scope='function')
def customer(db_session):
    return make_user(db_session, name="Asha Rao", email="asha@example.com")


@pytest.fixture(scope='function')
def other_customer(db_session):
    return make_user(db_session, name="Vikram Shah", email="vikram@example.com")


@pytest.fixture(scope='function')
def admin(db_session):
    return make_user(db_session, name="Store Admin", email="admin@shreemobiles.in", role=ROLE_ADMIN)


def make_product(session, owner: User, *, name: str, price: float, stock: int, code: str, brand: str = "Acme",
                 offers=None) -> Product:
    product = Product(
        product_code=code,
        name=name,
        brand=brand,
        price=price,
        stock=stock,
        created_by_user_id=owner.id,
    )
    for offer in offers or []:
        product.applied_offers.append(ProductAppliedOffer(**offer))
    session.add(product)
    session.commit()
    return product


@pytest.fixture(scope='function')
def phone(db_session, admin):
    """Rs. 1000 phone, 5 in stock, no offers."""
    return make_product(db_session, admin, name="Nova 5G", price=1000.00, stock=5, code="0000000000001")


@pytest.fixture(scope='function')
def discounted_phone(db_session, admin):
    """Rs. 1000 phone carrying a live 20% snapshot."""
    now = utcnow()
    return make_product(
        db_session, admin, name="Pulse X", price=1000.00, stock=3, code="0000000000002",
        offers=[{
            "offer_id": None,
            "name": "Festive 20",
            "discount_percent": 20.0,
            "start_date": now - timedelta(days=1),
            "end_date": now + timedelta(days=1),
            "active": True,
        }],
    )


@pytest.fixture(scope='function')
def offer(db_session, admin):
    """Inactive master offer, 10% off, no date window."""
    o = Offer(name="Diwali 10", discount_percent=10.0, active=False, created_by_user_id=admin.id)
    db_session.add(o)
    db_session.commit()
    return o


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


def headers_for(user: User) -> dict:
    _, token = create_session(user)
    return auth_headers(token)


@pytest.fixture(scope='function')
def customer_headers(customer):
    return headers_for(customer)


@pytest.fixture(scope='function')
def other_headers(other_customer):
    return headers_for(other_customer)


@pytest.fixture(scope='function')
def admin_headers(admin):
    return headers_for(admin)
