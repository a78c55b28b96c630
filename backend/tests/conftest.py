"""
Pytest fixtures for kedai backend tests.

Provides an in-memory application, per-test table cleanup, users with
bearer tokens, and small catalog/customer/shift fixtures.
"""

import pytest

from kedai import create_app
from kedai.extensions import db
from kedai.models import User, Product, Variant, Customer, StockMovement
from kedai.models.auth import ROLE_ADMIN, ROLE_KASIR, ROLE_BARISTA
from kedai.models.inventory import MOVEMENT_IN
from kedai.services.auth_service import hash_password
from kedai.services import shift_service
from kedai.time_utils import utcnow


PASSWORD = "password123"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'POINTS_UNIT': 10000,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='session')
def password_hash():
    """Hashed once per test run."""
    return hash_password(PASSWORD)


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


def _make_user(db_session, password_hash, name, email, role):
    user = User(name=name, email=email, password_hash=password_hash, role=role, is_active=True)
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def kasir(db_session, password_hash):
    return _make_user(db_session, password_hash, "Kasir", "kasir@kedai.test", ROLE_KASIR)


@pytest.fixture(scope='function')
def admin(db_session, password_hash):
    return _make_user(db_session, password_hash, "Admin", "admin@kedai.test", ROLE_ADMIN)


@pytest.fixture(scope='function')
def barista(db_session, password_hash):
    return _make_user(db_session, password_hash, "Barista", "barista@kedai.test", ROLE_BARISTA)


def get_auth_token(client, email: str, password: str = PASSWORD) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'email': email,
        'password': password
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def kasir_headers(client, kasir):
    return auth_headers(get_auth_token(client, kasir.email))


@pytest.fixture(scope='function')
def admin_headers(client, admin):
    return auth_headers(get_auth_token(client, admin.email))


@pytest.fixture(scope='function')
def barista_headers(client, barista):
    return auth_headers(get_auth_token(client, barista.email))


def make_variant(db_session, *, name="Kopi Susu", label="Ice - M", price=20000, cost=8000, stock=10,
                 low_stock_threshold=None):
    """Variant with its opening stock logged as an IN movement."""
    product = Product(name=name, category="Coffee", is_active=True)
    variant = Variant(
        product=product,
        label=label,
        price=price,
        cost=cost,
        stock=stock,
        low_stock_threshold=low_stock_threshold,
    )
    db_session.add(variant)
    db_session.flush()
    if stock:
        db_session.add(StockMovement(
            variant_id=variant.id,
            type=MOVEMENT_IN,
            qty=stock,
            note="Opening stock",
            created_at=utcnow(),
        ))
    db_session.commit()
    return variant


@pytest.fixture(scope='function')
def variant(db_session):
    """Kopi Susu - Ice - M: price 20000, stock 10."""
    return make_variant(db_session)


@pytest.fixture(scope='function')
def customer(db_session):
    """Customer with a 5000 deposit and no points."""
    c = Customer(name="Sari", phone="081234567890", points=0, deposit=5000)
    db_session.add(c)
    db_session.commit()
    return c


@pytest.fixture(scope='function')
def open_shift(db_session, kasir):
    return shift_service.open_shift(kasir.id, 200000)


def checkout_body(variant_id: int, qty: int = 1, **overrides) -> dict:
    body = {
        "paymentType": "CASH",
        "paid": 0,
        "items": [{"variantId": variant_id, "qty": qty}],
    }
    body.update(overrides)
    return body
