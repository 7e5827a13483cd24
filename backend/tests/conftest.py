"""
Pytest fixtures for QuickPOS backend tests.

Provides test database setup, user/product fixtures, and test client.
"""

import pytest
from quickpos import create_app
from quickpos.extensions import db
from quickpos.models import Product
from quickpos.services import products_service
from quickpos.services.auth_service import create_user


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'QUICKPOS_ENV': 'testing',
        # Fast hashing for tests
        'BCRYPT_ROUNDS': 4,
    })

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


@pytest.fixture(scope='function')
def admin_user(db_session):
    """Admin account (can manage catalog and order status)."""
    return create_user(
        name="Admin",
        email="admin@quickpos.test",
        password="admin123",
        is_admin=True,
    )


@pytest.fixture(scope='function')
def staff_user(db_session):
    """Regular staff account."""
    return create_user(
        name="Thu Ngan",
        email="staff@quickpos.test",
        password="staff123",
    )


@pytest.fixture(scope='function')
def admin_headers(client, admin_user):
    return auth_headers(get_auth_token(client, "admin@quickpos.test", "admin123"))


@pytest.fixture(scope='function')
def staff_headers(client, staff_user):
    return auth_headers(get_auth_token(client, "staff@quickpos.test", "staff123"))


@pytest.fixture(scope='function')
def make_product(db_session, admin_user):
    """
    Factory for catalog products. Opening stock goes through the ledger
    exactly as POST /api/products does.
    """
    counter = {"n": 0}

    def _make(**fields) -> Product:
        counter["n"] += 1
        payload = {
            "name": f"Product {counter['n']}",
            "price": 25000,
            "cost": 18000,
            "stock": 0,
        }
        payload.update(fields)
        return products_service.create_product(payload, user_id=admin_user.id)

    return _make


@pytest.fixture(scope='function')
def product(make_product):
    """Product priced 25,000 with 10 in stock."""
    return make_product(name="Mi Hao Hao", price=25000, cost=18000, stock=10, barcode="8934563138165")


def get_auth_token(client, email: str, password: str) -> str:
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
