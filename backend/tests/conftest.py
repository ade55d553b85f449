"""
Pytest fixtures for queue backend tests.

Provides an in-memory database, a restaurant shop with products, staff
users per role, and helpers for authenticated requests.
"""

import pytest
from queuepos import create_app
from queuepos.extensions import db
from queuepos.services import shop_service
from queuepos.services.auth_service import create_user

PASSWORD = "Password123"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
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
def shop(db_session):
    """Restaurant with queue tokens enabled."""
    return shop_service.create_shop(
        "Dhaka Bites",
        code="DB",
        business_type="Restaurant",
        queue_token_prefix="db",
        timezone="Asia/Dhaka",
    )


@pytest.fixture(scope='function')
def other_shop(db_session):
    return shop_service.create_shop("Other Shop", code="OTHER", business_type="Grocery")


@pytest.fixture(scope='function')
def tea(shop):
    """Stock-tracked product with 5 on hand."""
    return shop_service.create_product(
        shop.id, sku="TEA", name="Milk Tea", price_cents=2500, track_stock=True, stock_qty=5
    )


@pytest.fixture(scope='function')
def burger(shop):
    """Made to order, stock not tracked."""
    return shop_service.create_product(shop.id, sku="BURGER", name="Beef Burger", price_cents=15000)


@pytest.fixture(scope='function')
def cashier(shop):
    return create_user("cashier", PASSWORD, shop_id=shop.id, role="cashier")


@pytest.fixture(scope='function')
def kitchen(shop):
    return create_user("kitchen", PASSWORD, shop_id=shop.id, role="kitchen")


@pytest.fixture(scope='function')
def owner(shop):
    return create_user("owner", PASSWORD, shop_id=shop.id, role="owner")


@pytest.fixture(scope='function')
def outsider(other_shop):
    """Owner of a different shop."""
    return create_user("outsider", PASSWORD, shop_id=other_shop.id, role="owner")


def get_auth_token(client, username: str, password: str = PASSWORD) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'username': username,
        'password': password
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def cashier_headers(client, cashier):
    return auth_headers(get_auth_token(client, "cashier"))


@pytest.fixture(scope='function')
def kitchen_headers(client, kitchen):
    return auth_headers(get_auth_token(client, "kitchen"))


@pytest.fixture(scope='function')
def owner_headers(client, owner):
    return auth_headers(get_auth_token(client, "owner"))


@pytest.fixture(scope='function')
def outsider_headers(client, outsider):
    return auth_headers(get_auth_token(client, "outsider"))
