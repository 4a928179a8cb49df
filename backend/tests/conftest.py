"""
Pytest fixtures for possync backend tests.

Provides an in-memory test database, shop/catalog/stock fixtures, seller
accounts with bearer tokens, and a test client.
"""

from decimal import Decimal

import pytest

from possync import create_app
from possync.extensions import db
from possync.models import Product, Seller, Shop, StockRow
from possync.models.auth import ROLE_ADMIN, ROLE_SELLER
from possync.services import session_service
from possync.services.sale_service import Actor
from possync.time_utils import utcnow
from possync.validation import parse_sale_event


TEST_CONFIG = {
    'TESTING': True,
    'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
    'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    'SALE_RETRY_ATTEMPTS': 3,
    'SYNC_MAX_BATCH_SIZE': 10,
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


@pytest.fixture(scope='function')
def shop(db_session):
    """The shop most tests sell at."""
    shop = Shop(name="Shop A", is_active=True)
    db_session.add(shop)
    db_session.commit()
    return shop


@pytest.fixture(scope='function')
def other_shop(db_session):
    shop = Shop(name="Shop B", is_active=True)
    db_session.add(shop)
    db_session.commit()
    return shop


@pytest.fixture(scope='function')
def product(db_session):
    """Price 1000.00, cost 600.00, 10% tax, 100 units in the central pool."""
    product = Product(
        name="Rice 25kg",
        unit="bag",
        sell_price=Decimal("1000.00"),
        cost_price=Decimal("600.00"),
        tax_rate=Decimal("10.00"),
        total_stock=100,
        active=True,
    )
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def second_product(db_session):
    product = Product(
        name="Cooking Oil 1L",
        unit="bottle",
        sell_price=Decimal("250.00"),
        cost_price=Decimal("200.00"),
        tax_rate=Decimal("0"),
        total_stock=50,
        active=True,
    )
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def add_stock(db_session):
    """Factory: put on_hand units of a product on a shop's shelf."""
    def _add(shop, product, on_hand, sold_count=0):
        row = StockRow(shop_id=shop.id, product_id=product.id, on_hand=on_hand, sold_count=sold_count)
        db_session.add(row)
        db_session.commit()
        return row
    return _add


@pytest.fixture(scope='function')
def seller(db_session, shop):
    """Seller bound to Shop A."""
    seller = Seller(username="seller_a", full_name="Seller A", role=ROLE_SELLER, shop_id=shop.id)
    db_session.add(seller)
    db_session.commit()
    return seller


@pytest.fixture(scope='function')
def admin(db_session):
    admin = Seller(username="admin", full_name="Admin", role=ROLE_ADMIN)
    db_session.add(admin)
    db_session.commit()
    return admin


@pytest.fixture(scope='function')
def seller_actor(seller):
    return Actor(seller_id=seller.id, role=ROLE_SELLER, shop_id=seller.shop_id)


@pytest.fixture(scope='function')
def admin_actor(admin):
    return Actor(seller_id=admin.id, role=ROLE_ADMIN)


@pytest.fixture(scope='function')
def seller_token(db_session, seller):
    _, token = session_service.create_session(db_session, seller.id)
    return token


@pytest.fixture(scope='function')
def admin_token(db_session, admin):
    _, token = session_service.create_session(db_session, admin.id)
    return token


def sale_payload(client_id, shop_id, items, created_at=None):
    """Raw sale event as a device would upload it."""
    return {
        'client_id': client_id,
        'shop_id': shop_id,
        'client_created_at': created_at or utcnow().isoformat() + 'Z',
        'items': items,
    }


def make_event(client_id, shop_id, items, created_at=None):
    """Parsed SaleEvent for calling the services directly."""
    return parse_sale_event(sale_payload(client_id, shop_id, items, created_at))


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}
