"""
Pytest fixtures for Retail POS backend tests.

Provides an in-memory database, a per-test invoice directory, catalog and
staff fixtures, and the test client.
"""

from datetime import date

import pytest
from retail_pos import create_app
from retail_pos.extensions import db
from retail_pos.models import Category, User
from retail_pos.services.products_service import create_product


TODAY = date(2026, 10, 19)
SAMPLE_IMAGE = {"data": "iVBORw0KGgo=", "content_type": "image/png"}


@pytest.fixture(scope='session')
def app(tmp_path_factory):
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'INVOICE_DIR': str(tmp_path_factory.mktemp('invoices')),
        'CHECKOUT_INVENTORY_MODE': 'atomic',
        'STORE_NAME': 'Test Store',
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
def invoice_dir(app, tmp_path):
    """Point INVOICE_DIR at a fresh directory for one test."""
    previous = app.config['INVOICE_DIR']
    path = tmp_path / 'invoices'
    app.config['INVOICE_DIR'] = str(path)
    yield path
    app.config['INVOICE_DIR'] = previous


@pytest.fixture(scope='function')
def db_session(app, invoice_dir):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session()

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def category(db_session):
    category = Category(name="Clothing")
    db_session.add(category)
    db_session.commit()
    return category


@pytest.fixture(scope='function')
def staff(db_session):
    """Staff member that checkouts are attributed to."""
    user = User(fullname="Tran Thi B", email="cashier@example.com", role="staff")
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def make_product(db_session, category):
    """Factory creating products through the catalog service (real codes)."""
    def _make(name="Ao thun", retail_price=120_000, quantity=10, today=TODAY, **extra):
        patch = {
            "name": name,
            "import_price": max(retail_price // 2, 1),
            "retail_price": retail_price,
            "category_id": category.id,
            "quantity": quantity,
            "images": [SAMPLE_IMAGE],
        }
        patch.update(extra)
        return create_product(patch=patch, today=today)
    return _make


def cart_line(product, quantity=1, **overrides) -> dict:
    """Cart line as the checkout screen sends it."""
    line = {
        "product_id": product.id,
        "name": product.name,
        "quantity": quantity,
        "unitPrice": product.retail_price,
    }
    line.update(overrides)
    return line
