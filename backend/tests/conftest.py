"""
Pytest fixtures for catalog admin backend tests.

Provides the application, a clean database per test, test client and
small catalog factories.
"""

from decimal import Decimal

import pytest

from catalog_admin import create_app
from catalog_admin.extensions import db
from catalog_admin.models import Category
from catalog_admin.services import products_service


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'LOG_LEVEL': 'DEBUG',
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
def category(db_session):
    """Create the default test category."""
    cat = Category(name="Electronics")
    db_session.add(cat)
    db_session.commit()
    return cat


@pytest.fixture(scope='function')
def make_product(db_session, category):
    """Factory: create a product (and its initial stock) through the service layer."""

    def _make(name="Widget", price="19.99", initial_quantity=50, category_id=None):
        return products_service.create_product(
            patch={
                "name": name,
                "description": f"{name} description",
                "price": Decimal(price),
                "category_id": category_id or category.id,
                "initial_quantity": initial_quantity,
            }
        )

    return _make
