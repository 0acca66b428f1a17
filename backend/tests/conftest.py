"""
Pytest fixtures for stockflow backend tests.

Provides test database setup, in-memory Inventory Ledger and Catalog fakes,
catalog rows for the HTTP tests, and the test client.
"""

import pytest
from stockflow import create_app
from stockflow.extensions import db
from stockflow.models import InventoryLevel, Product, Warehouse


class FakeLedger:
    """In-memory Inventory Ledger keyed by (product_id, warehouse_id)."""

    def __init__(self, levels=None):
        self.levels = dict(levels or {})

    def set(self, product_id, warehouse_id, quantity):
        self.levels[(product_id, warehouse_id)] = quantity

    def get_level(self, product_id, warehouse_id):
        return self.levels.get((product_id, warehouse_id), 0)

    def list_all(self):
        return [(p, w, q) for (p, w), q in sorted(self.levels.items())]


class FakeCatalog:
    def __init__(self, products=(), warehouses=()):
        self.products = set(products)
        self.warehouses = set(warehouses)

    def product_exists(self, product_id):
        return product_id in self.products

    def warehouse_exists(self, warehouse_id):
        return warehouse_id in self.warehouses


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'STOCK_ALERT_DEFAULT_THRESHOLD': 10,
        'RETRY_ATTEMPTS': 3,
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
def ledger():
    """Empty in-memory ledger; tests set the levels they need."""
    return FakeLedger()


@pytest.fixture(scope='function')
def catalog():
    """Products 1-10 and warehouses 1-3 exist."""
    return FakeCatalog(products=range(1, 11), warehouses=(1, 2, 3))


@pytest.fixture(scope='function')
def warehouses(db_session):
    """Two real warehouse rows for the SQL-backed catalog."""
    main = Warehouse(code="W1", name="Main Warehouse", location="North")
    annex = Warehouse(code="W2", name="Annex", location="South")
    db_session.add_all([main, annex])
    db_session.commit()
    return main, annex


@pytest.fixture(scope='function')
def products(db_session):
    """Two real product rows for the SQL-backed catalog."""
    widget = Product(sku="WID-001", name="Widget")
    gadget = Product(sku="GAD-001", name="Gadget")
    db_session.add_all([widget, gadget])
    db_session.commit()
    return widget, gadget


@pytest.fixture(scope='function')
def stocked(db_session, warehouses, products):
    """Main warehouse holds 50 widgets and 20 gadgets."""
    main, _ = warehouses
    widget, gadget = products
    db_session.add_all([
        InventoryLevel(product_id=widget.id, warehouse_id=main.id, quantity=50),
        InventoryLevel(product_id=gadget.id, warehouse_id=main.id, quantity=20),
    ])
    db_session.commit()
    return warehouses, products


@pytest.fixture(scope='function')
def actor():
    """Headers identifying the acting user."""
    return {"X-User-Id": "7"}
