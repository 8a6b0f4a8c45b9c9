"""
Pytest fixtures for digistock backend tests.

Provides an in-memory application, a fresh database per test, a pinned ledger
clock, deterministic ids, and small factories for platforms, products and
stock.
"""

from datetime import datetime, timedelta

import pytest

from digistock import create_app
from digistock.extensions import db
from digistock.services import catalog_service, purchase_service
from digistock.validation import RecordPurchaseRequest, RecordSaleRequest


FIXED_NOW = datetime(2025, 1, 31, 10, 0, 0)


class FrozenClock:
    """Ledger clock pinned to a settable instant."""

    def __init__(self, start: datetime):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current = self.current + timedelta(**kwargs)
        return self.current


class SequentialIds:
    """Predictable ids: prod-000001, sale-000002, ..."""

    def __init__(self):
        self.counter = 0

    def __call__(self, prefix: str) -> str:
        self.counter += 1
        return f"{prefix}-{self.counter:06d}"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'LEDGER_RETRY_BACKOFF': 0,
        'DEFAULT_LOW_BALANCE_THRESHOLD_CENTS': 10000,
        'CLOCK': FrozenClock(FIXED_NOW),
        'ID_GENERATOR': SequentialIds(),
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app, db_session):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        db.session.remove()

        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        app.config['CLOCK'].current = FIXED_NOW
        app.config['ID_GENERATOR'].counter = 0

        yield db.session

        # Cleanup after test
        db.session.rollback()
        db.session.remove()


@pytest.fixture
def clock(app):
    return app.config['CLOCK']


@pytest.fixture
def make_platform(db_session):
    def _make(name="IPTV Pro", credit_cents=0, **fields):
        patch = {"name": name, **fields}
        return catalog_service.create_platform(patch=patch, initial_credit_cents=credit_cents)
    return _make


@pytest.fixture
def make_product(db_session):
    def _make(name="IPTV 1 month", **fields):
        patch = {"name": name, "category": "iptv", "duration_type": "1month", **fields}
        return catalog_service.create_product(patch=patch)
    return _make


@pytest.fixture
def restock(db_session):
    def _restock(product, quantity, unit_cost_cents=1000, **fields):
        return purchase_service.record_purchase(
            RecordPurchaseRequest(
                product_id=product.id,
                quantity=quantity,
                unit_cost_cents=unit_cost_cents,
                **fields,
            )
        )
    return _restock


@pytest.fixture
def sale_request():
    def _request(product, quantity=1, unit_price_cents=2500, **fields):
        return RecordSaleRequest(
            product_id=product.id,
            quantity=quantity,
            unit_price_cents=unit_price_cents,
            **fields,
        )
    return _request
