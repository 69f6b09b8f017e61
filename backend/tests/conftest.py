"""
Pytest fixtures for salonpos backend tests.

Provides an in-memory database wiped per test and a small salon catalog:
hair products (95/5 split), hair services (70/30), two employees, a
stocked shampoo with one cost batch and a haircut service.
"""

from datetime import datetime
from decimal import Decimal

import pytest

from salonpos import create_app
from salonpos.extensions import db
from salonpos.models import Category, Employee, Item, Role
from salonpos.services.batch_ledger import BatchLedger, SqlBatchStore


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'COSTING_METHOD': 'FIFO',
        'TAX_RATE': '0.10',
        'SHORTFALL_COSTING': 'Zero',
        'LOW_STOCK_THRESHOLD': 5,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


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
def cli_runner(app):
    return app.test_cli_runner()


@pytest.fixture(scope='function')
def roles(db_session):
    """Hairdresser and Nail Technician roles, keyed by name."""
    created = {name: Role(name=name) for name in ("Hairdresser", "Nail Technician")}
    db_session.add_all(created.values())
    db_session.commit()
    return created


@pytest.fixture(scope='function')
def hair_products(db_session):
    category = Category(
        id="hair-products",
        name="Hair Products & Accessories",
        commission_rate=Decimal("95"),
        salon_owner_rate=Decimal("5"),
    )
    db_session.add(category)
    db_session.commit()
    return category


@pytest.fixture(scope='function')
def hair_services(db_session):
    category = Category(
        id="hair-services",
        name="Hair Services",
        commission_rate=Decimal("70"),
        salon_owner_rate=Decimal("30"),
    )
    db_session.add(category)
    db_session.commit()
    return category


@pytest.fixture(scope='function')
def employee(db_session, roles):
    """Hairdresser e1."""
    emp = Employee(id="e1", name="Gilbert Atallah", role_id=roles["Hairdresser"].id)
    db_session.add(emp)
    db_session.commit()
    return emp


@pytest.fixture(scope='function')
def second_employee(db_session, roles):
    """Hairdresser e2."""
    emp = Employee(id="e2", name="Maria Garcia", role_id=roles["Hairdresser"].id)
    db_session.add(emp)
    db_session.commit()
    return emp


@pytest.fixture(scope='function')
def ledger(db_session):
    return BatchLedger(SqlBatchStore(db_session))


@pytest.fixture(scope='function')
def shampoo(db_session, hair_products, ledger):
    """Shampoo at $25 with stock 50, backed by one batch of 50 @ $10."""
    item = Item(
        id="shampoo",
        name="Shampoo",
        category_id=hair_products.id,
        price=Decimal("25.00"),
        is_service=False,
        stock=50,
        average_cost=Decimal("10.00"),
    )
    db_session.add(item)
    db_session.flush()
    ledger.add_batch("shampoo", 50, Decimal("10"), date=datetime(2026, 1, 5, 9, 0))
    db_session.commit()
    return item


@pytest.fixture(scope='function')
def haircut(db_session, hair_services):
    item = Item(
        id="haircut",
        name="Haircut",
        category_id=hair_services.id,
        price=Decimal("35.00"),
        is_service=True,
        stock=0,
        average_cost=Decimal("0"),
    )
    db_session.add(item)
    db_session.commit()
    return item


@pytest.fixture(scope='function')
def make_item(db_session):
    """Factory for physical items without any batches."""
    def _make(item_id, category, *, price="10.00", stock=0, average_cost="0", reorder_threshold=None):
        item = Item(
            id=item_id,
            name=item_id.replace("-", " ").title(),
            category_id=category.id,
            price=Decimal(price),
            is_service=False,
            stock=stock,
            average_cost=Decimal(average_cost),
            reorder_threshold=reorder_threshold,
        )
        db_session.add(item)
        db_session.commit()
        return item

    return _make
