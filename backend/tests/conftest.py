"""
Pytest fixtures for the closet backend tests.

Provides an in-memory database, a clean slate per test, the Flask test client
and small factories for products, customers and credit sales.
"""

from datetime import date

import pytest

from closet import create_app
from closet.extensions import db
from closet.models import Customer, Product
from closet.services import sales_service


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'LOW_STOCK_THRESHOLD': 2,
        'DUPLICATE_PAYMENT_WINDOW_SECONDS': 30,
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
        db.session.expunge_all()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def make_product(db_session):
    """Factory: product with stock counters set directly."""
    def _make(name="Vestido Midi", price_cents=10000, cost_price_cents=4000, stock=5, reserved=0, is_active=True):
        product = Product(
            name=name,
            price_cents=price_cents,
            cost_price_cents=cost_price_cents,
            stock=stock,
            reserved=reserved,
            is_active=is_active,
        )
        db_session.add(product)
        db_session.commit()
        return product
    return _make


@pytest.fixture(scope='function')
def customer(db_session):
    """Create a customer buying on credit."""
    c = Customer(name="Maria Souza", phone="11999990000", email="maria@example.com", cpf="12345678901")
    db_session.add(c)
    db_session.commit()
    return c


@pytest.fixture(scope='function')
def credit_sale(db_session, make_product, customer):
    """R$300,00 direct credit sale, no entry, 3 installments starting 2024-01-01."""
    product = make_product(name="Jaqueta Jeans", price_cents=30000, cost_price_cents=12000, stock=5)
    return sales_service.create_sale(
        [{"product_id": product.id, "quantity": 1}],
        sale_type="direct",
        payment_method="fiado_parcelado",
        customer_id=customer.id,
        num_installments=3,
        installment_start_date=date(2024, 1, 1),
    )
