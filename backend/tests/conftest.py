"""
Pytest fixtures for workshop backend tests.

Provides an in-memory database, staff accounts with session tokens, and
catalog factories.
"""

import pytest

from workshop import create_app
from workshop.extensions import db
from workshop.models import Customer, Mechanic, Package, PackageItem, Service, User, Vehicle
from workshop.models.auth import ROLE_ADMIN, ROLE_CASHIER
from workshop.services import catalog_service, session_service
from workshop.services.auth_service import hash_password


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'BCRYPT_ROUNDS': 4,
        'LOG_LEVEL': 'WARNING',
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


def _make_user(username: str, role: str) -> User:
    user = User(
        username=username,
        full_name=username.title(),
        password_hash=hash_password("Password123"),
        role=role,
    )
    db.session.add(user)
    db.session.commit()
    return user


@pytest.fixture(scope='function')
def admin_user(db_session):
    return _make_user("admin", ROLE_ADMIN)


@pytest.fixture(scope='function')
def cashier_user(db_session):
    return _make_user("kasir", ROLE_CASHIER)


@pytest.fixture(scope='function')
def admin_headers(admin_user):
    _, token = session_service.create_session(admin_user.id)
    return auth_headers(token)


@pytest.fixture(scope='function')
def cashier_headers(cashier_user):
    _, token = session_service.create_session(cashier_user.id)
    return auth_headers(token)


@pytest.fixture(scope='function')
def make_product(db_session):
    """Factory: product with opening stock booked through the stock ledger."""
    counter = {"n": 0}

    def _make(sku=None, stock=10, price_sell=350000, price_buy=250000, name=None, **kwargs):
        counter["n"] += 1
        sku = sku or f"PRD-{counter['n']:03d}"
        return catalog_service.create_product(
            sku=sku,
            name=name or f"Product {sku}",
            price_sell=price_sell,
            price_buy=price_buy,
            opening_stock=stock,
            **kwargs,
        )

    return _make


@pytest.fixture(scope='function')
def make_service(db_session):
    def _make(name="Ganti Oli", price=50000):
        service = Service(name=name, price=price)
        db.session.add(service)
        db.session.commit()
        return service

    return _make


@pytest.fixture(scope='function')
def make_package(db_session):
    """Factory: package from [(product_or_service, qty), ...] components."""
    def _make(components, price=500000, name="Paket Servis", is_active=True):
        package = Package(name=name, price=price, is_active=is_active)
        for position, (component, qty) in enumerate(components):
            item = PackageItem(qty=qty, position=position)
            if isinstance(component, Service):
                item.service_id = component.id
            else:
                item.product_id = component.id
            package.items.append(item)
        db.session.add(package)
        db.session.commit()
        return package

    return _make


@pytest.fixture(scope='function')
def vehicle(db_session):
    customer = Customer(name="Andi", phone="08123456789")
    db.session.add(customer)
    db.session.flush()
    vehicle = Vehicle(customer_id=customer.id, license_plate="B 1234 XYZ", brand="Honda", model="Vario", current_km=12000)
    db.session.add(vehicle)
    db.session.commit()
    return vehicle


@pytest.fixture(scope='function')
def mechanic(db_session):
    mechanic = Mechanic(name="Joko", is_active=True)
    db.session.add(mechanic)
    db.session.commit()
    return mechanic


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}
