"""
Pytest fixtures for backend tests.

Provides an in-memory database, a test client, two vendors (for isolation
checks), locations, users per role, products, a Dejavoo processor bound to
a register, and bearer-token headers.
"""

import pytest

from app import create_app
from app.extensions import db
from app.models import Location, PaymentProcessor, Product, Register, Vendor, VendorUser
from app.services import inventory_ledger_service as ledger
from app.services.auth_service import hash_password
from app.services.session_service import VendorContext, create_session


TEST_PASSWORD = "Password123!"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'EXPOSE_ERROR_DETAILS': True,
        'DEFAULT_LOW_STOCK_THRESHOLD': 10,
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


@pytest.fixture(scope='session')
def password_hash():
    """bcrypt is slow on purpose; hash once per run."""
    return hash_password(TEST_PASSWORD)


# =============================================================================
# TENANTS
# =============================================================================


@pytest.fixture(scope='function')
def vendor(db_session):
    v = Vendor(name="Green Leaf Farms", slug="green-leaf", is_active=True)
    db_session.add(v)
    db_session.commit()
    return v


@pytest.fixture(scope='function')
def other_vendor(db_session):
    v = Vendor(name="Other Growers", slug="other-growers", is_active=True)
    db_session.add(v)
    db_session.commit()
    return v


@pytest.fixture(scope='function')
def warehouse(db_session, vendor):
    """Vendor's primary (warehouse) location."""
    loc = Location(vendor_id=vendor.id, name="Warehouse", type="vendor")
    db_session.add(loc)
    db_session.commit()
    return loc


@pytest.fixture(scope='function')
def store(db_session, vendor):
    loc = Location(vendor_id=vendor.id, name="Downtown Store", type="store")
    db_session.add(loc)
    db_session.commit()
    return loc


@pytest.fixture(scope='function')
def other_location(db_session, other_vendor):
    loc = Location(vendor_id=other_vendor.id, name="Other Warehouse", type="vendor")
    db_session.add(loc)
    db_session.commit()
    return loc


# =============================================================================
# USERS
# =============================================================================


def _make_user(db_session, vendor_id, email, role, password_hash):
    user = VendorUser(
        vendor_id=vendor_id,
        email=email,
        display_name=email.split("@")[0],
        password_hash=password_hash,
        role=role,
    )
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def owner(db_session, vendor, password_hash):
    return _make_user(db_session, vendor.id, "owner@greenleaf.test", "owner", password_hash)


@pytest.fixture(scope='function')
def manager(db_session, vendor, password_hash):
    return _make_user(db_session, vendor.id, "manager@greenleaf.test", "manager", password_hash)


@pytest.fixture(scope='function')
def budtender(db_session, vendor, password_hash):
    return _make_user(db_session, vendor.id, "budtender@greenleaf.test", "budtender", password_hash)


@pytest.fixture(scope='function')
def other_owner(db_session, other_vendor, password_hash):
    return _make_user(db_session, other_vendor.id, "owner@other.test", "owner", password_hash)


@pytest.fixture(scope='function')
def context(vendor, owner):
    """VendorContext as require_vendor would build it for the owner."""
    return VendorContext(vendor_id=vendor.id, user=owner)


@pytest.fixture(scope='function')
def other_context(other_vendor, other_owner):
    return VendorContext(vendor_id=other_vendor.id, user=other_owner)


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


def headers_for(user) -> dict:
    _, token = create_session(user.id)
    return auth_headers(token)


@pytest.fixture(scope='function')
def owner_headers(owner):
    return headers_for(owner)


@pytest.fixture(scope='function')
def manager_headers(manager):
    return headers_for(manager)


@pytest.fixture(scope='function')
def budtender_headers(budtender):
    return headers_for(budtender)


@pytest.fixture(scope='function')
def other_owner_headers(other_owner):
    return headers_for(other_owner)


# =============================================================================
# CATALOG / INVENTORY
# =============================================================================


def _make_product(db_session, vendor_id, sku, name):
    product = Product(vendor_id=vendor_id, sku=sku, name=name)
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def product(db_session, vendor):
    return _make_product(db_session, vendor.id, "OG-KUSH-1G", "OG Kush")


@pytest.fixture(scope='function')
def product_b(db_session, vendor):
    return _make_product(db_session, vendor.id, "BLUE-DREAM-1G", "Blue Dream")


@pytest.fixture(scope='function')
def product_c(db_session, vendor):
    return _make_product(db_session, vendor.id, "SOUR-D-1G", "Sour Diesel")


@pytest.fixture(scope='function')
def stock(context):
    """
    stock(product, location, quantity) -> InventoryRecord

    Creates the record at zero and brings it up through the ledger, so the
    log replays to the stored quantity.
    """
    def _stock(product, location, quantity):
        record = ledger.find_or_create_record(context, product.id, location.id)
        if quantity:
            ledger.adjust(context, record.id, location.id, product.id, quantity, reason="Initial stock")
        return record
    return _stock


# =============================================================================
# PAYMENTS / REGISTERS
# =============================================================================


@pytest.fixture(scope='function')
def processor(db_session, vendor, store):
    config = PaymentProcessor(
        vendor_id=vendor.id,
        location_id=store.id,
        processor_type="dejavoo",
        processor_name="Front Counter Terminal",
        environment="sandbox",
        is_active=True,
        is_default=True,
        dejavoo_authkey="test-authkey",
        dejavoo_tpn="TPN0001",
    )
    db_session.add(config)
    db_session.commit()
    return config


@pytest.fixture(scope='function')
def register(db_session, vendor, store, processor):
    reg = Register(
        vendor_id=vendor.id,
        location_id=store.id,
        register_number="1",
        name="Front Register",
        payment_processor_id=processor.id,
    )
    db_session.add(reg)
    db_session.commit()
    return reg


@pytest.fixture(scope='function')
def cash_register(db_session, vendor, store):
    reg = Register(vendor_id=vendor.id, location_id=store.id, register_number="2", name="Cash Only")
    db_session.add(reg)
    db_session.commit()
    return reg
