"""
Pytest fixtures for opscore backend tests.

Provides test database setup, two tenants with master data, and test client.
"""

import pytest

from opscore import create_app
from opscore.extensions import db
from opscore.models import (
    Customer,
    InventoryLocation,
    Item,
    Organization,
    PurchaseInvoice,
    PurchaseOrder,
    PurchaseOrderLine,
    SalesInvoice,
    SalesOrder,
    SalesOrderLine,
    Supplier,
)
from opscore.models.invoices import INVOICE_STATUS_APPROVED, INVOICE_STATUS_SENT
from opscore.models.orders import PO_STATUS_APPROVED, SO_STATUS_CONFIRMED
from opscore.services.tenant_service import TenantScope


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
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
def org_a(db_session):
    """Create Organization A (first tenant)."""
    org = Organization(name="Org A - Acme Corp", code="ACME", is_active=True)
    db_session.add(org)
    db_session.commit()
    return org


@pytest.fixture(scope='function')
def org_b(db_session):
    """Create Organization B (second tenant)."""
    org = Organization(name="Org B - Beta Inc", code="BETA", is_active=True)
    db_session.add(org)
    db_session.commit()
    return org


@pytest.fixture(scope='function')
def scope_a(org_a):
    return TenantScope(org_a.id)


@pytest.fixture(scope='function')
def scope_b(org_b):
    return TenantScope(org_b.id)


@pytest.fixture(scope='function')
def item_a(db_session, org_a):
    item = Item(org_id=org_a.id, code="WIDGET", name="Widget")
    db_session.add(item)
    db_session.commit()
    return item


@pytest.fixture(scope='function')
def item_b(db_session, org_b):
    item = Item(org_id=org_b.id, code="GADGET", name="Gadget")
    db_session.add(item)
    db_session.commit()
    return item


@pytest.fixture(scope='function')
def main_location(db_session, org_a):
    """Default ACTIVE location of Organization A."""
    location = InventoryLocation(org_id=org_a.id, code="MAIN", name="Main Warehouse", is_default=True)
    db_session.add(location)
    db_session.commit()
    return location


@pytest.fixture(scope='function')
def annex_location(db_session, org_a):
    """Second ACTIVE, non-default location of Organization A."""
    location = InventoryLocation(org_id=org_a.id, code="ANNEX", name="Annex", is_default=False)
    db_session.add(location)
    db_session.commit()
    return location


@pytest.fixture(scope='function')
def location_b(db_session, org_b):
    location = InventoryLocation(org_id=org_b.id, code="MAIN", name="Beta Main", is_default=True)
    db_session.add(location)
    db_session.commit()
    return location


@pytest.fixture(scope='function')
def supplier_a(db_session, org_a):
    supplier = Supplier(org_id=org_a.id, code="SUP1", name="Parts Supplier")
    db_session.add(supplier)
    db_session.commit()
    return supplier


@pytest.fixture(scope='function')
def customer_a(db_session, org_a):
    customer = Customer(org_id=org_a.id, code="CUST1", name="First Customer")
    db_session.add(customer)
    db_session.commit()
    return customer


@pytest.fixture(scope='function')
def purchase_order(db_session, org_a, supplier_a, item_a):
    """APPROVED PO with one line: 20 x Widget at 250 cents."""
    order = PurchaseOrder(
        org_id=org_a.id,
        supplier_id=supplier_a.id,
        document_number="PO-000001",
        status=PO_STATUS_APPROVED,
    )
    db_session.add(order)
    db_session.flush()
    db_session.add(PurchaseOrderLine(
        org_id=org_a.id,
        purchase_order_id=order.id,
        item_id=item_a.id,
        line_number=1,
        quantity_ordered=20,
        unit_price_cents=250,
    ))
    db_session.commit()
    return order


@pytest.fixture(scope='function')
def sales_order(db_session, org_a, customer_a, item_a):
    """CONFIRMED SO with one line: 12 x Widget at 400 cents."""
    order = SalesOrder(
        org_id=org_a.id,
        customer_id=customer_a.id,
        document_number="SO-000001",
        status=SO_STATUS_CONFIRMED,
    )
    db_session.add(order)
    db_session.flush()
    db_session.add(SalesOrderLine(
        org_id=org_a.id,
        sales_order_id=order.id,
        item_id=item_a.id,
        line_number=1,
        quantity_ordered=12,
        unit_price_cents=400,
    ))
    db_session.commit()
    return order


@pytest.fixture(scope='function')
def sales_invoice(db_session, org_a, customer_a):
    """SENT customer invoice for 1100 cents."""
    invoice = SalesInvoice(
        org_id=org_a.id,
        customer_id=customer_a.id,
        document_number="SI-000001",
        status=INVOICE_STATUS_SENT,
        grand_total_cents=1100,
        amount_paid_cents=0,
        balance_due_cents=1100,
    )
    db_session.add(invoice)
    db_session.commit()
    return invoice


@pytest.fixture(scope='function')
def purchase_invoice(db_session, org_a, supplier_a):
    """APPROVED supplier invoice for 5000 cents."""
    invoice = PurchaseInvoice(
        org_id=org_a.id,
        supplier_id=supplier_a.id,
        document_number="PI-000001",
        status=INVOICE_STATUS_APPROVED,
        grand_total_cents=5000,
        amount_paid_cents=0,
        balance_due_cents=5000,
    )
    db_session.add(invoice)
    db_session.commit()
    return invoice


@pytest.fixture(scope='function')
def headers_a(org_a):
    """Tenant + actor headers for Organization A requests."""
    return {'X-Tenant-Id': str(org_a.id), 'X-User-Id': '7'}


@pytest.fixture(scope='function')
def headers_b(org_b):
    return {'X-Tenant-Id': str(org_b.id)}
