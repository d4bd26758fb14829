"""
Pytest fixtures for hirepay backend tests.

Provides test database setup, a two-business tenant layout, actor contexts
for every role and a test client.
"""

import pytest

from hirepay import create_app
from hirepay.extensions import db
from hirepay.models import (
    Business,
    BusinessPolicy,
    Customer,
    Product,
    Shop,
    ShopProduct,
    StaffMember,
)
from hirepay.models.tenancy import INTEREST_FLAT
from hirepay.services import purchase_service
from hirepay.services.scope_service import (
    ActorContext,
    ROLE_BUSINESS_ADMIN,
    ROLE_SHOP_ADMIN,
    ROLE_SALES_STAFF,
    ROLE_DEBT_COLLECTOR,
)


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


# =============================================================================
# TENANTS
# =============================================================================

@pytest.fixture(scope='function')
def business(db_session):
    """Business A with its own invoice prefix."""
    biz = Business(name="Acme Retail", code="ACME", invoice_prefix="ACME")
    db_session.add(biz)
    db_session.commit()
    return biz


@pytest.fixture(scope='function')
def policy(db_session, business):
    """FLAT 10% policy, 7 grace days, tenors up to 90 days."""
    pol = BusinessPolicy(
        business_id=business.id,
        interest_type=INTEREST_FLAT,
        interest_rate_bps=1000,
        grace_days=7,
        max_tenor_days=90,
    )
    db_session.add(pol)
    db_session.commit()
    return pol


@pytest.fixture(scope='function')
def shop(db_session, business):
    s = Shop(business_id=business.id, name="Accra Central", code="ACC")
    db_session.add(s)
    db_session.commit()
    return s


@pytest.fixture(scope='function')
def second_shop(db_session, business):
    """Another shop of business A (same catalog, separate stock)."""
    s = Shop(business_id=business.id, name="Kumasi Road", code="KSI")
    db_session.add(s)
    db_session.commit()
    return s


@pytest.fixture(scope='function')
def business_b(db_session):
    """Business B (second tenant, no BNPL policy)."""
    biz = Business(name="Beta Stores", code="BETA", invoice_prefix="BETA")
    db_session.add(biz)
    db_session.commit()
    return biz


@pytest.fixture(scope='function')
def shop_b(db_session, business_b):
    s = Shop(business_id=business_b.id, name="Beta Main", code="BMAIN")
    db_session.add(s)
    db_session.commit()
    return s


# =============================================================================
# STAFF AND ACTORS
# =============================================================================

@pytest.fixture(scope='function')
def staff(db_session, business, shop):
    """One staff member per role in business A, keyed by role."""
    members = {
        ROLE_BUSINESS_ADMIN: StaffMember(business_id=business.id, shop_id=None, name="Ama Owner", role=ROLE_BUSINESS_ADMIN),
        ROLE_SHOP_ADMIN: StaffMember(business_id=business.id, shop_id=shop.id, name="Kofi Manager", role=ROLE_SHOP_ADMIN),
        ROLE_SALES_STAFF: StaffMember(business_id=business.id, shop_id=shop.id, name="Esi Sales", role=ROLE_SALES_STAFF),
        ROLE_DEBT_COLLECTOR: StaffMember(business_id=business.id, shop_id=shop.id, name="Yaw Collector", role=ROLE_DEBT_COLLECTOR),
    }
    for member in members.values():
        db_session.add(member)
    db_session.commit()
    return members


@pytest.fixture(scope='function')
def admin_actor(business, staff):
    return ActorContext(
        user_id=1001,
        business_id=business.id,
        role=ROLE_BUSINESS_ADMIN,
        shop_ids=None,
        staff_id=staff[ROLE_BUSINESS_ADMIN].id,
    )


@pytest.fixture(scope='function')
def shop_admin_actor(business, shop, staff):
    return ActorContext(
        user_id=1002,
        business_id=business.id,
        role=ROLE_SHOP_ADMIN,
        shop_ids=(shop.id,),
        staff_id=staff[ROLE_SHOP_ADMIN].id,
    )


@pytest.fixture(scope='function')
def sales_actor(business, shop, staff):
    return ActorContext(
        user_id=1003,
        business_id=business.id,
        role=ROLE_SALES_STAFF,
        shop_ids=(shop.id,),
        staff_id=staff[ROLE_SALES_STAFF].id,
    )


@pytest.fixture(scope='function')
def collector_actor(business, shop, staff):
    return ActorContext(
        user_id=1004,
        business_id=business.id,
        role=ROLE_DEBT_COLLECTOR,
        shop_ids=(shop.id,),
        staff_id=staff[ROLE_DEBT_COLLECTOR].id,
    )


@pytest.fixture(scope='function')
def admin_actor_b(business_b):
    return ActorContext(user_id=2001, business_id=business_b.id, role=ROLE_BUSINESS_ADMIN)


# =============================================================================
# CATALOG AND CUSTOMERS
# =============================================================================

@pytest.fixture(scope='function')
def products(db_session, business, shop):
    """
    Catalog of business A stocked in shop A, keyed by short name.

    radio  100.00  qty 10
    kettle  50.00  qty 10
    fridge 1000.00 qty 3
    """
    catalog = {}
    for key, name, price, qty in [
        ("radio", "Radio", 10000, 10),
        ("kettle", "Electric Kettle", 5000, 10),
        ("fridge", "Refrigerator", 100000, 3),
    ]:
        product = Product(business_id=business.id, sku=key.upper(), name=name, price_cents=price)
        db_session.add(product)
        db_session.flush()
        db_session.add(ShopProduct(
            shop_id=shop.id,
            product_id=product.id,
            stock_quantity=qty,
            low_stock_threshold=2,
        ))
        catalog[key] = product
    db_session.commit()
    return catalog


@pytest.fixture(scope='function')
def customer(db_session, shop, staff):
    """Customer in shop A, assigned to the debt collector."""
    c = Customer(
        shop_id=shop.id,
        first_name="Kwame",
        last_name="Asante",
        phone="0241234567",
        address="5 Ring Road",
        city="Accra",
        region="Greater Accra",
        assigned_collector_id=staff[ROLE_DEBT_COLLECTOR].id,
    )
    db_session.add(c)
    db_session.commit()
    return c


@pytest.fixture(scope='function')
def other_customer(db_session, shop):
    """Customer in shop A with no assigned collector."""
    c = Customer(shop_id=shop.id, first_name="Efua", last_name="Boateng", phone="0207654321")
    db_session.add(c)
    db_session.commit()
    return c


@pytest.fixture(scope='function')
def customer_b(db_session, shop_b):
    c = Customer(shop_id=shop_b.id, first_name="Beta", last_name="Buyer", phone="0550000000")
    db_session.add(c)
    db_session.commit()
    return c


# =============================================================================
# HELPERS
# =============================================================================

@pytest.fixture(scope='function')
def sell():
    """
    Create a purchase through the service layer.

    sell(actor, customer, [(product, qty), ...], "CREDIT", down_payment_cents=..., tenor_days=...)
    """
    def _sell(actor, customer, lines, purchase_type="CREDIT", down_payment_cents=0, tenor_days=60):
        payload = {
            "customer_id": customer.id,
            "purchase_type": purchase_type,
            "items": [{"product_id": product.id, "quantity": qty} for product, qty in lines],
        }
        if purchase_type != "CASH":
            payload["down_payment_cents"] = down_payment_cents
            payload["tenor_days"] = tenor_days
        return purchase_service.create_sale(actor, payload)
    return _sell


@pytest.fixture(scope='function')
def actor_headers():
    """Build X-Actor-* request headers for an ActorContext."""
    def _headers(actor):
        headers = {
            "X-Actor-User-Id": str(actor.user_id),
            "X-Actor-Business-Id": str(actor.business_id),
            "X-Actor-Role": actor.role,
        }
        if actor.shop_ids is not None:
            headers["X-Actor-Shop-Ids"] = ",".join(str(s) for s in actor.shop_ids)
        if actor.staff_id is not None:
            headers["X-Actor-Staff-Id"] = str(actor.staff_id)
        return headers
    return _headers
