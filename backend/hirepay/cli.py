# Overview: Flask CLI command groups for bootstrap, demo data and settlement maintenance.

# backend/hirepay/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Use: python -m flask --app hirepay <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask --app hirepay system init-db
#   Create all tables that do not exist yet (non-destructive).
# - python -m flask --app hirepay system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Demo data:
# - python -m flask --app hirepay demo seed [--business "Demo Retail"]
#   Create a business with policy, shop, staff, catalog, stock and one customer.
#
# Settlement maintenance:
# - python -m flask --app hirepay purchases refresh-overdue [--as-of 2026-05-01T00:00:00Z]
#   Mark late purchases OVERDUE and long-overdue purchases DEFAULTED.
# - python -m flask --app hirepay purchases pending --shop-id 1
#   List payments awaiting confirmation in a shop.
# - python -m flask --app hirepay stock low --shop-id 1
#   List products at or below their low-stock threshold.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import (
    Business,
    BusinessPolicy,
    Customer,
    Product,
    Shop,
    ShopPaymentChannel,
    ShopProduct,
    StaffMember,
)
from .models.tenancy import INTEREST_FLAT
from .services import purchase_service, settlement_service, stock_service
from .services.pricing_service import format_amount
from .services.scope_service import (
    ActorContext,
    ROLE_BUSINESS_ADMIN,
    ROLE_SHOP_ADMIN,
    ROLE_SALES_STAFF,
    ROLE_DEBT_COLLECTOR,
)
from .time_utils import parse_iso_datetime


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create missing tables. Existing tables and data are left alone."""
    click.echo("BUILD  Creating tables...")
    db.create_all()
    click.echo("PASS Schema ready.")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete. Run 'python -m flask --app hirepay demo seed' for sample data.")


# =============================================================================
# DEMO DATA
# =============================================================================

@click.group('demo')
def demo_group():
    """Sample data for local development."""


@demo_group.command('seed')
@click.option('--business', 'business_name', default='Demo Retail', help='Business name')
@click.option('--code', 'business_code', default='DEMO', help='Business code')
@with_appcontext
def seed_demo(business_name, business_code):
    """
    Idempotent demo bootstrap.

    Creates (if missing):
    - Business with a FLAT 10% policy, 7 grace days, 90-day max tenor
    - One shop with a mobile money channel
    - Staff: business admin, shop admin, sales staff, debt collector
    - Three products stocked in the shop
    - One customer assigned to the collector
    """
    business = db.session.query(Business).filter_by(code=business_code).first()
    if business:
        click.echo(f"SKIP Business {business_code} already exists (id={business.id})")
        return

    business = Business(name=business_name, code=business_code, invoice_prefix=business_code)
    db.session.add(business)
    db.session.flush()

    db.session.add(BusinessPolicy(
        business_id=business.id,
        interest_type=INTEREST_FLAT,
        interest_rate_bps=1000,
        grace_days=7,
        max_tenor_days=90,
    ))

    shop = Shop(business_id=business.id, name="Main Shop", code="MAIN")
    db.session.add(shop)
    db.session.flush()

    db.session.add(ShopPaymentChannel(
        shop_id=shop.id,
        channel_type="MOBILE_MONEY",
        provider="MTN MoMo",
        account_name=business_name,
        account_number="0240000000",
    ))

    staff = {}
    for role, name, shop_id in [
        (ROLE_BUSINESS_ADMIN, "Ama Owner", None),
        (ROLE_SHOP_ADMIN, "Kofi Manager", shop.id),
        (ROLE_SALES_STAFF, "Esi Sales", shop.id),
        (ROLE_DEBT_COLLECTOR, "Yaw Collector", shop.id),
    ]:
        member = StaffMember(business_id=business.id, shop_id=shop_id, name=name, role=role)
        db.session.add(member)
        staff[role] = member
    db.session.flush()

    for sku, name, price, stock in [
        ("TV-32", "32in Television", 150000, 10),
        ("FRIDGE-S", "Small Refrigerator", 250000, 5),
        ("FAN-16", "16in Standing Fan", 40000, 25),
    ]:
        product = Product(business_id=business.id, sku=sku, name=name, price_cents=price)
        db.session.add(product)
        db.session.flush()
        db.session.add(ShopProduct(shop_id=shop.id, product_id=product.id, stock_quantity=stock, low_stock_threshold=2))

    customer = Customer(
        shop_id=shop.id,
        first_name="Abena",
        last_name="Mensah",
        phone="0200000000",
        address="12 Market Road",
        city="Kumasi",
        region="Ashanti",
        assigned_collector_id=staff[ROLE_DEBT_COLLECTOR].id,
    )
    db.session.add(customer)
    db.session.commit()

    click.echo(f"PASS Seeded business {business.name} (id={business.id}), shop id={shop.id}, customer id={customer.id}")
    for role, member in staff.items():
        click.echo(f"  {role:<15} staff_id={member.id} {member.name}")


# =============================================================================
# SETTLEMENT MAINTENANCE
# =============================================================================

@click.group('purchases')
def purchases_group():
    """Purchase lifecycle maintenance."""


@purchases_group.command('refresh-overdue')
@click.option('--as-of', 'as_of', default=None, help='ISO-8601 timestamp to evaluate against (default: now)')
@with_appcontext
def refresh_overdue_cli(as_of):
    """Mark late purchases OVERDUE and long-overdue purchases DEFAULTED."""
    now = parse_iso_datetime(as_of) if as_of else None
    counts = purchase_service.refresh_overdue_statuses(now=now)
    click.echo(f"PASS {counts['OVERDUE']} purchase(s) now OVERDUE, {counts['DEFAULTED']} now DEFAULTED")


@purchases_group.command('pending')
@click.option('--shop-id', type=int, required=True)
@with_appcontext
def pending_payments_cli(shop_id):
    """List payments awaiting confirmation in a shop."""
    shop = db.session.get(Shop, shop_id)
    if not shop:
        click.echo(f"FAIL Shop {shop_id} not found")
        return
    actor = ActorContext(user_id=0, business_id=shop.business_id, role=ROLE_BUSINESS_ADMIN)
    payments = settlement_service.get_pending_payments(actor, shop_id=shop_id)
    if not payments:
        click.echo("No pending payments.")
        return
    for p in payments:
        click.echo(
            f"  #{p.id:<6} purchase={p.purchase_id:<6} {p.payment_method:<14} "
            f"{format_amount(p.amount_cents):>14}  paid_at={p.paid_at:%Y-%m-%d %H:%M}"
        )


@click.group('stock')
def stock_group():
    """Per-shop stock inspection."""


@stock_group.command('low')
@click.option('--shop-id', type=int, required=True)
@with_appcontext
def low_stock_cli(shop_id):
    """List products at or below their low-stock threshold."""
    rows = stock_service.get_low_stock(shop_id)
    if not rows:
        click.echo("No low-stock products.")
        return
    for row in rows:
        click.echo(f"  {row.product.name:<30} qty={row.stock_quantity:<5} threshold={row.low_stock_threshold}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(demo_group)
    app.cli.add_command(purchases_group)
    app.cli.add_command(stock_group)
