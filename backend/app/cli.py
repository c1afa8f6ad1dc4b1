# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/app/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System:
# - python -m flask system init-db
#   Create all tables (use `flask db upgrade` for migrated databases).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Vendors (tenants) and their users:
# - python -m flask vendors create --name "Green Leaf" --slug green-leaf
# - python -m flask vendors list
# - python -m flask vendors add-user --vendor-id 1 --email owner@greenleaf.test --password "Password123!" --role owner
#
# Locations:
# - python -m flask locations create --vendor-id 1 --name "Warehouse" --type vendor
# - python -m flask locations list --vendor-id 1
#
# Payment processors:
# - python -m flask processors create-dejavoo --vendor-id 1 --location-id 2 --tpn 123 --authkey KEY [--default] [--production]
# - python -m flask processors list --vendor-id 1
# - python -m flask processors test 1
#
# Registers and sessions:
# - python -m flask registers create --location-id 2 --number "REG-01" --name "Front Counter" [--processor-id 1]
# - python -m flask registers list --location-id 2
# - python -m flask registers sessions --status open --limit 20
#
# Inventory:
# - python -m flask inventory verify [--vendor-id 1]
#   Replay every ledger and compare with stored quantities and product rollups.
#
# Maintenance:
# - python -m flask maintenance cleanup-sessions
#   Delete expired/revoked session tokens older than 30 days.

import click
from decimal import Decimal
from flask.cli import with_appcontext

from .extensions import db
from .models import (
    InventoryRecord,
    Location,
    PaymentProcessor,
    POSSession,
    Product,
    Register,
    Vendor,
    VendorUser,
)
from .models.auth import VENDOR_ROLES
from .quantities import quantize
from .services import session_service
from .services.auth_service import create_vendor_user, PasswordValidationError
from .services.inventory_ledger_service import verify_record
from .services.payment_processor_service import ProcessorUnavailable, create_processor_instance


# =============================================================================
# SYSTEM
# =============================================================================

@click.group('system')
def system_group():
    """Schema bootstrap commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Tables created.")


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

    click.echo("PASS Database reset complete.")


# =============================================================================
# VENDORS
# =============================================================================

@click.group('vendors')
def vendors_group():
    """Vendor (tenant) and vendor user management."""


@vendors_group.command('create')
@click.option('--name', required=True, help='Vendor display name')
@click.option('--slug', required=True, help='Unique short identifier')
@with_appcontext
def create_vendor_cli(name, slug):
    existing = db.session.query(Vendor).filter_by(slug=slug).first()
    if existing:
        click.echo(f"FAIL Vendor with slug '{slug}' already exists")
        return

    vendor = Vendor(name=name, slug=slug, is_active=True)
    db.session.add(vendor)
    db.session.commit()
    click.echo(f"PASS Created vendor: {vendor.name} (ID: {vendor.id}, Slug: {vendor.slug})")


@vendors_group.command('list')
@with_appcontext
def list_vendors_cli():
    vendors = db.session.query(Vendor).order_by(Vendor.id).all()
    if not vendors:
        click.echo("No vendors found.")
        return

    click.echo("\n" + "=" * 72)
    click.echo(f"{'ID':<5} {'Name':<30} {'Slug':<20} {'Active':<7} {'Users'}")
    click.echo("=" * 72)
    for vendor in vendors:
        user_count = db.session.query(VendorUser).filter_by(vendor_id=vendor.id).count()
        active_str = "Yes" if vendor.is_active else "No"
        click.echo(f"{vendor.id:<5} {vendor.name:<30} {vendor.slug:<20} {active_str:<7} {user_count}")
    click.echo("=" * 72 + "\n")


@vendors_group.command('add-user')
@click.option('--vendor-id', type=int, required=True)
@click.option('--email', required=True)
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True)
@click.option('--role', type=click.Choice(list(VENDOR_ROLES)), default='budtender', show_default=True)
@click.option('--display-name', default=None)
@with_appcontext
def add_vendor_user_cli(vendor_id, email, password, role, display_name):
    try:
        user = create_vendor_user(vendor_id, email, password, role=role, display_name=display_name)
    except (ValueError, PasswordValidationError) as e:
        click.echo(f"FAIL {e}")
        return
    click.echo(f"PASS Created {user.role} {user.email} (ID: {user.id}) for vendor {vendor_id}")


# =============================================================================
# LOCATIONS
# =============================================================================

@click.group('locations')
def locations_group():
    """Store / warehouse locations."""


@locations_group.command('create')
@click.option('--vendor-id', type=int, required=True)
@click.option('--name', required=True)
@click.option('--type', 'location_type', type=click.Choice(['store', 'vendor']), default='store', show_default=True)
@with_appcontext
def create_location_cli(vendor_id, name, location_type):
    if not db.session.query(Vendor).filter_by(id=vendor_id).first():
        click.echo(f"FAIL Vendor ID {vendor_id} not found")
        return
    if db.session.query(Location).filter_by(vendor_id=vendor_id, name=name).first():
        click.echo(f"FAIL Location '{name}' already exists for this vendor")
        return

    location = Location(vendor_id=vendor_id, name=name, type=location_type, is_active=True)
    db.session.add(location)
    db.session.commit()
    click.echo(f"PASS Created {location.type} location: {location.name} (ID: {location.id})")


@locations_group.command('list')
@click.option('--vendor-id', type=int, required=True)
@with_appcontext
def list_locations_cli(vendor_id):
    locations = db.session.query(Location).filter_by(vendor_id=vendor_id).order_by(Location.id).all()
    if not locations:
        click.echo("No locations found.")
        return
    for loc in locations:
        active_str = "active" if loc.is_active else "inactive"
        click.echo(f"{loc.id:<5} {loc.name:<30} {loc.type:<8} {active_str}")


# =============================================================================
# PAYMENT PROCESSORS
# =============================================================================

@click.group('processors')
def processors_group():
    """Payment processor configuration."""


@processors_group.command('create-dejavoo')
@click.option('--vendor-id', type=int, required=True)
@click.option('--location-id', type=int, required=True)
@click.option('--tpn', required=True, help='Terminal Profile Number')
@click.option('--authkey', required=True)
@click.option('--name', default='Dejavoo Terminal', show_default=True)
@click.option('--default', 'is_default', is_flag=True, help='Make this the location default')
@click.option('--production', is_flag=True, help='Use the production SPIN endpoint')
@with_appcontext
def create_dejavoo_cli(vendor_id, location_id, tpn, authkey, name, is_default, production):
    location = db.session.query(Location).filter_by(id=location_id, vendor_id=vendor_id).first()
    if not location:
        click.echo(f"FAIL Location ID {location_id} not found for vendor {vendor_id}")
        return

    if is_default:
        db.session.query(PaymentProcessor).filter_by(location_id=location_id, is_default=True).update({"is_default": False})

    processor = PaymentProcessor(
        vendor_id=vendor_id,
        location_id=location_id,
        processor_type="dejavoo",
        processor_name=name,
        environment="production" if production else "sandbox",
        is_active=True,
        is_default=is_default,
        dejavoo_tpn=tpn,
        dejavoo_authkey=authkey,
    )
    db.session.add(processor)
    db.session.commit()
    click.echo(f"PASS Created processor {processor.processor_name} (ID: {processor.id}, {processor.environment})")


@processors_group.command('list')
@click.option('--vendor-id', type=int, required=True)
@with_appcontext
def list_processors_cli(vendor_id):
    processors = db.session.query(PaymentProcessor).filter_by(vendor_id=vendor_id).order_by(PaymentProcessor.id).all()
    if not processors:
        click.echo("No payment processors found.")
        return
    for p in processors:
        flags = []
        if p.is_active:
            flags.append("active")
        if p.is_default:
            flags.append("default")
        click.echo(
            f"{p.id:<5} {p.processor_type or '-':<14} {p.processor_name or '-':<24} "
            f"loc={p.location_id} {p.environment:<10} {','.join(flags)}"
        )


@processors_group.command('test')
@click.argument('processor_id', type=int)
@with_appcontext
def test_processor_cli(processor_id):
    """Send a $1.00 auth to the terminal."""
    config = db.session.query(PaymentProcessor).filter_by(id=processor_id).first()
    if not config:
        click.echo(f"FAIL Processor ID {processor_id} not found")
        return
    try:
        processor = create_processor_instance(config)
    except ProcessorUnavailable as e:
        click.echo(f"FAIL {e}")
        return
    try:
        ok = processor.test_connection()
    finally:
        processor.close()
    click.echo("PASS Connection successful" if ok else "FAIL Connection failed")


# =============================================================================
# REGISTERS
# =============================================================================

@click.group('registers')
def registers_group():
    """POS register inspection and bootstrap."""


@registers_group.command('create')
@click.option('--location-id', type=int, required=True)
@click.option('--number', 'register_number', required=True)
@click.option('--name', required=True)
@click.option('--processor-id', type=int, default=None)
@with_appcontext
def create_register_cli(location_id, register_number, name, processor_id):
    location = db.session.query(Location).filter_by(id=location_id).first()
    if not location:
        click.echo(f"FAIL Location ID {location_id} not found")
        return
    if processor_id is not None:
        processor = db.session.query(PaymentProcessor).filter_by(id=processor_id, vendor_id=location.vendor_id).first()
        if not processor:
            click.echo(f"FAIL Processor ID {processor_id} not found for this vendor")
            return

    register = Register(
        vendor_id=location.vendor_id,
        location_id=location.id,
        register_number=register_number,
        name=name,
        payment_processor_id=processor_id,
        is_active=True,
    )
    db.session.add(register)
    db.session.commit()
    click.echo(f"PASS Created register {register.register_number} (ID: {register.id}) at {location.name}")


@registers_group.command('list')
@click.option('--location-id', type=int, required=True)
@click.option('--all', 'include_inactive', is_flag=True, help='Include inactive registers')
@with_appcontext
def list_registers_cli(location_id, include_inactive):
    query = db.session.query(Register).filter_by(location_id=location_id)
    if not include_inactive:
        query = query.filter_by(is_active=True)
    registers = query.order_by(Register.register_number).all()
    if not registers:
        click.echo("No registers found.")
        return
    for r in registers:
        processor = "card" if r.has_active_processor() else "cash-only"
        click.echo(f"{r.id:<5} {r.register_number:<10} {r.name:<24} {processor}")


@registers_group.command('sessions')
@click.option('--status', type=click.Choice(['open', 'closed']), default=None)
@click.option('--limit', type=int, default=20, show_default=True)
@with_appcontext
def list_sessions_cli(status, limit):
    query = db.session.query(POSSession)
    if status:
        query = query.filter_by(status=status)
    sessions = query.order_by(POSSession.opened_at.desc(), POSSession.id.desc()).limit(limit).all()
    if not sessions:
        click.echo("No sessions found.")
        return
    for s in sessions:
        click.echo(
            f"{s.id:<5} {s.session_number:<18} reg={s.register_id:<4} {s.status:<7} "
            f"sales={quantize(Decimal(s.total_sales or 0))} txns={s.total_transactions}"
        )


# =============================================================================
# INVENTORY
# =============================================================================

@click.group('inventory')
def inventory_group():
    """Inventory ledger inspection."""


@inventory_group.command('verify')
@click.option('--vendor-id', type=int, default=None)
@with_appcontext
def verify_inventory_cli(vendor_id):
    """Replay every ledger; check stored quantities and product rollups."""
    query = db.session.query(InventoryRecord)
    if vendor_id is not None:
        query = query.filter_by(vendor_id=vendor_id)

    mismatches = 0
    checked = 0
    for record in query.order_by(InventoryRecord.id).all():
        checked += 1
        result = verify_record(record)
        if not result["consistent"]:
            mismatches += 1
            click.echo(
                f"FAIL inventory {record.id}: stored={result['stored_quantity']} "
                f"replayed={result['replayed_quantity']}"
            )

    product_query = db.session.query(Product)
    if vendor_id is not None:
        product_query = product_query.filter_by(vendor_id=vendor_id)
    for product in product_query.order_by(Product.id).all():
        total = sum(
            (Decimal(r.quantity) for r in db.session.query(InventoryRecord).filter_by(product_id=product.id)),
            Decimal("0"),
        )
        if quantize(total) != quantize(Decimal(product.stock_quantity or 0)):
            mismatches += 1
            click.echo(f"FAIL product {product.id}: rollup={product.stock_quantity} sum={quantize(total)}")

    if mismatches:
        click.echo(f"FAIL {mismatches} mismatch(es) across {checked} inventory records")
        raise SystemExit(1)
    click.echo(f"PASS {checked} inventory records consistent")


# =============================================================================
# MAINTENANCE
# =============================================================================

@click.group('maintenance')
def maintenance_group():
    """Housekeeping commands."""


@maintenance_group.command('cleanup-sessions')
@with_appcontext
def cleanup_sessions_cli():
    deleted = session_service.cleanup_expired_sessions()
    click.echo(f"PASS Deleted {deleted} expired/revoked session tokens")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(vendors_group)
    app.cli.add_command(locations_group)
    app.cli.add_command(processors_group)
    app.cli.add_command(registers_group)
    app.cli.add_command(inventory_group)
    app.cli.add_command(maintenance_group)
