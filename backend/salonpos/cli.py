# Overview: Flask CLI command groups for bootstrap, settings, stock receiving and reports.

# backend/salonpos/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to salonpos (PowerShell: $env:FLASK_APP="salonpos").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create all tables (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask system seed-demo
#   Idempotent demo catalog (run init-db first): roles, categories with
#   default splits and eligible roles, employees and a few items.
#
# Settings:
# - python -m flask settings show
# - python -m flask settings costing-method WeightedAverage
# - python -m flask settings tax-rate 0.10
# - python -m flask settings shortfall-costing LastAverageCost
#
# Inventory:
# - python -m flask inventory record --item-id shampoo --type Purchase --quantity 50 --unit-cost 10
# - python -m flask inventory summary shampoo
#
# Reports:
# - python -m flask reports summary [--start 2026-01-01 --end 2026-01-31]
# - python -m flask reports commissions [--start ... --end ...]
# - python -m flask reports valuation
# - python -m flask reports low-stock

import click
from flask.cli import with_appcontext

from .extensions import db
from .errors import SalonPOSError
from .models import Category, Employee, Item, Role
from .money import format_money
from .services import inventory_service, reporting_service, settings_service
from .services.commission_service import set_category_rates


DEMO_ROLES = ["Hairdresser", "Nail Technician", "Salon Owner"]

# category id -> (name, commission %, owner %, eligible roles)
DEMO_CATEGORIES = {
    "hair-services": ("Hair Services", 70, 30, ["Hairdresser"]),
    "hair-extensions": ("Hair Extensions", 80, 20, ["Hairdresser"]),
    "hair-products": ("Hair Products & Accessories", 95, 5, ["Hairdresser"]),
    "nail-services": ("Nail Services", 0, 100, ["Nail Technician"]),
    "nail-products": ("Nail Products", 0, 100, ["Nail Technician"]),
    "face-treatments": ("Face Treatments", 0, 100, ["Salon Owner"]),
}

DEMO_EMPLOYEES = [
    ("emp1", "Gilbert Atallah", "Hairdresser"),
    ("emp2", "Elie Cha", "Salon Owner"),
    ("emp3", "Sarah Johnson", "Nail Technician"),
]

# item id -> (name, category id, price, is_service)
DEMO_ITEMS = {
    "haircut": ("Haircut", "hair-services", "35.00", True),
    "manicure": ("Manicure", "nail-services", "25.00", True),
    "facial": ("Classic Facial", "face-treatments", "60.00", True),
    "shampoo": ("Shampoo", "hair-products", "25.00", False),
    "nail-polish": ("Nail Polish", "nail-products", "12.00", False),
}


def _fail(exc: SalonPOSError):
    raise click.ClickException(f"{exc.message} {exc.details}" if exc.details else exc.message)


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


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

    click.echo("PASS Database reset complete. Run 'python -m flask system seed-demo' to load demo data.")


@system_group.command('seed-demo')
@with_appcontext
def seed_demo():
    """Load the demo catalog (safe to run repeatedly)."""
    roles = {}
    for name in DEMO_ROLES:
        role = db.session.query(Role).filter_by(name=name).first()
        if role is None:
            role = Role(name=name)
            db.session.add(role)
        roles[name] = role
    db.session.flush()

    for category_id, (name, commission, owner, role_names) in DEMO_CATEGORIES.items():
        category = db.session.get(Category, category_id)
        if category is None:
            category = Category(id=category_id, name=name)
            db.session.add(category)
            db.session.flush()
        set_category_rates(db.session, category_id, commission, owner)
        category.roles = [roles[r] for r in role_names]

    for employee_id, name, role_name in DEMO_EMPLOYEES:
        if db.session.get(Employee, employee_id) is None:
            db.session.add(Employee(id=employee_id, name=name, role_id=roles[role_name].id))

    for item_id, (name, category_id, price, is_service) in DEMO_ITEMS.items():
        if db.session.get(Item, item_id) is None:
            db.session.add(Item(
                id=item_id,
                name=name,
                category_id=category_id,
                price=price,
                is_service=is_service,
                stock=0,
                average_cost=0,
            ))

    db.session.commit()
    click.echo(
        f"PASS Seeded {len(DEMO_CATEGORIES)} categories, {len(DEMO_EMPLOYEES)} employees, {len(DEMO_ITEMS)} items."
    )


@click.group('settings')
def settings_group():
    """Costing method, tax rate and shortfall costing."""


@settings_group.command('show')
@with_appcontext
def show_settings():
    for key, value in settings_service.get_settings().items():
        click.echo(f"{key:<28} {value}")


@settings_group.command('costing-method')
@click.argument('name')
@with_appcontext
def set_costing_method_cli(name):
    """Set the costing method used by the next sale (FIFO or WeightedAverage)."""
    try:
        canonical = settings_service.set_costing_method(name)
        db.session.commit()
    except SalonPOSError as exc:
        db.session.rollback()
        _fail(exc)
    click.echo(f"PASS costingMethod = {canonical}")


@settings_group.command('tax-rate')
@click.argument('rate')
@with_appcontext
def set_tax_rate_cli(rate):
    """Set the sales tax rate as a fraction (0.10 = 10%)."""
    try:
        parsed = settings_service.set_tax_rate(rate)
        db.session.commit()
    except SalonPOSError as exc:
        db.session.rollback()
        _fail(exc)
    click.echo(f"PASS taxRate = {parsed}")


@settings_group.command('shortfall-costing')
@click.argument('name')
@with_appcontext
def set_shortfall_costing_cli(name):
    """How units sold beyond batch stock are costed (Zero or LastAverageCost)."""
    try:
        canonical = settings_service.set_shortfall_costing(name)
        db.session.commit()
    except SalonPOSError as exc:
        db.session.rollback()
        _fail(exc)
    click.echo(f"PASS shortfallCosting = {canonical}")


@click.group('inventory')
def inventory_group():
    """Stock movements and per-item summaries."""


@inventory_group.command('record')
@click.option('--item-id', required=True, help='Item ID')
@click.option('--type', 'movement_type', type=click.Choice(['Purchase', 'Usage', 'Return', 'Adjustment']), required=True)
@click.option('--quantity', type=int, required=True, help='Units (signed for Adjustment)')
@click.option('--unit-cost', default='0', show_default=True, help='Cost per unit')
@click.option('--note', default=None, help='Free-text note')
@with_appcontext
def record_inventory_cli(item_id, movement_type, quantity, unit_cost, note):
    try:
        record = inventory_service.record_inventory(
            item_id=item_id,
            type=movement_type,
            quantity=quantity,
            unit_cost=unit_cost,
            note=note,
        )
    except SalonPOSError as exc:
        _fail(exc)
    click.echo(f"PASS {record.type} {record.quantity} of {record.item_id} recorded (record {record.id})")


@inventory_group.command('summary')
@click.argument('item_id')
@with_appcontext
def inventory_summary_cli(item_id):
    try:
        summary = inventory_service.get_inventory_summary(item_id)
    except SalonPOSError as exc:
        _fail(exc)
    for key, value in summary.items():
        click.echo(f"{key:<20} {value}")


@click.group('reports')
def reports_group():
    """Sales, commission and stock reports."""


@reports_group.command('summary')
@click.option('--start', default=None, help='ISO start date (inclusive)')
@click.option('--end', default=None, help='ISO end date (inclusive)')
@with_appcontext
def summary_cli(start, end):
    try:
        summary = reporting_service.sales_summary(start=start, end=end)
    except SalonPOSError as exc:
        _fail(exc)
    for key, value in summary.items():
        click.echo(f"{key:<22} {value}")


@reports_group.command('commissions')
@click.option('--start', default=None, help='ISO start date (inclusive)')
@click.option('--end', default=None, help='ISO end date (inclusive)')
@with_appcontext
def commissions_cli(start, end):
    try:
        payouts = reporting_service.commission_payouts(start=start, end=end)
    except SalonPOSError as exc:
        _fail(exc)
    click.echo(f"{'Employee':<24} {'Lines':>6} {'Revenue':>12} {'Commission':>12} {'Owner':>12}")
    for row in payouts:
        click.echo(
            f"{row['name']:<24} {row['lines']:>6} {row['revenue']:>12} "
            f"{row['commission']:>12} {row['salon_owner_revenue']:>12}"
        )


@reports_group.command('valuation')
@with_appcontext
def valuation_cli():
    valuation = reporting_service.stock_valuation()
    click.echo(f"{'Item':<28} {'Stock':>6} {'Batches':>10} {'Avg cost':>10} {'Value':>12}")
    for row in valuation["items"]:
        click.echo(
            f"{row['name']:<28} {row['stock']:>6} {row['batch_quantity']:>10} "
            f"{row['average_cost']:>10} {row['inventory_value']:>12}"
        )
    click.echo(f"Total value: {format_money(valuation['total_value'])}")


@reports_group.command('low-stock')
@click.option('--threshold', type=int, default=None, help='Override the default reorder threshold')
@with_appcontext
def low_stock_cli(threshold):
    rows = reporting_service.low_stock(threshold=threshold)
    if not rows:
        click.echo("No items at or below their reorder threshold.")
        return
    for row in rows:
        click.echo(f"{row['name']:<28} stock={row['stock']} threshold={row['reorder_threshold']}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(settings_group)
    app.cli.add_command(inventory_group)
    app.cli.add_command(reports_group)
