# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/kasir/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to kasir (PowerShell: $env:FLASK_APP="kasir").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create all tables (idempotent; use migrations for upgrades).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Catalog:
# - python -m flask products list [--all]
#   List products with stock and price.
# - python -m flask products seed
#   Insert a small demo catalog (skips barcodes that already exist).
#
# Inventory:
# - python -m flask inventory reconcile [--product-id 1]
#   Check the stock ledger against stored stock counts.
#
# Reports:
# - python -m flask reports sales --period weekly [--start 2024-01-01] [--end 2024-01-31]
#   Print a sales summary for the resolved window.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Product
from .errors import PosError
from .services import catalog_service, inventory_service, ledger_service, reporting_service
from .time_utils import parse_iso_datetime

DEMO_PRODUCTS = [
    {"name": "Mineral Water 600ml", "barcode": "8991002101234", "category": "Beverages", "price_cents": 350, "stock_quantity": 120},
    {"name": "Instant Noodles", "barcode": "8992388101017", "category": "Food", "price_cents": 300, "stock_quantity": 200},
    {"name": "Coffee Mug", "barcode": "3456789012345", "category": "Accessories", "price_cents": 1299, "stock_quantity": 24},
    {"name": "Wireless Mouse", "barcode": "2345678901234", "category": "Electronics", "price_cents": 4999, "stock_quantity": 8},
    {"name": "Notebook A5", "barcode": "8993988000011", "category": "Stationery", "price_cents": 1550, "stock_quantity": 5},
]


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database tables created.")


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


@click.group('products')
def products_group():
    """Catalog inspection and demo data."""


@products_group.command('list')
@click.option('--all', 'show_all', is_flag=True, help='Include inactive products')
@with_appcontext
def list_products_cli(show_all):
    """List products."""
    q = db.session.query(Product)
    if not show_all:
        q = q.filter(Product.is_active.is_(True))
    products = q.order_by(Product.name.asc()).all()

    if not products:
        click.echo("No products found.")
        return

    click.echo("\n" + "=" * 90)
    click.echo(f"{'ID':<5} {'Barcode':<16} {'Name':<30} {'Price':>10} {'Stock':>7} {'Active':<6}")
    click.echo("=" * 90)
    for p in products:
        price = f"{p.price_cents / 100:,.2f}"
        active_str = "Yes" if p.is_active else "No"
        click.echo(f"{p.id:<5} {(p.barcode or '-'):<16} {p.name[:30]:<30} {price:>10} {p.stock_quantity:>7} {active_str:<6}")
    click.echo("=" * 90 + "\n")


@products_group.command('seed')
@with_appcontext
def seed_products_cli():
    """
    Seed a small demo catalog.

    Safe to rerun: products whose barcode already exists are skipped.
    """
    created = 0
    for data in DEMO_PRODUCTS:
        if catalog_service.barcode_exists(data["barcode"]):
            click.echo(f"SKIP  {data['name']} (barcode {data['barcode']} exists)")
            continue
        catalog_service.create_product(patch=dict(data))
        created += 1
        click.echo(f"ADD   {data['name']}")
    click.echo(f"PASS Seeded {created} product(s).")


@click.group('inventory')
def inventory_group():
    """Stock ledger inspection."""


@inventory_group.command('reconcile')
@click.option('--product-id', type=int, help='Only check one product')
@with_appcontext
def reconcile_cli(product_id):
    """Compare SUM(stock movements) with stored stock counts."""
    if product_id is not None:
        try:
            rows = [ledger_service.reconcile(product_id)]
        except PosError as exc:
            raise click.ClickException(str(exc))
    else:
        rows = inventory_service.reconcile_all()

    mismatches = 0
    for row in rows:
        status = "OK" if row["balanced"] else "MISMATCH"
        if not row["balanced"]:
            mismatches += 1
        click.echo(
            f"{status:<9} product={row['product_id']:<5} "
            f"ledger={row['expected_stock']:<7} stock={row['stock_quantity']}"
        )

    if mismatches:
        raise click.ClickException(f"{mismatches} product(s) out of balance")
    click.echo(f"PASS {len(rows)} product(s) reconciled.")


@click.group('reports')
def reports_group():
    """Sales reporting."""


@reports_group.command('sales')
@click.option('--period', type=click.Choice(reporting_service.PERIODS), default='daily', show_default=True)
@click.option('--start', 'start', help='ISO-8601 start (inclusive)')
@click.option('--end', 'end', help='ISO-8601 end (inclusive)')
@with_appcontext
def sales_report_cli(period, start, end):
    """Print a sales summary."""
    try:
        start_date = parse_iso_datetime(start)
        end_date = parse_iso_datetime(end)
    except ValueError as exc:
        raise click.BadParameter(str(exc))

    report = reporting_service.sales_report(period=period, start_date=start_date, end_date=end_date)
    click.echo(f"Period:        {report['period']}")
    click.echo(f"Window:        {report['start_date']} .. {report['end_date']}")
    click.echo(f"Transactions:  {report['total_transactions']}")
    click.echo(f"Total sales:   {report['total_sales_cents'] / 100:,.2f}")
    click.echo(f"Average:       {report['average_transaction_cents'] / 100:,.2f}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(products_group)
    app.cli.add_command(inventory_group)
    app.cli.add_command(reports_group)
