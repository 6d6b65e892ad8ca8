# Overview: Flask CLI command groups for bootstrap and inspection.

# backend/backoffice/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to backoffice (PowerShell: $env:FLASK_APP="backoffice").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create all tables that do not exist yet (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Store management (MULTI-TENANT):
# - python -m flask stores list
#   List all stores.
# - python -m flask stores create --name "Lahore Outlet" --currency PKR [--demo]
#   Create a new store (tenant).
#
# Inventory inspection:
# - python -m flask products low-stock --store-id 1
#   List products at or below their reorder threshold.

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db
from .models import Store
from .services import inventory_service


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables (existing tables are left alone)."""
    db.create_all()
    click.echo("PASS Database schema is up to date")


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

    click.echo("PASS Database reset complete")


@click.group('stores')
def stores_group():
    """Store (tenant) management commands."""


@stores_group.command('list')
@with_appcontext
def list_stores():
    """List all stores."""
    stores = db.session.query(Store).order_by(Store.id).all()
    if not stores:
        click.echo("No stores found")
        return

    for store in stores:
        demo = " [demo]" if store.is_demo else ""
        click.echo(f"{store.id}: {store.name} ({store.default_currency}){demo}")


@stores_group.command('create')
@click.option('--name', required=True, help='Store name')
@click.option('--currency', default=None, help='Default currency (defaults to DEFAULT_CURRENCY)')
@click.option('--demo', is_flag=True, help='Mark as a demo store')
@with_appcontext
def create_store(name, currency, demo):
    """Create a new store."""
    name = name.strip()
    if not name:
        raise click.BadParameter("name cannot be empty", param_hint="--name")

    store = Store(
        name=name,
        default_currency=(currency or current_app.config.get("DEFAULT_CURRENCY", "PKR")).upper(),
        is_demo=demo,
    )
    db.session.add(store)
    db.session.commit()
    click.echo(f"PASS Created store: {store.name} (ID: {store.id})")


@click.group('products')
def products_group():
    """Product and stock inspection commands."""


@products_group.command('low-stock')
@click.option('--store-id', type=int, required=True, help='Store ID')
@with_appcontext
def low_stock(store_id):
    """List products at or below their reorder threshold."""
    if db.session.get(Store, store_id) is None:
        raise click.ClickException(f"Store {store_id} not found")

    products = inventory_service.list_low_stock_products(store_id)
    if not products:
        click.echo("No low stock products")
        return

    for product in products:
        click.echo(
            f"{product.id}: {product.name} stock={product.stock_quantity} threshold={product.reorder_threshold}"
        )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(stores_group)
    app.cli.add_command(products_group)
