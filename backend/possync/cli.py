# Overview: Flask CLI command groups for bootstrap, catalog setup, and seller tokens.

# backend/possync/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init [--shop "Main Shop"]
#   Create tables, a default shop, and an admin account.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Sellers:
# - python -m flask sellers create --username ana --shop-id 1 [--role seller]
# - python -m flask sellers issue-token --username ana
#   Prints a bearer token once; only its hash is stored.
#
# Catalog and stock:
# - python -m flask catalog add-product --name "Rice 1kg" --sell-price 10.00 --cost-price 6.00 --tax-rate 10 --total-stock 100
# - python -m flask stock transfer --shop-id 1 --product-id 1 --quantity 20

from datetime import timedelta
from decimal import Decimal

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db
from .models import Product, Seller, Shop
from .models.auth import ROLE_ADMIN, ROLE_SELLER, ROLES
from .services import session_service, stock_service
from .services.errors import ProductNotFound


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--shop', 'shop_name', default='Main Shop', help='Default shop name')
@click.option('--admin-username', default='admin', help='Admin account username')
@with_appcontext
def init_system(shop_name, admin_username):
    """
    Create the schema, a default shop and an admin account. Idempotent.
    """
    click.echo("START Initializing possync...")

    db.create_all()
    click.echo("PASS Tables ready")

    shop = db.session.query(Shop).filter_by(name=shop_name).first()
    if not shop:
        shop = Shop(name=shop_name, is_active=True)
        db.session.add(shop)
        db.session.commit()
        click.echo(f"PASS Created shop: {shop.name} (ID: {shop.id})")
    else:
        click.echo(f"PASS Using existing shop: {shop.name} (ID: {shop.id})")

    admin = db.session.query(Seller).filter_by(username=admin_username).first()
    if admin:
        click.echo(f"WARN  Account '{admin_username}' already exists, skipping...")
    else:
        admin = Seller(username=admin_username, full_name="Administrator", role=ROLE_ADMIN)
        db.session.add(admin)
        db.session.commit()
        click.echo(f"PASS Created admin: {admin.username} (ID: {admin.id})")

    click.echo("\nDONE Run 'python -m flask sellers issue-token --username "
               f"{admin_username}' to get an API token.")


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

    click.echo("PASS Database reset complete. Run 'python -m flask system init' to initialize.")


@click.group('sellers')
def sellers_group():
    """Seller accounts and API tokens."""


@sellers_group.command('create')
@click.option('--username', prompt=True)
@click.option('--full-name', default=None)
@click.option('--role', type=click.Choice(ROLES), default=ROLE_SELLER, show_default=True)
@click.option('--shop-id', type=int, default=None, help='Shop the seller is bound to')
@with_appcontext
def create_seller(username, full_name, role, shop_id):
    """Create a seller (bound to one shop) or an admin."""
    if role == ROLE_SELLER and shop_id is None:
        raise click.UsageError("--shop-id is required for sellers")
    if shop_id is not None and db.session.get(Shop, shop_id) is None:
        raise click.ClickException(f"Shop {shop_id} not found")
    if db.session.query(Seller).filter_by(username=username).first():
        raise click.ClickException(f"Username '{username}' is taken")

    seller = Seller(username=username, full_name=full_name, role=role, shop_id=shop_id)
    db.session.add(seller)
    db.session.commit()
    click.echo(f"PASS Created {role}: {seller.username} (ID: {seller.id}, shop: {shop_id or '-'})")


@sellers_group.command('issue-token')
@click.option('--username', prompt=True)
@with_appcontext
def issue_token(username):
    """Issue a bearer token for a seller. The token is printed once."""
    seller = db.session.query(Seller).filter_by(username=username).first()
    if not seller:
        raise click.ClickException(f"Seller '{username}' not found")

    hours = current_app.config.get("SESSION_ABSOLUTE_TIMEOUT_HOURS") or 24
    try:
        record, token = session_service.create_session(
            db.session,
            seller.id,
            absolute_timeout=timedelta(hours=hours),
        )
    except ValueError as e:
        raise click.ClickException(str(e))

    click.echo(f"PASS Token for {seller.username} (expires {record.expires_at:%Y-%m-%d %H:%M} UTC):")
    click.echo(token)


@click.group('catalog')
def catalog_group():
    """Product catalog commands."""


@catalog_group.command('add-product')
@click.option('--name', prompt=True)
@click.option('--sell-price', type=Decimal, prompt=True)
@click.option('--cost-price', type=Decimal, default=Decimal("0"), show_default=True)
@click.option('--tax-rate', type=Decimal, default=Decimal("0"), show_default=True, help='Percent, e.g. 10')
@click.option('--unit', default=None)
@click.option('--total-stock', type=int, default=0, show_default=True, help='Central pool quantity')
@with_appcontext
def add_product(name, sell_price, cost_price, tax_rate, unit, total_stock):
    """Add a product to the catalog."""
    if sell_price < 0 or cost_price < 0 or tax_rate < 0 or total_stock < 0:
        raise click.UsageError("prices, tax rate and stock must be non-negative")

    product = Product(
        name=name,
        unit=unit,
        sell_price=sell_price,
        cost_price=cost_price,
        tax_rate=tax_rate,
        total_stock=total_stock,
        active=True,
    )
    db.session.add(product)
    db.session.commit()
    click.echo(f"PASS Created product: {product.name} (ID: {product.id}, price: {product.sell_price})")


@click.group('stock')
def stock_group():
    """Shop stock commands."""


@stock_group.command('transfer')
@click.option('--shop-id', type=int, required=True)
@click.option('--product-id', type=int, required=True)
@click.option('--quantity', type=int, required=True)
@with_appcontext
def transfer(shop_id, product_id, quantity):
    """Move units from a product's central pool into a shop."""
    try:
        level = stock_service.transfer_stock(
            db.session,
            shop_id,
            product_id,
            quantity,
            lock_timeout_ms=current_app.config.get("STOCK_LOCK_TIMEOUT_MS"),
        )
    except (stock_service.StockError, ProductNotFound) as e:
        click.echo(f"FAIL Transfer failed: {e}")
        raise SystemExit(1)

    click.echo(f"PASS Shop {shop_id} now holds {level.on_hand} of product {product_id}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(sellers_group)
    app.cli.add_command(catalog_group)
    app.cli.add_command(stock_group)
