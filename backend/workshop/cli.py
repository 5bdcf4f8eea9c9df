# Overview: Flask CLI command groups for bootstrap and counter operations.

# backend/workshop/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init-db
#   Create all tables (use `flask db upgrade` for migration-managed databases).
# - python -m flask system seed-users
#   Create default admin/cashier accounts if they do not exist.
#
# Users:
# - python -m flask users create --username budi --full-name "Budi" --password "Password123" --role CASHIER
# - python -m flask users list
# - python -m flask users issue-token --username budi
#   Print a fresh session token (for scripts and API testing).
#
# Catalog / inventory:
# - python -m flask catalog add-product --sku OLI-001 --name "Oli Mesin" --price-sell 350000 --price-buy 250000 --stock 10
# - python -m flask inventory stock-in --product-id 1 --qty 10 --buy-price 300000
# - python -m flask inventory low-stock

import click
from flask.cli import with_appcontext

from .errors import WorkshopError
from .extensions import db
from .models import User
from .models.auth import ROLE_ADMIN, ROLE_CASHIER, VALID_ROLES
from .services import auth_service, catalog_service, inventory_service, session_service


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database tables created")


@system_group.command('seed-users')
@click.option('--password', default='Password123', help='Password for the seeded accounts')
@with_appcontext
def seed_users(password):
    """Idempotently create default admin and cashier accounts."""
    for username, full_name, role in (
        ("admin", "Administrator", ROLE_ADMIN),
        ("kasir", "Kasir", ROLE_CASHIER),
    ):
        if db.session.query(User).filter_by(username=username).first():
            click.echo(f"SKIP {username} already exists")
            continue
        auth_service.create_user(username, full_name, password, role)
        click.echo(f"PASS Created {username} ({role})")


@click.group('users')
def users_group():
    """User management commands."""


@users_group.command('create')
@click.option('--username', prompt=True, help='Username')
@click.option('--full-name', prompt=True, help='Full name')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(VALID_ROLES, case_sensitive=False), default=ROLE_CASHIER, help='Role')
@with_appcontext
def create_user_cli(username, full_name, password, role):
    try:
        user = auth_service.create_user(username, full_name, password, role)
    except WorkshopError as e:
        raise click.ClickException(e.message)
    click.echo(f"PASS Created user: {user.username} with role '{user.role}'")


@users_group.command('list')
@with_appcontext
def list_users():
    users = db.session.query(User).order_by(User.id).all()
    if not users:
        click.echo("No users found")
        return
    for user in users:
        status = "active" if user.is_active else "inactive"
        click.echo(f"{user.id:>4}  {user.username:<20} {user.role:<8} {status}")


@users_group.command('issue-token')
@click.option('--username', required=True, help='Username')
@with_appcontext
def issue_token(username):
    user = db.session.query(User).filter_by(username=username).first()
    if not user:
        raise click.ClickException(f"User '{username}' not found")
    _, token = session_service.create_session(user.id, user_agent="flask-cli")
    click.echo(token)


@click.group('catalog')
def catalog_group():
    """Catalog commands."""


@catalog_group.command('add-product')
@click.option('--sku', required=True)
@click.option('--name', required=True)
@click.option('--price-sell', required=True, type=str)
@click.option('--price-buy', default='0', type=str)
@click.option('--stock', 'opening_stock', default=0, type=int)
@click.option('--category', default=None)
@with_appcontext
def add_product(sku, name, price_sell, price_buy, opening_stock, category):
    try:
        product = catalog_service.create_product(
            sku=sku,
            name=name,
            price_sell=price_sell,
            price_buy=price_buy,
            opening_stock=opening_stock,
            category=category,
        )
    except (WorkshopError, ValueError) as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS Created product {product.sku} (id {product.id}, stock {product.stock})")


@click.group('inventory')
def inventory_group():
    """Inventory commands."""


@inventory_group.command('stock-in')
@click.option('--product-id', required=True, type=int)
@click.option('--qty', required=True, type=int)
@click.option('--buy-price', default=None, type=str)
@click.option('--notes', default=None)
@with_appcontext
def stock_in_cli(product_id, qty, buy_price, notes):
    try:
        result = inventory_service.stock_in(product_id, qty, buy_price=buy_price, notes=notes)
    except (WorkshopError, ValueError) as e:
        raise click.ClickException(str(e))
    click.echo(
        f"PASS Stock {result['stock_before']} -> {result['stock_after']}, "
        f"average cost {result['price_buy_before']} -> {result['price_buy_after']}"
    )


@inventory_group.command('low-stock')
@with_appcontext
def low_stock_cli():
    products = inventory_service.low_stock_products()
    if not products:
        click.echo("No products at or below their alert level")
        return
    for product in products:
        click.echo(f"{product.sku:<16} {product.name:<40} stock={product.stock} alert={product.min_stock_alert}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(catalog_group)
    app.cli.add_command(inventory_group)
