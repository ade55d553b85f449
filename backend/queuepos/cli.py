# Overview: Flask CLI command groups for bootstrap and queue operations.

# backend/queuepos/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init
#   Idempotent: creates tables, a demo shop and owner/cashier/kitchen users.
#
# Shops:
# - python -m flask shops list
# - python -m flask shops create --name "Dhaka Bites" --business-type Restaurant --prefix DB
# - python -m flask shops add-product --shop-id 1 --sku TEA --name "Milk Tea" --price-cents 2500 --stock 40
#
# Users:
# - python -m flask users create --shop-id 1 --username cashier2 --role cashier
#
# Queue:
# - python -m flask queue board --shop-id 1 [--date 2026-03-02]
# - python -m flask queue close-day --shop-id 1 [--date 2026-03-02]

import click
from flask.cli import with_appcontext

from .errors import QueueError
from .extensions import db
from .models import Shop, User
from .permissions import get_role_names
from .services.auth_service import create_user, PasswordValidationError
from .services import day_close_service, queue_token_service, shop_service

DEFAULT_PASSWORD = "Password123"


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init')
@click.option('--shop-name', default='Main Shop', help='Demo shop name')
@click.option('--business-type', default='Restaurant', help='Demo shop business type')
@with_appcontext
def init_system(shop_name, business_type):
    """
    Create tables, a demo shop and default users.

    Users: owner, cashier, kitchen (password "Password123"), plus a
    superuser "admin". Change passwords immediately in production!
    """
    click.echo("START Initializing queue system...")
    db.create_all()

    shop = db.session.query(Shop).first()
    if not shop:
        shop = shop_service.create_shop(shop_name, code="MAIN", business_type=business_type)
        click.echo(f"PASS Created shop: {shop.name} (ID: {shop.id})")
    else:
        click.echo(f"PASS Using existing shop: {shop.name} (ID: {shop.id})")

    defaults = [
        ("admin", "owner", None, True),
        ("owner", "owner", shop.id, False),
        ("cashier", "cashier", shop.id, False),
        ("kitchen", "kitchen", shop.id, False),
    ]
    for username, role, shop_id, is_superuser in defaults:
        if db.session.query(User).filter_by(username=username).first():
            click.echo(f"SKIP User {username} already exists")
            continue
        create_user(username, DEFAULT_PASSWORD, shop_id=shop_id, role=role, is_superuser=is_superuser)
        click.echo(f"PASS Created user {username} ({role})")

    click.echo("DONE System initialized")


@click.group('shops')
def shops_group():
    """Shop and catalog management."""


@shops_group.command('list')
@with_appcontext
def list_shops():
    for shop in db.session.query(Shop).order_by(Shop.id).all():
        state = "enabled" if shop.queue_token_enabled else "disabled"
        click.echo(f"{shop.id:>4}  {shop.name:<30} {shop.business_type or '-':<16} queue {state}")


@shops_group.command('create')
@click.option('--name', prompt=True, help='Shop name')
@click.option('--code', default=None, help='Unique shop code')
@click.option('--business-type', default=None, help='Free text, drives the workflow profile')
@click.option('--workflow', default=None, help='Explicit workflow profile override')
@click.option('--prefix', default=None, help='Token label prefix')
@click.option('--timezone', default=None, help='IANA timezone')
@click.option('--rollover-hour', type=click.IntRange(0, 23), default=0)
@click.option('--disable-queue', is_flag=True, help='Create with queue tokens switched off')
@with_appcontext
def create_shop_cli(name, code, business_type, workflow, prefix, timezone, rollover_hour, disable_queue):
    try:
        shop = shop_service.create_shop(
            name,
            code=code,
            business_type=business_type,
            queue_token_enabled=not disable_queue,
            queue_workflow=workflow,
            queue_token_prefix=prefix,
            timezone=timezone,
            day_rollover_hour=rollover_hour,
        )
    except QueueError as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS Created shop {shop.name} (ID: {shop.id})")


@shops_group.command('add-product')
@click.option('--shop-id', type=int, required=True)
@click.option('--sku', required=True)
@click.option('--name', required=True)
@click.option('--price-cents', type=int, required=True)
@click.option('--stock', type=int, default=None, help='Track stock with this on-hand quantity')
@with_appcontext
def add_product_cli(shop_id, sku, name, price_cents, stock):
    try:
        product = shop_service.create_product(
            shop_id,
            sku=sku,
            name=name,
            price_cents=price_cents,
            track_stock=stock is not None,
            stock_qty=stock or 0,
        )
    except QueueError as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS Created product {product.name} (ID: {product.id})")


@click.group('users')
def users_group():
    """User management."""


@users_group.command('create')
@click.option('--shop-id', type=int, default=None, help='Shop the user works in (omit for superuser)')
@click.option('--username', prompt=True)
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True)
@click.option('--role', type=click.Choice(get_role_names()), default='cashier')
@click.option('--superuser', is_flag=True)
@with_appcontext
def create_user_cli(shop_id, username, password, role, superuser):
    try:
        user = create_user(username, password, shop_id=shop_id, role=role, is_superuser=superuser)
    except (ValueError, PasswordValidationError) as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS Created user {user.username} ({user.role})")


@click.group('queue')
def queue_group():
    """Queue board inspection and end-of-day."""


@queue_group.command('board')
@click.option('--shop-id', type=int, required=True)
@click.option('--date', 'business_date', default=None, help='YYYY-MM-DD (default: current business day)')
@with_appcontext
def board_cli(shop_id, business_date):
    try:
        snapshot = queue_token_service.get_board_snapshot(shop_id, business_date)
    except QueueError as e:
        raise click.ClickException(str(e))

    click.echo(f"{snapshot['shop']['name']}  {snapshot['business_date']}  ({snapshot['workflow']['name']})")
    for token in snapshot["tokens"]:
        settled = f" sale #{token['settled_sale_id']}" if token["settled_sale_id"] else ""
        click.echo(
            f"  {token['token_label']:<12} {token['status_label']:<12} "
            f"{token['total_cents'] / 100:>10.2f}{settled}"
        )
    if not snapshot["tokens"]:
        click.echo("  (no tokens)")


@queue_group.command('close-day')
@click.option('--shop-id', type=int, required=True)
@click.option('--date', 'business_date', default=None, help='YYYY-MM-DD (default: current business day)')
@with_appcontext
def close_day_cli(shop_id, business_date):
    try:
        result = day_close_service.close_day(shop_id, business_date)
    except QueueError as e:
        raise click.ClickException(str(e))
    click.echo(
        f"PASS {result.business_date.isoformat()}: cancelled {result.cancelled_count} "
        f"of {result.pending_count} pending token(s), "
        f"{result.pending_total_cents / 100:.2f} unpaid"
    )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(shops_group)
    app.cli.add_command(users_group)
    app.cli.add_command(queue_group)
