# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/digistock/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Use: python -m flask --app digistock <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask --app digistock system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask --app digistock system verify-ledger
#   Check every product's stock and every platform's balance against its movement trail.
#
# Platforms:
# - python -m flask --app digistock platforms create --name "Netflix Reseller" --initial-credit-cents 500000
#   Create a platform, optionally with an opening balance.
# - python -m flask --app digistock platforms add-credit --platform-id plat-... --amount-cents 100000
#   Top up a platform's prepaid credit.
# - python -m flask --app digistock platforms low-balance
#   List active platforms at or below their low balance threshold.
#
# Products:
# - python -m flask --app digistock products create --name "Netflix 1 month" --platform-id plat-... --buying-price-cents 1500
#   Create a product (stock starts at zero; record a purchase to stock it).
# - python -m flask --app digistock products low-stock
#   List active products at or below their minimum stock alert.

import click
from flask.cli import with_appcontext

from .errors import LedgerError, format_cents
from .extensions import db
from .models import DigitalProduct, Platform
from .services import catalog_service, credit_service, stock_service
from .validation import enforce_rules_product


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


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


@system_group.command('verify-ledger')
@with_appcontext
def verify_ledger():
    """Compare stock and credit balances with their movement trails."""
    problems = []
    for product in db.session.query(DigitalProduct).order_by(DigitalProduct.name).all():
        problems.extend(stock_service.verify_stock_trail(product.id))
    for platform in db.session.query(Platform).order_by(Platform.name).all():
        problems.extend(credit_service.verify_credit_trail(platform.id))

    if not problems:
        click.echo("PASS Stock and credit ledgers are consistent")
        return
    for problem in problems:
        click.echo(f"FAIL {problem}")
    raise SystemExit(1)


# =============================================================================
# PLATFORM COMMANDS
# =============================================================================

@click.group('platforms')
def platforms_group():
    """Platform and credit commands."""


@platforms_group.command('create')
@click.option('--name', required=True, help='Platform name (unique)')
@click.option('--description', default=None, help='Free text description')
@click.option('--contact-email', default=None, help='Supplier contact email')
@click.option('--initial-credit-cents', type=int, default=0, show_default=True, help='Opening balance')
@click.option('--threshold-cents', type=int, default=None, help='Low balance threshold')
@with_appcontext
def create_platform_cli(name, description, contact_email, initial_credit_cents, threshold_cents):
    """Create a platform."""
    patch = {"name": name, "description": description, "contact_email": contact_email}
    if threshold_cents is not None:
        patch["low_balance_threshold_cents"] = threshold_cents
    try:
        platform = catalog_service.create_platform(
            patch=patch,
            initial_credit_cents=initial_credit_cents,
            created_by="cli",
        )
    except LedgerError as exc:
        click.echo(f"FAIL {exc}")
        return

    click.echo(
        f"PASS Created platform: {platform.name} (ID: {platform.id}, "
        f"balance {format_cents(platform.credit_balance_cents)})"
    )


@platforms_group.command('add-credit')
@click.option('--platform-id', required=True, help='Platform ID')
@click.option('--amount-cents', type=int, required=True, help='Amount to add, in cents')
@click.option('--description', default=None, help='Why the credit was added')
@click.option('--reference', default=None, help='External reference (transfer id, receipt)')
@with_appcontext
def add_credit_cli(platform_id, amount_cents, description, reference):
    """Top up a platform's prepaid credit."""
    try:
        movement = credit_service.add_platform_credit(
            platform_id,
            amount_cents,
            description=description,
            reference=reference,
            created_by="cli",
        )
    except LedgerError as exc:
        click.echo(f"FAIL {exc}")
        return

    click.echo(
        f"PASS Added {format_cents(amount_cents)} to {platform_id}: "
        f"{format_cents(movement.previous_balance_cents)} -> {format_cents(movement.new_balance_cents)}"
    )


@platforms_group.command('low-balance')
@with_appcontext
def low_balance_cli():
    """List active platforms at or below their low balance threshold."""
    rows = credit_service.platforms_with_low_balance()
    if not rows:
        click.echo("No platforms below their threshold.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<40} {'Name':<24} {'Balance':>12}")
    click.echo("="*80)
    for row in rows:
        click.echo(
            f"{row['platform_id']:<40} {row['platform_name'][:24]:<24} "
            f"{format_cents(row['current_balance_cents']):>12}"
        )
    click.echo("="*80 + "\n")


# =============================================================================
# PRODUCT COMMANDS
# =============================================================================

@click.group('products')
def products_group():
    """Product catalog commands."""


@products_group.command('create')
@click.option('--name', required=True, help='Product name')
@click.option('--category', default='digital-account', show_default=True, help='Product category')
@click.option('--duration-type', default='1month', show_default=True, help='Subscription duration type')
@click.option('--platform-id', default=None, help='Platform the product is sourced from')
@click.option('--buying-price-cents', type=int, default=0, show_default=True, help='Platform buying price')
@click.option('--sell-price-cents', type=int, default=0, show_default=True, help='Suggested selling price')
@click.option('--min-stock', type=int, default=0, show_default=True, help='Low stock alert level')
@with_appcontext
def create_product_cli(name, category, duration_type, platform_id, buying_price_cents, sell_price_cents, min_stock):
    """Create a product. Stock starts at zero."""
    patch = {
        "name": name,
        "category": category,
        "duration_type": duration_type,
        "platform_id": platform_id,
        "platform_buying_price_cents": buying_price_cents,
        "suggested_sell_price_cents": sell_price_cents,
        "min_stock_alert": min_stock,
    }
    try:
        enforce_rules_product(patch)
        product = catalog_service.create_product(patch=patch)
    except LedgerError as exc:
        click.echo(f"FAIL {exc}")
        return

    click.echo(f"PASS Created product: {product.name} (ID: {product.id})")


@products_group.command('low-stock')
@with_appcontext
def low_stock_cli():
    """List active products at or below their minimum stock alert."""
    products = stock_service.low_stock_products()
    if not products:
        click.echo("No products below their stock alert.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<40} {'Name':<24} {'Stock':>6} {'Alert':>6}")
    click.echo("="*80)
    for product in products:
        click.echo(
            f"{product.id:<40} {product.name[:24]:<24} {product.current_stock:>6} {product.min_stock_alert:>6}"
        )
    click.echo("="*80 + "\n")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(platforms_group)
    app.cli.add_command(products_group)
