# Overview: Flask CLI command groups for bootstrap, ledger inspection and seeding.

# backend/sampleledger/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create all tables (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Tenancy setup:
# - python -m flask brands create --name "Vital Drops" --code VD --shop-domain vitaldrops.myshopify.com --secret s3cr3t
# - python -m flask stores create --code SID-001 --name "Corner Market" --external-customer-id 7001
# - python -m flask brands link --brand VD --store SID-001
#   Create the store-brand partnership that commissions are credited to.
#
# Ledger inspection:
# - python -m flask ledger balance --store SID-001
#   Show partnership balances for a store.
# - python -m flask ledger verify [--partnership-id 3]
#   Check running balances against the sum of ledger rows.

from decimal import Decimal

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Brand, BrandPartnership, Store
from .services import credit_service
from .services.commission import format_cents


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

    This will DELETE ALL DATA, including the credit ledger!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete.")


@click.group('brands')
def brands_group():
    """Brand and partnership setup."""


@brands_group.command('create')
@click.option('--name', required=True)
@click.option('--code', required=True)
@click.option('--shop-domain', required=True)
@click.option('--secret', required=True, help='Webhook signing secret')
@click.option('--window-days', type=int, default=None, help='Attribution window (days)')
@click.option('--commission-rate', type=float, default=None, help='Percent, e.g. 10')
@with_appcontext
def create_brand(name, code, shop_domain, secret, window_days, commission_rate):
    """Create a brand that can receive webhooks."""
    from flask import current_app

    if db.session.query(Brand).filter_by(code=code).first():
        click.echo(f"FAIL Brand {code} already exists")
        return

    rate = commission_rate if commission_rate is not None else current_app.config["DEFAULT_COMMISSION_RATE"]
    brand = Brand(
        name=name,
        code=code,
        shop_domain=shop_domain.strip().lower(),
        webhook_secret=secret,
        attribution_window_days=window_days or current_app.config["DEFAULT_ATTRIBUTION_WINDOW_DAYS"],
        commission_rate=Decimal(str(rate)),
    )
    db.session.add(brand)
    db.session.commit()
    click.echo(f"PASS Created brand {brand.name} (ID: {brand.id}, domain: {brand.shop_domain})")


@brands_group.command('link')
@click.option('--brand', 'brand_code', required=True)
@click.option('--store', 'store_code', required=True)
@with_appcontext
def link_brand(brand_code, store_code):
    """Create (or report) the partnership between a store and a brand."""
    brand = db.session.query(Brand).filter_by(code=brand_code).first()
    store = db.session.query(Store).filter_by(store_code=store_code).first()
    if brand is None or store is None:
        click.echo("FAIL Brand or store not found")
        return

    partnership = credit_service.find_partnership(store.id, brand.id)
    if partnership is not None:
        click.echo(f"PASS Partnership already exists (ID: {partnership.id})")
        return

    partnership = BrandPartnership(store_id=store.id, brand_id=brand.id, credit_balance_cents=0)
    db.session.add(partnership)
    db.session.commit()
    click.echo(f"PASS Linked {store.store_code} to {brand.code} (partnership ID: {partnership.id})")


@click.group('stores')
def stores_group():
    """Partner store setup."""


@stores_group.command('create')
@click.option('--code', 'store_code', required=True)
@click.option('--name', required=True)
@click.option('--external-customer-id', default=None, help='Shop customer id the store orders wholesale as')
@click.option('--phone', default=None, help='Purchasing contact phone')
@with_appcontext
def create_store(store_code, name, external_customer_id, phone):
    if db.session.query(Store).filter_by(store_code=store_code).first():
        click.echo(f"FAIL Store {store_code} already exists")
        return

    store = Store(
        store_code=store_code,
        name=name,
        external_customer_id=external_customer_id,
        purchasing_phone=phone,
    )
    db.session.add(store)
    db.session.commit()
    click.echo(f"PASS Created store {store.name} (ID: {store.id}, code: {store.store_code})")


@click.group('ledger')
def ledger_group():
    """Credit ledger inspection."""


@ledger_group.command('balance')
@click.option('--store', 'store_code', required=True)
@with_appcontext
def ledger_balance(store_code):
    """Show every partnership balance for a store."""
    store = db.session.query(Store).filter_by(store_code=store_code).first()
    if store is None:
        click.echo(f"FAIL Store {store_code} not found")
        return

    partnerships = db.session.query(BrandPartnership).filter_by(store_id=store.id).all()
    if not partnerships:
        click.echo("No partnerships found.")
        return

    click.echo("\n" + "=" * 60)
    click.echo(f"{'ID':<6} {'Brand':<30} {'Status':<10} {'Balance'}")
    click.echo("=" * 60)
    for p in partnerships:
        click.echo(f"{p.id:<6} {p.brand.name:<30} {p.status:<10} {format_cents(p.credit_balance_cents)}")
    click.echo("=" * 60 + "\n")


@ledger_group.command('verify')
@click.option('--partnership-id', type=int, default=None, help='Check a single partnership')
@with_appcontext
def ledger_verify(partnership_id):
    """Compare running balances with the sum of their ledger rows."""
    if partnership_id is not None:
        ids = [partnership_id]
    else:
        ids = [row.id for row in db.session.query(BrandPartnership.id).order_by(BrandPartnership.id)]

    mismatches = 0
    for pid in ids:
        try:
            result = credit_service.verify_partnership_balance(pid)
        except credit_service.PartnershipNotFoundError:
            click.echo(f"FAIL Partnership {pid} not found")
            mismatches += 1
            continue
        if result["consistent"]:
            click.echo(f"PASS Partnership {pid}: {format_cents(result['balance_cents'])}")
        else:
            mismatches += 1
            click.echo(
                f"FAIL Partnership {pid}: balance {format_cents(result['balance_cents'])} "
                f"!= ledger sum {format_cents(result['ledger_sum_cents'])}"
            )

    if mismatches:
        raise click.ClickException(f"{mismatches} partnership(s) out of balance")
    click.echo(f"\nPASS {len(ids)} partnership(s) consistent")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(brands_group)
    app.cli.add_command(stores_group)
    app.cli.add_command(ledger_group)
