# Overview: Flask CLI command group for schema bootstrap, demo data and ledger verification.

# backend/catalog_admin/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Use: flask --app wsgi catalog <command> [options]
#
# - flask --app wsgi catalog init-db
#   Create all tables (use `flask --app wsgi db upgrade` for migrated databases).
# - flask --app wsgi catalog reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - flask --app wsgi catalog seed [--per-category 10] [--days 60] [--seed 42]
#   Wipe data and load demo categories, products, stock and sales.
# - flask --app wsgi catalog verify-ledger
#   Replay every product's inventory history; exit code 1 on any mismatch.

import random
from datetime import timedelta
from decimal import Decimal

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Category, InventoryHistoryEntry, InventoryRecord, Product, Sale
from .services import categories_service, inventory_service, products_service, sales_service
from .time_utils import utcnow

SEED_CATEGORIES = ("Electronics", "Books", "Clothing", "Home", "Sports")


@click.group('catalog')
def catalog_group():
    """Catalog database bootstrap and maintenance commands."""


@catalog_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Tables created.")


@catalog_group.command('reset-db')
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

    click.echo("PASS Database reset complete. Run 'flask --app wsgi catalog seed' to load demo data.")


def _wipe_data():
    # Reverse dependency order
    for model in (InventoryHistoryEntry, Sale, InventoryRecord, Product, Category):
        db.session.query(model).delete(synchronize_session=False)
    db.session.commit()


@catalog_group.command('seed')
@click.option('--per-category', default=10, show_default=True, type=click.IntRange(min=1), help='Products per category')
@click.option('--days', default=60, show_default=True, type=click.IntRange(min=1), help='Days of sales history')
@click.option('--seed', 'seed_value', default=None, type=int, help='Random seed for reproducible data')
@with_appcontext
def seed(per_category, days, seed_value):
    """
    Replace all data with demo categories, products, stock and sales.

    Stock and sales go through the same service calls as the API, so the
    inventory history mirrors every initial quantity and every sale.
    """
    rng = random.Random(seed_value)

    _wipe_data()
    click.echo("PASS Cleared old data.")

    products = []
    for category_name in SEED_CATEGORIES:
        category = categories_service.create_category(name=category_name)
        for i in range(1, per_category + 1):
            name = f"{category_name} Item {i}"
            price = Decimal(str(rng.uniform(10, 500))).quantize(Decimal("0.01"))
            products.append(
                products_service.create_product(
                    patch={
                        "name": name,
                        "description": f"Description for {name}",
                        "price": price,
                        "category_id": category["id"],
                        "initial_quantity": rng.randrange(0, 100),
                    }
                )
            )
    click.echo(f"PASS Inserted {len(SEED_CATEGORIES)} categories, {len(products)} products.")

    now = utcnow()
    sale_count = 0
    for day_offset in range(days):
        sale_date = now - timedelta(days=day_offset)
        for _ in range(rng.randint(3, 7)):
            product = rng.choice(products)
            sales_service.record_sale(
                product_id=product["id"],
                quantity=rng.randint(1, 5),
                sale_date=sale_date,
            )
            sale_count += 1
    click.echo(f"PASS Recorded {sale_count} sales over {days} days.")


@catalog_group.command('verify-ledger')
@with_appcontext
def verify_ledger():
    """Audit every product's inventory history against its stored quantity."""
    reports = inventory_service.audit_all_ledgers()
    broken = [r for r in reports if not r["consistent"]]

    for report in broken:
        click.echo(f"FAIL product {report['product_id']}: quantity={report['quantity']} ledger_sum={report['ledger_sum']}")
        for problem in report["problems"]:
            click.echo(f"  - {problem}")

    if broken:
        click.echo(f"FAIL {len(broken)} of {len(reports)} products inconsistent.")
        raise SystemExit(1)

    click.echo(f"PASS {len(reports)} products consistent.")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(catalog_group)
