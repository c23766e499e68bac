# Overview: Flask CLI command groups for bootstrap, catalog setup, and invoice follow-up.

# backend/retail_pos/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Idempotent bootstrap: creates tables, a default category and a default staff member.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Catalog:
# - python -m flask products create --name "Ao thun" --category "Clothing" --import-price 80000 --retail-price 120000 --quantity 10 --image ./shirt.png
#   Create a product with a freshly allocated DDMMYY##### code.
#
# Invoices:
# - python -m flask invoices regenerate 42
#   Render the invoice for order 42 again, replacing the stored PDF.
# - python -m flask invoices missing [--regenerate]
#   List committed orders with no stored invoice (after InvoiceGenerationFailed warnings).

import base64
import mimetypes
from pathlib import Path

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Category, User
from .services import invoice_service, products_service
from .services.invoice_service import InvoiceError
from .services.sequence_service import GenerationFailed
from .validation import ValidationError, enforce_rules_product


DEFAULT_CATEGORY = "General"
DEFAULT_STAFF = ("Default Cashier", "cashier@retailpos.local", "cashier")


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """
    Initialize the database: tables, a default category and a default staff
    member to attribute sales to. Safe to run more than once.
    """
    click.echo("START Initializing Retail POS...")

    db.create_all()
    click.echo("PASS Tables ready")

    category = db.session.query(Category).filter_by(name=DEFAULT_CATEGORY).first()
    if not category:
        category = Category(name=DEFAULT_CATEGORY)
        db.session.add(category)
        db.session.commit()
        click.echo(f"PASS Created category: {category.name} (ID: {category.id})")
    else:
        click.echo(f"PASS Using existing category: {category.name} (ID: {category.id})")

    fullname, email, role = DEFAULT_STAFF
    staff = db.session.query(User).filter_by(email=email).first()
    if not staff:
        staff = User(fullname=fullname, email=email, role=role)
        db.session.add(staff)
        db.session.commit()
        click.echo(f"PASS Created staff member: {fullname} (ID: {staff.id})")
    else:
        click.echo(f"WARN  Staff member '{email}' already exists, skipping...")

    click.echo("DONE Retail POS initialized")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA! Stored invoice PDFs are left on disk.
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete. Run 'python -m flask system init' to initialize.")


@click.group('products')
def products_group():
    """Catalog commands."""


def _read_image(path: str) -> dict:
    content_type = mimetypes.guess_type(path)[0] or "application/octet-stream"
    data = base64.b64encode(Path(path).read_bytes()).decode("ascii")
    return {"data": data, "content_type": content_type}


@products_group.command('create')
@click.option('--name', required=True, help='Product name')
@click.option('--category', 'category_name', default=DEFAULT_CATEGORY, show_default=True, help='Category name (created if missing)')
@click.option('--import-price', type=int, required=True, help='Import price in VND')
@click.option('--retail-price', type=int, required=True, help='Retail price in VND')
@click.option('--quantity', type=int, required=True, help='Initial stock (>= 1)')
@click.option('--description', default=None, help='Description')
@click.option('--image', 'images', multiple=True, required=True, type=click.Path(exists=True, dir_okay=False), help='Image file (1-4)')
@with_appcontext
def create_product_cli(name, category_name, import_price, retail_price, quantity, description, images):
    """Create a product; its code is allocated from today's sequence."""
    category = db.session.query(Category).filter_by(name=category_name).first()
    if not category:
        category = Category(name=category_name)
        db.session.add(category)
        db.session.commit()

    patch = {
        "name": name,
        "description": description,
        "import_price": import_price,
        "retail_price": retail_price,
        "category_id": category.id,
        "quantity": quantity,
        "images": [_read_image(p) for p in images],
    }

    try:
        enforce_rules_product(patch, creating=True)
        product = products_service.create_product(patch=patch)
    except (ValidationError, GenerationFailed) as e:
        raise click.ClickException(str(e))

    click.echo(f"PASS Created product {product.code}: {product.name} (qty {product.quantity})")


@click.group('invoices')
def invoices_group():
    """Invoice follow-up commands."""


@invoices_group.command('regenerate')
@click.argument('order_id', type=int)
@with_appcontext
def regenerate_invoice_cli(order_id):
    """Render the invoice for ORDER_ID again."""
    try:
        path = invoice_service.generate_invoice(order_id)
    except InvoiceError as e:
        raise click.ClickException(f"{e} {e.details}")
    click.echo(f"PASS Invoice for order {order_id} written to {path}")


@invoices_group.command('missing')
@click.option('--limit', type=int, default=100, show_default=True)
@click.option('--regenerate', is_flag=True, help='Render every missing invoice')
@with_appcontext
def missing_invoices_cli(limit, regenerate):
    """List committed orders that have no stored invoice."""
    missing = invoice_service.orders_missing_invoice(limit=limit)
    if not missing:
        click.echo("PASS Every order has an invoice")
        return

    click.echo(f"WARN  {len(missing)} order(s) without an invoice: {', '.join(str(i) for i in missing)}")
    if not regenerate:
        return

    failed = 0
    for order_id in missing:
        try:
            invoice_service.generate_invoice(order_id)
            click.echo(f"PASS Order {order_id}")
        except InvoiceError as e:
            failed += 1
            click.echo(f"FAIL Order {order_id}: {e}")
    if failed:
        raise click.ClickException(f"{failed} invoice(s) could not be generated")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(products_group)
    app.cli.add_command(invoices_group)
