# Overview: Flask CLI command groups for bootstrap, seeding, and invoice export.

# backend/storefront/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init
#   Create all tables (idempotent). Use `flask db upgrade` for migrated deployments.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users:
# - python -m flask users create-admin --name "Store Admin" --email admin@shreemobiles.in --password "Password123"
#   Create an admin account (prompts if options are omitted).
# - python -m flask users list
#
# Catalog:
# - python -m flask catalog seed
#   Insert the demo phone catalog. Products that already exist by name are skipped.
#
# Invoices:
# - python -m flask invoices render INV-20261019-000001 --out invoice.pdf
#   Write an invoice PDF to disk.

import click
from flask.cli import with_appcontext

from .errors import StorefrontError
from .extensions import db
from .models import Product, User, ROLE_ADMIN
from .services.auth_service import create_user
from .services.invoice_pdf import render_invoice_pdf
from .services.invoice_service import get_invoice_by_number
from .services.products_service import create_product


DEMO_CATALOG = [
    {"name": "iPhone 15 Pro", "brand": "Apple", "price": 134900.00, "stock": 12,
     "description": "6.1-inch, A17 Pro, titanium design"},
    {"name": "iPhone 15", "brand": "Apple", "price": 79900.00, "stock": 20,
     "description": "6.1-inch, A16 Bionic, 48MP camera"},
    {"name": "Galaxy S24 Ultra", "brand": "Samsung", "price": 129999.00, "stock": 8,
     "description": "6.8-inch QHD+, Snapdragon 8 Gen 3, S Pen"},
    {"name": "Galaxy A55", "brand": "Samsung", "price": 39999.00, "stock": 25,
     "description": "6.6-inch Super AMOLED, Exynos 1480"},
    {"name": "Pixel 8", "brand": "Google", "price": 75999.00, "stock": 10,
     "description": "6.2-inch Actua display, Tensor G3"},
    {"name": "OnePlus 12", "brand": "OnePlus", "price": 64999.00, "stock": 15,
     "description": "6.82-inch 2K LTPO, Snapdragon 8 Gen 3"},
    {"name": "Redmi Note 13 Pro", "brand": "Xiaomi", "price": 25999.00, "stock": 30,
     "description": "6.67-inch 1.5K AMOLED, 200MP camera"},
]


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Tables created.")
    click.echo("Next: python -m flask users create-admin")


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


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create-admin')
@click.option('--name', prompt=True, help='Display name')
@click.option('--email', prompt=True, help='Email address (login)')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@with_appcontext
def create_admin_cli(name, email, password):
    """
    Create an admin account.

    Password must be 8+ characters with at least one letter and one digit.
    """
    try:
        user = create_user(name=name, email=email, password=password, role=ROLE_ADMIN)
    except StorefrontError as e:
        raise click.ClickException(e.message)

    click.echo(f"PASS Created admin: {user.name} ({user.email})")
    click.echo("SECURITY Password securely hashed with bcrypt")


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users with their roles."""
    users = db.session.query(User).order_by(User.id.asc()).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Name':<25} {'Email':<32} {'Active':<8} {'Role'}")
    click.echo("="*80)

    for user in users:
        active_str = "Yes" if user.is_active else "No"
        click.echo(f"{user.id:<5} {user.name:<25} {user.email:<32} {active_str:<8} {user.role}")

    click.echo("="*80 + "\n")


@click.group('catalog')
def catalog_group():
    """Catalog bootstrap commands."""


@catalog_group.command('seed')
@click.option('--admin-email', default=None, help='Owner of the seeded products (defaults to the first admin)')
@with_appcontext
def seed_catalog(admin_email):
    """Insert the demo phone catalog. Idempotent by product name."""
    query = db.session.query(User).filter(User.role == ROLE_ADMIN)
    if admin_email:
        query = query.filter(User.email == admin_email.strip().lower())
    admin = query.order_by(User.id.asc()).first()
    if not admin:
        raise click.ClickException("No admin found. Run 'python -m flask users create-admin' first.")

    created = 0
    for entry in DEMO_CATALOG:
        if db.session.query(Product).filter_by(name=entry["name"]).first():
            click.echo(f"SKIP {entry['name']} already exists")
            continue
        product = create_product(patch=dict(entry), user_id=admin.id)
        click.echo(f"PASS {product.product_code} {product.brand} {product.name}")
        created += 1

    click.echo(f"Seeded {created} product(s).")


@click.group('invoices')
def invoices_group():
    """Invoice export commands."""


@invoices_group.command('render')
@click.argument('invoice_number')
@click.option('--out', 'out_path', type=click.Path(dir_okay=False, writable=True), default=None,
              help='Output file (defaults to invoice-<number>.pdf)')
@with_appcontext
def render_invoice_cli(invoice_number, out_path):
    """Write an invoice PDF to disk."""
    try:
        invoice = get_invoice_by_number(invoice_number)
    except StorefrontError as e:
        raise click.ClickException(e.message)

    out_path = out_path or f"invoice-{invoice.invoice_number}.pdf"
    pdf = render_invoice_pdf(invoice)
    with open(out_path, "wb") as fh:
        fh.write(pdf)
    click.echo(f"PASS Wrote {out_path} ({len(pdf)} bytes)")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(catalog_group)
    app.cli.add_command(invoices_group)
