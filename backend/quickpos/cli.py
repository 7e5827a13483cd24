# Overview: Flask CLI command groups for bootstrap, users, and stock maintenance.

# backend/quickpos/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Idempotent bootstrap: creates all tables and a default admin user.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users:
# - python -m flask users list
#   List all users with admin and active flags.
# - python -m flask users create --name "Thu Ngan" --email cashier@quickpos.local --password "secret1" [--admin]
#   Create a user (prompts if options are omitted).
#
# Inventory:
# - python -m flask inventory rebuild-stock [--dry-run]
#   Recompute every product's stock column from the movement ledger.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import User
from .services.auth_service import create_user, PasswordValidationError, UserExistsError
from .services import inventory_service

DEFAULT_ADMIN_EMAIL = "admin@quickpos.local"
DEFAULT_ADMIN_PASSWORD = "admin123"


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """
    Initialize QuickPOS: create tables and a default admin user.

    Default admin: admin@quickpos.local / admin123

    SECURITY: Change the password immediately in production!
    """
    click.echo("START Initializing QuickPOS...")

    db.create_all()
    click.echo("PASS Tables created")

    existing = db.session.query(User).filter_by(email=DEFAULT_ADMIN_EMAIL).first()
    if existing:
        click.echo(f"WARN  User '{DEFAULT_ADMIN_EMAIL}' already exists, skipping...")
    else:
        create_user(
            name="Admin",
            email=DEFAULT_ADMIN_EMAIL,
            password=DEFAULT_ADMIN_PASSWORD,
            is_admin=True,
        )
        click.echo(f"PASS Created admin user: {DEFAULT_ADMIN_EMAIL}")

    click.echo("\nDONE QuickPOS initialized.")
    click.echo(f"   admin -> {DEFAULT_ADMIN_EMAIL} / {DEFAULT_ADMIN_PASSWORD} (CHANGE IN PRODUCTION!)")


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


@click.group('users')
def users_group():
    """User management commands."""


@users_group.command('create')
@click.option('--name', prompt=True, help='Display name')
@click.option('--email', prompt=True, help='Email address (login)')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--admin', 'is_admin', is_flag=True, help='Grant admin access')
@with_appcontext
def create_user_cli(name, email, password, is_admin):
    """Create a new user. Password must be at least 6 characters."""
    try:
        user = create_user(name=name, email=email, password=password, is_admin=is_admin)
    except (PasswordValidationError, UserExistsError, ValueError) as e:
        click.echo(f"FAIL {e}")
        raise SystemExit(1)

    role = "admin" if user.is_admin else "staff"
    click.echo(f"PASS Created user: {user.name} ({user.email}) as {role}")


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users."""
    users = db.session.query(User).order_by(User.id).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Name':<20} {'Email':<35} {'Admin':<7} {'Active'}")
    click.echo("="*80)

    for user in users:
        admin_str = "Yes" if user.is_admin else "No"
        active_str = "Yes" if user.is_active else "No"
        click.echo(f"{user.id:<5} {user.name:<20} {user.email:<35} {admin_str:<7} {active_str}")

    click.echo("="*80 + "\n")


@click.group('inventory')
def inventory_group():
    """Stock ledger maintenance."""


@inventory_group.command('rebuild-stock')
@click.option('--dry-run', is_flag=True, help='Report drift without writing')
@with_appcontext
def rebuild_stock(dry_run):
    """Recompute Product.stock from the movement ledger."""
    changed = inventory_service.rebuild_stock(commit=not dry_run)

    if not changed:
        click.echo("PASS All product stock matches the ledger.")
        return

    for product, old, new in changed:
        click.echo(f"FIX  #{product.id} {product.name}: {old} -> {new}")

    verb = "would be corrected" if dry_run else "corrected"
    click.echo(f"PASS {len(changed)} product(s) {verb}.")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(inventory_group)
