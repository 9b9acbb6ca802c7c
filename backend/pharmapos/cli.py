# Overview: Flask CLI command groups for bootstrap, ledger verification, and users.

# backend/pharmapos/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init [--admin-email admin@pharmapos.local]
#   Idempotent bootstrap: creates tables, the company profile and a default admin.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Ledger:
# - python -m flask ledger verify [--product-id 7]
#   Check that every product's quantity equals opening quantity plus its ledger.
#
# Users:
# - python -m flask users list
# - python -m flask users create --name "Ama" --email ama@pharmapos.local --role cashier

import click
from flask.cli import with_appcontext

from .errors import PosError
from .extensions import db
from .models import User
from .models.auth import ROLE_ADMIN, ROLES
from .services.company_service import get_company_profile
from .services.ledger_service import verify_ledger
from .services.user_service import create_user, list_users as all_users


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--admin-name', default='Administrator', help='Display name of the default admin')
@click.option('--admin-email', default='admin@pharmapos.local', help='Email of the default admin')
@with_appcontext
def init_system(admin_name, admin_email):
    """
    Initialize the database, company profile and default admin user.

    Safe to run repeatedly; existing rows are left untouched.
    """
    click.echo("START Initializing PharmaPOS...")

    db.create_all()
    company = get_company_profile()
    db.session.commit()
    click.echo(f"PASS Company profile: {company.name} (tax {company.tax_rate_bps} bps)")

    existing = db.session.query(User).filter_by(email=admin_email.lower()).first()
    if existing:
        click.echo(f"WARN  User '{existing.email}' already exists, skipping...")
    else:
        user = create_user(name=admin_name, email=admin_email, role=ROLE_ADMIN)
        click.echo(f"PASS Created admin user: {user.name} ({user.email}) id={user.id}")

    click.echo("DONE PharmaPOS initialized.")


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


@click.group('ledger')
def ledger_group():
    """Stock ledger inspection commands."""


@ledger_group.command('verify')
@click.option('--product-id', type=int, default=None, help='Check a single product')
@with_appcontext
def verify_ledger_cmd(product_id):
    """Report products whose quantity disagrees with opening quantity + ledger."""
    mismatches = verify_ledger(product_id=product_id)
    if not mismatches:
        click.echo("PASS Ledger consistent with product quantities.")
        return

    for row in mismatches:
        click.echo(
            f"FAIL {row['product_name']} (ID: {row['product_id']}): "
            f"quantity={row['quantity']} expected={row['expected_quantity']} "
            f"(opening {row['opening_quantity']} + ledger {row['ledger_net']})"
        )
    raise click.exceptions.Exit(1)


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('list')
@with_appcontext
def list_users():
    users = all_users()
    if not users:
        click.echo("No users found.")
        return
    for u in users:
        status = "active" if u.is_active else "inactive"
        click.echo(f"{u.id:>4}  {u.name:<24} {u.email:<32} {u.role:<8} {status}")


@users_group.command('create')
@click.option('--name', prompt=True)
@click.option('--email', prompt=True)
@click.option('--role', type=click.Choice(sorted(ROLES)), default='cashier', show_default=True)
@with_appcontext
def create_user_cmd(name, email, role):
    try:
        user = create_user(name=name, email=email, role=role)
    except PosError as e:
        raise click.ClickException(e.message)
    click.echo(f"PASS Created user: {user.name} ({user.email}) with role '{user.role}' id={user.id}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(ledger_group)
    app.cli.add_command(users_group)
