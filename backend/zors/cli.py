# Overview: Flask CLI command groups for bootstrap, user management and ledger auditing.

# backend/zors/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Create tables (if missing) and the default admin/manager/cashier users.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users:
# - python -m flask users list
# - python -m flask users create --username jo --email jo@zors.local --password "Password123!" --role cashier
#
# Ledger audit:
# - python -m flask ledger verify [--product-id 3]
#   Re-check every stock transition against the transition rules; exits 1 on any violation.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import StockTransition, User
from .services.auth_service import create_user, AuthError, PasswordValidationError
from .services.stock_policy import is_consistent


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """
    Initialize the ZORS back office: schema and default users.

    Creates:
    - All tables (no-op for existing ones)
    - Users: admin/admin@zors.local, manager/manager@zors.local, cashier/cashier@zors.local
    - All passwords default to: "Password123!"

    SECURITY: Change passwords immediately in production!
    """
    click.echo("START Initializing ZORS system...")

    db.create_all()
    click.echo("PASS Schema ready")

    default_password = "Password123!"

    default_users = [
        ("admin", "admin@zors.local", "admin"),
        ("manager", "manager@zors.local", "manager"),
        ("cashier", "cashier@zors.local", "cashier"),
    ]

    click.echo("\nUSERS Creating default users...")
    for username, email, role in default_users:
        if db.session.query(User).filter_by(username=username).first():
            click.echo(f"WARN  User '{username}' already exists, skipping...")
            continue
        try:
            create_user(username=username, email=email, password=default_password, role=role)
            click.echo(f"PASS Created user: {username} ({email}) with role '{role}'")
        except (AuthError, PasswordValidationError) as e:
            click.echo(f"FAIL Failed to create user '{username}': {str(e)}")

    click.echo("\nDefault Credentials (CHANGE IN PRODUCTION!):")
    click.echo("   admin   -> admin@zors.local   / Password123!")
    click.echo("   manager -> manager@zors.local / Password123!")
    click.echo("   cashier -> cashier@zors.local / Password123!")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA, including the stock ledger!
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
    """User inspection and bootstrap commands."""


@users_group.command('create')
@click.option('--username', prompt=True, help='Username')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(['admin', 'manager', 'cashier']), prompt=True, help='Role')
@with_appcontext
def create_user_cli(username, email, password, role):
    """
    Create a new staff login.

    Password must meet strength requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    - At least one special character
    """
    try:
        create_user(username=username, email=email, password=password, role=role)
        click.echo(f"PASS Created user: {username} ({email}) with role '{role}'")
    except PasswordValidationError as e:
        click.echo(f"FAIL Password validation failed: {str(e)}")
        click.echo("Requirements: 8+ chars, uppercase, lowercase, digit, special char")
    except AuthError as e:
        click.echo(f"FAIL Failed to create user: {str(e)}")


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users with their roles."""
    users = db.session.query(User).order_by(User.id).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Username':<20} {'Email':<30} {'Active':<8} {'Role'}")
    click.echo("="*80)

    for user in users:
        active_str = "Yes" if user.is_active else "No"
        click.echo(f"{user.id:<5} {user.username:<20} {user.email:<30} {active_str:<8} {user.role}")

    click.echo("="*80 + "\n")


@click.group('ledger')
def ledger_group():
    """Stock ledger audit commands."""


@ledger_group.command('verify')
@click.option('--product-id', type=int, help='Only check one product')
@with_appcontext
def verify_ledger(product_id):
    """
    Re-check each stock transition:
    - previous/new/quantity agree with the transition rules
    - total_value_cents == quantity * unit_price_cents
    """
    q = db.session.query(StockTransition)
    if product_id is not None:
        q = q.filter(StockTransition.product_id == product_id)

    checked = 0
    problems = []
    for row in q.order_by(StockTransition.id).yield_per(500):
        checked += 1
        if not is_consistent(row.transaction_type, row.quantity, row.previous_stock, row.new_stock):
            problems.append(f"#{row.id} {row.transaction_type}: {row.previous_stock} -> {row.new_stock} (qty {row.quantity})")
        elif row.total_value_cents != row.quantity * row.unit_price_cents:
            problems.append(f"#{row.id} total_value_cents {row.total_value_cents} != {row.quantity} x {row.unit_price_cents}")

    for problem in problems:
        click.echo(f"FAIL {problem}")

    click.echo(f"Checked {checked} transitions, {len(problems)} problem(s)")
    if problems:
        raise SystemExit(1)


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(ledger_group)
