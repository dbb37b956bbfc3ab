# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/sareeshop/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Idempotent bootstrap: creates tables, the default partners, and one login
#   per partner whose <NAME>_PASSWORD env var is set (e.g. PUTTY_PASSWORD).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users:
# - python -m flask users list
# - python -m flask users create --username putty --password "..."
# - python -m flask users deactivate putty
#
# Partners:
# - python -m flask partners list
# - python -m flask partners seed
#
# Maintenance:
# - python -m flask maintenance cleanup-sessions --retention-days 30

import os

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db
from .models import User
from .services import cashflow_service, session_service
from .services.auth_service import PasswordValidationError, UserExistsError, create_user


def _password_env_var(partner_name: str) -> str:
    return f"{partner_name.strip().upper().replace(' ', '_')}_PASSWORD"


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """
    Initialize the shop database.

    Creates:
    - All tables (db.create_all; safe on an existing database)
    - The default partners from DEFAULT_PARTNERS
    - A login per partner, username = lowercased partner name, when
      <NAME>_PASSWORD is set in the environment
    """
    click.echo("START Initializing shop...")

    db.create_all()
    click.echo("PASS Tables ready")

    created = cashflow_service.seed_partners()
    click.echo(f"PASS Partners ready ({created} created)")

    click.echo("\nUSERS Creating partner logins...")
    for partner_name in current_app.config["DEFAULT_PARTNERS"]:
        env_var = _password_env_var(partner_name)
        password = os.environ.get(env_var)
        username = partner_name.strip().lower()

        if not password:
            click.echo(f"SKIP  {env_var} not set; no login for '{username}'")
            continue
        if db.session.query(User).filter_by(username=username).first():
            click.echo(f"WARN  User '{username}' already exists, skipping...")
            continue

        try:
            create_user(username=username, password=password)
            click.echo(f"PASS Created user: {username}")
        except PasswordValidationError as e:
            click.echo(f"FAIL Password validation failed for '{username}': {e}")

    click.echo("\nDONE Shop initialized.")


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
    """User inspection and bootstrap commands."""


@users_group.command('create')
@click.option('--username', prompt=True, help='Username')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@with_appcontext
def create_user_cli(username, password):
    """
    Create a login.

    Password: 8+ chars with at least one letter and one digit.
    """
    try:
        user = create_user(username=username, password=password)
    except PasswordValidationError as e:
        raise click.ClickException(f"Password validation failed: {e}")
    except (UserExistsError, ValueError) as e:
        raise click.ClickException(str(e))

    click.echo(f"PASS Created user: {user.username} (ID: {user.id})")


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users."""
    users = db.session.query(User).order_by(User.id.asc()).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "=" * 72)
    click.echo(f"{'ID':<5} {'Username':<20} {'Active':<8} {'Last login'}")
    click.echo("=" * 72)

    for user in users:
        active_str = "Yes" if user.is_active else "No"
        last_login = user.to_dict()["last_login_at"] or "never"
        click.echo(f"{user.id:<5} {user.username:<20} {active_str:<8} {last_login}")

    click.echo("=" * 72 + "\n")


@users_group.command('deactivate')
@click.argument('username')
@with_appcontext
def deactivate_user_cli(username):
    """Disable a login and end its sessions."""
    user = db.session.query(User).filter_by(username=username).first()
    if not user:
        raise click.ClickException(f"User '{username}' not found")

    user.is_active = False
    db.session.commit()
    revoked = session_service.revoke_all_user_sessions(user.id, reason="User deactivated")
    click.echo(f"PASS Deactivated '{username}' and revoked {revoked} session(s)")


@click.group('partners')
def partners_group():
    """Partner (cash-flow ledger) commands."""


@partners_group.command('list')
@with_appcontext
def list_partners_cli():
    for partner in cashflow_service.list_partners():
        click.echo(f"{partner['id']:<5} {partner['name']}")


@partners_group.command('seed')
@with_appcontext
def seed_partners_cli():
    """Create the DEFAULT_PARTNERS that are missing."""
    created = cashflow_service.seed_partners()
    click.echo(f"PASS Seeded {created} partner(s)")


@click.group('maintenance')
def maintenance_group():
    """Maintenance commands."""


@maintenance_group.command('cleanup-sessions')
@click.option('--retention-days', type=int, default=30, show_default=True)
@with_appcontext
def cleanup_sessions_cli(retention_days):
    """Delete expired or revoked sessions older than the retention window."""
    deleted = session_service.cleanup_expired_sessions(retention_days=retention_days)
    click.echo(f"Deleted {deleted} sessions older than {retention_days} days.")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(partners_group)
    app.cli.add_command(maintenance_group)
