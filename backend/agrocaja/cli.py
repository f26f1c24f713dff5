# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/agrocaja/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create all tables that do not exist yet (use `flask db upgrade` for migrations).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask system cleanup-sessions --retention-days 30
#   Delete expired/revoked session tokens older than the retention window.
#
# Users:
# - python -m flask users create --username ana --email ana@finca.local --password "Password123!" --farm "La Esperanza"
#   Create an owner account (prompts if options are omitted).
# - python -m flask users list
# - python -m flask users set-farm ana "El Roble"
# - python -m flask users deactivate ana
#
# Settlements:
# - python -m flask settlements reconcile [--username ana] [--farm "La Esperanza"]
#   Re-apply settled flags for entries captured by completed settlements.

import click
from flask.cli import with_appcontext

from .errors import ValidationError
from .extensions import db
from .models import Settlement, User
from .services import session_service
from .services.auth_service import PasswordValidationError, create_user, set_active_farm
from .services.settlement_service import reconcile_farm


def _get_user(username: str) -> User:
    user = db.session.query(User).filter_by(username=username).first()
    if not user:
        raise click.ClickException(f"User '{username}' not found")
    return user


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create missing tables. Idempotent."""
    db.create_all()
    click.echo("PASS Database tables created.")


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

    click.echo("PASS Database reset complete. Run 'python -m flask users create' to add an owner.")


@system_group.command('cleanup-sessions')
@click.option('--retention-days', default=30, show_default=True, type=int)
@with_appcontext
def cleanup_sessions(retention_days):
    deleted = session_service.cleanup_expired_sessions(retention_days=retention_days)
    click.echo(f"PASS Deleted {deleted} session(s).")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create')
@click.option('--username', prompt=True, help='Username')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--display-name', default=None, help='Name shown on records')
@click.option('--farm', default=None, help='Initial active farm')
@with_appcontext
def create_user_cli(username, email, password, display_name, farm):
    """
    Create a new owner account.

    Password must meet strength requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    - At least one special character
    """
    try:
        user = create_user(
            username=username,
            email=email,
            password=password,
            display_name=display_name,
            active_farm=farm,
        )
    except PasswordValidationError as e:
        raise click.ClickException(f"Password validation failed: {e}")
    except (ValueError, ValidationError) as e:
        db.session.rollback()
        raise click.ClickException(str(e))

    click.echo(f"PASS Created user: {user.username} ({user.email}) id={user.id} farm={user.active_farm or '-'}")


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users."""
    users = db.session.query(User).order_by(User.id).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*90)
    click.echo(f"{'ID':<5} {'Username':<20} {'Email':<30} {'Active':<8} {'Farm'}")
    click.echo("="*90)

    for user in users:
        active_str = "Yes" if user.is_active else "No"
        click.echo(f"{user.id:<5} {user.username:<20} {user.email:<30} {active_str:<8} {user.active_farm or '-'}")

    click.echo("="*90 + "\n")


@users_group.command('set-farm')
@click.argument('username')
@click.argument('farm')
@with_appcontext
def set_farm_cli(username, farm):
    """Change a user's active farm."""
    user = _get_user(username)
    try:
        set_active_farm(user, farm)
    except ValidationError as e:
        db.session.rollback()
        raise click.ClickException(e.message)
    click.echo(f"PASS {user.username} now works on farm '{user.active_farm}'")


@users_group.command('deactivate')
@click.argument('username')
@with_appcontext
def deactivate_user_cli(username):
    """Deactivate an account and revoke its sessions."""
    user = _get_user(username)
    user.is_active = False
    db.session.commit()
    revoked = session_service.revoke_all_user_sessions(user.id, reason="User account deactivated")
    click.echo(f"PASS {user.username} deactivated, {revoked} session(s) revoked")


@click.group('settlements')
def settlements_group():
    """Settlement maintenance commands."""


@settlements_group.command('reconcile')
@click.option('--username', default=None, help='Only this owner')
@click.option('--farm', default=None, help='Only this farm')
@with_appcontext
def reconcile_cli(username, farm):
    """
    Re-apply settled flags for entries captured by COMPLETED settlements.

    Idempotent; safe to run at any time.
    """
    query = db.session.query(Settlement.owner_id, Settlement.farm).distinct()
    if username:
        query = query.filter(Settlement.owner_id == _get_user(username).id)
    if farm:
        query = query.filter(Settlement.farm == farm)

    books = query.all()
    if not books:
        click.echo("No settlements found.")
        return

    total = 0
    for owner_id, book_farm in books:
        repaired = reconcile_farm(owner_id, book_farm)
        total += repaired
        click.echo(f"{'FIX ' if repaired else 'PASS'} owner={owner_id} farm='{book_farm}' repaired={repaired}")

    click.echo(f"DONE {total} entr{'y' if total == 1 else 'ies'} repaired across {len(books)} farm(s)")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(settlements_group)
