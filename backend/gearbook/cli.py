# Overview: Flask CLI command groups for bootstrap, accounts, credits and ledger checks.

# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init [--admin-email admin@gearbook.local]
#   Idempotent bootstrap: default roles and grants, default sections, admin user.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users:
# - python -m flask users create --email ann@example.org --role member --credits 100
# - python -m flask users issue-token ann@example.org [--hours 24]
#   Print a bearer token for the API.
#
# Credits:
# - python -m flask credits adjust --reason "Lost strap" -- 3 -20
#   Negative amounts go after "--".
# - python -m flask ledger verify
#   Exit code 1 when any balance differs from the sum of its transactions.

import sys
from datetime import timedelta

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Role, User
from .permissions import ROLE_ADMIN, DEFAULT_ROLE_PERMISSIONS
from .services import bootstrap_service, session_service
from .services.registry import get_services
from .validation import GearbookError


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--admin-email', default='admin@gearbook.local', help='Email of the bootstrap admin')
@with_appcontext
def init_system(admin_email):
    """
    Initialize gearbook: roles, permissions, default sections and an admin.

    Creates:
    - Roles: admin, staff, member (with default grants)
    - Sections: "Unassigned" (system) and "General"
    - Admin user (if the email is not taken)
    """
    click.echo("START Initializing gearbook...")

    added = bootstrap_service.ensure_default_roles(db.session)
    roles = db.session.query(Role).all()
    click.echo(f"PASS Roles: {', '.join(r.name for r in roles)} ({added} grants added)")

    system, default = bootstrap_service.ensure_default_sections(db.session)
    click.echo(f"PASS Sections: {system.name} (system), {default.name}")

    if db.session.query(User).filter_by(email=admin_email.lower()).first():
        click.echo(f"WARN  User '{admin_email}' already exists, skipping...")
    else:
        user = bootstrap_service.create_user(
            db.session,
            get_services().ledger,
            email=admin_email,
            first_name="Admin",
            role_name=ROLE_ADMIN,
        )
        click.echo(f"PASS Created admin user: {user.email} (ID: {user.id})")

    click.echo("DONE gearbook initialized. Issue a token with: flask users issue-token <email>")


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
    click.echo("BUILD Creating all tables...")
    db.create_all()
    click.echo("PASS Database reset complete. Run: flask system init")


# =============================================================================
# USERS
# =============================================================================

@click.group('users')
def users_group():
    """User account commands."""


@users_group.command('create')
@click.option('--email', prompt=True, help='Email (login identity)')
@click.option('--first-name', default='', help='First name')
@click.option('--last-name', default='', help='Last name')
@click.option('--role', 'role_name', type=click.Choice(sorted(DEFAULT_ROLE_PERMISSIONS)), default='member')
@click.option('--credits', 'initial_credits', type=int, default=0, help='Initial credit balance')
@with_appcontext
def create_user_cmd(email, first_name, last_name, role_name, initial_credits):
    """Create a user account."""
    try:
        user = bootstrap_service.create_user(
            db.session,
            get_services().ledger,
            email=email,
            first_name=first_name,
            last_name=last_name,
            role_name=role_name,
            initial_credits=initial_credits,
        )
    except GearbookError as e:
        click.echo(f"FAIL {e.message}")
        sys.exit(1)
    click.echo(f"PASS Created user {user.email} (ID: {user.id}, role: {role_name}, credits: {user.credit_balance})")


@users_group.command('issue-token')
@click.argument('email')
@click.option('--hours', type=int, default=None, help='Token lifetime (defaults to SESSION_TOKEN_TTL_HOURS)')
@with_appcontext
def issue_token_cmd(email, hours):
    """Print a bearer token for EMAIL."""
    user = db.session.query(User).filter_by(email=email.strip().lower()).first()
    if not user:
        click.echo(f"FAIL User '{email}' not found")
        sys.exit(1)
    ttl = timedelta(hours=hours) if hours else None
    _, token = session_service.create_session(db.session, user.id, ttl=ttl)
    click.echo(token)


# =============================================================================
# CREDITS / LEDGER
# =============================================================================

@click.group('credits')
def credits_group():
    """Credit balance commands."""


@credits_group.command('adjust')
@click.argument('user_id', type=int)
@click.argument('amount', type=int)
@click.option('--reason', required=True, help='Why the balance changes (recorded on the transaction)')
@with_appcontext
def adjust_credits_cmd(user_id, amount, reason):
    """Add (positive) or remove (negative) credits."""
    try:
        entry = get_services().ledger.adjust_credits(db.session, user_id, amount, reason=reason)
    except GearbookError as e:
        click.echo(f"FAIL {e.message}")
        sys.exit(1)
    click.echo(f"PASS User {user_id} balance: {entry.transaction.balance_after}")


@click.group('ledger')
def ledger_group():
    """Ledger consistency commands."""


@ledger_group.command('verify')
@with_appcontext
def verify_ledger_cmd():
    """Check credit_balance == sum(transactions) for every user."""
    mismatches = get_services().ledger.verify_all(db.session)
    if not mismatches:
        click.echo("PASS All balances match their transaction history")
        return
    for row in mismatches:
        click.echo(
            f"FAIL User {row['user_id']}: balance {row['credit_balance']} != ledger {row['ledger_sum']}"
        )
    sys.exit(1)


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(credits_group)
    app.cli.add_command(ledger_group)
