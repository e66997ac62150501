# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/tradie/cli.py
# Run from backend/ with FLASK_APP=wsgi.py:  flask <group> <command> [options]
#
# Local database:
# - flask system reset-db --yes
#   Drop and recreate every table.
#
# Account inspection/bootstrap:
# - flask accounts list
#   List all accounts with verification and active status.
# - flask accounts create --email owner@example.com [--username owner] [--password "Password123!"]
#   Create an account explicitly (passwordless when --password is omitted).
# - flask accounts set-business --email owner@example.com --name "Sparky Electrical" --quote-prefix "SE-Q-"
#   Create or update the business profile (numbering prefixes, GST registration).
#
# Maintenance (schedule these with cron):
# - flask maintenance sweep-login-codes
#   Delete expired one-time login codes.
# - flask maintenance cleanup-sessions --retention-days 30
#   Delete expired/revoked sessions older than the retention window.
# - flask maintenance mark-overdue
#   Move sent/partially paid invoices past their due date to overdue.
# - flask maintenance cleanup-security-events --retention-days 90
#   Delete security events older than the retention window.
# - flask maintenance run-all
#   All of the above in one pass.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Account, BusinessSettings
from .services import auth_service, invoice_service, maintenance_service, session_service
from .services.auth_service import PasswordValidationError
from .validation import ValidationError, ConflictError


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Do not ask for confirmation')
@with_appcontext
def reset_db(yes):
    """Drop and recreate every table. Local development only: all quotes, invoices and accounts are lost."""
    if not yes:
        click.confirm("Every table will be dropped. Continue?", abort=True)

    db.drop_all()
    db.create_all()
    click.echo(f"PASS Recreated {len(db.metadata.sorted_tables)} tables.")


@click.group('accounts')
def accounts_group():
    """Account management commands."""


@accounts_group.command('create')
@click.option('--email', prompt=True, help='Email address')
@click.option('--username', default=None, help='Username (derived from the email if omitted)')
@click.option('--password', default=None, help='Optional password for password sign-in')
@with_appcontext
def create_account_cli(email, username, password):
    """Create an account."""
    try:
        account = auth_service.create_account(email, username=username, password=password)
    except (ValidationError, ConflictError, PasswordValidationError) as e:
        raise click.ClickException(str(e))

    click.echo(f"PASS Created account {account.id}: {account.email} ({account.username})")


@accounts_group.command('list')
@with_appcontext
def list_accounts():
    """List all accounts."""
    accounts = db.session.query(Account).order_by(Account.id.asc()).all()

    if not accounts:
        click.echo("No accounts found.")
        return

    click.echo("\n" + "="*100)
    click.echo(f"{'ID':<5} {'Username':<25} {'Email':<35} {'Verified':<9} {'Active':<7} {'Password'}")
    click.echo("="*100)

    for account in accounts:
        verified_str = "Yes" if account.email_verified else "No"
        active_str = "Yes" if account.is_active else "No"
        password_str = "Yes" if account.password_hash else "No"
        click.echo(
            f"{account.id:<5} {account.username:<25} {account.email:<35} "
            f"{verified_str:<9} {active_str:<7} {password_str}"
        )

    click.echo("="*100 + "\n")


@accounts_group.command('set-business')
@click.option('--email', required=True, help='Account email')
@click.option('--name', 'business_name', required=True, help='Business name')
@click.option('--quote-prefix', default=None, help='Quote number prefix (default QT-)')
@click.option('--invoice-prefix', default=None, help='Invoice number prefix (default TT-)')
@click.option('--gst/--no-gst', 'gst_registered', default=True, show_default=True)
@with_appcontext
def set_business_cli(email, business_name, quote_prefix, invoice_prefix, gst_registered):
    """Create or update an account's business profile."""
    try:
        normalized = auth_service.normalize_email(email)
    except ValidationError as e:
        raise click.ClickException(str(e))

    account = db.session.query(Account).filter_by(email=normalized).first()
    if not account:
        raise click.ClickException(f"No account for {normalized}")

    settings = db.session.query(BusinessSettings).filter_by(owner_id=account.id).first()
    if settings is None:
        settings = BusinessSettings(owner_id=account.id, business_name=business_name)
        db.session.add(settings)
    settings.business_name = business_name
    settings.quote_prefix = quote_prefix
    settings.invoice_prefix = invoice_prefix
    settings.gst_registered = gst_registered
    db.session.commit()

    click.echo(f"PASS Business profile saved for {account.email}")


@click.group('maintenance')
def maintenance_group():
    """Periodic cleanup jobs (schedule with cron)."""


@maintenance_group.command('sweep-login-codes')
@with_appcontext
def sweep_login_codes_cli():
    """Delete expired one-time login codes."""
    deleted = auth_service.sweep_expired()
    click.echo(f"Deleted {deleted} expired login codes.")


@maintenance_group.command('cleanup-sessions')
@click.option('--retention-days', type=int, default=30, show_default=True)
@with_appcontext
def cleanup_sessions_cli(retention_days):
    """Delete expired or revoked sessions older than the retention window."""
    deleted = session_service.cleanup_expired_sessions(retention_days=retention_days)
    click.echo(f"Deleted {deleted} sessions older than {retention_days} days.")


@maintenance_group.command('mark-overdue')
@with_appcontext
def mark_overdue_cli():
    """Mark invoices past their due date as overdue."""
    updated = invoice_service.mark_overdue_invoices()
    click.echo(f"Marked {updated} invoices overdue.")


@maintenance_group.command('cleanup-security-events')
@click.option('--retention-days', type=int, default=90, show_default=True)
@with_appcontext
def cleanup_security_events_cli(retention_days):
    """Delete audit rows older than the retention window."""
    deleted = maintenance_service.cleanup_security_events(retention_days=retention_days)
    click.echo(f"Deleted {deleted} security events older than {retention_days} days.")


@maintenance_group.command('run-all')
@with_appcontext
def run_all_cli():
    """Run every maintenance job."""
    results = maintenance_service.run_all()
    for job, count in results.items():
        click.echo(f"{job}: {count}")


def register_commands(app):
    """Attach the system, accounts and maintenance groups to app.cli."""
    app.cli.add_command(system_group)
    app.cli.add_command(accounts_group)
    app.cli.add_command(maintenance_group)
