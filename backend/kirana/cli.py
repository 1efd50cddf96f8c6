# Overview: Flask CLI command groups for bootstrap, legacy migration and balance inspection.

# backend/kirana/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init-db
#   Create all tables (if missing) and the id counters.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Ledger:
# - python -m flask ledger import-legacy /path/to/db.json
#   Load udharEntries/udharPayments from the previous JSON store into the legacy tables.
# - python -m flask ledger migrate
#   Copy legacy udhar records into the ledger (safe to repeat).
# - python -m flask ledger status
#   Show how many legacy records are still waiting for migration.
# - python -m flask ledger balance 42
#   Print a customer's balance view.

import click
from flask.cli import with_appcontext

from .extensions import db
from .money import as_number
from .services import ledger_service, migration_service
from .services.customer_service import get_customer
from .services.sequence_service import KNOWN_COUNTERS, ensure_counters, peek
from .validation import NotFoundError, ValidationError


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """
    Create every table that does not exist yet and the id counters.

    Idempotent. Production databases should use `flask db upgrade` instead.
    """
    click.echo("BUILD  Creating tables...")
    db.create_all()
    ensure_counters()
    db.session.commit()
    for name in KNOWN_COUNTERS:
        click.echo(f"PASS Counter {name}: {peek(name)}")
    click.echo("PASS Database ready.")


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
    ensure_counters()
    db.session.commit()

    click.echo("PASS Database reset complete.")


@click.group('ledger')
def ledger_group():
    """Customer ledger and legacy udhar commands."""


@ledger_group.command('import-legacy')
@click.argument('path', type=click.Path(exists=True, dir_okay=False))
@with_appcontext
def import_legacy(path):
    """Import legacy udhar records from an old JSON store."""
    try:
        result = migration_service.import_legacy_store(path)
    except (ValidationError, NotFoundError) as e:
        raise click.ClickException(str(e))
    click.echo(
        f"PASS Imported {result['imported_credits']} udhar entries "
        f"and {result['imported_payments']} udhar payments"
    )


@ledger_group.command('migrate')
@with_appcontext
def migrate_legacy():
    """Copy unmigrated legacy udhar records into the ledger."""
    result = migration_service.migrate_legacy_to_ledger()
    click.echo(f"PASS Migrated credits: {result['migrated_credits']}")
    click.echo(f"PASS Migrated payments: {result['migrated_payments']}")
    if result["skipped_orphans"]:
        click.echo(f"WARN Skipped {result['skipped_orphans']} records with unknown customers")


@ledger_group.command('status')
@with_appcontext
def migration_status():
    """Show legacy migration progress."""
    status = migration_service.migration_status()
    click.echo(f"Legacy credits:  {status['legacy_credits']}")
    click.echo(f"Legacy payments: {status['legacy_payments']}")
    click.echo(f"Migrated:        {status['migrated']}")
    click.echo(f"Pending:         {status['pending']}")


@ledger_group.command('balance')
@click.argument('customer_id', type=int)
@with_appcontext
def show_balance(customer_id):
    """Print a customer's all-time balance."""
    try:
        customer = get_customer(customer_id, include_deleted=True)
    except NotFoundError as e:
        raise click.ClickException(str(e))

    view = ledger_service.balance_of(customer.id)
    click.echo(f"{customer.name} ({customer.phone})")
    click.echo(f"  Credit:            {as_number(view.total_credit)}")
    click.echo(f"  Paid:              {as_number(view.total_paid)}")
    click.echo(f"  Ledger balance:    {as_number(view.ledger_balance)}")
    if not view.fully_migrated:
        click.echo(f"  Unmigrated legacy: {as_number(view.unmigrated_legacy_balance)} ({view.unmigrated_count} records)")
    click.echo(f"  Balance:           {as_number(view.balance)}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(ledger_group)
