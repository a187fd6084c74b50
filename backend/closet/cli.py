# Overview: Flask CLI command groups for bootstrap and ledger maintenance.

# backend/closet/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Create every table that does not exist yet (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Ledger maintenance:
# - python -m flask ledger recompute [--sale-id 12]
#   Rebuild installment and sale aggregates from the payment rows.
# - python -m flask ledger overdue [--today 2024-03-01]
#   List installments past their due date that are not fully paid.
# - python -m flask ledger upcoming [--today 2024-03-01]
#   Installments due today and through Sunday.

import click
from flask.cli import with_appcontext

from .errors import LedgerError
from .extensions import db
from .money import format_brl
from .services import installment_service
from .time_utils import parse_iso_date, today as business_today


def _parse_today(value):
    if not value:
        return business_today()
    try:
        return parse_iso_date(value)
    except ValueError:
        raise click.BadParameter("expected YYYY-MM-DD", param_hint="--today")


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """Create all tables that are missing. Safe to run repeatedly."""
    click.echo("START Creating tables...")
    db.create_all()
    click.echo("PASS Schema ready.")


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


@click.group('ledger')
def ledger_group():
    """Installment ledger maintenance and reports."""


@ledger_group.command('recompute')
@click.option('--sale-id', type=int, default=None, help='Only this sale')
@with_appcontext
def recompute(sale_id):
    """Rebuild paid/remaining/status of installments and sales from payments."""
    try:
        count = installment_service.recompute_all(sale_id)
    except LedgerError as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS Recomputed {count} sale(s).")


@ledger_group.command('overdue')
@click.option('--today', 'today_value', default=None, help='Reference date (YYYY-MM-DD)')
@with_appcontext
def overdue(today_value):
    """List installments past due and not fully paid."""
    entries = installment_service.list_overdue(today=_parse_today(today_value))
    if not entries:
        click.echo("PASS No overdue installments.")
        return

    for entry in entries:
        click.echo(
            f"  sale #{entry['sale_id']} parcela {entry['installment_number']} "
            f"due {entry['due_date']} ({entry['days_late']}d late) "
            f"{format_brl(entry['remaining_cents'])} "
            f"{entry['customer_name'] or '-'}"
        )
    total = sum(e["remaining_cents"] for e in entries)
    click.echo(f"WARN {len(entries)} overdue installment(s), {format_brl(total)} outstanding.")


@ledger_group.command('upcoming')
@click.option('--today', 'today_value', default=None, help='Reference date (YYYY-MM-DD)')
@with_appcontext
def upcoming(today_value):
    """Installments due today and later this week."""
    result = installment_service.get_upcoming(today=_parse_today(today_value))

    click.echo(f"Today ({result['today']}): {format_brl(result['total_due_today_cents'])}")
    for entry in result["due_today"]:
        click.echo(f"  sale #{entry['sale_id']} parcela {entry['installment_number']} {format_brl(entry['remaining_cents'])}")

    click.echo(f"Through {result['week_end']}: {format_brl(result['total_due_this_week_cents'])}")
    for entry in result["due_this_week"]:
        click.echo(
            f"  {entry['due_date']} sale #{entry['sale_id']} parcela {entry['installment_number']} "
            f"{format_brl(entry['remaining_cents'])}"
        )
    click.echo(f"Overdue: {result['overdue_count']}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(ledger_group)
