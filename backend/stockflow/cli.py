# Overview: Flask CLI command groups for bootstrap and stock maintenance.

# backend/stockflow/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to stockflow (PowerShell: $env:FLASK_APP="stockflow").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create any missing tables (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Stock alerts:
# - python -m flask stock reconcile-alerts
#   Reconcile every alert against current inventory levels.
# - python -m flask stock register-threshold --product-id 1 --warehouse-id 2 --threshold 5
#   Create or update the alert threshold for one product at one warehouse.
# - python -m flask stock alerts --status active
#   List alerts (optionally filtered by status or warehouse).
# - python -m flask stock movements --reference TRF-2610-0001
#   List stock movements (optionally filtered by product, warehouse or document).
# - python -m flask stock next-codes
#   Show the next TRF/ADJ reference codes without allocating them.

import click
from flask.cli import with_appcontext

from .extensions import db
from .services import inventory_service, reference_service, stock_alert_service
from .services.concurrency import commit_or_raise
from .time_utils import utcnow
from .validation import ConcurrencyError, ValidationError


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    click.echo("BUILD  Creating missing tables...")
    db.create_all()
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

    click.echo("PASS Database reset complete.")


@click.group('stock')
def stock_group():
    """Stock alert maintenance commands."""


@stock_group.command('reconcile-alerts')
@with_appcontext
def reconcile_alerts():
    """Bring every stock alert in line with current inventory."""
    try:
        results = stock_alert_service.reconcile_all()
        commit_or_raise()
    except ConcurrencyError as e:
        db.session.rollback()
        raise click.ClickException(str(e))

    click.echo(
        f"PASS Reconciled: {results['created']} created, "
        f"{results['updated']} updated, {results['resolved']} resolved"
    )


@stock_group.command('register-threshold')
@click.option('--product-id', type=int, required=True, help='Product ID')
@click.option('--warehouse-id', type=int, required=True, help='Warehouse ID')
@click.option('--threshold', type=int, required=True, help='Alert when on-hand <= threshold')
@with_appcontext
def register_threshold(product_id, warehouse_id, threshold):
    """Create or update the alert threshold for a product at a warehouse."""
    try:
        alert, created = stock_alert_service.register_threshold(product_id, warehouse_id, threshold)
        commit_or_raise()
    except (ValidationError, ConcurrencyError) as e:
        db.session.rollback()
        raise click.ClickException(str(e))

    action = "Created" if created else "Updated"
    click.echo(
        f"PASS {action} alert {alert.id}: product {product_id} at warehouse {warehouse_id}, "
        f"threshold {alert.threshold}, on hand {alert.current_quantity}, status {alert.status}"
    )


@stock_group.command('alerts')
@click.option('--status', type=click.Choice(stock_alert_service.ALERT_STATUSES), default=None)
@click.option('--warehouse-id', type=int, default=None, help='Filter by warehouse')
@with_appcontext
def list_alerts(status, warehouse_id):
    """List stock alerts."""
    alerts = stock_alert_service.list_alerts(status=status, warehouse_id=warehouse_id)
    if not alerts:
        click.echo("No alerts found.")
        return

    click.echo(f"{'ID':<6} {'Product':<8} {'Warehouse':<10} {'Status':<9} {'Type':<13} {'Qty':>6} {'Thr':>6}")
    click.echo("-" * 64)
    for alert in alerts:
        click.echo(
            f"{alert['id']:<6} {alert['product_id']:<8} {alert['warehouse_id']:<10} "
            f"{alert['status']:<9} {alert['alert_type']:<13} "
            f"{alert['current_quantity']:>6} {alert['threshold']:>6}"
        )


@stock_group.command('movements')
@click.option('--product-id', type=int, default=None, help='Filter by product')
@click.option('--warehouse-id', type=int, default=None, help='Filter by warehouse')
@click.option('--reference', 'reference_code', default=None, help='Filter by document reference code')
@with_appcontext
def list_movements(product_id, warehouse_id, reference_code):
    """List stock movements, oldest first."""
    movements = inventory_service.list_movements(
        product_id=product_id,
        warehouse_id=warehouse_id,
        reference_code=reference_code,
    )
    if not movements:
        click.echo("No movements found.")
        return

    click.echo(f"{'ID':<6} {'Product':<8} {'Warehouse':<10} {'Delta':>7} {'After':>7}  {'Reference':<15} {'By':<6}")
    click.echo("-" * 66)
    for m in movements:
        click.echo(
            f"{m['id']:<6} {m['product_id']:<8} {m['warehouse_id']:<10} "
            f"{m['quantity_delta']:>+7} {m['quantity_after']:>7}  "
            f"{m['reference_code'] or '-':<15} {m['performed_by'] or '-':<6}"
        )


@stock_group.command('next-codes')
@with_appcontext
def next_codes():
    """Show the reference codes the next transfer and adjustment would get."""
    moment = utcnow()
    for prefix, entity_type in (
        (reference_service.TRANSFER_PREFIX, reference_service.TRANSFER_ENTITY),
        (reference_service.ADJUSTMENT_PREFIX, reference_service.ADJUSTMENT_ENTITY),
    ):
        number = reference_service.peek_next_number(entity_type, moment)
        code = reference_service.format_reference_code(prefix, moment.year, moment.month, number)
        click.echo(f"{entity_type:<11} {code}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(stock_group)
