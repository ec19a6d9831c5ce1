# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/itad/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create any missing tables (idempotent). Use `flask db upgrade` where migrations are managed.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Driver directory:
# - python -m flask drivers list [--all]
# - python -m flask drivers create --name "Sam Carter" --vehicle-reg "AB12 CDE" --vehicle-type van --fuel-type diesel
# - python -m flask drivers deactivate 3
#
# Catalog:
# - python -m flask catalog list
#
# Booking inspection:
# - python -m flask bookings status BK-2026-0001
#   Show a booking, its job, completion progress and timeline.

import click
from flask.cli import with_appcontext

from .catalog import ASSET_CATEGORIES, FUEL_TYPES, GRADE_MULTIPLIERS, VEHICLE_TYPES
from .errors import LifecycleError
from .extensions import db
from .services import driver_service, lifecycle_service, record_service, timeline_service


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
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

    click.echo("PASS Database reset complete.")


@click.group('drivers')
def drivers_group():
    """Driver directory commands."""


@drivers_group.command('list')
@click.option('--all', 'show_all', is_flag=True, help='Show inactive drivers too')
@with_appcontext
def list_drivers_cli(show_all):
    """List drivers."""
    drivers = driver_service.list_drivers(include_inactive=show_all)

    if not drivers:
        click.echo("No drivers found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Name':<28} {'Vehicle':<12} {'Type':<8} {'Fuel':<10} {'Active'}")
    click.echo("="*80)

    for driver in drivers:
        active_str = "Yes" if driver.is_active else "No"
        click.echo(
            f"{driver.id:<5} {driver.name:<28} {driver.vehicle_reg:<12} "
            f"{driver.vehicle_type:<8} {driver.vehicle_fuel_type:<10} {active_str}"
        )

    click.echo("="*80 + "\n")


@drivers_group.command('create')
@click.option('--name', required=True, help='Driver name')
@click.option('--vehicle-reg', required=True, help='Vehicle registration')
@click.option('--vehicle-type', type=click.Choice(VEHICLE_TYPES), default='van', show_default=True)
@click.option('--fuel-type', type=click.Choice(FUEL_TYPES), default='diesel', show_default=True)
@click.option('--phone', default=None, help='Contact phone')
@with_appcontext
def create_driver_cli(name, vehicle_reg, vehicle_type, fuel_type, phone):
    """Register a driver."""
    try:
        driver = driver_service.create_driver(name, vehicle_reg, vehicle_type, fuel_type, phone)
    except LifecycleError as exc:
        raise click.ClickException(exc.message)

    click.echo(f"PASS Created driver {driver.name} (ID: {driver.id}, vehicle: {driver.vehicle_reg})")


@drivers_group.command('deactivate')
@click.argument('driver_id', type=int)
@with_appcontext
def deactivate_driver_cli(driver_id):
    """Hide a driver from assignment."""
    try:
        driver = driver_service.deactivate_driver(driver_id)
    except LifecycleError as exc:
        raise click.ClickException(exc.message)

    click.echo(f"PASS Deactivated driver {driver.name} (ID: {driver.id})")


@click.group('catalog')
def catalog_group():
    """Asset catalog inspection."""


@catalog_group.command('list')
def list_catalog_cli():
    """List asset categories and grade multipliers."""
    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<10} {'Name':<20} {'CO2e kg/unit':>14} {'Weight kg':>10} {'Value':>10}")
    click.echo("="*80)

    for category in ASSET_CATEGORIES.values():
        click.echo(
            f"{category.id:<10} {category.name:<20} {category.co2e_per_unit_kg:>14} "
            f"{category.avg_weight_kg:>10} {category.base_value_pence / 100:>10.2f}"
        )

    click.echo("="*80)
    click.echo("Grades: " + ", ".join(f"{g} x{m}" for g, m in GRADE_MULTIPLIERS.items()))
    click.echo("")


@click.group('bookings')
def bookings_group():
    """Booking inspection."""


@bookings_group.command('status')
@click.argument('booking_number')
@with_appcontext
def booking_status_cli(booking_number):
    """Show a booking, its job, completion progress and timeline."""
    try:
        booking = lifecycle_service.get_booking_by_number(booking_number)
    except LifecycleError as exc:
        raise click.ClickException(exc.message)

    completion = record_service.completion_counts(booking)

    click.echo(f"\n{booking.booking_number}  [{booking.status}]  {booking.site_name}, {booking.postcode}")
    click.echo(f"  Scheduled:  {booking.scheduled_date.isoformat()}")
    click.echo(f"  Driver:     {booking.driver_name or '-'}")
    if booking.job:
        click.echo(f"  Job:        {booking.job.job_number} [{booking.job.status}]")
    click.echo(
        f"  Completion: {completion['graded']}/{completion['total']} graded, "
        f"{completion['sanitised']}/{completion['total']} sanitised, "
        f"{completion['verified']}/{completion['total']} verified"
        + ("  READY" if completion["ready"] else "")
    )

    click.echo("\n  Timeline:")
    for event in timeline_service.get_booking_timeline(booking.id):
        move = f"{event.from_status or '-'} -> {event.to_status}" if event.to_status else ""
        click.echo(
            f"    {event.occurred_at:%Y-%m-%d %H:%M:%S}  {event.event_type:<24} {move:<26} {event.note or ''}"
        )
    click.echo("")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(drivers_group)
    app.cli.add_command(catalog_group)
    app.cli.add_command(bookings_group)
