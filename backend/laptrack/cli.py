# Overview: Flask CLI command groups for bootstrap, shipment/laptop operations and inspection.

# backend/laptrack/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to laptrack (PowerShell: $env:FLASK_APP="laptrack").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create all tables that do not exist yet.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask system seed-sample
#   Sample client, engineer, laptops and shipments (skipped if already seeded).
#
# Shipments:
# - python -m flask shipments create --type bulk_to_warehouse --company-id 1 --ticket SCOP-1001 --laptop-count 3
# - python -m flask shipments advance 1 pickup_from_client_scheduled --courier UPS --tracking 1Z999
# - python -m flask shipments advance 4 in_transit_to_engineer --eta 2026-11-02T12:00:00Z
# - python -m flask shipments add-laptop 1 7
# - python -m flask shipments assign-engineer 2 3
# - python -m flask shipments list [--status at_warehouse] [--type bulk_to_warehouse]
# - python -m flask shipments show 1
# - python -m flask shipments timeline 1
#
# Laptops:
# - python -m flask laptops create --serial SN-123 [--status in_transit_to_warehouse] [--company-id 1]
# - python -m flask laptops retire 7 [--reason "Water damage"]
# - python -m flask laptops list [--status available]
#
# Reception reports:
# - python -m flask reports create --laptop-id 7 --user-id 2 --photo-serial URL --photo-external URL --photo-working URL
# - python -m flask reports approve 1 --user-id 3
# - python -m flask reports list [--status pending_approval]

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db
from .models import ClientCompany, SoftwareEngineer
from .services import laptop_service, lifecycle_service, reception_service, shipment_service
from .services.shipment_stages import ShipmentStage, ShipmentVariant, stage_label
from .services.timeline_service import build_timeline
from .time_utils import parse_iso_datetime, to_utc_z


STAGE_CHOICES = [s.value for s in ShipmentStage]
VARIANT_CHOICES = [v.value for v in ShipmentVariant]
LAPTOP_STATUS_CHOICES = [s.value for s in laptop_service.LaptopStatus]


def _fail(exc: Exception) -> None:
    """Report a domain error and exit non-zero; nothing from the failed command is kept."""
    db.session.rollback()
    click.echo(f"FAIL {exc}")
    raise click.exceptions.Exit(1)


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables (existing tables are left alone)."""
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

    click.echo("PASS Database reset complete. Run 'python -m flask system seed-sample' for demo data.")


@system_group.command('seed-sample')
@with_appcontext
def seed_sample():
    """
    Seed one client with a bulk shipment of three laptops, and one
    single-journey shipment for an engineer.

    Safe to rerun: skipped when the sample client already exists.
    """
    if not current_app.config.get("SAMPLE_SEED_ENABLED", False):
        click.echo("FAIL Sample seeding is disabled (SAMPLE_SEED_ENABLED=false)")
        raise click.exceptions.Exit(1)

    if db.session.query(ClientCompany).filter_by(name="Acme Corp").first():
        click.echo("PASS Sample data already present; nothing to do.")
        return

    try:
        company = ClientCompany(name="Acme Corp", contact_email="it@acme.example")
        engineer = SoftwareEngineer(name="Dana Reyes", email="dana.reyes@acme.example")
        db.session.add_all([company, engineer])
        db.session.commit()
        click.echo(f"PASS Created client company: {company.name} (ID: {company.id})")
        click.echo(f"PASS Created engineer: {engineer.name} (ID: {engineer.id})")

        bulk_laptop_ids = []
        for i in range(1, 4):
            laptop = laptop_service.create_laptop(
                serial_number=f"ACME-BULK-{i:03d}",
                status=laptop_service.LaptopStatus.IN_TRANSIT_TO_WAREHOUSE,
                brand="Dell",
                model="Latitude 7440",
                client_company_id=company.id,
            )
            bulk_laptop_ids.append(laptop.id)

        bulk = shipment_service.create_shipment(
            shipment_type=ShipmentVariant.BULK_TO_WAREHOUSE,
            client_company_id=company.id,
            jira_ticket_number="SCOP-1001",
            laptop_count=3,
            laptop_ids=bulk_laptop_ids,
        )
        click.echo(f"PASS Created bulk shipment {bulk.id} with {len(bulk_laptop_ids)} laptops")

        single_laptop = laptop_service.create_laptop(
            serial_number="ACME-SINGLE-001",
            status=laptop_service.LaptopStatus.IN_TRANSIT_TO_WAREHOUSE,
            brand="Apple",
            model="MacBook Pro 14",
            client_company_id=company.id,
        )
        single = shipment_service.create_shipment(
            shipment_type=ShipmentVariant.SINGLE_FULL_JOURNEY,
            client_company_id=company.id,
            jira_ticket_number="SCOP-1002",
            software_engineer_id=engineer.id,
            laptop_ids=[single_laptop.id],
        )
        click.echo(f"PASS Created single-journey shipment {single.id} for {engineer.name}")
    except (ValueError, LookupError) as e:
        _fail(e)


@click.group('shipments')
def shipments_group():
    """Shipment creation, stage changes and inspection."""


@shipments_group.command('create')
@click.option('--type', 'shipment_type', type=click.Choice(VARIANT_CHOICES), required=True, help='Shipment variant')
@click.option('--company-id', type=int, required=True, help='Client company ID')
@click.option('--ticket', required=True, help='JIRA ticket key (PROJECT-NUMBER)')
@click.option('--laptop-count', type=int, help='Declared number of laptops')
@click.option('--engineer-id', type=int, help='Receiving software engineer ID')
@click.option('--laptop-id', 'laptop_ids', type=int, multiple=True, help='Laptop to link (repeatable)')
@click.option('--notes', help='Free-text notes')
@with_appcontext
def create_shipment_cli(shipment_type, company_id, ticket, laptop_count, engineer_id, laptop_ids, notes):
    """Create a shipment at its variant's first stage."""
    try:
        shipment = shipment_service.create_shipment(
            shipment_type=shipment_type,
            client_company_id=company_id,
            jira_ticket_number=ticket,
            laptop_count=laptop_count,
            software_engineer_id=engineer_id,
            laptop_ids=laptop_ids,
            notes=notes,
        )
    except (ValueError, LookupError) as e:
        _fail(e)
        return

    click.echo(f"PASS Created shipment {shipment.id} ({shipment.shipment_type}) at '{shipment.status}'")


@shipments_group.command('advance')
@click.argument('shipment_id', type=int)
@click.argument('stage', type=click.Choice(STAGE_CHOICES))
@click.option('--eta', help='ETA to engineer (ISO-8601), only for in_transit_to_engineer')
@click.option('--courier', help='Courier name (UPS, FedEx, DHL), required to schedule pickup')
@click.option('--tracking', help='Tracking number, required to schedule pickup')
@click.option('--actor-id', type=int, help='Acting user ID (audit trail)')
@with_appcontext
def advance_shipment_cli(shipment_id, stage, eta, courier, tracking, actor_id):
    """
    Move a shipment to its next stage.

    Example:
        flask shipments advance 1 pickup_from_client_scheduled --courier UPS --tracking 1Z999
    """
    try:
        shipment = lifecycle_service.transition_shipment(
            shipment_id,
            stage,
            actor_user_id=actor_id,
            eta=parse_iso_datetime(eta),
            courier_name=courier,
            tracking_number=tracking,
        )
    except (ValueError, LookupError) as e:
        _fail(e)
        return

    click.echo(f"PASS Shipment {shipment.id} is now '{shipment.status}' ({stage_label(shipment.status)})")


@shipments_group.command('add-laptop')
@click.argument('shipment_id', type=int)
@click.argument('laptop_id', type=int)
@click.option('--actor-id', type=int, help='Acting user ID (audit trail)')
@with_appcontext
def add_laptop_cli(shipment_id, laptop_id, actor_id):
    """Link a laptop to a shipment that still has room."""
    try:
        shipment = shipment_service.add_laptop_to_shipment(shipment_id, laptop_id, actor_user_id=actor_id)
    except (ValueError, LookupError) as e:
        _fail(e)
        return

    click.echo(f"PASS Laptop {laptop_id} added to shipment {shipment.id} "
               f"({len(shipment.laptop_links)}/{shipment.laptop_count})")


@shipments_group.command('assign-engineer')
@click.argument('shipment_id', type=int)
@click.argument('engineer_id', type=int)
@click.option('--actor-id', type=int, help='Acting user ID (audit trail)')
@with_appcontext
def assign_engineer_cli(shipment_id, engineer_id, actor_id):
    """Assign the receiving software engineer."""
    try:
        shipment = shipment_service.assign_engineer(shipment_id, engineer_id, actor_user_id=actor_id)
    except (ValueError, LookupError) as e:
        _fail(e)
        return

    click.echo(f"PASS Engineer {engineer_id} assigned to shipment {shipment.id}")


@shipments_group.command('list')
@click.option('--status', type=click.Choice(STAGE_CHOICES), help='Filter by stage')
@click.option('--type', 'shipment_type', type=click.Choice(VARIANT_CHOICES), help='Filter by variant')
@click.option('--limit', type=int, default=20, help='Max shipments to show')
@with_appcontext
def list_shipments_cli(status, shipment_type, limit):
    """List shipments, newest first."""
    shipments, total = shipment_service.list_shipments(
        status=status, shipment_type=shipment_type, limit=limit
    )

    if not shipments:
        click.echo("No shipments found.")
        return

    click.echo("\n" + "="*100)
    click.echo(f"{'ID':<5} {'Type':<24} {'Status':<30} {'Ticket':<12} {'Laptops':<8}")
    click.echo("="*100)
    for s in shipments:
        click.echo(f"{s.id:<5} {s.shipment_type:<24} {s.status:<30} {s.jira_ticket_number:<12} "
                   f"{len(s.laptop_links)}/{s.laptop_count}")
    click.echo("="*100)
    click.echo(f"Showing {len(shipments)} of {total}\n")


@shipments_group.command('show')
@click.argument('shipment_id', type=int)
@with_appcontext
def show_shipment_cli(shipment_id):
    """Show one shipment with its next allowed stage and tracking link."""
    try:
        shipment = lifecycle_service.get_shipment(shipment_id)
    except LookupError as e:
        _fail(e)
        return

    next_stage = lifecycle_service.next_allowed_stage(shipment)
    click.echo(f"Shipment {shipment.id} ({shipment.shipment_type})")
    click.echo(f"  Status:      {shipment.status} ({stage_label(shipment.status)})")
    click.echo(f"  Next stage:  {next_stage.value if next_stage else '-'}")
    click.echo(f"  Ticket:      {shipment.jira_ticket_number}")
    click.echo(f"  Client:      {shipment.client_company_id}")
    click.echo(f"  Engineer:    {shipment.software_engineer_id or '-'}")
    click.echo(f"  Laptops:     {len(shipment.laptop_links)}/{shipment.laptop_count}")
    if shipment.tracking_number:
        url = lifecycle_service.tracking_url(shipment)
        click.echo(f"  Tracking:    {shipment.courier_name} {shipment.tracking_number}"
                   + (f" ({url})" if url else ""))
    if shipment.eta_to_engineer:
        click.echo(f"  ETA:         {to_utc_z(shipment.eta_to_engineer)}")


@shipments_group.command('timeline')
@click.argument('shipment_id', type=int)
@with_appcontext
def shipment_timeline_cli(shipment_id):
    """Print the stage timeline of a shipment."""
    try:
        shipment = lifecycle_service.get_shipment(shipment_id)
    except LookupError as e:
        _fail(e)
        return

    for item in build_timeline(shipment):
        if item.is_current:
            marker = "*"
        elif item.is_completed:
            marker = "x"
        else:
            marker = " "
        line = f"[{marker}] {item.label:<26} {to_utc_z(item.timestamp) or '-'}"
        if item.tracking_number:
            line += f"  tracking {item.tracking_number}"
        click.echo(line)


@click.group('laptops')
def laptops_group():
    """Laptop registration, retirement and listing."""


@laptops_group.command('create')
@click.option('--serial', 'serial_number', required=True, help='Serial number')
@click.option('--status', type=click.Choice([s.value for s in laptop_service.INITIAL_STATUSES]),
              default=laptop_service.LaptopStatus.AT_WAREHOUSE.value, show_default=True)
@click.option('--brand', help='Brand')
@click.option('--model', help='Model')
@click.option('--company-id', type=int, help='Owning client company ID')
@with_appcontext
def create_laptop_cli(serial_number, status, brand, model, company_id):
    """Register a laptop."""
    try:
        laptop = laptop_service.create_laptop(
            serial_number=serial_number,
            status=status,
            brand=brand,
            model=model,
            client_company_id=company_id,
        )
    except (ValueError, LookupError) as e:
        _fail(e)
        return

    click.echo(f"PASS Created laptop {laptop.id} ({laptop.serial_number}) as '{laptop.status}'")


@laptops_group.command('retire')
@click.argument('laptop_id', type=int)
@click.option('--reason', help='Why the laptop is retired')
@click.option('--actor-id', type=int, help='Acting user ID (audit trail)')
@with_appcontext
def retire_laptop_cli(laptop_id, reason, actor_id):
    """Retire a laptop (any status except delivered)."""
    try:
        laptop = laptop_service.retire_laptop(laptop_id, actor_user_id=actor_id, reason=reason)
    except (ValueError, LookupError) as e:
        _fail(e)
        return

    click.echo(f"PASS Laptop {laptop.id} retired")


@laptops_group.command('list')
@click.option('--status', type=click.Choice(LAPTOP_STATUS_CHOICES), help='Filter by status')
@click.option('--limit', type=int, default=50, help='Max laptops to show')
@with_appcontext
def list_laptops_cli(status, limit):
    """List laptops, newest first."""
    laptops, total = laptop_service.list_laptops(status=status, limit=limit)

    if not laptops:
        click.echo("No laptops found.")
        return

    click.echo("\n" + "="*100)
    click.echo(f"{'ID':<5} {'Serial':<20} {'Status':<26} {'Description'}")
    click.echo("="*100)
    for laptop in laptops:
        click.echo(f"{laptop.id:<5} {laptop.serial_number:<20} "
                   f"{laptop_service.status_display_name(laptop.status):<26} {laptop.full_description}")
    click.echo("="*100)
    click.echo(f"Showing {len(laptops)} of {total}\n")


@click.group('reports')
def reports_group():
    """Warehouse reception reports and their approval."""


@reports_group.command('create')
@click.option('--laptop-id', type=int, required=True, help='Received laptop ID')
@click.option('--user-id', type=int, required=True, help='Inspecting warehouse user ID')
@click.option('--photo-serial', required=True, help='URL of the serial number photo')
@click.option('--photo-external', required=True, help='URL of the external condition photo')
@click.option('--photo-working', required=True, help='URL of the working condition photo')
@click.option('--notes', help='Inspection notes (max 1000 chars)')
@with_appcontext
def create_report_cli(laptop_id, user_id, photo_serial, photo_external, photo_working, notes):
    """Record the inspection of a laptop received at the warehouse."""
    try:
        report = reception_service.create_reception_report(
            laptop_id=laptop_id,
            warehouse_user_id=user_id,
            photo_serial_number=photo_serial,
            photo_external_condition=photo_external,
            photo_working_condition=photo_working,
            notes=notes,
        )
    except (ValueError, LookupError) as e:
        _fail(e)
        return

    click.echo(f"PASS Created reception report {report.id} for laptop {laptop_id} (pending approval)")


@reports_group.command('approve')
@click.argument('report_id', type=int)
@click.option('--user-id', type=int, required=True, help='Approving user ID')
@with_appcontext
def approve_report_cli(report_id, user_id):
    """Approve a reception report; its laptop becomes available."""
    try:
        report = reception_service.approve_reception_report(report_id, user_id)
    except (ValueError, LookupError) as e:
        _fail(e)
        return

    click.echo(f"PASS Reception report {report.id} approved; laptop {report.laptop_id} is available")


@reports_group.command('list')
@click.option('--status', type=click.Choice(list(reception_service.REPORT_STATUSES)), help='Filter by status')
@with_appcontext
def list_reports_cli(status):
    """List reception reports, newest first."""
    reports = reception_service.list_reception_reports(status=status)

    if not reports:
        click.echo("No reception reports found.")
        return

    for report in reports:
        click.echo(f"{report.id:<5} laptop {report.laptop_id:<6} {report.status:<17} "
                   f"received {to_utc_z(report.received_at)}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(shipments_group)
    app.cli.add_command(laptops_group)
    app.cli.add_command(reports_group)
