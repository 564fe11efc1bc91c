# Overview: Flask CLI command groups for tenant bootstrap and ledger maintenance.

# backend/opscore/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to opscore (PowerShell: $env:FLASK_APP="opscore").
# - Use: python -m flask <group> <command> [options]
#
# Organization management (MULTI-TENANT):
# - python -m flask orgs list
#   List all organizations.
# - python -m flask orgs create --name "Acme Corp" --code "ACME"
#   Create a new organization (tenant).
#
# Locations:
# - python -m flask locations create --org-id 1 --code MAIN --name "Main Warehouse" --default
#   Create a location; --default clears the flag on the org's other locations.
# - python -m flask locations list --org-id 1
#   List an organization's locations.
#
# Ledger maintenance:
# - python -m flask ledger verify [--org-id 1]
#   Check positions against the stock ledger; exits non-zero on violations.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Organization
from .services import location_service
from .services.errors import OperationError
from .services.ledger_service import verify_ledger
from .services.tenant_service import TenantAccessError, bind_tenant


# =============================================================================
# ORGANIZATION COMMANDS
# =============================================================================

@click.group('orgs')
def orgs_group():
    """Organization (tenant) management commands."""


@orgs_group.command('list')
@with_appcontext
def list_orgs():
    """List all organizations."""
    orgs = db.session.query(Organization).order_by(Organization.id.asc()).all()

    if not orgs:
        click.echo("No organizations found.")
        return

    click.echo("\n" + "="*60)
    click.echo(f"{'ID':<5} {'Name':<30} {'Code':<15} {'Active'}")
    click.echo("="*60)

    for org in orgs:
        active_str = "Yes" if org.is_active else "No"
        click.echo(f"{org.id:<5} {org.name:<30} {org.code or '-':<15} {active_str}")

    click.echo("="*60 + "\n")


@orgs_group.command('create')
@click.option('--name', required=True, help='Organization name')
@click.option('--code', required=True, help='Short code (unique)')
@with_appcontext
def create_org_cli(name, code):
    """Create a new organization (tenant)."""
    existing = db.session.query(Organization).filter_by(code=code).first()
    if existing:
        click.echo(f"FAIL Organization with code '{code}' already exists")
        return

    org = Organization(name=name, code=code, is_active=True)
    db.session.add(org)
    db.session.commit()

    click.echo(f"PASS Created organization: {org.name} (ID: {org.id}, Code: {org.code})")


# =============================================================================
# LOCATION COMMANDS
# =============================================================================

@click.group('locations')
def locations_group():
    """Inventory location commands."""


@locations_group.command('create')
@click.option('--org-id', type=int, required=True, help='Organization ID')
@click.option('--code', required=True, help='Location code (unique within org)')
@click.option('--name', required=True, help='Location name')
@click.option('--address', default=None, help='Address')
@click.option('--default', 'is_default', is_flag=True, help='Make this the default location')
@with_appcontext
def create_location_cli(org_id, code, name, address, is_default):
    """Create an inventory location."""
    try:
        scope = bind_tenant(org_id)
        location = location_service.create_location(
            scope, code=code, name=name, address=address, is_default=is_default,
        )
    except (TenantAccessError, OperationError) as e:
        click.echo(f"FAIL {e}")
        return

    suffix = " [default]" if location.is_default else ""
    click.echo(f"PASS Created location: {location.code} (ID: {location.id}){suffix}")


@locations_group.command('list')
@click.option('--org-id', type=int, required=True, help='Organization ID')
@with_appcontext
def list_locations_cli(org_id):
    """List an organization's locations."""
    try:
        scope = bind_tenant(org_id)
    except TenantAccessError as e:
        click.echo(f"FAIL {e}")
        return

    locations = location_service.list_locations(scope)
    if not locations:
        click.echo("No locations found.")
        return

    for loc in locations:
        default_str = "*" if loc.is_default else " "
        click.echo(f"{default_str} {loc.id:<5} {loc.code:<12} {loc.name:<30} {loc.status}")


# =============================================================================
# LEDGER COMMANDS
# =============================================================================

@click.group('ledger')
def ledger_group():
    """Stock ledger maintenance commands."""


@ledger_group.command('verify')
@click.option('--org-id', type=int, default=None, help='Limit to one organization')
@with_appcontext
def verify_ledger_cli(org_id):
    """Check positions against the stock ledger."""
    problems = verify_ledger(org_id=org_id)
    if not problems:
        click.echo("PASS Ledger and positions are consistent")
        return

    for problem in problems:
        click.echo(f"FAIL {problem}")
    raise click.exceptions.Exit(1)


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(orgs_group)
    app.cli.add_command(locations_group)
    app.cli.add_command(ledger_group)
