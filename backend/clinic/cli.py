# Overview: Flask CLI command groups for bootstrap, catalog setup, and sequence inspection.

# backend/clinic/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init
#   Create tables (if missing) and the default payment modes. Idempotent.
#
# Catalog setup:
# - python -m flask catalog add-org --name "Sunrise Clinics" --code SUN
# - python -m flask catalog add-branch --org-id 1 --name "Main" --code MAIN
# - python -m flask catalog add-doctor --org-id 1 --branch-id 1 --name "Dr. Iyer"
# - python -m flask catalog add-service --org-id 1 --code CONSULTATION --name "Consultation" --branch-id 1 --rate 500.00
#   Rates are given in major units and stored in minor units (round half up).
# - python -m flask catalog add-payment-mode --code CHEQUE --name "Cheque"
#
# Sequences:
# - python -m flask sequences show "1|1|202501"
#   Show the next value a scope would hand out.
# - python -m flask sequences allocate "1|1|202501"
#   Allocate one value (consumes it).

import click
from decimal import Decimal, InvalidOperation
from flask.cli import with_appcontext

from .extensions import db
from .models import Branch, Doctor, Organization, PaymentMode, ServiceLine, ServiceRate
from .services.charge_calculator import to_cents
from .services.sequence_service import allocate_sequence, peek_sequence


DEFAULT_PAYMENT_MODES = [
    ("CASH", "Cash", 10),
    ("UPI", "UPI", 20),
    ("CARD", "Card", 30),
]


def ensure_default_payment_modes() -> int:
    """Insert missing default payment modes. Returns how many were added."""
    added = 0
    for code, name, order in DEFAULT_PAYMENT_MODES:
        if db.session.get(PaymentMode, code) is None:
            db.session.add(PaymentMode(code=code, display_name=name, sort_order=order, is_active=True))
            added += 1
    db.session.commit()
    return added


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init')
@with_appcontext
def init_command():
    """Create tables and default payment modes (idempotent)."""
    db.create_all()
    added = ensure_default_payment_modes()
    click.echo(f"Database ready. Payment modes added: {added}")


@click.group('catalog')
def catalog_group():
    """Organizations, branches, doctors, services and payment modes."""


@catalog_group.command('add-org')
@click.option('--name', required=True)
@click.option('--code', required=True)
@with_appcontext
def add_org_command(name, code):
    org = Organization(name=name, code=code.strip().upper(), is_active=True)
    db.session.add(org)
    db.session.commit()
    click.echo(f"Organization {org.id} created: {org.name} ({org.code})")


@catalog_group.command('add-branch')
@click.option('--org-id', type=int, required=True)
@click.option('--name', required=True)
@click.option('--code', required=True, help='Embedded in patient codes, e.g. SMNH-MCC')
@with_appcontext
def add_branch_command(org_id, name, code):
    if db.session.get(Organization, org_id) is None:
        raise click.ClickException(f"Organization {org_id} not found")
    branch = Branch(org_id=org_id, name=name, code=code.strip().upper(), is_active=True)
    db.session.add(branch)
    db.session.commit()
    click.echo(f"Branch {branch.id} created: {branch.name} ({branch.code})")


@catalog_group.command('add-doctor')
@click.option('--org-id', type=int, required=True)
@click.option('--branch-id', type=int, required=True)
@click.option('--name', required=True)
@with_appcontext
def add_doctor_command(org_id, branch_id, name):
    branch = db.session.query(Branch).filter_by(id=branch_id, org_id=org_id).first()
    if not branch:
        raise click.ClickException(f"Branch {branch_id} not found in organization {org_id}")
    doctor = Doctor(org_id=org_id, branch_id=branch_id, full_name=name, is_active=True)
    db.session.add(doctor)
    db.session.commit()
    click.echo(f"Doctor {doctor.id} created: {doctor.full_name}")


@catalog_group.command('add-service')
@click.option('--org-id', type=int, required=True)
@click.option('--code', required=True)
@click.option('--name', required=True)
@click.option('--branch-id', type=int, default=None, help='Set a rate for this branch')
@click.option('--rate', default=None, help='Gross rate in major units, e.g. 500.00')
@with_appcontext
def add_service_command(org_id, code, name, branch_id, rate):
    code = code.strip().upper()
    line = db.session.query(ServiceLine).filter_by(org_id=org_id, code=code).first()
    if not line:
        line = ServiceLine(org_id=org_id, code=code, name=name, is_active=True)
        db.session.add(line)
        db.session.flush()

    if branch_id is not None:
        if rate is None:
            raise click.ClickException("--rate is required with --branch-id")
        try:
            rate_cents = to_cents(Decimal(rate))
        except InvalidOperation:
            raise click.ClickException(f"Invalid rate: {rate}")
        if rate_cents < 0:
            raise click.ClickException("Rate cannot be negative")

        existing = db.session.query(ServiceRate).filter_by(
            service_line_id=line.id, branch_id=branch_id
        ).first()
        if existing:
            existing.rate_cents = rate_cents
            existing.is_active = True
        else:
            db.session.add(ServiceRate(
                service_line_id=line.id, branch_id=branch_id, rate_cents=rate_cents, is_active=True
            ))

    db.session.commit()
    click.echo(f"Service line {line.id} ({line.code}) ready")


@catalog_group.command('add-payment-mode')
@click.option('--code', required=True)
@click.option('--name', required=True)
@click.option('--sort-order', type=int, default=100)
@with_appcontext
def add_payment_mode_command(code, name, sort_order):
    code = code.strip().upper()
    mode = db.session.get(PaymentMode, code)
    if mode:
        mode.display_name = name
        mode.is_active = True
    else:
        db.session.add(PaymentMode(code=code, display_name=name, sort_order=sort_order, is_active=True))
    db.session.commit()
    click.echo(f"Payment mode {code} ready")


@click.group('sequences')
def sequences_group():
    """Inspect and allocate sequence counters."""


@sequences_group.command('show')
@click.argument('scope_key')
@with_appcontext
def show_sequence_command(scope_key):
    next_value = peek_sequence(scope_key)
    if next_value is None:
        click.echo(f"{scope_key}: never allocated (next value 1)")
    else:
        click.echo(f"{scope_key}: next value {next_value}")


@sequences_group.command('allocate')
@click.argument('scope_key')
@with_appcontext
def allocate_sequence_command(scope_key):
    result = allocate_sequence(scope_key)
    click.echo(f"{scope_key}: allocated {result['value']}")


def register_commands(app):
    app.cli.add_command(system_group)
    app.cli.add_command(catalog_group)
    app.cli.add_command(sequences_group)
