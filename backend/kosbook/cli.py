# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/kosbook/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Idempotent bootstrap: creates the superadmin and a demo AdminKos with one property.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users:
# - python -m flask users list [--role ADMINKOS]
# - python -m flask users create --email owner@kos.local --name "Budi" --password "Password123!" --role ADMINKOS
#   Receptionists need --owner-id <AdminKos id>.
#
# Properties and rooms:
# - python -m flask properties create --owner-id 2 --name "Kos Melati" --address "Jl. Melati 5"
# - python -m flask rooms create --property-id 1 --number A1 --monthly-price 1500000 [--deposit-percent 30]
#
# Bookings:
# - python -m flask bookings cleanup-expired [--grace-minutes 30]
#   Same sweep as GET /api/cron/cleanup-expired.
#
# Ledger:
# - python -m flask ledger status --owner-id 2
#   Entry counts and payments / payouts missing their ledger entries.
# - python -m flask ledger sync [--owner-id 2]
#   Backfill missing PAYMENT / PAYOUT entries (all owners when omitted).

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db
from .models import Property, Room, User
from .models.auth import ROLE_ADMINKOS, ROLE_SUPERADMIN, VALID_ROLES
from .models.property import DEPOSIT_FIXED, DEPOSIT_PERCENTAGE
from .services.auth_service import create_user, PasswordValidationError
from .services import booking_service, cleanup_service, ledger_service, ledger_sync_service
from .validation import DomainError


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """
    Initialize a development kos system.

    Creates:
    - Superadmin: superadmin@kos.local
    - AdminKos: owner@kos.local, with system ledger accounts
    - Customer: customer@kos.local
    - Property "Kos Contoh" with rooms A1..A3
    - All passwords default to: "Password123!"

    SECURITY: Change passwords immediately in production!
    """
    click.echo("START Initializing kos system...")
    default_password = "Password123!"

    default_users = [
        ("superadmin@kos.local", "Super Admin", ROLE_SUPERADMIN),
        ("owner@kos.local", "Pemilik Kos", ROLE_ADMINKOS),
        ("customer@kos.local", "Penyewa Contoh", "CUSTOMER"),
    ]

    for email, name, role in default_users:
        if db.session.query(User).filter_by(email=email).first():
            click.echo(f"WARN  User '{email}' already exists, skipping...")
            continue
        try:
            create_user(email=email, name=name, password=default_password, role=role)
            click.echo(f"PASS Created user: {email} with role '{role}'")
        except DomainError as e:
            click.echo(f"FAIL Failed to create user '{email}': {str(e)}")

    owner = db.session.query(User).filter_by(email="owner@kos.local").first()
    if owner:
        ledger_service.ensure_system_accounts(owner.id)
        db.session.commit()

        prop = db.session.query(Property).filter_by(owner_id=owner.id).first()
        if not prop:
            prop = Property(owner_id=owner.id, name="Kos Contoh", address="Jl. Contoh No. 1")
            db.session.add(prop)
            db.session.flush()
            for number in ("A1", "A2", "A3"):
                db.session.add(Room(
                    property_id=prop.id,
                    room_number=number,
                    monthly_price=1_500_000,
                    daily_price=150_000,
                    weekly_price=500_000,
                    deposit_required=True,
                    deposit_type=DEPOSIT_PERCENTAGE,
                    deposit_value=30,
                ))
            db.session.flush()
            prop.total_rooms = 3
            booking_service.recount_available_rooms(prop.id)
            db.session.commit()
            click.echo(f"PASS Created property: {prop.name} (ID: {prop.id}) with 3 rooms")
        else:
            click.echo(f"PASS Using existing property: {prop.name} (ID: {prop.id})")

    click.echo("\n" + "="*60)
    click.echo("DONE Kos System Initialized Successfully!")
    click.echo("="*60)
    click.echo("\nDefault Credentials (CHANGE IN PRODUCTION!):")
    click.echo("   superadmin@kos.local / Password123!")
    click.echo("   owner@kos.local      / Password123!")
    click.echo("   customer@kos.local   / Password123!")
    click.echo("")


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

    click.echo("PASS Database reset complete")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('list')
@click.option('--role', type=click.Choice(sorted(VALID_ROLES)), help='Filter by role')
@with_appcontext
def list_users(role):
    """List users with role and active status."""
    q = db.session.query(User)
    if role:
        q = q.filter_by(role=role)
    users = q.order_by(User.id.asc()).all()
    if not users:
        click.echo("No users found.")
        return
    for u in users:
        status = "active" if u.is_active else "inactive"
        owner = f" owner={u.owner_id}" if u.owner_id else ""
        click.echo(f"{u.id:>4}  {u.email:<32} {u.role:<13} {status}{owner}")


@users_group.command('create')
@click.option('--email', prompt=True, help='Email address')
@click.option('--name', prompt=True, help='Display name')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(sorted(VALID_ROLES)), prompt=True, help='Role')
@click.option('--phone', default=None, help='Phone number')
@click.option('--owner-id', type=int, default=None, help='AdminKos id (receptionists only)')
@with_appcontext
def create_user_cli(email, name, password, role, phone, owner_id):
    """
    Create a new user.

    Password must meet strength requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    """
    try:
        user = create_user(
            email=email, name=name, password=password, role=role, phone=phone, owner_id=owner_id
        )
        if role == ROLE_ADMINKOS:
            ledger_service.ensure_system_accounts(user.id)
            db.session.commit()
        click.echo(f"PASS Created user: {user.email} (ID: {user.id}) with role '{role}'")
        click.echo("SECURITY Password securely hashed with bcrypt")
    except PasswordValidationError as e:
        click.echo(f"FAIL Password validation failed: {str(e)}")
        click.echo("Requirements: 8+ chars, uppercase, lowercase, digit")
    except DomainError as e:
        click.echo(f"FAIL Failed to create user: {str(e)}")


@click.group('properties')
def properties_group():
    """Property bootstrap commands."""


@properties_group.command('create')
@click.option('--owner-id', type=int, required=True, help='AdminKos user id')
@click.option('--name', required=True)
@click.option('--address', default=None)
@with_appcontext
def create_property_cli(owner_id, name, address):
    owner = db.session.query(User).filter_by(id=owner_id, role=ROLE_ADMINKOS).first()
    if not owner:
        click.echo(f"FAIL AdminKos ID {owner_id} not found")
        return
    prop = Property(owner_id=owner.id, name=name, address=address)
    db.session.add(prop)
    db.session.commit()
    click.echo(f"PASS Created property: {prop.name} (ID: {prop.id})")


@click.group('rooms')
def rooms_group():
    """Room bootstrap commands."""


@rooms_group.command('create')
@click.option('--property-id', type=int, required=True)
@click.option('--number', 'room_number', required=True)
@click.option('--type', 'room_type', default='Standard', show_default=True)
@click.option('--monthly-price', type=int, required=True, help='Whole rupiah')
@click.option('--daily-price', type=int, default=None)
@click.option('--weekly-price', type=int, default=None)
@click.option('--quarterly-price', type=int, default=None)
@click.option('--yearly-price', type=int, default=None)
@click.option('--deposit-percent', type=int, default=None, help='Deposit as percent of total')
@click.option('--deposit-fixed', type=int, default=None, help='Deposit as fixed rupiah amount')
@with_appcontext
def create_room_cli(property_id, room_number, room_type, monthly_price, daily_price,
                    weekly_price, quarterly_price, yearly_price, deposit_percent, deposit_fixed):
    prop = db.session.get(Property, property_id)
    if not prop:
        click.echo(f"FAIL Property ID {property_id} not found")
        return
    if deposit_percent is not None and deposit_fixed is not None:
        click.echo("FAIL Use either --deposit-percent or --deposit-fixed, not both")
        return

    deposit_type = None
    deposit_value = None
    if deposit_percent is not None:
        deposit_type, deposit_value = DEPOSIT_PERCENTAGE, deposit_percent
    elif deposit_fixed is not None:
        deposit_type, deposit_value = DEPOSIT_FIXED, deposit_fixed

    room = Room(
        property_id=prop.id,
        room_number=room_number,
        room_type=room_type,
        monthly_price=monthly_price,
        daily_price=daily_price,
        weekly_price=weekly_price,
        quarterly_price=quarterly_price,
        yearly_price=yearly_price,
        deposit_required=deposit_type is not None,
        deposit_type=deposit_type,
        deposit_value=deposit_value,
    )
    db.session.add(room)
    db.session.flush()
    prop.total_rooms = db.session.query(Room).filter_by(property_id=prop.id).count()
    booking_service.recount_available_rooms(prop.id)
    db.session.commit()
    click.echo(f"PASS Created room {room.room_number} (ID: {room.id}) in {prop.name}")


@click.group('bookings')
def bookings_group():
    """Booking maintenance commands."""


@bookings_group.command('cleanup-expired')
@click.option('--grace-minutes', default=None, help='Defaults to BOOKING_UNPAID_GRACE_MINUTES')
@with_appcontext
def cleanup_expired_cli(grace_minutes):
    """Expire overdue payments and delete abandoned UNPAID bookings."""
    raw = grace_minutes if grace_minutes is not None else current_app.config.get("BOOKING_UNPAID_GRACE_MINUTES")
    try:
        grace = cleanup_service.parse_grace_minutes(raw)
    except DomainError as e:
        click.echo(f"FAIL {str(e)}")
        return

    report = cleanup_service.cleanup_expired_bookings(grace_minutes=grace)
    click.echo(f"PASS Expired {report.expired_payments_count} payments")
    click.echo(f"PASS Deleted {report.deleted_bookings_count} bookings {report.deleted_booking_ids}")


@click.group('ledger')
def ledger_group():
    """Ledger integrity commands."""


@ledger_group.command('status')
@click.option('--owner-id', type=int, required=True)
@with_appcontext
def ledger_status_cli(owner_id):
    status = ledger_sync_service.get_sync_status(owner_id)
    for ref_type, count in status["entries"].items():
        click.echo(f"{ref_type:<11} {count}")
    click.echo(f"Missing payment entries: {status['missing_payments']}")
    click.echo(f"Missing payout entries:  {status['missing_payouts']}")


@ledger_group.command('sync')
@click.option('--owner-id', type=int, default=None, help='Limit to one AdminKos')
@with_appcontext
def ledger_sync_cli(owner_id):
    """Backfill ledger entries for SUCCESS payments and approved payouts."""
    result = ledger_sync_service.fix_missing_entries(owner_id)
    for label in ("payments", "payouts"):
        r = result[label]
        click.echo(f"PASS {label}: processed {r['processed']}, synced {r['synced']}, errors {len(r['errors'])}")
        for err in r["errors"]:
            click.echo(f"FAIL   {label[:-1]} {err['id']}: {err['error']}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(properties_group)
    app.cli.add_command(rooms_group)
    app.cli.add_command(bookings_group)
    app.cli.add_command(ledger_group)
