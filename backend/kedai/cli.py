# Overview: Flask CLI command groups for bootstrap and user management.

# backend/kedai/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init-db
#   Create all tables (use `flask db upgrade` for migrated deployments).
# - python -m flask system seed
#   Idempotent demo data: admin/kasir/barista users, a small coffee menu, one customer.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users:
# - python -m flask users create --name "Admin" --email admin@kedai.local --password "secret123" --role ADMIN
# - python -m flask users list

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import User, Product, Customer
from .models.auth import ROLES, ROLE_ADMIN, ROLE_KASIR, ROLE_BARISTA
from .services.auth_service import create_user, AuthError, PasswordValidationError
from .services import products_service


DEFAULT_PASSWORD = "password123"

DEMO_USERS = [
    ("Admin", "admin@kedai.local", ROLE_ADMIN),
    ("Kasir", "kasir@kedai.local", ROLE_KASIR),
    ("Barista", "barista@kedai.local", ROLE_BARISTA),
]

DEMO_MENU = [
    {
        "name": "Kopi Susu",
        "category": "Coffee",
        "variants": [
            {"label": "Hot - M", "price": 20000, "cost": 8000, "stock": 50, "sku": "KS-HM", "lowStockThreshold": 5},
            {"label": "Ice - L", "price": 25000, "cost": 10000, "stock": 50, "sku": "KS-IL", "lowStockThreshold": 5},
        ],
    },
    {
        "name": "Americano",
        "category": "Coffee",
        "variants": [
            {"label": "Hot - M", "price": 18000, "cost": 6000, "stock": 40, "sku": "AM-HM", "lowStockThreshold": 5},
        ],
    },
    {
        "name": "Croissant",
        "category": "Pastry",
        "variants": [
            {"label": "Butter", "price": 22000, "cost": 11000, "stock": 12, "sku": "CR-BT", "lowStockThreshold": 3},
        ],
    },
]


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables."""
    db.create_all()
    click.echo("PASS Tables created")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Confirm destructive reset')
@with_appcontext
def reset_db(yes):
    """DEV/TEST only: drop and recreate all tables."""
    if not yes:
        click.echo("FAIL Refusing to reset without --yes")
        raise SystemExit(1)
    db.drop_all()
    db.create_all()
    click.echo("PASS Database reset")


@system_group.command('seed')
@with_appcontext
def seed():
    """Idempotent demo data."""
    db.create_all()

    click.echo("USERS Creating demo users...")
    admin = None
    for name, email, role in DEMO_USERS:
        user = db.session.query(User).filter_by(email=email).first()
        if user:
            click.echo(f"  SKIP {email} already exists")
        else:
            user = create_user(name=name, email=email, password=DEFAULT_PASSWORD, role=role)
            click.echo(f"  PASS {email} ({role})")
        if role == ROLE_ADMIN:
            admin = user

    click.echo("MENU Creating demo products...")
    for item in DEMO_MENU:
        if db.session.query(Product).filter_by(name=item["name"]).first():
            click.echo(f"  SKIP {item['name']} already exists")
            continue
        products_service.create_product(item, admin.id)
        click.echo(f"  PASS {item['name']} ({len(item['variants'])} variant(s))")

    if not db.session.query(Customer).filter_by(phone="081200000001").first():
        db.session.add(Customer(name="Pelanggan Setia", phone="081200000001", deposit=100000))
        db.session.commit()
        click.echo("PASS Demo customer created")

    click.echo(f"\nDONE Default password for demo users: {DEFAULT_PASSWORD}")


@click.group('users')
def users_group():
    """User management commands."""


@users_group.command('create')
@click.option('--name', prompt=True)
@click.option('--email', prompt=True)
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True)
@click.option('--role', type=click.Choice(ROLES), default=ROLE_KASIR, show_default=True)
@with_appcontext
def create_user_command(name, email, password, role):
    """Create a staff account."""
    try:
        user = create_user(name=name, email=email, password=password, role=role)
    except (AuthError, PasswordValidationError) as e:
        click.echo(f"FAIL {e}")
        raise SystemExit(1)
    click.echo(f"PASS Created user {user.email} (ID: {user.id}, role: {user.role})")


@users_group.command('list')
@with_appcontext
def list_users_command():
    """List all users with role and active status."""
    users = db.session.query(User).order_by(User.id).all()
    if not users:
        click.echo("No users")
        return
    for user in users:
        status = "active" if user.is_active else "inactive"
        click.echo(f"{user.id:>4}  {user.email:<32} {user.role:<8} {status}")


def register_commands(app):
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
