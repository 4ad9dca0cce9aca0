# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/stockwise/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Idempotent bootstrap: seeds permission rules, a default store and default users.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# User inspection/bootstrap:
# - python -m flask users list
#   List all users with role level and allowed stores.
# - python -m flask users create --username clerk --password "Password123!" --role-level 3 --store-id 1
#   Create a user (prompts if options are omitted).
#
# Permission inspection/repair:
# - python -m flask perms list [--level 3]
#   Show the live rule bundle for every level (or one level).
# - python -m flask perms set 3 show_excel true
#   Edit one field of one level's rule.
# - python -m flask perms check clerk inventory.export
#   Check whether a user currently has a capability.
#
# Stock inspection:
# - python -m flask stock summary 1
#   Per-product totals for a store and its children.
# - python -m flask stock split 14 6
#   Show how a minor-unit quantity splits into major/minor units.

import click
from flask.cli import with_appcontext

from .extensions import db
from .errors import InventoryError
from .models import Store, User
from .permissions import (
    BUNDLE_FIELDS,
    MAX_ROLE_LEVEL,
    MIN_ROLE_LEVEL,
    validate_capability_code,
)
from .services.auth_service import create_user, PasswordValidationError
from .services import permission_service
from .services import stock_service
from .services.unit_service import split


DEFAULT_PASSWORD = "Password123!"

# (username, role_level)
DEFAULT_USERS = [
    ("admin", 0),
    ("manager", 1),
    ("clerk", 3),
]


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--store', 'store_name', default='Main Store', help='Default store name')
@with_appcontext
def init_system(store_name):
    """
    Initialize StockWise: permission rules, a default store and default users.

    Creates:
    - One RolePermissionRule row per level 0-9 (defaults, existing rows untouched)
    - Default store (if no store exists)
    - Users: admin (level 0), manager (level 1), clerk (level 3)
    - All passwords default to: "Password123!"

    SECURITY: Change passwords immediately in production!
    """
    click.echo("START Initializing StockWise...")

    created = permission_service.rule_store.seed_defaults()
    click.echo(f"PASS Seeded {created} permission rules")

    store = db.session.query(Store).order_by(Store.id.asc()).first()
    if not store:
        store = Store(name=store_name)
        db.session.add(store)
        db.session.commit()
        click.echo(f"PASS Created default store: {store.name} (ID: {store.id})")
    else:
        click.echo(f"PASS Using existing store: {store.name} (ID: {store.id})")

    click.echo("\nUSERS Creating default users...")
    for username, role_level in DEFAULT_USERS:
        existing = db.session.query(User).filter_by(username=username).first()
        if existing:
            click.echo(f"WARN  User '{username}' already exists, skipping...")
            continue
        try:
            create_user(
                username,
                DEFAULT_PASSWORD,
                role_level=role_level,
                allowed_store_ids=[store.id],
            )
            click.echo(f"PASS Created user: {username} (level {role_level})")
        except InventoryError as e:
            click.echo(f"FAIL Failed to create user '{username}': {str(e)}")

    click.echo("\n" + "="*60)
    click.echo("DONE StockWise Initialized Successfully!")
    click.echo("="*60)
    click.echo(f"\nStore: {store.name} (ID: {store.id})")
    click.echo("\nDefault Credentials (CHANGE IN PRODUCTION!):")
    for username, role_level in DEFAULT_USERS:
        click.echo(f"   {username:<9} (level {role_level}) / {DEFAULT_PASSWORD}")
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

    click.echo("PASS Database reset complete. Run 'python -m flask system init' to initialize.")


# =============================================================================
# USER MANAGEMENT COMMANDS
# =============================================================================

@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create')
@click.option('--username', prompt=True, help='Username')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option(
    '--role-level',
    type=click.IntRange(MIN_ROLE_LEVEL, MAX_ROLE_LEVEL),
    prompt=True,
    help='Role level (0 = super-admin, 9 = least privileged)',
)
@click.option('--store-id', 'store_ids', type=int, multiple=True, help='Allowed store (repeatable)')
@with_appcontext
def create_user_cli(username, password, role_level, store_ids):
    """
    Create a new user interactively.

    Password must meet strength requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    - At least one special character
    """
    try:
        user = create_user(
            username,
            password,
            role_level=role_level,
            allowed_store_ids=list(store_ids),
        )
        click.echo(f"PASS Created user: {user.username} (ID: {user.id}, level {user.role_level})")
        click.echo("SECURITY Password securely hashed with bcrypt")

    except PasswordValidationError as e:
        click.echo(f"FAIL Password validation failed: {str(e)}")
        click.echo("Requirements: 8+ chars, uppercase, lowercase, digit, special char")
    except InventoryError as e:
        click.echo(f"FAIL Failed to create user: {e.to_dict()}")


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users with their role level and allowed stores."""
    users = db.session.query(User).order_by(User.role_level.asc(), User.id.asc()).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Username':<20} {'Level':<7} {'Archived':<10} {'Stores'}")
    click.echo("="*80)

    for user in users:
        archived_str = "Yes" if user.is_archived else "No"
        stores_str = ", ".join(str(s) for s in user.allowed_store_ids) or "-"
        click.echo(f"{user.id:<5} {user.username:<20} {user.role_level:<7} {archived_str:<10} {stores_str}")

    click.echo("="*80 + "\n")


# =============================================================================
# PERMISSION MANAGEMENT COMMANDS
# =============================================================================

@click.group('perms')
def perms_group():
    """Permission inspection and repair commands."""


@perms_group.command('list')
@click.option('--level', type=click.IntRange(MIN_ROLE_LEVEL, MAX_ROLE_LEVEL), help='Show one level only')
@with_appcontext
def list_rules_cli(level):
    """Show the live rule bundle per role level."""
    rules = permission_service.rule_store.list_rules()
    levels = [level] if level is not None else sorted(rules)

    click.echo(f"\n{'='*80}")
    click.echo("Role Permission Rules")
    click.echo(f"{'='*80}")

    for lvl in levels:
        bundle = rules[lvl]
        click.echo(f"\nLEVEL {lvl}")
        click.echo("-"*80)
        for name, value in bundle.to_dict().items():
            click.echo(f"  {name:<24} {value}")

    click.echo("")


def _parse_rule_value(field: str, raw: str):
    if field in ("logs_level", "announcement_rule", "store_scope", "delete_mode"):
        return raw.upper()
    lowered = raw.strip().lower()
    if lowered in ("true", "1", "yes", "on"):
        return True
    if lowered in ("false", "0", "no", "off"):
        return False
    raise click.BadParameter(f"expected true/false for {field}, got {raw!r}")


@perms_group.command('set')
@click.argument('level', type=click.IntRange(MIN_ROLE_LEVEL, MAX_ROLE_LEVEL))
@click.argument('field', type=click.Choice(BUNDLE_FIELDS))
@click.argument('value')
@with_appcontext
def set_rule_cli(level, field, value):
    """Edit one field of a level's rule. Takes effect on the next check."""
    try:
        bundle = permission_service.rule_store.update_rule(level, **{field: _parse_rule_value(field, value)})
        click.echo(f"PASS Level {level}: {field} = {getattr(bundle, field)}")
    except InventoryError as e:
        click.echo(f"FAIL Error: {e.to_dict()}")


@perms_group.command('check')
@click.argument('username')
@click.argument('capability')
@with_appcontext
def check_capability_cli(username, capability):
    """Check whether a user currently has a capability."""
    user = db.session.query(User).filter_by(username=username).first()
    if not user:
        click.echo(f"FAIL User '{username}' not found")
        return

    if not validate_capability_code(capability):
        click.echo(f"WARN  Unknown capability '{capability}' (always denied)")

    if permission_service.evaluate(capability, user):
        click.echo(f"PASS User '{username}' (level {user.role_level}) HAS '{capability}'")
    else:
        click.echo(f"FAIL User '{username}' (level {user.role_level}) does NOT have '{capability}'")


# =============================================================================
# STOCK INSPECTION COMMANDS
# =============================================================================

@click.group('stock')
def stock_group():
    """Stock inspection commands."""


@stock_group.command('summary')
@click.argument('store_id', type=int)
@with_appcontext
def stock_summary_cli(store_id):
    """Per-product totals for a store, including child stores."""
    try:
        summary = stock_service.aggregate_stock(store_id)
    except InventoryError as e:
        click.echo(f"FAIL Error: {e.to_dict()}")
        return

    if not summary["items"]:
        click.echo("No stock found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'Product':<30} {'Total':<10} {'Display':<20} {'Low'}")
    click.echo("="*80)
    for item in summary["items"]:
        low_str = "LOW" if item["low_stock"] else ""
        click.echo(
            f"{item['product']['name'][:30]:<30} {item['total_quantity']:<10} {item['display']:<20} {low_str}"
        )
    click.echo("="*80 + "\n")


@stock_group.command('split')
@click.argument('quantity', type=int)
@click.argument('ratio', type=int)
def split_cli(quantity, ratio):
    """Show how QUANTITY minor units split at RATIO minor units per major unit."""
    result = split(quantity, ratio)
    if result.major is None:
        click.echo(f"{result.minor} (no split)")
    else:
        click.echo(f"{result.major} major + {result.minor} minor")


def register_commands(app):
    """Register all CLI command groups with the Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(perms_group)
    app.cli.add_command(stock_group)
