"""
Custom Flask CLI commands.

These commands are registered with the app by ``register_commands()``
in the application factory. Run them with ``flask <command_name>``.

Usage::

    flask db-check                  # Verify database connectivity and schema
    flask cleanup-notifications     # Delete expired notifications
    flask cleanup-sessions          # Deactivate expired login sessions
    flask export-services -f xlsx   # Write the service-record report
"""

import click
from flask import current_app
from flask.cli import with_appcontext
from sqlalchemy import inspect
from sqlalchemy.engine import make_url
from sqlalchemy.exc import SQLAlchemyError

from app.extensions import db

# Tables created by the initial migration.
EXPECTED_TABLES = (
    "users",
    "user_sessions",
    "organizations",
    "organization_members",
    "departments",
    "work_sites",
    "employees",
    "service_records",
    "service_record_history",
    "files",
    "notifications",
    "ai_conversations",
    "ai_insights",
    "audit_log",
)


@click.command("db-check")
@with_appcontext
def db_check_command():
    """
    Verify database connectivity and confirm the expected tables exist.

    Runs a trivial query, then lists every application table with its
    row count.  Useful for confirming DATABASE_URL is correct and
    ``flask db upgrade`` has been run.
    """
    click.echo("=" * 60)
    click.echo("  ServiceNexus — Database Connectivity Check")
    click.echo("=" * 60)

    # Show the connection string (mask any password).
    db_uri = make_url(current_app.config["SQLALCHEMY_DATABASE_URI"])
    click.echo(f"\n  Connection string: {db_uri.render_as_string(hide_password=True)}\n")

    # -- Step 1: Basic connectivity ----------------------------------------
    click.echo("[1/2] Testing connection...")
    try:
        db.session.execute(db.text("SELECT 1"))
        click.secho("      ✓ Connected successfully.", fg="green")
    except SQLAlchemyError as exc:
        click.secho(f"      ✗ Connection failed: {exc}", fg="red")
        click.echo("\n  Troubleshooting tips:")
        click.echo("    - Is PostgreSQL running?")
        click.echo("    - Does your .env DATABASE_URL match your server config?")
        raise SystemExit(1)

    # -- Step 2: Tables and row counts -------------------------------------
    click.echo("[2/2] Checking tables...\n")
    existing = set(inspect(db.engine).get_table_names())
    missing = [name for name in EXPECTED_TABLES if name not in existing]

    for name in EXPECTED_TABLES:
        if name in missing:
            click.secho(f"      {name:>24}  — missing", fg="red")
            continue
        count = db.session.execute(db.text(f'SELECT COUNT(*) FROM "{name}"')).scalar()
        click.echo(f"      {name:>24}  — {count} row(s)")

    click.echo("\n" + "=" * 60)
    if missing:
        click.secho(
            f"  {len(missing)} table(s) missing. Run 'flask db upgrade'.",
            fg="yellow",
            bold=True,
        )
    else:
        click.secho("  All checks passed. Database is ready.", fg="green", bold=True)
    click.echo("=" * 60)


@click.command("cleanup-notifications")
@with_appcontext
def cleanup_notifications_command():
    """Delete notifications whose expiry has passed."""
    from app.services import notification_service  # pylint: disable=import-outside-toplevel

    deleted = notification_service.cleanup_expired()
    click.secho(f"Deleted {deleted} expired notification(s).", fg="green")


@click.command("cleanup-sessions")
@with_appcontext
def cleanup_sessions_command():
    """Deactivate login sessions past their refresh expiry."""
    from app.services import auth_service  # pylint: disable=import-outside-toplevel

    count = auth_service.cleanup_expired_sessions()
    click.secho(f"Deactivated {count} expired session(s).", fg="green")


@click.command("export-services")
@click.option(
    "--format",
    "-f",
    "fmt",
    type=click.Choice(["csv", "xlsx"]),
    default="csv",
    show_default=True,
    help="Output format.",
)
@click.option("--organization-id", type=int, default=None, help="Only this organization.")
@click.option("--status", default=None, help="Only records with this status.")
@click.option(
    "--output",
    "-o",
    type=click.Path(dir_okay=False, writable=True),
    default=None,
    help="Output file (default: service_records.<format>).",
)
@with_appcontext
def export_services_command(fmt, organization_id, status, output):
    """Write the service-record report to a CSV or Excel file."""
    # pylint: disable=import-outside-toplevel
    from app.services import export_service, service_record_service

    records = service_record_service.get_all_service_records(
        organization_id=organization_id, status=status
    )
    if fmt == "xlsx":
        buffer = export_service.export_services_excel(records)
    else:
        buffer = export_service.export_services_csv(records)

    path = output or f"service_records.{fmt}"
    with open(path, "wb") as fh:
        fh.write(buffer.getvalue())
    click.secho(f"Exported {len(records)} record(s) to {path}", fg="green")


def register_commands(app):
    """Register all custom CLI commands with the Flask application."""
    app.cli.add_command(db_check_command)
    app.cli.add_command(cleanup_notifications_command)
    app.cli.add_command(cleanup_sessions_command)
    app.cli.add_command(export_services_command)
