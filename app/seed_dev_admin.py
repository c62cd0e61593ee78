"""
Seed script — a SUPER_ADMIN account for local development.

``flask seed-dev-admin`` creates the account, or, when the email is
already registered, promotes and reactivates it and resets its
password.  With ``--organization NAME`` the admin also gets a demo
organization to work in.

Usage::

    flask seed-dev-admin
    flask seed-dev-admin --email me@example.com --password s3cret!
    flask seed-dev-admin --organization "Demo Spa" --industry BEAUTY

Requires an upgraded database (``flask db upgrade``).
"""

import click
from flask import current_app
from flask.cli import with_appcontext

from app.extensions import db
from app.models.organization import INDUSTRY_TYPES, Organization
from app.models.user import User
from app.services import auth_service, organization_service


def _upsert_admin(email: str, password: str, name: str) -> tuple[User, bool]:
    """Return ``(user, created)`` for a SUPER_ADMIN with ``password``."""
    user = User.query.filter(User.email == email).first()
    created = user is None
    if created:
        first_name, _, last_name = name.partition(" ")
        user = User(
            email=email,
            first_name=first_name,
            last_name=last_name or "Admin",
            email_verified=True,
        )
        db.session.add(user)
    user.role = "SUPER_ADMIN"
    user.is_active = True
    user.password_hash = auth_service.hash_password(password)
    db.session.commit()
    return user, created


@click.command("seed-dev-admin")
@click.option("--email", default="dev.admin@localhost.dev", show_default=True)
@click.option("--password", default="admin123", show_default=True)
@click.option("--name", default="Dev Admin", show_default=True, help="First and last name.")
@click.option("--organization", default=None, help="Also create a demo organization.")
@click.option(
    "--industry",
    type=click.Choice(INDUSTRY_TYPES),
    default="CONSULTING",
    show_default=True,
)
@with_appcontext
def seed_dev_admin_command(email, password, name, organization, industry):
    """Create or reset the development SUPER_ADMIN."""
    min_length = current_app.config["PASSWORD_MIN_LENGTH"]
    if len(password) < min_length:
        raise click.BadParameter(
            f"must be at least {min_length} characters",
            param_hint="--password",
        )

    user, created = _upsert_admin(email.strip().lower(), password, name)
    verb = "Created" if created else "Reset"
    click.secho(f"{verb} SUPER_ADMIN {user.email} (id={user.id})", fg="green")

    if organization:
        existing = Organization.query.filter_by(name=organization, is_active=True).first()
        if existing is not None:
            click.echo(f"Organization '{organization}' already exists (id={existing.id})")
        else:
            org = organization_service.create_organization(
                {"name": organization, "industry_type": industry}, user.id
            )
            click.secho(f"Created organization '{org.name}' (id={org.id})", fg="green")

    click.echo("Log in with POST /api/auth/login to get a Bearer token.")


def register_seed_commands(app):
    """Register seed-related CLI commands with the Flask application."""
    app.cli.add_command(seed_dev_admin_command)
