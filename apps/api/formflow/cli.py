"""CLI tools for form administration."""

import json
from datetime import datetime
from uuid import UUID

import click

from formflow.core.security import create_session_token
from formflow.db.base import Base
from formflow.db.enums import AssignmentTargetType, FormRole
from formflow.db.session import SessionLocal, engine
from formflow.services import form_assignment_service, form_service
from formflow.services.errors import FormServiceError


@click.group()
def cli():
    """Formflow CLI tools."""
    pass


@cli.command()
def create_tables():
    """
    Create all tables directly from the models.

    Development convenience; deployed databases use alembic migrations.
    """
    from formflow.db import models  # noqa: F401  (registers tables)

    Base.metadata.create_all(bind=engine)
    click.echo("✓ Tables created")


@cli.command()
@click.option("--file", "path", required=True, type=click.Path(exists=True, dir_okay=False), help="Schema JSON file")
@click.option("--name", default=None, help="Form name (defaults to the schema title)")
@click.option("--created-by", default=None, type=click.UUID, help="Author user id")
def import_form(path: str, name: str | None, created_by: UUID | None):
    """
    Create a form from an authoring-tool schema JSON file.

    Example:
        python -m formflow.cli import-form --file onboarding.json
    """
    with open(path, encoding="utf-8") as f:
        try:
            schema_json = json.load(f)
        except json.JSONDecodeError as e:
            raise click.ClickException(f"Invalid JSON: {e}")

    db = SessionLocal()
    try:
        schema = form_service.parse_schema(schema_json)
        form = form_service.create_form(db, name or schema.title, schema, created_by)
        click.echo(f"✓ Created form: {form.name}")
        click.echo(f"  ID: {form.id}")
        click.echo(f"  Fields: {len(form_service.flatten_fields(schema))}")
    except FormServiceError as e:
        db.rollback()
        raise click.ClickException(str(e))
    finally:
        db.close()


@cli.command()
@click.option("--form-id", required=True, type=click.UUID, help="Form to assign")
@click.option("--user-id", default=None, type=click.UUID, help="Learner id (omit with --all)")
@click.option("--all", "assign_all", is_flag=True, help="Assign to every user")
@click.option("--due", default=None, type=click.DateTime(), help="Due date (YYYY-MM-DD)")
def assign_form(form_id: UUID, user_id: UUID | None, assign_all: bool, due: datetime | None):
    """Assign a form to one learner or to everyone."""
    if assign_all == (user_id is not None):
        raise click.UsageError("Pass exactly one of --user-id or --all")

    target_type = AssignmentTargetType.ALL if assign_all else AssignmentTargetType.USER
    db = SessionLocal()
    try:
        assignment = form_assignment_service.create_assignment(
            db, form_id, target_type, user_id, due, created_by=None
        )
        click.echo(f"✓ Assigned form {form_id} ({target_type.value})")
        click.echo(f"  Assignment ID: {assignment.id}")
    except (FormServiceError, ValueError) as e:
        db.rollback()
        raise click.ClickException(str(e))
    finally:
        db.close()


@cli.command()
@click.option("--user-id", required=True, type=click.UUID, help="User id to embed")
@click.option(
    "--role",
    default=FormRole.USER.value,
    type=click.Choice([r.value for r in FormRole]),
    help="Role claim",
)
def session_token(user_id: UUID, role: str):
    """Print a signed session token for local testing."""
    click.echo(create_session_token(user_id, role))


if __name__ == "__main__":
    cli()
