"""Typer CLI for EventsFixer."""

from __future__ import annotations

import json
from pathlib import Path

from sqlalchemy.exc import OperationalError
import typer
import uvicorn

from .auth import create_user as create_user_record
from .config import load_settings, settings, settings_as_dict
from .config_migrations import validate_and_migrate
from .crud import get_event, list_media_assets
from .database import get_session
from .email import process_queued_emails
from .errors import AppError, MigrationError
from .reminders import queue_event_reminders, queue_no_response_reminders
from .renderers import render_page_html, resolve
from .storage import init_db, upgrade_database
from .versions import current_page_config

app = typer.Typer(help="EventsFixer command-line interface")


@app.callback(invoke_without_command=True)
def main(ctx: typer.Context) -> None:
    """Show help when no subcommand is provided."""
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit()


@app.command("upgrade-db")
def upgrade_db(
    no_backup: bool = typer.Option(
        False,
        "--no-backup",
        help="Skip creating a .bak copy of the database before upgrading",
    ),
) -> None:
    """Upgrade the SQLite database schema if needed."""
    try:
        actions = upgrade_database(make_backup=not no_backup)
    except OperationalError as exc:
        message = str(getattr(exc, "orig", exc)).lower()
        if "readonly" in message or "read-only" in message:
            typer.secho(
                "Unable to upgrade because the database is read-only. "
                f"Ensure write access to {settings.database_path}.",
                err=True,
                fg=typer.colors.RED,
            )
            raise typer.Exit(code=1)
        raise

    typer.echo("Database upgrade complete:")
    for action in actions:
        typer.echo(f"- {action}")


@app.command("runserver")
def runserver(
    host: str = typer.Option(settings.app_host, "--host", help="Host to bind"),
    port: int = typer.Option(settings.app_port, "--port", help="Port to bind"),
):
    """Start the FastAPI app; the scheduler runs inside its lifespan."""
    init_db()
    config = uvicorn.Config(
        "eventsfixer.api:app",
        host=host,
        port=port,
        reload=False,
        proxy_headers=True,
        forwarded_allow_ips=settings.forwarded_allow_ips,
    )
    server = uvicorn.Server(config)
    typer.echo(f"Starting EventsFixer on {host}:{port}")
    server.run()


@app.command("create-user")
def create_user(
    email: str = typer.Option(..., "--email", help="Organizer email address"),
    name: str | None = typer.Option(None, "--name", help="Display name"),
) -> None:
    """Create an organizer account and print its API token."""
    init_db()
    try:
        with get_session() as session:
            user, token = create_user_record(session, email=email, name=name)
            user_id = user.id
    except (AppError, ValueError) as exc:
        typer.secho(str(exc), err=True, fg=typer.colors.RED)
        raise typer.Exit(code=1)
    typer.echo(f"Created user {user_id}")
    typer.echo("API token (shown once):")
    typer.echo(token)


@app.command("process-emails")
def process_emails(
    limit: int = typer.Option(
        settings.email_batch_size, "--limit", min=1, help="Maximum emails to send"
    ),
) -> None:
    """Deliver queued emails now instead of waiting for the scheduler."""
    init_db()
    sent = process_queued_emails(limit)
    typer.echo(f"Sent {sent} email(s).")


@app.command("send-reminders")
def send_reminders() -> None:
    """Queue tomorrow's event reminders and no-response nudges."""
    init_db()
    confirmed = queue_event_reminders()
    nudged = queue_no_response_reminders()
    typer.echo(f"Queued {confirmed} event reminder(s) and {nudged} no-response reminder(s).")


@app.command("validate-config")
def validate_config(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True),
    write: bool = typer.Option(
        False, "--write", help="Rewrite the file with the migrated document"
    ),
) -> None:
    """Validate a page config JSON file, migrating older versions."""
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        typer.secho(f"Invalid JSON: {exc}", err=True, fg=typer.colors.RED)
        raise typer.Exit(code=1)
    try:
        config = validate_and_migrate(raw)
    except MigrationError as exc:
        typer.secho(f"Invalid page config: {exc}", err=True, fg=typer.colors.RED)
        for detail in exc.details or []:
            location = ".".join(str(part) for part in detail.get("loc", ()))
            typer.secho(f"  {location}: {detail.get('msg')}", err=True)
        raise typer.Exit(code=1)

    document = json.dumps(config.to_document(), indent=2)
    if write:
        path.write_text(document + "\n", encoding="utf-8")
        typer.echo(f"Wrote schema version {config.schema_version} config to {path}")
    else:
        typer.echo(document)


@app.command("render")
def render(
    event_id: str = typer.Argument(..., help="Event id"),
    output: Path | None = typer.Option(None, "--output", "-o", help="Write HTML here"),
    preview: bool = typer.Option(False, "--preview", help="Render as a preview page"),
) -> None:
    """Render an event page to HTML."""
    init_db()
    with get_session() as session:
        event = get_event(session, event_id)
        if event is None:
            typer.secho(f"Event {event_id} not found", err=True, fg=typer.colors.RED)
            raise typer.Exit(code=1)
        renderer = resolve(event.template_id)
        tree = renderer.render(
            current_page_config(event),
            list_media_assets(session, event.id),
            event_id=event.id,
        )
        html = render_page_html(tree, preview=preview, event=event)
    if output:
        output.write_text(html, encoding="utf-8")
        typer.echo(f"Rendered {renderer.template_id} page to {output}")
    else:
        typer.echo(html)


@app.command("config")
def show_config(
    config_path: Path | None = typer.Option(
        None, "--config-path", help="Read settings from this TOML file"
    ),
) -> None:
    """Print the effective configuration."""
    settings_ref = load_settings(config_path) if config_path else settings
    effective = settings_as_dict(settings_ref)
    effective["config_path"] = str(settings_ref.config_path)
    typer.echo(json.dumps(effective, indent=2))


if __name__ == "__main__":
    app()
