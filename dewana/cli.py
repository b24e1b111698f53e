"""Typer CLI for Dewana."""

from __future__ import annotations

import json
from pathlib import Path

from sqlalchemy.exc import OperationalError
import typer
import uvicorn

from .archive import run_archive_cycle
from .config import (
    ConfigError,
    load_settings,
    settings,
    settings_as_dict,
    update_config_file,
)
from .crud import create_user, get_user_by_email, rotate_user_token
from .database import get_session
from .storage import init_db, upgrade_database

app = typer.Typer(help="Dewana command-line interface")


@app.callback(invoke_without_command=True)
def main(ctx: typer.Context) -> None:
    """Show help when no subcommand is provided."""
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit()


def _magic_link(token: str) -> str:
    base = settings.public_base_url.rstrip("/")
    if not base:
        base = f"http://{settings.app_host}:{settings.app_port}"
    return f"{base}/auth/{token}"


def _exit_read_only(exc: OperationalError, action: str) -> None:
    message = str(getattr(exc, "orig", exc)).lower()
    if "readonly" in message or "read-only" in message:
        typer.secho(
            f"Unable to {action} because the database is read-only. "
            f"Ensure write access to {settings.database_path}.",
            err=True,
            fg=typer.colors.RED,
        )
        raise typer.Exit(code=1)


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
        _exit_read_only(exc, "upgrade")
        raise

    typer.echo("Database upgrade complete:")
    for action in actions:
        typer.echo(f"- {action}")


@app.command("create-user")
def create_user_command(
    email: str = typer.Argument(..., help="Email address of the host"),
    display_name: str | None = typer.Option(
        None, "--name", help="Name shown on the dashboard"
    ),
) -> None:
    """Create a host account and print its sign-in link."""
    init_db()
    try:
        with get_session() as session:
            user = create_user(session, email=email, display_name=display_name)
            token = user.api_token
    except ValueError as exc:
        typer.secho(str(exc), err=True, fg=typer.colors.RED)
        raise typer.Exit(code=1)
    except OperationalError as exc:
        _exit_read_only(exc, "create the user")
        raise
    typer.echo(f"API token: {token}")
    typer.echo(f"Sign-in link: {_magic_link(token)}")


@app.command("rotate-token")
def rotate_token(
    email: str = typer.Argument(..., help="Email address of the host"),
) -> None:
    """Issue a new API token for a user, invalidating the old one."""
    init_db()
    with get_session() as session:
        user = get_user_by_email(session, email)
        if user is None:
            typer.secho(f"No user with email {email}", err=True, fg=typer.colors.RED)
            raise typer.Exit(code=1)
        token = rotate_user_token(session, user)
    typer.echo(f"API token: {token}")
    typer.echo(f"Sign-in link: {_magic_link(token)}")


@app.command("archive")
def archive() -> None:
    """Move published events that have finished to past."""
    init_db()
    stats = run_archive_cycle()
    typer.echo(f"Archive complete: {stats}")


@app.command("runserver")
def runserver(
    host: str = typer.Option(settings.app_host, "--host", help="Host to bind"),
    port: int = typer.Option(settings.app_port, "--port", help="Port to bind"),
):
    """Start FastAPI; the archive scheduler runs inside the app lifespan."""
    init_db()
    config = uvicorn.Config(
        "dewana.api:app",
        host=host,
        port=port,
        reload=False,
        proxy_headers=True,
        forwarded_allow_ips="*",
    )
    server = uvicorn.Server(config)
    typer.echo(f"Starting Dewana on {host}:{port}")
    server.run()


@app.command("config")
def configure(
    show: bool = typer.Option(
        False, "--show", help="Show the current effective configuration"
    ),
    live_grace_hours: float | None = typer.Option(
        None,
        "--live-grace-hours",
        min=0.0,
        help="Hours an event without an end time stays live",
    ),
    status_poll_seconds: int | None = typer.Option(
        None, "--status-poll-seconds", min=5, help="Client status refresh interval"
    ),
    archive_interval_minutes: int | None = typer.Option(
        None, "--archive-interval-minutes", min=1, help="Minutes between archive runs"
    ),
    enable_scheduler: bool | None = typer.Option(
        None,
        "--enable-scheduler/--disable-scheduler",
        help="Toggle the background archive scheduler",
    ),
    max_cover_bytes: int | None = typer.Option(
        None, "--max-cover-bytes", min=1, help="Largest accepted cover image"
    ),
    host: str | None = typer.Option(None, "--host", help="Default host for runserver"),
    port: int | None = typer.Option(None, "--port", help="Default port for runserver"),
    public_base_url: str | None = typer.Option(
        None, "--public-base-url", help="Base URL used in printed sign-in links"
    ),
    config_path: Path | None = typer.Option(
        None, "--config-path", help="Path to dewana.toml (default: ./dewana.toml)"
    ),
):
    """View or update the persistent configuration file."""

    updates = {
        "live_grace_hours": live_grace_hours,
        "status_poll_seconds": status_poll_seconds,
        "archive_interval_minutes": archive_interval_minutes,
        "enable_scheduler": enable_scheduler,
        "max_cover_bytes": max_cover_bytes,
        "app_host": host,
        "app_port": port,
        "public_base_url": public_base_url,
    }
    clean_updates = {k: v for k, v in updates.items() if v is not None}

    target_path = config_path or settings.config_path
    try:
        if clean_updates:
            settings_ref = update_config_file(clean_updates, path=target_path)
            typer.echo(f"Updated configuration in {target_path}")
        else:
            settings_ref = load_settings(target_path)
    except ConfigError as exc:
        typer.secho(str(exc), err=True, fg=typer.colors.RED)
        raise typer.Exit(code=1)
    if show or not clean_updates:
        effective = settings_as_dict(settings_ref)
        effective["config_path"] = str(target_path)
        typer.echo(json.dumps(effective, indent=2))


if __name__ == "__main__":
    app()
