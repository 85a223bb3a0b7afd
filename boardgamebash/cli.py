"""Typer CLI for Boardgame Bash."""

from __future__ import annotations

import json
from pathlib import Path

from sqlalchemy.exc import OperationalError
import typer
import uvicorn

from . import crud
from .aggregates import summarize_event
from .config import (
    load_settings,
    settings,
    settings_as_dict,
    update_config_file,
)
from .database import get_session
from .participation import ParticipationStore
from .preferences import GameSummary
from .seed import seed_fake_data
from .storage import init_db, upgrade_database

app = typer.Typer(help="Boardgame Bash command-line interface")


@app.callback(invoke_without_command=True)
def main(ctx: typer.Context) -> None:
    """Show help when no subcommand is provided."""
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit()


def _exit_if_readonly(exc: OperationalError, action: str) -> None:
    message = str(getattr(exc, "orig", exc)).lower()
    if "readonly" in message or "read-only" in message:
        typer.secho(
            f"Unable to {action} because the database is read-only. "
            f"Ensure write access to {settings.database_path}.",
            err=True,
            fg=typer.colors.RED,
        )
        raise typer.Exit(code=1)


@app.command("init-db")
def init_database() -> None:
    """Create the SQLite database and apply migrations."""
    try:
        init_db()
    except OperationalError as exc:
        _exit_if_readonly(exc, "initialize the database")
        raise
    typer.echo(f"Database ready at {settings.database_path}")


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
        _exit_if_readonly(exc, "upgrade")
        raise

    if not actions:
        typer.echo("Database already up to date.")
        return

    typer.echo("Database upgrade complete:")
    for action in actions:
        typer.echo(f"- {action}")


@app.command("runserver")
def runserver(
    host: str = typer.Option(settings.app_host, "--host", help="Host to bind"),
    port: int = typer.Option(settings.app_port, "--port", help="Port to bind"),
):
    """Start the FastAPI app under uvicorn."""
    init_db()
    config = uvicorn.Config(
        "boardgamebash.api:app",
        host=host,
        port=port,
        reload=False,
        proxy_headers=True,
        forwarded_allow_ips="*",
    )
    server = uvicorn.Server(config)
    typer.echo(f"Starting Boardgame Bash on {host}:{port}")
    server.run()


@app.command("seed-data")
def seed_data(
    games: int = typer.Option(
        settings.seed_games, "--games", min=0, help="Number of extra catalog games"
    ),
    events: int = typer.Option(
        settings.seed_events, "--events", min=0, help="Number of game nights to create"
    ),
    guests: int = typer.Option(
        settings.seed_guests_per_event,
        "--guests",
        min=0,
        help="Maximum guest RSVPs to attach to each event",
    ),
    users: int = typer.Option(
        settings.seed_users, "--users", min=0, help="Number of extra registered users"
    ),
):
    """Populate the database with a demo catalog, events and RSVPs."""
    stats = seed_fake_data(
        game_count=games,
        event_count=events,
        max_guests_per_event=guests,
        user_count=users,
    )
    typer.echo(
        f"Seed complete: {stats['games']} games, {stats['users']} users, "
        f"{stats['events']} events, {stats['participations']} RSVPs created."
    )


@app.command("create-user")
def create_user(
    name: str = typer.Argument(..., help="Display name"),
    admin: bool = typer.Option(False, "--admin", help="Grant organizer rights"),
) -> None:
    """Register a user and print its id for the X-User-Id header."""
    init_db()
    try:
        with get_session() as session:
            user = crud.create_user(session, name=name, is_admin=admin)
            user_id = user.id
    except ValueError as exc:
        typer.secho(str(exc), err=True, fg=typer.colors.RED)
        raise typer.Exit(code=1)
    typer.echo(user_id)


@app.command("rankings")
def rankings(
    event_id: str = typer.Argument(..., help="Event id"),
    as_json: bool = typer.Option(False, "--json", help="Print the raw summary"),
) -> None:
    """Print the aggregate game rankings for an event."""
    init_db()
    with get_session() as session:
        event = crud.get_event(session, event_id)
        if event is None:
            typer.secho(f"Event {event_id} not found", err=True, fg=typer.colors.RED)
            raise typer.Exit(code=1)
        records = ParticipationStore(session).list_for_event(
            event.id, attending_only=True
        )
        names = crud.user_names(session, [r.user_id for r in records if r.user_id])
        summary = summarize_event(
            event.id,
            [GameSummary.from_model(game) for game in event.games],
            records,
            names,
        )
        title = event.title

    if as_json:
        typer.echo(json.dumps(summary.as_dict(), indent=2))
        return

    typer.echo(f"{title}: {summary.attending_count} attending")
    for position, item in enumerate(summary.games, start=1):
        average = f"{item.average_rank:.2f}" if item.average_rank is not None else "-"
        typer.echo(
            f"{position:>2}. {item.title}  avg {average}  "
            f"votes {item.votes_count}  excluded {item.excluded_count}/"
            f"{item.included_count + item.excluded_count}"
        )


@app.command("config")
def configure(
    show: bool = typer.Option(
        False, "--show", help="Show the current effective configuration"
    ),
    host: str | None = typer.Option(None, "--host", help="Default host for runserver"),
    port: int | None = typer.Option(None, "--port", help="Default port for runserver"),
    config_path: Path | None = typer.Option(
        None,
        "--config-path",
        help="Path to boardgamebash.toml (default: ./boardgamebash.toml)",
    ),
    games_per_page: int | None = typer.Option(
        None, "--games-per-page", min=1, help="Default page size for game listings"
    ),
    guest_name_max_length: int | None = typer.Option(
        None, "--guest-name-max-length", min=1, help="Longest accepted guest name"
    ),
    cancel_removes_participation: bool | None = typer.Option(
        None,
        "--cancel-removes-participation/--cancel-keeps-participation",
        help="Delete the record on cancel instead of marking it not attending",
    ),
    seed_games: int | None = typer.Option(
        None, "--seed-games", min=0, help="Default seed-data extra games"
    ),
    seed_events: int | None = typer.Option(
        None, "--seed-events", min=0, help="Default seed-data events"
    ),
    seed_guests_per_event: int | None = typer.Option(
        None, "--seed-guests-per-event", min=0, help="Default seed-data guests/event"
    ),
    seed_users: int | None = typer.Option(
        None, "--seed-users", min=0, help="Default seed-data extra users"
    ),
):
    """View or update the persistent configuration file."""

    updates = {
        "app_host": host,
        "app_port": port,
        "games_per_page": games_per_page,
        "guest_name_max_length": guest_name_max_length,
        "cancel_removes_participation": cancel_removes_participation,
        "seed_games": seed_games,
        "seed_events": seed_events,
        "seed_guests_per_event": seed_guests_per_event,
        "seed_users": seed_users,
    }
    clean_updates = {k: v for k, v in updates.items() if v is not None}

    settings_ref = settings
    target_path = config_path or settings.config_path
    if clean_updates:
        settings_ref = update_config_file(clean_updates, path=target_path)
        typer.echo(f"Updated configuration in {target_path}")
    else:
        settings_ref = load_settings(target_path)
    if show or not clean_updates:
        effective = settings_as_dict(settings_ref)
        effective["config_path"] = str(target_path)
        typer.echo(json.dumps(effective, indent=2))


if __name__ == "__main__":
    app()
