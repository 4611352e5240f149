from __future__ import annotations

from datetime import timedelta
from typing import Optional

import typer
import uvicorn

from .config import get_settings
from .db.session import build_engine, build_session_factory, init_db
from .services.documents import DocumentRecordStore
from .services.waitlist import WaitlistService

app = typer.Typer(help="Document intake administrative CLI")


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", help="Bind address (defaults to HOST)"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Listening port (defaults to PORT)"),
    reload: bool = typer.Option(False, "--reload", help="Reload on code changes"),
) -> None:
    """Run the API under uvicorn."""
    settings = get_settings()
    uvicorn.run(
        "intake_api.main:create_app",
        factory=True,
        host=host or settings.host,
        port=port or settings.port,
        reload=reload,
    )


@app.command("init-db")
def init_database() -> None:
    """Create missing tables in DATABASE_URL."""
    settings = get_settings()
    init_db(build_engine(settings.database_url))
    typer.echo("Database tables are in place")


@app.command("expire-pending")
def expire_pending(
    older_than_minutes: Optional[int] = typer.Option(
        None,
        "--older-than-minutes",
        "-m",
        help="Age after which unconfirmed uploads are marked failed (defaults to PENDING_EXPIRY_MINUTES)",
    ),
) -> None:
    """Mark pending documents that were never confirmed as failed."""
    settings = get_settings()
    minutes = older_than_minutes if older_than_minutes is not None else settings.pending_expiry_minutes
    if minutes <= 0:
        raise typer.BadParameter("must be positive", param_hint="--older-than-minutes")

    records = DocumentRecordStore(build_session_factory(build_engine(settings.database_url)))
    expired = records.expire_stale_pending(timedelta(minutes=minutes))
    typer.echo(f"Expired {expired} pending documents older than {minutes} minutes")


@app.command("list-waitlist")
def list_waitlist() -> None:
    """Print waitlist signups, oldest first."""
    settings = get_settings()
    entries = WaitlistService(build_session_factory(build_engine(settings.database_url))).list_entries()
    for entry in entries:
        typer.echo(f"{entry.created_at:%Y-%m-%d} {entry.email} {entry.name} ({entry.company_size or '-'})")
    typer.echo(f"{len(entries)} entries")


if __name__ == "__main__":
    app()
