"""Command line interface for voicememo."""

from __future__ import annotations

import json
import logging
from dataclasses import asdict
from datetime import datetime
from pathlib import Path
from typing import Dict, Optional

import typer

from . import config as config_mod
from .client import RelayClient, RelayClientError, TranscriptionResult
from .config import ConfigurationError
from .models import Config
from .storage import STORE_PATH, FileSlot, StorageError, TranscriptStore

app = typer.Typer(add_completion=False, help="Record voice memos, transcribe and summarise them.")


def _abort(message: str) -> typer.Exit:
    typer.secho(message, fg=typer.colors.RED, err=True)
    return typer.Exit(code=1)


def _load_config() -> Config:
    try:
        return config_mod.load_config()
    except ConfigurationError as exc:
        raise _abort(str(exc)) from exc


def _store(cfg: Config) -> TranscriptStore:
    path = Path(cfg.store_path).expanduser() if cfg.store_path else STORE_PATH
    return TranscriptStore(FileSlot(path))


def _client(cfg: Config) -> RelayClient:
    return RelayClient(cfg.backend_url, store=_store(cfg), timeout=cfg.request_timeout)


def _format_timestamp(value: str) -> str:
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).astimezone().strftime("%Y-%m-%d %H:%M")
    except ValueError:
        return value


def _format_duration(seconds: Optional[float]) -> str:
    if seconds is None:
        return "-"
    minutes, secs = divmod(int(round(seconds)), 60)
    return f"{minutes}:{secs:02d}"


def _print_result(result: TranscriptionResult) -> None:
    typer.echo(result.transcript)
    if result.summary:
        typer.secho("\nSummary:\n" + result.summary, fg=typer.colors.GREEN)
    if result.record is not None:
        typer.secho(f"\nSaved transcript with id {result.record.id}.", fg=typer.colors.BLUE)
    else:
        typer.secho("\nThe transcript could not be saved locally.", fg=typer.colors.YELLOW, err=True)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, help="Interface to bind (defaults to HOST or 0.0.0.0)."),
    port: Optional[int] = typer.Option(None, help="Port to listen on (defaults to PORT or 4000)."),
) -> None:
    """Run the relay server."""

    import uvicorn

    from .api import create_app

    try:
        settings = config_mod.load_server_settings()
    except ConfigurationError as exc:
        raise _abort(str(exc)) from exc
    if host:
        settings.host = host
    if port:
        settings.port = port

    logging.getLogger(__name__).info("Relay server listening on %s:%s", settings.host, settings.port)
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port)


@app.command()
def transcribe(
    audio: Path = typer.Argument(..., exists=True, readable=True, dir_okay=False, help="Path to the audio file."),
) -> None:
    """Upload an existing audio file to the relay and store the result."""

    cfg = _load_config()
    try:
        result = _client(cfg).transcribe(audio)
    except (ConfigurationError, RelayClientError) as exc:
        raise _abort(str(exc)) from exc
    _print_result(result)


@app.command()
def record() -> None:  # pragma: no cover - interactive
    """Record from the microphone until Enter is pressed, then transcribe."""

    from .recorder import RecordingSession

    cfg = _load_config()
    try:
        config_mod.require_backend_url(cfg.backend_url)
    except ConfigurationError as exc:
        raise _abort(str(exc)) from exc

    session = RecordingSession(_client(cfg))
    if not session.start():
        raise _abort(session.error or "Recording could not be started.")
    typer.prompt("Recording... press Enter to stop", default="", show_default=False)
    typer.echo(f"Uploading {_format_duration(session.elapsed())} of audio...")
    result = session.stop()
    if result is None:
        raise _abort(session.error or "The recording could not be transcribed.")
    _print_result(result)


@app.command("list")
def list_command() -> None:
    """List stored transcripts, newest first."""

    records = _store(_load_config()).list()
    if not records:
        typer.echo("No transcripts found. Use `voicememo record` to create one.")
        return

    header = f"{'ID':<14}  {'Created':<16}  {'Length':>6}  Transcript"
    typer.echo(header)
    typer.echo("-" * len(header))
    for record in records:
        preview = record.transcript.replace("\n", " ")
        if len(preview) > 40:
            preview = preview[:39] + "…"
        typer.echo(
            f"{record.id:<14}  {_format_timestamp(record.created_at):<16}  "
            f"{_format_duration(record.duration):>6}  {preview}"
        )


@app.command()
def show(
    transcript_id: str = typer.Argument(..., help="Identifier of the transcript to display."),
) -> None:
    """Show a stored transcript."""

    record = _store(_load_config()).get(transcript_id)
    if record is None:
        raise _abort(f"Transcript with id {transcript_id} not found")

    typer.secho(f"Created: {_format_timestamp(record.created_at)}", fg=typer.colors.BLUE)
    typer.echo(f"Length: {_format_duration(record.duration)}")
    if record.summary:
        typer.secho("\nSummary:\n" + record.summary, fg=typer.colors.GREEN)
    typer.echo("\nTranscript:\n" + record.transcript)


@app.command()
def delete(
    transcript_id: str = typer.Argument(..., help="Identifier of the transcript to delete."),
) -> None:
    """Delete a stored transcript."""

    try:
        _store(_load_config()).delete(transcript_id)
    except StorageError as exc:
        raise _abort(str(exc)) from exc
    typer.secho(f"Transcript {transcript_id} deleted.", fg=typer.colors.BLUE)


@app.command()
def clear(
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation."),
) -> None:
    """Delete all stored transcripts."""

    if not yes:
        typer.confirm("Delete all transcripts?", abort=True)
    try:
        _store(_load_config()).clear_all()
    except StorageError as exc:
        raise _abort(str(exc)) from exc
    typer.secho("All transcripts deleted.", fg=typer.colors.BLUE)


@app.command()
def config(
    backend_url: Optional[str] = typer.Option(None, help="Base URL of the voicememo relay server."),
    request_timeout: Optional[float] = typer.Option(None, help="HTTP timeout (seconds) for uploads."),
    store_path: Optional[str] = typer.Option(None, help="File used to store transcripts."),
    show: bool = typer.Option(False, "--show", help="Display the active configuration."),
) -> None:
    """Update or inspect configuration settings."""

    updates: Dict[str, object] = {
        key: value
        for key, value in {
            "backend_url": backend_url,
            "request_timeout": request_timeout,
            "store_path": store_path,
        }.items()
        if value is not None
    }

    if show or not updates:
        typer.echo(json.dumps(asdict(_load_config()), indent=2, default=str))
        return

    try:
        config_mod.update_config(**updates)
    except ConfigurationError as exc:
        raise _abort(str(exc)) from exc
    typer.secho("Configuration updated.", fg=typer.colors.BLUE)


@app.command()
def health() -> None:
    """Check connectivity to the configured relay server."""

    try:
        payload = _client(_load_config()).health()
    except (ConfigurationError, RelayClientError) as exc:
        raise _abort(str(exc)) from exc
    typer.echo(f"Status: {payload.get('status', 'unknown')}")


if __name__ == "__main__":  # pragma: no cover
    app()
