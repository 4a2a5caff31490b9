"""
CLI subcommands for inspecting a saved cache scope.

Usage:
    opaquesync cache show <session.json>
"""

import json
from pathlib import Path

import typer

from opaquesync.session.cache import OPTION_CACHE_KEY, STATE_CACHE_KEY
from opaquesync.session.state import State

cache_app = typer.Typer(help="Inspect saved question session caches")


@cache_app.command("show")
def cache_show(
    session_file: Path = typer.Argument(help="Session JSON written by 'replay --session'"),
):
    """Summarise every cached state in a session file."""
    if not session_file.exists():
        typer.echo(f"❌ Session file not found: {session_file}")
        raise typer.Exit(code=1)

    session = json.loads(session_file.read_text(encoding="utf-8"))
    records = session.get(STATE_CACHE_KEY) or {}

    if not records:
        typer.echo("Cache is empty.")
    for key, record in records.items():
        state = State.from_record(record)
        status = "ended" if state.ended else (
            "live" if state.has_live_session else "not started"
        )
        typer.echo(
            f"  {key}\n"
            f"     Question: {state.remote_id} v{state.remote_version} "
            f"on '{state.engine_id}'\n"
            f"     Step: {state.sequence_number} "
            f"(results at {state.results_sequence_number}), {status}\n"
            f"     Idle age: {state.idle_age}\n"
        )

    options = session.get(OPTION_CACHE_KEY)
    if options:
        typer.echo(f"Last used options: {json.dumps(options)}")
