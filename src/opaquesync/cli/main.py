"""
Top-level CLI commands: replay.
"""

import json
import os
from pathlib import Path
from typing import Optional

import typer

from opaquesync.errors import OpaqueSyncError, RemoteFault


def configure_logging(verbose: bool = False):
    """Configure logging for the CLI."""
    from opaquesync.config import CONFIG
    from opaquesync.logger import setup_logging

    log_level = "DEBUG" if verbose else os.getenv("LOG_LEVEL", CONFIG.log_level)
    setup_logging(level=log_level, log_file=os.getenv("LOG_FILE"))


def _load_attempt(path: Path) -> dict:
    """
    Read an attempt file.

    Expected shape::

        {"question": {"question_id": "...", "engine_id": "...",
                      "remote_id": "...", "remote_version": "..."},
         "field_prefix": "q1:",
         "options": {"readonly": false, ...},
         "steps": [{"qt_vars": {...}, "behaviour_vars": {...}}, ...]}
    """
    if not path.exists():
        typer.echo(f"❌ Attempt file not found: {path}")
        raise typer.Exit(code=1)
    return json.loads(path.read_text(encoding="utf-8"))


def register_commands(app: typer.Typer):
    """Register top-level commands on the main app."""

    @app.command("replay")
    def replay(
        attempt_file: Path = typer.Argument(help="JSON file describing the attempt"),
        target: Optional[int] = typer.Option(
            None, "--target", "-t", help="Step index to reach (default: last step)"
        ),
        session_file: Optional[Path] = typer.Option(
            None,
            "--session",
            "-s",
            help="JSON file holding the cache scope between runs",
        ),
    ):
        """Replay a recorded attempt against its engine and print the result."""
        from opaquesync.engine.registry import EngineRegistry
        from opaquesync.session.cache import CacheStore
        from opaquesync.session.state import (
            AttemptIdentity,
            DisplayOptions,
            QuestionRef,
            Step,
        )
        from opaquesync.session.synchronizer import StateSynchronizer

        attempt = _load_attempt(attempt_file)
        steps = [Step(**s) for s in attempt.get("steps", [])]
        question = QuestionRef(**attempt["question"])
        options = None
        if attempt.get("options") is not None:
            options = DisplayOptions.from_dict(attempt["options"])

        session: dict = {}
        if session_file and session_file.exists():
            session = json.loads(session_file.read_text(encoding="utf-8"))

        engines = EngineRegistry.from_config()
        store = CacheStore(session, engines, scope_id="cli")
        synchronizer = StateSynchronizer(store)

        try:
            identity = AttemptIdentity.from_first_step(
                question, steps[0] if steps else None, attempt.get("field_prefix", "")
            )
            view = synchronizer.synchronize(
                identity, steps, target_seq=target, options=options
            )
        except RemoteFault as e:
            typer.echo(f"❌ Engine fault {e.code}: {e.message}")
            raise typer.Exit(code=2)
        except OpaqueSyncError as e:
            typer.echo(f"❌ Error: {e}")
            raise typer.Exit(code=1)
        finally:
            if session_file:
                session_file.write_text(json.dumps(session, indent=2), encoding="utf-8")
            engines.close()

        typer.echo(f"Step {view.sequence_number}{' (ended)' if view.ended else ''}")
        if view.progress_text:
            typer.echo(f"Progress: {view.progress_text}")
        if view.results is not None:
            marks = view.results.default_axis_marks()
            typer.echo(
                f"Results (step {view.results_sequence_number}): "
                f"marks={marks} attempts={view.results.attempts}"
            )
        if view.css_url:
            typer.echo(f"Stylesheet: {view.css_url}")
        typer.echo("")
        typer.echo(view.markup)
