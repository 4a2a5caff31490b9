"""
CLI subcommands for configured engines.

Usage:
    opaquesync engines list
"""

import typer

from opaquesync.engine.registry import EngineRegistry

engines_app = typer.Typer(help="Inspect configured question engines")


@engines_app.command("list")
def engines_list():
    """List all configured engines."""
    engines = EngineRegistry.from_config().list_engines()

    if not engines:
        typer.echo("No engines configured.")
        return

    typer.echo(f"Configured engines ({len(engines)}):\n")
    for engine in engines:
        typer.echo(
            f"  {engine['name'] or engine['engine_id']}\n"
            f"     ID: {engine['engine_id']}\n"
            f"     URL: {engine['url']}\n"
            f"     Timeout: {engine['timeout']}s\n"
        )
