"""
opaquesync CLI — inspect engines and replay recorded attempts.

This package splits CLI commands into focused modules:
- main:    replay
- engines: list
- cache:   show
"""

import typer

from opaquesync.cli.cache import cache_app
from opaquesync.cli.engines import engines_app
from opaquesync.cli.main import configure_logging, register_commands

app = typer.Typer(help="opaquesync - replay question attempts against remote engines")


@app.callback()
def main(
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable verbose logging (DEBUG level)"
    ),
):
    """
    opaquesync - replay question attempts against remote engines.
    """
    configure_logging(verbose)


register_commands(app)

app.add_typer(engines_app, name="engines")
app.add_typer(cache_app, name="cache")

if __name__ == "__main__":
    app()
