from __future__ import annotations

import json
import logging

import typer

from bidlens.config import Settings
from bidlens.errors import BidlensError
from bidlens.health import config_status
from bidlens.warehouse import Warehouse
from bidlens.web.app import run_web

app = typer.Typer(no_args_is_help=True)


def _setup_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@app.command("web")
def web_cmd() -> None:
    settings = Settings.load()
    _setup_logging(settings)
    run_web(settings)


@app.command("health")
def health_cmd() -> None:
    """Print the configuration status; exit 1 when it is incomplete."""
    settings = Settings.load()
    status = config_status(settings)
    typer.echo(json.dumps(status, indent=2))
    if not status["databricksConfigured"]:
        raise typer.Exit(code=1)


@app.command("query")
def query_cmd(
    sql: str = typer.Argument(..., help="SQL text sent to the warehouse unchanged."),
) -> None:
    settings = Settings.load()
    _setup_logging(settings)
    if not sql.strip():
        typer.echo("ERROR: empty query")
        raise typer.Exit(code=2)
    try:
        result = Warehouse(settings).execute_query(sql)
    except BidlensError as e:
        typer.echo(f"ERROR: {e.message}" + (f" ({e.details})" if e.details else ""))
        raise typer.Exit(code=1)
    typer.echo(json.dumps(result.to_dict(), indent=2, default=str))


if __name__ == "__main__":
    app()
