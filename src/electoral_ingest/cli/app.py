"""``electoral-ingest`` command line: API server, migrations and imports."""

import typer

from electoral_ingest.core.config import get_settings
from electoral_ingest.core.logging import setup_logging

app = typer.Typer(name="electoral-ingest", help="Electoral dataset import CLI", no_args_is_help=True)


@app.callback()
def _main_callback() -> None:
    """Configure logging from the environment before any command runs."""
    settings = get_settings()
    setup_logging(settings.log_level, log_dir=settings.log_dir, json=settings.log_json)


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", "--host", help="Interface to listen on"),
    port: int = typer.Option(8000, "--port", help="Port to listen on"),
    reload: bool = typer.Option(False, "--reload", help="Restart on code changes (development only)"),
) -> None:
    """Run the import API with uvicorn.

    Imports started over HTTP run inside this process; stopping it marks
    the ones still running as failed.
    """
    import uvicorn

    uvicorn.run("electoral_ingest.main:create_app", factory=True, host=host, port=port, reload=reload)


def _register_subcommands() -> None:
    from electoral_ingest.cli.db_cmd import db_app
    from electoral_ingest.cli.import_cmd import import_app

    app.add_typer(db_app, name="db", help="Apply or roll back schema migrations")
    app.add_typer(import_app, name="import", help="Start and manage dataset imports")


_register_subcommands()
