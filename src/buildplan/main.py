"""Main CLI entry point for Buildplan.

This module provides the main Typer application with sub-commands for
project and phase management, plus the web server.

Usage:
    buildplan serve --port 8000
    buildplan project create "Riverside Duplex"
    buildplan project metrics <project-id>
    buildplan phase recalculate <phase-id> --force
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console
from sqlalchemy.exc import ArgumentError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from buildplan.cli import phase as phase_cli
from buildplan.cli import project as project_cli
from buildplan.config import BuildplanConfig, load_config
from buildplan.database.connection import get_engine, get_session_factory
from buildplan.logging import setup_logging

app = typer.Typer(
    name="buildplan",
    help="Buildplan: construction project phase scheduling",
    no_args_is_help=True,
)

app.add_typer(project_cli.app, name="project", help="Manage projects")
app.add_typer(phase_cli.app, name="phase", help="Manage phases and tasks")

console = Console()


class AppContext:
    """Application context shared across CLI commands.

    Attributes:
        config: Loaded Buildplan configuration
        engine: Async SQLAlchemy engine, None when a session factory was supplied
        session_factory: Factory for creating database sessions
        organization_id: Tenant scope applied to every command
    """

    def __init__(
        self,
        config: BuildplanConfig,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        organization_id: str | None = None,
    ):
        self.config = config
        self.organization_id = organization_id
        if session_factory is None:
            self.engine = get_engine(config.database)
            self.session_factory = get_session_factory(self.engine)
        else:
            self.engine = None
            self.session_factory = session_factory


_app_context: AppContext | None = None


def get_app_context() -> AppContext:
    """Get the shared application context.

    Raises:
        RuntimeError: If context has not been initialized
    """
    if _app_context is None:
        raise RuntimeError("Application context not initialized. Call initialize_context first.")
    return _app_context


def initialize_context(
    config: BuildplanConfig,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    organization_id: str | None = None,
) -> AppContext:
    """Initialize the global application context.

    Args:
        config: Buildplan configuration
        session_factory: Use this factory instead of creating an engine
        organization_id: Tenant scope for all commands

    Returns:
        Initialized AppContext instance
    """
    global _app_context
    _app_context = AppContext(config, session_factory, organization_id)
    return _app_context


def reset_context() -> None:
    """Drop the global application context."""
    global _app_context
    _app_context = None


@app.command()
def serve(
    host: Annotated[
        Optional[str],
        typer.Option("--host", "-h", help="Host to bind to (default from config)"),
    ] = None,
    port: Annotated[
        Optional[int],
        typer.Option("--port", "-p", help="Port to bind to (default from config)"),
    ] = None,
    reload: Annotated[
        bool,
        typer.Option("--reload", "-r", help="Enable auto-reload (development)"),
    ] = False,
) -> None:
    """Start the Buildplan web server."""
    import uvicorn

    from buildplan.web.app import create_app

    config = get_app_context().config
    host = host or config.web.host
    port = port or config.web.port

    console.print(f"[bold cyan]Buildplan API[/bold cyan] on http://{host}:{port}")

    uvicorn.run(
        create_app(config),
        host=host,
        port=port,
        reload=reload,
        log_level="info",
    )


@app.callback()
def main_callback(
    config_path: Annotated[
        Optional[Path],
        typer.Option(
            "--config",
            "-c",
            help="Path to configuration file (TOML format)",
            exists=True,
            dir_okay=False,
            readable=True,
        ),
    ] = None,
    organization_id: Annotated[
        Optional[str],
        typer.Option("--org", help="Restrict commands to one organization"),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable debug logging"),
    ] = False,
) -> None:
    """Configure global options and initialize application context.

    An already initialized context (for example one installed by an
    embedding application) is kept; only its tenant scope is updated.
    """
    if _app_context is not None:
        config = _app_context.config
    else:
        try:
            config = load_config(config_path)
        except (FileNotFoundError, ValueError) as exc:
            console.print(f"[red]Invalid configuration:[/red] {exc}")
            raise typer.Exit(code=1) from exc

    log_config = config.logging.model_copy(
        update={"level": "DEBUG" if verbose else config.logging.level, "format": "console"}
    )
    setup_logging(log_config, stream=sys.stderr)

    if _app_context is not None:
        _app_context.organization_id = organization_id or _app_context.organization_id
        return

    try:
        initialize_context(config, organization_id=organization_id)
    except ArgumentError as exc:
        console.print(f"[red]Invalid database URL:[/red] {exc}")
        raise typer.Exit(code=1) from exc

    if verbose:
        console.print("[dim]Debug logging enabled[/dim]")


if __name__ == "__main__":
    app()
