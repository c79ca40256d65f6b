"""``keystone-indexer serve``: JSON read API over the index."""

import typer

from ..logging_config import setup_logging
from . import app
from ._common import console, escape, resolve_config


@app.command()
def serve(
    ctx: typer.Context,
    port: int = typer.Option(8765, help="Port to listen on"),
    host: str = typer.Option("127.0.0.1", help="Host to bind to"),
) -> None:
    """Serve the read API (roles, members, expiring grants, activity)."""
    try:
        from ..server import _check_deps

        _check_deps()
    except ImportError as exc:
        console.print(f"[red]{escape(str(exc))}[/red]")
        raise typer.Exit(1)

    import uvicorn

    from ..server.app import create_app

    config = resolve_config(ctx)
    verbose = config.verbosity == "verbose"
    setup_logging(verbose=verbose, quiet=config.verbosity == "quiet")

    url = f"http://{host}:{port}/api/indexer/contracts"
    console.print(f"[bold]Read API[/bold] → [link={url}]{url}[/link]")
    console.print("[dim]Press Ctrl+C to stop[/dim]")

    asgi_app = create_app(config.db_path, expiring_window_hours=config.expiring_window_hours)
    try:
        uvicorn.run(
            asgi_app,
            host=host,
            port=port,
            log_level="warning" if not verbose else "info",
        )
    except KeyboardInterrupt:
        pass
    finally:
        console.print("\n[dim]Stopped.[/dim]")
