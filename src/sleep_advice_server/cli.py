"""CLI entry point for sleep-advice-server."""

import asyncio

import typer
import uvicorn

from sleep_advice_server import __version__
from sleep_advice_server.client.consumer import AdviceStreamConsumer, AdviceView
from sleep_advice_server.core.config import settings

app = typer.Typer(
    name="sleep-advice-server",
    help="Sleep tracking server with streamed AI sleep advice",
    no_args_is_help=True,
)


@app.command()
def serve(
    host: str = typer.Option(None, help="Host to bind to (overrides config)"),
    port: int = typer.Option(None, help="Port to bind to (overrides config)"),
    reload: bool = typer.Option(False, help="Enable auto-reload for development"),
) -> None:
    """Start the API server.

    Example:
        sleep-advice-server serve
        sleep-advice-server serve --host 0.0.0.0 --port 8080 --reload
    """
    uvicorn.run(
        "sleep_advice_server.app:create_app",
        factory=True,
        host=host or settings.api_host,
        port=port or settings.api_port,
        reload=reload,
        log_level=settings.log_level.lower(),
    )


class _TerminalRenderer:
    """Prints advice text as it grows."""

    def __init__(self) -> None:
        self.shown = ""
        self.status_shown = False

    def __call__(self, view: AdviceView) -> None:
        if view.status_message and not self.status_shown:
            typer.secho(view.status_message, fg=typer.colors.BRIGHT_BLACK, err=True)
            self.status_shown = True

        if view.text.startswith(self.shown):
            typer.echo(view.text[len(self.shown) :], nl=False)
        else:
            typer.echo("\n" + view.text, nl=False)
        self.shown = view.text


async def _stream_advice(base_url: str, user_id: int, timeout: float) -> AdviceView:
    renderer = _TerminalRenderer()
    consumer = AdviceStreamConsumer(base_url, timeout_seconds=timeout, on_update=renderer)
    async with consumer:
        return await consumer.request_advice(user_id)


@app.command()
def advice(
    user_id: int = typer.Option(..., "--user-id", help="User to get advice for"),
    base_url: str = typer.Option(None, help="Server URL (defaults to the configured host/port)"),
    timeout: float = typer.Option(120.0, help="Seconds to wait for the full advice"),
) -> None:
    """Stream sleep advice for a user to the terminal.

    Example:
        sleep-advice-server advice --user-id 1
    """
    url = base_url or f"http://localhost:{settings.api_port}"
    try:
        view = asyncio.run(_stream_advice(url, user_id, timeout))
    except KeyboardInterrupt:
        typer.echo("\nCancelled.", err=True)
        raise typer.Exit(130) from None

    typer.echo()
    if view.error:
        typer.secho(view.error, fg=typer.colors.RED, err=True)
        raise typer.Exit(1)


@app.command()
def version() -> None:
    """Show version information."""
    typer.echo(f"sleep-advice-server v{__version__}")


def main() -> None:
    """Main entry point."""
    app()


if __name__ == "__main__":
    main()
