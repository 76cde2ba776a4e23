"""Main CLI application module."""

import typer
import uvicorn

from src.userhub.runtime.context import get_config

from .user_commands import users_app

app = typer.Typer(
    help="userhub CLI - user records and API server",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

app.add_typer(users_app, name="users")


@app.command("serve")
def serve(
    host: str | None = typer.Option(None, "--host", help="Bind address (defaults to config)"),
    port: int | None = typer.Option(None, "--port", "-p", help="Port (defaults to config)"),
    reload: bool = typer.Option(False, "--reload", help="Reload on code changes"),
) -> None:
    """Run the HTTP API with uvicorn."""
    config = get_config()
    uvicorn.run(
        "src.userhub.api.http.app:create_app",
        factory=True,
        host=host or config.app.host,
        port=port or config.app.port,
        reload=reload,
        log_config=None,
    )


def main() -> None:
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
