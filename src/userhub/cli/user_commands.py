"""User record management CLI commands."""

import asyncio
import uuid
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from datetime import date
from typing import TypeVar

import typer
from rich.console import Console
from rich.prompt import Confirm
from rich.table import Table

from src.userhub.core.services.user import UserService, UserServiceError
from src.userhub.core.storage import StoreUnavailableError, create_kv_store
from src.userhub.entities.core.user import User, UserRepository, UserUpdate
from src.userhub.runtime.context import get_config

T = TypeVar("T")

console = Console()

users_app = typer.Typer(help="Manage user records in the configured store")


@asynccontextmanager
async def open_user_service() -> AsyncIterator[UserService]:
    """Connect to the configured store for the duration of one command.

    An unreachable Redis raises StoreUnavailableError rather than falling
    back to the in-memory store.
    """
    config = get_config()
    handle = await create_kv_store(config, allow_memory_fallback=False)
    try:
        repository = UserRepository(
            handle.store,
            users_table=config.store.users_table,
            email_lookup_table=config.store.email_lookup_table,
        )
        yield UserService(repository)
    finally:
        await handle.close()


def _run(action: Callable[[UserService], Awaitable[T]]) -> T:
    async def _call() -> T:
        async with open_user_service() as service:
            return await action(service)

    try:
        return asyncio.run(_call())
    except UserServiceError as e:
        console.print(f"[red]❌ {type(e).__name__}: {e.reason}[/red]")
        raise typer.Exit(code=1) from e
    except StoreUnavailableError as e:
        console.print(f"[red]❌ User store unavailable: {e}[/red]")
        raise typer.Exit(code=1) from e


def _parse_id(raw: str) -> uuid.UUID:
    try:
        return uuid.UUID(raw)
    except ValueError as e:
        console.print("[red]❌ Invalid UUID format[/red]")
        raise typer.Exit(code=1) from e


def _parse_date(raw: str | None) -> date | None:
    if raw is None:
        return None
    try:
        return date.fromisoformat(raw)
    except ValueError as e:
        console.print(f"[red]❌ Invalid date '{raw}', expected YYYY-MM-DD[/red]")
        raise typer.Exit(code=1) from e


def _render(user: User, title: str) -> None:
    table = Table(title=title)
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("ID", str(user.id))
    table.add_row("Email", user.email)
    table.add_row("First Name", user.first_name)
    table.add_row("Last Name", user.last_name)
    table.add_row("Date of Birth", user.date_of_birth.isoformat())
    table.add_row("Created", user.created_at.isoformat())
    table.add_row("Updated", user.updated_at.isoformat())

    console.print(table)


@users_app.command("create")
def create_user(
    email: str = typer.Option(..., "--email", "-e", help="Email address"),
    dob: str = typer.Option(..., "--dob", "-d", help="Date of birth (YYYY-MM-DD)"),
    first_name: str = typer.Option("", "--first-name", "-f", help="First name"),
    last_name: str = typer.Option("", "--last-name", "-l", help="Last name"),
) -> None:
    """Create a new user."""
    user = User.new(
        first_name=first_name,
        last_name=last_name,
        email=email,
        date_of_birth=_parse_date(dob),
    )
    created = _run(lambda service: service.create_user(user))
    _render(created, "Created user")
    console.print(f"[green]✅ Successfully created user '{created.email}'[/green]")


@users_app.command("get")
def get_user(user_id: str = typer.Argument(..., help="User id")) -> None:
    """Show a user by id."""
    parsed = _parse_id(user_id)
    user = _run(lambda service: service.get_user(parsed))
    _render(user, "User")


@users_app.command("get-by-email")
def get_user_by_email(email: str = typer.Argument(..., help="Email address")) -> None:
    """Show a user by email address."""
    user = _run(lambda service: service.get_user_by_email(email))
    _render(user, "User")


@users_app.command("update")
def update_user(
    user_id: str = typer.Argument(..., help="User id"),
    email: str | None = typer.Option(None, "--email", "-e", help="New email address"),
    dob: str | None = typer.Option(None, "--dob", "-d", help="New date of birth (YYYY-MM-DD)"),
    first_name: str | None = typer.Option(None, "--first-name", "-f", help="New first name"),
    last_name: str | None = typer.Option(None, "--last-name", "-l", help="New last name"),
) -> None:
    """Update some fields of a user."""
    parsed = _parse_id(user_id)
    update = UserUpdate(
        first_name=first_name,
        last_name=last_name,
        email=email,
        date_of_birth=_parse_date(dob),
    )
    user = _run(lambda service: service.update_user(parsed, update))
    _render(user, "Updated user")


@users_app.command("delete")
def delete_user(
    user_id: str = typer.Argument(..., help="User id"),
    force: bool = typer.Option(False, "--force", help="Skip confirmation prompt"),
) -> None:
    """Delete a user."""
    parsed = _parse_id(user_id)

    if not force and not Confirm.ask(f"Are you sure you want to delete user '{parsed}'?"):
        console.print("[yellow]Deletion cancelled[/yellow]")
        return

    _run(lambda service: service.delete_user(parsed))
    console.print(f"[green]✅ Successfully deleted user '{parsed}'[/green]")
