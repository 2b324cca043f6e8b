"""Management commands for the warehouse assignment backend."""

from __future__ import annotations

import logging
from typing import Optional

import click

from warehouse_assignment.core.exceptions import AssignmentError
from warehouse_assignment.db.session import create_tables
from warehouse_assignment.domain.entities import User
from warehouse_assignment.main import build_engine
from warehouse_assignment.repositories.user_directory_repo import (
    UserDirectoryRepository,
)

logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(message)s")


@click.group()
def cli() -> None:
    """Entry point for management commands."""
    create_tables()


@cli.command("add_user")
@click.option("--id", "user_id", required=True, help="Directory key of the user.")
@click.option("--name", required=True)
@click.option("--email", default=None)
@click.option("--phone", default=None)
@click.option("--warehouse", "warehouse_id", type=int, default=None)
def add_user(
    user_id: str,
    name: str,
    email: Optional[str],
    phone: Optional[str],
    warehouse_id: Optional[int],
) -> None:
    """Insert a user into the directory."""
    repository = UserDirectoryRepository()
    if repository.get_by_id(user_id) is not None:
        raise click.ClickException(f"User '{user_id}' already exists.")
    repository.add(
        User(
            id=user_id,
            name=name,
            email=email,
            phone=phone,
            assigned_warehouse_id=warehouse_id,
        )
    )
    click.echo(f"Added user {user_id}")


@cli.command("show")
def show() -> None:
    """Print every warehouse with its users, then the available list."""
    engine = build_engine()
    try:
        for view in engine.warehouses_with_assigned_users():
            flag = " (excluido)" if view.excluded else ""
            click.echo(
                f"[{view.warehouse.id}] {view.warehouse.name}{flag} "
                f"{len(view.users)}/{view.capacity}"
            )
            for user in view.users:
                click.echo(f"    - {user.name} <{user.id}>")
        click.echo("Disponibles:")
        for user in engine.available_users():
            click.echo(f"    - {user.name} <{user.id}>")
    finally:
        engine.stop()
        engine.sync.shutdown(wait=True)


@cli.command("reset")
@click.option(
    "--confirmation",
    prompt="Escriba la frase de confirmación",
    help="Phrase required to clear every assignment.",
)
def reset(confirmation: str) -> None:
    """Clear the assigned warehouse of every user."""
    engine = build_engine()
    try:
        result = engine.reset_all(confirmation)
    except AssignmentError as e:
        raise click.ClickException(e.message)
    finally:
        engine.stop()
        # Drain the queued writes before the process exits
        engine.sync.shutdown(wait=True)
    click.echo(f"{result.message} ({len(result.affected_user_ids)} usuarios)")


if __name__ == "__main__":
    cli()
