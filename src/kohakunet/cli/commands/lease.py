"""Lease registry commands (SQLite registry)."""

import asyncio
from typing import Annotated

import typer
from rich.table import Table

from kohakunet.cli.output import console, print_error, print_success
from kohakunet.config import config
from kohakunet.registry.sqlite import SqliteRegistry
from kohakunet.subnet.config import load_config_file
from kohakunet.subnet.errors import SubnetError
from kohakunet.subnet.lease import utcnow

app = typer.Typer(help="Lease registry commands")

DbOption = Annotated[
    str | None,
    typer.Option("--db", help="Registry database file (default: DB_FILE setting)"),
]


@app.command("init")
def init_registry(
    path: Annotated[str, typer.Argument(help="Network config JSON file")],
    db_path: DbOption = None,
):
    """Store a validated network config in the registry."""

    async def _init():
        network_config = load_config_file(path)
        registry = SqliteRegistry(db_path or config.DB_FILE)
        await registry.set_network_config(network_config)
        return network_config

    try:
        network_config = asyncio.run(_init())
    except SubnetError as e:
        print_error(str(e))
        raise typer.Exit(1)

    print_success(
        f"Registry ready: {network_config.network}, "
        f"{network_config.subnet_count} x /{network_config.subnet_len}"
    )


@app.command("list")
def list_leases(
    db_path: DbOption = None,
):
    """List live leases."""

    async def _list():
        registry = SqliteRegistry(db_path or config.DB_FILE)
        return await registry.get_leases()

    try:
        leases, revision = asyncio.run(_list())
    except SubnetError as e:
        print_error(str(e))
        raise typer.Exit(1)

    if not leases:
        console.print("[yellow]No leases found.[/yellow]")
        return

    now = utcnow()
    table = Table(title=f"Leases (revision {revision})", show_header=True)
    table.add_column("Subnet", style="cyan")
    table.add_column("Public IP", style="green")
    table.add_column("Backend")
    table.add_column("Expires In")
    table.add_column("Asof", justify="right")

    for lease in sorted(leases, key=lambda item: item.subnet):
        remaining = int(lease.remaining(now).total_seconds())
        table.add_row(
            str(lease.subnet),
            str(lease.attrs.public_ip),
            lease.attrs.backend_type or "-",
            f"{remaining}s",
            str(lease.asof),
        )

    console.print(table)
