"""Network config and allocator settings commands."""

import os
from dataclasses import fields
from enum import Enum
from typing import Annotated

import typer
from rich.table import Table

from kohakunet.cli.output import console, print_error
from kohakunet.config import ENV_PREFIX, config
from kohakunet.subnet.config import load_config_file
from kohakunet.subnet.errors import ConfigError

app = typer.Typer(help="Configuration commands")


@app.command("validate")
def validate(
    path: Annotated[str, typer.Argument(help="Network config JSON file")],
):
    """Validate a network config and show the derived allocation range."""
    try:
        network_config = load_config_file(path)
    except ConfigError as e:
        print_error(str(e))
        raise typer.Exit(1)

    table = Table(title="Network Config", show_header=True)
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("Network", str(network_config.network))
    table.add_row("Family", network_config.family.value)
    table.add_row("SubnetLen", str(network_config.subnet_len))
    table.add_row("SubnetMin", str(network_config.subnet_min))
    table.add_row("SubnetMax", str(network_config.subnet_max))
    table.add_row("Subnets", str(network_config.subnet_count))
    table.add_row("BackendType", network_config.backend_type)

    console.print(table)


@app.command("show")
def show_config():
    """Show current allocator settings."""
    table = Table(title="Allocator Settings", show_header=True)
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")
    table.add_column("Source")

    for f in fields(config):
        value = getattr(config, f.name)
        if isinstance(value, Enum):
            value = value.value
        source = "env" if os.environ.get(f"{ENV_PREFIX}{f.name}") else "default"
        table.add_row(f.name, str(value), source)

    console.print(table)
