"""Subnet key commands."""

import ipaddress
from typing import Annotated

import typer

from kohakunet.cli.output import console, print_error
from kohakunet.subnet.key import make_subnet_key, parse_subnet_key

app = typer.Typer(help="Subnet key encoding")


@app.command("encode")
def encode(
    subnet: Annotated[str, typer.Argument(help="Subnet in CIDR notation")],
):
    """Print the registry key of a subnet."""
    try:
        network = ipaddress.ip_network(subnet, strict=True)
    except ValueError as e:
        print_error(f"Invalid subnet '{subnet}': {e}")
        raise typer.Exit(1)
    console.print(make_subnet_key(network))


@app.command("decode")
def decode(
    key: Annotated[str, typer.Argument(help="Registry subnet key")],
):
    """Print the subnet a registry key stands for."""
    network = parse_subnet_key(key)
    if network is None:
        print_error(f"Not a subnet key: '{key}'")
        raise typer.Exit(1)
    console.print(str(network))
