"""
KohakuNet CLI entry point.

Usage:
    kohakunet [OPTIONS] COMMAND [ARGS]...

Commands:
    config    Validate network configs, show settings
    key       Encode/decode subnet registry keys
    lease     Inspect and initialize the lease registry
"""

from typing import Annotated

import typer

from kohakunet.cli.commands import config_cmd, key, lease
from kohakunet.cli.output import console
from kohakunet.config import config
from kohakunet.models.enums import LogLevel
from kohakunet.utils.logger import configure_logging

app = typer.Typer(
    name="kohakunet",
    help="KohakuNet Subnet Lease Allocator CLI",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

# Register command groups
app.add_typer(config_cmd.app, name="config", help="Configuration")
app.add_typer(key.app, name="key", help="Subnet key encoding")
app.add_typer(lease.app, name="lease", help="Lease registry")


@app.callback()
def main(
    log_level: Annotated[
        LogLevel | None,
        typer.Option("--log-level", "-l", help="Logging verbosity"),
    ] = None,
):
    """
    KohakuNet Subnet Lease Allocator CLI.

    Settings are read from KOHAKUNET_* environment variables.
    """
    config.load_env()
    if log_level is not None:
        config.LOG_LEVEL = log_level
    configure_logging(config.LOG_LEVEL, config.LOG_FILE)


@app.command("version")
def version():
    """Show version information."""
    from kohakunet import __version__

    console.print(f"KohakuNet v{__version__}")


def run():
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    run()
