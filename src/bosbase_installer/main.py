"""CLI main entry point."""

import click

from . import __version__
from .commands.install import down, install, logs, status
from .shared.logging import configure_logging

CONTEXT_SETTINGS = {"help_option_names": ["-h", "--help"]}


@click.group(context_settings=CONTEXT_SETTINGS)
@click.option(
    "--log-level",
    type=click.Choice(["debug", "info", "warning", "error"], case_sensitive=False),
    default="info",
    envvar="BOSBASE_LOG_LEVEL",
    help="Log level (default: info)",
)
@click.option("--log-json", is_flag=True, help="Emit logs as JSON")
@click.option("--log-file", type=click.Path(dir_okay=False), default=None, help="Also log to file")
@click.pass_context
def cli(ctx: click.Context, log_level: str, log_json: bool, log_file: str | None) -> None:
    """Provision BosBase, PostgreSQL and Caddy on this host."""
    ctx.ensure_object(dict)
    configure_logging(log_level, log_file=log_file, json_output=log_json)


cli.add_command(install)
cli.add_command(status)
cli.add_command(down)
cli.add_command(logs)


@cli.command()
def version() -> None:
    """Show version information."""
    click.echo(f"bosbase-installer version {__version__}")


def main() -> None:
    """Main entry point."""
    cli(obj={})


if __name__ == "__main__":
    main()
