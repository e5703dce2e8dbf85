"""Install command for provisioning the BosBase stack.

This module provides `bosbase-install install`, which resolves the
configuration and drives the provisioning run, and the operator commands
`status`, `down` and `logs` for an existing installation.
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import NoReturn

import click
from rich.console import Console
from rich.markup import escape

from ..config import ConfigResolver, EnvironmentSource, FileSource, FlagSource
from ..errors import ProvisioningError
from ..provisioning import (
    BootUnitInstaller,
    CommandRunner,
    InstallationLayout,
    InstallationStateManager,
    Installer,
    InstallReport,
    StackManager,
    StackState,
)
from ..shared.paths import DEFAULT_INSTALL_DIR, PROJECT_NAME

console = Console()
err_console = Console(stderr=True)

install_dir_option = click.option(
    "--install-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=DEFAULT_INSTALL_DIR,
    envvar="BOSBASE_INSTALL_DIR",
    show_default=True,
    help="Installation root",
)


def _fail(error: ProvisioningError) -> NoReturn:
    err_console.print(f"[red]✗[/red] {escape(error.render())}")
    sys.exit(1)


@click.command()
@click.option("--domain", default=None, help="Domain that points to this host")
@click.option("--email", "acme_email", default=None, help="ACME contact email (optional)")
@click.option("--openai-key", "openai_api_key", default=None, help="OpenAI API key (optional)")
@click.option("--openai-base-url", default=None, help="OpenAI-compatible base URL (optional)")
@click.option(
    "--encryption-key", default=None, help="BS_ENCRYPTION_KEY, 32 characters (generated if absent)"
)
@click.option(
    "--postgres-password",
    default=None,
    help="PostgreSQL password, 16 characters (generated if absent)",
)
@click.option(
    "--install-dir",
    default=None,
    help=f"Installation root (default: {DEFAULT_INSTALL_DIR})",
)
@click.option("--user", "target_user", default=None, help="User to add to the docker group")
@click.option("--non-interactive", "-y", is_flag=True, help="Fail instead of prompting")
@click.option(
    "--reset-data",
    is_flag=True,
    help="Delete existing application and database data (data loss!)",
)
@click.option(
    "--config-file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="YAML file with configuration values",
)
def install(config_file: Path | None, **flags) -> None:
    """Install or reinstall the BosBase stack on this host.

    Installs Docker and Caddy when missing, writes the compose files, .env
    and Caddyfile under the installation root, starts the stack, registers
    it with systemd and checks that the API answers. Safe to re-run: existing
    data and the secrets it was created with are kept unless --reset-data is
    given.

    Every option can also be supplied through its environment variable
    (BOSBASE_DOMAIN, BOSBASE_ACME_EMAIL, OPENAI_API_KEY, OPENAI_BASE_URL,
    BS_ENCRYPTION_KEY, POSTGRES_PASSWORD, BOSBASE_INSTALL_DIR, BOSBASE_USER,
    BOSBASE_NON_INTERACTIVE, BOSBASE_RESET_DATA).

    Examples:

        # Interactive install
        sudo bosbase-install install

        # Unattended install
        sudo bosbase-install install --domain example.com --non-interactive
    """
    click.echo("\n🚀 BosBase Install\n")

    try:
        sources = [FlagSource(flags), EnvironmentSource()]
        if config_file is not None:
            sources.append(FileSource.load(config_file))
        config = ConfigResolver(sources).resolve()

        for name in sorted(config.generated):
            click.echo(f"  ✓ Generated {name}")
        for name, source in sorted(config.sources.items()):
            if source == "previous install":
                click.echo(f"  ✓ Reusing {name} from the previous install")

        report = Installer(config, on_stage=_print_stage).run()
    except ProvisioningError as e:
        _fail(e)

    _print_summary(report)


def _print_stage(title: str) -> None:
    click.echo(f"\n📋 {title}\n")


def _print_summary(report: InstallReport) -> None:
    config = report.config

    if report.platform is not None:
        click.echo(f"  Platform: {report.platform.label}")
    for result in report.provisioned:
        state = "already installed" if result.already_installed else "installed"
        click.echo(f"  ✓ {result.prerequisite.value}: {state}")
    if report.replaced_previous:
        click.echo("  ✓ Replaced previous instance")
    if report.directories is not None:
        for path in report.directories.purged:
            click.echo(f"  ⚠ Reset data directory {path}")
    for result in report.health:
        if result.healthy:
            click.echo(f"  ✓ {result.probe.label} is healthy ({result.probe.url})")

    if report.warnings:
        click.echo("\nWarnings:")
        for message in report.warnings:
            click.echo(f"  ⚠ {message}")

    console.print("\n" + "=" * 50)
    console.print("[green]✓ Installation complete.[/green]")
    console.print(f"\n  Files installed under {escape(str(config.install_dir))}")
    console.print(f"  Domain {escape(config.domain)} is now proxied via Caddy.")
    console.print("")
    console.print(f"  [bold]PostgreSQL Password:[/bold] {escape(config.postgres_password)}")
    console.print("  [dim]Save this password securely! It is required for database access.[/dim]")
    console.print("\n  To set up a superuser account, run:")
    console.print(
        f"    docker exec {PROJECT_NAME}-bosbase-node-1 /pb/bosbase superuser upsert "
        "yourloginemail yourpassword"
    )
    console.print("\n  To see dashboard login instructions, run:")
    console.print(f"    docker logs {PROJECT_NAME}-bosbase-node-1")
    console.print("\n  Status: bosbase-install status")
    console.print("  Logs:   bosbase-install logs -f")
    console.print("=" * 50 + "\n")


@click.command()
@install_dir_option
def status(install_dir: Path) -> None:
    """Show the installation and stack status."""
    manager = InstallationStateManager(
        InstallationLayout(install_dir),
        stack_manager=StackManager(install_dir, CommandRunner()),
    )
    state = manager.detect_state()

    click.echo(f"Installation: {state.kind.value} ({install_dir})")
    for name, present in state.artifacts.items():
        click.echo(f"  {'✓' if present else '✗'} {name}")

    if state.stack_state in (None, StackState.NOT_FOUND):
        click.echo("No BosBase stack found. Run: bosbase-install install")
        return

    click.echo(f"Stack state: {state.stack_state.value}")
    if state.running_services:
        click.echo("Running services:")
        for svc in state.running_services:
            click.echo(f"  ✓ {svc}")
    if state.stopped_services:
        click.echo("Stopped services:")
        for svc in state.stopped_services:
            click.echo(f"  ✗ {svc}")


@click.command()
@install_dir_option
@click.option("--volumes", is_flag=True, help="Also remove volumes (data loss!)")
@click.option("--disable", is_flag=True, help="Also disable the boot unit")
def down(install_dir: Path, volumes: bool, disable: bool) -> None:
    """Stop the BosBase stack."""
    runner = CommandRunner()
    if volumes and not click.confirm("This will delete all BosBase volumes. Continue?"):
        return

    success, msg = StackManager(install_dir, runner).down(remove_volumes=volumes)
    if not success:
        click.echo(f"✗ {msg}", err=True)
        sys.exit(1)
    click.echo("✓ BosBase stack stopped.")

    if disable:
        result = BootUnitInstaller(runner).disable()
        if result.ok:
            click.echo("✓ Boot unit disabled.")
        else:
            click.echo(f"⚠ {result.describe_failure()}", err=True)


@click.command()
@install_dir_option
@click.option("--follow", "-f", is_flag=True, help="Follow log output")
@click.option("--service", "-s", default=None, help="Show logs for specific service")
@click.option("--tail", default=100, type=int, help="Number of lines")
def logs(install_dir: Path, follow: bool, service: str | None, tail: int) -> None:
    """Show stack logs."""
    code = StackManager(install_dir).logs(service=service, follow=follow, tail=tail)
    if code != 0:
        sys.exit(code)
