"""Command-line interface for ovbatch.

Commands:
    provision   Create and start every VM listed in a CSV file
    validate    Parse a CSV file and show what would be provisioned
    config      Show or change saved defaults

Exit codes:
    0  Batch completed (individual VM failures are logged, not fatal)
    1  Unreadable/invalid CSV, bad configuration or failed connection
"""

import logging
import sys

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from ovbatch import __version__
from ovbatch.batch_executor import BatchExecutor
from ovbatch.config_manager import ConfigError, ConfigManager, OvbatchConfig
from ovbatch.log_sanitizer import LogSanitizer
from ovbatch.models import BatchResult, ProvisionRequest
from ovbatch.provisioning_workflow import InfrastructureConfig, ProvisioningWorkflow
from ovbatch.record_parser import RecordParseError, parse_csv
from ovbatch.remote_client import ConnectionFailedError, OvirtConnection

logger = logging.getLogger(__name__)

console = Console()


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(level=logging.DEBUG if verbose else logging.INFO, format="%(message)s")


def _load_config(config_path: str | None) -> OvbatchConfig:
    try:
        return ConfigManager.load_config(config_path)
    except ConfigError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


def _parse_or_exit(csv_path: str) -> list[ProvisionRequest]:
    try:
        return parse_csv(csv_path)
    except RecordParseError as e:
        click.echo(f"Error: Failed to parse CSV file: {e}", err=True)
        sys.exit(1)


def _format_size(num_bytes: int) -> str:
    gib = num_bytes / 1024**3
    return f"{gib:g} GiB" if gib >= 1 else f"{num_bytes} B"


def _print_summary(result: BatchResult) -> None:
    """Render the end-of-run summary table."""
    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Total", justify="right")
    table.add_column("Succeeded", justify="right")
    table.add_column("Failed", justify="right")
    table.add_column("Created but stopped", justify="right")
    table.add_row(
        str(result.total),
        f"[green]{result.succeeded}[/green]",
        f"[red]{result.failed}[/red]" if result.failed else "0",
        str(len(result.stopped_vm_ids())),
    )
    console.print(table)


@click.group(context_settings={"help_option_names": ["--help", "-h"]})
@click.version_option(version=__version__)
def main() -> None:
    """ovbatch - batch VM provisioning for oVirt.

    Reads one VM per CSV record (16 fields, no header) and creates, configures
    and starts them in parallel.

    \b
    EXAMPLES:
        $ ovbatch validate --csv vms.csv
        $ ovbatch provision --csv vms.csv --url https://engine/ovirt-engine/api \\
              --username admin@internal --concurrency 10
        $ ovbatch config set storage_domain data01

    \b
    CONFIGURATION:
        Config file: ~/.ovbatch/config.toml
        Password: --password, OVBATCH_PASSWORD, or prompted after the CSV is parsed
    """
    pass


@main.command(name="provision")
@click.option(
    "--csv",
    "csv_path",
    default="vm_params.csv",
    show_default=True,
    type=click.Path(),
    help="CSV file containing VM parameters",
)
@click.option("--url", help="oVirt engine API URL (e.g. https://engine/ovirt-engine/api)", type=str)
@click.option("--username", help="oVirt username (e.g. admin@internal)", type=str)
@click.option(
    "--password",
    envvar="OVBATCH_PASSWORD",
    help="oVirt password (or OVBATCH_PASSWORD; prompted for if unset)",
)
@click.option(
    "--insecure/--secure",
    default=None,
    help="Skip TLS certificate verification (default from config: insecure)",
)
@click.option("--concurrency", type=int, help="Number of concurrent VM creations (default: 5)")
@click.option(
    "--timeout",
    "request_timeout",
    type=float,
    help="Timeout in seconds for each engine API call (default: 120)",
)
@click.option("--storage-domain", help="Storage domain for new disks", type=str)
@click.option("--vnic-profile", help="vNIC profile for new NICs", type=str)
@click.option("--config", "config_path", help="Config file path", type=click.Path())
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
def provision(
    csv_path: str,
    url: str | None,
    username: str | None,
    password: str | None,
    insecure: bool | None,
    concurrency: int | None,
    request_timeout: float | None,
    storage_domain: str | None,
    vnic_profile: str | None,
    config_path: str | None,
    verbose: bool,
):
    """Provision every VM listed in a CSV file.

    The whole file is validated before the password is prompted for or
    anything is created. VMs are then created and started in parallel; a
    failure on one VM does not stop the others. Failures are logged once the
    batch completes.

    \b
    Examples:
        ovbatch provision --csv vms.csv --url https://engine/ovirt-engine/api --username admin@internal
        ovbatch provision --csv vms.csv --concurrency 10 --secure
    """
    _setup_logging(verbose)
    config = _load_config(config_path)

    url = url or config.url
    username = username or config.username
    if not url or not username:
        click.echo(
            "Error: --url and --username are required (or set them with 'ovbatch config set')",
            err=True,
        )
        sys.exit(1)

    concurrency = concurrency if concurrency is not None else config.concurrency
    if concurrency < 1:
        click.echo("Error: --concurrency must be a positive integer", err=True)
        sys.exit(1)
    insecure = config.insecure if insecure is None else insecure
    timeout = request_timeout if request_timeout is not None else config.request_timeout

    infrastructure = InfrastructureConfig.from_config(config)
    if storage_domain or vnic_profile:
        infrastructure = InfrastructureConfig(
            storage_domain=storage_domain or infrastructure.storage_domain,
            vnic_profile=vnic_profile or infrastructure.vnic_profile,
            disk_interface=infrastructure.disk_interface,
            nic_interface=infrastructure.nic_interface,
            disk_format=infrastructure.disk_format,
            sparse=infrastructure.sparse,
        )

    requests = _parse_or_exit(csv_path)
    click.echo(f"Loaded {len(requests)} VM definition(s) from {csv_path}")

    if not password:
        password = click.prompt("Password", hide_input=True)

    try:
        connection = OvirtConnection.connect(
            url, username, password, insecure=insecure, timeout=timeout, pool_size=concurrency
        )
    except ConnectionFailedError as e:
        click.echo(
            f"Error: Failed to create connection to the oVirt engine: "
            f"{LogSanitizer.sanitize_secret(str(e), password)}",
            err=True,
        )
        sys.exit(1)

    with connection:
        executor = BatchExecutor(
            concurrency=concurrency,
            workflow=ProvisioningWorkflow(infrastructure),
            progress_callback=click.echo,
        )
        result = executor.run(requests, connection)

    for failure in result.failures:
        logger.error(LogSanitizer.sanitize_secret(str(failure), password))

    _print_summary(result)


@main.command(name="validate")
@click.option(
    "--csv",
    "csv_path",
    default="vm_params.csv",
    show_default=True,
    type=click.Path(),
    help="CSV file containing VM parameters",
)
def validate(csv_path: str):
    """Validate a CSV file without contacting the engine.

    \b
    Examples:
        ovbatch validate --csv vms.csv
    """
    _setup_logging(False)
    requests = _parse_or_exit(csv_path)

    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Line", justify="right")
    table.add_column("Name")
    table.add_column("Template")
    table.add_column("Cluster")
    table.add_column("IP")
    table.add_column("CPU")
    table.add_column("Memory")
    table.add_column("Disk")
    for request in requests:
        table.add_row(
            str(request.line_number),
            escape(request.name),
            escape(request.template),
            escape(request.cluster),
            f"{escape(request.ip)}/{escape(request.mask)}",
            f"{request.cpu_sockets}x{request.cpu_cores}",
            _format_size(request.memory),
            _format_size(request.disk_size),
        )
    console.print(table)
    console.print(f"[green]✓[/green] {len(requests)} record(s) valid")


@main.group(name="config")
def config_group():
    """Show or change saved defaults (~/.ovbatch/config.toml)."""
    pass


@config_group.command(name="show")
@click.option("--config", "config_path", help="Config file path", type=click.Path())
def config_show(config_path: str | None):
    """Show the effective configuration."""
    config = _load_config(config_path)
    for key, value in config.to_dict().items():
        click.echo(f"{key} = {value}")


@config_group.command(name="set")
@click.argument("key")
@click.argument("value")
@click.option("--config", "config_path", help="Config file path", type=click.Path())
def config_set(key: str, value: str, config_path: str | None):
    """Set a configuration value.

    \b
    Examples:
        ovbatch config set url https://engine/ovirt-engine/api
        ovbatch config set concurrency 10
        ovbatch config set insecure false
    """
    try:
        updated = ConfigManager.update_config(key, value, config_path)
    except ConfigError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    click.echo(f"{key} = {getattr(updated, key)}")


if __name__ == "__main__":
    main()
