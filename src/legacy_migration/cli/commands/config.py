"""
Configuration management commands.

This module provides commands for validating migration configuration.
"""

import click

from legacy_migration.cli.context import MigrationContext
from legacy_migration.cli.decorators import handle_errors, pass_context, requires_config
from legacy_migration.cli.utils import echo_error, echo_info, echo_success, print_table
from legacy_migration.config import MigrationConfig
from legacy_migration.migration.database import validate_database_connection
from legacy_migration.utils.logging import get_logger

logger = get_logger(__name__)


@click.group(name="config")
def config() -> None:
    """Configuration management commands."""
    pass


@config.command(name="validate")
@click.option(
    "--check-connectivity",
    is_flag=True,
    help="Test connectivity to the legacy store and the target database",
)
@pass_context
@requires_config
@handle_errors
def validate(ctx: MigrationContext, check_connectivity: bool) -> None:
    """Validate migration configuration.

    The configuration file is parsed and validated when it is loaded. With
    --check-connectivity the legacy MongoDB server is pinged and a connection
    to the target database is opened.

    Examples:

        legacy-bridge config validate --config config.yaml

        legacy-bridge config validate --config config.yaml --check-connectivity
    """
    echo_info(f"Validating configuration: {ctx.config_path}")
    config = ctx.config

    click.echo()
    _display_config_summary(config)

    if check_connectivity:
        click.echo()
        echo_info("Testing connectivity...")
        _test_connectivity(ctx)

    click.echo()
    echo_success("Configuration is valid!")


def _display_config_summary(config: MigrationConfig) -> None:
    rows = [
        ["Source URI", _redact(config.source.uri)],
        ["Source Database", config.source.database or "(from URI)"],
        ["Target Database", _redact(config.state.database_url)],
        ["Batch Size", config.imports.batch_size],
        ["Include Images", config.imports.include_images],
        ["Log Level", config.logging.level],
    ]
    print_table("Configuration Summary", ["Setting", "Value"], rows)


def _redact(url: str) -> str:
    """Hide the password of a connection URL."""
    scheme, sep, rest = url.partition("://")
    if not sep or "@" not in rest:
        return url
    credentials, _, host = rest.rpartition("@")
    user = credentials.split(":", 1)[0]
    return f"{scheme}://{user}:***@{host}"


def _test_connectivity(ctx: MigrationContext) -> None:
    """Ping the legacy store and open the target database."""
    echo_info("Testing legacy store connection...")
    # Opening the client pings the server
    _source_client = ctx.source_client
    echo_success("Legacy store reachable")

    echo_info("Testing target database connection...")
    if not validate_database_connection(ctx.config.state.database_url):
        echo_error("Target database is not reachable")
        raise click.ClickException("Target database connection failed")
    echo_success("Target database reachable")
