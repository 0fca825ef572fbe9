"""
Main CLI entry point for Legacy Bridge.

This module provides the command-line interface for migrating a legacy
price guide into the relational target schema.
"""

import sys
from pathlib import Path

import click
from dotenv import load_dotenv

from legacy_migration import __version__
from legacy_migration.cli.commands import config as config_commands
from legacy_migration.cli.commands import migrate as migrate_commands
from legacy_migration.cli.commands import rollback as rollback_commands
from legacy_migration.cli.commands import session as session_commands
from legacy_migration.cli.commands import source as source_commands
from legacy_migration.cli.context import MigrationContext
from legacy_migration.utils.logging import configure_logging, get_logger

# Load environment variables from .env file
load_dotenv()

logger = get_logger(__name__)


@click.group()
@click.version_option(version=__version__, prog_name="legacy-bridge")
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, path_type=Path),
    help="Path to configuration file",
    envvar="LEGACY_BRIDGE_CONFIG",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default=None,
    help="Set console logging level (default: logging.level from the configuration)",
    envvar="LEGACY_BRIDGE_LOG_LEVEL",
)
@click.option(
    "--log-file",
    type=click.Path(path_type=Path),
    help="Also write logs to this file",
    envvar="LEGACY_BRIDGE_LOG_FILE",
)
@click.pass_context
def cli(
    ctx: click.Context,
    config: Path | None,
    log_level: str | None,
    log_file: Path | None,
) -> None:
    """Legacy Bridge - Migrate a legacy price guide into the relational schema.

    Examples:

        # Count what a legacy company holds
        legacy-bridge source counts --email owner@example.com --config config.yaml

        # Create a session and import it
        legacy-bridge session create --company-id C1 --entity-type price_guide \\
            --email owner@example.com --config config.yaml
        legacy-bridge import run <session-id> --company-id C1 --config config.yaml

        # Undo a session
        legacy-bridge rollback preview <session-id> --company-id C1 --config config.yaml
        legacy-bridge rollback run <session-id> --company-id C1 --config config.yaml
    """
    configure_logging(level=log_level or "WARNING", log_file=str(log_file) if log_file else None)

    ctx.obj = MigrationContext(
        config_path=config,
        log_level=log_level,
        log_file=log_file,
    )

    logger.debug(
        "cli_initialized",
        config=str(config) if config else None,
        log_level=log_level,
    )


cli.add_command(config_commands.config)
cli.add_command(session_commands.session)
cli.add_command(migrate_commands.import_group)
cli.add_command(rollback_commands.rollback)
cli.add_command(source_commands.source)


def main() -> int:
    """Main entry point for CLI."""
    try:
        cli(standalone_mode=False)
        return 0
    except click.exceptions.Exit as e:
        return e.exit_code
    except click.exceptions.Abort:
        click.echo("Aborted!", err=True)
        return 1
    except click.ClickException as e:
        e.show()
        return e.exit_code
    except Exception as e:
        logger.error("unexpected_error", error=str(e), exc_info=True)
        click.echo(f"Error: {e}", err=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
