"""
Rollback commands.

This module provides commands that preview and run the rollback of a
migration session.
"""

import click

from legacy_migration.cli.context import MigrationContext
from legacy_migration.cli.decorators import (
    confirm_action,
    handle_errors,
    pass_context,
    requires_config,
)
from legacy_migration.cli.utils import echo_info, echo_success, print_stats
from legacy_migration.utils.logging import get_logger

logger = get_logger(__name__)


@click.group(name="rollback")
def rollback() -> None:
    """Remove everything a migration session imported."""
    pass


@rollback.command(name="preview")
@click.argument("session_id")
@click.option("--company-id", required=True, help="Target company id")
@pass_context
@requires_config
@handle_errors
def preview_rollback(ctx: MigrationContext, session_id: str, company_id: str) -> None:
    """Show the rows a rollback would delete, without deleting anything."""
    stats = ctx.coordinator.preview_rollback(session_id, company_id)
    print_stats(stats.to_dict(), title=f"Rollback Preview for {session_id}")
    echo_info(f"{stats.total:,} row(s) would be deleted")


@rollback.command(name="run")
@click.argument("session_id")
@click.option("--company-id", required=True, help="Target company id")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation prompt")
@pass_context
@requires_config
@handle_errors
@confirm_action(
    message="This will delete every row the session imported. Continue?",
    abort_message="Rollback cancelled",
)
def run_rollback(ctx: MigrationContext, session_id: str, company_id: str, yes: bool) -> None:
    """Delete every row the session imported and mark it rolled back.

    Examples:

        legacy-bridge rollback run 6f1c... --company-id C1 --yes --config config.yaml
    """
    stats = ctx.coordinator.rollback(session_id, company_id)
    print_stats(stats.to_dict(), title=f"Rollback of {session_id}")
    echo_success(f"Session rolled back, {stats.total:,} row(s) deleted")
