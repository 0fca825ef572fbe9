"""
Migration session commands.

This module provides commands for creating migration sessions and
inspecting their progress and error logs.
"""

import click

from legacy_migration.cli.context import MigrationContext
from legacy_migration.cli.decorators import handle_errors, pass_context, requires_config
from legacy_migration.cli.utils import (
    echo_info,
    echo_success,
    echo_warning,
    format_count,
    format_timestamp,
    print_stats,
    print_table,
)
from legacy_migration.migration.models import EntityType
from legacy_migration.utils.logging import get_logger

logger = get_logger(__name__)


@click.group(name="session")
def session() -> None:
    """Migration session commands.

    A session tracks one import of offices or of a price guide from a
    legacy company into a target company.
    """
    pass


@session.command(name="create")
@click.option("--company-id", required=True, help="Target company id")
@click.option(
    "--entity-type",
    type=click.Choice([t.value for t in EntityType]),
    required=True,
    help="What the session imports",
)
@click.option("--source-company-id", help="Legacy company id")
@click.option("--email", help="Resolve the legacy company from a user's email")
@click.option("--created-by", help="User starting the session")
@pass_context
@requires_config
@handle_errors
def create_session(
    ctx: MigrationContext,
    company_id: str,
    entity_type: str,
    source_company_id: str | None,
    email: str | None,
    created_by: str | None,
) -> None:
    """Create a migration session.

    The legacy company is given directly or resolved from the email of one
    of its users. The number of records to import is counted at creation.

    Examples:

        legacy-bridge session create --company-id C1 --entity-type office \\
            --email owner@example.com --config config.yaml
    """
    if not source_company_id and not email:
        raise click.UsageError("Provide --source-company-id or --email")

    coordinator = ctx.coordinator
    if not source_company_id:
        source_company_id = coordinator.initialize_source_company(email)
        echo_info(f"Legacy company: {source_company_id}")

    migration_session = coordinator.create_session(
        company_id=company_id,
        source_company_id=source_company_id,
        entity_type=entity_type,
        created_by=created_by,
    )

    echo_success(f"Created session {migration_session.id}")
    click.echo(f"  Records to import: {format_count(migration_session.total_count)}")


@session.command(name="show")
@click.argument("session_id")
@click.option("--company-id", required=True, help="Target company id")
@click.option("--errors", "show_errors", default=10, show_default=True, help="Errors to list")
@pass_context
@requires_config
@handle_errors
def show_session(ctx: MigrationContext, session_id: str, company_id: str, show_errors: int) -> None:
    """Show status, counters and recent errors of a session."""
    migration_session = ctx.coordinator.get_session(session_id, company_id)

    print_stats(
        {
            "entity_type": migration_session.entity_type,
            "status": migration_session.status,
            "total": migration_session.total_count,
            "imported": migration_session.imported_count,
            "skipped": migration_session.skipped_count,
            "errors": migration_session.error_count,
            "created": format_timestamp(migration_session.created_at),
            "completed": format_timestamp(migration_session.completed_at),
        },
        title=f"Session {migration_session.id}",
    )

    errors = migration_session.errors or []
    if errors and show_errors > 0:
        click.echo()
        echo_warning(f"{len(errors)} error(s) logged, showing the last {min(show_errors, len(errors))}")
        print_table(
            "Errors",
            ["Source Id", "Error", "Time"],
            [[e.get("sourceId"), e.get("error"), e.get("timestamp")] for e in errors[-show_errors:]],
        )


@session.command(name="list")
@click.option("--company-id", required=True, help="Target company id")
@pass_context
@requires_config
@handle_errors
def list_sessions(ctx: MigrationContext, company_id: str) -> None:
    """List the migration sessions of a company, newest first."""
    sessions = ctx.coordinator.list_sessions(company_id)
    if not sessions:
        echo_info("No migration sessions")
        return

    print_table(
        f"Sessions of {company_id}",
        ["Id", "Type", "Status", "Processed", "Total", "Created"],
        [
            [
                s.id,
                s.entity_type,
                s.status,
                format_count(s.processed_count),
                format_count(s.total_count),
                format_timestamp(s.created_at),
            ]
            for s in sessions
        ],
    )
