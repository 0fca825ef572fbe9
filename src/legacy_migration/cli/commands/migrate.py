"""
Import commands.

This module provides commands that run import batches for a migration
session, either one batch at a time or until the session is done.
"""

import click

from legacy_migration.cli.context import MigrationContext
from legacy_migration.cli.decorators import handle_errors, pass_context, requires_config
from legacy_migration.cli.utils import (
    create_progress_bar,
    echo_info,
    echo_success,
    echo_warning,
    print_stats,
    print_table,
)
from legacy_migration.migration.importer import (
    BatchImportOptions,
    BatchImportResult,
    PriceGuideBatchImportResult,
)
from legacy_migration.migration.models import MigrationSession, SessionStatus
from legacy_migration.utils.logging import get_logger

logger = get_logger(__name__)


@click.group(name="import")
def import_group() -> None:
    """Import legacy records into a migration session."""
    pass


@import_group.command(name="run")
@click.argument("session_id")
@click.option("--company-id", required=True, help="Target company id")
@click.option("--batch-size", type=int, help="Records per batch (default: imports.batch_size)")
@pass_context
@requires_config
@handle_errors
def run_import(
    ctx: MigrationContext, session_id: str, company_id: str, batch_size: int | None
) -> None:
    """Import batches until the legacy store has no more records.

    Only pending and in-progress sessions accept batches; a completed session
    exits with a migration error. An interrupted import can be resumed from
    the next page with `import batch --skip`. Records already in the target
    company are skipped, never written twice.

    Examples:

        legacy-bridge import run 6f1c... --company-id C1 --config config.yaml
    """
    coordinator = ctx.coordinator
    migration_session = coordinator.get_session(session_id, company_id)
    echo_info(f"Importing {migration_session.entity_type} into session {session_id}")

    with create_progress_bar() as progress:
        task = progress.add_task(
            f"Importing {migration_session.entity_type}",
            total=migration_session.total_count or None,
            completed=migration_session.processed_count,
        )

        def on_batch(result: BatchImportResult, current: MigrationSession) -> None:
            progress.update(task, completed=current.processed_count)

        summary = coordinator.run_import(
            session_id, company_id, batch_size=batch_size, on_batch=on_batch
        )

    print_stats(
        {
            "batches": summary.batches,
            "imported": summary.imported_count,
            "skipped": summary.skipped_count,
            "errors": summary.error_count,
            "status": summary.status,
        },
        title="Import Summary",
    )

    if summary.formula_warnings:
        echo_warning(f"{len(summary.formula_warnings)} formula warning(s)")
        print_table(
            "Formula Warnings",
            ["Source Id", "Warning", "References"],
            [[w.source_id, w.message, ", ".join(w.references)] for w in summary.formula_warnings],
        )

    if summary.status == SessionStatus.COMPLETED.value:
        echo_success("Session completed")
    else:
        echo_warning(f"Session is {summary.status}")
    if summary.error_count:
        echo_warning("Some records failed; see 'legacy-bridge session show' for details")


@import_group.command(name="batch")
@click.argument("session_id")
@click.option("--company-id", required=True, help="Target company id")
@click.option("--skip", type=int, default=0, show_default=True, help="Records to skip")
@click.option("--limit", type=int, default=100, show_default=True, help="Records to fetch")
@click.option(
    "--source-id",
    "source_ids",
    multiple=True,
    help="Import only these legacy ids (repeatable; ignores --skip/--limit)",
)
@pass_context
@requires_config
@handle_errors
def import_batch(
    ctx: MigrationContext,
    session_id: str,
    company_id: str,
    skip: int,
    limit: int,
    source_ids: tuple[str, ...],
) -> None:
    """Import a single batch."""
    result = ctx.coordinator.import_batch(
        BatchImportOptions(
            session_id=session_id,
            company_id=company_id,
            skip=skip,
            limit=limit,
            source_ids=list(source_ids) or None,
        )
    )

    stats = {
        "imported": result.imported_count,
        "skipped": result.skipped_count,
        "errors": result.error_count,
        "has_more": result.has_more,
    }
    if isinstance(result, PriceGuideBatchImportResult):
        stats.update(
            categories=result.categories_imported,
            options=result.options_imported,
            upcharges=result.upcharges_imported,
            items=result.items_imported,
        )
    print_stats(stats, title="Batch Result")

    if result.errors:
        print_table(
            "Errors",
            ["Source Id", "Error"],
            [[entry.source_id, entry.error] for entry in result.errors],
        )
