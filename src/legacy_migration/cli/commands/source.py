"""
Legacy store commands.

This module provides read-only commands against the legacy document store.
"""

import click

from legacy_migration.cli.context import MigrationContext
from legacy_migration.cli.decorators import handle_errors, pass_context, requires_config
from legacy_migration.cli.utils import echo_success, print_stats
from legacy_migration.utils.logging import get_logger

logger = get_logger(__name__)


@click.group(name="source")
def source() -> None:
    """Inspect the legacy document store."""
    pass


@source.command(name="lookup")
@click.option("--email", required=True, help="Email of a user of the legacy company")
@pass_context
@requires_config
@handle_errors
def lookup_company(ctx: MigrationContext, email: str) -> None:
    """Find the legacy company of a user."""
    source_company_id = ctx.coordinator.initialize_source_company(email)
    echo_success(f"Legacy company: {source_company_id}")


@source.command(name="counts")
@click.option("--source-company-id", help="Legacy company id")
@click.option("--email", help="Resolve the legacy company from a user's email")
@pass_context
@requires_config
@handle_errors
def source_counts(ctx: MigrationContext, source_company_id: str | None, email: str | None) -> None:
    """Count the legacy records of a company by kind."""
    if not source_company_id and not email:
        raise click.UsageError("Provide --source-company-id or --email")

    coordinator = ctx.coordinator
    if not source_company_id:
        source_company_id = coordinator.initialize_source_company(email)

    counts = coordinator.get_source_counts(source_company_id)
    print_stats(
        {
            "offices": counts.offices,
            "categories": counts.categories,
            "items": counts.items,
            "options": counts.options,
            "up_charges": counts.upcharges,
            "price_guide_total": counts.price_guide_total,
        },
        title=f"Legacy Company {source_company_id}",
    )
