"""
Migration session state machine.

    pending --first batch--> in_progress --last batch--> completed
    pending | in_progress | completed --rollback--> rolled_back | rollback_failed

Imports are only accepted while a session is pending or in progress. Every
transition is a function over `SessionStatus`; no other code assigns
`MigrationSession.status`.
"""

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from legacy_migration.client.exceptions import EtlErrorCode, EtlServiceError
from legacy_migration.migration.models import MigrationSession, SessionStatus

IMPORTABLE_STATUSES = frozenset({SessionStatus.PENDING, SessionStatus.IN_PROGRESS})

ROLLBACK_ALLOWED_STATUSES = frozenset(
    {SessionStatus.PENDING, SessionStatus.IN_PROGRESS, SessionStatus.COMPLETED}
)


def utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass
class ImportErrorEntry:
    """One entry of a session's error log."""

    source_id: str
    error: str
    code: EtlErrorCode | None = None
    timestamp: str = ""

    def __post_init__(self) -> None:
        if not self.timestamp:
            self.timestamp = utcnow().isoformat()

    def to_dict(self) -> dict[str, Any]:
        entry = {"sourceId": self.source_id, "error": self.error, "timestamp": self.timestamp}
        if self.code is not None:
            entry["code"] = self.code.value
        return entry


def status_of(session: MigrationSession) -> SessionStatus:
    return SessionStatus(session.status)


def ensure_importable(session: MigrationSession) -> None:
    """Raise SESSION_INVALID_STATE unless the session accepts import batches."""
    status = status_of(session)
    if status not in IMPORTABLE_STATUSES:
        raise EtlServiceError(
            f"Migration session {session.id} is {status.value} and cannot import",
            EtlErrorCode.SESSION_INVALID_STATE,
        )


def begin_batch(session: MigrationSession) -> None:
    """Move a pending session to in_progress on its first batch."""
    ensure_importable(session)
    if status_of(session) == SessionStatus.PENDING:
        session.status = SessionStatus.IN_PROGRESS.value


def apply_batch_result(
    session: MigrationSession,
    imported: int,
    skipped: int,
    errors: list[ImportErrorEntry],
) -> None:
    """Add a batch's counters to the session and append its errors to the log."""
    session.imported_count += imported
    session.skipped_count += skipped
    session.error_count += len(errors)
    session.errors.extend(entry.to_dict() for entry in errors)


def is_exhausted(session: MigrationSession, has_more: bool) -> bool:
    return not has_more and session.processed_count >= session.total_count


def settle_batch(session: MigrationSession, has_more: bool) -> bool:
    """Complete the session when every record is accounted for and no pages remain.

    Returns:
        True if the session was completed by this call
    """
    if is_exhausted(session, has_more):
        session.status = SessionStatus.COMPLETED.value
        session.completed_at = utcnow()
        return True
    return False


def record_batch_failure(session: MigrationSession, error: str) -> None:
    """Log a batch-level failure without changing counters or status."""
    session.errors.append(
        ImportErrorEntry(
            source_id="batch", error=error, code=EtlErrorCode.IMPORT_FAILED
        ).to_dict()
    )


def ensure_can_roll_back(session: MigrationSession) -> None:
    """Raise SESSION_INVALID_STATE for sessions already rolled back or failed."""
    status = status_of(session)
    if status not in ROLLBACK_ALLOWED_STATUSES:
        raise EtlServiceError(
            f"Migration session {session.id} is {status.value} and cannot be rolled back",
            EtlErrorCode.SESSION_INVALID_STATE,
        )


def mark_rolled_back(session: MigrationSession) -> None:
    ensure_can_roll_back(session)
    session.status = SessionStatus.ROLLED_BACK.value
    session.completed_at = utcnow()


def mark_rollback_failed(session: MigrationSession, error: str) -> None:
    session.status = SessionStatus.ROLLBACK_FAILED.value
    session.errors.append(ImportErrorEntry(source_id="rollback", error=error).to_dict())
