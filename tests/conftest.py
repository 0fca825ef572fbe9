"""
Shared pytest fixtures for the Legacy Bridge tests.

This module provides:
- A temporary SQLite target database (engine, session_factory)
- An in-memory stand-in for the legacy store reader (FakeSourceClient)
- A coordinator wired to both
"""

from collections.abc import Generator, Iterator

import pytest
from sqlalchemy import Engine
from sqlalchemy.orm import Session, sessionmaker

from legacy_migration.client.exceptions import EtlErrorCode, EtlServiceError
from legacy_migration.client.records import (
    LegacyCategoryConfig,
    RawSourceItem,
    RawSourceOffice,
    RawSourcePriceGuideItem,
)
from legacy_migration.migration.coordinator import MigrationCoordinator
from legacy_migration.migration.database import create_session_factory, init_database

COMPANY_ID = "company-1"
SOURCE_COMPANY_ID = "legacyCo01"


# =============================================================================
# Fake legacy store
# =============================================================================


class FakeSourceClient:
    """In-memory replacement for LegacySourceClient.

    Records are served in list order. Every query checks the tenant id, and
    `fail_queries` makes every read raise SOURCE_QUERY_FAILED.
    """

    def __init__(self, source_company_id: str = SOURCE_COMPANY_ID):
        self.source_company_id = source_company_id
        self.offices: list[RawSourceOffice] = []
        self.categories: list[LegacyCategoryConfig] = []
        self.items: list[RawSourceItem] = []
        self.options: list[RawSourcePriceGuideItem] = []
        self.upcharges: list[RawSourcePriceGuideItem] = []
        self.users: dict[str, str] = {}
        self.fail_queries = False
        self.queries: list[str] = []

    def _check(self, name: str, source_company_id: str) -> bool:
        self.queries.append(name)
        if self.fail_queries:
            raise EtlServiceError(f"Failed to {name}: boom", EtlErrorCode.SOURCE_QUERY_FAILED)
        return source_company_id == self.source_company_id

    @staticmethod
    def _page(records: list, skip: int, limit: int) -> list:
        return records[skip : skip + limit]

    @staticmethod
    def _by_ids(records: list, ids: list[str]) -> list:
        wanted = set(ids)
        return [record for record in records if record.object_id in wanted]

    def count_offices(self, source_company_id: str) -> int:
        return len(self.offices) if self._check("count offices", source_company_id) else 0

    def query_offices(self, source_company_id: str, skip: int, limit: int) -> list[RawSourceOffice]:
        if not self._check("fetch offices", source_company_id):
            return []
        return self._page(self.offices, skip, limit)

    def query_offices_by_ids(self, source_company_id: str, ids: list[str]) -> list[RawSourceOffice]:
        if not self._check("fetch offices by ids", source_company_id):
            return []
        return self._by_ids(self.offices, ids)

    def query_categories(self, source_company_id: str) -> list[LegacyCategoryConfig]:
        if not self._check("fetch categories", source_company_id):
            return []
        return sorted(self.categories, key=lambda c: c.order)

    def count_items(self, source_company_id: str) -> int:
        return len(self.items) if self._check("count items", source_company_id) else 0

    def query_items(self, source_company_id: str, skip: int, limit: int) -> list[RawSourceItem]:
        if not self._check("fetch items", source_company_id):
            return []
        return self._page(self.items, skip, limit)

    def query_items_by_ids(self, source_company_id: str, ids: list[str]) -> list[RawSourceItem]:
        if not self._check("fetch items by ids", source_company_id):
            return []
        return self._by_ids(self.items, ids)

    def iter_all_items(self, source_company_id: str, page_size: int = 500) -> Iterator[RawSourceItem]:
        skip = 0
        while True:
            page = self.query_items(source_company_id, skip, page_size)
            yield from page
            if len(page) < page_size:
                return
            skip += page_size

    def count_options(self, source_company_id: str) -> int:
        return len(self.options) if self._check("count options", source_company_id) else 0

    def query_options(
        self, source_company_id: str, skip: int, limit: int
    ) -> list[RawSourcePriceGuideItem]:
        if not self._check("fetch options", source_company_id):
            return []
        return self._page(self.options, skip, limit)

    def count_upcharges(self, source_company_id: str) -> int:
        return len(self.upcharges) if self._check("count up-charges", source_company_id) else 0

    def query_upcharges(
        self, source_company_id: str, skip: int, limit: int
    ) -> list[RawSourcePriceGuideItem]:
        if not self._check("fetch up-charges", source_company_id):
            return []
        return self._page(self.upcharges, skip, limit)

    def lookup_company_id_by_email(self, email: str) -> str | None:
        self.queries.append("look up user")
        return self.users.get(email.strip().lower())


# =============================================================================
# Target database
# =============================================================================


@pytest.fixture
def engine(tmp_path) -> Generator[Engine, None, None]:
    """File-backed SQLite target database with all tables created."""
    engine = init_database(f"sqlite:///{tmp_path / 'target.db'}")
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine: Engine) -> sessionmaker[Session]:
    return create_session_factory(engine)


# =============================================================================
# Legacy store and coordinator
# =============================================================================


@pytest.fixture
def source() -> FakeSourceClient:
    return FakeSourceClient()


@pytest.fixture
def coordinator(
    source: FakeSourceClient, session_factory: sessionmaker[Session]
) -> MigrationCoordinator:
    return MigrationCoordinator(source=source, session_factory=session_factory)


@pytest.fixture
def company_id() -> str:
    return COMPANY_ID


@pytest.fixture
def source_company_id() -> str:
    return SOURCE_COMPANY_ID
