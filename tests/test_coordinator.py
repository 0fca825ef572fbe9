"""
Tests for the migration coordinator.
"""

import pytest

from legacy_migration.client.exceptions import EtlErrorCode, EtlServiceError
from legacy_migration.client.records import (
    LegacyCategoryConfig,
    RawSourceItem,
    RawSourceOffice,
    RawSourcePriceGuideItem,
)
from legacy_migration.migration.models import SessionStatus


@pytest.fixture
def populated_source(source):
    source.users = {"owner@example.com": source.source_company_id}
    source.offices = [RawSourceOffice(object_id="o1"), RawSourceOffice(object_id="o2")]
    source.categories = [
        LegacyCategoryConfig(name="Roofing", order=1),
        LegacyCategoryConfig(name="Gutters", order=2),
    ]
    source.items = [
        RawSourceItem(object_id="i1", category="Roofing", sub_category="Shingles"),
        RawSourceItem(object_id="i2", category="Siding"),
    ]
    source.options = [RawSourcePriceGuideItem(object_id="op1")]
    source.upcharges = [RawSourcePriceGuideItem(object_id="u1", is_accessory=True)]
    return source


class TestSourceCompany:
    def test_lookup_by_email(self, coordinator, populated_source, source_company_id):
        assert coordinator.initialize_source_company(" Owner@Example.com ") == source_company_id

    def test_unknown_email(self, coordinator, populated_source):
        with pytest.raises(EtlServiceError) as exc_info:
            coordinator.initialize_source_company("nobody@example.com")

        assert exc_info.value.code == EtlErrorCode.SOURCE_COMPANY_NOT_FOUND
        assert exc_info.value.is_source_error

    def test_source_counts(self, coordinator, populated_source, source_company_id):
        counts = coordinator.get_source_counts(source_company_id)

        assert counts.offices == 2
        assert counts.items == 2
        assert counts.options == 1
        assert counts.upcharges == 1
        # Roofing, Roofing>Shingles, Siding, plus the unused Gutters root
        assert counts.categories == 4
        assert counts.price_guide_total == 8

    def test_counts_of_another_tenant_are_empty(self, coordinator, populated_source):
        counts = coordinator.get_source_counts("otherCompany")
        assert counts.price_guide_total == 0
        assert counts.offices == 0


class TestSessions:
    def test_create_session(self, coordinator, populated_source, company_id, source_company_id):
        session = coordinator.create_session(
            company_id, source_company_id, "price_guide", created_by="user-1"
        )

        assert session.id
        assert session.status == SessionStatus.PENDING.value
        assert session.total_count == 8
        assert session.created_by == "user-1"
        assert session.created_at is not None

    def test_invalid_entity_type(self, coordinator, company_id, source_company_id):
        with pytest.raises(EtlServiceError) as exc_info:
            coordinator.create_session(company_id, source_company_id, "invoice")

        assert exc_info.value.code == EtlErrorCode.INVALID_MAPPING
        assert coordinator.list_sessions(company_id) == []

    @pytest.mark.parametrize("target, legacy", [("", "legacyCo01"), ("company-1", "")])
    def test_session_needs_both_companies(self, coordinator, target, legacy):
        with pytest.raises(EtlServiceError) as exc_info:
            coordinator.create_session(target, legacy, "office")

        assert exc_info.value.code == EtlErrorCode.INVALID_MAPPING

    def test_get_session_is_scoped_to_company(
        self, coordinator, populated_source, company_id, source_company_id
    ):
        session = coordinator.create_session(company_id, source_company_id, "office")

        assert coordinator.get_session(session.id, company_id).id == session.id
        with pytest.raises(EtlServiceError) as exc_info:
            coordinator.get_session(session.id, "company-2")
        assert exc_info.value.code == EtlErrorCode.SESSION_NOT_FOUND

    def test_list_sessions(self, coordinator, populated_source, company_id, source_company_id):
        first = coordinator.create_session(company_id, source_company_id, "office")
        second = coordinator.create_session(company_id, source_company_id, "price_guide")
        coordinator.create_session("company-2", source_company_id, "office")

        sessions = coordinator.list_sessions(company_id)

        assert {s.id for s in sessions} == {first.id, second.id}
        assert coordinator.list_sessions("company-3") == []


class TestRunImport:
    def test_run_import_reports_every_batch(
        self, coordinator, populated_source, company_id, source_company_id
    ):
        session = coordinator.create_session(company_id, source_company_id, "office")
        seen = []

        summary = coordinator.run_import(
            session.id,
            company_id,
            batch_size=1,
            on_batch=lambda result, current: seen.append(current.processed_count),
        )

        # Two full pages, then an empty one
        assert summary.batches == 3
        assert seen == [1, 2, 2]
        assert summary.imported_count == 2
        assert summary.status == SessionStatus.COMPLETED.value

    def test_price_guide_run(self, coordinator, populated_source, company_id, source_company_id):
        session = coordinator.create_session(company_id, source_company_id, "price_guide")

        summary = coordinator.run_import(session.id, company_id)

        assert summary.batches == 1
        assert summary.imported_count == 8
        assert summary.status == SessionStatus.COMPLETED.value
        assert summary.formula_warnings == []
